from __future__ import annotations

import argparse
import logging
from collections.abc import Iterable

from tsprune import __version__

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="tsprune",
        description="A developer productivity CLI for pruning source files.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Log every removed span")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log problems")
    domains = parser.add_subparsers(dest="domain", required=True)

    typescript = domains.add_parser("typescript", help="TypeScript related commands")
    commands = typescript.add_subparsers(dest="command", required=True)
    remove = commands.add_parser(
        "remove-unused-declarations",
        help="Remove unused declarations in the specified files",
    )
    remove.add_argument("pattern", help="Glob pattern to match files (supports **)")
    remove.add_argument(
        "--dry-run",
        action="store_true",
        help="Print a unified diff instead of writing files",
    )
    remove.add_argument(
        "--jobs",
        type=int,
        default=1,
        help="Number of files to process concurrently (default: 1)",
    )

    args = parser.parse_args(list(argv) if argv is not None else None)
    if args.jobs < 1:
        raise SystemExit("--jobs must be at least 1")
    _configure_logging(args.verbose, args.quiet)

    from tsprune.remover import DiscoveryError, remove_unused_declarations

    try:
        outcomes = remove_unused_declarations(
            args.pattern,
            dry_run=args.dry_run,
            jobs=args.jobs,
        )
    except DiscoveryError as exc:
        raise SystemExit(f"Error reading file pattern: {exc}") from exc

    if args.dry_run:
        for outcome in outcomes:
            if outcome.diff:
                print(outcome.diff, end="")
    return 0


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)


if __name__ == "__main__":
    raise SystemExit(main())
