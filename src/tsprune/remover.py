from __future__ import annotations

import glob
import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

from tsprune.analyzer import find_unused_spans
from tsprune.models import FileOutcome
from tsprune.modifier import apply_removals, render_diff
from tsprune.semantic import ParseError, parse_source

logger = logging.getLogger(__name__)


class DiscoveryError(Exception):
    pass


def remove_unused_declarations(
    pattern: str,
    dry_run: bool = False,
    jobs: int = 1,
) -> list[FileOutcome]:
    """Run one removal pass over every file matching ``pattern``.

    Discovery happens up front, so a bad pattern raises ``DiscoveryError``
    before any file is read. Failures on a single file are logged and
    reported in its ``FileOutcome``; the remaining files are still processed.
    """
    logger.info("Removing unused declarations for pattern: %s", pattern)
    paths = discover_files(pattern)
    if jobs <= 1 or len(paths) <= 1:
        return [process_file(path, dry_run=dry_run) for path in paths]

    outcomes: list[FileOutcome] = []
    with ThreadPoolExecutor(max_workers=jobs) as executor:
        futures = [executor.submit(process_file, path, dry_run) for path in paths]
        for future in as_completed(futures):
            outcomes.append(future.result())
    return outcomes


def discover_files(pattern: str) -> list[Path]:
    _validate_pattern(pattern)
    results: list[Path] = []
    for match in glob.iglob(pattern, recursive=True):
        path = Path(match)
        if not path.is_file():
            logger.debug("Skipping non-file match: %s", path)
            continue
        results.append(path)
    results.sort(key=lambda p: p.as_posix())
    return results


def _validate_pattern(pattern: str) -> None:
    if not pattern:
        raise DiscoveryError("Empty file pattern")
    components = pattern.replace(os.sep, "/").split("/")
    for component in components:
        if "**" in component and component != "**":
            raise DiscoveryError(
                f"Invalid pattern {pattern!r}: '**' must be a whole path component"
            )
        open_at = component.find("[")
        while open_at != -1:
            # "[]]" is a class holding "]", so the search starts past it
            close_at = component.find("]", open_at + 2)
            if close_at == -1:
                raise DiscoveryError(
                    f"Invalid pattern {pattern!r}: unclosed character class"
                )
            open_at = component.find("[", close_at + 1)


def process_file(path: Path, dry_run: bool = False) -> FileOutcome:
    logger.info("Processing file: %s", path)
    try:
        with path.open(encoding="utf-8", newline="") as handle:
            source = handle.read()
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Failed to read file %s: %s", path, exc)
        return FileOutcome(path=str(path), status="failed", detail=f"read failed: {exc}")

    try:
        model = parse_source(path, source)
    except ParseError as exc:
        for diagnostic in exc.diagnostics:
            logger.warning("Parse error in %s:%s", path, diagnostic)
        return FileOutcome(path=str(path), status="parse_error", detail=str(exc))
    except RecursionError:
        logger.warning("Failed to analyze file %s: syntax tree is nested too deeply", path)
        return FileOutcome(path=str(path), status="failed", detail="syntax tree too deep")

    spans = find_unused_spans(model)
    if not spans:
        return FileOutcome(path=str(path), status="unchanged")

    updated = apply_removals(source, spans)
    if dry_run:
        return FileOutcome(
            path=str(path),
            status="would_update",
            removed=len(spans),
            diff=render_diff(path.as_posix(), source, updated),
        )

    try:
        with path.open("w", encoding="utf-8", newline="") as handle:
            handle.write(updated)
    except OSError as exc:
        logger.warning("Failed to write file %s: %s", path, exc)
        return FileOutcome(path=str(path), status="failed", detail=f"write failed: {exc}")
    logger.info("Updated file: %s (%d spans removed)", path, len(spans))
    return FileOutcome(path=str(path), status="updated", removed=len(spans))
