from __future__ import annotations

from pathlib import Path

import pytest

from tsprune import __version__, cli


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)


def test_help_exits_zero() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--help"])
    assert excinfo.value.code == 0


def test_version(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit):
        cli.main(["--version"])
    assert __version__ in capsys.readouterr().out


def test_subcommand_is_required() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["typescript"])
    assert excinfo.value.code == 2


def test_remove_unused_declarations_rewrites_files(tmp_path: Path) -> None:
    _write(tmp_path / "src" / "a.ts", "import { a, b } from './m';\nconsole.log(b);\n")

    result = cli.main(
        [
            "typescript",
            "remove-unused-declarations",
            str(tmp_path / "src" / "**" / "*.ts"),
        ]
    )

    assert result == 0
    assert (tmp_path / "src" / "a.ts").read_text() == "import { b } from './m';\nconsole.log(b);\n"


def test_dry_run_prints_diff(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _write(tmp_path / "a.ts", "const unused = 1;\nrun();\n")

    result = cli.main(
        ["-q", "typescript", "remove-unused-declarations", str(tmp_path / "*.ts"), "--dry-run"]
    )

    assert result == 0
    out = capsys.readouterr().out
    assert "-const unused = 1;" in out
    assert (tmp_path / "a.ts").read_text() == "const unused = 1;\nrun();\n"


def test_invalid_pattern_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(SystemExit, match="Error reading file pattern"):
        cli.main(["typescript", "remove-unused-declarations", str(tmp_path / "a**.ts")])


def test_jobs_must_be_positive(tmp_path: Path) -> None:
    with pytest.raises(SystemExit, match="--jobs"):
        cli.main(
            ["typescript", "remove-unused-declarations", str(tmp_path / "*.ts"), "--jobs", "0"]
        )
