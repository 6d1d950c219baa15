from __future__ import annotations

from pathlib import Path

from sharepoint_sync.cli.__main__ import main as cli_main

"""Exit code contract: 0 all worksheets succeeded, 2 some failed, 1 fatal."""


def _workbook(make_workbook, sheets=("HLD_Pole", "Nokia_Exp")) -> Path:
    rows = {
        "HLD_Pole": [["Label 1", "Status"], ["P1", "Planned"], ["P2", "Built"]],
        "Nokia_Exp": [["Drop Number", "Team"], ["DR1", "A"]],
    }
    return make_workbook({name: rows[name] for name in sheets})


def test_exit_code_fatal_without_config(temp_workdir: Path, capsys) -> None:
    code = cli_main(["sync"])
    assert code == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_all_success(write_config: Path, make_workbook, capsys) -> None:
    code = cli_main(["sync", "--file", str(_workbook(make_workbook))])
    out = capsys.readouterr().out
    assert code == 0
    assert "SUMMARY worksheets=2/2 failed=0 processed=3 inserted=3" in out


def test_exit_code_partial_failure(write_config: Path, make_workbook, capsys) -> None:
    code = cli_main(["sync", "--file", str(_workbook(make_workbook, sheets=("HLD_Pole",)))])
    out = capsys.readouterr().out
    assert code == 2
    assert "SUMMARY worksheets=1/2 failed=1" in out
    assert 'ERROR sync failed for Nokia_Exp' in out


def test_exit_code_unknown_worksheet(write_config: Path, make_workbook, capsys) -> None:
    code = cli_main(["sync", "-w", "Nope", "--file", str(_workbook(make_workbook))])
    assert code == 1
    assert "unknown worksheet" in capsys.readouterr().out


def test_exit_code_missing_source_file(write_config: Path, temp_workdir: Path, capsys) -> None:
    code = cli_main(["sync", "--file", str(temp_workdir / "data" / "missing.xlsx")])
    out = capsys.readouterr().out
    assert code == 2
    assert "file not found" in out


def test_exit_code_reset_requires_confirmation(write_config: Path, capsys) -> None:
    assert cli_main(["reset", "HLD_Pole"]) == 1
    assert "--yes" in capsys.readouterr().out
    assert cli_main(["reset", "HLD_Pole", "--yes"]) == 0


def test_exit_code_health_unhealthy(write_config: Path, capsys) -> None:
    assert cli_main(["health"]) == 1
    assert "NEVER_SYNCED" in capsys.readouterr().out
