from __future__ import annotations

import json
from pathlib import Path

import pytest

from powcost.cli import main, parse_args


@pytest.fixture
def cli_env(tmp_path: Path, monkeypatch) -> Path:
    for name in ("POWCOST_FS_ROOT", "POWCOST_STORAGE_FILE", "SUPABASE_URL", "SUPABASE_ANON_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("POWCOST_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("POWCOST_EXPORT_DIR", str(tmp_path / "exports"))
    return tmp_path


def _project_id(capsys) -> str:
    return capsys.readouterr().out.split()[0]


def test_parse_args_requires_command():
    with pytest.raises(SystemExit):
        parse_args([])
    args = parse_args(["--fs-root", "tree", "project", "rates", "p-1", "--tax", "10"])
    assert args.fs_root == "tree"
    assert (args.command, args.project_command, args.tax) == ("project", "rates", 10.0)


def test_seed_and_summary(cli_env: Path, capsys):
    assert main(["seed"]) == 0
    assert "Seeded 19" in capsys.readouterr().out

    assert main(["project", "list"]) == 0
    project_id = _project_id(capsys)

    assert main(["project", "add-item", project_id, "6", "10"]) == 0
    capsys.readouterr()
    assert main(["project", "summary", project_id]) == 0
    out = capsys.readouterr().out
    assert "Sample Residential Building Project" in out
    assert "Direct cost: ₱42,500.00" in out
    assert "Structural Works" in out


def test_project_workflow_and_exports(cli_env: Path, capsys):
    assert main(["catalog", "add", "--item-no", "A-1", "--description", "Gravel", "--category", "Site Works",
                 "--unit", "m³", "--unit-cost", "900", "--cost-type", "Material"]) == 0
    capsys.readouterr()
    assert main(["project", "create", "--title", "Seawall", "--identification-no", "SW-7"]) == 0
    project_id = _project_id(capsys)

    assert main(["project", "add-item", project_id, "1", "0"]) == 1
    assert main(["project", "add-item", project_id, "1", "2"]) == 0
    assert main(["project", "rates", project_id, "--ocm", "6"]) == 0
    assert "OCM 6%" in capsys.readouterr().out

    assert main(["project", "export-xlsx", project_id]) == 0
    assert main(["project", "export-json", project_id]) == 0
    assert main(["catalog", "export"]) == 0
    exported = sorted(path.name for path in (cli_env / "exports").iterdir())
    assert "Seawall.json" in exported
    assert any(name.startswith("POW_SW-7_") for name in exported)
    assert any(name.startswith("cost_database_") for name in exported)

    payload = json.loads((cli_env / "exports" / "Seawall.json").read_text(encoding="utf-8"))
    assert payload["indirectCosts"]["ocm_percent"] == 6


def test_missing_project_returns_error(cli_env: Path):
    assert main(["project", "summary", "nope"]) == 1
    assert main(["project", "delete", "nope"]) == 1
    assert main(["catalog", "delete", "42"]) == 1


def test_reset_requires_confirmation(cli_env: Path, capsys):
    main(["seed"])
    assert main(["data", "reset"]) == 1
    assert main(["data", "reset", "--yes"]) == 0
    capsys.readouterr()
    main(["catalog", "list"])
    assert capsys.readouterr().out == ""


def test_backups_with_folder(cli_env: Path, capsys):
    tree = cli_env / "tree"
    assert main(["--fs-root", str(tree), "seed"]) == 0
    assert main(["--fs-root", str(tree), "backup", "create"]) == 0
    capsys.readouterr()
    assert main(["--fs-root", str(tree), "backup", "list"]) == 0
    [label] = capsys.readouterr().out.split()
    assert main(["--fs-root", str(tree), "backup", "restore", label]) == 0
    assert (tree / "Database" / "cost_items.json").exists()


def test_remote_pull_without_credentials_fails(cli_env: Path):
    assert main(["remote", "pull-catalog"]) == 1
