import json

import pytest

from quick_ledger import __version__
from quick_ledger.cli import main
from quick_ledger.config import AppConfig
from quick_ledger.db import count_rows, load_rows


def run(db_path, *args):
    main(["--db", str(db_path), *args])


def test_version_flag(capsys):
    main(["--version"])

    assert f"quick_ledger version {__version__}" in capsys.readouterr().out


def test_init_creates_database(tmp_path, capsys):
    db_path = tmp_path / "cli.sqlite"

    run(db_path, "init")

    assert db_path.exists()
    assert "Database ready" in capsys.readouterr().out


def test_apply_then_undo_from_manifest(tmp_path, capsys):
    db_path = tmp_path / "cli.sqlite"
    batch = tmp_path / "batch.txt"
    batch.write_text("7. 21506 net\n20. 9300 (Maa)\nGP 500\n", encoding="utf-8")
    manifest = tmp_path / "out" / "manifest.json"

    run(db_path, "apply", str(batch), "--date", "2024-12-15", "--manifest-out", str(manifest))

    out = capsys.readouterr().out
    assert "Applied batch #1: 3 rows committed." in out
    assert json.loads(manifest.read_text(encoding="utf-8"))["batch_id"] == 1

    db = AppConfig.default(db_path).database
    assert count_rows(db) == 3

    run(db_path, "undo", "--manifest", str(manifest))

    assert "Undid batch #1: 3 rows removed." in capsys.readouterr().out
    assert count_rows(db) == 0

    with pytest.raises(SystemExit) as excinfo:
        run(db_path, "undo", "--manifest", str(manifest))
    assert "UNDO" in str(excinfo.value)


def test_apply_refuses_batch_with_problems(tmp_path, capsys):
    db_path = tmp_path / "cli.sqlite"
    batch = tmp_path / "batch.txt"
    batch.write_text("7. 100\nwhat is this\n", encoding="utf-8")

    with pytest.raises(SystemExit):
        run(db_path, "apply", str(batch), "--date", "2024-12-15")

    assert "cannot be submitted" in capsys.readouterr().out
    assert count_rows(AppConfig.default(db_path).database) == 0


def test_invalid_context_date_exits(tmp_path):
    batch = tmp_path / "batch.txt"
    batch.write_text("7. 100\n", encoding="utf-8")

    with pytest.raises(SystemExit):
        run(tmp_path / "cli.sqlite", "preview", str(batch), "--date", "15.12.2024")


def test_staff_and_party_registration(tmp_path, capsys):
    db_path = tmp_path / "cli.sqlite"

    run(db_path, "staff", "add", "Ravi")
    run(db_path, "parties", "add", "Maa Traders", "--credit-limit", "5000")
    run(db_path, "parties", "list")

    out = capsys.readouterr().out
    assert "Added staff member Ravi" in out
    assert "Maa Traders" in out

    with pytest.raises(SystemExit):
        run(db_path, "staff", "add", "ravi")


def test_duplicates_scan_and_keep(tmp_path, capsys):
    db_path = tmp_path / "cli.sqlite"
    batch = tmp_path / "batch.txt"
    batch.write_text("1. 500\n2. 500 net\n", encoding="utf-8")
    run(db_path, "apply", str(batch), "--date", "2024-12-15")
    capsys.readouterr()

    run(
        db_path,
        "duplicates",
        "scan",
        "--from-date",
        "2024-12-01",
        "--to-date",
        "2024-12-31",
    )
    out = capsys.readouterr().out
    assert "=== 2024-12-15 ===" in out
    assert "amount 500.00 (2 rows)" in out

    db = AppConfig.default(db_path).database
    keep_id = load_rows(db)[0].id
    run(db_path, "duplicates", "keep", "--row-id", keep_id)

    assert "deleted 1 row(s)" in capsys.readouterr().out
    assert [r.id for r in load_rows(db)] == [keep_id]


def test_balances_check_reports_consistency(tmp_path, capsys):
    db_path = tmp_path / "cli.sqlite"

    run(db_path, "balances", "check")

    assert "All balances match" in capsys.readouterr().out
