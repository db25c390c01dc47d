import json
from datetime import date
from decimal import Decimal

import pytest

from quick_ledger.db import (
    DatabaseConfig,
    count_rows,
    get_batch,
    get_party_by_name,
    get_row,
    get_staff_by_name,
    load_rows,
    transaction,
)
from quick_ledger.entries import Bill, Expense, Payment, Sale
from quick_ledger.exceptions import (
    DuplicateBlocked,
    DuplicatePending,
    StorageError,
    UndoError,
    UnknownStaffError,
    ValidationError,
)
from quick_ledger.ledger import (
    BatchManifest,
    ManifestItem,
    apply_batch,
    delete_rows,
    recalculate_balances,
    undo_batch,
)
from quick_ledger.registry import add_staff

D = date(2024, 3, 15)


def make_tmp_db_cfg(tmp_path) -> DatabaseConfig:
    return DatabaseConfig(engine="sqlite", path=tmp_path / "ledger.sqlite")


def mixed_batch() -> list:
    return [
        Sale(id="s1", date=D, amount=Decimal("21506"), payment_mode="digital"),
        Sale(
            id="s2", date=D, amount=Decimal("9300"), payment_mode="credit", party_name="Maa"
        ),
        Bill(
            id="b1",
            date=date(2024, 3, 13),
            amount=Decimal("33201"),
            party_name="SAJ",
            bill_number="A123",
        ),
        Payment(id="p1", date=D, amount=Decimal("20000"), party_name="SAJ"),
        Expense(id="e1", date=D, amount=Decimal("94100"), category="goods_purchase"),
    ]


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


def test_apply_mixed_batch_updates_balances(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)

    result = apply_batch(cfg, mixed_batch())

    assert result.ok
    assert [row.id for row in result.committed_rows] == ["s1", "s2", "b1", "p1", "e1"]
    assert all(outcome.status == "committed" for outcome in result.outcomes)
    assert count_rows(cfg) == 5

    assert get_party_by_name(cfg, "Maa").current_balance == Decimal("9300.00")
    assert get_party_by_name(cfg, "saj").current_balance == Decimal("13201.00")

    payment = get_row(cfg, "p1")
    assert payment.type == "payment"
    assert payment.expense_category == "party_payment"

    batch = get_batch(cfg, result.manifest.batch_id)
    assert batch.rows_inserted == 5
    assert batch.source_type == "manual"


def test_empty_batch_is_a_validation_error(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)

    result = apply_batch(cfg, [])

    assert not result.ok
    assert isinstance(result.error, ValidationError)
    assert not cfg.path.exists()


def test_invalid_batch_opens_no_transaction(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    entries = [
        Sale(id="s1", date=D, amount=Decimal("10"), payment_mode="credit", line_number=2)
    ]

    result = apply_batch(cfg, entries)

    assert isinstance(result.error, ValidationError)
    assert result.error.errors == ["Credit sale at line 2 requires a party name"]
    assert [o.status for o in result.outcomes] == ["not_attempted"]
    with pytest.raises(ValidationError):
        result.raise_for_error()


def test_failure_mid_batch_rolls_back_everything(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    assert apply_batch(
        cfg, [Sale(id="dup", date=D, amount=Decimal("1"), payment_mode="cash")]
    ).ok

    second = [
        Sale(
            id="s2", date=D, amount=Decimal("500"), payment_mode="credit", party_name="Maa"
        ),
        Bill(id="b1", date=D, amount=Decimal("700"), party_name="SAJ"),
        Sale(id="dup", date=D, amount=Decimal("2"), payment_mode="cash"),
    ]
    result = apply_batch(cfg, second)

    assert isinstance(result.error, StorageError)
    assert [o.status for o in result.outcomes] == ["rolled_back", "rolled_back", "failed"]
    assert result.failures[2].entry_id == "dup"
    assert result.manifest is None
    assert count_rows(cfg) == 1
    assert get_party_by_name(cfg, "Maa") is None
    assert get_party_by_name(cfg, "SAJ") is None
    assert get_batch(cfg, 2) is None


def test_unknown_staff_rolls_back_batch(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    entries = [
        Sale(id="s1", date=D, amount=Decimal("100"), payment_mode="cash"),
        Expense(
            id="e1", date=D, amount=Decimal("2000"), category="advance", staff_name="Ravi"
        ),
    ]

    result = apply_batch(cfg, entries)

    assert isinstance(result.error, UnknownStaffError)
    assert result.error.staff_name == "Ravi"
    assert count_rows(cfg) == 0


def test_advance_increases_staff_balance(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    add_staff(cfg, "Ravi")
    entries = [
        Expense(
            id="e1", date=D, amount=Decimal("2000"), category="advance", staff_name="ravi"
        ),
        Expense(
            id="e2", date=D, amount=Decimal("12000"), category="salary", staff_name="Ravi"
        ),
    ]

    result = apply_batch(cfg, entries)

    assert result.ok
    assert get_staff_by_name(cfg, "Ravi").current_advance == Decimal("2000.00")
    assert get_row(cfg, "e2").staff_id == get_staff_by_name(cfg, "Ravi").id


def test_duplicate_bill_is_blocked_at_apply(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    bill = Bill(id="b1", date=D, amount=Decimal("500"), party_name="SAJ")
    assert apply_batch(cfg, [bill]).ok

    again = Bill(id="b2", date=D, amount=Decimal("500"), party_name="SAJ")
    result = apply_batch(cfg, [again])

    assert isinstance(result.error, DuplicateBlocked)
    assert count_rows(cfg) == 1
    assert get_party_by_name(cfg, "SAJ").current_balance == Decimal("500.00")


def test_duplicate_payment_needs_override(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    assert apply_batch(
        cfg, [Payment(id="p1", date=D, amount=Decimal("300"), party_name="PBK")]
    ).ok

    again = Payment(id="p2", date=D, amount=Decimal("300"), party_name="PBK")
    refused = apply_batch(cfg, [again])
    accepted = apply_batch(cfg, [again], payment_overrides={"p2"})

    assert isinstance(refused.error, DuplicatePending)
    assert accepted.ok
    assert get_party_by_name(cfg, "PBK").current_balance == Decimal("-600.00")


def test_party_warning_can_be_overridden(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    entry = Sale(
        id="s1",
        date=D,
        amount=Decimal("10"),
        payment_mode="credit",
        party_name="A#B",
        party_error="bad characters",
    )

    assert isinstance(apply_batch(cfg, [entry]).error, ValidationError)
    assert apply_batch(cfg, [entry], party_overrides={"s1"}).ok


# ---------------------------------------------------------------------------
# Undo
# ---------------------------------------------------------------------------


def test_undo_restores_rows_and_balances(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    result = apply_batch(cfg, mixed_batch())

    undo = undo_batch(cfg, result.manifest)

    assert undo.ok
    assert undo.rows_deleted == 5
    assert count_rows(cfg) == 0
    # Created parties stay, with their balance back to zero.
    assert get_party_by_name(cfg, "Maa").current_balance == Decimal("0.00")
    assert get_party_by_name(cfg, "SAJ").current_balance == Decimal("0.00")
    assert get_batch(cfg, result.manifest.batch_id).undone_at is not None


def test_second_undo_of_same_batch_fails(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    result = apply_batch(cfg, mixed_batch())
    assert undo_batch(cfg, result.manifest).ok

    again = undo_batch(cfg, result.manifest)

    assert isinstance(again.error, UndoError)
    assert again.error.batch_id == result.manifest.batch_id
    assert count_rows(cfg) == 0


def test_undo_fails_closed_after_row_deletion(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    result = apply_batch(cfg, mixed_batch())
    assert delete_rows(cfg, ["b1"]).ok

    undo = undo_batch(cfg, result.manifest)

    assert isinstance(undo.error, UndoError)
    assert undo.error.missing_row_ids == ["b1"]
    assert count_rows(cfg) == 4
    assert get_batch(cfg, result.manifest.batch_id).undone_at is None


def test_manifest_survives_json_round_trip(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    result = apply_batch(cfg, mixed_batch())

    restored = BatchManifest.from_dict(json.loads(json.dumps(result.manifest.to_dict())))

    assert restored == result.manifest
    assert undo_batch(cfg, restored).ok


def test_malformed_manifest_is_rejected():
    with pytest.raises(ValueError):
        BatchManifest.from_dict({"batch_id": 1})


# ---------------------------------------------------------------------------
# Delete and balance recalculation
# ---------------------------------------------------------------------------


def test_delete_reverses_balance_effect(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    apply_batch(cfg, mixed_batch())

    result = delete_rows(cfg, ["s2", "p1"])

    assert result.ok
    assert result.deleted_row_ids == ("s2", "p1")
    assert get_party_by_name(cfg, "Maa").current_balance == Decimal("0.00")
    assert get_party_by_name(cfg, "SAJ").current_balance == Decimal("33201.00")


def test_delete_of_missing_row_changes_nothing(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    apply_batch(cfg, mixed_batch())

    result = delete_rows(cfg, ["s2", "nope"])

    assert isinstance(result.error, StorageError)
    assert count_rows(cfg) == 5
    assert get_party_by_name(cfg, "Maa").current_balance == Decimal("9300.00")


def test_recalculate_detects_and_repairs_drift(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    apply_batch(cfg, mixed_batch())
    assert recalculate_balances(cfg).consistent

    with transaction(cfg) as conn:
        conn.execute(
            "UPDATE parties SET current_balance_cents = 1 WHERE name = 'Maa';"
        )
        conn.commit()

    check = recalculate_balances(cfg)
    assert not check.consistent
    assert check.drifts[0].name == "Maa"
    assert check.drifts[0].expected == Decimal("9300.00")
    assert get_party_by_name(cfg, "Maa").current_balance == Decimal("0.01")

    repaired = recalculate_balances(cfg, repair=True)
    assert repaired.repaired
    assert get_party_by_name(cfg, "Maa").current_balance == Decimal("9300.00")
    assert recalculate_balances(cfg).consistent


def test_amount_beyond_store_limit_returns_error_result(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    entries = [
        Sale(id="s1", date=D, amount=Decimal("10"), payment_mode="cash"),
        Sale(id="s2", date=D, amount=Decimal("1" + "0" * 20), payment_mode="cash"),
    ]

    result = apply_batch(cfg, entries)

    assert isinstance(result.error, StorageError)
    assert result.error.entry_id == "s2"
    assert [o.status for o in result.outcomes] == ["rolled_back", "failed"]
    assert count_rows(cfg) == 0


def test_undo_restores_staff_advance(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    add_staff(cfg, "Ravi")
    entries = [
        Expense(
            id="e1", date=D, amount=Decimal("2000"), category="advance", staff_name="Ravi"
        ),
        Sale(
            id="s1", date=D, amount=Decimal("300"), payment_mode="credit", party_name="Maa"
        ),
    ]
    result = apply_batch(cfg, entries)
    assert get_staff_by_name(cfg, "Ravi").current_advance == Decimal("2000.00")

    assert undo_batch(cfg, result.manifest).ok

    assert get_staff_by_name(cfg, "Ravi").current_advance == Decimal("0.00")
    assert get_party_by_name(cfg, "Maa").current_balance == Decimal("0.00")
    assert recalculate_balances(cfg).consistent


def test_undo_refuses_manifest_naming_rows_of_another_batch(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    first = apply_batch(
        cfg, [Bill(id="b1", date=D, amount=Decimal("500"), party_name="SAJ")]
    )
    second = apply_batch(
        cfg, [Sale(id="s1", date=D, amount=Decimal("80"), payment_mode="cash")]
    )
    forged = BatchManifest(
        batch_id=second.manifest.batch_id,
        created_at=second.manifest.created_at,
        items=(ManifestItem(row_id="b1"),),
    )

    undo = undo_batch(cfg, forged)

    assert isinstance(undo.error, UndoError)
    assert undo.error.missing_row_ids == ["b1"]
    assert sorted(r.id for r in load_rows(cfg)) == ["b1", "s1"]
    assert get_party_by_name(cfg, "SAJ").current_balance == Decimal("500.00")
    assert get_batch(cfg, second.manifest.batch_id).undone_at is None
    assert get_batch(cfg, first.manifest.batch_id).undone_at is None


def test_undo_refuses_manifest_with_missing_rows_or_altered_deltas(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    result = apply_batch(cfg, mixed_batch())
    manifest = result.manifest

    partial = BatchManifest(manifest.batch_id, manifest.created_at, manifest.items[:2])
    altered = BatchManifest(
        manifest.batch_id,
        manifest.created_at,
        tuple(ManifestItem(row_id=item.row_id) for item in manifest.items),
    )

    assert isinstance(undo_batch(cfg, partial).error, UndoError)
    assert isinstance(undo_batch(cfg, altered).error, UndoError)
    assert count_rows(cfg) == 5
    assert get_party_by_name(cfg, "Maa").current_balance == Decimal("9300.00")
    assert undo_batch(cfg, manifest).ok
