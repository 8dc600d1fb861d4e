from datetime import date

import pytest

from forecast_tracker import database, ledger, spaces
from forecast_tracker.core.errors import NotFound, ValidationError
from forecast_tracker.core.models import RuleKind


def _balance(db_path, space_id, account_id):
    return spaces.get_account(db_path, space_id, account_id).current_balance


def test_record_and_list_entries(db_path, household):
    space_id = household["space"].id
    account_id = household["account"].id
    ledger.record_entry(
        db_path,
        space_id,
        RuleKind.EXPENSE,
        account_id=account_id,
        title="Groceries",
        amount=45.5,
        date_="2025-02-03",
        category_id=household["category"].id,
        added_by="alice",
    )
    ledger.record_entry(
        db_path, space_id, RuleKind.INCOME, account_id=account_id, title="Refund", amount=20, date_="2025-02-01"
    )

    assert _balance(db_path, space_id, account_id) == pytest.approx(974.5)
    expenses = ledger.list_entries(db_path, space_id, RuleKind.EXPENSE)
    assert [(e.title, e.date) for e in expenses] == [("Groceries", date(2025, 2, 3))]
    assert ledger.list_entries(db_path, space_id, RuleKind.INCOME, start_date=date(2025, 2, 2)) == []

    check = ledger.reconcile_account(db_path, space_id, account_id)
    assert check.ledger_balance == pytest.approx(974.5)
    assert check.drift == 0


def test_record_entry_reference_checks(db_path, household):
    space_id = household["space"].id
    account_id = household["account"].id
    with pytest.raises(ValidationError):
        ledger.record_entry(
            db_path, space_id, RuleKind.EXPENSE, account_id=account_id, title="x", amount=1, date_="2025-01-01"
        )
    with pytest.raises(ValidationError):
        ledger.record_entry(
            db_path,
            space_id,
            RuleKind.INCOME,
            account_id=account_id,
            title="x",
            amount=1,
            date_="2025-01-01",
            category_id=household["category"].id,
        )
    with pytest.raises(NotFound):
        ledger.record_entry(
            db_path, space_id, RuleKind.INCOME, account_id=999, title="x", amount=1, date_="2025-01-01"
        )
    with pytest.raises(ValidationError):
        ledger.record_entry(
            db_path, space_id, RuleKind.INCOME, account_id=account_id, title="x", amount=1, date_=None
        )
    assert _balance(db_path, space_id, account_id) == 1000.0


def test_update_entry_moves_balance_between_accounts(db_path, household):
    space_id = household["space"].id
    checking = household["account"].id
    savings = spaces.create_account(db_path, space_id, "Savings", "savings", 0.0).id
    entry = ledger.record_entry(
        db_path,
        space_id,
        RuleKind.EXPENSE,
        account_id=checking,
        title="Phone",
        amount=50,
        date_="2025-01-05",
        category_id=household["category"].id,
    )

    updated = ledger.update_entry(
        db_path, space_id, RuleKind.EXPENSE, entry.id, {"amount": 80, "account_id": savings}
    )

    assert updated.amount == 80.0
    assert updated.account_id == savings
    assert _balance(db_path, space_id, checking) == 1000.0
    assert _balance(db_path, space_id, savings) == -80.0
    assert ledger.reconcile_account(db_path, space_id, savings).drift == 0


def test_delete_entry_restores_balance(db_path, household):
    space_id = household["space"].id
    account_id = household["account"].id
    entry = ledger.record_entry(
        db_path, space_id, RuleKind.INCOME, account_id=account_id, title="Bonus", amount=300, date_="2025-01-05"
    )
    ledger.delete_entry(db_path, space_id, RuleKind.INCOME, entry.id)
    assert _balance(db_path, space_id, account_id) == 1000.0
    with pytest.raises(NotFound):
        ledger.delete_entry(db_path, space_id, RuleKind.INCOME, entry.id)


def test_reconcile_reports_drift(db_path, household):
    space_id = household["space"].id
    account_id = household["account"].id
    with database.open_db(db_path) as conn:
        with database.atomic(conn):
            database.adjust_balance(conn, account_id, -12.5)
    check = ledger.reconcile_account(db_path, space_id, account_id)
    assert check.current_balance == 987.5
    assert check.ledger_balance == 1000.0
    assert check.drift == -12.5


def test_non_finite_amounts_are_rejected(db_path, household):
    space_id = household["space"].id
    account_id = household["account"].id
    for bad in ("nan", "inf", float("-inf")):
        with pytest.raises(ValidationError):
            ledger.record_entry(
                db_path, space_id, RuleKind.INCOME, account_id=account_id, title="x", amount=bad, date_="2025-01-01"
            )
    entry = ledger.record_entry(
        db_path, space_id, RuleKind.INCOME, account_id=account_id, title="x", amount=5, date_="2025-01-01"
    )
    with pytest.raises(ValidationError):
        ledger.update_entry(db_path, space_id, RuleKind.INCOME, entry.id, {"amount": float("nan")})
    assert _balance(db_path, space_id, account_id) == 1005.0
