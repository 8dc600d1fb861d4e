# forecast_tracker/ledger.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Mapping

from forecast_tracker import database
from forecast_tracker.core.errors import NotFound, ValidationError
from forecast_tracker.core.models import LedgerEntry, RuleKind
from forecast_tracker.utils import clean_notes, clean_title, parse_amount, parse_date

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("account_id", "category_id", "title", "amount", "date", "notes")


@dataclass
class Reconciliation:
    account_id: int
    current_balance: float
    ledger_balance: float

    @property
    def drift(self) -> float:
        return round(self.current_balance - self.ledger_balance, 2)


def _signed(kind: RuleKind, amount: float) -> float:
    return -amount if kind is RuleKind.EXPENSE else amount


def _check_refs(conn, space_id: int, kind: RuleKind, account_id, category_id) -> None:
    if database.get_account(conn, space_id, account_id) is None:
        raise NotFound(f"Account {account_id} not found in space {space_id}")
    if kind is RuleKind.EXPENSE:
        if category_id is None:
            raise ValidationError("Expenses require a category.")
        if not database.category_exists(conn, space_id, category_id):
            raise NotFound(f"Category {category_id} not found in space {space_id}")
    elif category_id is not None:
        raise ValidationError("Incomes do not take a category.")


def record_entry(
    db_path: str,
    space_id: int,
    kind: RuleKind,
    *,
    account_id: int,
    title: str,
    amount,
    date_,
    category_id: int | None = None,
    notes: str | None = None,
    added_by: str = "",
) -> LedgerEntry:
    """Insert a manual expense or income and move the account balance with it."""
    kind = RuleKind(kind)
    title = clean_title(title)
    amount = parse_amount(amount)
    when = parse_date(date_, "date")
    if when is None:
        raise ValidationError("date is required.")
    notes = clean_notes(notes)

    with database.open_db(db_path) as conn:
        with database.atomic(conn):
            _check_refs(conn, space_id, kind, account_id, category_id)
            if kind is RuleKind.EXPENSE:
                entry_id = database.insert_expense(
                    conn, space_id, account_id, category_id, title, amount, when, notes, added_by
                )
            else:
                entry_id = database.insert_income(conn, space_id, account_id, title, amount, when, notes, added_by)
            database.adjust_balance(conn, account_id, _signed(kind, amount))
            entry = database.get_entry(conn, space_id, kind, entry_id)
    logger.info("Recorded %s %s on account %s", kind.value, entry_id, account_id)
    return entry


def update_entry(
    db_path: str,
    space_id: int,
    kind: RuleKind,
    entry_id: int,
    fields: Mapping[str, object],
) -> LedgerEntry:
    """Edit an entry; the old amount is backed out of the old account first."""
    kind = RuleKind(kind)
    unknown = set(fields) - set(_UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")

    changes: Dict[str, object] = dict(fields)
    if kind is RuleKind.INCOME and changes.get("category_id", 0) is None:
        changes.pop("category_id")
    if "title" in changes:
        changes["title"] = clean_title(changes["title"])
    if "amount" in changes:
        changes["amount"] = parse_amount(changes["amount"])
    if "notes" in changes:
        changes["notes"] = clean_notes(changes["notes"])
    if "date" in changes:
        changes["date"] = parse_date(changes["date"], "date")
        if changes["date"] is None:
            raise ValidationError("date cannot be cleared.")

    with database.open_db(db_path) as conn:
        with database.atomic(conn):
            entry = database.get_entry(conn, space_id, kind, entry_id)
            if entry is None:
                raise NotFound(f"{kind.value.capitalize()} {entry_id} not found in space {space_id}")
            new_account = changes.get("account_id", entry.account_id)
            new_category = changes.get("category_id", entry.category_id)
            new_amount = changes.get("amount", entry.amount)
            _check_refs(conn, space_id, kind, new_account, new_category)

            database.update_entry_fields(conn, kind, entry.id, changes)
            database.adjust_balance(conn, entry.account_id, -_signed(kind, entry.amount))
            database.adjust_balance(conn, new_account, _signed(kind, new_amount))
            updated = database.get_entry(conn, space_id, kind, entry.id)
    return updated


def delete_entry(db_path: str, space_id: int, kind: RuleKind, entry_id: int) -> None:
    kind = RuleKind(kind)
    with database.open_db(db_path) as conn:
        with database.atomic(conn):
            entry = database.get_entry(conn, space_id, kind, entry_id)
            if entry is None:
                raise NotFound(f"{kind.value.capitalize()} {entry_id} not found in space {space_id}")
            database.delete_entry(conn, kind, entry.id)
            database.adjust_balance(conn, entry.account_id, -_signed(kind, entry.amount))
    logger.info("Deleted %s %s", kind.value, entry_id)


def list_entries(
    db_path: str,
    space_id: int,
    kind: RuleKind,
    start_date: date | None = None,
    end_date: date | None = None,
    account_id: int | None = None,
) -> List[LedgerEntry]:
    with database.open_db(db_path) as conn:
        return database.list_entries(conn, space_id, RuleKind(kind), start_date, end_date, account_id)


def reconcile_account(db_path: str, space_id: int, account_id: int) -> Reconciliation:
    """Compare the stored running balance against the balance implied by the ledger."""
    with database.open_db(db_path) as conn:
        account = database.get_account(conn, space_id, account_id)
        if account is None:
            raise NotFound(f"Account {account_id} not found in space {space_id}")
        result = Reconciliation(
            account_id=account.id,
            current_balance=account.current_balance,
            ledger_balance=database.ledger_balance(conn, account.id),
        )
    if result.drift:
        logger.warning("Account %s balance drifted from ledger by %.2f", account_id, result.drift)
    return result
