# forecast_tracker/recurring.py
from __future__ import annotations

import logging
import sqlite3
from calendar import monthrange
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, List, Mapping

from forecast_tracker import database
from forecast_tracker.core.errors import ForecastError, InvalidState, NotFound, ValidationError
from forecast_tracker.core.models import (
    Frequency,
    GenerationResult,
    RecurringRule,
    RuleKind,
    RuleSummary,
)
from forecast_tracker.utils import clean_notes, clean_title, parse_amount, parse_date

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = (
    "title",
    "amount",
    "category_id",
    "notes",
    "frequency",
    "start_date",
    "end_date",
    "is_active",
)

_FREQUENCY_ORDER = list(Frequency)


@dataclass
class BatchResult:
    generated: List[GenerationResult] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    deactivated: List[int] = field(default_factory=list)


def _add_months(original_date: date, months: int) -> date:
    month_index = original_date.month - 1 + months
    year = original_date.year + month_index // 12
    month = month_index % 12 + 1
    day = min(original_date.day, monthrange(year, month)[1])
    return date(year, month, day)


def parse_frequency(value) -> Frequency:
    """Accept a Frequency, its name in any case, or its ordinal (0=Daily..4=Yearly)."""
    if isinstance(value, Frequency):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        if 0 <= value < len(_FREQUENCY_ORDER):
            return _FREQUENCY_ORDER[value]
    elif isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return parse_frequency(int(text))
        for freq in Frequency:
            if freq.value.lower() == text.lower():
                return freq
    raise ValidationError(f"Unsupported frequency '{value}'.")


def calculate_next_due_date(base_date: date, frequency) -> date:
    """Advance ``base_date`` by one period of ``frequency``.

    Month arithmetic clamps to the last day of the target month, so
    Jan 31 + 1 month is Feb 28 (or 29) and the clamped day carries forward.
    """
    frequency = parse_frequency(frequency)
    if frequency is Frequency.DAILY:
        return base_date + timedelta(days=1)
    if frequency is Frequency.WEEKLY:
        return base_date + timedelta(days=7)
    if frequency is Frequency.MONTHLY:
        return _add_months(base_date, 1)
    if frequency is Frequency.QUARTERLY:
        return _add_months(base_date, 3)
    return _add_months(base_date, 12)


def _as_of(now) -> date:
    if now is None:
        return database.utcnow().date()
    if isinstance(now, datetime):
        return now.date()
    return now


def _check_category(conn: sqlite3.Connection, space_id: int, kind: RuleKind, category_id) -> None:
    if category_id is None:
        return
    if kind is RuleKind.INCOME:
        raise ValidationError("Recurring incomes do not take a category.")
    if not database.category_exists(conn, space_id, category_id):
        raise NotFound(f"Category {category_id} not found in space {space_id}")


def _require_rule(conn: sqlite3.Connection, space_id: int, rule_id: int, kind: RuleKind) -> RecurringRule:
    rule = database.get_rule(conn, space_id, rule_id, kind)
    if rule is None:
        raise NotFound(f"Recurring {kind.value} {rule_id} not found in space {space_id}")
    return rule


def create_rule(
    db_path: str,
    space_id: int,
    kind: RuleKind,
    *,
    account_id: int,
    title: str,
    amount,
    frequency,
    start_date,
    category_id: int | None = None,
    notes: str | None = None,
    end_date=None,
    created_by: str = "",
) -> RecurringRule:
    kind = RuleKind(kind)
    title = clean_title(title)
    amount = parse_amount(amount)
    freq = parse_frequency(frequency)
    start = parse_date(start_date, "start_date")
    if start is None:
        raise ValidationError("start_date is required.")
    end = parse_date(end_date, "end_date")
    if end is not None and end < start:
        raise ValidationError("end_date must be on or after start_date.")
    notes = clean_notes(notes)

    with database.open_db(db_path) as conn:
        with database.atomic(conn):
            if database.get_account(conn, space_id, account_id) is None:
                raise NotFound(f"Account {account_id} not found in space {space_id}")
            _check_category(conn, space_id, kind, category_id)
            rule = database.insert_rule(
                conn,
                space_id=space_id,
                kind=kind,
                account_id=account_id,
                title=title,
                amount=amount,
                frequency=freq,
                start_date=start,
                next_due_date=calculate_next_due_date(start, freq),
                category_id=category_id,
                notes=notes,
                end_date=end,
                created_by=created_by,
            )
    logger.info("Created recurring %s %s in space %s", kind.value, rule.id, space_id)
    return rule


def get_rule(db_path: str, space_id: int, rule_id: int, kind: RuleKind) -> RecurringRule:
    with database.open_db(db_path) as conn:
        return _require_rule(conn, space_id, rule_id, RuleKind(kind))


def list_rules(db_path: str, space_id: int, kind: RuleKind) -> List[RecurringRule]:
    with database.open_db(db_path) as conn:
        return database.list_rules(conn, space_id, RuleKind(kind))


def update_rule(
    db_path: str,
    space_id: int,
    rule_id: int,
    kind: RuleKind,
    fields: Mapping[str, object],
) -> RecurringRule:
    """Apply a partial edit to a rule.

    Only a change of ``frequency`` or ``start_date`` moves the schedule:
    ``next_due_date`` is then recomputed from the (new) start date. Edits to
    amount, title, notes, category, end date or the active flag leave it
    where it is.
    """
    kind = RuleKind(kind)
    unknown = set(fields) - set(_UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")

    changes: Dict[str, object] = {}
    if "title" in fields:
        changes["title"] = clean_title(fields["title"])
    if "amount" in fields:
        changes["amount"] = parse_amount(fields["amount"])
    if "notes" in fields:
        changes["notes"] = clean_notes(fields["notes"])
    if "frequency" in fields:
        changes["frequency"] = parse_frequency(fields["frequency"])
    if "start_date" in fields:
        start = parse_date(fields["start_date"], "start_date")
        if start is None:
            raise ValidationError("start_date cannot be cleared.")
        changes["start_date"] = start
    if "end_date" in fields:
        changes["end_date"] = parse_date(fields["end_date"], "end_date")
    if "is_active" in fields:
        if not isinstance(fields["is_active"], bool):
            raise ValidationError(f"Invalid is_active: {fields['is_active']!r}")
        changes["is_active"] = fields["is_active"]
    if "category_id" in fields:
        changes["category_id"] = fields["category_id"]

    with database.open_db(db_path) as conn:
        with database.atomic(conn):
            rule = _require_rule(conn, space_id, rule_id, kind)
            if "category_id" in changes:
                _check_category(conn, space_id, kind, changes["category_id"])

            new_frequency = changes.get("frequency", rule.frequency)
            new_start = changes.get("start_date", rule.start_date)
            new_end = changes.get("end_date", rule.end_date)
            if new_end is not None and new_end < new_start:
                raise ValidationError("end_date must be on or after start_date.")

            if new_frequency != rule.frequency or new_start != rule.start_date:
                changes["next_due_date"] = calculate_next_due_date(new_start, new_frequency)

            database.update_rule_fields(conn, rule.id, changes)
            updated = database.get_rule(conn, space_id, rule.id, kind)

    if "next_due_date" in changes:
        logger.info(
            "Rescheduled recurring %s %s: next due %s",
            kind.value,
            rule_id,
            changes["next_due_date"],
        )
    return updated


def delete_rule(db_path: str, space_id: int, rule_id: int, kind: RuleKind) -> None:
    kind = RuleKind(kind)
    with database.open_db(db_path) as conn:
        with database.atomic(conn):
            rule = _require_rule(conn, space_id, rule_id, kind)
            database.delete_rule(conn, rule.id)
    logger.info("Deleted recurring %s %s", kind.value, rule_id)


def list_due(db_path: str, space_id: int, kind: RuleKind, now=None) -> List[RuleSummary]:
    """Active rules of the space that are due at ``now``, oldest due date first."""
    with database.open_db(db_path) as conn:
        return database.due_rule_summaries(conn, space_id, RuleKind(kind), _as_of(now))


def _generated_notes(rule: RecurringRule, automatic: bool = False) -> str:
    prefix = "Auto-generated" if automatic else "Generated"
    origin = f"{prefix} from recurring {rule.kind.value}"
    return f"{origin}: {rule.notes}" if rule.notes else origin


def _fire(
    conn: sqlite3.Connection,
    rule: RecurringRule,
    user_id: str,
    now: datetime,
    automatic: bool = False,
) -> GenerationResult:
    """Materialize one occurrence of ``rule``. Must run inside ``database.atomic``."""
    if not rule.is_active:
        raise InvalidState(f"Cannot generate {rule.kind.value} from inactive recurring {rule.kind.value}")
    if rule.kind is RuleKind.EXPENSE and rule.category_id is None:
        raise InvalidState("Cannot generate expense without a category")

    account = database.get_account(conn, rule.space_id, rule.account_id)
    if account is None:
        raise NotFound(f"Account {rule.account_id} not found in space {rule.space_id}")

    if rule.kind is RuleKind.EXPENSE:
        transaction_id = database.insert_expense(
            conn,
            space_id=rule.space_id,
            account_id=account.id,
            category_id=rule.category_id,
            title=rule.title,
            amount=rule.amount,
            date_=now.date(),
            notes=_generated_notes(rule, automatic),
            added_by=user_id,
        )
        delta = -rule.amount
    else:
        transaction_id = database.insert_income(
            conn,
            space_id=rule.space_id,
            account_id=account.id,
            title=rule.title,
            amount=rule.amount,
            date_=now.date(),
            notes=_generated_notes(rule, automatic),
            added_by=user_id,
        )
        delta = rule.amount

    database.adjust_balance(conn, account.id, delta)
    next_due = calculate_next_due_date(rule.next_due_date, rule.frequency)
    database.mark_rule_generated(conn, rule.id, now, next_due)
    return GenerationResult(
        rule_id=rule.id,
        kind=rule.kind,
        transaction_id=transaction_id,
        next_due_date=next_due,
        generated_at=now,
    )


def generate(
    db_path: str,
    space_id: int,
    rule_id: int,
    kind: RuleKind,
    user_id: str = "",
    now: datetime | None = None,
) -> GenerationResult:
    """Create the rule's transaction, move the balance and advance the due date.

    All writes commit together; any failure leaves the rule, the account and
    the ledger exactly as they were.
    """
    kind = RuleKind(kind)
    now = now or database.utcnow()
    with database.open_db(db_path) as conn:
        with database.atomic(conn):
            rule = _require_rule(conn, space_id, rule_id, kind)
            result = _fire(conn, rule, user_id, now)
    logger.info(
        "Generated %s %s from recurring %s %s; next due %s",
        kind.value,
        result.transaction_id,
        kind.value,
        rule_id,
        result.next_due_date,
    )
    return result


def generate_due(db_path: str, space_id: int | None = None, now: datetime | None = None) -> BatchResult:
    """Fire every due rule once, for one space or all of them.

    Expense rules without a category are skipped and rules past their end
    date are deactivated. Each rule commits in its own transaction.
    """
    now = now or database.utcnow()
    as_of = now.date()
    result = BatchResult()
    with database.open_db(db_path) as conn:
        for kind in RuleKind:
            for due in database.list_due_rules(conn, kind, as_of, space_id):
                if kind is RuleKind.EXPENSE and due.category_id is None:
                    logger.warning("Skipping recurring expense %s - no category set", due.id)
                    result.skipped.append(due.id)
                    continue
                try:
                    with database.atomic(conn):
                        rule = database.get_rule(conn, due.space_id, due.id, kind)
                        if rule is None or not rule.is_active or rule.next_due_date > as_of:
                            continue
                        if rule.end_date is not None and as_of > rule.end_date:
                            database.update_rule_fields(conn, rule.id, {"is_active": False})
                            result.deactivated.append(rule.id)
                            logger.info("Deactivating expired recurring %s %s", kind.value, rule.id)
                            continue
                        generated = _fire(conn, rule, rule.created_by, now, automatic=True)
                except ForecastError as exc:
                    logger.error("Failed to generate from recurring %s %s: %s", kind.value, due.id, exc)
                    result.skipped.append(due.id)
                    continue
                result.generated.append(generated)
                logger.info(
                    "Generated %s %s from recurring %s %s",
                    kind.value,
                    generated.transaction_id,
                    kind.value,
                    due.id,
                )
    logger.info(
        "Processed due recurring rules: %d generated, %d skipped, %d deactivated",
        len(result.generated),
        len(result.skipped),
        len(result.deactivated),
    )
    return result
