# forecast_tracker/core/models.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum


class Frequency(str, Enum):
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    YEARLY = "Yearly"


class RuleKind(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"


ACCOUNT_TYPES = ("checking", "savings", "credit_card", "cash", "investment", "loan")
SPACE_ROLES = ("owner", "member")


@dataclass
class Space:
    id: int
    name: str
    owner_id: str
    currency: str = "USD"
    created_at: str = ""


@dataclass
class Account:
    id: int
    space_id: int
    name: str
    type: str = "checking"
    starting_balance: float = 0.0
    current_balance: float = 0.0
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Category:
    id: int
    space_id: int
    name: str
    color: str | None = None


@dataclass
class RecurringRule:
    id: int
    space_id: int
    kind: RuleKind
    account_id: int
    title: str
    amount: float
    frequency: Frequency
    start_date: date
    next_due_date: date
    is_active: bool = True
    category_id: int | None = None     # expense rules only
    notes: str | None = None
    end_date: date | None = None
    last_generated_date: datetime | None = None
    created_by: str = ""
    created_at: str = ""
    updated_at: str = ""


@dataclass
class LedgerEntry:
    """An expense or income row, manual or generated from a rule."""

    id: int
    space_id: int
    kind: RuleKind
    account_id: int
    title: str
    amount: float
    date: date
    category_id: int | None = None
    notes: str | None = None
    added_by: str = ""
    created_at: str = ""


@dataclass
class RuleSummary:
    id: int
    title: str
    amount: float
    account_name: str
    next_due_date: date
    frequency: Frequency
    category_name: str | None = None


@dataclass
class GenerationResult:
    rule_id: int
    kind: RuleKind
    transaction_id: int
    next_due_date: date
    generated_at: datetime
