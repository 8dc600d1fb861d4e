from __future__ import annotations

import datetime as dt
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from forecast_tracker.core.models import Frequency, RuleKind


class _FromModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# -----------------------------------------------------------------------------
# Recurring rules
# -----------------------------------------------------------------------------


class RecurringRuleCreate(BaseModel):
    account_id: int
    title: str
    amount: float
    frequency: Union[int, str]
    start_date: str
    end_date: Optional[str] = None
    category_id: Optional[int] = None
    notes: Optional[str] = None


class RecurringRuleUpdate(BaseModel):
    """Every field is optional; only the ones sent are applied."""

    title: Optional[str] = None
    amount: Optional[float] = None
    frequency: Optional[Union[int, str]] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    category_id: Optional[int] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class RecurringRuleOut(_FromModel):
    id: int
    space_id: int
    kind: RuleKind
    account_id: int
    category_id: Optional[int] = None
    title: str
    amount: float
    notes: Optional[str] = None
    frequency: Frequency
    start_date: dt.date
    end_date: Optional[dt.date] = None
    next_due_date: dt.date
    last_generated_date: Optional[dt.datetime] = None
    is_active: bool
    created_by: str
    created_at: str
    updated_at: str


class RuleSummaryOut(_FromModel):
    id: int
    title: str
    amount: float
    account_name: str
    category_name: Optional[str] = None
    next_due_date: dt.date
    frequency: Frequency


class GenerationOut(_FromModel):
    message: str
    rule_id: int
    kind: RuleKind
    transaction_id: int
    next_due_date: dt.date
    generated_at: dt.datetime


# -----------------------------------------------------------------------------
# Spaces, accounts, categories
# -----------------------------------------------------------------------------


class SpaceCreate(BaseModel):
    name: str
    currency: str = "USD"


class SpaceOut(_FromModel):
    id: int
    name: str
    owner_id: str
    currency: str
    created_at: str


class MemberCreate(BaseModel):
    user_id: str
    role: str = "member"


class AccountCreate(BaseModel):
    name: str
    type: str = "checking"
    starting_balance: float = 0.0


class AccountOut(_FromModel):
    id: int
    space_id: int
    name: str
    type: str
    starting_balance: float
    current_balance: float
    created_at: str
    updated_at: str


class AccountDetailOut(AccountOut):
    ledger_balance: float
    drift: float


class CategoryCreate(BaseModel):
    name: str
    color: Optional[str] = None


class CategoryOut(_FromModel):
    id: int
    space_id: int
    name: str
    color: Optional[str] = None


# -----------------------------------------------------------------------------
# Ledger entries
# -----------------------------------------------------------------------------


class EntryCreate(BaseModel):
    account_id: int
    title: str
    amount: float
    date: str
    category_id: Optional[int] = None
    notes: Optional[str] = None


class EntryUpdate(BaseModel):
    account_id: Optional[int] = None
    title: Optional[str] = None
    amount: Optional[float] = None
    date: Optional[str] = None
    category_id: Optional[int] = None
    notes: Optional[str] = None


class EntryOut(_FromModel):
    id: int
    space_id: int
    kind: RuleKind
    account_id: int
    category_id: Optional[int] = None
    title: str
    amount: float
    date: dt.date
    notes: Optional[str] = None
    added_by: str
    created_at: str
