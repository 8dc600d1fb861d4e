from datetime import date

import pytest

from forecast_tracker import database, spaces
from forecast_tracker.core.models import Frequency, RuleKind


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "forecast.db")


@pytest.fixture
def household(db_path):
    """A space owned by alice with one checking account and a Rent category."""
    space = spaces.create_space(db_path, "Household", owner_id="alice")
    account = spaces.create_account(db_path, space.id, "Checking", "checking", 1000.0)
    category = spaces.create_category(db_path, space.id, "Rent", "#ff0000")
    return {"space": space, "account": account, "category": category}


def seed_rule(
    db_path,
    space_id,
    account_id,
    *,
    kind=RuleKind.EXPENSE,
    title="Rent",
    amount=100.0,
    frequency=Frequency.MONTHLY,
    start_date=date(2025, 1, 15),
    next_due_date=None,
    category_id=None,
    notes=None,
    end_date=None,
    is_active=True,
):
    """Insert a rule directly so tests can pin its next due date."""
    with database.open_db(db_path) as conn:
        with database.atomic(conn):
            return database.insert_rule(
                conn,
                space_id=space_id,
                kind=kind,
                account_id=account_id,
                title=title,
                amount=amount,
                frequency=frequency,
                start_date=start_date,
                next_due_date=next_due_date or start_date,
                category_id=category_id,
                notes=notes,
                end_date=end_date,
                is_active=is_active,
                created_by="alice",
            )


@pytest.fixture
def make_rule(db_path):
    def _make(space_id, account_id, **kwargs):
        return seed_rule(db_path, space_id, account_id, **kwargs)

    return _make
