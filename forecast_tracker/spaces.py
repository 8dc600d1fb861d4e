# forecast_tracker/spaces.py
from __future__ import annotations

import logging
import math
import sqlite3
from typing import List

from forecast_tracker import database
from forecast_tracker.core.errors import Forbidden, NotFound, ValidationError
from forecast_tracker.core.models import ACCOUNT_TYPES, SPACE_ROLES, Account, Category, Space

logger = logging.getLogger(__name__)


def _clean_name(value, what: str, max_length: int = 100) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{what} name is required.")
    name = value.strip()
    if len(name) > max_length:
        raise ValidationError(f"{what} name must be at most {max_length} characters.")
    return name


def create_space(db_path: str, name: str, owner_id: str, currency: str = "USD") -> Space:
    name = _clean_name(name, "Space")
    currency = (currency or "").strip().upper()
    if len(currency) != 3 or not currency.isalpha():
        raise ValidationError(f"Invalid currency code: '{currency}'")
    with database.open_db(db_path) as conn:
        with database.atomic(conn):
            space = database.insert_space(conn, name, owner_id, currency)
    logger.info("Created space %s owned by %s", space.id, owner_id)
    return space


def list_spaces(db_path: str, user_id: str) -> List[Space]:
    with database.open_db(db_path) as conn:
        return database.list_spaces_for_user(conn, user_id)


def is_member(db_path: str, space_id: int, user_id: str) -> bool:
    with database.open_db(db_path) as conn:
        return database.is_member(conn, space_id, user_id)


def add_member(db_path: str, space_id: int, user_id: str, requested_by: str, role: str = "member") -> None:
    """Add ``user_id`` to the space. Only the space owner may do this.

    Ownership is fixed at creation, so the owner role cannot be granted here
    and existing memberships are never rewritten.
    """
    if role not in SPACE_ROLES:
        raise ValidationError(f"Invalid role '{role}'. Expected one of {', '.join(SPACE_ROLES)}.")
    if role == "owner":
        raise ValidationError("A space has a single owner; add users as members.")
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("user_id is required.")
    user_id = user_id.strip()
    with database.open_db(db_path) as conn:
        try:
            with database.atomic(conn):
                space = database.get_space(conn, space_id)
                if space is None:
                    raise NotFound(f"Space {space_id} not found")
                if space.owner_id != requested_by:
                    raise Forbidden("Only space owners can add members")
                database.add_member(conn, space_id, user_id, role)
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"User '{user_id}' is already a member of this space.") from exc
    logger.info("Added %s to space %s", user_id, space_id)


def create_account(
    db_path: str,
    space_id: int,
    name: str,
    type_: str = "checking",
    starting_balance: float = 0.0,
) -> Account:
    name = _clean_name(name, "Account")
    if type_ not in ACCOUNT_TYPES:
        raise ValidationError(f"Invalid account type '{type_}'.")
    try:
        balance = float(starting_balance)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid starting balance: {starting_balance!r}") from exc
    if not math.isfinite(balance):
        raise ValidationError(f"Invalid starting balance: {starting_balance!r}")
    with database.open_db(db_path) as conn:
        with database.atomic(conn):
            if database.get_space(conn, space_id) is None:
                raise NotFound(f"Space {space_id} not found")
            return database.insert_account(conn, space_id, name, type_, balance)


def get_account(db_path: str, space_id: int, account_id: int) -> Account:
    with database.open_db(db_path) as conn:
        account = database.get_account(conn, space_id, account_id)
    if account is None:
        raise NotFound(f"Account {account_id} not found in space {space_id}")
    return account


def list_accounts(db_path: str, space_id: int) -> List[Account]:
    with database.open_db(db_path) as conn:
        return database.list_accounts(conn, space_id)


def create_category(db_path: str, space_id: int, name: str, color: str | None = None) -> Category:
    name = _clean_name(name, "Category")
    if color is not None and (len(color) != 7 or not color.startswith("#")):
        raise ValidationError(f"Invalid color '{color}'. Expected #RRGGBB.")
    with database.open_db(db_path) as conn:
        try:
            with database.atomic(conn):
                if database.get_space(conn, space_id) is None:
                    raise NotFound(f"Space {space_id} not found")
                return database.insert_category(conn, space_id, name, color)
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"Category '{name}' already exists in this space.") from exc


def list_categories(db_path: str, space_id: int) -> List[Category]:
    with database.open_db(db_path) as conn:
        return database.list_categories(conn, space_id)
