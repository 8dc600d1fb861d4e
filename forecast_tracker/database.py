import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from forecast_tracker.core.models import (
    Account,
    Category,
    Frequency,
    LedgerEntry,
    RecurringRule,
    RuleKind,
    RuleSummary,
    Space,
)

_ENTRY_TABLES: Dict[RuleKind, str] = {
    RuleKind.EXPENSE: "expenses",
    RuleKind.INCOME: "incomes",
}

_RULE_COLUMNS = {
    "title",
    "amount",
    "category_id",
    "notes",
    "frequency",
    "start_date",
    "end_date",
    "next_due_date",
    "is_active",
}

_ENTRY_COLUMNS = {"account_id", "category_id", "title", "amount", "date", "notes"}


def _init_db(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS spaces (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            name        TEXT NOT NULL,
            owner_id    TEXT NOT NULL,
            currency    TEXT NOT NULL DEFAULT 'USD',
            created_at  TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS space_members (
            space_id    INTEGER NOT NULL REFERENCES spaces(id) ON DELETE CASCADE,
            user_id     TEXT NOT NULL,
            role        TEXT NOT NULL DEFAULT 'member' CHECK(role IN ('owner', 'member')),
            joined_at   TEXT NOT NULL,
            PRIMARY KEY (space_id, user_id)
        );

        CREATE TABLE IF NOT EXISTS accounts (
            id                INTEGER PRIMARY KEY AUTOINCREMENT,
            space_id          INTEGER NOT NULL REFERENCES spaces(id) ON DELETE CASCADE,
            name              TEXT NOT NULL,
            type              TEXT NOT NULL DEFAULT 'checking',
            starting_balance  REAL NOT NULL DEFAULT 0.0,
            current_balance   REAL NOT NULL DEFAULT 0.0,
            created_at        TEXT NOT NULL,
            updated_at        TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS categories (
            id        INTEGER PRIMARY KEY AUTOINCREMENT,
            space_id  INTEGER NOT NULL REFERENCES spaces(id) ON DELETE CASCADE,
            name      TEXT NOT NULL,
            color     TEXT,
            UNIQUE(space_id, name)
        );

        CREATE TABLE IF NOT EXISTS recurring_rules (
            id                   INTEGER PRIMARY KEY AUTOINCREMENT,
            space_id             INTEGER NOT NULL REFERENCES spaces(id) ON DELETE CASCADE,
            kind                 TEXT NOT NULL CHECK(kind IN ('expense', 'income')),
            account_id           INTEGER NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            category_id          INTEGER REFERENCES categories(id) ON DELETE SET NULL,
            title                TEXT NOT NULL,
            amount               REAL NOT NULL CHECK(amount > 0),
            notes                TEXT,
            frequency            TEXT NOT NULL,
            start_date           TEXT NOT NULL,
            end_date             TEXT,
            next_due_date        TEXT NOT NULL,
            last_generated_date  TEXT,
            is_active            INTEGER NOT NULL DEFAULT 1,
            created_by           TEXT NOT NULL DEFAULT '',
            created_at           TEXT NOT NULL,
            updated_at           TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS expenses (
            id           INTEGER PRIMARY KEY AUTOINCREMENT,
            space_id     INTEGER NOT NULL REFERENCES spaces(id) ON DELETE CASCADE,
            account_id   INTEGER NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            category_id  INTEGER NOT NULL REFERENCES categories(id),
            title        TEXT NOT NULL,
            amount       REAL NOT NULL CHECK(amount > 0),
            date         TEXT NOT NULL,
            notes        TEXT,
            added_by     TEXT NOT NULL DEFAULT '',
            created_at   TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS incomes (
            id           INTEGER PRIMARY KEY AUTOINCREMENT,
            space_id     INTEGER NOT NULL REFERENCES spaces(id) ON DELETE CASCADE,
            account_id   INTEGER NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            title        TEXT NOT NULL,
            amount       REAL NOT NULL CHECK(amount > 0),
            date         TEXT NOT NULL,
            notes        TEXT,
            added_by     TEXT NOT NULL DEFAULT '',
            created_at   TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_rules_due ON recurring_rules(space_id, kind, is_active, next_due_date);
        CREATE INDEX IF NOT EXISTS idx_expenses_account ON expenses(account_id);
        CREATE INDEX IF NOT EXISTS idx_incomes_account ON incomes(account_id);
        """
    )
    conn.commit()


def connect(db_path: str) -> sqlite3.Connection:
    """Open ``db_path``, creating the parent directory and schema if needed."""
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    _init_db(conn)
    return conn


def init_db(db_path: str) -> None:
    conn = connect(db_path)
    conn.close()


@contextmanager
def open_db(db_path: str) -> Iterator[sqlite3.Connection]:
    conn = connect(db_path)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def atomic(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the block as one write transaction; roll back on any exception.

    ``BEGIN IMMEDIATE`` takes the write lock up front so two writers on the
    same database are serialized instead of failing at commit time.
    """
    conn.execute("BEGIN IMMEDIATE")
    with conn:
        yield conn


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


# ---------------------------------------------------------------------------
# Spaces and membership


def _row_to_space(row: sqlite3.Row) -> Space:
    return Space(
        id=row["id"],
        name=row["name"],
        owner_id=row["owner_id"],
        currency=row["currency"],
        created_at=row["created_at"],
    )


def insert_space(conn: sqlite3.Connection, name: str, owner_id: str, currency: str = "USD") -> Space:
    """Create a space and register its owner as a member (caller commits)."""
    now = utcnow().isoformat()
    cursor = conn.execute(
        "INSERT INTO spaces (name, owner_id, currency, created_at) VALUES (?, ?, ?, ?)",
        (name, owner_id, currency, now),
    )
    conn.execute(
        "INSERT INTO space_members (space_id, user_id, role, joined_at) VALUES (?, ?, 'owner', ?)",
        (cursor.lastrowid, owner_id, now),
    )
    return get_space(conn, cursor.lastrowid)


def get_space(conn: sqlite3.Connection, space_id: int) -> Optional[Space]:
    row = conn.execute("SELECT * FROM spaces WHERE id = ?", (space_id,)).fetchone()
    return _row_to_space(row) if row else None


def list_spaces_for_user(conn: sqlite3.Connection, user_id: str) -> List[Space]:
    rows = conn.execute(
        """
        SELECT s.* FROM spaces s
        JOIN space_members m ON m.space_id = s.id
        WHERE m.user_id = ?
        ORDER BY s.name
        """,
        (user_id,),
    ).fetchall()
    return [_row_to_space(r) for r in rows]


def add_member(conn: sqlite3.Connection, space_id: int, user_id: str, role: str = "member") -> None:
    conn.execute(
        """
        INSERT INTO space_members (space_id, user_id, role, joined_at)
        VALUES (?, ?, ?, ?)
        """,
        (space_id, user_id, role, utcnow().isoformat()),
    )


def is_member(conn: sqlite3.Connection, space_id: int, user_id: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM space_members WHERE space_id = ? AND user_id = ?",
        (space_id, user_id),
    ).fetchone()
    return row is not None


# ---------------------------------------------------------------------------
# Accounts


def _row_to_account(row: sqlite3.Row) -> Account:
    return Account(
        id=row["id"],
        space_id=row["space_id"],
        name=row["name"],
        type=row["type"],
        starting_balance=float(row["starting_balance"]),
        current_balance=float(row["current_balance"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def insert_account(
    conn: sqlite3.Connection,
    space_id: int,
    name: str,
    type_: str = "checking",
    starting_balance: float = 0.0,
) -> Account:
    now = utcnow().isoformat()
    cursor = conn.execute(
        """
        INSERT INTO accounts (space_id, name, type, starting_balance, current_balance, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (space_id, name, type_, float(starting_balance), float(starting_balance), now, now),
    )
    return get_account(conn, space_id, cursor.lastrowid)


def get_account(conn: sqlite3.Connection, space_id: int, account_id: int) -> Optional[Account]:
    row = conn.execute(
        "SELECT * FROM accounts WHERE id = ? AND space_id = ?",
        (account_id, space_id),
    ).fetchone()
    return _row_to_account(row) if row else None


def list_accounts(conn: sqlite3.Connection, space_id: int) -> List[Account]:
    rows = conn.execute(
        "SELECT * FROM accounts WHERE space_id = ? ORDER BY name",
        (space_id,),
    ).fetchall()
    return [_row_to_account(r) for r in rows]


def adjust_balance(conn: sqlite3.Connection, account_id: int, delta: float) -> None:
    cursor = conn.execute(
        """
        UPDATE accounts
        SET current_balance = current_balance + ?, updated_at = ?
        WHERE id = ?
        """,
        (float(delta), utcnow().isoformat(), account_id),
    )
    if cursor.rowcount != 1:
        raise sqlite3.IntegrityError(f"account {account_id} does not exist")


def ledger_balance(conn: sqlite3.Connection, account_id: int) -> float:
    """Starting balance plus incomes minus expenses, from the ledger rows."""
    row = conn.execute(
        """
        SELECT a.starting_balance
               + COALESCE((SELECT SUM(amount) FROM incomes WHERE account_id = a.id), 0.0)
               - COALESCE((SELECT SUM(amount) FROM expenses WHERE account_id = a.id), 0.0)
        FROM accounts a
        WHERE a.id = ?
        """,
        (account_id,),
    ).fetchone()
    return float(row[0]) if row else 0.0


# ---------------------------------------------------------------------------
# Categories


def _row_to_category(row: sqlite3.Row) -> Category:
    return Category(id=row["id"], space_id=row["space_id"], name=row["name"], color=row["color"])


def insert_category(conn: sqlite3.Connection, space_id: int, name: str, color: str | None = None) -> Category:
    cursor = conn.execute(
        "INSERT INTO categories (space_id, name, color) VALUES (?, ?, ?)",
        (space_id, name, color),
    )
    return get_category(conn, space_id, cursor.lastrowid)


def get_category(conn: sqlite3.Connection, space_id: int, category_id: int) -> Optional[Category]:
    row = conn.execute(
        "SELECT * FROM categories WHERE id = ? AND space_id = ?",
        (category_id, space_id),
    ).fetchone()
    return _row_to_category(row) if row else None


def category_exists(conn: sqlite3.Connection, space_id: int, category_id: int) -> bool:
    return get_category(conn, space_id, category_id) is not None


def list_categories(conn: sqlite3.Connection, space_id: int) -> List[Category]:
    rows = conn.execute(
        "SELECT * FROM categories WHERE space_id = ? ORDER BY name",
        (space_id,),
    ).fetchall()
    return [_row_to_category(r) for r in rows]


# ---------------------------------------------------------------------------
# Recurring rules


def _row_to_rule(row: sqlite3.Row) -> RecurringRule:
    return RecurringRule(
        id=row["id"],
        space_id=row["space_id"],
        kind=RuleKind(row["kind"]),
        account_id=row["account_id"],
        title=row["title"],
        amount=float(row["amount"]),
        frequency=Frequency(row["frequency"]),
        start_date=_parse_date(row["start_date"]),
        next_due_date=_parse_date(row["next_due_date"]),
        is_active=bool(row["is_active"]),
        category_id=row["category_id"],
        notes=row["notes"],
        end_date=_parse_date(row["end_date"]),
        last_generated_date=_parse_datetime(row["last_generated_date"]),
        created_by=row["created_by"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def insert_rule(
    conn: sqlite3.Connection,
    space_id: int,
    kind: RuleKind,
    account_id: int,
    title: str,
    amount: float,
    frequency: Frequency,
    start_date: date,
    next_due_date: date,
    category_id: int | None = None,
    notes: str | None = None,
    end_date: date | None = None,
    is_active: bool = True,
    created_by: str = "",
) -> RecurringRule:
    now = utcnow().isoformat()
    cursor = conn.execute(
        """
        INSERT INTO recurring_rules
        (space_id, kind, account_id, category_id, title, amount, notes, frequency,
         start_date, end_date, next_due_date, is_active, created_by, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            space_id,
            _to_db(kind),
            account_id,
            category_id,
            title,
            float(amount),
            notes,
            _to_db(frequency),
            _to_db(start_date),
            _to_db(end_date),
            _to_db(next_due_date),
            _to_db(is_active),
            created_by,
            now,
            now,
        ),
    )
    return get_rule(conn, space_id, cursor.lastrowid, kind)


def get_rule(conn: sqlite3.Connection, space_id: int, rule_id: int, kind: RuleKind) -> Optional[RecurringRule]:
    row = conn.execute(
        "SELECT * FROM recurring_rules WHERE id = ? AND space_id = ? AND kind = ?",
        (rule_id, space_id, _to_db(kind)),
    ).fetchone()
    return _row_to_rule(row) if row else None


def list_rules(conn: sqlite3.Connection, space_id: int, kind: RuleKind) -> List[RecurringRule]:
    rows = conn.execute(
        """
        SELECT * FROM recurring_rules
        WHERE space_id = ? AND kind = ?
        ORDER BY next_due_date, id
        """,
        (space_id, _to_db(kind)),
    ).fetchall()
    return [_row_to_rule(r) for r in rows]


def list_due_rules(
    conn: sqlite3.Connection,
    kind: RuleKind,
    as_of: date,
    space_id: int | None = None,
) -> List[RecurringRule]:
    """Active rules of ``kind`` whose next due date is on or before ``as_of``."""
    query = """
        SELECT * FROM recurring_rules
        WHERE kind = ? AND is_active = 1 AND next_due_date <= ?
    """
    params: list = [_to_db(kind), as_of.isoformat()]
    if space_id is not None:
        query += " AND space_id = ?"
        params.append(space_id)
    query += " ORDER BY next_due_date, id"
    rows = conn.execute(query, params).fetchall()
    return [_row_to_rule(r) for r in rows]


def due_rule_summaries(
    conn: sqlite3.Connection,
    space_id: int,
    kind: RuleKind,
    as_of: date,
) -> List[RuleSummary]:
    rows = conn.execute(
        """
        SELECT r.id, r.title, r.amount, r.next_due_date, r.frequency,
               a.name AS account_name,
               c.name AS category_name
        FROM recurring_rules r
        JOIN accounts a ON a.id = r.account_id
        LEFT JOIN categories c ON c.id = r.category_id
        WHERE r.space_id = ? AND r.kind = ? AND r.is_active = 1 AND r.next_due_date <= ?
        ORDER BY r.next_due_date, r.id
        """,
        (space_id, _to_db(kind), as_of.isoformat()),
    ).fetchall()
    return [
        RuleSummary(
            id=row["id"],
            title=row["title"],
            amount=float(row["amount"]),
            account_name=row["account_name"],
            next_due_date=_parse_date(row["next_due_date"]),
            frequency=Frequency(row["frequency"]),
            category_name=row["category_name"] if kind is RuleKind.EXPENSE else None,
        )
        for row in rows
    ]


def update_rule_fields(conn: sqlite3.Connection, rule_id: int, fields: Dict[str, object]) -> None:
    unknown = set(fields) - _RULE_COLUMNS
    if unknown:
        raise ValueError(f"Unknown recurring rule column(s): {sorted(unknown)}")
    if not fields:
        return
    assignments = ", ".join(f"{name} = ?" for name in fields)
    params = [_to_db(value) for value in fields.values()]
    params.extend([utcnow().isoformat(), rule_id])
    conn.execute(
        f"UPDATE recurring_rules SET {assignments}, updated_at = ? WHERE id = ?",
        params,
    )


def mark_rule_generated(
    conn: sqlite3.Connection,
    rule_id: int,
    generated_at: datetime,
    next_due_date: date,
) -> None:
    conn.execute(
        """
        UPDATE recurring_rules
        SET last_generated_date = ?, next_due_date = ?, updated_at = ?
        WHERE id = ?
        """,
        (generated_at.isoformat(), next_due_date.isoformat(), generated_at.isoformat(), rule_id),
    )


def delete_rule(conn: sqlite3.Connection, rule_id: int) -> None:
    conn.execute("DELETE FROM recurring_rules WHERE id = ?", (rule_id,))


# ---------------------------------------------------------------------------
# Ledger entries (expenses and incomes)


def _row_to_entry(row: sqlite3.Row, kind: RuleKind) -> LedgerEntry:
    return LedgerEntry(
        id=row["id"],
        space_id=row["space_id"],
        kind=kind,
        account_id=row["account_id"],
        title=row["title"],
        amount=float(row["amount"]),
        date=_parse_date(row["date"]),
        category_id=row["category_id"] if "category_id" in row.keys() else None,
        notes=row["notes"],
        added_by=row["added_by"],
        created_at=row["created_at"],
    )


def insert_expense(
    conn: sqlite3.Connection,
    space_id: int,
    account_id: int,
    category_id: int,
    title: str,
    amount: float,
    date_: date,
    notes: str | None = None,
    added_by: str = "",
) -> int:
    cursor = conn.execute(
        """
        INSERT INTO expenses (space_id, account_id, category_id, title, amount, date, notes, added_by, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (space_id, account_id, category_id, title, float(amount), date_.isoformat(), notes, added_by,
         utcnow().isoformat()),
    )
    return cursor.lastrowid


def insert_income(
    conn: sqlite3.Connection,
    space_id: int,
    account_id: int,
    title: str,
    amount: float,
    date_: date,
    notes: str | None = None,
    added_by: str = "",
) -> int:
    cursor = conn.execute(
        """
        INSERT INTO incomes (space_id, account_id, title, amount, date, notes, added_by, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (space_id, account_id, title, float(amount), date_.isoformat(), notes, added_by, utcnow().isoformat()),
    )
    return cursor.lastrowid


def get_entry(conn: sqlite3.Connection, space_id: int, kind: RuleKind, entry_id: int) -> Optional[LedgerEntry]:
    table = _ENTRY_TABLES[kind]
    row = conn.execute(
        f"SELECT * FROM {table} WHERE id = ? AND space_id = ?",
        (entry_id, space_id),
    ).fetchone()
    return _row_to_entry(row, kind) if row else None


def list_entries(
    conn: sqlite3.Connection,
    space_id: int,
    kind: RuleKind,
    start_date: date | None = None,
    end_date: date | None = None,
    account_id: int | None = None,
) -> List[LedgerEntry]:
    table = _ENTRY_TABLES[kind]
    conditions = ["space_id = ?"]
    params: list = [space_id]
    if start_date:
        conditions.append("date >= ?")
        params.append(start_date.isoformat())
    if end_date:
        conditions.append("date <= ?")
        params.append(end_date.isoformat())
    if account_id is not None:
        conditions.append("account_id = ?")
        params.append(account_id)
    rows = conn.execute(
        f"SELECT * FROM {table} WHERE {' AND '.join(conditions)} ORDER BY date, id",
        params,
    ).fetchall()
    return [_row_to_entry(r, kind) for r in rows]


def update_entry_fields(conn: sqlite3.Connection, kind: RuleKind, entry_id: int, fields: Dict[str, object]) -> None:
    unknown = set(fields) - _ENTRY_COLUMNS
    if kind is RuleKind.INCOME:
        unknown |= {"category_id"} & set(fields)
    if unknown:
        raise ValueError(f"Unknown {kind.value} column(s): {sorted(unknown)}")
    if not fields:
        return
    assignments = ", ".join(f"{name} = ?" for name in fields)
    params = [_to_db(value) for value in fields.values()]
    params.append(entry_id)
    conn.execute(f"UPDATE {_ENTRY_TABLES[kind]} SET {assignments} WHERE id = ?", params)


def delete_entry(conn: sqlite3.Connection, kind: RuleKind, entry_id: int) -> None:
    conn.execute(f"DELETE FROM {_ENTRY_TABLES[kind]} WHERE id = ?", (entry_id,))


def count_entries(conn: sqlite3.Connection, kind: RuleKind) -> int:
    row = conn.execute(f"SELECT COUNT(*) FROM {_ENTRY_TABLES[kind]}").fetchone()
    return int(row[0])
