from __future__ import annotations

import anyio
from mcp.server.fastmcp import FastMCP

from dataclasses import asdict
from datetime import date, datetime
from enum import Enum

from pathlib import Path

from forecast_tracker import recurring
from forecast_tracker.core.models import RuleKind

server = FastMCP(name="Forecast", instructions="Inspect and fire recurring budget rules")


def _require_db(db_path: str) -> None:
    if not Path(db_path).exists():
        raise FileNotFoundError(f"Database not found: {db_path}")


def _jsonable(data: dict) -> dict:
    out = {}
    for key, value in data.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, (date, datetime)):
            value = value.isoformat()
        out[key] = value
    return out


@server.tool(
    name="list_due_recurring", description="List recurring expenses or incomes that are due today"
)
async def list_due_recurring(db_path: str, space_id: int, kind: str = "expense") -> list[dict]:
    """Return the due rules of ``space_id``, oldest due date first.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.
    kind:
        ``expense`` or ``income``.
    """
    rule_kind = RuleKind(kind)
    _require_db(db_path)

    def _run() -> list[dict]:
        return [_jsonable(asdict(s)) for s in recurring.list_due(db_path, space_id, rule_kind)]

    return await anyio.to_thread.run_sync(_run)


@server.tool(
    name="generate_recurring", description="Generate the transaction for one recurring rule"
)
async def generate_recurring(
    db_path: str,
    space_id: int,
    rule_id: int,
    kind: str = "expense",
    user_id: str = "",
) -> dict:
    rule_kind = RuleKind(kind)
    _require_db(db_path)

    def _run() -> dict:
        result = recurring.generate(db_path, space_id, rule_id, rule_kind, user_id=user_id)
        return _jsonable(asdict(result))

    return await anyio.to_thread.run_sync(_run)


@server.tool(
    name="generate_all_due", description="Generate every due recurring rule, optionally for one space"
)
async def generate_all_due(db_path: str, space_id: int | None = None) -> dict:
    _require_db(db_path)

    def _run() -> dict:
        result = recurring.generate_due(db_path, space_id)
        return {
            "generated": [_jsonable(asdict(g)) for g in result.generated],
            "skipped": result.skipped,
            "deactivated": result.deactivated,
        }

    return await anyio.to_thread.run_sync(_run)


def main() -> None:
    server.run()


if __name__ == "__main__":
    main()
