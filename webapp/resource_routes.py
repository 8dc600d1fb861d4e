from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Response

from forecast_tracker import ledger, spaces
from forecast_tracker.core.models import RuleKind
from forecast_tracker.utils import parse_date
from webapp.auth import current_user, get_db_path, space_member
from webapp.schemas import (
    AccountCreate,
    AccountDetailOut,
    AccountOut,
    CategoryCreate,
    CategoryOut,
    EntryCreate,
    EntryOut,
    EntryUpdate,
    MemberCreate,
    SpaceCreate,
    SpaceOut,
)

router = APIRouter(prefix="/api/spaces")


@router.get("", response_model=List[SpaceOut], tags=["spaces"])
def list_spaces(user_id: str = Depends(current_user), db_path: str = Depends(get_db_path)):
    return [SpaceOut.model_validate(s) for s in spaces.list_spaces(db_path, user_id)]


@router.post("", response_model=SpaceOut, status_code=201, tags=["spaces"])
def create_space(
    payload: SpaceCreate,
    user_id: str = Depends(current_user),
    db_path: str = Depends(get_db_path),
):
    space = spaces.create_space(db_path, payload.name, owner_id=user_id, currency=payload.currency)
    return SpaceOut.model_validate(space)


@router.post("/{space_id}/members", status_code=204, tags=["spaces"])
def add_member(
    space_id: int,
    payload: MemberCreate,
    user_id: str = Depends(space_member),
    db_path: str = Depends(get_db_path),
):
    spaces.add_member(db_path, space_id, payload.user_id, requested_by=user_id, role=payload.role)
    return Response(status_code=204)


@router.get("/{space_id}/accounts", response_model=List[AccountOut], tags=["accounts"])
def list_accounts(space_id: int, _: str = Depends(space_member), db_path: str = Depends(get_db_path)):
    return [AccountOut.model_validate(a) for a in spaces.list_accounts(db_path, space_id)]


@router.post("/{space_id}/accounts", response_model=AccountOut, status_code=201, tags=["accounts"])
def create_account(
    space_id: int,
    payload: AccountCreate,
    _: str = Depends(space_member),
    db_path: str = Depends(get_db_path),
):
    account = spaces.create_account(db_path, space_id, payload.name, payload.type, payload.starting_balance)
    return AccountOut.model_validate(account)


@router.get("/{space_id}/accounts/{account_id}", response_model=AccountDetailOut, tags=["accounts"])
def get_account(
    space_id: int,
    account_id: int,
    _: str = Depends(space_member),
    db_path: str = Depends(get_db_path),
):
    account = spaces.get_account(db_path, space_id, account_id)
    check = ledger.reconcile_account(db_path, space_id, account_id)
    return AccountDetailOut(
        **AccountOut.model_validate(account).model_dump(),
        ledger_balance=check.ledger_balance,
        drift=check.drift,
    )


@router.get("/{space_id}/categories", response_model=List[CategoryOut], tags=["categories"])
def list_categories(space_id: int, _: str = Depends(space_member), db_path: str = Depends(get_db_path)):
    return [CategoryOut.model_validate(c) for c in spaces.list_categories(db_path, space_id)]


@router.post("/{space_id}/categories", response_model=CategoryOut, status_code=201, tags=["categories"])
def create_category(
    space_id: int,
    payload: CategoryCreate,
    _: str = Depends(space_member),
    db_path: str = Depends(get_db_path),
):
    return CategoryOut.model_validate(spaces.create_category(db_path, space_id, payload.name, payload.color))


def build_entry_router(kind: RuleKind) -> APIRouter:
    segment = "expenses" if kind is RuleKind.EXPENSE else "incomes"
    entries = APIRouter(prefix=f"/api/spaces/{{space_id}}/{segment}", tags=[segment])

    @entries.get("", response_model=List[EntryOut])
    def list_entries(
        space_id: int,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        account_id: Optional[int] = None,
        _: str = Depends(space_member),
        db_path: str = Depends(get_db_path),
    ):
        start: date | None = parse_date(start_date, "start_date")
        end: date | None = parse_date(end_date, "end_date")
        rows = ledger.list_entries(db_path, space_id, kind, start, end, account_id)
        return [EntryOut.model_validate(row) for row in rows]

    @entries.post("", response_model=EntryOut, status_code=201)
    def create_entry(
        space_id: int,
        payload: EntryCreate,
        user_id: str = Depends(space_member),
        db_path: str = Depends(get_db_path),
    ):
        entry = ledger.record_entry(
            db_path,
            space_id,
            kind,
            account_id=payload.account_id,
            title=payload.title,
            amount=payload.amount,
            date_=payload.date,
            category_id=payload.category_id,
            notes=payload.notes,
            added_by=user_id,
        )
        return EntryOut.model_validate(entry)

    @entries.put("/{entry_id}", response_model=EntryOut)
    def update_entry(
        space_id: int,
        entry_id: int,
        payload: EntryUpdate,
        _: str = Depends(space_member),
        db_path: str = Depends(get_db_path),
    ):
        entry = ledger.update_entry(db_path, space_id, kind, entry_id, payload.model_dump(exclude_unset=True))
        return EntryOut.model_validate(entry)

    @entries.delete("/{entry_id}", status_code=204)
    def delete_entry(
        space_id: int,
        entry_id: int,
        _: str = Depends(space_member),
        db_path: str = Depends(get_db_path),
    ):
        ledger.delete_entry(db_path, space_id, kind, entry_id)
        return Response(status_code=204)

    return entries
