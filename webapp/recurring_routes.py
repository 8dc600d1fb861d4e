from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Response

from forecast_tracker import recurring
from forecast_tracker.core.models import RuleKind
from webapp.auth import get_db_path, space_member
from webapp.schemas import (
    GenerationOut,
    RecurringRuleCreate,
    RecurringRuleOut,
    RecurringRuleUpdate,
    RuleSummaryOut,
)

_SEGMENTS = {
    RuleKind.EXPENSE: "recurring-expenses",
    RuleKind.INCOME: "recurring-incomes",
}


def build_recurring_router(kind: RuleKind) -> APIRouter:
    """Routes for one rule kind; expenses and incomes share the same shape."""
    segment = _SEGMENTS[kind]
    router = APIRouter(prefix=f"/api/spaces/{{space_id}}/{segment}", tags=[segment])

    @router.get("", response_model=List[RecurringRuleOut])
    def list_rules(space_id: int, _: str = Depends(space_member), db_path: str = Depends(get_db_path)):
        rules = recurring.list_rules(db_path, space_id, kind)
        return [RecurringRuleOut.model_validate(rule) for rule in rules]

    @router.post("", response_model=RecurringRuleOut, status_code=201)
    def create_rule(
        space_id: int,
        payload: RecurringRuleCreate,
        user_id: str = Depends(space_member),
        db_path: str = Depends(get_db_path),
    ):
        rule = recurring.create_rule(db_path, space_id, kind, created_by=user_id, **payload.model_dump())
        return RecurringRuleOut.model_validate(rule)

    @router.get("/due", response_model=List[RuleSummaryOut])
    def list_due(space_id: int, _: str = Depends(space_member), db_path: str = Depends(get_db_path)):
        due = recurring.list_due(db_path, space_id, kind)
        return [RuleSummaryOut.model_validate(item) for item in due]

    @router.get("/{rule_id}", response_model=RecurringRuleOut)
    def get_rule(
        space_id: int,
        rule_id: int,
        _: str = Depends(space_member),
        db_path: str = Depends(get_db_path),
    ):
        return RecurringRuleOut.model_validate(recurring.get_rule(db_path, space_id, rule_id, kind))

    @router.put("/{rule_id}", response_model=RecurringRuleOut)
    def update_rule(
        space_id: int,
        rule_id: int,
        payload: RecurringRuleUpdate,
        _: str = Depends(space_member),
        db_path: str = Depends(get_db_path),
    ):
        fields = payload.model_dump(exclude_unset=True)
        rule = recurring.update_rule(db_path, space_id, rule_id, kind, fields)
        return RecurringRuleOut.model_validate(rule)

    @router.delete("/{rule_id}", status_code=204)
    def delete_rule(
        space_id: int,
        rule_id: int,
        _: str = Depends(space_member),
        db_path: str = Depends(get_db_path),
    ):
        recurring.delete_rule(db_path, space_id, rule_id, kind)
        return Response(status_code=204)

    @router.post("/{rule_id}/generate", response_model=GenerationOut)
    def generate(
        space_id: int,
        rule_id: int,
        user_id: str = Depends(space_member),
        db_path: str = Depends(get_db_path),
    ):
        result = recurring.generate(db_path, space_id, rule_id, kind, user_id=user_id)
        return GenerationOut(
            message=f"{kind.value.capitalize()} generated successfully",
            rule_id=result.rule_id,
            kind=result.kind,
            transaction_id=result.transaction_id,
            next_due_date=result.next_due_date,
            generated_at=result.generated_at,
        )

    return router
