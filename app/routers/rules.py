from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_current_shop, get_db
from app.core.entity_kinds import EntityKind
from app.core.id_utils import generate_record_id
from app.core.observability import log_event, logger
from app.models.rule import Rule
from app.schemas.common import PaginationMeta
from app.schemas.rule import (
    ConditionCatalogOut,
    RuleCreateIn,
    RuleDeleteOut,
    RuleListOut,
    RuleOut,
)
from app.services.condition_evaluator import supported_conditions

router = APIRouter(prefix="/rules", tags=["rules"])


def _rule_or_404(db: Session, *, shop: str, rule_id: str) -> Rule:
    rule = db.execute(
        select(Rule).where(Rule.id == rule_id, Rule.shop == shop)
    ).scalar_one_or_none()
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


@router.get(
    "",
    response_model=RuleListOut,
    summary="List tagging rules",
    responses=error_responses(401, 422),
)
def list_rules(
    applies_to: EntityKind | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    shop: str = Depends(get_current_shop),
):
    count_stmt = select(func.count(Rule.id)).where(Rule.shop == shop)
    stmt = select(Rule).where(Rule.shop == shop)
    if applies_to:
        count_stmt = count_stmt.where(Rule.applies_to == applies_to.value)
        stmt = stmt.where(Rule.applies_to == applies_to.value)

    total = int(db.execute(count_stmt).scalar_one())
    rows = db.execute(
        stmt.order_by(Rule.created_at.desc(), Rule.id.desc()).offset(offset).limit(limit)
    ).scalars().all()
    count = len(rows)
    return RuleListOut(
        items=[RuleOut.model_validate(row) for row in rows],
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total,
        ),
    )


@router.get(
    "/conditions",
    response_model=list[ConditionCatalogOut],
    summary="List the conditions available per entity type",
)
def list_conditions():
    return [
        ConditionCatalogOut(applies_to=kind.value, conditions=supported_conditions(kind))
        for kind in EntityKind
    ]


@router.post(
    "",
    response_model=RuleOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create tagging rule",
    responses=error_responses(401, 422),
)
def create_rule(
    payload: RuleCreateIn,
    db: Session = Depends(get_db),
    shop: str = Depends(get_current_shop),
):
    now = datetime.now(timezone.utc)
    rule = Rule(
        id=generate_record_id(),
        shop=shop,
        name=payload.name,
        applies_to=payload.applies_to,
        condition=payload.condition,
        condition_value=payload.condition_value,
        tag=payload.tag,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(rule)
    db.commit()
    db.refresh(rule)
    log_event(
        logger,
        "rule.created",
        shop=shop,
        rule_id=rule.id,
        applies_to=rule.applies_to,
        condition=rule.condition,
    )
    return RuleOut.model_validate(rule)


@router.delete(
    "/{rule_id}",
    response_model=RuleDeleteOut,
    summary="Delete tagging rule",
    responses=error_responses(401, 404),
)
def delete_rule(
    rule_id: str,
    db: Session = Depends(get_db),
    shop: str = Depends(get_current_shop),
):
    rule = _rule_or_404(db, shop=shop, rule_id=rule_id)
    db.delete(rule)
    db.commit()
    log_event(logger, "rule.deleted", shop=shop, rule_id=rule_id)
    return RuleDeleteOut(ok=True, id=rule_id)
