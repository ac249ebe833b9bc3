from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import get_current_shop, get_db
from app.core.entity_kinds import EntityKind
from app.models.tag_activity import TagActivity, TagUsage
from app.schemas.common import PaginationMeta
from app.schemas.tags import TagActivityListOut, TagActivityOut, TagUsageListOut, TagUsageOut

router = APIRouter(prefix="/tags", tags=["tags"])


def _pagination(*, total: int, limit: int, offset: int, count: int) -> PaginationMeta:
    return PaginationMeta(
        total=total,
        limit=limit,
        offset=offset,
        count=count,
        has_next=(offset + count) < total,
    )


@router.get(
    "/usage",
    response_model=TagUsageListOut,
    summary="List tag usage counters, most used first",
    responses=error_responses(401, 422),
)
def list_tag_usage(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    shop: str = Depends(get_current_shop),
):
    total = int(db.execute(select(func.count(TagUsage.id)).where(TagUsage.shop == shop)).scalar_one())
    rows = db.execute(
        select(TagUsage)
        .where(TagUsage.shop == shop)
        .order_by(TagUsage.count.desc(), TagUsage.tag.asc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    return TagUsageListOut(
        items=[TagUsageOut.model_validate(row) for row in rows],
        pagination=_pagination(total=total, limit=limit, offset=offset, count=len(rows)),
    )


@router.get(
    "/activity",
    response_model=TagActivityListOut,
    summary="List recent tag applications",
    responses=error_responses(401, 422),
)
def list_tag_activity(
    entity_type: EntityKind | None = Query(default=None),
    tag: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    shop: str = Depends(get_current_shop),
):
    count_stmt = select(func.count(TagActivity.id)).where(TagActivity.shop == shop)
    stmt = select(TagActivity).where(TagActivity.shop == shop)
    if entity_type:
        count_stmt = count_stmt.where(TagActivity.entity_type == entity_type.value)
        stmt = stmt.where(TagActivity.entity_type == entity_type.value)
    if tag and tag.strip():
        count_stmt = count_stmt.where(TagActivity.tag == tag.strip())
        stmt = stmt.where(TagActivity.tag == tag.strip())

    total = int(db.execute(count_stmt).scalar_one())
    rows = db.execute(
        stmt.order_by(TagActivity.applied_at.desc(), TagActivity.id.desc()).offset(offset).limit(limit)
    ).scalars().all()
    return TagActivityListOut(
        items=[TagActivityOut.model_validate(row) for row in rows],
        pagination=_pagination(total=total, limit=limit, offset=offset, count=len(rows)),
    )
