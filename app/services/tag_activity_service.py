import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.entity_kinds import EntityKind
from app.core.id_utils import generate_record_id
from app.core.observability import log_event
from app.models.tag_activity import TagActivity, TagUsage
from app.services.tag_diff import AppliedTag

logger = logging.getLogger("autotag.tagging")


def _bump_usage(db: Session, *, shop: str, tag: str, now: datetime) -> TagUsage:
    usage = db.execute(
        select(TagUsage).where(TagUsage.shop == shop, TagUsage.tag == tag)
    ).scalar_one_or_none()
    if usage:
        usage.count = (usage.count or 0) + 1
        usage.last_used = now
        return usage
    usage = TagUsage(
        id=generate_record_id(),
        shop=shop,
        tag=tag,
        count=1,
        last_used=now,
    )
    db.add(usage)
    db.flush()
    return usage


def record_tag_applications(
    db: Session,
    *,
    shop: str,
    kind: EntityKind,
    entity_id: str,
    applied: Iterable[AppliedTag],
) -> int:
    """
    Append one activity row per applied tag and bump the per-tag usage counter,
    then commit. The tag write on the remote side already happened, so a
    database failure here is logged and rolled back, never raised.
    """
    items = list(applied)
    if not items:
        return 0

    now = datetime.now(timezone.utc)
    try:
        for item in items:
            db.add(
                TagActivity(
                    id=generate_record_id(),
                    shop=shop,
                    entity_type=kind.value,
                    entity_id=str(entity_id),
                    tag=item.tag,
                    rule_id=item.rule_id,
                    applied_at=now,
                )
            )
            _bump_usage(db, shop=shop, tag=item.tag, now=now)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        log_event(
            logger,
            "tag_activity.record_failed",
            level=logging.ERROR,
            shop=shop,
            entity_type=kind.value,
            entity_id=str(entity_id),
            tags=[item.tag for item in items],
            error=str(exc),
        )
        return 0
    return len(items)
