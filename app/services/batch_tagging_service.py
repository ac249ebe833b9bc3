import logging
import time
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.entity_kinds import EntityKind
from app.core.observability import log_event
from app.core.rate_limit import SleepFn
from app.schemas.progress import BatchProgress
from app.services.entity_tagging import apply_rules_to_snapshot
from app.services.pagination import CursorWalker
from app.services.progress_store import save_batch_state
from app.services.shopify_client import CommerceClient
from app.services.snapshots import snapshot_from_rest
from app.services.tag_rules import load_active_rules, resolve_rule_values

logger = logging.getLogger("autotag.tagging")


@dataclass(frozen=True)
class BatchResult:
    next_cursor: str | None
    processed: int
    batch_size: int
    done: bool
    failed: int = 0
    applied_tags: list[str] | None = None

    def as_progress(self) -> BatchProgress:
        return BatchProgress(
            processed=self.processed,
            batch_size=self.batch_size,
            done=self.done,
            applied_tags=self.applied_tags,
            failed=self.failed,
        )


def process_batch(
    db: Session,
    *,
    shop: str,
    kind: EntityKind,
    client: CommerceClient,
    cursor: str | None = None,
    page_size: int | None = None,
    entity_delay_seconds: float | None = None,
    sleep: SleepFn = time.sleep,
) -> BatchResult:
    """
    Tag one page of one entity type, starting at `cursor`.

    The next cursor and progress are persisted only after the whole page was
    walked, so a failed fetch leaves the stored cursor where it was and the
    same call can be retried. A failed write for one entity is logged and
    the rest of the page is still processed.
    """
    limit = page_size or settings.batch_page_size
    delay = settings.batch_entity_delay_ms / 1000 if entity_delay_seconds is None else entity_delay_seconds

    rules = load_active_rules(db, shop=shop, kinds=(kind,))
    if not rules:
        result = BatchResult(next_cursor=None, processed=0, batch_size=0, done=True)
        save_batch_state(db, shop=shop, kind=kind, cursor=None, progress=result.as_progress())
        db.commit()
        return result

    rules = resolve_rule_values(rules, client)
    walker = CursorWalker(lambda page_cursor: client.fetch_rest_page(kind, page_cursor, limit))
    page = walker.fetch(cursor)

    applied_tags: list[str] = []
    failed = 0
    for index, payload in enumerate(page.items):
        if index and delay > 0:
            sleep(delay)
        entity_id = payload.get("id") if isinstance(payload, dict) else None
        try:
            snapshot = snapshot_from_rest(kind, payload)
            diff = apply_rules_to_snapshot(
                db,
                shop=shop,
                snapshot=snapshot,
                rules=rules,
                client=client,
            )
        except Exception as exc:  # noqa: BLE001 - one bad entity must not stop the page
            failed += 1
            log_event(
                logger,
                "batch.entity_write_failed",
                level=logging.ERROR,
                shop=shop,
                entity_type=kind.slug,
                entity_id=entity_id,
                error=str(exc),
            )
            continue
        for tag in diff.applied_tags:
            if tag not in applied_tags:
                applied_tags.append(tag)

    result = BatchResult(
        next_cursor=page.next_cursor,
        processed=len(page.items),
        batch_size=len(page.items),
        done=page.next_cursor is None,
        failed=failed,
        applied_tags=applied_tags or None,
    )
    save_batch_state(
        db,
        shop=shop,
        kind=kind,
        cursor=result.next_cursor,
        progress=result.as_progress(),
    )
    db.commit()
    log_event(
        logger,
        "batch.page_processed",
        shop=shop,
        entity_type=kind.slug,
        processed=result.processed,
        failed=result.failed,
        done=result.done,
        applied_tags=result.applied_tags,
    )
    return result
