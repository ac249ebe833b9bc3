import logging
from typing import Callable

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.entity_kinds import BACKFILL_ORDER
from app.core.observability import log_event
from app.models.merchant_settings import MerchantSettings
from app.schemas.progress import (
    CompletedProgress,
    ErrorProgress,
    InProgressProgress,
    PastDataProgress,
)
from app.services.entity_tagging import apply_rules_to_snapshot
from app.services.pagination import CursorWalker
from app.services.progress_store import get_or_create_merchant_settings, write_past_data_progress
from app.services.shopify_client import CommerceClient
from app.services.snapshots import EntitySnapshot, snapshot_from_graphql
from app.services.tag_rules import load_active_rules, resolve_rule_values

logger = logging.getLogger("autotag.tagging")


def _percent(processed: int, total: int) -> float:
    return round(min(processed / (total or 1) * 100, 100.0), 2)


def mark_past_data_started(merchant: MerchantSettings) -> None:
    write_past_data_progress(merchant, InProgressProgress(percent=0), processing=True)


def apply_rules_to_past_data(
    db: Session,
    *,
    shop: str,
    client: CommerceClient,
    page_size: int | None = None,
    progress_every: int | None = None,
) -> PastDataProgress:
    """
    Tag every existing order, then customer, then product of a shop in one run.

    Only a coarse percentage is persisted: after each fetched page and after
    every `progress_every` processed entities. There is no resumable cursor;
    an interrupted run has to be started again from scratch. Failed writes
    for single entities are logged and skipped; any other error ends the run
    with status `error`.
    """
    first = page_size or settings.backfill_page_size
    every = progress_every or settings.backfill_progress_every

    processed = 0
    total = 0
    failed = 0

    def _checkpoint() -> None:
        write_past_data_progress(merchant, InProgressProgress(percent=_percent(processed, total)))
        db.commit()

    try:
        merchant = get_or_create_merchant_settings(db, shop=shop)
        rules = load_active_rules(db, shop=shop)
        if not rules:
            progress: PastDataProgress = CompletedProgress()
            write_past_data_progress(merchant, progress, processing=False)
            db.commit()
            return progress

        mark_past_data_started(merchant)
        db.commit()
        log_event(logger, "backfill.started", shop=shop, rules=len(rules))

        rules = resolve_rule_values(rules, client)
        snapshots: list[EntitySnapshot] = []
        for kind in BACKFILL_ORDER:
            if not any(rule.applies_to == kind for rule in rules):
                continue
            walker = CursorWalker(
                lambda cursor, kind=kind: client.fetch_graphql_page(kind, cursor, first)
            )
            for page in walker.pages():
                for node in page.items:
                    try:
                        snapshots.append(snapshot_from_graphql(kind, node))
                    except ValueError as exc:
                        log_event(
                            logger,
                            "backfill.snapshot_skipped",
                            level=logging.WARNING,
                            shop=shop,
                            entity_type=kind.slug,
                            error=str(exc),
                        )
                total += len(page.items)
                _checkpoint()

        for snapshot in snapshots:
            try:
                apply_rules_to_snapshot(
                    db,
                    shop=shop,
                    snapshot=snapshot,
                    rules=rules,
                    client=client,
                )
            except Exception as exc:  # noqa: BLE001 - skip the entity, keep the run going
                failed += 1
                log_event(
                    logger,
                    "backfill.entity_write_failed",
                    level=logging.ERROR,
                    shop=shop,
                    entity_type=snapshot.kind.slug,
                    entity_id=snapshot.id,
                    error=str(exc),
                )
            processed += 1
            if processed % every == 0:
                _checkpoint()
    except Exception as exc:  # noqa: BLE001 - surfaced through the stored progress
        db.rollback()
        merchant = get_or_create_merchant_settings(db, shop=shop)
        progress = ErrorProgress(percent=_percent(processed, total), detail=str(exc)[:255])
        write_past_data_progress(merchant, progress, processing=False)
        db.commit()
        log_event(
            logger,
            "backfill.failed",
            level=logging.ERROR,
            shop=shop,
            processed=processed,
            total=total,
            error=str(exc),
        )
        return progress

    progress = CompletedProgress()
    write_past_data_progress(merchant, progress, processing=False)
    db.commit()
    log_event(logger, "backfill.completed", shop=shop, processed=processed, total=total, failed=failed)
    return progress


def run_past_data_backfill(
    session_factory: Callable[[], Session],
    *,
    shop: str,
    client: CommerceClient,
) -> None:
    """Background-task entry point; owns its database session."""
    db = session_factory()
    try:
        apply_rules_to_past_data(db, shop=shop, client=client)
    finally:
        db.close()
