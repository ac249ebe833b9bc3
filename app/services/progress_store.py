import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.entity_kinds import EntityKind
from app.core.id_utils import generate_record_id
from app.core.observability import log_event
from app.models.merchant_settings import EntityBatchState, MerchantSettings
from app.schemas.progress import (
    BatchProgress,
    IdleProgress,
    PastDataProgress,
    past_data_progress_adapter,
)

logger = logging.getLogger("autotag.tagging")


def get_merchant_settings(db: Session, *, shop: str) -> MerchantSettings | None:
    return db.execute(
        select(MerchantSettings).where(MerchantSettings.shop == shop)
    ).scalar_one_or_none()


def get_or_create_merchant_settings(db: Session, *, shop: str) -> MerchantSettings:
    merchant = get_merchant_settings(db, shop=shop)
    if merchant:
        return merchant
    merchant = MerchantSettings(
        id=generate_record_id(),
        shop=shop,
        past_data_opt_in=False,
        past_data_processing=False,
        past_data_progress=None,
    )
    db.add(merchant)
    db.flush()
    return merchant


def read_past_data_progress(merchant: MerchantSettings | None) -> PastDataProgress:
    raw = merchant.past_data_progress if merchant else None
    if not raw:
        return IdleProgress()
    try:
        return past_data_progress_adapter.validate_python(raw)
    except ValidationError as exc:
        log_event(
            logger,
            "past_data.progress_invalid",
            level=logging.WARNING,
            shop=merchant.shop if merchant else None,
            error=str(exc),
        )
        return IdleProgress()


def write_past_data_progress(
    merchant: MerchantSettings,
    progress: PastDataProgress,
    *,
    processing: bool | None = None,
) -> None:
    merchant.past_data_progress = progress.model_dump(mode="json")
    if processing is not None:
        merchant.past_data_processing = processing


def get_batch_state(db: Session, *, shop: str, kind: EntityKind) -> EntityBatchState | None:
    return db.execute(
        select(EntityBatchState).where(
            EntityBatchState.shop == shop,
            EntityBatchState.entity_type == kind.slug,
        )
    ).scalar_one_or_none()


def read_batch_progress(state: EntityBatchState | None) -> BatchProgress | None:
    raw: Any = state.progress if state else None
    if not raw:
        return None
    try:
        return BatchProgress.model_validate(raw)
    except ValidationError as exc:
        log_event(
            logger,
            "batch.progress_invalid",
            level=logging.WARNING,
            shop=state.shop if state else None,
            entity_type=state.entity_type if state else None,
            error=str(exc),
        )
        return None


def save_batch_state(
    db: Session,
    *,
    shop: str,
    kind: EntityKind,
    cursor: str | None,
    progress: BatchProgress,
) -> EntityBatchState:
    if progress.done:
        cursor = None
    get_or_create_merchant_settings(db, shop=shop)
    state = get_batch_state(db, shop=shop, kind=kind)
    if not state:
        state = EntityBatchState(
            id=generate_record_id(),
            shop=shop,
            entity_type=kind.slug,
        )
        db.add(state)
    state.cursor = cursor
    state.progress = progress.model_dump(mode="json", exclude_none=True)
    db.flush()
    return state


def list_unfinished_batch_states(db: Session, *, kind: EntityKind) -> list[EntityBatchState]:
    rows = db.execute(
        select(EntityBatchState)
        .where(EntityBatchState.entity_type == kind.slug)
        .order_by(EntityBatchState.shop.asc())
    ).scalars().all()
    unfinished = []
    for row in rows:
        progress = read_batch_progress(row)
        if progress is not None and not progress.done:
            unfinished.append(row)
    return unfinished
