import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.config import settings
from app.core.deps import CommerceClientFactory, get_commerce_client_factory, get_current_shop, get_db
from app.core.entity_kinds import EntityKind
from app.core.observability import log_event, logger
from app.schemas.batch import BatchContinueOut, BatchRunOut, BatchShopResultOut, BatchStatusOut
from app.services.batch_tagging_service import BatchResult, process_batch
from app.services.progress_store import get_batch_state, list_unfinished_batch_states, read_batch_progress
from app.services.shopify_client import UPSTREAM_ERRORS

router = APIRouter(prefix="/batch", tags=["batch"])


def _kind_or_400(entity_type: str) -> EntityKind:
    try:
        return EntityKind.from_slug(entity_type)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _run_out(kind: EntityKind, result: BatchResult) -> BatchRunOut:
    return BatchRunOut(
        entity_type=kind.slug,
        next_cursor=result.next_cursor,
        progress=result.as_progress(),
    )


def _assert_cron_secret(provided: str | None) -> None:
    expected = settings.batch_cron_secret
    if not expected:
        return
    if not provided or not hmac.compare_digest(provided.strip(), expected):
        raise HTTPException(status_code=401, detail="Invalid cron secret")


@router.get(
    "/{entity_type}",
    response_model=BatchStatusOut,
    summary="Show batch tagging state for one entity type",
    responses=error_responses(400, 401),
)
def get_batch_status(
    entity_type: str,
    db: Session = Depends(get_db),
    shop: str = Depends(get_current_shop),
):
    kind = _kind_or_400(entity_type)
    state = get_batch_state(db, shop=shop, kind=kind)
    progress = read_batch_progress(state)
    return BatchStatusOut(
        entity_type=kind.slug,
        processing=progress is not None and not progress.done,
        cursor=state.cursor if state else None,
        progress=progress,
    )


@router.post(
    "/{entity_type}",
    response_model=BatchRunOut,
    summary="Start batch tagging and process the first page",
    responses=error_responses(400, 401, 409, 502),
)
def start_batch(
    entity_type: str,
    db: Session = Depends(get_db),
    shop: str = Depends(get_current_shop),
    client_factory: CommerceClientFactory = Depends(get_commerce_client_factory),
):
    kind = _kind_or_400(entity_type)
    progress = read_batch_progress(get_batch_state(db, shop=shop, kind=kind))
    if progress is not None and not progress.done:
        raise HTTPException(status_code=409, detail=f"A {kind.slug} batch is already running")

    client = client_factory(db, shop)
    try:
        result = process_batch(db, shop=shop, kind=kind, client=client, cursor=None)
    except UPSTREAM_ERRORS as exc:
        db.rollback()
        log_event(
            logger,
            "batch.fetch_failed",
            level=logging.ERROR,
            shop=shop,
            entity_type=kind.slug,
            error=str(exc),
        )
        raise HTTPException(
            status_code=502,
            detail={
                "message": f"Failed to process {kind.slug} batch",
                "details": [{"field": "upstream", "message": str(exc)}],
            },
        ) from exc
    return _run_out(kind, result)


@router.post(
    "/{entity_type}/continue",
    response_model=BatchContinueOut,
    summary="Process the next page for every shop with an unfinished batch",
    responses=error_responses(400, 401),
)
def continue_batches(
    entity_type: str,
    db: Session = Depends(get_db),
    client_factory: CommerceClientFactory = Depends(get_commerce_client_factory),
    x_cron_secret: str | None = Header(default=None),
):
    _assert_cron_secret(x_cron_secret)
    kind = _kind_or_400(entity_type)

    pending = [(state.shop, state.cursor) for state in list_unfinished_batch_states(db, kind=kind)]
    results: list[BatchShopResultOut] = []
    for shop, cursor in pending:
        try:
            client = client_factory(db, shop)
            result = process_batch(db, shop=shop, kind=kind, client=client, cursor=cursor)
        except HTTPException as exc:
            results.append(BatchShopResultOut(shop=shop, ok=False, error=str(exc.detail)))
            continue
        except Exception as exc:  # noqa: BLE001 - reported per shop, the others still run
            db.rollback()
            log_event(
                logger,
                "batch.fetch_failed",
                level=logging.ERROR,
                shop=shop,
                entity_type=kind.slug,
                error=str(exc),
            )
            results.append(BatchShopResultOut(shop=shop, ok=False, error=str(exc)))
            continue
        results.append(BatchShopResultOut(shop=shop, ok=True, progress=result.as_progress()))

    return BatchContinueOut(entity_type=kind.slug, results=results)
