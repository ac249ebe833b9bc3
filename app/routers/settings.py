from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.api_docs import error_responses
from app.core.deps import (
    CommerceClientFactory,
    SessionFactory,
    get_commerce_client_factory,
    get_current_shop,
    get_db,
    get_session_factory,
)
from app.core.observability import log_event, logger
from app.models.merchant_settings import MerchantSettings
from app.schemas.settings import MerchantSettingsOut, PastDataOptInIn
from app.services.past_data_service import mark_past_data_started, run_past_data_backfill
from app.services.progress_store import get_or_create_merchant_settings, read_past_data_progress

router = APIRouter(prefix="/settings", tags=["settings"])


def _settings_out(merchant: MerchantSettings) -> MerchantSettingsOut:
    return MerchantSettingsOut(
        shop=merchant.shop,
        past_data_opt_in=bool(merchant.past_data_opt_in),
        past_data_processing=bool(merchant.past_data_processing),
        past_data_progress=read_past_data_progress(merchant),
    )


@router.get(
    "",
    response_model=MerchantSettingsOut,
    summary="Get merchant settings and past-data progress",
    responses=error_responses(401),
)
def get_settings(
    db: Session = Depends(get_db),
    shop: str = Depends(get_current_shop),
):
    merchant = get_or_create_merchant_settings(db, shop=shop)
    db.commit()
    db.refresh(merchant)
    return _settings_out(merchant)


@router.post(
    "/past-data",
    response_model=MerchantSettingsOut,
    summary="Opt in or out of tagging past data",
    responses=error_responses(401, 409, 422),
)
def update_past_data_opt_in(
    payload: PastDataOptInIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    shop: str = Depends(get_current_shop),
    client_factory: CommerceClientFactory = Depends(get_commerce_client_factory),
    session_factory: SessionFactory = Depends(get_session_factory),
):
    merchant = get_or_create_merchant_settings(db, shop=shop)
    if payload.enabled and merchant.past_data_processing:
        raise HTTPException(status_code=409, detail="Past data is already being processed")

    merchant.past_data_opt_in = payload.enabled
    if payload.enabled:
        client = client_factory(db, shop)
        mark_past_data_started(merchant)
        background_tasks.add_task(
            run_past_data_backfill,
            session_factory,
            shop=shop,
            client=client,
        )
    db.commit()
    db.refresh(merchant)
    log_event(logger, "past_data.opt_in_updated", shop=shop, enabled=payload.enabled)
    return _settings_out(merchant)
