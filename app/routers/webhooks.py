import base64
import hashlib
import hmac
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.api_docs import error_responses
from app.core.config import settings
from app.core.deps import CommerceClientFactory, get_commerce_client_factory, get_db, normalize_shop_domain
from app.core.entity_kinds import EntityKind
from app.core.observability import log_event, logger
from app.schemas.webhook import WebhookOut
from app.services.snapshots import snapshot_from_rest
from app.services.webhook_service import react_to_entity_created

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _build_webhook_signature(payload_bytes: bytes) -> str:
    digest = hmac.new(
        settings.shopify_api_secret.encode("utf-8"),
        payload_bytes,
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def _assert_webhook_signature(payload_bytes: bytes, signature_header: str | None) -> None:
    if not signature_header:
        raise HTTPException(status_code=401, detail="Missing webhook signature")

    expected = _build_webhook_signature(payload_bytes)
    if not hmac.compare_digest(signature_header.strip(), expected):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")


def _webhook_shop(request: Request) -> str:
    shop = normalize_shop_domain(request.headers.get("X-Shopify-Shop-Domain"))
    if not shop:
        raise HTTPException(status_code=401, detail="Missing or invalid shop domain")
    return shop


def _load_payload(raw_body: bytes) -> dict:
    try:
        payload = json.loads(raw_body or b"null")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Webhook body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")
    return payload


async def _handle_created(
    kind: EntityKind,
    request: Request,
    db: Session,
    client_factory: CommerceClientFactory,
) -> WebhookOut:
    raw_body = await request.body()
    _assert_webhook_signature(raw_body, request.headers.get("X-Shopify-Hmac-Sha256"))
    shop = _webhook_shop(request)
    payload = _load_payload(raw_body)

    try:
        snapshot = snapshot_from_rest(kind, payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    client = client_factory(db, shop)
    try:
        diff = await run_in_threadpool(
            react_to_entity_created,
            db,
            shop=shop,
            snapshot=snapshot,
            client=client,
        )
    except Exception as exc:
        db.rollback()
        log_event(
            logger,
            "webhook.tag_write_failed",
            level=logging.ERROR,
            shop=shop,
            entity_type=kind.slug,
            entity_id=snapshot.id,
            error=str(exc),
        )
        raise HTTPException(
            status_code=500,
            detail={
                "message": f"Failed to apply tags to {kind.slug}",
                "details": [{"field": "tags", "message": str(exc)}],
            },
        ) from exc

    return WebhookOut(
        ok=True,
        entity_type=kind.slug,
        entity_id=snapshot.id,
        applied_tags=diff.applied_tags,
        tags=diff.new_tags,
    )


@router.post(
    "/orders/create",
    response_model=WebhookOut,
    summary="Tag a newly created order",
    responses=error_responses(400, 401, 500),
)
async def order_created(
    request: Request,
    db: Session = Depends(get_db),
    client_factory: CommerceClientFactory = Depends(get_commerce_client_factory),
):
    return await _handle_created(EntityKind.ORDER, request, db, client_factory)


@router.post(
    "/customers/create",
    response_model=WebhookOut,
    summary="Tag a newly created customer",
    responses=error_responses(400, 401, 500),
)
async def customer_created(
    request: Request,
    db: Session = Depends(get_db),
    client_factory: CommerceClientFactory = Depends(get_commerce_client_factory),
):
    return await _handle_created(EntityKind.CUSTOMER, request, db, client_factory)


@router.post(
    "/products/create",
    response_model=WebhookOut,
    summary="Tag a newly created product",
    responses=error_responses(400, 401, 500),
)
async def product_created(
    request: Request,
    db: Session = Depends(get_db),
    client_factory: CommerceClientFactory = Depends(get_commerce_client_factory),
):
    return await _handle_created(EntityKind.PRODUCT, request, db, client_factory)
