import re
from typing import Callable

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from app.db.session import SessionLocal
from app.services.progress_store import get_merchant_settings
from app.services.shopify_client import CommerceClient, build_shopify_client

SHOP_DOMAIN_RE = re.compile(r"^[a-z0-9][a-z0-9-]*\.myshopify\.com$")

CommerceClientFactory = Callable[[Session, str], CommerceClient]
SessionFactory = Callable[[], Session]


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> SessionFactory:
    return SessionLocal


def normalize_shop_domain(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip().lower()
    if not SHOP_DOMAIN_RE.match(cleaned):
        return None
    return cleaned


def get_current_shop(
    x_shopify_shop_domain: str | None = Header(default=None),
) -> str:
    if not x_shopify_shop_domain:
        raise HTTPException(status_code=401, detail="Missing shop domain")
    shop = normalize_shop_domain(x_shopify_shop_domain)
    if not shop:
        raise HTTPException(status_code=401, detail="Invalid shop domain")
    return shop


def _client_for_shop(db: Session, shop: str) -> CommerceClient:
    merchant = get_merchant_settings(db, shop=shop)
    if not merchant or not merchant.access_token:
        raise HTTPException(status_code=401, detail="Shop is not installed")
    return build_shopify_client(shop, merchant.access_token)


def get_commerce_client_factory() -> CommerceClientFactory:
    return _client_for_shop
