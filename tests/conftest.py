import pytest
import os
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SHOPIFY_API_SECRET", "test-webhook-secret")
os.environ.setdefault("TAGGING_MIN_REQUEST_INTERVAL_MS", "0")
os.environ.setdefault("TAGGING_DEFAULT_RETRY_MS", "0")
os.environ.setdefault("BATCH_ENTITY_DELAY_MS", "0")

import app.models  # noqa: F401
from app.core.config import settings
from app.core.deps import get_commerce_client_factory, get_db, get_session_factory
from app.core.entity_kinds import EntityKind
from app.core.id_utils import to_resource_id
from app.db.base import Base
from app.main import app
from app.services.pagination import Page
from app.services.shopify_client import ShopifyApiError

SHOP = "demo-shop.myshopify.com"
SHOP_HEADERS = {"X-Shopify-Shop-Domain": SHOP}


class FakeCommerceClient:
    """
    In-memory commerce platform. Collections are lists of pages; the cursor
    of page N is the string "N".
    """

    def __init__(self):
        self.rest_pages: dict[EntityKind, list[list[dict]]] = {}
        self.graphql_pages: dict[EntityKind, list[list[dict]]] = {}
        self.titles: dict[str, str] = {}
        self.failing_ids: set[str] = set()
        self.fetch_error: Exception | None = None
        self.title_error: Exception | None = None
        self.fetches: list[tuple[str, EntityKind, str | None]] = []
        self.updates: list[tuple[EntityKind, str, str]] = []
        self.title_lookups: list[str] = []

    def _page(self, pages: list[list[dict]], cursor: str | None) -> Page:
        if self.fetch_error is not None:
            raise self.fetch_error
        if not pages:
            return Page(items=[], next_cursor=None)
        index = int(cursor) if cursor else 0
        next_cursor = str(index + 1) if index + 1 < len(pages) else None
        return Page(items=list(pages[index]), next_cursor=next_cursor)

    def fetch_rest_page(self, kind, cursor, limit):
        self.fetches.append(("rest", kind, cursor))
        return self._page(self.rest_pages.get(kind, []), cursor)

    def fetch_graphql_page(self, kind, cursor, first):
        self.fetches.append(("graphql", kind, cursor))
        return self._page(self.graphql_pages.get(kind, []), cursor)

    def update_tags(self, kind, entity_id, tags):
        if to_resource_id(entity_id) in self.failing_ids:
            raise ShopifyApiError(f"{kind.value} tag update rejected: locked", status_code=422)
        self.updates.append((kind, entity_id, tags))

    def fetch_product_title(self, product_id):
        self.title_lookups.append(product_id)
        if self.title_error is not None:
            raise self.title_error
        return self.titles.get(product_id)


@pytest.fixture()
def commerce():
    return FakeCommerceClient()


@pytest.fixture()
def test_context(commerce):
    original_secret = settings.shopify_api_secret
    original_cron_secret = settings.batch_cron_secret
    settings.shopify_api_secret = "test-webhook-secret"
    settings.batch_cron_secret = None

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_local
    app.dependency_overrides[get_commerce_client_factory] = lambda: (lambda db, shop: commerce)

    with TestClient(app) as client:
        yield client, session_local

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)
    settings.shopify_api_secret = original_secret
    settings.batch_cron_secret = original_cron_secret


@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    db = session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
