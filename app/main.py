from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.observability import (
    http_exception_handler,
    request_logging_middleware,
    setup_observability,
    unhandled_exception_handler,
    validation_exception_handler,
)
from app.db.session import engine
from app.routers import batch, rules, tags, webhooks
from app.routers import settings as settings_router

DEV_ORIGIN_REGEX = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description=(
        "Rule-based tagging for Shopify orders, customers and products.\n\n"
        "Every merchant-facing call identifies the shop with the "
        "`X-Shopify-Shop-Domain` header. Create rules with `POST /rules`, then tag "
        "existing data page by page with `POST /batch/{entity_type}` or in one run "
        "with `POST /settings/past-data`. New entities are tagged by the "
        "`/webhooks/*/create` endpoints."
    ),
    swagger_ui_parameters={
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "rules", "description": "Tagging rules per entity type."},
        {"name": "batch", "description": "Resumable page-by-page tagging of existing data."},
        {"name": "settings", "description": "Merchant settings and the past-data backfill."},
        {"name": "webhooks", "description": "Creation webhooks that tag new entities."},
        {"name": "tags", "description": "Tag usage counters and application history."},
    ],
)


def _configure_cors(application: FastAPI) -> None:
    origins = settings.cors_origins or ["http://localhost:3000"]
    allow_all = "*" in origins
    origin_regex = settings.cors_origin_regex
    if not origin_regex and settings.env.lower().strip() in {"dev", "development", "staging", "stage"}:
        origin_regex = DEV_ORIGIN_REGEX

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else origins,
        allow_origin_regex=origin_regex,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
    )


setup_observability()
app.middleware("http")(request_logging_middleware)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)
_configure_cors(app)

for module in (rules, batch, settings_router, webhooks, tags):
    app.include_router(module.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "health": "/health",
        "ready": "/ready",
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/ready", tags=["health"])
def ready():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return {"ok": False}
    return {"ok": True}
