from pydantic import BaseModel, ConfigDict

from app.schemas.progress import BatchProgress


class BatchStatusOut(BaseModel):
    entity_type: str
    processing: bool
    cursor: str | None = None
    progress: BatchProgress | None = None


class BatchRunOut(BaseModel):
    entity_type: str
    next_cursor: str | None = None
    progress: BatchProgress

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "entity_type": "order",
                "next_cursor": "eyJsYXN0X2lkIjo0NTAxfQ",
                "progress": {
                    "processed": 25,
                    "batch_size": 25,
                    "done": False,
                    "applied_tags": ["high-value"],
                    "failed": 0,
                },
            }
        }
    )


class BatchShopResultOut(BaseModel):
    shop: str
    ok: bool
    progress: BatchProgress | None = None
    error: str | None = None


class BatchContinueOut(BaseModel):
    entity_type: str
    results: list[BatchShopResultOut]
