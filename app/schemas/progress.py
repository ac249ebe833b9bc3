from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchProgress(BaseModel):
    processed: int = Field(ge=0)
    batch_size: int = Field(ge=0)
    done: bool
    applied_tags: list[str] | None = None
    failed: int = Field(default=0, ge=0)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "processed": 25,
                "batch_size": 25,
                "done": False,
                "applied_tags": ["high-value"],
                "failed": 0,
            }
        }
    )


class IdleProgress(BaseModel):
    status: Literal["idle"] = "idle"
    percent: float = 0
    last_updated: datetime = Field(default_factory=_utcnow)


class InProgressProgress(BaseModel):
    status: Literal["in_progress"] = "in_progress"
    percent: float = Field(default=0, ge=0, le=100)
    last_updated: datetime = Field(default_factory=_utcnow)


class CompletedProgress(BaseModel):
    status: Literal["completed"] = "completed"
    percent: float = 100
    last_updated: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def pin_percent(self) -> "CompletedProgress":
        self.percent = 100
        return self


class ErrorProgress(BaseModel):
    status: Literal["error"] = "error"
    percent: float = Field(default=0, ge=0, le=100)
    detail: str | None = None
    last_updated: datetime = Field(default_factory=_utcnow)


PastDataProgress = Annotated[
    Union[IdleProgress, InProgressProgress, CompletedProgress, ErrorProgress],
    Field(discriminator="status"),
]

past_data_progress_adapter: TypeAdapter[PastDataProgress] = TypeAdapter(PastDataProgress)
