from datetime import datetime

from pydantic import BaseModel, ConfigDict

from app.schemas.common import PaginationMeta


class TagUsageOut(BaseModel):
    tag: str
    count: int
    last_used: datetime

    model_config = ConfigDict(from_attributes=True)


class TagUsageListOut(BaseModel):
    items: list[TagUsageOut]
    pagination: PaginationMeta


class TagActivityOut(BaseModel):
    id: str
    entity_type: str
    entity_id: str
    tag: str
    rule_id: str | None = None
    applied_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TagActivityListOut(BaseModel):
    items: list[TagActivityOut]
    pagination: PaginationMeta
