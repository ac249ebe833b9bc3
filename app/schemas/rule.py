from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from app.schemas.common import PaginationMeta
from app.services.condition_evaluator import is_supported_condition, supported_conditions

AppliesTo = Literal["Order", "Customer", "Product"]


class RuleCreateIn(BaseModel):
    name: str
    applies_to: AppliesTo
    condition: str
    condition_value: str
    tag: str

    @field_validator("name", "condition", "condition_value", "tag")
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("value is required")
        return cleaned

    @field_validator("tag")
    @classmethod
    def validate_tag(cls, value: str) -> str:
        if "," in value:
            raise ValueError("tag cannot contain a comma")
        return value

    @model_validator(mode="after")
    def validate_condition_for_kind(self) -> "RuleCreateIn":
        if not is_supported_condition(self.applies_to, self.condition):
            allowed = ", ".join(supported_conditions(self.applies_to))
            raise ValueError(
                f"condition '{self.condition}' is not valid for {self.applies_to}. Allowed: {allowed}"
            )
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Big spenders",
                "applies_to": "Order",
                "condition": "total_greater_than",
                "condition_value": "100",
                "tag": "high-value",
            }
        }
    )


class RuleOut(BaseModel):
    id: str
    name: str
    applies_to: str
    condition: str
    condition_value: str
    tag: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RuleListOut(BaseModel):
    items: list[RuleOut]
    pagination: PaginationMeta


class RuleDeleteOut(BaseModel):
    ok: bool
    id: str


class ConditionCatalogOut(BaseModel):
    applies_to: str
    conditions: list[str]
