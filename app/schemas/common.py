from pydantic import BaseModel, ConfigDict


class PaginationMeta(BaseModel):
    """Offset pagination block shared by the list endpoints."""

    total: int
    limit: int
    offset: int
    count: int
    has_next: bool


class ErrorIssueOut(BaseModel):
    field: str
    message: str
    type: str | None = None


class ErrorDetailOut(BaseModel):
    code: str
    message: str
    request_id: str
    path: str
    details: list[ErrorIssueOut] | None = None


class ErrorOut(BaseModel):
    error: ErrorDetailOut

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": {
                    "code": "upstream_error",
                    "message": "Failed to process order batch",
                    "request_id": "8d8f2b00-6c79-4a45-8ff4-b0a5f2bc4bc2",
                    "path": "/batch/order",
                    "details": [{"field": "upstream", "message": "Max retries reached after 5 attempts"}],
                }
            }
        }
    )
