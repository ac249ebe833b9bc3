from app.core.observability import ERROR_CODES, error_body
from app.schemas.common import ErrorOut

_DESCRIPTIONS: dict[int, str] = {
    400: "Unknown entity type or malformed payload",
    401: "Missing shop domain or bad signature",
    404: "Resource not found for this shop",
    409: "A run is already in progress",
    422: "Validation error",
    500: "Internal server error",
    502: "Commerce platform request failed",
}


def error_responses(*status_codes: int) -> dict[int, dict]:
    """OpenAPI `responses` entries documenting the error envelope."""
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        description = _DESCRIPTIONS.get(status_code, "HTTP error")
        example = error_body(
            code=ERROR_CODES.get(status_code, "http_error"),
            message=description,
            request_id="request-id",
            path="/rules",
        )
        responses[status_code] = {
            "model": ErrorOut,
            "description": description,
            "content": {"application/json": {"example": example}},
        }
    return responses
