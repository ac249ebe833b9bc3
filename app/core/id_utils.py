import re

import shortuuid

_GID_RE = re.compile(r"^gid://shopify/([A-Za-z]+)/(\d+)")


def generate_record_id() -> str:
    return shortuuid.uuid()


def to_resource_id(value: object) -> str:
    """Bare numeric id from either a numeric id or a `gid://shopify/<Type>/<id>` string."""
    text = str(value if value is not None else "").strip()
    match = _GID_RE.match(text)
    if match:
        return match.group(2)
    return text


def to_gid(resource_type: str, value: object) -> str:
    text = str(value if value is not None else "").strip()
    if text.startswith("gid://"):
        return text
    return f"gid://shopify/{resource_type}/{text}"


def is_resource_reference(value: str | None) -> bool:
    text = (value or "").strip()
    return text.isdigit() or _GID_RE.match(text) is not None
