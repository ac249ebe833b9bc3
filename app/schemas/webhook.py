from pydantic import BaseModel


class WebhookOut(BaseModel):
    ok: bool
    entity_type: str
    entity_id: str
    applied_tags: list[str]
    tags: str
