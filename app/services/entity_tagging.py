from sqlalchemy.orm import Session

from app.services.shopify_client import CommerceClient
from app.services.snapshots import EntitySnapshot
from app.services.tag_activity_service import record_tag_applications
from app.services.tag_diff import TagDiff, diff_tags
from app.services.tag_rules import TagRule


def apply_rules_to_snapshot(
    db: Session,
    *,
    shop: str,
    snapshot: EntitySnapshot,
    rules: list[TagRule],
    client: CommerceClient,
) -> TagDiff:
    """
    Evaluate, write the new tag string when something was added, then record
    the applications. Write errors propagate; recording errors do not.
    """
    diff = diff_tags(snapshot.tags, rules, snapshot)
    if not diff.changed:
        return diff

    client.update_tags(snapshot.kind, snapshot.graphql_id, diff.new_tags)
    record_tag_applications(
        db,
        shop=shop,
        kind=snapshot.kind,
        entity_id=snapshot.id,
        applied=diff.applied,
    )
    return diff
