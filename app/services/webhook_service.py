import logging

from sqlalchemy.orm import Session

from app.core.observability import log_event
from app.services.entity_tagging import apply_rules_to_snapshot
from app.services.shopify_client import CommerceClient
from app.services.snapshots import EntitySnapshot, join_tags
from app.services.tag_diff import TagDiff
from app.services.tag_rules import load_active_rules, resolve_rule_values

logger = logging.getLogger("autotag.tagging")


def react_to_entity_created(
    db: Session,
    *,
    shop: str,
    snapshot: EntitySnapshot,
    client: CommerceClient,
) -> TagDiff:
    """
    Tag a freshly created entity built from its webhook payload.

    Tag write failures propagate so the delivery is answered with an error.
    """
    kind = snapshot.kind
    rules = load_active_rules(db, shop=shop, kinds=(kind,))
    if not rules:
        return TagDiff(new_tags=join_tags(snapshot.tags), applied=())

    rules = resolve_rule_values(rules, client)
    diff = apply_rules_to_snapshot(
        db,
        shop=shop,
        snapshot=snapshot,
        rules=rules,
        client=client,
    )
    log_event(
        logger,
        "webhook.tags_applied",
        shop=shop,
        entity_type=kind.slug,
        entity_id=snapshot.id,
        applied_tags=diff.applied_tags,
    )
    return diff
