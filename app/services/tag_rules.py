import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.entity_kinds import EntityKind
from app.core.id_utils import is_resource_reference, to_resource_id
from app.core.observability import log_event
from app.models.rule import Rule

if TYPE_CHECKING:
    from app.services.shopify_client import CommerceClient

logger = logging.getLogger("autotag.tagging")


@dataclass(frozen=True)
class TagRule:
    id: str
    applies_to: EntityKind
    condition: str
    condition_value: str
    tag: str


def to_tag_rule(rule: Rule) -> TagRule | None:
    try:
        applies_to = EntityKind(rule.applies_to)
    except ValueError:
        return None
    return TagRule(
        id=rule.id,
        applies_to=applies_to,
        condition=(rule.condition or "").strip(),
        condition_value=rule.condition_value or "",
        tag=(rule.tag or "").strip(),
    )


def load_active_rules(
    db: Session,
    *,
    shop: str,
    kinds: tuple[EntityKind, ...] | None = None,
) -> list[TagRule]:
    """Active rules of a shop in creation order."""
    stmt = select(Rule).where(Rule.shop == shop, Rule.is_active.is_(True))
    if kinds:
        stmt = stmt.where(Rule.applies_to.in_([kind.value for kind in kinds]))
    rows = db.execute(stmt.order_by(Rule.created_at.asc(), Rule.id.asc())).scalars().all()
    rules = []
    for row in rows:
        tag_rule = to_tag_rule(row)
        if tag_rule and tag_rule.tag:
            rules.append(tag_rule)
    return rules


def resolve_rule_values(rules: list[TagRule], client: "CommerceClient") -> list[TagRule]:
    """
    Replace product references in `title_contains` values with the referenced
    product's title. Titles are looked up once per call. A reference that
    cannot be resolved drops the rule.
    """
    titles: dict[str, str | None] = {}
    resolved: list[TagRule] = []
    for rule in rules:
        if not (
            rule.applies_to == EntityKind.PRODUCT
            and rule.condition == "title_contains"
            and is_resource_reference(rule.condition_value)
        ):
            resolved.append(rule)
            continue

        product_id = to_resource_id(rule.condition_value)
        if product_id not in titles:
            try:
                titles[product_id] = client.fetch_product_title(product_id)
            except Exception as exc:  # noqa: BLE001 - an unresolvable reference only disables this rule
                log_event(
                    logger,
                    "rule.reference_unresolved",
                    level=logging.WARNING,
                    rule_id=rule.id,
                    product_id=product_id,
                    error=str(exc),
                )
                titles[product_id] = None

        title = titles[product_id]
        if title:
            resolved.append(replace(rule, condition_value=title))
    return resolved
