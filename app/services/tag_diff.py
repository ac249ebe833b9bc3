from dataclasses import dataclass, replace
from typing import Iterable

from app.services.condition_evaluator import evaluate
from app.services.snapshots import EntitySnapshot, has_tag, join_tags, split_tags
from app.services.tag_rules import TagRule


@dataclass(frozen=True)
class AppliedTag:
    tag: str
    rule_id: str


@dataclass(frozen=True)
class TagDiff:
    new_tags: str
    applied: tuple[AppliedTag, ...]

    @property
    def applied_tags(self) -> list[str]:
        return [item.tag for item in self.applied]

    @property
    def changed(self) -> bool:
        return bool(self.applied)


def diff_tags(
    current_tags: str | list[str] | tuple[str, ...] | None,
    rules: Iterable[TagRule],
    snapshot: EntitySnapshot,
) -> TagDiff:
    """
    Tags to append given the rules that match the snapshot.

    Current tags are read as an ordered set, first occurrence wins. Rules run
    in the given order and see tags added by earlier rules. A tag that is
    already present, in any letter case, is never added or recorded again,
    so a second pass over the result applies nothing.
    """
    tags = split_tags(current_tags)
    applied: list[AppliedTag] = []

    for rule in rules:
        if rule.applies_to != snapshot.kind:
            continue
        if has_tag(tags, rule.tag):
            continue
        view = replace(snapshot, tags=tuple(tags))
        if not evaluate(rule.applies_to, rule.condition, rule.condition_value, view):
            continue
        tags.append(rule.tag)
        applied.append(AppliedTag(tag=rule.tag, rule_id=rule.id))

    return TagDiff(new_tags=join_tags(tags), applied=tuple(applied))
