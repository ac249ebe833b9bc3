from typing import Any, Callable

from app.core.entity_kinds import EntityKind
from app.core.id_utils import to_resource_id
from app.core.parsing import parse_decimal, parse_timestamp, parse_yes_no
from app.services.snapshots import (
    CustomerSnapshot,
    EntitySnapshot,
    OrderSnapshot,
    ProductSnapshot,
    has_tag,
)

Matcher = Callable[[Any, str], bool]


def _greater_than(actual: object, threshold: str) -> bool:
    left = parse_decimal(actual)
    right = parse_decimal(threshold)
    if left is None or right is None:
        return False
    return left > right


def _less_than(actual: object, threshold: str) -> bool:
    left = parse_decimal(actual)
    right = parse_decimal(threshold)
    if left is None or right is None:
        return False
    return left < right


def _before(actual: object, boundary: str) -> bool:
    left = parse_timestamp(actual)
    right = parse_timestamp(boundary)
    if left is None or right is None:
        return False
    return left < right


def _same_text(actual: str | None, expected: str) -> bool:
    if actual is None:
        return False
    return actual.strip().lower() == expected.strip().lower()


def _contains_text(actual: str | None, needle: str) -> bool:
    if actual is None:
        return False
    return needle.strip().lower() in actual.lower()


def _gated(flag: bool, value: str) -> bool:
    wanted = parse_yes_no(value)
    if wanted is None:
        return False
    return flag if wanted else not flag


# Order

def _order_total_greater_than(order: OrderSnapshot, value: str) -> bool:
    return _greater_than(order.total_price, value)


def _order_total_less_than(order: OrderSnapshot, value: str) -> bool:
    return _less_than(order.total_price, value)


def _order_discount_used(order: OrderSnapshot, value: str) -> bool:
    return len(order.discount_codes) > 0


def _order_contains_item(order: OrderSnapshot, value: str) -> bool:
    wanted = to_resource_id(value)
    if not wanted:
        return False
    return wanted in order.line_item_product_ids


def _order_shipping_method(order: OrderSnapshot, value: str) -> bool:
    if not value.strip():
        return False
    return any(_contains_text(title, value) for title in order.shipping_titles)


def _order_tag(order: OrderSnapshot, value: str) -> bool:
    return has_tag(order.tags, value)


def _order_is_first_order(order: OrderSnapshot, value: str) -> bool:
    first = order.order_number == 1 or order.customer_orders_count == 1
    # "No" asks for repeat orders; any other value means "first order".
    if parse_yes_no(value) is False:
        return not first
    return first


def _order_fulfillment_status(order: OrderSnapshot, value: str) -> bool:
    return _same_text(order.fulfillment_status, value)


# Customer

def _customer_total_spent(customer: CustomerSnapshot, value: str) -> bool:
    return _greater_than(customer.total_spent or "0", value)


def _customer_orders_placed(customer: CustomerSnapshot, value: str) -> bool:
    return _greater_than(customer.orders_count or "0", value)


def _customer_has_email(customer: CustomerSnapshot, value: str) -> bool:
    return _gated(bool(customer.email), value)


def _customer_tagged(customer: CustomerSnapshot, value: str) -> bool:
    return has_tag(customer.tags, value)


def _customer_accepts_marketing(customer: CustomerSnapshot, value: str) -> bool:
    return _gated(customer.accepts_marketing, value)


def _customer_location(customer: CustomerSnapshot, value: str) -> bool:
    return customer.country_code is not None and customer.country_code == value.strip()


def _customer_created_before(customer: CustomerSnapshot, value: str) -> bool:
    return _before(customer.created_at, value)


# Product

def _product_is(product: ProductSnapshot, value: str) -> bool:
    wanted = to_resource_id(value)
    return bool(wanted) and product.id == wanted


def _product_title_contains(product: ProductSnapshot, value: str) -> bool:
    if not value.strip():
        return False
    return _contains_text(product.title, value)


def _product_vendor_is(product: ProductSnapshot, value: str) -> bool:
    return _same_text(product.vendor, value)


def _product_price_over(product: ProductSnapshot, value: str) -> bool:
    return _greater_than(product.price, value)


def _product_type(product: ProductSnapshot, value: str) -> bool:
    return _same_text(product.product_type, value)


def _product_inventory_low(product: ProductSnapshot, value: str) -> bool:
    if product.total_inventory is None:
        return False
    threshold = parse_decimal(value)
    if threshold is None:
        return False
    return product.total_inventory <= threshold


def _product_tag(product: ProductSnapshot, value: str) -> bool:
    return has_tag(product.tags, value)


def _product_sku_starts_with(product: ProductSnapshot, value: str) -> bool:
    prefix = value.strip()
    if not prefix:
        return False
    return any(sku.startswith(prefix) for sku in product.skus)


def _product_published_before(product: ProductSnapshot, value: str) -> bool:
    return _before(product.published_at, value)


CONDITION_MATCHERS: dict[EntityKind, dict[str, Matcher]] = {
    EntityKind.ORDER: {
        "total_greater_than": _order_total_greater_than,
        "total_less_than": _order_total_less_than,
        "discount_used": _order_discount_used,
        "contains_item": _order_contains_item,
        "shipping_method": _order_shipping_method,
        "order_tag": _order_tag,
        "is_first_order": _order_is_first_order,
        "fulfillment_status": _order_fulfillment_status,
    },
    EntityKind.CUSTOMER: {
        "total_spent": _customer_total_spent,
        "orders_placed": _customer_orders_placed,
        "has_email": _customer_has_email,
        "customer_tagged": _customer_tagged,
        "accepts_marketing": _customer_accepts_marketing,
        "customer_location": _customer_location,
        "created_before": _customer_created_before,
    },
    EntityKind.PRODUCT: {
        "product_is": _product_is,
        "title_contains": _product_title_contains,
        "vendor_is": _product_vendor_is,
        "price_over": _product_price_over,
        "product_type": _product_type,
        "inventory_low": _product_inventory_low,
        "product_tag": _product_tag,
        "sku_starts_with": _product_sku_starts_with,
        "published_before": _product_published_before,
    },
}


def _coerce_kind(value: EntityKind | str) -> EntityKind | None:
    if isinstance(value, EntityKind):
        return value
    try:
        return EntityKind(str(value))
    except ValueError:
        return None


def supported_conditions(applies_to: EntityKind | str) -> list[str]:
    kind = _coerce_kind(applies_to)
    if kind is None:
        return []
    return list(CONDITION_MATCHERS[kind])


def is_supported_condition(applies_to: EntityKind | str, condition: str) -> bool:
    return condition in supported_conditions(applies_to)


def evaluate(
    applies_to: EntityKind | str,
    condition: str,
    condition_value: str | None,
    snapshot: EntitySnapshot,
) -> bool:
    """
    True when the snapshot satisfies the condition.

    Rules for another entity kind, unknown conditions and unparseable
    numeric or date values never match; this function does not raise for them.
    """
    kind = _coerce_kind(applies_to)
    if kind is None or snapshot.kind != kind:
        return False
    matcher = CONDITION_MATCHERS[kind].get((condition or "").strip())
    if matcher is None:
        return False
    return bool(matcher(snapshot, condition_value or ""))
