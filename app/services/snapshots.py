from dataclasses import dataclass, field
from typing import Any, Union

from app.core.entity_kinds import EntityKind
from app.core.id_utils import to_gid, to_resource_id


def has_tag(tags: list[str] | tuple[str, ...], tag: str) -> bool:
    """Tag membership the way the platform sees it: case-insensitive."""
    wanted = tag.strip().casefold()
    return bool(wanted) and any(existing.casefold() == wanted for existing in tags)


def split_tags(raw: Any) -> list[str]:
    """
    Ordered, duplicate-free tags from a comma-separated string or a list.
    Duplicates differing only in case collapse into the first spelling.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        parts = raw.split(",")
    else:
        parts = [str(item) for item in raw]
    tags: list[str] = []
    for part in parts:
        tag = part.strip()
        if tag and not has_tag(tags, tag):
            tags.append(tag)
    return tags


def join_tags(tags: list[str] | tuple[str, ...]) -> str:
    return ", ".join(tags)


@dataclass(frozen=True)
class OrderSnapshot:
    id: str
    graphql_id: str
    tags: tuple[str, ...] = ()
    total_price: str | None = None
    discount_codes: tuple[str, ...] = ()
    line_item_product_ids: tuple[str, ...] = ()
    shipping_titles: tuple[str, ...] = ()
    order_number: int | None = None
    customer_orders_count: int | None = None
    fulfillment_status: str | None = None
    kind: EntityKind = field(default=EntityKind.ORDER, init=False)


@dataclass(frozen=True)
class CustomerSnapshot:
    id: str
    graphql_id: str
    tags: tuple[str, ...] = ()
    email: str | None = None
    total_spent: str | None = None
    orders_count: str | None = None
    accepts_marketing: bool = False
    country_code: str | None = None
    created_at: str | None = None
    kind: EntityKind = field(default=EntityKind.CUSTOMER, init=False)


@dataclass(frozen=True)
class ProductSnapshot:
    id: str
    graphql_id: str
    tags: tuple[str, ...] = ()
    title: str | None = None
    vendor: str | None = None
    product_type: str | None = None
    price: str | None = None
    skus: tuple[str, ...] = ()
    total_inventory: int | None = None
    published_at: str | None = None
    kind: EntityKind = field(default=EntityKind.PRODUCT, init=False)


EntitySnapshot = Union[OrderSnapshot, CustomerSnapshot, ProductSnapshot]


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _edges(connection: Any) -> list[dict[str, Any]]:
    nodes = []
    for edge in _list(_dict(connection).get("edges")):
        node = _dict(edge).get("node")
        if isinstance(node, dict):
            nodes.append(node)
    return nodes


def _text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _int_or_none(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _identity(kind: EntityKind, payload: dict[str, Any]) -> tuple[str, str]:
    raw_id = payload.get("id")
    if raw_id is None or not str(raw_id).strip():
        raise ValueError(f"{kind.value} payload is missing an id")
    graphql_id = payload.get("admin_graphql_api_id") or to_gid(kind.value, raw_id)
    return to_resource_id(raw_id), str(graphql_id)


def _rest_inventory(variants: list[Any]) -> int | None:
    quantities = [
        _dict(variant).get("inventory_quantity")
        for variant in variants
        if "inventory_quantity" in _dict(variant)
    ]
    if not quantities:
        return None
    return sum(_int_or_none(quantity) or 0 for quantity in quantities)


def snapshot_from_rest(kind: EntityKind, payload: dict[str, Any]) -> EntitySnapshot:
    """Snapshot from a REST list item or webhook payload (snake_case fields)."""
    entity_id, graphql_id = _identity(kind, payload)
    tags = tuple(split_tags(payload.get("tags")))

    if kind == EntityKind.ORDER:
        return OrderSnapshot(
            id=entity_id,
            graphql_id=graphql_id,
            tags=tags,
            total_price=_text(payload.get("total_price")),
            discount_codes=tuple(
                str(_dict(code).get("code") or "") for code in _list(payload.get("discount_codes"))
            ),
            line_item_product_ids=tuple(
                to_resource_id(_dict(item).get("product_id"))
                for item in _list(payload.get("line_items"))
                if _dict(item).get("product_id") is not None
            ),
            shipping_titles=tuple(
                str(_dict(line).get("title") or "") for line in _list(payload.get("shipping_lines"))
            ),
            order_number=_int_or_none(payload.get("order_number")),
            customer_orders_count=_int_or_none(_dict(payload.get("customer")).get("orders_count")),
            fulfillment_status=_text(payload.get("fulfillment_status")),
        )

    if kind == EntityKind.CUSTOMER:
        return CustomerSnapshot(
            id=entity_id,
            graphql_id=graphql_id,
            tags=tags,
            email=_text(payload.get("email")) or None,
            total_spent=_text(payload.get("total_spent")),
            orders_count=_text(payload.get("orders_count")),
            accepts_marketing=bool(payload.get("accepts_marketing")),
            country_code=_text(_dict(payload.get("default_address")).get("country_code")),
            created_at=_text(payload.get("created_at")),
        )

    variants = _list(payload.get("variants"))
    first_variant = _dict(variants[0]) if variants else {}
    return ProductSnapshot(
        id=entity_id,
        graphql_id=graphql_id,
        tags=tags,
        title=_text(payload.get("title")),
        vendor=_text(payload.get("vendor")),
        product_type=_text(payload.get("product_type")),
        price=_text(first_variant.get("price")),
        skus=tuple(str(_dict(variant).get("sku")) for variant in variants if _dict(variant).get("sku")),
        total_inventory=_rest_inventory(variants),
        published_at=_text(payload.get("published_at")),
    )


def snapshot_from_graphql(kind: EntityKind, node: dict[str, Any]) -> EntitySnapshot:
    """Snapshot from a GraphQL connection node (camelCase fields)."""
    raw_id = node.get("id")
    if raw_id is None or not str(raw_id).strip():
        raise ValueError(f"{kind.value} node is missing an id")
    entity_id = to_resource_id(raw_id)
    graphql_id = to_gid(kind.value, raw_id)
    tags = tuple(split_tags(node.get("tags")))

    if kind == EntityKind.ORDER:
        codes = []
        for code in _list(node.get("discountCodes")):
            codes.append(str(_dict(code).get("code") or "") if isinstance(code, dict) else str(code))
        product_ids = []
        for item in _edges(node.get("lineItems")):
            product_id = _dict(item.get("product")).get("id")
            if product_id is not None:
                product_ids.append(to_resource_id(product_id))
        shipping_lines = node.get("shippingLines")
        if isinstance(shipping_lines, dict):
            shipping_lines = _edges(shipping_lines)
        total = node.get("totalPrice")
        if total is None:
            total = _dict(_dict(node.get("totalPriceSet")).get("shopMoney")).get("amount")
        return OrderSnapshot(
            id=entity_id,
            graphql_id=graphql_id,
            tags=tags,
            total_price=_text(total),
            discount_codes=tuple(codes),
            line_item_product_ids=tuple(product_ids),
            shipping_titles=tuple(str(_dict(line).get("title") or "") for line in _list(shipping_lines)),
            order_number=_int_or_none(node.get("orderNumber")),
            customer_orders_count=_int_or_none(_dict(node.get("customer")).get("ordersCount")),
            fulfillment_status=_text(node.get("fulfillmentStatus") or node.get("displayFulfillmentStatus")),
        )

    if kind == EntityKind.CUSTOMER:
        spent = node.get("totalSpent")
        if spent is None:
            spent = _dict(node.get("amountSpent")).get("amount")
        orders_count = node.get("ordersCount")
        if orders_count is None:
            orders_count = node.get("numberOfOrders")
        return CustomerSnapshot(
            id=entity_id,
            graphql_id=graphql_id,
            tags=tags,
            email=_text(node.get("email")) or None,
            total_spent=_text(spent),
            orders_count=_text(orders_count),
            accepts_marketing=bool(node.get("acceptsMarketing")),
            country_code=_text(_dict(node.get("defaultAddress")).get("countryCode")),
            created_at=_text(node.get("createdAt")),
        )

    variants = _edges(node.get("variants"))
    price = _dict(_dict(node.get("priceRange")).get("minVariantPrice")).get("amount")
    if price is None and variants:
        price = variants[0].get("price")
    return ProductSnapshot(
        id=entity_id,
        graphql_id=graphql_id,
        tags=tags,
        title=_text(node.get("title")),
        vendor=_text(node.get("vendor")),
        product_type=_text(node.get("productType")),
        price=_text(price),
        skus=tuple(str(variant.get("sku")) for variant in variants if variant.get("sku")),
        total_inventory=_int_or_none(node.get("totalInventory")),
        published_at=_text(node.get("publishedAt")),
    )
