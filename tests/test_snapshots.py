import pytest

from app.core.entity_kinds import EntityKind
from app.services.snapshots import snapshot_from_graphql, snapshot_from_rest, split_tags


def test_split_tags_accepts_strings_and_lists():
    assert split_tags("vip, wholesale ,vip,") == ["vip", "wholesale"]
    assert split_tags(["vip", " vip", "new"]) == ["vip", "new"]
    assert split_tags(None) == []


def test_rest_order_payload():
    snapshot = snapshot_from_rest(
        EntityKind.ORDER,
        {
            "id": 450789469,
            "admin_graphql_api_id": "gid://shopify/Order/450789469",
            "total_price": "199.65",
            "tags": "imported, vip",
            "discount_codes": [{"code": "TENOFF", "amount": "10.00"}],
            "line_items": [{"product_id": 632910392}, {"product_id": None}],
            "shipping_lines": [{"title": "Standard Shipping"}],
            "order_number": 1001,
            "customer": {"orders_count": 1},
            "fulfillment_status": None,
        },
    )
    assert snapshot.kind == EntityKind.ORDER
    assert snapshot.id == "450789469"
    assert snapshot.graphql_id == "gid://shopify/Order/450789469"
    assert snapshot.tags == ("imported", "vip")
    assert snapshot.discount_codes == ("TENOFF",)
    assert snapshot.line_item_product_ids == ("632910392",)
    assert snapshot.shipping_titles == ("Standard Shipping",)
    assert snapshot.customer_orders_count == 1
    assert snapshot.fulfillment_status is None


def test_rest_customer_without_graphql_id_builds_one():
    snapshot = snapshot_from_rest(
        EntityKind.CUSTOMER,
        {
            "id": 207119551,
            "email": "",
            "total_spent": "0.00",
            "orders_count": 0,
            "accepts_marketing": False,
            "default_address": {"country_code": "CA"},
        },
    )
    assert snapshot.graphql_id == "gid://shopify/Customer/207119551"
    assert snapshot.email is None
    assert snapshot.orders_count == "0"
    assert snapshot.country_code == "CA"


def test_rest_product_sums_variant_inventory():
    snapshot = snapshot_from_rest(
        EntityKind.PRODUCT,
        {
            "id": 632910392,
            "title": "IPod Nano",
            "variants": [
                {"price": "199.00", "sku": "IPOD-1", "inventory_quantity": 4},
                {"price": "209.00", "sku": "", "inventory_quantity": 6},
            ],
        },
    )
    assert snapshot.price == "199.00"
    assert snapshot.skus == ("IPOD-1",)
    assert snapshot.total_inventory == 10


def test_rest_product_without_inventory_field():
    snapshot = snapshot_from_rest(EntityKind.PRODUCT, {"id": 1, "variants": [{"price": "5.00"}]})
    assert snapshot.total_inventory is None


def test_missing_id_is_rejected():
    with pytest.raises(ValueError):
        snapshot_from_rest(EntityKind.ORDER, {"total_price": "10.00"})
    with pytest.raises(ValueError):
        snapshot_from_graphql(EntityKind.ORDER, {"id": ""})


def test_graphql_order_node():
    snapshot = snapshot_from_graphql(
        EntityKind.ORDER,
        {
            "id": "gid://shopify/Order/1001",
            "tags": ["vip", "vip", "new"],
            "totalPriceSet": {"shopMoney": {"amount": "42.50"}},
            "discountCodes": ["SPRING"],
            "lineItems": {"edges": [{"node": {"product": {"id": "gid://shopify/Product/3001"}}}]},
            "shippingLines": {"edges": [{"node": {"title": "Express"}}]},
            "displayFulfillmentStatus": "UNFULFILLED",
            "customer": {"id": "gid://shopify/Customer/9", "ordersCount": "3"},
        },
    )
    assert snapshot.id == "1001"
    assert snapshot.graphql_id == "gid://shopify/Order/1001"
    assert snapshot.tags == ("vip", "new")
    assert snapshot.total_price == "42.50"
    assert snapshot.discount_codes == ("SPRING",)
    assert snapshot.line_item_product_ids == ("3001",)
    assert snapshot.shipping_titles == ("Express",)
    assert snapshot.fulfillment_status == "UNFULFILLED"
    assert snapshot.customer_orders_count == 3


def test_graphql_customer_and_product_nodes():
    customer = snapshot_from_graphql(
        EntityKind.CUSTOMER,
        {
            "id": "gid://shopify/Customer/9",
            "email": "ada@example.com",
            "amountSpent": {"amount": "300.00"},
            "numberOfOrders": "2",
            "acceptsMarketing": True,
            "defaultAddress": {"countryCode": "US"},
            "createdAt": "2023-01-01T00:00:00Z",
        },
    )
    assert customer.total_spent == "300.00"
    assert customer.orders_count == "2"
    assert customer.accepts_marketing is True
    assert customer.country_code == "US"

    product = snapshot_from_graphql(
        EntityKind.PRODUCT,
        {
            "id": "gid://shopify/Product/3001",
            "title": "Tee",
            "priceRange": {"minVariantPrice": {"amount": "15.00"}},
            "totalInventory": 2,
            "variants": {"edges": [{"node": {"sku": "TEE-1", "price": "15.00"}}]},
        },
    )
    assert product.price == "15.00"
    assert product.total_inventory == 2
    assert product.skus == ("TEE-1",)


def test_split_tags_collapses_case_duplicates_to_first_spelling():
    assert split_tags("VIP, vip, Wholesale, WHOLESALE") == ["VIP", "Wholesale"]
