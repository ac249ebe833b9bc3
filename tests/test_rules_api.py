SHOP = "demo-shop.myshopify.com"
OTHER_SHOP = "other-shop.myshopify.com"


def _headers(shop: str = SHOP) -> dict[str, str]:
    return {"X-Shopify-Shop-Domain": shop}


def _rule_payload(**overrides) -> dict:
    payload = {
        "name": "Big orders",
        "applies_to": "Order",
        "condition": "total_greater_than",
        "condition_value": "100",
        "tag": "high-value",
    }
    payload.update(overrides)
    return payload


def test_create_and_list_rules_newest_first(test_context):
    client, _ = test_context

    first = client.post("/rules", json=_rule_payload(), headers=_headers())
    assert first.status_code == 201, first.text
    second = client.post(
        "/rules",
        json=_rule_payload(name="VIP", applies_to="Customer", condition="total_spent", tag="vip"),
        headers=_headers(),
    )
    assert second.status_code == 201, second.text

    body = first.json()
    assert body["is_active"] is True
    assert body["tag"] == "high-value"

    listing = client.get("/rules", headers=_headers())
    assert listing.status_code == 200
    data = listing.json()
    assert [item["name"] for item in data["items"]] == ["VIP", "Big orders"]
    assert data["pagination"]["total"] == 2

    filtered = client.get("/rules", params={"applies_to": "Order"}, headers=_headers())
    assert [item["name"] for item in filtered.json()["items"]] == ["Big orders"]


def test_rules_are_scoped_by_shop(test_context):
    client, _ = test_context
    created = client.post("/rules", json=_rule_payload(), headers=_headers())
    rule_id = created.json()["id"]

    other = client.get("/rules", headers=_headers(OTHER_SHOP))
    assert other.json()["items"] == []

    delete_other = client.delete(f"/rules/{rule_id}", headers=_headers(OTHER_SHOP))
    assert delete_other.status_code == 404
    assert delete_other.json()["error"]["code"] == "not_found"


def test_delete_rule(test_context):
    client, _ = test_context
    rule_id = client.post("/rules", json=_rule_payload(), headers=_headers()).json()["id"]

    deleted = client.delete(f"/rules/{rule_id}", headers=_headers())
    assert deleted.status_code == 200
    assert deleted.json() == {"ok": True, "id": rule_id}

    again = client.delete(f"/rules/{rule_id}", headers=_headers())
    assert again.status_code == 404


def test_condition_must_fit_entity_kind(test_context):
    client, _ = test_context
    res = client.post(
        "/rules",
        json=_rule_payload(applies_to="Customer", condition="total_greater_than"),
        headers=_headers(),
    )
    assert res.status_code == 422
    assert res.json()["error"]["code"] == "validation_error"


def test_blank_fields_are_rejected(test_context):
    client, _ = test_context
    res = client.post("/rules", json=_rule_payload(tag="  "), headers=_headers())
    assert res.status_code == 422

    missing = client.post("/rules", json={"name": "x"}, headers=_headers())
    assert missing.status_code == 422


def test_tag_cannot_contain_comma(test_context):
    client, _ = test_context
    res = client.post("/rules", json=_rule_payload(tag="a,b"), headers=_headers())
    assert res.status_code == 422


def test_shop_header_is_required(test_context):
    client, _ = test_context
    missing = client.get("/rules")
    assert missing.status_code == 401
    assert missing.json()["error"]["code"] == "unauthorized"

    invalid = client.get("/rules", headers={"X-Shopify-Shop-Domain": "example.com"})
    assert invalid.status_code == 401


def test_condition_catalog(test_context):
    client, _ = test_context
    res = client.get("/rules/conditions")
    assert res.status_code == 200
    catalog = {item["applies_to"]: item["conditions"] for item in res.json()}
    assert set(catalog) == {"Order", "Customer", "Product"}
    assert "inventory_low" in catalog["Product"]
