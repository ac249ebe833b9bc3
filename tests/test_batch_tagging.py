from datetime import datetime, timezone

from sqlalchemy import select

from app.core.config import settings
from app.core.entity_kinds import EntityKind
from app.models.merchant_settings import EntityBatchState
from app.models.rule import Rule
from app.models.tag_activity import TagActivity, TagUsage
from app.services.batch_tagging_service import process_batch
from app.services.shopify_client import ShopifyApiError

SHOP = "demo-shop.myshopify.com"
HEADERS = {"X-Shopify-Shop-Domain": SHOP}


def _order(order_id: int, total: str, tags: str = "") -> dict:
    return {
        "id": order_id,
        "admin_graphql_api_id": f"gid://shopify/Order/{order_id}",
        "total_price": total,
        "tags": tags,
    }


def _create_order_rule(client, *, value: str = "100", tag: str = "high-value"):
    res = client.post(
        "/rules",
        json={
            "name": "Big orders",
            "applies_to": "Order",
            "condition": "total_greater_than",
            "condition_value": value,
            "tag": tag,
        },
        headers=HEADERS,
    )
    assert res.status_code == 201, res.text
    return res.json()


def test_batch_walks_two_pages_and_finishes(test_context, commerce):
    client, session_local = test_context
    _create_order_rule(client)
    commerce.rest_pages[EntityKind.ORDER] = [
        [_order(1, "150.00"), _order(2, "50.00")],
        [_order(3, "300.00", tags="imported")],
    ]

    first = client.post("/batch/order", headers=HEADERS)
    assert first.status_code == 200, first.text
    body = first.json()
    assert body["next_cursor"] == "1"
    assert body["progress"] == {
        "processed": 2,
        "batch_size": 2,
        "done": False,
        "applied_tags": ["high-value"],
        "failed": 0,
    }

    status = client.get("/batch/order", headers=HEADERS).json()
    assert status["processing"] is True
    assert status["cursor"] == "1"

    second = client.post("/batch/order/continue")
    assert second.status_code == 200, second.text
    results = second.json()["results"]
    assert len(results) == 1
    assert results[0]["shop"] == SHOP
    assert results[0]["ok"] is True
    assert results[0]["progress"]["done"] is True
    assert results[0]["progress"]["processed"] == 1

    assert [cursor for _, _, cursor in commerce.fetches] == [None, "1"]
    assert commerce.updates == [
        (EntityKind.ORDER, "gid://shopify/Order/1", "high-value"),
        (EntityKind.ORDER, "gid://shopify/Order/3", "imported, high-value"),
    ]

    with session_local() as db:
        state = db.execute(select(EntityBatchState)).scalar_one()
        assert state.cursor is None
        assert state.progress["done"] is True
        usage = db.execute(select(TagUsage).where(TagUsage.tag == "high-value")).scalar_one()
        assert usage.count == 2
        assert len(db.execute(select(TagActivity)).scalars().all()) == 2

    finished = client.get("/batch/order", headers=HEADERS).json()
    assert finished["processing"] is False

    nothing_left = client.post("/batch/order/continue").json()
    assert nothing_left["results"] == []


def test_batch_start_is_rejected_while_running(test_context, commerce):
    client, _ = test_context
    _create_order_rule(client)
    commerce.rest_pages[EntityKind.ORDER] = [[_order(1, "150.00")], [_order(2, "150.00")]]

    assert client.post("/batch/order", headers=HEADERS).status_code == 200
    again = client.post("/batch/order", headers=HEADERS)
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "conflict"


def test_write_failure_skips_entity_and_continues(test_context, commerce):
    client, session_local = test_context
    _create_order_rule(client)
    commerce.rest_pages[EntityKind.ORDER] = [[_order(1, "150.00"), _order(2, "150.00"), _order(3, "150.00")]]
    commerce.failing_ids = {"2"}

    res = client.post("/batch/order", headers=HEADERS)
    assert res.status_code == 200, res.text
    progress = res.json()["progress"]
    assert progress["done"] is True
    assert progress["processed"] == 3
    assert progress["failed"] == 1
    assert [entity_id for _, entity_id, _ in commerce.updates] == [
        "gid://shopify/Order/1",
        "gid://shopify/Order/3",
    ]

    with session_local() as db:
        entity_ids = sorted(row.entity_id for row in db.execute(select(TagActivity)).scalars())
        assert entity_ids == ["1", "3"]


def test_fetch_failure_keeps_cursor_and_can_be_retried(test_context, commerce):
    client, session_local = test_context
    _create_order_rule(client)
    commerce.rest_pages[EntityKind.ORDER] = [[_order(1, "150.00")]]
    commerce.fetch_error = ShopifyApiError("Shopify GET orders failed: 503", status_code=503)

    failed = client.post("/batch/order", headers=HEADERS)
    assert failed.status_code == 502
    error = failed.json()["error"]
    assert error["code"] == "upstream_error"
    assert error["details"][0]["message"] == "Shopify GET orders failed: 503"

    with session_local() as db:
        assert db.execute(select(EntityBatchState)).scalar_one_or_none() is None

    commerce.fetch_error = None
    retried = client.post("/batch/order", headers=HEADERS)
    assert retried.status_code == 200
    assert retried.json()["progress"]["done"] is True


def test_no_rules_finishes_without_fetching(test_context, commerce):
    client, _ = test_context
    res = client.post("/batch/product", headers=HEADERS)
    assert res.status_code == 200
    assert res.json()["progress"] == {
        "processed": 0,
        "batch_size": 0,
        "done": True,
        "applied_tags": None,
        "failed": 0,
    }
    assert commerce.fetches == []


def test_unknown_entity_type_is_rejected(test_context):
    client, _ = test_context
    res = client.post("/batch/invoice", headers=HEADERS)
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "bad_request"


def test_continue_requires_cron_secret_when_configured(test_context):
    client, _ = test_context
    settings.batch_cron_secret = "cron-secret-value"

    denied = client.post("/batch/order/continue")
    assert denied.status_code == 401

    allowed = client.post("/batch/order/continue", headers={"X-Cron-Secret": "cron-secret-value"})
    assert allowed.status_code == 200


def test_process_batch_visits_each_entity_once(db_session, commerce):
    db_session.add(
        Rule(
            id="rule-1",
            shop=SHOP,
            name="Everything",
            applies_to="Order",
            condition="total_greater_than",
            condition_value="0",
            tag="seen",
            is_active=True,
            created_at=datetime.now(timezone.utc),
            updated_at=datetime.now(timezone.utc),
        )
    )
    db_session.commit()
    commerce.rest_pages[EntityKind.ORDER] = [
        [_order(1, "10"), _order(2, "10")],
        [_order(3, "10"), _order(4, "10")],
    ]
    sleeps: list[float] = []

    first = process_batch(
        db_session,
        shop=SHOP,
        kind=EntityKind.ORDER,
        client=commerce,
        entity_delay_seconds=0.5,
        sleep=sleeps.append,
    )
    second = process_batch(
        db_session,
        shop=SHOP,
        kind=EntityKind.ORDER,
        client=commerce,
        cursor=first.next_cursor,
        entity_delay_seconds=0.5,
        sleep=sleeps.append,
    )

    assert first.done is False
    assert second.done is True
    assert second.next_cursor is None
    assert [entity_id for _, entity_id, _ in commerce.updates] == [
        f"gid://shopify/Order/{order_id}" for order_id in (1, 2, 3, 4)
    ]
    assert sleeps == [0.5, 0.5]


def test_missing_referenced_product_drops_rule_for_the_page(test_context, commerce):
    client, session_local = test_context
    for value, tag in (("555", "cotton"), ("gid://shopify/Product/555", "cotton-gid")):
        res = client.post(
            "/rules",
            json={
                "name": "Same title as product 555",
                "applies_to": "Product",
                "condition": "title_contains",
                "condition_value": value,
                "tag": tag,
            },
            headers=HEADERS,
        )
        assert res.status_code == 201, res.text
    commerce.rest_pages[EntityKind.PRODUCT] = [
        [
            {"id": 10, "title": "555 Cotton Tee", "tags": ""},
            {"id": 11, "title": "Linen Shirt", "tags": ""},
        ]
    ]

    res = client.post("/batch/product", headers=HEADERS)

    assert res.status_code == 200, res.text
    progress = res.json()["progress"]
    assert progress["done"] is True
    assert progress["processed"] == 2
    assert progress["failed"] == 0
    assert commerce.title_lookups == ["555"]
    assert commerce.updates == []
    with session_local() as db:
        assert db.execute(select(TagActivity)).scalars().all() == []


def test_tag_already_present_in_another_case_is_not_rewritten(test_context, commerce):
    client, session_local = test_context
    _create_order_rule(client)
    commerce.rest_pages[EntityKind.ORDER] = [[_order(5, "150.00", tags="High-Value")]]

    res = client.post("/batch/order", headers=HEADERS)

    assert res.status_code == 200, res.text
    assert res.json()["progress"]["applied_tags"] is None
    assert commerce.updates == []
    with session_local() as db:
        assert db.execute(select(TagUsage)).scalars().all() == []
