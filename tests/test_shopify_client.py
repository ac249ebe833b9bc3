import pytest

from app.core.entity_kinds import EntityKind
from app.core.rate_limit import RequestSpacingLimiter
from app.services.retry_client import MaxRetriesExceededError, RateLimitedRetryClient
from app.services.shopify_client import ShopifyApiError, ShopifyClient


class FakeResponse:
    def __init__(self, status_code: int = 200, body=None, headers: dict[str, str] | None = None):
        self.status_code = status_code
        self._body = body if body is not None else {}
        self.headers = headers or {}
        self.text = str(self._body)

    def json(self):
        return self._body


class FakeSession:
    def __init__(self, responses: list[FakeResponse]):
        self.headers: dict[str, str] = {}
        self.responses = list(responses)
        self.requests: list[tuple[str, str, dict]] = []

    def request(self, method, url, timeout=None, **kwargs):
        self.requests.append((method, url, kwargs))
        return self.responses.pop(0)


def _client(responses: list[FakeResponse]) -> tuple[ShopifyClient, FakeSession, list[float]]:
    sleeps: list[float] = []
    retry_client = RateLimitedRetryClient(
        limiter=RequestSpacingLimiter(min_interval_seconds=0, sleep=sleeps.append),
        max_attempts=5,
        initial_delay_seconds=1.0,
        sleep=sleeps.append,
    )
    session = FakeSession(responses)
    client = ShopifyClient(
        shop="demo-shop.myshopify.com",
        access_token="shpat_test",
        retry_client=retry_client,
        session=session,
        api_version="2024-01",
        timeout_seconds=5,
    )
    return client, session, sleeps


def test_rest_page_reads_items_and_link_cursor():
    client, session, _ = _client(
        [
            FakeResponse(
                body={"orders": [{"id": 1}, {"id": 2}]},
                headers={
                    "Link": '<https://demo-shop.myshopify.com/admin/api/2024-01/orders.json?limit=2&page_info=abc>; rel="next"'
                },
            )
        ]
    )
    page = client.fetch_rest_page(EntityKind.ORDER, None, 2)

    assert [item["id"] for item in page.items] == [1, 2]
    assert page.next_cursor == "abc"
    method, url, kwargs = session.requests[0]
    assert method == "GET"
    assert url == "https://demo-shop.myshopify.com/admin/api/2024-01/orders.json"
    assert kwargs["params"]["status"] == "any"
    assert session.headers["X-Shopify-Access-Token"] == "shpat_test"


def test_rest_page_with_cursor_only_sends_page_info():
    client, session, _ = _client([FakeResponse(body={"customers": []})])
    page = client.fetch_rest_page(EntityKind.CUSTOMER, "abc", 25)

    assert page.items == []
    assert page.next_cursor is None
    params = session.requests[0][2]["params"]
    assert params["page_info"] == "abc"
    assert "status" not in params


def test_rate_limited_request_is_retried_with_hint():
    client, session, sleeps = _client(
        [
            FakeResponse(status_code=429, headers={"Retry-After": "2.0"}),
            FakeResponse(body={"products": [{"id": 7}]}),
        ]
    )
    page = client.fetch_rest_page(EntityKind.PRODUCT, None, 25)
    assert page.items == [{"id": 7}]
    assert sleeps == [2.0]
    assert len(session.requests) == 2


def test_persistent_rate_limit_gives_up_after_five_attempts():
    client, session, _ = _client([FakeResponse(status_code=429) for _ in range(6)])
    with pytest.raises(MaxRetriesExceededError):
        client.fetch_rest_page(EntityKind.ORDER, None, 25)
    assert len(session.requests) == 5


def test_server_error_is_not_retried():
    client, session, _ = _client([FakeResponse(status_code=500, body={"errors": "boom"})])
    with pytest.raises(ShopifyApiError) as exc_info:
        client.fetch_rest_page(EntityKind.ORDER, None, 25)
    assert exc_info.value.status_code == 500
    assert len(session.requests) == 1


def test_graphql_page_uses_page_info():
    client, session, _ = _client(
        [
            FakeResponse(
                body={
                    "data": {
                        "customers": {
                            "edges": [{"node": {"id": "gid://shopify/Customer/1"}}],
                            "pageInfo": {"hasNextPage": True, "endCursor": "cur-1"},
                        }
                    }
                }
            )
        ]
    )
    page = client.fetch_graphql_page(EntityKind.CUSTOMER, None, 250)
    assert page.items == [{"id": "gid://shopify/Customer/1"}]
    assert page.next_cursor == "cur-1"
    body = session.requests[0][2]["json"]
    assert body["variables"] == {"first": 250, "cursor": None}


def test_throttled_graphql_query_is_retried():
    client, session, sleeps = _client(
        [
            FakeResponse(body={"errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED"}}]}),
            FakeResponse(
                body={"data": {"products": {"edges": [], "pageInfo": {"hasNextPage": False, "endCursor": None}}}}
            ),
        ]
    )
    page = client.fetch_graphql_page(EntityKind.PRODUCT, None, 250)
    assert page.items == []
    assert sleeps == [1.0]


def test_update_tags_sends_gid_and_tag_string():
    client, session, _ = _client(
        [FakeResponse(body={"data": {"orderUpdate": {"order": {"id": "x"}, "userErrors": []}}})]
    )
    client.update_tags(EntityKind.ORDER, "1001", "vip, high-value")
    variables = session.requests[0][2]["json"]["variables"]
    assert variables == {"input": {"id": "gid://shopify/Order/1001", "tags": "vip, high-value"}}


def test_update_tags_user_errors_raise():
    client, _, _ = _client(
        [
            FakeResponse(
                body={"data": {"customerUpdate": {"customer": None, "userErrors": [{"message": "Tags invalid"}]}}}
            )
        ]
    )
    with pytest.raises(ShopifyApiError) as exc_info:
        client.update_tags(EntityKind.CUSTOMER, "gid://shopify/Customer/5", "bad")
    assert "Tags invalid" in str(exc_info.value)


def test_fetch_product_title():
    client, session, _ = _client([FakeResponse(body={"data": {"product": {"title": "Organic Tee"}}})])
    assert client.fetch_product_title("3001") == "Organic Tee"
    assert session.requests[0][2]["json"]["variables"] == {"id": "gid://shopify/Product/3001"}
