from typing import Any, Protocol

import requests

from app.core.config import settings
from app.core.entity_kinds import EntityKind
from app.core.id_utils import to_gid
from app.services.pagination import CursorLoopError, Page, parse_next_page_info
from app.services.retry_client import (
    MaxRetriesExceededError,
    RateLimitedError,
    RateLimitedRetryClient,
    build_retry_client,
)


class ShopifyApiError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


# Failures of a remote read that callers report as an upstream error.
UPSTREAM_ERRORS: tuple[type[Exception], ...] = (
    ShopifyApiError,
    MaxRetriesExceededError,
    CursorLoopError,
    requests.RequestException,
)


class CommerceClient(Protocol):
    def fetch_rest_page(self, kind: EntityKind, cursor: str | None, limit: int) -> Page:
        ...

    def fetch_graphql_page(self, kind: EntityKind, cursor: str | None, first: int) -> Page:
        ...

    def update_tags(self, kind: EntityKind, entity_id: str, tags: str) -> None:
        ...

    def fetch_product_title(self, product_id: str) -> str | None:
        ...


_REST_FIELDS: dict[EntityKind, str] = {
    EntityKind.ORDER: (
        "id,admin_graphql_api_id,total_price,tags,line_items,discount_codes,"
        "shipping_lines,order_number,customer,fulfillment_status"
    ),
    EntityKind.PRODUCT: "id,admin_graphql_api_id,title,tags,vendor,product_type,variants,published_at",
    EntityKind.CUSTOMER: (
        "id,admin_graphql_api_id,email,tags,total_spent,orders_count,"
        "accepts_marketing,created_at,default_address"
    ),
}

_GRAPHQL_NODE_FIELDS: dict[EntityKind, str] = {
    EntityKind.ORDER: """
        id
        tags
        totalPriceSet { shopMoney { amount } }
        discountCodes
        lineItems(first: 50) { edges { node { product { id } } } }
        shippingLines(first: 10) { edges { node { title } } }
        displayFulfillmentStatus
        customer { id ordersCount }
    """,
    EntityKind.CUSTOMER: """
        id
        email
        tags
        amountSpent { amount }
        ordersCount
        acceptsMarketing
        createdAt
        defaultAddress { countryCode }
    """,
    EntityKind.PRODUCT: """
        id
        title
        tags
        vendor
        productType
        priceRange { minVariantPrice { amount } }
        totalInventory
        publishedAt
        variants(first: 25) { edges { node { sku price } } }
    """,
}

_PRODUCT_TITLE_QUERY = """
query productTitle($id: ID!) {
  product(id: $id) { title }
}
"""


def _collection_query(kind: EntityKind) -> str:
    return f"""
query {kind.plural}Page($first: Int!, $cursor: String) {{
  {kind.plural}(first: $first, after: $cursor, reverse: true) {{
    pageInfo {{ hasNextPage endCursor }}
    edges {{ node {{ {_GRAPHQL_NODE_FIELDS[kind]} }} }}
  }}
}}
"""


def _update_mutation(kind: EntityKind) -> str:
    return f"""
mutation {kind.slug}Update($input: {kind.value}Input!) {{
  {kind.slug}Update(input: $input) {{
    {kind.slug} {{ id tags }}
    userErrors {{ field message }}
  }}
}}
"""


def _retry_after_seconds(response: requests.Response) -> float | None:
    raw = response.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


class ShopifyClient:
    """Admin API client for one shop. Every request goes through the retry client."""

    def __init__(
        self,
        *,
        shop: str,
        access_token: str,
        retry_client: RateLimitedRetryClient | None = None,
        session: requests.Session | None = None,
        api_version: str | None = None,
        timeout_seconds: int | None = None,
    ):
        self.shop = shop
        self.base_url = f"https://{shop}/admin/api/{api_version or settings.shopify_api_version}"
        self.retry_client = retry_client or build_retry_client()
        self.timeout_seconds = timeout_seconds or settings.shopify_request_timeout_seconds
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "X-Shopify-Access-Token": access_token,
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )

    def fetch_rest_page(self, kind: EntityKind, cursor: str | None, limit: int) -> Page:
        params: dict[str, Any] = {"limit": limit, "fields": _REST_FIELDS[kind]}
        if cursor:
            params["page_info"] = cursor
        elif kind == EntityKind.ORDER:
            params["status"] = "any"

        response = self.retry_client.call(
            lambda: self._send("GET", f"{self.base_url}/{kind.plural}.json", params=params),
            operation=f"{kind.slug}.list",
        )
        body = response.json()
        items = body.get(kind.plural) if isinstance(body, dict) else None
        if not isinstance(items, list):
            raise ShopifyApiError(f"Unexpected {kind.plural} list response", status_code=response.status_code)
        return Page(items=items, next_cursor=parse_next_page_info(response.headers.get("Link")))

    def fetch_graphql_page(self, kind: EntityKind, cursor: str | None, first: int) -> Page:
        data = self._graphql(
            _collection_query(kind),
            {"first": first, "cursor": cursor},
            operation=f"{kind.slug}.graphql_list",
        )
        connection = data.get(kind.plural) or {}
        page_info = connection.get("pageInfo") or {}
        nodes = [
            edge["node"]
            for edge in connection.get("edges") or []
            if isinstance(edge, dict) and isinstance(edge.get("node"), dict)
        ]
        next_cursor = page_info.get("endCursor") if page_info.get("hasNextPage") else None
        return Page(items=nodes, next_cursor=next_cursor)

    def update_tags(self, kind: EntityKind, entity_id: str, tags: str) -> None:
        data = self._graphql(
            _update_mutation(kind),
            {"input": {"id": to_gid(kind.value, entity_id), "tags": tags}},
            operation=f"{kind.slug}.update_tags",
        )
        result = data.get(f"{kind.slug}Update") or {}
        user_errors = result.get("userErrors") or []
        if user_errors:
            messages = "; ".join(str(item.get("message") or item) for item in user_errors)
            raise ShopifyApiError(f"{kind.value} tag update rejected: {messages}")

    def fetch_product_title(self, product_id: str) -> str | None:
        data = self._graphql(
            _PRODUCT_TITLE_QUERY,
            {"id": to_gid(EntityKind.PRODUCT.value, product_id)},
            operation="product.title",
        )
        product = data.get("product") or {}
        title = product.get("title")
        return str(title) if title else None

    def _graphql(self, query: str, variables: dict[str, Any], *, operation: str) -> dict[str, Any]:
        def _call() -> dict[str, Any]:
            response = self._send(
                "POST",
                f"{self.base_url}/graphql.json",
                json={"query": query, "variables": variables},
            )
            body = response.json()
            errors = body.get("errors") if isinstance(body, dict) else None
            if errors:
                if any(
                    isinstance(item, dict) and (item.get("extensions") or {}).get("code") == "THROTTLED"
                    for item in errors
                ):
                    raise RateLimitedError("GraphQL query throttled")
                messages = "; ".join(
                    str(item.get("message") if isinstance(item, dict) else item) for item in errors
                )
                raise ShopifyApiError(f"GraphQL error: {messages}", status_code=response.status_code)
            return (body.get("data") if isinstance(body, dict) else None) or {}

        return self.retry_client.call(_call, operation=operation)

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        response = self.session.request(method, url, timeout=self.timeout_seconds, **kwargs)
        if response.status_code == 429:
            raise RateLimitedError(
                f"Shopify rate limited {method} {url}",
                retry_after_seconds=_retry_after_seconds(response),
            )
        if response.status_code >= 400:
            raise ShopifyApiError(
                f"Shopify {method} {url} failed: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )
        return response


def build_shopify_client(shop: str, access_token: str) -> ShopifyClient:
    return ShopifyClient(shop=shop, access_token=access_token)
