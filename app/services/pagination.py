import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator
from urllib.parse import parse_qs, unquote, urlparse

_LINK_PART_RE = re.compile(r"<([^>]+)>\s*;\s*rel=\"?([a-zA-Z]+)\"?")


@dataclass(frozen=True)
class Page:
    items: list[dict[str, Any]] = field(default_factory=list)
    next_cursor: str | None = None


PageFetcher = Callable[[str | None], Page]


class CursorLoopError(RuntimeError):
    pass


def parse_next_page_info(link_header: str | None) -> str | None:
    """`page_info` of the rel="next" entry in a REST `Link` header."""
    if not link_header:
        return None
    for url, rel in _LINK_PART_RE.findall(link_header):
        if rel.lower() != "next":
            continue
        values = parse_qs(urlparse(url).query).get("page_info")
        if values and values[0]:
            return unquote(values[0])
    return None


class CursorWalker:
    """
    Cursor-based paging over one remote collection.

    `fetch` reads a single page and leaves persisting the cursor to the
    caller, so a run can stop after any page and resume later. `pages`
    follows cursors until the collection is exhausted.
    """

    def __init__(self, fetch_page: PageFetcher):
        self._fetch_page = fetch_page

    def fetch(self, cursor: str | None = None) -> Page:
        page = self._fetch_page(cursor or None)
        next_cursor = page.next_cursor or None
        if next_cursor is not None and next_cursor == cursor:
            raise CursorLoopError("Remote pagination returned the same cursor twice")
        return Page(items=list(page.items), next_cursor=next_cursor)

    def pages(self, cursor: str | None = None) -> Iterator[Page]:
        while True:
            page = self.fetch(cursor)
            yield page
            if page.next_cursor is None:
                return
            cursor = page.next_cursor
