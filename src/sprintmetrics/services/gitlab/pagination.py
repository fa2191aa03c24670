"""Cursor pagination over GitLab GraphQL connections.

Every collection is read the same way: request a page, keep its nodes,
adopt ``pageInfo.endCursor`` and ``hasNextPage``, and pause between pages.
Page N+1 is never requested before page N's cursor is known.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from sprintmetrics.services.rate_limiter import RateLimitManager

logger = logging.getLogger(__name__)


@dataclass
class Page:
    """One page of a GraphQL connection."""

    nodes: list[dict[str, Any]] = field(default_factory=list)
    has_next_page: bool = False
    end_cursor: str | None = None

    @classmethod
    def from_connection(cls, connection: dict[str, Any] | None) -> Page | None:
        """Build a page from ``{nodes, pageInfo}``; ``None`` passes through."""
        if connection is None:
            return None
        page_info = connection.get("pageInfo") or {}
        return cls(
            nodes=list(connection.get("nodes") or []),
            has_next_page=bool(page_info.get("hasNextPage")),
            end_cursor=page_info.get("endCursor"),
        )


FetchPage = Callable[[Optional[str]], Awaitable[Optional[Page]]]


async def paginate_connection(
    fetch_page: FetchPage,
    rate_limiter: RateLimitManager,
    delay_ms: int,
    start_cursor: str | None = None,
) -> list[dict[str, Any]]:
    """Collect every node of a connection.

    Args:
        fetch_page: Called with the cursor to resume after; returns the page,
            or ``None`` when the connection is absent (pagination stops).
        rate_limiter: Sleeps ``delay_ms`` between pages
        delay_ms: Pause between consecutive pages
        start_cursor: Cursor to resume from, ``None`` for the first page

    Returns:
        Nodes of all pages in the order GitLab returned them
    """
    items: list[dict[str, Any]] = []
    cursor = start_cursor
    pages = 0

    while True:
        page = await fetch_page(cursor)
        if page is None:
            break

        pages += 1
        items.extend(page.nodes)

        if not page.has_next_page:
            break
        if not page.end_cursor:
            logger.warning(
                "Connection reported another page without an end cursor, stopping after %d page(s)",
                pages,
            )
            break

        cursor = page.end_cursor
        await rate_limiter.delay(delay_ms)

    logger.debug("Fetched %d node(s) across %d page(s)", len(items), pages)
    return items


__all__ = ["FetchPage", "Page", "paginate_connection"]
