"""Shared plumbing for the GitLab domain clients."""

from __future__ import annotations

from typing import Any, Callable, Optional

from sprintmetrics.services.gitlab.executor import GraphQLExecutor
from sprintmetrics.services.gitlab.pagination import Page, paginate_connection
from sprintmetrics.services.rate_limiter import RateLimitManager
from sprintmetrics.shared.constants import PaginationConfig

ConnectionExtractor = Callable[[dict[str, Any]], Optional[dict[str, Any]]]


class GitLabDomainClient:
    """Base class holding the executor, rate limiter and group path.

    Args:
        executor: GraphQL execution boundary
        rate_limiter: Shared inter-page delay
        group_path: Full path of the GitLab group being analysed
        page_delay_ms: Default pause between pages
    """

    def __init__(
        self,
        executor: GraphQLExecutor,
        rate_limiter: RateLimitManager,
        group_path: str,
        page_delay_ms: int = PaginationConfig.PAGE_DELAY_MS,
    ) -> None:
        self._executor = executor
        self._rate_limiter = rate_limiter
        self.group_path = group_path
        self.page_delay_ms = page_delay_ms

    async def _paginate(
        self,
        query: str,
        variables: dict[str, Any],
        extract: ConnectionExtractor,
        context: str,
        *,
        page_size: int = PaginationConfig.PAGE_SIZE,
        delay_ms: int | None = None,
        start_cursor: str | None = None,
    ) -> list[dict[str, Any]]:
        """Run ``query`` page by page, feeding ``first``/``after`` variables.

        ``extract`` picks the connection out of the response ``data``; it may
        raise to abort, or return ``None`` to end pagination.
        """

        async def fetch_page(cursor: str | None) -> Page | None:
            data = await self._executor.execute(
                query,
                {**variables, "first": page_size, "after": cursor},
                context,
            )
            return Page.from_connection(extract(data))

        return await paginate_connection(
            fetch_page,
            self._rate_limiter,
            self.page_delay_ms if delay_ms is None else delay_ms,
            start_cursor,
        )
