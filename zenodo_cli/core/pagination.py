"""Full-result pagination over Zenodo search endpoints.

Zenodo's search API pages results 100 at a time and refuses to page past
10,000 hits.  :func:`paginate_all` walks the pages until it has everything,
or stops at the ceiling and hands back the partial data together with a
:class:`~zenodo_cli.core.errors.TruncationError`.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar, Union

from zenodo_cli.core.data_models import DEFAULT_PAGE_SIZE, SearchResult
from zenodo_cli.core.errors import TruncationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

PAGE_SIZE = DEFAULT_PAGE_SIZE
MAX_RESULTS = 10_000

PageFetcher = Callable[[int], Union[SearchResult[T], Awaitable[SearchResult[T]]]]


@dataclass
class PaginatedResult(Generic[T]):
    """Accumulated hits from every fetched page.

    ``error`` is set only when the result ceiling cut the walk short; the
    hits collected up to that point are still returned.
    """

    hits: List[T] = field(default_factory=list)
    total: int = 0
    error: Optional[TruncationError] = None

    @property
    def is_truncated(self) -> bool:
        return self.error is not None


async def paginate_all(fetch_page: PageFetcher) -> PaginatedResult[Any]:
    """Fetch every page of a search, up to :data:`MAX_RESULTS` hits.

    Args:
        fetch_page: Called with a 1-based page number; may be a plain
            function or a coroutine function. Returns an object with ``hits``
            and ``total``.

    Returns:
        PaginatedResult with all hits and the last reported total

    Raises:
        Any exception raised by ``fetch_page``; partial hits are discarded.
    """
    hits: List[Any] = []
    page = 1

    while True:
        result = fetch_page(page)
        if inspect.isawaitable(result):
            result = await result

        hits.extend(result.hits)
        total = result.total
        logger.debug("Fetched page %d: %d hits (%d/%d)", page, len(result.hits), len(hits), total)

        if len(hits) >= total or len(result.hits) < PAGE_SIZE:
            return PaginatedResult(hits=hits, total=total)
        if len(hits) >= MAX_RESULTS:
            return PaginatedResult(
                hits=hits,
                total=total,
                error=TruncationError(MAX_RESULTS, total),
            )
        page += 1
