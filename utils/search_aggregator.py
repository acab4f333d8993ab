"""
Search Aggregator

Fans a query out to several discovery backends at once and merges the hits
into one deduplicated list, official registry results first.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

from .errors import BackendError

logger = logging.getLogger(__name__)

SOURCE_RANKS = {
    "official-registry": 0,
    "smithery": 1,
    "npm": 2,
}
OTHER_RANK = 3


@dataclass
class SearchResult:
    """One discovery hit from a backend."""

    name: str
    package_identifier: str
    description: str = ""
    source: str = "npm"
    url: Optional[str] = None
    version: Optional[str] = None
    command: Optional[str] = None
    args: Optional[List[str]] = None
    downloads: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


Backend = Callable[[str], Awaitable[List[SearchResult]]]


def source_rank(source: str) -> int:
    return SOURCE_RANKS.get(source, OTHER_RANK)


def merge_results(results: Iterable[SearchResult]) -> List[SearchResult]:
    """
    Deduplicate by case-folded package identifier and rank the survivors.

    For a shared identifier the lower-ranked source wins, so a secondary
    index never shadows the official registry. Output is sorted by
    (source rank, name).
    """
    seen: Dict[str, SearchResult] = {}
    for result in results:
        if not result.package_identifier:
            continue
        key = result.package_identifier.casefold()
        existing = seen.get(key)
        if existing is None or source_rank(result.source) < source_rank(existing.source):
            seen[key] = result

    return sorted(
        seen.values(),
        key=lambda r: (source_rank(r.source), r.name.casefold(), r.name),
    )


class SearchAggregator:
    """Query discovery backends concurrently and merge their results."""

    def __init__(self, backends: Mapping[str, Backend], timeout: float = 10.0):
        """
        Initialize the aggregator.

        Args:
            backends: Source id -> coroutine function returning SearchResults
            timeout: Seconds each backend gets before it counts as empty
        """
        self.backends = dict(backends)
        self.timeout = timeout

    @property
    def sources(self) -> List[str]:
        return list(self.backends)

    async def search(self, query: str, sources: Optional[Iterable[str]] = None) -> List[SearchResult]:
        """
        Search the selected backends (default: all).

        Never raises: a backend that errors or times out contributes nothing.
        """
        selected = self.sources if sources is None else [s for s in sources if s in self.backends]

        batches = await asyncio.gather(*(self._query(source, query) for source in selected))
        return merge_results(hit for batch in batches for hit in batch)

    async def _query(self, source: str, query: str) -> List[SearchResult]:
        try:
            return list(await asyncio.wait_for(self.backends[source](query), timeout=self.timeout))
        except asyncio.TimeoutError:
            error = BackendError(source, f"timed out after {self.timeout}s")
        except BackendError as e:
            error = e
        except Exception as e:
            error = BackendError(source, str(e) or type(e).__name__)

        logger.warning("Search backend failed, skipping: %s", error)
        return []
