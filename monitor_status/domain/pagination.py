"""Page planning for monitor status queries.

The backend caps the number of buckets a single aggregation may return.
Each monitor id can produce one bucket per location, so a page may hold at
most ``max_bucket_size // location_count`` monitor ids.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence

from ..config.models import DEFAULT_MAX_BUCKET_SIZE

# Terms size for the per-location sub-aggregation when no allow-list is given
DEFAULT_LOCATION_BUCKET_SIZE = 100


@dataclass
class PagePlan:
    """Contiguous, non-overlapping slices of the monitor id sequence."""

    ids_per_page: int
    page_count: int
    pages: List[List[str]] = field(default_factory=list)


def ids_per_page(location_count: int, max_bucket_size: int = DEFAULT_MAX_BUCKET_SIZE) -> int:
    """Return how many monitor ids fit in one page (at least 1).

    Zero locations means no location filter and uses a divisor of 1.
    """
    divisor = max(location_count, 1)
    return max(max_bucket_size // divisor, 1)


def page_count(total_ids: int, per_page: int) -> int:
    """Integer ceiling of ``total_ids / per_page``."""
    if total_ids <= 0:
        return 0
    return -(-total_ids // per_page)


def location_bucket_size(location_count: int) -> int:
    """Terms size for the location sub-aggregation."""
    return location_count or DEFAULT_LOCATION_BUCKET_SIZE


def plan_pages(
    monitor_query_ids: Sequence[str],
    location_count: int,
    max_bucket_size: int = DEFAULT_MAX_BUCKET_SIZE,
) -> PagePlan:
    """Split ``monitor_query_ids`` into pages that respect the bucket ceiling.

    Parameters
    ----------
    monitor_query_ids: Sequence[str]
        Monitor ids to query, in caller order.
    location_count: int
        Number of allowed locations (0 = no filter).
    max_bucket_size: int
        Backend per-query bucket ceiling.

    Returns
    -------
    PagePlan
        Concatenating ``pages`` reproduces ``monitor_query_ids`` exactly.

    Examples
    --------
    >>> plan = plan_pages([str(i) for i in range(25000)], 3)
    >>> plan.ids_per_page, plan.page_count
    (3333, 8)
    """
    if max_bucket_size < 1:
        raise ValueError("max_bucket_size must be >= 1")
    ids = list(monitor_query_ids)
    per_page = ids_per_page(location_count, max_bucket_size)
    count = page_count(len(ids), per_page)
    pages = [ids[i * per_page : (i + 1) * per_page] for i in range(count)]
    return PagePlan(ids_per_page=per_page, page_count=count, pages=pages)
