"""
Search criteria passed to the resource store.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Optional


@dataclass(frozen=True)
class SearchCriteria:
    """
    Filters for a resource store search.

    Exact-match filters apply to foreign keys and status; ``start_ge`` and
    ``start_le`` bound the start time; ``starts_before``/``ends_after`` select
    records overlapping a range. Results are ordered by start.
    """
    schedule_id: Optional[int] = None
    statuses: FrozenSet[str] = field(default_factory=frozenset)
    excluded_statuses: FrozenSet[str] = field(default_factory=frozenset)
    series_id: Optional[str] = None
    start_ge: Optional[datetime] = None
    start_le: Optional[datetime] = None
    starts_before: Optional[datetime] = None
    ends_after: Optional[datetime] = None
    limit: Optional[int] = None

    @classmethod
    def overlapping(
        cls,
        schedule_id: int,
        start: datetime,
        end: datetime,
        limit: Optional[int] = None,
        statuses: FrozenSet[str] = frozenset(),
    ) -> "SearchCriteria":
        """Records of a schedule whose interval overlaps [start, end)."""
        return cls(
            schedule_id=schedule_id,
            statuses=statuses,
            starts_before=end,
            ends_after=start,
            limit=limit,
        )
