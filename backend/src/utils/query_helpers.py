"""
Query helper utilities for resource store searches.

Translates a ``SearchCriteria`` into filters on the slot and appointment
tables. Both tables share the ``schedule_id``/``status``/``start``/``end``
column names, so one helper serves both.
"""

from typing import Any, TypeVar

from sqlalchemy.orm import Query

from shared_types.search import SearchCriteria

# Type variable for Query generic type
T = TypeVar('T')


def apply_search_criteria(query: Query[T], model: Any, criteria: SearchCriteria) -> Query[T]:
    """
    Apply exact-match, range and overlap filters, ordering and limit.

    Args:
        query: Query over ``model``
        model: Mapped class with schedule_id, status, start and end columns
        criteria: Filters to apply; unset fields are ignored

    Returns:
        Query ordered by start (then id) with filters applied

    Example:
        ```python
        criteria = SearchCriteria(schedule_id=1, statuses={"busy-unavailable"}, limit=200)
        blocks = apply_search_criteria(db.query(Slot), Slot, criteria).all()
        ```
    """
    if criteria.schedule_id is not None:
        query = query.filter(model.schedule_id == criteria.schedule_id)
    if criteria.statuses:
        query = query.filter(model.status.in_(sorted(criteria.statuses)))
    if criteria.excluded_statuses:
        query = query.filter(model.status.notin_(sorted(criteria.excluded_statuses)))
    if criteria.series_id is not None:
        if not hasattr(model, "series_id"):
            raise ValueError(f"{model.__name__} records have no series identifier")
        query = query.filter(model.series_id == criteria.series_id)

    # Range filters on the start time
    if criteria.start_ge is not None:
        query = query.filter(model.start >= criteria.start_ge)
    if criteria.start_le is not None:
        query = query.filter(model.start <= criteria.start_le)

    # Overlap filters: records starting before X and ending after Y
    if criteria.starts_before is not None:
        query = query.filter(model.start < criteria.starts_before)
    if criteria.ends_after is not None:
        query = query.filter(model.end > criteria.ends_after)

    query = query.order_by(model.start.asc(), model.id.asc())
    if criteria.limit is not None:
        query = query.limit(criteria.limit)
    return query
