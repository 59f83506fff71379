"""Caller-supplied pagination and sort options for list queries."""

from dataclasses import dataclass

from sqlalchemy import Select

from cinerec.storage.models import Recommendation

SORTABLE_COLUMNS = {
    "created_at": Recommendation.created_at,
    "updated_at": Recommendation.updated_at,
    "sent_at": Recommendation.sent_at,
    "confidence_score": Recommendation.confidence_score,
    "status": Recommendation.status,
}


@dataclass(frozen=True)
class PaginationOptions:
    """``limit=None`` returns every row from ``offset`` on."""

    limit: int | None = None
    offset: int = 0

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must be non-negative")
        if self.offset < 0:
            raise ValueError("offset must be non-negative")


@dataclass(frozen=True)
class SortOptions:
    column: str = "created_at"
    descending: bool = True

    def __post_init__(self) -> None:
        if self.column not in SORTABLE_COLUMNS:
            raise ValueError(
                f"Cannot sort by {self.column!r}; expected one of {sorted(SORTABLE_COLUMNS)}"
            )


def apply_pagination(stmt: Select, pagination: PaginationOptions | None) -> Select:
    if pagination is None:
        return stmt
    if pagination.offset:
        stmt = stmt.offset(pagination.offset)
    if pagination.limit is not None:
        stmt = stmt.limit(pagination.limit)
    return stmt


def apply_sort(stmt: Select, sort: SortOptions | None) -> Select:
    if sort is None:
        return stmt
    column = SORTABLE_COLUMNS[sort.column]
    # Tie-break on id so pages are stable.
    if sort.descending:
        return stmt.order_by(column.desc(), Recommendation.id.desc())
    return stmt.order_by(column.asc(), Recommendation.id.asc())
