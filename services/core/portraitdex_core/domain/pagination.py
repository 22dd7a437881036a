"""Page/limit slicing for the gallery listing and search.

Pages are 1-indexed; out-of-range values are clamped rather than rejected
so a stale link still lands on a valid page.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


@dataclass
class PaginationParams:
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self):
        self.page = max(self.page, 1)
        self.page_size = min(max(self.page_size, 1), MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass
class PaginatedResult(Generic[T]):
    """One page of items plus the size of the full result."""

    items: list[T]
    total: int
    page: int
    page_size: int


def paginate_query(session: Session, query: Select, params: PaginationParams) -> PaginatedResult:
    """Count the ordered query and fetch the requested slice of it."""
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = session.execute(count_query).scalar() or 0

    page_query = query.offset(params.offset).limit(params.page_size)
    items = list(session.execute(page_query).scalars().all())

    return PaginatedResult(items=items, total=total, page=params.page, page_size=params.page_size)
