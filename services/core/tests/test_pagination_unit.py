"""Unit tests for pagination utilities."""

from sqlalchemy import select

from portraitdex_core.domain.models import Portrait
from portraitdex_core.domain.pagination import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    PaginationParams,
    paginate_query,
)
from tests.factories import make_portrait


class TestPaginationParams:
    """Tests for PaginationParams dataclass."""

    def test_create_default_params(self):
        params = PaginationParams()

        assert params.page == 1
        assert params.page_size == DEFAULT_PAGE_SIZE
        assert params.offset == 0

    def test_offset_calculation(self):
        params = PaginationParams(page=5, page_size=25)

        assert params.offset == 100  # (5-1) * 25

    def test_page_size_clamped_to_max(self):
        params = PaginationParams(page=1, page_size=500)

        assert params.page_size == MAX_PAGE_SIZE

    def test_page_minimum_is_one(self):
        assert PaginationParams(page=0).page == 1
        assert PaginationParams(page=-5).page == 1

    def test_page_size_minimum(self):
        assert PaginationParams(page_size=0).page_size == 1


class TestPaginateQuery:
    """Tests for paginate_query over a select."""

    def test_paginates_ordered_query(self, db_session):
        db_session.add_all([make_portrait(i, f"user{i}") for i in range(1, 8)])
        db_session.commit()

        result = paginate_query(
            db_session,
            select(Portrait).order_by(Portrait.id),
            PaginationParams(page=2, page_size=3),
        )

        assert [p.id for p in result.items] == [4, 5, 6]
        assert result.total == 7
        assert result.page == 2

    def test_page_past_the_end_is_empty(self, db_session):
        db_session.add_all([make_portrait(i, f"user{i}") for i in range(1, 4)])
        db_session.commit()

        result = paginate_query(
            db_session,
            select(Portrait).order_by(Portrait.id),
            PaginationParams(page=9, page_size=3),
        )

        assert result.items == []
        assert result.total == 3
