"""Gallery read service.

Serves the browser gallery from the read-only session:
1. Paginated listing in ascending id order
2. Username search through the search index
3. Store and fetch job status

Usage:
    service = GalleryService(db=session, search_index=index)

    page = service.list_portraits(page=1, limit=50, gallery_filter=GalleryFilter.LIVE)
    hits = service.search_portraits("ali", page=1, limit=50)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from portraitdex_core.domain.links import resolve_avatar_url
from portraitdex_core.domain.models import Portrait
from portraitdex_core.domain.pagination import PaginatedResult, PaginationParams, paginate_query
from portraitdex_core.domain.services.job_status import JobStatusSnapshot, read_snapshot
from portraitdex_core.domain.services.search_index import MIN_QUERY_LENGTH, SearchIndex
from portraitdex_core.infra.db import sqlite_database_path

logger = logging.getLogger(__name__)


# =============================================================================
# DATA CLASSES
# =============================================================================


class GalleryFilter(str, Enum):
    """Which rows a listing shows."""

    LIVE = "live"  # published only
    AVATAR = "avatar"  # published with an avatar
    ALL = "all"


@dataclass
class PortraitEntry:
    id: int
    username: str
    avatar_image: Optional[str]
    profile_url: str
    is_live: bool


@dataclass
class DatabaseInfo:
    accessible: bool = False
    file_size: Optional[int] = None
    file_last_modified: Optional[datetime] = None
    portrait_count: Optional[int] = None


@dataclass
class StatusReport:
    current_time: datetime
    database: DatabaseInfo
    fetch_job: Optional[JobStatusSnapshot]


# =============================================================================
# SERVICE
# =============================================================================


class GalleryService:
    """Read-only queries behind the gallery API."""

    def __init__(
        self,
        db: Session,
        search_index: SearchIndex,
        ipfs_gateway_url: str = "https://ipfs.io/ipfs/",
        arweave_gateway_url: str = "https://irys.portrait.host/",
    ):
        self.db = db
        self.search_index = search_index
        self.ipfs_gateway_url = ipfs_gateway_url
        self.arweave_gateway_url = arweave_gateway_url

    def _filtered_query(self, gallery_filter: GalleryFilter) -> Select:
        query = select(Portrait)
        if gallery_filter in (GalleryFilter.LIVE, GalleryFilter.AVATAR):
            query = query.where(Portrait.is_published.is_(True))
        if gallery_filter == GalleryFilter.AVATAR:
            query = query.where(Portrait.avatar_reference.is_not(None))
        return query

    def to_entry(self, portrait: Portrait) -> PortraitEntry:
        """Build the API view of a row; unpublished rows show no avatar."""
        avatar_image = None
        if portrait.is_published:
            avatar_image = resolve_avatar_url(
                portrait.avatar_reference, self.ipfs_gateway_url, self.arweave_gateway_url
            )
        return PortraitEntry(
            id=portrait.id,
            username=portrait.username,
            avatar_image=avatar_image,
            profile_url=portrait.profile_link,
            is_live=portrait.is_published,
        )

    def _page(self, query: Select, page: int, limit: int) -> PaginatedResult[PortraitEntry]:
        params = PaginationParams(page=page, page_size=limit)
        result = paginate_query(self.db, query.order_by(Portrait.id), params)
        result.items = [self.to_entry(portrait) for portrait in result.items]
        return result

    def list_portraits(
        self,
        page: int = 1,
        limit: int = 50,
        gallery_filter: GalleryFilter = GalleryFilter.LIVE,
    ) -> PaginatedResult[PortraitEntry]:
        return self._page(self._filtered_query(gallery_filter), page, limit)

    def search_portraits(
        self,
        query: str,
        page: int = 1,
        limit: int = 50,
        gallery_filter: GalleryFilter = GalleryFilter.LIVE,
    ) -> PaginatedResult[PortraitEntry]:
        """Search usernames; queries under MIN_QUERY_LENGTH match nothing."""
        query = (query or "").strip()
        if len(query) < MIN_QUERY_LENGTH:
            return PaginatedResult(items=[], total=0, page=page, page_size=limit)

        statement = self._filtered_query(gallery_filter).where(
            self.search_index.match_clause(self.db, query)
        )
        return self._page(statement, page, limit)

    def get_status(self, database_url: str, job_name: str = "fetch-job") -> StatusReport:
        """Report store accessibility and the last fetch run.

        Never raises on database errors; they show up as missing values.
        """
        database = DatabaseInfo()

        path = sqlite_database_path(database_url)
        if path is not None:
            try:
                stats = path.stat()
            except FileNotFoundError:
                stats = None
            except OSError as e:
                logger.warning(f"Could not stat database file {path}: {e}")
                stats = None
            if stats is not None:
                database.accessible = True
                database.file_size = stats.st_size
                database.file_last_modified = datetime.fromtimestamp(
                    stats.st_mtime, tz=timezone.utc
                )

        try:
            database.portrait_count = self.db.execute(
                select(func.count()).select_from(Portrait)
            ).scalar_one()
            if path is None:
                database.accessible = True
        except SQLAlchemyError as e:
            logger.warning(f"Could not count portraits: {e}")
            self.db.rollback()

        fetch_job = None
        try:
            fetch_job = read_snapshot(self.db, job_name)
        except SQLAlchemyError as e:
            logger.error(f"Error reading job status: {e}")
            self.db.rollback()

        return StatusReport(
            current_time=datetime.now(timezone.utc),
            database=database,
            fetch_job=fetch_job,
        )
