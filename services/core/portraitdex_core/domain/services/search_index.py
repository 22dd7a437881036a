"""Username search index.

The index is derived data: it is rebuilt in full from the portraits table
after every committed batch, and searched by the gallery read service.

Backends:
- SqliteFtsSearchIndex: FTS5 virtual table in the same SQLite file
- ElasticsearchSearchIndex: documents in an Elasticsearch index
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from sqlalchemy import column, select, text
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from portraitdex_core.domain.models import Portrait
from portraitdex_core.infrastructure.elasticsearch import (
    PORTRAITS_INDEX,
    ElasticsearchClient,
    ElasticsearchError,
)

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 3
FTS_TABLE = "portraits_fts"


class SearchIndexError(Exception):
    """Raised when the search index cannot be rebuilt."""

    pass


class SearchIndex(ABC):
    """Full-text index over portrait usernames."""

    def ensure(self, connection: Any) -> None:
        """Create backing storage if missing."""
        pass

    @abstractmethod
    def rebuild(self, session: Session) -> int:
        """Rebuild the index from the portraits table; returns entries indexed."""
        ...

    @abstractmethod
    def match_clause(self, session: Session, query: str) -> ColumnElement[bool]:
        """Return a filter on Portrait.id selecting rows matching the query."""
        ...


class SqliteFtsSearchIndex(SearchIndex):
    """FTS5 index keyed by rowid = portrait id."""

    def ensure(self, connection: Any) -> None:
        connection.execute(
            text(
                f"CREATE VIRTUAL TABLE IF NOT EXISTS {FTS_TABLE} "
                "USING fts5(username, tokenize='unicode61 remove_diacritics 2')"
            )
        )

    def rebuild(self, session: Session) -> int:
        self.ensure(session)
        session.execute(text(f"DELETE FROM {FTS_TABLE}"))
        result = session.execute(
            text(f"INSERT INTO {FTS_TABLE}(rowid, username) SELECT id, username FROM portraits")
        )
        return result.rowcount if result.rowcount is not None else 0

    @staticmethod
    def to_fts_query(query: str) -> str:
        """Quote the query as one phrase with prefix matching on the last token."""
        return '"' + query.replace('"', '""') + '"*'

    def match_clause(self, session: Session, query: str) -> ColumnElement[bool]:
        matches = text(
            f"SELECT rowid FROM {FTS_TABLE} WHERE {FTS_TABLE} MATCH :fts_query"
        ).bindparams(fts_query=self.to_fts_query(query)).columns(column("rowid"))
        return Portrait.id.in_(matches)


class ElasticsearchSearchIndex(SearchIndex):
    """Elasticsearch index of {id, username} documents."""

    def __init__(
        self,
        client: ElasticsearchClient,
        index: str = PORTRAITS_INDEX,
        max_hits: int = 10000,
    ):
        self.client = client
        self.index = index
        self.max_hits = max_hits

    def rebuild(self, session: Session) -> int:
        rows = session.execute(select(Portrait.id, Portrait.username).order_by(Portrait.id)).all()

        try:
            self.client.recreate_index(self.index)
            return self.client.index_usernames(self.index, [(r.id, r.username) for r in rows])
        except ElasticsearchError as e:
            raise SearchIndexError(str(e)) from e

    def match_clause(self, session: Session, query: str) -> ColumnElement[bool]:
        try:
            ids = self.client.prefix_search(self.index, query, size=self.max_hits)
        except ElasticsearchError as e:
            logger.error(f"Username search failed: {e}")
            ids = []
        return Portrait.id.in_(ids)


def build_search_index(settings, client: Optional[ElasticsearchClient] = None) -> SearchIndex:
    """Build the configured search index backend."""
    if settings.search_backend == "elasticsearch":
        return ElasticsearchSearchIndex(
            client or ElasticsearchClient(url=settings.elastic_url),
            index=settings.elastic_index,
        )
    return SqliteFtsSearchIndex()
