"""Portrait store.

Writes one reconciliation batch atomically: every resolved portrait is
upserted and the unpublish policy is applied inside a single transaction,
so readers see either the whole batch or none of it.

Usage:
    store = PortraitStore(session_factory, search_index, UnpublishPolicy.RETAIN)

    result = await store.apply_batch(rows, unpublished_ids=[12, 40])
    await store.rebuild_search_index()
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import delete, update
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portraitdex_core.domain.models import (
    REFERENCE_MAX_LENGTH,
    USERNAME_MAX_LENGTH,
    Portrait,
)
from portraitdex_core.domain.services.search_index import SearchIndex, SearchIndexError

logger = logging.getLogger(__name__)

# Columns refreshed on conflict; created_at keeps its first-insert value
UPDATE_COLUMNS = (
    "username",
    "avatar_reference",
    "profile_link",
    "is_published",
    "owner_address",
    "last_checked_at",
)

ID_CHUNK_SIZE = 500


class PersistenceError(Exception):
    """Raised when a batch could not be written; nothing was persisted."""

    pass


class UnpublishPolicy(str, Enum):
    """What happens to a stored published row whose id is unpublished again."""

    RETAIN = "retain"
    EVICT = "evict"


@dataclass
class PortraitRow:
    """One resolved portrait ready to be upserted."""

    id: int
    username: str
    avatar_reference: Optional[str]
    profile_link: str
    is_published: bool = True
    owner_address: Optional[str] = None


@dataclass
class BatchWriteResult:
    upserted: int = 0
    unpublished: int = 0
    evicted: int = 0


def _chunks(ids: Sequence[int], size: int = ID_CHUNK_SIZE) -> Iterable[list[int]]:
    for start in range(0, len(ids), size):
        yield list(ids[start:start + size])


class PortraitStore:
    """Transactional writer for the portraits table and its search index."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        search_index: SearchIndex,
        unpublish_policy: UnpublishPolicy = UnpublishPolicy.RETAIN,
    ):
        self.session_factory = session_factory
        self.search_index = search_index
        self.unpublish_policy = UnpublishPolicy(unpublish_policy)

    @staticmethod
    def _upsert_statement(dialect_name: str) -> Any:
        """Build the dialect's INSERT .. upsert for Portrait."""
        if dialect_name == "mysql":
            stmt = mysql_insert(Portrait)
            return stmt.on_duplicate_key_update(
                {name: stmt.inserted[name] for name in UPDATE_COLUMNS}
            )

        if dialect_name == "postgresql":
            stmt = postgresql_insert(Portrait)
        elif dialect_name == "sqlite":
            stmt = sqlite_insert(Portrait)
        else:
            raise PersistenceError(f"Unsupported database dialect: {dialect_name}")

        return stmt.on_conflict_do_update(
            index_elements=[Portrait.id],
            set_={name: stmt.excluded[name] for name in UPDATE_COLUMNS},
        )

    @staticmethod
    def _row_params(row: PortraitRow, now: datetime) -> dict[str, Any]:
        # Titles come from user input; clip so one row cannot fail the batch
        avatar_reference = row.avatar_reference
        if avatar_reference and len(avatar_reference) > REFERENCE_MAX_LENGTH:
            logger.warning(f"Dropping oversized avatar reference for portrait {row.id}")
            avatar_reference = None

        return {
            "id": row.id,
            "username": row.username[:USERNAME_MAX_LENGTH] if row.username else row.username,
            "avatar_reference": avatar_reference,
            "profile_link": row.profile_link[:REFERENCE_MAX_LENGTH],
            "is_published": row.is_published,
            "owner_address": row.owner_address,
            "last_checked_at": now,
            "created_at": now,
        }

    async def _apply_unpublish_policy(
        self,
        session: AsyncSession,
        unpublished_ids: list[int],
        now: datetime,
        result: BatchWriteResult,
    ) -> None:
        # Only rows still marked published change state
        for chunk in _chunks(unpublished_ids):
            await session.execute(
                update(Portrait)
                .where(Portrait.id.in_(chunk), Portrait.is_published.is_(False))
                .values(last_checked_at=now)
                .execution_options(synchronize_session=False)
            )
            if self.unpublish_policy == UnpublishPolicy.EVICT:
                outcome = await session.execute(
                    delete(Portrait)
                    .where(Portrait.id.in_(chunk), Portrait.is_published.is_(True))
                    .execution_options(synchronize_session=False)
                )
                result.evicted += outcome.rowcount or 0
            else:
                outcome = await session.execute(
                    update(Portrait)
                    .where(Portrait.id.in_(chunk), Portrait.is_published.is_(True))
                    .values(is_published=False, last_checked_at=now)
                    .execution_options(synchronize_session=False)
                )
                result.unpublished += outcome.rowcount or 0

    async def apply_batch(
        self,
        rows: Sequence[PortraitRow],
        unpublished_ids: Iterable[int] = (),
    ) -> BatchWriteResult:
        """Upsert rows and apply the unpublish policy in one transaction.

        Args:
            rows: Resolved published portraits.
            unpublished_ids: Ids carried forward as unpublished.

        Returns:
            Counts of upserted, unpublished and evicted rows.

        Raises:
            PersistenceError: If any statement fails; the transaction is
                rolled back and no row of the batch is persisted.
        """
        result = BatchWriteResult()
        ids = sorted(set(unpublished_ids))
        now = datetime.now(timezone.utc)

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    if rows:
                        stmt = self._upsert_statement(session.bind.dialect.name)
                        await session.execute(stmt, [self._row_params(row, now) for row in rows])
                        result.upserted = len(rows)

                    if ids:
                        await self._apply_unpublish_policy(session, ids, now, result)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Batch of {len(rows)} portraits rolled back: {e}") from e

        logger.info(
            f"Batch committed: {result.upserted} upserted, "
            f"{result.unpublished} unpublished, {result.evicted} evicted"
        )
        return result

    async def rebuild_search_index(self) -> int:
        """Rebuild the username index from the committed portraits table."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    indexed = await session.run_sync(self.search_index.rebuild)
        except SQLAlchemyError as e:
            raise SearchIndexError(f"Search index rebuild failed: {e}") from e

        logger.info(f"Search index rebuilt with {indexed} entries")
        return indexed
