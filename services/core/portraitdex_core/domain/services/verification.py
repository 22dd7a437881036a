"""Published count verification.

Walks every id from 1 to the on-chain counter, counts the published ones and
compares the total with the published rows in the local database. Reads
only; nothing is written to the database or the job status.

Usage:
    report = await verify_published_count(chain, session_factory)
    if not report.matches:
        ...
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portraitdex_core.config import Settings, get_settings
from portraitdex_core.domain.models import Portrait
from portraitdex_core.infra.db import create_async_session_factory, get_async_engine, sqlite_database_path
from portraitdex_core.providers.base import ChainReader, PublishState
from portraitdex_core.providers.chain.client import get_chain_client

logger = logging.getLogger(__name__)

VERIFY_CHUNK_SIZE = 500


@dataclass
class VerificationReport:
    id_counter: int = 0
    checked: int = 0
    published_on_chain: int = 0
    lookup_failed: int = 0
    published_stored: Optional[int] = None

    @property
    def matches(self) -> bool:
        """True when the stored count is known and equals the on-chain count.

        A report with failed lookups never matches; its on-chain count is a
        lower bound.
        """
        return (
            self.published_stored is not None
            and self.lookup_failed == 0
            and self.published_stored == self.published_on_chain
        )


async def count_stored_published(session_factory: async_sessionmaker[AsyncSession]) -> int:
    async with session_factory() as session:
        result = await session.execute(
            select(func.count()).select_from(Portrait).where(Portrait.is_published.is_(True))
        )
        return result.scalar() or 0


async def verify_published_count(
    chain: ChainReader,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    chunk_size: int = VERIFY_CHUNK_SIZE,
) -> VerificationReport:
    """Count published ids on chain and, given a database, the stored ones.

    Raises:
        ConnectivityError: If no RPC endpoint is reachable.
    """
    report = VerificationReport()

    await chain.connect()
    report.id_counter = await chain.get_id_counter()
    logger.info(f"Verifying ids 1..{report.id_counter}")

    for start in range(1, report.id_counter + 1, chunk_size):
        ids = list(range(start, min(start + chunk_size, report.id_counter + 1)))
        states = await chain.get_publish_state(ids)
        report.checked += len(ids)
        for info in states.values():
            if info.state == PublishState.PUBLISHED:
                report.published_on_chain += 1
            elif info.state == PublishState.LOOKUP_FAILED:
                report.lookup_failed += 1
        logger.info(f"Checked up to id {ids[-1]}: {report.published_on_chain} published")

    if session_factory is not None:
        try:
            report.published_stored = await count_stored_published(session_factory)
        except SQLAlchemyError as e:
            logger.warning(f"Could not count stored portraits: {e}")

    return report


async def run_verification(settings: Optional[Settings] = None) -> VerificationReport:
    """Verify against the configured chain and database."""
    settings = settings or get_settings()

    path = sqlite_database_path(settings.database_url)
    if path is not None and not path.exists():
        logger.warning(f"No database at {path}, reporting on-chain count only")
        return await verify_published_count(get_chain_client())

    engine = get_async_engine(settings.database_url)
    try:
        return await verify_published_count(
            get_chain_client(), create_async_session_factory(engine)
        )
    finally:
        await engine.dispose()


def main() -> None:
    """Console entry point.

    Exits 0 when the counts match or no database is available, 2 when they
    differ or some lookups failed, 1 when the chain cannot be read.
    """
    from portraitdex_core.observability.logging import configure_logging
    from portraitdex_core.providers.chain.client import ConnectivityError

    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)

    try:
        report = asyncio.run(run_verification(settings))
    except ConnectivityError as e:
        logger.error(f"Verification failed: {e}")
        raise SystemExit(1)

    logger.info(
        f"Verification complete: {report.checked} ids checked, "
        f"{report.published_on_chain} published on chain, "
        f"{report.lookup_failed} lookups failed, "
        f"{report.published_stored} published in database"
    )
    if report.published_stored is None:
        raise SystemExit(0)
    raise SystemExit(0 if report.matches else 2)
