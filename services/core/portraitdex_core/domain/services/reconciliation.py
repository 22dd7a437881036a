"""Incremental portrait reconciliation (the fetch job).

One run:
1. Marks the job running (checkpoint untouched)
2. Loads the checkpoint (highest id processed, unpublished ids)
3. Selects candidates: ids past the checkpoint plus carried-forward unpublished ids
4. Classifies candidates as published / still unpublished on chain
5. Resolves usernames and owners for published ids
6. Enriches each username through the profile API, one call at a time
7. Persists the batch in one transaction, then rebuilds the search index
8. Records success with the new checkpoint, or error with the last
   checkpoint known to be committed

Usage:
    result = await run_fetch_job()

    # or, with explicit collaborators
    engine = ReconciliationEngine(chain, profiles, status_store, portrait_store, throttle)
    result = await engine.run()
"""

import asyncio
import contextlib
import logging
import signal
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portraitdex_core.config import Settings, get_settings
from portraitdex_core.domain.links import build_profile_link
from portraitdex_core.domain.models import RunStatus
from portraitdex_core.domain.services.job_status import (
    Checkpoint,
    JobStatusStore,
    StatusWriteError,
)
from portraitdex_core.domain.services.portrait_store import (
    PortraitRow,
    PortraitStore,
    UnpublishPolicy,
)
from portraitdex_core.domain.services.search_index import build_search_index
from portraitdex_core.infra.db import create_async_session_factory, get_async_engine, init_async_db
from portraitdex_core.infrastructure.rate_limiter import build_profile_throttle
from portraitdex_core.providers.base import ChainReader, ProfileLookup
from portraitdex_core.providers.chain.client import get_chain_client
from portraitdex_core.providers.portrait_api.adapter import PortraitProfileAdapter

logger = logging.getLogger(__name__)

INTERRUPTED = "interrupted"


@dataclass
class RunResult:
    """Outcome of one fetch run."""

    status: str
    counter: Optional[int] = None
    candidates: int = 0
    published: int = 0
    unpublished: int = 0
    upserted: int = 0
    enriched: int = 0
    checkpoint: Optional[Checkpoint] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "counter": self.counter,
            "candidates": self.candidates,
            "published": self.published,
            "unpublished": self.unpublished,
            "upserted": self.upserted,
            "enriched": self.enriched,
            "highest_id_processed": (
                self.checkpoint.highest_id_processed if self.checkpoint else None
            ),
            "error": self.error,
        }


def compute_candidates(checkpoint: Checkpoint, counter: int) -> list[int]:
    """Ids past the checkpoint plus carried-forward unpublished ids, ascending."""
    fresh = range(checkpoint.highest_id_processed + 1, counter + 1)
    return sorted(set(fresh) | set(checkpoint.unpublished_ids))


class ReconciliationEngine:
    """Runs one incremental sync of on-chain portraits into the store."""

    def __init__(
        self,
        chain: ChainReader,
        profiles: ProfileLookup,
        status_store: JobStatusStore,
        portrait_store: PortraitStore,
        throttle: Any,
        public_profile_base_url: str = "https://portrait.so/",
    ):
        """Initialize the engine.

        Args:
            chain: Chain reader for ids, publish state, names and owners.
            profiles: Profile lookup used for enrichment.
            status_store: Job status and checkpoint store.
            portrait_store: Transactional portrait writer.
            throttle: Async context manager gating each profile call.
            public_profile_base_url: Base of the public profile links.
        """
        self.chain = chain
        self.profiles = profiles
        self.status_store = status_store
        self.portrait_store = portrait_store
        self.throttle = throttle
        self.public_profile_base_url = public_profile_base_url

    async def _record(
        self,
        status: str,
        error: Optional[str] = None,
        checkpoint: Optional[Checkpoint] = None,
    ) -> None:
        try:
            await self.status_store.record(status, error=error, checkpoint=checkpoint)
        except StatusWriteError as e:
            logger.error(f"Could not record job status '{status}': {e}")

    async def run(self) -> RunResult:
        """Run one reconciliation.

        Never raises for run failures; they end up in the result and the
        job status row. Cancellation is recorded, then re-raised.
        """
        result = RunResult(status=RunStatus.RUNNING)

        try:
            await self._record(RunStatus.RUNNING)
            await self._reconcile(result)
            result.status = RunStatus.SUCCESS
        except asyncio.CancelledError:
            result.status = RunStatus.ERROR
            result.error = INTERRUPTED
            logger.warning("Fetch run interrupted")
            raise
        except Exception as e:
            result.status = RunStatus.ERROR
            result.error = str(e) or type(e).__name__
            logger.exception(f"Fetch run failed: {result.error}")
        finally:
            # result.checkpoint is only set once the batch has committed
            await self._record(result.status, error=result.error, checkpoint=result.checkpoint)
            logger.info(f"Fetch run finished: {result.status}")

        return result

    async def _reconcile(self, result: RunResult) -> None:
        checkpoint = await self.status_store.load_checkpoint()
        logger.info(
            f"Loaded checkpoint: highest={checkpoint.highest_id_processed}, "
            f"unpublished={len(checkpoint.unpublished_ids)}"
        )

        await self.chain.connect()
        counter = await self.chain.get_id_counter()
        result.counter = counter
        logger.info(f"Current id counter on chain: {counter}")

        candidates = compute_candidates(checkpoint, counter)
        result.candidates = len(candidates)
        if not candidates and counter <= checkpoint.highest_id_processed:
            logger.info("Nothing new to sync")
            return

        logger.info(
            f"Checking {len(candidates)} candidate ids "
            f"({checkpoint.highest_id_processed + 1}..{counter} plus "
            f"{len(checkpoint.unpublished_ids)} carried forward)"
        )

        # Failed lookups count as unpublished
        states = await self.chain.get_publish_state(candidates)
        published = [pid for pid in candidates if pid in states and states[pid].is_published]
        published_set = set(published)
        still_unpublished = [pid for pid in candidates if pid not in published_set]
        result.published = len(published)
        result.unpublished = len(still_unpublished)
        logger.info(
            f"State check done: {len(published)} published / "
            f"{len(still_unpublished)} unpublished"
        )

        usernames = await self.chain.get_usernames(published) if published else {}
        named_ids = [pid for pid in published if pid in usernames]
        # Nameless ids are rechecked next run instead of passing the checkpoint
        nameless = [pid for pid in published if pid not in usernames]
        if nameless:
            logger.warning(f"{len(nameless)} published ids have no username, carrying forward")
        owners = await self.chain.get_owners(named_ids) if named_ids else {}

        rows = []
        for position, portrait_id in enumerate(named_ids, start=1):
            username = usernames[portrait_id]
            logger.debug(f"({position}/{len(named_ids)}) Enriching {username} (id {portrait_id})")
            async with self.throttle:
                record = await self.profiles.resolve(username)
            if record.enriched:
                result.enriched += 1
            rows.append(
                PortraitRow(
                    id=portrait_id,
                    username=record.title,
                    avatar_reference=record.avatar_reference,
                    profile_link=build_profile_link(self.public_profile_base_url, username),
                    is_published=True,
                    owner_address=owners.get(portrait_id),
                )
            )

        write = await self.portrait_store.apply_batch(rows, still_unpublished)
        result.upserted = write.upserted
        result.checkpoint = Checkpoint(
            highest_id_processed=max(checkpoint.highest_id_processed, counter),
            unpublished_ids=sorted(still_unpublished + nameless),
        )

        await self.portrait_store.rebuild_search_index()


# =============================================================================
# RUNNER
# =============================================================================


def build_reconciliation_engine(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    chain: Optional[ChainReader] = None,
    profiles: Optional[ProfileLookup] = None,
    throttle: Any = None,
) -> ReconciliationEngine:
    """Wire an engine from settings; collaborators may be overridden."""
    return ReconciliationEngine(
        chain=chain or get_chain_client(),
        profiles=profiles or PortraitProfileAdapter(
            api_url=settings.profile_api_url,
            timeout=settings.profile_timeout_seconds,
        ),
        status_store=JobStatusStore(session_factory, job_name=settings.fetch_job_name),
        portrait_store=PortraitStore(
            session_factory,
            build_search_index(settings),
            UnpublishPolicy(settings.unpublish_policy),
        ),
        throttle=throttle or build_profile_throttle(settings),
        public_profile_base_url=settings.public_profile_base_url,
    )


_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _install_signal_handlers(task: asyncio.Task) -> dict:
    """Cancel the run task on SIGINT/SIGTERM; returns the previous handlers."""
    loop = asyncio.get_running_loop()
    previous = {}

    def _cancel(sig: signal.Signals) -> None:
        logger.warning(f"Received {sig.name}, cancelling fetch run")
        task.cancel()

    for sig in _STOP_SIGNALS:
        # Unsupported off the main thread and on Windows
        with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
            handler = signal.getsignal(sig)
            loop.add_signal_handler(sig, _cancel, sig)
            previous[sig] = handler
    return previous


def _restore_signal_handlers(previous: dict) -> None:
    loop = asyncio.get_running_loop()
    for sig, handler in previous.items():
        loop.remove_signal_handler(sig)
        signal.signal(sig, handler)


async def run_fetch_job(settings: Optional[Settings] = None) -> RunResult:
    """Run one fetch job against the configured database.

    Creates missing tables first. SIGINT/SIGTERM cancel the run, which is
    then recorded as interrupted.
    """
    settings = settings or get_settings()
    engine = get_async_engine(settings.database_url)
    throttle = build_profile_throttle(settings)

    try:
        await init_async_db(engine)
        reconciler = build_reconciliation_engine(
            settings, create_async_session_factory(engine), throttle=throttle
        )

        task = asyncio.create_task(reconciler.run())
        previous = _install_signal_handlers(task)
        try:
            return await task
        finally:
            _restore_signal_handlers(previous)
    finally:
        await throttle.close()
        await engine.dispose()


def main() -> None:
    """Console entry point: run the fetch job once."""
    from portraitdex_core.observability.logging import configure_logging

    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)

    try:
        result = asyncio.run(run_fetch_job(settings))
    except asyncio.CancelledError:
        raise SystemExit(130)
    raise SystemExit(0 if result.status == RunStatus.SUCCESS else 1)
