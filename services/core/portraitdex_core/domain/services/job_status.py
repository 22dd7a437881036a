"""Fetch job status store.

Persists run bookkeeping (last run timestamp, status, error) together with
the checkpoint the next run resumes from. Every write is its own short
transaction so run status stays visible even when the batch transaction
rolls back.

Checkpoint rules:
1. A write without a checkpoint never touches checkpoint fields
2. highest_id_processed never decreases
3. unpublished ids are replaced as a set

Usage:
    store = JobStatusStore(session_factory, job_name="fetch-job")

    await store.mark_running()
    checkpoint = await store.load_checkpoint()
    ...
    await store.record(RunStatus.SUCCESS, checkpoint=new_checkpoint)
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session, selectinload

from portraitdex_core.domain.models import FetchJobStatus, RunStatus, UnpublishedPortrait

MAX_ERROR_LENGTH = 1000


class StatusWriteError(Exception):
    """Raised when the job status row cannot be written."""

    pass


def truncate_error(message: Optional[str]) -> Optional[str]:
    if message is None:
        return None
    return message[:MAX_ERROR_LENGTH]


@dataclass
class Checkpoint:
    """Where the next run resumes."""

    highest_id_processed: int = 0
    unpublished_ids: list[int] = field(default_factory=list)


@dataclass
class JobStatusSnapshot:
    """Read-side view of the job status row."""

    last_run_timestamp: Optional[datetime]
    last_run_status: Optional[str]
    last_run_error: Optional[str]
    highest_id_processed: int
    unpublished_ids_count: int


class JobStatusStore:
    """Async writer for the fetch job status row."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        job_name: str = "fetch-job",
    ):
        self.session_factory = session_factory
        self.job_name = job_name

    async def _load(self, session: AsyncSession) -> Optional[FetchJobStatus]:
        return await session.get(
            FetchJobStatus,
            self.job_name,
            options=[selectinload(FetchJobStatus.unpublished)],
        )

    async def load_checkpoint(self) -> Checkpoint:
        """Load the checkpoint; a missing row yields the empty checkpoint."""
        async with self.session_factory() as session:
            job = await self._load(session)
            if job is None:
                return Checkpoint()
            return Checkpoint(
                highest_id_processed=job.highest_id_processed or 0,
                unpublished_ids=sorted(job.unpublished_ids),
            )

    async def mark_running(self) -> None:
        """Record the start of a run without touching the checkpoint."""
        await self.record(RunStatus.RUNNING)

    async def record(
        self,
        status: str,
        error: Optional[str] = None,
        checkpoint: Optional[Checkpoint] = None,
    ) -> None:
        """Write run status, and the checkpoint when one is given.

        Args:
            status: One of RunStatus.RUNNING, SUCCESS, ERROR.
            error: Error text, truncated before it is stored.
            checkpoint: New checkpoint, or None to keep the stored one.

        Raises:
            StatusWriteError: If the write fails.
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    job = await self._load(session)
                    if job is None:
                        job = FetchJobStatus(job_name=self.job_name, highest_id_processed=0)
                        session.add(job)

                    job.last_run_timestamp = datetime.now(timezone.utc)
                    job.last_run_status = status
                    job.last_run_error = truncate_error(error)

                    if checkpoint is not None:
                        self._apply_checkpoint(job, checkpoint)
        except SQLAlchemyError as e:
            raise StatusWriteError(f"Failed to write status for {self.job_name}: {e}") from e

    @staticmethod
    def _apply_checkpoint(job: FetchJobStatus, checkpoint: Checkpoint) -> None:
        job.highest_id_processed = max(
            job.highest_id_processed or 0, checkpoint.highest_id_processed
        )

        # Keep surviving rows so no primary key is deleted and re-inserted
        wanted = set(checkpoint.unpublished_ids)
        current = set(job.unpublished_ids)
        job.unpublished = [
            entry for entry in job.unpublished if entry.portrait_id in wanted
        ] + [UnpublishedPortrait(portrait_id=pid) for pid in sorted(wanted - current)]


def read_snapshot(session: Session, job_name: str = "fetch-job") -> Optional[JobStatusSnapshot]:
    """Read the job status row for the status endpoint."""
    job = session.get(FetchJobStatus, job_name)
    if job is None:
        return None

    unpublished_count = session.execute(
        select(func.count())
        .select_from(UnpublishedPortrait)
        .where(UnpublishedPortrait.job_name == job_name)
    ).scalar_one()

    return JobStatusSnapshot(
        last_run_timestamp=job.last_run_timestamp,
        last_run_status=job.last_run_status,
        last_run_error=job.last_run_error,
        highest_id_processed=job.highest_id_processed or 0,
        unpublished_ids_count=unpublished_count,
    )
