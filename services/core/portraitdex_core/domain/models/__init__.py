"""Domain models for Portraitdex.

This module defines the SQLAlchemy ORM models for the portrait store and
the fetch job checkpoint.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# SQLite only aliases rowid for INTEGER primary keys
PortraitId = BigInteger().with_variant(Integer(), "sqlite")

USERNAME_MAX_LENGTH = 255
REFERENCE_MAX_LENGTH = 512


# =============================================================================
# ENUMS
# =============================================================================


class RunStatus(str):
    """Fetch job run status values."""

    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


# =============================================================================
# MODELS
# =============================================================================


class Portrait(Base):
    """One resolved on-chain portrait identity."""

    __tablename__ = "portraits"

    id: Mapped[int] = mapped_column(PortraitId, primary_key=True, autoincrement=False)
    username: Mapped[str] = mapped_column(String(USERNAME_MAX_LENGTH), nullable=False)

    # ipfs://<cid> or ar://<tx>
    avatar_reference: Mapped[Optional[str]] = mapped_column(
        String(REFERENCE_MAX_LENGTH), nullable=True
    )
    profile_link: Mapped[str] = mapped_column(String(REFERENCE_MAX_LENGTH), nullable=False)

    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    owner_address: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)

    last_checked_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    __table_args__ = (
        Index("idx_portraits_username", "username"),
        Index("idx_portraits_published", "is_published", "id"),
    )


class FetchJobStatus(Base):
    """Run bookkeeping and checkpoint of the fetch job (one row per job name)."""

    __tablename__ = "job_status"

    job_name: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_run_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_run_status: Mapped[Optional[str]] = mapped_column(
        Enum("running", "success", "error", name="fetch_run_status_enum"),
        nullable=True,
    )
    last_run_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    highest_id_processed: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Relationships
    unpublished: Mapped[list["UnpublishedPortrait"]] = relationship(
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="UnpublishedPortrait.portrait_id",
    )

    @property
    def unpublished_ids(self) -> list[int]:
        return [entry.portrait_id for entry in self.unpublished]


class UnpublishedPortrait(Base):
    """Portrait id carried forward by the checkpoint until it publishes."""

    __tablename__ = "job_unpublished_ids"

    job_name: Mapped[str] = mapped_column(
        String(64), ForeignKey("job_status.job_name", ondelete="CASCADE"), primary_key=True
    )
    portrait_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)

    # Relationships
    job: Mapped["FetchJobStatus"] = relationship(back_populates="unpublished")
