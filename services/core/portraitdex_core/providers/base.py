"""Base provider interfaces and DTOs.

The reconciliation engine talks to two external collaborators through the
interfaces defined here:

- ChainReader: read-only access to the portrait registries on chain
- ProfileLookup: best-effort profile enrichment from the REST API

Usage:
    class ChainClient(ChainReader):
        async def get_id_counter(self) -> int:
            ...
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence


# =============================================================================
# ENUMS
# =============================================================================


class PublishState(str, Enum):
    """On-chain publication state of a portrait id."""

    PUBLISHED = "published"
    UNPUBLISHED = "unpublished"
    LOOKUP_FAILED = "lookup_failed"


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class PublishInfo:
    """Result of the state-hash lookup for one portrait id."""

    portrait_id: int
    state: PublishState
    state_hash: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_published(self) -> bool:
        """Only a confirmed, non-empty hash counts as published."""
        return self.state == PublishState.PUBLISHED


@dataclass
class ProfileRecord:
    """Enrichment result for one username.

    avatar_reference is "ipfs://<cid>" or "ar://<tx>", or None.
    """

    username: str
    title: str
    avatar_reference: Optional[str] = None
    enriched: bool = False


# =============================================================================
# INTERFACES
# =============================================================================


class ChainReader(ABC):
    """Read-only access to the identity, name and state registries."""

    @abstractmethod
    async def connect(self) -> str:
        """Select a live RPC endpoint and return its URL."""
        ...

    @abstractmethod
    async def get_id_counter(self) -> int:
        """Return the highest portrait id assigned so far."""
        ...

    @abstractmethod
    async def get_publish_state(self, ids: Sequence[int]) -> dict[int, PublishInfo]:
        """Classify every id as published, unpublished or lookup_failed."""
        ...

    @abstractmethod
    async def get_usernames(self, ids: Sequence[int]) -> dict[int, str]:
        """Return on-chain usernames; ids without a name are omitted."""
        ...

    @abstractmethod
    async def get_owners(self, ids: Sequence[int]) -> dict[int, Optional[str]]:
        """Return owner addresses; the zero address maps to None."""
        ...


class ProfileLookup(ABC):
    """Profile enrichment keyed by username."""

    @abstractmethod
    async def resolve(self, username: str) -> ProfileRecord:
        """Resolve a username, falling back to an un-enriched record."""
        ...
