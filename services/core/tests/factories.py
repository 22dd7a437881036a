"""Test data factories and doubles for Portraitdex Core.

Use these instead of manually constructing rows and fakes in tests for
consistency.
"""

from typing import Optional, Sequence

from sqlalchemy.orm import Session

from portraitdex_core.domain.models import Portrait
from portraitdex_core.domain.services.search_index import SqliteFtsSearchIndex
from portraitdex_core.providers.base import (
    ChainReader,
    ProfileLookup,
    ProfileRecord,
    PublishInfo,
    PublishState,
)


# -----------------------------------------------------------------------------
# Portrait Factory
# -----------------------------------------------------------------------------


def make_portrait(
    portrait_id: int,
    username: str,
    avatar_reference: Optional[str] = None,
    is_published: bool = True,
) -> Portrait:
    return Portrait(
        id=portrait_id,
        username=username,
        avatar_reference=avatar_reference,
        profile_link=f"https://portrait.so/{username}",
        is_published=is_published,
    )


def add_portraits(session: Session, *portraits: Portrait) -> None:
    """Insert portraits and rebuild the FTS index over them."""
    session.add_all(portraits)
    session.commit()
    SqliteFtsSearchIndex().rebuild(session)
    session.commit()


# -----------------------------------------------------------------------------
# Fetch Job Doubles
# -----------------------------------------------------------------------------


class FakeChain(ChainReader):
    """In-memory chain: a counter, per-id hashes, names and owners.

    Ids missing from `hashes` are unpublished; ids in `failing` fail their
    state lookup. Ids in `name_outages` lose their name on the next
    username lookup only.
    """

    def __init__(
        self,
        counter: int = 0,
        hashes: Optional[dict[int, str]] = None,
        names: Optional[dict[int, str]] = None,
        owners: Optional[dict[int, str]] = None,
        failing: Sequence[int] = (),
    ):
        self.counter = counter
        self.hashes = dict(hashes or {})
        self.names = dict(names or {})
        self.owners = dict(owners or {})
        self.failing = set(failing)
        self.state_requests: list[list[int]] = []
        self.name_outages: set[int] = set()
        self.connect_error: Optional[Exception] = None

    def publish(self, portrait_id: int, username: str, owner: Optional[str] = None) -> None:
        self.hashes[portrait_id] = f"0xhash{portrait_id}"
        self.names[portrait_id] = username
        if owner:
            self.owners[portrait_id] = owner

    def unpublish(self, portrait_id: int) -> None:
        self.hashes.pop(portrait_id, None)

    async def connect(self) -> str:
        if self.connect_error is not None:
            raise self.connect_error
        return "http://fake-rpc"

    async def get_id_counter(self) -> int:
        return self.counter

    async def get_publish_state(self, ids: Sequence[int]) -> dict[int, PublishInfo]:
        self.state_requests.append(list(ids))
        states = {}
        for portrait_id in ids:
            if portrait_id in self.failing:
                states[portrait_id] = PublishInfo(
                    portrait_id, PublishState.LOOKUP_FAILED, error="execution reverted"
                )
            elif self.hashes.get(portrait_id):
                states[portrait_id] = PublishInfo(
                    portrait_id, PublishState.PUBLISHED, state_hash=self.hashes[portrait_id]
                )
            else:
                states[portrait_id] = PublishInfo(portrait_id, PublishState.UNPUBLISHED)
        return states

    async def get_usernames(self, ids: Sequence[int]) -> dict[int, str]:
        dropped, self.name_outages = self.name_outages, set()
        return {
            pid: self.names[pid]
            for pid in ids
            if self.names.get(pid) and pid not in dropped
        }

    async def get_owners(self, ids: Sequence[int]) -> dict[int, Optional[str]]:
        return {pid: self.owners[pid] for pid in ids if pid in self.owners}


class FakeProfiles(ProfileLookup):
    """Profile lookup returning canned records; unknown names fall back."""

    def __init__(self, profiles: Optional[dict[str, ProfileRecord]] = None):
        self.profiles = dict(profiles or {})
        self.calls: list[str] = []

    async def resolve(self, username: str) -> ProfileRecord:
        self.calls.append(username)
        if username in self.profiles:
            return self.profiles[username]
        return ProfileRecord(username=username, title=username)


class NoThrottle:
    """Throttle double that counts entries."""

    def __init__(self):
        self.entered = 0

    async def __aenter__(self):
        self.entered += 1
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None
