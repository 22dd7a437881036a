"""Portrait profile API adapter.

Implements the ProfileLookup interface against the public profile API,
mapping its latest-portrait document to a ProfileRecord.

Usage:
    adapter = PortraitProfileAdapter(
        api_url="https://api.portrait.so/api/v2/user/latestportrait",
        timeout=20.0,
    )

    record = await adapter.resolve("alice")
"""

import logging
import re
from typing import Any, Optional

import httpx

from portraitdex_core.domain.links import avatar_reference_for
from portraitdex_core.providers.base import ProfileLookup, ProfileRecord

logger = logging.getLogger(__name__)

# Also drops a trailing unterminated tag
_TAG_RE = re.compile(r"<[^>]*>?")


class EnrichmentError(Exception):
    """Raised when a profile cannot be fetched or parsed."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


def clean_title(title: Any, fallback: str) -> str:
    """Strip HTML tags from a profile title; blank titles fall back."""
    if not isinstance(title, str):
        return fallback
    cleaned = _TAG_RE.sub("", title).strip()
    return cleaned or fallback


class PortraitProfileAdapter(ProfileLookup):
    """Best-effort profile lookup by username."""

    def __init__(self, api_url: str, timeout: float = 20.0):
        self.api_url = api_url
        self.timeout = timeout

    async def fetch_profile(self, username: str) -> dict[str, Any]:
        """Fetch the raw latest-portrait document for a username.

        Raises:
            EnrichmentError: On network errors, non-200 responses or a
                body that is not a JSON object.
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.api_url, params={"name": username})
        except httpx.HTTPError as e:
            raise EnrichmentError(f"Profile request for {username} failed: {e}") from e

        if response.status_code != 200:
            raise EnrichmentError(
                f"Profile API returned {response.status_code} for {username}",
                response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise EnrichmentError(f"Profile for {username} is not JSON") from e

        if not isinstance(data, dict):
            raise EnrichmentError(f"Profile for {username} is not an object")
        return data

    @staticmethod
    def _profile_section(data: dict[str, Any]) -> dict[str, Any]:
        settings = data.get("settings")
        if not isinstance(settings, dict):
            return {}
        profile = settings.get("profile")
        return profile if isinstance(profile, dict) else {}

    def parse_profile(self, username: str, data: dict[str, Any]) -> ProfileRecord:
        profile = self._profile_section(data)
        avatar = profile.get("avatar")
        cid: Optional[str] = None
        arweave_tx: Optional[str] = None
        if isinstance(avatar, dict):
            cid = avatar.get("cid") if isinstance(avatar.get("cid"), str) else None
            arweave_tx = (
                avatar.get("arweaveTxId") if isinstance(avatar.get("arweaveTxId"), str) else None
            )

        return ProfileRecord(
            username=username,
            title=clean_title(profile.get("title"), username),
            avatar_reference=avatar_reference_for(cid, arweave_tx),
            enriched=True,
        )

    async def resolve(self, username: str) -> ProfileRecord:
        """Resolve a username; failures yield the un-enriched fallback."""
        try:
            data = await self.fetch_profile(username)
        except EnrichmentError as e:
            logger.warning(f"Enrichment failed for {username}: {e}")
            return ProfileRecord(username=username, title=username)

        return self.parse_profile(username, data)
