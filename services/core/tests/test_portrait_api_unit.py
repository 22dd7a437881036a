"""Unit tests for the portrait profile API adapter.

Tests cover:
- Profile document parsing (title, avatar pointers)
- HTML stripping in titles
- Fallback to the raw username on any failure
"""

import httpx
import pytest

from portraitdex_core.providers.portrait_api.adapter import (
    EnrichmentError,
    PortraitProfileAdapter,
    clean_title,
)

API_URL = "http://profiles.test/api/v2/user/latestportrait"


def profile_document(title=None, cid=None, arweave_tx=None) -> dict:
    avatar = {}
    if cid is not None:
        avatar["cid"] = cid
    if arweave_tx is not None:
        avatar["arweaveTxId"] = arweave_tx
    return {"settings": {"profile": {"title": title, "avatar": avatar}}}


@pytest.fixture
def adapter() -> PortraitProfileAdapter:
    return PortraitProfileAdapter(api_url=API_URL, timeout=5.0)


class TestCleanTitle:
    """Tests for title cleanup."""

    def test_strips_tags(self):
        assert clean_title("<b>Alice</b> <i>W</i>", "alice") == "Alice W"

    def test_strips_unterminated_tag(self):
        assert clean_title("Alice <img src=x", "alice") == "Alice"

    def test_blank_title_falls_back(self):
        assert clean_title("  <br>  ", "alice") == "alice"

    def test_non_string_falls_back(self):
        assert clean_title(None, "alice") == "alice"
        assert clean_title(42, "alice") == "alice"


class TestParseProfile:
    """Tests for profile document mapping."""

    def test_prefers_ipfs_cid(self, adapter):
        record = adapter.parse_profile(
            "alice", profile_document(title="Alice", cid="bafy123", arweave_tx="tx9")
        )

        assert record.title == "Alice"
        assert record.avatar_reference == "ipfs://bafy123"
        assert record.enriched is True

    def test_arweave_when_no_cid(self, adapter):
        record = adapter.parse_profile("alice", profile_document(arweave_tx="tx9"))

        assert record.avatar_reference == "ar://tx9"
        assert record.title == "alice"

    def test_no_avatar(self, adapter):
        record = adapter.parse_profile("alice", {"settings": {}})

        assert record.avatar_reference is None
        assert record.title == "alice"


class TestFetchProfile:
    """Tests for the HTTP call."""

    @pytest.mark.asyncio
    async def test_requests_profile_by_name(self, adapter, mock_httpx_client):
        mock_httpx_client.get.return_value.json.return_value = profile_document(title="Alice")

        data = await adapter.fetch_profile("alice")

        mock_httpx_client.get.assert_called_once_with(API_URL, params={"name": "alice"})
        assert data["settings"]["profile"]["title"] == "Alice"

    @pytest.mark.asyncio
    async def test_non_200_raises(self, adapter, mock_httpx_client):
        mock_httpx_client.get.return_value.status_code = 404

        with pytest.raises(EnrichmentError) as exc_info:
            await adapter.fetch_profile("ghost")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self, adapter, mock_httpx_client):
        mock_httpx_client.get.return_value.json.side_effect = ValueError("bad json")

        with pytest.raises(EnrichmentError):
            await adapter.fetch_profile("alice")

    @pytest.mark.asyncio
    async def test_network_error_raises(self, adapter, mock_httpx_client):
        mock_httpx_client.get.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(EnrichmentError):
            await adapter.fetch_profile("alice")


class TestResolve:
    """Tests for best-effort resolution."""

    @pytest.mark.asyncio
    async def test_resolve_enriches(self, adapter, mock_httpx_client):
        mock_httpx_client.get.return_value.json.return_value = profile_document(
            title="<em>Alice</em>", cid="bafy123"
        )

        record = await adapter.resolve("alice")

        assert record.title == "Alice"
        assert record.avatar_reference == "ipfs://bafy123"
        assert record.enriched is True

    @pytest.mark.asyncio
    async def test_resolve_falls_back_on_error(self, adapter, mock_httpx_client):
        mock_httpx_client.get.return_value.status_code = 500

        record = await adapter.resolve("alice")

        assert record.username == "alice"
        assert record.title == "alice"
        assert record.avatar_reference is None
        assert record.enriched is False

    @pytest.mark.asyncio
    async def test_resolve_falls_back_on_non_object(self, adapter, mock_httpx_client):
        mock_httpx_client.get.return_value.json.return_value = ["not", "an", "object"]

        record = await adapter.resolve("alice")

        assert record.enriched is False
