"""Unit tests for published count verification."""

from unittest.mock import AsyncMock, patch

import pytest

from portraitdex_core.domain.services.verification import (
    VerificationReport,
    main,
    run_verification,
    verify_published_count,
)
from portraitdex_core.providers.chain.client import ConnectivityError
from tests.factories import FakeChain, make_portrait


@pytest.fixture
def chain() -> FakeChain:
    """Seven ids: 1, 2, 4 and 6 published, 7 failing lookups."""
    chain = FakeChain(counter=7)
    for portrait_id in (1, 2, 4, 6):
        chain.publish(portrait_id, f"user{portrait_id}")
    return chain


async def store_portraits(session_factory, *portraits) -> None:
    async with session_factory() as session:
        session.add_all(portraits)
        await session.commit()


class TestVerifyPublishedCount:
    """Tests for the on-chain walk and the stored count."""

    @pytest.mark.asyncio
    async def test_counts_published_ids_in_chunks(self, chain):
        report = await verify_published_count(chain, chunk_size=3)

        assert report.id_counter == 7
        assert report.checked == 7
        assert report.published_on_chain == 4
        assert chain.state_requests == [[1, 2, 3], [4, 5, 6], [7]]

    @pytest.mark.asyncio
    async def test_failed_lookups_are_reported(self, chain):
        chain.failing = {7}

        report = await verify_published_count(chain)

        assert report.lookup_failed == 1
        assert report.published_on_chain == 4

    @pytest.mark.asyncio
    async def test_empty_chain(self):
        report = await verify_published_count(FakeChain(counter=0))

        assert report.checked == 0
        assert report.published_on_chain == 0

    @pytest.mark.asyncio
    async def test_matching_database(self, chain, async_session_factory):
        await store_portraits(
            async_session_factory,
            *(make_portrait(pid, f"user{pid}") for pid in (1, 2, 4, 6)),
            make_portrait(3, "gone", is_published=False),
        )

        report = await verify_published_count(chain, async_session_factory)

        assert report.published_stored == 4
        assert report.matches is True

    @pytest.mark.asyncio
    async def test_lagging_database_does_not_match(self, chain, async_session_factory):
        await store_portraits(async_session_factory, make_portrait(1, "user1"))

        report = await verify_published_count(chain, async_session_factory)

        assert report.published_stored == 1
        assert report.matches is False

    @pytest.mark.asyncio
    async def test_unreachable_chain_raises(self):
        chain = FakeChain(counter=3)
        chain.connect_error = ConnectivityError("all endpoints down")

        with pytest.raises(ConnectivityError):
            await verify_published_count(chain)


class TestVerificationReport:
    def test_failed_lookups_never_match(self):
        report = VerificationReport(published_on_chain=2, lookup_failed=1, published_stored=2)

        assert report.matches is False

    def test_unknown_stored_count_does_not_match(self):
        assert VerificationReport(published_on_chain=0).matches is False


class TestRunVerification:
    """Tests for the runner and entry point."""

    @pytest.mark.asyncio
    async def test_missing_database_file_is_not_created(self, test_settings, tmp_path, chain):
        settings = test_settings.model_copy(
            update={"database_url": f"sqlite:///{tmp_path / 'portraits.sqlite'}"}
        )

        with patch(
            "portraitdex_core.domain.services.verification.get_chain_client",
            return_value=chain,
        ):
            report = await run_verification(settings)

        assert report.published_on_chain == 4
        assert report.published_stored is None
        assert not (tmp_path / "portraits.sqlite").exists()

    @pytest.mark.parametrize(
        "report, exit_code",
        [
            (VerificationReport(published_on_chain=3, published_stored=3), 0),
            (VerificationReport(published_on_chain=3, published_stored=2), 2),
            (VerificationReport(published_on_chain=3), 0),
        ],
    )
    def test_main_exit_codes(self, report, exit_code):
        with patch(
            "portraitdex_core.domain.services.verification.run_verification",
            new=AsyncMock(return_value=report),
        ), patch("portraitdex_core.observability.logging.configure_logging"):
            with pytest.raises(SystemExit) as exc_info:
                main()

        assert exc_info.value.code == exit_code

    def test_main_exits_1_when_chain_unreachable(self):
        with patch(
            "portraitdex_core.domain.services.verification.run_verification",
            new=AsyncMock(side_effect=ConnectivityError("all endpoints down")),
        ), patch("portraitdex_core.observability.logging.configure_logging"):
            with pytest.raises(SystemExit) as exc_info:
                main()

        assert exc_info.value.code == 1
