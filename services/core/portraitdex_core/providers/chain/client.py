"""JSON-RPC client for the portrait registries.

Implements the ChainReader interface over plain Ethereum JSON-RPC:
- endpoint failover with a liveness check (eth_blockNumber)
- request coalescing: many eth_call lookups packed into one JSON-RPC batch
- per-id failure isolation inside a batch

Usage:
    client = get_chain_client()
    await client.connect()

    counter = await client.get_id_counter()
    states = await client.get_publish_state(range(1, counter + 1))
"""

import asyncio
import logging
from functools import lru_cache
from typing import Any, Callable, Iterator, Optional, Sequence, TypeVar

import httpx

from portraitdex_core.config import get_settings
from portraitdex_core.providers.base import ChainReader, PublishInfo, PublishState
from portraitdex_core.providers.chain import abi

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConnectivityError(Exception):
    """Raised when none of the configured RPC endpoints is reachable."""

    pass


class JsonRpcError(Exception):
    """Raised when a JSON-RPC call returns an error object."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class BatchLookupError(Exception):
    """Raised when the lookup of a single portrait id fails."""

    def __init__(self, portrait_id: int, message: str):
        super().__init__(f"Lookup failed for portrait {portrait_id}: {message}")
        self.portrait_id = portrait_id
        self.reason = message


class ChainClient(ChainReader):
    """Read-only client for the id, name and state registries."""

    def __init__(
        self,
        rpc_urls: Sequence[str],
        id_registry_address: str,
        name_registry_address: str,
        state_registry_address: str,
        timeout: float = 20.0,
        batch_size: int = 500,
        batch_pause: float = 0.1,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the chain client.

        Args:
            rpc_urls: RPC endpoints, tried in order by connect().
            id_registry_address: Registry holding the id counter and owners.
            name_registry_address: Registry mapping ids to usernames.
            state_registry_address: Registry mapping ids to state hashes.
            timeout: Timeout in seconds for every RPC request.
            batch_size: Maximum ids per batched request.
            batch_pause: Pause in seconds between consecutive batches.
            transport: Optional httpx transport (used by tests).
        """
        self.rpc_urls = list(rpc_urls)
        self.id_registry_address = id_registry_address
        self.name_registry_address = name_registry_address
        self.state_registry_address = state_registry_address
        self.timeout = timeout
        self.batch_size = batch_size
        self.batch_pause = batch_pause
        self._transport = transport
        self._endpoint: Optional[str] = None
        self._request_id = 0

    @property
    def endpoint(self) -> Optional[str]:
        """The endpoint selected by connect(), if any."""
        return self._endpoint

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _payload(self, method: str, params: list[Any]) -> dict[str, Any]:
        self._request_id += 1
        return {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}

    async def _post(self, url: str, body: Any) -> Any:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(url, json=body)
        response.raise_for_status()
        return response.json()

    async def _call(self, method: str, params: list[Any], url: Optional[str] = None) -> Any:
        url = url or await self.connect()
        data = await self._post(url, self._payload(method, params))

        if not isinstance(data, dict):
            raise JsonRpcError("Malformed JSON-RPC response")
        if data.get("error"):
            error = data["error"]
            if isinstance(error, dict):
                raise JsonRpcError(str(error.get("message", error)), error.get("code"))
            raise JsonRpcError(str(error))
        return data.get("result")

    async def _call_batch(self, calls: list[tuple[str, list[Any]]]) -> list[Any]:
        """Send several calls in one JSON-RPC batch.

        Returns one entry per call, in call order: the call result, or a
        JsonRpcError for calls the node answered with an error.
        """
        url = await self.connect()
        payloads = [self._payload(method, params) for method, params in calls]
        data = await self._post(url, payloads)

        if not isinstance(data, list):
            detail = data.get("error") if isinstance(data, dict) else data
            raise JsonRpcError(f"Batch request rejected: {detail}")

        # Batch replies may come back in any order
        by_id = {entry.get("id"): entry for entry in data if isinstance(entry, dict)}
        results: list[Any] = []
        for payload in payloads:
            entry = by_id.get(payload["id"])
            if entry is None:
                results.append(JsonRpcError("Missing from batch response"))
            elif entry.get("error"):
                error = entry["error"]
                message = error.get("message", error) if isinstance(error, dict) else error
                results.append(JsonRpcError(str(message)))
            else:
                results.append(entry.get("result"))
        return results

    @staticmethod
    def _eth_call_params(to: str, data: str) -> list[Any]:
        return [{"to": to, "data": data}, "latest"]

    async def _eth_call(self, to: str, data: str) -> Any:
        return await self._call("eth_call", self._eth_call_params(to, data))

    def _chunks(self, ids: Sequence[int]) -> Iterator[list[int]]:
        ids = list(ids)
        for start in range(0, len(ids), self.batch_size):
            yield ids[start:start + self.batch_size]

    @staticmethod
    def _decode_reply(portrait_id: int, reply: Any, decoder: Callable[[str], T]) -> T:
        if isinstance(reply, JsonRpcError):
            raise BatchLookupError(portrait_id, str(reply)) from reply
        try:
            return decoder(reply)
        except abi.AbiDecodeError as e:
            raise BatchLookupError(portrait_id, str(e)) from e

    # -------------------------------------------------------------------------
    # ChainReader
    # -------------------------------------------------------------------------

    async def connect(self) -> str:
        """Select the first RPC endpoint that answers a block number request.

        The selected endpoint is reused for the lifetime of the client.

        Raises:
            ConnectivityError: If every endpoint fails the check.
        """
        if self._endpoint is not None:
            return self._endpoint

        for url in self.rpc_urls:
            try:
                block = int(await self._call("eth_blockNumber", [], url=url), 16)
            except (httpx.HTTPError, JsonRpcError, ValueError, TypeError) as e:
                logger.warning(f"RPC down: {url} ({e or type(e).__name__})")
                continue

            logger.info(f"RPC OK: {url} (block {block})")
            self._endpoint = url
            return url

        raise ConnectivityError(f"No RPC reachable ({len(self.rpc_urls)} endpoints tried)")

    async def get_id_counter(self) -> int:
        """Return the current portrait id counter."""
        raw = await self._eth_call(self.id_registry_address, abi.PORTRAIT_ID_COUNTER)
        return abi.decode_uint256(raw)

    async def get_publish_state(self, ids: Sequence[int]) -> dict[int, PublishInfo]:
        """Look up the state hash of every id.

        An id is published only when a non-empty hash comes back. Failed
        lookups are reported as LOOKUP_FAILED, never as published, and a
        failure on one id does not affect the rest of its batch.
        """
        results: dict[int, PublishInfo] = {}
        total = len(ids)
        done = 0

        for index, chunk in enumerate(self._chunks(ids)):
            if index:
                await asyncio.sleep(self.batch_pause)
            done += len(chunk)
            logger.info(f"Checking state for ids {chunk[0]}..{chunk[-1]} ({done}/{total})")

            calls = [
                (
                    "eth_call",
                    self._eth_call_params(
                        self.state_registry_address,
                        abi.encode_call(abi.PORTRAIT_ID_TO_PORTRAIT_HASH, portrait_id),
                    ),
                )
                for portrait_id in chunk
            ]
            try:
                replies = await self._call_batch(calls)
            except (httpx.HTTPError, JsonRpcError, ValueError) as e:
                logger.error(f"State batch {chunk[0]}..{chunk[-1]} failed: {e}")
                for portrait_id in chunk:
                    results[portrait_id] = PublishInfo(
                        portrait_id, PublishState.LOOKUP_FAILED, error=str(e)
                    )
                continue

            for portrait_id, reply in zip(chunk, replies):
                try:
                    state_hash = self._decode_reply(portrait_id, reply, abi.decode_string).strip()
                except BatchLookupError as e:
                    logger.warning(str(e))
                    results[portrait_id] = PublishInfo(
                        portrait_id, PublishState.LOOKUP_FAILED, error=e.reason
                    )
                    continue

                if state_hash and state_hash != "0x":
                    results[portrait_id] = PublishInfo(
                        portrait_id, PublishState.PUBLISHED, state_hash=state_hash
                    )
                else:
                    results[portrait_id] = PublishInfo(portrait_id, PublishState.UNPUBLISHED)

        return results

    async def get_usernames(self, ids: Sequence[int]) -> dict[int, str]:
        """Resolve usernames with one getNamesForPortraitIds call per chunk.

        Ids with an empty name, and ids of a chunk whose call failed, are
        left out of the result.
        """
        names: dict[int, str] = {}

        for index, chunk in enumerate(self._chunks(ids)):
            if index:
                await asyncio.sleep(self.batch_pause)
            logger.info(f"Fetching names for ids {chunk[0]}..{chunk[-1]}")

            try:
                raw = await self._eth_call(
                    self.name_registry_address,
                    abi.encode_uint256_array_call(abi.GET_NAMES_FOR_PORTRAIT_IDS, chunk),
                )
                chunk_names = abi.decode_string_array(raw)
                if len(chunk_names) != len(chunk):
                    raise abi.AbiDecodeError(
                        f"expected {len(chunk)} names, got {len(chunk_names)}"
                    )
            except (httpx.HTTPError, JsonRpcError, ValueError) as e:
                logger.error(f"Name lookup for ids {chunk[0]}..{chunk[-1]} failed: {e}")
                continue

            for portrait_id, name in zip(chunk, chunk_names):
                if name.strip():
                    names[portrait_id] = name
                else:
                    logger.warning(f"No username for published portrait {portrait_id}")

        return names

    async def get_owners(self, ids: Sequence[int]) -> dict[int, Optional[str]]:
        """Resolve owner addresses; failed lookups are left out."""
        owners: dict[int, Optional[str]] = {}

        for index, chunk in enumerate(self._chunks(ids)):
            if index:
                await asyncio.sleep(self.batch_pause)

            calls = [
                (
                    "eth_call",
                    self._eth_call_params(
                        self.id_registry_address,
                        abi.encode_call(abi.PORTRAIT_ID_TO_OWNER, portrait_id),
                    ),
                )
                for portrait_id in chunk
            ]
            try:
                replies = await self._call_batch(calls)
            except (httpx.HTTPError, JsonRpcError, ValueError) as e:
                logger.error(f"Owner batch {chunk[0]}..{chunk[-1]} failed: {e}")
                continue

            for portrait_id, reply in zip(chunk, replies):
                try:
                    owners[portrait_id] = self._decode_reply(portrait_id, reply, abi.decode_address)
                except BatchLookupError as e:
                    logger.warning(str(e))

        return owners


@lru_cache
def get_chain_client() -> ChainClient:
    """Get the process-wide chain client built from settings."""
    settings = get_settings()
    return ChainClient(
        rpc_urls=settings.chain_rpc_urls,
        id_registry_address=settings.chain_id_registry_address,
        name_registry_address=settings.chain_name_registry_address,
        state_registry_address=settings.chain_state_registry_address,
        timeout=settings.chain_rpc_timeout_seconds,
        batch_size=settings.chain_batch_size,
        batch_pause=settings.chain_batch_pause_seconds,
    )
