"""Elasticsearch access for the username index.

Wraps the official client with the three calls the search index needs:
recreating the index, bulk loading {id, username} documents, and a prefix
lookup returning matching portrait ids.

Usage:
    client = ElasticsearchClient(url="http://localhost:9200")

    client.recreate_index(PORTRAITS_INDEX)
    client.index_usernames(PORTRAITS_INDEX, [(7, "alice")])
    ids = client.prefix_search(PORTRAITS_INDEX, "ali", size=100)
"""

from typing import Any, Iterable, Optional

from elasticsearch import ApiError, Elasticsearch, NotFoundError, TransportError

PORTRAITS_INDEX = "portraitdex_portraits_v1"

# Case and diacritic insensitive, like the FTS5 unicode61 tokenizer
PORTRAITS_SETTINGS = {
    "number_of_shards": 1,
    "number_of_replicas": 0,
    "analysis": {
        "analyzer": {
            "username_analyzer": {
                "type": "custom",
                "tokenizer": "standard",
                "filter": ["lowercase", "asciifolding"],
            }
        }
    },
}

PORTRAITS_MAPPINGS = {
    "properties": {
        "id": {"type": "long"},
        "username": {"type": "text", "analyzer": "username_analyzer"},
    }
}


class ElasticsearchError(Exception):
    """Raised when an index request fails or documents are rejected."""

    pass


class ElasticsearchClient:
    """Username index operations against one cluster."""

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: int = 30,
    ):
        options: dict[str, Any] = {"request_timeout": timeout}
        if api_key:
            options["api_key"] = api_key

        self.url = url
        self._client = Elasticsearch([url], **options)

    def recreate_index(self, index: str) -> None:
        """Drop the index if present and create it with the username mapping."""
        try:
            try:
                self._client.indices.delete(index=index)
            except NotFoundError:
                pass
            self._client.indices.create(
                index=index,
                settings=PORTRAITS_SETTINGS,
                mappings=PORTRAITS_MAPPINGS,
            )
        except (ApiError, TransportError) as e:
            raise ElasticsearchError(f"Could not recreate index {index}: {e}") from e

    def index_usernames(self, index: str, portraits: Iterable[tuple[int, str]]) -> int:
        """Bulk index (id, username) pairs and refresh the index.

        Returns:
            Number of documents indexed.

        Raises:
            ElasticsearchError: If the request fails or any document is rejected.
        """
        operations: list[dict[str, Any]] = []
        for portrait_id, username in portraits:
            operations.append({"index": {"_index": index, "_id": portrait_id}})
            operations.append({"id": portrait_id, "username": username})
        if not operations:
            return 0

        try:
            response = self._client.bulk(operations=operations, refresh=True)
        except (ApiError, TransportError) as e:
            raise ElasticsearchError(f"Bulk indexing into {index} failed: {e}") from e

        if response["errors"]:
            rejected = [
                item["index"] for item in response["items"] if item["index"].get("error")
            ]
            raise ElasticsearchError(
                f"{len(rejected)} documents rejected by {index}, "
                f"first: {rejected[0]['_id']} {rejected[0]['error']}"
            )
        return len(operations) // 2

    def prefix_search(self, index: str, text: str, size: int) -> list[int]:
        """Ids of portraits whose username has a word starting with the text."""
        try:
            response = self._client.search(
                index=index,
                query={"match_phrase_prefix": {"username": text}},
                size=size,
                source=False,
            )
        except (ApiError, TransportError) as e:
            raise ElasticsearchError(f"Search in {index} failed: {e}") from e

        return [int(hit["_id"]) for hit in response["hits"]["hits"]]
