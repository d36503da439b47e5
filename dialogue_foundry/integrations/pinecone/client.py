"""Pinecone integrated-embedding search over the REST API."""

from typing import Any

import httpx
from cachetools import TTLCache

from dialogue_foundry.integrations.base import Retriever
from dialogue_foundry.integrations.pinecone.config import PineconeSettings
from dialogue_foundry.integrations.pinecone.exceptions import (
    IndexNotFoundError,
    RetrievalError,
)
from dialogue_foundry.utils.logger import logger
from dialogue_foundry.utils.resilient_fetch import (
    ResilientFetchError,
    RetryConfig,
    resilient_request,
)


def format_documents_as_context(documents: list[str]) -> str:
    """
    Format retrieved documents as a context block for the model.

    Args:
        documents: Document texts, most relevant first

    Returns:
        str: The context block, or an empty string when there are no documents
    """
    if not documents:
        return ""

    parts = [f"[Document {i}] {doc}" for i, doc in enumerate(documents, start=1)]
    return "\nRelevant information from the knowledge base:\n" + "\n\n".join(parts) + "\n"


class PineconeClient(Retriever):
    """Async client for Pinecone record search.

    Index hosts are resolved through the control plane once and cached.
    """

    def __init__(
        self,
        settings: PineconeSettings,
        http_client: httpx.AsyncClient | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        """Initialize Pinecone client.

        Args:
            settings: Pinecone settings instance with API configuration
            http_client: Optional HTTP client (for testing)
            retry_config: Retry policy for every request
        """
        self.settings = settings
        self.retry_config = retry_config or RetryConfig()
        self._client = http_client
        self._hosts: TTLCache = TTLCache(
            maxsize=100, ttl=settings.host_cache_ttl_seconds
        )

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={
                    "Api-Key": self.settings.api_key,
                    "X-Pinecone-API-Version": self.settings.api_version,
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict:
        try:
            response = await resilient_request(
                self._ensure_client(),
                method,
                url,
                retry_config=self.retry_config,
                **kwargs,
            )
        except ResilientFetchError as e:
            raise RetrievalError(e.message, e.status_code, e) from e
        except httpx.HTTPError as e:
            raise RetrievalError(f"Request error: {e}", original_error=e) from e

        if response.status_code >= 400:
            raise RetrievalError(
                f"HTTP error: {response.text[:200]}", status_code=response.status_code
            )
        return response.json()

    async def resolve_host(self, index_name: str) -> str:
        """
        Resolve the data-plane host of an index.

        Raises:
            IndexNotFoundError: If the control plane does not know the index
        """
        host = self._hosts.get(index_name)
        if host:
            return host

        try:
            data = await self._request(
                "GET", f"{self.settings.control_plane_url}/indexes/{index_name}"
            )
        except RetrievalError as e:
            if e.status_code == 404:
                raise IndexNotFoundError(index_name) from e
            raise

        host = data.get("host")
        if not host:
            raise RetrievalError(f"No host returned for index {index_name}")

        host = host if host.startswith("http") else f"https://{host}"
        self._hosts[index_name] = host
        logger.info("Resolved Pinecone index host", index_name=index_name)
        return host

    async def search(
        self,
        index_name: str,
        query: str,
        top_k: int = 5,
        filter: dict[str, Any] | None = None,
    ) -> list[str]:
        host = await self.resolve_host(index_name)

        query_body: dict[str, Any] = {"inputs": {"text": query}, "top_k": top_k}
        if filter:
            query_body["filter"] = filter

        data = await self._request(
            "POST",
            f"{host}/records/namespaces/{self.settings.namespace}/search",
            json={"query": query_body, "fields": [self.settings.text_field]},
        )

        hits = data.get("result", {}).get("hits", [])
        documents = [
            str(hit["fields"][self.settings.text_field])
            for hit in hits
            if hit.get("fields", {}).get(self.settings.text_field) is not None
        ]
        logger.info(
            "Retrieved documents",
            index_name=index_name,
            hit_count=len(hits),
            document_count=len(documents),
        )
        return documents
