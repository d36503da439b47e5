"""Tests for the Pinecone retrieval client."""

import json

import httpx
import pytest

from dialogue_foundry.integrations.pinecone.client import (
    PineconeClient,
    format_documents_as_context,
)
from dialogue_foundry.integrations.pinecone.config import PineconeSettings
from dialogue_foundry.integrations.pinecone.exceptions import (
    IndexNotFoundError,
    RetrievalError,
)
from dialogue_foundry.utils.resilient_fetch import RetryConfig

CONTROL_PLANE = "https://api.pinecone.test"
INDEX_HOST = "support-docs-abc123.svc.pinecone.test"


@pytest.fixture
def settings():
    return PineconeSettings(api_key="pc-test-key", control_plane_url=CONTROL_PLANE)


def make_client(settings, handler) -> PineconeClient:
    return PineconeClient(
        settings,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        retry_config=RetryConfig(max_retries=0),
    )


class PineconeHandler:
    """Fake control and data planes."""

    def __init__(self, hits: list[dict] | None = None):
        self.hits = hits if hits is not None else []
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "api.pinecone.test":
            if request.url.path == "/indexes/support-docs":
                return httpx.Response(200, json={"name": "support-docs", "host": INDEX_HOST})
            return httpx.Response(404, json={"error": {"message": "Not found"}})
        return httpx.Response(200, json={"result": {"hits": self.hits}})


class TestPineconeClient:
    """Test suite for PineconeClient."""

    @pytest.mark.asyncio
    async def test_search_returns_document_text(self, settings):
        handler = PineconeHandler(
            hits=[
                {"_id": "1", "_score": 0.9, "fields": {"chunk_text": "Shingles last 25 years."}},
                {"_id": "2", "_score": 0.5, "fields": {}},
                {"_id": "3", "_score": 0.4, "fields": {"chunk_text": "Gutters need cleaning."}},
            ]
        )
        client = make_client(settings, handler)

        documents = await client.search("support-docs", "roof lifespan", top_k=3)

        assert documents == ["Shingles last 25 years.", "Gutters need cleaning."]
        search_request = handler.requests[-1]
        assert search_request.method == "POST"
        assert str(search_request.url) == (
            f"https://{INDEX_HOST}/records/namespaces/default/search"
        )
        assert json.loads(search_request.content) == {
            "query": {"inputs": {"text": "roof lifespan"}, "top_k": 3},
            "fields": ["chunk_text"],
        }

    @pytest.mark.asyncio
    async def test_filter_passed_through(self, settings):
        handler = PineconeHandler()
        client = make_client(settings, handler)

        await client.search("support-docs", "q", filter={"category": {"$eq": "roofing"}})

        body = json.loads(handler.requests[-1].content)
        assert body["query"]["filter"] == {"category": {"$eq": "roofing"}}

    @pytest.mark.asyncio
    async def test_host_resolved_once(self, settings):
        handler = PineconeHandler()
        client = make_client(settings, handler)

        await client.search("support-docs", "first")
        await client.search("support-docs", "second")

        control_plane_calls = [r for r in handler.requests if r.url.host == "api.pinecone.test"]
        assert len(control_plane_calls) == 1

    @pytest.mark.asyncio
    async def test_unknown_index(self, settings):
        client = make_client(settings, PineconeHandler())

        with pytest.raises(IndexNotFoundError) as exc_info:
            await client.search("missing-index", "q")

        assert exc_info.value.index_name == "missing-index"

    @pytest.mark.asyncio
    async def test_server_error_raises_retrieval_error(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="unavailable")

        client = make_client(settings, handler)

        with pytest.raises(RetrievalError) as exc_info:
            await client.search("support-docs", "q")

        assert exc_info.value.status_code == 503

    def test_not_enabled_without_api_key(self):
        assert not PineconeSettings(api_key="").enabled


class TestFormatDocuments:
    def test_format(self):
        context = format_documents_as_context(["First.", "Second."])

        assert context == (
            "\nRelevant information from the knowledge base:\n"
            "[Document 1] First.\n\n[Document 2] Second.\n"
        )

    def test_empty(self):
        assert format_documents_as_context([]) == ""
