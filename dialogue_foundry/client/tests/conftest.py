"""Fake chat server and recorders for client tests."""

import json
from typing import Any

import httpx
import pytest

from dialogue_foundry.client.session import ChatApiClient, ChatClientConfig
from dialogue_foundry.client.streaming import ChatStreamClient, ReconnectConfig
from dialogue_foundry.client.transports import NdjsonTransport, SseTransport

API_BASE_URL = "http://chat.test/api"

REPLY = [
    {"type": "chunk", "content": "Hi"},
    {"type": "chunk", "content": " there"},
    {"type": "done", "fullContent": "Hi there"},
]


class FakeChatServer:
    """
    In-process stand-in for the chat API.

    Each stream request consumes the next script (the last one repeats). A
    script is a list of events; plain strings are written as raw lines.
    """

    def __init__(self):
        self.valid_tokens: set[str] = set()
        self.created = 0
        self.create_bodies: list[dict[str, Any]] = []
        self.stream_requests: list[tuple[str, str, str]] = []
        self.scripts: list[list[Any]] = [REPLY]
        self.ndjson_unreachable = False
        self.sse_unreachable = False
        self.ndjson_body_fails = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "POST" and path == "/api/chats":
            return self._create_chat(request)

        if path.endswith("/stream/sse"):
            if self.sse_unreachable:
                raise httpx.ConnectError("connection refused", request=request)
            transport = "sse"
            token = request.url.params.get("token")
            content = request.url.params.get("content")
        elif path.endswith("/stream"):
            if self.ndjson_unreachable:
                raise httpx.ConnectError("connection refused", request=request)
            transport = "ndjson"
            token = request.headers.get("Authorization", "").removeprefix("Bearer ")
            content = json.loads(request.content).get("content")
        else:
            return httpx.Response(404, json={"detail": "Not Found"})

        chat_id = path.split("/")[3]
        self.stream_requests.append((transport, chat_id, content))

        if token not in self.valid_tokens:
            return httpx.Response(
                401,
                json={"detail": {"error": "Invalid or expired token", "code": "TOKEN_INVALID"}},
            )

        if transport == "ndjson" and self.ndjson_body_fails:
            return httpx.Response(
                200,
                content=self._broken_body(),
                headers={"content-type": "application/x-ndjson"},
            )

        script = self.scripts.pop(0) if len(self.scripts) > 1 else self.scripts[0]
        if transport == "sse":
            return httpx.Response(
                200,
                content=self._sse_body(script),
                headers={"content-type": "text/event-stream"},
            )
        return httpx.Response(
            200,
            content=self._ndjson_body(script),
            headers={"content-type": "application/x-ndjson"},
        )

    def _create_chat(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.create_bodies.append(body)
        self.created += 1
        chat_id, token = f"chat-{self.created}", f"token-{self.created}"
        self.valid_tokens.add(token)
        return httpx.Response(
            201,
            json={
                "chat": {
                    "id": chat_id,
                    "user_id": body.get("userId") or "generated-user",
                    "company_id": body["companyId"],
                    "name": "New Conversation",
                },
                "accessToken": token,
                "messages": [],
            },
        )

    @staticmethod
    async def _broken_body():
        raise httpx.ReadError("connection reset by peer")
        yield b""

    @staticmethod
    def _line(item: Any) -> str:
        return item if isinstance(item, str) else json.dumps(item)

    def _ndjson_body(self, script: list[Any]) -> bytes:
        lines = [json.dumps({"type": "start"})] + [self._line(i) for i in script]
        return ("\n".join(lines) + "\n").encode()

    def _sse_body(self, script: list[Any]) -> bytes:
        frames = [":" + " " * 64 + "\n\n", 'data: {"type": "connected"}\n\n', ":\n\n"]
        frames += [f"data: {self._line(i)}\n\n" for i in script]
        return "".join(frames).encode()


class TurnRecorder:
    """Collects the callbacks of one send_message call."""

    def __init__(self):
        self.chunks: list[str] = []
        self.completed: list[str] = []
        self.errors: list[Any] = []
        self.special: list[dict[str, Any]] = []

    def kwargs(self) -> dict[str, Any]:
        return {
            "on_chunk": self.chunks.append,
            "on_complete": self.completed.append,
            "on_error": self.errors.append,
            "on_special_event": self.special.append,
        }


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def server():
    return FakeChatServer()


@pytest.fixture
def http_client(server):
    return httpx.AsyncClient(transport=httpx.MockTransport(server))


@pytest.fixture
def api(http_client):
    return ChatApiClient(
        ChatClientConfig(api_base_url=API_BASE_URL, company_id="acme"),
        http_client=http_client,
    )


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recorder():
    return TurnRecorder()


@pytest.fixture
def stream_client(api, http_client, sleep, clock):
    return ChatStreamClient(
        api,
        primary=NdjsonTransport(http_client),
        fallback=SseTransport(http_client),
        reconnect_config=ReconnectConfig(),
        sleep=sleep,
        clock=clock,
    )


@pytest.fixture
def recorder_factory():
    return TurnRecorder
