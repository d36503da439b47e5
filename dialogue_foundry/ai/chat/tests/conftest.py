"""Shared fixtures for chat pipeline tests."""

import asyncio
from typing import Any

import pytest

from dialogue_foundry.ai.base import AIProvider, ChatMessage, FunctionCall, FunctionTool
from dialogue_foundry.ai.chat.config import ChatSettings
from dialogue_foundry.ai.chat.email_detection import (
    EmailDetectionService,
    UserEmailCaptureService,
)
from dialogue_foundry.ai.chat.service import ChatService, ChatTurnService
from dialogue_foundry.auth.config import TokenSettings
from dialogue_foundry.auth.service import AccessTokenService
from dialogue_foundry.db.chats.memory import InMemoryChatStore
from dialogue_foundry.db.chats.schemas import ChatConfigRecord, NewChat
from dialogue_foundry.integrations.base import EmailRecipient, Notifier, Retriever
from dialogue_foundry.integrations.sendgrid.service import InquiryEmailService


def text_events(*deltas: str, complete: bool = True) -> list[dict[str, Any]]:
    """Responses API events for a reply made of the given deltas."""
    events: list[dict[str, Any]] = [
        {"type": "response.created", "response": {"id": "resp_test"}},
        {"type": "response.output_item.added", "item": {"type": "message"}},
    ]
    events += [{"type": "response.output_text.delta", "delta": d} for d in deltas]
    if complete:
        events.append({"type": "response.completed", "response": {"id": "resp_test"}})
    return events


class ScriptedProvider(AIProvider):
    """Replays scripted stream events and function calls."""

    def __init__(
        self,
        events: list[dict[str, Any]] | None = None,
        function_call: FunctionCall | None = None,
        stream_error: Exception | None = None,
        function_error: Exception | None = None,
    ):
        self.events = events if events is not None else text_events("Hi", " there")
        self.function_call = function_call
        self.stream_error = stream_error
        self.function_error = function_error
        self.stream_calls: list[dict[str, Any]] = []
        self.function_calls: list[dict[str, Any]] = []

    async def stream_response(
        self,
        messages: list[ChatMessage],
        instructions: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
    ):
        self.stream_calls.append({"messages": messages, "instructions": instructions})
        for event in self.events:
            # Let concurrent turns interleave
            await asyncio.sleep(0)
            yield event
        if self.stream_error is not None:
            raise self.stream_error

    async def generate_function_call(
        self,
        messages: list[ChatMessage],
        tools: list[FunctionTool],
        instructions: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        force_tool: str | None = None,
    ) -> FunctionCall | None:
        self.function_calls.append(
            {"messages": messages, "tools": [t.name for t in tools], "force_tool": force_tool}
        )
        if self.function_error is not None:
            raise self.function_error
        return self.function_call


class RecordingNotifier(Notifier):
    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.sent: list[dict[str, Any]] = []

    async def send(
        self,
        template_id: str,
        to: list[EmailRecipient],
        data: dict[str, Any],
        cc: list[EmailRecipient] | None = None,
    ) -> bool:
        self.sent.append({"template_id": template_id, "to": to, "cc": cc, "data": data})
        return self.succeed


class StaticRetriever(Retriever):
    def __init__(self, documents: list[str] | None = None, error: Exception | None = None):
        self.documents = documents or []
        self.error = error
        self.queries: list[tuple[str, str]] = []

    async def search(self, index_name, query, top_k=5, filter=None) -> list[str]:
        self.queries.append((index_name, query))
        if self.error is not None:
            raise self.error
        return self.documents


@pytest.fixture
def chat_settings():
    return ChatSettings(heartbeat_interval_seconds=5, email_detection_timeout_seconds=1)


@pytest.fixture
def token_service():
    return AccessTokenService(
        TokenSettings(secret="test-secret-that-is-at-least-32-characters")
    )


@pytest.fixture
def store():
    return InMemoryChatStore(
        configs=[
            ChatConfigRecord(company_id="acme", system_prompt="You help Acme customers."),
            ChatConfigRecord(
                company_id="support-co",
                system_prompt="You are a support agent.",
                support_email="support@support-co.test",
                retrieval_index_name="support-docs",
            ),
        ]
    )


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def chat_service(store, token_service, notifier):
    return ChatService(
        store, token_service, inquiry=InquiryEmailService(notifier, "d-default")
    )


@pytest.fixture
def make_turn_service(store, chat_settings, notifier):
    """Build a turn service around a given provider and optional retriever."""

    def _make(provider: AIProvider, retriever: Retriever | None = None) -> ChatTurnService:
        detector = EmailDetectionService(provider, chat_settings)
        capture = UserEmailCaptureService(
            store, detector, InquiryEmailService(notifier, "d-default")
        )
        return ChatTurnService(
            store,
            provider,
            chat_settings,
            retriever=retriever,
            email_detector=detector,
            email_capture=capture,
        )

    return _make


@pytest.fixture
def make_chat(store):
    async def _make(company_id: str = "acme", user_id: str = "user-1"):
        return await store.create_chat(NewChat(user_id=user_id, company_id=company_id))

    return _make


@pytest.fixture
def collect():
    async def _collect(events) -> list:
        return [event async for event in events]

    return _collect


@pytest.fixture
def scripted_provider():
    """Build a ScriptedProvider replying with the given text deltas."""

    def _make(
        *deltas: str,
        complete: bool = True,
        events: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> ScriptedProvider:
        if events is None:
            events = text_events(*deltas, complete=complete)
        return ScriptedProvider(events=events, **kwargs)

    return _make


@pytest.fixture
def retriever_factory():
    return StaticRetriever
