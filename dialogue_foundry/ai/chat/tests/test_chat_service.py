"""Tests for chat lifecycle operations."""

from unittest.mock import AsyncMock

import pytest

from dialogue_foundry.ai.chat.exceptions import ChatTurnError
from dialogue_foundry.constants import ErrorCode
from dialogue_foundry.db.chats.schemas import MessageRole


class TestCreateChat:
    """Test suite for ChatService.create_chat."""

    @pytest.mark.asyncio
    async def test_token_bound_to_new_chat(self, chat_service, token_service):
        response = await chat_service.create_chat("acme", user_id="user-1")

        identity = token_service.verify(response.access_token)
        assert identity.chat_id == response.chat.id
        assert identity.user_id == "user-1"
        assert response.messages == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id", [None, "", "undefined"])
    async def test_user_id_generated_when_missing(self, chat_service, user_id):
        response = await chat_service.create_chat("acme", user_id=user_id)

        assert response.chat.user_id not in (None, "", "undefined")

    @pytest.mark.asyncio
    async def test_welcome_message_stored_first(self, chat_service, store):
        response = await chat_service.create_chat("acme", welcome_message="Welcome!")

        messages = await store.list_messages(response.chat.id)
        assert [(m.role, m.content, m.sequence_number) for m in messages] == [
            (MessageRole.ASSISTANT, "Welcome!", 1)
        ]
        assert response.messages == messages

    @pytest.mark.asyncio
    async def test_welcome_message_failure_not_fatal(self, chat_service, store):
        store.insert_message = AsyncMock(side_effect=RuntimeError("db down"))

        response = await chat_service.create_chat("acme", welcome_message="Welcome!")

        assert response.chat.company_id == "acme"
        assert response.messages == []

    @pytest.mark.asyncio
    async def test_wire_shape(self, chat_service):
        response = await chat_service.create_chat("acme")

        wire = response.model_dump(by_alias=True, mode="json")
        assert set(wire) == {"chat", "accessToken", "messages"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "company_id, code",
        [(None, ErrorCode.INVALID_REQUEST), ("  ", ErrorCode.INVALID_REQUEST), ("nope", ErrorCode.INVALID_COMPANY)],
    )
    async def test_rejected_company(self, chat_service, company_id, code):
        with pytest.raises(ChatTurnError) as exc_info:
            await chat_service.create_chat(company_id)

        assert exc_info.value.code == code
        assert exc_info.value.to_detail() == {
            "error": exc_info.value.message,
            "code": code.value,
        }


class TestSendInquiryEmail:
    """Test suite for ChatService.send_inquiry_email."""

    @pytest.mark.asyncio
    async def test_sends_and_records_email(self, chat_service, store, notifier):
        created = await chat_service.create_chat("support-co", welcome_message="Hello!")

        await chat_service.send_inquiry_email(
            created.chat.id, "jane@example.com", "Roof quote", "Wants a new roof"
        )

        sent = notifier.sent[0]
        assert sent["template_id"] == "d-default"
        assert sent["cc"][0].email == "jane@example.com"
        assert sent["data"]["conversationSummary"] == "Wants a new roof"
        assert sent["data"]["chatHistory"] == "Assistant: Hello!"
        assert (await store.get_chat(created.chat.id)).user_email == "jane@example.com"

    @pytest.mark.asyncio
    async def test_missing_fields(self, chat_service):
        created = await chat_service.create_chat("support-co")

        with pytest.raises(ChatTurnError) as exc_info:
            await chat_service.send_inquiry_email(created.chat.id, "jane@example.com", "", "x")

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_chat(self, chat_service):
        with pytest.raises(ChatTurnError) as exc_info:
            await chat_service.send_inquiry_email("missing", "jane@example.com", "s", "x")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_send_failure_keeps_email_unset(self, chat_service, store, notifier):
        notifier.succeed = False
        created = await chat_service.create_chat("support-co")

        with pytest.raises(ChatTurnError) as exc_info:
            await chat_service.send_inquiry_email(
                created.chat.id, "jane@example.com", "Roof quote", "Wants a new roof"
            )

        assert exc_info.value.status_code == 500
        assert exc_info.value.code == ErrorCode.SERVER_ERROR
        assert (await store.get_chat(created.chat.id)).user_email is None
