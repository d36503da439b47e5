"""
Email side-channel for chat turns.

Two independent paths:
- Detection: after a reply is produced, a secondary model call decides whether
  the assistant asked for the user's email; if so the turn emits one
  request_email event.
- Capture: when the user types an email address, a summary is generated, the
  inquiry is emailed to the company's support address, and the address is
  recorded on the chat.
"""

import re

from dialogue_foundry.ai.base import AIProvider, ChatMessage, FunctionTool
from dialogue_foundry.ai.chat.config import ChatSettings
from dialogue_foundry.ai.chat.schemas import EmailRequestDetails, RequestEmailEvent
from dialogue_foundry.db.chats.schemas import ChatConfigRecord, ChatRecord
from dialogue_foundry.db.chats.store import ChatStore
from dialogue_foundry.integrations.sendgrid.service import (
    InquiryEmailService,
    recent_conversation,
)
from dialogue_foundry.utils.logger import logger, mask_email

EMAIL_KEYWORDS = (
    "email",
    "contact",
    "follow up",
    "follow-up",
    "reach out",
    "get in touch",
    "send you",
    "share with you",
    "provide you with",
)

EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")

SUMMARY_HISTORY_LIMIT = 10

_EMAIL_ARGUMENTS_SCHEMA = {
    "type": "object",
    "properties": {
        "subject": {
            "type": "string",
            "description": "Why the email is needed or what the inquiry is about.",
        },
        "conversationSummary": {
            "type": "string",
            "description": "A brief summary of what the user is looking for.",
        },
    },
    "required": ["subject", "conversationSummary"],
    "additionalProperties": False,
}

REQUEST_USER_EMAIL_TOOL = FunctionTool(
    name="request_user_email",
    description=(
        "Call this function when the assistant is clearly asking for, requesting, "
        "or mentioning that they need the user's email address or contact information."
    ),
    parameters=_EMAIL_ARGUMENTS_SCHEMA,
)

GENERATE_EMAIL_SUMMARY_TOOL = FunctionTool(
    name="generate_email_summary",
    description=(
        "Generate a subject line (under 50 characters) and conversation summary "
        "(under 200 characters) for an email inquiry when a user has provided "
        "their email address."
    ),
    parameters=_EMAIL_ARGUMENTS_SCHEMA,
)

DETECTION_PROMPT = """Analyze the following assistant response to determine if the assistant is asking for or requesting the user's email address or contact information.

Assistant's response:
"{response}"

The assistant is requesting email/contact if they:
- Directly ask for email address ("What's your email?", "Can you provide your email?")
- Ask for contact information from the user in any form

Only call the function if the assistant is clearly requesting the user's email or contact information. Do not call it if they are mentioning email in general terms, talking about someone else's email, or saying that an email was already sent."""

SUMMARY_PROMPT = """A user has provided their email address in the following message: "{message}"

Based on this message and the conversation history, generate a subject line and conversation summary for an email inquiry.

Conversation history:
{history}

Call the generate_email_summary function with:
1. A concise subject line describing what the user needs help with (under 50 characters)
2. A summary of what the user is looking for (under 200 characters)"""


def has_email_indicator(text: str) -> bool:
    """Whether the text mentions anything email- or contact-related."""
    lowered = text.lower()
    return any(keyword in lowered for keyword in EMAIL_KEYWORDS)


def find_email(text: str) -> str | None:
    """First email address in the text, if any."""
    match = EMAIL_PATTERN.search(text)
    return match.group(0) if match else None


class EmailDetectionService:
    """Model-backed classification for the email side-channel."""

    def __init__(self, provider: AIProvider, settings: ChatSettings):
        self.provider = provider
        self.settings = settings

    async def detect_email_request(self, assistant_text: str) -> RequestEmailEvent | None:
        """
        Decide whether a reply asks for the user's email.

        The model call is skipped unless the reply contains an email keyword.
        Only the first function call is used, so at most one event is returned.

        Args:
            assistant_text: The reply just produced for the user

        Returns:
            RequestEmailEvent | None: The event to emit, if the reply asks for an email

        Raises:
            OpenAIContentGenerationError: If the classification call fails
        """
        if not has_email_indicator(assistant_text):
            return None

        call = await self.provider.generate_function_call(
            messages=[
                ChatMessage(
                    role="user", content=DETECTION_PROMPT.format(response=assistant_text)
                )
            ],
            tools=[REQUEST_USER_EMAIL_TOOL],
            model=self.settings.email_detection_model,
            temperature=self.settings.email_detection_temperature,
        )
        if call is None or call.name != REQUEST_USER_EMAIL_TOOL.name:
            logger.debug("[EMAIL] No email request detected")
            return None

        details = EmailRequestDetails.model_validate(call.arguments)
        logger.info("[EMAIL] Email request detected", subject=details.subject)
        return RequestEmailEvent(details=details)

    async def generate_email_summary(
        self, user_message: str, history: list[ChatMessage]
    ) -> EmailRequestDetails | None:
        """
        Summarize a conversation for an inquiry email.

        Args:
            user_message: Message in which the user supplied their email
            history: Conversation so far, oldest first

        Returns:
            EmailRequestDetails | None: Subject and summary, or None if the model gave none
        """
        transcript = "\n".join(
            f"{m.role}: {m.content}" for m in history[-SUMMARY_HISTORY_LIMIT:]
        )
        call = await self.provider.generate_function_call(
            messages=[
                ChatMessage(
                    role="user",
                    content=SUMMARY_PROMPT.format(message=user_message, history=transcript),
                )
            ],
            tools=[GENERATE_EMAIL_SUMMARY_TOOL],
            model=self.settings.email_detection_model,
            temperature=self.settings.email_detection_temperature,
            force_tool=GENERATE_EMAIL_SUMMARY_TOOL.name,
        )
        if call is None or call.name != GENERATE_EMAIL_SUMMARY_TOOL.name:
            return None

        details = EmailRequestDetails.model_validate(call.arguments)
        if not details.subject or not details.conversation_summary:
            return None
        return details


class UserEmailCaptureService:
    """Handles an email address typed by the user into the chat."""

    def __init__(
        self,
        store: ChatStore,
        detector: EmailDetectionService,
        inquiry: InquiryEmailService,
    ):
        self.store = store
        self.detector = detector
        self.inquiry = inquiry

    async def process_user_message(
        self,
        chat: ChatRecord,
        config: ChatConfigRecord,
        user_message: str,
        history: list[ChatMessage],
    ) -> bool:
        """
        Send an inquiry email and record the address if the message contains one.

        Nothing happens when the message has no address, the company has no
        support email, or the chat already has an email on file. Errors are
        logged, never raised.

        Returns:
            bool: True if an email was sent and recorded
        """
        user_email = find_email(user_message)
        if not user_email or not config.support_email or chat.user_email:
            return False

        logger.info(
            "[EMAIL] Processing user email found in message",
            chat_id=chat.id,
            user_email=mask_email(user_email),
        )
        try:
            summary = await self.detector.generate_email_summary(user_message, history)
            if summary is None:
                logger.warning(
                    "[EMAIL] Failed to generate email summary", chat_id=chat.id
                )
                return False

            messages = await self.store.list_messages(chat.id)
            sent = await self.inquiry.send_inquiry_email(
                config=config,
                user_email=user_email,
                subject=summary.subject,
                conversation_summary=summary.conversation_summary,
                recent_messages=recent_conversation(messages),
            )
            if not sent:
                logger.warning(
                    "[EMAIL] Failed to send email for user-provided address",
                    chat_id=chat.id,
                )
                return False

            await self.store.update_chat_email(chat.id, user_email)
            logger.info(
                "[EMAIL] Processed user email from message",
                chat_id=chat.id,
                subject=summary.subject,
            )
            return True

        except Exception as e:
            logger.error(
                "[EMAIL] Error processing user email",
                chat_id=chat.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
