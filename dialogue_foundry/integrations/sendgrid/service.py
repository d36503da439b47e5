"""Inquiry emails sent to a company's support team."""

from datetime import UTC, datetime

from dialogue_foundry.db.chats.schemas import ChatConfigRecord, MessageRecord, MessageRole
from dialogue_foundry.integrations.base import EmailRecipient, Notifier
from dialogue_foundry.utils.logger import logger, mask_email

RECENT_MESSAGE_LIMIT = 20


def recent_conversation(
    messages: list[MessageRecord], limit: int = RECENT_MESSAGE_LIMIT
) -> list[MessageRecord]:
    """The last `limit` messages of a transcript, without system messages."""
    return [m for m in messages[-limit:] if m.role != MessageRole.SYSTEM]


def format_chat_history(messages: list[MessageRecord]) -> str:
    return "\n\n".join(
        f"{m.role.value.capitalize()}: {m.content}" for m in messages
    )


class InquiryEmailService:
    """Sends the user's inquiry to the company support address, CC'ing the user."""

    def __init__(self, notifier: Notifier, default_template_id: str):
        self.notifier = notifier
        self.default_template_id = default_template_id

    async def send_inquiry_email(
        self,
        config: ChatConfigRecord,
        user_email: str,
        subject: str,
        conversation_summary: str,
        recent_messages: list[MessageRecord],
    ) -> bool:
        """
        Send an inquiry email for a chat.

        Args:
            config: Chat configuration of the company the chat belongs to
            user_email: Address the user supplied
            subject: Short subject describing the inquiry
            conversation_summary: What the user needs help with
            recent_messages: Transcript excerpt included in the email

        Returns:
            bool: True if the email was accepted for delivery
        """
        if not config.support_email:
            logger.warning(
                "[EMAIL] No support email configured", company_id=config.company_id
            )
            return False

        now = datetime.now(UTC)
        data = {
            "subject": subject,
            "conversationSummary": conversation_summary,
            "chatHistory": format_chat_history(recent_messages),
            "userEmail": user_email,
            "date": f"{now:%B} {now.day}, {now.year}",
        }

        sent = await self.notifier.send(
            template_id=config.sendgrid_template_id or self.default_template_id,
            to=[EmailRecipient(email=config.support_email, name="Support Team")],
            cc=[EmailRecipient(email=user_email, name="User")],
            data=data,
        )
        logger.info(
            "[EMAIL] Inquiry email processed",
            company_id=config.company_id,
            user_email=mask_email(user_email),
            sent=sent,
        )
        return sent
