"""SendGrid v3 mail client over the REST API."""

from typing import Any

import httpx

from dialogue_foundry.integrations.base import EmailRecipient, Notifier
from dialogue_foundry.integrations.sendgrid.config import SendGridSettings
from dialogue_foundry.integrations.sendgrid.exceptions import NotificationError
from dialogue_foundry.utils.logger import logger
from dialogue_foundry.utils.resilient_fetch import (
    ResilientFetchError,
    RetryConfig,
    resilient_request,
)

MAIL_SEND_PATH = "/v3/mail/send"


class SendGridClient(Notifier):
    """Async client sending dynamic-template emails through SendGrid."""

    def __init__(
        self,
        settings: SendGridSettings,
        http_client: httpx.AsyncClient | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        """Initialize SendGrid client.

        Args:
            settings: SendGrid settings instance with API configuration
            http_client: Optional HTTP client (for testing)
            retry_config: Retry policy for every request
        """
        self.settings = settings
        self.retry_config = retry_config or RetryConfig()
        self._client = http_client

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.base_url,
                headers={
                    "Authorization": f"Bearer {self.settings.api_key}",
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_payload(
        self,
        template_id: str,
        to: list[EmailRecipient],
        data: dict[str, Any],
        cc: list[EmailRecipient] | None = None,
    ) -> dict[str, Any]:
        personalization: dict[str, Any] = {
            "to": [r.model_dump(exclude_none=True) for r in to],
            "dynamic_template_data": data,
        }
        if cc:
            personalization["cc"] = [r.model_dump(exclude_none=True) for r in cc]

        return {
            "personalizations": [personalization],
            "from": {"email": self.settings.from_email, "name": self.settings.from_name},
            "template_id": template_id,
        }

    async def _post(self, payload: dict[str, Any]) -> None:
        try:
            response = await resilient_request(
                self._ensure_client(),
                "POST",
                MAIL_SEND_PATH,
                retry_config=self.retry_config,
                json=payload,
            )
        except ResilientFetchError as e:
            raise NotificationError(e.message, e.status_code, e) from e
        except httpx.HTTPError as e:
            raise NotificationError(f"Request error: {e}", original_error=e) from e

        if response.status_code >= 400:
            raise NotificationError(
                f"HTTP error: {response.text[:200]}", status_code=response.status_code
            )

    async def send(
        self,
        template_id: str,
        to: list[EmailRecipient],
        data: dict[str, Any],
        cc: list[EmailRecipient] | None = None,
    ) -> bool:
        try:
            await self._post(self.build_payload(template_id, to, data, cc))
        except Exception as e:
            logger.error(
                "[EMAIL] Failed to send email",
                template_id=template_id,
                error=str(e),
                status_code=getattr(e, "status_code", None),
            )
            return False

        logger.info(
            "[EMAIL] Email sent",
            template_id=template_id,
            recipient_count=len(to) + len(cc or []),
        )
        return True
