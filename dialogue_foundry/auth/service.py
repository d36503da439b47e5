"""
Chat access token service.

Tokens are stateless HS256 JWTs binding one chat id to one user id. There is no
revocation list; a compromised token stays valid until it expires.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import jwt

from dialogue_foundry.auth.config import TokenSettings
from dialogue_foundry.auth.schemas import ChatIdentity, TokenStatus, TokenVerification
from dialogue_foundry.utils.logger import logger

BEARER_PREFIX = "Bearer "


def extract_bearer(authorization_header: str | None) -> str | None:
    """
    Extract the token from an `Authorization: Bearer <token>` header.

    Args:
        authorization_header: Raw header value, if any

    Returns:
        str | None: The token, or None when the header is absent or uses another scheme
    """
    if not authorization_header or not authorization_header.startswith(BEARER_PREFIX):
        return None
    token = authorization_header[len(BEARER_PREFIX) :].strip()
    return token or None


class AccessTokenService:
    """Issues and verifies chat access tokens."""

    def __init__(
        self,
        settings: TokenSettings,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        """
        Initialize the token service.

        Args:
            settings: Token settings (secret, expiry, algorithm)
            clock: Source of the issue time, overridable for tests
        """
        self.settings = settings
        self._clock = clock

    def issue(self, chat_id: str, user_id: str) -> str:
        """
        Issue a token scoped to one chat.

        Args:
            chat_id: Chat the token grants access to
            user_id: User the chat belongs to

        Returns:
            str: Signed token
        """
        issued_at = self._clock()
        payload = {
            "chatId": chat_id,
            "userId": user_id,
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=self.settings.expiry_seconds),
        }
        return jwt.encode(payload, self.settings.secret, algorithm=self.settings.algorithm)

    def verify_detailed(self, token: str) -> TokenVerification:
        """
        Verify a token and report why it failed.

        Only for server-side logging; callers facing clients should use verify().
        """
        try:
            payload = jwt.decode(
                token,
                self.settings.secret,
                algorithms=[self.settings.algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            return TokenVerification(status=TokenStatus.EXPIRED)
        except jwt.InvalidTokenError:
            return TokenVerification(status=TokenStatus.INVALID)

        chat_id = payload.get("chatId")
        user_id = payload.get("userId")
        if not isinstance(chat_id, str) or not isinstance(user_id, str):
            return TokenVerification(status=TokenStatus.INVALID)

        return TokenVerification(
            status=TokenStatus.VALID,
            identity=ChatIdentity(chat_id=chat_id, user_id=user_id),
        )

    def verify(self, token: str) -> ChatIdentity | None:
        """
        Verify a token.

        Malformed, forged and expired tokens all collapse to None so the cause is
        never exposed to the caller.

        Args:
            token: Token to verify

        Returns:
            ChatIdentity | None: The bound chat/user pair, or None if the token is not valid
        """
        result = self.verify_detailed(token)
        if result.status != TokenStatus.VALID:
            logger.debug("Token verification failed", reason=result.status.value)
            return None
        return result.identity
