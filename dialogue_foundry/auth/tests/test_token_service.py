"""Tests for chat access tokens."""

from datetime import UTC, datetime, timedelta

import pytest

from dialogue_foundry.auth.config import TokenSettings
from dialogue_foundry.auth.schemas import TokenStatus
from dialogue_foundry.auth.service import AccessTokenService, extract_bearer

SECRET = "test-secret-that-is-at-least-32-characters"


@pytest.fixture
def settings():
    return TokenSettings(secret=SECRET, expiry_seconds=3600)


@pytest.fixture
def token_service(settings):
    return AccessTokenService(settings)


class TestAccessTokenService:
    """Test suite for AccessTokenService."""

    def test_issue_and_verify(self, token_service):
        token = token_service.issue("chat-1", "user-1")

        identity = token_service.verify(token)

        assert identity is not None
        assert identity.chat_id == "chat-1"
        assert identity.user_id == "user-1"

    def test_expired_token_is_invalid(self, settings):
        issued = datetime.now(UTC) - timedelta(hours=2)
        stale_service = AccessTokenService(settings, clock=lambda: issued)
        token = stale_service.issue("chat-1", "user-1")

        service = AccessTokenService(settings)

        assert service.verify(token) is None
        assert service.verify_detailed(token).status == TokenStatus.EXPIRED

    def test_wrong_secret_is_invalid(self, token_service):
        other = AccessTokenService(
            TokenSettings(secret="another-secret-that-is-32-characters-long")
        )
        token = other.issue("chat-1", "user-1")

        assert token_service.verify(token) is None
        assert token_service.verify_detailed(token).status == TokenStatus.INVALID

    def test_malformed_token_is_invalid(self, token_service):
        assert token_service.verify("not-a-token") is None

    def test_expired_and_forged_collapse_to_same_result(self, settings, token_service):
        """verify() never tells the caller why a token was rejected."""
        issued = datetime.now(UTC) - timedelta(hours=2)
        expired = AccessTokenService(settings, clock=lambda: issued).issue("c", "u")

        assert token_service.verify(expired) == token_service.verify("forged")


class TestExtractBearer:
    def test_extracts_token(self):
        assert extract_bearer("Bearer abc.def") == "abc.def"

    @pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer ", "bearer abc"])
    def test_rejects_other_values(self, header):
        assert extract_bearer(header) is None
