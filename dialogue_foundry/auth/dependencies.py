"""
Chat access dependencies.

A request to a chat route must carry a token issued for that chat, either as
`Authorization: Bearer <token>` or, for EventSource clients that cannot set
headers, as the `token` query parameter.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Query, Request, status

from dialogue_foundry.auth.schemas import ChatIdentity, TokenStatus
from dialogue_foundry.auth.service import AccessTokenService, extract_bearer
from dialogue_foundry.constants import ErrorCode
from dialogue_foundry.container import ServiceContainer, get_container
from dialogue_foundry.utils.logger import logger


def get_token_service(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> AccessTokenService:
    return container.token_service


async def get_chat_identity(
    request: Request,
    chat_id: str,
    token_service: Annotated[AccessTokenService, Depends(get_token_service)],
    token: Annotated[str | None, Query()] = None,
) -> ChatIdentity:
    """
    Authenticate a request against the chat in its path.

    Args:
        request: The HTTP request
        chat_id: Chat id from the URL path
        token_service: Token service
        token: Token from the query string, used when no bearer header is sent

    Returns:
        ChatIdentity: The chat/user pair bound to the token

    Raises:
        HTTPException: 401 if the token is missing or not valid, 403 if it is for another chat
    """
    access_token = extract_bearer(request.headers.get("Authorization")) or token
    if not access_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Authentication required", "code": ErrorCode.TOKEN_MISSING.value},
            headers={"WWW-Authenticate": "Bearer"},
        )

    verification = token_service.verify_detailed(access_token)
    if verification.status != TokenStatus.VALID or verification.identity is None:
        # Expired and forged tokens look the same to the client
        logger.info(
            "Rejected chat access token",
            chat_id=chat_id,
            reason=verification.status.value,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Invalid or expired token", "code": ErrorCode.TOKEN_INVALID.value},
            headers={"WWW-Authenticate": "Bearer"},
        )

    identity = verification.identity
    if identity.chat_id != chat_id:
        logger.warning(
            "Token used for another chat",
            chat_id=chat_id,
            token_chat_id=identity.chat_id,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "Access denied to this chat",
                "code": ErrorCode.CHAT_ACCESS_DENIED.value,
            },
        )

    return identity
