"""
FastAPI dependencies for chat services.
"""

from typing import Annotated

from fastapi import Depends

from dialogue_foundry.ai.chat.config import ChatSettings
from dialogue_foundry.ai.chat.service import ChatService, ChatTurnService
from dialogue_foundry.container import ServiceContainer, get_container


def get_chat_service(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ChatService:
    """
    FastAPI dependency for getting the chat service.

    Args:
        container: Service container of the running app

    Returns:
        ChatService: Chat lifecycle service
    """
    return container.chat_service


def get_turn_service(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ChatTurnService:
    return container.turn_service


def get_chat_settings_dependency(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ChatSettings:
    return container.chat_settings
