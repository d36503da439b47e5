"""
Service wiring.

The container owns every long-lived collaborator (store, model provider,
integration clients) and is attached to the FastAPI app in its lifespan.
Tests build one directly with stubbed collaborators.
"""

from collections.abc import Awaitable, Callable

from fastapi import Request

from dialogue_foundry.ai.chat.config import ChatSettings, get_chat_settings
from dialogue_foundry.ai.chat.email_detection import (
    EmailDetectionService,
    UserEmailCaptureService,
)
from dialogue_foundry.ai.chat.service import ChatService, ChatTurnService
from dialogue_foundry.ai.openai.config import get_openai_settings
from dialogue_foundry.ai.providers.openai import OpenAIProvider
from dialogue_foundry.auth.config import get_token_settings
from dialogue_foundry.auth.service import AccessTokenService
from dialogue_foundry.config import AppSettings, get_app_settings
from dialogue_foundry.db.chats.cache import CachedChatStore
from dialogue_foundry.db.chats.memory import InMemoryChatStore
from dialogue_foundry.db.chats.repository import SqlChatStore
from dialogue_foundry.db.chats.store import ChatStore
from dialogue_foundry.db.config import get_cache_settings, get_db_settings
from dialogue_foundry.db.database import (
    close_db,
    create_engine_from_settings,
    create_session_factory,
    init_db,
)
from dialogue_foundry.integrations.pinecone.client import PineconeClient
from dialogue_foundry.integrations.pinecone.config import get_pinecone_settings
from dialogue_foundry.integrations.sendgrid.client import SendGridClient
from dialogue_foundry.integrations.sendgrid.config import get_sendgrid_settings
from dialogue_foundry.integrations.sendgrid.service import InquiryEmailService
from dialogue_foundry.utils.logger import logger

Closer = Callable[[], Awaitable[None]]


class ServiceContainer:
    """Services shared by every request of one app instance."""

    def __init__(
        self,
        store: ChatStore,
        token_service: AccessTokenService,
        chat_service: ChatService,
        turn_service: ChatTurnService,
        app_settings: AppSettings,
        chat_settings: ChatSettings,
        closers: list[Closer] | None = None,
    ):
        self.store = store
        self.token_service = token_service
        self.chat_service = chat_service
        self.turn_service = turn_service
        self.app_settings = app_settings
        self.chat_settings = chat_settings
        self._closers = closers or []

    async def aclose(self) -> None:
        """Finish background work and release clients and connection pools."""
        await self.turn_service.drain_background_tasks()
        for close in self._closers:
            try:
                await close()
            except Exception as e:
                logger.error("Failed to close resource", error=str(e))


async def build_container(app_settings: AppSettings | None = None) -> ServiceContainer:
    """
    Build the production container from environment settings.

    Args:
        app_settings: Overrides the environment-derived app settings

    Returns:
        ServiceContainer: Fully wired services
    """
    app_settings = app_settings or get_app_settings()
    chat_settings = get_chat_settings()
    closers: list[Closer] = []

    store: ChatStore
    if app_settings.store_backend == "memory":
        store = InMemoryChatStore()
    else:
        engine = create_engine_from_settings(get_db_settings())
        if app_settings.create_tables:
            await init_db(engine)
        store = SqlChatStore(create_session_factory(engine))
        closers.append(lambda: close_db(engine))

    if app_settings.caching_enabled:
        store = CachedChatStore(store, get_cache_settings())

    token_service = AccessTokenService(get_token_settings())
    provider = OpenAIProvider(get_openai_settings())
    detector = EmailDetectionService(provider, chat_settings)

    retriever = None
    pinecone_settings = get_pinecone_settings()
    if pinecone_settings.enabled:
        retriever = PineconeClient(pinecone_settings)
        closers.append(retriever.close)
    else:
        logger.warning("Pinecone is not configured; answering without retrieval")

    inquiry = None
    email_capture = None
    sendgrid_settings = get_sendgrid_settings()
    if sendgrid_settings.enabled:
        notifier = SendGridClient(sendgrid_settings)
        closers.append(notifier.close)
        inquiry = InquiryEmailService(notifier, sendgrid_settings.default_template_id)
        email_capture = UserEmailCaptureService(store, detector, inquiry)
    else:
        logger.warning("SendGrid is not configured; inquiry emails are disabled")

    logger.info(
        "Service container built",
        environment=app_settings.environment.value,
        store_backend=app_settings.store_backend,
        caching_enabled=app_settings.caching_enabled,
    )
    return ServiceContainer(
        store=store,
        token_service=token_service,
        chat_service=ChatService(store, token_service, inquiry),
        turn_service=ChatTurnService(
            store=store,
            provider=provider,
            settings=chat_settings,
            retriever=retriever,
            email_detector=detector,
            email_capture=email_capture,
        ),
        app_settings=app_settings,
        chat_settings=chat_settings,
        closers=closers,
    )


def get_container(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the app's service container."""
    return request.app.state.container
