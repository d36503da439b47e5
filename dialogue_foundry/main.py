from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dialogue_foundry.ai.chat.router import router as chat_router
from dialogue_foundry.config import get_app_settings
from dialogue_foundry.container import ServiceContainer, build_container
from dialogue_foundry.utils.logger import logger


def get_version() -> str:
    """Get the installed package version."""
    try:
        return version("dialogue-foundry")
    except PackageNotFoundError:
        return "0.0.0"


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """
    Build the API application.

    Args:
        container: Pre-built services; when omitted they are built from the
            environment on startup and closed on shutdown

    Returns:
        FastAPI: The application
    """
    app_settings = container.app_settings if container else get_app_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = container is None
        app.state.container = container or await build_container(app_settings)
        logger.info("Dialogue Foundry API started", version=get_version())
        try:
            yield
        finally:
            if owned:
                await app.state.container.aclose()
            logger.info("Dialogue Foundry API stopped")

    app = FastAPI(
        title="Dialogue Foundry API",
        description="Streaming chat backend for the Dialogue Foundry widget",
        version=get_version(),
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # The widget is embedded on customer sites; tokens travel in headers, not cookies
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_router, prefix=app_settings.api_prefix)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {"status": "ok", "message": "Dialogue Foundry API is running"}

    @app.get("/healthcheck")
    async def healthcheck():
        """Health check endpoint."""
        return {"status": "ok", "message": "Dialogue Foundry API is running"}

    return app
