"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from src.api.middleware.error_handler import error_handler_middleware
from src.api.middleware.request_logging import request_logging_middleware
from src.api.routes import conversations, events, groups, health, messages, recipients
from src.core.config import get_settings
from src.core.supabase import close_realtime_client
from src.services.chat_session import init_chat_sessions, shutdown_chat_sessions

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Starts the chat session registry on startup. On shutdown, closes every
    session and then the Realtime client their channels run on.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control back to the application.
    """
    settings = get_settings()
    logger.info("Starting %s in %s mode", settings.app_name, settings.app_env)

    await init_chat_sessions()
    logger.info("Chat session registry initialized")

    yield

    await shutdown_chat_sessions()
    logger.info("Chat session registry shutdown")
    await close_realtime_client()
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Classio Chat API",
        description="Role-aware school messaging with live conversation state",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(BaseHTTPMiddleware, dispatch=error_handler_middleware)

    # Added last so it wraps the error handler and logs formatted error statuses
    app.add_middleware(BaseHTTPMiddleware, dispatch=request_logging_middleware)

    # Health routes at root level (no prefix)
    app.include_router(health.router)

    chat_router = APIRouter(prefix="/api/v1/chat")
    chat_router.include_router(conversations.router)
    chat_router.include_router(messages.router)
    chat_router.include_router(messages.announcements_router)
    chat_router.include_router(recipients.router)
    chat_router.include_router(groups.router)
    chat_router.include_router(events.router)
    app.include_router(chat_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
