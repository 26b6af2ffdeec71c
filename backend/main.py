import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from dotenv import load_dotenv

# Load env from backend/.env
backend_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(backend_dir, ".env"))

# Import after dotenv is loaded
from backend.core.config import settings, validate_config
from backend.core.database import Database
from backend.core.logging import LOGGER_NAME, configure_logging
from backend.core.middleware.request_id import RequestIdMiddleware
from backend.core.validation import validate_env
from backend.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from backend.api import audio, auth, billing, chat, health, webhooks
from backend.api.deps import build_services
from backend.features.audio.storage import AudioStorage, LocalAudioStorage, MEDIA_PREFIX
from backend.features.billing.provider import BillingProvider
from backend.features.billing.service import get_provider
from backend.features.llm.client import GroqLLMClient, LLMClient

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))

_UNSET = object()


def create_app(
    database: Optional[Database] = None,
    llm: Optional[LLMClient] = None,
    billing_provider=_UNSET,
    storage: Optional[AudioStorage] = None,
) -> FastAPI:
    """
    Build the application.

    Collaborators default to the production adapters; tests inject an
    in-memory Database, a fake LLM and a fake billing provider.
    """
    # An injected Database stays open for the caller; only our own is closed on shutdown
    owns_db = database is None
    db = database or Database()
    provider: Optional[BillingProvider] = get_provider() if billing_provider is _UNSET else billing_provider
    audio_storage = storage or LocalAudioStorage()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger = logging.getLogger(LOGGER_NAME)
        logger.info("Starting producer copilot backend...")
        if not db.connected:
            db.connect()
        db.create_all()
        try:
            yield
        finally:
            if owns_db:
                db.close()
            logger.info("Stopping producer copilot backend...")

    app = FastAPI(title="Producer Copilot - Backend", lifespan=lifespan)
    app.state.db = db
    app.state.services = build_services(
        db,
        llm=llm or GroqLLMClient(),
        storage=audio_storage,
        billing_provider=provider,
    )

    # Middlewares
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # CORS (adjust origins in production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    app.include_router(chat.router, prefix="/api", tags=["chat"])
    app.include_router(audio.router, prefix="/api", tags=["audio"])
    app.include_router(billing.router, prefix="/api", tags=["billing"])
    app.include_router(webhooks.router, prefix="/api", tags=["webhooks"])
    app.include_router(health.root_router, tags=["health"])

    if isinstance(audio_storage, LocalAudioStorage):
        app.mount(MEDIA_PREFIX, StaticFiles(directory=str(audio_storage.root_dir), check_dir=False), name="media")

    return app


app = create_app()
