"""FastAPI application entry point for the Revot chat client."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from revot.api.routes.auth import router as auth_router
from revot.api.routes.chat import router as chat_router
from revot.api.routes.preferences import router as preferences_router
from revot.config import settings
from revot.database import build_engine, init_db
from revot.services.conversation_controller import ConversationController
from revot.services.conversation_store import ConversationStore
from revot.services.identity_gateway import IdentityGateway
from revot.services.preferences import PreferenceStore
from revot.services.reply_gateway import ReplyGateway

logging.basicConfig(level=settings.LOG_LEVEL, format="[%(asctime)s] %(levelname)s %(name)s - %(message)s")
logger = logging.getLogger(__name__)


def build_controller() -> ConversationController:
    """Wire the controller to the configured external services."""
    engine = build_engine()
    init_db(engine)
    return ConversationController(
        identity=IdentityGateway(
            settings.SUPABASE_URL,
            api_key=settings.SUPABASE_ANON_KEY,
            timeout=settings.AUTH_TIMEOUT,
        ),
        store=ConversationStore(engine),
        replies=ReplyGateway(settings.REPLY_WEBHOOK_URL, timeout=settings.REPLY_TIMEOUT),
        failure_notice=settings.FAILURE_NOTICE,
    )


def create_app(
    controller: Optional[ConversationController] = None,
    preferences: Optional[PreferenceStore] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        controller: Pre-wired controller; built from settings at startup if None
        preferences: Preference store; defaults to PREFERENCES_PATH
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ctrl = controller or build_controller()
        app.state.controller = ctrl
        app.state.preferences = preferences or PreferenceStore(settings.PREFERENCES_PATH)
        try:
            async with ctrl:
                logger.info(f"Client started: user={ctrl.user.id if ctrl.user else None}")
                yield
        finally:
            if controller is None:
                await ctrl.identity.aclose()
                await ctrl.replies.aclose()

    app = FastAPI(
        title="Revot Chat Client",
        description="Local API for sessions, history and replies of the Revot chat client",
        version="1.0.0",
        lifespan=lifespan,
    )

    if settings.APP_ENV.lower() in {"dev", "development", "local"}:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    app.include_router(auth_router)
    app.include_router(chat_router)
    app.include_router(preferences_router)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Hide internal error details from the frontend."""
        logger.exception("Unhandled exception: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


app = create_app()
