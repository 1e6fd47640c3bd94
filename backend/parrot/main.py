import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from parrot.api.auth import router as auth_router
from parrot.api.pages import router as pages_router
from parrot.api.rewards import router as rewards_router
from parrot.auth.credential_store import CredentialStore
from parrot.auth.errors import CredentialServiceUnavailable
from parrot.auth.firebase import init_firebase_app
from parrot.auth.firebase_store import FirebaseCredentialStore
from parrot.auth.memory_store import InMemoryCredentialStore
from parrot.auth.middleware import RouteGateMiddleware
from parrot.auth.route_gate import RouteGateConfig
from parrot.config import Settings, configure_logging
from parrot.services.reward_notifier import RewardNotifierRegistry

logger = logging.getLogger(__name__)


def build_credential_store(settings: Settings) -> CredentialStore:
    """Create the credential store selected by CREDENTIAL_BACKEND."""
    if settings.credential_backend == "memory":
        logger.warning("[AUTH] Using in-memory credential store; accounts are lost on restart")
        return InMemoryCredentialStore()
    if settings.credential_backend == "firebase":
        init_firebase_app()
        return FirebaseCredentialStore(
            settings.firebase_web_api_key,
            timeout=settings.credential_timeout_seconds,
        )
    raise ValueError(f"Unknown CREDENTIAL_BACKEND: {settings.credential_backend!r}")


def create_app(settings: Optional[Settings] = None,
               credential_store: Optional[CredentialStore] = None) -> FastAPI:
    """Build the API shared by the diary and progress apps.

    Run with: uvicorn parrot.main:create_app --factory
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    store = credential_store or build_credential_store(settings)

    app = FastAPI(
        title="Parrot API",
        description="Session gate and reward notifications for the Parrot diary and progress apps",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.credential_store = store
    app.state.reward_registry = RewardNotifierRegistry(settings.reward_display_seconds)

    app.add_middleware(
        RouteGateMiddleware,
        store=store,
        config=RouteGateConfig.from_settings(settings),
        cookie_name=settings.session_cookie_name,
    )
    # Added last so it wraps the gate and redirects still carry CORS headers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, replace with specific origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router, prefix="/api")
    app.include_router(rewards_router, prefix="/api")
    app.include_router(pages_router)

    @app.exception_handler(CredentialServiceUnavailable)
    async def credential_unavailable_handler(request: Request, exc: CredentialServiceUnavailable):
        """Report provider outages as 503 so clients retry instead of signing the user out."""
        return JSONResponse(status_code=503, content={"detail": exc.message})

    @app.get(
        "/health",
        tags=["health"],
        summary="Health check endpoint",
        description="Returns the health status of the API",
    )
    def health_check():
        return {
            "status": "healthy",
            "service": "Parrot API",
            "credentialBackend": settings.credential_backend,
        }

    return app
