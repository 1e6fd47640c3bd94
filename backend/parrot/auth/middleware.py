import logging
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from parrot.auth.errors import CredentialServiceUnavailable
from parrot.auth.route_gate import RouteGateConfig, decide, is_excluded

logger = logging.getLogger(__name__)


def _request_token(request: Request, cookie_name: str) -> Optional[str]:
    authorization = request.headers.get("authorization", "")
    if authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return request.cookies.get(cookie_name) or None


class RouteGateMiddleware(BaseHTTPMiddleware):
    """Run the route gate once per inbound navigation, before any route handler.

    The verified user is left on ``request.state.user`` for the handlers.
    """

    def __init__(self, app, store, config: RouteGateConfig, cookie_name: str):
        super().__init__(app)
        self.store = store
        self.config = config
        self.cookie_name = cookie_name

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if is_excluded(path, self.config):
            return await call_next(request)

        token = _request_token(request, self.cookie_name)
        user = None
        if token:
            try:
                user = await run_in_threadpool(self.store.verify_access_token, token)
            except CredentialServiceUnavailable as e:
                # Neither signed in nor out; redirecting here could loop
                logger.error("[GATE] Cannot verify session for %s: %s", path, e.message)
                return JSONResponse(status_code=503, content={"detail": e.message})

        request.state.user = user
        request.state.token = token if user else None

        decision = decide(path, user is not None, self.config)
        if not decision.allowed:
            logger.info("[GATE] Redirecting %s -> %s (authenticated=%s)",
                        path, decision.redirect_to, user is not None)
            return RedirectResponse(url=decision.redirect_to, status_code=307)
        return await call_next(request)
