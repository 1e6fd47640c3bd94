"""
Route Gate

Pure per-navigation access decision. Given a path and whether the caller has
a live session, decide to let the request through or redirect it.

- Signed out: the landing page and public routes (and their sub-paths) are
  allowed, everything else redirects to the landing page.
- Signed in: the landing page is allowed, the bare public entry points
  (login, signup, ...) redirect to the authenticated home, everything else,
  including sub-paths of public routes such as a password reset flow, is
  allowed.

A malformed allow-list fails closed: no path is treated as public.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

from parrot.auth.errors import CredentialServiceUnavailable
from parrot.services.session_service import AuthState, SessionManager

logger = logging.getLogger(__name__)


class RouteClass(str, Enum):
    PUBLIC = "public"
    LANDING = "landing"
    PROTECTED = "protected"


@dataclass(frozen=True)
class RouteDecision:
    redirect_to: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.redirect_to is None


ALLOW = RouteDecision()


def redirect(target: str) -> RouteDecision:
    return RouteDecision(redirect_to=target)


@dataclass(frozen=True)
class RouteGateConfig:
    """Static gate configuration, part of deployment settings."""
    public_routes: Tuple[str, ...] = (
        "/login",
        "/signup",
        "/auth/callback",
        "/auth/reset-password",
    )
    landing_path: str = "/"
    authenticated_home: str = "/dashboard"
    excluded_prefixes: Tuple[str, ...] = (
        "/static/",
        "/_next/",
        "/api/",
        "/images/",
        "/favicon.ico",
        "/health",
    )

    @classmethod
    def from_settings(cls, settings) -> "RouteGateConfig":
        return cls(
            public_routes=tuple(settings.public_routes),
            landing_path=settings.landing_path,
            authenticated_home=settings.authenticated_home,
            excluded_prefixes=tuple(p for p in settings.excluded_prefixes if p),
        )

    @property
    def allow_list_is_valid(self) -> bool:
        return all(entry and entry.strip() == entry and entry.startswith("/") and entry != "/"
                   for entry in self.public_routes)


def _matches_excluded(path: str, entry: str) -> bool:
    # "/api/" covers "/api" and everything below it; "/health" covers only
    # itself and its sub-paths, never "/healthz"
    root = entry.rstrip("/")
    if not root:
        return False
    return path == root or path.startswith(root + "/")


def is_excluded(path: str, config: RouteGateConfig) -> bool:
    """Asset, API and framework paths are never gated."""
    return any(_matches_excluded(path, entry) for entry in config.excluded_prefixes)


def _public_entries(config: RouteGateConfig) -> Iterable[str]:
    if not config.allow_list_is_valid:
        logger.error("[GATE] Malformed public route list %r, treating every path as protected",
                     config.public_routes)
        return ()
    return config.public_routes


def is_public(path: str, config: RouteGateConfig) -> bool:
    """Exact match on an allow-list entry, or a sub-path of one."""
    return any(path == route or path.startswith(route + "/") for route in _public_entries(config))


def is_public_entry_point(path: str, config: RouteGateConfig) -> bool:
    """Exact match on an allow-list entry only."""
    return path in tuple(_public_entries(config))


def classify(path: str, config: RouteGateConfig) -> RouteClass:
    if path == config.landing_path:
        return RouteClass.LANDING
    if is_public(path, config):
        return RouteClass.PUBLIC
    return RouteClass.PROTECTED


def decide(path: str, is_authenticated: bool, config: RouteGateConfig = RouteGateConfig()) -> RouteDecision:
    """Decide whether a navigation to path goes through or is redirected."""
    route_class = classify(path, config)

    if not is_authenticated:
        if route_class in (RouteClass.PUBLIC, RouteClass.LANDING):
            return ALLOW
        return redirect(config.landing_path)

    if route_class == RouteClass.LANDING:
        # The landing page renders its own call to action for both states
        return ALLOW
    if is_public_entry_point(path, config):
        return redirect(config.authenticated_home)
    return ALLOW


async def decide_for_session(path: str, manager: SessionManager,
                             config: RouteGateConfig = RouteGateConfig()) -> RouteDecision:
    """Client-side gate: wait for the session manager to settle, then decide.

    Raises:
        CredentialServiceUnavailable: The session could not be loaded; no
            redirect is forced in that case.
    """
    if is_excluded(path, config):
        return ALLOW
    state = await manager.wait_until_ready()
    if state == AuthState.UNAVAILABLE:
        raise CredentialServiceUnavailable(manager.error)
    return decide(path, state == AuthState.AUTHENTICATED, config)
