"""
Session State Manager

Owns the one live session of a client context. Dependents never fetch the
session themselves: they read it from the manager or subscribe to its
transitions.

Usage:
    async with SessionManager(store) as manager:
        result = await manager.sign_in(email, password)
        ...

Entering the context subscribes to the credential store's change
notifications and loads the persisted session; leaving it unsubscribes.
"""
import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from parrot.auth.credential_store import AuthChangeEvent, CredentialStore
from parrot.auth.errors import CredentialError, SessionIndeterminate
from parrot.models.session import AuthResult, Session, SessionUser
from parrot.services.validation_service import validate_email_format, validate_password_strength

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional[Session]], None]


class AuthState(str, Enum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"
    # The persisted session could not be read; neither signed in nor out
    UNAVAILABLE = "unavailable"


class SessionManager:
    """Reactive holder of the current session.

    Args:
        store: Credential store that verifies passwords and issues sessions
        clock: Returns the current UTC time, used for expiry checks
    """

    def __init__(self, store: CredentialStore, clock: Callable[[], datetime] = None):
        self.store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._session: Optional[Session] = None
        self._version = 0
        self._pending = 0
        self._initialized = False
        self._error: Optional[str] = None
        self._ready = asyncio.Event()
        self._listeners: List[SessionListener] = []
        self._unsubscribe_store: Optional[Callable[[], None]] = None

    async def __aenter__(self) -> "SessionManager":
        self.attach()
        try:
            await self.initialize()
        except BaseException:
            self.detach()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.detach()

    def attach(self) -> None:
        """Start listening to the credential store's session notifications."""
        if self._unsubscribe_store is None:
            self._unsubscribe_store = self.store.on_auth_state_change(self._on_auth_state_change)

    def detach(self) -> None:
        """Stop listening to the credential store."""
        if self._unsubscribe_store is not None:
            self._unsubscribe_store()
            self._unsubscribe_store = None

    @property
    def session(self) -> Optional[Session]:
        """The live session, or None when absent or expired."""
        session = self._session
        if session is None or session.is_expired(self._clock()):
            return None
        return session

    @property
    def user(self) -> Optional[SessionUser]:
        session = self.session
        return session.user if session else None

    @property
    def is_loading(self) -> bool:
        return not self._initialized or self._pending > 0

    @property
    def error(self) -> Optional[str]:
        """Message of the last failed session load, if the session is unavailable."""
        return self._error

    @property
    def auth_state(self) -> AuthState:
        if self.is_loading:
            return AuthState.LOADING
        if self.session is not None:
            return AuthState.AUTHENTICATED
        if self._error is not None:
            return AuthState.UNAVAILABLE
        return AuthState.UNAUTHENTICATED

    @property
    def is_authenticated(self) -> bool:
        """Whether a non-expired session is present.

        Raises:
            SessionIndeterminate: While the session is loading or unavailable
        """
        state = self.auth_state
        if state in (AuthState.LOADING, AuthState.UNAVAILABLE):
            raise SessionIndeterminate()
        return state == AuthState.AUTHENTICATED

    async def wait_until_ready(self) -> AuthState:
        """Block until no session load is in flight, then return the resolved state."""
        while self.is_loading:
            self._ready.clear()
            await self._ready.wait()
        return self.auth_state

    async def initialize(self) -> None:
        """Load the persisted session from the credential store."""
        version = self._version
        self._begin()
        try:
            session = await self.store.get_session()
        except CredentialError as e:
            logger.error("[SESSION] Failed to load persisted session: %s", e.message)
            # A notification may already have settled the session
            if self._version == version:
                self._error = e.message
            return
        finally:
            self._initialized = True
            self._end()

        if self._version != version:
            logger.debug("[SESSION] Discarding stale persisted session read")
            return
        self._apply(session)
        logger.info("[SESSION] Initial session loaded: has_session=%s", session is not None)

    def resume(self, session: Session) -> None:
        """Adopt a session carried by the caller, e.g. one rebuilt from a request cookie."""
        self._initialized = True
        self._apply(session)
        if not self.is_loading:
            self._ready.set()

    async def sign_in(self, email: str, password: str) -> AuthResult:
        """Sign in with email and password.

        On failure the current session is left untouched and the store's
        user-facing message is returned.
        """
        self._begin()
        try:
            session = await self.store.sign_in_with_password(email, password)
        except CredentialError as e:
            logger.info("[SESSION] Sign-in failed: %s", type(e).__name__)
            return AuthResult(success=False, message=e.message)
        finally:
            self._end()

        self._apply(session)
        logger.info("[SESSION] Signed in uid=%s", session.user.id)
        return AuthResult(success=True, session=session)

    async def sign_up(self, email: str, password: str) -> AuthResult:
        """Register a new account and sign in.

        Email then password format are checked first and the first failing
        rule is returned without contacting the store.
        """
        for check in (validate_email_format(email), validate_password_strength(password)):
            if not check.isValid:
                return AuthResult(success=False, message=check.message)

        self._begin()
        try:
            session = await self.store.sign_up(email, password)
        except CredentialError as e:
            logger.info("[SESSION] Sign-up failed: %s", type(e).__name__)
            return AuthResult(success=False, message=e.message)
        finally:
            self._end()

        if session is None:
            return await self.sign_in(email, password)

        self._apply(session)
        return AuthResult(success=True, session=session)

    async def sign_out(self) -> None:
        """Clear the local session, then ask the store to invalidate it.

        Local state is cleared first and stays cleared; a failed remote call is
        only logged.
        """
        previous = self._session
        self._apply(None)
        try:
            await self.store.sign_out(previous)
        except Exception as e:
            logger.warning("[SESSION] Remote sign-out failed, local session cleared anyway: %s", e)
        else:
            logger.info("[SESSION] Signed out")

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register listener for every session transition; returns its unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _on_auth_state_change(self, event: AuthChangeEvent, session: Optional[Session]) -> None:
        logger.debug("[SESSION] Auth state change: %s", event.value)
        if event in (AuthChangeEvent.SIGNED_IN, AuthChangeEvent.TOKEN_REFRESHED):
            self._apply(session)
        elif event == AuthChangeEvent.SIGNED_OUT:
            self._apply(None)

    def _apply(self, session: Optional[Session]) -> None:
        self._version += 1
        self._error = None
        previous = self._session
        self._session = session
        if _same_session(previous, session):
            return
        for listener in list(self._listeners):
            listener(session)

    def _begin(self) -> None:
        self._pending += 1
        self._ready.clear()

    def _end(self) -> None:
        self._pending -= 1
        if not self.is_loading:
            self._ready.set()


def _same_session(a: Optional[Session], b: Optional[Session]) -> bool:
    if a is None or b is None:
        return a is b
    return a.access_token == b.access_token
