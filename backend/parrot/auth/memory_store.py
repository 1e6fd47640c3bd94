"""
In-memory credential store for local development and tests.

Accounts and tokens live in plain dicts for the lifetime of the process.
"""
import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from parrot.auth.credential_store import AuthChangeEvent, AuthChangeHandler
from parrot.auth.errors import DuplicateRegistrationError, InvalidCredentialsError
from parrot.models.session import Session, SessionUser

logger = logging.getLogger(__name__)

# Access tokens are valid for one hour, like the hosted provider's
DEFAULT_TOKEN_TTL = timedelta(hours=1)


def normalize_email(email: str) -> str:
    """Normalize email by trimming whitespace and converting to lowercase."""
    return email.strip().lower()


def hash_password(password: str, salt: str) -> str:
    return hashlib.sha256(f"{salt}:{password}".encode()).hexdigest()


class InMemoryCredentialStore:
    """CredentialStore backed by process memory."""

    def __init__(self, token_ttl: timedelta = DEFAULT_TOKEN_TTL,
                 clock: Callable[[], datetime] = None):
        self.token_ttl = token_ttl
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._accounts: Dict[str, dict] = {}
        self._tokens: Dict[str, Session] = {}
        self._refresh_tokens: Dict[str, str] = {}
        self._persisted: Optional[Session] = None
        self._handlers: List[AuthChangeHandler] = []

    async def get_session(self) -> Optional[Session]:
        session = self._persisted
        if session is None:
            return None
        if session.is_expired(self._clock()):
            return await self.refresh_session()
        return session

    async def sign_up(self, email: str, password: str) -> Optional[Session]:
        key = normalize_email(email)
        if key in self._accounts:
            raise DuplicateRegistrationError()

        salt = secrets.token_hex(8)
        self._accounts[key] = {
            "id": str(uuid.uuid4()),
            "email": key,
            "salt": salt,
            "password_hash": hash_password(password, salt),
        }
        logger.info("[AUTH] Registered account %s", self._accounts[key]["id"])
        # Registration does not sign in; callers sign in explicitly
        return None

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        account = self._accounts.get(normalize_email(email))
        if account is None or account["password_hash"] != hash_password(password, account["salt"]):
            raise InvalidCredentialsError()

        session = self._issue(SessionUser(id=account["id"], email=account["email"]))
        self._persisted = session
        self._emit(AuthChangeEvent.SIGNED_IN, session)
        return session

    async def sign_out(self, session: Optional[Session]) -> None:
        if session is not None:
            self._tokens.pop(session.access_token, None)
            if session.refresh_token:
                self._refresh_tokens.pop(session.refresh_token, None)
        self._persisted = None
        self._emit(AuthChangeEvent.SIGNED_OUT, None)

    async def refresh_session(self) -> Optional[Session]:
        """Swap the persisted session's tokens for fresh ones."""
        current = self._persisted
        if current is None or current.refresh_token not in self._refresh_tokens:
            self._persisted = None
            self._emit(AuthChangeEvent.SIGNED_OUT, None)
            return None

        self._tokens.pop(current.access_token, None)
        self._refresh_tokens.pop(current.refresh_token, None)
        session = self._issue(current.user)
        self._persisted = session
        self._emit(AuthChangeEvent.TOKEN_REFRESHED, session)
        return session

    def on_auth_state_change(self, handler: AuthChangeHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def verify_access_token(self, token: str) -> Optional[SessionUser]:
        session = self._tokens.get(token)
        if session is None or session.is_expired(self._clock()):
            return None
        return session.user

    def session_for_token(self, token: str) -> Optional[Session]:
        return self._tokens.get(token)

    def client(self) -> "InMemoryCredentialStore":
        other = InMemoryCredentialStore(self.token_ttl, self._clock)
        other._accounts = self._accounts
        other._tokens = self._tokens
        other._refresh_tokens = self._refresh_tokens
        return other

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def _issue(self, user: SessionUser) -> Session:
        session = Session(
            access_token=secrets.token_urlsafe(32),
            refresh_token=secrets.token_urlsafe(32),
            user=user,
            expires_at=self._clock() + self.token_ttl,
        )
        self._tokens[session.access_token] = session
        self._refresh_tokens[session.refresh_token] = user.id
        return session

    def _emit(self, event: AuthChangeEvent, session: Optional[Session]) -> None:
        for handler in list(self._handlers):
            handler(event, session)
