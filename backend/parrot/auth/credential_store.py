from enum import Enum
from typing import Callable, Optional, Protocol

from parrot.models.session import Session, SessionUser


class AuthChangeEvent(str, Enum):
    """Session transitions pushed by a credential store."""
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


AuthChangeHandler = Callable[[AuthChangeEvent, Optional[Session]], None]


class CredentialStore(Protocol):
    """Identity provider consumed by the session manager and the route gate.

    Async methods are the only suspension points in the session core. Every
    failure is raised as a CredentialError subclass.
    """

    async def get_session(self) -> Optional[Session]:
        """Return the persisted session, or None when there is none."""
        ...

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        ...

    async def sign_up(self, email: str, password: str) -> Optional[Session]:
        """Register an account. May return None when the store does not sign in on sign-up."""
        ...

    async def sign_out(self, session: Optional[Session]) -> None:
        """Invalidate the session on the store side."""
        ...

    def on_auth_state_change(self, handler: AuthChangeHandler) -> Callable[[], None]:
        """Register handler for session transitions; returns its unsubscribe function."""
        ...

    def client(self) -> "CredentialStore":
        """Return a store for a new client context that shares this store's backend."""
        ...

    def verify_access_token(self, token: str) -> Optional[SessionUser]:
        """Synchronously check an access token, returning its user or None when invalid.

        Raises CredentialServiceUnavailable when the check itself cannot be made.
        """
        ...

    def session_for_token(self, token: str) -> Optional[Session]:
        """The session issued with this access token, or None when the store keeps no record of it."""
        ...
