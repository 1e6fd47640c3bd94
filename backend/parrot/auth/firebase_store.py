"""
Firebase-backed credential store.

Email/password sign-in, sign-up and token refresh go through the Identity
Toolkit REST API; token verification and revocation go through the Firebase
Admin SDK. The session for this process is kept in memory and handed back by
get_session(), refreshing it first when the access token has expired.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import requests
from firebase_admin.auth import (
    InvalidIdTokenError,
    ExpiredIdTokenError,
    RevokedIdTokenError,
    UserDisabledError,
    CertificateFetchError,
)
from firebase_admin.exceptions import FirebaseError

from parrot.auth.credential_store import AuthChangeEvent, AuthChangeHandler
from parrot.auth.errors import (
    CredentialError,
    CredentialServiceUnavailable,
    DuplicateRegistrationError,
    InvalidCredentialsError,
)
from parrot.auth.firebase import get_firebase_auth
from parrot.models.session import Session, SessionUser

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1/accounts:{action}"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"

INVALID_CREDENTIAL_CODES = {
    "EMAIL_NOT_FOUND",
    "INVALID_PASSWORD",
    "INVALID_LOGIN_CREDENTIALS",
    "INVALID_EMAIL",
    "USER_DISABLED",
}


def _error_code(response: requests.Response) -> str:
    """Extract the error code from an Identity Toolkit error body.

    Codes may carry a detail suffix, e.g. "WEAK_PASSWORD : Password should be ...".
    """
    try:
        message = response.json().get("error", {}).get("message", "")
    except ValueError:
        return ""
    return message.split(" : ", 1)[0].strip()


class FirebaseCredentialStore:
    """CredentialStore backed by Firebase Authentication.

    Args:
        api_key: Firebase web API key used for the REST endpoints
        timeout: Seconds to wait for each REST call
    """

    def __init__(self, api_key: str, timeout: float = 15.0, http: Any = None):
        if not api_key:
            raise ValueError("FIREBASE_WEB_API_KEY is required for the firebase credential backend")
        self.api_key = api_key
        self.timeout = timeout
        self._http = http or requests.Session()
        self._session: Optional[Session] = None
        self._handlers: List[AuthChangeHandler] = []

    async def get_session(self) -> Optional[Session]:
        session = self._session
        if session is None:
            return None
        if session.is_expired():
            return await self.refresh_session()
        return session

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        data = await self._identity_call("signInWithPassword", email, password)
        session = self._session_from_identity(data)
        self._session = session
        logger.info("[AUTH] Signed in uid=%s", session.user.id)
        self._emit(AuthChangeEvent.SIGNED_IN, session)
        return session

    async def sign_up(self, email: str, password: str) -> Optional[Session]:
        data = await self._identity_call("signUp", email, password)
        session = self._session_from_identity(data)
        self._session = session
        logger.info("[AUTH] Registered uid=%s", session.user.id)
        self._emit(AuthChangeEvent.SIGNED_IN, session)
        return session

    async def sign_out(self, session: Optional[Session]) -> None:
        self._session = None
        self._emit(AuthChangeEvent.SIGNED_OUT, None)
        if session is None:
            return
        try:
            await asyncio.to_thread(get_firebase_auth().revoke_refresh_tokens, session.user.id)
        except FirebaseError as e:
            raise CredentialServiceUnavailable(f"Failed to revoke tokens: {e}") from e

    async def refresh_session(self) -> Optional[Session]:
        current = self._session
        if current is None or not current.refresh_token:
            return None

        response = await self._post(
            SECURE_TOKEN_URL,
            data={"grant_type": "refresh_token", "refresh_token": current.refresh_token},
        )
        if response.status_code != 200:
            code = _error_code(response)
            if response.status_code >= 500 or code.startswith("TOO_MANY_ATTEMPTS"):
                # Keep the session; the refresh can be retried once the provider is back
                logger.warning("[AUTH] Token refresh failed: %s", code or response.status_code)
                raise CredentialServiceUnavailable()
            logger.warning("[AUTH] Token refresh rejected: %s", code)
            self._session = None
            self._emit(AuthChangeEvent.SIGNED_OUT, None)
            return None

        data = response.json()
        session = Session(
            access_token=data["id_token"],
            refresh_token=data.get("refresh_token"),
            user=current.user,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=int(data.get("expires_in", 3600))),
        )
        self._session = session
        self._emit(AuthChangeEvent.TOKEN_REFRESHED, session)
        return session

    def on_auth_state_change(self, handler: AuthChangeHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def client(self) -> "FirebaseCredentialStore":
        return FirebaseCredentialStore(self.api_key, timeout=self.timeout, http=self._http)

    def verify_access_token(self, token: str) -> Optional[SessionUser]:
        auth_service = get_firebase_auth()
        try:
            # check_revoked=False still validates signature and expiration
            decoded_token = auth_service.verify_id_token(token, check_revoked=False)
        except (InvalidIdTokenError, ExpiredIdTokenError, RevokedIdTokenError, UserDisabledError) as e:
            logger.info("[AUTH] Token validation failed: %s", type(e).__name__)
            return None
        except CertificateFetchError as e:
            raise CredentialServiceUnavailable() from e
        except ValueError as e:
            logger.info("[AUTH] Token format error: %s", e)
            return None
        return SessionUser(id=decoded_token["uid"], email=decoded_token.get("email"))

    def session_for_token(self, token: str) -> Optional[Session]:
        # Refresh tokens live with the client that signed in, not here
        session = self._session
        if session is not None and session.access_token == token:
            return session
        return None

    async def _identity_call(self, action: str, email: str, password: str) -> Dict[str, Any]:
        response = await self._post(
            IDENTITY_TOOLKIT_URL.format(action=action),
            json={"email": email, "password": password, "returnSecureToken": True},
        )
        if response.status_code == 200:
            return response.json()

        code = _error_code(response)
        logger.info("[AUTH] %s rejected: %s", action, code or response.status_code)
        if code == "EMAIL_EXISTS":
            raise DuplicateRegistrationError()
        if code in INVALID_CREDENTIAL_CODES:
            raise InvalidCredentialsError()
        if code == "WEAK_PASSWORD":
            raise CredentialError("Password is too weak")
        if response.status_code >= 500 or code.startswith("TOO_MANY_ATTEMPTS"):
            raise CredentialServiceUnavailable()
        raise CredentialError()

    async def _post(self, url: str, **kwargs) -> requests.Response:
        try:
            return await asyncio.to_thread(
                self._http.post, url, params={"key": self.api_key}, timeout=self.timeout, **kwargs
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise CredentialServiceUnavailable() from e

    @staticmethod
    def _session_from_identity(data: Dict[str, Any]) -> Session:
        return Session(
            access_token=data["idToken"],
            refresh_token=data.get("refreshToken"),
            user=SessionUser(id=data["localId"], email=data.get("email")),
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=int(data.get("expiresIn", 3600))),
        )

    def _emit(self, event: AuthChangeEvent, session: Optional[Session]) -> None:
        for handler in list(self._handlers):
            handler(event, session)
