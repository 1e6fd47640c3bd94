from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from starlette.concurrency import run_in_threadpool

from parrot.auth.credential_store import CredentialStore
from parrot.auth.errors import CredentialServiceUnavailable
from parrot.models.session import SessionUser
from parrot.services.reward_notifier import RewardNotifierRegistry

security = HTTPBearer(auto_error=False)


def get_credential_store(request: Request) -> CredentialStore:
    """The app's credential store, set up once by the app factory."""
    return request.app.state.credential_store


def get_reward_registry(request: Request) -> RewardNotifierRegistry:
    return request.app.state.reward_registry


def extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    """Bearer token first, then the session cookie."""
    if credentials and credentials.credentials:
        return credentials.credentials
    cookie_name = request.app.state.settings.session_cookie_name
    return request.cookies.get(cookie_name) or None


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    store: CredentialStore = Depends(get_credential_store),
) -> SessionUser:
    """Validate the caller's access token and return its user.

    Raises:
        HTTPException:
            - 401 if the token is missing, invalid or expired
            - 503 if the credential service cannot check the token
    """
    token = extract_token(request, credentials)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication token is required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # The gate middleware already verified this token for the request
    user = getattr(request.state, "user", None)
    if user is not None and getattr(request.state, "token", None) == token:
        return user

    try:
        user = await run_in_threadpool(store.verify_access_token, token)
    except CredentialServiceUnavailable as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=e.message,
        ) from e

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
