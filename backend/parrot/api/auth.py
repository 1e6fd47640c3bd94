import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials
from starlette.concurrency import run_in_threadpool

from parrot.auth.credential_store import CredentialStore
from parrot.auth.dependencies import (
    extract_token,
    get_credential_store,
    get_current_user,
    get_reward_registry,
    security,
)
from parrot.auth.errors import CredentialServiceUnavailable
from parrot.models.session import AuthResponse, AuthResult, Session, SessionUser, SignInRequest, SignUpRequest
from parrot.services.reward_notifier import RewardNotifierRegistry
from parrot.services.session_service import SessionManager

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["authentication"],
)


def _to_response(result: AuthResult, request: Request, response: Response) -> AuthResponse:
    """Build the API response and set the session cookie on success."""
    if not result.success or result.session is None:
        return AuthResponse(success=False, message=result.message)

    session = result.session
    max_age = int((session.expires_at - datetime.now(timezone.utc)).total_seconds())
    response.set_cookie(
        key=request.app.state.settings.session_cookie_name,
        value=session.access_token,
        max_age=max(max_age, 0),
        httponly=True,
        samesite="lax",
    )
    return AuthResponse(
        success=True,
        accessToken=session.access_token,
        expiresAt=session.expires_at,
        user=session.user,
    )


@router.post(
    "/signin",
    response_model=AuthResponse,
    summary="Sign in with email and password",
    description="Verifies the credentials and starts a session. The access token is also set as a cookie.",
)
async def sign_in(
    body: SignInRequest,
    request: Request,
    response: Response,
    store: CredentialStore = Depends(get_credential_store),
) -> AuthResponse:
    """Sign in and start a session.

    Wrong email and wrong password produce the same message, so the response
    never reveals whether an account exists.
    """
    async with SessionManager(store.client()) as manager:
        result = await manager.sign_in(body.email, body.password)
    return _to_response(result, request, response)


@router.post(
    "/signup",
    response_model=AuthResponse,
    summary="Register a new account",
    description="Validates the email and password, registers the account and signs it in.",
)
async def sign_up(
    body: SignUpRequest,
    request: Request,
    response: Response,
    store: CredentialStore = Depends(get_credential_store),
) -> AuthResponse:
    async with SessionManager(store.client()) as manager:
        result = await manager.sign_up(body.email, body.password)
    return _to_response(result, request, response)


@router.post(
    "/signout",
    summary="Sign out",
    description="Ends the caller's session. Always clears the session cookie, even if the provider call fails.",
)
async def sign_out(
    request: Request,
    response: Response,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    store: CredentialStore = Depends(get_credential_store),
    rewards: RewardNotifierRegistry = Depends(get_reward_registry),
) -> Dict[str, Any]:
    token = extract_token(request, credentials)
    manager = SessionManager(store.client())
    if token:
        try:
            user = await run_in_threadpool(store.verify_access_token, token)
        except CredentialServiceUnavailable as e:
            # Still clear the cookie; the provider session expires on its own
            logger.warning("[AUTH] Could not verify token during sign-out: %s", e.message)
            user = None
        if user is not None:
            session = store.session_for_token(token) or Session(
                access_token=token, user=user, expires_at=datetime.now(timezone.utc)
            )
            manager.resume(session)
            rewards.discard(user.id)

    await manager.sign_out()
    response.delete_cookie(request.app.state.settings.session_cookie_name)
    return {"success": True}


@router.get(
    "/me",
    response_model=SessionUser,
    summary="Get current authenticated user",
    description="Returns the user of the caller's access token.",
    responses={
        401: {"description": "Unauthorized - Invalid or missing authentication token"},
        503: {"description": "Authentication service temporarily unavailable"},
    },
)
def get_current_user_info(current_user: SessionUser = Depends(get_current_user)) -> SessionUser:
    return current_user
