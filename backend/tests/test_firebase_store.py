import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests
from firebase_admin.auth import CertificateFetchError, ExpiredIdTokenError, InvalidIdTokenError
from firebase_admin.exceptions import UnavailableError

from parrot.auth.credential_store import AuthChangeEvent
from parrot.auth.errors import (
    CredentialServiceUnavailable,
    DuplicateRegistrationError,
    InvalidCredentialsError,
)
from parrot.auth.firebase_store import IDENTITY_TOOLKIT_URL, SECURE_TOKEN_URL, FirebaseCredentialStore
from parrot.models.session import Session, SessionUser
from parrot.services.session_service import AuthState, SessionManager


def _response(status_code, body):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    return response


def _error(code, status_code=400):
    return _response(status_code, {"error": {"code": status_code, "message": code}})


IDENTITY_OK = {
    "idToken": "id-token",
    "refreshToken": "refresh-token",
    "expiresIn": "3600",
    "localId": "uid-1",
    "email": "user@x.com",
}


def make_store(*responses):
    http = MagicMock()
    http.post.side_effect = list(responses)
    return FirebaseCredentialStore("api-key", timeout=3, http=http), http


def test_sign_in_posts_credentials_and_emits_signed_in():
    store, http = make_store(_response(200, IDENTITY_OK))
    events = []
    store.on_auth_state_change(lambda event, session: events.append((event, session)))

    session = asyncio.run(store.sign_in_with_password("user@x.com", "Password123"))

    assert session.access_token == "id-token"
    assert session.user == SessionUser(id="uid-1", email="user@x.com")
    assert session.is_expired() is False
    assert events == [(AuthChangeEvent.SIGNED_IN, session)]
    http.post.assert_called_once_with(
        IDENTITY_TOOLKIT_URL.format(action="signInWithPassword"),
        params={"key": "api-key"},
        timeout=3,
        json={"email": "user@x.com", "password": "Password123", "returnSecureToken": True},
    )


@pytest.mark.parametrize("code", ["EMAIL_NOT_FOUND", "INVALID_PASSWORD", "INVALID_LOGIN_CREDENTIALS"])
def test_sign_in_rejections_are_generic(code):
    store, _ = make_store(_error(code))
    with pytest.raises(InvalidCredentialsError) as exc_info:
        asyncio.run(store.sign_in_with_password("user@x.com", "WrongPass123"))
    assert exc_info.value.message == "Incorrect email address or password"


def test_sign_up_existing_email_is_duplicate():
    store, _ = make_store(_error("EMAIL_EXISTS"))
    with pytest.raises(DuplicateRegistrationError):
        asyncio.run(store.sign_up("dup@x.com", "Password123"))


def test_too_many_attempts_is_unavailable():
    store, _ = make_store(_error("TOO_MANY_ATTEMPTS_TRY_LATER : Access disabled"))
    with pytest.raises(CredentialServiceUnavailable):
        asyncio.run(store.sign_in_with_password("user@x.com", "Password123"))


def test_timeout_is_unavailable():
    http = MagicMock()
    http.post.side_effect = requests.Timeout("slow")
    store = FirebaseCredentialStore("api-key", http=http)
    with pytest.raises(CredentialServiceUnavailable):
        asyncio.run(store.sign_in_with_password("user@x.com", "Password123"))


def test_expired_session_is_refreshed_on_read():
    store, http = make_store(
        _response(200, {"id_token": "new-token", "refresh_token": "new-refresh", "expires_in": "3600"})
    )
    store._session = Session(
        access_token="old-token",
        refresh_token="refresh-token",
        user=SessionUser(id="uid-1", email="user@x.com"),
        expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
    )
    events = []
    store.on_auth_state_change(lambda event, session: events.append(event))

    session = asyncio.run(store.get_session())

    assert session.access_token == "new-token"
    assert session.user.id == "uid-1"
    assert events == [AuthChangeEvent.TOKEN_REFRESHED]
    assert http.post.call_args.args[0] == SECURE_TOKEN_URL
    assert http.post.call_args.kwargs["data"]["grant_type"] == "refresh_token"


def test_rejected_refresh_signs_out():
    store, _ = make_store(_error("TOKEN_EXPIRED"))
    store._session = Session(
        access_token="old-token",
        refresh_token="refresh-token",
        user=SessionUser(id="uid-1"),
        expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
    )
    events = []
    store.on_auth_state_change(lambda event, session: events.append(event))

    assert asyncio.run(store.get_session()) is None
    assert events == [AuthChangeEvent.SIGNED_OUT]


@pytest.mark.parametrize(
    "response",
    [
        _error("INTERNAL_ERROR", status_code=503),
        _error("TOO_MANY_ATTEMPTS_TRY_LATER"),
    ],
)
def test_refresh_outage_keeps_session(response):
    store, _ = make_store(response)
    expired = Session(
        access_token="old-token",
        refresh_token="refresh-token",
        user=SessionUser(id="uid-1"),
        expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
    )
    store._session = expired
    events = []
    store.on_auth_state_change(lambda event, session: events.append(event))

    with pytest.raises(CredentialServiceUnavailable):
        asyncio.run(store.get_session())

    assert store._session == expired
    assert events == []


def test_refresh_outage_leaves_session_manager_unavailable():
    store, _ = make_store(_error("INTERNAL_ERROR", status_code=503))
    store._session = Session(
        access_token="old-token",
        refresh_token="refresh-token",
        user=SessionUser(id="uid-1"),
        expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
    )

    async def scenario():
        async with SessionManager(store) as manager:
            return manager.auth_state, manager.error

    state, error = asyncio.run(scenario())
    assert state == AuthState.UNAVAILABLE
    assert error == "Authentication service temporarily unavailable"


def test_sign_out_revokes_and_reports_provider_failure():
    store, _ = make_store()
    session = Session(
        access_token="id-token",
        user=SessionUser(id="uid-1"),
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
    )
    store._session = session
    auth_service = MagicMock()
    auth_service.revoke_refresh_tokens.side_effect = UnavailableError("down")

    with patch("parrot.auth.firebase_store.get_firebase_auth", return_value=auth_service):
        with pytest.raises(CredentialServiceUnavailable):
            asyncio.run(store.sign_out(session))

    auth_service.revoke_refresh_tokens.assert_called_once_with("uid-1")
    # Local state is already gone
    assert asyncio.run(store.get_session()) is None


def test_verify_access_token():
    store, _ = make_store()
    auth_service = MagicMock()
    auth_service.verify_id_token.return_value = {"uid": "uid-1", "email": "user@x.com"}

    with patch("parrot.auth.firebase_store.get_firebase_auth", return_value=auth_service):
        user = store.verify_access_token("id-token")

    assert user == SessionUser(id="uid-1", email="user@x.com")
    auth_service.verify_id_token.assert_called_once_with("id-token", check_revoked=False)


@pytest.mark.parametrize(
    "error",
    [
        InvalidIdTokenError("bad token"),
        ExpiredIdTokenError("expired", None),
        ValueError("not a jwt"),
    ],
)
def test_verify_rejects_bad_tokens(error):
    store, _ = make_store()
    auth_service = MagicMock()
    auth_service.verify_id_token.side_effect = error

    with patch("parrot.auth.firebase_store.get_firebase_auth", return_value=auth_service):
        assert store.verify_access_token("id-token") is None


def test_verify_certificate_failure_is_unavailable():
    store, _ = make_store()
    auth_service = MagicMock()
    auth_service.verify_id_token.side_effect = CertificateFetchError("no certs", None)

    with patch("parrot.auth.firebase_store.get_firebase_auth", return_value=auth_service):
        with pytest.raises(CredentialServiceUnavailable):
            store.verify_access_token("id-token")


def test_api_key_required():
    with pytest.raises(ValueError):
        FirebaseCredentialStore("")
