import pytest
from fastapi.testclient import TestClient

from parrot.auth.errors import CredentialServiceUnavailable
from parrot.auth.memory_store import InMemoryCredentialStore
from parrot.config import Settings
from parrot.main import create_app

EMAIL = "user@parrot-diary.com"
PASSWORD = "Password123"


@pytest.fixture
def settings():
    return Settings(credential_backend="memory")


@pytest.fixture
def client(settings):
    app = create_app(settings, InMemoryCredentialStore())
    with TestClient(app) as test_client:
        yield test_client


def sign_up(client, email=EMAIL, password=PASSWORD):
    return client.post("/api/auth/signup", json={"email": email, "password": password})


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def test_protected_page_redirects_to_landing_when_signed_out(client):
    response = client.get("/dashboard", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "/"


@pytest.mark.parametrize("path", ["/", "/login", "/signup", "/auth/reset-password/xyz"])
def test_public_pages_open_when_signed_out(client, path):
    response = client.get(path, follow_redirects=False)
    assert response.status_code == 200
    assert response.json()["authenticated"] is False


def test_health_is_not_gated(client):
    assert client.get("/health").json()["status"] == "healthy"


def test_lookalike_of_excluded_path_is_gated(client):
    response = client.get("/healthz", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "/"


def test_sign_up_starts_session_and_opens_protected_pages(client, settings):
    response = sign_up(client)
    body = response.json()
    assert body["success"] is True
    assert body["user"]["email"] == EMAIL
    assert client.cookies.get(settings.session_cookie_name) == body["accessToken"]

    dashboard = client.get("/dashboard", follow_redirects=False)
    assert dashboard.status_code == 200
    assert dashboard.json()["authenticated"] is True


def test_signed_in_user_is_sent_home_from_auth_pages(client):
    token = sign_up(client).json()["accessToken"]

    for path in ("/login", "/signup"):
        response = client.get(path, headers=bearer(token), follow_redirects=False)
        assert response.status_code == 307
        assert response.headers["location"] == "/dashboard"

    assert client.get("/", headers=bearer(token), follow_redirects=False).status_code == 200
    reset = client.get("/auth/reset-password/xyz", headers=bearer(token), follow_redirects=False)
    assert reset.status_code == 200
    assert reset.json()["step"] == "xyz"


def test_duplicate_sign_up_fails(client):
    assert sign_up(client, "dup@x.com").json()["success"] is True
    second = sign_up(client, "dup@x.com").json()
    assert second["success"] is False
    assert second["message"] == "This email address is already registered"


def test_sign_up_reports_first_validation_failure(client):
    body = sign_up(client, "not-an-email", "short").json()
    assert body["success"] is False
    assert body["message"] == "Please enter a valid email address"


def test_sign_in_does_not_reveal_whether_email_exists(client):
    sign_up(client)
    wrong_password = client.post("/api/auth/signin", json={"email": EMAIL, "password": "WrongPass123"}).json()
    unknown_email = client.post(
        "/api/auth/signin", json={"email": "nobody@parrot-diary.com", "password": "WrongPass123"}
    ).json()

    assert wrong_password["success"] is False
    assert wrong_password["message"] == unknown_email["message"] == "Incorrect email address or password"


def test_sign_in_and_me(client):
    sign_up(client)
    client.cookies.clear()

    body = client.post("/api/auth/signin", json={"email": EMAIL, "password": PASSWORD}).json()
    assert body["success"] is True

    me = client.get("/api/auth/me", headers=bearer(body["accessToken"]))
    assert me.status_code == 200
    assert me.json()["email"] == EMAIL


@pytest.mark.parametrize("email", ["a..b@x.com", "user@parrot.test", ".a@x.com"])
def test_any_registered_email_can_sign_in(client, email):
    assert sign_up(client, email).json()["success"] is True
    client.cookies.clear()

    response = client.post("/api/auth/signin", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_sign_in_with_malformed_email_gets_generic_message(client):
    response = client.post("/api/auth/signin", json={"email": "not-an-email", "password": PASSWORD})
    assert response.status_code == 200
    assert response.json()["message"] == "Incorrect email address or password"


def test_me_requires_token(client):
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers=bearer("forged")).status_code == 401


def test_sign_out_ends_session(client, settings):
    token = sign_up(client).json()["accessToken"]

    response = client.post("/api/auth/signout", headers=bearer(token))
    assert response.json() == {"success": True}
    assert client.cookies.get(settings.session_cookie_name) is None

    after = client.get("/dashboard", headers=bearer(token), follow_redirects=False)
    assert after.status_code == 307
    assert after.headers["location"] == "/"


def test_diary_reward_is_shown_as_notification(client):
    token = sign_up(client).json()["accessToken"]

    granted = client.post(
        "/api/rewards/diary-entry",
        json={"totalChars": 300, "totalXp": 500, "currentLevel": 1},
        headers=bearer(token),
    )
    assert granted.status_code == 200
    reward = granted.json()["reward"]
    assert reward == {"xp": 600, "tickets": 3, "levelUp": True, "newLevel": 2}

    current = client.get("/api/rewards/notification", headers=bearer(token)).json()
    assert current["reward"] == reward

    # Edits earn nothing and leave the notification alone
    edit = client.post(
        "/api/rewards/diary-entry",
        json={"totalChars": 50, "isNewEntry": False},
        headers=bearer(token),
    ).json()
    assert edit["reward"] == reward


def test_reward_endpoints_require_sign_in(client):
    assert client.get("/api/rewards/notification").status_code == 401


class UnavailableStore(InMemoryCredentialStore):
    def verify_access_token(self, token):
        raise CredentialServiceUnavailable()


def test_gate_reports_unavailable_instead_of_redirecting(settings):
    app = create_app(settings, UnavailableStore())
    with TestClient(app) as client:
        response = client.get("/dashboard", headers=bearer("some-token"), follow_redirects=False)
    assert response.status_code == 503
    assert response.json()["detail"] == "Authentication service temporarily unavailable"


def test_sign_out_releases_stored_tokens(settings):
    store = InMemoryCredentialStore()
    app = create_app(settings, store)
    with TestClient(app) as client:
        token = sign_up(client).json()["accessToken"]
        assert len(store._refresh_tokens) == 1

        client.post("/api/auth/signout", headers=bearer(token))

    assert store._tokens == {}
    assert store._refresh_tokens == {}
