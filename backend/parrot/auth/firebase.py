import os
import logging
from pathlib import Path
from typing import Any, Dict

import firebase_admin
from firebase_admin import credentials, auth

logger = logging.getLogger(__name__)


def _clean_private_key(raw: str) -> str:
    """Undo the quoting and escaped newlines private keys pick up in env files."""
    if not raw:
        return ""
    raw = raw.strip()
    if (raw.startswith('"') and raw.endswith('"')) or (raw.startswith("'") and raw.endswith("'")):
        raw = raw[1:-1]
    return raw.replace("\\n", "\n")


def _service_account_from_env() -> Dict[str, Any]:
    return {
        "type": os.getenv("FIREBASE_TYPE", "service_account"),
        "project_id": os.getenv("FIREBASE_PROJECT_ID"),
        "private_key_id": os.getenv("FIREBASE_PRIVATE_KEY_ID"),
        "private_key": _clean_private_key(os.getenv("FIREBASE_PRIVATE_KEY", "")),
        "client_email": os.getenv("FIREBASE_CLIENT_EMAIL"),
        "client_id": os.getenv("FIREBASE_CLIENT_ID"),
        "auth_uri": os.getenv("FIREBASE_AUTH_URI", "https://accounts.google.com/o/oauth2/auth"),
        "token_uri": os.getenv("FIREBASE_TOKEN_URI", "https://oauth2.googleapis.com/token"),
        "auth_provider_x509_cert_url": os.getenv(
            "FIREBASE_AUTH_PROVIDER_X509_CERT_URL", "https://www.googleapis.com/oauth2/v1/certs"
        ),
        "client_x509_cert_url": os.getenv("FIREBASE_CLIENT_X509_CERT_URL"),
        "universe_domain": os.getenv("FIREBASE_UNIVERSE_DOMAIN", "googleapis.com"),
    }


def _load_credentials() -> credentials.Certificate:
    """Build service account credentials from FIREBASE_* variables or a key file.

    Raises:
        FileNotFoundError: FIREBASE_CREDENTIALS points at a missing file
        ValueError: Neither source is configured
    """
    service_account = _service_account_from_env()
    required_fields = ["project_id", "private_key", "client_email"]
    missing_fields = [field for field in required_fields if not service_account.get(field)]
    if not missing_fields:
        return credentials.Certificate(service_account)

    service_account_path = os.getenv("FIREBASE_CREDENTIALS")
    if not service_account_path:
        raise ValueError(
            "Firebase credentials are missing. Please set FIREBASE_CREDENTIALS (file path) "
            f"or set all required FIREBASE_* environment variables. Missing fields: {missing_fields}"
        )

    # Relative paths are resolved against the backend directory
    path = Path(service_account_path)
    if not path.is_absolute():
        path = Path(__file__).resolve().parent.parent.parent / path
    if not path.exists():
        raise FileNotFoundError(
            f"Firebase service account file not found: {path}. "
            "Please check that the file exists or set all FIREBASE_* environment variables."
        )
    return credentials.Certificate(str(path))


def init_firebase_app() -> firebase_admin.App:
    """Initialize the Firebase Admin SDK, returning the existing app on repeat calls."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass
    app = firebase_admin.initialize_app(_load_credentials())
    logger.info("[AUTH] Firebase Admin initialized for project %s", app.project_id)
    return app


def get_firebase_auth():
    """Get the Firebase Auth module used to verify and revoke identity tokens.

    Example usage:
        auth_service = get_firebase_auth()
        decoded_token = auth_service.verify_id_token(id_token)
    """
    return auth
