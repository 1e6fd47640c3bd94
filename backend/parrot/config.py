import os
import logging
from typing import List, Optional
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_PUBLIC_ROUTES = "/login,/signup,/auth/callback,/auth/reset-password"
DEFAULT_EXCLUDED_PREFIXES = "/static/,/_next/,/api/,/images/,/favicon.ico,/health"

# Reward notifications disappear after this many seconds
DEFAULT_REWARD_DISPLAY_SECONDS = 5.0


def _split_csv(raw: str) -> List[str]:
    """Split a comma separated env value, keeping empty entries so they can be detected."""
    if raw is None:
        return []
    return [item.strip() for item in raw.split(",")]


class Settings(BaseModel):
    """Runtime configuration shared by both app variants."""
    public_routes: List[str] = Field(default_factory=lambda: _split_csv(DEFAULT_PUBLIC_ROUTES))
    landing_path: str = Field("/", description="Landing page, reachable regardless of auth state")
    authenticated_home: str = Field("/dashboard", description="Where signed-in users land")
    excluded_prefixes: List[str] = Field(default_factory=lambda: _split_csv(DEFAULT_EXCLUDED_PREFIXES))
    session_cookie_name: str = "parrot-session"
    reward_display_seconds: float = Field(DEFAULT_REWARD_DISPLAY_SECONDS, gt=0)
    credential_backend: str = Field("firebase", description="firebase or memory")
    firebase_web_api_key: Optional[str] = None
    credential_timeout_seconds: float = Field(15.0, gt=0)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        return cls(
            public_routes=_split_csv(os.getenv("PUBLIC_ROUTES", DEFAULT_PUBLIC_ROUTES)),
            landing_path=os.getenv("LANDING_PATH", "/"),
            authenticated_home=os.getenv("AUTHENTICATED_HOME", "/dashboard"),
            excluded_prefixes=_split_csv(os.getenv("GATE_EXCLUDED_PREFIXES", DEFAULT_EXCLUDED_PREFIXES)),
            session_cookie_name=os.getenv("SESSION_COOKIE_NAME", "parrot-session"),
            reward_display_seconds=float(
                os.getenv("REWARD_DISPLAY_SECONDS", str(DEFAULT_REWARD_DISPLAY_SECONDS))
            ),
            credential_backend=os.getenv("CREDENTIAL_BACKEND", "firebase").lower(),
            firebase_web_api_key=os.getenv("FIREBASE_WEB_API_KEY"),
            credential_timeout_seconds=float(os.getenv("CREDENTIAL_TIMEOUT_SECONDS", "15")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
