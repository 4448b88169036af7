"""Runtime configuration - SmartHire.

All secrets and tunables come from the environment (optionally a backend/.env
file). Settings are read once at process start and handed to components
through the application context; nothing below reads os.environ lazily.
"""
import os
import logging
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

ROOT_DIR = Path(__file__).resolve().parent.parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

ENTITLEMENT_TRACKER = "smarthire_tracker"
DEFAULT_FREE_LIMIT = 50
DEFAULT_PORTAL_RETURN_URL = "https://smarthire-application.onrender.com"


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.environ.get(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s=%r, using default %s", name, raw, default)
        return default


class Settings(BaseModel):
    """Process-wide settings."""

    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "smarthire"

    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_portal_return_url: str = DEFAULT_PORTAL_RETURN_URL

    google_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    analysis_timeout_seconds: float = 60.0

    free_limit: int = DEFAULT_FREE_LIMIT
    rate_limit_max_requests: int = 100
    rate_limit_window_minutes: int = 15
    enforce_gate_on_analyze: bool = True
    forwarded_allow_ips: str = "127.0.0.1"

    jwt_secret: str = "your-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"

    cors_origins: List[str] = ["*"]
    environment: str = "development"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            mongo_url=os.environ.get("MONGO_URL", "mongodb://localhost:27017"),
            db_name=os.environ.get("DB_NAME", "smarthire"),
            stripe_secret_key=(os.environ.get("STRIPE_SECRET_KEY") or "").strip(),
            stripe_webhook_secret=(os.environ.get("STRIPE_WEBHOOK_SECRET") or "").strip(),
            stripe_portal_return_url=os.environ.get("STRIPE_PORTAL_RETURN_URL", DEFAULT_PORTAL_RETURN_URL),
            google_api_key=(os.environ.get("GOOGLE_API_KEY") or "").strip(),
            gemini_model=os.environ.get("GEMINI_MODEL", "gemini-2.0-flash"),
            free_limit=_env_int("FREE_LIMIT", DEFAULT_FREE_LIMIT),
            rate_limit_max_requests=_env_int("RATE_LIMIT_MAX_REQUESTS", 100),
            rate_limit_window_minutes=_env_int("RATE_LIMIT_WINDOW_MINUTES", 15),
            enforce_gate_on_analyze=_env_bool("ENFORCE_GATE_ON_ANALYZE", True),
            forwarded_allow_ips=os.environ.get("FORWARDED_ALLOW_IPS", "127.0.0.1"),
            jwt_secret=os.environ.get("JWT_SECRET", "your-secret-key-change-in-production"),
            jwt_algorithm=os.environ.get("JWT_ALGORITHM", "HS256"),
            cors_origins=os.environ.get("CORS_ORIGINS", "*").split(","),
            environment=os.environ.get("ENVIRONMENT", "development"),
        )

    def stripe_mode(self) -> Optional[str]:
        """'test' / 'live' from the secret key prefix, None when unset."""
        if not self.stripe_secret_key:
            return None
        return "test" if self.stripe_secret_key.startswith("sk_test_") else "live"
