import os
from datetime import datetime, timedelta
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv(".env.local")

# Fixed read window (local wall-clock, end exclusive)
STEPS_WINDOW_START = datetime(2024, 1, 1, 0, 0, 0)
STEPS_WINDOW_END = datetime(2024, 1, 6, 0, 0, 0)
STEPS_BUCKET = timedelta(days=1)

STEP_COUNT_DATA_TYPE = "com.google.step_count.delta"
READ_STEPS = "https://www.googleapis.com/auth/fitness.activity.read"
REQUIRED_PERMISSIONS = frozenset({READ_STEPS})

KNOWN_PROVIDERS = ("google_fit",)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() == "true"


class Settings(BaseModel):
    """Runtime configuration, read from the environment (and `.env.local`)."""

    health_provider: str = "google_fit"
    steps_data_origin: str = "com.google.android.apps.fitness"
    steps_read_mode: str = "aggregate"
    steps_data_source_id: str = "derived:com.google.step_count.delta:com.google.android.gms:estimated_steps"

    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    google_redirect_uri: Optional[str] = None

    firebase_credentials: Optional[str] = None
    token_store_backend: str = "memory"
    token_store_fallback_to_memory: bool = True

    log_file: str = "stepwatch.log"
    log_level: str = "INFO"
    http_timeout_seconds: float = 15.0
    timing_warn_ms: Optional[float] = None

    @property
    def oauth_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret and self.google_redirect_uri)

    @classmethod
    def from_env(cls) -> "Settings":
        warn_ms = os.getenv("TIMING_WARN_MS", "").strip()
        return cls(
            health_provider=os.getenv("HEALTH_PROVIDER", "google_fit").strip().lower(),
            steps_data_origin=os.getenv("STEPS_DATA_ORIGIN", "com.google.android.apps.fitness").strip(),
            steps_read_mode=os.getenv("STEPS_READ_MODE", "aggregate").strip().lower(),
            steps_data_source_id=os.getenv(
                "STEPS_DATA_SOURCE_ID",
                "derived:com.google.step_count.delta:com.google.android.gms:estimated_steps",
            ).strip(),
            google_client_id=os.getenv("GOOGLE_CLIENT_ID") or None,
            google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET") or None,
            google_redirect_uri=os.getenv("GOOGLE_REDIRECT_URI") or None,
            firebase_credentials=os.getenv("FIREBASE_CREDENTIALS") or None,
            token_store_backend=os.getenv("TOKEN_STORE_BACKEND", "memory").strip().lower(),
            token_store_fallback_to_memory=_env_bool("TOKEN_STORE_FALLBACK_TO_MEMORY", "true"),
            log_file=os.getenv("LOG_FILE", "stepwatch.log"),
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
            http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", "15")),
            timing_warn_ms=float(warn_ms) if warn_ms else None,
        )
