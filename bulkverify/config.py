"""Bulk verification service configuration constants.

Environment-based configuration, grouped by concern:
- PERSISTENCE: data directory and database URL
- PROVIDER: Bouncify endpoints, API key and timeout
- UPLOAD / AUDIT / LOGGING: service policy knobs
"""
import os
from pathlib import Path


# =============================================================================
# PERSISTENCE CONFIGURATION
# =============================================================================

def _get_data_dir() -> Path:
    """Determine data directory based on environment.

    Priority:
    1. BULKVERIFY_DATA_DIR env var (explicit override)
    2. ~/.bulkverify (local development)
    3. /tmp/bulkverify (container fallback when home unavailable)
    """
    env_path = os.getenv("BULKVERIFY_DATA_DIR")
    if env_path:
        return Path(env_path)

    try:
        home_path = Path.home() / ".bulkverify"
        home_path.mkdir(parents=True, exist_ok=True)
        return home_path
    except (OSError, PermissionError):
        return Path("/tmp/bulkverify")


DATA_DIR: Path = _get_data_dir()


def _get_database_url() -> str:
    """Get database URL from environment.

    Priority:
    1. BULKVERIFY_DATABASE_URL - explicit full connection string
    2. BULKVERIFY_POSTGRES_* - construct PostgreSQL URL from components
    3. SQLite fallback for local development
    """
    if url := os.getenv("BULKVERIFY_DATABASE_URL"):
        return url

    host = os.getenv("BULKVERIFY_POSTGRES_HOST")
    if host:
        user = os.getenv("BULKVERIFY_POSTGRES_USER", "bulkverify")
        password = os.getenv("BULKVERIFY_POSTGRES_PASSWORD", "")
        db = os.getenv("BULKVERIFY_POSTGRES_DB", "bulkverify")
        return f"postgresql+psycopg://{user}:{password}@{host}/{db}?sslmode=require"

    return f"sqlite:///{DATA_DIR}/bulkverify.db"


DATABASE_URL: str = _get_database_url()


# =============================================================================
# PROVIDER CONFIGURATION (Bouncify)
# =============================================================================

BOUNCIFY_API_KEY: str = os.getenv("BOUNCIFY_API_KEY", "")
BOUNCIFY_API_ENDPOINT: str = os.getenv(
    "BOUNCIFY_API_ENDPOINT", "https://api.bouncify.io/v1/verify"
)
BOUNCIFY_BULK_ENDPOINT: str = os.getenv(
    "BOUNCIFY_BULK_ENDPOINT", "https://api.bouncify.io/v1/bulk"
)
BOUNCIFY_DOWNLOAD_ENDPOINT: str = os.getenv(
    "BOUNCIFY_DOWNLOAD_ENDPOINT", "https://api.bouncify.io/v1/download"
)
BOUNCIFY_INFO_ENDPOINT: str = os.getenv(
    "BOUNCIFY_INFO_ENDPOINT", "https://api.bouncify.io/v1/info"
)

# Single best-effort call per operation; the transport owns the timeout
PROVIDER_TIMEOUT_SECONDS: float = float(os.getenv("BULKVERIFY_PROVIDER_TIMEOUT", "30.0"))


# =============================================================================
# UPLOAD CONFIGURATION
# =============================================================================

UPLOAD_MAX_BYTES: int = int(os.getenv("BULKVERIFY_UPLOAD_MAX_BYTES", str(10 * 1024 * 1024)))
UPLOAD_ALLOWED_CONTENT_TYPES: frozenset[str] = frozenset({
    "text/csv",
    "application/vnd.ms-excel",
    "application/csv",
    "text/plain",
})


# =============================================================================
# AUTH / AUDIT CONFIGURATION
# =============================================================================

# Header carrying the acting identity, set by the upstream session layer
IDENTITY_HEADER: str = os.getenv("BULKVERIFY_IDENTITY_HEADER", "X-User-ID")

AUDIT_ENABLED: bool = os.getenv("BULKVERIFY_AUDIT_ENABLED", "true").lower() == "true"


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

LOG_LEVEL: str = os.getenv("BULKVERIFY_LOG_LEVEL", "INFO").upper()

# Optional second sink; stdout is always used
LOG_FILE: str | None = os.getenv("BULKVERIFY_LOG_FILE") or None


# =============================================================================
# LISTING DEFAULTS
# =============================================================================

DEFAULT_PAGE_SIZE: int = int(os.getenv("BULKVERIFY_DEFAULT_PAGE_SIZE", "10"))
DEFAULT_LOG_PAGE_SIZE: int = int(os.getenv("BULKVERIFY_DEFAULT_LOG_PAGE_SIZE", "5"))
