import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./dispatch_sync.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Frontend base URL (used for CORS defaults)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# HouseCall Pro Configuration
# Encryption key for stored API keys (generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())")
# Falls back to a key derived from SECRET_KEY when unset
HCP_ENCRYPTION_KEY = os.getenv("HCP_ENCRYPTION_KEY")
HCP_API_URL = os.getenv("HCP_API_URL", "https://api.housecallpro.com")
# Deep links to jobs are built from this unless the organization overrides it
HCP_WEB_URL = os.getenv("HCP_WEB_URL", "https://pro.housecallpro.com")
HCP_REQUEST_TIMEOUT = float(os.getenv("HCP_REQUEST_TIMEOUT", "30"))
HCP_MAX_RETRIES = int(os.getenv("HCP_MAX_RETRIES", "3"))  # Attempts per GET when HCP answers 429

# Inbound sync (jobs, employees, price book, service zones)
HCP_SYNC_DAYS = int(os.getenv("HCP_SYNC_DAYS", "30"))  # Jobs scheduled from today through this many days
HCP_SYNC_PAGE_SIZE = int(os.getenv("HCP_SYNC_PAGE_SIZE", "100"))
HCP_SYNC_REQUEST_DELAY = float(os.getenv("HCP_SYNC_REQUEST_DELAY", "0.2"))
HCP_SYNC_RATE_LIMIT = int(os.getenv("HCP_SYNC_RATE_LIMIT", "5"))  # syncs per minute per org

# Pacing between line item calls (seconds) - HCP rate limits bursts of line item writes
HCP_LINE_ITEM_DELETE_DELAY = float(os.getenv("HCP_LINE_ITEM_DELETE_DELAY", "0.3"))
HCP_LINE_ITEM_ADD_DELAY = float(os.getenv("HCP_LINE_ITEM_ADD_DELAY", "0.5"))

DEFAULT_JOB_DURATION_MINUTES = int(os.getenv("DEFAULT_JOB_DURATION_MINUTES", "60"))

# Mapbox Directions API (optional - straight-line distances are used without it)
MAPBOX_TOKEN = os.getenv("MAPBOX_TOKEN")
MAPBOX_API_URL = os.getenv("MAPBOX_API_URL", "https://api.mapbox.com")
DRIVING_DISTANCE_CACHE_TTL = int(os.getenv("DRIVING_DISTANCE_CACHE_TTL", "86400"))

# Scheduling suggestions
SUGGESTION_SESSION_TTL = int(os.getenv("SUGGESTION_SESSION_TTL", "3600"))  # seconds
SUGGESTION_RATE_LIMIT = int(os.getenv("SUGGESTION_RATE_LIMIT", "30"))  # requests per minute per org

# Redis (optional) - rate limit counters and driving distance cache
# Without REDIS_URL or REDIS_HOST both run from process memory only
REDIS_URL = os.getenv("REDIS_URL")
REDIS_HOST = os.getenv("REDIS_HOST")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD")
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
REDIS_SSL = os.getenv("REDIS_SSL", "false").lower() == "true"

# CORS
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", FRONTEND_URL).split(",")
    if origin.strip()
]
