import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from backend/.env
ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(dotenv_path=ENV_PATH)


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


DEBUG = _flag("DEBUG")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").lower()  # json | text

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]
SESSION_SECRET = os.getenv("SESSION_SECRET", "dev-session-secret-change-me")

# Basic in-memory rate limiting (per-process)
RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", "120"))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

# Every bulk-imported asset lands in this location until it is moved
IMPORT_FALLBACK_LOCATION = os.getenv("IMPORT_FALLBACK_LOCATION", "IT Department - store room")

DEFAULT_REPORT_CACHE_MINUTES = int(os.getenv("DEFAULT_REPORT_CACHE_MINUTES", "30"))

# First ADMIN created on startup when the users table is empty
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@localhost")
ADMIN_NAME = os.getenv("ADMIN_NAME", "Admin")

# Create a USER account on first identity-provider login for unknown emails
AUTO_PROVISION_USERS = _flag("AUTO_PROVISION_USERS")
