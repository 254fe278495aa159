# gradedesk/core/config.py
import os
from pathlib import Path
from typing import Dict, List, Optional
from dotenv import load_dotenv

# ================== ENV ==================

ROOT_DIR = Path(__file__).resolve().parents[2]
load_dotenv(ROOT_DIR / "gradedesk/.env")

def env(*names: str, default: Optional[str] = None) -> str:
    for n in names:
        v = os.environ.get(n)
        if v is not None and str(v).strip() != "":
            return v
    if default is not None:
        return default
    raise KeyError(f"Missing required env var. Tried: {', '.join(names)}")

def env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in {"1", "true", "yes"}

# ================== LOGGING ==================

LOG_LEVEL = env("LOG_LEVEL", default="INFO").upper()
LOG_DIR = env("LOG_DIR", default="logs")

# ================== JWT ==================

JWT_SECRET = os.environ.get("JWT_SECRET", "default_secret_key")
JWT_ALGORITHM = "HS256"
JWT_EXPIRATION_HOURS = int(os.environ.get("JWT_EXPIRATION_HOURS", "24"))

# ================== SESSIONS ==================

# Anonymous tenants are identified by an opaque bearer token.
SESSION_HEADER = "X-Session-Id"
SESSION_COOKIE = "session_id"
SESSION_ID_MAX_LENGTH = 64

# ================== STRIPE ==================

STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "").strip()
STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "").strip()
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173").rstrip("/")
TEST_MODE = env_flag("TEST_MODE")

# Charge recorded when a completed payment is first seen through the webhook
# and the event carries no amount.
DEFAULT_CHARGE_AMOUNT_CENTS = int(os.environ.get("DEFAULT_CHARGE_AMOUNT_CENTS", "3000"))

RECONCILE_TIMEOUT_SECONDS = float(os.environ.get("RECONCILE_TIMEOUT_SECONDS", "10"))

# Price in dollars -> credit units
CREDIT_TIERS: Dict[str, int] = {
    "1": 2000,
    "10": 30000,
    "100": 600000,
    "1000": 10000000,
}

# ================== CORS ==================

def cors_origins() -> List[str]:
    raw = os.environ.get("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
    return [o.strip() for o in raw.split(",") if o.strip()]

# ================== DATABASE ==================
# SQLite for local development and tests, MySQL when configured

DATABASE_URL = os.environ.get("DATABASE_URL", "")

def get_database_url() -> str:
    """Get database URL - supports SQLite or MySQL."""
    if DATABASE_URL:
        return DATABASE_URL

    mysql_host = os.environ.get("MYSQL_HOST")
    if mysql_host:
        mysql_port = int(os.environ.get("MYSQL_PORT", "3306"))
        mysql_user = os.environ.get("MYSQL_USER", "root")
        mysql_password = os.environ.get("MYSQL_PASSWORD", "")
        mysql_db = os.environ.get("MYSQL_DB", "gradedesk")
        return f"mysql+aiomysql://{mysql_user}:{mysql_password}@{mysql_host}:{mysql_port}/{mysql_db}?charset=utf8mb4"

    db_path = ROOT_DIR / "gradedesk" / "gradedesk.db"
    return f"sqlite+aiosqlite:///{db_path}"
