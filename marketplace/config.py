# marketplace/config.py
import os
from dotenv import load_dotenv

BASE_DIR = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(BASE_DIR, ".env"))
load_dotenv(os.path.join(os.path.dirname(BASE_DIR), ".env"))

INSTANCE_DIR = os.path.join(BASE_DIR, "instance")

PAYPAL_API = {
    "sandbox": "https://api-m.sandbox.paypal.com",
    "production": "https://api-m.paypal.com",
}

def _env(key: str, default=None):
    v = os.getenv(key)
    return v if v not in (None, "", "None") else default

def _env_first(*keys: str, default=None):
    for key in keys:
        v = _env(key)
        if v is not None:
            return v
    return default

def _env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v in (None, "", "None"):
        return default
    return str(v).strip().lower() in ("1", "true", "t", "yes", "y", "on")

def _env_int(key: str, default: int) -> int:
    try:
        return int(_env(key, default))
    except (TypeError, ValueError):
        return default

def resolve_runtime_env() -> str:
    return str(_env_first("NODE_ENV", "VITE_NODE_ENV", default="development")).strip().lower()

def resolve_paypal_env(runtime_env: str) -> str:
    """`production`/`live` talk to the live API, everything else to the sandbox."""
    return "production" if runtime_env in ("production", "live") else "sandbox"

def _resolve_sqlite_uri(db_url: str | None) -> str:
    if not db_url:
        os.makedirs(INSTANCE_DIR, exist_ok=True)
        db_path = os.path.join(INSTANCE_DIR, "marketplace.db")
        return "sqlite:///" + db_path.replace("\\", "/")

    if db_url.startswith("sqlite:///"):
        raw_path = db_url.replace("sqlite:///", "", 1)
        if raw_path == ":memory:":
            return db_url
        if not os.path.isabs(raw_path):
            raw_path = os.path.join(BASE_DIR, raw_path)
        db_path = os.path.normpath(raw_path)
        os.makedirs(os.path.dirname(db_path), exist_ok=True)
        return "sqlite:///" + db_path.replace("\\", "/")

    # Heroku/Render style URLs still use the old scheme name
    if db_url.startswith("postgres://"):
        return "postgresql://" + db_url[len("postgres://"):]
    return db_url

def _frontend_urls() -> list[str]:
    urls = [
        "http://localhost:3000",
        "http://localhost:3001",
        "http://localhost:5173",
        "https://skn.onrender.com",
        "https://skn-2.onrender.com",
        _env("FRONTEND_URL"),
        _env("VITE_FRONTEND_URL"),
    ]
    return [u for u in urls if u]


class Config:
    SECRET_KEY = _env("SECRET_KEY", "dev-please-change-me")
    TESTING = False

    APP_ENV = resolve_runtime_env()
    PORT = _env_int("PORT", 3001)

    SQLALCHEMY_DATABASE_URI = _resolve_sqlite_uri(_env("DATABASE_URL"))
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_AS_ASCII = False

    FRONTEND_URL = _env_first("FRONTEND_URL", "VITE_FRONTEND_URL", default="https://skn.onrender.com")
    CORS_ORIGINS = _frontend_urls()

    # PayPal
    PAYPAL_ENV = resolve_paypal_env(APP_ENV)
    PAYPAL_API_BASE = PAYPAL_API[PAYPAL_ENV]
    PAYPAL_CLIENT_ID = _env_first("VITE_PAYPAL_CLIENT_ID", "PAYPAL_CLIENT_ID")
    PAYPAL_SECRET = _env_first("VITE_PAYPAL_SECRET", "PAYPAL_SECRET")
    PAYPAL_CURRENCY = str(_env("PAYPAL_CURRENCY", "USD")).upper()
    PAYPAL_BRAND_NAME = _env("PAYPAL_BRAND_NAME", "SKN Bridge Trade")
    PAYPAL_RETURN_URL = _env("PAYPAL_RETURN_URL", f"{FRONTEND_URL.rstrip('/')}/success")
    PAYPAL_CANCEL_URL = _env("PAYPAL_CANCEL_URL", f"{FRONTEND_URL.rstrip('/')}/cart")
    PAYPAL_TIMEOUT = _env_int("PAYPAL_TIMEOUT", 15)
    DEBUG_PAYPAL = _env_bool("DEBUG_PAYPAL", False)
    PAYPAL_WEBHOOK_ID = _env("PAYPAL_WEBHOOK_ID")

    # Mail
    MAIL_SERVER = _env("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT = _env_int("MAIL_PORT", 465)
    MAIL_USE_SSL = _env_bool("MAIL_USE_SSL", True)
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", False)
    MAIL_USERNAME = _env("MAIL_USERNAME")
    MAIL_PASSWORD = _env("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = _env("MAIL_DEFAULT_SENDER", _env("MAIL_USERNAME"))
    MAIL_SUPPRESS_SEND = _env_bool("MAIL_SUPPRESS_SEND", False)
    MAIL_DEBUG = _env_bool("MAIL_DEBUG", False)
    ORDER_NOTIFY_EMAIL = _env("ORDER_NOTIFY_EMAIL")

    KYC_PROVIDER = _env("KYC_PROVIDER", "stub")
    LOW_STOCK_THRESHOLD = _env_int("LOW_STOCK_THRESHOLD", 5)
