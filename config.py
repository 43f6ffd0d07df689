import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _csv(value):
    return [v.strip() for v in (value or "").split(",") if v.strip()]


class Config:
    # Shared secret the trusted caller (identity provider / BFF) presents
    SERVICE_API_KEY = os.getenv("SERVICE_API_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as accountguard.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "accountguard.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Writers wait for each other instead of failing with "database is locked"
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30}} if SQLALCHEMY_DATABASE_URI.startswith("sqlite") else {}

    # Account lockout
    LOCKOUT_THRESHOLD = int(os.getenv("LOCKOUT_THRESHOLD", "5"))
    LOCKOUT_MINUTES = int(os.getenv("LOCKOUT_MINUTES", "15"))
    LOCKOUT_BACKOFF_MULTIPLIER = float(os.getenv("LOCKOUT_BACKOFF_MULTIPLIER", "2"))
    LOCKOUT_BACKOFF_COOLDOWN_HOURS = int(os.getenv("LOCKOUT_BACKOFF_COOLDOWN_HOURS", "24"))
    LOCKOUT_MAX_MINUTES = int(os.getenv("LOCKOUT_MAX_MINUTES", str(24 * 60)))

    # Admin heads-up before the lock kicks in
    FAILED_LOGIN_WARNING_THRESHOLD = int(os.getenv("FAILED_LOGIN_WARNING_THRESHOLD", "3"))

    # Impossible travel
    IMPOSSIBLE_TRAVEL_MAX_SPEED_KMH = float(os.getenv("IMPOSSIBLE_TRAVEL_MAX_SPEED_KMH", "1000"))
    IMPOSSIBLE_TRAVEL_WINDOW_HOURS = float(os.getenv("IMPOSSIBLE_TRAVEL_WINDOW_HOURS", "1"))
    IMPOSSIBLE_TRAVEL_MIN_DISTANCE_KM = float(os.getenv("IMPOSSIBLE_TRAVEL_MIN_DISTANCE_KM", "100"))
    IMPOSSIBLE_TRAVEL_EPSILON_HOURS = 1 / 3600

    # Fixed window rate limits: action -> limit per window
    RATE_LIMIT_POLICIES = {
        "password_reset": {"limit": 3, "window_seconds": 15 * 60},
        "ai_coach": {"limit": 10, "window_seconds": 24 * 60 * 60},
        "admin_write": {"limit": int(os.getenv("ADMIN_WRITE_LIMIT", "30")), "window_seconds": 60},
        "login_ip": {"limit": 15, "window_seconds": 60},
    }

    # Alert dispatch
    ALERT_ASYNC = os.getenv("ALERT_ASYNC", "true").lower() == "true"
    ALERT_MAX_RETRIES = 2
    ALERT_RETRY_BACKOFF_SECONDS = 0.5
    ALERT_API_KEY = os.getenv("ALERT_API_KEY")
    ADMIN_ALERT_URL = os.getenv("ADMIN_ALERT_URL")
    USER_ALERT_URL = os.getenv("USER_ALERT_URL")
    ADMIN_ALERT_EMAILS = _csv(os.getenv("ADMIN_ALERT_EMAILS"))

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # IP geolocation, providers tried in order
    GEOLOCATION_ENABLED = os.getenv("GEOLOCATION_ENABLED", "true").lower() == "true"
    GEOLOCATION_PROVIDERS = _csv(os.getenv("GEOLOCATION_PROVIDERS", "ip-api,ipapi,ipwhois"))
    GEOLOCATION_TIMEOUT_SECONDS = 2

    # CAPTCHA (Cloudflare Turnstile)
    TURNSTILE_SECRET_KEY = os.getenv("TURNSTILE_SECRET_KEY")
    CAPTCHA_REQUIRED = os.getenv("CAPTCHA_REQUIRED", "false").lower() == "true"

    # Basic app settings
    DEBUG = False
