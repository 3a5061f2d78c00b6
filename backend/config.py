import os
import re

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# ── Sessions ──────────────────────────────────────────────────────────────────
SESSION_SECRET        = os.environ.get("SESSION_SECRET", "dev-session-secret-change-me")
SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE")

# ── Admin identity ────────────────────────────────────────────────────────────
# There is exactly one admin; it lives in the environment, not the database.
ADMIN_EMAIL    = os.environ.get("ADMIN_EMAIL", "admin@events.local").strip().lower()
ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "admin123")

# ── CORS ──────────────────────────────────────────────────────────────────────
DEFAULT_ORIGINS = [
    "https://dass-event-management.vercel.app",
    "https://dass-event-management-atcy4yeak-no-oneeeees-projects.vercel.app",
    "http://localhost:3000",
    "http://localhost:5000",
    "http://127.0.0.1:5000",
    "http://127.0.0.1:3000",
]
_raw_origins = os.environ.get("CORS_ORIGINS", "")
CORS_ORIGINS = (
    [o.strip() for o in _raw_origins.split(",") if o.strip()]
    if _raw_origins else list(DEFAULT_ORIGINS)
)
FRONTEND_URL = os.environ.get("FRONTEND_URL", "").strip()
if FRONTEND_URL and FRONTEND_URL not in CORS_ORIGINS:
    CORS_ORIGINS.append(FRONTEND_URL)

# Any subdomain of the hosting provider (preview deployments) is accepted.
CORS_ALLOWED_SUFFIX = os.environ.get("CORS_ALLOWED_SUFFIX", ".vercel.app")


def origin_regex(suffix: str = CORS_ALLOWED_SUFFIX) -> str:
    """Regex matching ``scheme://<anything>.<suffix>`` with an optional port."""
    host = re.escape(suffix.lstrip("."))
    return rf"https?://[A-Za-z0-9.-]+\.{host}(:\d+)?"


CORS_ORIGIN_REGEX = origin_regex() if CORS_ALLOWED_SUFFIX else None


def is_origin_allowed(origin, allowed=None, suffix=None) -> bool:
    """True when a request from ``origin`` may be served.

    Requests without an Origin header (curl, server-to-server) are allowed.
    """
    if not origin:
        return True
    allowed = CORS_ORIGINS if allowed is None else allowed
    suffix = CORS_ALLOWED_SUFFIX if suffix is None else suffix
    if origin in allowed:
        return True
    if suffix:
        return re.fullmatch(origin_regex(suffix), origin) is not None
    return False


# ── SMTP email config ─────────────────────────────────────────────────────────
# Leave EMAIL_USER / EMAIL_PASS blank to disable email (registration still works).
# SMTP_USER / SMTP_PASS are accepted as aliases.
EMAIL_USER    = os.environ.get("EMAIL_USER") or os.environ.get("SMTP_USER", "")
EMAIL_PASS    = os.environ.get("EMAIL_PASS") or os.environ.get("SMTP_PASS", "")
EMAIL_SERVICE = os.environ.get("EMAIL_SERVICE", "").strip().lower()
SMTP_HOST     = os.environ.get("SMTP_HOST") or os.environ.get("EMAIL_HOST", "smtp.gmail.com")
SMTP_PORT     = int(os.environ.get("SMTP_PORT") or os.environ.get("EMAIL_PORT") or "587")
SMTP_FROM     = os.environ.get("SMTP_FROM", "")   # defaults to EMAIL_USER if blank

# Presets for well-known providers; anything else uses SMTP_HOST/SMTP_PORT.
SMTP_PRESETS = {
    "gmail":   ("smtp.gmail.com", 587),
    "outlook": ("smtp-mail.outlook.com", 587),
    "hotmail": ("smtp-mail.outlook.com", 587),
}
