"""Centralized configuration for the clinic chat agent.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/clinic-agent/<VARIABLE_NAME>``.

Every secret is optional at import time.  The server must still boot without
model credentials (the chat route then answers 500) and without database
credentials (chat bookings fall back to a "please call us" reply).
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store, or ``None``."""
    try:
        import boto3  # noqa: PLC0415 (lazy import to avoid boto3 dep in tests)

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/clinic-agent/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _optional_secret(name: str) -> str | None:
    """Return a secret from env-var or SSM, or ``None`` when unset."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        return _get_ssm_parameter(name)
    return None


def _csv(name: str, default: str) -> list[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


# ── LLM providers ───────────────────────────────────────────────────
OPENROUTER_API_KEY: str | None = _optional_secret("OPENROUTER_API_KEY")
OPENROUTER_BASE_URL: str = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")

# Tried in this order on every turn; each one at most once.
MODEL_PRIORITY: list[str] = _csv(
    "MODEL_PRIORITY",
    "google/gemini-2.0-flash-exp:free,"
    "meta-llama/llama-3.3-70b-instruct:free,"
    "mistralai/mistral-small-24b-instruct-2501:free,"
    "qwen/qwen2.5-vl-7b-instruct:free,"
    "nvidia/llama-3.1-nemotron-70b-instruct:free",
)

# Optional last-resort provider outside OpenRouter.
ANTHROPIC_API_KEY: str | None = _optional_secret("ANTHROPIC_API_KEY")
ANTHROPIC_FALLBACK_MODEL: str = os.getenv("ANTHROPIC_FALLBACK_MODEL", "claude-haiku-4-5")

MODEL_TEMPERATURE: float = float(os.getenv("MODEL_TEMPERATURE", "0.3"))
PROVIDER_TIMEOUT_SECONDS: float = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "20"))
# Only the most recent turns of a conversation are sent to the model.
MAX_HISTORY_TURNS: int = int(os.getenv("MAX_HISTORY_TURNS", "40"))

# ── Database (Supabase / PostgREST) ─────────────────────────────────
SUPABASE_URL: str | None = os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL")
SUPABASE_SERVICE_ROLE_KEY: str | None = _optional_secret("SUPABASE_SERVICE_ROLE_KEY")

# ── Clinic ──────────────────────────────────────────────────────────
CLINIC_NAME: str = os.getenv("CLINIC_NAME", "Dr. Priyanka's Naturopathy Clinic")
CLINIC_PHONE: str = os.getenv("CLINIC_PHONE", "+91 98765 43210")
# Appended to chat-booked start/end times; the clinic is in Vadodara.
CLINIC_UTC_OFFSET: str = os.getenv("CLINIC_UTC_OFFSET", "+05:30")
SITE_URL: str = os.getenv("SITE_URL", "https://drpriyankaclinic.com")

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = _csv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
