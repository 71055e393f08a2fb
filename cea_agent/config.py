"""Centralized configuration for the CEA Querétaro support agent.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/cea-agent/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))
_SSM_PREFIX = "/cea-agent"


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store, or ``None``."""
    try:
        import boto3  # noqa: PLC0415 - lazy import keeps boto3 out of tests

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"{_SSM_PREFIX}/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store {_SSM_PREFIX}/{name} (AWS)."
    )


def _optional_secret(name: str) -> str | None:
    value = os.getenv(name)
    if value:
        return value
    return _get_ssm_parameter(name) if _ON_AWS else None


# ── LLM ─────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str = _require_env("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")
# The classifier only has to emit one label, so a cheaper model is enough
CLASSIFIER_MODEL_NAME: str = os.getenv("CLASSIFIER_MODEL_NAME", "claude-haiku-4-5")
LLM_TIMEOUT_SECONDS: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
LLM_MAX_RETRIES: int = int(os.getenv("LLM_MAX_RETRIES", "2"))

# ── Remote tool backend (MCP server) ────────────────────────────────
TOOL_BACKEND_URL: str = _require_env("TOOL_BACKEND_URL")
TOOL_BACKEND_API_KEY: str | None = _optional_secret("TOOL_BACKEND_API_KEY")
TOOL_BACKEND_TIMEOUT_SECONDS: float = float(os.getenv("TOOL_BACKEND_TIMEOUT_SECONDS", "30"))

# ── Workflow ────────────────────────────────────────────────────────
REFERENCE_TIMEZONE: str = os.getenv("REFERENCE_TIMEZONE", "America/Mexico_City")
MAX_APPROVAL_ROUNDS: int = int(os.getenv("MAX_APPROVAL_ROUNDS", "5"))
APPROVAL_LOOP_TIMEOUT_SECONDS: float = float(os.getenv("APPROVAL_LOOP_TIMEOUT_SECONDS", "120"))
REQUEST_TIMEOUT_SECONDS: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "180"))
MAX_CONVERSATIONS: int = int(os.getenv("MAX_CONVERSATIONS", "10000"))

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", os.getenv("PORT", "3000")))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5678",
).split(",")
