"""Runtime configuration read from environment variables.

Every setting has a ``Final`` default so the core works against a local
backend with no environment at all. ``load_settings()`` is called once by the
entry point and the resulting frozen ``Settings`` is passed down explicitly.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Final

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_API_URL: Final[str] = "http://localhost:5000/api"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 15.0
DEFAULT_COMMENT_LIMIT: Final[int] = 100

ENV_API_URL: Final[str] = "SOUQVIEW_API_URL"
ENV_TIMEOUT: Final[str] = "SOUQVIEW_TIMEOUT_SECONDS"
ENV_COMMENT_LIMIT: Final[str] = "SOUQVIEW_COMMENT_LIMIT"
ENV_SUPABASE_URL: Final[str] = "SUPABASE_URL"
ENV_SUPABASE_ANON_KEY: Final[str] = "SUPABASE_ANON_KEY"
ENV_SUPABASE_ACCESS_TOKEN: Final[str] = "SUPABASE_ACCESS_TOKEN"


class Settings(BaseModel):
    """Resolved configuration for one process."""

    model_config = ConfigDict(frozen=True)

    api_url: str = DEFAULT_API_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    comment_limit: int = DEFAULT_COMMENT_LIMIT
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    supabase_access_token: str | None = None

    @property
    def community_enabled(self) -> bool:
        """True when the comment/vote backend is configured."""
        return bool(self.supabase_url and self.supabase_anon_key)


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build ``Settings`` from *environ* (defaults to ``os.environ``)."""
    env = os.environ if environ is None else environ
    settings = Settings(
        api_url=env.get(ENV_API_URL) or DEFAULT_API_URL,
        timeout_seconds=_env_float(env, ENV_TIMEOUT, DEFAULT_TIMEOUT_SECONDS),
        comment_limit=_env_int(env, ENV_COMMENT_LIMIT, DEFAULT_COMMENT_LIMIT),
        supabase_url=env.get(ENV_SUPABASE_URL) or None,
        supabase_anon_key=env.get(ENV_SUPABASE_ANON_KEY) or None,
        supabase_access_token=env.get(ENV_SUPABASE_ACCESS_TOKEN) or None,
    )
    logger.debug(
        "Settings loaded: api_url=%s, community=%s",
        settings.api_url,
        "configured" if settings.community_enabled else "not configured",
    )
    return settings


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using default %.1f", key, raw, default)
        return default
    if value <= 0:
        logger.warning("Non-positive %s=%r, using default %.1f", key, raw, default)
        return default
    return value


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using default %d", key, raw, default)
        return default
    if value <= 0:
        logger.warning("Non-positive %s=%r, using default %d", key, raw, default)
        return default
    return value
