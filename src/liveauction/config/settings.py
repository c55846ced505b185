"""Environment-driven service settings."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Tuple


logger = logging.getLogger(__name__)

_ENV_PREFIX = "LIVEAUCTION_"

_DB_PATH_DEFAULT = "liveauction.sqlite"
_MEDIA_DIR_DEFAULT = "media"
_MEDIA_BASE_URL_DEFAULT = "/media"
_BUSY_TIMEOUT_DEFAULT = 5.0
_REFETCH_DEBOUNCE_DEFAULT = 0.3
_HEARTBEAT_INTERVAL_DEFAULT = 10.0


@dataclass(frozen=True)
class AuctionSettings:
    db_path: str = _DB_PATH_DEFAULT
    media_dir: Path = Path(_MEDIA_DIR_DEFAULT)
    media_base_url: str = _MEDIA_BASE_URL_DEFAULT
    registration_tokens: Mapping[str, str] = field(default_factory=dict)
    busy_timeout: float = _BUSY_TIMEOUT_DEFAULT
    refetch_debounce: float = _REFETCH_DEBOUNCE_DEFAULT
    heartbeat_interval: float = _HEARTBEAT_INTERVAL_DEFAULT
    cors_origins: Tuple[str, ...] = ("*",)
    form_schema_dir: Path | None = None


def _env(name: str, environ: Mapping[str, str]) -> str | None:
    raw = environ.get(_ENV_PREFIX + name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def _env_float(
    name: str,
    default: float,
    environ: Mapping[str, str],
    *,
    clamp_min: float | None = None,
    clamp_max: float | None = None,
) -> float:
    raw = _env(name, environ)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid float for %s%s: %s; using default %.2f", _ENV_PREFIX, name, raw, default)
        return default
    if clamp_min is not None:
        value = max(clamp_min, value)
    if clamp_max is not None:
        value = min(clamp_max, value)
    return value


def parse_registration_tokens(raw: str | None) -> Dict[str, str]:
    """Parse ``token=tenant`` pairs separated by commas."""

    tokens: Dict[str, str] = {}
    if not raw:
        return tokens
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "=" not in entry:
            logger.warning("Ignoring registration token entry without tenant: %r", entry)
            continue
        token, tenant = entry.split("=", 1)
        token, tenant = token.strip(), tenant.strip()
        if token and tenant:
            tokens[token] = tenant
    return tokens


def load_settings(environ: Mapping[str, str] | None = None) -> AuctionSettings:
    """Read ``LIVEAUCTION_*`` variables, falling back to defaults."""

    env = os.environ if environ is None else environ
    origins_raw = _env("CORS_ORIGINS", env)
    origins = tuple(o.strip() for o in origins_raw.split(",") if o.strip()) if origins_raw else ("*",)
    schema_dir = _env("FORM_SCHEMA_DIR", env)
    return AuctionSettings(
        db_path=_env("DB_PATH", env) or _DB_PATH_DEFAULT,
        media_dir=Path(_env("MEDIA_DIR", env) or _MEDIA_DIR_DEFAULT),
        media_base_url=(_env("MEDIA_BASE_URL", env) or _MEDIA_BASE_URL_DEFAULT).rstrip("/"),
        registration_tokens=parse_registration_tokens(_env("REGISTRATION_TOKENS", env)),
        busy_timeout=_env_float("BUSY_TIMEOUT", _BUSY_TIMEOUT_DEFAULT, env, clamp_min=0.1),
        refetch_debounce=_env_float("REFETCH_DEBOUNCE", _REFETCH_DEBOUNCE_DEFAULT, env, clamp_min=0.0, clamp_max=10.0),
        heartbeat_interval=_env_float("HEARTBEAT_INTERVAL", _HEARTBEAT_INTERVAL_DEFAULT, env, clamp_min=1.0),
        cors_origins=origins,
        form_schema_dir=Path(schema_dir) if schema_dir else None,
    )
