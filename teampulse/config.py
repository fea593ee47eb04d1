"""Configuration management for the Team Pulse service."""
from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass, field, replace
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

logger = logging.getLogger("teampulse.config")

DEFAULT_TOKEN_TTL_HOURS = 24 * 7
DEFAULT_CORS_ORIGINS: Tuple[str, ...] = ("http://localhost:5173",)
DEFAULT_PAGE_LIMIT = 100

_KNOWN_KEYS = {"database_path", "token_secret", "token_ttl_hours", "cors_origins", "page_limit"}


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the API and the command line tools."""

    database_path: Path
    token_secret: str
    token_ttl: timedelta = timedelta(hours=DEFAULT_TOKEN_TTL_HOURS)
    cors_origins: Tuple[str, ...] = DEFAULT_CORS_ORIGINS
    page_limit: int = DEFAULT_PAGE_LIMIT
    ephemeral_secret: bool = field(default=False, compare=False)

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""
        unknown = set(data.keys()) - _KNOWN_KEYS
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        raw_path = data.get("database_path")
        if raw_path:
            candidate = Path(str(raw_path)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            database_path = candidate.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        secret = data.get("token_secret")
        ephemeral = not secret
        ttl_hours = float(data.get("token_ttl_hours", DEFAULT_TOKEN_TTL_HOURS))  # type: ignore[arg-type]
        if ttl_hours <= 0:
            raise ValueError("token_ttl_hours must be positive")

        page_limit = int(data.get("page_limit", DEFAULT_PAGE_LIMIT))  # type: ignore[arg-type]
        if page_limit < 1:
            raise ValueError("page_limit must be at least 1")

        return Settings(
            database_path=database_path,
            token_secret=str(secret) if secret else secrets.token_urlsafe(32),
            token_ttl=timedelta(hours=ttl_hours),
            cors_origins=_parse_origins(data.get("cors_origins", DEFAULT_CORS_ORIGINS)),
            page_limit=page_limit,
            ephemeral_secret=ephemeral,
        )


def _parse_origins(value: object) -> Tuple[str, ...]:
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        raise ValueError("cors_origins must be a list or a comma separated string")
    return tuple(item.strip() for item in items if item.strip())


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "teampulse.sqlite3").resolve(strict=False)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the optional YAML configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (Path(__file__).resolve().parent.parent / "config" / "teampulse.yaml").resolve(strict=False)


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, object]:
    overrides: Dict[str, object] = {}
    if environ.get("TEAMPULSE_DB_PATH"):
        overrides["database_path"] = environ["TEAMPULSE_DB_PATH"]
    if environ.get("TEAMPULSE_TOKEN_SECRET"):
        overrides["token_secret"] = environ["TEAMPULSE_TOKEN_SECRET"]
    if environ.get("TEAMPULSE_TOKEN_TTL_HOURS"):
        overrides["token_ttl_hours"] = environ["TEAMPULSE_TOKEN_TTL_HOURS"]
    if environ.get("TEAMPULSE_CORS_ORIGINS"):
        overrides["cors_origins"] = environ["TEAMPULSE_CORS_ORIGINS"]
    return overrides


def load_settings(
    config_path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Build settings from defaults, an optional YAML file and the environment."""

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("TEAMPULSE_CONFIG"))

    raw: Dict[str, object] = {}
    base_path: Path | None = None
    if path.is_file():
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        raw.update(loaded)
        base_path = path.parent
    elif config_path is not None:
        raise ValueError(f"Configuration file {path} does not exist")

    overrides = _env_overrides(env)
    settings = Settings.from_dict({**raw, **overrides}, base_path=base_path)
    if "database_path" in overrides:
        settings = replace(settings, database_path=resolve_database_path(str(overrides["database_path"])))

    if settings.ephemeral_secret:
        logger.warning(
            "No token secret configured; generated a temporary one. Issued tokens will"
            " not survive a restart. Set TEAMPULSE_TOKEN_SECRET to persist them."
        )
    return settings


__all__ = [
    "Settings",
    "load_settings",
    "resolve_config_path",
    "resolve_database_path",
]
