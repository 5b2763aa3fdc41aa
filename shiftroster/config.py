from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv


DATA_DIR = Path(__file__).resolve().parent / "data"


def sqlite_url(data_dir: Path) -> str:
    return f"sqlite:///{(data_dir / 'shiftroster.db').as_posix()}"


DEFAULT_DATABASE_URL = sqlite_url(DATA_DIR)
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, built once at startup and passed explicitly."""

    jwt_secret: str
    database_url: str = DEFAULT_DATABASE_URL
    pool_size: int = 10
    pool_timeout: float = 30.0
    token_ttl_days: int = 30
    max_occurrences: int = 100
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8080


def _env_number(environ: Mapping[str, str], name: str, default, cast):
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from None


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    if environ is None:
        load_dotenv()
        environ = os.environ
    secret = (environ.get("JWT_SECRET") or "").strip()
    if not secret:
        raise RuntimeError("JWT_SECRET must be set")
    database_url = (environ.get("DATABASE_URL") or "").strip()
    if not database_url:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        database_url = sqlite_url(DATA_DIR)
    return Settings(
        jwt_secret=secret,
        database_url=database_url,
        pool_size=_env_number(environ, "DB_POOL_SIZE", 10, int),
        pool_timeout=_env_number(environ, "DB_POOL_TIMEOUT", 30.0, float),
        token_ttl_days=_env_number(environ, "TOKEN_TTL_DAYS", 30, int),
        max_occurrences=_env_number(environ, "MAX_OCCURRENCES", 100, int),
        log_level=(environ.get("LOG_LEVEL") or "INFO").strip().upper(),
        host=(environ.get("HOST") or "127.0.0.1").strip(),
        port=_env_number(environ, "PORT", 8080, int),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
