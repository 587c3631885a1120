"""
Runtime configuration.

Values come from the process environment, optionally seeded from a
``.env`` file. API keys for individual sources are read by the client
modules that use them; this module holds server and queue settings.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

__all__ = ["Settings", "load_config", "configure_logging"]

logger = logging.getLogger(__name__)

DEFAULT_JWKS_URL = "https://api.commands.com/.well-known/jwks.json"
DEFAULT_JWT_ISSUER = "https://api.commands.com"
DEFAULT_JWT_AUDIENCE = "research-engine"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={value!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={value!r}, using {default}")
        return default


@dataclass
class Settings:
    """Server, queue and auth settings."""

    host: str = "0.0.0.0"
    port: int = 3000
    environment: str = "production"
    skip_auth: bool = False
    jwks_url: str = DEFAULT_JWKS_URL
    jwt_issuer: str = DEFAULT_JWT_ISSUER
    jwt_audience: str = DEFAULT_JWT_AUDIENCE
    db_path: str = "./data/jobs.db"
    max_concurrent_jobs: int = 3
    max_concurrent_plugins: int = 5
    poll_interval: float = 1.0
    job_retention_days: int = 7
    job_max_attempts: int = 3
    export_dir: str = "./exports"
    plugin_dir: Optional[str] = None
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev")

    @property
    def auth_disabled(self) -> bool:
        """Auth is bypassed only when explicitly skipped in development."""
        return self.skip_auth and self.is_development


def load_config(env_file: Optional[str] = None) -> Settings:
    """Load settings from the environment (and ``.env`` when present)."""
    load_dotenv(env_file)

    origins = os.getenv("CORS_ORIGINS", "*")
    return Settings(
        host=os.getenv("HOST", "0.0.0.0"),
        port=_env_int("PORT", 3000),
        environment=os.getenv("ENVIRONMENT", "production"),
        skip_auth=_env_bool("SKIP_AUTH"),
        jwks_url=os.getenv("COMMANDS_JWKS_URL", DEFAULT_JWKS_URL),
        jwt_issuer=os.getenv("COMMANDS_JWT_ISSUER", DEFAULT_JWT_ISSUER),
        jwt_audience=os.getenv("COMMANDS_JWT_AUDIENCE", DEFAULT_JWT_AUDIENCE),
        db_path=os.getenv("SQLITE_DB_PATH", "./data/jobs.db"),
        max_concurrent_jobs=max(_env_int("MAX_CONCURRENT_JOBS", 3), 1),
        max_concurrent_plugins=max(_env_int("MAX_CONCURRENT_PLUGINS", 5), 1),
        poll_interval=max(_env_float("POLL_INTERVAL", 1.0), 0.01),
        job_retention_days=_env_int("JOB_RETENTION_DAYS", 7),
        job_max_attempts=max(_env_int("JOB_MAX_ATTEMPTS", 3), 1),
        export_dir=os.getenv("EXPORT_DIR", "./exports"),
        plugin_dir=os.getenv("PLUGIN_DIR") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
    )


def configure_logging(level: str = "INFO") -> None:
    """Log to stderr so stdout stays free for the MCP stdio transport."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
