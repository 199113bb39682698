"""Configuration loader for the email dispatch service."""

from __future__ import annotations

import configparser
import os
from pathlib import Path

from .core import EmailDispatchCore
from .logger import get_logger
from .persistence import Persistence
from .prometheus import EmailMetrics
from .transport import SMTPTransport

logger = get_logger("EmailDispatch.config")


def load_settings(config_path: str | os.PathLike | None = None) -> dict[str, object]:
    """
    Load configuration from an INI file (default: config.ini) with environment variables as fallbacks.

    Environment variables (all prefixed with EDS_):
      EDS_CONFIG - Path to config.ini file (default: config.ini)
      EDS_LOG_LEVEL - Logging level (default: INFO)
      EDS_DB_PATH - Database path (default: email_dispatch.db)
      EDS_HOST - Server host (default: 0.0.0.0)
      EDS_PORT - Server port (default: 8000)
      EDS_API_TOKEN - API authentication token
      EDS_SMTP_HOST - SMTP server host (default: localhost)
      EDS_SMTP_PORT - SMTP server port (default: 25)
      EDS_SMTP_USER - SMTP username
      EDS_SMTP_PASSWORD - SMTP password
      EDS_SMTP_USE_TLS - Implicit TLS (default: on for port 465)
      EDS_SMTP_START_TLS - STARTTLS upgrade (default: False)
      EDS_SMTP_TIMEOUT - SMTP timeout in seconds (default: 10)

    Config file sections/keys:
      [storage] db_path
      [server] host, port, api_token
      [smtp] host, port, user, password, use_tls, start_tls, timeout
      [logging] level
    """
    path = Path(config_path or os.getenv("EDS_CONFIG", "config.ini"))
    parser = configparser.ConfigParser()
    if config_path is not None and not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    parser.read(path)

    def get(section: str, option: str, fallback: str | None = None) -> str | None:
        if parser.has_option(section, option):
            return parser.get(section, option)
        return fallback

    def get_int(section: str, option: str, fallback: str | None = None, default: int | None = None) -> int | None:
        value = get(section, option, fallback)
        if value is None:
            return default
        return int(value)

    def get_float(section: str, option: str, fallback: str | None = None, default: float | None = None) -> float | None:
        value = get(section, option, fallback)
        if value is None:
            return default
        return float(value)

    def get_bool(section: str, option: str, fallback: str | None = None, default: bool | None = None) -> bool | None:
        value = get(section, option, fallback)
        if value is None:
            return default
        normalized = str(value).strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
        logger.warning("Ignoring invalid boolean for [%s] %s: %r", section, option, value)
        return default

    settings = {
        "db_path": get("storage", "db_path", os.getenv("EDS_DB_PATH", "email_dispatch.db")),
        "http_host": get("server", "host", os.getenv("EDS_HOST", "0.0.0.0")),
        "http_port": get_int("server", "port", os.getenv("EDS_PORT"), default=8000),
        "api_token": get("server", "api_token", os.getenv("EDS_API_TOKEN")),
        "smtp_host": get("smtp", "host", os.getenv("EDS_SMTP_HOST", "localhost")),
        "smtp_port": get_int("smtp", "port", os.getenv("EDS_SMTP_PORT"), default=25),
        "smtp_user": get("smtp", "user", os.getenv("EDS_SMTP_USER")),
        "smtp_password": get("smtp", "password", os.getenv("EDS_SMTP_PASSWORD")),
        "smtp_use_tls": get_bool("smtp", "use_tls", os.getenv("EDS_SMTP_USE_TLS")),
        "smtp_start_tls": get_bool("smtp", "start_tls", os.getenv("EDS_SMTP_START_TLS"), default=False),
        "smtp_timeout": get_float("smtp", "timeout", os.getenv("EDS_SMTP_TIMEOUT"), default=10.0),
        "log_level": (get("logging", "level", os.getenv("EDS_LOG_LEVEL", "INFO")) or "INFO").upper(),
    }

    db_path = settings["db_path"]
    if isinstance(db_path, str):
        settings["db_path"] = os.path.expanduser(db_path)
    token = settings.get("api_token")
    if isinstance(token, str):
        token = token.strip() or None
    settings["api_token"] = token
    return settings


def build_core(settings: dict[str, object], metrics: EmailMetrics | None = None) -> EmailDispatchCore:
    """Wire transport, persistence and metrics from loaded settings."""
    transport = SMTPTransport(
        host=str(settings["smtp_host"]),
        port=int(settings["smtp_port"]),
        user=settings.get("smtp_user"),
        password=settings.get("smtp_password"),
        use_tls=settings.get("smtp_use_tls"),
        start_tls=bool(settings.get("smtp_start_tls")),
        timeout=float(settings.get("smtp_timeout") or 10.0),
    )
    return EmailDispatchCore(
        transport=transport,
        persistence=Persistence(str(settings["db_path"])),
        metrics=metrics,
    )
