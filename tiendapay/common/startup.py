"""Startup-time helpers for safe config logging."""

from typing import Any

from tiendapay.common.config import Settings
from tiendapay.common.logging import logger


SECRET_MARKERS = ("key", "secret", "password", "token", "dsn")


def _redact(name: str, value: Any) -> Any:
    """Hide values whose field name looks secret-like."""

    if value is None:
        return "<unset>"
    if any(marker in name.lower() for marker in SECRET_MARKERS):
        return "<redacted>"
    return value


def safe_config(settings: Settings, fields: list[str]) -> dict[str, Any]:
    """Selected settings fields with secrets replaced, plus the derived gateway URLs."""

    config = {name: _redact(name, getattr(settings, name)) for name in fields}
    config["api_url"] = settings.api_url
    config["confirmation_url"] = settings.confirmation_url
    config["webhook_url"] = settings.webhook_url
    return config


def log_startup_config(settings: Settings, fields: list[str]) -> None:
    """Log the effective configuration once, for quick troubleshooting."""

    logger.info("startup_config service=%s config=%s", settings.service_name, safe_config(settings, fields))
