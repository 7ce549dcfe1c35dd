"""
config.py – Runtime settings from an optional YAML file and the environment.

Environment variables override values from the file:

    WP_API_BASE          – WordPress REST base URL (e.g. https://example.com/wp-json)
    WP_USERNAME          – user for the JWT token endpoint
    WP_PASSWORD          – password for the JWT token endpoint
    SYNC_BATCH_SIZE      – records processed per run (default 5)
    SYNC_RECORD_DELAY    – seconds to wait between records (default 2)
    SYNC_MEDIA_DELAY     – seconds to wait before each image upload (default 1)
    SYNC_HTTP_TIMEOUT    – HTTP timeout in seconds (default 30)
    SYNC_NOTIFY_EMAIL    – recipient of fatal error notifications
    SMTP_HOST / SMTP_PORT / SMTP_USER / SMTP_PASSWORD / SMTP_SENDER
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .notify import EmailNotifier, LogNotifier, Notifier
from .relations import RelationIds

logger = logging.getLogger(__name__)

_ENV_VARS = {
    "api_base": "WP_API_BASE",
    "username": "WP_USERNAME",
    "password": "WP_PASSWORD",
    "batch_size": "SYNC_BATCH_SIZE",
    "record_delay": "SYNC_RECORD_DELAY",
    "media_delay": "SYNC_MEDIA_DELAY",
    "http_timeout": "SYNC_HTTP_TIMEOUT",
    "notify_email": "SYNC_NOTIFY_EMAIL",
    "smtp_host": "SMTP_HOST",
    "smtp_port": "SMTP_PORT",
    "smtp_user": "SMTP_USER",
    "smtp_password": "SMTP_PASSWORD",
    "smtp_sender": "SMTP_SENDER",
}

_INT_KEYS = ("batch_size", "smtp_port")
_FLOAT_KEYS = ("record_delay", "media_delay", "http_timeout")


@dataclass
class Settings:
    api_base: str
    username: str
    password: str
    batch_size: int = 5
    record_delay: float = 2.0
    media_delay: float = 1.0
    http_timeout: float = 30.0
    relation_ids: RelationIds = field(default_factory=RelationIds)
    header_map_file: Optional[str] = None
    notify_email: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_sender: Optional[str] = None


def _read_yaml(path: str) -> dict[str, Any]:
    file_path = Path(path)
    try:
        with open(file_path) as fh:
            raw = yaml.safe_load(fh) or {}
    except FileNotFoundError:
        logger.error("Config file not found: %s", file_path)
        raise SystemExit(f"ERROR: config file not found: {file_path}")
    except yaml.YAMLError as exc:
        logger.error("Failed to parse config %s: %s", file_path, exc)
        raise SystemExit(f"ERROR: failed to parse YAML in {file_path}: {exc}")
    if not isinstance(raw, dict):
        raise SystemExit(f"ERROR: config file {file_path} must contain a mapping")
    return raw


def load_settings(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from the YAML file at *path* (optional) and the environment.

    Raises ``EnvironmentError`` when the API base or credentials are missing,
    and ``SystemExit`` for an unreadable file or a malformed number.
    """
    env = os.environ if environ is None else environ
    values: dict[str, Any] = _read_yaml(path) if path else {}
    relations = values.pop("relations", None) or {}
    if not isinstance(relations, dict):
        raise SystemExit("ERROR: 'relations' in the config file must be a mapping")

    for key, var in _ENV_VARS.items():
        if env.get(var):
            values[key] = env[var]

    missing = [_ENV_VARS[k] for k in ("api_base", "username", "password") if not values.get(k)]
    if missing:
        raise EnvironmentError(
            f"{', '.join(missing)} not set. Export them or add them to the config file."
        )

    try:
        for key in _INT_KEYS:
            if key in values:
                values[key] = int(values[key])
        for key in _FLOAT_KEYS:
            if key in values:
                values[key] = float(values[key])
        relation_ids = RelationIds(**{k: int(v) for k, v in relations.items()})
    except (TypeError, ValueError) as exc:
        raise SystemExit(f"ERROR: invalid numeric setting: {exc}")

    known = set(Settings.__dataclass_fields__) - {"relation_ids"}
    unknown = set(values) - known
    if unknown:
        logger.warning("Ignoring unknown settings: %s", ", ".join(sorted(unknown)))
    return Settings(
        relation_ids=relation_ids,
        **{k: v for k, v in values.items() if k in known},
    )


def build_notifier(settings: Settings) -> Notifier:
    """E-mail notifier when a recipient and SMTP host are configured, else log only."""
    if settings.notify_email and settings.smtp_host:
        return EmailNotifier(
            recipient=settings.notify_email,
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            sender=settings.smtp_sender,
        )
    return LogNotifier()
