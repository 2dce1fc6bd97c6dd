"""
Settings loading for the response monitor.

Loads settings from:
1. a YAML file (``config.yaml`` shared with the log processor)
2. environment variables / ``.env`` (secrets - never committed)

and turns them into a validated MonitorConfig. Path discovery happens
here, before a monitor exists; the monitor only ever sees the result.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

import yaml
from dotenv import load_dotenv

from .config import MonitorConfig
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_CANDIDATES = (
    "config.yaml",
    "config/config.yaml",
    "LogEventProcessor/config.yaml",
)

SETTING_KEYS = (
    "email_smtp_server",
    "email_smtp_port",
    "email_username",
    "email_password",
    "email_from",
    "email_to",
    "email_enable_ssl",
    "email_imap_server",
    "email_imap_port",
    "email_imap_username",
    "email_imap_password",
    "email_imap_enable_ssl",
    "email_imap_mailbox",
    "email_imap_timeout_seconds",
    "email_poll_interval_ms",
    "email_poll_interval_seconds",
    "email_responses_dir",
    "email_response_file",
)


def find_config_file(
    explicit: Optional[str] = None,
    candidates: Iterable[str] = DEFAULT_CONFIG_CANDIDATES,
    base_dir: Optional[Path] = None,
) -> Optional[Path]:
    """
    Resolve the settings file path.

    Args:
        explicit: Path given by the user; returned (resolved) if it exists
        candidates: Relative paths tried in order when no explicit path is given
        base_dir: Directory candidates are relative to (default: cwd)

    Returns:
        The resolved path, or None if nothing was found
    """
    if explicit:
        path = Path(explicit).expanduser().resolve()
        return path if path.is_file() else None

    base = base_dir or Path.cwd()
    for candidate in candidates:
        path = (base / candidate).resolve()
        if path.is_file():
            return path
    return None


def load_settings(path: Path) -> Dict[str, Any]:
    """
    Read the YAML settings mapping.

    Raises:
        ConfigurationError: If the file is unreadable or not a mapping
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"cannot read settings file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"settings file {path} must contain a mapping")
    logger.info("Loaded settings from %s", path)
    return data


def apply_env_overrides(
    settings: Mapping[str, Any],
    env: Optional[Mapping[str, str]] = None,
    dotenv: bool = True,
) -> Dict[str, Any]:
    """
    Overlay ``EMAIL_*`` environment variables on the settings.

    Args:
        settings: Settings loaded from file
        env: Environment to read (default: os.environ)
        dotenv: Load a ``.env`` file into the process environment first

    Returns:
        A new settings dict
    """
    if dotenv and env is None:
        load_dotenv()
    env = os.environ if env is None else env

    merged = dict(settings)
    for key in SETTING_KEYS:
        value = env.get(key.upper())
        if value is not None and value != "":
            merged[key] = value
    return merged


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value).strip()


def _as_bool(value: Any, key: str, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "yes", "1", "on"):
        return True
    if text in ("false", "no", "0", "off"):
        return False
    raise ConfigurationError(f"{key} must be a boolean, got {value!r}")


def _as_number(value: Any, key: str, default: float, cast=int):
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ConfigurationError(f"{key} must be a number, got {value!r}")
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number, got {value!r}") from None


def _poll_interval_ms(settings: Mapping[str, Any]) -> int:
    if settings.get("email_poll_interval_ms") not in (None, ""):
        return _as_number(settings["email_poll_interval_ms"], "email_poll_interval_ms", 30000)
    if settings.get("email_poll_interval_seconds") not in (None, ""):
        seconds = _as_number(
            settings["email_poll_interval_seconds"], "email_poll_interval_seconds", 30, cast=float,
        )
        return int(seconds * 1000)
    return 30000


def build_config(settings: Mapping[str, Any], channel_size: int = 100) -> MonitorConfig:
    """
    Build a MonitorConfig from a settings mapping.

    Raises:
        ConfigurationError: If the recipient identity is missing or a value is invalid
    """
    recipient = _as_str(settings.get("email_to"))
    if not recipient:
        raise ConfigurationError("email_to (recipient identity) is required")

    return MonitorConfig(
        recipient_email=recipient,
        imap_server=_as_str(settings.get("email_imap_server"), "imap.gmail.com") or "imap.gmail.com",
        imap_port=_as_number(settings.get("email_imap_port"), "email_imap_port", 993),
        imap_use_ssl=_as_bool(settings.get("email_imap_enable_ssl"), "email_imap_enable_ssl", True),
        imap_username=_as_str(settings.get("email_imap_username")) or None,
        imap_password=_as_str(settings.get("email_imap_password")) or None,
        imap_mailbox=_as_str(settings.get("email_imap_mailbox"), "INBOX") or "INBOX",
        imap_timeout=_as_number(
            settings.get("email_imap_timeout_seconds"), "email_imap_timeout_seconds", 30.0, cast=float,
        ),
        username=_as_str(settings.get("email_username")),
        password=_as_str(settings.get("email_password")),
        from_email=_as_str(settings.get("email_from")),
        poll_interval_ms=_poll_interval_ms(settings),
        responses_dir=Path(_as_str(settings.get("email_responses_dir"), "responses") or "responses"),
        response_file=Path(_as_str(settings.get("email_response_file"), "response.txt") or "response.txt"),
        channel_size=channel_size,
    )
