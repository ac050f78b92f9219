"""Configuration for gogcli.

Use `gog config set <key> <value>` to configure, or edit
~/.config/gogcli/config.json directly.
"""

from __future__ import annotations

import json

from . import paths

# Default configuration values
DEFAULT_CONFIG: dict[str, str | None] = {
    # Sender for dry runs and when the Gmail profile cannot be read
    "default_from": None,
    # Message-ID domain used when the From address has no parseable domain
    "message_id_domain": None,
}


def _load_config() -> dict:
    """Load configuration from config file."""
    if not paths.CONFIG_FILE.exists():
        return {}
    try:
        data = json.loads(paths.CONFIG_FILE.read_text())
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def get_config() -> dict:
    """Get the full configuration with defaults applied.

    Returns a dict with all config keys, using file values where present
    and defaults otherwise.
    """
    config = _load_config()
    return {**DEFAULT_CONFIG, **config}


def get_default_from() -> str | None:
    return get_config().get("default_from") or None


def get_message_id_domain() -> str | None:
    return get_config().get("message_id_domain") or None


def set_config_value(key: str, value: str | None) -> None:
    """Set a configuration value and persist to file.

    Args:
        key: Configuration key (e.g., "default_from")
        value: Value to set, or None to clear it
    """
    config = _load_config()
    if value is None:
        config.pop(key, None)
    else:
        config[key] = value

    paths.CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    paths.CONFIG_FILE.write_text(json.dumps(config, indent=2) + "\n")
