"""Configuration loading with hot reload.

config.yaml is parsed with PyYAML and validated against AppConfig. The
validated config is cached process-wide; the poll scheduler calls
reload_config_if_changed() before every cycle, so edits to the file (new
interval, model, concurrency) take effect without a restart. An edit that
fails validation is logged and ignored, and the previous config stays
active.

Usage:
    from mailtriage.config import get_config, reload_config_if_changed

    config = get_config()
    if reload_config_if_changed():
        config = get_config()
"""

import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from mailtriage.config_schema import CURRENT_SCHEMA_VERSION, AppConfig
from mailtriage.core.errors import ConfigLoadError, ConfigValidationError
from mailtriage.core.logging import get_logger

logger = get_logger(__name__)

CONFIG_PATH_ENV = "MAILTRIAGE_CONFIG_PATH"
DEFAULT_CONFIG_PATH = Path("config/config.yaml")

# Friendlier wording for the pydantic error types users hit most
_ERROR_TEMPLATES = {
    "missing": "Missing required field '{field}'",
    "string_type": "Field '{field}' must be a string",
    "int_type": "Field '{field}' must be an integer",
    "int_parsing": "Field '{field}' must be an integer",
    "bool_parsing": "Field '{field}' must be true or false",
}


@dataclass
class _LoadedConfig:
    """The cached config and the file state it was read from."""

    config: AppConfig
    path: Path
    mtime: float


_lock = threading.Lock()
_loaded: _LoadedConfig | None = None


def _get_config_path() -> Path:
    env_path = os.environ.get(CONFIG_PATH_ENV)
    return Path(env_path) if env_path else DEFAULT_CONFIG_PATH


def _format_validation_errors(error: ValidationError) -> str:
    """One bullet per invalid field, e.g. "  - Field 'triage.fetch_limit': ..."."""
    lines = []
    for err in error.errors():
        field = ".".join(str(part) for part in err["loc"])
        template = _ERROR_TEMPLATES.get(err["type"], "Field '{field}': {msg}")
        lines.append("  - " + template.format(field=field, msg=err["msg"]))
    return "\n".join(lines)


def _read_yaml(path: Path) -> dict[str, Any]:
    """Parse a YAML mapping from disk.

    Raises:
        ConfigLoadError: If the file is missing, unparsable or not a mapping
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigLoadError(
            f"Configuration file not found: {path}\n"
            f"Create it by copying config/config.yaml.example to {path}"
        ) from None
    except OSError as e:
        raise ConfigLoadError(f"Cannot read configuration file {path}: {e}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Failed to parse YAML in {path}:\n{e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(
            f"Configuration file {path} must be a YAML mapping, got {type(data).__name__}"
        )
    return data


def _build_config(data: dict[str, Any], path: Path) -> AppConfig:
    """Validate parsed YAML against the schema.

    Raises:
        ConfigValidationError: On schema errors or an unsupported schema version
    """
    try:
        config = AppConfig(**data)
    except ValidationError as e:
        raise ConfigValidationError(
            f"Configuration validation failed for {path}:\n{_format_validation_errors(e)}"
        ) from e

    if config.schema_version > CURRENT_SCHEMA_VERSION:
        raise ConfigValidationError(
            f"Config schema version {config.schema_version} is newer than supported "
            f"version {CURRENT_SCHEMA_VERSION}. Upgrade mailtriage or downgrade the config."
        )
    return config


def load_config(path: Path | None = None) -> AppConfig:
    """Read and validate a config file, bypassing the cache.

    Args:
        path: Config file (default: $MAILTRIAGE_CONFIG_PATH or config/config.yaml)

    Raises:
        ConfigLoadError: If the file cannot be read or parsed
        ConfigValidationError: If validation fails
    """
    config_path = path or _get_config_path()
    config = _build_config(_read_yaml(config_path), config_path)

    logger.info(
        "config_loaded",
        path=str(config_path),
        mailbox=config.mailbox.address,
        interval_seconds=config.triage.interval_seconds,
        model=config.models.triage,
    )
    return config


def get_config() -> AppConfig:
    """Return the cached config, loading it on first use.

    Raises:
        ConfigLoadError: If the first load cannot read the file
        ConfigValidationError: If the first load fails validation
    """
    global _loaded

    with _lock:
        if _loaded is None:
            path = _get_config_path()
            config = load_config(path)
            _loaded = _LoadedConfig(config=config, path=path, mtime=path.stat().st_mtime)
        return _loaded.config


def reload_config_if_changed() -> bool:
    """Reload the cached config if its file was modified.

    Returns:
        True if a new valid config is now cached. False if nothing was
        loaded yet, the file is unchanged, or the new content is invalid
        (the previous config stays active and the bad revision is not
        retried until the file changes again).
    """
    with _lock:
        if _loaded is None:
            return False

        try:
            mtime = _loaded.path.stat().st_mtime
        except OSError as e:
            logger.warning("config_stat_failed", path=str(_loaded.path), error=str(e))
            return False

        if mtime <= _loaded.mtime:
            return False

        _loaded.mtime = mtime
        try:
            _loaded.config = load_config(_loaded.path)
        except (ConfigLoadError, ConfigValidationError) as e:
            logger.warning("config_reload_rejected", path=str(_loaded.path), error=str(e))
            return False

        logger.info("config_reloaded", path=str(_loaded.path))
        return True


def validate_config_file(path: Path | None = None) -> tuple[bool, str]:
    """Check a config file without touching the cache.

    Returns:
        (is_valid, human-readable summary or error)
    """
    try:
        config = load_config(path)
    except ConfigLoadError as e:
        return False, f"Load error: {e}"
    except ConfigValidationError as e:
        return False, f"Validation error: {e}"

    return True, (
        f"Configuration valid (schema version {config.schema_version})\n"
        f"  - mailbox: {config.mailbox.address}\n"
        f"  - poll every {config.triage.interval_seconds}s, "
        f"up to {config.triage.fetch_limit} messages\n"
        f"  - model: {config.models.triage}"
    )


def reset_config() -> None:
    """Drop the cached config. Used by tests."""
    global _loaded
    with _lock:
        _loaded = None
