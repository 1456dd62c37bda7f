#!/usr/bin/env python3

import copy
import os
import json
import tomllib
from pathlib import Path

import logging
import sys

import yaml

from .exit_codes import ConfigError

# Log to stderr so stdout stays clean for JSONL
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)]
)
logger = logging.getLogger("imagebump")

ENV_PREFIX = "IMAGEBUMP_"
CONFIG_ENV = "IMAGEBUMP_CONFIG"
CONFIG_FILENAMES = ['config.json', 'config.toml', 'config.yaml', 'config.yml']


def get_config_path():
    """Locate the config file.

    IMAGEBUMP_CONFIG wins when it names an existing file; otherwise the
    first non-empty ~/.imagebump/config.{json,toml,yaml,yml}. When none
    exists, ~/.imagebump/config.json is returned as the place to create one.
    """
    if CONFIG_ENV in os.environ:
        candidate = Path(os.environ[CONFIG_ENV]).expanduser()
        if candidate.exists():
            return candidate

    config_dir = Path.home() / '.imagebump'
    for filename in CONFIG_FILENAMES:
        candidate = config_dir / filename
        if candidate.is_file() and candidate.stat().st_size > 0:
            return candidate

    return config_dir / 'config.json'


def _read_config_file(config_path: Path) -> dict:
    suffix = config_path.suffix.lower()
    try:
        if suffix == '.toml':
            with open(config_path, 'rb') as f:
                return tomllib.load(f)
        with open(config_path, 'r', encoding='utf-8') as f:
            if suffix in ('.yaml', '.yml'):
                return yaml.safe_load(f) or {}
            return json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        # TOMLDecodeError and JSONDecodeError are both ValueErrors
        raise ConfigError(f"Error loading config from {config_path}: {e}", path=str(config_path), cause=e) from e


def load_config(path=None):
    """
    Load configuration: defaults, then the config file, then
    IMAGEBUMP_* environment overrides.

    Args:
        path: Explicit config file (overrides IMAGEBUMP_CONFIG lookup)

    Raises:
        ConfigError: the file is missing (explicit path only), unreadable,
                     or holds invalid values
    """
    config_path = Path(path).expanduser() if path else get_config_path()
    if path and not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}", path=str(config_path))

    config = get_default_config()
    if config_path.exists():
        file_config = _read_config_file(config_path)
        if not isinstance(file_config, dict):
            raise ConfigError(f"Config file {config_path} must contain a mapping", path=str(config_path))
        config = merge_configs(config, file_config)
        logger.debug(f"Loaded config from {config_path}")

    config = apply_env_overrides(config)
    validate_config(config)
    return config


def validate_config(config):
    """Check value types the updater relies on."""
    git = config.get('git', {})
    for key in ('timeout_seconds', 'max_attempts', 'network_retries'):
        value = git.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ConfigError(f"git.{key} must be a non-negative integer, got {value!r}")
    for key in ('base_delay', 'max_delay'):
        value = git.get(key)
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
            raise ConfigError(f"git.{key} must be a non-negative number, got {value!r}")
    if not git.get('remote'):
        raise ConfigError("git.remote must be set")

    manifests = config.get('manifests', {})
    if not isinstance(manifests.get('paths'), list):
        raise ConfigError("manifests.paths must be a list")
    image_keys = manifests.get('image_keys')
    if not isinstance(image_keys, list) or not image_keys:
        raise ConfigError("manifests.image_keys must be a non-empty list")


def get_default_config():
    """Default settings; every key that can be set is listed here."""
    return {
        "git": {
            "remote": "origin",
            "branch": "",  # Empty: the checked-out branch
            "author_name": "",
            "author_email": "",
            "timeout_seconds": 60,
            "max_attempts": 3,
            "network_retries": 3,
            "base_delay": 1.0,
            "max_delay": 30.0,
        },
        "manifests": {
            "paths": [],
            "image_keys": ["image"],
        },
        "registry": {
            "url": "",  # Empty: derived from the image repository
            "username": "",
            "token": "",
            "timeout_seconds": 10,
        },
        "logging": {
            "level": "INFO",
            "format": "%(levelname)s: %(message)s"
        },
    }


def configure_logging(config, verbose=False):
    """Apply the logging section of the config to the imagebump logger."""
    level_name = "DEBUG" if verbose else str(config.get('logging', {}).get('level', 'INFO')).upper()
    level = getattr(logging, level_name, logging.INFO)
    logger.setLevel(level)
    fmt = config.get('logging', {}).get('format')
    if fmt:
        for handler in logging.getLogger().handlers:
            handler.setFormatter(logging.Formatter(fmt))


def merge_configs(base_config, override_config):
    """
    Lay a config file's sections over the defaults.

    Nested mappings merge key by key; any other value replaces the base
    value outright. Neither argument is modified.
    """
    merged = copy.deepcopy(base_config)
    for key, value in override_config.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_configs(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _typed(value: str, current):
    """Convert an environment string to the type of the setting it replaces."""
    if isinstance(current, list):
        return [item.strip() for item in value.split(',') if item.strip()]
    if isinstance(current, bool):
        return value.lower() in ('1', 'true', 'yes', 'on')
    if isinstance(current, (int, float)):
        try:
            return int(value)
        except ValueError:
            pass
        try:
            return float(value)
        except ValueError:
            # Left as a string for validate_config to reject
            return value
    return value


def _env_names(config):
    """Map IMAGEBUMP_<SECTION>_<KEY> variable names to (section, key)."""
    names = {}
    for section, values in config.items():
        if isinstance(values, dict):
            for key in values:
                names[f"{ENV_PREFIX}{section}_{key}".upper()] = (section, key)
    return names


def apply_env_overrides(config):
    """
    Apply IMAGEBUMP_<SECTION>_<KEY> environment variables.

    For example IMAGEBUMP_GIT_MAX_ATTEMPTS=5. List settings take comma
    separated values: IMAGEBUMP_MANIFESTS_PATHS=base/app.yaml,prod/app.yaml.
    Variables that name no known setting are ignored.
    """
    names = _env_names(config)
    for env_key, value in os.environ.items():
        target = names.get(env_key)
        if target is None:
            continue
        section, key = target
        config[section][key] = _typed(value, config[section][key])
        logger.debug(f"{section}.{key} set from {env_key}")
    return config
