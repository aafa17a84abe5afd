"""
Tool configuration.

Settings only relocate the files the tool manages and tune command
timeouts; the parameter payloads written to those files are fixed.
Settings are read from an optional YAML file.
"""

import logging
from dataclasses import dataclass, fields, replace
from typing import Optional

import yaml


class SettingsError(Exception):
    """Raised when a configuration file cannot be used"""


@dataclass(frozen=True)
class ToolSettings:
    """File locations and limits used by the tool"""
    sysctl_conf: str = '/etc/sysctl.conf'
    sysctl_backup: str = '/etc/sysctl.conf.backup'
    limits_conf: str = '/etc/security/limits.conf'
    limits_backup: str = '/etc/security/limits.conf.backup'
    modules_load_conf: str = '/etc/modules-load.d/bbr.conf'
    profile: str = '/etc/profile'
    modules_root: str = '/lib/modules'
    proc_modules: str = '/proc/modules'
    command_timeout: int = 30


def load_settings(config_path: Optional[str] = None,
                  logger: Optional[logging.Logger] = None) -> ToolSettings:
    """Load settings from a YAML file, falling back to defaults"""
    logger = logger or logging.getLogger('tcp_accel')
    settings = ToolSettings()

    if not config_path:
        return settings

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except FileNotFoundError:
        logger.debug(f"No config file found at {config_path}")
        return settings
    except yaml.YAMLError as e:
        raise SettingsError(f"Invalid YAML in {config_path}: {e}") from e

    if config is None:
        return settings
    if not isinstance(config, dict):
        raise SettingsError(f"{config_path}: top level must be a mapping")

    known = {f.name: f for f in fields(ToolSettings)}
    overrides = {}
    for key, value in config.items():
        if key not in known:
            logger.warning(f"Ignoring unknown setting '{key}' in {config_path}")
            continue

        expected = int if key == 'command_timeout' else str
        if not isinstance(value, expected) or isinstance(value, bool):
            raise SettingsError(
                f"{config_path}: '{key}' must be of type {expected.__name__}"
            )
        if key == 'command_timeout' and value <= 0:
            raise SettingsError(f"{config_path}: 'command_timeout' must be positive")
        overrides[key] = value

    logger.info(f"Loaded configuration from {config_path}")
    return replace(settings, **overrides)
