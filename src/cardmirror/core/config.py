# cardmirror/core/config.py

import os
import yaml
from dataclasses import dataclass, fields
from typing import Optional, Dict, Any

from .errors import ConfigError
from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"

@dataclass
class Settings:
    """Runtime settings, read from config.yaml."""
    client_id: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    credentials_file: str = "device-auth.json"
    base_url: str = "https://api.yotoplay.com"
    auth_url: str = "https://login.yotoplay.com"
    icon_url: str = "https://api.yotoplay.com/media/displayIcons/{icon_id}"
    timeout: float = 30.0

    @property
    def has_password_login(self) -> bool:
        return bool(self.username and self.password)

    def icon_url_for(self, icon_id: str) -> str:
        return self.icon_url.format(icon_id=icon_id)


def load_config_from_yaml(filepath: str) -> Dict[str, Any]:
    """
    Loads and parses the YAML configuration file.

    Args:
        filepath: The path to the config.yaml file.

    Returns:
        The top-level mapping of the file. Returns an empty dict if the
        file is not found or is empty.

    Raises:
        ConfigError: if the file is not valid YAML or not a mapping.
    """
    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        logger.warning(f"Configuration file not found at '{filepath}', using defaults")
        return {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML file '{filepath}': {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file '{filepath}' must contain a mapping")
    return data


def load_settings(filepath: Optional[str] = None) -> Settings:
    """Builds Settings from the config file, ignoring unknown keys."""
    path = filepath or os.environ.get("CARDMIRROR_CONFIG", DEFAULT_CONFIG_PATH)
    data = load_config_from_yaml(path)

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")

    values = {k: v for k, v in data.items() if k in known and v is not None}
    if "timeout" in values:
        try:
            values["timeout"] = float(values["timeout"])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid timeout value: {values['timeout']!r}") from e
    return Settings(**values)
