"""Configuration management for the federated client"""

import yaml
import json
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from fedcycle.core.types import (
    DEFAULT_DOWNLOAD_SPEED,
    DEFAULT_PING,
    DEFAULT_UPLOAD_SPEED,
)


class ConfigManager:
    """Client configuration read from a YAML or JSON file.

    Keys may be addressed with dots, e.g. ``client.require_wifi``.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config: Dict[str, Any] = {}
        if config_path:
            self.load(config_path)

    def load(self, config_path: str) -> Dict[str, Any]:
        """Load a file, choosing the parser from its extension"""
        with open(config_path, 'r') as f:
            if config_path.endswith('.json'):
                loaded = json.load(f)
            else:
                loaded = yaml.safe_load(f)
        self.config = loaded or {}
        return self.config

    def get(self, key: str, default: Any = None) -> Any:
        node = self.config
        for part in key.split('.'):
            if not isinstance(node, dict) or node.get(part) is None:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any) -> None:
        *parents, leaf = key.split('.')
        node = self.config
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = value

    def merge(self, overrides: Dict[str, Any]) -> None:
        """Recursively apply overrides on top of the loaded values"""
        _merge_into(self.config, overrides)


def _merge_into(target: dict, overrides: dict) -> None:
    for key, value in overrides.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _merge_into(current, value)
        else:
            target[key] = value


@dataclass
class ClientSettings:
    """
    Settings of a federated client.

    Attributes:
        url: Coordinator URL (http/https or ws/wss).
        auth_token: Optional token for the authentication step.
        request_timeout: Seconds per HTTP request.
        message_timeout: Seconds to wait for a signalling reply.
        require_charging: Default charging requirement for jobs.
        require_wifi: Default Wi-Fi requirement for jobs.
        plan_dir: Directory for temporary plan files (system temp if None).
        ping: Ping reported in cycle requests.
        upload_speed: Upload speed reported in cycle requests.
        download_speed: Download speed reported in cycle requests.
        log_level: Logging level name.
    """
    url: str = ""
    auth_token: Optional[str] = None
    request_timeout: float = 30.0
    message_timeout: float = 30.0
    require_charging: bool = True
    require_wifi: bool = True
    plan_dir: Optional[str] = None
    ping: str = DEFAULT_PING
    upload_speed: float = DEFAULT_UPLOAD_SPEED
    download_speed: float = DEFAULT_DOWNLOAD_SPEED
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientSettings":
        """Build settings from a dict, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_yaml(cls, yaml_path: str, section: str = "client") -> "ClientSettings":
        """
        Load settings from YAML file.

        Args:
            yaml_path: Path to YAML configuration.
            section: Top-level key holding the client settings; the whole
                file is used when the key is absent.

        Returns:
            ClientSettings instance.
        """
        manager = ConfigManager(yaml_path)
        return cls.from_dict(manager.get(section, manager.config))
