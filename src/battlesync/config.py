"""
Configuration module for loading and managing config files.
"""

import yaml
from pathlib import Path
from typing import Dict, Any
from dataclasses import dataclass, field, fields

from battlesync.server import SyncServerConfig
from battlesync.session_table import SessionTableConfig


DEFAULT_CONFIG_PATH = "configs/server_config.yaml"


@dataclass
class Config:
	"""
	Central configuration loaded from a YAML file.

	Attributes:
		network: Listening socket and buffer settings (SessionTableConfig)
		server: Frame loop settings (SyncServerConfig)
	"""

	network: Dict[str, Any] = field(default_factory=dict)
	server: Dict[str, Any] = field(default_factory=dict)

	@classmethod
	def from_file(cls, config_path: str = DEFAULT_CONFIG_PATH) -> "Config":
		"""
		Load configuration from a YAML file.

		A missing file yields an empty config, so every component falls
		back to its defaults.

		Args:
			config_path: Path to the configuration file

		Returns:
			Config object with loaded sections
		"""
		config = cls()
		path = Path(config_path)
		if not path.exists():
			return config

		with open(path, 'r') as f:
			data = yaml.safe_load(f) or {}

		config.network = data.get("network") or {}
		config.server = data.get("server") or {}
		return config

	def get(self, key: str, default: Any = None) -> Any:
		"""
		Get configuration value by dot-separated key.

		Examples:
			config.get('network.port')
			config.get('server.tick_rate')

		Args:
			key: Dot-separated configuration key
			default: Default value if key not found

		Returns:
			Configuration value or default
		"""
		parts = key.split('.')
		current = self.__dict__

		for part in parts:
			if isinstance(current, dict) and part in current:
				current = current[part]
			else:
				return default

		return current

	def set(self, key: str, value: Any) -> None:
		"""
		Set configuration value by dot-separated key.

		Args:
			key: Dot-separated configuration key
			value: Value to set
		"""
		parts = key.split('.')
		current = self.__dict__

		for part in parts[:-1]:
			if part not in current:
				current[part] = {}
			current = current[part]

		current[parts[-1]] = value

	def save(self, config_path: str = DEFAULT_CONFIG_PATH) -> None:
		"""
		Save current configuration to a YAML file.

		Args:
			config_path: Destination file
		"""
		output_path = Path(config_path)
		output_path.parent.mkdir(parents=True, exist_ok=True)

		with open(output_path, 'w') as f:
			yaml.dump(
				{"network": self.network, "server": self.server},
				f,
				default_flow_style=False,
			)

	def session_table_config(self) -> SessionTableConfig:
		"""Build the session table config, ignoring unknown keys."""
		return _build(SessionTableConfig, self.network)

	def server_config(self) -> SyncServerConfig:
		"""Build the frame loop config, ignoring unknown keys."""
		return _build(SyncServerConfig, self.server)


def _build(config_cls, values: Dict[str, Any]):
	known = {f.name for f in fields(config_cls)}
	return config_cls(**{k: v for k, v in values.items() if k in known})
