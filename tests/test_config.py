"""
Tests for configuration module (battlesync/config.py).
"""

import yaml

from battlesync.config import Config
from battlesync.server import SyncServerConfig
from battlesync.session_table import SessionTableConfig


class TestConfigInitialization:
    """Tests for Config initialization."""

    def test_default_initialization(self):
        """Test that Config initializes with empty dicts."""
        config = Config()
        assert config.network == {}
        assert config.server == {}

    def test_defaults_flow_into_components(self):
        """Empty sections produce the component defaults."""
        config = Config()
        assert config.session_table_config() == SessionTableConfig()
        assert config.server_config() == SyncServerConfig()


class TestConfigFromFile:
    """Tests for loading configuration from YAML files."""

    def test_load_sections(self, tmp_path):
        """Test loading both sections from one file."""
        path = tmp_path / "server_config.yaml"
        with open(path, 'w') as f:
            yaml.dump({
                "network": {"host": "127.0.0.1", "port": 7000, "max_packet_size": 4096},
                "server": {"tick_rate": 60.0, "prune_closed_sessions": True},
            }, f)

        config = Config.from_file(str(path))

        table_config = config.session_table_config()
        assert table_config.host == "127.0.0.1"
        assert table_config.port == 7000
        assert table_config.max_packet_size == 4096
        assert table_config.backlog == 5

        server_config = config.server_config()
        assert server_config.tick_rate == 60.0
        assert server_config.prune_closed_sessions is True

    def test_missing_file(self, tmp_path):
        """Test that a missing file yields an empty config."""
        config = Config.from_file(str(tmp_path / "nope.yaml"))
        assert config.network == {}
        assert config.server == {}

    def test_empty_file(self, tmp_path):
        """Test that an empty YAML file is handled."""
        path = tmp_path / "empty.yaml"
        path.write_text("")

        config = Config.from_file(str(path))
        assert config.network == {}

    def test_unknown_keys_ignored(self, tmp_path):
        """Unknown keys stay in the dict but do not reach the dataclasses."""
        path = tmp_path / "extra.yaml"
        with open(path, 'w') as f:
            yaml.dump({"network": {"port": 7001, "compression": "zlib"}}, f)

        config = Config.from_file(str(path))
        assert config.get("network.compression") == "zlib"
        assert config.session_table_config().port == 7001

    def test_shipped_config_loads(self):
        """The repository's default config matches the dataclass defaults."""
        from pathlib import Path

        path = Path(__file__).parent.parent / "configs" / "server_config.yaml"
        config = Config.from_file(str(path))

        assert config.session_table_config() == SessionTableConfig()
        assert config.server_config() == SyncServerConfig()


class TestConfigGetSet:
    """Tests for dot-separated access."""

    def test_get_nested(self):
        config = Config(network={"port": 6881})
        assert config.get("network.port") == 6881

    def test_get_default(self):
        config = Config()
        assert config.get("network.port", 1234) == 1234
        assert config.get("missing.key") is None

    def test_set_nested(self):
        config = Config()
        config.set("server.tick_rate", 30.0)
        assert config.server["tick_rate"] == 30.0
        assert config.server_config().tick_rate == 30.0


class TestConfigSave:
    """Tests for saving configuration."""

    def test_save_and_reload(self, tmp_path):
        config = Config(network={"port": 7100}, server={"tick_rate": 72.0})
        path = tmp_path / "out" / "server_config.yaml"

        config.save(str(path))
        reloaded = Config.from_file(str(path))

        assert reloaded.network == {"port": 7100}
        assert reloaded.server == {"tick_rate": 72.0}
