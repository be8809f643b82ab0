"""Tests for connection configuration and ConfigManager."""

import pytest

from mpdctrl.core.config import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_SOCKET_PATH,
    ConfigManager,
    ConnectionConfig,
    create_config,
)


@pytest.fixture
def config() -> ConfigManager:
    """Return a fresh ConfigManager for each test."""
    # Use unique organization/app to avoid test interference
    config = ConfigManager("MpdCtrlTest", "TestConfig")
    config.clear()
    return config


class TestCreateConfig:
    """Tests for create_config defaults and overrides."""

    def test_defaults(self) -> None:
        """Test no options gives the defaults."""
        result = create_config()
        assert result == ConnectionConfig()
        assert result.transport_kind == "network"
        assert result.socket_path == DEFAULT_SOCKET_PATH == "/var/run/mpd/socket"
        assert result.host == DEFAULT_HOST == "localhost"
        assert result.port == DEFAULT_PORT == 6600
        assert result.keep_alive is False

    def test_overrides(self) -> None:
        """Test provided values replace the defaults."""
        result = create_config({"host": "192.168.1.100", "port": 6601, "keepAlive": True})
        assert result.host == "192.168.1.100"
        assert result.port == 6601
        assert result.keep_alive is True
        assert result.address == "192.168.1.100:6601"

    def test_ipc(self) -> None:
        """Test the ipc transport uses the socket path as address."""
        result = create_config({"type": "ipc", "ipc": "/run/mpd/socket"})
        assert result.is_ipc
        assert result.address == "/run/mpd/socket"

    def test_falsy_values_fall_back(self) -> None:
        """Test empty values do not override the defaults."""
        result = create_config({"host": "", "port": 0, "ipc": None})
        assert result.host == DEFAULT_HOST
        assert result.port == DEFAULT_PORT
        assert result.socket_path == DEFAULT_SOCKET_PATH

    def test_unknown_type_is_network(self) -> None:
        """Test an unrecognised transport type falls back to network."""
        assert create_config({"type": "carrier-pigeon"}).transport_kind == "network"

    def test_snake_case_keep_alive(self) -> None:
        """Test keep_alive is accepted as well as keepAlive."""
        assert create_config({"keep_alive": True}).keep_alive is True


class TestConfigManager:
    """Tests for ConfigManager persistence."""

    def test_initial_defaults(self, config: ConfigManager) -> None:
        """Test an empty store returns defaults."""
        assert config.get_transport_kind() == "network"
        assert config.get_socket_path() == DEFAULT_SOCKET_PATH
        assert config.get_mpd_host() == DEFAULT_HOST
        assert config.get_mpd_port() == DEFAULT_PORT
        assert config.get_keep_alive() is False

    def test_set_and_get(self, config: ConfigManager) -> None:
        """Test values round-trip through QSettings."""
        config.set_transport_kind("ipc")
        config.set_socket_path("/tmp/mpd.sock")
        config.set_mpd_host("music.local")
        config.set_mpd_port(6700)
        config.set_keep_alive(True)

        assert config.get_transport_kind() == "ipc"
        assert config.get_socket_path() == "/tmp/mpd.sock"
        assert config.get_mpd_host() == "music.local"
        assert config.get_mpd_port() == 6700
        assert config.get_keep_alive() is True

    def test_unknown_transport_ignored(self, config: ConfigManager) -> None:
        """Test invalid transport kinds are not stored."""
        config.set_transport_kind("bogus")
        assert config.get_transport_kind() == "network"

    def test_port_clamped(self, config: ConfigManager) -> None:
        """Test ports outside the valid range are clamped."""
        config.set_mpd_port(70000)
        assert config.get_mpd_port() == 65535
        config.set_mpd_port(0)
        assert config.get_mpd_port() == 1

    def test_connection_config_round_trip(self, config: ConfigManager) -> None:
        """Test a saved ConnectionConfig is loaded back unchanged."""
        original = create_config({"host": "10.0.0.5", "port": 6601, "keepAlive": True})
        config.save_connection_config(original)
        assert config.get_connection_config() == original

    def test_clear(self, config: ConfigManager) -> None:
        """Test clear resets to defaults."""
        config.set_mpd_host("music.local")
        config.clear()
        assert config.get_mpd_host() == DEFAULT_HOST
