"""Tests for configuration validation."""

from config import Config
from devices.companion import CompanionIdentity, Credentials


def make_config(**kwargs) -> Config:
    return Config(_env_file=None, **kwargs)


def test_config_missing_tv_ip():
    """Test config validation warns when no TV IP configured."""
    warnings = make_config(tv_ip="").validate_config()
    assert any("TV_IP" in w for w in warnings)


def test_config_with_tv_ip():
    warnings = make_config(tv_ip="192.168.1.50").validate_config()
    assert warnings == []


def test_config_defaults():
    config = make_config()
    assert config.tv_port == 55000
    assert config.polling_interval == 15
    assert config.use_apple_tv is False
    assert config.pairing_timeout == 30.0


def test_config_strips_ip():
    assert make_config(tv_ip=" 192.168.1.50 ").tv_ip == "192.168.1.50"


def test_config_apple_tv_without_identity():
    warnings = make_config(tv_ip="192.168.1.50", use_apple_tv=True).validate_config()
    assert any("APPLE_TV_IDENTIFIER" in w for w in warnings)
    assert any("not paired" in w for w in warnings)


def test_config_apple_tv_complete():
    config = make_config(
        tv_ip="192.168.1.50",
        use_apple_tv=True,
        apple_tv_identifier="AA:BB:CC:DD:EE:FF",
        apple_tv_companion_credentials="blob",
    )
    assert config.validate_config() == []
    assert config.apple_tv_identity == CompanionIdentity(identifier="AA:BB:CC:DD:EE:FF")
    assert config.apple_tv_credentials == Credentials(companion="blob")


def test_config_from_environment(monkeypatch):
    monkeypatch.setenv("TV_IP", "10.0.0.7")
    monkeypatch.setenv("USE_APPLE_TV", "true")
    monkeypatch.setenv("APPLE_TV_ADDRESS", "10.0.0.8")

    config = make_config()

    assert config.tv_ip == "10.0.0.7"
    assert config.use_apple_tv is True
    assert config.apple_tv_identity.address == "10.0.0.8"


def test_mrp_credentials_alone_cannot_wake():
    assert Credentials(mrp="blob").can_wake is False
    assert Credentials(airplay="blob").can_wake is True
