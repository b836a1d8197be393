from datetime import timedelta

import pytest

from rengarde.server_config import (
    ConfigError,
    ServerSettings,
    Settings,
    WireGuardConfig,
    load_config,
    parse_settings,
    validate_settings,
)

FULL = """
server:
  description: test server
  listenAddr: 0.0.0.0:59501
  dstAddr: 127.0.0.1:51820
  clientTimeout: 45
  writeTimeout: 10
  webManager:
    listenAddr: 0.0.0.0:9001
    username: admin
    password: password
"""


def test_parse_full_document():
    settings = parse_settings(FULL)
    server = settings.server
    assert server.description == "test server"
    assert server.listen_addr == "0.0.0.0:59501"
    assert server.dst_addr == "127.0.0.1:51820"
    assert server.client_timeout == 45
    assert server.write_timeout == 10
    assert server.web_manager.listen_addr == "0.0.0.0:9001"
    assert server.web_manager.username == "admin"
    assert server.wireguard is None


def test_optional_fields_default_to_none():
    server = parse_settings("server:\n  listenAddr: a\n  dstAddr: b\n").server
    assert (server.description, server.client_timeout, server.write_timeout, server.web_manager) == (
        None,
        None,
        None,
        None,
    )


def test_missing_required_field():
    with pytest.raises(ConfigError, match="dstAddr"):
        parse_settings("server:\n  listenAddr: a\n")


def test_missing_server_section():
    with pytest.raises(ConfigError):
        parse_settings("client:\n  listenAddr: a\n")


@pytest.mark.parametrize("value", ["-1", "yes", "abc"])
def test_bad_timeout_rejected(value):
    with pytest.raises(ConfigError):
        parse_settings(f"server:\n  listenAddr: a\n  dstAddr: b\n  clientTimeout: {value}\n")


def test_invalid_yaml():
    with pytest.raises(ConfigError):
        parse_settings("server: [unclosed")


def test_wireguard_section_parses_durations():
    text = (
        "server:\n  listenAddr: a\n  dstAddr: b\n  wireguard:\n"
        "    client_timeout: {secs: 30, nanos: 0}\n"
        "    write_timeout: {secs: 0, nanos: 10000000}\n"
    )
    wireguard = parse_settings(text).server.wireguard
    assert wireguard == WireGuardConfig.from_values(30, 10)


def test_wireguard_from_values():
    config = WireGuardConfig.from_values(30, 10)
    assert config.client_timeout == timedelta(seconds=30)
    assert config.write_timeout == timedelta(milliseconds=10)


def test_wireguard_rejects_negative():
    with pytest.raises(ValueError):
        WireGuardConfig.from_values(-1, 0)


@pytest.mark.parametrize("timeout", [None, 0])
def test_validate_defaults_client_timeout(timeout):
    settings = Settings(ServerSettings(listen_addr="a", dst_addr="b", client_timeout=timeout))
    assert validate_settings(settings).server.client_timeout == 30


def test_validate_keeps_client_timeout():
    settings = Settings(ServerSettings(listen_addr="a", dst_addr="b", client_timeout=45))
    assert validate_settings(settings).server.client_timeout == 45


@pytest.mark.parametrize("timeout", [None, 0, 10, 250])
def test_validate_disables_write_timeout(timeout):
    settings = Settings(ServerSettings(listen_addr="a", dst_addr="b", write_timeout=timeout))
    assert validate_settings(settings).server.write_timeout == 0


def test_load_config_reads_file(tmp_path):
    path = tmp_path / "engarde.yml"
    path.write_text(FULL, encoding="utf-8")
    assert load_config(path) == parse_settings(FULL)


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yml")