import pytest

from rengarde.client_config import (
    ClientSettings,
    ConfigError,
    Settings,
    apply_defaults,
    load_settings,
    parse_settings,
)

FULL = """
client:
  description: test client
  listenAddr: 127.0.0.1:59401
  dstAddr: 203.0.113.5:59501
  writeTimeout: 10
  excludedInterfaces:
    - lo
    - docker0
  webManager:
    listenAddr: 127.0.0.1:9001
    username: admin
    password: password
"""


def test_parse_full_document():
    client = parse_settings(FULL).client
    assert client.description == "test client"
    assert client.listen_addr == "127.0.0.1:59401"
    assert client.dst_addr == "203.0.113.5:59501"
    assert client.write_timeout == 10
    assert client.excluded_interfaces == ["lo", "docker0"]
    assert client.web_manager.listen_addr == "127.0.0.1:9001"


def test_excluded_interfaces_required():
    with pytest.raises(ConfigError, match="excludedInterfaces"):
        parse_settings("client:\n  listenAddr: a\n  dstAddr: b\n")


def test_excluded_interfaces_must_be_strings():
    with pytest.raises(ConfigError):
        parse_settings("client:\n  listenAddr: a\n  dstAddr: b\n  excludedInterfaces: [1, 2]\n")


def test_empty_excluded_list_allowed():
    client = parse_settings("client:\n  listenAddr: a\n  dstAddr: b\n  excludedInterfaces: []\n").client
    assert client.excluded_interfaces == []
    assert client.write_timeout is None


def test_missing_client_section():
    with pytest.raises(ConfigError):
        parse_settings("server:\n  listenAddr: a\n")


def test_not_a_mapping():
    with pytest.raises(ConfigError):
        parse_settings("- a\n- b\n")


@pytest.mark.parametrize("timeout", [None, 0, 10, 99])
def test_apply_defaults_disables_write_timeout(timeout):
    settings = Settings(ClientSettings(listen_addr="a", dst_addr="b", write_timeout=timeout))
    result = apply_defaults(settings)
    assert result.client.write_timeout == 0
    assert result.client.listen_addr == "a"


def test_load_settings_reads_file(tmp_path):
    path = tmp_path / "engarde.yml"
    path.write_text(FULL, encoding="utf-8")
    assert load_settings(path) == parse_settings(FULL)


def test_load_settings_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_settings(tmp_path / "absent.yml")