"""Tests for configuration loading."""

import pytest

from cardmirror.core.config import Settings, load_config_from_yaml, load_settings
from cardmirror.core.errors import ConfigError


def test_missing_file_gives_defaults(tmp_path):
    settings = load_settings(str(tmp_path / "config.yaml"))
    assert settings == Settings()
    assert settings.credentials_file == "device-auth.json"
    assert not settings.has_password_login


def test_values_are_read(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "client_id: abc\n"
        "username: me@test\n"
        "password: secret\n"
        "timeout: 5\n"
        "icon_url: https://icons.test/{icon_id}.png\n"
    )
    settings = load_settings(str(path))

    assert settings.client_id == "abc"
    assert settings.has_password_login
    assert settings.timeout == 5.0
    assert isinstance(settings.timeout, float)
    assert settings.icon_url_for("x1") == "https://icons.test/x1.png"


def test_unknown_keys_are_ignored(tmp_path, caplog):
    path = tmp_path / "config.yaml"
    path.write_text("client_id: abc\ncolour: blue\n")

    settings = load_settings(str(path))

    assert settings.client_id == "abc"
    assert "colour" in caplog.text


def test_environment_selects_file(tmp_path, monkeypatch):
    path = tmp_path / "other.yaml"
    path.write_text("base_url: https://api.test\n")
    monkeypatch.setenv("CARDMIRROR_CONFIG", str(path))

    assert load_settings().base_url == "https://api.test"


@pytest.mark.parametrize("content", ["client_id: [oops\n", "- just\n- a list\n"])
def test_invalid_file(tmp_path, content):
    path = tmp_path / "config.yaml"
    path.write_text(content)
    with pytest.raises(ConfigError):
        load_config_from_yaml(str(path))


def test_invalid_timeout(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("timeout: soon\n")
    with pytest.raises(ConfigError):
        load_settings(str(path))


def test_empty_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert load_config_from_yaml(str(path)) == {}
