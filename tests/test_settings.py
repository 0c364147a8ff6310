"""Tests for client settings and the chat log file."""
from pathlib import Path

from shared.chat_log import ChatLog
from shared.settings import (
    ClientSettings, load_settings, save_settings,
    THEME_DARK, THEME_LIGHT, DEFAULT_PORT,
)


def test_load_missing_file_gives_defaults(tmp_path):
    settings = load_settings(tmp_path / "nope.toml")
    assert settings == ClientSettings()
    assert settings.theme == THEME_LIGHT
    assert settings.port == DEFAULT_PORT


def test_save_and_load(tmp_path):
    path = tmp_path / "cfg" / "client.toml"
    original = ClientSettings(host="chat.example", port=6000, username='al "ice"',
                              theme=THEME_DARK, chat_log="logs/chat.txt", connect_timeout_s=3.5)
    save_settings(original, path)
    assert path.exists()
    assert load_settings(path) == original


def test_invalid_values_fall_back(tmp_path):
    path = tmp_path / "client.toml"
    path.write_text('[client]\ntheme = "Purple"\nport = 99999\nconnect_timeout_s = "soon"\nhost = "h"\n')
    settings = load_settings(path)
    assert settings.theme == THEME_LIGHT
    assert settings.port == DEFAULT_PORT
    assert settings.connect_timeout_s == 10.0
    assert settings.host == "h"


def test_unreadable_toml_gives_defaults(tmp_path):
    path = tmp_path / "client.toml"
    path.write_text("[client\nthis is not toml")
    assert load_settings(path) == ClientSettings()


def test_validate():
    assert ClientSettings().validate() == []
    errors = ClientSettings(theme="Neon", port=0).validate()
    assert len(errors) == 2


def test_chat_log_append_and_replay(tmp_path):
    log = ChatLog(tmp_path / "sub" / "chat_log.txt")
    assert log.read_lines() == []
    log.append("[12:00:00] alice: hi")
    log.append("[system] multi\nline")
    assert log.read_lines() == ["[12:00:00] alice: hi", "[system] multi line"]
    # reopening replays prior lines
    assert ChatLog(Path(log.path)).read_lines()[0] == "[12:00:00] alice: hi"
