"""ChatWire client settings file (TOML) parsing and saving."""
from __future__ import annotations
import json
import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger("chatwire.settings")

SETTINGS_FILE = Path.home() / ".chatwire" / "client.toml"

THEME_LIGHT = "Light"
THEME_DARK = "Dark"
VALID_THEMES = {THEME_LIGHT, THEME_DARK}

DEFAULT_PORT = 5000


@dataclass
class ClientSettings:
    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    username: str = ""
    theme: str = THEME_LIGHT
    chat_log: str = "chat_log.txt"
    connect_timeout_s: float = 10.0

    def validate(self) -> list[str]:
        errors = []
        if self.theme not in VALID_THEMES:
            errors.append(f"Invalid theme: {self.theme}")
        if not (1 <= self.port <= 65535):
            errors.append(f"Invalid port: {self.port}")
        if self.connect_timeout_s <= 0:
            errors.append(f"connect_timeout_s must be positive: {self.connect_timeout_s}")
        return errors


def _toml_str(value: str) -> str:
    # JSON string escapes are valid TOML basic-string escapes
    return json.dumps(value, ensure_ascii=False)


def load_settings(path: Path = SETTINGS_FILE) -> ClientSettings:
    """Load client settings; missing or unreadable files give defaults."""
    defaults = ClientSettings()
    if not path.exists():
        return defaults
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Failed to load settings %s: %s", path, e)
        return defaults

    raw = data.get("client", {})
    settings = ClientSettings(
        host=str(raw.get("host", defaults.host)),
        port=raw.get("port", defaults.port),
        username=str(raw.get("username", defaults.username)),
        theme=raw.get("theme", defaults.theme),
        chat_log=str(raw.get("chat_log", defaults.chat_log)),
        connect_timeout_s=raw.get("connect_timeout_s", defaults.connect_timeout_s),
    )
    if not isinstance(settings.port, int) or isinstance(settings.port, bool):
        settings.port = defaults.port
    if not isinstance(settings.connect_timeout_s, (int, float)) or isinstance(settings.connect_timeout_s, bool):
        settings.connect_timeout_s = defaults.connect_timeout_s
    for err in settings.validate():
        logger.warning("Settings %s: %s; using default", path, err)
    if settings.theme not in VALID_THEMES:
        settings.theme = defaults.theme
    if not (1 <= settings.port <= 65535):
        settings.port = defaults.port
    if settings.connect_timeout_s <= 0:
        settings.connect_timeout_s = defaults.connect_timeout_s
    return settings


def save_settings(settings: ClientSettings, path: Path = SETTINGS_FILE) -> None:
    """Save client settings as a TOML file."""
    lines = []
    lines.append("[client]")
    lines.append(f"host = {_toml_str(settings.host)}")
    lines.append(f"port = {settings.port}")
    lines.append(f"username = {_toml_str(settings.username)}")
    lines.append(f"theme = {_toml_str(settings.theme)}")
    lines.append(f"chat_log = {_toml_str(settings.chat_log)}")
    lines.append(f"connect_timeout_s = {float(settings.connect_timeout_s)}")
    lines.append("")

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines), encoding="utf-8")
