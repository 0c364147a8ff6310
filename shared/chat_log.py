"""ChatWire append-only chat log."""
from __future__ import annotations
import logging
from pathlib import Path

logger = logging.getLogger("chatwire.chat_log")


class ChatLog:
    """One displayed chat line per text line; read back only for display replay."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def append(self, line: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line.replace("\n", " ") + "\n")
        except OSError as e:
            logger.warning("Failed to append to chat log %s: %s", self.path, e)

    def read_lines(self) -> list[str]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8", errors="replace") as f:
                return [line.rstrip("\n") for line in f if line.strip()]
        except OSError as e:
            logger.warning("Failed to read chat log %s: %s", self.path, e)
            return []
