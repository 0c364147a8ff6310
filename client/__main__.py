"""ChatWire Client entry point."""
from __future__ import annotations
import asyncio
import logging
import sys
import threading
from pathlib import Path

from PySide6.QtWidgets import QApplication

from client.ui.main_window import ChatMainWindow
from shared.logging_utils import setup_rotating_logger
from shared.settings import load_settings, SETTINGS_FILE


def _run_asyncio_loop(loop: asyncio.AbstractEventLoop) -> None:
    asyncio.set_event_loop(loop)
    loop.run_forever()


def main() -> None:
    log_dir = Path("logs")
    setup_rotating_logger("chatwire", log_dir)
    logger = logging.getLogger("chatwire.client")
    logger.info("ChatWire Client starting")

    settings = load_settings(SETTINGS_FILE)

    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=_run_asyncio_loop, args=(loop,), daemon=True)
    thread.start()

    app = QApplication(sys.argv)
    app.setApplicationName("ChatWire Client")
    app.setOrganizationName("ChatWire")

    window = ChatMainWindow(loop, settings, SETTINGS_FILE)
    window.show()

    exit_code = app.exec()

    loop.call_soon_threadsafe(loop.stop)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
