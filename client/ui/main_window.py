"""ChatWire client main window."""
from __future__ import annotations
import asyncio
import concurrent.futures
import logging
from pathlib import Path

from PySide6.QtCore import Signal, QObject
from PySide6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout,
    QPushButton, QLabel, QListWidget, QLineEdit, QMessageBox, QStatusBar,
)

from client.session import ChatSession, STATE_CONNECTED, STATE_DISCONNECTED
from client.ui import theme
from client.ui.connect_screen import ConnectBar
from shared.chat_log import ChatLog
from shared.errors import ChatError
from shared.settings import ClientSettings, save_settings, SETTINGS_FILE

logger = logging.getLogger("chatwire.client.ui")


class _SessionSignaler(QObject):
    """Re-emits session callbacks (event loop thread) as Qt signals (GUI thread)."""
    chat_line = Signal(str)
    typing = Signal(str)
    typing_cleared = Signal()
    user_list = Signal(object)
    state_changed = Signal(str)
    error = Signal(str)
    send_finished = Signal(bool)
    connect_succeeded = Signal(str, str, str)


class ChatMainWindow(QMainWindow):
    def __init__(self, loop: asyncio.AbstractEventLoop, settings: ClientSettings,
                 settings_path: Path = SETTINGS_FILE):
        super().__init__()
        self.loop = loop
        self.settings = settings
        self.settings_path = settings_path
        self.chat_log = ChatLog(Path(settings.chat_log))
        self._signaler = _SessionSignaler()

        self.session = ChatSession(
            chat_log=self.chat_log,
            on_chat_line=self._signaler.chat_line.emit,
            on_typing=self._signaler.typing.emit,
            on_typing_cleared=self._signaler.typing_cleared.emit,
            on_user_list=self._signaler.user_list.emit,
            on_state_change=self._signaler.state_changed.emit,
            on_error=self._signaler.error.emit,
            connect_timeout=settings.connect_timeout_s,
        )

        self.setWindowTitle("ChatWire")
        self.resize(900, 600)
        self._setup_ui()

        self._signaler.chat_line.connect(self._append_line)
        self._signaler.typing.connect(self.lbl_typing.setText)
        self._signaler.typing_cleared.connect(self.lbl_typing.clear)
        self._signaler.user_list.connect(self._set_users)
        self._signaler.state_changed.connect(self._on_state_changed)
        self._signaler.error.connect(self._on_error)
        self._signaler.send_finished.connect(self._on_send_finished)
        self._signaler.connect_succeeded.connect(self._remember_connection)

        self._replay_log()
        self.settings.theme = theme.apply_theme(QApplication.instance(), settings.theme)
        self._on_state_changed(STATE_DISCONNECTED)

    def _setup_ui(self) -> None:
        central = QWidget()
        layout = QVBoxLayout(central)

        top = QHBoxLayout()
        self.connect_bar = ConnectBar(self.settings)
        self.connect_bar.connect_requested.connect(self._on_connect_requested)
        self.connect_bar.disconnect_requested.connect(self._on_disconnect_requested)
        top.addWidget(self.connect_bar, 1)
        self.btn_theme = QPushButton("Toggle theme")
        self.btn_theme.clicked.connect(self._toggle_theme)
        top.addWidget(self.btn_theme)
        layout.addLayout(top)

        body = QHBoxLayout()
        self.lst_chat = QListWidget()
        body.addWidget(self.lst_chat, 3)
        self.lst_users = QListWidget()
        self.lst_users.setMaximumWidth(200)
        body.addWidget(self.lst_users, 1)
        layout.addLayout(body, 1)

        self.lbl_typing = QLabel("")
        self.lbl_typing.setStyleSheet("font-style: italic; color: #888;")
        layout.addWidget(self.lbl_typing)

        bottom = QHBoxLayout()
        self.fld_message = QLineEdit()
        self.fld_message.setPlaceholderText("Message, or /w user message")
        self.fld_message.returnPressed.connect(self._on_send_requested)
        self.fld_message.textEdited.connect(self._on_text_edited)
        bottom.addWidget(self.fld_message, 1)
        self.btn_send = QPushButton("Send")
        self.btn_send.clicked.connect(self._on_send_requested)
        bottom.addWidget(self.btn_send)
        layout.addLayout(bottom)

        self.setCentralWidget(central)
        self.status_bar = QStatusBar()
        self.setStatusBar(self.status_bar)

    def _submit(self, coro) -> concurrent.futures.Future:
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def _replay_log(self) -> None:
        for line in self.chat_log.read_lines():
            self.lst_chat.addItem(line)
        self.lst_chat.scrollToBottom()

    def _on_connect_requested(self, host: str, port_text: str, username: str) -> None:
        self.status_bar.showMessage(f"Connecting to {host}:{port_text}...")
        fut = self._submit(self.session.connect_to(host, port_text, username))

        def done(f) -> None:
            # Errors were already reported through on_error
            if not f.cancelled() and f.exception() is None:
                self._signaler.connect_succeeded.emit(host, port_text, username)

        fut.add_done_callback(done)

    def _remember_connection(self, host: str, port_text: str, username: str) -> None:
        self.settings.host = host
        self.settings.port = int(port_text)
        self.settings.username = username
        try:
            save_settings(self.settings, self.settings_path)
        except OSError as e:
            logger.warning("Failed to save settings: %s", e)

    def _on_disconnect_requested(self) -> None:
        self._submit(self.session.disconnect())

    def _on_send_requested(self) -> None:
        text = self.fld_message.text()
        if not text.strip():
            return
        fut = self._submit(self.session.send(text))

        def done(f) -> None:
            sent = not f.cancelled() and f.exception() is None and bool(f.result())
            self._signaler.send_finished.emit(sent)

        fut.add_done_callback(done)

    def _on_send_finished(self, sent: bool) -> None:
        # Failed sends keep their text so the user can retry
        if sent:
            self.fld_message.clear()

    def _on_text_edited(self, _text: str) -> None:
        if self.session.state == STATE_CONNECTED:
            self._submit(self.session.notify_typing())

    def _append_line(self, line: str) -> None:
        self.lst_chat.addItem(line)
        self.lst_chat.scrollToBottom()

    def _set_users(self, users) -> None:
        self.lst_users.clear()
        self.lst_users.addItems(list(users))

    def _on_state_changed(self, state: str) -> None:
        self.connect_bar.set_state(state)
        connected = state == STATE_CONNECTED
        self.btn_send.setEnabled(connected)
        self.fld_message.setEnabled(connected)
        if state == STATE_DISCONNECTED:
            self.lst_users.clear()
            self.lbl_typing.clear()
        self.status_bar.showMessage(f"State: {state}")

    def _on_error(self, message: str) -> None:
        self.connect_bar.set_state(self.session.state)
        self.status_bar.showMessage(message)
        QMessageBox.warning(self, "ChatWire", message)

    def _toggle_theme(self) -> None:
        self.settings.theme = theme.apply_theme(QApplication.instance(), theme.toggle(self.settings.theme))
        try:
            save_settings(self.settings, self.settings_path)
        except OSError as e:
            logger.warning("Failed to save theme: %s", e)

    def closeEvent(self, event) -> None:
        if self.session.state != STATE_DISCONNECTED:
            try:
                self._submit(self.session.disconnect()).result(timeout=2.0)
            except (ChatError, TimeoutError) as e:
                logger.warning("Disconnect on close failed: %s", e)
        super().closeEvent(event)
