"""ChatWire server address / username bar."""
from __future__ import annotations
import logging

from PySide6.QtCore import Signal
from PySide6.QtWidgets import (
    QWidget, QHBoxLayout, QPushButton, QLabel, QLineEdit,
)

from shared.settings import ClientSettings
from client.session import STATE_DISCONNECTED, STATE_CONNECTED

logger = logging.getLogger("chatwire.client.ui.connect")


class ConnectBar(QWidget):
    connect_requested = Signal(str, str, str)  # host, port text, username
    disconnect_requested = Signal()

    def __init__(self, settings: ClientSettings, parent=None):
        super().__init__(parent)
        self._setup_ui(settings)
        self.set_state(STATE_DISCONNECTED)

    def _setup_ui(self, settings: ClientSettings) -> None:
        layout = QHBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)

        self.fld_host = QLineEdit(settings.host)
        self.fld_host.setPlaceholderText("127.0.0.1")
        self.fld_port = QLineEdit(str(settings.port))
        self.fld_port.setMaximumWidth(70)
        self.fld_username = QLineEdit(settings.username)
        self.fld_username.setPlaceholderText("username")

        layout.addWidget(QLabel("Server:"))
        layout.addWidget(self.fld_host)
        layout.addWidget(QLabel("Port:"))
        layout.addWidget(self.fld_port)
        layout.addWidget(QLabel("Name:"))
        layout.addWidget(self.fld_username)

        self.btn_connect = QPushButton("Connect")
        self.btn_connect.clicked.connect(self._connect_clicked)
        layout.addWidget(self.btn_connect)

        self.btn_disconnect = QPushButton("Disconnect")
        self.btn_disconnect.clicked.connect(self.disconnect_requested.emit)
        layout.addWidget(self.btn_disconnect)

    def _connect_clicked(self) -> None:
        # Lock the button until the session reports a state
        self.btn_connect.setEnabled(False)
        self.connect_requested.emit(
            self.fld_host.text().strip(),
            self.fld_port.text().strip(),
            self.fld_username.text().strip(),
        )

    def set_state(self, state: str) -> None:
        idle = state == STATE_DISCONNECTED
        self.btn_connect.setEnabled(idle)
        self.btn_disconnect.setEnabled(state == STATE_CONNECTED)
        for fld in (self.fld_host, self.fld_port, self.fld_username):
            fld.setEnabled(idle)
