"""ChatWire light/dark window themes."""
from __future__ import annotations
from PySide6.QtWidgets import QApplication

from shared.settings import THEME_DARK, THEME_LIGHT

LIGHT_STYLESHEET = """
QWidget { background: #fafafa; color: #212121; }
QLineEdit, QListWidget { background: white; border: 1px solid #ccc; }
QPushButton { background: #2196F3; color: white; padding: 6px 12px; border: none; }
QPushButton:disabled { background: #bbb; color: #eee; }
"""

DARK_STYLESHEET = """
QWidget { background: #1e1e1e; color: #e0e0e0; }
QLineEdit, QListWidget { background: #2b2b2b; border: 1px solid #444; }
QPushButton { background: #1565C0; color: white; padding: 6px 12px; border: none; }
QPushButton:disabled { background: #444; color: #777; }
"""


def apply_theme(app: QApplication, theme: str) -> str:
    """Apply ``theme`` to the whole app; unknown names fall back to Light."""
    if theme != THEME_DARK:
        theme = THEME_LIGHT
    app.setStyleSheet(DARK_STYLESHEET if theme == THEME_DARK else LIGHT_STYLESHEET)
    return theme


def toggle(theme: str) -> str:
    return THEME_LIGHT if theme == THEME_DARK else THEME_DARK
