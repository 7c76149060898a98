"""PyQt6 always-on-top window that paints the Tick Fixer status panel."""
from __future__ import annotations

import logging
import sys
from typing import List, Optional

from PyQt6.QtCore import Qt, QTimer
from PyQt6.QtGui import QColor, QFont, QPainter
from PyQt6.QtWidgets import QWidget

from tickfixer_overlay.status_presenter import COLOR_WHITE, StatusLine, StatusPanel

REFRESH_INTERVAL_MS = 250
_PADDING = 8
_LINE_SPACING = 4
_MIN_WIDTH = 160

_LOGGER = logging.getLogger("TickFixer.overlay")


class StatusOverlayWindow(QWidget):
    """Translucent, click-through panel refreshed on its own render cadence."""

    def __init__(self, panel: StatusPanel, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self._panel = panel
        self._lines: List[StatusLine] = []

        self.setAttribute(Qt.WidgetAttribute.WA_TranslucentBackground)
        window_flags = (
            Qt.WindowType.FramelessWindowHint
            | Qt.WindowType.WindowStaysOnTopHint
            | Qt.WindowType.Window
        )
        if sys.platform.startswith("linux"):
            window_flags |= Qt.WindowType.X11BypassWindowManagerHint
        self.setWindowFlags(window_flags)
        self.setAttribute(Qt.WidgetAttribute.WA_TransparentForMouseEvents, True)
        self.setAttribute(Qt.WidgetAttribute.WA_NoSystemBackground, True)
        self.setAttribute(Qt.WidgetAttribute.WA_ShowWithoutActivating, True)

        self._body_font = QFont()
        self._body_font.setPointSize(10)
        self._title_font = QFont(self._body_font)
        self._title_font.setBold(True)

        self._refresh_timer = QTimer(self)
        self._refresh_timer.setInterval(REFRESH_INTERVAL_MS)
        self._refresh_timer.timeout.connect(self.refresh)
        self._refresh_timer.start()
        self.refresh()

    @property
    def lines(self) -> List[StatusLine]:
        return list(self._lines)

    def refresh(self) -> None:
        try:
            lines = self._panel.lines()
        except Exception as exc:
            _LOGGER.debug("Status panel refresh failed: %s", exc)
            return
        if lines != self._lines:
            self._lines = lines
            self._resize_to_content()
        self.update()

    def stop(self) -> None:
        self._refresh_timer.stop()

    def _resize_to_content(self) -> None:
        metrics = self.fontMetrics()
        width = _MIN_WIDTH
        for line in self._lines:
            text = f"{line.left}    {line.right}".rstrip()
            width = max(width, metrics.horizontalAdvance(text) + 2 * _PADDING)
        height = 2 * _PADDING + len(self._lines) * (metrics.height() + _LINE_SPACING)
        self.resize(width, height)

    def paintEvent(self, event) -> None:  # type: ignore[override]
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        painter.setBrush(QColor(0, 0, 0, 160))
        painter.setPen(Qt.PenStyle.NoPen)
        painter.drawRoundedRect(self.rect(), 6, 6)

        y = _PADDING
        right_edge = self.width() - _PADDING
        for line in self._lines:
            painter.setFont(self._title_font if line.title else self._body_font)
            metrics = painter.fontMetrics()
            baseline = y + metrics.ascent()
            if line.title:
                painter.setPen(QColor(line.color))
                painter.drawText((self.width() - metrics.horizontalAdvance(line.left)) // 2, baseline, line.left)
            else:
                painter.setPen(QColor(COLOR_WHITE))
                painter.drawText(_PADDING, baseline, line.left)
                painter.setPen(QColor(line.color))
                painter.drawText(right_edge - metrics.horizontalAdvance(line.right), baseline, line.right)
            y += metrics.height() + _LINE_SPACING
        painter.end()
        super().paintEvent(event)
