from __future__ import annotations

import pytest

from tickfixer_overlay.status_presenter import StatusLine

pytestmark = pytest.mark.pyqt_required


class _StubPanel:
    def __init__(self, lines) -> None:
        self.current = list(lines)
        self.calls = 0

    def lines(self):
        self.calls += 1
        return list(self.current)


class _BrokenPanel:
    def lines(self):
        raise RuntimeError("tracker gone")


def test_window_pulls_lines_on_construction(qt_app):
    from tickfixer_overlay.status_window import StatusOverlayWindow

    panel = _StubPanel([StatusLine("Tick Fixer", title=True), StatusLine("Keepalive", "ACTIVE", "#00ff00")])
    window = StatusOverlayWindow(panel)
    try:
        assert panel.calls >= 1
        assert [line.left for line in window.lines] == ["Tick Fixer", "Keepalive"]
        assert window.width() >= 160
        assert window.height() > 0
    finally:
        window.stop()
        window.deleteLater()


def test_refresh_picks_up_new_lines_and_paints(qt_app):
    from tickfixer_overlay.status_window import StatusOverlayWindow

    panel = _StubPanel([StatusLine("Tick Fixer", title=True)])
    window = StatusOverlayWindow(panel)
    try:
        panel.current.append(StatusLine("Status", "Waiting...", "#ffff00"))
        window.refresh()
        assert window.lines[-1].right == "Waiting..."
        # Rendering into a pixmap exercises paintEvent without a display.
        pixmap = window.grab()
        assert not pixmap.isNull()
    finally:
        window.stop()
        window.deleteLater()


def test_refresh_failure_keeps_previous_lines(qt_app):
    from tickfixer_overlay.status_window import StatusOverlayWindow

    window = StatusOverlayWindow(_BrokenPanel())
    try:
        assert window.lines == []
        window.refresh()
        assert window.lines == []
    finally:
        window.stop()
        window.deleteLater()
