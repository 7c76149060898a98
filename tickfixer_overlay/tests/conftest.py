import os

import pytest


def pytest_runtest_setup(item):
    if item.get_closest_marker("pyqt_required") and not os.getenv("PYQT_TESTS"):
        pytest.skip("PYQT_TESTS not set; skipping PyQt-dependent status window test")


@pytest.fixture(scope="module")
def qt_app():
    # Force Qt to run headless for CI/CLI test runs.
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    from PyQt6.QtWidgets import QApplication

    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    return app
