"""Primary entry point for the Tick Fixer plugin."""
from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, Optional, Tuple

if __package__:
    from .version import __version__ as TICKFIXER_VERSION
    from .tickfixer_plugin.keepalive import KeepaliveScheduler
    from .tickfixer_plugin.preferences import Preferences
    from .tickfixer_plugin.runtime_services import start_runtime_services, stop_runtime_services
    from .tickfixer_plugin.target_resolver import resolve_target
    from .tickfixer_plugin.tick_quality import TickQualityTracker
else:  # pragma: no cover - host loads as top-level module
    from version import __version__ as TICKFIXER_VERSION
    from tickfixer_plugin.keepalive import KeepaliveScheduler
    from tickfixer_plugin.preferences import Preferences
    from tickfixer_plugin.runtime_services import start_runtime_services, stop_runtime_services
    from tickfixer_plugin.target_resolver import resolve_target
    from tickfixer_plugin.tick_quality import TickQualityTracker

PLUGIN_NAME = "TickFixer"
PLUGIN_VERSION = TICKFIXER_VERSION
LOGGER_NAME = "TickFixer"
LOG_TAG = "TickFixer"
LOG_LEVEL_ENV_VAR = "TICKFIXER_LOG_LEVEL"

LOGGED_IN = "LOGGED_IN"
# Transitional states that should not pause the keepalive mid-session.
_IN_SESSION_STATES = {LOGGED_IN, "LOADING", "HOPPING"}


DEFAULT_LOG_LEVEL = logging.INFO
_LEVEL_NAME_MAP = {
    "CRITICAL": logging.CRITICAL,
    "FATAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "TRACE": logging.DEBUG,
}


def _coerce_level(raw: Any) -> Optional[int]:
    if raw is None:
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        token = raw.strip().upper()
        if token.isdigit():
            return int(token)
        return _LEVEL_NAME_MAP.get(token)
    return None


def _resolve_log_level() -> int:
    candidates = [
        _coerce_level(os.getenv(LOG_LEVEL_ENV_VAR)),
        logging.getLogger().getEffectiveLevel(),
        DEFAULT_LOG_LEVEL,
    ]
    for level in candidates:
        if isinstance(level, int) and level != logging.NOTSET:
            return level
    return DEFAULT_LOG_LEVEL


class _HostLogHandler(logging.Handler):
    """Forwards plugin records to the host application's root logging."""

    def emit(self, record: logging.LogRecord) -> None:
        message = self.format(record)
        root_logger = logging.getLogger()
        if root_logger.isEnabledFor(record.levelno):
            root_logger.log(record.levelno, message)


def _configure_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(_resolve_log_level())
    if not any(getattr(handler, "_host_handler", False) for handler in logger.handlers):
        handler = _HostLogHandler()
        handler._host_handler = True  # type: ignore[attr-defined]
        formatter = logging.Formatter(f"[%(asctime)s] [{LOG_TAG}] %(message)s", "%H:%M:%S")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.propagate = False
    return logger


LOGGER = _configure_logger()


def _log(message: str) -> None:
    LOGGER.info(message)


def _resolve_target(host: str, *, allow_public_fallback: bool = True) -> Optional[str]:
    return resolve_target(host, allow_public_fallback=allow_public_fallback)


class _PluginRuntime:
    """Encapsulates plugin state so host globals stay tidy."""

    def __init__(self, plugin_dir: str, preferences: Preferences, game_state: Optional[str] = None) -> None:
        self.plugin_dir = Path(plugin_dir)
        self._preferences = preferences
        self._lock = threading.Lock()
        self._running = False
        # Seeded from the host when it knows the current state; otherwise the pause
        # policy treats the session as logged out until the first state change.
        self._game_state: Optional[str] = (game_state or "").strip().upper() or None
        self._applied = preferences.snapshot()
        self.keepalive = KeepaliveScheduler(logger=LOGGER.getChild("keepalive"))
        self.tracker = self._build_tracker()

    # Lifecycle -------------------------------------------------------------

    def start(self) -> str:
        with self._lock:
            if self._running:
                return PLUGIN_NAME
            self._running = True
        _log(f"Tick Fixer v{PLUGIN_VERSION} started")
        if self._preferences.keepalive_enabled:
            start_runtime_services(self, LOGGER, _log, resolve=_resolve_target)
        else:
            LOGGER.debug("Keepalive disabled in preferences; not starting")
        return PLUGIN_NAME

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
        stop_runtime_services(self, LOGGER)
        _log("Tick Fixer stopped")

    # Host notifications ----------------------------------------------------

    def handle_tick(self) -> None:
        self.tracker.record_tick()

    def handle_game_state(self, state: str) -> None:
        token = (state or "").strip().upper()
        previous = self._game_state
        self._game_state = token
        if token == LOGGED_IN and previous != LOGGED_IN:
            LOGGER.debug("Session boundary (%s -> %s); resetting tick tracker", previous, token)
            self.tracker.reset()
        self._apply_pause_policy()

    def is_logged_in(self) -> bool:
        return self._game_state in _IN_SESSION_STATES

    def on_preferences_updated(self) -> None:
        prefs = self._preferences
        current = prefs.snapshot()
        previous = self._applied
        self._applied = current

        if current["tick_sample_size"] != previous["tick_sample_size"]:
            LOGGER.debug("Tick sample size changed to %d; rebuilding tracker", prefs.tick_sample_size)
            self.tracker = self._build_tracker()
        elif current["tick_quality_threshold_ms"] != previous["tick_quality_threshold_ms"]:
            self.tracker.set_threshold_ms(prefs.tick_quality_threshold_ms)

        if not prefs.keepalive_enabled:
            if self.keepalive.is_running():
                stop_runtime_services(self, LOGGER)
            return

        if not self.keepalive.is_running():
            if self._running:
                start_runtime_services(self, LOGGER, _log, resolve=_resolve_target)
            return

        if current["keepalive_interval_ms"] != previous["keepalive_interval_ms"]:
            self.keepalive.set_interval(prefs.keepalive_interval_ms)

        target_keys = ("target_host", "target_port", "allow_public_fallback")
        if any(current[key] != previous[key] for key in target_keys):
            self._retarget()

        if current["only_when_logged_in"] != previous["only_when_logged_in"]:
            self._apply_pause_policy()

    # Runtime services protocol --------------------------------------------

    def _target_settings(self) -> Tuple[str, int, int, bool]:
        prefs = self._preferences
        return (
            prefs.target_host,
            prefs.target_port,
            prefs.keepalive_interval_ms,
            prefs.allow_public_fallback,
        )

    def _apply_pause_policy(self) -> None:
        if self._preferences.only_when_logged_in and not self.is_logged_in():
            if not self.keepalive.is_paused():
                LOGGER.debug("Not logged in; pausing keepalive")
            self.keepalive.pause()
        else:
            self.keepalive.unpause()

    # Internal helpers -----------------------------------------------------

    def _build_tracker(self) -> TickQualityTracker:
        prefs = self._preferences
        return TickQualityTracker(
            prefs.tick_sample_size,
            prefs.tick_quality_threshold_ms,
            logger=LOGGER.getChild("tracker"),
        )

    def _retarget(self) -> None:
        host, port, _interval, allow_public = self._target_settings()
        address = _resolve_target(host, allow_public_fallback=allow_public)
        if address is None:
            LOGGER.warning("Could not resolve new keepalive target '%s'; keeping previous target", host)
            return
        self.keepalive.set_target(address, port)
        _log(f"Keepalive target updated to {address}:{port}")


# Host hook functions ------------------------------------------------------

_plugin: Optional[_PluginRuntime] = None
_preferences: Optional[Preferences] = None
_overlay_window: Optional[Any] = None


def plugin_start3(plugin_dir: str, game_state: Optional[str] = None) -> str:
    global _plugin, _preferences
    if _plugin is not None:
        return PLUGIN_NAME
    _log(f"Initialising Tick Fixer plugin from {plugin_dir}")
    _preferences = Preferences(Path(plugin_dir))
    _plugin = _PluginRuntime(plugin_dir, _preferences, game_state)
    return _plugin.start()


def plugin_stop() -> None:
    global _plugin, _preferences, _overlay_window
    if _overlay_window is not None:
        try:
            _overlay_window.stop()
        except Exception as exc:
            LOGGER.debug("Failed to stop status overlay: %s", exc)
        _overlay_window = None
    if _plugin:
        try:
            _plugin.stop()
        finally:
            _plugin = None
    _preferences = None


def game_tick() -> None:
    if _plugin:
        _plugin.handle_tick()


def game_state_changed(state: str) -> None:
    if _plugin:
        _plugin.handle_game_state(state)


def plugin_prefs_save() -> None:
    LOGGER.debug("plugin_prefs_save invoked")
    if _preferences is None or _plugin is None:
        LOGGER.debug("Preferences not initialised; nothing to apply")
        return
    try:
        _preferences.reload()
        LOGGER.debug("Preferences reloaded: %s", _preferences.snapshot())
        _plugin.on_preferences_updated()
    except Exception as exc:
        LOGGER.exception("Failed to apply preferences: %s", exc)


def plugin_app(parent=None) -> Optional[Any]:  # pragma: no cover - needs a running QApplication
    global _overlay_window
    if _plugin is None or _preferences is None or not _preferences.show_overlay:
        return None
    try:
        from tickfixer_overlay.status_presenter import StatusPanel
        from tickfixer_overlay.status_window import StatusOverlayWindow
    except ImportError as exc:
        LOGGER.warning("Status overlay unavailable: %s", exc)
        return None
    runtime = _plugin
    prefs = _preferences
    panel = StatusPanel(
        tracker_fn=lambda: runtime.tracker,
        keepalive_fn=lambda: runtime.keepalive,
        threshold_fn=lambda: prefs.tick_quality_threshold_ms,
    )
    _overlay_window = StatusOverlayWindow(panel, parent)
    return _overlay_window


# Metadata expected by some plugin loaders
name = PLUGIN_NAME
version = PLUGIN_VERSION
plugin_name = PLUGIN_NAME
