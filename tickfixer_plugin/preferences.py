"""JSON-backed preferences for the Tick Fixer plugin."""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

PREFERENCES_FILE = "tickfixer_settings.json"

INTERVAL_MIN_MS = 10
INTERVAL_MAX_MS = 200
PORT_MIN = 1
PORT_MAX = 65535
SAMPLE_SIZE_MIN = 10
SAMPLE_SIZE_MAX = 500
THRESHOLD_MIN_MS = 5
THRESHOLD_MAX_MS = 100


def _coerce_int(raw: Any, default: int, low: int, high: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError, OverflowError):
        value = default
    return max(low, min(value, high))


def _coerce_bool(raw: Any, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, str):
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    return bool(raw)


@dataclass
class Preferences:
    """Simple JSON-backed preferences store."""

    plugin_dir: Path
    keepalive_enabled: bool = True
    keepalive_interval_ms: int = 50
    target_host: str = "gateway"
    target_port: int = 9
    only_when_logged_in: bool = True
    allow_public_fallback: bool = True
    tick_sample_size: int = 100
    tick_quality_threshold_ms: int = 30
    show_overlay: bool = True

    def __post_init__(self) -> None:
        self.plugin_dir = Path(self.plugin_dir)
        self._path = self.plugin_dir / PREFERENCES_FILE
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    # Persistence ---------------------------------------------------------

    def _load(self) -> None:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            # Unreadable or corrupt file: keep whatever is already loaded.
            return
        if not isinstance(data, dict):
            return
        self.keepalive_enabled = _coerce_bool(data.get("keepalive_enabled"), True)
        self.keepalive_interval_ms = _coerce_int(
            data.get("keepalive_interval_ms", 50), 50, INTERVAL_MIN_MS, INTERVAL_MAX_MS
        )
        host = data.get("target_host", "gateway")
        self.target_host = str(host).strip() if host is not None else "gateway"
        self.target_port = _coerce_int(data.get("target_port", 9), 9, PORT_MIN, PORT_MAX)
        self.only_when_logged_in = _coerce_bool(data.get("only_when_logged_in"), True)
        self.allow_public_fallback = _coerce_bool(data.get("allow_public_fallback"), True)
        self.tick_sample_size = _coerce_int(
            data.get("tick_sample_size", 100), 100, SAMPLE_SIZE_MIN, SAMPLE_SIZE_MAX
        )
        self.tick_quality_threshold_ms = _coerce_int(
            data.get("tick_quality_threshold_ms", 30), 30, THRESHOLD_MIN_MS, THRESHOLD_MAX_MS
        )
        self.show_overlay = _coerce_bool(data.get("show_overlay"), True)

    def reload(self) -> None:
        self._load()

    def save(self) -> None:
        payload: Dict[str, Any] = {
            "keepalive_enabled": bool(self.keepalive_enabled),
            "keepalive_interval_ms": _coerce_int(self.keepalive_interval_ms, 50, INTERVAL_MIN_MS, INTERVAL_MAX_MS),
            "target_host": str(self.target_host or ""),
            "target_port": _coerce_int(self.target_port, 9, PORT_MIN, PORT_MAX),
            "only_when_logged_in": bool(self.only_when_logged_in),
            "allow_public_fallback": bool(self.allow_public_fallback),
            "tick_sample_size": _coerce_int(self.tick_sample_size, 100, SAMPLE_SIZE_MIN, SAMPLE_SIZE_MAX),
            "tick_quality_threshold_ms": _coerce_int(
                self.tick_quality_threshold_ms, 30, THRESHOLD_MIN_MS, THRESHOLD_MAX_MS
            ),
            "show_overlay": bool(self.show_overlay),
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def snapshot(self) -> Dict[str, Any]:
        return {
            "keepalive_enabled": self.keepalive_enabled,
            "keepalive_interval_ms": self.keepalive_interval_ms,
            "target_host": self.target_host,
            "target_port": self.target_port,
            "only_when_logged_in": self.only_when_logged_in,
            "allow_public_fallback": self.allow_public_fallback,
            "tick_sample_size": self.tick_sample_size,
            "tick_quality_threshold_ms": self.tick_quality_threshold_ms,
            "show_overlay": self.show_overlay,
        }
