from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

IDEAL_TICK_MS = 600
JITTER_WARN_MS = 30.0

COLOR_WHITE = "#ffffff"
COLOR_GREEN = "#00ff00"
COLOR_YELLOW = "#ffff00"
COLOR_ORANGE = "#ffc800"
COLOR_RED = "#ff0000"
COLOR_GRAY = "#808080"


class _TrackerLike(Protocol):
    def is_waiting(self) -> bool: ...
    def quality(self) -> float: ...
    def average_ms(self) -> float: ...
    def jitter_ms(self) -> float: ...
    def last_delta_ms(self) -> int: ...


class _KeepaliveLike(Protocol):
    def is_running(self) -> bool: ...
    def is_paused(self) -> bool: ...


@dataclass(frozen=True)
class StatusLine:
    left: str
    right: str = ""
    color: str = COLOR_WHITE
    title: bool = False


def quality_color(quality: float) -> str:
    if quality >= 95:
        return COLOR_GREEN
    if quality >= 80:
        return COLOR_YELLOW
    if quality >= 60:
        return COLOR_ORANGE
    return COLOR_RED


class StatusPanel:
    """Formats tracker and keepalive getters into overlay lines.

    The tracker is looked up through a callable on every refresh because the runtime
    replaces it wholesale when the sample size changes.
    """

    def __init__(
        self,
        *,
        tracker_fn: Callable[[], Optional[_TrackerLike]],
        keepalive_fn: Callable[[], Optional[_KeepaliveLike]],
        threshold_fn: Callable[[], int],
    ) -> None:
        self._tracker_fn = tracker_fn
        self._keepalive_fn = keepalive_fn
        self._threshold_fn = threshold_fn

    def lines(self) -> List[StatusLine]:
        tracker = self._tracker_fn()
        if tracker is None:
            return []
        lines = [StatusLine("Tick Fixer", title=True)]
        if tracker.is_waiting():
            lines.append(StatusLine("Status", "Waiting...", COLOR_YELLOW))
        else:
            quality = tracker.quality()
            jitter = tracker.jitter_ms()
            lines.append(StatusLine("Tick Quality", f"{quality:.1f}%", quality_color(quality)))
            lines.append(StatusLine("Avg Tick", f"{tracker.average_ms():.0f}ms"))
            lines.append(
                StatusLine("Jitter", f"{jitter:.1f}ms", COLOR_ORANGE if jitter > JITTER_WARN_MS else COLOR_WHITE)
            )
            last_delta = tracker.last_delta_ms()
            if last_delta >= 0:
                within = abs(last_delta - IDEAL_TICK_MS) <= self._threshold_fn()
                lines.append(StatusLine("Last Tick", f"{last_delta}ms", COLOR_GREEN if within else COLOR_RED))
        lines.append(self._keepalive_line())
        return lines

    def _keepalive_line(self) -> StatusLine:
        keepalive = self._keepalive_fn()
        if keepalive is None or not keepalive.is_running():
            return StatusLine("Keepalive", "OFF", COLOR_GRAY)
        if keepalive.is_paused():
            return StatusLine("Keepalive", "PAUSED", COLOR_YELLOW)
        return StatusLine("Keepalive", "ACTIVE", COLOR_GREEN)
