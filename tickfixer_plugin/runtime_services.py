from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from .target_resolver import resolve_target

ResolveFn = Callable[..., Optional[str]]


class _KeepaliveLike(Protocol):
    total_sent: int
    total_errors: int

    def configure(self, target: Optional[str], port: int, interval_ms: int) -> None: ...
    def start(self) -> bool: ...
    def shutdown(self) -> None: ...
    def is_running(self) -> bool: ...


class _RuntimeLike(Protocol):
    keepalive: _KeepaliveLike

    def _target_settings(self) -> tuple: ...
    def _apply_pause_policy(self) -> None: ...


def start_runtime_services(
    runtime: _RuntimeLike,
    logger: logging.Logger,
    log_fn: Callable[[str], None],
    *,
    resolve: ResolveFn = resolve_target,
) -> bool:
    """Resolve the target, then configure and start the keepalive."""
    if runtime.keepalive.is_running():
        return True

    host, port, interval_ms, allow_public = runtime._target_settings()
    target = resolve(host, allow_public_fallback=allow_public)
    if target is None:
        logger.error("No keepalive target could be resolved from '%s'; keepalive remains inactive.", host)
        return False

    runtime.keepalive.configure(target, port, interval_ms)
    if not runtime.keepalive.start():
        log_fn("Keepalive socket could not be opened; keepalive remains inactive.")
        return False

    runtime._apply_pause_policy()
    return True


def stop_runtime_services(runtime: _RuntimeLike, logger: logging.Logger) -> None:
    keepalive = getattr(runtime, "keepalive", None)
    if keepalive is None:
        return
    was_running = keepalive.is_running()
    keepalive.shutdown()
    if was_running:
        logger.debug(
            "Keepalive services stopped (sent=%d errors=%d)", keepalive.total_sent, keepalive.total_errors
        )
