"""Keepalive target resolution: explicit host, default gateway, then fallbacks."""
from __future__ import annotations

import ipaddress
import logging
import socket
import struct
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

GATEWAY_KEYWORD = "gateway"
PRIVATE_FALLBACK_ADDRESS = "192.168.1.1"
PUBLIC_FALLBACK_ADDRESS = "8.8.8.8"
PROBE_TIMEOUT_SECONDS = 0.5
ROUTE_COMMAND_TIMEOUT_SECONDS = 2.0
PROC_NET_ROUTE = Path("/proc/net/route")

_LOGGER = logging.getLogger("TickFixer.resolver")


@dataclass(frozen=True)
class ResolverStrategy:
    """One step of the resolution chain; ``resolve`` returns an address or None."""

    name: str
    resolve: Callable[[], Optional[str]]


def _is_ipv4(value: str) -> bool:
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


def resolve_host(host: str) -> Optional[str]:
    """Resolve a hostname or dotted IPv4 string to an IPv4 address."""
    try:
        address = socket.gethostbyname(host)
    except (OSError, UnicodeError) as exc:
        _LOGGER.error("Failed to resolve target host '%s': %s", host, exc)
        return None
    return address if _is_ipv4(address) else None


# Default gateway detection --------------------------------------------------


def _run_route_command(command: Sequence[str]) -> Optional[str]:
    try:
        completed = subprocess.run(
            list(command),
            capture_output=True,
            text=True,
            timeout=ROUTE_COMMAND_TIMEOUT_SECONDS,
            creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
        )
    except (OSError, subprocess.SubprocessError) as exc:
        _LOGGER.warning("Failed to query default gateway via %s: %s", command[0], exc)
        return None
    return completed.stdout or ""


def parse_macos_route_output(output: str) -> Optional[str]:
    for line in output.splitlines():
        line = line.strip()
        if line.startswith("gateway:"):
            candidate = line[len("gateway:"):].strip()
            return candidate if _is_ipv4(candidate) else None
    return None


def parse_proc_net_route(contents: str) -> Optional[str]:
    """Return the gateway of the first default route in ``/proc/net/route`` text."""
    for line in contents.splitlines()[1:]:
        fields = line.split()
        if len(fields) < 4:
            continue
        destination, gateway_hex, flags_hex = fields[1], fields[2], fields[3]
        if destination != "00000000":
            continue
        try:
            flags = int(flags_hex, 16)
            gateway = int(gateway_hex, 16)
        except ValueError:
            continue
        # RTF_UP | RTF_GATEWAY
        if flags & 0x3 != 0x3 or gateway == 0:
            continue
        return socket.inet_ntoa(struct.pack("<L", gateway))
    return None


def parse_windows_route_output(output: str) -> Optional[str]:
    for line in output.splitlines():
        fields = line.split()
        if len(fields) >= 3 and fields[0] == "0.0.0.0" and fields[1] == "0.0.0.0":
            candidate = fields[2]
            if _is_ipv4(candidate):
                return candidate
    return None


def detect_default_gateway(platform: Optional[str] = None) -> Optional[str]:
    """Ask the operating system routing table for the default gateway."""
    platform = platform or sys.platform
    gateway: Optional[str] = None
    if platform == "darwin":
        output = _run_route_command(["route", "-n", "get", "default"])
        gateway = parse_macos_route_output(output) if output else None
    elif platform.startswith("linux"):
        try:
            gateway = parse_proc_net_route(PROC_NET_ROUTE.read_text(encoding="ascii"))
        except OSError as exc:
            _LOGGER.warning("Failed to read %s: %s", PROC_NET_ROUTE, exc)
    elif platform == "win32":
        output = _run_route_command(["route", "print", "-4", "0.0.0.0"])
        gateway = parse_windows_route_output(output) if output else None
    if gateway:
        _LOGGER.info("Detected default gateway: %s", gateway)
    return gateway


# Reachability probe ----------------------------------------------------------


def probe_reachable(address: str, timeout: float = PROBE_TIMEOUT_SECONDS) -> bool:
    """Send a single echo request, giving up after ``timeout`` seconds."""
    count_flag = "-n" if sys.platform == "win32" else "-c"
    try:
        subprocess.run(
            ["ping", count_flag, "1", address],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=True,
            timeout=timeout,
            creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
        )
    except subprocess.TimeoutExpired:
        return False
    except (OSError, subprocess.CalledProcessError) as exc:
        _LOGGER.debug("Reachability probe of %s failed: %s", address, exc)
        return False
    return True


# Strategy chain --------------------------------------------------------------


def default_gateway_chain(
    *,
    allow_public_fallback: bool = True,
    detect: Callable[[], Optional[str]] = detect_default_gateway,
    probe: Callable[[str], bool] = probe_reachable,
) -> List[ResolverStrategy]:
    """Gateway detection followed by the private and public fallback addresses."""

    def _private_fallback() -> Optional[str]:
        if probe(PRIVATE_FALLBACK_ADDRESS):
            _LOGGER.info("Using fallback gateway: %s", PRIVATE_FALLBACK_ADDRESS)
            return PRIVATE_FALLBACK_ADDRESS
        return None

    def _public_fallback() -> Optional[str]:
        _LOGGER.info("Using fallback target: %s", PUBLIC_FALLBACK_ADDRESS)
        return PUBLIC_FALLBACK_ADDRESS

    chain = [
        ResolverStrategy("default-gateway", detect),
        ResolverStrategy("private-fallback", _private_fallback),
    ]
    if allow_public_fallback:
        chain.append(ResolverStrategy("public-fallback", _public_fallback))
    return chain


def run_chain(strategies: Iterable[ResolverStrategy]) -> Optional[str]:
    for strategy in strategies:
        try:
            address = strategy.resolve()
        except Exception as exc:
            _LOGGER.warning("Resolver %s raised %s; trying next", strategy.name, exc)
            continue
        if address:
            _LOGGER.debug("Resolver %s returned %s", strategy.name, address)
            return address
    _LOGGER.error("Failed to resolve any keepalive target")
    return None


def resolve_target(
    config_value: Optional[str],
    *,
    fallback: Optional[Sequence[ResolverStrategy]] = None,
    host_resolver: Callable[[str], Optional[str]] = resolve_host,
    allow_public_fallback: bool = True,
) -> Optional[str]:
    """Resolve the configured target string to an address, or None when nothing works.

    ``""`` or ``"gateway"`` (any case) skips straight to gateway detection; anything
    else is tried as a hostname first and falls back to gateway detection on failure.
    """
    value = (config_value or "").strip()
    chain: List[ResolverStrategy] = []
    if value and value.lower() != GATEWAY_KEYWORD:
        chain.append(ResolverStrategy(f"host:{value}", lambda: host_resolver(value)))
    if fallback is None:
        fallback = default_gateway_chain(allow_public_fallback=allow_public_fallback)
    chain.extend(fallback)
    return run_chain(chain)
