from __future__ import annotations

import socket
import subprocess

import pytest

from tickfixer_plugin import target_resolver
from tickfixer_plugin.target_resolver import (
    PRIVATE_FALLBACK_ADDRESS,
    PUBLIC_FALLBACK_ADDRESS,
    ResolverStrategy,
    default_gateway_chain,
    detect_default_gateway,
    parse_macos_route_output,
    parse_proc_net_route,
    parse_windows_route_output,
    probe_reachable,
    resolve_host,
    resolve_target,
    run_chain,
)

PROC_NET_ROUTE_SAMPLE = (
    "Iface\tDestination\tGateway \tFlags\tRefCnt\tUse\tMetric\tMask\t\tMTU\tWindow\tIRTT\n"
    "wlan0\t0001A8C0\t00000000\t0001\t0\t0\t600\t00FFFFFF\t0\t0\t0\n"
    "wlan0\t00000000\t0101A8C0\t0003\t0\t0\t600\t00000000\t0\t0\t0\n"
)

MACOS_ROUTE_SAMPLE = """\
   route to: default
destination: default
       mask: default
    gateway: 192.168.0.254
  interface: en0
      flags: <UP,GATEWAY,DONE,STATIC,PRCLONING>
"""

WINDOWS_ROUTE_SAMPLE = """\
===========================================================================
IPv4 Route Table
===========================================================================
Active Routes:
Network Destination        Netmask          Gateway       Interface  Metric
          0.0.0.0          0.0.0.0      10.20.30.1     10.20.30.44     25
===========================================================================
"""


class _Recorder:
    def __init__(self, result=None) -> None:
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.result


def test_explicit_address_returned_without_gateway_detection():
    detect = _Recorder("192.168.0.1")

    result = resolve_target("10.0.0.5", fallback=[ResolverStrategy("default-gateway", detect)])

    assert result == "10.0.0.5"
    assert detect.calls == 0


@pytest.mark.parametrize("value", ["", "   ", None, "gateway", "GATEWAY", " Gateway "])
def test_gateway_keyword_skips_host_resolution(value):
    host_calls = []
    detect = _Recorder("192.168.0.1")

    result = resolve_target(
        value,
        fallback=[ResolverStrategy("default-gateway", detect)],
        host_resolver=lambda host: host_calls.append(host) or host,
    )

    assert result == "192.168.0.1"
    assert host_calls == []
    assert detect.calls == 1


def test_unresolvable_host_falls_back_to_gateway():
    detect = _Recorder("192.168.0.1")

    result = resolve_target(
        "no-such-host.invalid",
        fallback=[ResolverStrategy("default-gateway", detect)],
        host_resolver=lambda host: None,
    )

    assert result == "192.168.0.1"
    assert detect.calls == 1


def test_raising_strategy_is_treated_as_not_found():
    def _explode():
        raise RuntimeError("route table unavailable")

    result = run_chain(
        [ResolverStrategy("explodes", _explode), ResolverStrategy("second", _Recorder("10.1.1.1"))]
    )

    assert result == "10.1.1.1"


def test_exhausted_chain_returns_none():
    assert run_chain([ResolverStrategy("a", _Recorder(None)), ResolverStrategy("b", _Recorder(""))]) is None


def test_gateway_chain_prefers_detected_gateway():
    probe_calls = []
    chain = default_gateway_chain(detect=lambda: "192.168.50.1", probe=lambda addr: probe_calls.append(addr))

    assert run_chain(chain) == "192.168.50.1"
    assert probe_calls == []


def test_gateway_chain_uses_reachable_private_fallback():
    chain = default_gateway_chain(detect=lambda: None, probe=lambda addr: True)
    assert run_chain(chain) == PRIVATE_FALLBACK_ADDRESS


def test_gateway_chain_uses_public_last_resort():
    chain = default_gateway_chain(detect=lambda: None, probe=lambda addr: False)
    assert run_chain(chain) == PUBLIC_FALLBACK_ADDRESS


def test_public_last_resort_can_be_disabled():
    chain = default_gateway_chain(allow_public_fallback=False, detect=lambda: None, probe=lambda addr: False)
    assert [strategy.name for strategy in chain] == ["default-gateway", "private-fallback"]
    assert run_chain(chain) is None


def test_resolve_host_failure_returns_none(monkeypatch):
    def _fail(host):
        raise socket.gaierror("Name or service not known")

    monkeypatch.setattr(target_resolver.socket, "gethostbyname", _fail)
    assert resolve_host("nowhere.invalid") is None


def test_parse_proc_net_route():
    assert parse_proc_net_route(PROC_NET_ROUTE_SAMPLE) == "192.168.1.1"
    assert parse_proc_net_route(PROC_NET_ROUTE_SAMPLE.splitlines()[0]) is None


def test_parse_macos_route_output():
    assert parse_macos_route_output(MACOS_ROUTE_SAMPLE) == "192.168.0.254"
    assert parse_macos_route_output("route: writing to routing socket: not in table") is None


def test_parse_windows_route_output():
    assert parse_windows_route_output(WINDOWS_ROUTE_SAMPLE) == "10.20.30.1"
    assert parse_windows_route_output("") is None


def test_detect_default_gateway_linux_reads_proc(monkeypatch, tmp_path):
    route_file = tmp_path / "route"
    route_file.write_text(PROC_NET_ROUTE_SAMPLE, encoding="ascii")
    monkeypatch.setattr(target_resolver, "PROC_NET_ROUTE", route_file)

    assert detect_default_gateway("linux") == "192.168.1.1"


def test_detect_default_gateway_linux_missing_proc(monkeypatch, tmp_path):
    monkeypatch.setattr(target_resolver, "PROC_NET_ROUTE", tmp_path / "missing")
    assert detect_default_gateway("linux") is None


def test_detect_default_gateway_macos_parses_route(monkeypatch):
    seen = {}

    def fake_run(command, **kwargs):
        seen["command"] = command
        seen["timeout"] = kwargs.get("timeout")
        return subprocess.CompletedProcess(command, 0, stdout=MACOS_ROUTE_SAMPLE, stderr="")

    monkeypatch.setattr(target_resolver.subprocess, "run", fake_run)

    assert detect_default_gateway("darwin") == "192.168.0.254"
    assert seen["command"] == ["route", "-n", "get", "default"]
    assert seen["timeout"] == target_resolver.ROUTE_COMMAND_TIMEOUT_SECONDS


def test_detect_default_gateway_command_missing(monkeypatch):
    def fake_run(command, **kwargs):
        raise FileNotFoundError(command[0])

    monkeypatch.setattr(target_resolver.subprocess, "run", fake_run)
    assert detect_default_gateway("darwin") is None


def test_probe_timeout_means_unreachable(monkeypatch):
    def fake_run(command, **kwargs):
        raise subprocess.TimeoutExpired(command, kwargs.get("timeout"))

    monkeypatch.setattr(target_resolver.subprocess, "run", fake_run)
    assert probe_reachable("192.168.1.1") is False


def test_probe_success(monkeypatch):
    seen = {}

    def fake_run(command, **kwargs):
        seen["timeout"] = kwargs.get("timeout")
        return subprocess.CompletedProcess(command, 0)

    monkeypatch.setattr(target_resolver.subprocess, "run", fake_run)
    assert probe_reachable("192.168.1.1") is True
    assert seen["timeout"] == target_resolver.PROBE_TIMEOUT_SECONDS


def test_probe_failure_exit_code(monkeypatch):
    def fake_run(command, **kwargs):
        raise subprocess.CalledProcessError(1, command)

    monkeypatch.setattr(target_resolver.subprocess, "run", fake_run)
    assert probe_reachable("192.168.1.1") is False
