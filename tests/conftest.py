"""Pytest configuration for ChainForge."""
import asyncio
from typing import Dict, List, Optional, Tuple

import pytest

from chainforge.base.config import ChainForgeConfig, ConnectConfig, HealthConfig, set_config
from chainforge.chain.models import Endpoint, HopKind
from chainforge.engine.orchestrator import ChainOrchestrator
from chainforge.engine.registry import ChainRegistry
from chainforge.net.provider import HopLiveStatus, HopProvider


class RecordingHopProvider(HopProvider):
    """
    In-memory provider that records every call in order.

    Endpoints are handed out as 127.0.0.1:9001, :9002, ... unless pinned with
    endpoint_for(). Failures, hangs and live statuses are keyed by handle.
    """

    def __init__(self):
        self.calls: List[Tuple[str, str, Optional[Endpoint]]] = []
        self.endpoints: Dict[str, Endpoint] = {}
        self.establish_errors: Dict[str, BaseException] = {}
        self.teardown_errors: Dict[str, BaseException] = {}
        self.hanging: set = set()
        self.statuses: Dict[str, HopLiveStatus] = {}
        self.status_errors: Dict[str, BaseException] = {}
        self.timeouts: List[float] = []
        self._next_port = 9001
        self.closed = False

    def endpoint_for(self, handle: str, endpoint: Endpoint):
        self.endpoints[handle] = endpoint

    async def establish(self, kind: HopKind, config, dial_target: Endpoint, *, handle: str, timeout: float) -> Endpoint:
        self.calls.append(("establish", handle, dial_target))
        self.timeouts.append(timeout)
        if handle in self.hanging:
            await asyncio.Event().wait()
        if handle in self.establish_errors:
            raise self.establish_errors[handle]
        if handle not in self.endpoints:
            self.endpoints[handle] = Endpoint("127.0.0.1", self._next_port)
            self._next_port += 1
        return self.endpoints[handle]

    async def teardown(self, kind: HopKind, handle: str) -> None:
        self.calls.append(("teardown", handle, None))
        if handle in self.teardown_errors:
            raise self.teardown_errors[handle]

    async def query_status(self, handle: str) -> HopLiveStatus:
        if handle in self.status_errors:
            raise self.status_errors[handle]
        return self.statuses.get(handle, HopLiveStatus(alive=True, latency_ms=20.0))

    async def aclose(self):
        self.closed = True

    def handles(self, action: str) -> List[str]:
        return [handle for name, handle, _ in self.calls if name == action]

    def dial_targets(self) -> List[Endpoint]:
        return [target for name, _, target in self.calls if name == "establish"]


@pytest.fixture
def config():
    cfg = ChainForgeConfig(
        connect=ConnectConfig(hop_timeout_seconds=0.5, teardown_timeout_seconds=0.5),
        health=HealthConfig(latency_threshold_ms=200.0, status_timeout_seconds=0.5, poll_interval_seconds=0.01),
    )
    set_config(cfg)
    yield cfg
    set_config(None)


@pytest.fixture
def provider():
    return RecordingHopProvider()


@pytest.fixture
def registry():
    return ChainRegistry()


@pytest.fixture
def orchestrator(provider, registry, config):
    return ChainOrchestrator(provider, registry=registry, config=config)


def proxy_spec(position: int, host: str = "relay.example.net", port: int = 1080, subtype: str = "socks5", **extra):
    return {"kind": subtype, "position": position, "config": {"host": host, "port": port, **extra}}


def tunnel_spec(position: int, subtype: str = "wireguard", remote_host: Optional[str] = "vpn.example.net", **extra):
    config = dict(extra)
    if remote_host is not None:
        config["remote_host"] = remote_host
    return {"kind": subtype, "position": position, "config": config}


@pytest.fixture
def specs():
    """Namespace of spec builders so test modules don't import conftest."""
    class _Specs:
        proxy = staticmethod(proxy_spec)
        tunnel = staticmethod(tunnel_spec)
    return _Specs
