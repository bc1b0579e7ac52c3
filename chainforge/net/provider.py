"""
chainforge/net/provider.py
The boundary to the privileged process that does the real relay/tunnel work.

The orchestrator never touches protocol bytes. It asks a HopProvider to bring
one hop up toward a dial target, to tear it down, and to report liveness.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from chainforge.chain.configs import HopConfig
from chainforge.chain.models import Endpoint, HopKind


@dataclass(frozen=True)
class HopLiveStatus:
    alive: bool
    latency_ms: Optional[float] = None
    throughput_bps: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)


class HopProvider(ABC):
    """
    Consumed contract. Hops are addressed by an opaque handle that the
    orchestrator assigns (the hop id) and passes on every call.

    Implementations raise HopError for every failure they can classify.
    """

    @abstractmethod
    async def establish(
        self,
        kind: HopKind,
        config: HopConfig,
        dial_target: Endpoint,
        *,
        handle: str,
        timeout: float,
    ) -> Endpoint:
        """Bring the hop up so that it reaches `dial_target`; return its local listener."""

    @abstractmethod
    async def teardown(self, kind: HopKind, handle: str) -> None:
        """Release everything the provider holds for `handle`."""

    @abstractmethod
    async def query_status(self, handle: str) -> HopLiveStatus:
        """Live status of an established hop."""

    async def aclose(self) -> None:
        return None
