"""
chainforge/monitoring/health.py
Health Monitor: per-hop liveness plus an overall chain verdict.

Advisory only. It reads snapshots from the registry and asks the provider
for live status; it never reconnects, reorders or tears anything down.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple

from chainforge.base.config import HealthConfig
from chainforge.base.exceptions import ChainNotFound
from chainforge.chain.models import Chain, ChainStatus, Hop, HopStatus, utcnow
from chainforge.engine.registry import ChainRegistry
from chainforge.net.provider import HopLiveStatus, HopProvider
from chainforge.utils.async_helpers import create_safe_task

logger = logging.getLogger(__name__)


class HealthVerdict(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass(frozen=True)
class HopHealth:
    hop_id: str
    position: int
    kind: str
    status: HopStatus
    healthy: bool
    live: Optional[HopLiveStatus] = None
    error: Optional[str] = None

    @property
    def latency_ms(self) -> Optional[float]:
        return self.live.latency_ms if self.live else None


@dataclass(frozen=True)
class ChainHealth:
    chain_id: str
    overall: HealthVerdict
    per_hop: Tuple[HopHealth, ...]
    recommendations: Tuple[str, ...] = field(default_factory=tuple)
    checked_at: datetime = field(default_factory=utcnow)


def aggregate(per_hop: List[HopHealth]) -> HealthVerdict:
    healthy = sum(1 for h in per_hop if h.healthy)
    if per_hop and healthy == len(per_hop):
        return HealthVerdict.HEALTHY
    if healthy:
        return HealthVerdict.DEGRADED
    return HealthVerdict.FAILED


class HealthMonitor:
    def __init__(self, provider: HopProvider, registry: ChainRegistry, config: Optional[HealthConfig] = None):
        self.provider = provider
        self.registry = registry
        self.config = config or HealthConfig()

    async def check(self, chain: Chain) -> ChainHealth:
        """Query every hop of one snapshot and aggregate."""
        per_hop = list(await asyncio.gather(*(self._check_hop(hop) for hop in chain.hops)))
        overall = aggregate(per_hop)
        report = ChainHealth(
            chain_id=chain.id,
            overall=overall,
            per_hop=tuple(per_hop),
            recommendations=tuple(self.recommend(chain, per_hop)),
        )
        logger.debug(f"[Health] Chain {chain.id}: {overall.value} ({sum(h.healthy for h in per_hop)}/{len(per_hop)} healthy)")
        return report

    async def _check_hop(self, hop: Hop) -> HopHealth:
        base = dict(hop_id=hop.id, position=hop.position, kind=str(hop.kind), status=hop.status)
        if hop.status is not HopStatus.CONNECTED:
            return HopHealth(healthy=False, **base)

        try:
            live = await asyncio.wait_for(
                self.provider.query_status(hop.id),
                timeout=self.config.status_timeout_seconds,
            )
        except asyncio.TimeoutError:
            return HopHealth(healthy=False, error=f"status query timed out after {self.config.status_timeout_seconds}s", **base)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[Health] Status query for hop {hop.position} ({hop.id}) failed: {e}")
            return HopHealth(healthy=False, error=str(e), **base)

        return HopHealth(healthy=bool(live.alive), live=live, **base)

    def recommend(self, chain: Chain, per_hop: List[HopHealth]) -> List[str]:
        recommendations: List[str] = []
        if chain.status is not ChainStatus.CONNECTED:
            recommendations.append(f"Chain is {chain.status.value}; connect it before relying on it")

        for report in per_hop:
            if not report.healthy and report.status is HopStatus.CONNECTED:
                reason = f" ({report.error})" if report.error else ""
                recommendations.append(f"Replace or reconfigure hop {report.position} ({report.kind}){reason}")
            elif report.status is HopStatus.FAILED:
                recommendations.append(f"Replace or reconfigure failed hop {report.position} ({report.kind})")

        threshold = self.config.latency_threshold_ms
        for report in per_hop:
            if report.latency_ms is not None and report.latency_ms > threshold:
                recommendations.append(
                    f"Hop {report.position} ({report.kind}) latency {report.latency_ms:.0f} ms exceeds "
                    f"{threshold:.0f} ms; consider replacing it or reordering the chain"
                )
        return recommendations

    # ------------------------------------------------------------------
    # Continuous monitoring
    # ------------------------------------------------------------------

    def watch(
        self,
        chain_id: str,
        on_report: Callable[[ChainHealth], None],
        interval: Optional[float] = None,
    ) -> asyncio.Task:
        """
        Poll one chain until it is deleted or the returned task is cancelled.
        Each round reads the current registry snapshot.
        """
        period = interval if interval is not None else self.config.poll_interval_seconds

        async def _loop():
            while True:
                try:
                    chain = self.registry.get(chain_id)
                except ChainNotFound:
                    logger.info(f"[Health] Chain {chain_id} is gone; watcher stopping")
                    return
                report = await self.check(chain)
                try:
                    on_report(report)
                except Exception as e:
                    # A broken subscriber must not end monitoring
                    logger.error(f"[Health] Report callback for chain {chain_id} failed: {e}", exc_info=e)
                await asyncio.sleep(period)

        return create_safe_task(_loop(), name=f"health:{chain_id}")
