"""
chainforge/analysis/optimizer.py
Chain Optimizer and performance analysis.

optimize() reorders hops so every tunnel sits closer to the target than every
proxy, keeping each group's relative order. It is a pure transform that
returns a proposal; nothing is published and live chains are never touched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

from chainforge.chain.models import Chain, ChainStatus, Hop
from chainforge.monitoring.health import ChainHealth

logger = logging.getLogger(__name__)


def optimize(chain: Chain) -> Chain:
    """
    Proposal: tunnels at positions 0..t-1, proxies at t..n-1.

    The proposal is Disconnected with every hop Pending. Applying optimize()
    to its own output returns the same ordering.
    """
    tunnels = [h for h in chain.hops if h.kind.is_tunnel]
    proxies = [h for h in chain.hops if h.kind.is_proxy]

    hops: List[Hop] = [
        replace(hop.reset(), position=new_position)
        for new_position, hop in enumerate(tunnels + proxies)
    ]
    proposal = replace(
        chain,
        hops=tuple(hops),
        status=ChainStatus.DISCONNECTED,
        connected_at=None,
        final_local_endpoint=None,
        last_error=None,
    )
    if is_ordering_optimal(chain):
        logger.debug(f"[Optimizer] Chain {chain.id} already tunnel-first")
    else:
        logger.info(f"[Optimizer] Chain {chain.id}: moved {len(tunnels)} tunnel hop(s) ahead of {len(proxies)} proxy hop(s)")
    return proposal


def is_ordering_optimal(chain: Chain) -> bool:
    tunnel_positions = [h.position for h in chain.hops if h.kind.is_tunnel]
    proxy_positions = [h.position for h in chain.hops if h.kind.is_proxy]
    if not tunnel_positions or not proxy_positions:
        return True
    return max(tunnel_positions) < min(proxy_positions)


@dataclass(frozen=True)
class PerformanceReport:
    chain_id: str
    total_latency_ms: Optional[float]
    reliability: Optional[float]
    ordering_optimal: bool
    recommendations: Tuple[str, ...] = field(default_factory=tuple)


def analyze_performance(chain: Chain, health: Optional[ChainHealth] = None) -> PerformanceReport:
    """
    Summarize a chain: end-to-end latency (sum of hop latencies), reliability
    (fraction of healthy hops) and whether the hop order is tunnel-first.

    Latency and reliability are None without a health report.
    """
    recommendations: List[str] = []
    ordering_optimal = is_ordering_optimal(chain)
    if not ordering_optimal:
        recommendations.append("Move tunnel hops closer to the target (run optimize) for a more conventional route")

    total_latency: Optional[float] = None
    reliability: Optional[float] = None
    if health is not None and health.per_hop:
        latencies = [h.latency_ms for h in health.per_hop if h.latency_ms is not None]
        if latencies:
            total_latency = float(sum(latencies))
        reliability = sum(1 for h in health.per_hop if h.healthy) / len(health.per_hop)
        recommendations.extend(health.recommendations)
        if len(latencies) > 1 and total_latency:
            slowest = max(health.per_hop, key=lambda h: h.latency_ms or 0.0)
            share = (slowest.latency_ms or 0.0) / total_latency
            if share > 0.5:
                recommendations.append(
                    f"Hop {slowest.position} ({slowest.kind}) accounts for {share:.0%} of end-to-end latency"
                )

    return PerformanceReport(
        chain_id=chain.id,
        total_latency_ms=total_latency,
        reliability=reliability,
        ordering_optimal=ordering_optimal,
        recommendations=tuple(recommendations),
    )
