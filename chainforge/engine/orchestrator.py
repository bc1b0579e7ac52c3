"""
chainforge/engine/orchestrator.py
The Connection Chain Orchestrator.

Inbound API for the rest of the application. Composes the builder, connector,
disconnector, health monitor and optimizer around one explicit ChainRegistry.

Concurrency: one asyncio.Lock per chain id. A chain's connect/disconnect
sequence is single-writer; unrelated chains never wait on each other.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Sequence, Set

from chainforge.analysis.optimizer import PerformanceReport, analyze_performance, optimize
from chainforge.base.config import ChainForgeConfig, get_config
from chainforge.base.exceptions import ChainStateError, HopError, HopErrorReason
from chainforge.chain.builder import HopSpecLike, build_chain, rebuild_chain
from chainforge.chain.models import Chain, HopStatus
from chainforge.engine.connector import ChainConnector, ConnectOutcome
from chainforge.engine.disconnector import ChainDisconnector, DisconnectOutcome
from chainforge.engine.registry import ChainRegistry
from chainforge.monitoring.health import ChainHealth, HealthMonitor
from chainforge.net.provider import HopProvider

logger = logging.getLogger(__name__)


class ChainOrchestrator:
    """
    Owns nothing global: the registry and provider are handed in by whoever
    composes the application (tests build one per case).
    """

    def __init__(
        self,
        provider: HopProvider,
        registry: Optional[ChainRegistry] = None,
        config: Optional[ChainForgeConfig] = None,
    ):
        self.config = config or get_config()
        self.provider = provider
        self.registry = registry if registry is not None else ChainRegistry()
        self.disconnector = ChainDisconnector(provider, self.registry, self.config.connect)
        self.connector = ChainConnector(provider, self.registry, self.disconnector, self.config.connect)
        self.monitor = HealthMonitor(provider, self.registry, self.config.health)

        self._locks: Dict[str, asyncio.Lock] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._cancel_requested: Set[str] = set()

    def _lock_for(self, chain_id: str) -> asyncio.Lock:
        lock = self._locks.get(chain_id)
        if lock is None:
            # Raises ChainNotFound, so unknown ids never get a lock
            self.registry.get(chain_id)
            lock = self._locks[chain_id] = asyncio.Lock()
        return lock

    # ============================================================================
    # Definition
    # ============================================================================

    def create_chain(
        self,
        name: str,
        hop_specs: Sequence[HopSpecLike],
        target_host: str,
        target_port: int,
        description: Optional[str] = None,
    ) -> str:
        """Validate, build and register a Disconnected chain. Returns its id."""
        result = build_chain(name, hop_specs, target_host, target_port, description=description)
        self.registry.add(result.chain)
        return result.chain.id

    def get_chain(self, chain_id: str) -> Chain:
        return self.registry.get(chain_id)

    def list_chains(self) -> List[Chain]:
        return self.registry.chains()

    async def reconfigure(self, chain_id: str, hop_specs: Sequence[HopSpecLike]) -> Chain:
        """Replace the hops of a chain that is not live."""
        async with self._lock_for(chain_id):
            chain = self.registry.get(chain_id)
            self._require_idle(chain, "reconfigure")
            result = rebuild_chain(chain, hop_specs)
            for warning in result.warnings:
                logger.warning(f"[Orchestrator] Chain '{chain.name}': {warning.message}")
            return self.registry.publish(result.chain)

    async def delete_chain(self, chain_id: str) -> None:
        """Remove a chain, disconnecting it first if anything is live."""
        if chain_id in self._inflight:
            self.cancel(chain_id)
        async with self._lock_for(chain_id):
            chain = self.registry.get(chain_id)
            if chain.is_live:
                await self.disconnector.disconnect(chain)
            self.registry.remove(chain_id)
        self._locks.pop(chain_id, None)
        logger.info(f"[Orchestrator] Deleted chain {chain_id}")

    # ============================================================================
    # Connection lifecycle
    # ============================================================================

    async def connect(self, chain_id: str) -> ConnectOutcome:
        lock = self._lock_for(chain_id)
        if chain_id in self._inflight:
            raise ChainStateError(chain_id, "connecting", f"Chain {chain_id} is already connecting")

        async with lock:
            chain = self.registry.get(chain_id)
            task = asyncio.create_task(self.connector.connect(chain), name=f"connect:{chain_id}")
            self._inflight[chain_id] = task
            try:
                return await task
            except asyncio.CancelledError:
                requested = chain_id in self._cancel_requested
                if not task.done():
                    # Our caller was cancelled; let the rollback finish before releasing the lock
                    await asyncio.wait({task})
                if not requested:
                    raise
                return self._cancelled_outcome(chain_id)
            finally:
                self._inflight.pop(chain_id, None)
                self._cancel_requested.discard(chain_id)

    def cancel(self, chain_id: str) -> bool:
        """Abort an in-flight connect; it rolls back and stores Error. False if nothing is running."""
        task = self._inflight.get(chain_id)
        if task is None or task.done():
            return False
        logger.info(f"[Orchestrator] Cancelling connect of chain {chain_id}")
        self._cancel_requested.add(chain_id)
        task.cancel()
        return True

    async def disconnect(self, chain_id: str) -> DisconnectOutcome:
        if chain_id in self._inflight:
            self.cancel(chain_id)
        async with self._lock_for(chain_id):
            return await self.disconnector.disconnect(self.registry.get(chain_id))

    def _cancelled_outcome(self, chain_id: str) -> ConnectOutcome:
        chain = self.registry.get(chain_id)
        failed = [h.position for h in chain.hops if h.status is HopStatus.FAILED]
        position = failed[0] if failed else None
        return ConnectOutcome(
            chain=chain,
            failed_position=position,
            error=HopError(HopErrorReason.CANCELLED, "connect cancelled by request", position=position),
        )

    # ============================================================================
    # Health / optimization
    # ============================================================================

    async def health(self, chain_id: str) -> ChainHealth:
        return await self.monitor.check(self.registry.get(chain_id))

    def watch(self, chain_id: str, on_report: Callable[[ChainHealth], None], interval: Optional[float] = None) -> asyncio.Task:
        self.registry.get(chain_id)
        return self.monitor.watch(chain_id, on_report, interval=interval)

    def optimize(self, chain_id: str) -> Chain:
        """Proposed reordering. The stored chain is left as it is."""
        return optimize(self.registry.get(chain_id))

    async def apply_optimization(self, chain_id: str) -> Chain:
        """Store the optimized ordering; only for chains that are not live."""
        async with self._lock_for(chain_id):
            chain = self.registry.get(chain_id)
            self._require_idle(chain, "optimize")
            return self.registry.publish(optimize(chain))

    async def analyze(self, chain_id: str) -> PerformanceReport:
        chain = self.registry.get(chain_id)
        return analyze_performance(chain, await self.monitor.check(chain))

    async def aclose(self) -> None:
        """Disconnect every live chain, then close the provider."""
        for chain in self.registry.chains():
            if chain.is_live or chain.id in self._inflight:
                await self.disconnect(chain.id)
        await self.provider.aclose()

    @staticmethod
    def _require_idle(chain: Chain, action: str) -> None:
        if chain.is_live:
            raise ChainStateError(chain.id, chain.status, f"Cannot {action} chain {chain.id} while it is {chain.status.value}")
