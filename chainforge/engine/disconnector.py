"""
chainforge/engine/disconnector.py
Tears a chain down in the mirror order of connection.

Highest position (nearest the client) goes first, position 0 last. A hop
that refuses to die is logged and skipped; it never keeps the others alive.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import List, Optional, Tuple

from chainforge.base.config import ConnectConfig
from chainforge.base.exceptions import TeardownError
from chainforge.chain.models import Chain, ChainStatus, Hop, HopStatus
from chainforge.engine.registry import ChainRegistry
from chainforge.net.provider import HopProvider
from chainforge.utils.async_helpers import run_best_effort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DisconnectOutcome:
    chain: Chain
    errors: Tuple[TeardownError, ...] = field(default_factory=tuple)

    @property
    def clean(self) -> bool:
        return not self.errors


class ChainDisconnector:
    def __init__(self, provider: HopProvider, registry: ChainRegistry, config: Optional[ConnectConfig] = None):
        self.provider = provider
        self.registry = registry
        self.config = config or ConnectConfig()

    async def disconnect(self, chain: Chain) -> DisconnectOutcome:
        """
        Drive a Connected (or Error) chain back to Disconnected.

        Already-Disconnected chains with nothing live are returned untouched
        without calling the provider.
        """
        if chain.status is ChainStatus.DISCONNECTED and all(h.status is HopStatus.PENDING for h in chain.hops):
            logger.debug(f"[Disconnector] {chain.id} already disconnected")
            return DisconnectOutcome(chain=chain)

        logger.info(f"[Disconnector] Disconnecting chain {chain.id} '{chain.name}'")
        chain = self.registry.publish(chain.with_status(ChainStatus.DISCONNECTING))
        try:
            chain, errors = await self.release(chain)
        except asyncio.CancelledError:
            # release() still tore every hop down; store the resting state first
            self._settle(self.registry.get(chain.id))
            raise
        chain = self._settle(chain)

        if errors:
            logger.warning(f"[Disconnector] Chain {chain.id} disconnected with {len(errors)} teardown error(s)")
        else:
            logger.info(f"[Disconnector] Chain {chain.id} disconnected")
        return DisconnectOutcome(chain=chain, errors=tuple(errors))

    def _settle(self, chain: Chain) -> Chain:
        # Hops left Failed by an earlier attempt go back to Pending too
        for hop in chain.hops:
            if hop.status is not HopStatus.PENDING:
                chain = chain.with_hop(hop.reset())
        return self.registry.publish(chain.with_status(
            ChainStatus.DISCONNECTED,
            connected_at=None,
            final_local_endpoint=None,
            last_error=None,
        ))

    async def release(self, chain: Chain) -> Tuple[Chain, List[TeardownError]]:
        """
        Tear down every Connected hop, descending position, best-effort.

        Does not touch the chain-level status; the Connector uses this for
        rollback and keeps the chain in Error.

        A cancellation arriving mid-way aborts only the teardown in flight;
        the remaining hops are still released before it propagates.
        """
        live = [h for h in reversed(chain.hops) if h.status is HopStatus.CONNECTED]
        current = [chain]

        async def teardown_one(hop: Hop) -> None:
            current[0] = self.registry.publish(current[0].with_hop(hop.disconnecting()))
            try:
                await asyncio.wait_for(
                    self.provider.teardown(hop.kind, hop.id),
                    timeout=self.config.teardown_timeout_seconds,
                )
            finally:
                # Released from our side whether or not the provider agreed
                current[0] = self.registry.publish(current[0].with_hop(hop.reset()))

        failures = await run_best_effort(
            ((hop.position, partial(teardown_one, hop)) for hop in live),
            name=f"teardown:{chain.id}",
        )

        errors: List[TeardownError] = []
        by_position = {hop.position: hop for hop in live}
        for position, cause in failures:
            hop = by_position[position]
            error = TeardownError(hop.position, hop.id, cause)
            logger.error(f"[Disconnector] {error.message} ({hop.kind}, chain {chain.id})")
            errors.append(error)
        return current[0], errors
