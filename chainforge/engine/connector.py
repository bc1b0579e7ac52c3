"""
chainforge/engine/connector.py
Sequential establishment of a chain, lowest position first.

Each hop dials whatever the previous hop exposed locally: position 0 dials the
real target, position 1 dials position 0's local endpoint, and so on. That data
dependency is why hops are never brought up in parallel.

Any hop failure (provider error, timeout, cancellation) marks the hop Failed,
puts the chain in Error, and tears down every hop already Connected, highest
position first. A chain never rests half-up.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from chainforge.base.config import ConnectConfig
from chainforge.base.exceptions import ChainStateError, HopError, HopErrorReason
from chainforge.chain.models import Chain, ChainStatus, Endpoint, Hop, HopStatus, utcnow
from chainforge.engine.disconnector import ChainDisconnector
from chainforge.engine.registry import ChainRegistry
from chainforge.errors import handle_error
from chainforge.net.provider import HopProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectOutcome:
    """
    Result of one connect() call.

    `status` is the diagnostic verdict (CONNECTED or PARTIAL); the stored
    chain status is CONNECTED or ERROR.
    """
    chain: Chain
    failed_position: Optional[int] = None
    error: Optional[HopError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.failed_position is None

    @property
    def status(self) -> ChainStatus:
        return ChainStatus.CONNECTED if self.ok else ChainStatus.PARTIAL


class ChainConnector:
    def __init__(
        self,
        provider: HopProvider,
        registry: ChainRegistry,
        disconnector: ChainDisconnector,
        config: Optional[ConnectConfig] = None,
    ):
        self.provider = provider
        self.registry = registry
        self.disconnector = disconnector
        self.config = config or ConnectConfig()

    async def connect(self, chain: Chain) -> ConnectOutcome:
        if chain.status is ChainStatus.CONNECTED:
            return ConnectOutcome(chain=chain)
        if chain.is_live:
            raise ChainStateError(chain.id, chain.status, f"Chain {chain.id} is {chain.status.value}; cannot connect")

        # A previous failed attempt may have left Failed hops behind
        for hop in chain.hops:
            if hop.status is not HopStatus.PENDING:
                chain = chain.with_hop(hop.reset())
        chain = self.registry.publish(chain.with_status(
            ChainStatus.CONNECTING,
            connected_at=None,
            final_local_endpoint=None,
            last_error=None,
        ))
        logger.info(f"[Connector] Connecting chain {chain.id} '{chain.name}' ({len(chain.hops)} hops) -> {chain.target}")

        current_target = chain.target
        for position in [h.position for h in chain.hops]:
            hop = chain.hop_at(position)
            chain = self.registry.publish(chain.with_hop(hop.connecting()))
            try:
                endpoint = await self._establish(hop, current_target)
            except asyncio.CancelledError:
                error = HopError(HopErrorReason.CANCELLED, f"connect of hop {position} was cancelled", position=position)
                await self._fail(chain, hop, error)
                raise
            except HopError as e:
                error = e.at_position(position)
                chain = await self._fail(chain, hop, error)
                return ConnectOutcome(chain=chain, failed_position=position, error=error)
            except Exception as e:
                wrapped = handle_error(e, context=f"establishing hop {position}")
                error = HopError(
                    HopErrorReason.PROVIDER_UNAVAILABLE,
                    f"{wrapped.message} ({type(e).__name__})",
                    position=position,
                )
                error.__cause__ = e
                chain = await self._fail(chain, hop, error)
                return ConnectOutcome(chain=chain, failed_position=position, error=error)

            chain = self.registry.publish(chain.with_hop(hop.connected(endpoint)))
            logger.info(f"[Connector]   hop {position} ({hop.kind}) up on {endpoint}, dialing {current_target}")
            # The next hop (one position higher) dials through this one
            current_target = endpoint

        chain = self.registry.publish(chain.with_status(
            ChainStatus.CONNECTED,
            connected_at=utcnow(),
            final_local_endpoint=chain.hops[-1].local_endpoint,
        ))
        logger.info(f"[Connector] Chain {chain.id} connected; clients dial {chain.final_local_endpoint}")
        return ConnectOutcome(chain=chain)

    async def _establish(self, hop: Hop, dial_target: Endpoint) -> Endpoint:
        timeout = self.config.hop_timeout_seconds
        try:
            return await asyncio.wait_for(
                self.provider.establish(hop.kind, hop.config, dial_target, handle=hop.id, timeout=timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise HopError(
                HopErrorReason.DIAL_TIMEOUT,
                f"hop {hop.position} ({hop.kind}) gave no local endpoint within {timeout}s",
                position=hop.position,
            ) from None

    async def _fail(self, chain: Chain, hop: Hop, error: HopError) -> Chain:
        """
        Record the failure, then roll back everything already Connected.

        A cancel during rollback still releases every hop, then propagates.
        """
        chain_message = f"Hop {hop.position} ({hop.kind}) failed: {error.message}"
        chain = self.registry.publish(
            chain.with_hop(hop.failed(error.message)).with_status(ChainStatus.ERROR, last_error=chain_message)
        )
        logger.error(f"[Connector] Chain {chain.id}: {chain_message}; rolling back")

        chain, teardown_errors = await self.disconnector.release(chain)
        if teardown_errors:
            logger.warning(
                f"[Connector] Rollback of chain {chain.id} hit {len(teardown_errors)} teardown error(s); "
                "hops were released from our side regardless"
            )
        return chain
