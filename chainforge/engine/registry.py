"""
chainforge/engine/registry.py
The shared set of Chains, keyed by chain id.

Chains are immutable snapshots. Writers publish a whole new Chain; readers
get whatever snapshot was current, never a half-applied update. One writer
per chain is the caller's discipline (the orchestrator holds a per-chain lock).
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List

from chainforge.base.exceptions import ChainNotFound
from chainforge.chain.models import Chain
from chainforge.utils.observer import Signal

logger = logging.getLogger(__name__)


class ChainRegistry:
    """
    Owned by whoever composes the application and handed to the engine
    components explicitly. There is no process-wide instance.
    """

    def __init__(self):
        self._chains: Dict[str, Chain] = {}
        # Guards the dict for readers on other threads (UI, watchers)
        self._lock = threading.Lock()
        # chain_changed(chain) after add/publish, chain_removed(chain_id) after remove
        self.chain_changed = Signal()
        self.chain_removed = Signal()

    def add(self, chain: Chain) -> None:
        with self._lock:
            if chain.id in self._chains:
                raise ValueError(f"Chain {chain.id} already registered")
            self._chains[chain.id] = chain
        self.chain_changed.emit(chain)

    def publish(self, chain: Chain) -> Chain:
        """Replace the stored snapshot for chain.id. The chain must exist."""
        with self._lock:
            if chain.id not in self._chains:
                raise ChainNotFound(chain.id)
            self._chains[chain.id] = chain
        logger.debug(f"[Registry] {chain.id} -> {chain.status.value}")
        self.chain_changed.emit(chain)
        return chain

    def get(self, chain_id: str) -> Chain:
        with self._lock:
            chain = self._chains.get(chain_id)
        if chain is None:
            raise ChainNotFound(chain_id)
        return chain

    def chains(self) -> List[Chain]:
        with self._lock:
            return sorted(self._chains.values(), key=lambda c: c.created_at)

    def remove(self, chain_id: str) -> Chain:
        with self._lock:
            chain = self._chains.pop(chain_id, None)
        if chain is None:
            raise ChainNotFound(chain_id)
        self.chain_removed.emit(chain_id)
        return chain

    def __contains__(self, chain_id: object) -> bool:
        with self._lock:
            return chain_id in self._chains

    def __len__(self) -> int:
        with self._lock:
            return len(self._chains)
