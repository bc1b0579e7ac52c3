"""
ChainForge: composes proxy relays and VPN tunnels into one path to a target.

Typical composition:

    from chainforge import ChainOrchestrator, HttpHopProvider, get_config

    config = get_config()
    orchestrator = ChainOrchestrator(HttpHopProvider(config.provider), config=config)
    chain_id = orchestrator.create_chain("office", specs, "example.com", 443)
    outcome = await orchestrator.connect(chain_id)
"""

from chainforge.base.config import ChainForgeConfig, get_config, set_config, setup_logging
from chainforge.chain.models import (
    Chain,
    ChainStatus,
    Endpoint,
    Hop,
    HopFamily,
    HopKind,
    HopSpec,
    HopStatus,
    ProxyType,
    TunnelType,
)
from chainforge.engine.orchestrator import ChainOrchestrator
from chainforge.engine.registry import ChainRegistry
from chainforge.net.adapter import HttpHopProvider
from chainforge.net.provider import HopLiveStatus, HopProvider

__all__ = [
    "Chain",
    "ChainForgeConfig",
    "ChainOrchestrator",
    "ChainRegistry",
    "ChainStatus",
    "Endpoint",
    "Hop",
    "HopFamily",
    "HopKind",
    "HopLiveStatus",
    "HopProvider",
    "HopSpec",
    "HopStatus",
    "HttpHopProvider",
    "ProxyType",
    "TunnelType",
    "get_config",
    "set_config",
    "setup_logging",
]
