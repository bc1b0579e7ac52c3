"""
chainforge/chain/validator.py
Structural and semantic checks on a proposed set of hops.

Runs before any network activity. Pure: the same hop set always yields the
same verdict, and nothing is mutated.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, List, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError

from chainforge.base.exceptions import (
    DisabledHop,
    DuplicatePosition,
    EmptyChain,
    IncompleteTunnelConfig,
    InvalidTarget,
    NegativePosition,
)
from chainforge.chain.configs import config_for_kind
from chainforge.chain.models import HopKind

logger = logging.getLogger(__name__)

MIN_PORT = 1
MAX_PORT = 65535


@dataclass(frozen=True)
class OrderingWarning:
    """Non-fatal: tunnels are expected to sit closer to the target than proxies."""
    message: str
    tunnel_positions: Tuple[int, ...] = field(default_factory=tuple)
    proxy_positions: Tuple[int, ...] = field(default_factory=tuple)


def _port_in_range(port: Any) -> bool:
    return isinstance(port, int) and not isinstance(port, bool) and MIN_PORT <= port <= MAX_PORT


def validate_target(host: str, port: int) -> None:
    if not host or not str(host).strip():
        raise InvalidTarget("Target host must not be empty")
    if not _port_in_range(port):
        raise InvalidTarget(f"Target port {port!r} is outside {MIN_PORT}..{MAX_PORT}")


def validate(hops: Sequence[Any]) -> List[OrderingWarning]:
    """
    Validate a proposed chain.

    Accepts HopSpecs or Hops (anything with kind/config/position).

    Raises:
        EmptyChain, DuplicatePosition, NegativePosition, DisabledHop,
        IncompleteTunnelConfig

    Returns:
        Non-fatal ordering warnings (possibly empty).
    """
    if not hops:
        raise EmptyChain("Chain must have at least one hop")

    # Positions first, so [0, 0, 1] is always DuplicatePosition regardless of kind
    counts = Counter(h.position for h in hops)
    duplicates = [pos for pos, n in counts.items() if n > 1]
    if duplicates:
        raise DuplicatePosition(
            f"Hop positions must be unique; duplicated: {sorted(duplicates)}",
            positions=duplicates,
        )

    negatives = [h.position for h in hops if h.position < 0]
    if negatives:
        raise NegativePosition(
            f"Hop positions must be non-negative; got: {sorted(negatives)}",
            positions=negatives,
        )

    for hop in sorted(hops, key=lambda h: h.position):
        kind = HopKind.parse(hop.kind)
        try:
            config = config_for_kind(kind, hop.config)
        except PydanticValidationError as exc:
            error_cls = DisabledHop if kind.is_proxy else IncompleteTunnelConfig
            raise error_cls(
                f"{kind} hop at position {hop.position} has a malformed config ({exc.error_count()} error(s))",
                positions=[hop.position],
            ) from exc

        if kind.is_proxy:
            if not config.enabled:
                raise DisabledHop(f"Proxy hop at position {hop.position} is not enabled", positions=[hop.position])
            if not config.host or not config.host.strip() or not _port_in_range(config.port):
                raise DisabledHop(
                    f"Proxy hop at position {hop.position} has invalid host/port "
                    f"({config.host!r}:{config.port!r})",
                    positions=[hop.position],
                )
        elif not config.remote_host and not config.config_ref:
            raise IncompleteTunnelConfig(
                f"{kind.subtype} hop at position {hop.position} needs a remote host or a config reference",
                positions=[hop.position],
            )

    return _ordering_warnings(hops)


def _ordering_warnings(hops: Sequence[Any]) -> List[OrderingWarning]:
    tunnels = sorted(h.position for h in hops if HopKind.parse(h.kind).is_tunnel)
    proxies = sorted(h.position for h in hops if HopKind.parse(h.kind).is_proxy)
    if not tunnels or not proxies or max(tunnels) < min(proxies):
        return []

    warning = OrderingWarning(
        message=(
            f"Tunnel hops at {tunnels} are not all closer to the target than proxy hops at {proxies}; "
            "tunnels usually anchor the destination side of the route"
        ),
        tunnel_positions=tuple(tunnels),
        proxy_positions=tuple(proxies),
    )
    logger.debug(f"[Validator] {warning.message}")
    return [warning]
