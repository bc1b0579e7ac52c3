"""
chainforge/chain/builder.py
Turns a name + hop specifications into a Chain in its initial state.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel

from chainforge.base.exceptions import MalformedHopSpec
from chainforge.chain.configs import config_for_kind
from chainforge.chain.models import Chain, ChainStatus, Hop, HopKind, HopSpec
from chainforge.chain.validator import OrderingWarning, validate, validate_target

logger = logging.getLogger(__name__)

HopSpecLike = Union[HopSpec, Mapping[str, Any]]


@dataclass(frozen=True)
class BuildResult:
    chain: Chain
    warnings: Tuple[OrderingWarning, ...] = field(default_factory=tuple)


def new_id() -> str:
    return uuid.uuid4().hex


def coerce_spec(spec: HopSpecLike, index: int = 0) -> HopSpec:
    """Accept a HopSpec or a plain mapping {"kind": "socks5", "config": {...}, "position": 0}."""
    # Config stays raw here; the validator owns reporting malformed configs
    if isinstance(spec, HopSpec):
        kind, config, position = spec.kind, spec.config, spec.position
    elif isinstance(spec, Mapping):
        missing = [key for key in ("kind", "position") if key not in spec]
        if missing:
            raise MalformedHopSpec(f"Hop spec #{index} is missing {', '.join(missing)}")
        kind, config, position = spec["kind"], spec.get("config"), spec["position"]
    else:
        raise MalformedHopSpec(f"Hop spec #{index} must be a HopSpec or a mapping, got {type(spec).__name__}")

    if not isinstance(position, int) or isinstance(position, bool):
        raise MalformedHopSpec(f"Hop spec #{index} has a non-integer position {position!r}")
    if config is not None and not isinstance(config, (Mapping, BaseModel)):
        raise MalformedHopSpec(f"Hop spec #{index} config must be a mapping, got {type(config).__name__}")
    try:
        kind = HopKind.parse(kind)
    except ValueError as e:
        raise MalformedHopSpec(f"Hop spec #{index}: {e}", positions=[position]) from e
    return HopSpec(kind=kind, config=config, position=position)


def build_hops(specs: Sequence[HopSpecLike]) -> Tuple[Tuple[Hop, ...], List[OrderingWarning]]:
    """Validate specs and mint fresh Pending hops (new ids every time)."""
    coerced = [coerce_spec(s, index) for index, s in enumerate(specs)]
    warnings = validate(coerced)
    hops = tuple(
        Hop(id=new_id(), kind=s.kind, config=config_for_kind(s.kind, s.config), position=s.position)
        for s in sorted(coerced, key=lambda s: s.position)
    )
    return hops, warnings


def build_chain(
    name: str,
    specs: Sequence[HopSpecLike],
    target_host: str,
    target_port: int,
    description: Optional[str] = None,
) -> BuildResult:
    """
    Build a Disconnected chain with every hop Pending.

    Raises:
        ChainValidationError subclasses (nothing is built on failure)
    """
    validate_target(target_host, target_port)
    hops, warnings = build_hops(specs)

    chain = Chain(
        id=new_id(),
        name=name,
        description=description,
        hops=hops,
        target_host=target_host,
        target_port=target_port,
    )
    for warning in warnings:
        logger.warning(f"[Builder] Chain '{name}': {warning.message}")
    logger.info(f"[Builder] Built chain {chain.id} '{name}' with {len(hops)} hop(s) -> {chain.target}")
    return BuildResult(chain=chain, warnings=tuple(warnings))


def rebuild_chain(chain: Chain, specs: Sequence[HopSpecLike]) -> BuildResult:
    """Replace a non-live chain's hops, keeping its identity and target."""
    hops, warnings = build_hops(specs)
    rebuilt = replace(
        chain,
        hops=hops,
        status=ChainStatus.DISCONNECTED,
        connected_at=None,
        final_local_endpoint=None,
        last_error=None,
    )
    return BuildResult(chain=rebuilt, warnings=tuple(warnings))
