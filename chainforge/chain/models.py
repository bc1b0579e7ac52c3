"""
chainforge/chain/models.py

Purpose:
    Data structures for connection chains.

Semantics:
    - HopKind: closed variant, a proxy relay (http/https/socks4/socks5) or a
      tunnel technology (openvpn, wireguard, ...).
    - Hop: one stage of a chain. Position 0 is the hop nearest the final
      destination; the highest position is nearest the local client.
    - Chain: an immutable snapshot. Every state change produces a new Chain
      via dataclasses.replace(); readers never observe partial mutation.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

if TYPE_CHECKING:
    from chainforge.chain.configs import HopConfig


class HopFamily(str, Enum):
    PROXY = "proxy"
    TUNNEL = "tunnel"


class ProxyType(str, Enum):
    HTTP = "http"
    HTTPS = "https"
    SOCKS4 = "socks4"
    SOCKS5 = "socks5"


class TunnelType(str, Enum):
    OPENVPN = "openvpn"
    WIREGUARD = "wireguard"
    IKEV2 = "ikev2"
    SSTP = "sstp"
    L2TP = "l2tp"
    PPTP = "pptp"
    SOFTETHER = "softether"
    ZEROTIER = "zerotier"
    TAILSCALE = "tailscale"


_SUBTYPES = {
    HopFamily.PROXY: ProxyType,
    HopFamily.TUNNEL: TunnelType,
}


@dataclass(frozen=True)
class HopKind:
    family: HopFamily
    subtype: str

    def __post_init__(self):
        family = HopFamily(self.family)
        try:
            subtype = _SUBTYPES[family](self.subtype)
        except ValueError:
            raise ValueError(f"{self.subtype!r} is not a {family.value} subtype") from None
        object.__setattr__(self, "family", family)
        object.__setattr__(self, "subtype", subtype.value)

    @classmethod
    def proxy(cls, subtype: Any) -> "HopKind":
        return cls(HopFamily.PROXY, getattr(subtype, "value", subtype))

    @classmethod
    def tunnel(cls, subtype: Any) -> "HopKind":
        return cls(HopFamily.TUNNEL, getattr(subtype, "value", subtype))

    @classmethod
    def parse(cls, value: Any) -> "HopKind":
        """Resolve a bare subtype name ("socks5", "wireguard") to its kind."""
        if isinstance(value, HopKind):
            return value
        name = str(getattr(value, "value", value)).lower()
        for family, enum_cls in _SUBTYPES.items():
            if name in {member.value for member in enum_cls}:
                return cls(family, name)
        raise ValueError(f"Unknown hop kind: {value!r}")

    @property
    def is_proxy(self) -> bool:
        return self.family is HopFamily.PROXY

    @property
    def is_tunnel(self) -> bool:
        return self.family is HopFamily.TUNNEL

    def __str__(self) -> str:
        return f"{self.family.value}/{self.subtype}"


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: int

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    def to_dict(self) -> Dict[str, Any]:
        return {"host": self.host, "port": self.port}


class HopStatus(str, Enum):
    PENDING = "pending"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    FAILED = "failed"


class ChainStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    PARTIAL = "partial"    # Diagnostic only, never stored at rest
    ERROR = "error"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class HopSpec:
    """What a caller asks for. The builder turns these into Hops."""
    kind: HopKind
    config: Any
    position: int


@dataclass(frozen=True)
class Hop:
    id: str
    kind: HopKind
    config: "HopConfig"
    position: int
    status: HopStatus = HopStatus.PENDING
    local_endpoint: Optional[Endpoint] = None
    last_error: Optional[str] = None

    # --- status transitions (each returns a new Hop) ---

    def connecting(self) -> "Hop":
        return replace(self, status=HopStatus.CONNECTING, local_endpoint=None, last_error=None)

    def connected(self, endpoint: Endpoint) -> "Hop":
        return replace(self, status=HopStatus.CONNECTED, local_endpoint=endpoint, last_error=None)

    def failed(self, error: str) -> "Hop":
        return replace(self, status=HopStatus.FAILED, local_endpoint=None, last_error=error)

    def disconnecting(self) -> "Hop":
        return replace(self, status=HopStatus.DISCONNECTING)

    def reset(self) -> "Hop":
        return replace(self, status=HopStatus.PENDING, local_endpoint=None, last_error=None)

    def to_dict(self) -> Dict[str, Any]:
        from chainforge.chain.configs import config_payload
        return {
            "id": self.id,
            "kind": {"family": self.kind.family.value, "subtype": self.kind.subtype},
            "config": config_payload(self.config),
            "position": self.position,
            "status": self.status.value,
            "local_endpoint": self.local_endpoint.to_dict() if self.local_endpoint else None,
            "last_error": self.last_error,
        }


@dataclass(frozen=True)
class Chain:
    id: str
    name: str
    hops: Tuple[Hop, ...]
    target_host: str
    target_port: int
    description: Optional[str] = None
    status: ChainStatus = ChainStatus.DISCONNECTED
    created_at: datetime = field(default_factory=utcnow)
    connected_at: Optional[datetime] = None
    final_local_endpoint: Optional[Endpoint] = None
    last_error: Optional[str] = None

    def __post_init__(self):
        # Keep hops ordered by position no matter how the tuple was built
        ordered = tuple(sorted(self.hops, key=lambda h: h.position))
        object.__setattr__(self, "hops", ordered)

    @property
    def target(self) -> Endpoint:
        return Endpoint(self.target_host, self.target_port)

    @property
    def is_live(self) -> bool:
        """True while any hop holds provider resources or a sequence is running."""
        if self.status in (ChainStatus.CONNECTING, ChainStatus.CONNECTED, ChainStatus.DISCONNECTING):
            return True
        return any(h.status in (HopStatus.CONNECTED, HopStatus.CONNECTING, HopStatus.DISCONNECTING) for h in self.hops)

    def hop_at(self, position: int) -> Hop:
        for hop in self.hops:
            if hop.position == position:
                return hop
        raise KeyError(position)

    def with_hop(self, hop: Hop) -> "Chain":
        """Copy of this chain with the hop sharing `hop.id` replaced."""
        hops = tuple(hop if h.id == hop.id else h for h in self.hops)
        return replace(self, hops=hops)

    def with_status(self, status: ChainStatus, **changes: Any) -> "Chain":
        return replace(self, status=status, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "hops": [h.to_dict() for h in self.hops],
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "connected_at": self.connected_at.isoformat() if self.connected_at else None,
            "final_local_endpoint": self.final_local_endpoint.to_dict() if self.final_local_endpoint else None,
            "last_error": self.last_error,
            "target_host": self.target_host,
            "target_port": self.target_port,
        }
