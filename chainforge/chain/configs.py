"""
chainforge/chain/configs.py
Per-kind hop configuration models.

Each hop kind carries its own config shape. The orchestrator only reads the
few shared fields the validator needs; every other field rides along as an
extra and is handed to the Hop Provider untouched.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from chainforge.chain.models import HopFamily, HopKind


class ProxyHopConfig(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    enabled: bool = Field(default=True, description="Disabled proxies are rejected by the validator")
    host: str = Field(default="", description="Proxy relay host")
    # Range is checked by the validator, not here, so a bad port surfaces as DisabledHop
    port: int = Field(default=0, description="Proxy relay port")
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)


class TunnelHopConfig(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    remote_host: Optional[str] = Field(default=None, description="Tunnel server / peer endpoint")
    config_ref: Optional[str] = Field(default=None, description="Reference to a provider config bundle (.ovpn, wg0.conf, network id)")


HopConfig = Union[ProxyHopConfig, TunnelHopConfig]


def config_for_kind(kind: HopKind, config: Union[HopConfig, Mapping[str, Any], None]) -> HopConfig:
    """Coerce a raw mapping (or an already-typed model) into the model for `kind`."""
    model = ProxyHopConfig if kind.family is HopFamily.PROXY else TunnelHopConfig
    if isinstance(config, model):
        return config
    if isinstance(config, BaseModel):
        return model.model_validate(config.model_dump())
    return model.model_validate(dict(config or {}))


def config_payload(config: HopConfig) -> Dict[str, Any]:
    """Wire form of a config, extras included, for the provider."""
    return config.model_dump(mode="json", exclude_none=True)
