"""
chainforge/net/adapter.py
HTTP Hop Provider for ChainForge.

Speaks a small JSON RPC to the privileged relay/tunnel backend. This is the
SINGLE place outbound traffic to that backend is produced; everything above
it only sees HopProvider calls and HopError reasons.

Routes:
    POST /v1/hops/establish          {handle, kind, config, dial_target, timeout} -> {host, port}
    POST /v1/hops/{handle}/teardown  {kind}                                      -> 204
    GET  /v1/hops/{handle}/status                                                 -> {alive, latency_ms, throughput_bps, ...}
"""

from __future__ import annotations

import httpx
import logging
from typing import Any, Dict, Optional

from chainforge.base.config import ProviderConfig
from chainforge.base.exceptions import HopError, HopErrorReason
from chainforge.chain.configs import HopConfig, config_payload
from chainforge.chain.models import Endpoint, HopKind
from chainforge.net.provider import HopLiveStatus, HopProvider

logger = logging.getLogger(__name__)

# HTTP statuses the backend uses when it has no explicit "reason" in the body
_STATUS_REASONS: Dict[int, HopErrorReason] = {
    401: HopErrorReason.AUTH_REJECTED,
    403: HopErrorReason.AUTH_REJECTED,
    407: HopErrorReason.AUTH_REJECTED,  # Upstream proxy demanded credentials
    408: HopErrorReason.DIAL_TIMEOUT,
    502: HopErrorReason.UNREACHABLE,
    503: HopErrorReason.PROVIDER_UNAVAILABLE,
    504: HopErrorReason.DIAL_TIMEOUT,
}


class HttpHopProvider(HopProvider):
    """
    HopProvider backed by the privileged backend's HTTP API.
    Wraps httpx.AsyncClient; tests inject a client built on httpx.MockTransport.
    """
    def __init__(self, config: Optional[ProviderConfig] = None, underlying_client: Optional[httpx.AsyncClient] = None):
        self.config = config or ProviderConfig()
        headers = {"Authorization": f"Bearer {self.config.api_token}"} if self.config.api_token else {}
        self.client = underlying_client or httpx.AsyncClient(
            base_url=self.config.base_url,
            headers=headers,
            timeout=self.config.request_timeout,
        )

    async def establish(
        self,
        kind: HopKind,
        config: HopConfig,
        dial_target: Endpoint,
        *,
        handle: str,
        timeout: float,
    ) -> Endpoint:
        payload = {
            "handle": handle,
            "kind": {"family": kind.family.value, "subtype": kind.subtype},
            "config": config_payload(config),
            "dial_target": dial_target.to_dict(),
            "timeout": timeout,
        }
        data = await self._call("POST", "/v1/hops/establish", json=payload, timeout=timeout)
        try:
            endpoint = Endpoint(host=str(data["host"]), port=int(data["port"]))
        except (KeyError, TypeError, ValueError) as e:
            raise HopError(
                HopErrorReason.PROVIDER_UNAVAILABLE,
                f"backend returned no usable local endpoint for {handle}: {data!r}",
            ) from e
        logger.debug(f"[HopProvider] {kind} {handle} listening on {endpoint} -> {dial_target}")
        return endpoint

    async def teardown(self, kind: HopKind, handle: str) -> None:
        await self._call(
            "POST",
            f"/v1/hops/{handle}/teardown",
            json={"kind": {"family": kind.family.value, "subtype": kind.subtype}},
        )

    async def query_status(self, handle: str) -> HopLiveStatus:
        data = await self._call("GET", f"/v1/hops/{handle}/status")
        known = {"alive", "latency_ms", "throughput_bps"}
        return HopLiveStatus(
            alive=bool(data.get("alive", False)),
            latency_ms=_maybe_float(data.get("latency_ms")),
            throughput_bps=_maybe_float(data.get("throughput_bps")),
            details={k: v for k, v in data.items() if k not in known},
        )

    async def aclose(self):
        await self.client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _call(self, method: str, path: str, timeout: Optional[float] = None, **kwargs: Any) -> Dict[str, Any]:
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise HopError(HopErrorReason.DIAL_TIMEOUT, f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            raise HopError(HopErrorReason.PROVIDER_UNAVAILABLE, f"backend unreachable: {e}") from e

        if response.status_code >= 400:
            raise self._error_from_response(response)
        if response.status_code == 204 or not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise HopError(HopErrorReason.PROVIDER_UNAVAILABLE, f"backend sent non-JSON body for {path}") from e
        return data if isinstance(data, dict) else {"result": data}

    @staticmethod
    def _error_from_response(response: httpx.Response) -> HopError:
        body: Dict[str, Any] = {}
        try:
            parsed = response.json()
            if isinstance(parsed, dict):
                body = parsed
        except ValueError:
            pass

        reason = _STATUS_REASONS.get(response.status_code, HopErrorReason.PROVIDER_UNAVAILABLE)
        if body.get("reason"):
            try:
                reason = HopErrorReason(body["reason"])
            except ValueError:
                logger.warning(f"[HopProvider] Unknown error reason from backend: {body['reason']!r}")
        message = body.get("message") or response.text or f"HTTP {response.status_code}"
        return HopError(reason, message)


def _maybe_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
