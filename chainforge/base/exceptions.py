"""
chainforge/base/exceptions.py
Typed exceptions raised by the chain orchestrator.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from chainforge.errors import ChainForgeError, ErrorCode


# ============================================================================
# Validation
# ============================================================================

class ChainValidationError(ChainForgeError):
    """Base for every structural/semantic problem found before connecting."""

    code: ErrorCode = ErrorCode.VALIDATION_EMPTY_CHAIN

    def __init__(self, message: str, positions: Optional[List[int]] = None):
        self.positions = sorted(positions or [])
        super().__init__(self.code, message, details={"positions": self.positions})


class EmptyChain(ChainValidationError):
    code = ErrorCode.VALIDATION_EMPTY_CHAIN


class DuplicatePosition(ChainValidationError):
    code = ErrorCode.VALIDATION_DUPLICATE_POSITION


class NegativePosition(ChainValidationError):
    code = ErrorCode.VALIDATION_NEGATIVE_POSITION


class DisabledHop(ChainValidationError):
    code = ErrorCode.VALIDATION_DISABLED_HOP


class IncompleteTunnelConfig(ChainValidationError):
    code = ErrorCode.VALIDATION_INCOMPLETE_TUNNEL


class InvalidTarget(ChainValidationError):
    code = ErrorCode.VALIDATION_INVALID_TARGET


class MalformedHopSpec(ChainValidationError):
    """A hop spec that cannot be read as a hop at all."""
    code = ErrorCode.VALIDATION_MALFORMED_SPEC


# ============================================================================
# Hop Provider failures
# ============================================================================

class HopErrorReason(str, Enum):
    DIAL_TIMEOUT = "dial-timeout"
    AUTH_REJECTED = "auth-rejected"
    UNREACHABLE = "unreachable"
    PROVIDER_UNAVAILABLE = "provider-unavailable"
    CANCELLED = "cancelled"


_REASON_CODES: Dict[HopErrorReason, ErrorCode] = {
    HopErrorReason.DIAL_TIMEOUT: ErrorCode.HOP_DIAL_TIMEOUT,
    HopErrorReason.AUTH_REJECTED: ErrorCode.HOP_AUTH_REJECTED,
    HopErrorReason.UNREACHABLE: ErrorCode.HOP_UNREACHABLE,
    HopErrorReason.PROVIDER_UNAVAILABLE: ErrorCode.HOP_PROVIDER_UNAVAILABLE,
    HopErrorReason.CANCELLED: ErrorCode.HOP_CANCELLED,
}


class HopError(ChainForgeError):
    """Raised by a HopProvider when a hop cannot be established or queried."""

    def __init__(self, reason: HopErrorReason, message: str, position: Optional[int] = None):
        self.reason = HopErrorReason(reason)
        self.position = position
        self.detail = message
        super().__init__(
            _REASON_CODES[self.reason],
            f"{self.reason.value}: {message}",
            details={"reason": self.reason.value, "position": position},
        )

    def at_position(self, position: int) -> "HopError":
        """Copy of this error pinned to a chain position."""
        pinned = HopError(self.reason, self.detail, position=position)
        pinned.__cause__ = self.__cause__ or self
        return pinned


class TeardownError(ChainForgeError):
    """A single hop refused to tear down. Logged, never aborts the teardown loop."""

    def __init__(self, position: int, hop_id: str, cause: BaseException):
        self.position = position
        self.hop_id = hop_id
        self.cause = cause
        super().__init__(
            ErrorCode.TEARDOWN_FAILED,
            f"Teardown of hop {position} failed: {cause}",
            details={"position": position, "hop_id": hop_id, "cause": type(cause).__name__},
        )


# ============================================================================
# Registry / lifecycle
# ============================================================================

class ChainNotFound(ChainForgeError):
    def __init__(self, chain_id: str):
        self.chain_id = chain_id
        super().__init__(ErrorCode.CHAIN_NOT_FOUND, f"Chain {chain_id} not found", details={"chain_id": chain_id})


class ChainStateError(ChainForgeError):
    """Raised when an operation is illegal in the chain's current status."""
    def __init__(self, chain_id: str, status: Any, message: str):
        self.chain_id = chain_id
        self.status = status
        super().__init__(
            ErrorCode.CHAIN_INVALID_STATE,
            message,
            details={"chain_id": chain_id, "status": getattr(status, "value", str(status))},
        )
