"""Module errors: structured error taxonomy for ChainForge."""
#
from enum import Enum
from typing import Dict, Any, Optional
# PURPOSE:
# Provides a structured error taxonomy for ChainForge with error codes,
# typed exceptions, and consistent error handling across the orchestrator.
#
# WHY STRUCTURED ERRORS:
# - Error codes are searchable in logs
# - Callers can branch on the code instead of parsing messages
# - Every failure that reaches a Chain's last_error carries the same shape
#
# ERROR CODE FORMAT:
# - VALIDATION_XXX: Chain/hop validation errors (never retried)
# - HOP_XXX: Failures reported by the Hop Provider while establishing a hop
# - TEARDOWN_XXX: Failures while tearing a hop down (best-effort)
# - CHAIN_XXX: Registry and chain lifecycle errors
# - PROVIDER_XXX: Transport errors talking to the privileged backend
#
# USAGE:
#   from chainforge.errors import ChainForgeError, ErrorCode
#
#   raise ChainForgeError(
#       ErrorCode.CHAIN_NOT_FOUND,
#       "No chain with that id",
#       details={"chain_id": "4f1c..."}
#   )
#
class ErrorCode(Enum):
    # Validation Errors
    VALIDATION_EMPTY_CHAIN = "VALIDATION_001"
    VALIDATION_DUPLICATE_POSITION = "VALIDATION_002"
    VALIDATION_NEGATIVE_POSITION = "VALIDATION_003"
    VALIDATION_DISABLED_HOP = "VALIDATION_004"
    VALIDATION_INCOMPLETE_TUNNEL = "VALIDATION_005"
    VALIDATION_INVALID_TARGET = "VALIDATION_006"
    VALIDATION_MALFORMED_SPEC = "VALIDATION_007"

    # Hop Errors
    HOP_DIAL_TIMEOUT = "HOP_001"
    HOP_AUTH_REJECTED = "HOP_002"
    HOP_UNREACHABLE = "HOP_003"
    HOP_PROVIDER_UNAVAILABLE = "HOP_004"
    HOP_CANCELLED = "HOP_005"

    # Teardown Errors
    TEARDOWN_FAILED = "TEARDOWN_001"

    # Chain Errors
    CHAIN_NOT_FOUND = "CHAIN_001"
    CHAIN_INVALID_STATE = "CHAIN_002"

    # System Errors
    SYSTEM_INTERNAL_ERROR = "SYSTEM_001"


class ChainForgeError(Exception):
    """
    Base exception class for ChainForge with structured error information.

    Attributes:
        code: ErrorCode enum value (e.g., "HOP_001")
        message: Human-readable error message
        details: Optional dictionary with additional context
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}

        # Build exception message with code for easy debugging
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for JSON serialization.

        Returns:
            Dictionary with code, message and details
        """
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


# ============================================================================
# Convenience Functions
# ============================================================================

def handle_error(error: Exception, context: Optional[str] = None) -> ChainForgeError:
    """
    Convert a generic exception to a ChainForgeError.

    Used where a collaborator raises something outside the taxonomy and the
    orchestrator still needs a structured value to record.

    Args:
        error: The original exception
        context: Optional context string (e.g., "while establishing hop 2")

    Returns:
        ChainForgeError with a SYSTEM code and the original type in details
    """
    if isinstance(error, ChainForgeError):
        return error

    error_type = type(error).__name__
    message = str(error) or error_type
    if context:
        message = f"{context}: {message}"

    return ChainForgeError(
        code=ErrorCode.SYSTEM_INTERNAL_ERROR,
        message=message,
        details={
            "original_type": error_type,
            "original_message": str(error),
        },
    )


__all__ = ["ErrorCode", "ChainForgeError", "handle_error"]
