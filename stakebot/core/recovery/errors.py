"""
Error Classification

Defines the closed set of error kinds the bot reasons about and the single
tagged error type that every failure leaving the core is surfaced as.
"""

from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ErrorKind(str, Enum):
    """Kinds of failures for retry and escalation decisions."""

    NETWORK_ERROR = "NETWORK_ERROR"                # RPC/connectivity issues
    CONTRACT_ERROR = "CONTRACT_ERROR"              # Reverts, bad contract calls
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"  # Cannot pay for the transaction
    FEE_TOO_HIGH = "FEE_TOO_HIGH"                  # Network fee above ceiling
    UNKNOWN_ERROR = "UNKNOWN_ERROR"                # Unclassified

    @property
    def is_fatal(self) -> bool:
        """Fatal kinds cannot heal by retrying and stop the scheduler."""
        return self is ErrorKind.INSUFFICIENT_BALANCE


class BotError(Exception):
    """
    Tagged error carrying an ErrorKind.

    The wrapped cause is kept both as ``cause`` and as ``__cause__`` so
    tracebacks chain naturally.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause
        self.details = details or {}
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "cause": str(self.cause) if self.cause else None,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"BotError(kind={self.kind.value}, message={self.message!r})"


class FeeCeilingExceededError(BotError):
    """Raised by the fee gate when the live fee is above the configured ceiling."""

    def __init__(self, current_wei: int, ceiling_wei: int, message: Optional[str] = None):
        super().__init__(
            ErrorKind.FEE_TOO_HIGH,
            message or f"Gas price too high: {current_wei} wei > {ceiling_wei} wei",
            details={"current_wei": current_wei, "ceiling_wei": ceiling_wei},
        )
        self.current_wei = current_wei
        self.ceiling_wei = ceiling_wei


# Evaluated in order; the first group with a matching substring wins.
_CLASSIFICATION_RULES: Tuple[Tuple[ErrorKind, Tuple[str, ...]], ...] = (
    (ErrorKind.NETWORK_ERROR, ("network", "connection", "timeout")),
    (ErrorKind.INSUFFICIENT_BALANCE, ("insufficient", "balance")),
    (ErrorKind.FEE_TOO_HIGH, ("gas", "fee")),
    (ErrorKind.CONTRACT_ERROR, ("revert", "contract")),
)


def classify_error(error: BaseException) -> ErrorKind:
    """
    Classify an exception into an ErrorKind.

    Already-tagged errors keep their kind. Anything else is matched on its
    lower-cased message; unmatched messages resolve to UNKNOWN_ERROR.
    """
    if isinstance(error, BotError):
        return error.kind

    message = str(error).lower()
    for kind, patterns in _CLASSIFICATION_RULES:
        if any(p in message for p in patterns):
            return kind
    return ErrorKind.UNKNOWN_ERROR
