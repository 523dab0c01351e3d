"""
Error Recovery Module

Provides error classification and retry logic for resilient execution of
ledger operations.
"""

from .errors import (
    BotError,
    ErrorKind,
    FeeCeilingExceededError,
    classify_error,
)
from .executor import RetryExecutor

__all__ = [
    # Errors
    "BotError",
    "ErrorKind",
    "FeeCeilingExceededError",
    "classify_error",
    # Executor
    "RetryExecutor",
]
