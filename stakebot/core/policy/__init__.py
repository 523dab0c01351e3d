"""
Policy Module

Economic gates evaluated before any state-mutating transaction.
"""

from .fee_policy import FeeGate, format_gwei

__all__ = [
    "FeeGate",
    "format_gwei",
]
