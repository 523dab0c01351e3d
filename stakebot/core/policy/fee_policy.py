"""
Fee Policy

Gates state-mutating transactions on the live network fee.
"""

import logging
from decimal import Decimal
from typing import Optional

from ...config import GWEI_DECIMALS
from ...providers.base import LedgerClient
from ..recovery.errors import FeeCeilingExceededError


def format_gwei(wei: int) -> str:
    return f"{Decimal(wei).scaleb(-GWEI_DECIMALS).normalize():f}"


class FeeGate:
    """
    Blocks an operation when the network fee is above the configured ceiling.

    The gate:
    - Always passes when no ceiling is configured
    - Reads a fresh fee estimate on every check (no caching)
    - Compares integer wei values, never floats
    - Fails open when the estimate cannot be read; only a confirmed reading
      above the ceiling blocks
    """

    def __init__(
        self,
        ledger: LedgerClient,
        max_gas_price_wei: Optional[int],
        logger: Optional[logging.Logger] = None,
    ):
        self.ledger = ledger
        self.max_gas_price_wei = max_gas_price_wei
        self.logger = logger or logging.getLogger(__name__)

    @property
    def enabled(self) -> bool:
        return self.max_gas_price_wei is not None

    async def check(self) -> None:
        """Return if the fee is acceptable, raise FeeCeilingExceededError otherwise."""

        if self.max_gas_price_wei is None:
            return

        try:
            current = int(await self.ledger.read_fee_estimate())
        except Exception as exc:  # noqa: BLE001
            self.logger.debug("Fee estimate unavailable, letting the operation through: %s", exc)
            return

        if current > self.max_gas_price_wei:
            current_gwei = format_gwei(current)
            ceiling_gwei = format_gwei(self.max_gas_price_wei)
            self.logger.warning("Gas price %s gwei is above the %s gwei ceiling", current_gwei, ceiling_gwei)
            raise FeeCeilingExceededError(
                current_wei=current,
                ceiling_wei=self.max_gas_price_wei,
                message=f"Gas price too high: {current_gwei} gwei > {ceiling_gwei} gwei",
            )
