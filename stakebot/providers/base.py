from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class TxReceipt:
    """Outcome of waiting for a submitted transaction"""

    tx_hash: str
    success: bool
    gas_used: int = 0
    effective_price: int = 0
    block_number: Optional[int] = None


@dataclass(frozen=True)
class TokenInfo:
    """Token metadata needed to convert and display amounts"""

    decimals: int = 18
    symbol: str = "TOKEN"

    def to_decimal(self, amount: int) -> Decimal:
        return Decimal(amount).scaleb(-self.decimals)

    def format_amount(self, amount: int) -> str:
        return f"{self.to_decimal(amount).normalize():f}"


class LedgerClient(ABC):
    """Capability set the bot consumes from the chain.

    Amounts are integers in base units (wei for the native currency and fees).
    Transaction handles are the hashes returned by the submit methods.
    """

    name: str = "ledger"
    account: str

    # Reads
    @abstractmethod
    async def read_pending_rewards(self, account: str) -> int:
        """Accrued, unclaimed rewards for an account"""
        pass

    @abstractmethod
    async def read_allowance(self, owner: str, spender: str) -> int:
        """Token allowance granted by owner to spender"""
        pass

    @abstractmethod
    async def read_balance(self, token: str, account: str) -> int:
        """ERC20 balance of an account"""
        pass

    @abstractmethod
    async def read_native_balance(self, account: str) -> int:
        """Native currency balance used to pay fees"""
        pass

    @abstractmethod
    async def read_fee_estimate(self) -> int:
        """Current network gas price in wei"""
        pass

    @abstractmethod
    async def read_block_number(self) -> int:
        """Latest block height"""
        pass

    @abstractmethod
    async def read_token_info(self, token: str) -> TokenInfo:
        """Token decimals and symbol"""
        pass

    # Writes
    @abstractmethod
    async def submit_claim(self) -> str:
        """Submit the reward claim transaction"""
        pass

    @abstractmethod
    async def submit_approve(self, spender: str, amount: int) -> str:
        """Submit an ERC20 approval"""
        pass

    @abstractmethod
    async def submit_stake(self, recipient: str, amount: int) -> str:
        """Submit the stake deposit"""
        pass

    @abstractmethod
    async def wait_for_confirmation(self, tx_hash: str, timeout: float) -> TxReceipt:
        """Block until the transaction is mined or the timeout elapses"""
        pass

    async def close(self) -> None:
        """Release transport resources"""
        return None


class SecretProvider(ABC):
    """Source of the signing key; the key is opaque to the bot"""

    @abstractmethod
    def obtain_signing_key(self) -> str:
        pass
