"""
Shared fixtures: an in-memory ledger, a recording sleep and an event
collector, so no test touches a network or waits on the wall clock.
"""

import asyncio
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

import pytest

from stakebot.config import Settings
from stakebot.providers.base import LedgerClient, TokenInfo, TxReceipt
from stakebot.services.events import BotEvent, EventBus, EventType

ACCOUNT = "0x1234567890123456789012345678901234567890"
GWEI = 10**9


class FakeLedger(LedgerClient):
    """In-memory ledger with scriptable failures.

    Claiming moves all pending rewards into the token balance, approving sets
    the allowance and staking moves the amount out of the balance.
    """

    name = "fake"

    def __init__(
        self,
        pending: int = 0,
        balance: int = 0,
        allowance: int = 0,
        native_balance: int = 10**18,
        fee: int = 1 * GWEI,
        block_number: int = 1_000,
        token_info: Optional[TokenInfo] = None,
        gas_used: int = 100_000,
        effective_price: int = 1 * GWEI,
    ):
        self.account = ACCOUNT
        self.pending = pending
        self.balance = balance
        self.allowance = allowance
        self.native_balance = native_balance
        self.fees: List[int] = [fee]
        self.block_number = block_number
        self.token_info = token_info or TokenInfo(decimals=18, symbol="VVV")
        self.gas_used = gas_used
        self.effective_price = effective_price

        # Amount a claim actually delivers; defaults to everything pending.
        self.claim_amount: Optional[int] = None
        self.staked = 0
        self.submitted: List[str] = []
        self.calls: Dict[str, int] = defaultdict(int)
        self.reverted: set[str] = set()
        self.confirmation_gate: Optional[asyncio.Event] = None
        self.closed = False

        self._queued: Dict[str, List[BaseException]] = defaultdict(list)
        self._persistent: Dict[str, BaseException] = {}
        self._tx_kinds: Dict[str, str] = {}

    # Failure scripting
    def queue_failures(self, method: str, *errors: BaseException) -> None:
        """Fail the next ``len(errors)`` calls of ``method`` in order."""
        self._queued[method].extend(errors)

    def set_failure(self, method: str, error: Optional[BaseException]) -> None:
        """Fail every call of ``method`` until cleared with None."""
        if error is None:
            self._persistent.pop(method, None)
        else:
            self._persistent[method] = error

    def _enter(self, method: str) -> None:
        self.calls[method] += 1
        if self._queued[method]:
            raise self._queued[method].pop(0)
        if method in self._persistent:
            raise self._persistent[method]

    def _tx(self, kind: str) -> str:
        self.submitted.append(kind)
        tx_hash = f"0x{kind}{len(self.submitted):04d}"
        self._tx_kinds[tx_hash] = kind
        return tx_hash

    # Reads
    async def read_pending_rewards(self, account: str) -> int:
        self._enter("read_pending_rewards")
        return self.pending

    async def read_allowance(self, owner: str, spender: str) -> int:
        self._enter("read_allowance")
        return self.allowance

    async def read_balance(self, token: str, account: str) -> int:
        self._enter("read_balance")
        return self.balance

    async def read_native_balance(self, account: str) -> int:
        self._enter("read_native_balance")
        return self.native_balance

    async def read_fee_estimate(self) -> int:
        self._enter("read_fee_estimate")
        if len(self.fees) > 1:
            return self.fees.pop(0)
        return self.fees[0]

    async def read_block_number(self) -> int:
        self._enter("read_block_number")
        return self.block_number

    async def read_token_info(self, token: str) -> TokenInfo:
        self._enter("read_token_info")
        return self.token_info

    # Writes
    async def submit_claim(self) -> str:
        self._enter("submit_claim")
        amount = self.pending if self.claim_amount is None else self.claim_amount
        self.balance += amount
        self.pending = 0
        return self._tx("claim")

    async def submit_approve(self, spender: str, amount: int) -> str:
        self._enter("submit_approve")
        self.allowance = amount
        return self._tx("approve")

    async def submit_stake(self, recipient: str, amount: int) -> str:
        self._enter("submit_stake")
        self.balance -= amount
        self.staked += amount
        return self._tx("stake")

    async def wait_for_confirmation(self, tx_hash: str, timeout: float) -> TxReceipt:
        self._enter("wait_for_confirmation")
        if self.confirmation_gate is not None:
            await self.confirmation_gate.wait()
        kind = self._tx_kinds.get(tx_hash, "")
        return TxReceipt(
            tx_hash=tx_hash,
            success=kind not in self.reverted,
            gas_used=self.gas_used,
            effective_price=self.effective_price,
            block_number=self.block_number,
        )

    async def close(self) -> None:
        self.closed = True


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays and returns at once."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class ControlledSleep:
    """Returns immediately for the first ``immediate`` calls, then blocks
    until cancelled, which is how timer loops are parked in tests."""

    def __init__(self, immediate: int = 0) -> None:
        self.calls: List[float] = []
        self.immediate = immediate

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if len(self.calls) <= self.immediate:
            return
        await asyncio.Event().wait()


class EventCollector:
    def __init__(self) -> None:
        self.events: List[BotEvent] = []

    def __call__(self, event: BotEvent) -> None:
        self.events.append(event)

    def types(self) -> List[EventType]:
        return [e.type for e in self.events]

    def of_type(self, event_type: EventType) -> List[BotEvent]:
        return [e for e in self.events if e.type == event_type]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def make_ledger() -> Callable[..., FakeLedger]:
    return FakeLedger


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def sleeps() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_controlled_sleep() -> Callable[..., ControlledSleep]:
    return ControlledSleep


@pytest.fixture
def collector() -> EventCollector:
    return EventCollector()


@pytest.fixture
def events(collector: EventCollector) -> EventBus:
    return EventBus(sinks=[collector], log_events=False)


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Settings with both economic gates off unless a test turns them on."""

    def _make(**overrides: Any) -> Settings:
        values: Dict[str, Any] = {
            "min_stake_amount": None,
            "max_gas_price_gwei": None,
            "alert_webhook_url": None,
            "ledger_factory": None,
        }
        values.update(overrides)
        return Settings(**values)

    return _make
