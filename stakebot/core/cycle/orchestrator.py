"""
Cycle Orchestrator

Runs one claim -> approve -> stake cycle against the ledger. Each
transaction submission is wrapped by the RetryExecutor and preceded by a
fee gate check; confirmed receipts and amounts feed the MetricsAggregator.
"""

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from ...config import Settings
from ...logging_config import cycle_context
from ...providers.base import LedgerClient, TokenInfo, TxReceipt
from ...services.events import EventBus, EventType, Severity
from ..metrics import MetricsAggregator
from ..policy.fee_policy import FeeGate
from ..recovery.errors import BotError, ErrorKind, FeeCeilingExceededError
from ..recovery.executor import RetryExecutor, SleepFunc
from .models import CycleOutcome, CycleResult, CycleState
from .state_machine import CycleStateMachine

SettingsProvider = Callable[[], Settings]


@contextmanager
def _step_errors(failure_message: str) -> Iterator[None]:
    """Tag untyped failures raised inside a step as contract errors."""
    try:
        yield
    except BotError:
        raise
    except Exception as exc:
        raise BotError(ErrorKind.CONTRACT_ERROR, f"{failure_message}: {exc}", cause=exc) from exc


@dataclass
class _CycleContext:
    """Everything a single cycle works from; built once when the cycle starts."""

    config: Settings
    token: TokenInfo
    machine: CycleStateMachine
    result: CycleResult
    executor: RetryExecutor
    gate: FeeGate
    min_stake: Optional[int]


class CycleOrchestrator:
    """
    Drives the claim -> approve -> stake state machine.

    Cycles are strictly sequential: calling ``run_cycle`` while another
    cycle is in progress raises RuntimeError. Settings are read once per
    cycle through ``settings_provider``, so a configuration update never
    changes a cycle that has already started.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        metrics: MetricsAggregator,
        events: EventBus,
        settings_provider: SettingsProvider,
        token: Optional[TokenInfo] = None,
        sleep: SleepFunc = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        self.ledger = ledger
        self.metrics = metrics
        self.events = events
        self.token = token or TokenInfo()
        self._settings_provider = settings_provider
        self._sleep = sleep
        self.logger = logger or logging.getLogger(__name__)

        self._in_progress = False
        self.last_result: Optional[CycleResult] = None

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    async def run_cycle(self) -> CycleResult:
        """
        Run one full cycle.

        Returns:
            The CycleResult for completed and fee-skipped cycles

        Raises:
            BotError: When the cycle fails; the failure is recorded first
            RuntimeError: When a cycle is already running
        """
        if self._in_progress:
            raise RuntimeError("A claim and stake cycle is already in progress")

        self._in_progress = True
        ctx = self._new_context()
        try:
            with cycle_context(ctx.result.cycle_id):
                return await self._run(ctx)
        finally:
            self.last_result = ctx.result
            self._in_progress = False

    def _new_context(self) -> _CycleContext:
        config = self._settings_provider()
        token = self.token
        return _CycleContext(
            config=config,
            token=token,
            machine=CycleStateMachine(logger=self.logger),
            result=CycleResult(),
            executor=RetryExecutor(
                base_delay_ms=config.base_delay_ms,
                max_attempts=config.max_retries,
                sleep=self._sleep,
                events=self.events,
            ),
            gate=FeeGate(self.ledger, config.max_gas_price_wei()),
            min_stake=config.min_stake_base_units(token.decimals),
        )

    async def _run(self, ctx: _CycleContext) -> CycleResult:
        result = ctx.result
        await self.events.emit(
            EventType.CYCLE_START,
            "Starting claim and stake cycle",
            cycle_id=result.cycle_id,
        )

        try:
            await self._execute(ctx)
        except FeeCeilingExceededError as exc:
            return await self._skip(ctx, exc)
        except BotError as exc:
            await self._fail(ctx, exc)
            raise
        except Exception as exc:
            error = BotError(ErrorKind.UNKNOWN_ERROR, f"Claim and stake cycle failed: {exc}", cause=exc)
            await self._fail(ctx, error)
            raise error from exc

        return await self._complete(ctx)

    async def _execute(self, ctx: _CycleContext) -> None:
        pending = await self._check_rewards(ctx)
        if pending is None:
            return

        claimed = await self._claim(ctx)
        if claimed <= 0:
            self._transition(ctx, CycleState.COMPLETED, "nothing was claimed")
            return

        await self._approve(ctx, claimed)
        await self._stake(ctx, claimed)

    # =========================================================================
    # Steps
    # =========================================================================

    async def _check_rewards(self, ctx: _CycleContext) -> Optional[int]:
        """Read and gate the pending rewards; None means the cycle is done."""

        self._transition(ctx, CycleState.CHECKING_REWARDS)
        pending = await self._read_pending_rewards()
        ctx.result.pending_rewards = pending

        if pending <= 0:
            self.logger.info("No pending rewards to claim")
            ctx.result.outcome = CycleOutcome.NO_REWARDS
            self._transition(ctx, CycleState.NO_REWARDS)
            self._transition(ctx, CycleState.COMPLETED)
            return None

        self.logger.info(f"Pending rewards detected: {ctx.token.format_amount(pending)} {ctx.token.symbol}")

        if ctx.min_stake is not None and pending < ctx.min_stake:
            self.logger.info(
                f"Pending rewards {ctx.token.format_amount(pending)} {ctx.token.symbol} are below "
                f"the minimum stake amount {ctx.config.min_stake_amount}"
            )
            ctx.result.outcome = CycleOutcome.BELOW_THRESHOLD
            self._transition(ctx, CycleState.BELOW_THRESHOLD)
            self._transition(ctx, CycleState.COMPLETED)
            return None

        await ctx.gate.check()
        return pending

    async def _read_pending_rewards(self) -> int:
        # Advisory read: a failure counts as nothing pending.
        try:
            return int(await self.ledger.read_pending_rewards(self.ledger.account))
        except Exception as exc:  # noqa: BLE001
            self.logger.warning(f"Could not read pending rewards, treating as zero: {exc}")
            return 0

    async def _claim(self, ctx: _CycleContext) -> int:
        self._transition(ctx, CycleState.CLAIMING)
        token_address = ctx.config.token_contract_address
        account = self.ledger.account

        with _step_errors("Failed to claim rewards"):
            balance_before = int(await self.ledger.read_balance(token_address, account))
            tx_hash = await ctx.executor.execute(self.ledger.submit_claim, "Claim rewards")
            await self._confirm(ctx, tx_hash, "Claim")
            balance_after = int(await self.ledger.read_balance(token_address, account))

        claimed = max(balance_after - balance_before, 0)
        ctx.result.claimed = claimed
        self._transition(ctx, CycleState.CLAIMED)

        if claimed > 0:
            self.logger.info(f"Claimed {ctx.token.format_amount(claimed)} {ctx.token.symbol} (tx {tx_hash})")
            if ctx.config.enable_metrics:
                self.metrics.record_claimed(claimed)
        else:
            self.logger.warning(f"Claim {tx_hash} confirmed but the token balance did not increase")
        return claimed

    async def _approve(self, ctx: _CycleContext, amount: int) -> None:
        self._transition(ctx, CycleState.APPROVING)
        spender = ctx.config.staking_contract_address

        with _step_errors("Failed to approve tokens"):
            allowance = int(await self.ledger.read_allowance(self.ledger.account, spender))
            if allowance >= amount:
                self.logger.debug(f"Allowance {allowance} already covers {amount}, skipping approval")
                return

            await ctx.gate.check()
            tx_hash = await ctx.executor.execute(
                lambda: self.ledger.submit_approve(spender, amount),
                "Approve tokens",
            )
            await self._confirm(ctx, tx_hash, "Approve")

        ctx.result.approved = True
        self.logger.info(f"Approved {ctx.token.format_amount(amount)} {ctx.token.symbol} for staking (tx {tx_hash})")

    async def _stake(self, ctx: _CycleContext, amount: int) -> None:
        self._transition(ctx, CycleState.STAKING)

        # The threshold applies to what was actually claimed, not only to the
        # pending amount read before the claim.
        if ctx.min_stake is not None and amount < ctx.min_stake:
            self.logger.info(
                f"Claimed {ctx.token.format_amount(amount)} {ctx.token.symbol} is below "
                f"the minimum stake amount {ctx.config.min_stake_amount}, not staking"
            )
            ctx.result.outcome = CycleOutcome.BELOW_THRESHOLD
            self._transition(ctx, CycleState.COMPLETED, "claimed amount below minimum stake")
            return

        recipient = self.ledger.account
        with _step_errors("Failed to stake tokens"):
            await ctx.gate.check()
            tx_hash = await ctx.executor.execute(
                lambda: self.ledger.submit_stake(recipient, amount),
                "Stake tokens",
            )
            await self._confirm(ctx, tx_hash, "Stake")

        ctx.result.staked = amount
        if ctx.config.enable_metrics:
            self.metrics.record_staked(amount)
        self.logger.info(f"Staked {ctx.token.format_amount(amount)} {ctx.token.symbol} (tx {tx_hash})")
        self._transition(ctx, CycleState.COMPLETED)

    async def _confirm(self, ctx: _CycleContext, tx_hash: str, step: str) -> TxReceipt:
        """Wait for a receipt; a non-success receipt fails the step."""

        timeout = ctx.config.confirmation_timeout_seconds
        self.logger.info(f"Waiting for {step.lower()} transaction {tx_hash}")
        try:
            receipt = await self.ledger.wait_for_confirmation(tx_hash, timeout)
        except BotError:
            raise
        except Exception as exc:
            raise BotError(
                ErrorKind.NETWORK_ERROR,
                f"{step} transaction {tx_hash} was not confirmed: {exc}",
                cause=exc,
                details={"tx_hash": tx_hash},
            ) from exc

        if not receipt.success:
            raise BotError(
                ErrorKind.CONTRACT_ERROR,
                f"{step} transaction {tx_hash} failed on-chain",
                details={"tx_hash": tx_hash, "block_number": receipt.block_number},
            )

        ctx.result.tx_hashes.append(tx_hash)
        if ctx.config.enable_metrics:
            self.metrics.record_gas(receipt.gas_used, receipt.effective_price)

        await self.events.emit(
            EventType.TX_CONFIRMED,
            f"{step} transaction confirmed",
            Severity.SUCCESS,
            step=step.lower(),
            tx_hash=tx_hash,
            gas_used=receipt.gas_used,
            effective_price=receipt.effective_price,
            block_number=receipt.block_number,
        )
        return receipt

    # =========================================================================
    # Terminal states
    # =========================================================================

    async def _complete(self, ctx: _CycleContext) -> CycleResult:
        result = ctx.result
        result.final_state = ctx.machine.current_state
        result.transitions = ctx.machine.history
        result.completed_at = _now()
        self.metrics.record_success(at=result.completed_at)

        self.logger.info(
            f"Claim and stake cycle completed in {result.duration_seconds:.2f}s ({result.outcome.value})"
        )
        await self.events.emit(
            EventType.CYCLE_COMPLETE,
            "Claim and stake cycle completed",
            Severity.SUCCESS,
            cycle_id=result.cycle_id,
            outcome=result.outcome.value,
            claimed=ctx.token.format_amount(result.claimed),
            staked=ctx.token.format_amount(result.staked),
            symbol=ctx.token.symbol,
            tx_hashes=list(result.tx_hashes),
            duration_seconds=result.duration_seconds,
        )
        return result

    async def _skip(self, ctx: _CycleContext, error: FeeCeilingExceededError) -> CycleResult:
        result = ctx.result
        self._transition(ctx, CycleState.SKIPPED, error.message)
        result.outcome = CycleOutcome.FEE_SKIPPED
        result.final_state = ctx.machine.current_state
        result.transitions = ctx.machine.history
        result.completed_at = _now()
        result.error = error
        self.metrics.record_skip(at=result.completed_at)

        await self.events.emit(
            EventType.CYCLE_SKIPPED,
            f"Claim and stake cycle skipped: {error.message}",
            Severity.WARNING,
            cycle_id=result.cycle_id,
            current_wei=error.current_wei,
            ceiling_wei=error.ceiling_wei,
            claimed=ctx.token.format_amount(result.claimed),
        )
        return result

    async def _fail(self, ctx: _CycleContext, error: BotError) -> None:
        result = ctx.result
        if ctx.machine.can_transition_to(CycleState.FAILED):
            self._transition(ctx, CycleState.FAILED, error.message)
        result.outcome = CycleOutcome.FAILED
        result.final_state = ctx.machine.current_state
        result.transitions = ctx.machine.history
        result.completed_at = _now()
        result.error = error
        self.metrics.record_failure(at=result.completed_at)

        self.logger.error(f"Claim and stake cycle failed ({error.kind.value}): {error.message}")
        await self.events.emit(
            EventType.CYCLE_FAILED,
            f"Claim and stake cycle failed: {error.message}",
            Severity.ERROR,
            cycle_id=result.cycle_id,
            kind=error.kind.value,
            error=error.message,
        )

    def _transition(self, ctx: _CycleContext, state: CycleState, reason: Optional[str] = None) -> None:
        ctx.machine.transition_to(state, reason)
        ctx.result.final_state = state


def _now() -> datetime:
    return datetime.now(timezone.utc)
