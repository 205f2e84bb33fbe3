"""
Submission Orchestrator

Single-flight, rate-limited submission of the daily step count.

    IDLE -> RATE_LIMITED                      (rejected, back to IDLE)
    IDLE -> SUBMITTING -> AWAITING_CONFIRMATION -> COMPLETED | FAILED -> IDLE

Entry checks run before any network activity: empty input, submission in
progress, and the minimum interval since the previous accepted call. The
guard is reserved before the first await so a slow call cannot be raced into
a second submission. Only the confidential path retries, and only for
traffic protection ("circuit breaker") rejections.
"""

import asyncio
import logging
import math
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple

from ..config.network_config import (
    CONFIDENTIAL_GAS_LIMIT,
    MAX_UINT64,
    MIN_SUBMIT_INTERVAL_MS,
    RECEIPT_TIMEOUT,
    TRAFFIC_RETRY_DELAYS,
)
from ..config.settings import ContractAddresses, is_configured_address
from .encoder import ConfidentialEncoder
from .errors import classify_error, message_for
from .ledger import Signer, confidential_submit_calldata, plain_submit_calldata
from .models import (
    ContractKind,
    ErrorKind,
    RetryState,
    SessionSubmissionGuard,
    SubmissionOutcome,
    SubmissionRequest,
    SubmissionState,
)

logger = logging.getLogger(__name__)


def _now_ms() -> float:
    return time.time() * 1000


def parse_step_count(raw: Any) -> Optional[int]:
    """
    Parse user input into a step count.
    Zero is a valid check-in; None, blanks and malformed values return None.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw).strip()
        # ASCII digits only
        if not (text.isascii() and text.isdigit()):
            return None
        value = int(text)
    if value < 0 or value > MAX_UINT64:
        return None
    return value


class SubmissionOrchestrator:
    """
    Chooses the submission path, dispatches through the signer and waits for
    confirmation. Owns the session guard; one instance per session.

    Args:
        signer: Wallet collaborator
        encoder: Confidential encoder variant selected for the session
        contracts: Resolved contract addresses
        guard: Session guard (a fresh one by default)
        clock: Milliseconds since epoch
        sleep: Coroutine used for retry delays (seconds)
    """

    def __init__(
        self,
        signer: Signer,
        encoder: ConfidentialEncoder,
        contracts: ContractAddresses,
        guard: Optional[SessionSubmissionGuard] = None,
        clock: Callable[[], float] = _now_ms,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        retry_delays: Sequence[float] = TRAFFIC_RETRY_DELAYS,
        min_interval_ms: int = MIN_SUBMIT_INTERVAL_MS,
        receipt_timeout: float = RECEIPT_TIMEOUT,
    ):
        self.signer = signer
        self.encoder = encoder
        self.contracts = contracts
        self.guard = guard or SessionSubmissionGuard()
        self._clock = clock
        self._sleep = sleep
        self.retry_delays = tuple(retry_delays)
        self.min_interval_ms = min_interval_ms
        self.receipt_timeout = receipt_timeout
        self.state = SubmissionState.IDLE
        self.last_state = SubmissionState.IDLE

    def _transition(self, state: SubmissionState):
        logger.debug(f"Submission state {self.state.value} -> {state.value}")
        self.state = state
        if state != SubmissionState.IDLE:
            self.last_state = state

    def select_path(self) -> Optional[Tuple[ContractKind, str]]:
        """Confidential contract first, then plain; None when neither is configured"""
        if is_configured_address(self.contracts.enc_rewards):
            return ContractKind.CONFIDENTIAL, self.contracts.enc_rewards
        if is_configured_address(self.contracts.rewards):
            return ContractKind.PLAIN, self.contracts.rewards
        return None

    async def submit(self, step_input: Any) -> SubmissionOutcome:
        """
        Submit today's step count.

        Args:
            step_input: Raw user input (int or digit string); "0" is a check-in

        Returns:
            SubmissionOutcome with the transaction details or the classified error
        """
        steps = parse_step_count(step_input)
        if steps is None:
            logger.warning(f"Rejected step input: {step_input!r}")
            return SubmissionOutcome.failure(ErrorKind.EMPTY_INPUT, message_for(ErrorKind.EMPTY_INPUT))

        if self.guard.is_submitting:
            logger.warning("Submission already in progress")
            return SubmissionOutcome.failure(ErrorKind.ALREADY_IN_PROGRESS,
                                             message_for(ErrorKind.ALREADY_IN_PROGRESS))

        now = self._clock()
        elapsed = now - self.guard.last_submit_timestamp
        if elapsed < self.min_interval_ms:
            remaining = math.ceil((self.min_interval_ms - elapsed) / 1000)
            self._transition(SubmissionState.RATE_LIMITED)
            self._transition(SubmissionState.IDLE)
            logger.warning(f"Rate limited, retry in {remaining}s")
            return SubmissionOutcome.failure(
                ErrorKind.RATE_LIMITED, message_for(ErrorKind.RATE_LIMITED, str(remaining)),
                retry_after_seconds=remaining
            )

        # Reserve the guard before any I/O
        self.guard.is_submitting = True
        self.guard.last_submit_timestamp = now

        try:
            route = self.select_path()
            if route is None:
                self._transition(SubmissionState.FAILED)
                logger.error("No contract address configured")
                return SubmissionOutcome.failure(ErrorKind.NO_CONTRACT_CONFIGURED,
                                                 message_for(ErrorKind.NO_CONTRACT_CONFIGURED))

            kind, address = route
            logger.info(f"Submitting {steps} steps via {kind.value} contract {address}")
            if kind == ContractKind.CONFIDENTIAL:
                return await self._submit_confidential(address, steps)
            return await self._submit_plain(address, steps)
        finally:
            self.guard.is_submitting = False
            self._transition(SubmissionState.IDLE)

    async def _submit_confidential(self, address: str, steps: int) -> SubmissionOutcome:
        self._transition(SubmissionState.SUBMITTING)
        try:
            user = await self.signer.get_address()
            payload = await self.encoder.encode(address, user, steps)
        except Exception as e:
            return self._fail(e, ContractKind.CONFIDENTIAL, attempts=0)

        request = SubmissionRequest(user_address=user, step_count=steps,
                                    target_kind=ContractKind.CONFIDENTIAL, contract_address=address)
        logger.debug(f"Encrypted handle {payload.handle} ({self.encoder.name})")
        tx = {
            "to": address,
            "data": confidential_submit_calldata(payload),
            "gas": CONFIDENTIAL_GAS_LIMIT,
        }
        return await self._dispatch(request, tx, allow_retry=True)

    async def _submit_plain(self, address: str, steps: int) -> SubmissionOutcome:
        self._transition(SubmissionState.SUBMITTING)
        try:
            user = await self.signer.get_address()
        except Exception as e:
            return self._fail(e, ContractKind.PLAIN, attempts=0)

        request = SubmissionRequest(user_address=user, step_count=steps,
                                    target_kind=ContractKind.PLAIN, contract_address=address)
        tx = {"to": address, "data": plain_submit_calldata(steps)}
        return await self._dispatch(request, tx, allow_retry=False)

    async def _dispatch(self, request: SubmissionRequest, tx: Dict[str, Any],
                        allow_retry: bool) -> SubmissionOutcome:
        """Send and confirm, re-sending the same payload on traffic protection rejections"""
        retry = RetryState()
        max_attempts = 1 + len(self.retry_delays) if allow_retry else 1

        while True:
            try:
                self._transition(SubmissionState.SUBMITTING)
                logger.info(f"Sending transaction (attempt {retry.attempt}/{max_attempts})")
                tx_hash = await self.signer.send_transaction(tx)

                self._transition(SubmissionState.AWAITING_CONFIRMATION)
                receipt = await self.signer.wait_for_receipt(tx_hash, timeout=self.receipt_timeout)
            except Exception as e:
                classified = classify_error(e)
                retry.classified_error = classified
                logger.error(f"Attempt {retry.attempt} failed: {classified.kind.value}")

                if allow_retry and classified.is_traffic_protection and retry.attempt < max_attempts:
                    delay = self.retry_delays[retry.attempt - 1]
                    retry.next_delay_ms = int(delay * 1000)
                    logger.warning(f"Traffic protection triggered, waiting {delay}s before retrying")
                    await self._sleep(delay)
                    retry.attempt += 1
                    continue

                self._transition(SubmissionState.FAILED)
                return SubmissionOutcome.failure(
                    classified.kind, classified.message,
                    path=request.target_kind, attempts=retry.attempt
                )

            self._transition(SubmissionState.COMPLETED)
            block = receipt.get("blockNumber")
            gas_used = receipt.get("gasUsed")
            logger.info(f"Confirmed {tx_hash} in block {block}, gas used {gas_used}")
            return SubmissionOutcome(
                status="success",
                transaction_id=tx_hash,
                confirmed_block=block,
                gas_used=gas_used,
                path=request.target_kind,
                attempts=retry.attempt,
            )

    def _fail(self, exc: Exception, path: ContractKind, attempts: int) -> SubmissionOutcome:
        classified = classify_error(exc)
        logger.error(f"Submission failed before dispatch: {classified.kind.value}")
        self._transition(SubmissionState.FAILED)
        return SubmissionOutcome.failure(classified.kind, classified.message, path=path, attempts=attempts)
