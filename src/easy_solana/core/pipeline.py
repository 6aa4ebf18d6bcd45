# src/easy_solana/core/pipeline.py

import asyncio
import enum
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

from solders.signature import Signature

from .client import SignatureStatus, SimulationResult, SolanaClient
from .exceptions import (
    ConfirmationTimeoutError,
    RpcError,
    TransactionExpiredError,
    TransactionFailedError,
)
from .constants import DEFAULT_BLOCKHASH_MAX_AGE_SECONDS
from .transactions import BlockhashAnchor, TransactionBuilder, TransactionEnvelope
from ..utils.logger import get_logger

logger = get_logger(__name__)

_COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


class PipelineState(enum.Enum):
    DRAFTED = "drafted"
    SIMULATED = "simulated"
    SUBMITTED = "submitted"
    SUBMISSION_FAILED = "submission_failed"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"


@dataclass(frozen=True)
class ConfirmationPolicy:
    """How send_and_confirm waits: target depth, poll schedule and overall deadline."""
    commitment: str = "confirmed"
    initial_poll_seconds: float = 0.5
    backoff_factor: float = 1.5
    max_poll_seconds: float = 2.0
    timeout_seconds: float = 30.0

    def __post_init__(self):
        if self.commitment not in _COMMITMENT_RANK:
            raise ValueError(f"Unknown commitment '{self.commitment}'")
        if self.initial_poll_seconds <= 0 or self.timeout_seconds <= 0:
            raise ValueError("Poll interval and timeout must be positive")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")

    def reached(self, confirmation_status: Optional[str]) -> bool:
        if confirmation_status is None:
            return False
        return _COMMITMENT_RANK.get(confirmation_status, -1) >= _COMMITMENT_RANK[self.commitment]

    def next_delay(self, delay: float) -> float:
        return min(delay * self.backoff_factor, self.max_poll_seconds)


class ExecutionPipeline:
    """
    Takes one logical submission through simulate -> send -> confirm.

    The two send modes are separate methods: send_unchecked returns as soon as
    the node accepts the bytes, send_and_confirm waits for the policy's
    commitment. Nothing is retried; a failed submission is reported and the
    caller decides what to do next.
    """

    def __init__(
        self,
        client: SolanaClient,
        policy: Optional[ConfirmationPolicy] = None,
        blockhash_max_age_seconds: float = DEFAULT_BLOCKHASH_MAX_AGE_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.policy = policy or ConfirmationPolicy()
        self.blockhash_max_age_seconds = blockhash_max_age_seconds
        self.state = PipelineState.DRAFTED
        self.signature: Optional[Signature] = None
        self.last_status: Optional[SignatureStatus] = None
        self._sleep = sleep
        self._clock = clock

    async def latest_anchor(self) -> BlockhashAnchor:
        blockhash, last_valid_block_height = await self.client.get_latest_blockhash()
        return BlockhashAnchor(
            blockhash=blockhash,
            last_valid_block_height=last_valid_block_height,
            max_age_seconds=self.blockhash_max_age_seconds,
        )

    async def build(self, builder: TransactionBuilder) -> TransactionEnvelope:
        """Fetches a fresh anchor and builds right away."""
        return builder.build(await self.latest_anchor())

    async def simulate(self, envelope: TransactionEnvelope, inner_instructions: bool = False) -> SimulationResult:
        result = await self.client.simulate_transaction(envelope.transaction, inner_instructions=inner_instructions)
        if self.state is PipelineState.DRAFTED:
            self.state = PipelineState.SIMULATED
        if result.error:
            logger.warning(
                f"Simulation failed: {result.error} "
                f"(units={result.units_consumed}, at: {result.failing_log_line})"
            )
        else:
            logger.info(f"Simulation ok, {result.units_consumed} compute units")
        return result

    async def prepare(
        self, builder: TransactionBuilder, headroom: float = 0.1
    ) -> Tuple[TransactionEnvelope, SimulationResult]:
        """
        Builds and simulates. When the builder has no explicit compute limit and
        the simulation succeeded, the transaction is rebuilt against the same
        anchor with a limit sized from units consumed. The builder keeps no
        limit, so a later prepare sizes again.
        """
        envelope = await self.build(builder)
        result = await self.simulate(envelope)
        if result.succeeded and builder.compute_unit_limit is None and result.units_consumed > 0:
            envelope = builder.build(envelope.anchor, compute_unit_limit=result.suggested_compute_limit(headroom))
        return envelope, result

    async def send_unchecked(self, envelope: TransactionEnvelope) -> Signature:
        """Submits without preflight and returns the signature; landing is not checked."""
        return await self._submit(envelope, skip_preflight=True)

    async def send_and_confirm(self, envelope: TransactionEnvelope) -> Signature:
        """
        Submits with preflight, then polls until the policy commitment is reached.

        Raises TransactionFailedError when the transaction landed with an error,
        TransactionExpiredError once the block height passes the anchor's last
        valid height, and ConfirmationTimeoutError when the policy deadline passes.
        """
        signature = await self._submit(envelope, skip_preflight=False)
        policy = self.policy
        deadline = self._clock() + policy.timeout_seconds
        delay = policy.initial_poll_seconds

        while True:
            await self._sleep(delay)
            status = await self.client.get_signature_status(signature)
            self.last_status = status

            if status is not None and status.error is not None:
                self.state = PipelineState.CONFIRMED
                logger.error(f"Transaction {signature} landed with error: {status.error}")
                raise TransactionFailedError(signature, status.error)
            if status is not None and policy.reached(status.confirmation_status):
                self.state = PipelineState.CONFIRMED
                logger.info(f"Transaction {signature} reached {status.confirmation_status}")
                return signature
            if status is None:
                block_height = await self.client.get_block_height()
                if block_height > envelope.anchor.last_valid_block_height:
                    self.state = PipelineState.EXPIRED
                    logger.warning(f"Transaction {signature} expired at block height {block_height}")
                    raise TransactionExpiredError(signature, envelope.anchor.last_valid_block_height)
            if self._clock() >= deadline:
                logger.warning(f"Gave up waiting for {signature} after {policy.timeout_seconds}s")
                raise ConfirmationTimeoutError(signature)
            delay = policy.next_delay(delay)

    async def _submit(self, envelope: TransactionEnvelope, skip_preflight: bool) -> Signature:
        envelope.anchor.ensure_fresh()
        try:
            signature = await self.client.send_raw_transaction(envelope.transaction, skip_preflight=skip_preflight)
        except RpcError:
            self.state = PipelineState.SUBMISSION_FAILED
            raise
        self.signature = signature
        self.state = PipelineState.SUBMITTED
        logger.info(f"Submitted {signature} (preflight={'off' if skip_preflight else 'on'})")
        return signature
