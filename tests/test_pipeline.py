"""
ExecutionPipeline: simulate, the two send modes and the confirmation loop.
"""

import dataclasses

import pytest
from solders.keypair import Keypair

from easy_solana.core.client import SimulationResult
from easy_solana.core.exceptions import (
    ConfirmationTimeoutError,
    RpcError,
    StaleBlockhashError,
    TransactionExpiredError,
    TransactionFailedError,
)
from easy_solana.core.pipeline import ConfirmationPolicy, ExecutionPipeline, PipelineState
from easy_solana.core.transactions import TransactionBuilder
from tests.conftest import status

OVERDRAFT_LOGS = (
    "Program 11111111111111111111111111111111 invoke [1]",
    "Transfer: insufficient lamports 5000, need 1000000000000",
    "Program 11111111111111111111111111111111 failed: custom program error: 0x1",
)


@pytest.fixture
def pipeline(fake_client, fake_clock):
    return ExecutionPipeline(fake_client, sleep=fake_clock.sleep, clock=fake_clock)


@pytest.fixture
def envelope(payer, anchor):
    return TransactionBuilder(payer).transfer_sol("0.01", payer, Keypair().pubkey()).build(anchor)


class TestSimulate:

    @pytest.mark.asyncio
    async def test_overdraft_is_reported_not_raised(self, pipeline, fake_client, envelope):
        fake_client.simulation = SimulationResult(
            error="InstructionError(0, Custom(1))",
            transaction_logs=OVERDRAFT_LOGS,
            units_consumed=150,
        )
        result = await pipeline.simulate(envelope)
        assert not result.succeeded
        assert result.error
        assert result.transaction_logs
        assert result.units_consumed == 150
        assert result.failing_log_line == OVERDRAFT_LOGS[1]
        assert pipeline.state is PipelineState.SIMULATED
        assert fake_client.sent == []

    @pytest.mark.asyncio
    async def test_prepare_sizes_compute_limit(self, pipeline, payer):
        builder = TransactionBuilder(payer).transfer_sol("0.01", payer, Keypair().pubkey())
        envelope, result = await pipeline.prepare(builder)
        assert result.succeeded
        assert envelope.compute_unit_limit == result.suggested_compute_limit()
        assert envelope.instruction_count == 2

    @pytest.mark.asyncio
    async def test_prepare_keeps_explicit_limit(self, pipeline, payer):
        builder = TransactionBuilder(payer).set_compute_limit(5_000).transfer_sol("0.01", payer, Keypair().pubkey())
        envelope, _ = await pipeline.prepare(builder)
        assert envelope.compute_unit_limit == 5_000

    @pytest.mark.asyncio
    async def test_prepare_resizes_on_every_call(self, pipeline, fake_client, payer):
        builder = TransactionBuilder(payer).transfer_sol("0.01", payer, Keypair().pubkey())
        first, _ = await pipeline.prepare(builder)
        assert first.compute_unit_limit == 496

        builder.transfer_sol("0.02", payer, Keypair().pubkey())
        fake_client.simulation = SimulationResult(error=None, transaction_logs=(), units_consumed=300_000)
        second, _ = await pipeline.prepare(builder)

        assert second.compute_unit_limit == 330_001
        assert second.instruction_count == 3
        assert builder.compute_unit_limit is None

    @pytest.mark.asyncio
    async def test_simulate_can_request_inner_instructions(self, pipeline, fake_client, envelope):
        await pipeline.simulate(envelope, inner_instructions=True)
        await pipeline.simulate(envelope)
        assert fake_client.simulated_with_inner == [True, False]

    def test_suggested_limit(self):
        assert SimulationResult(None, (), 1000).suggested_compute_limit(0.1) == 1101
        assert SimulationResult(None, (), 0).suggested_compute_limit() == 1_400_000
        assert SimulationResult(None, (), 1_390_000).suggested_compute_limit() == 1_400_000

    def test_failing_log_line_absent(self):
        assert SimulationResult(None, ("Program log: hi",), 10).failing_log_line is None


class TestSendUnchecked:

    @pytest.mark.asyncio
    async def test_skips_preflight(self, pipeline, fake_client, envelope):
        signature = await pipeline.send_unchecked(envelope)
        assert signature == envelope.signature
        assert fake_client.sent[0]["skip_preflight"] is True
        assert pipeline.state is PipelineState.SUBMITTED

    @pytest.mark.asyncio
    async def test_stale_anchor_is_not_submitted(self, pipeline, fake_client, envelope, stale_anchor):
        stale = dataclasses.replace(envelope, anchor=stale_anchor)
        with pytest.raises(StaleBlockhashError):
            await pipeline.send_unchecked(stale)
        assert fake_client.sent == []

    @pytest.mark.asyncio
    async def test_rejected_submission(self, pipeline, fake_client, envelope):
        fake_client.send_error = RpcError("sendTransaction", message="node unhealthy")
        with pytest.raises(RpcError):
            await pipeline.send_unchecked(envelope)
        assert pipeline.state is PipelineState.SUBMISSION_FAILED


class TestSendAndConfirm:

    @pytest.mark.asyncio
    async def test_confirms(self, pipeline, fake_client, fake_clock, envelope):
        fake_client.statuses = [None, status("processed"), status("confirmed")]
        signature = await pipeline.send_and_confirm(envelope)
        assert signature == envelope.signature
        assert fake_client.sent[0]["skip_preflight"] is False
        assert pipeline.state is PipelineState.CONFIRMED
        assert fake_clock.sleeps == [0.5, 0.75, 1.125]

    @pytest.mark.asyncio
    async def test_finalized_satisfies_confirmed(self, pipeline, fake_client, envelope):
        fake_client.statuses = [status("finalized")]
        await pipeline.send_and_confirm(envelope)
        assert pipeline.state is PipelineState.CONFIRMED

    @pytest.mark.asyncio
    async def test_backoff_is_capped(self, fake_client, fake_clock, envelope):
        pipeline = ExecutionPipeline(
            fake_client,
            ConfirmationPolicy(timeout_seconds=60),
            sleep=fake_clock.sleep,
            clock=fake_clock,
        )
        fake_client.statuses = [status("processed")] * 6 + [status("confirmed")]
        await pipeline.send_and_confirm(envelope)
        assert max(fake_clock.sleeps) == 2.0

    @pytest.mark.asyncio
    async def test_execution_failure(self, pipeline, fake_client, envelope):
        fake_client.statuses = [status("confirmed", error="InstructionError(0, Custom(1))")]
        with pytest.raises(TransactionFailedError) as excinfo:
            await pipeline.send_and_confirm(envelope)
        assert excinfo.value.signature == envelope.signature
        assert "Custom(1)" in excinfo.value.error

    @pytest.mark.asyncio
    async def test_timeout(self, fake_client, fake_clock, envelope):
        pipeline = ExecutionPipeline(
            fake_client,
            ConfirmationPolicy(timeout_seconds=2),
            sleep=fake_clock.sleep,
            clock=fake_clock,
        )
        fake_client.statuses = [status("processed")] * 10
        with pytest.raises(ConfirmationTimeoutError) as excinfo:
            await pipeline.send_and_confirm(envelope)
        assert isinstance(excinfo.value, TimeoutError)
        assert not isinstance(excinfo.value, TransactionExpiredError)
        assert pipeline.state is PipelineState.SUBMITTED

    @pytest.mark.asyncio
    async def test_expired(self, pipeline, fake_client, envelope):
        fake_client.block_height = envelope.anchor.last_valid_block_height + 1
        with pytest.raises(TransactionExpiredError):
            await pipeline.send_and_confirm(envelope)
        assert pipeline.state is PipelineState.EXPIRED

    @pytest.mark.asyncio
    async def test_stale_anchor_fails_before_submitting(self, pipeline, fake_client, envelope, stale_anchor):
        stale = dataclasses.replace(envelope, anchor=stale_anchor)
        with pytest.raises(StaleBlockhashError):
            await pipeline.send_and_confirm(stale)
        assert fake_client.sent == []
        assert pipeline.state is PipelineState.DRAFTED


class TestConfirmationPolicy:

    def test_defaults(self):
        policy = ConfirmationPolicy()
        assert policy.commitment == "confirmed"
        assert policy.timeout_seconds == 30.0

    def test_reached(self):
        policy = ConfirmationPolicy(commitment="finalized")
        assert not policy.reached("confirmed")
        assert policy.reached("finalized")
        assert not policy.reached(None)

    def test_rejects_unknown_commitment(self):
        with pytest.raises(ValueError):
            ConfirmationPolicy(commitment="max")
