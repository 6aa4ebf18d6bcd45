# src/easy_solana/core/client.py

from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Optional, Sequence, Tuple

from solders.commitment_config import CommitmentLevel
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.rpc.config import RpcSimulateTransactionConfig
from solders.rpc.requests import SimulateVersionedTransaction
from solders.rpc.responses import SimulateTransactionResp
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed, Finalized, Processed
from solana.rpc.core import RPCException
from solana.rpc.types import TokenAccountOpts, TxOpts

from .constants import MAX_COMPUTE_UNIT_LIMIT
from .exceptions import RpcError
from .pubkeys import SolanaProgramAddresses
from ..utils.logger import get_logger, redact_endpoint

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30

_CONFIRMATION_NAMES = (
    (TransactionConfirmationStatus.Processed, "processed"),
    (TransactionConfirmationStatus.Confirmed, "confirmed"),
    (TransactionConfirmationStatus.Finalized, "finalized"),
)

_COMMITMENT_LEVELS = {
    Processed: CommitmentLevel.Processed,
    Confirmed: CommitmentLevel.Confirmed,
    Finalized: CommitmentLevel.Finalized,
}


@dataclass(frozen=True)
class RawAccount:
    """Owned snapshot of one account as returned by getAccountInfo."""
    address: Pubkey
    lamports: int
    owner: Pubkey
    executable: bool
    data: bytes


@dataclass(frozen=True)
class InnerInstruction:
    """A jsonParsed instruction invoked by a program during simulation."""
    program: str
    program_id: Pubkey
    info: Dict[str, Any]


@dataclass(frozen=True)
class SimulationResult:
    error: Optional[str]
    transaction_logs: Tuple[str, ...] = field(default_factory=tuple)
    units_consumed: int = 0
    inner_instructions: Tuple[InnerInstruction, ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def failing_log_line(self) -> Optional[str]:
        """The log line right before the first one mentioning 'failed', if any."""
        for index, line in enumerate(self.transaction_logs):
            if "failed" in line:
                return self.transaction_logs[index - 1] if index > 0 else line
        return None

    def suggested_compute_limit(self, headroom: float = 0.1) -> int:
        """units_consumed plus a safety margin, clamped to the per-transaction maximum."""
        if self.units_consumed <= 0:
            return MAX_COMPUTE_UNIT_LIMIT
        return min(MAX_COMPUTE_UNIT_LIMIT, int(self.units_consumed * (1 + headroom)) + 1)


@dataclass(frozen=True)
class SignatureStatus:
    signature: Signature
    slot: int
    confirmation_status: Optional[str]
    error: Optional[str]


class SolanaClient:
    """
    Thin async wrapper around solana-py's AsyncClient.

    Every call maps the RPC response into a plain record and turns transport
    or node failures into RpcError. Nothing is retried here; callers decide.
    """

    def __init__(
        self,
        rpc_endpoint: str,
        commitment: Commitment = Confirmed,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        async_client: Optional[AsyncClient] = None,
    ) -> None:
        self.rpc_endpoint = rpc_endpoint
        self.commitment = commitment
        self.timeout_seconds = timeout_seconds
        if async_client is None:
            async_client = AsyncClient(rpc_endpoint, commitment=commitment, timeout=timeout_seconds)
        self.async_client = async_client
        logger.info(f"SolanaClient initialized: {redact_endpoint(rpc_endpoint)} @ {commitment}")

    @classmethod
    def from_settings(cls, settings) -> "SolanaClient":
        return cls(
            settings.rpc_endpoint,
            commitment=settings.commitment,
            timeout_seconds=settings.rpc_timeout_seconds,
        )

    async def __aenter__(self) -> "SolanaClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        try:
            await self.async_client.close()
            logger.info("SolanaClient connection closed.")
        except Exception as e:
            logger.warning(f"Error closing SolanaClient: {e}")

    async def _call(self, method: str, awaitable: Awaitable[Any]) -> Any:
        try:
            return await awaitable
        except (SolanaRpcException, RPCException) as e:
            logger.warning(f"RPC {method} failed: {e}")
            raise RpcError(method, e) from e

    async def get_account_info(self, pubkey: Pubkey) -> Optional[RawAccount]:
        resp = await self._call(
            "getAccountInfo",
            self.async_client.get_account_info(pubkey, commitment=self.commitment, encoding="base64"),
        )
        return _to_raw_account(pubkey, resp.value)

    async def get_multiple_accounts(self, pubkeys: Sequence[Pubkey]) -> List[Optional[RawAccount]]:
        if not pubkeys:
            return []
        resp = await self._call(
            "getMultipleAccounts",
            self.async_client.get_multiple_accounts(
                list(pubkeys), commitment=self.commitment, encoding="base64"
            ),
        )
        return [_to_raw_account(key, acc) for key, acc in zip(pubkeys, resp.value)]

    async def get_balance_lamports(self, pubkey: Pubkey) -> int:
        resp = await self._call("getBalance", self.async_client.get_balance(pubkey, self.commitment))
        return resp.value

    async def get_latest_blockhash(self) -> Tuple[Hash, int]:
        """Returns (blockhash, last_valid_block_height)."""
        resp = await self._call(
            "getLatestBlockhash", self.async_client.get_latest_blockhash(self.commitment)
        )
        return resp.value.blockhash, resp.value.last_valid_block_height

    async def get_block_height(self) -> int:
        resp = await self._call("getBlockHeight", self.async_client.get_block_height(self.commitment))
        return resp.value

    async def get_token_accounts_by_owner(
        self, owner: Pubkey, token_program: Pubkey = SolanaProgramAddresses.TOKEN_PROGRAM_ID
    ) -> List[RawAccount]:
        """Every account of token_program owned by owner, in node order."""
        resp = await self._call(
            "getTokenAccountsByOwner",
            self.async_client.get_token_accounts_by_owner(
                owner, TokenAccountOpts(program_id=token_program, encoding="base64"), commitment=self.commitment
            ),
        )
        return [_to_raw_account(keyed.pubkey, keyed.account) for keyed in resp.value]

    async def simulate_transaction(
        self, transaction: VersionedTransaction, inner_instructions: bool = False
    ) -> SimulationResult:
        """
        Simulates without signature verification.

        With inner_instructions the node is asked to report the instructions
        invoked by each program; AsyncClient has no switch for that, so the
        request goes straight to its provider.
        """
        if inner_instructions:
            config = RpcSimulateTransactionConfig(
                sig_verify=False,
                commitment=_COMMITMENT_LEVELS[self.commitment],
                inner_instructions=True,
            )
            awaitable = self.async_client._provider.make_request(
                SimulateVersionedTransaction(transaction, config), SimulateTransactionResp
            )
        else:
            awaitable = self.async_client.simulate_transaction(
                transaction, sig_verify=False, commitment=self.commitment
            )
        resp = await self._call("simulateTransaction", awaitable)
        value = resp.value
        return SimulationResult(
            error=str(value.err) if value.err is not None else None,
            transaction_logs=tuple(value.logs or ()),
            units_consumed=value.units_consumed or 0,
            inner_instructions=_parse_inner_instructions(getattr(value, "inner_instructions", None)),
        )

    async def send_raw_transaction(self, transaction: VersionedTransaction, skip_preflight: bool) -> Signature:
        # max_retries stays unset so the node keeps rebroadcasting until the blockhash expires
        opts = TxOpts(
            skip_preflight=skip_preflight,
            preflight_commitment=self.commitment,
            skip_confirmation=True,
        )
        resp = await self._call(
            "sendTransaction", self.async_client.send_raw_transaction(bytes(transaction), opts=opts)
        )
        return resp.value

    async def get_signature_status(self, signature: Signature) -> Optional[SignatureStatus]:
        resp = await self._call(
            "getSignatureStatuses", self.async_client.get_signature_statuses([signature])
        )
        status = resp.value[0] if resp.value else None
        if status is None:
            return None
        return SignatureStatus(
            signature=signature,
            slot=status.slot,
            confirmation_status=_confirmation_name(status.confirmation_status),
            error=str(status.err) if status.err is not None else None,
        )


def _confirmation_name(status: Any) -> Optional[str]:
    for member, name in _CONFIRMATION_NAMES:
        if status == member:
            return name
    return None


def _to_raw_account(pubkey: Pubkey, account: Any) -> Optional[RawAccount]:
    if account is None:
        return None
    return RawAccount(
        address=pubkey,
        lamports=account.lamports,
        owner=account.owner,
        executable=account.executable,
        data=bytes(account.data),
    )


def _parse_inner_instructions(inner: Any) -> Tuple[InnerInstruction, ...]:
    """Keeps jsonParsed inner instructions whose parsed body carries an info object."""
    parsed = []
    for group in inner or ():
        for instruction in group.instructions:
            body = getattr(instruction, "parsed", None)
            if not isinstance(body, dict) or not isinstance(body.get("info"), dict):
                continue
            parsed.append(
                InnerInstruction(
                    program=instruction.program,
                    program_id=instruction.program_id,
                    info=body["info"],
                )
            )
    return tuple(parsed)
