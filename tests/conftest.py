"""
Shared fixtures: an in-memory SolanaClient stand-in and account byte builders.
"""

import struct
import time
from typing import Dict, List, Optional

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from easy_solana.core.client import RawAccount, SignatureStatus, SimulationResult
from easy_solana.core.exceptions import RpcError
from easy_solana.core.pubkeys import SolanaProgramAddresses
from easy_solana.core.transactions import BlockhashAnchor
from easy_solana.pumpfun.curve import BONDING_CURVE_DISCRIMINATOR


def token_account_bytes(mint: Pubkey, owner: Pubkey, amount: int, state: int = 1) -> bytes:
    return (
        bytes(mint)
        + bytes(owner)
        + struct.pack("<Q", amount)
        + struct.pack("<I", 0) + bytes(32)   # delegate
        + bytes([state])
        + struct.pack("<I", 0) + struct.pack("<Q", 0)   # is_native
        + struct.pack("<Q", 0)   # delegated_amount
        + struct.pack("<I", 0) + bytes(32)   # close_authority
    )


def mint_bytes(supply: int, decimals: int, authority: Optional[Pubkey] = None) -> bytes:
    return (
        struct.pack("<I", 1 if authority else 0)
        + (bytes(authority) if authority else bytes(32))
        + struct.pack("<Q", supply)
        + bytes([decimals, 1])
        + struct.pack("<I", 0) + bytes(32)
    )


def curve_bytes(
    virtual_token: int = 1_073_000_000_000_000,
    virtual_sol: int = 30_000_000_000,
    real_token: int = 793_100_000_000_000,
    real_sol: int = 0,
    total_supply: int = 1_000_000_000_000_000,
    complete: bool = False,
    creator: Optional[Pubkey] = None,
) -> bytes:
    data = (
        BONDING_CURVE_DISCRIMINATOR
        + struct.pack("<QQQQQ", virtual_token, virtual_sol, real_token, real_sol, total_supply)
        + bytes([1 if complete else 0])
    )
    if creator is not None:
        data += bytes(creator)
    return data


def raw_account(address: Pubkey, data: bytes, lamports: int = 2_039_280,
                owner: Pubkey = SolanaProgramAddresses.TOKEN_PROGRAM_ID) -> RawAccount:
    return RawAccount(address=address, lamports=lamports, owner=owner, executable=False, data=data)


class FakeSolanaClient:
    """Stands in for SolanaClient; responses are queued by the test."""

    def __init__(self):
        self.accounts: Dict[Pubkey, RawAccount] = {}
        self.balances: Dict[Pubkey, int] = {}
        self.blockhash = Hash.new_unique()
        self.last_valid_block_height = 1_000
        self.block_height = 900
        self.simulation = SimulationResult(error=None, transaction_logs=("Program log: ok",), units_consumed=450)
        self.statuses: List[Optional[SignatureStatus]] = []
        self.send_error: Optional[RpcError] = None
        self.sent: List[dict] = []
        self.simulated = 0
        self.simulated_with_inner: List[bool] = []
        self.token_accounts_by_owner: Dict[Pubkey, List[RawAccount]] = {}
        self.multiple_calls = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    def add_account(self, account: RawAccount) -> None:
        self.accounts[account.address] = account

    async def get_account_info(self, pubkey):
        return self.accounts.get(pubkey)

    async def get_multiple_accounts(self, pubkeys):
        self.multiple_calls += 1
        return [self.accounts.get(k) for k in pubkeys]

    async def get_balance_lamports(self, pubkey):
        return self.balances.get(pubkey, 0)

    async def get_token_accounts_by_owner(self, owner, token_program=SolanaProgramAddresses.TOKEN_PROGRAM_ID):
        return list(self.token_accounts_by_owner.get(owner, []))

    async def get_latest_blockhash(self):
        return self.blockhash, self.last_valid_block_height

    async def get_block_height(self):
        return self.block_height

    async def simulate_transaction(self, transaction, inner_instructions=False):
        self.simulated += 1
        self.simulated_with_inner.append(inner_instructions)
        return self.simulation

    async def send_raw_transaction(self, transaction, skip_preflight):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append({"transaction": transaction, "skip_preflight": skip_preflight})
        return transaction.signatures[0]

    async def get_signature_status(self, signature):
        if self.statuses:
            status = self.statuses.pop(0)
        else:
            status = None
        if status is not None:
            status = SignatureStatus(signature, status.slot, status.confirmation_status, status.error)
        return status


def status(confirmation: Optional[str], error: Optional[str] = None) -> SignatureStatus:
    from solders.signature import Signature

    return SignatureStatus(Signature.default(), 1, confirmation, error)


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_client():
    return FakeSolanaClient()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def payer():
    return Keypair()


@pytest.fixture
def anchor(fake_client):
    return BlockhashAnchor(
        blockhash=fake_client.blockhash,
        last_valid_block_height=fake_client.last_valid_block_height,
    )


@pytest.fixture
def stale_anchor(fake_client):
    return BlockhashAnchor(
        blockhash=fake_client.blockhash,
        last_valid_block_height=fake_client.last_valid_block_height,
        fetched_at=time.monotonic() - 120,
        max_age_seconds=60,
    )
