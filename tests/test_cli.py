"""
Command-line entry points against the in-memory client.
"""

import base58
import pytest
from solders.keypair import Keypair

from easy_solana import cli
from easy_solana.core.client import SimulationResult
from easy_solana.core.pubkeys import SolanaProgramAddresses, derive_associated_token_address
from easy_solana.pumpfun.curve import find_bonding_curve_address
from tests.conftest import curve_bytes, mint_bytes, raw_account, token_account_bytes

URL = "https://rpc.example.invalid"


@pytest.fixture
def wired(monkeypatch, fake_client, tmp_path):
    monkeypatch.setenv("SOLANA_RPC_ENDPOINT", URL)
    monkeypatch.setattr(cli.SolanaClient, "from_settings", classmethod(lambda cls, settings: fake_client))
    return ["--env-file", str(tmp_path / "none.env")]


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_parser_send_modes():
    args = cli.build_parser().parse_args(["transfer", "Dest", "0.5", "--send", "unchecked", "--compute-price", "10"])
    assert args.send == "unchecked"
    assert args.compute_price == 10


@pytest.mark.asyncio
async def test_price(wired, fake_client, capsys):
    mint = Keypair().pubkey()
    fake_client.add_account(raw_account(find_bonding_curve_address(mint), curve_bytes()))
    assert await cli.main(wired + ["price", str(mint)]) == 0
    assert "SOL" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_transfer_simulates_only_by_default(wired, fake_client, monkeypatch, capsys):
    monkeypatch.setenv("SOLANA_PRIVATE_KEY", base58.b58encode(bytes(Keypair())).decode())
    code = await cli.main(wired + ["transfer", str(Keypair().pubkey()), "0.01"])
    assert code == 0
    assert fake_client.simulated == 1
    assert fake_client.sent == []
    assert "Simulation: OK" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_transfer_failed_simulation_is_not_sent(wired, fake_client, monkeypatch, capsys):
    monkeypatch.setenv("SOLANA_PRIVATE_KEY", base58.b58encode(bytes(Keypair())).decode())
    fake_client.simulation = SimulationResult(
        error="InstructionError(0, Custom(1))",
        transaction_logs=("Transfer: insufficient lamports", "Program 1111 failed"),
        units_consumed=150,
    )
    code = await cli.main(wired + ["transfer", str(Keypair().pubkey()), "0.01", "--send", "confirm"])
    assert code == 1
    assert fake_client.sent == []
    assert "insufficient lamports" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_account_lists_wallet_tokens(wired, fake_client, capsys):
    wallet, mint = Keypair().pubkey(), Keypair().pubkey()
    ata = derive_associated_token_address(wallet, mint)
    fake_client.add_account(raw_account(ata, token_account_bytes(mint, wallet, 1_500)))
    fake_client.add_account(raw_account(mint, mint_bytes(10_000, 3)))
    fake_client.add_account(
        raw_account(wallet, b"", lamports=1_000_000_000, owner=SolanaProgramAddresses.SYSTEM_PROGRAM_ID)
    )
    fake_client.token_accounts_by_owner[wallet] = [fake_client.accounts[ata]]

    assert await cli.main(wired + ["account", str(wallet)]) == 0

    out = capsys.readouterr().out
    assert "wallet" in out
    assert f"{mint}: 1.5" in out
