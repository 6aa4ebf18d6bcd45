# src/easy_solana/cli.py

import argparse
import asyncio
import sys
from typing import Optional

from .config import Settings, load_settings
from .core.accounts import AccountKind, AccountReader, ParsedAccount
from .core.client import SolanaClient
from .core.exceptions import EasySolanaException
from .core.pipeline import ConfirmationPolicy, ExecutionPipeline
from .core.pubkeys import derive_associated_token_address, parse_address
from .core.transactions import TransactionBuilder
from .core.wallet import Wallet
from .pumpfun.curve import calculate_token_price
from .pumpfun.trade import append_bump
from .utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

SEND_MODES = ("none", "unchecked", "confirm")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="easy-solana", description="Solana client toolkit")
    parser.add_argument("--rpc", help="RPC URL or name of the env var holding it")
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    price = sub.add_parser("price", help="Price of a pump.fun token in SOL")
    price.add_argument("mint")

    balance = sub.add_parser("balance", help="SOL balance of an address")
    balance.add_argument("address")

    ata = sub.add_parser("ata", help="Associated token account for owner and mint")
    ata.add_argument("owner")
    ata.add_argument("mint")
    ata.add_argument("--fetch", action="store_true", help="Also read the account")

    account = sub.add_parser("account", help="Classify and decode any account")
    account.add_argument("address")

    def add_send_options(p: argparse.ArgumentParser) -> None:
        p.add_argument("--compute-price", type=int, help="Priority fee, micro-lamports per CU")
        p.add_argument("--compute-limit", type=int, help="Compute unit limit (default: from simulation)")
        p.add_argument("--send", choices=SEND_MODES, default="none",
                       help="none = simulate only; unchecked = skip preflight; confirm = wait for confirmation")

    transfer = sub.add_parser("transfer", help="Send SOL from the configured wallet")
    transfer.add_argument("destination")
    transfer.add_argument("amount", help="Amount in SOL")
    add_send_options(transfer)

    bump = sub.add_parser("bump", help="Buy and sell a pump.fun token in one transaction")
    bump.add_argument("mint")
    bump.add_argument("max_sol_cost", help="Upper bound on SOL spent by the buy leg")
    add_send_options(bump)

    close = sub.add_parser("close-ata", help="Burn remaining balance and close the wallet's token account")
    close.add_argument("mint")
    add_send_options(close)
    return parser


def _print_parsed(parsed: ParsedAccount) -> None:
    print(f"{parsed.address}: {parsed.kind.value}, {parsed.sol_balance} SOL, owner {parsed.owner}")
    if parsed.kind is AccountKind.WALLET:
        for token in parsed.token_accounts:
            print(f"  {token.mint_pubkey}: {token.token_ui_amount} ({token.pubkey})")
    elif parsed.token_account is not None:
        print(f"  Mint {parsed.token_account.mint}, owner {parsed.token_account.owner}, amount {parsed.token_account.amount}")
    elif parsed.mint is not None:
        print(f"  Supply {parsed.mint.supply}, {parsed.mint.decimals} decimals, authority {parsed.mint.mint_authority}")


async def _run_transaction(client: SolanaClient, settings: Settings, builder: TransactionBuilder, args) -> int:
    if args.compute_price is not None:
        builder.set_compute_units(args.compute_price)
    if args.compute_limit is not None:
        builder.set_compute_limit(args.compute_limit)

    policy = ConfirmationPolicy(timeout_seconds=settings.confirm_timeout_seconds)
    pipeline = ExecutionPipeline(client, policy, blockhash_max_age_seconds=settings.blockhash_max_age_seconds)
    envelope, result = await pipeline.prepare(builder)

    print(f"Simulation: {'OK' if result.succeeded else 'FAILED'}, {result.units_consumed} compute units")
    if not result.succeeded:
        print(f"Error: {result.error}")
        if result.failing_log_line:
            print(f"At: {result.failing_log_line}")
        return 1
    if args.send == "none":
        return 0

    if args.send == "unchecked":
        signature = await pipeline.send_unchecked(envelope)
    else:
        signature = await pipeline.send_and_confirm(envelope)
    print(f"Signature: {signature} ({pipeline.state.value})")
    return 0


async def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    settings = load_settings(env_file=args.env_file, rpc=args.rpc)

    async with SolanaClient.from_settings(settings) as client:
        reader = AccountReader(client)
        if args.command == "price":
            _, curve = await reader.get_bonding_curve(args.mint)
            print(f"{calculate_token_price(curve):.12f} SOL")
            return 0
        if args.command == "balance":
            print(f"{await reader.get_sol_balance(args.address)} SOL")
            return 0
        if args.command == "ata":
            owner = parse_address(args.owner, "owner")
            mint = parse_address(args.mint, "mint")
            print(derive_associated_token_address(owner, mint))
            if args.fetch:
                account = await reader.get_associated_token_account_for(owner, mint)
                print(f"Balance: {account.token_ui_amount} (raw {account.token_amount}, {account.mint_decimals} decimals)")
            return 0
        if args.command == "account":
            _print_parsed(await reader.parse_account(args.address))
            return 0

        wallet = Wallet.from_settings(settings)
        builder = TransactionBuilder(wallet.keypair)
        if args.command == "transfer":
            builder.transfer_sol(args.amount, wallet.keypair, args.destination)
        elif args.command == "bump":
            curve_address, curve = await reader.get_bonding_curve(args.mint)
            append_bump(builder, args.mint, curve_address, curve, args.max_sol_cost)
        elif args.command == "close-ata":
            account = await reader.get_associated_token_account_for(wallet.pubkey, args.mint)
            builder.close_associated_token_account_for_payer(args.mint, burn_amount=account.token_amount)
        return await _run_transaction(client, settings, builder, args)


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)
    except EasySolanaException as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run()
