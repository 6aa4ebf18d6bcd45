# src/easy_solana/pumpfun/trade.py

from decimal import Decimal, ROUND_HALF_EVEN
from typing import List

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from ..core.constants import PUMP_TOKEN_DECIMALS, SOL_DECIMALS
from ..core.exceptions import InvalidAmountError
from ..core.instruction_builder import InstructionBuilder
from ..core.pubkeys import AddressLike, parse_address
from ..core.transactions import Amount, TransactionBuilder, sol_to_lamports
from ..utils.logger import get_logger
from .curve import (
    BondingCurveAccount,
    calculate_token_price,
    find_associated_bonding_curve,
    sol_out_for_tokens,
    tokens_out_for_sol,
)

logger = get_logger(__name__)

BPS_DENOMINATOR = 10_000
DEFAULT_BUY_SLIPPAGE_BPS = 1500
DEFAULT_SELL_SLIPPAGE_BPS = 2500
# A bump buys 80% of what max_sol_cost would buy at the quoted price
BUMP_SIZE_FACTOR = Decimal("0.8")


def _check_slippage(slippage_bps: int) -> None:
    if isinstance(slippage_bps, bool) or not isinstance(slippage_bps, int) or not 0 <= slippage_bps < BPS_DENOMINATOR:
        raise InvalidAmountError("slippage_bps", slippage_bps, f"must be an integer in 0..{BPS_DENOMINATOR - 1}")


def _buy_instructions(
    builder: TransactionBuilder,
    mint: Pubkey,
    curve_address: Pubkey,
    token_amount: int,
    max_sol_cost_lamports: int,
) -> List[Instruction]:
    user = builder.payer_pubkey
    return [
        InstructionBuilder.create_associated_token_account_idempotent(user, user, mint),
        InstructionBuilder.pump_fun_buy(
            user, mint, curve_address, find_associated_bonding_curve(curve_address, mint),
            token_amount, max_sol_cost_lamports,
        ),
    ]


def append_buy(
    builder: TransactionBuilder,
    mint: AddressLike,
    curve_address: Pubkey,
    curve: BondingCurveAccount,
    sol_amount: Amount,
    slippage_bps: int = DEFAULT_BUY_SLIPPAGE_BPS,
) -> TransactionBuilder:
    """
    Appends an idempotent ATA create and a buy sized from the curve snapshot.
    The snapshot is point-in-time; slippage_bps bounds what the buy may cost.
    """
    mint_pubkey = parse_address(mint, "mint")
    lamports = sol_to_lamports(sol_amount, "sol_amount")
    _check_slippage(slippage_bps)
    token_amount = tokens_out_for_sol(curve, lamports)
    if token_amount <= 0:
        raise InvalidAmountError("sol_amount", sol_amount, "buys zero tokens at the current reserves")
    max_cost = lamports * (BPS_DENOMINATOR + slippage_bps) // BPS_DENOMINATOR

    builder.add_instructions(_buy_instructions(builder, mint_pubkey, curve_address, token_amount, max_cost))
    logger.info(f"Queued buy of {token_amount} units of {mint_pubkey} for at most {max_cost} lamports")
    return builder


def append_sell(
    builder: TransactionBuilder,
    mint: AddressLike,
    curve_address: Pubkey,
    curve: BondingCurveAccount,
    token_amount: int,
    slippage_bps: int = DEFAULT_SELL_SLIPPAGE_BPS,
) -> TransactionBuilder:
    mint_pubkey = parse_address(mint, "mint")
    if isinstance(token_amount, bool) or not isinstance(token_amount, int) or token_amount <= 0:
        raise InvalidAmountError("token_amount", token_amount, "must be a positive integer")
    _check_slippage(slippage_bps)
    expected = sol_out_for_tokens(curve, token_amount)
    min_out = expected * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR

    user = builder.payer_pubkey
    builder.add_instruction(
        InstructionBuilder.pump_fun_sell(
            user, mint_pubkey, curve_address, find_associated_bonding_curve(curve_address, mint_pubkey),
            token_amount, min_out,
        )
    )
    logger.info(f"Queued sell of {token_amount} units of {mint_pubkey} for at least {min_out} lamports")
    return builder


def bump_token_amount(curve: BondingCurveAccount, max_sol_cost: Amount) -> int:
    """Raw token units for a bump: 80% of what max_sol_cost buys at the current price."""
    price = calculate_token_price(curve)
    sol = Decimal(sol_to_lamports(max_sol_cost, "max_sol_cost")).scaleb(-SOL_DECIMALS)
    whole_tokens = sol / price * BUMP_SIZE_FACTOR
    return int(whole_tokens.scaleb(PUMP_TOKEN_DECIMALS).to_integral_value(rounding=ROUND_HALF_EVEN))


def append_bump(
    builder: TransactionBuilder,
    mint: AddressLike,
    curve_address: Pubkey,
    curve: BondingCurveAccount,
    max_sol_cost: Amount,
) -> TransactionBuilder:
    """Buy then sell the same amount in one transaction, leaving only fees spent."""
    mint_pubkey = parse_address(mint, "mint")
    max_cost_lamports = sol_to_lamports(max_sol_cost, "max_sol_cost")
    token_amount = bump_token_amount(curve, max_sol_cost)
    if token_amount <= 0:
        raise InvalidAmountError("max_sol_cost", max_sol_cost, "buys zero tokens at the current price")

    user = builder.payer_pubkey
    instructions = _buy_instructions(builder, mint_pubkey, curve_address, token_amount, max_cost_lamports)
    instructions.append(
        InstructionBuilder.pump_fun_sell(
            user, mint_pubkey, curve_address, find_associated_bonding_curve(curve_address, mint_pubkey),
            token_amount, 0,
        )
    )
    builder.add_instructions(instructions)
    logger.info(f"Queued bump of {token_amount} units of {mint_pubkey}")
    return builder
