# src/easy_solana/pumpfun/curve.py

import struct
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from borsh_construct import CStruct, U64, Bool
from construct import Bytes, ConstructError
from solders.pubkey import Pubkey

from ..core.constants import PUMP_TOKEN_DECIMALS, SOL_DECIMALS
from ..core.exceptions import BondingCurveError, CompletedCurveError, DecodeError, DivideByZeroError
from ..core.pubkeys import PumpAddresses, derive_associated_token_address

# Anchor account discriminator for BondingCurve
BONDING_CURVE_DISCRIMINATOR = struct.pack("<Q", 6966180631402821399)

# 8-byte discriminator, five u64 reserves, one bool: 49 bytes.
BONDING_CURVE_LAYOUT = CStruct(
    "discriminator" / Bytes(8),
    "virtual_token_reserves" / U64,
    "virtual_sol_reserves" / U64,
    "real_token_reserves" / U64,
    "real_sol_reserves" / U64,
    "token_total_supply" / U64,
    "complete" / Bool,
)
BONDING_CURVE_SIZE = 49
CREATOR_OFFSET = BONDING_CURVE_SIZE


@dataclass(frozen=True)
class BondingCurveAccount:
    virtual_token_reserves: int
    virtual_sol_reserves: int
    real_token_reserves: int
    real_sol_reserves: int
    token_total_supply: int
    complete: bool
    creator: Optional[Pubkey] = None


def decode_bonding_curve(data: bytes, allow_complete: bool = False) -> BondingCurveAccount:
    """
    Decodes pump.fun bonding-curve account bytes.

    Raises DecodeError on short buffers or a foreign discriminator, and
    CompletedCurveError for a migrated curve unless allow_complete is set.
    Newer curves append a 32-byte creator key, which is picked up when present.
    """
    if len(data) < BONDING_CURVE_SIZE:
        raise DecodeError(f"Bonding curve needs {BONDING_CURVE_SIZE} bytes, got {len(data)}")
    if data[:8] != BONDING_CURVE_DISCRIMINATOR:
        raise DecodeError(f"Not a bonding curve account (discriminator {data[:8].hex()})")
    try:
        parsed = BONDING_CURVE_LAYOUT.parse(data[:BONDING_CURVE_SIZE])
    except ConstructError as e:
        raise DecodeError(f"Malformed bonding curve: {e}") from e

    creator = None
    if len(data) >= CREATOR_OFFSET + 32:
        creator = Pubkey.from_bytes(data[CREATOR_OFFSET:CREATOR_OFFSET + 32])

    curve = BondingCurveAccount(
        virtual_token_reserves=parsed.virtual_token_reserves,
        virtual_sol_reserves=parsed.virtual_sol_reserves,
        real_token_reserves=parsed.real_token_reserves,
        real_sol_reserves=parsed.real_sol_reserves,
        token_total_supply=parsed.token_total_supply,
        complete=bool(parsed.complete),
        creator=creator,
    )
    if curve.complete and not allow_complete:
        raise CompletedCurveError("Bonding curve is complete; token has migrated")
    return curve


def calculate_token_price(
    curve: BondingCurveAccount,
    token_decimals: int = PUMP_TOKEN_DECIMALS,
    sol_decimals: int = SOL_DECIMALS,
) -> Decimal:
    """Price of one whole token in SOL from the virtual reserves."""
    if curve.complete:
        raise CompletedCurveError("Cannot price a completed bonding curve")
    if curve.virtual_token_reserves <= 0:
        raise DivideByZeroError("Virtual token reserve is zero")
    if curve.virtual_sol_reserves <= 0:
        raise BondingCurveError("Virtual SOL reserve is zero")
    sol = Decimal(curve.virtual_sol_reserves).scaleb(-sol_decimals)
    tokens = Decimal(curve.virtual_token_reserves).scaleb(-token_decimals)
    return sol / tokens


def tokens_out_for_sol(curve: BondingCurveAccount, lamports_in: int) -> int:
    """Raw token units a buy of lamports_in would receive, before fees."""
    if lamports_in <= 0:
        return 0
    if curve.virtual_sol_reserves <= 0 or curve.virtual_token_reserves <= 0:
        raise BondingCurveError("Curve has empty virtual reserves")
    out = curve.virtual_token_reserves * lamports_in // (curve.virtual_sol_reserves + lamports_in)
    return min(out, curve.real_token_reserves)


def sol_out_for_tokens(curve: BondingCurveAccount, tokens_in: int) -> int:
    """Lamports a sell of tokens_in raw units would return, before fees."""
    if tokens_in <= 0:
        return 0
    if curve.virtual_sol_reserves <= 0 or curve.virtual_token_reserves <= 0:
        raise BondingCurveError("Curve has empty virtual reserves")
    return curve.virtual_sol_reserves * tokens_in // (curve.virtual_token_reserves + tokens_in)


def find_bonding_curve_address(mint: Pubkey) -> Pubkey:
    pda, _bump = Pubkey.find_program_address([b"bonding-curve", bytes(mint)], PumpAddresses.PROGRAM_ID)
    return pda


def find_associated_bonding_curve(bonding_curve: Pubkey, mint: Pubkey) -> Pubkey:
    """The curve's own token account holding the unsold supply."""
    return derive_associated_token_address(bonding_curve, mint)
