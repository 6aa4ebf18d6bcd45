# src/easy_solana/core/pubkeys.py

from typing import Union

from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID_SOLDERS  # Renamed to avoid conflict
from spl.token.constants import TOKEN_PROGRAM_ID as TOKEN_PROGRAM_ID_SPL  # Renamed to avoid conflict

from .exceptions import InvalidAddressError

AddressLike = Union[Pubkey, str]


class SolanaProgramAddresses:
    SYSTEM_PROGRAM_ID: Pubkey = SYSTEM_PROGRAM_ID_SOLDERS
    TOKEN_PROGRAM_ID: Pubkey = TOKEN_PROGRAM_ID_SPL
    ASSOCIATED_TOKEN_ACCOUNT_PROGRAM_ID: Pubkey = Pubkey.from_string(
        "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
    )
    RENT_SYSVAR_PUBKEY: Pubkey = Pubkey.from_string(
        "SysvarRent111111111111111111111111111111111"
    )
    COMPUTE_BUDGET_PROGRAM_ID: Pubkey = Pubkey.from_string(
        "ComputeBudget111111111111111111111111111111"
    )


class PumpAddresses:
    # The on-chain pump.fun program
    PROGRAM_ID: Pubkey = Pubkey.from_string("6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P")
    GLOBAL_STATE: Pubkey = Pubkey.from_string("4wTV1YmiEkRvAtNtsSGPtUrqRYQMe5SKy2uB4Jjaxnjf")
    FEE_RECIPIENT: Pubkey = Pubkey.from_string("CebN5WGQ4jvEPvsVU4EoHEpgzq1VV7AbicfhtW4xC9iM")
    EVENT_AUTHORITY: Pubkey = Pubkey.from_string("Ce6TQqeHC9p8KetsN6JsjHK7UTZk7nasjjnr7XxXp9F1")
    MINT_AUTHORITY: Pubkey = Pubkey.from_string("TSLvdd1pWpHVjahSpsvCXUbgwsL3JAcvokwaKt1eokM")


def parse_address(value: AddressLike, field: str = "address") -> Pubkey:
    """Accepts a Pubkey or its base58 text form; anything else raises InvalidAddressError."""
    if isinstance(value, Pubkey):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidAddressError(field, value)
    try:
        return Pubkey.from_string(value.strip())
    except ValueError as e:
        raise InvalidAddressError(field, value) from e


def derive_associated_token_address(
    owner: Pubkey,
    mint: Pubkey,
    token_program: Pubkey = SolanaProgramAddresses.TOKEN_PROGRAM_ID,
) -> Pubkey:
    """Associated token account for (owner, mint). Pure and deterministic."""
    pda, _bump_seed = Pubkey.find_program_address(
        [bytes(owner), bytes(token_program), bytes(mint)],
        SolanaProgramAddresses.ASSOCIATED_TOKEN_ACCOUNT_PROGRAM_ID,
    )
    return pda
