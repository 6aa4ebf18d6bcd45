# src/easy_solana/core/instruction_builder.py

import struct
from typing import Optional

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from spl.token.instructions import BurnParams, CloseAccountParams, burn, close_account

from .pubkeys import PumpAddresses, SolanaProgramAddresses, derive_associated_token_address

# --- Instruction Discriminators (pump.fun IDL) ---
BUY_DISCRIMINATOR = bytes.fromhex("66063d1201daebea")
SELL_DISCRIMINATOR = bytes.fromhex("33e685a4017f83ad")

# Associated Token program: 0 = Create, 1 = CreateIdempotent
CREATE_IDEMPOTENT_TAG = b"\x01"


class InstructionBuilder:
    @staticmethod
    def create_associated_token_account_idempotent(
        payer: Pubkey,
        owner: Pubkey,
        mint: Pubkey,
        token_program: Pubkey = SolanaProgramAddresses.TOKEN_PROGRAM_ID,
    ) -> Instruction:
        """Creates the owner's ATA for mint; succeeds without effect when it already exists."""
        ata = derive_associated_token_address(owner, mint, token_program)
        return Instruction(
            program_id=SolanaProgramAddresses.ASSOCIATED_TOKEN_ACCOUNT_PROGRAM_ID,
            accounts=[
                AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
                AccountMeta(pubkey=ata, is_signer=False, is_writable=True),
                AccountMeta(pubkey=owner, is_signer=False, is_writable=False),
                AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
                AccountMeta(pubkey=SolanaProgramAddresses.SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
                AccountMeta(pubkey=token_program, is_signer=False, is_writable=False),
            ],
            data=CREATE_IDEMPOTENT_TAG,
        )

    @staticmethod
    def transfer_lamports(source: Pubkey, destination: Pubkey, lamports: int) -> Instruction:
        return transfer(TransferParams(from_pubkey=source, to_pubkey=destination, lamports=lamports))

    @staticmethod
    def compute_unit_limit(units: int) -> Instruction:
        return set_compute_unit_limit(units)

    @staticmethod
    def compute_unit_price(micro_lamports: int) -> Instruction:
        return set_compute_unit_price(micro_lamports)

    @staticmethod
    def burn_tokens(
        account: Pubkey,
        mint: Pubkey,
        owner: Pubkey,
        amount: int,
        token_program: Pubkey = SolanaProgramAddresses.TOKEN_PROGRAM_ID,
    ) -> Instruction:
        return burn(
            BurnParams(program_id=token_program, account=account, mint=mint, owner=owner, amount=amount)
        )

    @staticmethod
    def close_token_account(
        account: Pubkey,
        destination: Pubkey,
        owner: Pubkey,
        token_program: Pubkey = SolanaProgramAddresses.TOKEN_PROGRAM_ID,
    ) -> Instruction:
        return close_account(
            CloseAccountParams(program_id=token_program, account=account, dest=destination, owner=owner)
        )

    @staticmethod
    def _pump_fun_accounts(
        user: Pubkey,
        mint: Pubkey,
        bonding_curve: Pubkey,
        associated_bonding_curve: Pubkey,
        user_ata: Pubkey,
    ) -> list:
        return [
            AccountMeta(pubkey=PumpAddresses.GLOBAL_STATE, is_signer=False, is_writable=False),
            AccountMeta(pubkey=PumpAddresses.FEE_RECIPIENT, is_signer=False, is_writable=True),
            AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
            AccountMeta(pubkey=bonding_curve, is_signer=False, is_writable=True),
            AccountMeta(pubkey=associated_bonding_curve, is_signer=False, is_writable=True),
            AccountMeta(pubkey=user_ata, is_signer=False, is_writable=True),
            AccountMeta(pubkey=user, is_signer=True, is_writable=True),
            AccountMeta(pubkey=SolanaProgramAddresses.SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ]

    @staticmethod
    def pump_fun_buy(
        user: Pubkey,
        mint: Pubkey,
        bonding_curve: Pubkey,
        associated_bonding_curve: Pubkey,
        token_amount: int,
        max_sol_cost_lamports: int,
        user_ata: Optional[Pubkey] = None,
    ) -> Instruction:
        """Buy exactly token_amount raw units, paying at most max_sol_cost_lamports."""
        user_ata = user_ata or derive_associated_token_address(user, mint)
        accounts = InstructionBuilder._pump_fun_accounts(user, mint, bonding_curve, associated_bonding_curve, user_ata)
        accounts += [
            AccountMeta(pubkey=SolanaProgramAddresses.TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=SolanaProgramAddresses.RENT_SYSVAR_PUBKEY, is_signer=False, is_writable=False),
            AccountMeta(pubkey=PumpAddresses.EVENT_AUTHORITY, is_signer=False, is_writable=False),
            AccountMeta(pubkey=PumpAddresses.PROGRAM_ID, is_signer=False, is_writable=False),
        ]
        data = BUY_DISCRIMINATOR + struct.pack("<QQ", token_amount, max_sol_cost_lamports)
        return Instruction(program_id=PumpAddresses.PROGRAM_ID, accounts=accounts, data=data)

    @staticmethod
    def pump_fun_sell(
        user: Pubkey,
        mint: Pubkey,
        bonding_curve: Pubkey,
        associated_bonding_curve: Pubkey,
        token_amount: int,
        min_sol_output_lamports: int,
        user_ata: Optional[Pubkey] = None,
    ) -> Instruction:
        """Sell token_amount raw units, requiring at least min_sol_output_lamports back."""
        user_ata = user_ata or derive_associated_token_address(user, mint)
        accounts = InstructionBuilder._pump_fun_accounts(user, mint, bonding_curve, associated_bonding_curve, user_ata)
        accounts += [
            AccountMeta(pubkey=SolanaProgramAddresses.ASSOCIATED_TOKEN_ACCOUNT_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=SolanaProgramAddresses.TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=PumpAddresses.EVENT_AUTHORITY, is_signer=False, is_writable=False),
            AccountMeta(pubkey=PumpAddresses.PROGRAM_ID, is_signer=False, is_writable=False),
        ]
        data = SELL_DISCRIMINATOR + struct.pack("<QQ", token_amount, min_sol_output_lamports)
        return Instruction(program_id=PumpAddresses.PROGRAM_ID, accounts=accounts, data=data)
