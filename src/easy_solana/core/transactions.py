# src/easy_solana/core/transactions.py

import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from solders.hash import Hash as Blockhash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from .constants import DEFAULT_BLOCKHASH_MAX_AGE_SECONDS, MAX_COMPUTE_UNIT_LIMIT, SOL
from .exceptions import (
    BuildTransactionError,
    EmptyTransactionError,
    InvalidAmountError,
    StaleBlockhashError,
)
from .instruction_builder import InstructionBuilder
from .pubkeys import AddressLike, SolanaProgramAddresses, derive_associated_token_address, parse_address
from ..utils.logger import get_logger

logger = get_logger(__name__)

Amount = Union[Decimal, str, int, float]


@dataclass(frozen=True)
class BlockhashAnchor:
    """A recent blockhash plus the block height after which it stops being accepted."""
    blockhash: Blockhash
    last_valid_block_height: int
    fetched_at: float = field(default_factory=time.monotonic)
    max_age_seconds: float = DEFAULT_BLOCKHASH_MAX_AGE_SECONDS

    def age(self, now: Optional[float] = None) -> float:
        return (time.monotonic() if now is None else now) - self.fetched_at

    def is_expired(self, now: Optional[float] = None) -> bool:
        return self.age(now) > self.max_age_seconds

    def ensure_fresh(self) -> None:
        age = self.age()
        if age > self.max_age_seconds:
            raise StaleBlockhashError(age, self.max_age_seconds)


@dataclass(frozen=True)
class TransactionEnvelope:
    transaction: VersionedTransaction
    instructions: Tuple[Instruction, ...]
    anchor: BlockhashAnchor
    payer: Pubkey
    signers: Tuple[Pubkey, ...]
    compute_unit_price: Optional[int] = None
    compute_unit_limit: Optional[int] = None

    @property
    def instruction_count(self) -> int:
        return len(self.instructions)

    @property
    def signature(self):
        return self.transaction.signatures[0]


def sol_to_lamports(amount: Amount, field_name: str = "amount") -> int:
    """Converts a SOL amount to lamports, truncating below one lamport."""
    if isinstance(amount, bool):
        raise InvalidAmountError(field_name, amount, "must be a number")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation:
        raise InvalidAmountError(field_name, amount, "must be a number") from None
    if not value.is_finite() or value <= 0:
        raise InvalidAmountError(field_name, amount)
    lamports = int((value * SOL).to_integral_value(rounding=ROUND_DOWN))
    if lamports == 0:
        raise InvalidAmountError(field_name, amount, "is less than one lamport")
    return lamports


def _check_compute_limit(limit: int) -> None:
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise InvalidAmountError("compute_unit_limit", limit, "must be an integer")
    if not 0 < limit <= MAX_COMPUTE_UNIT_LIMIT:
        raise InvalidAmountError("compute_unit_limit", limit, f"must be in 1..{MAX_COMPUTE_UNIT_LIMIT}")


def _check_signers(signers: Sequence[Keypair]) -> List[Keypair]:
    signers = list(signers)
    if not all(isinstance(kp, Keypair) for kp in signers):
        raise TypeError("signers must be solders Keypair objects")
    return signers


class TransactionBuilder:
    """
    Accumulates instructions for one transaction paid for by `payer`.

    Each method validates its input before touching the draft, so a call that
    raises leaves the builder exactly as it was. Methods return self.
    """

    def __init__(self, payer: Keypair):
        self.payer = payer
        self._instructions: List[Instruction] = []
        self._extra_signers: List[Keypair] = []
        self.compute_unit_price: Optional[int] = None
        self.compute_unit_limit: Optional[int] = None

    @property
    def payer_pubkey(self) -> Pubkey:
        return self.payer.pubkey()

    @property
    def instructions(self) -> List[Instruction]:
        return list(self._instructions)

    def __len__(self) -> int:
        return len(self._instructions)

    def set_compute_units(self, price_micro_lamports: int) -> "TransactionBuilder":
        """Priority fee in micro-lamports per compute unit. Last call wins."""
        if isinstance(price_micro_lamports, bool) or not isinstance(price_micro_lamports, int):
            raise InvalidAmountError("compute_unit_price", price_micro_lamports, "must be an integer")
        if price_micro_lamports < 0:
            raise InvalidAmountError("compute_unit_price", price_micro_lamports, "must not be negative")
        self.compute_unit_price = price_micro_lamports
        return self

    def set_compute_limit(self, limit: int) -> "TransactionBuilder":
        _check_compute_limit(limit)
        self.compute_unit_limit = limit
        return self

    def transfer_sol(self, amount: Amount, signer: Keypair, destination: AddressLike) -> "TransactionBuilder":
        lamports = sol_to_lamports(amount)
        to_pubkey = parse_address(destination, "destination")
        _check_signers([signer])
        ix = InstructionBuilder.transfer_lamports(signer.pubkey(), to_pubkey, lamports)
        self._append([ix], [signer])
        logger.debug(f"Added transfer of {lamports} lamports to {to_pubkey}")
        return self

    def create_associated_token_account_for_payer(
        self,
        mint: AddressLike,
        token_program: Pubkey = SolanaProgramAddresses.TOKEN_PROGRAM_ID,
    ) -> "TransactionBuilder":
        mint_pubkey = parse_address(mint, "mint")
        ix = InstructionBuilder.create_associated_token_account_idempotent(
            self.payer_pubkey, self.payer_pubkey, mint_pubkey, token_program
        )
        self._append([ix])
        return self

    def close_associated_token_account_for_payer(
        self,
        mint: AddressLike,
        rent_recipient: Optional[AddressLike] = None,
        burn_amount: int = 0,
        token_program: Pubkey = SolanaProgramAddresses.TOKEN_PROGRAM_ID,
    ) -> "TransactionBuilder":
        """Optionally burns the remaining balance, then closes the payer's ATA for mint."""
        mint_pubkey = parse_address(mint, "mint")
        recipient = parse_address(rent_recipient, "rent_recipient") if rent_recipient is not None else self.payer_pubkey
        if isinstance(burn_amount, bool) or not isinstance(burn_amount, int) or burn_amount < 0:
            raise InvalidAmountError("burn_amount", burn_amount, "must be a non-negative integer")
        ata = derive_associated_token_address(self.payer_pubkey, mint_pubkey, token_program)

        new_instructions = []
        if burn_amount:
            new_instructions.append(
                InstructionBuilder.burn_tokens(ata, mint_pubkey, self.payer_pubkey, burn_amount, token_program)
            )
        new_instructions.append(
            InstructionBuilder.close_token_account(ata, recipient, self.payer_pubkey, token_program)
        )
        self._append(new_instructions)
        return self

    def add_instruction(self, instruction: Instruction, *signers: Keypair) -> "TransactionBuilder":
        return self.add_instructions([instruction], *signers)

    def add_instructions(self, instructions: Iterable[Instruction], *signers: Keypair) -> "TransactionBuilder":
        instructions = list(instructions)
        if not all(isinstance(ix, Instruction) for ix in instructions):
            raise TypeError("add_instructions expects solders Instruction objects")
        self._append(instructions, signers)
        return self

    def _append(self, instructions: List[Instruction], signers: Sequence[Keypair] = ()) -> None:
        signers = _check_signers(signers)
        known = {self.payer_pubkey, *(kp.pubkey() for kp in self._extra_signers)}
        new_signers = []
        for kp in signers:
            if kp.pubkey() not in known:
                new_signers.append(kp)
                known.add(kp.pubkey())
        self._instructions.extend(instructions)
        self._extra_signers.extend(new_signers)

    def build(self, anchor: BlockhashAnchor, compute_unit_limit: Optional[int] = None) -> TransactionEnvelope:
        """
        Compiles and signs a v0 transaction against anchor.

        compute_unit_limit overrides the builder's limit for this envelope only;
        the builder itself is left unchanged.
        """
        if not self._instructions:
            raise EmptyTransactionError("Transaction has no instructions")
        if compute_unit_limit is None:
            compute_unit_limit = self.compute_unit_limit
        else:
            _check_compute_limit(compute_unit_limit)
        anchor.ensure_fresh()

        compiled: List[Instruction] = []
        if compute_unit_limit is not None:
            compiled.append(InstructionBuilder.compute_unit_limit(compute_unit_limit))
        if self.compute_unit_price is not None:
            compiled.append(InstructionBuilder.compute_unit_price(self.compute_unit_price))
        compiled.extend(self._instructions)

        signers = [self.payer, *self._extra_signers]
        try:
            msg = MessageV0.try_compile(
                payer=self.payer_pubkey,
                instructions=compiled,
                address_lookup_table_accounts=[],
                recent_blockhash=anchor.blockhash,
            )
            tx = VersionedTransaction(msg, signers)
        except Exception as e:
            raise BuildTransactionError(f"Failed to compile or sign transaction: {e}") from e

        logger.debug(f"Built transaction with {len(compiled)} instructions and {len(signers)} signers")
        return TransactionEnvelope(
            transaction=tx,
            instructions=tuple(compiled),
            anchor=anchor,
            payer=self.payer_pubkey,
            signers=tuple(kp.pubkey() for kp in signers),
            compute_unit_price=self.compute_unit_price,
            compute_unit_limit=compute_unit_limit,
        )
