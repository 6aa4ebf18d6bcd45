# src/easy_solana/core/accounts.py

import enum
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from borsh_construct import CStruct, U8, U32, U64
from construct import Bytes, ConstructError
from solders.pubkey import Pubkey

from .client import RawAccount, SolanaClient
from .constants import SOL
from .exceptions import AccountNotFoundError, DecodeError
from .pubkeys import AddressLike, SolanaProgramAddresses, derive_associated_token_address, parse_address
from ..pumpfun.curve import BondingCurveAccount, decode_bonding_curve, find_bonding_curve_address
from ..utils.logger import get_logger

logger = get_logger(__name__)

# SPL Token account, 165 bytes. COption fields are a u32 tag followed by the value.
TOKEN_ACCOUNT_LAYOUT = CStruct(
    "mint" / Bytes(32),
    "owner" / Bytes(32),
    "amount" / U64,
    "delegate_option" / U32,
    "delegate" / Bytes(32),
    "state" / U8,
    "is_native_option" / U32,
    "is_native" / U64,
    "delegated_amount" / U64,
    "close_authority_option" / U32,
    "close_authority" / Bytes(32),
)
TOKEN_ACCOUNT_SIZE = 165

# SPL Mint, 82 bytes.
MINT_LAYOUT = CStruct(
    "mint_authority_option" / U32,
    "mint_authority" / Bytes(32),
    "supply" / U64,
    "decimals" / U8,
    "is_initialized" / U8,
    "freeze_authority_option" / U32,
    "freeze_authority" / Bytes(32),
)
MINT_SIZE = 82

TOKEN_STATE_UNINITIALIZED = 0


@dataclass(frozen=True)
class TokenAccountState:
    mint: Pubkey
    owner: Pubkey
    amount: int
    delegate: Optional[Pubkey]
    state: int
    is_native: Optional[int]
    delegated_amount: int
    close_authority: Optional[Pubkey]


@dataclass(frozen=True)
class MintState:
    mint_authority: Optional[Pubkey]
    supply: int
    decimals: int
    freeze_authority: Optional[Pubkey]


@dataclass(frozen=True)
class AssociatedTokenAccount:
    pubkey: Pubkey
    owner_pubkey: Pubkey
    mint_pubkey: Pubkey
    token_amount: int
    token_ui_amount: Decimal
    mint_supply: Decimal
    mint_decimals: int
    mint_authority: Optional[Pubkey]


@dataclass(frozen=True)
class TokenBalance:
    amount: int
    decimals: int

    @property
    def ui_amount(self) -> Decimal:
        return to_ui_amount(self.amount, self.decimals)


@dataclass(frozen=True)
class MintAccount:
    pubkey: Pubkey
    supply: int
    decimals: int
    mint_authority: Optional[Pubkey]
    freeze_authority: Optional[Pubkey]

    @property
    def ui_supply(self) -> Decimal:
        return to_ui_amount(self.supply, self.decimals)


class AccountKind(enum.Enum):
    WALLET = "wallet"
    TOKEN_ACCOUNT = "token_account"
    MINT = "mint"
    PROGRAM = "program"
    OTHER = "other"


@dataclass(frozen=True)
class ParsedAccount:
    """
    An account classified by owner and data shape. Only the field matching
    `kind` is filled: token_accounts for wallets, token_account for token
    accounts, mint for mints.
    """
    address: Pubkey
    kind: AccountKind
    lamports: int
    owner: Pubkey
    token_accounts: Tuple[AssociatedTokenAccount, ...] = ()
    token_account: Optional[TokenAccountState] = None
    mint: Optional[MintState] = None

    @property
    def sol_balance(self) -> Decimal:
        return Decimal(self.lamports) / SOL


def to_ui_amount(raw_amount: int, decimals: int) -> Decimal:
    return Decimal(raw_amount).scaleb(-decimals)


def _optional_key(tag: int, raw: bytes) -> Optional[Pubkey]:
    return Pubkey.from_bytes(raw) if tag else None


def decode_token_account(data: bytes) -> TokenAccountState:
    """Decodes an SPL token account. Extension bytes past 165 are ignored."""
    if len(data) < TOKEN_ACCOUNT_SIZE:
        raise DecodeError(f"Token account needs {TOKEN_ACCOUNT_SIZE} bytes, got {len(data)}")
    try:
        parsed = TOKEN_ACCOUNT_LAYOUT.parse(data[:TOKEN_ACCOUNT_SIZE])
    except ConstructError as e:
        raise DecodeError(f"Malformed token account: {e}") from e
    if parsed.state == TOKEN_STATE_UNINITIALIZED:
        raise DecodeError("Token account is not initialized")
    return TokenAccountState(
        mint=Pubkey.from_bytes(parsed.mint),
        owner=Pubkey.from_bytes(parsed.owner),
        amount=parsed.amount,
        delegate=_optional_key(parsed.delegate_option, parsed.delegate),
        state=parsed.state,
        is_native=parsed.is_native if parsed.is_native_option else None,
        delegated_amount=parsed.delegated_amount,
        close_authority=_optional_key(parsed.close_authority_option, parsed.close_authority),
    )


def decode_mint_account(data: bytes) -> MintState:
    if len(data) < MINT_SIZE:
        raise DecodeError(f"Mint account needs {MINT_SIZE} bytes, got {len(data)}")
    try:
        parsed = MINT_LAYOUT.parse(data[:MINT_SIZE])
    except ConstructError as e:
        raise DecodeError(f"Malformed mint account: {e}") from e
    if not parsed.is_initialized:
        raise DecodeError("Mint is not initialized")
    return MintState(
        mint_authority=_optional_key(parsed.mint_authority_option, parsed.mint_authority),
        supply=parsed.supply,
        decimals=parsed.decimals,
        freeze_authority=_optional_key(parsed.freeze_authority_option, parsed.freeze_authority),
    )


def classify_account(account: RawAccount) -> AccountKind:
    """Executable, then system-owned, then token-program data shape; anything else is OTHER."""
    if account.executable:
        return AccountKind.PROGRAM
    if account.owner == SolanaProgramAddresses.SYSTEM_PROGRAM_ID:
        return AccountKind.WALLET
    if account.owner != SolanaProgramAddresses.TOKEN_PROGRAM_ID:
        return AccountKind.OTHER
    # Mints are exactly 82 bytes; token accounts are 165 or more
    decode, kind = (
        (decode_mint_account, AccountKind.MINT) if len(account.data) == MINT_SIZE
        else (decode_token_account, AccountKind.TOKEN_ACCOUNT)
    )
    try:
        decode(account.data)
    except DecodeError as e:
        logger.debug(f"Token program account {account.address} is neither token account nor mint: {e}")
        return AccountKind.OTHER
    return kind


def _combine(address: Pubkey, token: TokenAccountState, mint: MintState) -> AssociatedTokenAccount:
    return AssociatedTokenAccount(
        pubkey=address,
        owner_pubkey=token.owner,
        mint_pubkey=token.mint,
        token_amount=token.amount,
        token_ui_amount=to_ui_amount(token.amount, mint.decimals),
        mint_supply=to_ui_amount(mint.supply, mint.decimals),
        mint_decimals=mint.decimals,
        mint_authority=mint.mint_authority,
    )


class AccountReader:
    """Fetches accounts through a SolanaClient and decodes them. Holds no cache."""

    def __init__(self, client: SolanaClient):
        self.client = client

    async def fetch(self, address: AddressLike) -> RawAccount:
        pubkey = parse_address(address)
        account = await self.client.get_account_info(pubkey)
        if account is None:
            raise AccountNotFoundError(pubkey)
        return account

    async def get_token_account(self, address: AddressLike) -> TokenAccountState:
        return decode_token_account((await self.fetch(address)).data)

    async def get_mint(self, mint: AddressLike) -> MintState:
        return decode_mint_account((await self.fetch(mint)).data)

    async def get_associated_token_account(self, address: AddressLike) -> AssociatedTokenAccount:
        pubkey = parse_address(address)
        token = await self.get_token_account(pubkey)
        mint = await self.get_mint(token.mint)
        return _combine(pubkey, token, mint)

    async def get_associated_token_account_for(
        self, owner: AddressLike, mint: AddressLike
    ) -> AssociatedTokenAccount:
        ata = derive_associated_token_address(
            parse_address(owner, "owner"), parse_address(mint, "mint")
        )
        return await self.get_associated_token_account(ata)

    async def get_multiple_associated_token_accounts(
        self, addresses: Sequence[AddressLike]
    ) -> List[AssociatedTokenAccount]:
        """
        Batched variant: one getMultipleAccounts for the token accounts and one
        for their distinct mints. Missing or undecodable accounts are skipped.
        """
        pubkeys = [parse_address(a) for a in addresses]
        raw_tokens = await self.client.get_multiple_accounts(pubkeys)

        tokens: List[Tuple[Pubkey, TokenAccountState]] = []
        for pubkey, raw in zip(pubkeys, raw_tokens):
            if raw is None:
                logger.warning(f"Token account {pubkey} not found, skipping")
                continue
            try:
                tokens.append((pubkey, decode_token_account(raw.data)))
            except DecodeError as e:
                logger.warning(f"Skipping {pubkey}: {e}")

        mints = await self._fetch_mints(list(dict.fromkeys(token.mint for _, token in tokens)))
        return [
            _combine(pubkey, token, mints[token.mint])
            for pubkey, token in tokens
            if token.mint in mints
        ]

    async def _fetch_mints(self, mint_keys: List[Pubkey]) -> Dict[Pubkey, MintState]:
        """One getMultipleAccounts for mint_keys; missing or undecodable mints are left out."""
        raw_mints = await self.client.get_multiple_accounts(mint_keys)
        mints = {}
        for mint_key, raw in zip(mint_keys, raw_mints):
            if raw is None:
                logger.warning(f"Mint {mint_key} not found")
                continue
            try:
                mints[mint_key] = decode_mint_account(raw.data)
            except DecodeError as e:
                logger.warning(f"Skipping mint {mint_key}: {e}")
        return mints

    async def get_multiple_mint_accounts(self, mints: Sequence[AddressLike]) -> List[MintAccount]:
        """Mints in input order, batched into one call. Missing or undecodable mints are skipped."""
        mint_keys = [parse_address(m, "mint") for m in mints]
        decoded = await self._fetch_mints(mint_keys)
        return [
            MintAccount(
                pubkey=key,
                supply=decoded[key].supply,
                decimals=decoded[key].decimals,
                mint_authority=decoded[key].mint_authority,
                freeze_authority=decoded[key].freeze_authority,
            )
            for key in mint_keys
            if key in decoded
        ]

    async def get_all_token_accounts(
        self, wallet: AddressLike, token_program: Pubkey = SolanaProgramAddresses.TOKEN_PROGRAM_ID
    ) -> List[AssociatedTokenAccount]:
        """
        Every token account the wallet owns under token_program, joined with
        its mint. Uses getTokenAccountsByOwner plus one batched mint read.
        """
        owner = parse_address(wallet, "wallet")
        raw_accounts = await self.client.get_token_accounts_by_owner(owner, token_program)

        tokens: List[Tuple[Pubkey, TokenAccountState]] = []
        for raw in raw_accounts:
            try:
                tokens.append((raw.address, decode_token_account(raw.data)))
            except DecodeError as e:
                logger.warning(f"Skipping {raw.address}: {e}")

        mints = await self._fetch_mints(list(dict.fromkeys(token.mint for _, token in tokens)))
        logger.debug(f"{owner} owns {len(tokens)} token accounts over {len(mints)} mints")
        return [
            _combine(pubkey, token, mints[token.mint])
            for pubkey, token in tokens
            if token.mint in mints
        ]

    async def parse_account(self, address: AddressLike) -> ParsedAccount:
        """
        Fetches one account and decodes it by kind. Wallets come back with
        their token accounts, token accounts with their state, mints with
        theirs. Programs and anything else carry only the raw fields.
        """
        raw = await self.fetch(address)
        kind = classify_account(raw)
        parsed = ParsedAccount(address=raw.address, kind=kind, lamports=raw.lamports, owner=raw.owner)
        if kind is AccountKind.WALLET:
            parsed = replace(parsed, token_accounts=tuple(await self.get_all_token_accounts(raw.address)))
        elif kind is AccountKind.TOKEN_ACCOUNT:
            parsed = replace(parsed, token_account=decode_token_account(raw.data))
        elif kind is AccountKind.MINT:
            parsed = replace(parsed, mint=decode_mint_account(raw.data))
        return parsed

    async def get_sol_balance(self, address: AddressLike) -> Decimal:
        lamports = await self.client.get_balance_lamports(parse_address(address))
        return Decimal(lamports) / SOL

    async def get_token_balance(self, token_account: AddressLike) -> TokenBalance:
        token = await self.get_token_account(token_account)
        mint = await self.get_mint(token.mint)
        return TokenBalance(amount=token.amount, decimals=mint.decimals)

    async def get_bonding_curve(
        self, mint: AddressLike, allow_complete: bool = False
    ) -> Tuple[Pubkey, BondingCurveAccount]:
        curve_address = find_bonding_curve_address(parse_address(mint, "mint"))
        raw = await self.fetch(curve_address)
        return curve_address, decode_bonding_curve(raw.data, allow_complete=allow_complete)
