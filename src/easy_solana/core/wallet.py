# src/easy_solana/core/wallet.py

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .exceptions import ConfigError
from .pubkeys import derive_associated_token_address
from ..utils.logger import get_logger

logger = get_logger(__name__)

SECRET_KEY_LENGTH = 64


def base58_to_keypair(private_key_bs58: str) -> Keypair:
    """Decodes a base58 64-byte secret key. The key itself never reaches the logs."""
    try:
        private_key_bytes: bytes = base58.b58decode(private_key_bs58.strip())
    except ValueError as e:
        logger.error("Invalid base58 private key provided")
        raise ConfigError("Invalid private key format") from e
    if len(private_key_bytes) != SECRET_KEY_LENGTH:
        raise ConfigError(f"Private key must decode to {SECRET_KEY_LENGTH} bytes, got {len(private_key_bytes)}")
    try:
        return Keypair.from_bytes(private_key_bytes)
    except ValueError as e:
        raise ConfigError("Private key bytes do not form a valid keypair") from e


class Wallet:
    """ The signing credential: a keypair plus a few address helpers. """

    def __init__(self, keypair: Keypair):
        self.keypair = keypair
        self.pubkey: Pubkey = keypair.pubkey()
        logger.info(f"Wallet initialized for pubkey: {self.pubkey}")

    @classmethod
    def from_base58(cls, private_key_bs58: str) -> "Wallet":
        return cls(base58_to_keypair(private_key_bs58))

    @classmethod
    def from_settings(cls, settings) -> "Wallet":
        if not settings.private_key:
            raise ConfigError("SOLANA_PRIVATE_KEY is not set")
        return cls.from_base58(settings.private_key)

    def get_associated_token_address(self, mint: Pubkey) -> Pubkey:
        return derive_associated_token_address(self.pubkey, mint)

    def __repr__(self) -> str:
        return f"Wallet({self.pubkey})"
