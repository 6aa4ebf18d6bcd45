# src/easy_solana/core/exceptions.py

from typing import Any, Optional


class EasySolanaException(Exception):
    """Base class for every error raised by this package."""
    pass


class ConfigError(EasySolanaException):
    """Missing or malformed configuration value."""
    pass


class AccountNotFoundError(EasySolanaException):
    """The requested account does not exist on-chain."""

    def __init__(self, address: Any, message: Optional[str] = None):
        self.address = address
        super().__init__(message or f"Account not found: {address}")


class DecodeError(EasySolanaException):
    """Account bytes do not match the expected layout."""
    pass


class InvalidAmountError(EasySolanaException, ValueError):
    """An amount is zero, negative or otherwise out of range."""

    def __init__(self, field: str, value: Any, reason: str = "must be positive"):
        self.field = field
        self.value = value
        super().__init__(f"Invalid {field} {value!r}: {reason}")


class InvalidAddressError(EasySolanaException, ValueError):
    """Text that does not parse as a base58 public key."""

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = value
        super().__init__(f"Invalid address for {field}: {value!r}")


class EmptyTransactionError(EasySolanaException):
    """Build was requested for a transaction with no instructions."""
    pass


class StaleBlockhashError(EasySolanaException):
    """The blockhash anchor is too old to submit against."""

    def __init__(self, age_seconds: float, max_age_seconds: float):
        self.age_seconds = age_seconds
        self.max_age_seconds = max_age_seconds
        super().__init__(
            f"Blockhash is {age_seconds:.1f}s old (max {max_age_seconds:.1f}s); fetch a new one"
        )


class BuildTransactionError(EasySolanaException):
    """For errors during transaction compilation or signing."""
    pass


class RpcError(EasySolanaException):
    """Transport or node failure while talking to the RPC endpoint."""

    def __init__(self, method: str, original: Optional[BaseException] = None, message: Optional[str] = None):
        self.method = method
        self.original = original
        super().__init__(message or f"RPC {method} failed: {original}")


class ConfirmationTimeoutError(EasySolanaException, TimeoutError):
    """The transaction did not reach the target commitment in time."""

    def __init__(self, signature: Any, message: Optional[str] = None):
        self.signature = signature
        super().__init__(message or f"Timed out waiting for confirmation of {signature}")


class TransactionExpiredError(ConfirmationTimeoutError):
    """Block height passed the anchor's last valid height without the transaction landing."""

    def __init__(self, signature: Any, last_valid_block_height: int):
        self.last_valid_block_height = last_valid_block_height
        super().__init__(
            signature,
            f"Transaction {signature} expired: block height passed {last_valid_block_height}",
        )


class TransactionFailedError(EasySolanaException):
    """The transaction landed but its execution failed."""

    def __init__(self, signature: Any, error: Any):
        self.signature = signature
        self.error = error
        super().__init__(f"Transaction {signature} failed: {error}")


class BondingCurveError(EasySolanaException):
    """The curve state cannot produce a price."""
    pass


class DivideByZeroError(BondingCurveError, ZeroDivisionError):
    """Virtual token reserve is zero."""
    pass


class CompletedCurveError(BondingCurveError):
    """The curve has migrated; its reserves no longer price the token."""
    pass
