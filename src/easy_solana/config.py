# src/easy_solana/config.py

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv
from solana.rpc.commitment import Commitment, Confirmed, Finalized, Processed

from .core.constants import DEFAULT_BLOCKHASH_MAX_AGE_SECONDS
from .core.exceptions import ConfigError
from .utils.logger import get_logger, redact_endpoint

logger = get_logger(__name__)

DEFAULT_RPC_ENV_VAR = "SOLANA_RPC_ENDPOINT"
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_CONFIRM_TIMEOUT_SECONDS = 30.0

_COMMITMENTS = {"processed": Processed, "confirmed": Confirmed, "finalized": Finalized}


@dataclass
class Settings:
    rpc_endpoint: str
    private_key: Optional[str] = None
    commitment: Commitment = Confirmed
    rpc_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    confirm_timeout_seconds: float = DEFAULT_CONFIRM_TIMEOUT_SECONDS
    blockhash_max_age_seconds: float = DEFAULT_BLOCKHASH_MAX_AGE_SECONDS

    def __repr__(self) -> str:
        # Keys and credentialed URLs stay out of logs and tracebacks.
        return (
            f"Settings(rpc_endpoint={redact_endpoint(self.rpc_endpoint)!r}, "
            f"private_key={'<set>' if self.private_key else None}, "
            f"commitment={self.commitment!r})"
        )


def resolve_rpc_endpoint(value: Optional[str] = None) -> str:
    """
    Resolves an RPC endpoint given either a literal URL or the name of an
    environment variable holding one. Defaults to SOLANA_RPC_ENDPOINT.
    """
    candidate = value or DEFAULT_RPC_ENV_VAR
    if candidate.startswith(("http://", "https://")):
        return candidate
    from_env = os.getenv(candidate)
    if not from_env:
        raise ConfigError(f"RPC endpoint env var '{candidate}' is not set")
    if not from_env.startswith(("http://", "https://")):
        raise ConfigError(f"Env var '{candidate}' does not hold an http(s) URL")
    return from_env


def parse_commitment(value: Optional[str]) -> Commitment:
    if not value:
        return Confirmed
    try:
        return _COMMITMENTS[value.strip().lower()]
    except KeyError:
        raise ConfigError(f"Unknown commitment level: {value!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings(env_file: Optional[str] = None, rpc: Optional[str] = None) -> Settings:
    """Loads .env (if present) and reads settings from the environment."""
    load_dotenv(dotenv_path=env_file)
    endpoint = resolve_rpc_endpoint(rpc or os.getenv(DEFAULT_RPC_ENV_VAR) or DEFAULT_RPC_ENV_VAR)
    settings = Settings(
        rpc_endpoint=endpoint,
        private_key=os.getenv("SOLANA_PRIVATE_KEY") or None,
        commitment=parse_commitment(os.getenv("SOLANA_COMMITMENT")),
        rpc_timeout_seconds=_env_float("SOLANA_RPC_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
        confirm_timeout_seconds=_env_float("SOLANA_CONFIRM_TIMEOUT_SECONDS", DEFAULT_CONFIRM_TIMEOUT_SECONDS),
        blockhash_max_age_seconds=_env_float(
            "SOLANA_BLOCKHASH_MAX_AGE_SECONDS", DEFAULT_BLOCKHASH_MAX_AGE_SECONDS
        ),
    )
    logger.debug(f"Loaded {settings!r}")
    return settings
