# src/easy_solana/core/constants.py

from decimal import Decimal

# Solana-wide constants
LAMPORTS_PER_SOL = 1_000_000_000
SOL_DECIMALS = 9
MAX_COMPUTE_UNIT_LIMIT = 1_400_000

# Pump.fun mints are always created with 6 decimals
PUMP_TOKEN_DECIMALS = 6

# Seconds a fetched blockhash is trusted before a build refuses it
DEFAULT_BLOCKHASH_MAX_AGE_SECONDS = 60.0

SOL = Decimal(LAMPORTS_PER_SOL)
