"""Program ids, PDA seeds and account layout offsets."""

from __future__ import annotations

from decimal import Decimal

# SPL Token Program (SPL-Token v2) and Token-2022
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"

# Raydium concentrated-liquidity program (mainnet)
CLMM_PROGRAM_ID = "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK"

# Seeds used to derive position-state addresses from a position NFT mint.
POSITION_SEED = b"position"
PERSONAL_POSITION_SEED = b"personal_position"
POSITION_SEEDS: tuple[bytes, ...] = (POSITION_SEED, PERSONAL_POSITION_SEED)

# Token account layout: mint (32) | owner (32) | amount (u64 LE) | ...
TOKEN_ACCOUNT_MINT_OFFSET = 0
TOKEN_ACCOUNT_OWNER_OFFSET = 32
TOKEN_ACCOUNT_AMOUNT_OFFSET = 64
TOKEN_ACCOUNT_DATA_SIZE = 165

# Mint layout: mint_authority option (36) | supply (8) | decimals (1) | ...
MINT_DECIMALS_OFFSET = 44
MINT_ACCOUNT_DATA_SIZE = 82

# Position state layout:
# discriminator (8) | bump (1) | nft_mint (32) | pool_id (32) |
# tick_lower (i32) | tick_upper (i32) | liquidity (u128 LE) | ...
POSITION_POOL_ID_OFFSET = 41
POSITION_LIQUIDITY_OFFSET = 81

PUBKEY_LENGTH = 32
U64_LENGTH = 8
U128_LENGTH = 16

# Raw liquidity is divided by 1e9 for display. This is an approximation and
# not the token amount locked in the position.
LIQUIDITY_DISPLAY_DIVISOR = Decimal(10) ** 9

# getMultipleAccounts accepts at most 100 keys per request.
MAX_MULTIPLE_ACCOUNTS = 100

__all__ = [
    "TOKEN_PROGRAM_ID",
    "TOKEN_2022_PROGRAM_ID",
    "CLMM_PROGRAM_ID",
    "POSITION_SEED",
    "PERSONAL_POSITION_SEED",
    "POSITION_SEEDS",
    "TOKEN_ACCOUNT_MINT_OFFSET",
    "TOKEN_ACCOUNT_OWNER_OFFSET",
    "TOKEN_ACCOUNT_AMOUNT_OFFSET",
    "TOKEN_ACCOUNT_DATA_SIZE",
    "MINT_DECIMALS_OFFSET",
    "MINT_ACCOUNT_DATA_SIZE",
    "POSITION_POOL_ID_OFFSET",
    "POSITION_LIQUIDITY_OFFSET",
    "PUBKEY_LENGTH",
    "U64_LENGTH",
    "U128_LENGTH",
    "LIQUIDITY_DISPLAY_DIVISOR",
    "MAX_MULTIPLE_ACCOUNTS",
]
