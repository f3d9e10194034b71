"""On-chain reward eligibility checks for Solana wallets."""

from .config import Config, load_config
from .errors import (
    ConfigError,
    DecodeError,
    DeprioritizedError,
    ExhaustedError,
    FatalProviderError,
    NotFoundError,
    RetryableProviderError,
    RPCError,
)
from .models import DiscoveryResult, PositionRecord, ScanResult
from .scanner import WalletScanner, scan_wallet_sync

__version__ = "0.1.0"

__all__ = [
    "Config",
    "load_config",
    "WalletScanner",
    "scan_wallet_sync",
    "ScanResult",
    "DiscoveryResult",
    "PositionRecord",
    "RPCError",
    "RetryableProviderError",
    "FatalProviderError",
    "DeprioritizedError",
    "ExhaustedError",
    "DecodeError",
    "NotFoundError",
    "ConfigError",
]
