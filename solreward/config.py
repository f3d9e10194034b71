from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

import tomllib
from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, ValidationError, field_validator
from solders.pubkey import Pubkey

from .constants import (
    CLMM_PROGRAM_ID,
    MAX_MULTIPLE_ACCOUNTS,
    POSITION_LIQUIDITY_OFFSET,
    POSITION_POOL_ID_OFFSET,
    TOKEN_ACCOUNT_AMOUNT_OFFSET,
)
from .endpoint_pool import RetryPolicy
from .errors import ConfigError

logger = logging.getLogger(__name__)

# Config field -> environment variable
ENV_VARS: Dict[str, str] = {
    "rpc_urls": "SOLREWARD_RPC_URLS",
    "target_mint": "SOLREWARD_TARGET_MINT",
    "target_pool": "SOLREWARD_TARGET_POOL",
    "clmm_program_id": "SOLREWARD_CLMM_PROGRAM",
    "max_attempts_per_endpoint": "SOLREWARD_RPC_MAX_ATTEMPTS",
    "base_delay": "SOLREWARD_RPC_BACKOFF_BASE",
    "max_delay": "SOLREWARD_RPC_BACKOFF_CAP",
    "request_timeout": "SOLREWARD_RPC_TIMEOUT",
    "max_concurrency": "SOLREWARD_RPC_CONCURRENCY",
    "commitment": "SOLREWARD_COMMITMENT",
    "chunk_size": "SOLREWARD_CHUNK_SIZE",
    "page_size": "SOLREWARD_PAGE_SIZE",
    "token_amount_offset": "SOLREWARD_TOKEN_AMOUNT_OFFSET",
    "liquidity_offset": "SOLREWARD_LIQUIDITY_OFFSET",
    "pool_id_offset": "SOLREWARD_POOL_ID_OFFSET",
    "paginated_fallback": "SOLREWARD_PAGINATED_FALLBACK",
    "verify_fast_path": "SOLREWARD_VERIFY_FAST_PATH",
    "scan_timeout": "SOLREWARD_SCAN_TIMEOUT",
    "min_token_balance": "SOLREWARD_MIN_TOKEN_BALANCE",
    "min_lp_liquidity": "SOLREWARD_MIN_LP_LIQUIDITY",
    "eligibility_mode": "SOLREWARD_ELIGIBILITY_MODE",
}

# Single-endpoint fallbacks shared with other Solana tooling.
_LEGACY_RPC_ENV = ("HELIUS_RPC_URL", "SOLANA_RPC_URL")


class ConfigModel(BaseModel):
    """Schema for solreward configuration values."""

    model_config = ConfigDict(extra="ignore")

    rpc_urls: List[AnyHttpUrl] = Field(min_length=1)
    target_mint: str
    target_pool: str
    clmm_program_id: str = CLMM_PROGRAM_ID
    max_attempts_per_endpoint: int = Field(default=3, ge=1)
    base_delay: float = Field(default=0.5, ge=0)
    max_delay: float = Field(default=8.0, ge=0)
    request_timeout: float = Field(default=15.0, gt=0)
    max_concurrency: int = Field(default=4, ge=1)
    commitment: Literal["processed", "confirmed", "finalized"] = "confirmed"
    chunk_size: int = Field(default=MAX_MULTIPLE_ACCOUNTS, ge=1, le=MAX_MULTIPLE_ACCOUNTS)
    page_size: int = Field(default=1000, ge=1)
    token_amount_offset: int = Field(default=TOKEN_ACCOUNT_AMOUNT_OFFSET, ge=0)
    liquidity_offset: int = Field(default=POSITION_LIQUIDITY_OFFSET, ge=0)
    pool_id_offset: int = Field(default=POSITION_POOL_ID_OFFSET, ge=0)
    paginated_fallback: bool = True
    verify_fast_path: bool = True
    scan_timeout: Optional[float] = Field(default=None, gt=0)
    min_token_balance: Decimal = Field(default=Decimal(0), ge=0)
    min_lp_liquidity: Decimal = Field(default=Decimal(0), ge=0)
    eligibility_mode: Literal["any", "all"] = "any"

    @field_validator("target_mint", "target_pool", "clmm_program_id")
    @classmethod
    def _valid_pubkey(cls, value: str) -> str:
        text = str(value).strip()
        try:
            Pubkey.from_string(text)
        except Exception as exc:
            raise ValueError(f"{text!r} is not a valid base58 public key") from exc
        return text


def validate_config(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate ``data`` against :class:`ConfigModel`.

    Returns the validated data with type normalization applied.  Endpoint URLs
    keep their original spelling.  Raises :class:`ConfigError` on failure.
    """
    try:
        model = ConfigModel(**data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
    values = model.model_dump()
    values["rpc_urls"] = [str(u).strip() for u in data["rpc_urls"]]
    return values


def _split_urls(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(part).strip() for part in value if str(part).strip()]


@dataclass
class Config:
    """Runtime configuration populated from environment or file settings."""

    rpc_urls: List[str]
    target_mint: str
    target_pool: str
    clmm_program_id: str = CLMM_PROGRAM_ID
    max_attempts_per_endpoint: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0
    request_timeout: float = 15.0
    max_concurrency: int = 4
    commitment: str = "confirmed"
    chunk_size: int = MAX_MULTIPLE_ACCOUNTS
    page_size: int = 1000
    token_amount_offset: int = TOKEN_ACCOUNT_AMOUNT_OFFSET
    liquidity_offset: int = POSITION_LIQUIDITY_OFFSET
    pool_id_offset: int = POSITION_POOL_ID_OFFSET
    paginated_fallback: bool = True
    verify_fast_path: bool = True
    scan_timeout: Optional[float] = None
    min_token_balance: Decimal = field(default_factory=lambda: Decimal(0))
    min_lp_liquidity: Decimal = field(default_factory=lambda: Decimal(0))
    eligibility_mode: str = "any"

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts_per_endpoint=self.max_attempts_per_endpoint,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Config":
        """Create a validated Config from a plain mapping."""
        raw = dict(data)
        raw["rpc_urls"] = _split_urls(raw.get("rpc_urls"))
        return cls(**validate_config(raw))

    @classmethod
    def from_env(cls, cfg: Mapping[str, Any] | None = None) -> "Config":
        """Create a Config using environment variables over an optional mapping."""
        merged: Dict[str, Any] = dict(cfg or {})
        env = os.environ
        for name, env_name in ENV_VARS.items():
            value = env.get(env_name)
            if value is not None and value.strip() != "":
                merged[name] = value.strip()
        if not _split_urls(merged.get("rpc_urls")):
            for env_name in _LEGACY_RPC_ENV:
                legacy = (env.get(env_name) or "").strip()
                if legacy:
                    merged["rpc_urls"] = [legacy]
                    break
        for flag in ("paginated_fallback", "verify_fast_path"):
            value = merged.get(flag)
            if isinstance(value, str):
                merged[flag] = value.strip().lower() in {"1", "true", "yes", "on"}
        config = cls.from_mapping(merged)
        logger.debug(
            "Loaded configuration with %d endpoint(s), pool=%s",
            len(config.rpc_urls),
            config.target_pool,
        )
        return config

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(path: str | os.PathLike[str] | None = None) -> Config:
    """Load configuration from a TOML file (optional) overlaid by environment.

    Values may sit at the top level or inside a ``[solreward]`` table.
    ``SOLREWARD_CONFIG`` names the file when ``path`` is omitted.
    """

    cfg: Dict[str, Any] = {}
    source = path or os.getenv("SOLREWARD_CONFIG")
    if source:
        file_path = Path(source)
        try:
            with file_path.open("rb") as fh:
                data = tomllib.load(fh)
        except FileNotFoundError as exc:
            raise ConfigError(f"config file {file_path} does not exist") from exc
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"config file {file_path} is not valid TOML: {exc}") from exc
        table = data.get("solreward")
        cfg = dict(table) if isinstance(table, Mapping) else dict(data)
    return Config.from_env(cfg)


__all__ = ["Config", "ConfigModel", "ENV_VARS", "load_config", "validate_config"]
