import os
import sys
from typing import Any

import pytest

sys.path.insert(0, os.path.dirname(__file__))

from fakes import FakeChain, new_key  # noqa: E402

from solreward.config import Config  # noqa: E402
from solreward.logging_utils import reset_warn_once_cache  # noqa: E402

_ENV_PREFIXES = ("SOLREWARD_", "HELIUS_RPC_URL", "SOLANA_RPC_URL", "LOG_LEVEL", "LOG_JSON")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith(_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    reset_warn_once_cache()
    yield


@pytest.fixture
def target_mint() -> str:
    return new_key()


@pytest.fixture
def target_pool() -> str:
    return new_key()


@pytest.fixture
def wallet() -> str:
    return new_key()


@pytest.fixture
def make_config(target_mint, target_pool):
    def _make(**overrides: Any) -> Config:
        data = {
            "rpc_urls": ["https://rpc-1.example.com"],
            "target_mint": target_mint,
            "target_pool": target_pool,
            "max_attempts_per_endpoint": 1,
            "base_delay": 0.0,
            "chunk_size": 2,
        }
        data.update(overrides)
        return Config.from_mapping(data)

    return _make


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()
