from decimal import Decimal

import pytest

from fakes import new_key
from solreward.config import Config, load_config
from solreward.errors import ConfigError


@pytest.fixture
def keys():
    return {"target_mint": new_key(), "target_pool": new_key()}


def test_from_env_reads_prefixed_variables(monkeypatch, keys):
    monkeypatch.setenv("SOLREWARD_RPC_URLS", "https://a.example.com, https://b.example.com/?api-key=x")
    monkeypatch.setenv("SOLREWARD_TARGET_MINT", keys["target_mint"])
    monkeypatch.setenv("SOLREWARD_TARGET_POOL", keys["target_pool"])
    monkeypatch.setenv("SOLREWARD_CHUNK_SIZE", "50")
    monkeypatch.setenv("SOLREWARD_RPC_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("SOLREWARD_VERIFY_FAST_PATH", "false")
    monkeypatch.setenv("SOLREWARD_MIN_TOKEN_BALANCE", "12.5")

    cfg = Config.from_env()

    assert cfg.rpc_urls == ["https://a.example.com", "https://b.example.com/?api-key=x"]
    assert cfg.chunk_size == 50
    assert cfg.verify_fast_path is False
    assert cfg.paginated_fallback is True
    assert cfg.min_token_balance == Decimal("12.5")
    assert cfg.retry_policy.max_attempts_per_endpoint == 5


def test_legacy_single_endpoint_variable(monkeypatch, keys):
    monkeypatch.setenv("HELIUS_RPC_URL", "https://mainnet.helius-rpc.com/?api-key=k")
    cfg = Config.from_env(keys)
    assert cfg.rpc_urls == ["https://mainnet.helius-rpc.com/?api-key=k"]


def test_environment_overrides_file_values(monkeypatch, tmp_path, keys):
    path = tmp_path / "solreward.toml"
    path.write_text(
        "[solreward]\n"
        'rpc_urls = ["https://file.example.com"]\n'
        f'target_mint = "{keys["target_mint"]}"\n'
        f'target_pool = "{keys["target_pool"]}"\n'
        "page_size = 250\n"
        'eligibility_mode = "all"\n'
    )
    monkeypatch.setenv("SOLREWARD_PAGE_SIZE", "500")

    cfg = load_config(path)

    assert cfg.rpc_urls == ["https://file.example.com"]
    assert cfg.page_size == 500
    assert cfg.eligibility_mode == "all"


def test_config_path_from_environment(monkeypatch, tmp_path, keys):
    path = tmp_path / "flat.toml"
    path.write_text(
        'rpc_urls = "https://flat.example.com"\n'
        f'target_mint = "{keys["target_mint"]}"\n'
        f'target_pool = "{keys["target_pool"]}"\n'
    )
    monkeypatch.setenv("SOLREWARD_CONFIG", str(path))
    assert load_config().rpc_urls == ["https://flat.example.com"]


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.toml")


def test_invalid_toml(tmp_path):
    path = tmp_path / "bad.toml"
    path.write_text("rpc_urls = [\n")
    with pytest.raises(ConfigError):
        load_config(path)


@pytest.mark.parametrize(
    "override",
    [
        {"rpc_urls": []},
        {"rpc_urls": ["not a url"]},
        {"chunk_size": 101},
        {"chunk_size": 0},
        {"target_pool": "not-a-pubkey"},
        {"commitment": "recent"},
        {"eligibility_mode": "most"},
    ],
)
def test_invalid_values_rejected(keys, override):
    data = {"rpc_urls": ["https://a.example.com"], **keys, **override}
    with pytest.raises(ConfigError):
        Config.from_mapping(data)


def test_to_dict_round_trips(keys):
    cfg = Config.from_mapping({"rpc_urls": "https://a.example.com", **keys})
    assert Config.from_mapping(cfg.to_dict()) == cfg
