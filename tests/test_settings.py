"""Config loading, environment overrides, RPC selection and block estimation."""

from oraclex.config.settings import (
    DEFAULT_RPC_URL,
    apply_env_overrides,
    get_settings,
    load_config,
    select_rpc_url,
)
from oraclex.ingestion.base import estimate_block_at

DEFAULT_TOML = """
[chain]
rpc_urls = ["https://rpc-a.example", "https://rpc-b.example"]
contract_address = ""
chain_id = 97

[sync]
historical_sync = false
deployment_block = 0

[storage]
db_path = "data/test.duckdb"

[logging]
level = "INFO"
"""

DEV_TOML = """
[sync]
historical_sync = true

[logging]
level = "DEBUG"
"""


def _config_dir(tmp_path):
    (tmp_path / "default.toml").write_text(DEFAULT_TOML)
    (tmp_path / "dev.toml").write_text(DEV_TOML)
    return tmp_path


def test_profile_overlays_default(tmp_path):
    raw = load_config("dev", _config_dir(tmp_path))
    assert raw["sync"]["historical_sync"] is True
    assert raw["sync"]["deployment_block"] == 0
    assert raw["logging"]["level"] == "DEBUG"
    assert raw["chain"]["chain_id"] == 97


def test_missing_config_dir_gives_defaults(tmp_path):
    settings = get_settings(config_dir=tmp_path, environ={})
    assert settings.contract_address is None
    assert settings.rpc_url == DEFAULT_RPC_URL
    assert settings.historical_sync is False
    assert settings.workers == 1


def test_env_overrides(tmp_path):
    settings = get_settings(
        config_dir=_config_dir(tmp_path),
        environ={
            "MARKET_FACTORY_ADDRESS": "0x" + "ab" * 20,
            "DEPLOYMENT_BLOCK": "12345",
            "ORACLEX_DB_PATH": "/tmp/other.duckdb",
            "BSC_RPC_URL": "https://primary.example",
            "LOG_LEVEL": "warning",
        },
    )
    assert settings.contract_address == "0x" + "ab" * 20
    assert settings.deployment_block == 12345
    assert settings.db_path == "/tmp/other.duckdb"
    assert settings.rpc_urls == ["https://primary.example", "https://rpc-a.example", "https://rpc-b.example"]
    assert settings.rpc_url == "https://primary.example"
    assert settings.logging_level == "WARNING"


def test_historical_sync_only_for_literal_true(tmp_path):
    config_dir = _config_dir(tmp_path)
    for value, expected in [("true", True), ("TRUE", False), ("1", False), ("yes", False), ("false", False)]:
        settings = get_settings(config_dir=config_dir, environ={"ENABLE_HISTORICAL_SYNC": value})
        assert settings.historical_sync is expected, value
    # Unset keeps the file value
    assert get_settings("dev", config_dir, environ={}).historical_sync is True


def test_empty_env_values_are_ignored():
    raw = {"chain": {"contract_address": "0xfile"}}
    merged = apply_env_overrides(raw, {"MARKET_FACTORY_ADDRESS": "", "BSC_RPC_URL": ""})
    assert merged == raw


def test_select_rpc_url():
    assert select_rpc_url(["https://a", "https://b"]) == "https://a"
    assert select_rpc_url([None, "  ", "https://b"]) == "https://b"
    assert select_rpc_url([]) == DEFAULT_RPC_URL


def test_estimate_block_at():
    # 3s blocks: 300s before the head is 100 blocks back
    assert estimate_block_at(5000, 1_700_000_000, 1_700_000_000 - 300) == 4900
    assert estimate_block_at(5000, 1_700_000_000, 1_700_000_000) == 5000
    # Clamped to [0, head]
    assert estimate_block_at(5000, 1_700_000_000, 1_700_000_000 + 600) == 5000
    assert estimate_block_at(50, 1_700_000_000, 1_000_000_000) == 0
