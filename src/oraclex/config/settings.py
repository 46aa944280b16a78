"""TOML config loading, profiles and environment overrides."""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Mapping

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"

DEFAULT_RPC_URL = "https://bsc-testnet-rpc.publicnode.com"

# Environment variable -> (section, key)
_ENV_OVERRIDES = {
    "MARKET_FACTORY_ADDRESS": ("chain", "contract_address"),
    "DEPLOYMENT_BLOCK": ("sync", "deployment_block"),
    "ORACLEX_DB_PATH": ("storage", "db_path"),
    "LOG_LEVEL": ("logging", "level"),
}


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    directory = _find_config_dir(config_dir)
    default_path = directory / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = directory / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def apply_env_overrides(raw: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Overlay environment variables on the file config. Empty values are ignored."""
    overlay: dict[str, Any] = {}
    for var, (section, key) in _ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            overlay.setdefault(section, {})[key] = value
    historical = environ.get("ENABLE_HISTORICAL_SYNC")
    if historical is not None and historical != "":
        overlay.setdefault("sync", {})["historical_sync"] = historical.strip() == "true"
    primary_rpc = environ.get("BSC_RPC_URL")
    if primary_rpc:
        file_urls = list((raw.get("chain") or {}).get("rpc_urls") or [])
        overlay.setdefault("chain", {})["rpc_urls"] = [primary_rpc, *file_urls]
    return _deep_merge(raw, overlay)


def get_settings(
    profile: str | None = None,
    config_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Return Settings instance from merged config and environment."""
    raw = load_config(profile, config_dir)
    raw = apply_env_overrides(raw, os.environ if environ is None else environ)
    return Settings.from_dict(raw)


def select_rpc_url(candidates: list[str | None]) -> str:
    """First non-empty candidate wins, else the public fallback."""
    for url in candidates:
        if url and url.strip():
            return url.strip()
    return DEFAULT_RPC_URL


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        chain: dict[str, Any] | None = None,
        sync: dict[str, Any] | None = None,
        storage: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.chain = chain or {}
        self.sync = sync or {}
        self.storage = storage or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            chain=raw.get("chain"),
            sync=raw.get("sync"),
            storage=raw.get("storage"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/oraclex.duckdb")

    @property
    def rpc_urls(self) -> list[str]:
        return list(self.chain.get("rpc_urls") or [])

    @property
    def rpc_url(self) -> str:
        return select_rpc_url(self.rpc_urls)

    @property
    def contract_address(self) -> str | None:
        value = self.chain.get("contract_address")
        return value or None

    @property
    def chain_id(self) -> int:
        return int(self.chain.get("chain_id", 97))

    @property
    def network_name(self) -> str:
        return self.chain.get("network_name", "bsc-testnet")

    @property
    def request_timeout_sec(self) -> float:
        return float(self.chain.get("request_timeout_sec", 20.0))

    @property
    def poll_interval_sec(self) -> float:
        return float(self.chain.get("poll_interval_sec", 4.0))

    @property
    def historical_sync(self) -> bool:
        return bool(self.sync.get("historical_sync", False))

    @property
    def deployment_block(self) -> int:
        return int(self.sync.get("deployment_block", 0))

    @property
    def lookback_blocks(self) -> int:
        return int(self.sync.get("lookback_blocks", 10_000))

    @property
    def queue_size(self) -> int:
        return int(self.sync.get("queue_size", 1000))

    @property
    def workers(self) -> int:
        return max(1, int(self.sync.get("workers", 1)))

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
