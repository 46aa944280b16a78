"""Exceptions raised by the chain mirror."""

from __future__ import annotations


class OracleXError(Exception):
    """Base class for mirror errors."""


class ConfigurationError(OracleXError):
    """Required configuration is missing or invalid (e.g. no contract address)."""


class ChainConnectionError(OracleXError):
    """The JSON-RPC endpoint could not be reached or did not answer."""


class NetworkMismatchError(ChainConnectionError):
    """The endpoint serves a different chain than the pinned network."""

    def __init__(self, expected_chain_id: int, actual_chain_id: int) -> None:
        self.expected_chain_id = expected_chain_id
        self.actual_chain_id = actual_chain_id
        super().__init__(
            f"RPC endpoint reports chain id {actual_chain_id}, expected {expected_chain_id}"
        )
