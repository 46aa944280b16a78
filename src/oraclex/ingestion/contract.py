"""Market factory contract over JSON-RPC (web3.py AsyncWeb3)."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, TypeVar

import structlog
from web3 import AsyncWeb3, Web3
from web3.middleware import ExtraDataToPOAMiddleware

from oraclex.config.settings import Settings
from oraclex.errors import ChainConnectionError, ConfigurationError, NetworkMismatchError
from oraclex.ingestion.base import EventSource
from oraclex.models import ChainEvent, EventMeta, MarketDetails, NetworkInfo, build_event

log = structlog.get_logger(__name__)

T = TypeVar("T")

# Block number -> timestamp entries kept before the cache is reset.
BLOCK_TIME_CACHE_SIZE = 4096

EVENT_SIGNATURES = {
    "MarketCreated": "MarketCreated(uint256,address,string,uint256,string,uint8)",
    "PredictionPlaced": "PredictionPlaced(uint256,address,uint8,uint256)",
    "MarketResolved": "MarketResolved(uint256,uint8,uint256)",
}


def _input(name: str, type_: str, indexed: bool | None = None) -> dict[str, Any]:
    item: dict[str, Any] = {"name": name, "type": type_, "internalType": type_}
    if indexed is not None:
        item["indexed"] = indexed
    return item


MARKET_FACTORY_ABI: list[dict[str, Any]] = [
    {
        "type": "event",
        "name": "MarketCreated",
        "anonymous": False,
        "inputs": [
            _input("marketId", "uint256", True),
            _input("creator", "address", True),
            _input("question", "string", False),
            _input("endTime", "uint256", False),
            _input("category", "string", False),
            _input("oracleType", "uint8", False),
        ],
    },
    {
        "type": "event",
        "name": "PredictionPlaced",
        "anonymous": False,
        "inputs": [
            _input("marketId", "uint256", True),
            _input("user", "address", True),
            _input("outcome", "uint8", False),
            _input("amount", "uint256", False),
        ],
    },
    {
        "type": "event",
        "name": "MarketResolved",
        "anonymous": False,
        "inputs": [
            _input("marketId", "uint256", True),
            _input("winningOutcome", "uint8", False),
            _input("resolutionTime", "uint256", False),
        ],
    },
    {
        "type": "function",
        "name": "getMarket",
        "stateMutability": "view",
        "inputs": [_input("marketId", "uint256")],
        "outputs": [
            _input("question", "string"),
            _input("endTime", "uint256"),
            _input("resolved", "bool"),
            _input("outcome", "uint8"),
            _input("totalStaked", "uint256"),
            _input("creator", "address"),
            _input("category", "string"),
        ],
    },
]


def event_topics() -> dict[str, str]:
    """topic0 (0x-hex keccak of the signature) -> event name."""
    return {Web3.to_hex(Web3.keccak(text=sig)): name for name, sig in EVENT_SIGNATURES.items()}


class Web3EventSource(EventSource):
    """EventSource backed by an HTTP JSON-RPC endpoint, pinned to one chain id."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str | None,
        *,
        chain_id: int = 97,
        network_name: str = "bsc-testnet",
        request_timeout_sec: float = 20.0,
    ) -> None:
        if not contract_address:
            raise ConfigurationError("MARKET_FACTORY_ADDRESS not configured")
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.network_name = network_name
        self.request_timeout_sec = request_timeout_sec
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        # BSC (POA) blocks carry more extraData than the yellow paper allows.
        self.w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        self.address = Web3.to_checksum_address(contract_address)
        self.contract = self.w3.eth.contract(address=self.address, abi=MARKET_FACTORY_ABI)
        self._topics = event_topics()
        self._block_times: dict[int, int] = {}
        log.info("rpc_endpoint", url=rpc_url, contract=self.address, chain_id=chain_id)

    @classmethod
    def from_settings(cls, settings: Settings) -> Web3EventSource:
        return cls(
            settings.rpc_url,
            settings.contract_address,
            chain_id=settings.chain_id,
            network_name=settings.network_name,
            request_timeout_sec=settings.request_timeout_sec,
        )

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self.request_timeout_sec)

    def _log_filter(self, from_block: int | str, to_block: int | str | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {
            "address": self.address,
            "fromBlock": from_block,
            "topics": [list(self._topics)],
        }
        if to_block is not None:
            params["toBlock"] = to_block
        return params

    def decode_log(self, raw_log: Any) -> ChainEvent | None:
        """Decode one raw log into an event model; None for logs we do not track."""
        topics = raw_log["topics"]
        if not topics:
            return None
        name = self._topics.get(Web3.to_hex(topics[0]))
        if name is None:
            return None
        decoded = getattr(self.contract.events, name)().process_log(raw_log)
        meta = EventMeta(
            block_number=int(decoded["blockNumber"]),
            tx_hash=Web3.to_hex(decoded["transactionHash"]),
            log_index=int(decoded["logIndex"]),
        )
        return build_event(name, decoded["args"], meta)

    def _decode_all(self, raw_logs: list[Any]) -> list[ChainEvent]:
        """Decode a batch. A log that fails to decode is logged and skipped alone."""
        events = []
        for raw in raw_logs:
            try:
                event = self.decode_log(raw)
            except Exception as e:
                tx_hash = raw.get("transactionHash")
                log.warning(
                    "log_decode_failed",
                    tx_hash=Web3.to_hex(tx_hash) if tx_hash is not None else None,
                    log_index=raw.get("logIndex"),
                    block=raw.get("blockNumber"),
                    error=str(e),
                )
                continue
            if event is not None:
                events.append(event)
        return events

    async def connect(self) -> NetworkInfo:
        try:
            chain_id = int(await self._call(self.w3.eth.chain_id))
        except Exception as e:
            raise ChainConnectionError(f"Cannot reach {self.rpc_url}: {e}") from e
        if chain_id != self.chain_id:
            raise NetworkMismatchError(self.chain_id, chain_id)
        return NetworkInfo(chain_id=chain_id, name=self.network_name)

    async def get_latest_block(self) -> int:
        return int(await self._call(self.w3.eth.block_number))

    async def get_latest_block_header(self) -> tuple[int, int]:
        block = await self._call(self.w3.eth.get_block("latest"))
        return int(block["number"]), int(block["timestamp"])

    async def get_block_timestamp(self, block_number: int) -> int:
        cached = self._block_times.get(block_number)
        if cached is not None:
            return cached
        block = await self._call(self.w3.eth.get_block(block_number))
        if len(self._block_times) >= BLOCK_TIME_CACHE_SIZE:
            self._block_times.clear()
        self._block_times[block_number] = int(block["timestamp"])
        return self._block_times[block_number]

    async def get_logs(self, from_block: int, to_block: int) -> list[ChainEvent]:
        raw_logs = await self._call(self.w3.eth.get_logs(self._log_filter(from_block, to_block)))
        return self._decode_all(raw_logs)

    async def get_market(self, market_id: int) -> MarketDetails:
        values = await self._call(self.contract.functions.getMarket(market_id).call())
        return MarketDetails.from_tuple(values)

    async def create_filter(self, from_block: int | None = None) -> Any:
        log_filter = await self._call(
            self.w3.eth.filter(self._log_filter("latest" if from_block is None else from_block))
        )
        return log_filter.filter_id

    async def get_filter_changes(self, filter_id: Any) -> list[ChainEvent]:
        raw_logs = await self._call(self.w3.eth.get_filter_changes(filter_id))
        return self._decode_all(raw_logs)

    async def uninstall_filter(self, filter_id: Any) -> None:
        await self._call(self.w3.eth.uninstall_filter(filter_id))
