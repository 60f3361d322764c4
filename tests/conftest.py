import asyncio
from typing import Any, Dict, List, Optional

import httpx
import orjson
import pytest
import pytest_asyncio
from eth_abi import encode

from config.settings import AnalysisConfig, ChainCatalogConfig, RPCConfig, TokenCacheConfig
from core.analysis.event_decoder import TRANSFER_BATCH_TOPIC, TRANSFER_TOPIC
from core.analysis.transaction_analyzer import TransactionAnalyzer
from services.blockchain.chain_registry import ChainRegistry
from services.blockchain.rpc_pool import RPCPool
from services.cache.token_metadata import (
    DECIMALS_SELECTOR, NAME_SELECTOR, SYMBOL_SELECTOR, TokenMetadataCache
)

CATALOG_URL = "https://catalog.test/chains.json"
RPC_A = "https://rpc-a.test"
RPC_B = "https://rpc-b.test"
GARBAGE_RPC = "https://garbage.test"
BAD_PORT_RPC = "https://bad.test:notaport"

GWEI = 10 ** 9
ETHER = 10 ** 18
BLOCK_TIMESTAMP = 1700000000

SENDER = "0x1111111111111111111111111111111111111111"
RECIPIENT = "0x2222222222222222222222222222222222222222"
TOKEN = "0x3333333333333333333333333333333333333333"
NFT = "0x4444444444444444444444444444444444444444"
MULTI = "0x5555555555555555555555555555555555555555"
CONTRACT_CODE = "0x6080604052"


def tx_hash(n: int) -> str:
    return "0x" + f"{n:064x}"


def address_topic(address: str) -> str:
    return "0x" + "0" * 24 + address[2:].lower()


def uint_topic(value: int) -> str:
    return "0x" + f"{value:064x}"


def abi_hex(types: List[str], values: List[Any]) -> str:
    return "0x" + encode(types, values).hex()


def erc20_log(token: str, sender: str, recipient: str, value: int, log_index: int) -> Dict:
    return {
        "address": token,
        "topics": [TRANSFER_TOPIC, address_topic(sender), address_topic(recipient)],
        "data": abi_hex(["uint256"], [value]),
        "logIndex": hex(log_index)
    }


def erc721_log(token: str, sender: str, recipient: str, token_id: int, log_index: int) -> Dict:
    return {
        "address": token,
        "topics": [TRANSFER_TOPIC, address_topic(sender), address_topic(recipient), uint_topic(token_id)],
        "data": "0x",
        "logIndex": hex(log_index)
    }


def erc1155_batch_log(token: str, operator: str, sender: str, recipient: str,
                      ids: List[int], amounts: List[int], log_index: int) -> Dict:
    return {
        "address": token,
        "topics": [TRANSFER_BATCH_TOPIC, address_topic(operator), address_topic(sender), address_topic(recipient)],
        "data": abi_hex(["uint256[]", "uint256[]"], [ids, amounts]),
        "logIndex": hex(log_index)
    }


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCatalog:
    """Serves the chain catalog document and counts fetches"""

    def __init__(self, chains: List[Dict]):
        self.chains = chains
        self.fetches = 0
        self.status_code = 200
        self.fail = False
        self.delay = 0.0

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.fetches += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise httpx.ConnectError("catalog unreachable", request=request)
        return httpx.Response(self.status_code, content=orjson.dumps(self.chains))


class FakeNode:
    """In-memory JSON-RPC node keyed by endpoint host"""

    def __init__(self):
        self.latest = 100
        self.transactions: Dict[str, Dict] = {}
        self.receipts: Dict[str, Dict] = {}
        self.blocks: Dict[int, Dict] = {}
        self.code: Dict[str, str] = {}
        self.calls: Dict[tuple, str] = {}
        self.failing_hosts = set()
        self.failing_blocks = set()
        self.host_delays: Dict[str, float] = {}
        self.method_delays: Dict[str, float] = {}
        self.host_results: Dict[str, Any] = {}
        self.requests: List[tuple] = []

    def count(self, method: str, host: Optional[str] = None) -> int:
        return sum(1 for h, m, _ in self.requests if m == method and (host is None or h == host))

    def add_token(self, address: str, name: Optional[str] = None, symbol: Optional[str] = None,
                  decimals: Optional[int] = None, code: str = CONTRACT_CODE) -> None:
        self.code[address.lower()] = code
        if name is not None:
            self.calls[(address.lower(), NAME_SELECTOR)] = abi_hex(["string"], [name])
        if symbol is not None:
            self.calls[(address.lower(), SYMBOL_SELECTOR)] = abi_hex(["string"], [symbol])
        if decimals is not None:
            self.calls[(address.lower(), DECIMALS_SELECTOR)] = abi_hex(["uint256"], [decimals])

    def add_transaction(self, hash_: str, sender: str = SENDER, to: Optional[str] = RECIPIENT,
                        value: int = 0, input_data: str = "0x", logs: Optional[List[Dict]] = None,
                        block_number: int = 50, status: int = 1, gas_used: int = 21000,
                        gas_price: int = 20 * GWEI) -> None:
        self.transactions[hash_] = {
            "hash": hash_,
            "from": sender,
            "to": to,
            "value": hex(value),
            "input": input_data,
            "nonce": "0x7",
            "blockNumber": hex(block_number),
            "gasPrice": hex(gas_price)
        }
        self.receipts[hash_] = {
            "transactionHash": hash_,
            "status": hex(status),
            "gasUsed": hex(gas_used),
            "effectiveGasPrice": hex(gas_price),
            "logs": logs or []
        }

    def block(self, number: int) -> Dict:
        return self.blocks.get(number, {
            "number": hex(number),
            "timestamp": hex(BLOCK_TIMESTAMP),
            "baseFeePerGas": hex(10 * GWEI)
        })

    def dispatch(self, method: str, params: List) -> Any:
        if method == "eth_blockNumber":
            return hex(self.latest)
        if method == "eth_getTransactionByHash":
            return self.transactions.get(params[0])
        if method == "eth_getTransactionReceipt":
            return self.receipts.get(params[0])
        if method == "eth_getBlockByNumber":
            tag = params[0]
            if tag in self.failing_blocks:
                raise LookupError(f"block {tag} unavailable")
            number = self.latest if tag == "latest" else int(tag, 16)
            return self.block(number)
        if method == "eth_getCode":
            return self.code.get(params[0].lower(), "0x")
        if method == "eth_call":
            result = self.calls.get((params[0]["to"].lower(), params[0]["data"]))
            if result is None:
                raise LookupError("execution reverted")
            return result
        raise LookupError(f"method {method} not found")

    async def handler(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        body = orjson.loads(request.content)
        method = body["method"]
        self.requests.append((host, method, body["params"]))

        delay = self.host_delays.get(host, 0.0) + self.method_delays.get(method, 0.0)
        if delay:
            await asyncio.sleep(delay)

        if host in self.failing_hosts:
            raise httpx.ConnectError("connection refused", request=request)

        if host in self.host_results:
            payload = {"jsonrpc": "2.0", "id": body["id"], "result": self.host_results[host]}
            return httpx.Response(200, content=orjson.dumps(payload))

        try:
            result = self.dispatch(method, body["params"])
        except LookupError as e:
            payload = {"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32000, "message": str(e)}}
        else:
            payload = {"jsonrpc": "2.0", "id": body["id"], "result": result}
        return httpx.Response(200, content=orjson.dumps(payload))


def catalog_chains() -> List[Dict]:
    return [
        {
            "name": "Ethereum Mainnet",
            "chainId": 1,
            "nativeCurrency": {"name": "Ether", "symbol": "ETH", "decimals": 18},
            "rpc": [RPC_A, RPC_B]
        },
        {
            "name": "Keyed Only",
            "chainId": 777,
            "nativeCurrency": {"name": "Keyed", "symbol": "KEY", "decimals": 18},
            "rpc": ["https://mainnet.infura.io/v3/${INFURA_API_KEY}"]
        },
        {
            "name": "No RPC",
            "chainId": 888,
            "nativeCurrency": {"name": "None", "symbol": "NONE", "decimals": 18},
            "rpc": []
        },
        {
            "name": "Flaky Nodes",
            "chainId": 5,
            "nativeCurrency": {"name": "Flaky", "symbol": "FLK", "decimals": 18},
            "rpc": [GARBAGE_RPC, RPC_B]
        },
        {
            "name": "Malformed Endpoint",
            "chainId": 6,
            "nativeCurrency": {"name": "Malformed", "symbol": "MAL", "decimals": 18},
            "rpc": [BAD_PORT_RPC, RPC_B]
        },
        {
            "name": "Single Flaky Node",
            "chainId": 7,
            "nativeCurrency": {"name": "Flaky", "symbol": "FLK", "decimals": 18},
            "rpc": [GARBAGE_RPC]
        }
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def catalog():
    return FakeCatalog(catalog_chains())


@pytest.fixture
def node():
    return FakeNode()


@pytest.fixture
def catalog_config():
    return ChainCatalogConfig(catalog_url=CATALOG_URL)


@pytest.fixture
def rpc_config():
    return RPCConfig(probe_timeout_seconds=1.0, request_timeout_seconds=2.0)


@pytest_asyncio.fixture
async def registry(catalog, catalog_config, clock):
    async with ChainRegistry(catalog_config, transport=httpx.MockTransport(catalog.handler),
                             clock=clock) as registry:
        yield registry


@pytest_asyncio.fixture
async def pool(registry, node, rpc_config, clock):
    async with RPCPool(registry, rpc_config, transport=httpx.MockTransport(node.handler),
                       clock=clock) as pool:
        yield pool


@pytest.fixture
def token_cache(clock):
    return TokenMetadataCache(TokenCacheConfig(), clock=clock)


@pytest.fixture
def analyzer(registry, pool, token_cache):
    return TransactionAnalyzer(registry, pool, token_cache, config=AnalysisConfig())
