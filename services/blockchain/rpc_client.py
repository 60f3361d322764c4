import asyncio
import httpx
import orjson
import logging
from typing import Any, List, Dict, Optional, Union

from config.settings import RPCConfig, rpc_config
from core.errors import RPCError
from utils.units import to_int

logger = logging.getLogger(__name__)

BlockId = Union[int, str]

def build_http_client(config: RPCConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Shared HTTP client with connection pooling for JSON-RPC traffic"""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(config.request_timeout_seconds, connect=min(10.0, config.request_timeout_seconds)),
        limits=httpx.Limits(
            max_connections=config.max_connections,
            max_keepalive_connections=config.max_keepalive_connections
        ),
        headers={
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'User-Agent': 'TxAnalyzer/1.0'
        },
        transport=transport
    )

class RPCClient:
    """JSON-RPC client bound to a single node endpoint"""

    def __init__(self, url: str, http_client: httpx.AsyncClient, config: Optional[RPCConfig] = None):
        self.url = url
        self.config = config or rpc_config
        self._client = http_client
        self._request_count = 0
        self._failures = 0
        self._rate_limiter = asyncio.Semaphore(self.config.max_concurrent_requests)

    async def request(self, method: str, params: List, retries: int = 2,
                      timeout: Optional[float] = None) -> Any:
        """Make a JSON-RPC request, retrying only when rate limited"""
        async with self._rate_limiter:
            for attempt in range(retries + 1):
                self._request_count += 1
                payload = {
                    "id": self._request_count,
                    "jsonrpc": "2.0",
                    "method": method,
                    "params": params
                }

                try:
                    response = await self._client.post(
                        self.url,
                        content=orjson.dumps(payload),
                        timeout=timeout or self.config.request_timeout_seconds
                    )
                except httpx.TimeoutException as e:
                    self._failures += 1
                    raise RPCError(method, f"timeout: {e}") from e
                except httpx.HTTPError as e:
                    self._failures += 1
                    raise RPCError(method, f"transport error: {e}") from e
                except httpx.InvalidURL as e:
                    self._failures += 1
                    raise RPCError(method, f"invalid URL: {e}") from e

                if response.status_code == 429 and attempt < retries:
                    wait_time = 2 ** attempt
                    logger.warning(f"⚠️ Rate limited by {self.url}, waiting {wait_time}s")
                    await asyncio.sleep(wait_time)
                    continue

                if response.status_code != 200:
                    self._failures += 1
                    raise RPCError(method, f"HTTP {response.status_code}")

                try:
                    body = orjson.loads(response.content)
                except orjson.JSONDecodeError as e:
                    self._failures += 1
                    raise RPCError(method, f"invalid JSON response: {e}") from e

                if not isinstance(body, dict):
                    self._failures += 1
                    raise RPCError(method, "unexpected response shape")

                error = body.get("error")
                if error:
                    self._failures += 1
                    if isinstance(error, dict):
                        raise RPCError(method, str(error.get("message", "unknown error")), error.get("code"))
                    raise RPCError(method, str(error))

                return body.get("result")

            self._failures += 1
            raise RPCError(method, "rate limited")

    async def get_block_number(self, timeout: Optional[float] = None) -> int:
        result = await self.request("eth_blockNumber", [], retries=0, timeout=timeout)
        try:
            block_number = to_int(result)
        except (TypeError, ValueError) as e:
            self._failures += 1
            raise RPCError("eth_blockNumber", f"malformed result: {result!r}") from e
        if block_number is None:
            raise RPCError("eth_blockNumber", "empty result")
        return block_number

    async def get_transaction(self, tx_hash: str) -> Optional[Dict]:
        return await self.request("eth_getTransactionByHash", [tx_hash])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict]:
        return await self.request("eth_getTransactionReceipt", [tx_hash])

    async def get_block(self, block: BlockId = "latest") -> Optional[Dict]:
        block_param = hex(block) if isinstance(block, int) else block
        return await self.request("eth_getBlockByNumber", [block_param, False])

    async def get_code(self, address: str, block: BlockId = "latest") -> str:
        block_param = hex(block) if isinstance(block, int) else block
        result = await self.request("eth_getCode", [address, block_param])
        return result or "0x"

    async def call(self, to: str, data: str, block: BlockId = "latest") -> str:
        """Read-only contract call returning the raw hex result"""
        block_param = hex(block) if isinstance(block, int) else block
        result = await self.request("eth_call", [{"to": to, "data": data}, block_param])
        if result is None:
            return "0x"
        if not isinstance(result, str):
            self._failures += 1
            raise RPCError("eth_call", f"non-hex result: {result!r}")
        return result or "0x"

    def get_stats(self) -> Dict:
        success_rate = ((self._request_count - self._failures) / max(self._request_count, 1)) * 100
        return {
            "url": self.url,
            "total_requests": self._request_count,
            "failures": self._failures,
            "success_rate": round(success_rate, 1)
        }
