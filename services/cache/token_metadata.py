import asyncio
import time
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from config.settings import TokenCacheConfig, token_cache_config
from core.data.models import TokenMetadata, TokenStandard
from core.errors import MetadataFetchError, RPCError
from services.blockchain.rpc_client import RPCClient
from .cache_service import CacheService

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, TokenStandard]

def _selector(signature: str) -> str:
    return '0x' + bytes(Web3.keccak(text=signature)[:4]).hex()

NAME_SELECTOR = _selector("name()")
SYMBOL_SELECTOR = _selector("symbol()")
DECIMALS_SELECTOR = _selector("decimals()")

# Fields read per standard; ERC1155 defines no descriptive fields
STANDARD_FIELDS: Dict[TokenStandard, Tuple[str, ...]] = {
    TokenStandard.ERC20: ("name", "symbol", "decimals"),
    TokenStandard.ERC721: ("name", "symbol"),
    TokenStandard.ERC1155: (),
    TokenStandard.NATIVE: (),
}

FIELD_SELECTORS = {
    "name": NAME_SELECTOR,
    "symbol": SYMBOL_SELECTOR,
    "decimals": DECIMALS_SELECTOR,
}

def _to_bytes(result: str) -> bytes:
    text = result[2:] if result.startswith(('0x', '0X')) else result
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise MetadataFetchError(f"malformed return data: {e}") from e

def decode_string_result(result: str) -> str:
    """Decode a string return value, accepting legacy bytes32 encodings"""
    raw = _to_bytes(result)
    if not raw:
        raise MetadataFetchError("empty return data")

    try:
        value = decode(['string'], raw)[0]
    except (DecodingError, OverflowError, ValueError):
        # Tokens like MKR return bytes32 instead of string
        if len(raw) != 32:
            raise MetadataFetchError("return data is neither string nor bytes32")
        value = raw.rstrip(b'\x00').decode('utf-8', errors='ignore')

    value = value.strip('\x00').strip()
    if not value:
        raise MetadataFetchError("empty string returned")
    return value

def decode_decimals_result(result: str) -> int:
    raw = _to_bytes(result)
    try:
        value = decode(['uint256'], raw)[0]
    except (DecodingError, OverflowError, ValueError) as e:
        raise MetadataFetchError(f"undecodable decimals: {e}") from e
    if value > 255:
        raise MetadataFetchError(f"decimals out of range: {value}")
    return value

class TokenMetadataCache:
    """
    Per-token metadata keyed by (address, standard) with TTL expiry.

    Lookups never raise for contract-side problems: failures degrade to a
    record marked ``partial``. Concurrent lookups of the same uncached key
    share one on-chain fetch.
    """

    def __init__(self, config: Optional[TokenCacheConfig] = None,
                 clock: Callable[[], float] = time.monotonic,
                 wall_clock: Callable[[], float] = time.time):
        self.config = config or token_cache_config
        self._cache = CacheService(
            default_ttl_seconds=self.config.ttl_seconds,
            max_entries=self.config.max_entries,
            clock=clock,
            name="token metadata"
        )
        self._wall_clock = wall_clock
        self._inflight: Dict[CacheKey, asyncio.Future] = {}
        self._fetches = 0

    @staticmethod
    def cache_key(address: str, standard: TokenStandard) -> CacheKey:
        return (address.lower(), standard)

    async def get_metadata(self, client: RPCClient, address: str,
                           standard: TokenStandard = TokenStandard.ERC20) -> TokenMetadata:
        key = self.cache_key(address, standard)

        cached = await self._cache.get(key)
        if cached is not None:
            return cached

        inflight = self._inflight.get(key)
        if inflight is None:
            inflight = asyncio.ensure_future(self._load(client, address, standard, key))
            self._inflight[key] = inflight
            inflight.add_done_callback(lambda _: self._inflight.pop(key, None))

        # Shielded so one cancelled caller does not cancel the shared fetch
        return await asyncio.shield(inflight)

    async def _load(self, client: RPCClient, address: str, standard: TokenStandard,
                    key: CacheKey) -> TokenMetadata:
        metadata, cacheable = await self._fetch(client, address, standard)
        if cacheable:
            await self._cache.set(key, metadata)
        return metadata

    async def _fetch(self, client: RPCClient, address: str,
                     standard: TokenStandard) -> Tuple[TokenMetadata, bool]:
        self._fetches += 1
        metadata = TokenMetadata(address=address, standard=standard, fetched_at=self._wall_clock())
        fields = STANDARD_FIELDS.get(standard, ())
        if not fields:
            return metadata, True

        results = await asyncio.gather(
            *(self._read_field(client, address, name) for name in fields),
            return_exceptions=True
        )

        failures = []
        for name, result in zip(fields, results):
            if isinstance(result, BaseException):
                if not isinstance(result, (MetadataFetchError, RPCError)):
                    raise result
                failures.append((name, result))
                continue
            setattr(metadata, name, result)

        if not failures:
            logger.debug(f"✅ Got {standard.value} metadata for {metadata.symbol or address}")
            return metadata, True

        metadata.partial = True
        if len(failures) == len(fields) and all(isinstance(err, RPCError) for _, err in failures):
            # Contract unreachable: hand back a partial record but retry next time
            metadata.error = "Failed to fetch metadata"
            logger.warning(f"⚠️ Error getting token metadata for {address}: {failures[0][1]}")
            return metadata, False

        metadata.error = "Incomplete metadata"
        missing = ", ".join(name for name, _ in failures)
        logger.warning(f"⚠️ Incomplete {standard.value} metadata for {address} (missing: {missing})")
        return metadata, True

    async def _read_field(self, client: RPCClient, address: str, name: str) -> Any:
        result = await client.call(address, FIELD_SELECTORS[name])
        if name == "decimals":
            return decode_decimals_result(result)
        return decode_string_result(result)

    async def invalidate(self, address: str, standard: TokenStandard) -> bool:
        return await self._cache.delete(self.cache_key(address, standard))

    async def get_status(self) -> Dict[str, Any]:
        status = await self._cache.get_status()
        status["onchain_fetches"] = self._fetches
        status["inflight"] = len(self._inflight)
        return status
