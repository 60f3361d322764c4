import asyncio
import time
import httpx
import orjson
import logging
from typing import Any, Callable, Dict, List, Optional

from config.settings import ChainCatalogConfig, chain_config
from core.data.models import Chain
from core.errors import ChainCatalogError, ChainNotFoundError

logger = logging.getLogger(__name__)

class ChainRegistry:
    """
    Resolves chain ids to chain metadata.

    Backed by the remote chain catalog merged with the built-in custom chains.
    The snapshot is refreshed lazily, at most once per TTL window, and
    concurrent callers share a single in-flight refresh.
    """

    def __init__(self, config: Optional[ChainCatalogConfig] = None,
                 http_client: Optional[httpx.AsyncClient] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config or chain_config
        self._client = http_client
        self._owns_client = http_client is None
        self._transport = transport
        self._clock = clock

        self._chains: List[Chain] = []
        self._by_id: Dict[int, Chain] = {}
        self._last_fetch: Optional[float] = None
        self._refresh_lock = asyncio.Lock()
        self._fetch_count = 0

    async def __aenter__(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.request_timeout_seconds),
                transport=self._transport
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def chains(self) -> List[Chain]:
        return list(self._chains)

    def is_stale(self) -> bool:
        if self._last_fetch is None or not self._chains:
            return True
        return self._clock() - self._last_fetch > self.config.cache_ttl_seconds

    async def get_chain(self, chain_id: int) -> Chain:
        """Get chain metadata, refreshing the catalog when stale"""
        if self.is_stale():
            await self.refresh()

        chain = self._by_id.get(chain_id)
        if chain is None:
            raise ChainNotFoundError(chain_id)
        return chain

    async def refresh(self, force: bool = False) -> int:
        """Fetch and rebuild the catalog; returns the number of chains"""
        async with self._refresh_lock:
            # Another caller may have refreshed while we waited
            if not force and not self.is_stale():
                return len(self._chains)

            logger.info("🔍 Fetching chain catalog...")
            entries = await self._fetch_catalog()
            chains = self._build_catalog(entries + list(self.config.custom_chains))

            self._chains = chains
            self._by_id = {}
            for chain in chains:
                self._by_id.setdefault(chain.chain_id, chain)
            self._last_fetch = self._clock()
            self._fetch_count += 1

            logger.info(f"✅ Fetched {len(chains)} chains")
            return len(chains)

    async def _fetch_catalog(self) -> List[Dict[str, Any]]:
        url = self.config.catalog_url
        if self._client is None:
            raise ChainCatalogError(url, "registry is not open")

        try:
            response = await self._client.get(url, timeout=self.config.request_timeout_seconds)
        except httpx.HTTPError as e:
            logger.error(f"❌ Error fetching chains: {e}")
            raise ChainCatalogError(url, str(e) or type(e).__name__) from e

        if response.status_code != 200:
            logger.error(f"❌ Chain catalog returned HTTP {response.status_code}")
            raise ChainCatalogError(url, f"HTTP {response.status_code}")

        try:
            payload = orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise ChainCatalogError(url, f"invalid JSON: {e}") from e

        if not isinstance(payload, list):
            raise ChainCatalogError(url, "catalog is not a list of chains")

        return payload

    def _build_catalog(self, entries: List[Dict[str, Any]]) -> List[Chain]:
        chains = []
        skipped = 0

        for entry in entries:
            if not isinstance(entry, dict) or not entry.get('rpc'):
                skipped += 1
                continue

            try:
                chain = Chain.from_catalog(entry)
            except (KeyError, TypeError, ValueError) as e:
                logger.debug(f"Skipping malformed chain entry {entry.get('chainId')}: {e}")
                skipped += 1
                continue

            chains.append(Chain(
                name=chain.name,
                chain_id=chain.chain_id,
                native_currency=chain.native_currency,
                rpc_endpoints=tuple(self._clean_endpoints(chain.rpc_endpoints))
            ))

        if skipped:
            logger.debug(f"🧹 Skipped {skipped} catalog entries without usable RPC data")
        return chains

    def _clean_endpoints(self, endpoints) -> List[str]:
        """Drop placeholder, blocked and non-HTTP endpoints"""
        cleaned = []
        for url in endpoints:
            if not url.startswith(('http://', 'https://')):
                continue
            if any(marker in url for marker in self.config.blocked_rpc_markers):
                continue
            cleaned.append(url)
        return cleaned

    def get_status(self) -> Dict[str, Any]:
        age = self._clock() - self._last_fetch if self._last_fetch is not None else None
        return {
            "chains": len(self._chains),
            "catalog_url": self.config.catalog_url,
            "age_seconds": round(age, 1) if age is not None else None,
            "ttl_seconds": self.config.cache_ttl_seconds,
            "stale": self.is_stale(),
            "fetch_count": self._fetch_count
        }
