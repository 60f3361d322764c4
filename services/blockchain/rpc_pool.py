import asyncio
import time
import httpx
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from config.settings import RPCConfig, rpc_config
from core.errors import AllEndpointsFailedError, EndpointError, NoEndpointsError, RPCError
from .chain_registry import ChainRegistry
from .rpc_client import RPCClient, build_http_client

logger = logging.getLogger(__name__)

@dataclass
class KnownGoodEndpoint:
    """Endpoint that recently passed its probe"""
    url: str
    expires_at: float

class RPCPool:
    """
    Selects a live JSON-RPC endpoint for a chain.

    Endpoints are probed sequentially in catalog order with a short timeout
    and the first live one wins. Unless ``known_good_ttl_seconds`` is set,
    every lookup re-probes from the top of the list.
    """

    def __init__(self, registry: ChainRegistry, config: Optional[RPCConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.registry = registry
        self.config = config or rpc_config
        self._transport = transport
        self._clock = clock
        self._client: Optional[httpx.AsyncClient] = None
        self._known_good: Dict[int, KnownGoodEndpoint] = {}
        self._stats = {
            "lookups": 0,
            "probes": 0,
            "probe_failures": 0,
            "known_good_hits": 0
        }

    async def __aenter__(self):
        if self._client is None:
            self._client = build_http_client(self.config, transport=self._transport)
            logger.info("✅ RPC pool initialized")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info(f"🔒 RPC pool closed: {self._stats['probes']} probes, "
                        f"{self._stats['probe_failures']} failures")

    def _make_client(self, url: str) -> RPCClient:
        if self._client is None:
            self._client = build_http_client(self.config, transport=self._transport)
        return RPCClient(url, http_client=self._client, config=self.config)

    async def get_provider(self, chain_id: int) -> RPCClient:
        """Return a client for the first live endpoint of the chain"""
        self._stats["lookups"] += 1
        chain = await self.registry.get_chain(chain_id)
        if not chain.rpc_endpoints:
            raise NoEndpointsError(chain_id)

        cached = self._get_known_good(chain_id)
        if cached and cached in chain.rpc_endpoints:
            self._stats["known_good_hits"] += 1
            logger.debug(f"Using known-good RPC for chain {chain_id}: {cached}")
            return self._make_client(cached)

        errors: List[EndpointError] = []
        for url in chain.rpc_endpoints:
            client = self._make_client(url)
            logger.info(f"🔍 Trying RPC: {url}")
            error = await self._probe(client)
            if error is None:
                logger.info(f"✅ Successfully connected to RPC: {url}")
                self._remember(chain_id, url)
                return client

            logger.warning(f"⚠️ RPC {url} failed: {error.reason}")
            errors.append(error)

        logger.error(f"❌ All {len(errors)} RPCs failed for chain {chain_id}")
        raise AllEndpointsFailedError(chain_id, errors)

    async def _probe(self, client: RPCClient) -> Optional[EndpointError]:
        """Liveness probe: fetch the current block height under a short timeout"""
        self._stats["probes"] += 1
        timeout = self.config.probe_timeout_seconds
        try:
            await asyncio.wait_for(client.get_block_number(timeout=timeout), timeout=timeout)
            return None
        except asyncio.TimeoutError:
            reason = f"probe timed out after {timeout}s"
        except RPCError as e:
            reason = str(e)

        self._stats["probe_failures"] += 1
        return EndpointError(client.url, reason)

    def _get_known_good(self, chain_id: int) -> Optional[str]:
        if self.config.known_good_ttl_seconds <= 0:
            return None
        entry = self._known_good.get(chain_id)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._known_good[chain_id]
            return None
        return entry.url

    def _remember(self, chain_id: int, url: str) -> None:
        if self.config.known_good_ttl_seconds <= 0:
            return
        self._known_good[chain_id] = KnownGoodEndpoint(
            url=url,
            expires_at=self._clock() + self.config.known_good_ttl_seconds
        )

    def invalidate(self, chain_id: int) -> None:
        """Forget the known-good endpoint of a chain"""
        self._known_good.pop(chain_id, None)

    def get_stats(self) -> Dict:
        return {
            **self._stats,
            "known_good_enabled": self.config.known_good_ttl_seconds > 0,
            "known_good_chains": sorted(self._known_good)
        }
