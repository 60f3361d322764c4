import asyncio
from dataclasses import dataclass, field
from typing import Optional
import httpx
import logging

from config.settings import Settings, settings as default_settings
from core.analysis.event_decoder import EventDecoder
from core.analysis.transaction_analyzer import TransactionAnalyzer
from .blockchain.chain_registry import ChainRegistry
from .blockchain.rpc_pool import RPCPool
from .cache.token_metadata import TokenMetadataCache

logger = logging.getLogger(__name__)

@dataclass
class ServiceContainer:
    """Service dependency injection container"""

    settings: Settings = field(default_factory=lambda: default_settings)
    catalog_transport: Optional[httpx.AsyncBaseTransport] = None
    rpc_transport: Optional[httpx.AsyncBaseTransport] = None
    registry: Optional[ChainRegistry] = None
    pool: Optional[RPCPool] = None
    token_cache: Optional[TokenMetadataCache] = None
    analyzer: Optional[TransactionAnalyzer] = None
    _initialized: bool = False

    async def __aenter__(self):
        """Initialize all services"""
        if not self._initialized:
            logger.info("🚀 Initializing analysis services")

            self.registry = ChainRegistry(self.settings.chains, transport=self.catalog_transport)
            self.pool = RPCPool(self.registry, self.settings.rpc, transport=self.rpc_transport)
            self.token_cache = TokenMetadataCache(self.settings.token_cache)

            await asyncio.gather(self.registry.__aenter__(), self.pool.__aenter__())

            self.analyzer = TransactionAnalyzer(
                registry=self.registry,
                pool=self.pool,
                token_cache=self.token_cache,
                decoder=EventDecoder(default_decimals=self.settings.analysis.default_token_decimals),
                config=self.settings.analysis
            )

            self._initialized = True
            logger.info("✅ All analysis services initialized")

        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Cleanup all services"""
        if self._initialized:
            cleanup_tasks = []

            if self.pool:
                cleanup_tasks.append(self.pool.__aexit__(exc_type, exc_val, exc_tb))

            if self.registry:
                cleanup_tasks.append(self.registry.__aexit__(exc_type, exc_val, exc_tb))

            self.analyzer = None

            if cleanup_tasks:
                await asyncio.gather(*cleanup_tasks, return_exceptions=True)

            self._initialized = False
            logger.info("🔒 All analysis services cleaned up")

    async def get_service_info(self) -> dict:
        """Get information about available services"""
        info = {
            'initialized': self._initialized,
            'environment': self.settings.environment,
            'services': {}
        }

        if self.registry:
            info['services']['chain_registry'] = self.registry.get_status()

        if self.pool:
            info['services']['rpc_pool'] = self.pool.get_stats()

        if self.token_cache:
            info['services']['token_cache'] = await self.token_cache.get_status()

        if self.analyzer:
            info['services']['analyzer'] = dict(self.analyzer.stats)

        return info
