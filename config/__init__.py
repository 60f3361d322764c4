from .settings import (
    settings,
    chain_config,
    rpc_config,
    token_cache_config,
    analysis_config,
    logging_config,
    Settings,
    ChainCatalogConfig,
    RPCConfig,
    TokenCacheConfig,
    AnalysisConfig,
    LoggingConfig,
    LogLevel
)

__all__ = [
    'settings',
    'chain_config',
    'rpc_config',
    'token_cache_config',
    'analysis_config',
    'logging_config',
    'Settings',
    'ChainCatalogConfig',
    'RPCConfig',
    'TokenCacheConfig',
    'AnalysisConfig',
    'LoggingConfig',
    'LogLevel'
]
