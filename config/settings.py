import os
import logging
from dataclasses import dataclass, field
from typing import List, Dict, Optional
from enum import Enum
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"

def _default_custom_chains() -> List[Dict]:
    return [
        {
            'name': 'Polygon zkEVM',
            'chainId': 1101,
            'nativeCurrency': {'name': 'Ethereum', 'symbol': 'ETH', 'decimals': 18},
            'rpc': [
                'https://zkevm-rpc.com',
                'https://rpc.polygon-zkevm.gateway.fm'
            ]
        },
        {
            'name': 'Base',
            'chainId': 8453,
            'nativeCurrency': {'name': 'Ethereum', 'symbol': 'ETH', 'decimals': 18},
            'rpc': [
                'https://mainnet.base.org',
                'https://base.gateway.tenderly.co',
                'https://base.publicnode.com'
            ]
        }
    ]

@dataclass
class ChainCatalogConfig:
    """Remote chain catalog configuration"""
    catalog_url: str = "https://chainid.network/chains.json"
    cache_ttl_seconds: int = 3600
    request_timeout_seconds: float = 15.0

    # Endpoints containing any of these markers are dropped from the catalog
    blocked_rpc_markers: List[str] = field(default_factory=lambda: [
        # Unresolved secret placeholders
        "${INFURA_API_KEY}",
        "${ALCHEMY_API_KEY}",
        "INFURA_API_KEY",
        "ALCHEMY_API_KEY",
        "API_KEY",
        "api-key",

        # Unreliable shared public endpoints
        "https://cloudflare-eth.com",
        "https://ethereum-rpc.publicnode.com",
    ])

    # Appended after the remote catalog, so remote entries win on duplicate ids
    custom_chains: List[Dict] = field(default_factory=_default_custom_chains)

    def __post_init__(self):
        if not self.catalog_url:
            raise ValueError("CHAIN_CATALOG_URL cannot be empty")

@dataclass
class RPCConfig:
    """JSON-RPC endpoint configuration"""
    probe_timeout_seconds: float = 5.0
    request_timeout_seconds: float = 30.0
    max_connections: int = 30
    max_keepalive_connections: int = 15
    max_concurrent_requests: int = 15

    # 0 disables the known-good endpoint cache: every lookup re-probes from the top
    known_good_ttl_seconds: int = 0

@dataclass
class TokenCacheConfig:
    """Token metadata cache configuration"""
    ttl_seconds: int = 3600
    max_entries: int = 5000

@dataclass
class AnalysisConfig:
    """Transaction analysis parameters"""
    gas_stats_block_count: int = 5
    default_token_decimals: int = 18

    # 0 leaves timeouts to the caller
    analysis_timeout_seconds: float = 0.0

    # Keep transfer logs that fail to decode in otherEvents
    record_undecodable_logs: bool = True

@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # File logging
    log_to_file: bool = False
    log_file_path: str = "logs/app.log"
    max_log_file_size_mb: int = 10
    backup_count: int = 5

@dataclass
class Settings:
    """Main application settings"""
    chains: ChainCatalogConfig
    rpc: RPCConfig
    token_cache: TokenCacheConfig
    analysis: AnalysisConfig
    logging: LoggingConfig

    # Environment
    environment: str = "development"

    @classmethod
    def from_env(cls) -> 'Settings':
        environment = os.getenv('ENVIRONMENT', os.getenv('ENV', 'development'))

        return cls(
            chains=ChainCatalogConfig(
                catalog_url=os.getenv('CHAIN_CATALOG_URL', 'https://chainid.network/chains.json'),
                cache_ttl_seconds=int(os.getenv('CHAIN_CACHE_TTL', 3600)),
                request_timeout_seconds=float(os.getenv('CHAIN_CATALOG_TIMEOUT', 15))
            ),

            rpc=RPCConfig(
                probe_timeout_seconds=float(os.getenv('RPC_PROBE_TIMEOUT', 5)),
                request_timeout_seconds=float(os.getenv('RPC_TIMEOUT', 30)),
                max_concurrent_requests=int(os.getenv('RPC_MAX_CONCURRENT', 15)),
                known_good_ttl_seconds=int(os.getenv('RPC_KNOWN_GOOD_TTL', 0))
            ),

            token_cache=TokenCacheConfig(
                ttl_seconds=int(os.getenv('TOKEN_CACHE_TTL', 3600)),
                max_entries=int(os.getenv('TOKEN_CACHE_MAX_ENTRIES', 5000))
            ),

            analysis=AnalysisConfig(
                gas_stats_block_count=int(os.getenv('GAS_STATS_BLOCKS', 5)),
                analysis_timeout_seconds=float(os.getenv('ANALYSIS_TIMEOUT', 0)),
                record_undecodable_logs=os.getenv('RECORD_UNDECODABLE_LOGS', 'true').lower() == 'true'
            ),

            logging=LoggingConfig(
                level=LogLevel(os.getenv('LOG_LEVEL', 'INFO').upper()),
                log_to_file=os.getenv('LOG_TO_FILE', 'false').lower() == 'true',
                log_file_path=os.getenv('LOG_FILE_PATH', 'logs/app.log')
            ),

            environment=environment
        )

    def validate(self) -> List[str]:
        """Validate configuration and return list of issues"""
        issues = []

        if self.chains.cache_ttl_seconds <= 0:
            issues.append("chain cache_ttl_seconds must be positive")

        if self.rpc.probe_timeout_seconds <= 0:
            issues.append("probe_timeout_seconds must be positive")

        if self.rpc.probe_timeout_seconds > self.rpc.request_timeout_seconds:
            issues.append("probe_timeout_seconds should not exceed request_timeout_seconds")

        if self.rpc.known_good_ttl_seconds < 0:
            issues.append("known_good_ttl_seconds cannot be negative")

        if self.token_cache.ttl_seconds <= 0:
            issues.append("token cache ttl_seconds must be positive")

        if self.analysis.gas_stats_block_count < 1:
            issues.append("gas_stats_block_count must be at least 1")

        if self.analysis.analysis_timeout_seconds < 0:
            issues.append("analysis_timeout_seconds cannot be negative")

        return issues

    def to_dict(self) -> Dict:
        """Convert settings to dictionary (for debugging/API responses)"""
        def clean_dict(obj):
            if hasattr(obj, '__dict__'):
                result = {}
                for key, value in obj.__dict__.items():
                    if isinstance(value, Enum):
                        result[key] = value.value
                    elif hasattr(value, '__dict__'):
                        result[key] = clean_dict(value)
                    elif 'secret' in key.lower() or 'password' in key.lower() or key.lower().endswith('_key'):
                        result[key] = '[REDACTED]' if value else None
                    else:
                        result[key] = value
                return result
            return obj

        return clean_dict(self)

# Create global settings instance
try:
    settings = Settings.from_env()

    validation_issues = settings.validate()
    if validation_issues:
        logger.warning("⚠️ Configuration validation issues:")
        for issue in validation_issues:
            logger.warning(f"   - {issue}")

    logger.debug(f"Configuration loaded for {settings.environment} environment")

except Exception as e:
    logger.error(f"❌ Failed to load configuration: {e}")
    raise

# Export commonly used configs for convenience
chain_config = settings.chains
rpc_config = settings.rpc
token_cache_config = settings.token_cache
analysis_config = settings.analysis
logging_config = settings.logging
