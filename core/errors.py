"""Exceptions raised by the transaction analysis engine"""

from typing import Any, Dict, List, Optional


class AnalysisError(Exception):
    """Base exception for analysis failures"""
    category = "analysis_error"

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "message": str(self),
            "details": self.details()
        }


class ChainNotFoundError(AnalysisError):
    """Raised when no catalog entry matches a chain id"""
    category = "chain_not_found"

    def __init__(self, chain_id: int):
        self.chain_id = chain_id
        super().__init__(f"Chain {chain_id} not found")

    def details(self) -> Dict[str, Any]:
        return {"chain_id": self.chain_id}


class ChainCatalogError(AnalysisError):
    """Raised when the remote chain catalog cannot be fetched"""
    category = "chain_catalog_unavailable"

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch chain catalog from {url}: {reason}")

    def details(self) -> Dict[str, Any]:
        return {"url": self.url, "reason": self.reason}


class NoEndpointsError(AnalysisError):
    """Raised when a chain has no usable RPC endpoints"""
    category = "no_endpoints"

    def __init__(self, chain_id: int):
        self.chain_id = chain_id
        super().__init__(f"No RPC endpoints found for chain {chain_id}")

    def details(self) -> Dict[str, Any]:
        return {"chain_id": self.chain_id}


class EndpointError(AnalysisError):
    """A single endpoint that failed its liveness probe"""
    category = "endpoint_failed"

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"{url}: {reason}")

    def details(self) -> Dict[str, Any]:
        return {"url": self.url, "reason": self.reason}


class AllEndpointsFailedError(AnalysisError):
    """Raised when every configured endpoint of a chain failed"""
    category = "all_endpoints_failed"

    def __init__(self, chain_id: int, errors: List[EndpointError]):
        self.chain_id = chain_id
        self.errors = list(errors)
        reasons = ", ".join(str(e) for e in self.errors)
        super().__init__(f"All RPCs failed for chain {chain_id}. Errors: {reasons}")

    def details(self) -> Dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "endpoints": [e.details() for e in self.errors]
        }


class RPCError(AnalysisError):
    """JSON-RPC transport or protocol error"""
    category = "rpc_error"

    def __init__(self, method: str, message: str, code: Optional[int] = None):
        self.method = method
        self.message = message
        self.code = code
        suffix = f" (code {code})" if code is not None else ""
        super().__init__(f"{method} failed: {message}{suffix}")

    def details(self) -> Dict[str, Any]:
        return {"method": self.method, "code": self.code}


class TransactionNotFoundError(AnalysisError):
    """Raised when the node does not know the transaction hash"""
    category = "transaction_not_found"

    def __init__(self, tx_hash: str, chain_id: int):
        self.tx_hash = tx_hash
        self.chain_id = chain_id
        super().__init__(f"Transaction {tx_hash} not found on chain {chain_id}")

    def details(self) -> Dict[str, Any]:
        return {"tx_hash": self.tx_hash, "chain_id": self.chain_id}


class InvalidTransactionHashError(AnalysisError):
    """Raised for hashes that are not 0x-prefixed 32-byte hex strings"""
    category = "invalid_transaction_hash"

    def __init__(self, tx_hash: str):
        self.tx_hash = tx_hash
        super().__init__(f"Invalid transaction hash: {tx_hash}")

    def details(self) -> Dict[str, Any]:
        return {"tx_hash": self.tx_hash}


class AnalysisTimeoutError(AnalysisError):
    """Raised when an analysis exceeds the engine-side timeout"""
    category = "analysis_timeout"

    def __init__(self, tx_hash: str, timeout: float):
        self.tx_hash = tx_hash
        self.timeout = timeout
        super().__init__(f"Analysis of {tx_hash} timed out after {timeout}s")

    def details(self) -> Dict[str, Any]:
        return {"tx_hash": self.tx_hash, "timeout_seconds": self.timeout}


# Non-fatal conditions: raised and handled inside the engine, never surfaced
# from analyze().

class MetadataFetchError(AnalysisError):
    category = "metadata_fetch_failed"


class NetworkStatsError(AnalysisError):
    category = "network_stats_failed"


class ContractCheckError(AnalysisError):
    category = "contract_check_failed"


class LogDecodeError(AnalysisError):
    """Raised when a matched transfer log carries malformed data"""
    category = "log_decode_failed"
