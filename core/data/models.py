from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Dict, Optional, Any, Tuple

from utils.units import format_units


def _wide(value: Optional[int]) -> Optional[str]:
    """Wide integers leave the engine as decimal strings"""
    return str(value) if value is not None else None


@dataclass(frozen=True)
class NativeCurrency:
    """Native currency descriptor of a chain"""
    name: str
    symbol: str
    decimals: int = 18


@dataclass(frozen=True)
class Chain:
    """Chain metadata from one catalog snapshot"""
    name: str
    chain_id: int
    native_currency: NativeCurrency
    rpc_endpoints: Tuple[str, ...] = ()

    @classmethod
    def from_catalog(cls, entry: Dict[str, Any]) -> 'Chain':
        """Build a chain from a catalog descriptor, raising on malformed entries"""
        currency = entry.get('nativeCurrency') or {}
        return cls(
            name=str(entry['name']),
            chain_id=int(entry['chainId']),
            native_currency=NativeCurrency(
                name=str(currency.get('name', 'Ether')),
                symbol=str(currency.get('symbol', 'ETH')),
                decimals=int(currency.get('decimals', 18))
            ),
            rpc_endpoints=tuple(url for url in entry.get('rpc') or [] if isinstance(url, str))
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'chainId': self.chain_id,
            'nativeCurrency': {
                'name': self.native_currency.name,
                'symbol': self.native_currency.symbol,
                'decimals': self.native_currency.decimals
            },
            'rpc': list(self.rpc_endpoints)
        }


class TokenStandard(str, Enum):
    NATIVE = "Native"
    ERC20 = "ERC20"
    ERC721 = "ERC721"
    ERC1155 = "ERC1155"


@dataclass
class TokenMetadata:
    """Descriptive token metadata; partial when the contract did not fully answer"""
    address: str
    standard: TokenStandard
    fetched_at: float
    name: Optional[str] = None
    symbol: Optional[str] = None
    decimals: Optional[int] = None
    partial: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'address': self.address,
            'type': self.standard.value,
            'name': self.name,
            'symbol': self.symbol,
            'decimals': self.decimals,
            'partial': self.partial
        }
        if self.error:
            data['error'] = self.error
        return data


@dataclass
class Transfer:
    """Common shape of every transfer record"""
    token_type: TokenStandard
    from_address: str
    to_address: str
    log_index: Optional[int] = None

    @property
    def token_address(self) -> Optional[str]:
        return None

    def token_dict(self) -> Dict[str, Any]:
        return {}

    def payload(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'tokenType': self.token_type.value,
            'token': self.token_dict(),
            'from': self.from_address,
            'to': self.to_address
        }
        data.update(self.payload())
        return data


@dataclass
class NativeTransfer(Transfer):
    value: int = 0
    currency: Optional[NativeCurrency] = None

    @property
    def formatted_value(self) -> str:
        decimals = self.currency.decimals if self.currency else 18
        return format_units(self.value, decimals)

    def token_dict(self) -> Dict[str, Any]:
        if not self.currency:
            return {}
        return {'symbol': self.currency.symbol, 'decimals': self.currency.decimals}

    def payload(self) -> Dict[str, Any]:
        return {'value': self.formatted_value, 'rawValue': _wide(self.value)}


@dataclass
class TokenTransfer(Transfer):
    token: Optional[TokenMetadata] = None

    @property
    def token_address(self) -> Optional[str]:
        return self.token.address if self.token and self.token.address else None

    def token_dict(self) -> Dict[str, Any]:
        return self.token.to_dict() if self.token else {}


@dataclass
class ERC20Transfer(TokenTransfer):
    value: int = 0
    decimals: int = 18

    @property
    def formatted_value(self) -> str:
        return format_units(self.value, self.decimals)

    def payload(self) -> Dict[str, Any]:
        return {'value': self.formatted_value, 'rawValue': _wide(self.value)}


@dataclass
class ERC721Transfer(TokenTransfer):
    token_id: int = 0

    def payload(self) -> Dict[str, Any]:
        return {'tokenId': _wide(self.token_id)}


@dataclass
class ERC1155Transfer(TokenTransfer):
    token_ids: List[int] = field(default_factory=list)
    amounts: List[int] = field(default_factory=list)

    def payload(self) -> Dict[str, Any]:
        return {
            'tokenIds': [_wide(i) for i in self.token_ids],
            'amounts': [_wide(a) for a in self.amounts]
        }


@dataclass
class RawLog:
    """Receipt log as returned by the node"""
    address: str
    topics: List[str]
    data: str
    log_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'address': self.address, 'topics': list(self.topics), 'data': self.data}


@dataclass
class AnalysisEvent:
    """Derived signal attached to an analysis"""
    type: str
    message: str
    address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'message': self.message}


@dataclass
class NetworkInfo:
    name: str
    chain_id: int
    currency: str
    block_number: Optional[int] = None
    block_timestamp: Optional[int] = None
    average_gas_price_gwei: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'chain': self.name,
            'chainId': self.chain_id,
            'currency': self.currency,
            'blockNumber': _wide(self.block_number)
        }
        if self.block_timestamp is not None:
            data['blockTimestamp'] = datetime.fromtimestamp(self.block_timestamp, tz=timezone.utc).isoformat()
        if self.average_gas_price_gwei is not None:
            data['averageGasPriceGwei'] = self.average_gas_price_gwei
        return data


@dataclass
class TransactionInfo:
    hash: str
    from_address: str
    to_address: Optional[str]
    value: int
    value_eth: str
    nonce: int
    status: str
    input_data: str = "0x"
    gas_used: Optional[int] = None
    gas_price_gwei: Optional[str] = None
    max_fee_per_gas: Optional[str] = None
    max_priority_fee_per_gas: Optional[str] = None
    total_cost_eth: Optional[str] = None
    function_selector: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'hash': self.hash,
            'from': self.from_address,
            'to': self.to_address,
            'valueEth': self.value_eth,
            'nonce': self.nonce,
            'status': self.status
        }
        # Unavailable figures are left out rather than zeroed
        optional = {
            'gasUsed': _wide(self.gas_used),
            'gasPriceGwei': self.gas_price_gwei,
            'maxFeePerGas': self.max_fee_per_gas,
            'maxPriorityFeePerGas': self.max_priority_fee_per_gas,
            'totalCostEth': self.total_cost_eth,
            'functionSelector': self.function_selector
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data


@dataclass
class AnalysisSummary:
    total_transfers: int
    unique_tokens: int
    unique_contracts: int
    complexity_score: str
    risk_level: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalTransfers': self.total_transfers,
            'uniqueTokens': self.unique_tokens,
            'uniqueContracts': self.unique_contracts,
            'complexityScore': self.complexity_score,
            'riskLevel': self.risk_level
        }


@dataclass
class TransactionAnalysis:
    """Aggregate analysis record for one transaction"""
    network: NetworkInfo
    transaction: TransactionInfo
    type: str = "Unknown"
    transfers: List[Transfer] = field(default_factory=list)
    interactions: List[str] = field(default_factory=list)
    events: List[AnalysisEvent] = field(default_factory=list)
    other_events: List[RawLog] = field(default_factory=list)
    summary: Optional[AnalysisSummary] = None

    def add_interaction(self, address: str) -> bool:
        """Record a contract address, keeping its first-seen position"""
        if address in self.interactions:
            return False
        self.interactions.append(address)
        return True

    def has_warning(self) -> bool:
        return any(event.type == "Warning" for event in self.events)

    def unique_token_addresses(self) -> List[str]:
        seen: List[str] = []
        for transfer in self.transfers:
            address = transfer.token_address
            if address and address not in seen:
                seen.append(address)
        return seen

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible document; wide integers are decimal strings"""
        return {
            'network': self.network.to_dict(),
            'transaction': self.transaction.to_dict(),
            'type': self.type,
            'transfers': [t.to_dict() for t in self.transfers],
            'interactions': list(self.interactions),
            'events': [e.to_dict() for e in self.events],
            'otherEvents': [log.to_dict() for log in self.other_events],
            'summary': self.summary.to_dict() if self.summary else None
        }
