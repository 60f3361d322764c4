import asyncio
import logging
import time
from typing import Dict, List, Optional

from config.settings import AnalysisConfig, analysis_config
from core.analysis.event_decoder import CATEGORY_NFT, CATEGORY_TOKEN, EventDecoder
from core.analysis.scoring import build_summary
from core.data.models import (
    AnalysisEvent, Chain, NativeTransfer, NetworkInfo, RawLog,
    TokenStandard, TransactionAnalysis, TransactionInfo
)
from core.errors import (
    AnalysisError, AnalysisTimeoutError, ContractCheckError, LogDecodeError,
    NetworkStatsError, TransactionNotFoundError
)
from services.blockchain.chain_registry import ChainRegistry
from services.blockchain.rpc_client import RPCClient
from services.blockchain.rpc_pool import RPCPool
from services.cache.token_metadata import TokenMetadataCache
from utils.units import format_gwei, format_units, to_int

logger = logging.getLogger(__name__)

TYPE_UNKNOWN = "Unknown"
TYPE_NATIVE = "Native Transfer"
TYPE_TOKEN = "Token Transfer"
TYPE_NATIVE_TOKEN = "Native + Token Transfer"
TYPE_NFT = "NFT Transfer"
TYPE_DEPLOYMENT = "Contract Deployment"
TYPE_INTERACTION = "Contract Interaction"
NFT_SUFFIX = " + NFT"

EMPTY_CODE = ("", "0x", "0x0")


def compose_type(current: str, category: str) -> str:
    """Fold a newly observed transfer category into the type label"""
    if category == CATEGORY_TOKEN:
        if current == TYPE_UNKNOWN:
            return TYPE_TOKEN
        if current == TYPE_NATIVE:
            return TYPE_NATIVE_TOKEN
        return current

    if category == CATEGORY_NFT:
        if current == TYPE_UNKNOWN:
            return TYPE_NFT
        if "Transfer" in current and NFT_SUFFIX not in current:
            return current + NFT_SUFFIX
        return current

    return current


def merge_deployment(current: str) -> str:
    if current == TYPE_UNKNOWN:
        return TYPE_DEPLOYMENT
    if TYPE_DEPLOYMENT in current:
        return current
    return f"{current} + {TYPE_DEPLOYMENT}"


def has_call_data(data: Optional[str]) -> bool:
    return bool(data) and data not in ("0x", "0X")


class TransactionAnalyzer:
    """
    Builds a TransactionAnalysis for one transaction hash.

    Chain resolution, endpoint selection and the transaction lookup are fatal;
    metadata, gas statistics and contract checks degrade without aborting.
    """

    def __init__(self, registry: ChainRegistry, pool: RPCPool, token_cache: TokenMetadataCache,
                 decoder: Optional[EventDecoder] = None, config: Optional[AnalysisConfig] = None):
        self.registry = registry
        self.pool = pool
        self.token_cache = token_cache
        self.config = config or analysis_config
        self.decoder = decoder or EventDecoder(default_decimals=self.config.default_token_decimals)

        self.stats = {
            "analyses": 0,
            "failures": 0,
            "logs_decoded": 0,
            "logs_undecodable": 0,
            "logs_unmatched": 0
        }

    async def analyze(self, tx_hash: str, chain_id: int, timeout: Optional[float] = None) -> TransactionAnalysis:
        """Analyze a transaction; raises an AnalysisError subclass on fatal failures"""
        if timeout is None and self.config.analysis_timeout_seconds > 0:
            timeout = self.config.analysis_timeout_seconds

        logger.info(f"🔍 Analyzing transaction: {tx_hash} on chainId: {chain_id}")
        start_time = time.time()
        self.stats["analyses"] += 1

        try:
            if timeout:
                try:
                    analysis = await asyncio.wait_for(self._analyze(tx_hash, chain_id), timeout=timeout)
                except asyncio.TimeoutError as e:
                    raise AnalysisTimeoutError(tx_hash, timeout) from e
            else:
                analysis = await self._analyze(tx_hash, chain_id)
        except AnalysisError as e:
            self.stats["failures"] += 1
            logger.error(f"❌ Transaction analysis error: {e}")
            raise

        logger.info(f"✅ Analyzed {tx_hash} in {time.time() - start_time:.2f}s: "
                    f"{analysis.type}, {len(analysis.transfers)} transfers")
        return analysis

    async def _analyze(self, tx_hash: str, chain_id: int) -> TransactionAnalysis:
        chain = await self.registry.get_chain(chain_id)
        client = await self.pool.get_provider(chain_id)

        tx = await client.get_transaction(tx_hash)
        if not tx:
            raise TransactionNotFoundError(tx_hash, chain_id)

        receipt = await client.get_transaction_receipt(tx_hash)
        block_number = to_int(tx.get("blockNumber"))
        block = await client.get_block(block_number) if block_number is not None else None

        analysis = TransactionAnalysis(
            network=self._build_network(chain, block_number, block),
            transaction=self._build_transaction(chain, tx, receipt)
        )

        if analysis.transaction.value > 0:
            analysis.type = TYPE_NATIVE
            analysis.transfers.append(NativeTransfer(
                token_type=TokenStandard.NATIVE,
                from_address=analysis.transaction.from_address,
                to_address=analysis.transaction.to_address or "Contract Creation",
                value=analysis.transaction.value,
                currency=chain.native_currency
            ))

        await self._process_logs(client, analysis, (receipt or {}).get("logs") or [])
        self._classify(analysis)

        analysis.network.average_gas_price_gwei = await self._average_gas_price(client)
        analysis.events.extend(await self._verify_contracts(client, analysis.interactions))

        analysis.summary = build_summary(analysis)
        return analysis

    def _build_network(self, chain: Chain, block_number: Optional[int], block: Optional[Dict]) -> NetworkInfo:
        return NetworkInfo(
            name=chain.name,
            chain_id=chain.chain_id,
            currency=chain.native_currency.symbol,
            block_number=block_number,
            block_timestamp=to_int(block.get("timestamp")) if block else None
        )

    def _build_transaction(self, chain: Chain, tx: Dict, receipt: Optional[Dict]) -> TransactionInfo:
        decimals = chain.native_currency.decimals
        value = to_int(tx.get("value")) or 0
        gas_price = to_int(tx.get("gasPrice"))
        max_fee = to_int(tx.get("maxFeePerGas"))
        max_priority_fee = to_int(tx.get("maxPriorityFeePerGas"))

        gas_used = None
        total_cost = None
        if receipt:
            status = "Success" if to_int(receipt.get("status")) == 1 else "Failed"
            gas_used = to_int(receipt.get("gasUsed"))
            effective_price = to_int(receipt.get("effectiveGasPrice")) or gas_price
            if gas_used is not None and effective_price:
                total_cost = format_units(gas_used * effective_price, decimals)
        else:
            status = "Pending"

        return TransactionInfo(
            hash=tx.get("hash"),
            from_address=tx.get("from"),
            to_address=tx.get("to") or None,
            value=value,
            value_eth=format_units(value, decimals),
            nonce=to_int(tx.get("nonce")) or 0,
            status=status,
            input_data=tx.get("input") or tx.get("data") or "0x",
            gas_used=gas_used,
            gas_price_gwei=format_gwei(gas_price) if gas_price is not None else None,
            max_fee_per_gas=format_gwei(max_fee) if max_fee else None,
            max_priority_fee_per_gas=format_gwei(max_priority_fee) if max_priority_fee else None,
            total_cost_eth=total_cost
        )

    async def _process_logs(self, client: RPCClient, analysis: TransactionAnalysis, logs: List[Dict]) -> None:
        """Decode receipt logs strictly in ascending log index order"""
        raw_logs = []
        for position, entry in enumerate(logs):
            raw_logs.append((
                to_int(entry.get("logIndex")),
                position,
                RawLog(
                    address=entry.get("address"),
                    topics=list(entry.get("topics") or []),
                    data=entry.get("data") or "0x",
                    log_index=to_int(entry.get("logIndex"))
                )
            ))
        raw_logs.sort(key=lambda item: (item[0] if item[0] is not None else item[1], item[1]))

        for _, _, log in raw_logs:
            analysis.add_interaction(log.address)

            decoder = self.decoder.match(log)
            if decoder is None:
                self.stats["logs_unmatched"] += 1
                analysis.other_events.append(log)
                continue

            metadata = await self.token_cache.get_metadata(client, log.address, decoder.standard)
            try:
                transfer = self.decoder.decode(log, decoder, metadata)
            except LogDecodeError as e:
                self.stats["logs_undecodable"] += 1
                logger.warning(f"⚠️ Skipping log {log.log_index} from {log.address}: {e}")
                if self.config.record_undecodable_logs:
                    analysis.other_events.append(log)
                continue

            self.stats["logs_decoded"] += 1
            analysis.transfers.append(transfer)
            analysis.type = compose_type(analysis.type, decoder.category)

    def _classify(self, analysis: TransactionAnalysis) -> None:
        tx = analysis.transaction
        if not tx.to_address:
            analysis.type = merge_deployment(analysis.type)
        elif has_call_data(tx.input_data) and analysis.type == TYPE_UNKNOWN:
            analysis.type = TYPE_INTERACTION
            tx.function_selector = tx.input_data[:10]

    async def _average_gas_price(self, client: RPCClient) -> Optional[str]:
        """Average base fee of the latest blocks in gwei; None when unavailable"""
        try:
            latest = await client.get_block("latest")
            if not latest:
                raise NetworkStatsError("latest block unavailable")
            latest_number = to_int(latest.get("number")) or 0

            count = self.config.gas_stats_block_count
            numbers = [latest_number - i for i in range(count) if latest_number - i >= 0]
            blocks = await asyncio.gather(*(client.get_block(n) for n in numbers))

            total = sum(to_int((b or {}).get("baseFeePerGas")) or 0 for b in blocks)
            return format_gwei(total // len(blocks))
        except Exception as e:
            logger.warning(f"⚠️ Error getting average gas price: {e}")
            return None

    async def _verify_contracts(self, client: RPCClient, addresses: List[str]) -> List[AnalysisEvent]:
        """Flag interaction addresses without bytecode, preserving interaction order"""
        results = await asyncio.gather(*(self._check_contract(client, a) for a in addresses))
        return [event for event in results if event is not None]

    async def _check_contract(self, client: RPCClient, address: str) -> Optional[AnalysisEvent]:
        try:
            code = await client.get_code(address)
        except Exception as e:
            error = ContractCheckError(f"Error checking contract at {address}: {e}")
            logger.warning(f"⚠️ {error}")
            return None

        if code in EMPTY_CODE:
            return AnalysisEvent(
                type="Warning",
                message=f"Address {address} is not a contract",
                address=address
            )
        return None
