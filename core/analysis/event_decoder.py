"""
Event decoding for transfer logs.

Receipt logs are dispatched on ``(topic0, topic count)``; each matching entry
names the token standard whose metadata the decoder needs and a routine that
turns the log into a typed transfer record. Logs without a table entry are
left for the caller to keep verbatim.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from core.data.models import (
    ERC20Transfer, ERC721Transfer, ERC1155Transfer, RawLog,
    TokenMetadata, TokenStandard, Transfer
)
from core.errors import LogDecodeError

logger = logging.getLogger(__name__)


def event_topic(signature: str) -> str:
    return '0x' + bytes(Web3.keccak(text=signature)).hex()


TRANSFER_TOPIC = event_topic("Transfer(address,address,uint256)")
TRANSFER_BATCH_TOPIC = event_topic("TransferBatch(address,address,address,uint256[],uint256[])")

# Transfer categories used for type classification
CATEGORY_TOKEN = "token"
CATEGORY_NFT = "nft"


def _hex_bytes(data: str) -> bytes:
    text = data[2:] if data.startswith(('0x', '0X')) else data
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise LogDecodeError(f"malformed log data: {e}") from e


def topic_to_address(topic: str) -> str:
    """Low 20 bytes of an indexed address topic"""
    if not isinstance(topic, str) or len(topic) != 66:
        raise LogDecodeError(f"malformed address topic: {topic!r}")
    return '0x' + topic[26:].lower()


def topic_to_int(topic: str) -> int:
    try:
        return int(topic, 16)
    except (TypeError, ValueError) as e:
        raise LogDecodeError(f"malformed uint256 topic: {topic!r}") from e


def decode_erc20_transfer(log: RawLog, metadata: TokenMetadata, default_decimals: int = 18) -> ERC20Transfer:
    try:
        value = decode(['uint256'], _hex_bytes(log.data))[0]
    except DecodingError as e:
        raise LogDecodeError(f"undecodable ERC20 amount: {e}") from e

    decimals = metadata.decimals if metadata.decimals is not None else default_decimals
    return ERC20Transfer(
        token_type=TokenStandard.ERC20,
        from_address=topic_to_address(log.topics[1]),
        to_address=topic_to_address(log.topics[2]),
        log_index=log.log_index,
        token=metadata,
        value=value,
        decimals=decimals
    )


def decode_erc721_transfer(log: RawLog, metadata: TokenMetadata, default_decimals: int = 18) -> ERC721Transfer:
    return ERC721Transfer(
        token_type=TokenStandard.ERC721,
        from_address=topic_to_address(log.topics[1]),
        to_address=topic_to_address(log.topics[2]),
        log_index=log.log_index,
        token=metadata,
        token_id=topic_to_int(log.topics[3])
    )


def decode_erc1155_batch(log: RawLog, metadata: TokenMetadata, default_decimals: int = 18) -> ERC1155Transfer:
    # topic1 is the operator
    try:
        token_ids, amounts = decode(['uint256[]', 'uint256[]'], _hex_bytes(log.data))
    except DecodingError as e:
        raise LogDecodeError(f"undecodable TransferBatch payload: {e}") from e

    if len(token_ids) != len(amounts):
        raise LogDecodeError(f"TransferBatch ids/amounts length mismatch: {len(token_ids)} != {len(amounts)}")

    return ERC1155Transfer(
        token_type=TokenStandard.ERC1155,
        from_address=topic_to_address(log.topics[2]),
        to_address=topic_to_address(log.topics[3]),
        log_index=log.log_index,
        token=metadata,
        token_ids=list(token_ids),
        amounts=list(amounts)
    )


@dataclass(frozen=True)
class LogDecoder:
    """One dispatch table entry"""
    name: str
    standard: TokenStandard
    category: str
    routine: Callable[[RawLog, TokenMetadata, int], Transfer]

    def decode(self, log: RawLog, metadata: TokenMetadata, default_decimals: int = 18) -> Transfer:
        return self.routine(log, metadata, default_decimals)


DEFAULT_DECODERS: Dict[Tuple[str, int], LogDecoder] = {
    (TRANSFER_TOPIC, 3): LogDecoder("erc20_transfer", TokenStandard.ERC20, CATEGORY_TOKEN, decode_erc20_transfer),
    (TRANSFER_TOPIC, 4): LogDecoder("erc721_transfer", TokenStandard.ERC721, CATEGORY_NFT, decode_erc721_transfer),
    (TRANSFER_BATCH_TOPIC, 4): LogDecoder("erc1155_batch", TokenStandard.ERC1155, CATEGORY_NFT, decode_erc1155_batch),
}


class EventDecoder:
    """Dispatch table from (signature, topic count) to transfer decoders"""

    def __init__(self, default_decimals: int = 18,
                 table: Optional[Dict[Tuple[str, int], LogDecoder]] = None):
        self.default_decimals = default_decimals
        self._table = dict(table if table is not None else DEFAULT_DECODERS)

    def match(self, log: RawLog) -> Optional[LogDecoder]:
        if not log.topics:
            return None
        return self._table.get((str(log.topics[0]).lower(), len(log.topics)))

    def decode(self, log: RawLog, decoder: LogDecoder, metadata: TokenMetadata) -> Transfer:
        """Run a matched decoder; raises LogDecodeError on malformed logs"""
        try:
            return decoder.decode(log, metadata, self.default_decimals)
        except LogDecodeError:
            raise
        except (IndexError, TypeError, ValueError, OverflowError) as e:
            raise LogDecodeError(f"{decoder.name} decode failed: {e}") from e

    @property
    def signatures(self) -> List[Tuple[str, int]]:
        return list(self._table)
