"""
Seaport event decoding and normalization.

The marketplace contract has emitted OrderFulfilled under two different
encodings over its lifetime, plus a single OrderCancelled shape:

  FULFILLED_PRIMARY  OrderFulfilled(bytes32 indexed orderHash, address indexed offerer,
                                    address indexed fulfiller, bytes orderDetails)
  FULFILLED_ALT      OrderFulfilled(bytes32 indexed orderHash, address indexed offerer,
                                    address indexed fulfiller, address recipient,
                                    address paymentToken, uint256 amount, uint256[] tokenIds)
  CANCELLED          OrderCancelled(bytes32 indexed orderHash, address indexed offerer)

decode_log() classifies a raw log by topic0 into exactly one variant before
any field is read. normalize() turns the decoded event into an OrderEvent
without I/O. Fields a variant does not carry stay None.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Tuple, Union

from eth_abi import decode
from web3 import Web3


class EventDecodeError(ValueError):
    """Raw log does not match any known marketplace event layout."""


def _topic(signature: str) -> str:
    return "0x" + bytes(Web3.keccak(text=signature)).hex()


class EventVariant(Enum):
    FULFILLED_PRIMARY = "OrderFulfilled(bytes32,address,address,bytes)"
    FULFILLED_ALT = "OrderFulfilled(bytes32,address,address,address,address,uint256,uint256[])"
    CANCELLED = "OrderCancelled(bytes32,address)"

    @property
    def signature(self) -> str:
        return self.value

    @property
    def topic0(self) -> str:
        return _TOPIC0[self]

    @property
    def category(self) -> str:
        return "cancelled" if self is EventVariant.CANCELLED else "fulfilled"

    @property
    def label(self) -> str:
        return {
            EventVariant.FULFILLED_PRIMARY: "primary",
            EventVariant.FULFILLED_ALT: "alt",
            EventVariant.CANCELLED: "cancelled",
        }[self]


_TOPIC0 = {v: _topic(v.signature) for v in EventVariant}
_BY_TOPIC0 = {t: v for v, t in _TOPIC0.items()}

# Non-indexed data layout of FULFILLED_ALT
_ALT_DATA_TYPES = ["address", "address", "uint256", "uint256[]"]

# Indexed topics per variant, topic0 included
_TOPIC_COUNT = {
    EventVariant.FULFILLED_PRIMARY: 4,
    EventVariant.FULFILLED_ALT: 4,
    EventVariant.CANCELLED: 3,
}


# ---------------------------------------------------------------------------
# Decoded variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PrimaryFulfilled:
    order_hash: str
    offerer: str
    fulfiller: str
    block_number: int


@dataclass(frozen=True)
class AltFulfilled:
    order_hash: str
    offerer: str
    fulfiller: str
    recipient: str
    payment_token: str
    amount: int
    token_ids: Tuple[int, ...]
    block_number: int


@dataclass(frozen=True)
class Cancelled:
    order_hash: str
    offerer: str
    block_number: int


DecodedEvent = Union[PrimaryFulfilled, AltFulfilled, Cancelled]


@dataclass(frozen=True)
class OrderEvent:
    """Canonical order event, ready to be written to the order store."""
    order_hash: str
    seller_address: Optional[str]
    buyer_address: Optional[str]
    token_id: Optional[str]
    price: Optional[Decimal]
    block_number: int
    category: str       # "fulfilled" | "cancelled"
    variant: EventVariant

    def to_payload(self, nft_contract: str, marketplace_contract: str) -> dict:
        """JSON body for POST /api/order."""
        return {
            "tokenId": self.token_id,
            "price": str(self.price) if self.price is not None else None,
            "sellerAddress": self.seller_address,
            "buyerAddress": self.buyer_address,
            "orderHash": self.order_hash,
            "image": None,
            "nftContract": nft_contract,
            "marketplaceContract": marketplace_contract,
            "status": self.category,
            "onChainBlock": self.block_number,
        }


# ---------------------------------------------------------------------------
# Boundary decode
# ---------------------------------------------------------------------------

def _to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        raw = value[2:] if value.startswith(("0x", "0X")) else value
        try:
            return bytes.fromhex(raw)
        except ValueError:
            raise EventDecodeError(f"invalid hex: {value[:20]}")
    raise EventDecodeError(f"expected bytes or hex string, got {type(value).__name__}")


def _topic_hex(topic: Any) -> str:
    b = _to_bytes(topic)
    if len(b) != 32:
        raise EventDecodeError(f"topic must be 32 bytes, got {len(b)}")
    return "0x" + b.hex()


def _topic_address(topic: Any) -> str:
    return "0x" + _topic_hex(topic)[-40:]


def _block_number(log: Any) -> int:
    raw = log.get("blockNumber")
    if raw is None:
        raise EventDecodeError("log has no blockNumber")
    try:
        if isinstance(raw, str):
            return int(raw, 16) if raw.startswith("0x") else int(raw)
        return int(raw)
    except (TypeError, ValueError):
        raise EventDecodeError(f"bad blockNumber: {str(raw)[:20]}")


def classify(log: Any) -> EventVariant:
    """Pick the event variant from topic0."""
    topics = log.get("topics") or []
    if not topics:
        raise EventDecodeError("log has no topics")
    variant = _BY_TOPIC0.get(_topic_hex(topics[0]))
    if variant is None:
        raise EventDecodeError(f"unknown topic0 {_topic_hex(topics[0])[:18]}...")
    return variant


def decode_log(log: Any) -> DecodedEvent:
    """Decode a raw eth_getLogs entry into its variant's dataclass."""
    variant = classify(log)
    topics = log["topics"]
    if len(topics) != _TOPIC_COUNT[variant]:
        raise EventDecodeError(
            f"{variant.label} event needs {_TOPIC_COUNT[variant]} topics, got {len(topics)}"
        )

    order_hash = _topic_hex(topics[1])
    offerer = _topic_address(topics[2])
    block = _block_number(log)

    if variant is EventVariant.CANCELLED:
        return Cancelled(order_hash=order_hash, offerer=offerer, block_number=block)

    fulfiller = _topic_address(topics[3])
    if variant is EventVariant.FULFILLED_PRIMARY:
        # orderDetails is opaque; nothing in it is read
        return PrimaryFulfilled(
            order_hash=order_hash, offerer=offerer,
            fulfiller=fulfiller, block_number=block,
        )

    try:
        recipient, payment_token, amount, token_ids = decode(
            _ALT_DATA_TYPES, _to_bytes(log.get("data") or b"")
        )
    except EventDecodeError:
        raise
    except Exception as e:
        raise EventDecodeError(f"alt OrderFulfilled data undecodable: {e}") from e

    return AltFulfilled(
        order_hash=order_hash,
        offerer=offerer,
        fulfiller=fulfiller,
        recipient=recipient.lower(),
        payment_token=payment_token.lower(),
        amount=int(amount),
        token_ids=tuple(int(t) for t in token_ids),
        block_number=block,
    )


# ---------------------------------------------------------------------------
# Normalization (pure)
# ---------------------------------------------------------------------------

def format_ether(amount: int) -> Decimal:
    """Base units (18 decimals) → display amount."""
    # from_wei returns a bare int 0 for zero amounts
    return Decimal(Web3.from_wei(amount, "ether"))


def normalize(event: DecodedEvent) -> OrderEvent:
    if isinstance(event, PrimaryFulfilled):
        return OrderEvent(
            order_hash=event.order_hash.lower(),
            seller_address=event.offerer.lower(),
            buyer_address=event.fulfiller.lower(),
            token_id=None,
            price=None,
            block_number=event.block_number,
            category="fulfilled",
            variant=EventVariant.FULFILLED_PRIMARY,
        )

    if isinstance(event, AltFulfilled):
        return OrderEvent(
            order_hash=event.order_hash.lower(),
            seller_address=event.offerer.lower(),
            buyer_address=event.fulfiller.lower(),
            token_id=str(event.token_ids[0]) if event.token_ids else None,
            price=format_ether(event.amount),
            block_number=event.block_number,
            category="fulfilled",
            variant=EventVariant.FULFILLED_ALT,
        )

    if isinstance(event, Cancelled):
        return OrderEvent(
            order_hash=event.order_hash.lower(),
            seller_address=event.offerer.lower(),
            buyer_address=None,
            token_id=None,
            price=None,
            block_number=event.block_number,
            category="cancelled",
            variant=EventVariant.CANCELLED,
        )

    raise TypeError(f"not a decoded marketplace event: {type(event).__name__}")
