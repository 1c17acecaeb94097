"""
Order records — request classification and upsert merge rules.

POST /api/order receives two kinds of body: a listing from the browser
(signed payload, status active) and a chain event from the sync job (bare
fulfilled/cancelled stub). parse_submission() decides which one a body is
and validates it; merge_order() decides what an upsert may overwrite.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

STATUSES = ("active", "sold", "fulfilled", "cancelled")
EVENT_STATUSES = ("sold", "fulfilled", "cancelled")
ON_CHAIN_STATUSES = ("sold", "fulfilled")

# Never touched after the row is created
IMMUTABLE_FIELDS = ("id", "orderHash", "createdAt")


class SubmissionError(ValueError):
    """Request body is not a valid listing or chain event."""


@dataclass(frozen=True)
class ListingSubmission:
    order_hash: str
    token_id: str
    price: Decimal
    seller: str
    signed_order_payload: Any
    image: Optional[str] = None


@dataclass(frozen=True)
class ChainEventSubmission:
    order_hash: str
    status: str
    token_id: Optional[str] = None
    price: Optional[Decimal] = None
    seller: Optional[str] = None
    buyer: Optional[str] = None
    on_chain_block: Optional[int] = None
    nft_contract: Optional[str] = None
    marketplace_contract: Optional[str] = None


Submission = Union[ListingSubmission, ChainEventSubmission]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_address(addr: Any, label: str) -> str:
    if not isinstance(addr, str):
        raise SubmissionError(f"{label} must be a string")
    addr = addr.strip().lower()
    if not addr.startswith("0x") or len(addr) != 42:
        raise SubmissionError(f"{label} is not a valid address")
    try:
        int(addr[2:], 16)
    except ValueError:
        raise SubmissionError(f"{label} is not a valid address")
    return addr


def _order_hash(body: dict) -> str:
    raw = body.get("orderHash")
    if not isinstance(raw, str) or not raw.strip():
        raise SubmissionError("Missing orderHash")
    h = raw.strip().lower()
    if not h.startswith("0x"):
        raise SubmissionError("orderHash must be 0x-prefixed hex")
    return h


def _price(raw: Any, required: bool) -> Optional[Decimal]:
    if raw is None or raw == "":
        if required:
            raise SubmissionError("Missing price")
        return None
    if isinstance(raw, bool):
        raise SubmissionError("price must be a number")
    try:
        price = Decimal(str(raw))
    except InvalidOperation:
        raise SubmissionError("price must be a number")
    if not price.is_finite() or price < 0:
        raise SubmissionError("price must be a non-negative number")
    return price


def _token_id(raw: Any, required: bool) -> Optional[str]:
    if raw is None or raw == "":
        if required:
            raise SubmissionError("Missing tokenId")
        return None
    if isinstance(raw, bool):
        raise SubmissionError("tokenId must be an integer")
    token = str(raw).strip()
    if not token.isdigit():
        raise SubmissionError("tokenId must be an integer")
    return token


def _optional_address(body: dict, key: str) -> Optional[str]:
    raw = body.get(key)
    if raw is None or raw == "":
        return None
    return normalize_address(raw, key)


def parse_submission(body: Any) -> Submission:
    """Classify and validate a POST /api/order body."""
    if not isinstance(body, dict):
        raise SubmissionError("Body must be a JSON object")

    status = body.get("status") or "active"
    if status not in STATUSES:
        raise SubmissionError(f"Unknown status: {status}")

    order_hash = _order_hash(body)

    if status == "active":
        if body.get("signedOrderPayload") in (None, "", {}):
            raise SubmissionError("Missing signedOrderPayload")
        seller = body.get("sellerAddress")
        if not seller:
            raise SubmissionError("Missing sellerAddress")
        image = body.get("image")
        return ListingSubmission(
            order_hash=order_hash,
            token_id=_token_id(body.get("tokenId"), required=True),
            price=_price(body.get("price"), required=True),
            seller=normalize_address(seller, "sellerAddress"),
            signed_order_payload=body["signedOrderPayload"],
            image=image if isinstance(image, str) and image else None,
        )

    block = body.get("onChainBlock")
    if block is not None:
        if isinstance(block, bool) or not isinstance(block, int) or block < 0:
            raise SubmissionError("onChainBlock must be a non-negative integer")

    return ChainEventSubmission(
        order_hash=order_hash,
        status=status,
        token_id=_token_id(body.get("tokenId"), required=False),
        price=_price(body.get("price"), required=False),
        seller=_optional_address(body, "sellerAddress"),
        buyer=_optional_address(body, "buyerAddress"),
        on_chain_block=block,
        nft_contract=_optional_address(body, "nftContract"),
        marketplace_contract=_optional_address(body, "marketplaceContract"),
    )


def submission_to_row(sub: Submission, nft_contract: str, marketplace_contract: str) -> dict:
    """Columns a submission writes (id and timestamps are added by the store)."""
    if isinstance(sub, ListingSubmission):
        return {
            "orderHash": sub.order_hash,
            "tokenId": sub.token_id,
            "price": str(sub.price),
            "seller": sub.seller,
            "signedOrderPayload": sub.signed_order_payload,
            "image": sub.image,
            "nftContract": nft_contract.lower(),
            "marketplaceContract": marketplace_contract.lower(),
            "status": "active",
            "onChain": False,
        }

    return {
        "orderHash": sub.order_hash,
        "tokenId": sub.token_id,
        "price": str(sub.price) if sub.price is not None else None,
        "seller": sub.seller,
        "buyerAddress": sub.buyer,
        "nftContract": (sub.nft_contract or nft_contract).lower(),
        "marketplaceContract": (sub.marketplace_contract or marketplace_contract).lower(),
        "status": sub.status,
        "onChain": sub.status in ON_CHAIN_STATUSES,
        "onChainBlock": sub.on_chain_block,
    }


def new_order_row(order_id: str, incoming: dict) -> dict:
    now = utc_now_iso()
    row = dict(incoming)
    row["id"] = order_id
    row["createdAt"] = now
    row["updatedAt"] = now
    return row


def merge_order(existing: dict, incoming: dict) -> dict:
    """Updates to apply when incoming hits an existing row.

    Status and on-chain fields follow the latest write. A null in the
    incoming row never clears a value the stored row already has, so a
    chain-event stub cannot drop a listing's signed payload, token or price.
    A listing arriving after its chain event fills in the listing fields but
    leaves the row's status and onChain alone. Once onChain is true it stays
    true: a later cancellation does not undo an observed fulfillment.
    """
    settled = existing.get("status") in EVENT_STATUSES and incoming.get("status") == "active"
    updates = {}
    for key, value in incoming.items():
        if key in IMMUTABLE_FIELDS:
            continue
        if settled and key in ("status", "onChain"):
            continue
        if key == "onChain" and existing.get("onChain") is True and value is not True:
            continue
        if value is None and existing.get(key) is not None:
            continue
        updates[key] = value
    updates["updatedAt"] = utc_now_iso()
    return updates
