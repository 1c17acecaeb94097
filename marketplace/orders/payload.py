"""
Signed order payloads — tagged decode of the opaque object the listing flow
stores in signedOrderPayload.

The payload comes straight from the order-book library in the browser. It is
classified into one known shape before anything is read from it; prices are
derived only from the first consideration item.
"""

import json
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Tuple

from web3 import Web3


class PayloadKind(Enum):
    SIGNED_ORDER = "signed_order"          # {"parameters": {...}, "signature": "0x..."}
    ORDER_PARAMETERS = "order_parameters"  # bare parameters with "consideration"
    UNKNOWN = "unknown"


def classify_payload(payload: Any) -> Tuple[PayloadKind, Optional[dict]]:
    """Return the payload kind and its order parameters (None for UNKNOWN)."""
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError:
            return PayloadKind.UNKNOWN, None
    if not isinstance(payload, dict):
        return PayloadKind.UNKNOWN, None

    params = payload.get("parameters")
    if isinstance(params, dict) and "signature" in payload:
        return PayloadKind.SIGNED_ORDER, params
    if isinstance(payload.get("consideration"), list):
        return PayloadKind.ORDER_PARAMETERS, payload
    return PayloadKind.UNKNOWN, None


def listing_price(payload: Any) -> Optional[Decimal]:
    """Price in APE asked by the first consideration item, if readable."""
    _, params = classify_payload(payload)
    if params is None:
        return None

    consideration = params.get("consideration") or []
    if not consideration or not isinstance(consideration[0], dict):
        return None

    item = consideration[0]
    for key in ("endAmount", "startAmount", "amount"):
        raw = item.get(key)
        if raw is None or raw == "":
            continue
        try:
            wei = int(str(raw), 0) if str(raw).startswith("0x") else int(Decimal(str(raw)))
        except (ValueError, InvalidOperation):
            return None
        return Decimal(Web3.from_wei(wei, "ether"))
    return None
