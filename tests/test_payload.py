import json
from decimal import Decimal

from marketplace.orders.payload import PayloadKind, classify_payload, listing_price

PARAMS = {
    "offerer": "0x" + "11" * 20,
    "offer": [{"itemType": 2, "identifierOrCriteria": "42"}],
    "consideration": [
        {"itemType": 0, "startAmount": "2500000000000000000", "endAmount": "2500000000000000000"},
        {"itemType": 0, "startAmount": "50000000000000000", "endAmount": "50000000000000000"},
    ],
}


def test_signed_order_shape():
    kind, params = classify_payload({"parameters": PARAMS, "signature": "0xdead"})
    assert kind is PayloadKind.SIGNED_ORDER
    assert params is PARAMS


def test_bare_parameters_shape():
    kind, params = classify_payload(PARAMS)
    assert kind is PayloadKind.ORDER_PARAMETERS
    assert params is PARAMS


def test_json_string_payload():
    kind, _ = classify_payload(json.dumps({"parameters": PARAMS, "signature": "0xdead"}))
    assert kind is PayloadKind.SIGNED_ORDER


def test_unknown_shapes():
    assert classify_payload(None) == (PayloadKind.UNKNOWN, None)
    assert classify_payload("not json") == (PayloadKind.UNKNOWN, None)
    assert classify_payload({"foo": 1}) == (PayloadKind.UNKNOWN, None)
    assert classify_payload({"parameters": PARAMS}) == (PayloadKind.UNKNOWN, None)


def test_price_from_first_consideration_item_only():
    assert listing_price({"parameters": PARAMS, "signature": "0x"}) == Decimal("2.5")


def test_price_falls_back_to_start_amount_and_hex():
    params = {"consideration": [{"startAmount": hex(10**18)}]}
    assert listing_price(params) == Decimal(1)


def test_price_unreadable():
    assert listing_price({"consideration": []}) is None
    assert listing_price({"consideration": [{"endAmount": "lots"}]}) is None
    assert listing_price({"consideration": [{"token": "0x"}]}) is None
    assert listing_price(None) is None
