from decimal import Decimal

import pytest
from web3 import Web3

from fakes import BUYER, NFT, ORDER_HASH, SEAPORT, SELLER, SELLER_MIXED_CASE, alt_log, cancelled_log, primary_log
from marketplace.sync.events import (
    AltFulfilled,
    Cancelled,
    EventDecodeError,
    EventVariant,
    PrimaryFulfilled,
    classify,
    decode_log,
    format_ether,
    normalize,
)


def test_topic0_matches_event_signatures():
    assert EventVariant.CANCELLED.topic0 == "0x" + bytes(Web3.keccak(text="OrderCancelled(bytes32,address)")).hex()
    topics = {v.topic0 for v in EventVariant}
    assert len(topics) == 3


def test_classify_each_variant():
    assert classify(primary_log()) is EventVariant.FULFILLED_PRIMARY
    assert classify(alt_log()) is EventVariant.FULFILLED_ALT
    assert classify(cancelled_log()) is EventVariant.CANCELLED


def test_unknown_topic_is_rejected():
    log = primary_log()
    log["topics"][0] = "0x" + "ee" * 32
    with pytest.raises(EventDecodeError):
        decode_log(log)


def test_missing_topics_are_rejected():
    log = primary_log()
    log["topics"] = log["topics"][:2]
    with pytest.raises(EventDecodeError):
        decode_log(log)


def test_primary_never_carries_token_or_price():
    decoded = decode_log(primary_log())
    assert isinstance(decoded, PrimaryFulfilled)

    event = normalize(decoded)
    assert event.token_id is None
    assert event.price is None
    assert event.category == "fulfilled"
    assert event.order_hash == ORDER_HASH
    assert event.seller_address == SELLER
    assert event.buyer_address == BUYER
    assert event.block_number == 100


def test_alt_takes_first_token_id():
    decoded = decode_log(alt_log(token_ids=(7, 9)))
    assert isinstance(decoded, AltFulfilled)
    assert decoded.token_ids == (7, 9)

    event = normalize(decoded)
    assert event.token_id == "7"
    assert event.variant is EventVariant.FULFILLED_ALT


def test_alt_with_no_token_ids_yields_null_token():
    event = normalize(decode_log(alt_log(token_ids=())))
    assert event.token_id is None
    assert event.price == Decimal("1.5")


def test_alt_amount_converted_from_base_units():
    event = normalize(decode_log(alt_log(amount=1_500_000_000_000_000_000)))
    assert event.price == Decimal("1.5")


def test_alt_zero_amount_is_a_decimal_zero():
    event = normalize(decode_log(alt_log(amount=0)))
    assert event.price == Decimal(0)
    assert isinstance(event.price, Decimal)


def test_alt_with_truncated_data_is_undecodable():
    log = alt_log()
    log["data"] = log["data"][:40]
    with pytest.raises(EventDecodeError):
        decode_log(log)


def test_cancelled_has_only_hash_and_offerer():
    decoded = decode_log(cancelled_log(block=300))
    assert isinstance(decoded, Cancelled)

    event = normalize(decoded)
    assert event.category == "cancelled"
    assert event.token_id is None
    assert event.price is None
    assert event.buyer_address is None
    assert event.block_number == 300


def test_addresses_are_lowercased():
    event = normalize(decode_log(primary_log(offerer=SELLER_MIXED_CASE)))
    assert event.seller_address == SELLER_MIXED_CASE.lower()


def test_payload_shape():
    event = normalize(decode_log(alt_log()))
    payload = event.to_payload(NFT, SEAPORT)

    assert payload == {
        "tokenId": "7",
        "price": "1.5",
        "sellerAddress": SELLER,
        "buyerAddress": BUYER,
        "orderHash": ORDER_HASH,
        "image": None,
        "nftContract": NFT,
        "marketplaceContract": SEAPORT,
        "status": "fulfilled",
        "onChainBlock": 200,
    }


def test_format_ether():
    assert format_ether(10**18) == Decimal(1)
    assert format_ether(25 * 10**16) == Decimal("0.25")


@pytest.mark.parametrize("block", ["0xzz", "twelve", None])
def test_bad_block_number_is_undecodable(block):
    log = cancelled_log()
    log["blockNumber"] = block
    with pytest.raises(EventDecodeError):
        decode_log(log)
