import asyncio
from collections import Counter

import pytest

from fakes import OTHER_HASH, SEAPORT, FakeEth, RecordingFactory, alt_log, cancelled_log, primary_log
from marketplace.rpc.selector import NoHealthyEndpoint, RPCSelector
from marketplace.sync.driver import SyncJob, SyncState
from marketplace.sync.events import EventVariant


class FakeGateway:
    def __init__(self, accept=True):
        self.accept = accept
        self.submitted = []

    async def submit(self, event):
        self.submitted.append(event)
        if callable(self.accept):
            return self.accept(event)
        return self.accept


def _job(eth, gateway, from_block=0, chunk_size=5000):
    selector = RPCSelector(["http://rpc"], w3_factory=RecordingFactory({"http://rpc": eth}))
    return SyncJob(selector, gateway, SEAPORT, from_block=from_block, chunk_size=chunk_size)


def _topics_queried(eth):
    return Counter(call["topics"][0] for call in eth.get_logs_calls)


def test_three_chunks_per_category_over_twelve_thousand_blocks():
    eth = FakeEth(block=11_999)
    job = _job(eth, FakeGateway())

    report = asyncio.run(job.run())

    counts = _topics_queried(eth)
    assert counts == {
        EventVariant.FULFILLED_PRIMARY.topic0: 3,
        EventVariant.FULFILLED_ALT.topic0: 3,
        EventVariant.CANCELLED.topic0: 3,
    }
    assert report.chunks_ok == 9
    assert report.to_block == 11_999
    assert job.state is SyncState.DONE


def test_phases_run_in_order_over_the_same_range():
    eth = FakeEth(block=11_999)
    asyncio.run(_job(eth, FakeGateway()).run())

    order = [call["topics"][0] for call in eth.get_logs_calls]
    assert order == (
        [EventVariant.FULFILLED_PRIMARY.topic0] * 3
        + [EventVariant.FULFILLED_ALT.topic0] * 3
        + [EventVariant.CANCELLED.topic0] * 3
    )
    ranges = [(c["fromBlock"], c["toBlock"]) for c in eth.get_logs_calls[:3]]
    assert ranges == [(0, 5000), (5001, 10001), (10002, 11999)]
    assert all(c["address"].lower() == SEAPORT for c in eth.get_logs_calls)


def test_events_are_normalized_submitted_and_counted():
    eth = FakeEth(block=11_999, logs={
        EventVariant.FULFILLED_PRIMARY.topic0: [primary_log(block=100)],
        EventVariant.FULFILLED_ALT.topic0: [alt_log(block=6000, order_hash=OTHER_HASH)],
        EventVariant.CANCELLED.topic0: [cancelled_log(block=11_000)],
    })
    gateway = FakeGateway()

    report = asyncio.run(_job(eth, gateway).run())

    assert report.fulfilled == 2
    assert report.cancelled == 1
    assert report.rejected == 0
    assert [e.variant for e in gateway.submitted] == [
        EventVariant.FULFILLED_PRIMARY, EventVariant.FULFILLED_ALT, EventVariant.CANCELLED,
    ]
    assert gateway.submitted[1].token_id == "7"


def test_rejected_submissions_are_not_counted():
    eth = FakeEth(block=100, logs={
        EventVariant.FULFILLED_PRIMARY.topic0: [primary_log(block=10), primary_log(block=20, order_hash=OTHER_HASH)],
        EventVariant.CANCELLED.topic0: [cancelled_log(block=30)],
    })
    gateway = FakeGateway(accept=lambda e: e.order_hash == OTHER_HASH)

    report = asyncio.run(_job(eth, gateway).run())

    assert len(gateway.submitted) == 3
    assert report.fulfilled == 1
    assert report.cancelled == 0
    assert report.rejected == 2


def test_failed_chunk_is_recorded_as_gap_and_scan_continues():
    eth = FakeEth(
        block=11_999,
        fail_ranges=[(5001, 10001)],
        logs={EventVariant.CANCELLED.topic0: [cancelled_log(block=11_500)]},
    )

    report = asyncio.run(_job(eth, FakeGateway()).run())

    assert len(eth.get_logs_calls) == 9
    assert report.gaps == [
        ("primary", 5001, 10001),
        ("alt", 5001, 10001),
        ("cancelled", 5001, 10001),
    ]
    assert report.chunks_ok == 6
    assert report.cancelled == 1


def test_undecodable_log_is_skipped():
    bad = primary_log(block=5)
    bad["topics"] = bad["topics"][:2]
    eth = FakeEth(block=50, logs={
        EventVariant.FULFILLED_PRIMARY.topic0: [bad, primary_log(block=6)],
    })
    gateway = FakeGateway()

    report = asyncio.run(_job(eth, gateway).run())

    assert report.undecodable == 1
    assert report.fulfilled == 1
    assert len(gateway.submitted) == 1


def test_scan_starts_at_configured_block():
    eth = FakeEth(block=12_000)
    asyncio.run(_job(eth, FakeGateway(), from_block=10_000).run())

    ranges = [(c["fromBlock"], c["toBlock"]) for c in eth.get_logs_calls[:1]]
    assert ranges == [(10_000, 12_000)]
    assert len(eth.get_logs_calls) == 3


def test_start_past_head_scans_nothing():
    eth = FakeEth(block=10)
    report = asyncio.run(_job(eth, FakeGateway(), from_block=11).run())

    assert eth.get_logs_calls == []
    assert report.chunks_ok == 0


def test_no_endpoint_aborts_before_scanning():
    eth = FakeEth(error=RuntimeError("connection refused"))
    job = _job(eth, FakeGateway())

    with pytest.raises(NoHealthyEndpoint):
        asyncio.run(job.run())

    assert job.state is SyncState.SELECTING_ENDPOINT
    assert eth.get_logs_calls == []


def test_garbled_block_number_does_not_abort_the_run():
    bad = cancelled_log(block=5)
    bad["blockNumber"] = "0xzz"
    eth = FakeEth(block=50, logs={
        EventVariant.CANCELLED.topic0: [bad, cancelled_log(block=6, order_hash=OTHER_HASH)],
    })
    job = _job(eth, FakeGateway())

    report = asyncio.run(job.run())

    assert job.state is SyncState.DONE
    assert report.undecodable == 1
    assert report.cancelled == 1
