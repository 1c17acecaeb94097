"""
SyncJob — batch replay of on-chain Seaport events into the order store.

One run walks a fixed state sequence:

  SELECTING_ENDPOINT → DETERMINING_RANGE → SCANNING_FULFILLED_PRIMARY
    → SCANNING_FULFILLED_ALT → SCANNING_CANCELLED → DONE

The block range [from_block, latest] is computed once; every scanning state
covers all of it. There is no checkpoint: each run rescans from from_block
and relies on the orderHash upsert to absorb repeats.

Only endpoint selection can abort a run (NoHealthyEndpoint propagates).
Skipped chunks, undecodable logs and rejected submissions are counted in
the SyncReport and the scan moves on.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from web3 import Web3

from marketplace.rpc.selector import ChainSession, RPCSelector
from marketplace.sync.events import EventDecodeError, EventVariant, decode_log, normalize
from marketplace.sync.gateway import OrderGateway
from marketplace.sync.scanner import DEFAULT_CHUNK_SIZE, ChunkOk, ChunkSkipped, scan_range


class SyncState(Enum):
    SELECTING_ENDPOINT = "selecting_endpoint"
    DETERMINING_RANGE = "determining_range"
    SCANNING_FULFILLED_PRIMARY = "scanning_fulfilled_primary"
    SCANNING_FULFILLED_ALT = "scanning_fulfilled_alt"
    SCANNING_CANCELLED = "scanning_cancelled"
    DONE = "done"


PHASES: Tuple[Tuple[SyncState, EventVariant], ...] = (
    (SyncState.SCANNING_FULFILLED_PRIMARY, EventVariant.FULFILLED_PRIMARY),
    (SyncState.SCANNING_FULFILLED_ALT, EventVariant.FULFILLED_ALT),
    (SyncState.SCANNING_CANCELLED, EventVariant.CANCELLED),
)


@dataclass
class SyncReport:
    """End-of-run totals."""
    endpoint: str = ""
    from_block: int = 0
    to_block: int = -1
    fulfilled: int = 0
    cancelled: int = 0
    rejected: int = 0
    undecodable: int = 0
    chunks_ok: int = 0
    gaps: List[Tuple[str, int, int]] = field(default_factory=list)  # (variant, start, end)

    def summary(self) -> str:
        lines = [
            f"Range:        {self.from_block} → {self.to_block} via {self.endpoint[:40]}",
            f"Fulfilled:    {self.fulfilled}",
            f"Cancelled:    {self.cancelled}",
            f"Rejected:     {self.rejected}",
            f"Undecodable:  {self.undecodable}",
            f"Chunks ok:    {self.chunks_ok}",
            f"Chunk gaps:   {len(self.gaps)}",
        ]
        for label, start, end in self.gaps:
            lines.append(f"  - {label}: {start} → {end}")
        return "\n".join(lines)


class SyncJob:
    """Drives selector → scanner → decoder → gateway for one batch sweep."""

    def __init__(
        self,
        selector: RPCSelector,
        gateway: OrderGateway,
        marketplace_contract: str,
        from_block: int = 0,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.selector = selector
        self.gateway = gateway
        self.marketplace_contract = Web3.to_checksum_address(marketplace_contract)
        self.from_block = from_block
        self.chunk_size = chunk_size
        self.state = SyncState.SELECTING_ENDPOINT
        self.report = SyncReport(from_block=from_block)
        self._session: Optional[ChainSession] = None

    def _enter(self, state: SyncState):
        self.state = state
        print(f"[SYNC] → {state.name}")

    async def run(self) -> SyncReport:
        self._enter(SyncState.SELECTING_ENDPOINT)
        self._session = await self.selector.select()
        self.report.endpoint = self._session.url

        try:
            self._enter(SyncState.DETERMINING_RANGE)
            latest = await self._session.latest_block()
            self.report.to_block = latest
            print(f"[SYNC] Block range: {self.from_block} → {latest}")
            if self.from_block > latest:
                print(f"[SYNC] ⚠️  FROM_BLOCK {self.from_block} is past the chain head {latest} — nothing to scan")

            for state, variant in PHASES:
                self._enter(state)
                await self._scan_variant(variant, latest)

            self._enter(SyncState.DONE)
        finally:
            await self._session.close()

        return self.report

    async def _fetch_logs(self, variant: EventVariant, start: int, end: int) -> list:
        return await self._session.get_logs({
            "address": self.marketplace_contract,
            "fromBlock": start,
            "toBlock": end,
            "topics": [variant.topic0],
        })

    async def _scan_variant(self, variant: EventVariant, latest: int):
        async def fetch(start: int, end: int) -> list:
            return await self._fetch_logs(variant, start, end)

        async for result in scan_range(fetch, self.from_block, latest, self.chunk_size, label=variant.label):
            if isinstance(result, ChunkSkipped):
                self.report.gaps.append((variant.label, result.start, result.end))
            elif isinstance(result, ChunkOk):
                self.report.chunks_ok += 1
                for log in result.items:
                    await self._process_log(variant, log)

    async def _process_log(self, variant: EventVariant, log):
        try:
            decoded = decode_log(log)
            event = normalize(decoded)
        except EventDecodeError as e:
            self.report.undecodable += 1
            print(f"[SYNC] ⚠️  Skipping undecodable {variant.label} log: {e}")
            return

        if event.variant is not variant:
            # Only a misbehaving RPC ignores the topic0 filter
            print(f"[SYNC] ⚠️  {variant.label} scan returned a {event.variant.label} log")

        if not await self.gateway.submit(event):
            self.report.rejected += 1
            return

        if event.category == "cancelled":
            self.report.cancelled += 1
            print(f"[SYNC] 🗑 Cancelled: {event.order_hash}")
        else:
            self.report.fulfilled += 1
            print(f"[SYNC] ✅ Fulfilled ({event.variant.label}): {event.order_hash}")
