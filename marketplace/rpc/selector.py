"""
RPCSelector — first-live-wins endpoint selection for the sync job.

Candidates are probed strictly in priority order with a cheap
eth_blockNumber call. The first endpoint that answers becomes the job's
ChainSession; the remaining candidates are never contacted. Unset (None or
empty) entries are skipped without counting as failures.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from web3 import AsyncWeb3, AsyncHTTPProvider


class NoHealthyEndpoint(RuntimeError):
    """Every configured RPC candidate failed its liveness probe."""

    def __init__(self, attempts: List["ProbeResult"]):
        self.attempts = attempts
        tried = ", ".join(f"{a.url[:40]} ({a.error_type})" for a in attempts) or "none configured"
        super().__init__(f"no RPC endpoint reachable — tried: {tried}")


def _classify_error(e: Exception) -> str:
    """Classify an RPC error for the probe log."""
    msg = str(e).lower()
    if "429" in msg or "rate limit" in msg or "too many" in msg:
        return "429"
    if "timeout" in msg or "timed out" in msg:
        return "timeout"
    if "502" in msg or "503" in msg or "504" in msg:
        return "timeout"  # treat server errors as temporary
    if "connection" in msg or "refused" in msg or "reset" in msg:
        return "timeout"
    return "other"


def default_w3_factory(url: str) -> AsyncWeb3:
    return AsyncWeb3(AsyncHTTPProvider(url))


async def _disconnect(w3, url: str):
    """Release the provider's pooled HTTP session, if it keeps one."""
    disconnect = getattr(w3.provider, "disconnect", None)
    if disconnect is None:
        return
    try:
        await disconnect()
    except Exception as e:
        print(f"[RPC] Disconnect from {url[:40]} failed: {e}")


@dataclass
class ProbeResult:
    """Outcome of one liveness probe."""
    url: str
    ok: bool
    latency_ms: float = 0.0
    block_number: Optional[int] = None
    error: str = ""
    error_type: str = ""


@dataclass
class ChainSession:
    """Read-only chain connection held by the sync job for one run."""
    url: str
    w3: AsyncWeb3 = field(repr=False)
    probe_block: int = 0
    probe_latency_ms: float = 0.0

    async def latest_block(self) -> int:
        return await self.w3.eth.block_number

    async def get_logs(self, filter_params: dict) -> list:
        return await self.w3.eth.get_logs(filter_params)

    async def close(self):
        await _disconnect(self.w3, self.url)


class RPCSelector:
    """Probes candidates in order and hands out the first live one."""

    def __init__(
        self,
        candidates: Iterable[Optional[str]],
        w3_factory: Callable[[str], AsyncWeb3] = default_w3_factory,
    ):
        self.candidates: List[Optional[str]] = list(candidates)
        self._w3_factory = w3_factory
        self.attempts: List[ProbeResult] = []

    async def _probe(self, url: str) -> tuple:
        w3 = self._w3_factory(url)
        t0 = time.monotonic()
        try:
            block = await w3.eth.block_number
        except Exception as e:
            latency_ms = (time.monotonic() - t0) * 1000
            await _disconnect(w3, url)
            return w3, ProbeResult(
                url=url, ok=False,
                latency_ms=latency_ms,
                error=str(e), error_type=_classify_error(e),
            )
        return w3, ProbeResult(
            url=url, ok=True,
            latency_ms=(time.monotonic() - t0) * 1000,
            block_number=block,
        )

    async def select(self) -> ChainSession:
        """Return a session on the first candidate that answers.

        Raises NoHealthyEndpoint if none does.
        """
        print("[RPC] Probing RPC endpoints...")
        self.attempts = []
        for url in self.candidates:
            if not url:
                continue
            w3, result = await self._probe(url)
            self.attempts.append(result)
            if result.ok:
                print(f"[RPC] ✅ {url} block={result.block_number} ({result.latency_ms:.0f}ms)")
                return ChainSession(
                    url=url, w3=w3,
                    probe_block=result.block_number,
                    probe_latency_ms=result.latency_ms,
                )
            print(f"[RPC] ❌ {url} [{result.error_type}] {result.error}")

        raise NoHealthyEndpoint(self.attempts)
