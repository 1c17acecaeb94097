"""
Chunked block-range scanner.

Some RPC backends reject wide eth_getLogs ranges or time out on them, so a
backlog is walked in fixed-width sub-ranges. Each chunk's outcome is returned
as data: ChunkOk with the fetched items, or ChunkSkipped with the reason.
A skipped chunk is a gap for a later re-run to repair, never a reason to
stop scanning.
"""

from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Iterator, Tuple, Union

DEFAULT_CHUNK_SIZE = 5000


@dataclass(frozen=True)
class ChunkOk:
    start: int
    end: int
    items: list = field(default_factory=list)


@dataclass(frozen=True)
class ChunkSkipped:
    start: int
    end: int
    reason: str

    def __repr__(self) -> str:
        return f"Skipped({self.start}→{self.end}: {self.reason[:60]})"


ChunkResult = Union[ChunkOk, ChunkSkipped]


def iter_chunks(from_block: int, to_block: int, width: int = DEFAULT_CHUNK_SIZE) -> Iterator[Tuple[int, int]]:
    """Yield inclusive (start, end) pairs covering [from_block, to_block].

    Each pair spans at most width + 1 blocks; consecutive pairs touch with no
    overlap. An empty range (from_block > to_block) yields nothing.
    """
    if width < 1:
        raise ValueError(f"chunk width must be >= 1, got {width}")
    start = from_block
    while start <= to_block:
        end = min(start + width, to_block)
        yield start, end
        start = end + 1


async def scan_range(
    fetch: Callable[[int, int], Awaitable[list]],
    from_block: int,
    to_block: int,
    width: int = DEFAULT_CHUNK_SIZE,
    label: str = "",
) -> AsyncIterator[ChunkResult]:
    """Run fetch(start, end) over every chunk, one at a time, in order."""
    tag = f"[SCAN{':' + label if label else ''}]"
    for start, end in iter_chunks(from_block, to_block, width):
        print(f"{tag} Chunk {start} → {end}")
        try:
            items = await fetch(start, end)
        except Exception as e:
            print(f"{tag} ⚠️  Chunk {start} → {end} failed: {e}")
            yield ChunkSkipped(start, end, str(e) or type(e).__name__)
            continue
        yield ChunkOk(start, end, list(items or []))

