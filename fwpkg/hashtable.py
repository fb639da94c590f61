from __future__ import annotations

import concurrent.futures as _fut
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from .errors import TruncatedInput
from .store import Payload


HEADER_ENTRY = 0


def hash_table_size(segment_count: int, digest_size: int) -> int:
    return (segment_count + 1) * digest_size


def parse_hash_table(data: bytes, segment_count: int, *, start: int, digest_size: int) -> List[bytes]:
    """Read ``segment_count + 1`` digests starting at ``start``.

    Entry 0 is the header+table digest, entries 1..N follow table order.
    """
    needed = hash_table_size(segment_count, digest_size)
    available = max(0, len(data) - start)
    if available < needed:
        raise TruncatedInput("hash table", offset=start, needed=needed, available=available)
    return [
        bytes(data[start + i * digest_size : start + (i + 1) * digest_size])
        for i in range(segment_count + 1)
    ]


def serialize_hash_table(hashes: Sequence[bytes]) -> bytes:
    return b"".join(hashes)


def _digest_all(digest: Callable[[Payload], bytes], chunks: Sequence[Payload], max_workers: int) -> List[bytes]:
    # Results keep input order whatever the worker count.
    if max_workers <= 1 or len(chunks) < 2:
        return [digest(c) for c in chunks]
    with _fut.ThreadPoolExecutor(max_workers=max_workers) as ex:
        return list(ex.map(digest, chunks))


def compute_hashes(
    header_bytes: bytes,
    table_bytes: bytes,
    payloads: Sequence[Payload],
    provider,
    *,
    max_workers: int = 1,
) -> List[bytes]:
    chunks: List[Payload] = [header_bytes + table_bytes]
    chunks.extend(payloads)
    return _digest_all(provider.digest, chunks, max_workers)


@dataclass(frozen=True)
class EntryResult:
    index: int
    segment_id: Optional[int]  # None for the header+table entry
    expected: bytes
    actual: bytes

    @property
    def ok(self) -> bool:
        return self.expected == self.actual

    @property
    def label(self) -> str:
        if self.segment_id is None:
            return "header"
        return f"segment {self.segment_id:#x}"


@dataclass(frozen=True)
class VerificationReport:
    """Per-entry digest comparison for one package.

    Mismatches are recorded here rather than raised; the caller decides
    whether any of them is fatal.
    """

    entries: Tuple[EntryResult, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return all(e.ok for e in self.entries)

    @property
    def failures(self) -> List[EntryResult]:
        return [e for e in self.entries if not e.ok]

    @property
    def header_ok(self) -> bool:
        return bool(self.entries) and self.entries[HEADER_ENTRY].ok

    def as_dict(self) -> dict:
        return {
            "ok": self.ok,
            "entries": [
                {
                    "index": e.index,
                    "segment_id": e.segment_id,
                    "ok": e.ok,
                    "expected": e.expected.hex(),
                    "actual": e.actual.hex(),
                }
                for e in self.entries
            ],
        }


def verify_package(package, provider, *, max_workers: int = 1) -> VerificationReport:
    """Recompute every digest of ``package`` and compare with its hash table.

    Entry 0 covers bytes ``[0, header_length)`` of the package, entry k covers
    the k-th segment's payload. A provider whose width differs from the
    package's hash table fails every entry.
    """
    header_region = package.raw[: package.header.header_length]
    chunks: List[Payload] = [header_region]
    chunks.extend(package.store.payloads)
    actual = _digest_all(provider.digest, chunks, max_workers)
    ids: List[Optional[int]] = [None]
    ids.extend(e.id for e in package.entries)
    results = tuple(
        EntryResult(index=i, segment_id=sid, expected=exp, actual=act)
        for i, (sid, exp, act) in enumerate(zip(ids, package.hashes, actual))
    )
    return VerificationReport(entries=results)
