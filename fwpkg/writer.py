from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple, Union

from .constants import HEADER_SIZE, PACKAGE_VERSION, U64_MAX
from .errors import PackageTooLarge
from .hashtable import compute_hashes, serialize_hash_table
from .header import Header
from .package import Package
from .segtable import SegmentEntry, serialize_segment_table, table_size
from .store import SegmentStore, pack_payloads


SegmentInput = Union[Tuple[int, bytes], Tuple[int, bytes, int]]


def _check_u64(name: str, value: int) -> int:
    if not isinstance(value, int) or value < 0 or value > U64_MAX:
        raise ValueError(f"{name} must be an unsigned 64-bit integer, got {value!r}")
    return value


def _payload_bytes(payload) -> bytes:
    try:
        return memoryview(payload).tobytes()
    except TypeError:
        raise ValueError(f"segment payload must be bytes-like, got {type(payload).__name__}") from None


def _normalize(segments: Iterable[SegmentInput]) -> List[Tuple[int, bytes, int]]:
    out: List[Tuple[int, bytes, int]] = []
    for item in segments:
        if len(item) == 2:
            sid, payload = item  # type: ignore[misc]
            flags = 0
        elif len(item) == 3:
            sid, payload, flags = item  # type: ignore[misc]
        else:
            raise ValueError("segments must be (id, payload) or (id, payload, flags) tuples")
        out.append((_check_u64("segment id", sid), _payload_bytes(payload), _check_u64("segment flags", flags)))
    return out


def build_package(
    segments: Iterable[SegmentInput],
    *,
    provider,
    image_version: int = 0,
    package_version: int = PACKAGE_VERSION,
    max_workers: int = 1,
) -> Tuple[Package, bytes]:
    """Lay out and serialize a package from ordered segments.

    Payloads are packed back to back right after the segment table, in the
    given order. Returns the ``Package`` together with its bytes; reading
    those bytes back yields an equal package.
    """
    _check_u64("image_version", image_version)
    _check_u64("package_version", package_version)
    items = _normalize(segments)
    payloads: Sequence[bytes] = [p for _, p, _ in items]

    header_length = HEADER_SIZE + table_size(len(items))
    total_length = header_length + sum(len(p) for p in payloads)
    if total_length > U64_MAX:
        raise PackageTooLarge(
            f"package of {len(items)} segment(s) needs {total_length} bytes before the hash table, "
            "which does not fit a 64-bit length field",
            offset=header_length,
        )

    offsets, region = pack_payloads(payloads, header_length)
    entries = tuple(
        SegmentEntry(id=sid, offset=off, size=len(payload), flags=flags)
        for (sid, payload, flags), off in zip(items, offsets)
    )
    header = Header(
        package_version=package_version,
        image_version=image_version,
        segment_count=len(entries),
        header_length=header_length,
        total_length=total_length,
    )
    header_bytes = header.pack()
    table_bytes = serialize_segment_table(entries)
    hashes = tuple(compute_hashes(header_bytes, table_bytes, payloads, provider, max_workers=max_workers))

    raw = header_bytes + table_bytes + region + serialize_hash_table(hashes)
    package = Package(
        header=header,
        entries=entries,
        store=SegmentStore.from_payloads([(e.id, p) for e, p in zip(entries, payloads)]),
        hashes=hashes,
        raw=raw,
    )
    return package, raw
