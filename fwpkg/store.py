from __future__ import annotations

from collections.abc import Mapping
from typing import Iterator, List, Sequence, Tuple, Union

from .errors import SegmentOutOfBounds
from .segtable import SegmentEntry


Payload = Union[bytes, memoryview]


def slice_segment(entry: SegmentEntry, buffer: memoryview) -> memoryview:
    """Borrow ``buffer[offset:offset+size]`` without copying."""
    if entry.end > len(buffer):
        raise SegmentOutOfBounds(
            entry.id,
            offset=entry.offset,
            detail=f"range {entry.offset:#x}..{entry.end:#x} exceeds buffer of {len(buffer):#x} bytes",
        )
    return buffer[entry.offset : entry.end]


def pack_payloads(payloads: Sequence[bytes], start: int) -> Tuple[List[int], bytes]:
    """Lay payloads out back to back from ``start``.

    Returns the assigned absolute offsets and the concatenated payload region.
    """
    offsets: List[int] = []
    cursor = start
    for payload in payloads:
        offsets.append(cursor)
        cursor += len(payload)
    return offsets, b"".join(payloads)


class SegmentStore(Mapping):
    """Segment payloads in table order, looked up by segment id.

    On the read path the payloads are memoryviews into the package buffer;
    on the build path they are the caller's bytes. Duplicate ids are kept
    positionally; lookup by id returns the first one in table order.
    """

    def __init__(self, ids: Sequence[int], payloads: Sequence[Payload]):
        if len(ids) != len(payloads):
            raise ValueError("ids and payloads must have the same length")
        self._ids = tuple(ids)
        self._payloads = tuple(payloads)
        self._first = {}
        for pos, sid in enumerate(self._ids):
            self._first.setdefault(sid, pos)

    @classmethod
    def from_buffer(cls, entries: Sequence[SegmentEntry], buffer: memoryview) -> "SegmentStore":
        return cls([e.id for e in entries], [slice_segment(e, buffer) for e in entries])

    @classmethod
    def from_payloads(cls, pairs: Sequence[Tuple[int, bytes]]) -> "SegmentStore":
        return cls([sid for sid, _ in pairs], [payload for _, payload in pairs])

    def __getitem__(self, segment_id: int) -> Payload:
        return self._payloads[self._first[segment_id]]

    def __iter__(self) -> Iterator[int]:
        return iter(self._first)

    def __len__(self) -> int:
        return len(self._first)

    def __eq__(self, other) -> bool:
        if not isinstance(other, SegmentStore):
            return NotImplemented
        return self._ids == other._ids and all(
            bytes(a) == bytes(b) for a, b in zip(self._payloads, other._payloads)
        )

    def __hash__(self) -> int:
        return hash((self._ids, tuple(bytes(p) for p in self._payloads)))

    @property
    def payloads(self) -> Tuple[Payload, ...]:
        """All payloads in table order, duplicates included."""
        return self._payloads

    def at(self, position: int) -> Payload:
        return self._payloads[position]
