from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterable, List

from .constants import HEADER_SIZE, SEGMENT_ENTRY_SIZE
from .errors import TruncatedInput


# Segment record (fixed 32 bytes)
# struct: >Q Q Q Q
#  - id u64
#  - offset u64 (absolute, from the start of the package)
#  - size u64
#  - flags u64 (opaque, passed through)
_SEGMENT_STRUCT = struct.Struct(">QQQQ")
assert _SEGMENT_STRUCT.size == SEGMENT_ENTRY_SIZE


@dataclass(frozen=True)
class SegmentEntry:
    id: int
    offset: int
    size: int
    flags: int = 0

    @property
    def end(self) -> int:
        return self.offset + self.size

    def pack(self) -> bytes:
        return _SEGMENT_STRUCT.pack(self.id, self.offset, self.size, self.flags)


def table_size(segment_count: int) -> int:
    return segment_count * SEGMENT_ENTRY_SIZE


def parse_segment_table(data: bytes, segment_count: int, *, start: int = HEADER_SIZE) -> List[SegmentEntry]:
    """Read ``segment_count`` records starting at ``start``.

    Offsets and sizes are not range-checked here; the reader does that once
    the whole table and the header lengths are known.
    """
    needed = table_size(segment_count)
    available = max(0, len(data) - start)
    if available < needed:
        raise TruncatedInput("segment table", offset=start, needed=needed, available=available)
    return [
        SegmentEntry(*_SEGMENT_STRUCT.unpack_from(data, start + i * SEGMENT_ENTRY_SIZE))
        for i in range(segment_count)
    ]


def serialize_segment_table(entries: Iterable[SegmentEntry]) -> bytes:
    return b"".join(e.pack() for e in entries)
