from __future__ import annotations

from typing import Union

from .constants import DEFAULT_DIGEST_SIZE, HEADER_SIZE, SEGMENT_ENTRY_SIZE
from .errors import MalformedHeader, SegmentOutOfBounds, TruncatedInput
from .hashtable import parse_hash_table
from .header import parse_header
from .package import Package
from .segtable import parse_segment_table, table_size
from .store import SegmentStore


def read_package(data: Union[bytes, bytearray, memoryview], *, digest_size: int = DEFAULT_DIGEST_SIZE) -> Package:
    """
    Parses a serialized package into a ``Package``.

    Sections are read in on-disk order: header, segment table, segment data,
    hash table. The first problem found is raised as an ``FwpkgError`` whose
    ``offset`` is where parsing stopped:

    - ``MalformedHeader``: input shorter than the header, or header lengths
      that contradict each other or the segment count.
    - ``UnknownMagic``: not a package.
    - ``SegmentOutOfBounds``: first table entry (in table order) whose range
      falls outside ``[header_length, total_length)``.
    - ``TruncatedInput``: a section runs past the end of the input.

    Digests are not checked here; call ``Package.verify`` for that.
    """
    raw = bytes(data)
    header = parse_header(raw)
    entries = parse_segment_table(raw, header.segment_count, start=HEADER_SIZE)
    table_end = HEADER_SIZE + table_size(header.segment_count)

    if header.header_length < table_end:
        raise MalformedHeader(
            f"header_length {header.header_length:#x} is smaller than header and segment table ({table_end:#x})",
            offset=table_end,
        )
    if header.header_length > header.total_length:
        raise MalformedHeader(
            f"header_length {header.header_length:#x} exceeds total_length {header.total_length:#x}",
            offset=table_end,
        )

    for pos, entry in enumerate(entries):
        if entry.offset < header.header_length or entry.end > header.total_length:
            raise SegmentOutOfBounds(
                entry.id,
                offset=HEADER_SIZE + pos * SEGMENT_ENTRY_SIZE,
                detail=(
                    f"range {entry.offset:#x}..{entry.end:#x} outside payload region "
                    f"{header.header_length:#x}..{header.total_length:#x}"
                ),
            )

    if len(raw) < header.total_length:
        raise TruncatedInput(
            "segment data",
            offset=header.header_length,
            needed=header.total_length - header.header_length,
            available=max(0, len(raw) - header.header_length),
        )

    store = SegmentStore.from_buffer(entries, memoryview(raw))
    hashes = parse_hash_table(raw, header.segment_count, start=header.total_length, digest_size=digest_size)
    return Package(
        header=header,
        entries=tuple(entries),
        store=store,
        hashes=tuple(hashes),
        raw=raw,
    )
