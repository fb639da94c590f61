from __future__ import annotations

import struct
from dataclasses import dataclass

from .constants import PACKAGE_MAGIC, HEADER_SIZE
from .errors import MalformedHeader, UnknownMagic


# Header (fixed 48 bytes)
# struct: >8s Q Q Q Q Q
#  - magic[8]
#  - package_version u64
#  - image_version u64
#  - segment_count u64
#  - header_length u64 (header + segment table, where payload data begins)
#  - total_length u64 (header + table + payloads, where the hash table begins)
_HEADER_STRUCT = struct.Struct(">8sQQQQQ")
assert _HEADER_STRUCT.size == HEADER_SIZE


@dataclass(frozen=True)
class Header:
    package_version: int
    image_version: int
    segment_count: int
    header_length: int
    total_length: int

    def pack(self) -> bytes:
        return _HEADER_STRUCT.pack(
            PACKAGE_MAGIC,
            self.package_version,
            self.image_version,
            self.segment_count,
            self.header_length,
            self.total_length,
        )


def parse_header(data: bytes) -> Header:
    if len(data) < HEADER_SIZE:
        raise MalformedHeader(f"Header too short: {len(data)} < {HEADER_SIZE} bytes", offset=len(data))
    magic, pkg_version, img_version, count, header_length, total_length = _HEADER_STRUCT.unpack_from(data, 0)
    if magic != PACKAGE_MAGIC:
        raise UnknownMagic(bytes(magic), offset=0)
    return Header(
        package_version=pkg_version,
        image_version=img_version,
        segment_count=count,
        header_length=header_length,
        total_length=total_length,
    )


def serialize_header(header: Header) -> bytes:
    return header.pack()
