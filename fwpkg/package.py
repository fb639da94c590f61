from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

from .header import Header
from .hashtable import VerificationReport, verify_package
from .segtable import SegmentEntry
from .store import Payload, SegmentStore


@dataclass(frozen=True)
class Package:
    """A parsed or freshly built package.

    ``raw`` is the serialized package. On the read path the store's payloads
    are memoryviews into it; on the build path the store owns the payloads it
    was given. There is no mutation API: see ``fwpkg.edit`` for rebuilds.
    """

    header: Header
    entries: Tuple[SegmentEntry, ...]
    store: SegmentStore
    hashes: Tuple[bytes, ...]
    raw: bytes

    @property
    def digest_size(self) -> int:
        return len(self.hashes[0])

    @property
    def header_digest(self) -> bytes:
        return self.hashes[0]

    @property
    def image_version(self) -> int:
        return self.header.image_version

    @property
    def package_version(self) -> int:
        return self.header.package_version

    def __len__(self) -> int:
        return len(self.entries)

    def segments(self) -> Iterator[Tuple[SegmentEntry, Payload, bytes]]:
        """Yield ``(entry, payload, digest)`` in table order."""
        for pos, entry in enumerate(self.entries):
            yield entry, self.store.at(pos), self.hashes[pos + 1]

    def payload(self, segment_id: int) -> Optional[Payload]:
        return self.store.get(segment_id)

    def verify(self, provider, *, max_workers: int = 1) -> VerificationReport:
        return verify_package(self, provider, max_workers=max_workers)
