from __future__ import annotations

from typing import Optional


class FwpkgError(Exception):
    """Base class for package codec errors.

    ``offset`` is the byte offset at which parsing stopped.
    """

    def __init__(self, message: str, *, offset: int = 0):
        super().__init__(message)
        self.offset = offset


# Header
class MalformedHeader(FwpkgError):
    pass


class UnknownMagic(FwpkgError):
    def __init__(self, magic: bytes, *, offset: int = 0):
        super().__init__(f"Unknown package magic {magic!r}", offset=offset)
        self.magic = magic


# Bounds/consistency
class TruncatedInput(FwpkgError):
    def __init__(self, what: str, *, offset: int, needed: int, available: int):
        super().__init__(
            f"Truncated input reading {what} at offset {offset:#x}: need {needed} byte(s), have {available}",
            offset=offset,
        )
        self.needed = needed
        self.available = available


class SegmentOutOfBounds(FwpkgError):
    def __init__(self, segment_id: int, *, offset: int, detail: Optional[str] = None):
        msg = f"Segment {segment_id:#x} is out of bounds"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg, offset=offset)
        self.segment_id = segment_id


# Builder
class PackageTooLarge(FwpkgError):
    pass
