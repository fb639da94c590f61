from __future__ import annotations

from typing import Dict, Optional


# Magic and version
PACKAGE_MAGIC = b"SCEUF\x00\x00\x00"  # 8 bytes: "SCEUF\0\0\0"
PACKAGE_VERSION = 1

# Fixed record sizes (big endian, see header.py / segtable.py)
HEADER_SIZE = 0x30
SEGMENT_ENTRY_SIZE = 0x20

U64_MAX = (1 << 64) - 1

# Digest defaults
DIGEST_SHA1 = "sha1"
DIGEST_SHA256 = "sha256"
DEFAULT_DIGEST_ALGORITHM = DIGEST_SHA1
DEFAULT_DIGEST_SIZE = 20  # HMAC-SHA1

# Signature kinds carried in the low 32 bits of a segment's flags
SIG_HMAC_SHA1 = 0
SIG_HMAC_SHA256 = 2

_SIGNATURE_KINDS: Dict[int, str] = {
    SIG_HMAC_SHA1: "HMAC-SHA1",
    SIG_HMAC_SHA256: "HMAC-SHA256",
}

# Well-known segment ids
_SEGMENT_NAMES: Dict[int, str] = {
    0x100: "version.txt",
    0x101: "license.xml",
    0x102: "promo_flags.txt",
    0x103: "update_flags.txt",
    0x104: "patch_build.txt",
    0x200: "ps3swu.self",
    0x201: "vsh.tar",
    0x202: "dots.txt",
    0x203: "patch_data.pkg",
    0x300: "update_files.tar",
    0x501: "spkg_hdr.tar",
    0x601: "ps3swu2.self",
}
_SEGMENT_IDS: Dict[str, int] = {name: sid for sid, name in _SEGMENT_NAMES.items()}


def segment_file_name(segment_id: int) -> Optional[str]:
    return _SEGMENT_NAMES.get(segment_id)


def segment_id_from_name(name: str) -> Optional[int]:
    return _SEGMENT_IDS.get(name)


def signature_kind(flags: int) -> Optional[str]:
    """Human-readable signature kind for a segment's flags, display only."""
    return _SIGNATURE_KINDS.get(flags & 0xFFFFFFFF)
