from __future__ import annotations

from typing import List, Tuple

from .package import Package
from .writer import build_package


# Packages cannot be modified in place: the hash table sits after the payloads
# and moves whenever a payload changes size. Every edit rebuilds.


def _segments(package: Package) -> List[Tuple[int, bytes, int]]:
    return [(entry.id, bytes(payload), entry.flags) for entry, payload, _digest in package.segments()]


def _rebuild(package: Package, segments, provider, max_workers: int) -> Tuple[Package, bytes]:
    return build_package(
        segments,
        provider=provider,
        image_version=package.image_version,
        package_version=package.package_version,
        max_workers=max_workers,
    )


def insert_segment(
    package: Package,
    index: int,
    segment_id: int,
    payload: bytes,
    *,
    provider,
    flags: int = 0,
    max_workers: int = 1,
) -> Tuple[Package, bytes]:
    segments = _segments(package)
    if not 0 <= index <= len(segments):
        raise ValueError(f"Segment index {index} out of range (0..{len(segments)})")
    segments.insert(index, (segment_id, payload, flags))
    return _rebuild(package, segments, provider, max_workers)


def remove_segment(package: Package, index: int, *, provider, max_workers: int = 1) -> Tuple[Package, bytes]:
    """Drop one segment; an index past the end removes the last one."""
    segments = _segments(package)
    if not segments:
        raise ValueError("Package has no segments")
    if index < 0:
        raise ValueError(f"Segment index {index} out of range")
    del segments[min(index, len(segments) - 1)]
    return _rebuild(package, segments, provider, max_workers)


def replace_segment(
    package: Package,
    index: int,
    payload: bytes,
    *,
    provider,
    max_workers: int = 1,
) -> Tuple[Package, bytes]:
    segments = _segments(package)
    if not 0 <= index < len(segments):
        raise ValueError(f"Segment index {index} out of range (0..{len(segments) - 1})")
    sid, _old, flags = segments[index]
    segments[index] = (sid, payload, flags)
    return _rebuild(package, segments, provider, max_workers)
