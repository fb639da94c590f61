"""Digest providers backed by PyCryptodomex.

A provider is anything with a ``digest_size`` attribute and a
``digest(data) -> bytes`` method. The codec only depends on that shape, so
tests and callers can plug in their own.
"""

from __future__ import annotations

from typing import Optional, Union

from Cryptodome.Hash import HMAC, SHA1, SHA256

from .constants import DIGEST_SHA1, DIGEST_SHA256, DEFAULT_DIGEST_ALGORITHM


Buffer = Union[bytes, bytearray, memoryview]

_HASH_MODULES = {
    DIGEST_SHA1: SHA1,
    DIGEST_SHA256: SHA256,
}


def _hash_module(algorithm: str):
    try:
        return _HASH_MODULES[algorithm]
    except KeyError:
        raise ValueError(f"unsupported digest algorithm: {algorithm}") from None


class HmacDigest:
    """Keyed HMAC over the configured hash."""

    def __init__(self, key: bytes, algorithm: str = DEFAULT_DIGEST_ALGORITHM):
        if not key:
            raise ValueError("HMAC key must not be empty")
        self.algorithm = algorithm
        self._mod = _hash_module(algorithm)
        self._key = bytes(key)
        self.digest_size = self._mod.digest_size

    def digest(self, data: Buffer) -> bytes:
        return HMAC.new(self._key, msg=data, digestmod=self._mod).digest()


class PlainDigest:
    """Unkeyed hash, for unsigned packages and tests."""

    def __init__(self, algorithm: str = DEFAULT_DIGEST_ALGORITHM):
        self.algorithm = algorithm
        self._mod = _hash_module(algorithm)
        self.digest_size = self._mod.digest_size

    def digest(self, data: Buffer) -> bytes:
        return self._mod.new(data).digest()


def make_digest(key: Optional[bytes], algorithm: str = DEFAULT_DIGEST_ALGORITHM):
    if key:
        return HmacDigest(key, algorithm)
    return PlainDigest(algorithm)


__all__ = [
    "HmacDigest",
    "PlainDigest",
    "make_digest",
]
