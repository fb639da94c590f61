from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from argon2.low_level import Type as _ArgonType, hash_secret_raw as _argon_hash

from .constants import DEFAULT_DIGEST_ALGORITHM
from .digest import make_digest


KEY_SIZE = 64  # HMAC block size for SHA-1/SHA-256
MIN_SALT_SIZE = 8

# Fixed Argon2id parameters for passphrase-derived digest keys
ARGON_TIME_COST = 3
ARGON_MEMORY_COST_KIB = 64 * 1024  # 64 MiB
ARGON_PARALLELISM = 4


@dataclass
class DigestConfig:
    algorithm: str = DEFAULT_DIGEST_ALGORITHM
    key: Optional[bytes] = None


def key_from_hex(text: str) -> bytes:
    try:
        key = bytes.fromhex(text.strip())
    except ValueError:
        raise ValueError("Digest key must be a hex string") from None
    if not key:
        raise ValueError("Digest key must not be empty")
    return key


def key_from_file(path: str) -> bytes:
    with open(path, "rb") as fh:
        key = fh.read()
    if not key:
        raise ValueError(f"Key file {path} is empty")
    return key


def derive_key(passphrase: str, salt: bytes) -> bytes:
    """Stretch a passphrase into HMAC key material with Argon2id."""
    if len(salt) < MIN_SALT_SIZE:
        raise ValueError(f"Key salt must be at least {MIN_SALT_SIZE} bytes")
    return _argon_hash(
        passphrase.encode("utf-8"),
        salt,
        time_cost=ARGON_TIME_COST,
        memory_cost=ARGON_MEMORY_COST_KIB,
        parallelism=ARGON_PARALLELISM,
        hash_len=KEY_SIZE,
        type=_ArgonType.ID,
    )


def make_provider(config: DigestConfig):
    return make_digest(config.key, config.algorithm)
