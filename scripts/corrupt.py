from __future__ import annotations

import argparse
import os
import random
import sys
from typing import Optional

from fwpkg.config import DigestConfig, make_provider
from fwpkg.constants import DIGEST_SHA1, DIGEST_SHA256, DEFAULT_DIGEST_ALGORITHM
from fwpkg.errors import FwpkgError
from fwpkg.reader import read_package


def _flip_byte(path: str, offset: int, xor_val: int = 0xFF) -> None:
    if offset < 0:
        raise ValueError("Offset must be non-negative")
    with open(path, "r+b") as f:
        f.seek(offset)
        b = f.read(1)
        if not b:
            raise ValueError("Offset beyond end of file")
        f.seek(offset)
        f.write(bytes([b[0] ^ (xor_val & 0xFF)]))
        f.flush()
        os.fsync(f.fileno())


def _load(path: str, algorithm: str):
    digest_size = make_provider(DigestConfig(algorithm=algorithm)).digest_size
    with open(path, "rb") as fh:
        return read_package(fh.read(), digest_size=digest_size)


def cmd_by_offset(args: argparse.Namespace) -> None:
    _flip_byte(args.package, args.offset, xor_val=args.xor)
    print(f"Flipped 1 byte at offset {args.offset}")


def cmd_segment(args: argparse.Namespace) -> None:
    pkg = _load(args.package, args.algorithm)
    if args.index < 0 or args.index >= len(pkg):
        raise ValueError(f"Segment index out of range (0..{len(pkg) - 1})")
    entry = pkg.entries[args.index]
    if args.within < 0 or args.within >= entry.size:
        raise ValueError(f"--within must be within segment size (0..{entry.size - 1})")
    off = entry.offset + args.within
    _flip_byte(args.package, off, xor_val=args.xor)
    print(f"Flipped 1 byte in segment {args.index} (id {entry.id:#x}) at package offset {off}")


def cmd_header(args: argparse.Namespace) -> None:
    pkg = _load(args.package, args.algorithm)
    if args.within < 0 or args.within >= pkg.header.header_length:
        raise ValueError(f"--within must be within the header region (0..{pkg.header.header_length - 1})")
    _flip_byte(args.package, args.within, xor_val=args.xor)
    print(f"Flipped 1 byte in header region at offset {args.within}")


def cmd_random(args: argparse.Namespace) -> None:
    rng = random.Random(args.seed)
    flips = 0
    size = os.path.getsize(args.package)
    with open(args.package, "r+b") as f:
        for _ in range(args.count):
            pos = rng.randrange(0, size)
            f.seek(pos)
            b = f.read(1)
            if not b:
                continue
            f.seek(pos)
            f.write(bytes([b[0] ^ (args.xor & 0xFF)]))
            flips += 1
        f.flush()
        os.fsync(f.fileno())
    print(f"Flipped {flips} byte(s) at random offsets")


def main(argv: Optional[list[str]] = None) -> None:
    ap = argparse.ArgumentParser(prog="fwpkg.corrupt", description="Corrupt firmware packages for testing")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_off = sub.add_parser("by-offset", help="Flip one byte at an absolute package offset")
    p_off.add_argument("package", help="Path to package")
    p_off.add_argument("--offset", type=int, required=True, help="Absolute byte offset in package")
    p_off.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_off.set_defaults(func=cmd_by_offset)

    p_seg = sub.add_parser("segment", help="Flip a byte within a specific segment")
    p_seg.add_argument("package", help="Path to package")
    p_seg.add_argument("--index", type=int, required=True, help="Segment index (0-based, table order)")
    p_seg.add_argument("--within", type=int, default=0, help="Byte offset within segment (default 0)")
    p_seg.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_seg.add_argument("--algorithm", choices=[DIGEST_SHA1, DIGEST_SHA256], default=DEFAULT_DIGEST_ALGORITHM)
    p_seg.set_defaults(func=cmd_segment)

    p_hdr = sub.add_parser("header", help="Flip a byte inside the header+table region")
    p_hdr.add_argument("package", help="Path to package")
    p_hdr.add_argument("--within", type=int, default=0x10, help="Offset inside the region (default 0x10)")
    p_hdr.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_hdr.add_argument("--algorithm", choices=[DIGEST_SHA1, DIGEST_SHA256], default=DEFAULT_DIGEST_ALGORITHM)
    p_hdr.set_defaults(func=cmd_header)

    p_rand = sub.add_parser("random", help="Flip N random bytes anywhere in the package")
    p_rand.add_argument("package", help="Path to package")
    p_rand.add_argument("--count", type=int, default=1, help="Number of random byte flips (default 1)")
    p_rand.add_argument("--seed", type=int, default=None, help="PRNG seed for reproducibility")
    p_rand.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_rand.set_defaults(func=cmd_random)

    args = ap.parse_args(argv)
    try:
        args.func(args)
    except (FwpkgError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
