from __future__ import annotations

import os
import sys
import argparse
import json as _json
import tempfile

from pathlib import Path
from typing import List, Optional

from fwpkg.config import DigestConfig, derive_key, key_from_file, key_from_hex, make_provider
from fwpkg.constants import (
    DEFAULT_DIGEST_ALGORITHM,
    DIGEST_SHA1,
    DIGEST_SHA256,
    segment_file_name,
    segment_id_from_name,
    signature_kind,
)
from fwpkg.edit import insert_segment, remove_segment
from fwpkg.errors import FwpkgError, MalformedHeader, UnknownMagic
from fwpkg.package import Package
from fwpkg.reader import read_package
from fwpkg.writer import build_package


def _parse_int(text: str) -> int:
    """argparse type accepting decimal or 0x-prefixed values."""
    try:
        value = int(text, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {text!r}")
    if value < 0:
        raise argparse.ArgumentTypeError(f"value must be non-negative: {text!r}")
    return value


def _read_package(path: str, config: DigestConfig) -> Package:
    provider = make_provider(config)
    with open(path, "rb") as fh:
        data = fh.read()
    return read_package(data, digest_size=provider.digest_size)


def _write_atomic(path: str, data: bytes) -> None:
    """Write via a temp file in the target directory and swap it in."""
    target_dir = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(prefix=".fwpkg-", suffix=".tmp", dir=target_dir)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except OSError:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def _segment_id_for(path: Path, explicit: Optional[int]) -> int:
    if explicit is not None:
        return explicit
    sid = segment_id_from_name(path.name)
    if sid is None:
        raise ValueError(f"Cannot derive a segment id from file name '{path.name}'; pass --id")
    return sid


def _display_name(segment_id: int) -> str:
    name = segment_file_name(segment_id)
    return name if name else f"ID: {segment_id:#x}"


def cmd_create(output: str, *, image_version: int = 0, config: Optional[DigestConfig] = None) -> bool:
    """Write an empty package.

    Args:
        output: Destination package path.
        image_version: Image version stored in the header.
        config: Digest configuration (algorithm and key).
    """
    config = config or DigestConfig()
    _pkg, raw = build_package([], provider=make_provider(config), image_version=image_version)
    _write_atomic(output, raw)
    print(f"Created empty package: {output}")
    return True


def cmd_build(
    output: str,
    inputs: List[str],
    *,
    ids: Optional[List[int]] = None,
    image_version: int = 0,
    config: Optional[DigestConfig] = None,
    jobs: int = 1,
    quiet: bool = False,
) -> bool:
    """Pack files into a new package, one segment per file, in argument order.

    Args:
        output: Destination package path.
        inputs: Segment payload files.
        ids: Segment ids matching ``inputs``; when omitted, ids are derived from
            well-known file names.
        image_version: Image version stored in the header.
        config: Digest configuration (algorithm and key).
        jobs: Worker threads used for digesting.
    """
    config = config or DigestConfig()
    if ids and len(ids) != len(inputs):
        raise ValueError(f"Got {len(ids)} --id value(s) for {len(inputs)} input file(s)")
    segments = []
    for pos, name in enumerate(inputs):
        p = Path(name)
        sid = _segment_id_for(p, ids[pos] if ids else None)
        segments.append((sid, p.read_bytes()))
        if not quiet:
            print(f"  + {_display_name(sid)} ({p.stat().st_size} bytes) <- {p}")
    pkg, raw = build_package(segments, provider=make_provider(config), image_version=image_version, max_workers=jobs)
    _write_atomic(output, raw)
    print(f"Wrote {output}: {len(pkg)} segment(s), {len(raw)} bytes")
    return True


def _info_dict(pkg: Package) -> dict:
    return {
        "package_version": pkg.package_version,
        "image_version": pkg.image_version,
        "segment_count": pkg.header.segment_count,
        "header_length": pkg.header.header_length,
        "total_length": pkg.header.total_length,
        "header_digest": pkg.header_digest.hex(),
        "segments": [
            {
                "id": entry.id,
                "name": segment_file_name(entry.id),
                "offset": entry.offset,
                "size": entry.size,
                "flags": entry.flags,
                "signature": signature_kind(entry.flags),
                "digest": digest.hex(),
            }
            for entry, _payload, digest in pkg.segments()
        ],
    }


def cmd_info(package: str, *, config: Optional[DigestConfig] = None, as_json: bool = False) -> bool:
    """Show the header and segment table of a package.

    Args:
        package: Package path.
        config: Digest configuration; only the algorithm (digest width) matters here.
        as_json: Print a JSON document instead of text.
    """
    pkg = _read_package(package, config or DigestConfig())
    if as_json:
        print(_json.dumps(_info_dict(pkg)))
        return True
    print(f"Package: {package}")
    print(f"  Package version: {pkg.package_version}")
    print(f"  Image version: {pkg.image_version:#x}")
    print(f"  Header length: {pkg.header.header_length}")
    print(f"  Total length: {pkg.header.total_length}")
    print(f"  Header digest: {pkg.header_digest.hex()}")
    print(f"  Segments: {len(pkg)}")
    for pos, (entry, _payload, digest) in enumerate(pkg.segments()):
        sig = signature_kind(entry.flags) or f"flags {entry.flags:#x}"
        print(f"  [{pos}] {_display_name(entry.id)}")
        print(f"      Offset: {entry.offset:#x}")
        print(f"      Size: {entry.size} bytes")
        print(f"      Hash digest: {digest.hex()} ({sig})")
    return True


def cmd_verify(
    package: str,
    *,
    config: Optional[DigestConfig] = None,
    as_json: bool = False,
    jobs: int = 1,
) -> bool:
    """Verify the header and segment digests of a package.

    Prints:
        One line per hash table entry, then "OK" or "FAIL".
    """
    config = config or DigestConfig()
    pkg = _read_package(package, config)
    report = pkg.verify(make_provider(config), max_workers=jobs)
    if as_json:
        print(_json.dumps({"path": package, **report.as_dict()}))
        return report.ok
    for result in report.entries:
        print(f"{'ok' if result.ok else 'MISMATCH'}\t{result.label}")
    print("OK" if report.ok else "FAIL")
    return report.ok


def cmd_extract(package: str, index: int, output: str, *, config: Optional[DigestConfig] = None) -> bool:
    """Write the payload of the segment at ``index`` to ``output``."""
    pkg = _read_package(package, config or DigestConfig())
    if index >= len(pkg):
        raise ValueError(f"Segment index {index} out of range ({len(pkg)} segment(s))")
    payload = pkg.store.at(index)
    with open(output, "wb") as fh:
        fh.write(payload)
    print(f"Extracted {_display_name(pkg.entries[index].id)} ({len(payload)} bytes) to {output}")
    return True


def _load_for_edit(package: str, config: DigestConfig, force: bool, jobs: int) -> Package:
    # Rebuilding recomputes every digest, so refuse to launder a damaged package.
    pkg = _read_package(package, config)
    report = pkg.verify(make_provider(config), max_workers=jobs)
    if not report.ok:
        bad = ", ".join(r.label for r in report.failures)
        if not force:
            raise RuntimeError(f"Verification failed ({bad}); pass --force to rewrite anyway.")
        print(f"Warning: rewriting package with digest mismatches: {bad}", file=sys.stderr)
    return pkg


def cmd_insert(
    package: str,
    segment: str,
    *,
    index: Optional[int] = None,
    segment_id: Optional[int] = None,
    flags: int = 0,
    config: Optional[DigestConfig] = None,
    force: bool = False,
    jobs: int = 1,
) -> bool:
    """Insert a file as a new segment and rewrite the package.

    Args:
        package: Package path, rewritten in place.
        segment: Payload file.
        index: Table position; defaults to appending.
        segment_id: Segment id; derived from the file name when omitted.
        flags: Opaque segment flags.
        force: Rewrite even when the existing digests do not verify.
    """
    config = config or DigestConfig()
    seg_path = Path(segment)
    sid = _segment_id_for(seg_path, segment_id)
    pkg = _load_for_edit(package, config, force, jobs)
    pos = len(pkg) if index is None else index
    new_pkg, raw = insert_segment(
        pkg, pos, sid, seg_path.read_bytes(), provider=make_provider(config), flags=flags, max_workers=jobs
    )
    _write_atomic(package, raw)
    print(f"Inserted {_display_name(sid)} at index {pos}; package now has {len(new_pkg)} segment(s)")
    return True


def cmd_remove(
    package: str,
    *,
    index: int = 0,
    config: Optional[DigestConfig] = None,
    force: bool = False,
    jobs: int = 1,
) -> bool:
    """Remove the segment at ``index`` (past the end removes the last) and rewrite the package."""
    config = config or DigestConfig()
    pkg = _load_for_edit(package, config, force, jobs)
    new_pkg, raw = remove_segment(pkg, index, provider=make_provider(config), max_workers=jobs)
    _write_atomic(package, raw)
    print(f"Removed segment; package now has {len(new_pkg)} segment(s)")
    return True


def _config_from_args(args: argparse.Namespace) -> DigestConfig:
    sources = [s for s in (args.key, args.key_file, args.key_passphrase) if s]
    if len(sources) > 1:
        raise ValueError("Use only one of --key, --key-file and --key-passphrase")
    key = None
    if args.key:
        key = key_from_hex(args.key)
    elif args.key_file:
        key = key_from_file(args.key_file)
    elif args.key_passphrase:
        if not args.key_salt:
            raise ValueError("--key-passphrase requires --key-salt")
        key = derive_key(args.key_passphrase, args.key_salt.encode("utf-8"))
    return DigestConfig(algorithm=args.algorithm, key=key)


def _add_digest_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--algorithm",
        choices=[DIGEST_SHA1, DIGEST_SHA256],
        default=DEFAULT_DIGEST_ALGORITHM,
        help="Digest algorithm (default: sha1; HMAC when a key is given)",
    )
    p.add_argument("--key", help="HMAC key as hex")
    p.add_argument("--key-file", help="File holding the raw HMAC key")
    p.add_argument("--key-passphrase", help="Derive the HMAC key from a passphrase (Argon2id)")
    p.add_argument("--key-salt", help="Salt for --key-passphrase (at least 8 bytes)")


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="fwpkg",
        description="Firmware update package tool",
        epilog="Without a key, digests are plain (unkeyed) hashes.",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_create = sub.add_parser("create", help="Create an empty package")
    ap_create.add_argument("output", help="Output package path")
    ap_create.add_argument("--image-version", type=_parse_int, default=0, help="Image version (default: 0)")
    _add_digest_args(ap_create)

    ap_build = sub.add_parser("build", help="Build a package from segment files")
    ap_build.add_argument("output", help="Output package path")
    ap_build.add_argument("inputs", nargs="+", help="Segment payload files, in table order")
    ap_build.add_argument(
        "--id",
        dest="ids",
        type=_parse_int,
        action="append",
        help="Segment id for each input, in order (repeat per input; default: derived from file name)",
    )
    ap_build.add_argument("--image-version", type=_parse_int, default=0, help="Image version (default: 0)")
    ap_build.add_argument("--jobs", "-j", type=int, default=1, help="Digest worker threads (default 1)")
    ap_build.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")
    _add_digest_args(ap_build)

    ap_info = sub.add_parser("info", help="Show package header and segment table")
    ap_info.add_argument("package", help="Package path")
    ap_info.add_argument("--json", action="store_true", help="Emit JSON")
    _add_digest_args(ap_info)

    ap_verify = sub.add_parser("verify", help="Verify package digests")
    ap_verify.add_argument("package", help="Package path")
    ap_verify.add_argument("--json", action="store_true", help="Emit JSON result summary")
    ap_verify.add_argument("--jobs", "-j", type=int, default=1, help="Digest worker threads (default 1)")
    _add_digest_args(ap_verify)

    ap_extract = sub.add_parser("extract", help="Extract one segment payload")
    ap_extract.add_argument("package", help="Package path")
    ap_extract.add_argument("output", help="Output file for the payload")
    ap_extract.add_argument("--index", "-n", type=_parse_int, default=0, help="Segment index (default: 0)")
    _add_digest_args(ap_extract)

    ap_insert = sub.add_parser("insert", help="Insert a segment and rewrite the package")
    ap_insert.add_argument("package", help="Package path")
    ap_insert.add_argument("segment", help="Segment payload file")
    ap_insert.add_argument("--index", "-n", type=_parse_int, help="Table position (default: append)")
    ap_insert.add_argument("--id", dest="segment_id", type=_parse_int, help="Segment id (default: derived from file name)")
    ap_insert.add_argument("--flags", type=_parse_int, default=0, help="Segment flags (default: 0)")
    ap_insert.add_argument("--force", action="store_true", help="Rewrite even if existing digests do not verify")
    ap_insert.add_argument("--jobs", "-j", type=int, default=1, help="Digest worker threads (default 1)")
    _add_digest_args(ap_insert)

    ap_remove = sub.add_parser("remove", help="Remove a segment and rewrite the package")
    ap_remove.add_argument("package", help="Package path")
    ap_remove.add_argument("--index", "-n", type=_parse_int, default=0, help="Segment index (default: 0)")
    ap_remove.add_argument("--force", action="store_true", help="Rewrite even if existing digests do not verify")
    ap_remove.add_argument("--jobs", "-j", type=int, default=1, help="Digest worker threads (default 1)")
    _add_digest_args(ap_remove)

    args = ap.parse_args(argv)
    try:
        config = _config_from_args(args)
        if args.cmd == "create":
            cmd_create(args.output, image_version=args.image_version, config=config)
        elif args.cmd == "build":
            cmd_build(
                args.output,
                args.inputs,
                ids=args.ids,
                image_version=args.image_version,
                config=config,
                jobs=args.jobs,
                quiet=args.quiet,
            )
        elif args.cmd == "info":
            cmd_info(args.package, config=config, as_json=args.json)
        elif args.cmd == "verify":
            ok = cmd_verify(args.package, config=config, as_json=args.json, jobs=args.jobs)
            sys.exit(0 if ok else 1)
        elif args.cmd == "extract":
            cmd_extract(args.package, args.index, args.output, config=config)
        elif args.cmd == "insert":
            cmd_insert(
                args.package,
                args.segment,
                index=args.index,
                segment_id=args.segment_id,
                flags=args.flags,
                config=config,
                force=args.force,
                jobs=args.jobs,
            )
        elif args.cmd == "remove":
            cmd_remove(args.package, index=args.index, config=config, force=args.force, jobs=args.jobs)
        else:
            raise RuntimeError("Unknown command")
    except (UnknownMagic, MalformedHeader) as e:
        print(f"Error: not a valid package: {e}", file=sys.stderr)
        sys.exit(2)
    except FwpkgError as e:
        print(f"Error: {e} (at offset {e.offset:#x})", file=sys.stderr)
        sys.exit(2)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (ValueError, RuntimeError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
