from __future__ import annotations

import os
import struct
import tempfile
import unittest

from fwpkg.config import DigestConfig, derive_key, key_from_file, key_from_hex, make_provider
from fwpkg.constants import (
    PACKAGE_MAGIC,
    HEADER_SIZE,
    SEGMENT_ENTRY_SIZE,
    segment_file_name,
    segment_id_from_name,
    signature_kind,
)
from fwpkg.digest import HmacDigest, PlainDigest, make_digest
from fwpkg.errors import MalformedHeader, SegmentOutOfBounds, TruncatedInput, UnknownMagic
from fwpkg.hashtable import EntryResult, VerificationReport, parse_hash_table, serialize_hash_table
from fwpkg.header import Header, parse_header, serialize_header
from fwpkg.segtable import SegmentEntry, parse_segment_table, serialize_segment_table
from fwpkg.store import SegmentStore, pack_payloads, slice_segment


def _sample_header(**overrides) -> Header:
    fields = dict(
        package_version=1,
        image_version=0x0000_4004_0000_0001,
        segment_count=2,
        header_length=HEADER_SIZE + 2 * SEGMENT_ENTRY_SIZE,
        total_length=HEADER_SIZE + 2 * SEGMENT_ENTRY_SIZE + 10,
    )
    fields.update(overrides)
    return Header(**fields)


class HeaderCodecTests(unittest.TestCase):
    def test_layout_is_big_endian(self):
        raw = serialize_header(_sample_header())
        self.assertEqual(len(raw), HEADER_SIZE)
        self.assertEqual(raw[:8], PACKAGE_MAGIC)
        self.assertEqual(raw[0x08:0x10], (1).to_bytes(8, "big"))
        self.assertEqual(raw[0x10:0x18], bytes.fromhex("0000400400000001"))
        self.assertEqual(raw[0x18:0x20], (2).to_bytes(8, "big"))

    def test_parse_reverses_serialize(self):
        header = _sample_header()
        self.assertEqual(parse_header(serialize_header(header) + b"trailing"), header)

    def test_short_input_is_malformed(self):
        raw = serialize_header(_sample_header())
        for cut in (0, 1, 8, HEADER_SIZE - 1):
            with self.assertRaises(MalformedHeader) as ctx:
                parse_header(raw[:cut])
            self.assertEqual(ctx.exception.offset, cut)

    def test_bad_magic(self):
        raw = bytearray(serialize_header(_sample_header()))
        raw[0:8] = b"NOTAPUP\x00"
        with self.assertRaises(UnknownMagic) as ctx:
            parse_header(bytes(raw))
        self.assertEqual(ctx.exception.magic, b"NOTAPUP\x00")
        self.assertEqual(ctx.exception.offset, 0)

    def test_no_cross_field_checks(self):
        # header_length > total_length is the reader's business
        header = _sample_header(header_length=500, total_length=10)
        self.assertEqual(parse_header(serialize_header(header)), header)


class SegmentTableCodecTests(unittest.TestCase):
    def test_roundtrip_preserves_order(self):
        entries = [
            SegmentEntry(id=0x200, offset=0x90, size=3, flags=2),
            SegmentEntry(id=0x100, offset=0x93, size=7, flags=0),
        ]
        table = serialize_segment_table(entries)
        self.assertEqual(len(table), 2 * SEGMENT_ENTRY_SIZE)
        self.assertEqual(table[:8], (0x200).to_bytes(8, "big"))
        data = b"\x00" * HEADER_SIZE + table
        self.assertEqual(parse_segment_table(data, 2), entries)

    def test_truncated_table(self):
        entries = [SegmentEntry(id=i, offset=0, size=0) for i in range(3)]
        data = b"\x00" * HEADER_SIZE + serialize_segment_table(entries)
        with self.assertRaises(TruncatedInput) as ctx:
            parse_segment_table(data[:-1], 3)
        self.assertEqual(ctx.exception.offset, HEADER_SIZE)
        self.assertEqual(ctx.exception.needed, 3 * SEGMENT_ENTRY_SIZE)
        self.assertEqual(ctx.exception.available, 3 * SEGMENT_ENTRY_SIZE - 1)

    def test_bounds_not_checked_here(self):
        entry = SegmentEntry(id=7, offset=2**63, size=2**63 - 1)
        data = b"\x00" * HEADER_SIZE + entry.pack()
        self.assertEqual(parse_segment_table(data, 1), [entry])

    def test_empty_table(self):
        self.assertEqual(parse_segment_table(b"\x00" * HEADER_SIZE, 0), [])
        self.assertEqual(serialize_segment_table([]), b"")


class SegmentStoreTests(unittest.TestCase):
    def test_slice_borrows_buffer(self):
        raw = bytes(range(32))
        view = slice_segment(SegmentEntry(id=1, offset=4, size=5), memoryview(raw))
        self.assertIsInstance(view, memoryview)
        self.assertIs(view.obj, raw)
        self.assertEqual(bytes(view), raw[4:9])

    def test_slice_past_buffer(self):
        with self.assertRaises(SegmentOutOfBounds) as ctx:
            slice_segment(SegmentEntry(id=9, offset=30, size=5), memoryview(bytes(32)))
        self.assertEqual(ctx.exception.segment_id, 9)

    def test_pack_payloads_is_contiguous(self):
        offsets, region = pack_payloads([b"abc", b"", b"defg"], 100)
        self.assertEqual(offsets, [100, 103, 103])
        self.assertEqual(region, b"abcdefg")

    def test_duplicate_ids_first_wins(self):
        store = SegmentStore([5, 6, 5], [b"first", b"x", b"second"])
        self.assertEqual(len(store), 2)
        self.assertEqual(store[5], b"first")
        self.assertEqual(store.at(2), b"second")
        self.assertEqual(list(store), [5, 6])
        self.assertIsNone(store.get(99))

    def test_equality_across_views_and_bytes(self):
        raw = b"xxhelloworld"
        borrowed = SegmentStore.from_buffer(
            [SegmentEntry(id=1, offset=2, size=5), SegmentEntry(id=2, offset=7, size=5)], memoryview(raw)
        )
        owned = SegmentStore.from_payloads([(1, b"hello"), (2, b"world")])
        self.assertEqual(borrowed, owned)
        self.assertEqual(hash(borrowed), hash(owned))
        self.assertNotEqual(owned, SegmentStore.from_payloads([(2, b"world"), (1, b"hello")]))


class HashTableCodecTests(unittest.TestCase):
    def test_parse_reads_count_plus_one(self):
        hashes = [bytes([i]) * 20 for i in range(3)]
        data = b"P" * 10 + serialize_hash_table(hashes)
        self.assertEqual(parse_hash_table(data, 2, start=10, digest_size=20), hashes)

    def test_truncated_hash_table(self):
        data = b"P" * 10 + b"\x00" * 39
        with self.assertRaises(TruncatedInput) as ctx:
            parse_hash_table(data, 1, start=10, digest_size=20)
        self.assertEqual(ctx.exception.offset, 10)
        self.assertEqual(ctx.exception.needed, 40)

    def test_report_summary(self):
        good = EntryResult(index=0, segment_id=None, expected=b"a", actual=b"a")
        bad = EntryResult(index=1, segment_id=0x201, expected=b"a", actual=b"b")
        report = VerificationReport(entries=(good, bad))
        self.assertFalse(report.ok)
        self.assertTrue(report.header_ok)
        self.assertEqual(report.failures, [bad])
        self.assertEqual(good.label, "header")
        self.assertEqual(bad.label, "segment 0x201")
        summary = report.as_dict()
        self.assertFalse(summary["ok"])
        self.assertEqual(summary["entries"][1]["segment_id"], 0x201)
        self.assertEqual(summary["entries"][1]["actual"], "62")
        self.assertTrue(VerificationReport().ok)


class DigestProviderTests(unittest.TestCase):
    def test_plain_sha1_vector(self):
        d = PlainDigest()
        self.assertEqual(d.digest_size, 20)
        self.assertEqual(d.digest(b"abc").hex(), "a9993e364706816aba3e25717850c26c9cd0d89d")

    def test_hmac_sha1_vector(self):
        d = HmacDigest(b"\x0b" * 20)
        self.assertEqual(d.digest(b"Hi There").hex(), "b617318655057264e28bc0b6fb378c8ef146be00")

    def test_memoryview_input(self):
        d = HmacDigest(b"k" * 16, "sha256")
        self.assertEqual(d.digest_size, 32)
        raw = b"..payload.."
        self.assertEqual(d.digest(memoryview(raw)[2:9]), d.digest(b"payload"))

    def test_make_digest(self):
        self.assertIsInstance(make_digest(None), PlainDigest)
        self.assertIsInstance(make_digest(b"key"), HmacDigest)
        with self.assertRaises(ValueError):
            make_digest(None, "md5")
        with self.assertRaises(ValueError):
            HmacDigest(b"")


class ConstantsTests(unittest.TestCase):
    def test_segment_names(self):
        self.assertEqual(segment_file_name(0x200), "ps3swu.self")
        self.assertIsNone(segment_file_name(0x999))
        self.assertEqual(segment_id_from_name("update_files.tar"), 0x300)
        self.assertIsNone(segment_id_from_name("random.bin"))

    def test_signature_kind(self):
        self.assertEqual(signature_kind(0), "HMAC-SHA1")
        self.assertEqual(signature_kind(2), "HMAC-SHA256")
        self.assertEqual(signature_kind((5 << 32) | 2), "HMAC-SHA256")
        self.assertIsNone(signature_kind(1))

    def test_struct_sizes(self):
        self.assertEqual(struct.calcsize(">8sQQQQQ"), HEADER_SIZE)
        self.assertEqual(struct.calcsize(">QQQQ"), SEGMENT_ENTRY_SIZE)


class ConfigTests(unittest.TestCase):
    def test_key_from_hex(self):
        self.assertEqual(key_from_hex(" 0b0b "), b"\x0b\x0b")
        for bad in ("", "zz", "abc"):
            with self.assertRaises(ValueError):
                key_from_hex(bad)

    def test_key_from_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "key.bin")
            with open(path, "wb") as fh:
                fh.write(b"\x00secret")
            self.assertEqual(key_from_file(path), b"\x00secret")
            open(path, "wb").close()
            with self.assertRaises(ValueError):
                key_from_file(path)

    def test_derive_key(self):
        a = derive_key("hunter2", b"salt-salt")
        self.assertEqual(len(a), 64)
        self.assertEqual(a, derive_key("hunter2", b"salt-salt"))
        self.assertNotEqual(a, derive_key("hunter2", b"salt-pepper"))
        with self.assertRaises(ValueError):
            derive_key("hunter2", b"short")

    def test_make_provider(self):
        self.assertIsInstance(make_provider(DigestConfig()), PlainDigest)
        provider = make_provider(DigestConfig(algorithm="sha256", key=b"k"))
        self.assertIsInstance(provider, HmacDigest)
        self.assertEqual(provider.digest_size, 32)


if __name__ == "__main__":
    unittest.main()
