"""
fwpkg — reader/builder for flat firmware update packages.

Layout (big endian): fixed header, segment table, concatenated segment
payloads, then a trailing hash table holding one digest over the header and
table followed by one digest per segment.

- Reader: ``fwpkg.reader.read_package`` parses bytes into an immutable
  ``Package`` whose segments borrow the input buffer.
- Builder: ``fwpkg.writer.build_package`` lays out payloads and returns the
  ``Package`` with its bytes.
- Verification: ``Package.verify`` returns a per-entry report; mismatches are
  data, never exceptions.
- Digests come from an injected provider (HMAC or plain SHA-1/SHA-256 via
  PyCryptodomex); key material is supplied by the caller.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "errors",
    "reader",
    "writer",
    "edit",
    "digest",
    "config",
]

# The command-line wrapper lives in fwpkg.cli (cmd_* functions take normal parameters).
