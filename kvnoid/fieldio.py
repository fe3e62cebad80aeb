from __future__ import annotations

import struct
import zlib
from typing import BinaryIO

from .constants import ALIGNMENT, CHECKSUM_SIZE, PADDING_SIZE
from .errors import IntegrityError, TruncatedError


_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")


def alignment_padding(total_len: int, boundary: int = ALIGNMENT) -> int:
    return (boundary - total_len % boundary) % boundary


class FieldWriter:
    """Forward-only writer that accumulates a CRC-32 over checksummed chunks."""

    def __init__(self, f: BinaryIO):
        self.f = f
        self.crc = 0
        self.written = 0

    def write(self, data: bytes, *, checksum: bool = True) -> None:
        if checksum:
            self.crc = zlib.crc32(data, self.crc)
        self.f.write(data)
        self.written += len(data)

    def write_u32(self, value: int) -> None:
        self.write(_U32.pack(value))

    def write_u64(self, value: int) -> None:
        self.write(_U64.pack(value))

    def pad(self, n: int = PADDING_SIZE) -> None:
        self.write(b"\x00" * n, checksum=False)

    def field(self, data: bytes) -> None:
        self.write(data)
        self.pad()

    def write_checksum(self) -> None:
        self.write(_U64.pack(self.crc), checksum=False)

    def align(self) -> None:
        self.pad(alignment_padding(self.written))


class FieldReader:
    """Mirror of :class:`FieldWriter` for decoding.

    ``consumed`` starts at the preamble size so trailing alignment can be
    computed against the whole file length.
    """

    def __init__(self, f: BinaryIO, consumed: int = 0):
        self.f = f
        self.crc = 0
        self.consumed = consumed

    def read_exact(self, n: int, *, checksum: bool = True) -> bytes:
        b = self.f.read(n)
        if len(b) != n:
            raise TruncatedError(f"unexpected end of stream (wanted {n} bytes, got {len(b)})")
        if checksum:
            self.crc = zlib.crc32(b, self.crc)
        self.consumed += n
        return b

    def read_u32(self) -> int:
        return _U32.unpack(self.read_exact(_U32.size))[0]

    def read_u64(self) -> int:
        return _U64.unpack(self.read_exact(_U64.size))[0]

    def skip_reserved(self, n: int) -> None:
        # Contents are ignored but still covered by the checksum.
        self.read_exact(n)

    def expect_padding(self, what: str, n: int = PADDING_SIZE) -> None:
        pad = self.read_exact(n, checksum=False)
        if any(pad):
            raise IntegrityError(f"non-zero byte in padding after {what}")

    def field(self, n: int, what: str) -> bytes:
        data = self.read_exact(n)
        self.expect_padding(what)
        return data

    def verify_checksum(self) -> None:
        stored = _U64.unpack(self.read_exact(CHECKSUM_SIZE, checksum=False))[0]
        if stored != self.crc:
            raise IntegrityError(f"checksum mismatch (stored {stored:#010x}, computed {self.crc:#010x})")

    def read_alignment(self) -> None:
        # Older writers may have under-padded; accept a short tail but never non-zero bytes.
        want = alignment_padding(self.consumed)
        tail = self.f.read(want) if want else b""
        self.consumed += len(tail)
        if any(tail):
            raise IntegrityError("non-zero byte in trailing alignment padding")
