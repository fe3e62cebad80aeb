from __future__ import annotations

import re
from typing import BinaryIO

from .constants import KVN_MAGIC, MAGIC_SIZE, VERSION_TAG_SIZE
from .errors import FormatError


_VERSION_RE = re.compile(r"[0-9]{8}[0-9a-fA-F]{2}")


def version_bytes_to_string(version_bytes: bytes) -> str:
    """Render a 5-byte version tag as e.g. ``"202602167f"``.

    The first four bytes are decimal century, year, month and day; the last
    (revision) byte is rendered in hex.
    """
    if len(version_bytes) != VERSION_TAG_SIZE:
        raise ValueError(f"version tag must be {VERSION_TAG_SIZE} bytes")
    century, year, month, day, revision = version_bytes
    return f"{century:02d}{year:02d}{month:02d}{day:02d}{revision:02x}"


def version_string_to_bytes(version: str) -> bytes:
    if len(version) != VERSION_TAG_SIZE * 2:
        raise ValueError(f"version string must be {VERSION_TAG_SIZE * 2} characters: {version!r}")
    if not _VERSION_RE.fullmatch(version):
        raise ValueError(f"malformed version string: {version!r}")
    parts = [version[i : i + 2] for i in range(0, len(version), 2)]
    return bytes([int(p, 10) for p in parts[:4]] + [int(parts[4], 16)])


def pack_preamble(version: str) -> bytes:
    return KVN_MAGIC + version_string_to_bytes(version)


def read_preamble(f: BinaryIO) -> str:
    """Consume magic and version tag; return the version string."""
    magic = f.read(MAGIC_SIZE)
    if magic != KVN_MAGIC:
        raise FormatError("not a KVN file (bad magic)")
    raw = f.read(VERSION_TAG_SIZE)
    if len(raw) != VERSION_TAG_SIZE:
        raise FormatError("not a KVN file (truncated version tag)")
    return version_bytes_to_string(raw)
