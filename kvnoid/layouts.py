"""Per-version byte layouts of the KVN container.

Each layout is identified by the 8-character date prefix of its version tag;
the revision suffix is informational. All integers are little-endian.

Layout ``20260301`` (current)::

    magic[7] version[5]
    identifier u64 hi, u64 lo | created_ms u64 | modified_ms u64 | reserved[24]
    len_category u32 | len_nametag u32 | len_key_blob u32 | len_value u32
    reserved[52] | pad[4]
    category pad[4] nametag pad[4] key_blob pad[4] enc_value pad[4]
    crc32 u64 | zero fill to a multiple of 4

The checksum covers everything from the identifier through ``enc_value``
except the padding gaps.

Layout ``20260216`` (two encrypted fields, no identifier or checksum)::

    magic[7] version[5]
    created_ms u64 | modified_ms u64 | reserved[24]
    len_category | len_nametag | len_key_blob | len_enc_key | len_value (u32 each)
    reserved[52] | pad[4]
    category pad nametag pad key_blob pad enc_key pad enc_value pad
    zero fill to a multiple of 4

``enc_key`` carries its own nonce: ``nonce[12] || ciphertext || tag``.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

from .constants import (
    DEFAULT_LIMITS,
    KEY_BLOB_SIZE,
    MAGIC_SIZE,
    NONCE_SIZE,
    PADDING_SIZE,
    RESERVED_A_SIZE,
    RESERVED_B_SIZE,
    TAG_SIZE,
    VERSION_PREFIX_LEN,
    VERSION_TAG_SIZE,
    SizeLimits,
)
from .encryption import KeyMaterial, Passphrase
from .errors import IntegrityError, UnsupportedVersionError
from .fieldio import FieldReader, FieldWriter
from .header import pack_preamble, version_string_to_bytes


logger = logging.getLogger("kvnoid")

PREAMBLE_SIZE = MAGIC_SIZE + VERSION_TAG_SIZE
_U64_MASK = (1 << 64) - 1


@dataclass
class HeaderInfo:
    version: str
    identifier: Optional[uuid.UUID]
    date_created: int
    date_modified: int
    category_len: int
    nametag_len: int
    key_blob_len: int
    value_len: int
    key_len: Optional[int] = None


@dataclass
class EncodedFields:
    """Everything a layout writes, with ciphertexts already computed."""

    version: str
    identifier: uuid.UUID
    date_created: int
    date_modified: int
    category: bytes
    nametag: bytes
    key_blob: bytes
    enc_value: bytes
    enc_key: Optional[bytes] = None


@dataclass
class DecodedFields:
    header: HeaderInfo
    category: bytes
    nametag: bytes
    key_material: KeyMaterial
    value: bytearray
    key: Optional[bytearray] = None

    def wipe(self) -> None:
        self.value[:] = bytes(len(self.value))
        if self.key is not None:
            self.key[:] = bytes(len(self.key))
        self.key_material.wipe()


def _check_len(what: str, n: int, lo: int, hi: int) -> None:
    if n < lo or n > hi:
        raise IntegrityError(f"declared {what} length {n} outside [{lo}, {hi}]")


def _pack_identifier(w: FieldWriter, identifier: uuid.UUID) -> None:
    w.write_u64(identifier.int >> 64)
    w.write_u64(identifier.int & _U64_MASK)


def _read_identifier(r: FieldReader) -> uuid.UUID:
    hi = r.read_u64()
    lo = r.read_u64()
    return uuid.UUID(int=(hi << 64) | lo)


def _decrypt_or_wipe(material: KeyMaterial, payload: bytes) -> bytearray:
    try:
        return material.decrypt(payload)
    except BaseException:
        material.wipe()
        raise


class LayoutCodec:
    has_key_field: bool = False
    checksummed: bool = False

    def write(self, f, fields: EncodedFields) -> FieldWriter:
        w = FieldWriter(f)
        w.write(pack_preamble(fields.version), checksum=False)
        self._write_header(w, fields)
        w.pad()
        self._write_body(w, fields)
        if self.checksummed:
            w.write_checksum()
        w.align()
        return w

    def read_header(self, r: FieldReader, version: str, limits: SizeLimits = DEFAULT_LIMITS) -> HeaderInfo:
        header = self._read_header(r, version)
        _check_len("category", header.category_len, 0, limits.category)
        _check_len("nametag", header.nametag_len, 0, limits.nametag)
        _check_len("key material", header.key_blob_len, KEY_BLOB_SIZE, KEY_BLOB_SIZE)
        _check_len("encrypted value", header.value_len, TAG_SIZE, limits.value + TAG_SIZE)
        if header.key_len is not None:
            _check_len("encrypted key", header.key_len, NONCE_SIZE + TAG_SIZE, limits.key + NONCE_SIZE + TAG_SIZE)
        r.expect_padding("header")
        return header

    def read_body(self, r: FieldReader, header: HeaderInfo, passphrase: Passphrase) -> DecodedFields:
        raise NotImplementedError

    def _write_header(self, w: FieldWriter, fields: EncodedFields) -> None:
        raise NotImplementedError

    def _read_header(self, r: FieldReader, version: str) -> HeaderInfo:
        raise NotImplementedError

    def _write_body(self, w: FieldWriter, fields: EncodedFields) -> None:
        raise NotImplementedError


class ChecksummedLayout(LayoutCodec):
    checksummed = True

    def _write_header(self, w: FieldWriter, fields: EncodedFields) -> None:
        _pack_identifier(w, fields.identifier)
        w.write_u64(fields.date_created)
        w.write_u64(fields.date_modified)
        w.write(b"\x00" * RESERVED_A_SIZE)
        w.write_u32(len(fields.category))
        w.write_u32(len(fields.nametag))
        w.write_u32(len(fields.key_blob))
        w.write_u32(len(fields.enc_value))
        w.write(b"\x00" * RESERVED_B_SIZE)

    def _read_header(self, r: FieldReader, version: str) -> HeaderInfo:
        identifier = _read_identifier(r)
        created = r.read_u64()
        modified = r.read_u64()
        r.skip_reserved(RESERVED_A_SIZE)
        lens = [r.read_u32() for _ in range(4)]
        r.skip_reserved(RESERVED_B_SIZE)
        return HeaderInfo(version, identifier, created, modified, *lens)

    def _write_body(self, w: FieldWriter, fields: EncodedFields) -> None:
        w.field(fields.category)
        w.field(fields.nametag)
        w.field(fields.key_blob)
        w.field(fields.enc_value)

    def read_body(self, r: FieldReader, header: HeaderInfo, passphrase: Passphrase) -> DecodedFields:
        category = r.field(header.category_len, "category")
        nametag = r.field(header.nametag_len, "nametag")
        key_blob = r.field(header.key_blob_len, "key material")
        enc_value = r.field(header.value_len, "encrypted value")

        material = KeyMaterial.from_serialized(passphrase, key_blob)
        value = _decrypt_or_wipe(material, enc_value)
        decoded = DecodedFields(header, category, nametag, material, value)
        try:
            r.verify_checksum()
            r.read_alignment()
        except BaseException:
            decoded.wipe()
            raise
        return decoded


class TwoFieldLayout(LayoutCodec):
    has_key_field = True

    def _write_header(self, w: FieldWriter, fields: EncodedFields) -> None:
        if fields.enc_key is None:
            raise ValueError("two-field layout requires an encrypted key field")
        w.write_u64(fields.date_created)
        w.write_u64(fields.date_modified)
        w.write(b"\x00" * RESERVED_A_SIZE)
        w.write_u32(len(fields.category))
        w.write_u32(len(fields.nametag))
        w.write_u32(len(fields.key_blob))
        w.write_u32(len(fields.enc_key))
        w.write_u32(len(fields.enc_value))
        w.write(b"\x00" * RESERVED_B_SIZE)

    def _read_header(self, r: FieldReader, version: str) -> HeaderInfo:
        created = r.read_u64()
        modified = r.read_u64()
        r.skip_reserved(RESERVED_A_SIZE)
        category_len, nametag_len, key_blob_len, key_len, value_len = (r.read_u32() for _ in range(5))
        r.skip_reserved(RESERVED_B_SIZE)
        return HeaderInfo(
            version,
            None,
            created,
            modified,
            category_len,
            nametag_len,
            key_blob_len,
            value_len,
            key_len=key_len,
        )

    def _write_body(self, w: FieldWriter, fields: EncodedFields) -> None:
        w.field(fields.category)
        w.field(fields.nametag)
        w.field(fields.key_blob)
        w.field(fields.enc_key)
        w.field(fields.enc_value)

    def read_body(self, r: FieldReader, header: HeaderInfo, passphrase: Passphrase) -> DecodedFields:
        category = r.field(header.category_len, "category")
        nametag = r.field(header.nametag_len, "nametag")
        key_blob = r.field(header.key_blob_len, "key material")
        enc_key = r.field(header.key_len, "encrypted key")
        enc_value = r.field(header.value_len, "encrypted value")

        material = KeyMaterial.from_serialized(passphrase, key_blob)
        key_material = material.with_nonce(enc_key[:NONCE_SIZE])
        try:
            key = key_material.decrypt(enc_key[NONCE_SIZE:])
        except BaseException:
            material.wipe()
            raise
        finally:
            key_material.wipe()
        try:
            value = _decrypt_or_wipe(material, enc_value)
        except BaseException:
            key[:] = bytes(len(key))
            raise
        decoded = DecodedFields(header, category, nametag, material, value, key)
        try:
            r.read_alignment()
        except BaseException:
            decoded.wipe()
            raise
        return decoded


class Layout(enum.Enum):
    """Closed set of supported layouts, keyed by version prefix."""

    TWO_FIELD = "20260216"
    CURRENT = "20260301"

    @property
    def codec(self) -> LayoutCodec:
        return _CODECS[self]


_CODECS: Mapping[Layout, LayoutCodec] = MappingProxyType(
    {
        Layout.TWO_FIELD: TwoFieldLayout(),
        Layout.CURRENT: ChecksummedLayout(),
    }
)


def resolve_layout(version: str) -> LayoutCodec:
    prefix = version[:VERSION_PREFIX_LEN]
    try:
        layout = Layout(prefix)
    except ValueError:
        raise UnsupportedVersionError(f"unsupported KVN version {version!r}") from None
    logger.debug("version %s dispatched to layout %s", version, layout.name)
    return layout.codec


def layout_for_write(version: str) -> LayoutCodec:
    """Like :func:`resolve_layout`, but the whole tag must also be writable."""
    try:
        version_string_to_bytes(version)
    except ValueError as exc:
        raise UnsupportedVersionError(str(exc)) from None
    return resolve_layout(version)


# Byte offsets within the current layout, relative to the start of the file.
CURRENT_HEADER_SIZE = PREAMBLE_SIZE + 16 + 8 + 8 + RESERVED_A_SIZE + 4 * 4 + RESERVED_B_SIZE + PADDING_SIZE
TWO_FIELD_HEADER_SIZE = PREAMBLE_SIZE + 8 + 8 + RESERVED_A_SIZE + 5 * 4 + RESERVED_B_SIZE + PADDING_SIZE
