from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import BinaryIO, Optional, Tuple, Union

from .constants import DEFAULT_LIMITS, SizeLimits, new_identifier
from .encryption import KeyMaterial, Passphrase
from .errors import IncompleteRecordError, IntegrityError, KvnError, SizeLimitError
from .fieldio import FieldReader
from .header import read_preamble
from .layouts import PREAMBLE_SIZE, EncodedFields, HeaderInfo, resolve_layout
from .records import Record, RecordDraft, now_ms, secret_len
from .secretbuf import SecretBuffer


logger = logging.getLogger("kvnoid")

RecordLike = Union[Record, RecordDraft]
Source = Union[bytes, bytearray, memoryview, BinaryIO]


def check_limits(record: RecordLike, limits: SizeLimits = DEFAULT_LIMITS) -> None:
    """Raise :class:`SizeLimitError` for the first field over its limit."""
    checks = (
        ("category", secret_len(record.category), limits.category),
        ("nametag", secret_len(record.nametag), limits.nametag),
        ("key", secret_len(record.key), limits.key),
        ("value", secret_len(record.value), limits.value),
    )
    for name, size, limit in checks:
        if size > limit:
            raise SizeLimitError(name, size, limit)


def _encrypt_fields(record: Record, when_ms: int) -> Tuple[EncodedFields, KeyMaterial]:
    # Every encrypted field of every write gets its own nonce.
    material = record.key_material.renew_nonce()
    with record.value.open() as plain:
        enc_value = material.encrypt(plain.get())
    enc_key = None
    if record.key is not None:
        key_material = material.renew_nonce()
        try:
            with record.key.open() as plain:
                enc_key = key_material.nonce + key_material.encrypt(plain.get())
        finally:
            key_material.wipe()
    fields = EncodedFields(
        version=record.version,
        identifier=record.identifier,
        date_created=record.date_created,
        date_modified=when_ms,
        category=record.category.encode("utf-8"),
        nametag=record.nametag.encode("utf-8"),
        key_blob=material.serialize(),
        enc_value=enc_value,
        enc_key=enc_key,
    )
    return fields, material


def write_record(
    out: BinaryIO,
    record: RecordLike,
    passphrase: Optional[Passphrase] = None,
    *,
    limits: SizeLimits = DEFAULT_LIMITS,
) -> Record:
    """Encode ``record`` to ``out`` in a single forward pass.

    Drafts are finalized first; ``passphrase`` is only used when the record
    carries no key material yet. Returns the record as written, i.e. with
    ``date_modified`` set to the write time. Limits are checked before any
    key derivation, encryption or output.
    """
    check_limits(record, limits)
    if isinstance(record, RecordDraft):
        record = record.finalize(passphrase)
    layout = record.layout
    if layout.has_key_field != (record.key is not None):
        raise IncompleteRecordError(f"key field presence does not match version {record.version}")

    when = now_ms()
    fields, material = _encrypt_fields(record, when)
    w = layout.write(out, fields)
    logger.debug("encoded record %s as %s (%d bytes)", record.identifier, record.version, w.written)
    return record.touched(when, material)


def encode(record: RecordLike, passphrase: Optional[Passphrase] = None, *, limits: SizeLimits = DEFAULT_LIMITS) -> bytes:
    buf = io.BytesIO()
    write_record(buf, record, passphrase, limits=limits)
    return buf.getvalue()


def _as_stream(source: Source) -> BinaryIO:
    if isinstance(source, (bytes, bytearray, memoryview)):
        return io.BytesIO(bytes(source))
    return source


def _start(f: BinaryIO, limits: SizeLimits):
    version = read_preamble(f)
    layout = resolve_layout(version)
    r = FieldReader(f, consumed=PREAMBLE_SIZE)
    header = layout.read_header(r, version, limits)
    return layout, r, header


def read_header(source: Source, *, limits: SizeLimits = DEFAULT_LIMITS) -> HeaderInfo:
    """Parse magic, version and header without a passphrase."""
    _layout, _r, header = _start(_as_stream(source), limits)
    return header


def read_record(f: BinaryIO, passphrase: Passphrase, *, limits: SizeLimits = DEFAULT_LIMITS) -> Record:
    layout, r, header = _start(f, limits)
    decoded = layout.read_body(r, header, passphrase)
    try:
        try:
            category = decoded.category.decode("utf-8")
            nametag = decoded.nametag.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise IntegrityError("category/nametag is not valid UTF-8") from exc
        value = SecretBuffer(decoded.value, zero_source=True)
        key = SecretBuffer(decoded.key, zero_source=True) if decoded.key is not None else None
    except BaseException:
        decoded.wipe()
        raise

    logger.debug("decoded %s record (%d value bytes)", header.version, len(value))
    return Record(
        identifier=header.identifier if header.identifier is not None else new_identifier(),
        version=header.version,
        date_created=header.date_created,
        date_modified=header.date_modified,
        category=category,
        nametag=nametag,
        value=value,
        key=key,
        key_material=decoded.key_material,
    )


def decode(source: Source, passphrase: Passphrase, *, limits: SizeLimits = DEFAULT_LIMITS) -> Record:
    return read_record(_as_stream(source), passphrase, limits=limits)


@dataclass(frozen=True)
class DecodeResult:
    record: Optional[Record] = None
    error: Optional[KvnError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Record:
        if self.error is not None:
            raise self.error
        return self.record


def try_decode(source: Source, passphrase: Passphrase, *, limits: SizeLimits = DEFAULT_LIMITS) -> DecodeResult:
    """Like :func:`decode` but reports failure as a value carrying the specific error."""
    try:
        return DecodeResult(record=decode(source, passphrase, limits=limits))
    except KvnError as exc:
        return DecodeResult(error=exc)
