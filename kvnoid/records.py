from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Optional, Union

from .constants import DEFAULT_VERSION, new_identifier
from .encryption import KeyMaterial, Passphrase
from .errors import IncompleteRecordError
from .layouts import LayoutCodec, layout_for_write
from .secretbuf import SecretBuffer, SecretLike


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def _as_secret(value: Union[SecretLike, SecretBuffer]) -> SecretBuffer:
    if isinstance(value, SecretBuffer):
        return value
    return SecretBuffer(value)


def secret_len(value: Union[SecretLike, SecretBuffer, None]) -> int:
    if value is None:
        return 0
    if isinstance(value, str):
        return len(value.encode("utf-8"))
    return len(value)


@dataclass(frozen=True)
class Record:
    """A fully populated KVN record; produced by decoding or by finalizing a draft."""

    identifier: uuid.UUID
    version: str
    date_created: int
    date_modified: int
    category: str
    nametag: str
    value: SecretBuffer = field(repr=False, compare=False)
    key_material: KeyMaterial = field(repr=False, compare=False)
    key: Optional[SecretBuffer] = field(default=None, repr=False, compare=False)

    @property
    def layout(self) -> LayoutCodec:
        return layout_for_write(self.version)

    def touched(self, when_ms: int, key_material: KeyMaterial) -> "Record":
        return replace(self, date_modified=when_ms, key_material=key_material)

    def edit(self) -> "RecordDraft":
        return RecordDraft(
            identifier=self.identifier,
            version=self.version,
            date_created=self.date_created,
            category=self.category,
            nametag=self.nametag,
            value=self.value,
            key=self.key,
            key_material=self.key_material,
        )

    def rekey(self, passphrase: Passphrase) -> "Record":
        """Copy of this record under fresh key material for ``passphrase``."""
        return replace(self, key_material=KeyMaterial.create(passphrase))


@dataclass
class RecordDraft:
    """Mutable, possibly incomplete record. ``finalize`` turns it into a :class:`Record`."""

    category: Optional[str] = None
    nametag: Optional[str] = None
    value: Union[SecretLike, SecretBuffer, None] = field(default=None, repr=False)
    key: Union[SecretLike, SecretBuffer, None] = field(default=None, repr=False)
    identifier: Optional[uuid.UUID] = None
    version: str = DEFAULT_VERSION
    date_created: Optional[int] = None
    key_material: Optional[KeyMaterial] = field(default=None, repr=False)

    def missing_fields(self) -> list:
        missing = [name for name in ("category", "nametag", "value") if getattr(self, name) is None]
        if layout_for_write(self.version).has_key_field and self.key is None:
            missing.append("key")
        return missing

    def validate(self) -> None:
        """Fail fast, before any key derivation, on anything that would stop a write."""
        layout = layout_for_write(self.version)
        missing = self.missing_fields()
        if missing:
            raise IncompleteRecordError(f"record is missing required field(s): {', '.join(missing)}")
        if self.key is not None and not layout.has_key_field:
            raise IncompleteRecordError(f"version {self.version} has no encrypted key field")

    def finalize(self, passphrase: Optional[Passphrase] = None) -> Record:
        self.validate()
        material = self.key_material
        if material is None:
            if passphrase is None:
                raise IncompleteRecordError("record has no key material and no passphrase was given")
            material = KeyMaterial.create(passphrase)
        created = self.date_created if self.date_created is not None else now_ms()
        return Record(
            identifier=self.identifier if self.identifier is not None else new_identifier(),
            version=self.version,
            date_created=created,
            date_modified=created,
            category=self.category,
            nametag=self.nametag,
            value=_as_secret(self.value),
            key=_as_secret(self.key) if self.key is not None else None,
            key_material=material,
        )
