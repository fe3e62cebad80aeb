from __future__ import annotations

import os
from typing import Union

from Cryptodome.Cipher import AES
from Cryptodome.Hash import SHA256
from Cryptodome.Protocol.KDF import PBKDF2

from .constants import (
    AAD_SIZE,
    KDF_ITERATIONS,
    KEY_BLOB_SIZE,
    KEY_SIZE,
    NONCE_SIZE,
    SALT_SIZE,
    TAG_SIZE,
)
from .errors import AuthenticationError, IntegrityError


Passphrase = Union[str, bytes, bytearray]


def _passphrase_bytes(passphrase: Passphrase) -> bytes:
    if isinstance(passphrase, str):
        return passphrase.encode("utf-8")
    return bytes(passphrase)


def derive_key(passphrase: Passphrase, salt: bytes) -> bytes:
    """Stretch a passphrase into a 256-bit AES key (PBKDF2-HMAC-SHA256)."""
    if len(salt) != SALT_SIZE:
        raise ValueError(f"salt must be {SALT_SIZE} bytes")
    return PBKDF2(
        _passphrase_bytes(passphrase),
        salt,
        dkLen=KEY_SIZE,
        count=KDF_ITERATIONS,
        hmac_hash_module=SHA256,
    )


class KeyMaterial:
    """Derived AES-256-GCM key plus the parameters persisted next to it.

    Only ``salt``, ``nonce`` and ``aad`` are ever written out (see
    :meth:`serialize`); the key itself is re-derived from the passphrase.
    """

    __slots__ = ("_key", "_wiped", "salt", "nonce", "aad")

    def __init__(self, key: bytes, salt: bytes, nonce: bytes, aad: bytes):
        if len(key) != KEY_SIZE:
            raise ValueError(f"key must be {KEY_SIZE} bytes")
        if len(salt) != SALT_SIZE or len(nonce) != NONCE_SIZE or len(aad) != AAD_SIZE:
            raise ValueError("salt/nonce/aad have unexpected sizes")
        self._key = bytearray(key)
        self._wiped = False
        self.salt = bytes(salt)
        self.nonce = bytes(nonce)
        self.aad = bytes(aad)

    @classmethod
    def create(cls, passphrase: Passphrase) -> "KeyMaterial":
        salt = os.urandom(SALT_SIZE)
        nonce = os.urandom(NONCE_SIZE)
        aad = os.urandom(AAD_SIZE)
        return cls(derive_key(passphrase, salt), salt, nonce, aad)

    @classmethod
    def from_serialized(cls, passphrase: Passphrase, blob: bytes) -> "KeyMaterial":
        # salt || nonce || aad
        if len(blob) != KEY_BLOB_SIZE:
            raise IntegrityError(f"key material blob must be {KEY_BLOB_SIZE} bytes, got {len(blob)}")
        salt = blob[:SALT_SIZE]
        nonce = blob[SALT_SIZE : SALT_SIZE + NONCE_SIZE]
        aad = blob[SALT_SIZE + NONCE_SIZE :]
        return cls(derive_key(passphrase, salt), salt, nonce, aad)

    def serialize(self) -> bytes:
        return self.salt + self.nonce + self.aad

    def with_nonce(self, nonce: bytes) -> "KeyMaterial":
        return KeyMaterial(self._key, self.salt, nonce, self.aad)

    def renew_nonce(self) -> "KeyMaterial":
        return self.with_nonce(os.urandom(NONCE_SIZE))

    @property
    def wiped(self) -> bool:
        return self._wiped

    def wipe(self) -> None:
        """Zero the key buffer this object owns.

        Best effort: the ``bytes`` returned by PBKDF2 during derivation, and any
        copies made inside the cipher library, are outside our control.
        """
        self._key[:] = bytes(len(self._key))
        self._wiped = True

    def _cipher(self):
        if self.wiped:
            raise ValueError("key material has been wiped")
        cipher = AES.new(self._key, AES.MODE_GCM, nonce=self.nonce, mac_len=TAG_SIZE)
        cipher.update(self.aad)
        return cipher

    def encrypt(self, plaintext) -> bytes:
        ciphertext, tag = self._cipher().encrypt_and_digest(plaintext)
        return ciphertext + tag

    def decrypt(self, payload: bytes) -> bytearray:
        """Return the plaintext in a mutable buffer so callers can zero it."""
        if len(payload) < TAG_SIZE:
            raise AuthenticationError("encrypted field shorter than its tag")
        ciphertext = payload[:-TAG_SIZE]
        tag = payload[-TAG_SIZE:]
        cipher = self._cipher()
        plaintext = bytearray(len(ciphertext))
        try:
            if ciphertext:
                cipher.decrypt_and_verify(ciphertext, tag, output=plaintext)
            else:
                cipher.decrypt_and_verify(b"", tag)
        except ValueError as exc:
            plaintext[:] = bytes(len(plaintext))
            raise AuthenticationError("wrong passphrase or tampered ciphertext") from exc
        return plaintext

    def __eq__(self, other):
        if not isinstance(other, KeyMaterial):
            return NotImplemented
        return (
            self._key == other._key
            and self.salt == other.salt
            and self.nonce == other.nonce
            and self.aad == other.aad
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"KeyMaterial(salt={self.salt.hex()[:8]}..., nonce={self.nonce.hex()})"
