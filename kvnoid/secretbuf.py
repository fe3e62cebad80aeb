"""In-memory obfuscation for secret values.

A :class:`SecretBuffer` keeps its value AES-GCM encrypted under a key that
only lives in this process. Plaintext is only materialised inside a
:class:`SecretAccessor`, which zeroes it on close::

    buf = SecretBuffer(bytearray(b"hunter2"), zero_source=True)
    with buf.open() as acc:
        use(acc.get())
"""

from __future__ import annotations

import os
from typing import Union

from Cryptodome.Cipher import AES

from .constants import EPHEMERAL_KEY_SIZE, NONCE_SIZE, TAG_SIZE
from .errors import UseAfterCloseError


SecretLike = Union[bytes, bytearray, memoryview, str]


def _zero(buf) -> None:
    buf[:] = bytes(len(buf))


class SecretAccessor:
    """Scoped view of a decrypted secret; zeroes the plaintext on close."""

    def __init__(self, value: bytearray):
        self._value = value
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self) -> bytearray:
        if self._closed:
            raise UseAfterCloseError("accessor is closed and its value can no longer be accessed")
        return self._value

    def text(self) -> str:
        """Decode as UTF-8. The returned ``str`` is an immutable copy that close() cannot zero."""
        return self.get().decode("utf-8")

    def close(self) -> None:
        _zero(self._value)
        self._closed = True

    def __enter__(self) -> "SecretAccessor":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class SecretBuffer:
    def __init__(self, initial: SecretLike = b"", zero_source: bool = False):
        self._key = os.urandom(EPHEMERAL_KEY_SIZE)
        self._blob = b""
        self._size = 0
        self.set(initial, zero_source=zero_source)

    def set(self, data: SecretLike, zero_source: bool = False) -> "SecretBuffer":
        """Replace the stored value.

        With ``zero_source`` the caller's buffer is overwritten with zeros
        before returning, so it must be mutable (``bytearray``/``memoryview``).
        """
        if isinstance(data, str):
            if zero_source:
                raise TypeError("zero_source requires a mutable buffer, not str")
            data = data.encode("utf-8")
        elif zero_source:
            with memoryview(data) as view:
                writable = not view.readonly and view.format == "B"
            if not writable:
                raise TypeError("zero_source requires a writable byte buffer")
        nonce = os.urandom(NONCE_SIZE)
        cipher = AES.new(self._key, AES.MODE_GCM, nonce=nonce, mac_len=TAG_SIZE)
        ciphertext, tag = cipher.encrypt_and_digest(data)
        self._blob = nonce + ciphertext + tag
        self._size = len(ciphertext)
        if zero_source:
            _zero(data)
        return self

    def open(self) -> SecretAccessor:
        nonce = self._blob[:NONCE_SIZE]
        ciphertext = self._blob[NONCE_SIZE:-TAG_SIZE]
        tag = self._blob[-TAG_SIZE:]
        cipher = AES.new(self._key, AES.MODE_GCM, nonce=nonce, mac_len=TAG_SIZE)
        plaintext = bytearray(len(ciphertext))
        if ciphertext:
            cipher.decrypt_and_verify(ciphertext, tag, output=plaintext)
        else:
            cipher.verify(tag)
        return SecretAccessor(plaintext)

    def __len__(self) -> int:
        return self._size

    def __repr__(self) -> str:
        return f"SecretBuffer(<{self._size} bytes>)"
