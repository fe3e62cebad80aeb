"""
kvnoid — passphrase-encrypted single-file key/value containers (.kvn).

Features:

- Versioned binary layout: plaintext category and nametag, AES-256-GCM
  encrypted value (and, in the two-field revision, an encrypted key).
- PBKDF2-HMAC-SHA256 key derivation; only salt, nonce and AAD are stored.
- CRC-32 over header and body plus strict zero-padding checks on read.
- In-memory obfuscation of decrypted secrets via SecretBuffer, with scoped
  accessors that zero plaintext on close.

Each error kind is its own exception (see kvnoid.errors) so callers can tell
a wrong passphrase from a corrupted or unsupported file.
"""

from .codec import DecodeResult, decode, encode, read_header, read_record, try_decode, write_record
from .records import Record, RecordDraft
from .secretbuf import SecretBuffer

__version__ = "0.1"

__all__ = [
    "DecodeResult",
    "Record",
    "RecordDraft",
    "SecretBuffer",
    "decode",
    "encode",
    "read_header",
    "read_record",
    "try_decode",
    "write_record",
]
