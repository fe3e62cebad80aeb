import uuid
from dataclasses import dataclass


# Magic and version tag
KVN_MAGIC = b"KVNF\x00\x00\x00"     # 7 bytes: "KVNF\0\0\0"
MAGIC_SIZE = 7
VERSION_TAG_SIZE = 5                 # century, year, month, day (decimal) + revision (hex)
VERSION_PREFIX_LEN = 8               # layout selector; the revision suffix is informational

# Layout version strings (prefix + revision)
VERSION_TWO_FIELD = "202602167f"
VERSION_CURRENT = "2026030101"
DEFAULT_VERSION = VERSION_CURRENT

# Framing
PADDING_SIZE = 4
ALIGNMENT = 4
CHECKSUM_SIZE = 8
RESERVED_A_SIZE = 24
RESERVED_B_SIZE = 52

# Key derivation / AEAD (AES-256-GCM, PBKDF2-HMAC-SHA256)
KDF_ITERATIONS = 65536
KEY_SIZE = 32
SALT_SIZE = 32
NONCE_SIZE = 12
AAD_SIZE = 16
TAG_SIZE = 16
KEY_BLOB_SIZE = SALT_SIZE + NONCE_SIZE + AAD_SIZE  # 60

# Secret buffer wrapping key (AES-128-GCM)
EPHEMERAL_KEY_SIZE = 16


@dataclass(frozen=True)
class SizeLimits:
    """Per-field plaintext byte limits enforced before encoding."""

    category: int = 256
    nametag: int = 512
    key: int = 4096
    value: int = 32_000_000


DEFAULT_LIMITS = SizeLimits()


def new_identifier() -> uuid.UUID:
    return uuid.uuid4()
