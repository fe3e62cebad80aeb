class KvnError(Exception):
    """Base class for KVN container errors."""


# Framing / dispatch
class FormatError(KvnError):
    """Input is not a KVN container (bad or missing magic)."""


class UnsupportedVersionError(KvnError):
    """Version tag prefix has no registered layout."""


class IntegrityError(KvnError):
    """Non-zero padding, out-of-bounds length or checksum mismatch."""


class TruncatedError(IntegrityError):
    pass


# Crypto
class AuthenticationError(KvnError):
    """AEAD tag verification failed: wrong passphrase or tampered ciphertext."""


# Encode-side
class SizeLimitError(KvnError):
    def __init__(self, field: str, size: int, limit: int):
        super().__init__(f"{field} is {size} bytes; limit is {limit}")
        self.field = field
        self.size = size
        self.limit = limit


class IncompleteRecordError(KvnError):
    pass


# Secret buffer
class UseAfterCloseError(KvnError):
    pass
