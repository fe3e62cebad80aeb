from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Callable, Dict


@dataclass(frozen=True)
class HashInfo:
    id: str
    output_length: int
    factory: Callable[[], "hashlib._Hash"]


HASHES: Dict[str, HashInfo] = {
    "SHA3-256": HashInfo("SHA3-256", 32, hashlib.sha3_256),
    "SHA3-512": HashInfo("SHA3-512", 64, hashlib.sha3_512),
}

DEFAULT_HASH = "SHA3-256"


def get_hash(algorithm: str) -> HashInfo:
    try:
        return HASHES[algorithm.upper()]
    except KeyError:
        raise ValueError(f"unknown hash algorithm: {algorithm}") from None


def digest(data: bytes, algorithm: str = DEFAULT_HASH) -> bytes:
    h = get_hash(algorithm).factory()
    h.update(data)
    return h.digest()


def file_digest(path: str, algorithm: str = DEFAULT_HASH, chunk_size: int = 1 << 20) -> bytes:
    # Fingerprint of the container bytes; not part of the format itself.
    h = get_hash(algorithm).factory()
    with open(path, "rb") as fh:
        for block in iter(lambda: fh.read(chunk_size), b""):
            h.update(block)
    return h.digest()
