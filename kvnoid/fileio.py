from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from .codec import RecordLike, check_limits, read_record, write_record
from .constants import DEFAULT_LIMITS, SizeLimits
from .encryption import Passphrase
from .records import Record


PathLike = Union[str, Path]


def save(
    path: PathLike,
    record: RecordLike,
    passphrase: Optional[Passphrase] = None,
    *,
    limits: SizeLimits = DEFAULT_LIMITS,
) -> Record:
    """Write ``record`` to ``path`` atomically.

    The container is written to a temporary file next to ``path``, fsynced
    and then renamed over the destination, so a failed encode never leaves a
    partial file behind. No locking is performed.
    """
    check_limits(record, limits)
    dest = Path(path)
    fd, tmp_name = tempfile.mkstemp(prefix=".kvn-", suffix=".tmp", dir=str(dest.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as fh:
            written = write_record(fh, record, passphrase, limits=limits)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(str(tmp_path), str(dest))
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return written


def load(path: PathLike, passphrase: Passphrase, *, limits: SizeLimits = DEFAULT_LIMITS) -> Record:
    with open(path, "rb") as fh:
        return read_record(fh, passphrase, limits=limits)
