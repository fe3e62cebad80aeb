from __future__ import annotations

import argparse
import datetime as _dt
import getpass as _getpass
import logging
import sys
from typing import List, Optional

from kvnoid.codec import read_header, try_decode
from kvnoid.constants import VERSION_CURRENT, VERSION_TWO_FIELD
from kvnoid.errors import AuthenticationError, KvnError
from kvnoid.fileio import load, save
from kvnoid.hashutil import DEFAULT_HASH, HASHES, file_digest
from kvnoid.records import RecordDraft
from kvnoid.secretbuf import SecretBuffer


def _passphrase(given: Optional[str], prompt: str = "Passphrase: ") -> str:
    if given is not None:
        return given
    return _getpass.getpass(prompt)


def _fmt_ms(ms: int) -> str:
    return _dt.datetime.fromtimestamp(ms / 1000.0, tz=_dt.timezone.utc).isoformat(timespec="milliseconds")


def cmd_put(
    output: str,
    *,
    category: str,
    nametag: str,
    value: Optional[str] = None,
    value_file: Optional[str] = None,
    key: Optional[str] = None,
    two_field: bool = False,
    passphrase: Optional[str] = None,
) -> bool:
    """Create a KVN file.

    Args:
        output: Destination path (replaced atomically).
        category: Plaintext category.
        nametag: Plaintext nametag.
        value: Secret value given on the command line.
        value_file: Read the secret value from this file instead.
        key: Secondary secret; requires ``two_field``.
        two_field: Write the two-encrypted-field layout.
        passphrase: Passphrase; prompted for when omitted.
    """
    if value_file is not None:
        with open(value_file, "rb") as fh:
            raw = bytearray(fh.read())
        secret = SecretBuffer(raw, zero_source=True)
    elif value is not None:
        secret = SecretBuffer(value)
    else:
        raise ValueError("one of --value or --value-file is required")
    draft = RecordDraft(
        category=category,
        nametag=nametag,
        value=secret,
        key=key,
        version=VERSION_TWO_FIELD if two_field else VERSION_CURRENT,
    )
    record = save(output, draft, _passphrase(passphrase))
    print(f"Wrote {output} ({record.version}, id {record.identifier})")
    return True


def cmd_get(path: str, *, passphrase: Optional[str] = None, show_key: bool = False) -> bool:
    record = load(path, _passphrase(passphrase))
    out = sys.stdout.buffer
    if show_key and record.key is not None:
        with record.key.open() as acc:
            out.write(acc.get())
            out.write(b"\n")
    with record.value.open() as acc:
        out.write(acc.get())
        out.write(b"\n")
    out.flush()
    return True


def cmd_info(path: str, *, algorithm: str = DEFAULT_HASH) -> bool:
    """Show header fields; needs no passphrase."""
    with open(path, "rb") as fh:
        header = read_header(fh)
    print(f"File: {path}")
    print(f"  Version: {header.version}")
    if header.identifier is not None:
        print(f"  Identifier: {header.identifier}")
    print(f"  Created: {_fmt_ms(header.date_created)}")
    print(f"  Modified: {_fmt_ms(header.date_modified)}")
    print(f"  Category bytes: {header.category_len}")
    print(f"  Nametag bytes: {header.nametag_len}")
    if header.key_len is not None:
        print(f"  Encrypted key bytes: {header.key_len}")
    print(f"  Encrypted value bytes: {header.value_len}")
    print(f"  {algorithm}: {file_digest(path, algorithm).hex()}")
    return True


def cmd_verify(path: str, *, passphrase: Optional[str] = None) -> bool:
    with open(path, "rb") as fh:
        result = try_decode(fh, _passphrase(passphrase))
    if result.ok:
        print(f"OK: {path}")
        return True
    print(f"FAILED: {path}: {type(result.error).__name__}: {result.error}")
    return False


def cmd_hash(path: str, *, algorithm: str = DEFAULT_HASH) -> bool:
    print(f"{file_digest(path, algorithm).hex()}  {path}")
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="kvn",
        description="KVN passphrase-encrypted key/value file tool",
        epilog="Category and nametag are stored in plaintext; value and key are AES-256-GCM encrypted.",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_put = sub.add_parser("put", help="Create a KVN file")
    ap_put.add_argument("output", help="Output .kvn path")
    ap_put.add_argument("--category", required=True, help="Plaintext category")
    ap_put.add_argument("--nametag", required=True, help="Plaintext nametag")
    src = ap_put.add_mutually_exclusive_group(required=True)
    src.add_argument("--value", help="Secret value")
    src.add_argument("--value-file", help="Read secret value from file")
    ap_put.add_argument("--key", help="Secondary secret (two-field layout only)")
    ap_put.add_argument("--two-field", action="store_true", help=f"Write layout {VERSION_TWO_FIELD}")
    ap_put.add_argument("--passphrase", help="Passphrase (prompted if omitted)")

    ap_get = sub.add_parser("get", help="Decrypt and print the value")
    ap_get.add_argument("path", help="KVN file path")
    ap_get.add_argument("--passphrase", help="Passphrase (prompted if omitted)")
    ap_get.add_argument("--show-key", action="store_true", help="Also print the secondary key field")

    ap_info = sub.add_parser("info", help="Show header information")
    ap_info.add_argument("path", help="KVN file path")
    ap_info.add_argument("--algorithm", choices=sorted(HASHES), default=DEFAULT_HASH, help="Fingerprint hash")

    ap_verify = sub.add_parser("verify", help="Fully decode and check integrity")
    ap_verify.add_argument("path", help="KVN file path")
    ap_verify.add_argument("--passphrase", help="Passphrase (prompted if omitted)")

    ap_hash = sub.add_parser("hash", help="Hash a file")
    ap_hash.add_argument("path", help="File path")
    ap_hash.add_argument("--algorithm", choices=sorted(HASHES), default=DEFAULT_HASH)

    args = ap.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    try:
        if args.cmd == "put":
            cmd_put(
                args.output,
                category=args.category,
                nametag=args.nametag,
                value=args.value,
                value_file=args.value_file,
                key=args.key,
                two_field=args.two_field,
                passphrase=args.passphrase,
            )
        elif args.cmd == "get":
            cmd_get(args.path, passphrase=args.passphrase, show_key=args.show_key)
        elif args.cmd == "info":
            cmd_info(args.path, algorithm=args.algorithm)
        elif args.cmd == "verify":
            sys.exit(0 if cmd_verify(args.path, passphrase=args.passphrase) else 1)
        elif args.cmd == "hash":
            cmd_hash(args.path, algorithm=args.algorithm)
        else:
            raise RuntimeError("Unknown command")
    except AuthenticationError:
        print("Error: wrong passphrase or tampered file", file=sys.stderr)
        sys.exit(2)
    except (KvnError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
