#!/usr/bin/env python3
"""
xAPI CLI — hash, validate, sign and verify Statements offline.

Usage:
    python -m tools.xapi_cli hash <file>
    python -m tools.xapi_cli validate <statement.json> [--disable RULE ...]
    python -m tools.xapi_cli sign <statement.json> --key <private.pem> [--alg ALG] [--out body]
    python -m tools.xapi_cli verify <body> --key <public.pem> [--content-type TYPE] [--index N]

Commands:
    hash      — Print the attachment sha2 (SHA-256 hex) of a file
    validate  — Run the domain rules and list every violation
    sign      — Sign a Statement and write the multipart request body
    verify    — Check the signature of a Statement in a multipart body
"""

import argparse
import json
import os
import sys
from typing import List, Optional

# Ensure project root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pydantic import ValidationError

from xapi_core.codec import decode_multipart_statement
from xapi_core.crypto import private_key_from_pem, public_key_from_pem, sha256_hex
from xapi_core.errors import XapiError
from xapi_core.model import Statement
from xapi_core.multipart import build_body
from xapi_core.signing import signature_attachments, sign_statement, verify_statement
from xapi_core.validation import RULE_NAMES, ValidationConfig, validate


# ============================================================
# Helpers
# ============================================================

def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def _load_statement(path: str) -> Statement:
    with open(path, "r", encoding="utf-8") as f:
        return Statement.model_validate(json.load(f))


def _content_type_from_body(body: bytes) -> str:
    """Recover the multipart Content-Type from the first delimiter line."""
    first_line = body.split(b"\r\n", 1)[0]
    if not first_line.startswith(b"--") or len(first_line) <= 2:
        raise XapiError("Body does not start with a multipart delimiter")
    return f"multipart/mixed; boundary={first_line[2:].decode('ascii')}"


# ============================================================
# Commands
# ============================================================

def cmd_hash(args: argparse.Namespace) -> int:
    data = _read_bytes(args.file)
    print(f"{sha256_hex(data)}  {args.file} ({len(data)} bytes)")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    unknown = set(args.disable) - RULE_NAMES
    if unknown:
        print(f"  ERROR: Unknown rule(s): {', '.join(sorted(unknown))}")
        return 2
    statement = _load_statement(args.statement)
    violations = validate(statement, ValidationConfig().disable(*args.disable))
    if not violations:
        print("  ✓ Statement is valid")
        return 0
    print(f"  ✗ {len(violations)} violation(s):")
    for v in violations:
        print(f"    • {v}")
    return 1


def cmd_sign(args: argparse.Namespace) -> int:
    statement = _load_statement(args.statement)
    private_key = private_key_from_pem(_read_bytes(args.key))
    signed = sign_statement(statement, private_key, args.alg)
    encoded = build_body(signed)
    if args.out:
        with open(args.out, "wb") as f:
            f.write(encoded.body)
        print(f"  Wrote {len(encoded.body)} bytes to {args.out}")
    else:
        sys.stdout.buffer.write(encoded.body)
        sys.stdout.flush()
    print(f"Content-Type: {encoded.content_type}", file=sys.stderr)
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    body = _read_bytes(args.body)
    content_type = args.content_type or _content_type_from_body(body)
    statement = decode_multipart_statement(body, content_type)
    public_key = public_key_from_pem(_read_bytes(args.key))
    count = len(signature_attachments(statement))
    result = verify_statement(statement, public_key, index=args.index)
    print(f"  ✓ SIGNATURE VALID ({result.algorithm}, {count} signature(s) present)")
    return 0


# ============================================================
# Main
# ============================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="xAPI CLI — Statement hashing, validation and signing",
        prog="python -m tools.xapi_cli",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_hash = sub.add_parser("hash", help="SHA-256 (sha2) of a file")
    p_hash.add_argument("file")
    p_hash.set_defaults(func=cmd_hash)

    p_validate = sub.add_parser("validate", help="Check a Statement against the domain rules")
    p_validate.add_argument("statement", help="Path to a Statement JSON file")
    p_validate.add_argument(
        "--disable", action="append", default=[], metavar="RULE",
        help="Rule name to skip (repeatable)",
    )
    p_validate.set_defaults(func=cmd_validate)

    p_sign = sub.add_parser("sign", help="Sign a Statement, emit the multipart body")
    p_sign.add_argument("statement", help="Path to a Statement JSON file")
    p_sign.add_argument("--key", required=True, help="Private key (PEM)")
    p_sign.add_argument("--alg", default=None, help="JWS algorithm (default: chosen from the key type)")
    p_sign.add_argument("--out", help="Write the body here instead of stdout")
    p_sign.set_defaults(func=cmd_sign)

    p_verify = sub.add_parser("verify", help="Verify a signed Statement body")
    p_verify.add_argument("body", help="Path to a multipart/mixed body")
    p_verify.add_argument("--key", required=True, help="Public key (PEM)")
    p_verify.add_argument("--content-type", help="Content-Type (default: from the body)")
    p_verify.add_argument("--index", type=int, default=None, help="Signature index")
    p_verify.set_defaults(func=cmd_verify)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    for path in (getattr(args, name, None) for name in ("file", "statement", "body", "key")):
        if path and not os.path.exists(path):
            print(f"  ERROR: File not found: {path}")
            return 1
    try:
        return args.func(args)
    except (XapiError, ValidationError, ValueError, TypeError) as e:
        print(f"  ✗ {type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
