"""
xapi_core/codec.py — Statement encode/decode.

Encoding: model → to_wire() → canonicalize() (wire order) → UTF-8 bytes.
Decoding: which shape a response body has (bare Statement, array of ids,
StatementResult page, About, multipart) is chosen by the calling
operation, never sniffed from the content.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Sequence
from uuid import UUID

from .canonical import canonicalize
from .errors import EncodingFailure, MalformedIdentifier
from .model import About, Attachment, Statement, StatementResult, SubStatement


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def encode_statement(statement: Statement) -> bytes:
    """Compact JSON of one Statement, keys in wire order."""
    return canonicalize(statement.to_wire())


def encode_statements(statements: Sequence[Statement]) -> bytes:
    """Compact JSON array of Statements."""
    return canonicalize([s.to_wire() for s in statements])


def comparison_bytes(statement: Statement) -> bytes:
    """Key-order independent form (RFC 8785) for structural comparison."""
    return canonicalize(statement.to_wire(), sort_keys=True)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def _load_json(body: bytes) -> Any:
    try:
        return json.loads(body)
    except (ValueError, TypeError) as e:
        raise EncodingFailure(f"Response body is not valid JSON: {e}") from None


def decode_statement(body: bytes) -> Statement:
    """A bare Statement object (GET statements?statementId=...)."""
    data = _load_json(body)
    if not isinstance(data, dict):
        raise EncodingFailure("Expected a JSON object for a Statement")
    return Statement.model_validate(data)


def decode_statements(body: bytes) -> List[Statement]:
    data = _load_json(body)
    if not isinstance(data, list):
        raise EncodingFailure("Expected a JSON array of Statements")
    return [Statement.model_validate(item) for item in data]


def decode_statement_ids(body: bytes) -> List[UUID]:
    """A JSON array of Statement ids (POST statements response)."""
    data = _load_json(body)
    if not isinstance(data, list):
        raise EncodingFailure("Expected a JSON array of Statement ids")
    ids = []
    for item in data:
        try:
            ids.append(UUID(str(item)))
        except ValueError:
            raise MalformedIdentifier(f"Not a Statement id: {item!r}") from None
    return ids


def decode_statement_result(body: bytes) -> StatementResult:
    """A page of Statements with an optional "more" continuation IRL."""
    data = _load_json(body)
    if not isinstance(data, dict):
        raise EncodingFailure("Expected a JSON object for a StatementResult")
    if data.get("more") == "":
        data = {k: v for k, v in data.items() if k != "more"}
    return StatementResult.model_validate(data)


def decode_about(body: bytes) -> About:
    data = _load_json(body)
    if not isinstance(data, dict):
        raise EncodingFailure("Expected a JSON object for About")
    return About.model_validate(data)


# ---------------------------------------------------------------------------
# Multipart responses (attachments=true)
# ---------------------------------------------------------------------------

def _restore_attachments(
    attachments: Any, parts: Mapping[str, bytes]
) -> Any:
    if not attachments:
        return attachments
    restored = []
    for attachment in attachments:
        if (
            attachment.content is None
            and attachment.file_url is None
            and attachment.sha2 in parts
        ):
            # the length the sender declared is kept as received
            attachment = attachment.with_changes(
                content=parts[attachment.sha2], length=attachment.length
            )
        restored.append(attachment)
    return tuple(restored)


def restore_content(statement: Statement, parts: Mapping[str, bytes]) -> Statement:
    """Re-attach inline bytes to a Statement by sha2 matching."""
    changes: Dict[str, Any] = {
        "attachments": _restore_attachments(statement.attachments, parts)
    }
    if isinstance(statement.object, SubStatement):
        sub = statement.object
        changes["object"] = sub.with_changes(
            attachments=_restore_attachments(sub.attachments, parts)
        )
    return statement.with_changes(**changes)


def decode_multipart_statement(body: bytes, content_type: str) -> Statement:
    from .multipart import parse_body

    json_bytes, parts = parse_body(body, content_type)
    return restore_content(decode_statement(json_bytes), parts)


def decode_multipart_statement_result(body: bytes, content_type: str) -> StatementResult:
    from .multipart import parse_body

    json_bytes, parts = parse_body(body, content_type)
    result = decode_statement_result(json_bytes)
    return result.with_changes(
        statements=tuple(restore_content(s, parts) for s in result.statements)
    )


def inline_attachments(statements: Sequence[Statement]) -> List[Attachment]:
    """Inline attachments across statements, in document order."""
    return [
        attachment
        for statement in statements
        for attachment in statement.iter_attachments()
        if attachment.is_inline
    ]
