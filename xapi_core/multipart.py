"""
xapi_core/multipart.py — multipart/mixed envelope for Statements with
inline attachment content.

Build:  statements → JSON part (exact Content-Length) → one part per
        inline attachment, in document order → closing delimiter
Parse:  split on the boundary → headers via the stdlib email parser →
        check every X-Experience-API-Hash against the part's bytes

Byte layout of a built body:

    --<boundary>\\r\\n
    Content-Type: application/json\\r\\n
    Content-Length: <n>\\r\\n
    \\r\\n
    <json>\\r\\n
    --<boundary>\\r\\n
    Content-Type: <attachment.contentType>\\r\\n
    Content-Transfer-Encoding: binary\\r\\n
    X-Experience-API-Hash: <attachment.sha2>\\r\\n
    \\r\\n
    <raw bytes>\\r\\n
    --<boundary>--\\r\\n

Reference: https://github.com/adlnet/xAPI-Spec/blob/master/xAPI-Communication.md#1.5
"""

from __future__ import annotations

import logging
import uuid
from email.message import Message
from email.parser import BytesHeaderParser
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

from .codec import encode_statement, encode_statements, inline_attachments
from .crypto import sha256_hex
from .errors import EncodingFailure
from .model import Attachment, Statement


logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
MULTIPART_CONTENT_TYPE = "multipart/mixed"
HASH_HEADER = "X-Experience-API-Hash"

_CRLF = b"\r\n"


class EncodedBody(NamedTuple):
    """A request body and the Content-Type header that goes with it."""
    content_type: str
    body: bytes


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------

def _header_block(headers: Sequence[Tuple[str, str]]) -> bytes:
    """Part headers; values must be ASCII on a single line."""
    lines = []
    for name, value in headers:
        if "\r" in value or "\n" in value:
            raise EncodingFailure(f"{name} header value contains a line break: {value!r}")
        try:
            lines.append(f"{name}: {value}".encode("ascii") + _CRLF)
        except UnicodeEncodeError:
            raise EncodingFailure(f"{name} header value is not ASCII: {value!r}") from None
    return b"".join(lines) + _CRLF


def _unique_attachments(statements: Sequence[Statement]) -> List[Attachment]:
    """Inline attachments in document order, one per distinct sha2."""
    seen = set()
    unique = []
    for attachment in inline_attachments(statements):
        if attachment.sha2 in seen:
            continue
        seen.add(attachment.sha2)
        unique.append(attachment)
    return unique


def build_body(
    statements: Union[Statement, Sequence[Statement]],
    boundary: Optional[str] = None,
) -> EncodedBody:
    """Encode one Statement or a list for a POST/PUT request.

    Without any inline attachment content this is the plain JSON body.
    Identical attachment bytes referenced more than once are sent once;
    the LRS correlates parts to attachments by sha2.

    Raises:
        EncodingFailure: JSON serialization failed, or a caller-supplied
                         boundary occurs inside the content.
    """
    if isinstance(statements, Statement):
        items = [statements]
        json_bytes = encode_statement(statements)
    else:
        items = list(statements)
        json_bytes = encode_statements(items)

    attachments = _unique_attachments(items)
    if not attachments:
        logger.debug("No inline attachments; plain JSON body (%d bytes)", len(json_bytes))
        return EncodedBody(JSON_CONTENT_TYPE, json_bytes)

    payloads = [json_bytes] + [a.content for a in attachments]
    if boundary is None:
        boundary = uuid.uuid4().hex
        while any(boundary.encode("ascii") in p for p in payloads):
            boundary = uuid.uuid4().hex
    elif any(boundary.encode("ascii") in p for p in payloads):
        raise EncodingFailure(f"Boundary {boundary!r} occurs inside the content")

    delimiter = b"--" + boundary.encode("ascii")
    chunks = [
        delimiter, _CRLF,
        _header_block([
            ("Content-Type", JSON_CONTENT_TYPE),
            ("Content-Length", str(len(json_bytes))),
        ]),
        json_bytes, _CRLF,
    ]
    for attachment in attachments:
        chunks += [
            delimiter, _CRLF,
            _header_block([
                ("Content-Type", attachment.content_type),
                ("Content-Transfer-Encoding", "binary"),
                (HASH_HEADER, attachment.sha2),
            ]),
            attachment.content, _CRLF,
        ]
    chunks += [delimiter, b"--", _CRLF]

    body = b"".join(chunks)
    logger.debug(
        "Built multipart body: %d statement(s), %d attachment part(s), %d bytes",
        len(items), len(attachments), len(body),
    )
    return EncodedBody(f"{MULTIPART_CONTENT_TYPE}; boundary={boundary}", body)


# ---------------------------------------------------------------------------
# Parse
# ---------------------------------------------------------------------------

def boundary_of(content_type: str) -> str:
    """Extract the boundary parameter of a multipart/mixed Content-Type."""
    message = Message()
    message["Content-Type"] = content_type
    if message.get_content_type() != MULTIPART_CONTENT_TYPE:
        raise EncodingFailure(f"Not a multipart/mixed content type: {content_type!r}")
    boundary = message.get_param("boundary")
    if not boundary or not isinstance(boundary, str):
        raise EncodingFailure("multipart/mixed content type has no boundary")
    return boundary


def _split_parts(body: bytes, boundary: str) -> List[Tuple[Message, bytes]]:
    delimiter = _CRLF + b"--" + boundary.encode("ascii")
    # the first delimiter has no preceding CRLF
    sections = (_CRLF + body).split(delimiter)
    if len(sections) < 3 or not sections[-1].startswith(b"--"):
        raise EncodingFailure("Multipart body is not closed by its boundary")

    parser = BytesHeaderParser()
    parts = []
    for section in sections[1:-1]:
        if not section.startswith(_CRLF):
            raise EncodingFailure("Malformed multipart delimiter line")
        section = section[2:]
        if section.startswith(_CRLF):
            # part without headers
            head, content = b"", section[2:]
        else:
            head, separator, content = section.partition(_CRLF + _CRLF)
            if not separator:
                raise EncodingFailure("Multipart part has no header terminator")
        headers = parser.parsebytes(head + _CRLF + _CRLF)
        parts.append((headers, content))
    return parts


def parse_body(body: bytes, content_type: str) -> Tuple[bytes, Dict[str, bytes]]:
    """Split a multipart/mixed Statement body into JSON and attachments.

    Returns (json bytes, {sha2: raw bytes}).

    Raises:
        EncodingFailure: bad boundary framing, first part not JSON, an
                         attachment part without a hash header, or a hash
                         header that does not match the part's bytes.
    """
    boundary = boundary_of(content_type)
    parts = _split_parts(body, boundary)

    first_headers, json_bytes = parts[0]
    if first_headers.get_content_type() != JSON_CONTENT_TYPE:
        raise EncodingFailure("First multipart part must be application/json")

    attachments: Dict[str, bytes] = {}
    for headers, content in parts[1:]:
        declared = headers.get(HASH_HEADER)
        if not declared:
            raise EncodingFailure(f"Attachment part is missing {HASH_HEADER}")
        actual = sha256_hex(content)
        if declared.strip().lower() != actual:
            raise EncodingFailure(
                f"{HASH_HEADER} mismatch: header {declared}, content {actual}"
            )
        attachments[actual] = content

    logger.debug("Parsed multipart body: %d attachment part(s)", len(attachments))
    return json_bytes, attachments
