"""
xapi_client — Thin LRS client over an abstract transport.

Exposes the Statement resource operations:
- post_statement():       POST one Statement, return its id
- post_statements():      POST a batch, return the ids
- get_statement():        GET one Statement (optionally with attachments)
- get_statements():       GET a filtered page of Statements
- get_more_statements():  follow a StatementResult "more" IRL
- get_about():            GET the LRS About resource

Architecture:
    Caller → XapiClient (URLs, headers, body shape) → Transport (HTTP)

The client never does networking itself.  A Transport is anything with
send(HttpRequest) -> HttpResponse; connection pooling, retries and TLS
belong there.  Request bodies come from xapi_core.build_body(), which
switches to multipart/mixed when a Statement carries inline attachment
content.

Reference: https://github.com/adlnet/xAPI-Spec/blob/master/xAPI-Communication.md
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union
from urllib.parse import urlencode, urljoin
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from xapi_core.canonical import canonical_text
from xapi_core.codec import (
    decode_about,
    decode_multipart_statement,
    decode_multipart_statement_result,
    decode_statement,
    decode_statement_ids,
    decode_statement_result,
)
from xapi_core.errors import XapiError
from xapi_core.model import About, Agent, Group, Statement, StatementResult, format_timestamp
from xapi_core.multipart import MULTIPART_CONTENT_TYPE, build_body


logger = logging.getLogger(__name__)

VERSION_HEADER = "X-Experience-API-Version"
DEFAULT_VERSION = "1.0.3"


# ---------------------------------------------------------------------------
# Transport collaborator
# ---------------------------------------------------------------------------

class HttpRequest(BaseModel):
    """One HTTP request, fully assembled."""

    model_config = ConfigDict(frozen=True)

    method: str
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[bytes] = None


class HttpResponse(BaseModel):
    """One HTTP response as returned by the transport."""

    model_config = ConfigDict(frozen=True)

    status: int
    headers: Dict[str, str] = Field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default


class Transport(Protocol):
    def send(self, request: HttpRequest) -> HttpResponse:
        ...


class TransportError(XapiError):
    """The LRS answered with a non-2xx status."""

    def __init__(self, status: int, body: bytes = b"") -> None:
        self.status = status
        self.body = body
        preview = body[:200].decode("utf-8", errors="replace")
        super().__init__(f"LRS returned HTTP {status}: {preview}")


# ---------------------------------------------------------------------------
# Query parameters
# ---------------------------------------------------------------------------

def _query_value(value: Any) -> str:
    if isinstance(value, (Agent, Group)):
        return canonical_text(value.to_wire())
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _query(params: Dict[str, Any]) -> str:
    pairs = [(k, _query_value(v)) for k, v in params.items() if v is not None]
    return urlencode(pairs)


# Python keyword → xAPI query parameter
_FILTERS = {
    "statement_id": "statementId",
    "voided_statement_id": "voidedStatementId",
    "agent": "agent",
    "verb": "verb",
    "activity": "activity",
    "registration": "registration",
    "related_activities": "related_activities",
    "related_agents": "related_agents",
    "since": "since",
    "until": "until",
    "limit": "limit",
    "format": "format",
    "attachments": "attachments",
    "ascending": "ascending",
}


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class XapiClient:
    """xAPI client for one LRS endpoint.

    Args:
        base_url:  LRS endpoint, e.g. "https://lrs.example.com/xapi/".
        transport: Sends one HttpRequest, returns one HttpResponse.
        version:   Value of the X-Experience-API-Version header.
        headers:   Extra headers added to every request (Authorization).
    """

    def __init__(
        self,
        base_url: str,
        transport: Transport,
        version: str = DEFAULT_VERSION,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.transport = transport
        self.version = version
        self.headers = dict(headers or {})

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _url(self, resource: str, params: Optional[Dict[str, Any]] = None) -> str:
        url = urljoin(self.base_url, resource)
        query = _query(params or {})
        return f"{url}?{query}" if query else url

    def _send(
        self,
        method: str,
        url: str,
        body: Optional[bytes] = None,
        content_type: Optional[str] = None,
    ) -> HttpResponse:
        headers = dict(self.headers)
        headers[VERSION_HEADER] = self.version
        if content_type is not None:
            headers["Content-Type"] = content_type
        request = HttpRequest(method=method, url=url, headers=headers, body=body)
        logger.debug("%s %s", method, url)
        response = self.transport.send(request)
        if not 200 <= response.status < 300:
            logger.warning("%s %s failed with HTTP %d", method, url, response.status)
            raise TransportError(response.status, response.body)
        return response

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def post_statement(self, statement: Statement) -> UUID:
        """POST one Statement; returns the id assigned or confirmed by the LRS."""
        encoded = build_body(statement)
        response = self._send(
            "POST", self._url("statements"), encoded.body, encoded.content_type
        )
        ids = decode_statement_ids(response.body)
        if not ids:
            raise TransportError(response.status, response.body)
        return ids[0]

    def post_statements(self, statements: Sequence[Statement]) -> List[UUID]:
        encoded = build_body(list(statements))
        response = self._send(
            "POST", self._url("statements"), encoded.body, encoded.content_type
        )
        return decode_statement_ids(response.body)

    def put_statement(self, statement: Statement) -> None:
        """PUT a Statement under its own id (which must be set)."""
        if statement.id is None:
            raise ValueError("put_statement requires a Statement with an id")
        encoded = build_body(statement)
        self._send(
            "PUT",
            self._url("statements", {"statementId": statement.id}),
            encoded.body,
            encoded.content_type,
        )

    def get_statement(
        self,
        statement_id: Union[UUID, str],
        attachments: bool = False,
        voided: bool = False,
    ) -> Statement:
        """GET one Statement by id.

        With attachments=True the LRS answers multipart/mixed and inline
        attachment content is restored onto the Statement by sha2.
        """
        key = "voidedStatementId" if voided else "statementId"
        params = {key: statement_id, "attachments": True if attachments else None}
        response = self._send("GET", self._url("statements", params))
        content_type = response.header("Content-Type", "application/json")
        if attachments and content_type.lower().startswith(MULTIPART_CONTENT_TYPE):
            return decode_multipart_statement(response.body, content_type)
        return decode_statement(response.body)

    def get_statements(self, **filters: Any) -> StatementResult:
        """GET a page of Statements.

        Filters use Python names (statement_id, agent, verb, activity,
        registration, related_activities, related_agents, since, until,
        limit, format, attachments, ascending).
        """
        unknown = set(filters) - set(_FILTERS)
        if unknown:
            raise TypeError(f"Unknown statement filter(s): {', '.join(sorted(unknown))}")
        params = {_FILTERS[k]: v for k, v in filters.items()}
        response = self._send("GET", self._url("statements", params))
        return self._statement_result(response)

    def get_more_statements(self, more: str) -> StatementResult:
        """Follow the opaque "more" IRL of a previous StatementResult.

        The IRL is resolved against the endpoint; a path relative to the
        LRS host ("/xapi/statements?more=...") keeps the host.  Pages of
        a query made with attachments=True arrive as multipart/mixed too.
        """
        response = self._send("GET", urljoin(self.base_url, more))
        return self._statement_result(response)

    @staticmethod
    def _statement_result(response: HttpResponse) -> StatementResult:
        content_type = response.header("Content-Type", "application/json")
        if content_type.lower().startswith(MULTIPART_CONTENT_TYPE):
            return decode_multipart_statement_result(response.body, content_type)
        return decode_statement_result(response.body)

    # ------------------------------------------------------------------
    # About
    # ------------------------------------------------------------------

    def get_about(self) -> About:
        response = self._send("GET", self._url("about"))
        return decode_about(response.body)
