"""
test/test_client.py — XapiClient against a recording transport

Run: pytest test/test_client.py -v
  or: python test/test_client.py
"""

import json
import os
import sys
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlsplit
from uuid import UUID

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from xapi_core import Activity, Agent, Attachment, Statement, build_body
from xapi_core import verbs
from xapi_client import HttpRequest, HttpResponse, TransportError, XapiClient


STATEMENT_ID = "4b9175ba-367d-4b93-990b-34d4180039f1"


# ==================================================================
# Helpers
# ==================================================================

class RecordingTransport:
    """Returns queued responses and keeps every request sent."""

    def __init__(self, *responses: HttpResponse):
        self.responses = list(responses)
        self.requests = []

    def send(self, request: HttpRequest) -> HttpResponse:
        self.requests.append(request)
        return self.responses.pop(0)


def json_response(payload, status=200) -> HttpResponse:
    return HttpResponse(
        status=status,
        headers={"Content-Type": "application/json"},
        body=json.dumps(payload).encode("utf-8"),
    )


def multipart_result_response(statements, more) -> HttpResponse:
    """A StatementResult page as an LRS sends it for attachments=true."""
    result = {"statements": [s.to_wire() for s in statements], "more": more}
    chunks = [
        b"--b0undary\r\nContent-Type: application/json\r\n\r\n",
        json.dumps(result).encode("utf-8"), b"\r\n",
    ]
    for s in statements:
        for a in s.iter_attachments():
            chunks += [
                b"--b0undary\r\n",
                f"Content-Type: {a.content_type}\r\n".encode("ascii"),
                b"Content-Transfer-Encoding: binary\r\n",
                f"X-Experience-API-Hash: {a.sha2}\r\n\r\n".encode("ascii"),
                a.content, b"\r\n",
            ]
    chunks.append(b"--b0undary--\r\n")
    return HttpResponse(
        status=200,
        headers={"Content-Type": "multipart/mixed; boundary=b0undary"},
        body=b"".join(chunks),
    )


def make_statement(**overrides) -> Statement:
    fields = {
        "actor": Agent(name="A N Other", mbox="mailto:another@example.com"),
        "verb": verbs.ATTEMPTED,
        "object": Activity(id="https://example.com/activity/simplestatement"),
    }
    fields.update(overrides)
    return Statement(**fields)


def text_attachment() -> Attachment:
    return Attachment(
        usage_type="http://adlnet.gov/expapi/attachments/text",
        display={"en": "text attachment"},
        content_type="text/plain",
        content="Simple attachment",
    )


def query_of(request: HttpRequest):
    return {k: v[0] for k, v in parse_qs(urlsplit(request.url).query).items()}


def make_client(*responses, **kwargs):
    transport = RecordingTransport(*responses)
    client = XapiClient("https://lrs.example.com/xapi", transport, **kwargs)
    return client, transport


# ==================================================================
# Tests
# ==================================================================

def test_post_statement_json():
    client, transport = make_client(
        json_response([STATEMENT_ID]), headers={"Authorization": "Basic abc"}
    )
    statement_id = client.post_statement(make_statement())

    assert statement_id == UUID(STATEMENT_ID)
    request = transport.requests[0]
    assert request.method == "POST"
    assert request.url == "https://lrs.example.com/xapi/statements"
    assert request.headers["X-Experience-API-Version"] == "1.0.3"
    assert request.headers["Authorization"] == "Basic abc"
    assert request.headers["Content-Type"] == "application/json"
    assert json.loads(request.body)["verb"]["id"] == verbs.ATTEMPTED.id
    print("  PASS: test_post_statement_json")


def test_post_statements_multipart():
    client, transport = make_client(json_response([STATEMENT_ID, STATEMENT_ID]))
    ids = client.post_statements([
        make_statement(attachments=[text_attachment()]),
        make_statement(),
    ])
    assert len(ids) == 2
    request = transport.requests[0]
    assert request.headers["Content-Type"].startswith("multipart/mixed; boundary=")
    assert b"Simple attachment" in request.body
    print("  PASS: test_post_statements_multipart")


def test_put_statement_uses_id_parameter():
    client, transport = make_client(HttpResponse(status=204))
    client.put_statement(make_statement(id=STATEMENT_ID))
    request = transport.requests[0]
    assert request.method == "PUT"
    assert query_of(request) == {"statementId": STATEMENT_ID}

    try:
        client.put_statement(make_statement())
    except ValueError:
        pass
    else:
        raise AssertionError("put_statement without an id should fail")
    print("  PASS: test_put_statement_uses_id_parameter")


def test_get_statement_and_voided():
    wire = make_statement(id=STATEMENT_ID).to_wire()
    client, transport = make_client(json_response(wire), json_response(wire))

    s = client.get_statement(STATEMENT_ID)
    assert s.id == UUID(STATEMENT_ID)
    assert query_of(transport.requests[0]) == {"statementId": STATEMENT_ID}

    client.get_statement(UUID(STATEMENT_ID), voided=True)
    assert query_of(transport.requests[1]) == {"voidedStatementId": STATEMENT_ID}
    print("  PASS: test_get_statement_and_voided")


def test_get_statement_with_attachments():
    stored = make_statement(id=STATEMENT_ID, attachments=[text_attachment()])
    encoded = build_body(stored)
    client, transport = make_client(HttpResponse(
        status=200, headers={"content-type": encoded.content_type}, body=encoded.body
    ))

    s = client.get_statement(STATEMENT_ID, attachments=True)
    assert query_of(transport.requests[0]) == {
        "statementId": STATEMENT_ID, "attachments": "true",
    }
    assert s.attachments[0].content == b"Simple attachment"
    print("  PASS: test_get_statement_with_attachments")


def test_get_statements_filters_and_paging():
    page1 = {
        "statements": [make_statement(id=STATEMENT_ID).to_wire()],
        "more": "/xapi/statements?more=page2",
    }
    page2 = {"statements": [], "more": ""}
    client, transport = make_client(json_response(page1), json_response(page2))

    result = client.get_statements(
        agent=Agent(mbox="mailto:another@example.com"),
        verb=verbs.ATTEMPTED.id,
        since=datetime(2013, 5, 18, 5, 32, 34, tzinfo=timezone.utc),
        limit=10,
        ascending=True,
    )
    query = query_of(transport.requests[0])
    assert json.loads(query["agent"]) == {
        "objectType": "Agent", "mbox": "mailto:another@example.com",
    }
    assert query["verb"] == "http://adlnet.gov/expapi/verbs/attempted"
    assert query["since"] == "2013-05-18T05:32:34.000Z"
    assert query["limit"] == "10"
    assert query["ascending"] == "true"
    assert result.more == "/xapi/statements?more=page2"

    last = client.get_more_statements(result.more)
    assert transport.requests[1].url == "https://lrs.example.com/xapi/statements?more=page2"
    assert last.statements == () and last.more is None
    print("  PASS: test_get_statements_filters_and_paging")


def test_more_pages_with_attachments_are_multipart():
    stored = make_statement(id=STATEMENT_ID, attachments=[text_attachment()])
    client, transport = make_client(
        multipart_result_response([stored], "/xapi/statements?more=page2"),
        multipart_result_response([stored], ""),
    )
    first = client.get_statements(attachments=True)
    assert query_of(transport.requests[0]) == {"attachments": "true"}
    assert first.statements == (stored,)

    last = client.get_more_statements(first.more)
    assert transport.requests[1].url == "https://lrs.example.com/xapi/statements?more=page2"
    assert last.more is None
    assert last.statements[0].attachments[0].content == b"Simple attachment"
    assert last.statements == (stored,)
    print("  PASS: test_more_pages_with_attachments_are_multipart")


def test_unknown_filter_rejected():
    client, transport = make_client()
    try:
        client.get_statements(colour="red")
    except TypeError:
        pass
    else:
        raise AssertionError("Unknown filter should be rejected")
    assert transport.requests == []
    print("  PASS: test_unknown_filter_rejected")


def test_get_about_and_version_header():
    client, transport = make_client(json_response({"version": ["1.0.0"]}), version="1.0.0")
    about = client.get_about()
    assert about.version == ("1.0.0",)
    assert transport.requests[0].url == "https://lrs.example.com/xapi/about"
    assert transport.requests[0].headers["X-Experience-API-Version"] == "1.0.0"
    print("  PASS: test_get_about_and_version_header")


def test_error_status_raises():
    client, _ = make_client(HttpResponse(status=400, body=b"Bad Request"))
    try:
        client.post_statement(make_statement())
    except TransportError as e:
        assert e.status == 400
        assert e.body == b"Bad Request"
        assert "HTTP 400" in str(e)
    else:
        raise AssertionError("HTTP 400 should raise TransportError")
    print("  PASS: test_error_status_raises")


def test_response_header_lookup():
    response = HttpResponse(status=200, headers={"Content-Type": "text/plain"})
    assert response.header("content-type") == "text/plain"
    assert response.header("X-Missing", "none") == "none"
    print("  PASS: test_response_header_lookup")


# ==================================================================
# Runner
# ==================================================================

def run_all():
    print("=" * 60)
    print("xAPI Client Test Suite")
    print("=" * 60)

    test_post_statement_json()
    test_post_statements_multipart()
    test_put_statement_uses_id_parameter()
    test_get_statement_and_voided()
    test_get_statement_with_attachments()
    test_get_statements_filters_and_paging()
    test_more_pages_with_attachments_are_multipart()
    test_unknown_filter_rejected()
    test_get_about_and_version_header()
    test_error_status_raises()
    test_response_header_lookup()

    print("\n" + "=" * 60)
    print("ALL TESTS PASSED")
    print("=" * 60)


if __name__ == "__main__":
    run_all()
