"""
test/test_codec.py — Response body decoding

Run: pytest test/test_codec.py -v
  or: python test/test_codec.py
"""

import os
import sys
from uuid import UUID

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from xapi_core import (
    Agent,
    EncodingFailure,
    MalformedIdentifier,
    StatementReference,
    decode_about,
    decode_statement,
    decode_statement_ids,
    decode_statement_result,
    decode_statements,
)


STATEMENT_JSON = (
    b'{"id":"4b9175ba-367d-4b93-990b-34d4180039f1",'
    b'"actor":{"name":"A N Other","mbox":"mailto:another@example.com"},'
    b'"verb":{"id":"http://adlnet.gov/expapi/verbs/attempted","display":{"und":"attempted"}},'
    b'"object":{"id":"https://example.com/activity/simplestatement"},'
    b'"stored":"2013-05-18T05:32:34.804+00:00","version":"1.0.0"}'
)


def expect(error_type, fn, *args):
    try:
        fn(*args)
    except error_type as e:
        return e
    raise AssertionError(f"Expected {error_type.__name__}")


# ==================================================================
# Tests
# ==================================================================

def test_decode_statement_defaults_object_types():
    s = decode_statement(STATEMENT_JSON)
    assert s.id == UUID("4b9175ba-367d-4b93-990b-34d4180039f1")
    assert isinstance(s.actor, Agent)
    assert s.object.object_type == "Activity"
    assert s.to_wire()["stored"] == "2013-05-18T05:32:34.804Z"
    print("  PASS: test_decode_statement_defaults_object_types")


def test_decode_statement_ids():
    ids = decode_statement_ids(
        b'["19a74a3f-7354-4254-aa4a-1c39ab4f2ca7","4b9175ba-367d-4b93-990b-34d4180039f1"]'
    )
    assert ids == [
        UUID("19a74a3f-7354-4254-aa4a-1c39ab4f2ca7"),
        UUID("4b9175ba-367d-4b93-990b-34d4180039f1"),
    ]
    expect(MalformedIdentifier, decode_statement_ids, b'["not-a-uuid"]')
    expect(EncodingFailure, decode_statement_ids, b'{"id":"x"}')
    print("  PASS: test_decode_statement_ids")


def test_decode_statement_result():
    body = b'{"statements":[' + STATEMENT_JSON + b'],"more":"/xapi/statements?more=abc"}'
    result = decode_statement_result(body)
    assert len(result.statements) == 1
    assert result.more == "/xapi/statements?more=abc"

    last_page = decode_statement_result(b'{"statements":[],"more":""}')
    assert last_page.statements == ()
    assert last_page.more is None
    print("  PASS: test_decode_statement_result")


def test_decode_statement_array():
    statements = decode_statements(b"[" + STATEMENT_JSON + b"," + STATEMENT_JSON + b"]")
    assert len(statements) == 2
    expect(EncodingFailure, decode_statements, STATEMENT_JSON)
    print("  PASS: test_decode_statement_array")


def test_decode_about():
    about = decode_about(b'{"version":["1.0.3","1.0.0"],"extensions":{"http://url":"example.com"}}')
    assert about.version == ("1.0.3", "1.0.0")
    assert about.extensions == {"http://url": "example.com"}
    print("  PASS: test_decode_about")


def test_decode_rejects_bad_json():
    expect(EncodingFailure, decode_statement, b"{not json")
    expect(EncodingFailure, decode_statement, b"[]")
    expect(EncodingFailure, decode_about, b'"1.0.3"')
    expect(EncodingFailure, decode_statement_result, b"\xff\xfe")
    print("  PASS: test_decode_rejects_bad_json")


def test_statement_ref_object():
    body = STATEMENT_JSON.replace(
        b'{"id":"https://example.com/activity/simplestatement"}',
        b'{"objectType":"StatementRef","id":"19a74a3f-7354-4254-aa4a-1c39ab4f2ca7"}',
    )
    s = decode_statement(body)
    assert isinstance(s.object, StatementReference)
    expect(
        MalformedIdentifier,
        decode_statement,
        body.replace(b"19a74a3f-7354-4254-aa4a-1c39ab4f2ca7", b"42"),
    )
    print("  PASS: test_statement_ref_object")


# ==================================================================
# Runner
# ==================================================================

def run_all():
    print("=" * 60)
    print("Codec Test Suite")
    print("=" * 60)

    test_decode_statement_defaults_object_types()
    test_decode_statement_ids()
    test_decode_statement_result()
    test_decode_statement_array()
    test_decode_about()
    test_decode_rejects_bad_json()
    test_statement_ref_object()

    print("\n" + "=" * 60)
    print("ALL TESTS PASSED")
    print("=" * 60)


if __name__ == "__main__":
    run_all()
