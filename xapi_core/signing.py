"""
xapi_core/signing.py — Statement signing and verification.

Sign:   statement → JSON (wire order) → JWS compact token → appended as a
        signature Attachment on a copy of the statement
Verify: locate signature Attachment → verify JWS → decode payload into a
        Statement → compare with the carrier, all signature attachments
        excluded from both sides

The payload is always the statement as it was BEFORE the new signature
attachment was appended, so a signature never covers itself.  Because
every signature attachment is excluded from the comparison, a statement
carrying several signatures (multi-party signing) verifies at any index.

Reference: https://github.com/adlnet/xAPI-Spec/blob/master/xAPI-Data.md#26-signed-statements
"""

from __future__ import annotations

import logging
from typing import List, NamedTuple, Optional, Sequence

from pydantic import ValidationError

from .codec import comparison_bytes, decode_statement, encode_statement
from .crypto import PrivateKey, PublicKey, default_algorithm_for, jws_sign, jws_verify
from .errors import SignatureInvalid, XapiError
from .model import SIGNATURE_USAGE_TYPE, Attachment, Statement


logger = logging.getLogger(__name__)

SIGNATURE_CONTENT_TYPE = "application/octet-stream"


class VerificationResult(NamedTuple):
    """Outcome of a successful verification (failures raise)."""
    valid: bool
    statement: Statement
    algorithm: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def signature_attachments(statement: Statement) -> List[Attachment]:
    """Signature attachments of a statement, in the order appended."""
    return [a for a in statement.attachments or () if a.is_signature]


def _without_signatures(statement: Statement) -> Statement:
    kept = tuple(a for a in statement.attachments or () if not a.is_signature)
    return statement.with_changes(attachments=kept or None)


# ---------------------------------------------------------------------------
# Sign
# ---------------------------------------------------------------------------

def sign_statement(
    statement: Statement,
    private_key: PrivateKey,
    algorithm: Optional[str] = None,
) -> Statement:
    """Return a copy of statement with a signature Attachment appended.

    Without an algorithm, the conventional one for the key is used:
    RS512 for RSA, ES256/ES384/ES512 by curve, EdDSA for Ed25519.

    Raises:
        ValueError: unsupported algorithm.
        TypeError:  key type does not match the algorithm.
        EncodingFailure: the statement cannot be serialized.
    """
    if algorithm is None:
        algorithm = default_algorithm_for(private_key)
    payload = encode_statement(statement)
    token = jws_sign(payload, private_key, algorithm).encode("ascii")
    signature = Attachment(
        usage_type=SIGNATURE_USAGE_TYPE,
        display={"und": "signature"},
        content_type=SIGNATURE_CONTENT_TYPE,
        length=len(token),
        content=token,
    )
    logger.debug(
        "Signed statement %s with %s (%d signature(s) now attached)",
        statement.id, algorithm, len(signature_attachments(statement)) + 1,
    )
    return statement.with_attachment(signature)


# ---------------------------------------------------------------------------
# Verify
# ---------------------------------------------------------------------------

def verify_statement(
    statement: Statement,
    public_key: PublicKey,
    index: Optional[int] = None,
    algorithms: Optional[Sequence[str]] = None,
) -> VerificationResult:
    """Verify one signature of a statement.

    Args:
        statement:  The carrier statement, signature attachment(s) included.
        public_key: Key of the signer being checked.
        index:      Which signature attachment (in append order; negative
                    indices allowed).  Default: the most recently appended.
        algorithms: Accepted JWS algorithms.  Default: all supported.

    Returns:
        VerificationResult with the statement recovered from the token.

    Raises:
        SignatureInvalid: no such signature, content withheld, malformed
                          or unverifiable token, or a recovered statement
                          that differs from the carrier.
    """
    signatures = signature_attachments(statement)
    if not signatures:
        raise SignatureInvalid("Statement carries no signature attachment")
    chosen = -1 if index is None else index
    try:
        attachment = signatures[chosen]
    except IndexError:
        raise SignatureInvalid(
            f"No signature at index {chosen} ({len(signatures)} present)"
        ) from None
    if attachment.content is None:
        raise SignatureInvalid("Signature attachment content is not available")

    try:
        token = attachment.content.decode("ascii")
    except UnicodeDecodeError:
        logger.warning("Rejected signature on %s: token is not ASCII", statement.id)
        raise SignatureInvalid("Signature token is not ASCII") from None

    try:
        header, payload = jws_verify(token, public_key, algorithms)
    except SignatureInvalid as e:
        logger.warning("Rejected signature on %s: %s", statement.id, e)
        raise

    try:
        recovered = decode_statement(payload)
    except (XapiError, ValidationError) as e:
        logger.warning("Rejected signature on %s: payload is not a Statement", statement.id)
        raise SignatureInvalid(f"Signature payload is not a Statement: {e}") from None

    if comparison_bytes(_without_signatures(recovered)) != comparison_bytes(
        _without_signatures(statement)
    ):
        logger.warning("Rejected signature on %s: statement differs from payload", statement.id)
        raise SignatureInvalid("Statement does not match its signed payload")

    logger.debug("Verified %s signature on statement %s", header["alg"], statement.id)
    return VerificationResult(valid=True, statement=recovered, algorithm=header["alg"])
