"""
xapi_core/errors.py — Error kinds raised by the engine.

None of these derive from ValueError.  Pydantic folds ValueError raised
inside validators into a ValidationError; these kinds must reach the
caller as themselves so they can be caught by kind.
"""

from __future__ import annotations

from typing import Iterable, List


class XapiError(Exception):
    """Base class for all engine errors."""


class MalformedIdentifier(XapiError):
    """A UUID, IRI, mbox or mbox_sha1sum is not well formed."""


class ConflictingAttachmentRepresentation(XapiError):
    """An Attachment carries both inline content and a fileUrl."""


class MissingOrAmbiguousInverseFunctionalIdentifier(XapiError):
    """An Agent or Group has zero, or more than one, identifier set."""


class InvalidLanguageTag(XapiError):
    """A language tag is not a well-formed BCP 47 tag."""


class StructuralConstraintViolation(XapiError):
    """One or more structural or domain rules are violated.

    ``violations`` holds the complete set found, not only the first one.
    Items are validation.Violation instances or plain strings for
    construction-time checks.
    """

    def __init__(self, message: str, violations: Iterable = ()) -> None:
        self.violations: List = list(violations)
        if self.violations:
            details = "; ".join(str(v) for v in self.violations)
            message = f"{message}: {details}"
        super().__init__(message)


class SignatureInvalid(XapiError):
    """Statement signature verification failed."""


class EncodingFailure(XapiError):
    """JSON or multipart encoding/decoding failed."""
