"""
xapi_core/model.py — xAPI Statement Data Model

The canonical, immutable object graph of an xAPI Statement.  JSON Schema
is exported from these Pydantic models, never hand-written separately.

Every model is frozen.  "Mutation" goes through with_changes(), which
builds a new instance and re-runs validation so derived fields (an
Attachment's sha2 and length) stay consistent with their source.
Frozen models hash by value, except those holding an extensions dict,
which stay unhashable like the dict itself.

Wire format: to_wire() dumps by xAPI field name (alias) and omits absent
optional fields rather than emitting null.  Field declaration order is
wire order, which the multipart Content-Length depends on.

Polymorphic slots (actor, object, instructor) are closed tagged unions
dispatched on the explicit "objectType" discriminant.

Reference: https://github.com/adlnet/xAPI-Spec/blob/master/xAPI-Data.md
"""

# NOTE: `from __future__ import annotations` is intentionally omitted.
# Pydantic resolves the tagged-union annotations at class creation time.

import json
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Iterator, List, Literal, Optional, Tuple, Union
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)

from .crypto import sha256_hex
from .errors import (
    ConflictingAttachmentRepresentation,
    InvalidLanguageTag,
    MalformedIdentifier,
    MissingOrAmbiguousInverseFunctionalIdentifier,
    StructuralConstraintViolation,
    XapiError,
)
from .language import LanguageMap, is_well_formed_tag


SIGNATURE_USAGE_TYPE = "http://adlnet.gov/expapi/attachments/signature"

_SHA1_HEX = re.compile(r"^[0-9a-fA-F]{40}$")

# RFC 2045 type/subtype with optional parameters, ASCII only
_MIME_TOKEN = r"[A-Za-z0-9!#$&^_.+-]+"
_MIME_TYPE = re.compile(
    rf"{_MIME_TOKEN}/{_MIME_TOKEN}"
    rf"(?:[ \t]*;[ \t]*{_MIME_TOKEN}=(?:{_MIME_TOKEN}|\"[\x20\x21\x23-\x7e]*\"))*"
)


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def _check_iri(value: Optional[str], field: str) -> Optional[str]:
    """Reject empty or whitespace-bearing IRIs.

    Scheme presence is a domain rule (validation.iri_has_scheme), not a
    structural one: fileUrl values such as "example.com/a" are accepted.
    """
    if value is None:
        return value
    if not isinstance(value, str) or not value or any(c.isspace() for c in value):
        raise MalformedIdentifier(f"{field} is not a valid IRI: {value!r}")
    return value


def _parse_uuid(value: Any, field: str) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise MalformedIdentifier(f"{field} is not a valid UUID: {value!r}") from None


def format_timestamp(value: datetime) -> str:
    """ISO 8601 in UTC with "Z"; milliseconds, or microseconds when present."""
    value = value.astimezone(timezone.utc)
    base = value.strftime("%Y-%m-%dT%H:%M:%S")
    if value.microsecond % 1000:
        return f"{base}.{value.microsecond:06d}Z"
    return f"{base}.{value.microsecond // 1000:03d}Z"


def _check_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        raise ValueError("timestamps must carry a timezone offset")
    return value


def _part_errors(data: Dict[str, Any], parts) -> List[Any]:
    """Check each part of raw input on its own, keeping every XapiError.

    Other failures are left to the full validation to report.
    """
    errors: List[Any] = []
    for name, check in parts:
        value = data.get(name)
        if value is None:
            continue
        many = name == "attachments" and isinstance(value, (list, tuple))
        for item in value if many else (value,):
            try:
                check(item)
            except XapiError as e:
                errors.append(e)
            except ValidationError:
                continue
    return errors


def _validate_reporting_all(kind: str, data: Any, handler, parts, problems=()):
    """Full validation that reports every structural violation at once.

    XapiErrors escape pydantic at the first failure, so on failure the
    parts are re-checked independently and, when more than one is
    broken, raised together as one StructuralConstraintViolation.
    """
    if not isinstance(data, dict):
        return handler(data)
    if problems:
        raise StructuralConstraintViolation(
            f"Invalid {kind}", list(problems) + _part_errors(data, parts)
        )
    try:
        return handler(data)
    except XapiError as first:
        errors = _part_errors(data, parts)
        if len(errors) < 2:
            raise
        raise StructuralConstraintViolation(f"Invalid {kind}", errors) from first


class XapiModel(BaseModel):
    """Base for all xAPI value objects."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    def with_changes(self, **overrides: Any):
        """Copy with overrides, validated like a fresh construction.

        Unlike model_copy(update=...), validators run again, so an
        Attachment given new content gets a matching sha2.
        """
        data = {name: getattr(self, name) for name in type(self).model_fields}
        unknown = set(overrides) - set(data)
        if unknown:
            raise TypeError(
                f"{type(self).__name__} has no field(s) {', '.join(sorted(unknown))}"
            )
        data.update(overrides)
        return type(self)(**data)

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict: xAPI field names, absent fields omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------

class Account(XapiModel):
    """An account on an existing system (one of the four IFIs)."""

    home_page: str = Field(..., alias="homePage")
    name: str

    @field_validator("home_page")
    @classmethod
    def validate_home_page(cls, v: str) -> str:
        return _check_iri(v, "homePage")


class _Identified(XapiModel):
    """Shared IFI fields and checks for Agent and Group.

    object_type is declared here so that it stays the first field (and
    the first wire key) when subclasses narrow it to a Literal.
    """

    object_type: str = Field(..., alias="objectType")
    name: Optional[str] = None
    mbox: Optional[str] = None
    mbox_sha1sum: Optional[str] = None
    openid: Optional[str] = None
    account: Optional[Account] = None

    @field_validator("mbox")
    @classmethod
    def validate_mbox(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and (not v.startswith("mailto:") or len(v) <= 7):
            raise MalformedIdentifier(f"mbox must be a mailto: IRI, got {v!r}")
        return v

    @field_validator("mbox_sha1sum")
    @classmethod
    def validate_mbox_sha1sum(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _SHA1_HEX.match(v):
            raise MalformedIdentifier(
                f"mbox_sha1sum must be 40 hex characters, got {v!r}"
            )
        return v

    @field_validator("openid")
    @classmethod
    def validate_openid(cls, v: Optional[str]) -> Optional[str]:
        return _check_iri(v, "openid")

    def identifiers(self) -> List[str]:
        """Names of the IFIs that are set."""
        return [
            ifi for ifi in ("mbox", "mbox_sha1sum", "openid", "account")
            if getattr(self, ifi) is not None
        ]


class Agent(_Identified):
    """An individual, identified by exactly one IFI."""

    object_type: Literal["Agent"] = Field(default="Agent", alias="objectType")

    @model_validator(mode="after")
    def validate_ifi(self) -> "Agent":
        ifis = self.identifiers()
        if len(ifis) != 1:
            raise MissingOrAmbiguousInverseFunctionalIdentifier(
                f"Agent must have exactly one of mbox, mbox_sha1sum, openid, "
                f"account; found {ifis or 'none'}"
            )
        return self


class Group(_Identified):
    """A collection of Agents; anonymous when no IFI is set."""

    object_type: Literal["Group"] = Field(default="Group", alias="objectType")
    member: Optional[Tuple[Agent, ...]] = None

    @model_validator(mode="after")
    def validate_ifi(self) -> "Group":
        ifis = self.identifiers()
        if len(ifis) > 1:
            raise MissingOrAmbiguousInverseFunctionalIdentifier(
                f"Group must have at most one IFI; found {ifis}"
            )
        if not ifis and not self.member:
            raise MissingOrAmbiguousInverseFunctionalIdentifier(
                "Anonymous Group (no IFI) must list its members"
            )
        return self

    @property
    def is_anonymous(self) -> bool:
        return not self.identifiers()


def _object_type_of(value: Any, default: str) -> Optional[str]:
    """Discriminant of raw input: dict key, or model attribute."""
    if isinstance(value, dict):
        return value.get("objectType", value.get("object_type", default))
    return getattr(value, "object_type", None)


def _actor_tag(value: Any) -> Optional[str]:
    return _object_type_of(value, "Agent")


Actor = Annotated[
    Union[Annotated[Agent, Tag("Agent")], Annotated[Group, Tag("Group")]],
    Discriminator(_actor_tag),
]


# ---------------------------------------------------------------------------
# Verb and Activity
# ---------------------------------------------------------------------------

class Verb(XapiModel):
    """The action taken: an IRI plus optional display text."""

    id: str
    display: Optional[LanguageMap] = None

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return _check_iri(v, "verb.id")


class InteractionType(str, Enum):
    """Interaction types for cmi.interaction activities."""
    TRUE_FALSE = "true-false"
    CHOICE = "choice"
    FILL_IN = "fill-in"
    LONG_FILL_IN = "long-fill-in"
    MATCHING = "matching"
    PERFORMANCE = "performance"
    SEQUENCING = "sequencing"
    LIKERT = "likert"
    NUMERIC = "numeric"
    OTHER = "other"


class InteractionComponent(XapiModel):
    id: str
    description: Optional[LanguageMap] = None


class ActivityDefinition(XapiModel):
    """Metadata describing an Activity."""

    name: Optional[LanguageMap] = None
    description: Optional[LanguageMap] = None
    type: Optional[str] = None
    more_info: Optional[str] = Field(default=None, alias="moreInfo")
    interaction_type: Optional[InteractionType] = Field(
        default=None, alias="interactionType"
    )
    correct_responses_pattern: Optional[Tuple[str, ...]] = Field(
        default=None, alias="correctResponsesPattern"
    )
    choices: Optional[Tuple[InteractionComponent, ...]] = None
    scale: Optional[Tuple[InteractionComponent, ...]] = None
    source: Optional[Tuple[InteractionComponent, ...]] = None
    target: Optional[Tuple[InteractionComponent, ...]] = None
    steps: Optional[Tuple[InteractionComponent, ...]] = None
    extensions: Optional[Dict[str, Any]] = None

    @field_validator("type", "more_info")
    @classmethod
    def validate_iris(cls, v: Optional[str]) -> Optional[str]:
        return _check_iri(v, "definition")


class Activity(XapiModel):
    object_type: Literal["Activity"] = Field(default="Activity", alias="objectType")
    id: str
    definition: Optional[ActivityDefinition] = None

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return _check_iri(v, "activity.id")


class StatementReference(XapiModel):
    """Points at another Statement by id."""

    object_type: Literal["StatementRef"] = Field(
        default="StatementRef", alias="objectType"
    )
    id: UUID

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v: Any) -> Any:
        return _parse_uuid(v, "StatementRef.id")


# ---------------------------------------------------------------------------
# Result and Context
# ---------------------------------------------------------------------------

class Score(XapiModel):
    """Range rules (min <= raw <= max, -1 <= scaled <= 1) are checked by
    validation.score_range, not at construction."""

    scaled: Optional[float] = None
    raw: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None


class Result(XapiModel):
    score: Optional[Score] = None
    success: Optional[bool] = None
    completion: Optional[bool] = None
    response: Optional[str] = None
    duration: Optional[str] = None
    extensions: Optional[Dict[str, Any]] = None


class ContextActivities(XapiModel):
    """Activities that give a Statement context, by relationship."""

    parent: Optional[Tuple[Activity, ...]] = None
    grouping: Optional[Tuple[Activity, ...]] = None
    category: Optional[Tuple[Activity, ...]] = None
    other: Optional[Tuple[Activity, ...]] = None

    @field_validator("parent", "grouping", "category", "other", mode="before")
    @classmethod
    def wrap_single(cls, v: Any) -> Any:
        # xAPI 0.95 sent a single object; 1.0 requires an array
        if isinstance(v, (dict, Activity)):
            return (v,)
        return v


class Context(XapiModel):
    registration: Optional[UUID] = None
    instructor: Optional[Actor] = None
    team: Optional[Group] = None
    context_activities: Optional[ContextActivities] = Field(
        default=None, alias="contextActivities"
    )
    revision: Optional[str] = None
    platform: Optional[str] = None
    language: Optional[str] = None
    statement: Optional[StatementReference] = None
    extensions: Optional[Dict[str, Any]] = None

    @field_validator("registration", mode="before")
    @classmethod
    def validate_registration(cls, v: Any) -> Any:
        return _parse_uuid(v, "context.registration")

    @field_validator("language")
    @classmethod
    def validate_language(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_well_formed_tag(v):
            raise InvalidLanguageTag(f"context.language is not a BCP 47 tag: {v!r}")
        return v


# ---------------------------------------------------------------------------
# Attachment
# ---------------------------------------------------------------------------

class Attachment(XapiModel):
    """Binary payload referenced by a Statement, addressed by SHA-256.

    Exactly one of inline content or fileUrl.  A bare sha2 (content
    withheld for out-of-band delivery) is also allowed.  content is never
    part of the JSON; it travels as a multipart part.
    """

    usage_type: str = Field(..., alias="usageType")
    display: LanguageMap
    description: Optional[LanguageMap] = None
    content_type: str = Field(..., alias="contentType")
    length: Optional[int] = Field(default=None, ge=0)
    sha2: Optional[str] = None
    file_url: Optional[str] = Field(default=None, alias="fileUrl")
    content: Optional[bytes] = Field(default=None, exclude=True, repr=False)

    @model_validator(mode="before")
    @classmethod
    def derive_hash(cls, data: Any) -> Any:
        """Setting content always (re)computes sha2, and length if absent.

        An explicit length is kept even when it disagrees with the content;
        validation.attachment_length reports the mismatch.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)
        content = data.get("content")
        file_url = data.get("fileUrl", data.get("file_url"))
        if content is not None and file_url is not None:
            raise ConflictingAttachmentRepresentation(
                "Attachment cannot carry both inline content and a fileUrl"
            )
        if content is not None:
            if isinstance(content, str):
                content = content.encode("utf-8")
            elif isinstance(content, (bytearray, memoryview)):
                content = bytes(content)
            data["content"] = content
            if isinstance(content, bytes):
                data["sha2"] = sha256_hex(content)
                if data.get("length") is None:
                    data["length"] = len(content)
        elif file_url is None and data.get("sha2") is None:
            raise StructuralConstraintViolation(
                "Attachment needs inline content, a fileUrl or a sha2",
                ["attachment has no content, fileUrl or sha2"],
            )
        return data

    @field_validator("usage_type")
    @classmethod
    def validate_usage_type(cls, v: str) -> str:
        return _check_iri(v, "usageType")

    @field_validator("content_type")
    @classmethod
    def validate_content_type(cls, v: str) -> str:
        if not _MIME_TYPE.fullmatch(v):
            raise MalformedIdentifier(f"contentType is not a MIME type: {v!r}")
        return v

    @field_validator("file_url")
    @classmethod
    def validate_file_url(cls, v: Optional[str]) -> Optional[str]:
        return _check_iri(v, "fileUrl")

    def with_changes(self, **overrides: Any) -> "Attachment":
        # new content without an explicit length gets its own length
        if overrides.get("content") is not None and "length" not in overrides:
            overrides["length"] = None
        return super().with_changes(**overrides)

    @property
    def is_inline(self) -> bool:
        """True when the bytes travel with the request."""
        return self.content is not None

    @property
    def is_signature(self) -> bool:
        return self.usage_type == SIGNATURE_USAGE_TYPE


# ---------------------------------------------------------------------------
# Statement objects
# ---------------------------------------------------------------------------

def _statement_object_tag(value: Any) -> Optional[str]:
    return _object_type_of(value, "Activity")


_SUBSTATEMENT_FORBIDDEN = ("id", "stored", "authority", "version")

# a SubStatement's object is never another SubStatement
_SubStatementObject = Annotated[
    Union[
        Annotated[Activity, Tag("Activity")],
        Annotated[Agent, Tag("Agent")],
        Annotated[Group, Tag("Group")],
        Annotated[StatementReference, Tag("StatementRef")],
    ],
    Discriminator(_statement_object_tag),
]


class SubStatement(XapiModel):
    """A Statement-like object nested as another Statement's object.

    Never stored on its own: no id, stored, authority or version, and its
    own object is never another SubStatement.
    """

    object_type: Literal["SubStatement"] = Field(
        default="SubStatement", alias="objectType"
    )
    actor: Actor
    verb: Verb
    object: _SubStatementObject
    result: Optional[Result] = None
    context: Optional[Context] = None
    timestamp: Optional[datetime] = None
    attachments: Optional[Tuple[Attachment, ...]] = None

    @model_validator(mode="wrap")
    @classmethod
    def validate_restrictions(cls, data: Any, handler) -> Any:
        if not isinstance(data, dict):
            return handler(data)
        problems = [
            f"SubStatement must not contain {key}"
            for key in _SUBSTATEMENT_FORBIDDEN
            if data.get(key) is not None
        ]
        if _statement_object_tag(data.get("object")) == "SubStatement":
            problems.append("SubStatement must not contain a SubStatement object")
        return _validate_reporting_all(
            "SubStatement", data, handler, _SUBSTATEMENT_PARTS, problems
        )

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _check_aware(v)

    @field_serializer("timestamp", when_used="json")
    def serialize_timestamp(self, v: Optional[datetime]) -> Optional[str]:
        return format_timestamp(v) if v is not None else None


StatementObject = Annotated[
    Union[
        Annotated[Activity, Tag("Activity")],
        Annotated[Agent, Tag("Agent")],
        Annotated[Group, Tag("Group")],
        Annotated[StatementReference, Tag("StatementRef")],
        Annotated[SubStatement, Tag("SubStatement")],
    ],
    Discriminator(_statement_object_tag),
]


# ---------------------------------------------------------------------------
# Top-level Statement
# ---------------------------------------------------------------------------

class Statement(XapiModel):
    """An xAPI Statement, the root of the object graph.

    - id:          assigned by the LRS when absent
    - actor/verb/object: who did what
    - result, context: optional outcome and circumstances
    - timestamp, stored: when it happened / when the LRS stored it
    - authority:   who asserts this Statement is true
    - attachments: ordered; signature attachments are appended last
    """

    id: Optional[UUID] = None
    actor: Actor
    verb: Verb
    object: StatementObject
    result: Optional[Result] = None
    context: Optional[Context] = None
    timestamp: Optional[datetime] = None
    stored: Optional[datetime] = None
    authority: Optional[Actor] = None
    version: Optional[str] = None
    attachments: Optional[Tuple[Attachment, ...]] = None

    @model_validator(mode="wrap")
    @classmethod
    def validate_structure(cls, data: Any, handler) -> Any:
        return _validate_reporting_all("Statement", data, handler, _STATEMENT_PARTS)

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v: Any) -> Any:
        return _parse_uuid(v, "statement.id")

    @field_validator("timestamp", "stored")
    @classmethod
    def validate_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _check_aware(v)

    @field_serializer("timestamp", "stored", when_used="json")
    def serialize_timestamp(self, v: Optional[datetime]) -> Optional[str]:
        return format_timestamp(v) if v is not None else None

    def with_attachment(self, attachment: Attachment) -> "Statement":
        """Copy with one more attachment appended."""
        return self.with_changes(
            attachments=(self.attachments or ()) + (attachment,)
        )

    def iter_attachments(self) -> Iterator[Attachment]:
        """All attachments in document order.

        The object precedes "attachments" on the wire, so a SubStatement's
        attachments come before the Statement's own.
        """
        if isinstance(self.object, SubStatement):
            yield from self.object.attachments or ()
        yield from self.attachments or ()


_ACTOR = TypeAdapter(Actor)
_ATTACHMENT = TypeAdapter(Attachment)

_SUBSTATEMENT_PARTS = (
    ("actor", _ACTOR.validate_python),
    ("verb", Verb.model_validate),
    ("object", TypeAdapter(_SubStatementObject).validate_python),
    ("result", Result.model_validate),
    ("context", Context.model_validate),
    ("attachments", _ATTACHMENT.validate_python),
)

_STATEMENT_PARTS = (
    ("id", lambda v: _parse_uuid(v, "statement.id")),
    ("actor", _ACTOR.validate_python),
    ("verb", Verb.model_validate),
    ("object", TypeAdapter(StatementObject).validate_python),
    ("result", Result.model_validate),
    ("context", Context.model_validate),
    ("authority", _ACTOR.validate_python),
    ("attachments", _ATTACHMENT.validate_python),
)


class StatementResult(XapiModel):
    """GET statements response: a page of Statements plus a continuation."""

    statements: Tuple[Statement, ...] = ()
    more: Optional[str] = None


class About(XapiModel):
    """GET about response."""

    version: Tuple[str, ...]
    extensions: Optional[Dict[str, Any]] = None

    @field_validator("version", mode="before")
    @classmethod
    def wrap_version(cls, v: Any) -> Any:
        if isinstance(v, (str, int, float)) and not isinstance(v, bool):
            return (str(v),)
        return v


# ---------------------------------------------------------------------------
# JSON Schema export
# ---------------------------------------------------------------------------

def export_json_schema() -> str:
    """Export the Statement JSON Schema.

    Generated from Pydantic — never hand-edited.
    """
    schema = Statement.model_json_schema(by_alias=True)
    return json.dumps(schema, indent=2)


if __name__ == "__main__":
    print(export_json_schema())
