"""
xapi_core/validation.py — Domain rules over the Statement object graph.

Structural invariants (IFI count, attachment representation, SubStatement
shape) fail at construction.  The rules here are domain conventions that
an LRS or a strict client may enforce: each is a (predicate, message)
pair bound to a node type, toggled by name through an explicit
ValidationConfig.

validate() never stops at the first failure; it walks the whole graph
and returns every violation so callers can report them all at once.
ensure_valid() turns a non-empty result into StructuralConstraintViolation.

Reference: https://github.com/adlnet/xAPI-Spec/blob/master/xAPI-Data.md
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, FrozenSet, Iterator, List, Optional, Tuple, Type, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .errors import StructuralConstraintViolation
from .language import UNDETERMINED, LanguageMap, is_iso_tag
from .model import (
    About,
    Account,
    Activity,
    ActivityDefinition,
    Attachment,
    Context,
    Group,
    InteractionType,
    Result,
    Score,
    Statement,
    StatementReference,
    SubStatement,
    Verb,
)


logger = logging.getLogger(__name__)

_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")
_VERSION = re.compile(r"^1\.0(\.\d+)?$")
_SHA256_HEX = re.compile(r"^[0-9a-f]{64}$")
_DURATION = re.compile(
    r"^P(?!$)(\d+(\.\d+)?Y)?(\d+(\.\d+)?M)?(\d+(\.\d+)?W)?(\d+(\.\d+)?D)?"
    r"(T(?=\d)(\d+(\.\d+)?H)?(\d+(\.\d+)?M)?(\d+(\.\d+)?S)?)?$"
)


# ---------------------------------------------------------------------------
# Rule and result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Rule:
    """One domain rule.

    predicate(node) returns True when the node satisfies the rule.
    field, when set, is appended to the node path in the violation.
    """
    name: str
    applies_to: Union[Type, Tuple[Type, ...]]
    predicate: Callable[[Any], bool]
    message: str
    field: Optional[str] = None


class Violation(BaseModel):
    """One failed rule at one place in the graph."""

    model_config = ConfigDict(frozen=True)

    path: str
    rule: str
    message: str

    def __str__(self) -> str:
        return f"{self.path or '<root>'}: {self.message} [{self.rule}]"


class ValidationConfig(BaseModel):
    """Which rules run.  Passed explicitly to validate(); no globals."""

    model_config = ConfigDict(frozen=True)

    disabled_rules: FrozenSet[str] = Field(default_factory=frozenset)

    def is_enabled(self, name: str) -> bool:
        return name not in self.disabled_rules

    def disable(self, *names: str) -> "ValidationConfig":
        return ValidationConfig(disabled_rules=self.disabled_rules | frozenset(names))

    def enable(self, *names: str) -> "ValidationConfig":
        return ValidationConfig(disabled_rules=self.disabled_rules - frozenset(names))


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def has_scheme(iri: Optional[str]) -> bool:
    """True for None or an absolute IRI (scheme present)."""
    return iri is None or bool(_SCHEME.match(iri))


def _extension_keys_have_scheme(node: Any) -> bool:
    return all(has_scheme(key) for key in (node.extensions or {}))


def _object_is_activity(node: Any, attr: str) -> bool:
    context = node.context
    if context is None or getattr(context, attr) is None:
        return True
    return isinstance(node.object, Activity)


def _is_rfc4122(value: Optional[UUID]) -> bool:
    return value is None or value.variant == "specified in RFC 4122"


def _score_scaled(score: Score) -> bool:
    return score.scaled is None or -1.0 <= score.scaled <= 1.0


def _score_raw(score: Score) -> bool:
    if score.raw is None:
        return True
    if score.min is not None and score.raw < score.min:
        return False
    if score.max is not None and score.raw > score.max:
        return False
    return True


def _score_bounds(score: Score) -> bool:
    return score.min is None or score.max is None or score.min < score.max


def _attachment_length(attachment: Attachment) -> bool:
    if attachment.length is None:
        return False
    return attachment.content is None or attachment.length == len(attachment.content)


_COMPONENTS = {
    InteractionType.CHOICE: {"choices"},
    InteractionType.SEQUENCING: {"choices"},
    InteractionType.LIKERT: {"scale"},
    InteractionType.MATCHING: {"source", "target"},
    InteractionType.PERFORMANCE: {"steps"},
}


def _interaction_components(definition: ActivityDefinition) -> bool:
    allowed = _COMPONENTS.get(definition.interaction_type, set())
    present = {
        name for name in ("choices", "scale", "source", "target", "steps")
        if getattr(definition, name) is not None
    }
    if definition.interaction_type is None and definition.correct_responses_pattern:
        return False
    return present <= allowed


def _authority_group(statement: Statement) -> bool:
    authority = statement.authority
    if not isinstance(authority, Group):
        return True
    return authority.is_anonymous and len(authority.member or ()) == 2


# ---------------------------------------------------------------------------
# Default rule set
# ---------------------------------------------------------------------------

RULES: List[Rule] = [
    Rule("statement_platform", (Statement, SubStatement),
         lambda n: _object_is_activity(n, "platform"),
         "context.platform is only allowed when the object is an Activity",
         "context.platform"),
    Rule("statement_revision", (Statement, SubStatement),
         lambda n: _object_is_activity(n, "revision"),
         "context.revision is only allowed when the object is an Activity",
         "context.revision"),
    Rule("language_tag_iso", LanguageMap,
         lambda m: all(is_iso_tag(tag) for tag in m),
         "language map keys must use ISO 639 languages and ISO 3166 regions"),
    Rule("language_tag_iso", Context,
         lambda c: c.language is None or is_iso_tag(c.language),
         "language must use an ISO 639 language and ISO 3166 region",
         "language"),
    Rule("context_language_determined", Context,
         lambda c: c.language is None or c.language.lower() != UNDETERMINED,
         "language must not be undetermined (und)",
         "language"),
    Rule("iri_has_scheme", Verb, lambda v: has_scheme(v.id),
         "IRI must have a scheme", "id"),
    Rule("iri_has_scheme", Activity, lambda a: has_scheme(a.id),
         "IRI must have a scheme", "id"),
    Rule("iri_has_scheme", ActivityDefinition, lambda d: has_scheme(d.type),
         "IRI must have a scheme", "type"),
    Rule("iri_has_scheme", ActivityDefinition, lambda d: has_scheme(d.more_info),
         "IRI must have a scheme", "moreInfo"),
    Rule("iri_has_scheme", Attachment, lambda a: has_scheme(a.usage_type),
         "IRI must have a scheme", "usageType"),
    Rule("iri_has_scheme", Account, lambda a: has_scheme(a.home_page),
         "IRI must have a scheme", "homePage"),
    Rule("iri_has_scheme", (ActivityDefinition, Result, Context, About),
         _extension_keys_have_scheme,
         "extension keys must be IRIs with a scheme", "extensions"),
    Rule("score_range", Score, _score_scaled,
         "scaled must be between -1 and 1", "scaled"),
    Rule("score_range", Score, _score_raw,
         "raw must be between min and max", "raw"),
    Rule("score_range", Score, _score_bounds,
         "min must be less than max", "min"),
    Rule("version_format", Statement,
         lambda s: s.version is None or bool(_VERSION.match(s.version)),
         "version must be 1.0.x", "version"),
    Rule("uuid_variant", Statement, lambda s: _is_rfc4122(s.id),
         "id must be an RFC 4122 UUID", "id"),
    Rule("uuid_variant", StatementReference, lambda r: _is_rfc4122(r.id),
         "id must be an RFC 4122 UUID", "id"),
    Rule("uuid_variant", Context, lambda c: _is_rfc4122(c.registration),
         "registration must be an RFC 4122 UUID", "registration"),
    Rule("attachment_sha2", Attachment,
         lambda a: a.sha2 is not None and bool(_SHA256_HEX.match(a.sha2)),
         "sha2 must be a lowercase hex SHA-256", "sha2"),
    Rule("attachment_length", Attachment, _attachment_length,
         "length must be present and equal the content size", "length"),
    Rule("duration_format", Result,
         lambda r: r.duration is None or bool(_DURATION.match(r.duration)),
         "duration must be an ISO 8601 duration", "duration"),
    Rule("interaction_components", ActivityDefinition, _interaction_components,
         "interaction components do not match interactionType"),
    Rule("authority_group", Statement, _authority_group,
         "a Group authority must be anonymous with exactly two members",
         "authority"),
]

RULE_NAMES = frozenset(rule.name for rule in RULES)


# ---------------------------------------------------------------------------
# Graph walk
# ---------------------------------------------------------------------------

def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def iter_nodes(node: Any, path: str = "") -> Iterator[Tuple[str, Any]]:
    """Yield (path, node) for node and everything beneath it.

    Paths use xAPI wire names: "object.definition.name", "attachments[1]".
    """
    yield path, node
    if not isinstance(node, BaseModel):
        return
    for name, info in type(node).model_fields.items():
        value = getattr(node, name)
        wire_name = info.alias or name
        child_path = _join(path, wire_name)
        if isinstance(value, (BaseModel, LanguageMap)):
            yield from iter_nodes(value, child_path)
        elif isinstance(value, tuple):
            for i, item in enumerate(value):
                if isinstance(item, (BaseModel, LanguageMap)):
                    yield from iter_nodes(item, f"{child_path}[{i}]")


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def validate(
    node: Any,
    config: Optional[ValidationConfig] = None,
    rules: Optional[List[Rule]] = None,
) -> List[Violation]:
    """Evaluate every enabled rule against every node of the graph."""
    config = config or ValidationConfig()
    active = [r for r in (RULES if rules is None else rules) if config.is_enabled(r.name)]
    violations = []
    for path, current in iter_nodes(node):
        for rule in active:
            if isinstance(current, rule.applies_to) and not rule.predicate(current):
                violations.append(Violation(
                    path=_join(path, rule.field) if rule.field else path,
                    rule=rule.name,
                    message=rule.message,
                ))
    logger.debug(
        "Validated %s with %d rule(s): %d violation(s)",
        type(node).__name__, len(active), len(violations),
    )
    return violations


def ensure_valid(
    node: Any,
    config: Optional[ValidationConfig] = None,
    rules: Optional[List[Rule]] = None,
) -> None:
    """Raise StructuralConstraintViolation listing every violation found."""
    violations = validate(node, config, rules)
    if violations:
        raise StructuralConstraintViolation(
            f"{type(node).__name__} violates {len(violations)} rule(s)", violations
        )
