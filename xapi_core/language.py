"""
xapi_core/language.py — LanguageMap: localized text keyed by BCP 47 tag.

Lookup follows RFC 4647 §3.4 ("lookup"), with one divergence kept from
the observed behaviour of existing xAPI clients: when no requested range
matches and there is no "und" entry, the FIRST INSERTED entry is returned
instead of nothing.  Only an empty map resolves to None.

Reference: https://www.rfc-editor.org/rfc/rfc4647#section-3.4
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from pydantic_core import core_schema

from .errors import InvalidLanguageTag


UNDETERMINED = "und"

# RFC 5646 §2.1, "langtag" and "privateuse" productions (syntax only)
_LANGTAG = re.compile(
    r"^(?:"
    r"[A-Za-z]{2,3}(?:-[A-Za-z]{3}){0,3}|[A-Za-z]{4,8}"   # language, extlang
    r")"
    r"(?:-[A-Za-z]{4})?"                                   # script
    r"(?:-(?:[A-Za-z]{2}|[0-9]{3}))?"                      # region
    r"(?:-(?:[A-Za-z0-9]{5,8}|[0-9][A-Za-z0-9]{3}))*"      # variant
    r"(?:-[0-9A-WYZa-wyz](?:-[A-Za-z0-9]{2,8})+)*"         # extension
    r"(?:-[xX](?:-[A-Za-z0-9]{1,8})+)?$"                   # privateuse
    r"|^[xX](?:-[A-Za-z0-9]{1,8})+$"
)

_ISO_639_1 = frozenset("""
aa ab ae af ak am an ar as av ay az ba be bg bh bi bm bn bo br bs ca ce ch
co cr cs cu cv cy da de dv dz ee el en eo es et eu fa ff fi fj fo fr fy ga
gd gl gn gu gv ha he hi ho hr ht hu hy hz ia id ie ig ii ik io is it iu ja
jv ka kg ki kj kk kl km kn ko kr ks ku kv kw ky la lb lg li ln lo lt lu lv
mg mh mi mk ml mn mr ms mt my na nb nd ne ng nl nn no nr nv ny oc oj om or
os pa pi pl ps pt qu rm rn ro ru rw sa sc sd se sg si sk sl sm sn so sq sr
ss st su sv sw ta te tg th ti tk tl tn to tr ts tt tw ty ug uk ur uz ve vi
vo wa wo xh yi yo za zh zu
""".split())

_ISO_3166_ALPHA2 = frozenset("""
AD AE AF AG AI AL AM AO AQ AR AS AT AU AW AX AZ BA BB BD BE BF BG BH BI BJ
BL BM BN BO BQ BR BS BT BV BW BY BZ CA CC CD CF CG CH CI CK CL CM CN CO CR
CU CV CW CX CY CZ DE DJ DK DM DO DZ EC EE EG EH ER ES ET FI FJ FK FM FO FR
GA GB GD GE GF GG GH GI GL GM GN GP GQ GR GS GT GU GW GY HK HM HN HR HT HU
ID IE IL IM IN IO IQ IR IS IT JE JM JO JP KE KG KH KI KM KN KP KR KW KY KZ
LA LB LC LI LK LR LS LT LU LV LY MA MC MD ME MF MG MH MK ML MM MN MO MP MQ
MR MS MT MU MV MW MX MY MZ NA NC NE NF NG NI NL NO NP NR NU NZ OM PA PE PF
PG PH PK PL PM PN PR PS PT PW PY QA RE RO RS RU RW SA SB SC SD SE SG SH SI
SJ SK SL SM SN SO SR SS ST SV SX SY SZ TC TD TF TG TH TJ TK TL TM TN TO TR
TT TV TW TZ UA UG UM US UY UZ VA VC VE VG VI VN VU WF WS YE YT ZA ZM ZW
""".split())


def is_well_formed_tag(tag: Any) -> bool:
    """True if tag is syntactically a BCP 47 language tag."""
    return isinstance(tag, str) and bool(_LANGTAG.match(tag))


def is_iso_tag(tag: Any) -> bool:
    """True if the language and region subtags are known ISO codes.

    Language: ISO 639-1 two-letter code, or any three-letter code (the
    ISO 639-2/3 space, which includes "und").  Region, when present:
    ISO 3166-1 alpha-2 or a UN M.49 three-digit code.
    """
    if not is_well_formed_tag(tag):
        return False
    subtags = tag.split("-")
    language = subtags[0].lower()
    if len(language) == 2:
        if language not in _ISO_639_1:
            return False
    elif len(language) != 3:
        return False
    for subtag in subtags[1:]:
        if len(subtag) == 2 and subtag.isalpha():
            return subtag.upper() in _ISO_3166_ALPHA2
        if len(subtag) == 3 and subtag.isdigit():
            return True
        if len(subtag) == 1:
            break
    return True


def _check_tag(tag: Any) -> str:
    if not is_well_formed_tag(tag):
        raise InvalidLanguageTag(f"Not a well-formed BCP 47 language tag: {tag!r}")
    return tag


# ---------------------------------------------------------------------------
# Language ranges
# ---------------------------------------------------------------------------

LanguageRanges = Union[str, Sequence[Union[str, Tuple[str, float]]]]


def parse_ranges(ranges: LanguageRanges) -> List[str]:
    """Normalize requested ranges to a priority-ordered list of tags.

    Accepts an Accept-Language style string ("en-US,en;q=0.8"), a single
    tag, or a sequence of tags and (tag, weight) pairs.  Ordering is by
    descending weight, stable for equal weights.  Ranges with weight 0,
    the wildcard "*" and "und" are dropped.
    """
    if isinstance(ranges, str):
        items: List[Tuple[str, float]] = []
        for entry in ranges.split(","):
            entry = entry.strip()
            if not entry:
                continue
            tag, _, params = entry.partition(";")
            weight = 1.0
            params = params.strip()
            if params.lower().startswith("q="):
                try:
                    weight = float(params[2:])
                except ValueError:
                    weight = 0.0
            items.append((tag.strip(), weight))
    else:
        items = []
        for entry in ranges:
            if isinstance(entry, str):
                items.append((entry, 1.0))
            else:
                tag, weight = entry
                items.append((tag, float(weight)))

    ordered = sorted(items, key=lambda item: -item[1])
    return [
        tag for tag, weight in ordered
        if weight > 0 and tag != "*" and tag.lower() != UNDETERMINED
    ]


def _truncations(tag: str) -> Iterator[str]:
    """Yield tag, then each progressively shorter form (RFC 4647 §3.4)."""
    candidate = tag.lower()
    while candidate:
        yield candidate
        cut = candidate.rfind("-")
        if cut < 0:
            return
        candidate = candidate[:cut]
        # drop a dangling singleton such as "-x" or "-u"
        if len(candidate) >= 2 and candidate[-2] == "-":
            candidate = candidate[:-2]


# ---------------------------------------------------------------------------
# LanguageMap
# ---------------------------------------------------------------------------

class LanguageMap(Mapping):
    """Ordered mapping of language tag to text.

    Keys compare case-insensitively; the spelling first inserted is kept.
    The map is mutable only through put() until it is frozen, which
    happens when it is embedded in a model.  Only a frozen map is hashable.
    """

    __slots__ = ("_entries", "_index", "_frozen")

    def __init__(self, entries: Optional[Mapping] = None, **kwargs: str) -> None:
        self._entries: Dict[str, str] = {}
        self._index: Dict[str, str] = {}
        self._frozen = False
        if entries is not None:
            for tag, text in entries.items():
                self.put(tag, text)
        for tag, text in kwargs.items():
            self.put(tag, text)

    def put(self, tag: str, text: str) -> "LanguageMap":
        """Insert or replace the text for tag. Returns self for chaining."""
        if self._frozen:
            raise TypeError("LanguageMap is frozen once embedded in a model")
        _check_tag(tag)
        if not isinstance(text, str):
            raise TypeError(f"LanguageMap values must be str, got {type(text).__name__}")
        existing = self._index.get(tag.lower())
        if existing is None:
            self._index[tag.lower()] = tag
            existing = tag
        self._entries[existing] = text
        return self

    def frozen(self) -> "LanguageMap":
        """Return a frozen copy (self if already frozen)."""
        if self._frozen:
            return self
        copy = LanguageMap(self._entries)
        copy._frozen = True
        return copy

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def resolve(self, ranges: LanguageRanges) -> Optional[str]:
        """Best-match text for the requested ranges, or None for an empty map."""
        if not self._entries:
            return None
        for requested in parse_ranges(ranges):
            for candidate in _truncations(requested):
                tag = self._index.get(candidate)
                if tag is not None:
                    return self._entries[tag]
        tag = self._index.get(UNDETERMINED)
        if tag is not None:
            return self._entries[tag]
        return next(iter(self._entries.values()))

    def to_dict(self) -> Dict[str, str]:
        return dict(self._entries)

    # -- Mapping protocol -------------------------------------------------

    def __getitem__(self, tag: str) -> str:
        if not isinstance(tag, str):
            raise KeyError(tag)
        return self._entries[self._index[tag.lower()]]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, tag: object) -> bool:
        return isinstance(tag, str) and tag.lower() in self._index

    def __hash__(self) -> int:
        if not self._frozen:
            raise TypeError("unhashable type: 'LanguageMap' (not frozen)")
        return hash(frozenset(self._entries.items()))

    def __repr__(self) -> str:
        return f"LanguageMap({self._entries!r})"

    # -- pydantic integration ---------------------------------------------

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any):
        return core_schema.no_info_after_validator_function(
            cls._from_validated,
            core_schema.dict_schema(core_schema.str_schema(), core_schema.str_schema()),
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda value: value.to_dict()
            ),
        )

    @classmethod
    def _from_validated(cls, value: Dict[str, str]) -> "LanguageMap":
        return cls(value).frozen()
