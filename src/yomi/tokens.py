from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

__all__ = [
    "CATEGORY_VERB",
    "CATEGORY_AUXILIARY_VERB",
    "CATEGORY_PARTICLE",
    "CATEGORY_PUNCTUATION",
    "CATEGORY_NOUN",
    "CATEGORY_ADJECTIVE",
    "CATEGORY_ADVERB",
    "CATEGORY_OTHER",
    "CATEGORIES",
    "WORD_CATEGORIES",
    "SUB_INDEPENDENT",
    "SUB_NON_INDEPENDENT",
    "SUB_SUFFIX",
    "SUB_CONNECTIVE_PARTICLE",
    "SUB_CASE_PARTICLE",
    "DETAIL_UNCHANGED",
    "DETAIL_MERGED_PUNCTUATION",
    "DETAIL_INFLECTED",
    "DETAIL_COMPOUND",
    "MERGE_REASON_NONE",
    "MERGE_REASON_PUNCTUATION",
    "MERGE_REASON_VERB_INFLECTION",
    "MERGE_REASON_COMPOUND_VERB",
    "SOURCE_NONE",
    "SOURCE_DICTIONARY",
    "SOURCE_LANGUAGE_MODEL",
    "UNAVAILABLE",
    "RawUnit",
    "MergedToken",
    "EnrichedToken",
    "as_merged_token",
    "merge_token_group",
    "sentence_text",
    "serialize_raw_units",
    "deserialize_raw_units",
    "serialize_merged_tokens",
    "deserialize_merged_tokens",
    "serialize_enriched_tokens",
    "deserialize_enriched_tokens",
]

CATEGORY_VERB = "verb"
CATEGORY_AUXILIARY_VERB = "auxiliary-verb"
CATEGORY_PARTICLE = "particle"
CATEGORY_PUNCTUATION = "punctuation"
CATEGORY_NOUN = "noun"
CATEGORY_ADJECTIVE = "adjective"
CATEGORY_ADVERB = "adverb"
CATEGORY_OTHER = "other"
CATEGORIES = frozenset(
    {
        CATEGORY_VERB,
        CATEGORY_AUXILIARY_VERB,
        CATEGORY_PARTICLE,
        CATEGORY_PUNCTUATION,
        CATEGORY_NOUN,
        CATEGORY_ADJECTIVE,
        CATEGORY_ADVERB,
        CATEGORY_OTHER,
    }
)
# Categories counted as content words in sentence summaries.
WORD_CATEGORIES = frozenset({CATEGORY_NOUN, CATEGORY_VERB, CATEGORY_ADJECTIVE, CATEGORY_ADVERB})

SUB_INDEPENDENT = "independent"
SUB_NON_INDEPENDENT = "non-independent"
SUB_SUFFIX = "suffix"
SUB_CONNECTIVE_PARTICLE = "connective-particle"
SUB_CASE_PARTICLE = "case-particle"

DETAIL_UNCHANGED = "unchanged"
DETAIL_MERGED_PUNCTUATION = "merged-punctuation"
DETAIL_INFLECTED = "inflected"
DETAIL_COMPOUND = "compound"
_DETAILS = frozenset(
    {DETAIL_UNCHANGED, DETAIL_MERGED_PUNCTUATION, DETAIL_INFLECTED, DETAIL_COMPOUND}
)

MERGE_REASON_NONE = "none"
MERGE_REASON_PUNCTUATION = "punctuation-sequence"
MERGE_REASON_VERB_INFLECTION = "verb-inflection-complete"
MERGE_REASON_COMPOUND_VERB = "compound-verb-pattern"
_MERGE_REASONS = frozenset(
    {
        MERGE_REASON_NONE,
        MERGE_REASON_PUNCTUATION,
        MERGE_REASON_VERB_INFLECTION,
        MERGE_REASON_COMPOUND_VERB,
    }
)

SOURCE_NONE = "none"
SOURCE_DICTIONARY = "dictionary"
SOURCE_LANGUAGE_MODEL = "language-model"
_SOURCES = frozenset({SOURCE_NONE, SOURCE_DICTIONARY, SOURCE_LANGUAGE_MODEL})

UNAVAILABLE = "N/A"


@dataclass(frozen=True)
class RawUnit:
    """One morpheme as segmented by the analyzer."""

    surface: str
    reading: str = ""
    category: str = CATEGORY_OTHER
    sub_category: str = ""
    base_form: str = ""
    pronunciation: str = ""


@dataclass(frozen=True)
class MergedToken:
    """
    One or more RawUnits coalesced into a single semantic unit.

    ``constituents`` holds the absorbed RawUnits in order. It is kept for
    provenance only; the surface, reading and base form are what downstream
    consumers read.
    """

    surface: str
    reading: str
    category: str
    sub_category: str = ""
    detail: str = DETAIL_UNCHANGED
    base_form: str = ""
    pronunciation: str = ""
    constituents: tuple[RawUnit, ...] = ()
    merge_reason: str = MERGE_REASON_NONE
    inflection_count: int = 0

    @classmethod
    def from_unit(cls, unit: RawUnit) -> "MergedToken":
        return cls(
            surface=unit.surface,
            reading=unit.reading,
            category=unit.category,
            sub_category=unit.sub_category,
            base_form=unit.base_form,
            pronunciation=unit.pronunciation,
            constituents=(unit,),
        )

    @property
    def is_merged(self) -> bool:
        return self.merge_reason != MERGE_REASON_NONE


@dataclass(frozen=True)
class EnrichedToken:
    token: MergedToken
    translation: str = UNAVAILABLE
    contextual_meaning: str = UNAVAILABLE
    grammatical_role: str = UNAVAILABLE
    translation_source: str = SOURCE_NONE

    @property
    def surface(self) -> str:
        return self.token.surface

    @property
    def reading(self) -> str:
        return self.token.reading

    @property
    def category(self) -> str:
        return self.token.category


def as_merged_token(token: RawUnit | MergedToken) -> MergedToken:
    if isinstance(token, MergedToken):
        return token
    return MergedToken.from_unit(token)


def merge_token_group(
    group: Sequence[MergedToken],
    *,
    detail: str,
    merge_reason: str,
    base_form: str,
    inflection_count: int = 0,
) -> MergedToken:
    """Fold an ordered group into one token whose category is the head's."""
    head = group[0]
    constituents: list[RawUnit] = []
    for member in group:
        constituents.extend(member.constituents)
    return MergedToken(
        surface="".join(member.surface for member in group),
        reading="".join(member.reading or member.surface for member in group),
        category=head.category,
        sub_category=head.sub_category,
        detail=detail,
        base_form=base_form,
        pronunciation="".join(
            member.pronunciation or member.reading or member.surface for member in group
        ),
        constituents=tuple(constituents),
        merge_reason=merge_reason,
        inflection_count=inflection_count,
    )


def sentence_text(tokens: Iterable[RawUnit | MergedToken | EnrichedToken]) -> str:
    return "".join(token.surface for token in tokens)


def _str_field(entry: Mapping[str, object], key: str, default: str = "") -> str:
    value = entry.get(key)
    if isinstance(value, str):
        return value
    return default


def serialize_raw_units(units: Iterable[RawUnit]) -> list[dict[str, object]]:
    payload: list[dict[str, object]] = []
    for unit in units:
        payload.append(
            {
                "surface": unit.surface,
                "reading": unit.reading,
                "category": unit.category,
                "sub_category": unit.sub_category,
                "base_form": unit.base_form,
                "pronunciation": unit.pronunciation,
            }
        )
    return payload


def deserialize_raw_units(data: Iterable[Mapping[str, object]]) -> list[RawUnit]:
    units: list[RawUnit] = []
    for entry in data:
        if not isinstance(entry, Mapping):
            continue
        surface = entry.get("surface")
        if not isinstance(surface, str) or not surface:
            continue
        category = _str_field(entry, "category", CATEGORY_OTHER)
        if category not in CATEGORIES:
            category = CATEGORY_OTHER
        units.append(
            RawUnit(
                surface=surface,
                reading=_str_field(entry, "reading"),
                category=category,
                sub_category=_str_field(entry, "sub_category"),
                base_form=_str_field(entry, "base_form"),
                pronunciation=_str_field(entry, "pronunciation"),
            )
        )
    return units


def _serialize_merged_token(token: MergedToken) -> dict[str, object]:
    return {
        "surface": token.surface,
        "reading": token.reading,
        "category": token.category,
        "sub_category": token.sub_category,
        "detail": token.detail,
        "base_form": token.base_form,
        "pronunciation": token.pronunciation,
        "merge_reason": token.merge_reason,
        "inflection_count": token.inflection_count,
        "constituents": serialize_raw_units(token.constituents),
    }


def _deserialize_merged_token(entry: Mapping[str, object]) -> MergedToken | None:
    surface = entry.get("surface")
    if not isinstance(surface, str) or not surface:
        return None
    category = _str_field(entry, "category", CATEGORY_OTHER)
    if category not in CATEGORIES:
        category = CATEGORY_OTHER
    detail = _str_field(entry, "detail", DETAIL_UNCHANGED)
    if detail not in _DETAILS:
        detail = DETAIL_UNCHANGED
    reason = _str_field(entry, "merge_reason", MERGE_REASON_NONE)
    if reason not in _MERGE_REASONS:
        reason = MERGE_REASON_NONE
    count = entry.get("inflection_count")
    inflection_count = count if isinstance(count, int) and count >= 0 else 0
    raw_constituents = entry.get("constituents")
    constituents: tuple[RawUnit, ...] = ()
    if isinstance(raw_constituents, list):
        constituents = tuple(deserialize_raw_units(raw_constituents))
    return MergedToken(
        surface=surface,
        reading=_str_field(entry, "reading"),
        category=category,
        sub_category=_str_field(entry, "sub_category"),
        detail=detail,
        base_form=_str_field(entry, "base_form"),
        pronunciation=_str_field(entry, "pronunciation"),
        constituents=constituents,
        merge_reason=reason,
        inflection_count=inflection_count,
    )


def serialize_merged_tokens(tokens: Iterable[MergedToken]) -> list[dict[str, object]]:
    return [_serialize_merged_token(token) for token in tokens]


def deserialize_merged_tokens(data: Iterable[Mapping[str, object]]) -> list[MergedToken]:
    tokens: list[MergedToken] = []
    for entry in data:
        if not isinstance(entry, Mapping):
            continue
        token = _deserialize_merged_token(entry)
        if token is not None:
            tokens.append(token)
    return tokens


def serialize_enriched_tokens(tokens: Iterable[EnrichedToken]) -> list[dict[str, object]]:
    payload: list[dict[str, object]] = []
    for enriched in tokens:
        entry = _serialize_merged_token(enriched.token)
        entry["translation"] = enriched.translation
        entry["contextual_meaning"] = enriched.contextual_meaning
        entry["grammatical_role"] = enriched.grammatical_role
        entry["translation_source"] = enriched.translation_source
        payload.append(entry)
    return payload


def deserialize_enriched_tokens(data: Iterable[Mapping[str, object]]) -> list[EnrichedToken]:
    tokens: list[EnrichedToken] = []
    for entry in data:
        if not isinstance(entry, Mapping):
            continue
        token = _deserialize_merged_token(entry)
        if token is None:
            continue
        source = _str_field(entry, "translation_source", SOURCE_NONE)
        if source not in _SOURCES:
            source = SOURCE_NONE
        tokens.append(
            EnrichedToken(
                token=token,
                translation=_str_field(entry, "translation", UNAVAILABLE) or UNAVAILABLE,
                contextual_meaning=_str_field(entry, "contextual_meaning", UNAVAILABLE)
                or UNAVAILABLE,
                grammatical_role=_str_field(entry, "grammatical_role", UNAVAILABLE)
                or UNAVAILABLE,
                translation_source=source,
            )
        )
    return tokens
