from __future__ import annotations

from yomi.kana import has_kanji, hiragana_to_katakana, katakana_to_hiragana, normalize_kana
from yomi.tokens import (
    CATEGORY_OTHER,
    CATEGORY_VERB,
    DETAIL_UNCHANGED,
    SOURCE_LANGUAGE_MODEL,
    SOURCE_NONE,
    UNAVAILABLE,
    EnrichedToken,
    MergedToken,
    RawUnit,
    deserialize_enriched_tokens,
    deserialize_merged_tokens,
    deserialize_raw_units,
    serialize_enriched_tokens,
    serialize_merged_tokens,
)


def test_merged_token_from_unit_keeps_provenance() -> None:
    unit = RawUnit("走る", "ハシル", CATEGORY_VERB, "independent", "走る", "ハシル")

    token = MergedToken.from_unit(unit)

    assert token.surface == "走る"
    assert token.detail == DETAIL_UNCHANGED
    assert token.constituents == (unit,)
    assert not token.is_merged


def test_enriched_token_exposes_token_fields() -> None:
    enriched = EnrichedToken(token=MergedToken(surface="走る", reading="ハシル", category=CATEGORY_VERB))

    assert enriched.surface == "走る"
    assert enriched.reading == "ハシル"
    assert enriched.category == CATEGORY_VERB
    assert enriched.translation == UNAVAILABLE
    assert enriched.translation_source == SOURCE_NONE


def test_deserializers_drop_malformed_entries() -> None:
    units = deserialize_raw_units([{"surface": ""}, "junk", {"surface": "猫", "category": "alien"}])

    assert len(units) == 1
    assert units[0].category == CATEGORY_OTHER

    tokens = deserialize_merged_tokens(
        [{"surface": "猫", "detail": "weird", "merge_reason": "magic", "inflection_count": -3}, {}]
    )

    assert len(tokens) == 1
    assert tokens[0].detail == DETAIL_UNCHANGED
    assert tokens[0].inflection_count == 0


def test_enriched_tokens_survive_serialization() -> None:
    token = MergedToken(
        surface="走った",
        reading="ハシッタ",
        category=CATEGORY_VERB,
        base_form="走る",
        constituents=(RawUnit("走っ", "ハシッ", CATEGORY_VERB), RawUnit("た", "タ", "auxiliary-verb")),
        merge_reason="verb-inflection-complete",
        detail="inflected",
        inflection_count=1,
    )
    enriched = EnrichedToken(
        token=token,
        translation="ran",
        contextual_meaning="moved quickly",
        grammatical_role="verb, past",
        translation_source=SOURCE_LANGUAGE_MODEL,
    )

    assert deserialize_enriched_tokens(serialize_enriched_tokens([enriched])) == [enriched]
    assert deserialize_merged_tokens(serialize_merged_tokens([token])) == [token]


def test_kana_helpers() -> None:
    assert hiragana_to_katakana("たべる") == "タベル"
    assert katakana_to_hiragana("タベル") == "たべる"
    assert katakana_to_hiragana(None) == ""
    assert normalize_kana("ﾀﾍﾞﾙ") == "たべる"
    assert has_kanji("食べる")
    assert not has_kanji("たべる")
