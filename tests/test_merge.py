from __future__ import annotations

import pytest

from yomi.config import MergeOptions
from yomi.merge import (
    coalesce_punctuation,
    detect_compound_verbs,
    merge_tokens,
    merge_verb_inflections,
)
from yomi.tokens import (
    CATEGORY_AUXILIARY_VERB,
    CATEGORY_NOUN,
    CATEGORY_OTHER,
    CATEGORY_PARTICLE,
    CATEGORY_PUNCTUATION,
    CATEGORY_VERB,
    DETAIL_COMPOUND,
    DETAIL_INFLECTED,
    DETAIL_MERGED_PUNCTUATION,
    DETAIL_UNCHANGED,
    MERGE_REASON_COMPOUND_VERB,
    MERGE_REASON_NONE,
    MERGE_REASON_PUNCTUATION,
    MERGE_REASON_VERB_INFLECTION,
    SUB_CASE_PARTICLE,
    SUB_CONNECTIVE_PARTICLE,
    SUB_INDEPENDENT,
    SUB_NON_INDEPENDENT,
    SUB_SUFFIX,
    RawUnit,
    sentence_text,
)


def _unit(
    surface: str,
    category: str,
    sub_category: str = "",
    *,
    reading: str | None = None,
    base_form: str | None = None,
) -> RawUnit:
    return RawUnit(
        surface=surface,
        reading=reading if reading is not None else surface,
        category=category,
        sub_category=sub_category,
        base_form=base_form if base_form is not None else surface,
        pronunciation=reading if reading is not None else surface,
    )


def _tabeta() -> list[RawUnit]:
    return [
        _unit("食べ", CATEGORY_VERB, SUB_INDEPENDENT, reading="タベ", base_form="食べる"),
        _unit("た", CATEGORY_AUXILIARY_VERB, reading="タ", base_form="た"),
    ]


def _sample_sentence() -> list[RawUnit]:
    return [
        _unit("「", CATEGORY_PUNCTUATION),
        _unit("私", CATEGORY_NOUN, reading="ワタシ"),
        _unit("は", CATEGORY_PARTICLE),
        _unit("ご飯", CATEGORY_NOUN, reading="ゴハン"),
        _unit("を", CATEGORY_PARTICLE),
        _unit("食べ", CATEGORY_VERB, SUB_INDEPENDENT, reading="タベ", base_form="食べる"),
        _unit("て", CATEGORY_PARTICLE, SUB_CONNECTIVE_PARTICLE, reading="テ"),
        _unit("い", CATEGORY_VERB, SUB_NON_INDEPENDENT, reading="イ", base_form="いる"),
        _unit("ます", CATEGORY_AUXILIARY_VERB, reading="マス"),
        _unit("。", CATEGORY_PUNCTUATION),
        _unit("」", CATEGORY_PUNCTUATION),
        _unit("と", CATEGORY_PARTICLE, SUB_CONNECTIVE_PARTICLE),
        _unit("言っ", CATEGORY_VERB, SUB_INDEPENDENT, reading="イッ", base_form="言う"),
        _unit("た", CATEGORY_AUXILIARY_VERB),
        _unit("。", CATEGORY_PUNCTUATION),
    ]


def test_verb_absorbs_past_tense_ending() -> None:
    tokens = merge_tokens(_tabeta())

    assert len(tokens) == 1
    token = tokens[0]
    assert token.surface == "食べた"
    assert token.reading == "タベタ"
    assert token.category == CATEGORY_VERB
    assert token.detail == DETAIL_INFLECTED
    assert token.merge_reason == MERGE_REASON_VERB_INFLECTION
    assert token.inflection_count == 1
    assert token.base_form == "食べる"
    assert [unit.surface for unit in token.constituents] == ["食べ", "た"]


def test_punctuation_run_becomes_one_token() -> None:
    tokens = merge_tokens([_unit("。", CATEGORY_PUNCTUATION), _unit("「", CATEGORY_PUNCTUATION)])

    assert len(tokens) == 1
    assert tokens[0].surface == "。「"
    assert tokens[0].detail == DETAIL_MERGED_PUNCTUATION
    assert tokens[0].merge_reason == MERGE_REASON_PUNCTUATION
    assert tokens[0].category == CATEGORY_PUNCTUATION


def test_single_punctuation_passes_through() -> None:
    tokens = coalesce_punctuation(
        [_unit("私", CATEGORY_NOUN), _unit("。", CATEGORY_PUNCTUATION)]
    )

    assert [token.surface for token in tokens] == ["私", "。"]
    assert tokens[1].detail == DETAIL_UNCHANGED
    assert tokens[1].merge_reason == MERGE_REASON_NONE


def test_coalescing_is_idempotent() -> None:
    once = coalesce_punctuation(_sample_sentence())
    twice = coalesce_punctuation(once)

    assert twice == once


def test_verb_group_extends_through_continuations() -> None:
    tokens = merge_tokens(_sample_sentence())
    surfaces = [token.surface for token in tokens]

    assert surfaces == ["「", "私", "は", "ご飯", "を", "食べています", "。」", "と", "言った", "。"]
    verb = tokens[5]
    assert verb.inflection_count == 3
    assert verb.base_form == "食べる"
    assert verb.sub_category == SUB_INDEPENDENT


def test_to_particle_is_not_absorbed() -> None:
    tokens = merge_verb_inflections(
        [
            _unit("言う", CATEGORY_VERB, SUB_INDEPENDENT),
            _unit("と", CATEGORY_PARTICLE, SUB_CONNECTIVE_PARTICLE),
        ]
    )

    assert [token.surface for token in tokens] == ["言う", "と"]


def test_group_stops_at_first_non_matching_token() -> None:
    tokens = merge_verb_inflections(
        [
            _unit("食べ", CATEGORY_VERB, SUB_INDEPENDENT),
            _unit("た", CATEGORY_AUXILIARY_VERB),
            _unit("ご飯", CATEGORY_NOUN),
            _unit("た", CATEGORY_AUXILIARY_VERB),
        ]
    )

    assert [token.surface for token in tokens] == ["食べた", "ご飯", "た"]


def test_inflection_toggle_controls_list_only_endings() -> None:
    units = [
        _unit("食べ", CATEGORY_VERB, SUB_INDEPENDENT),
        _unit("た", CATEGORY_OTHER),
    ]
    only_inflections = MergeOptions(
        merge_auxiliary_verbs=False,
        merge_verb_particles=False,
        merge_verb_suffixes=False,
        merge_all_inflections=True,
        merge_punctuation=False,
    )

    assert [token.surface for token in merge_tokens(units, only_inflections)] == ["食べた"]
    assert [token.surface for token in merge_tokens(units, MergeOptions.all_disabled())] == [
        "食べ",
        "た",
    ]


def test_disabling_inflections_alone_keeps_list_only_ending_separate() -> None:
    units = [
        _unit("食べ", CATEGORY_VERB, SUB_INDEPENDENT),
        _unit("ます", CATEGORY_OTHER),
    ]
    options = MergeOptions(merge_all_inflections=False)

    assert [token.surface for token in merge_tokens(units, options)] == ["食べ", "ます"]
    assert [token.surface for token in merge_tokens(units)] == ["食べます"]


def test_all_toggles_disabled_keeps_every_unit() -> None:
    units = [
        _unit("「", CATEGORY_PUNCTUATION),
        _unit("猫", CATEGORY_NOUN, reading="ネコ"),
        _unit("が", CATEGORY_PARTICLE, SUB_CASE_PARTICLE),
        _unit("寝", CATEGORY_VERB, SUB_INDEPENDENT, reading="ネ", base_form="寝る"),
        _unit("まし", CATEGORY_AUXILIARY_VERB, reading="マシ"),
        _unit("た", CATEGORY_AUXILIARY_VERB, reading="タ"),
        _unit("。", CATEGORY_PUNCTUATION),
        _unit("」", CATEGORY_PUNCTUATION),
    ]
    tokens = merge_tokens(units, MergeOptions.all_disabled())

    assert [token.surface for token in tokens] == [unit.surface for unit in units]
    assert all(not token.is_merged for token in tokens)


def test_all_toggles_disabled_still_joins_dependent_continuations() -> None:
    tokens = merge_tokens(_sample_sentence(), MergeOptions.all_disabled())

    assert [token.surface for token in tokens] == [
        "「",
        "私",
        "は",
        "ご飯",
        "を",
        "食べてい",
        "ます",
        "。",
        "」",
        "と",
        "言っ",
        "た",
        "。",
    ]
    assert tokens[5].inflection_count == 2


def test_non_independent_verb_merges_with_suffix_toggle_off() -> None:
    units = [
        _unit("書き", CATEGORY_VERB, SUB_INDEPENDENT, base_form="書く"),
        _unit("始める", CATEGORY_VERB, SUB_NON_INDEPENDENT),
    ]

    tokens = merge_tokens(units, MergeOptions(merge_verb_suffixes=False))

    assert [token.surface for token in tokens] == ["書き始める"]
    assert tokens[0].base_form == "書く"


def test_verb_suffix_merges_regardless_of_suffix_toggle() -> None:
    units = [
        _unit("書き", CATEGORY_VERB, SUB_INDEPENDENT),
        _unit("まくる", CATEGORY_VERB, SUB_SUFFIX),
    ]

    assert [token.surface for token in merge_tokens(units)] == ["書きまくる"]
    assert [
        token.surface
        for token in merge_tokens(units, MergeOptions(merge_verb_suffixes=False))
    ] == ["書きまくる"]


def test_connective_particle_merges_with_particle_toggle_off() -> None:
    units = [
        _unit("食べ", CATEGORY_VERB, SUB_INDEPENDENT, base_form="食べる"),
        _unit("ながら", CATEGORY_PARTICLE, SUB_CONNECTIVE_PARTICLE),
    ]

    assert [
        token.surface
        for token in merge_tokens(units, MergeOptions(merge_verb_particles=False))
    ] == ["食べながら"]


def test_particle_toggle_controls_particles_without_connective_sub_category() -> None:
    units = [
        _unit("食べ", CATEGORY_VERB, SUB_INDEPENDENT),
        _unit("ながら", CATEGORY_PARTICLE),
    ]

    assert [token.surface for token in merge_tokens(units)] == ["食べながら"]
    assert [
        token.surface
        for token in merge_tokens(units, MergeOptions(merge_verb_particles=False))
    ] == ["食べ", "ながら"]


def test_custom_predicate_extends_group() -> None:
    options = MergeOptions(
        merge_auxiliary_verbs=False,
        merge_verb_particles=False,
        merge_verb_suffixes=False,
        merge_all_inflections=False,
        merge_punctuation=False,
        custom_predicates=(lambda token, head: token.surface == "ちゃう" and head.surface == "食べ",),
    )
    tokens = merge_tokens(
        [_unit("食べ", CATEGORY_VERB, SUB_INDEPENDENT), _unit("ちゃう", CATEGORY_OTHER)],
        options,
    )

    assert [token.surface for token in tokens] == ["食べちゃう"]
    assert tokens[0].inflection_count == 1


def test_compound_detection_pairs_verbs() -> None:
    units = [
        _unit("書き", CATEGORY_VERB, SUB_INDEPENDENT, base_form="書く"),
        _unit("込む", CATEGORY_VERB, SUB_INDEPENDENT, base_form="込む"),
    ]
    tokens = detect_compound_verbs(units)

    assert len(tokens) == 1
    assert tokens[0].surface == "書き込む"
    assert tokens[0].detail == DETAIL_COMPOUND
    assert tokens[0].merge_reason == MERGE_REASON_COMPOUND_VERB
    assert tokens[0].base_form == "書く込む"


def test_compound_detection_is_off_by_default() -> None:
    units = [
        _unit("書き", CATEGORY_VERB, SUB_INDEPENDENT),
        _unit("込む", CATEGORY_VERB, SUB_INDEPENDENT),
    ]

    assert [token.surface for token in merge_tokens(units)] == ["書き", "込む"]
    merged = merge_tokens(units, MergeOptions(use_compound_detection=True))
    assert [token.surface for token in merged] == ["書き込む"]


@pytest.mark.parametrize(
    "options",
    [
        MergeOptions(),
        MergeOptions.all_disabled(),
        MergeOptions(use_compound_detection=True),
        MergeOptions(merge_punctuation=False),
        MergeOptions(merge_verb_particles=False, merge_auxiliary_verbs=False),
    ],
)
def test_merging_conserves_text(options: MergeOptions) -> None:
    units = _sample_sentence()

    assert sentence_text(merge_tokens(units, options)) == sentence_text(units)


def test_merge_options_reject_non_bool_toggle() -> None:
    with pytest.raises(TypeError):
        MergeOptions(merge_punctuation="yes")  # type: ignore[arg-type]


def test_merge_options_reject_non_callable_predicate() -> None:
    with pytest.raises(TypeError):
        MergeOptions(custom_predicates=("nope",))  # type: ignore[arg-type]
