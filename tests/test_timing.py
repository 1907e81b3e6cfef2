from __future__ import annotations

import pytest

from yomi.timing import (
    TimingUnit,
    TokenTiming,
    align_token_timings,
    deserialize_token_timings,
    distribute_evenly,
    parse_textgrid,
    resolve_timing_offsets,
    timing_stats,
    token_spans,
)
from yomi.tokens import (
    CATEGORY_NOUN,
    CATEGORY_PARTICLE,
    CATEGORY_PUNCTUATION,
    CATEGORY_VERB,
    MergedToken,
)


def _token(surface: str, category: str = CATEGORY_NOUN, reading: str | None = None) -> MergedToken:
    return MergedToken(surface=surface, reading=reading or surface, category=category)


def _sentence_tokens() -> list[MergedToken]:
    return [
        _token("私", reading="ワタシ"),
        _token("は", CATEGORY_PARTICLE),
        _token("食べた", CATEGORY_VERB, reading="タベタ"),
        _token("。", CATEGORY_PUNCTUATION),
    ]


def _assert_monotonic_and_unique(timings: list[TokenTiming]) -> None:
    starts = [timing.start_time for timing in timings]
    assert starts == sorted(starts)
    indices = [timing.token_index for timing in timings]
    assert len(indices) == len(set(indices))


def test_units_covering_one_token_collapse_to_its_extent() -> None:
    units = [
        TimingUnit(0.0, 0.5, text="食べ"),
        TimingUnit(0.5, 0.9, text="た"),
    ]

    timings = align_token_timings([_token("食べた", CATEGORY_VERB)], units)

    assert timings == [TokenTiming(token_index=0, start_time=0.0, end_time=0.9)]


def test_empty_units_spread_evenly_over_duration() -> None:
    tokens = [_token("私"), _token("は", CATEGORY_PARTICLE), _token("猫")]

    timings = align_token_timings(tokens, [], total_duration=3.0)

    assert [timing.token_index for timing in timings] == [0, 1, 2]
    assert [timing.start_time for timing in timings] == pytest.approx([0.0, 1.0, 2.0])
    assert [timing.end_time for timing in timings] == pytest.approx([1.0, 2.0, 3.0])
    for previous, current in zip(timings, timings[1:]):
        assert previous.end_time == current.start_time


def test_punctuation_tokens_get_no_timing() -> None:
    units = [
        TimingUnit(0.0, 0.3, text_start=0, text_end=1),
        TimingUnit(0.3, 0.4, text_start=1, text_end=2),
        TimingUnit(0.4, 0.9, text_start=2, text_end=5),
        TimingUnit(0.9, 1.2, text_start=5, text_end=6),
    ]

    timings = align_token_timings(_sentence_tokens(), units, total_duration=1.2)

    assert [timing.token_index for timing in timings] == [0, 1, 2]
    assert timings[2].start_time == pytest.approx(0.4)
    assert timings[2].end_time == pytest.approx(0.9)


def test_every_non_punctuation_token_is_covered_once() -> None:
    units = [
        TimingUnit(0.1, 0.4, text="ワタシ"),
        TimingUnit(0.6, 1.0, text="タベタ"),
    ]

    timings = align_token_timings(_sentence_tokens(), units, total_duration=1.5)

    assert sorted(timing.token_index for timing in timings) == [0, 1, 2]
    _assert_monotonic_and_unique(timings)


def test_gap_tokens_share_window_between_neighbours() -> None:
    tokens = [_token("私"), _token("は", CATEGORY_PARTICLE), _token("が", CATEGORY_PARTICLE), _token("猫")]
    units = [
        TimingUnit(0.0, 0.2, text_start=0, text_end=1),
        TimingUnit(0.8, 1.0, text_start=3, text_end=4),
    ]

    timings = align_token_timings(tokens, units, total_duration=1.0)
    by_index = {timing.token_index: timing for timing in timings}

    assert by_index[1].start_time == pytest.approx(0.2)
    assert by_index[1].end_time == pytest.approx(0.5)
    assert by_index[2].start_time == pytest.approx(0.5)
    assert by_index[2].end_time == pytest.approx(0.8)
    _assert_monotonic_and_unique(timings)


def test_trailing_gap_runs_to_total_duration() -> None:
    tokens = [_token("私"), _token("猫")]
    units = [TimingUnit(0.0, 0.4, text_start=0, text_end=1)]

    timings = align_token_timings(tokens, units, total_duration=1.0)

    assert timings[1] == TokenTiming(token_index=1, start_time=0.4, end_time=1.0)


def test_timings_are_clamped_to_duration() -> None:
    units = [TimingUnit(0.0, 2.0, text_start=0, text_end=1)]

    timings = align_token_timings([_token("私")], units, total_duration=1.5)

    assert timings[0].end_time == 1.5


def test_out_of_order_units_are_resorted_by_start() -> None:
    units = [
        TimingUnit(0.5, 0.8, text_start=0, text_end=1),
        TimingUnit(0.1, 0.3, text_start=1, text_end=2),
        TimingUnit(0.8, 1.2, text_start=2, text_end=5),
    ]

    timings = align_token_timings(_sentence_tokens(), units, total_duration=1.2)

    assert [timing.token_index for timing in timings] == [1, 0, 2]
    assert timings[0] == TokenTiming(token_index=1, start_time=0.1, end_time=0.3)
    _assert_monotonic_and_unique(timings)


def test_unit_spanning_two_tokens_next_to_a_gap() -> None:
    tokens = [_token("私"), _token("は", CATEGORY_PARTICLE), _token("が", CATEGORY_PARTICLE), _token("猫")]
    units = [
        TimingUnit(0.0, 0.6, text_start=0, text_end=2),
        TimingUnit(0.9, 1.2, text_start=3, text_end=4),
    ]

    timings = align_token_timings(tokens, units, total_duration=1.2)
    by_index = {timing.token_index: timing for timing in timings}

    assert by_index[0] == TokenTiming(token_index=0, start_time=0.0, end_time=0.6)
    assert by_index[1] == TokenTiming(token_index=1, start_time=0.0, end_time=0.6)
    assert by_index[2].start_time == pytest.approx(0.6)
    assert by_index[2].end_time == pytest.approx(0.9)
    assert by_index[3] == TokenTiming(token_index=3, start_time=0.9, end_time=1.2)
    _assert_monotonic_and_unique(timings)


def test_negative_duration_is_ignored() -> None:
    tokens = [_token("私"), _token("猫")]

    timings = align_token_timings(
        tokens,
        [TimingUnit(0.2, 0.5, text_start=0, text_end=1)],
        total_duration=-1.0,
    )

    assert timings[0] == TokenTiming(token_index=0, start_time=0.2, end_time=0.5)
    assert timings[1] == TokenTiming(token_index=1, start_time=0.5, end_time=0.5)
    fallback = align_token_timings(tokens, [], total_duration=-1.0)
    assert all(timing.start_time >= 0 and timing.end_time >= 0 for timing in fallback)


def test_implicit_units_fall_back_to_single_characters() -> None:
    resolved = resolve_timing_offsets(
        "食べた",
        [TimingUnit(0.0, 0.2, text="タ"), TimingUnit(0.2, 0.4, text="ベ"), TimingUnit(0.4, 0.6, text="タ")],
    )

    assert [(unit.text_start, unit.text_end) for unit in resolved] == [(0, 1), (1, 2), (2, 3)]


def test_implicit_units_match_kana_across_scripts() -> None:
    resolved = resolve_timing_offsets(
        "たべた",
        [TimingUnit(0.0, 0.2, text="タベ"), TimingUnit(0.2, 0.4, text="タ")],
    )

    assert [(unit.text_start, unit.text_end) for unit in resolved] == [(0, 2), (2, 3)]


def test_units_past_end_of_sentence_are_dropped() -> None:
    resolved = resolve_timing_offsets(
        "猫",
        [TimingUnit(0.0, 0.2, text="ネ"), TimingUnit(0.2, 0.4, text="コ")],
    )

    assert len(resolved) == 1


def test_token_spans_skip_punctuation_but_keep_offsets() -> None:
    spans = token_spans(_sentence_tokens())

    assert [(span.index, span.start, span.end) for span in spans] == [
        (0, 0, 1),
        (1, 1, 2),
        (2, 2, 5),
    ]


def test_distribute_evenly_ends_exactly_at_window_end() -> None:
    timings = distribute_evenly([4, 5, 6], 0.0, 1.0)

    assert timings[-1].end_time == 1.0
    assert timings[0].token_index == 4


def test_timing_unit_rejects_reversed_interval() -> None:
    with pytest.raises(ValueError):
        TimingUnit(1.0, 0.5)


def test_timing_unit_requires_both_offsets() -> None:
    with pytest.raises(ValueError):
        TimingUnit(0.0, 0.5, text_start=0)


def test_timing_stats() -> None:
    stats = timing_stats([TimingUnit(0.0, 0.5), TimingUnit(0.5, 1.5)])

    assert stats.total_units == 2
    assert stats.total_duration == 1.5
    assert stats.average_unit_duration == pytest.approx(0.75)


def test_parse_textgrid_reads_named_tier() -> None:
    content = """File type = "ooTextFile"
Object class = "TextGrid"

xmin = 0
xmax = 1.2
tiers? <exists>
size = 2
item []:
    item [1]:
        class = "IntervalTier"
        name = "words"
        xmin = 0
        xmax = 1.2
        intervals: size = 3
        intervals [1]:
            xmin = 0
            xmax = 0.1
            text = ""
        intervals [2]:
            xmin = 0.1
            xmax = 0.6
            text = "私"
        intervals [3]:
            xmin = 0.6
            xmax = 1.2
            text = "は"
    item [2]:
        class = "IntervalTier"
        name = "phones"
        xmin = 0
        xmax = 1.2
        intervals: size = 1
        intervals [1]:
            xmin = 0
            xmax = 1.2
            text = "w a t a"
"""

    words = parse_textgrid(content)
    phones = parse_textgrid(content, tier="phones")

    assert [(unit.start_time, unit.end_time, unit.text) for unit in words] == [
        (0.1, 0.6, "私"),
        (0.6, 1.2, "は"),
    ]
    assert [unit.text for unit in phones] == ["w a t a"]
    assert parse_textgrid(content, tier="missing") == []


def test_deserialize_token_timings_drops_duplicates() -> None:
    timings = deserialize_token_timings(
        [
            {"token_index": 1, "start_time": 0.5, "end_time": 1.0},
            {"token_index": 0, "start_time": 0.0, "end_time": 0.5},
            {"token_index": 1, "start_time": 0.7, "end_time": 0.9},
            {"token_index": "x", "start_time": 0.0, "end_time": 0.1},
        ]
    )

    assert [timing.token_index for timing in timings] == [0, 1]
    assert timings[1].start_time == 0.5
