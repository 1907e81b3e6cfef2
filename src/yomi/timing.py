from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Mapping, Optional, Sequence

from .kana import normalize_kana
from .logging_utils import debug_log
from .tokens import CATEGORY_PUNCTUATION, MergedToken, sentence_text

__all__ = [
    "TimingUnit",
    "TokenTiming",
    "TokenSpan",
    "TimingStats",
    "token_spans",
    "resolve_timing_offsets",
    "align_token_timings",
    "distribute_evenly",
    "even_distribution_fallback",
    "timeline_duration",
    "timing_stats",
    "parse_textgrid",
    "serialize_timing_units",
    "deserialize_timing_units",
    "serialize_token_timings",
    "deserialize_token_timings",
]

# How many sentence characters a kana-normalized match may cover.
_LOOKAHEAD_CHARS = 3


@dataclass(frozen=True)
class TimingUnit:
    """
    One time interval reported by a speech or alignment service.

    The text span is either explicit (``text_start``/``text_end`` offsets into
    the sentence) or implicit (``text``), in which case it is located by
    :func:`resolve_timing_offsets`.
    """

    start_time: float
    end_time: float
    text_start: int | None = None
    text_end: int | None = None
    text: str | None = None

    def __post_init__(self) -> None:
        if self.end_time < self.start_time:
            raise ValueError(
                f"TimingUnit end_time {self.end_time} precedes start_time {self.start_time}"
            )
        if (self.text_start is None) != (self.text_end is None):
            raise ValueError("text_start and text_end must be given together")
        if self.text_start is not None and self.text_end is not None:
            if self.text_start < 0 or self.text_end < self.text_start:
                raise ValueError(
                    f"Invalid text span [{self.text_start}, {self.text_end})"
                )

    @property
    def has_offsets(self) -> bool:
        return self.text_start is not None and self.text_end is not None


@dataclass(frozen=True)
class TokenTiming:
    token_index: int
    start_time: float
    end_time: float


@dataclass(frozen=True)
class TokenSpan:
    index: int
    start: int
    end: int


@dataclass(frozen=True)
class TimingStats:
    total_units: int
    total_duration: float
    average_unit_duration: float


def token_spans(
    tokens: Sequence[MergedToken],
    *,
    include_punctuation: bool = False,
) -> list[TokenSpan]:
    """Character spans of each token, accumulated over every preceding token."""
    spans: list[TokenSpan] = []
    offset = 0
    for index, token in enumerate(tokens):
        end = offset + len(token.surface)
        if include_punctuation or token.category != CATEGORY_PUNCTUATION:
            spans.append(TokenSpan(index=index, start=offset, end=end))
        offset = end
    return spans


_SpanMatcher = Callable[[str, str], Optional[int]]


def _match_exact(remaining: str, fragment: str) -> int | None:
    if fragment and remaining.startswith(fragment):
        return len(fragment)
    return None


def _match_normalized(remaining: str, fragment: str) -> int | None:
    if not fragment:
        return None
    target = normalize_kana(fragment)
    for length in range(1, min(_LOOKAHEAD_CHARS, len(remaining)) + 1):
        if normalize_kana(remaining[:length]) == target:
            return length
    return None


def _match_single_char(remaining: str, fragment: str) -> int | None:
    return 1


_MATCH_STRATEGIES: tuple[_SpanMatcher, ...] = (
    _match_exact,
    _match_normalized,
    _match_single_char,
)


def resolve_timing_offsets(sentence: str, units: Iterable[TimingUnit]) -> list[TimingUnit]:
    """
    Give every unit explicit offsets into ``sentence``.

    Implicit units are matched against the unconsumed remainder of the
    sentence at a cursor, trying each strategy in ``_MATCH_STRATEGIES`` in
    turn. Units that arrive after the sentence is exhausted are dropped.
    """
    resolved: list[TimingUnit] = []
    cursor = 0
    for unit in units:
        if unit.has_offsets:
            resolved.append(unit)
            cursor = max(cursor, unit.text_end or 0)
            continue
        if cursor >= len(sentence):
            debug_log("timing", f"dropping unit {unit.text!r}: sentence exhausted")
            continue
        remaining = sentence[cursor:]
        fragment = unit.text or ""
        length = 1
        for strategy in _MATCH_STRATEGIES:
            matched = strategy(remaining, fragment)
            if matched is not None:
                length = matched
                break
        resolved.append(replace(unit, text_start=cursor, text_end=cursor + length))
        cursor += length
    return resolved


def timeline_duration(units: Iterable[TimingUnit], total_duration: float | None = None) -> float:
    if total_duration is not None and total_duration >= 0:
        return float(total_duration)
    ends = [unit.end_time for unit in units]
    return max(ends) if ends else 0.0


def distribute_evenly(indices: Sequence[int], start: float, end: float) -> list[TokenTiming]:
    """Split ``[start, end]`` into equal contiguous slots, one per index."""
    if not indices:
        return []
    end = max(start, end)
    step = (end - start) / len(indices)
    timings: list[TokenTiming] = []
    for position, index in enumerate(indices):
        slot_start = start + position * step
        slot_end = end if position == len(indices) - 1 else start + (position + 1) * step
        timings.append(TokenTiming(token_index=index, start_time=slot_start, end_time=slot_end))
    return timings


def even_distribution_fallback(
    tokens: Sequence[MergedToken],
    total_duration: float,
) -> list[TokenTiming]:
    indices = [span.index for span in token_spans(tokens)]
    return distribute_evenly(indices, 0.0, total_duration)


def _clamp(timings: list[TokenTiming], limit: float | None) -> list[TokenTiming]:
    if limit is None or limit < 0:
        return timings
    return [
        TokenTiming(
            token_index=timing.token_index,
            start_time=min(timing.start_time, limit),
            end_time=min(timing.end_time, limit),
        )
        for timing in timings
    ]


def align_token_timings(
    tokens: Sequence[MergedToken],
    units: Sequence[TimingUnit],
    total_duration: float | None = None,
) -> list[TokenTiming]:
    """
    Map timing units onto merged token spans.

    Each non-punctuation token takes the earliest start and latest end of
    the units overlapping its character span. Runs of tokens with no
    overlapping unit share the time between their aligned neighbours evenly.
    Without any usable unit the whole timeline is shared evenly.
    """
    targets = token_spans(tokens)
    resolved = resolve_timing_offsets(sentence_text(tokens), units)
    duration = timeline_duration(resolved, total_duration)
    if not targets:
        return []
    if not resolved:
        debug_log("timing", f"no timing units; spreading {len(targets)} tokens over {duration:.3f}s")
        return _clamp(even_distribution_fallback(tokens, duration), total_duration)

    intervals: list[tuple[float, float] | None] = []
    for span in targets:
        overlapping = [
            unit
            for unit in resolved
            if (unit.text_start or 0) < span.end and (unit.text_end or 0) > span.start
        ]
        if overlapping:
            intervals.append(
                (
                    min(unit.start_time for unit in overlapping),
                    max(unit.end_time for unit in overlapping),
                )
            )
        else:
            intervals.append(None)

    timings: list[TokenTiming] = []
    position = 0
    while position < len(targets):
        interval = intervals[position]
        if interval is not None:
            timings.append(
                TokenTiming(
                    token_index=targets[position].index,
                    start_time=interval[0],
                    end_time=interval[1],
                )
            )
            position += 1
            continue
        gap_start = position
        while position < len(targets) and intervals[position] is None:
            position += 1
        previous = intervals[gap_start - 1] if gap_start > 0 else None
        following = intervals[position] if position < len(targets) else None
        window_start = previous[1] if previous is not None else 0.0
        window_end = following[0] if following is not None else max(duration, window_start)
        gap_indices = [span.index for span in targets[gap_start:position]]
        debug_log(
            "timing",
            f"gap over tokens {gap_indices}: {window_start:.3f}s-{window_end:.3f}s",
        )
        timings.extend(distribute_evenly(gap_indices, window_start, window_end))

    timings = _clamp(timings, total_duration)
    timings.sort(key=lambda timing: timing.start_time)
    return timings


def timing_stats(units: Sequence[TimingUnit]) -> TimingStats:
    if not units:
        return TimingStats(total_units=0, total_duration=0.0, average_unit_duration=0.0)
    total = max(unit.end_time for unit in units)
    return TimingStats(
        total_units=len(units),
        total_duration=total,
        average_unit_duration=total / len(units),
    )


_TEXTGRID_FIELD = re.compile(r'^(?P<key>\w+)\s*=\s*(?P<value>.*)$')


def _textgrid_string(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        value = value[1:-1]
    return value.replace('""', '"')


def parse_textgrid(content: str, tier: str | None = None) -> list[TimingUnit]:
    """
    Read the intervals of one interval tier from a long-format Praat TextGrid.

    ``tier`` selects a tier by name; by default the first interval tier is
    used. Empty intervals (silences) are skipped. The returned units carry
    implicit text and are resolved against the sentence during alignment.
    """
    tiers: list[tuple[str, list[TimingUnit]]] = []
    current: list[TimingUnit] | None = None
    in_interval = False
    xmin: float | None = None
    xmax: float | None = None
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if line.startswith("class ="):
            if _textgrid_string(line.split("=", 1)[1]) == "IntervalTier":
                current = []
                tiers.append(("", current))
            else:
                current = None
            in_interval = False
            continue
        if current is None:
            continue
        if line.startswith("intervals ["):
            in_interval = True
            xmin = xmax = None
            continue
        match = _TEXTGRID_FIELD.match(line)
        if not match:
            continue
        key = match.group("key")
        value = match.group("value")
        if not in_interval:
            if key == "name":
                tiers[-1] = (_textgrid_string(value), current)
            continue
        try:
            if key == "xmin":
                xmin = float(value)
            elif key == "xmax":
                xmax = float(value)
        except ValueError:
            continue
        if key == "text":
            text = _textgrid_string(value)
            if text.strip() and xmin is not None and xmax is not None and xmax >= xmin:
                current.append(TimingUnit(start_time=xmin, end_time=xmax, text=text))
            in_interval = False
    for name, units in tiers:
        if tier is None or name == tier:
            return units
    return []


def serialize_timing_units(units: Iterable[TimingUnit]) -> list[dict[str, object]]:
    payload: list[dict[str, object]] = []
    for unit in units:
        payload.append(
            {
                "start_time": unit.start_time,
                "end_time": unit.end_time,
                "text_start": unit.text_start,
                "text_end": unit.text_end,
                "text": unit.text,
            }
        )
    return payload


def _number(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def deserialize_timing_units(data: Iterable[Mapping[str, object]]) -> list[TimingUnit]:
    """Rebuild timing units, skipping malformed entries."""
    units: list[TimingUnit] = []
    for entry in data:
        if not isinstance(entry, Mapping):
            continue
        start = _number(entry.get("start_time"))
        end = _number(entry.get("end_time"))
        if start is None or end is None or end < start:
            continue
        text_start = entry.get("text_start")
        text_end = entry.get("text_end")
        if not (isinstance(text_start, int) and isinstance(text_end, int)):
            text_start = text_end = None
        elif text_start < 0 or text_end < text_start:
            continue
        text = entry.get("text")
        units.append(
            TimingUnit(
                start_time=start,
                end_time=end,
                text_start=text_start,
                text_end=text_end,
                text=text if isinstance(text, str) else None,
            )
        )
    return units


def serialize_token_timings(timings: Iterable[TokenTiming]) -> list[dict[str, object]]:
    return [
        {
            "token_index": timing.token_index,
            "start_time": timing.start_time,
            "end_time": timing.end_time,
        }
        for timing in timings
    ]


def deserialize_token_timings(data: Iterable[Mapping[str, object]]) -> list[TokenTiming]:
    timings: list[TokenTiming] = []
    seen: set[int] = set()
    for entry in data:
        if not isinstance(entry, Mapping):
            continue
        index = entry.get("token_index")
        start = _number(entry.get("start_time"))
        end = _number(entry.get("end_time"))
        if not isinstance(index, int) or start is None or end is None or index in seen:
            continue
        seen.add(index)
        timings.append(TokenTiming(token_index=index, start_time=start, end_time=end))
    timings.sort(key=lambda timing: timing.start_time)
    return timings
