from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Sequence

from .config import MergeOptions
from .enrich import MODE_ENHANCED, MODE_LOCAL, EnrichmentResult, TokenEnricher
from .logging_utils import debug_log
from .merge import merge_tokens
from .tokens import (
    CATEGORY_NOUN,
    CATEGORY_VERB,
    UNAVAILABLE,
    WORD_CATEGORIES,
    EnrichedToken,
    MergedToken,
    sentence_text,
)
from .timing import TimingUnit, TokenTiming, align_token_timings, timeline_duration

__all__ = [
    "PipelineError",
    "EmptySentenceError",
    "NoTokensError",
    "AnalyzerError",
    "SentenceAnalysis",
    "PlaybackSchedule",
    "LineFailure",
    "SentencePipeline",
    "split_into_sentences",
]


class PipelineError(RuntimeError):
    """Raised when a sentence produces no result at all."""


class EmptySentenceError(PipelineError):
    """Raised when the sentence text is empty."""


class NoTokensError(PipelineError):
    """Raised when the analyzer yields no units for a sentence."""


class AnalyzerError(PipelineError):
    """Raised when the morphological analyzer fails on a sentence."""


def split_into_sentences(text: str) -> list[str]:
    """Split on 。, keeping the terminator on every sentence that had one."""
    parts = text.split("。")
    sentences: list[str] = []
    for index, part in enumerate(parts):
        stripped = part.strip()
        if not stripped:
            continue
        sentences.append(stripped + "。" if index < len(parts) - 1 else stripped)
    return sentences


@dataclass
class SentenceAnalysis:
    text: str
    sentence_index: int
    tokens: list[EnrichedToken]
    full_translation: str = UNAVAILABLE
    has_ai_analysis: bool = False
    status: str = ""
    warnings: list[str] = field(default_factory=list)

    @property
    def merged_tokens(self) -> list[MergedToken]:
        return [enriched.token for enriched in self.tokens]

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)

    def summary(self) -> dict[str, int]:
        categories = [enriched.category for enriched in self.tokens]
        return {
            "totalTokens": len(categories),
            "words": sum(1 for category in categories if category in WORD_CATEGORIES),
            "nouns": categories.count(CATEGORY_NOUN),
            "verbs": categories.count(CATEGORY_VERB),
            "characters": len(self.text),
        }


@dataclass
class PlaybackSchedule:
    text: str
    tokens: list[MergedToken]
    timings: list[TokenTiming]
    duration: float
    audio: bytes = b""
    units: list[TimingUnit] = field(default_factory=list)
    used_fallback: bool = False


@dataclass
class LineFailure:
    index: int
    text: str
    error: str


def _status_message(mode: str, result: EnrichmentResult) -> str:
    if mode == MODE_LOCAL:
        return "Processed with local dictionary"
    if result.has_ai_analysis:
        return "Processed with AI translations"
    return "Processed with dictionary only (AI unavailable)"


class SentencePipeline:
    """
    Per-sentence workflow: analyze, merge, enrich and, for playback, align.

    ``analyzer`` needs ``analyze(text) -> list[RawUnit]``; ``speech`` needs
    ``synthesize_with_timings(text)`` returning an object with ``audio``,
    ``timings`` and ``duration``. Every call works on its own token list, so
    one pipeline may serve several sentences concurrently.
    """

    def __init__(
        self,
        analyzer,
        *,
        options: MergeOptions | None = None,
        enricher: TokenEnricher | None = None,
        speech=None,
    ) -> None:
        if options is not None and not isinstance(options, MergeOptions):
            raise TypeError("options must be a MergeOptions instance")
        self.analyzer = analyzer
        self.options = options or MergeOptions()
        self.enricher = enricher or TokenEnricher()
        self.speech = speech

    def merge(self, text: str) -> list[MergedToken]:
        if not text or not text.strip():
            raise EmptySentenceError("No text provided for processing")
        try:
            units = self.analyzer.analyze(text)
        except (RuntimeError, ValueError, OSError) as exc:
            raise AnalyzerError(f"Analyzer failed for sentence {text[:30]!r}: {exc}") from exc
        if not units:
            raise NoTokensError(f"No tokens available for sentence: {text[:30]!r}")
        tokens = merge_tokens(units, self.options)
        if sentence_text(tokens) != text:
            debug_log("pipeline", f"analyzer surfaces do not rebuild {text[:30]!r}")
        merged_count = sum(1 for token in tokens if token.is_merged)
        debug_log("pipeline", f"{len(units)} units -> {len(tokens)} tokens ({merged_count} merged)")
        return tokens

    def process(
        self,
        text: str,
        *,
        sentence_index: int = 0,
        mode: str = MODE_ENHANCED,
        previous_sentence: str | None = None,
        next_sentence: str | None = None,
    ) -> SentenceAnalysis:
        tokens = self.merge(text)
        result = self.enricher.enrich(
            tokens,
            text,
            mode=mode,
            previous_sentence=previous_sentence,
            next_sentence=next_sentence,
        )
        return SentenceAnalysis(
            text=text,
            sentence_index=sentence_index,
            tokens=result.tokens,
            full_translation=result.full_translation,
            has_ai_analysis=result.has_ai_analysis,
            status=_status_message(mode, result),
            warnings=list(result.warnings),
        )

    def process_lines(
        self,
        lines: Sequence[str],
        *,
        mode: str = MODE_LOCAL,
        jobs: int = 1,
        with_context: bool = False,
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> tuple[dict[int, SentenceAnalysis], list[LineFailure]]:
        """
        Process each line independently; a failing line is recorded and skipped.

        With ``with_context`` the neighbouring lines are passed to the
        language model as previous/next sentences.
        """
        total = len(lines)

        def _run(index: int) -> SentenceAnalysis:
            previous_line = lines[index - 1] if with_context and index > 0 else None
            next_line = lines[index + 1] if with_context and index + 1 < total else None
            return self.process(
                lines[index],
                sentence_index=index,
                mode=mode,
                previous_sentence=previous_line,
                next_sentence=next_line,
            )

        processed: dict[int, SentenceAnalysis] = {}
        failures: list[LineFailure] = []
        completed = 0
        workers = max(1, min(jobs, total or 1))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {index: executor.submit(_run, index) for index in range(total)}
            for index, future in futures.items():
                try:
                    processed[index] = future.result()
                except PipelineError as exc:
                    failures.append(LineFailure(index=index, text=lines[index], error=str(exc)))
                    debug_log("pipeline", f"line {index + 1} skipped: {exc}")
                completed += 1
                if progress_callback is not None:
                    progress_callback(completed, total)
        return processed, failures

    def align(
        self,
        text: str,
        units: Sequence[TimingUnit],
        duration: float | None = None,
        *,
        tokens: Sequence[MergedToken] | None = None,
        audio: bytes = b"",
    ) -> PlaybackSchedule:
        """
        Align already available timing units onto the tokens of ``text``.

        Timing problems never fail the call: with no usable timing units the
        schedule falls back to an even spread over ``duration``.
        """
        merged = list(tokens) if tokens is not None else self.merge(text)
        usable = [unit for unit in units if isinstance(unit, TimingUnit)]
        if not isinstance(duration, (int, float)) or isinstance(duration, bool):
            duration = None
        timings = align_token_timings(merged, usable, duration)
        return PlaybackSchedule(
            text=text,
            tokens=merged,
            timings=timings,
            duration=timeline_duration(usable, duration),
            audio=audio,
            units=usable,
            used_fallback=not usable,
        )

    def playback(
        self,
        text: str,
        tokens: Sequence[MergedToken] | None = None,
    ) -> PlaybackSchedule:
        """Synthesize ``text`` and align the speech timings onto its tokens."""
        if self.speech is None:
            raise PipelineError("No speech service configured for playback")
        merged = list(tokens) if tokens is not None else self.merge(text)
        speech = self.speech.synthesize_with_timings(text)
        return self.align(
            text,
            speech.timings or [],
            speech.duration,
            tokens=merged,
            audio=speech.audio or b"",
        )
