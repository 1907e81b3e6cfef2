from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Sequence

from .dictionary import DictionaryEntry
from .kana import katakana_to_hiragana
from .llm import TranslationAnalysis
from .logging_utils import debug_log
from .tokens import (
    SOURCE_DICTIONARY,
    SOURCE_LANGUAGE_MODEL,
    SOURCE_NONE,
    UNAVAILABLE,
    EnrichedToken,
    MergedToken,
    sentence_text,
)

__all__ = [
    "MODE_ENHANCED",
    "MODE_LOCAL",
    "EnrichmentWarning",
    "EnrichmentResult",
    "TokenEnricher",
]

MODE_ENHANCED = "enhanced"
MODE_LOCAL = "local"
_MODES = {MODE_ENHANCED, MODE_LOCAL}


class EnrichmentWarning(RuntimeWarning):
    """Issued when enrichment falls back to a degraded source."""


@dataclass
class EnrichmentResult:
    tokens: list[EnrichedToken]
    full_translation: str = UNAVAILABLE
    has_ai_analysis: bool = False
    warnings: list[str] = field(default_factory=list)


class TokenEnricher:
    """
    Attach translation metadata to merged tokens.

    ``dictionary`` needs ``lookup(surface, reading) -> list[DictionaryEntry]``
    and ``translator`` needs ``analyze(sentence, surfaces, previous_sentence,
    next_sentence) -> TranslationAnalysis``. Either may be None. Failures of
    either collaborator degrade the result instead of raising.
    """

    def __init__(self, dictionary=None, translator=None) -> None:
        self.dictionary = dictionary
        self.translator = translator

    def enrich(
        self,
        tokens: Sequence[MergedToken],
        sentence: str | None = None,
        *,
        mode: str = MODE_ENHANCED,
        previous_sentence: str | None = None,
        next_sentence: str | None = None,
    ) -> EnrichmentResult:
        if mode not in _MODES:
            raise ValueError("mode must be one of: enhanced, local")
        text = sentence if sentence is not None else sentence_text(tokens)
        notes: list[str] = []

        analysis: TranslationAnalysis | None = None
        if mode == MODE_ENHANCED and self.translator is not None:
            analysis = self._request_analysis(tokens, text, previous_sentence, next_sentence, notes)

        cache: dict[tuple[str, str], DictionaryEntry | None] = {}
        enriched: list[EnrichedToken] = []
        for token in tokens:
            key = (token.surface, token.reading)
            if key not in cache:
                cache[key] = self._lookup(token, notes)
            gloss = analysis.gloss_for(token.surface) if analysis is not None else None
            enriched.append(_merge_sources(token, cache[key], gloss))

        full_translation = UNAVAILABLE
        if analysis is not None and analysis.full_translation:
            full_translation = analysis.full_translation
        return EnrichmentResult(
            tokens=enriched,
            full_translation=full_translation,
            has_ai_analysis=analysis is not None,
            warnings=notes,
        )

    def _request_analysis(
        self,
        tokens: Sequence[MergedToken],
        text: str,
        previous_sentence: str | None,
        next_sentence: str | None,
        notes: list[str],
    ) -> TranslationAnalysis | None:
        surfaces = [token.surface for token in tokens]
        try:
            return self.translator.analyze(
                text,
                surfaces,
                previous_sentence=previous_sentence,
                next_sentence=next_sentence,
            )
        except Exception as exc:
            message = f"Language model analysis failed ({exc}); using dictionary only."
            debug_log("enrich", message)
            notes.append(message)
            warnings.warn(message, EnrichmentWarning, stacklevel=3)
            return None

    def _lookup(self, token: MergedToken, notes: list[str]) -> DictionaryEntry | None:
        if self.dictionary is None:
            return None
        try:
            entries = self.dictionary.lookup(token.surface, katakana_to_hiragana(token.reading))
        except Exception as exc:
            message = f"Dictionary lookup failed for {token.surface!r}: {exc}"
            debug_log("enrich", message)
            notes.append(message)
            return None
        if not entries:
            return None
        return entries[0]


def _merge_sources(token: MergedToken, entry: DictionaryEntry | None, gloss) -> EnrichedToken:
    translation = UNAVAILABLE
    source = SOURCE_NONE
    if gloss is not None and gloss.translation:
        translation = gloss.translation
        source = SOURCE_LANGUAGE_MODEL
    elif entry is not None and entry.meanings:
        translation = entry.meanings
        source = SOURCE_DICTIONARY

    contextual_meaning = UNAVAILABLE
    if gloss is not None and gloss.contextual_meaning:
        contextual_meaning = gloss.contextual_meaning

    grammatical_role = UNAVAILABLE
    if gloss is not None and gloss.grammatical_role:
        grammatical_role = gloss.grammatical_role
    elif entry is not None and entry.parts_of_speech:
        grammatical_role = ", ".join(entry.parts_of_speech)

    return EnrichedToken(
        token=token,
        translation=translation,
        contextual_meaning=contextual_meaning,
        grammatical_role=grammatical_role,
        translation_source=source,
    )
