from __future__ import annotations

import json
from bisect import bisect_left
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

from .kana import katakana_to_hiragana
from .logging_utils import debug_log

__all__ = [
    "DictionaryEntry",
    "DictionaryLookupError",
    "JMDictionary",
    "DEFAULT_CANDIDATE_LIMIT",
]

DEFAULT_CANDIDATE_LIMIT = 3


class DictionaryLookupError(RuntimeError):
    """Raised when a dictionary file cannot be loaded or queried."""


@dataclass(frozen=True)
class DictionaryEntry:
    word: str
    reading: str
    meanings: str
    parts_of_speech: tuple[str, ...] = ()
    source: str = "JMdict"


def _gloss_text(gloss: object) -> str:
    if isinstance(gloss, str):
        return gloss
    if isinstance(gloss, Mapping):
        for key in ("text", "value"):
            value = gloss.get(key)
            if isinstance(value, str):
                return value
    return str(gloss)


def _entry_meanings(senses: object) -> tuple[str, tuple[str, ...]]:
    if not isinstance(senses, list):
        return "", ()
    joined: list[str] = []
    parts_of_speech: tuple[str, ...] = ()
    for index, sense in enumerate(senses):
        if not isinstance(sense, Mapping):
            continue
        if index == 0:
            pos = sense.get("partOfSpeech")
            if isinstance(pos, list):
                parts_of_speech = tuple(str(item) for item in pos if item)
        glosses = sense.get("gloss")
        if not isinstance(glosses, list) or not glosses:
            continue
        joined.append(", ".join(_gloss_text(gloss) for gloss in glosses))
    return "; ".join(joined), parts_of_speech


def _forms(word: Mapping[str, object], key: str) -> list[str]:
    values = word.get(key)
    forms: list[str] = []
    if isinstance(values, list):
        for item in values:
            if isinstance(item, Mapping) and isinstance(item.get("text"), str):
                forms.append(item["text"])  # type: ignore[arg-type]
    return forms


class JMDictionary:
    """
    In-memory lookup over a jmdict-simplified JSON export.

    Words are indexed by kanji form and by kana form (kana folded to
    hiragana). A lookup returns exact matches first, then forms that begin
    with the key, capped at ``limit`` candidates.
    """

    def __init__(self, words: Iterable[Mapping[str, object]]) -> None:
        self._entries: list[DictionaryEntry] = []
        kanji_index: dict[str, list[int]] = {}
        kana_index: dict[str, list[int]] = {}
        for word in words:
            if not isinstance(word, Mapping):
                continue
            meanings, parts_of_speech = _entry_meanings(word.get("sense"))
            if not meanings:
                continue
            kanji_forms = _forms(word, "kanji")
            kana_forms = _forms(word, "kana")
            if not kanji_forms and not kana_forms:
                continue
            index = len(self._entries)
            self._entries.append(
                DictionaryEntry(
                    word=(kanji_forms or kana_forms)[0],
                    reading=kana_forms[0] if kana_forms else "",
                    meanings=meanings,
                    parts_of_speech=parts_of_speech,
                )
            )
            for form in kanji_forms:
                kanji_index.setdefault(form, []).append(index)
            for form in kana_forms:
                kana_index.setdefault(katakana_to_hiragana(form), []).append(index)
        self._kanji_index = kanji_index
        self._kana_index = kana_index
        self._kanji_keys = sorted(kanji_index)
        self._kana_keys = sorted(kana_index)

    @classmethod
    def from_json(cls, path: Path) -> "JMDictionary":
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise DictionaryLookupError(f"Failed to load dictionary from {path}: {exc}") from exc
        words = payload.get("words") if isinstance(payload, Mapping) else payload
        if not isinstance(words, list):
            raise DictionaryLookupError(f"Dictionary file has no word list: {path}")
        dictionary = cls(words)
        debug_log("dict", f"loaded {len(dictionary)} entries from {path}")
        return dictionary

    def __len__(self) -> int:
        return len(self._entries)

    def _search(
        self,
        index: dict[str, list[int]],
        keys: list[str],
        key: str,
        limit: int,
    ) -> list[DictionaryEntry]:
        found: list[int] = []
        for entry_index in index.get(key, []):
            if entry_index not in found:
                found.append(entry_index)
        position = bisect_left(keys, key)
        while len(found) < limit and position < len(keys) and keys[position].startswith(key):
            for entry_index in index[keys[position]]:
                if entry_index not in found:
                    found.append(entry_index)
            position += 1
        return [self._entries[entry_index] for entry_index in found[:limit]]

    def lookup(
        self,
        surface: str,
        reading: str | None = None,
        *,
        limit: int = DEFAULT_CANDIDATE_LIMIT,
    ) -> list[DictionaryEntry]:
        if not surface and not reading:
            return []
        results: list[DictionaryEntry] = []
        if surface:
            results = self._search(self._kanji_index, self._kanji_keys, surface, limit)
        if not results and reading:
            results = self._search(
                self._kana_index,
                self._kana_keys,
                katakana_to_hiragana(reading),
                limit,
            )
        debug_log("dict", f"{surface!r} ({reading!r}): {len(results)} candidates")
        return results
