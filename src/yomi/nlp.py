from __future__ import annotations

import shlex
import threading
import unicodedata
import warnings
from typing import Callable, Optional

from .kana import has_kanji, hiragana_to_katakana
from .logging_utils import debug_log
from .tokens import (
    CATEGORY_ADJECTIVE,
    CATEGORY_ADVERB,
    CATEGORY_AUXILIARY_VERB,
    CATEGORY_NOUN,
    CATEGORY_OTHER,
    CATEGORY_PARTICLE,
    CATEGORY_PUNCTUATION,
    CATEGORY_VERB,
    SUB_CASE_PARTICLE,
    SUB_CONNECTIVE_PARTICLE,
    SUB_INDEPENDENT,
    SUB_NON_INDEPENDENT,
    SUB_SUFFIX,
    RawUnit,
)
from .tools import get_unidic_dicdir

__all__ = [
    "NLPBackend",
    "NLPBackendUnavailableError",
    "category_for_pos",
    "sub_category_for_pos",
]


class NLPBackendUnavailableError(RuntimeError):
    """Raised when the morphological analyzer cannot be initialized."""


# UniDic and IPADIC part-of-speech labels.
_CATEGORY_BY_POS = {
    "動詞": CATEGORY_VERB,
    "助動詞": CATEGORY_AUXILIARY_VERB,
    "助詞": CATEGORY_PARTICLE,
    "記号": CATEGORY_PUNCTUATION,
    "補助記号": CATEGORY_PUNCTUATION,
    "空白": CATEGORY_PUNCTUATION,
    "名詞": CATEGORY_NOUN,
    "代名詞": CATEGORY_NOUN,
    "形容詞": CATEGORY_ADJECTIVE,
    "形状詞": CATEGORY_ADJECTIVE,
    "副詞": CATEGORY_ADVERB,
}

_SUB_CATEGORY_BY_POS = {
    "自立": SUB_INDEPENDENT,
    "一般": SUB_INDEPENDENT,
    "非自立": SUB_NON_INDEPENDENT,
    "非自立可能": SUB_NON_INDEPENDENT,
    "接尾": SUB_SUFFIX,
    "接尾辞": SUB_SUFFIX,
    "接続助詞": SUB_CONNECTIVE_PARTICLE,
    "格助詞": SUB_CASE_PARTICLE,
}


def category_for_pos(pos: str | None) -> str:
    if not pos:
        return CATEGORY_OTHER
    return _CATEGORY_BY_POS.get(pos, CATEGORY_OTHER)


def sub_category_for_pos(pos_detail: str | None) -> str:
    if not pos_detail or pos_detail == "*":
        return ""
    return _SUB_CATEGORY_BY_POS.get(pos_detail, pos_detail)


def _normalize_katakana(text: str) -> str:
    return unicodedata.normalize("NFKC", text)


def _feature_value(token, *attrs: str) -> str | None:
    feature = getattr(token, "feature", None)
    if feature is None:
        return None
    for attr in attrs:
        if hasattr(feature, attr):
            value = getattr(feature, attr)
        else:
            try:
                value = feature[attr]
            except (KeyError, IndexError, TypeError):
                value = None
        if value and value != "*":
            return str(value)
    return None


class NLPBackend:
    """Fugashi-based analyzer that segments a sentence into RawUnits."""

    def __init__(self) -> None:
        try:
            from fugashi import GenericTagger, Tagger  # type: ignore
            from fugashi import fugashi as fugashi_core  # type: ignore
        except ImportError as exc:
            raise NLPBackendUnavailableError(
                "Sentence analysis requires 'fugashi' (MeCab) to be installed."
            ) from exc

        dicdir = get_unidic_dicdir()
        if dicdir:
            args = f"-d {shlex.quote(str(dicdir))}"
            feature_wrapper = getattr(fugashi_core, "UnidicFeatures29", None)
            try:
                if feature_wrapper is not None:
                    self._tagger = GenericTagger(args, feature_wrapper)
                else:
                    self._tagger = GenericTagger(args)
            except RuntimeError as exc:
                raise NLPBackendUnavailableError(
                    f"Failed to initialize UniDic dictionary at '{dicdir}': {exc}"
                ) from exc
        else:
            warnings.warn(
                "UniDic not detected; falling back to the default MeCab dictionary.",
                RuntimeWarning,
                stacklevel=2,
            )
            try:
                self._tagger = Tagger()
            except RuntimeError as exc:
                raise NLPBackendUnavailableError(
                    f"Failed to initialize MeCab: {exc}"
                ) from exc
        self._kakasi_converter = self._build_kakasi_converter()
        self._lock = threading.Lock()

    def analyze(self, text: str) -> list[RawUnit]:
        """
        Segment ``text`` into RawUnits in order.

        Characters MeCab skips (whitespace between morphemes) are emitted as
        punctuation units so the surfaces always concatenate back to ``text``.
        """
        units: list[RawUnit] = []
        if not text:
            return units
        pos = 0
        with self._lock:
            parsed = list(self._tagger(text))
        for raw in parsed:
            surface = raw.surface
            if not surface:
                continue
            start = text.find(surface, pos)
            if start == -1:
                continue
            if start > pos:
                units.append(self._gap_unit(text[pos:start]))
            units.append(self._unit_for_token(raw, surface))
            pos = start + len(surface)
        if pos < len(text):
            units.append(self._gap_unit(text[pos:]))
        debug_log("nlp", f"{len(units)} units for {text[:30]!r}")
        return units

    def _gap_unit(self, gap: str) -> RawUnit:
        return RawUnit(
            surface=gap,
            reading=gap,
            category=CATEGORY_PUNCTUATION,
            sub_category="whitespace",
            base_form=gap,
            pronunciation=gap,
        )

    def _unit_for_token(self, token, surface: str) -> RawUnit:
        pos_label = _feature_value(token, "pos1", "pos")
        pos_detail = _feature_value(token, "pos2")
        reading = self._extract_reading(token)
        if not reading and has_kanji(surface):
            reading = self._reading_for_unknown(surface)
        pronunciation = _feature_value(token, "pron", "pronunciation") or reading
        return RawUnit(
            surface=surface,
            reading=reading or surface,
            category=category_for_pos(pos_label),
            sub_category=sub_category_for_pos(pos_detail),
            base_form=_feature_value(token, "orthBase", "lemma", "base_form") or surface,
            pronunciation=_normalize_katakana(pronunciation or surface),
        )

    def _extract_reading(self, token) -> str:
        value = _feature_value(token, "kana", "reading", "reading_form", "pron")
        if not value:
            return ""
        return _normalize_katakana(hiragana_to_katakana(value))

    def _reading_for_unknown(self, surface: str) -> str:
        if self._kakasi_converter is None:
            return ""
        converted = self._kakasi_converter(surface)
        return _normalize_katakana(hiragana_to_katakana(converted)) if converted else ""

    def _build_kakasi_converter(self) -> Optional[Callable[[str], str]]:
        try:
            from pykakasi import kakasi  # type: ignore
        except ImportError as exc:
            raise NLPBackendUnavailableError(
                "Sentence analysis requires 'pykakasi' for fallback readings."
            ) from exc

        kk = kakasi()

        def _convert(text: str) -> str:
            result = kk.convert(text)
            if isinstance(result, list):
                converted = "".join(item.get("kana") or item.get("orig", "") for item in result)
                return converted or text
            return str(result)

        return _convert
