from __future__ import annotations

import unicodedata

__all__ = [
    "hiragana_to_katakana",
    "katakana_to_hiragana",
    "normalize_kana",
    "is_kanji",
    "has_kanji",
]


def hiragana_to_katakana(text: str) -> str:
    result = []
    for ch in text:
        code = ord(ch)
        if 0x3041 <= code <= 0x3096:
            result.append(chr(code + 0x60))
        elif ch == "ゝ":
            result.append("ヽ")
        elif ch == "ゞ":
            result.append("ヾ")
        else:
            result.append(ch)
    return "".join(result)


def katakana_to_hiragana(text: str | None) -> str:
    if not text:
        return ""
    result = []
    for ch in text:
        code = ord(ch)
        if 0x30A1 <= code <= 0x30F6:
            result.append(chr(code - 0x60))
        else:
            result.append(ch)
    return "".join(result)


def normalize_kana(text: str) -> str:
    """Fold width variants and katakana into one comparable hiragana form."""
    return katakana_to_hiragana(unicodedata.normalize("NFKC", text))


def is_kanji(ch: str) -> bool:
    if not ch:
        return False
    code = ord(ch)
    return (
        0x4E00 <= code <= 0x9FAF
        or 0x3400 <= code <= 0x4DBF
        or 0x20000 <= code <= 0x2A6DF
        or 0xF900 <= code <= 0xFAFF
        or ch in "々〆"
    )


def has_kanji(text: str) -> bool:
    return any(is_kanji(ch) for ch in text)
