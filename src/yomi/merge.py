from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from .config import MergeOptions
from .logging_utils import debug_log
from .tokens import (
    CATEGORY_AUXILIARY_VERB,
    CATEGORY_PARTICLE,
    CATEGORY_PUNCTUATION,
    CATEGORY_VERB,
    DETAIL_COMPOUND,
    DETAIL_INFLECTED,
    DETAIL_MERGED_PUNCTUATION,
    MERGE_REASON_COMPOUND_VERB,
    MERGE_REASON_PUNCTUATION,
    MERGE_REASON_VERB_INFLECTION,
    SUB_CASE_PARTICLE,
    SUB_CONNECTIVE_PARTICLE,
    SUB_INDEPENDENT,
    SUB_SUFFIX,
    MergedToken,
    RawUnit,
    as_merged_token,
    merge_token_group,
)

__all__ = [
    "INFLECTION_ENDINGS",
    "AUXILIARY_PATTERNS",
    "VERB_PARTICLES",
    "COMPOUND_SUFFIXES",
    "coalesce_punctuation",
    "detect_compound_verbs",
    "merge_verb_inflections",
    "merge_tokens",
]

INFLECTION_ENDINGS = frozenset(
    {
        # plain
        "て", "で", "た", "だ", "ない", "なかった", "ぬ", "ず",
        # polite
        "ます", "ました", "ません", "ませんでした", "ましょう",
        # potential, passive, causative
        "れる", "られる", "える", "られ", "せる", "させる",
        # conditional
        "ば", "れば", "たら", "だら", "なら",
        # volitional, imperative
        "う", "よう", "ろう", "ろ", "よ", "れ",
        # copula
        "である", "です", "でした", "だった", "じゃない", "ではない",
        # progressive
        "いる", "ある", "おる",
        # hearsay and appearance
        "そう", "らしい", "みたい", "ようだ", "っぽい",
    }
)

AUXILIARY_PATTERNS = frozenset(
    {
        "いる", "ある", "おる", "くる", "いく", "みる", "しまう", "おく",
        "あげる", "くれる", "もらう", "やる", "いただく", "さしあげる",
    }
)

# と is left out: it also stands alone as a quotative or conjunction.
VERB_PARTICLES = frozenset({"て", "で", "た", "だ", "ば", "ても", "でも", "ながら", "つつ"})

COMPOUND_SUFFIXES = frozenset({"込む", "出す", "上げる", "下げる", "回る", "切る"})


def coalesce_punctuation(tokens: Iterable[RawUnit | MergedToken]) -> list[MergedToken]:
    """
    Merge each run of two or more punctuation tokens into a single token.

    Single punctuation tokens and everything else pass through unchanged.
    """
    items = [as_merged_token(token) for token in tokens]
    merged: list[MergedToken] = []
    i = 0
    while i < len(items):
        current = items[i]
        if current.category != CATEGORY_PUNCTUATION:
            merged.append(current)
            i += 1
            continue
        j = i + 1
        while j < len(items) and items[j].category == CATEGORY_PUNCTUATION:
            j += 1
        run = items[i:j]
        if len(run) > 1:
            merged.append(
                merge_token_group(
                    run,
                    detail=DETAIL_MERGED_PUNCTUATION,
                    merge_reason=MERGE_REASON_PUNCTUATION,
                    base_form="".join(token.base_form or token.surface for token in run),
                )
            )
        else:
            merged.append(current)
        i = j
    return merged


def detect_compound_verbs(tokens: Iterable[RawUnit | MergedToken]) -> list[MergedToken]:
    """Pair a verb with a following verb or compound-forming suffix, one look-ahead only."""
    items = [as_merged_token(token) for token in tokens]
    result: list[MergedToken] = []
    i = 0
    while i < len(items):
        current = items[i]
        if current.category == CATEGORY_VERB and i + 1 < len(items):
            following = items[i + 1]
            if following.category == CATEGORY_VERB or following.surface in COMPOUND_SUFFIXES:
                pair = (current, following)
                result.append(
                    merge_token_group(
                        pair,
                        detail=DETAIL_COMPOUND,
                        merge_reason=MERGE_REASON_COMPOUND_VERB,
                        base_form=(current.base_form or current.surface)
                        + (following.base_form or following.surface),
                    )
                )
                debug_log("merge", f"compound verb {current.surface}+{following.surface}")
                i += 2
                continue
        result.append(current)
        i += 1
    return result


@dataclass(frozen=True)
class _MergeRule:
    name: str
    toggle: str | None
    matches: Callable[[MergedToken], bool]


def _is_auxiliary_verb(token: MergedToken) -> bool:
    return token.category == CATEGORY_AUXILIARY_VERB


def _is_verb_suffix(token: MergedToken) -> bool:
    return token.category == CATEGORY_VERB and token.sub_category == SUB_SUFFIX


def _is_inflection_ending(token: MergedToken) -> bool:
    return token.surface in INFLECTION_ENDINGS


def _is_auxiliary_pattern(token: MergedToken) -> bool:
    return token.surface in AUXILIARY_PATTERNS


def _is_verb_particle(token: MergedToken) -> bool:
    return token.category == CATEGORY_PARTICLE and token.surface in VERB_PARTICLES


def _is_dependent_verb(token: MergedToken) -> bool:
    return token.category == CATEGORY_VERB and token.sub_category != SUB_INDEPENDENT


def _is_inflectional_particle(token: MergedToken) -> bool:
    return (
        token.sub_category in (SUB_CONNECTIVE_PARTICLE, SUB_CASE_PARTICLE)
        and token.surface in VERB_PARTICLES
    )


# Order matters: category checks come before the particle whitelists.
# Rules without a toggle always apply.
_VERB_MERGE_RULES = (
    _MergeRule("auxiliary-verb", "merge_auxiliary_verbs", _is_auxiliary_verb),
    _MergeRule("verb-suffix", "merge_verb_suffixes", _is_verb_suffix),
    _MergeRule("inflection-ending", "merge_all_inflections", _is_inflection_ending),
    _MergeRule("auxiliary-pattern", "merge_auxiliary_verbs", _is_auxiliary_pattern),
    _MergeRule("verb-particle", "merge_verb_particles", _is_verb_particle),
    _MergeRule("dependent-verb", None, _is_dependent_verb),
    _MergeRule("inflectional-particle", None, _is_inflectional_particle),
)


def _matching_rule(candidate: MergedToken, head: MergedToken, options: MergeOptions) -> str | None:
    for rule in _VERB_MERGE_RULES:
        if rule.toggle is not None and not getattr(options, rule.toggle):
            continue
        if rule.matches(candidate):
            return rule.name
    for predicate in options.custom_predicates:
        if predicate(candidate, head):
            return "custom"
    return None


def merge_verb_inflections(
    tokens: Iterable[RawUnit | MergedToken],
    options: MergeOptions | None = None,
) -> list[MergedToken]:
    """
    Fold every verb together with the continuations that follow it.

    Starting at a verb, the group grows one token at a time for as long as
    the next token satisfies one of the active rules. The first token that
    satisfies none closes the group for good; nothing is revisited.
    """
    opts = options or MergeOptions()
    items = [as_merged_token(token) for token in tokens]
    merged: list[MergedToken] = []
    i = 0
    while i < len(items):
        head = items[i]
        if head.category != CATEGORY_VERB:
            merged.append(head)
            i += 1
            continue
        group = [head]
        j = i + 1
        while j < len(items):
            rule = _matching_rule(items[j], head, opts)
            if rule is None:
                break
            debug_log("merge", f"{head.surface} absorbs {items[j].surface} ({rule})")
            group.append(items[j])
            j += 1
        if len(group) > 1:
            merged.append(
                merge_token_group(
                    group,
                    detail=DETAIL_INFLECTED,
                    merge_reason=MERGE_REASON_VERB_INFLECTION,
                    base_form=head.base_form,
                    inflection_count=len(group) - 1,
                )
            )
        else:
            merged.append(head)
        i = j
    return merged


def merge_tokens(
    units: Sequence[RawUnit | MergedToken],
    options: MergeOptions | None = None,
) -> list[MergedToken]:
    """Run punctuation coalescing, optional compound detection and verb merging in order."""
    opts = options or MergeOptions()
    tokens = [as_merged_token(unit) for unit in units]
    if opts.merge_punctuation:
        tokens = coalesce_punctuation(tokens)
    if opts.use_compound_detection:
        tokens = detect_compound_verbs(tokens)
    return merge_verb_inflections(tokens, opts)
