from .config import MergeOptions, ServiceConfig
from .enrich import MODE_ENHANCED, MODE_LOCAL, EnrichmentWarning, TokenEnricher
from .merge import coalesce_punctuation, detect_compound_verbs, merge_tokens, merge_verb_inflections
from .pipeline import (
    AnalyzerError,
    EmptySentenceError,
    NoTokensError,
    PipelineError,
    SentenceAnalysis,
    SentencePipeline,
    split_into_sentences,
)
from .timing import TimingUnit, TokenTiming, align_token_timings
from .tokens import EnrichedToken, MergedToken, RawUnit

__all__ = [
    "RawUnit",
    "MergedToken",
    "EnrichedToken",
    "MergeOptions",
    "ServiceConfig",
    "coalesce_punctuation",
    "detect_compound_verbs",
    "merge_verb_inflections",
    "merge_tokens",
    "TokenEnricher",
    "EnrichmentWarning",
    "MODE_ENHANCED",
    "MODE_LOCAL",
    "TimingUnit",
    "TokenTiming",
    "align_token_timings",
    "SentencePipeline",
    "SentenceAnalysis",
    "split_into_sentences",
    "PipelineError",
    "EmptySentenceError",
    "NoTokensError",
    "AnalyzerError",
]
