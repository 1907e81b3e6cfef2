from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping

from .config import MergeOptions
from .pipeline import SentenceAnalysis
from .timing import TokenTiming, deserialize_token_timings, serialize_token_timings
from .tokens import UNAVAILABLE, deserialize_enriched_tokens, serialize_enriched_tokens

__all__ = [
    "BOOK_SUFFIX",
    "BOOK_FORMAT_VERSION",
    "PROCESSING_LOCAL",
    "PROCESSING_ENHANCED",
    "BookMetadata",
    "LoadedBook",
    "book_path_for",
    "analysis_payload",
    "analysis_from_payload",
    "build_book_payload",
    "write_book",
    "load_book",
]

BOOK_SUFFIX = ".book"
BOOK_FORMAT_VERSION = "1.0"
PROCESSING_LOCAL = "local_dictionary"
PROCESSING_ENHANCED = "ai_enhanced"


@dataclass
class BookMetadata:
    original_filename: str
    bookname: str
    saved_at: str
    total_lines: int
    processed_lines: int
    version: str = BOOK_FORMAT_VERSION
    processing_type: str | None = None

    def as_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "originalFilename": self.original_filename,
            "bookname": self.bookname,
            "savedAt": self.saved_at,
            "totalLines": self.total_lines,
            "processedLines": self.processed_lines,
            "version": self.version,
        }
        if self.processing_type:
            payload["processingType"] = self.processing_type
        return payload

    @classmethod
    def from_payload(cls, payload: object) -> "BookMetadata":
        data = payload if isinstance(payload, Mapping) else {}

        def _text(key: str) -> str:
            value = data.get(key)
            return value if isinstance(value, str) else ""

        def _count(key: str) -> int:
            value = data.get(key)
            return value if isinstance(value, int) and value >= 0 else 0

        processing_type = data.get("processingType")
        return cls(
            original_filename=_text("originalFilename"),
            bookname=_text("bookname"),
            saved_at=_text("savedAt"),
            total_lines=_count("totalLines"),
            processed_lines=_count("processedLines"),
            version=_text("version") or BOOK_FORMAT_VERSION,
            processing_type=processing_type if isinstance(processing_type, str) else None,
        )


@dataclass
class LoadedBook:
    metadata: BookMetadata
    options: MergeOptions
    original_lines: list[str]
    processed: dict[int, SentenceAnalysis] = field(default_factory=dict)
    timings: dict[int, list[TokenTiming]] = field(default_factory=dict)


def book_path_for(source: Path, output_dir: Path | None = None) -> Path:
    target_dir = output_dir if output_dir is not None else source.parent
    return target_dir / f"{source.name}{BOOK_SUFFIX}"


def analysis_payload(
    analysis: SentenceAnalysis,
    timings: list[TokenTiming] | None = None,
) -> dict[str, object]:
    analysis_block: dict[str, object] = dict(analysis.summary())
    analysis_block["tokens"] = serialize_enriched_tokens(analysis.tokens)
    analysis_block["hasAIAnalysis"] = analysis.has_ai_analysis
    payload: dict[str, object] = {
        "result": analysis.status,
        "processed": True,
        "originalText": analysis.text,
        "sentenceIndex": analysis.sentence_index,
        "fullSentenceTranslation": analysis.full_translation,
        "analysis": analysis_block,
    }
    if analysis.warnings:
        payload["warnings"] = list(analysis.warnings)
    if timings:
        payload["timings"] = serialize_token_timings(timings)
    return payload


def analysis_from_payload(index: int, entry: object) -> SentenceAnalysis | None:
    if not isinstance(entry, Mapping):
        return None
    text = entry.get("originalText")
    if not isinstance(text, str) or not text:
        return None
    block = entry.get("analysis")
    block = block if isinstance(block, Mapping) else {}
    raw_tokens = block.get("tokens")
    tokens = deserialize_enriched_tokens(raw_tokens) if isinstance(raw_tokens, list) else []
    translation = entry.get("fullSentenceTranslation")
    status = entry.get("result")
    raw_warnings = entry.get("warnings")
    sentence_index = entry.get("sentenceIndex")
    return SentenceAnalysis(
        text=text,
        sentence_index=sentence_index if isinstance(sentence_index, int) else index,
        tokens=tokens,
        full_translation=translation if isinstance(translation, str) and translation else UNAVAILABLE,
        has_ai_analysis=block.get("hasAIAnalysis") is True,
        status=status if isinstance(status, str) else "",
        warnings=[item for item in raw_warnings if isinstance(item, str)]
        if isinstance(raw_warnings, list)
        else [],
    )


def build_book_payload(
    *,
    original_filename: str,
    lines: list[str],
    processed: Mapping[int, SentenceAnalysis],
    options: MergeOptions,
    bookname: str | None = None,
    processing_type: str | None = None,
    timings: Mapping[int, list[TokenTiming]] | None = None,
    saved_at: str | None = None,
) -> dict[str, object]:
    timestamp = saved_at or datetime.now(timezone.utc).isoformat()
    metadata = BookMetadata(
        original_filename=original_filename,
        bookname=bookname or original_filename,
        saved_at=timestamp,
        total_lines=len(lines),
        processed_lines=len(processed),
        processing_type=processing_type,
    )
    timings = timings or {}
    processed_data = {
        str(index): analysis_payload(processed[index], timings.get(index))
        for index in sorted(processed)
    }
    return {
        "metadata": metadata.as_payload(),
        "settings": {
            "verbMergeOptions": options.as_payload(),
            "processingDate": timestamp,
        },
        "content": {
            "originalLines": list(lines),
            "processedData": processed_data,
        },
    }


def write_book(path: Path, payload: Mapping[str, object]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    return path


def load_book(path: Path) -> LoadedBook | None:
    """Read a ``.book`` file; unreadable files and malformed lines are skipped."""
    if not path.exists():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    if not isinstance(payload, dict):
        return None

    settings = payload.get("settings")
    raw_options = settings.get("verbMergeOptions") if isinstance(settings, Mapping) else None
    options = MergeOptions.from_mapping(raw_options if isinstance(raw_options, Mapping) else None)

    content = payload.get("content")
    content = content if isinstance(content, Mapping) else {}
    raw_lines = content.get("originalLines")
    lines = [line for line in raw_lines if isinstance(line, str)] if isinstance(raw_lines, list) else []

    processed: dict[int, SentenceAnalysis] = {}
    timings: dict[int, list[TokenTiming]] = {}
    raw_processed = content.get("processedData")
    if isinstance(raw_processed, Mapping):
        for key, entry in raw_processed.items():
            if not isinstance(key, str) or not key.isdigit():
                continue
            index = int(key)
            analysis = analysis_from_payload(index, entry)
            if analysis is None:
                continue
            processed[index] = analysis
            raw_timings = entry.get("timings")
            if isinstance(raw_timings, list):
                timings[index] = deserialize_token_timings(raw_timings)

    return LoadedBook(
        metadata=BookMetadata.from_payload(payload.get("metadata")),
        options=options,
        original_lines=lines,
        processed=processed,
        timings=timings,
    )
