from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Callable, Iterable, Mapping

from .tokens import MergedToken

__all__ = [
    "MergePredicate",
    "MergeOptions",
    "ServiceConfig",
    "DEFAULT_OLLAMA_HOST",
    "DEFAULT_OLLAMA_PORT",
    "DEFAULT_OLLAMA_MODEL",
    "DEFAULT_OLLAMA_TIMEOUT",
    "DEFAULT_VOICEVOX_URL",
    "DEFAULT_SPEAKER_ID",
]

MergePredicate = Callable[[MergedToken, MergedToken], bool]

DEFAULT_OLLAMA_HOST = "127.0.0.1"
DEFAULT_OLLAMA_PORT = 11434
DEFAULT_OLLAMA_MODEL = "gemma3:12b"
DEFAULT_OLLAMA_TIMEOUT = 120.0
DEFAULT_VOICEVOX_URL = "http://127.0.0.1:50021"
DEFAULT_SPEAKER_ID = 1

# camelCase keys as stored in saved book settings.
_MAPPING_KEYS = {
    "mergeAuxiliaryVerbs": "merge_auxiliary_verbs",
    "mergeVerbParticles": "merge_verb_particles",
    "mergeVerbSuffixes": "merge_verb_suffixes",
    "mergeAllInflections": "merge_all_inflections",
    "mergePunctuation": "merge_punctuation",
    "useCompoundDetection": "use_compound_detection",
}


@dataclass(frozen=True)
class MergeOptions:
    """
    Rule toggles for the merge pipeline.

    Every toggle is enabled by default except compound detection. Custom
    predicates receive ``(next_token, group_head)`` and extend a verb group
    whenever one of them returns True.
    """

    merge_auxiliary_verbs: bool = True
    merge_verb_particles: bool = True
    merge_verb_suffixes: bool = True
    merge_all_inflections: bool = True
    merge_punctuation: bool = True
    use_compound_detection: bool = False
    custom_predicates: tuple[MergePredicate, ...] = ()

    def __post_init__(self) -> None:
        for item in fields(self):
            if item.name == "custom_predicates":
                continue
            value = getattr(self, item.name)
            if not isinstance(value, bool):
                raise TypeError(f"{item.name} must be a bool, got {type(value).__name__}")
        predicates = self.custom_predicates
        if not isinstance(predicates, tuple):
            predicates = tuple(predicates)
            object.__setattr__(self, "custom_predicates", predicates)
        for predicate in predicates:
            if not callable(predicate):
                raise TypeError("custom_predicates must contain callables")

    @classmethod
    def all_disabled(cls) -> "MergeOptions":
        return cls(
            merge_auxiliary_verbs=False,
            merge_verb_particles=False,
            merge_verb_suffixes=False,
            merge_all_inflections=False,
            merge_punctuation=False,
            use_compound_detection=False,
        )

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[str, object] | None,
        *,
        custom_predicates: Iterable[MergePredicate] = (),
    ) -> "MergeOptions":
        """Build options from snake_case or camelCase keys; unknown keys are ignored."""
        values: dict[str, bool] = {}
        if mapping:
            for key, value in mapping.items():
                name = _MAPPING_KEYS.get(key, key)
                if name in _MAPPING_KEYS.values() and isinstance(value, bool):
                    values[name] = value
        return cls(custom_predicates=tuple(custom_predicates), **values)

    def as_payload(self) -> dict[str, bool]:
        return {
            camel: getattr(self, snake) for camel, snake in _MAPPING_KEYS.items()
        }


def _env_str(name: str, default: str) -> str:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


@dataclass(slots=True)
class ServiceConfig:
    ollama_host: str = DEFAULT_OLLAMA_HOST
    ollama_port: int = DEFAULT_OLLAMA_PORT
    ollama_model: str = DEFAULT_OLLAMA_MODEL
    ollama_timeout: float = DEFAULT_OLLAMA_TIMEOUT
    voicevox_url: str = DEFAULT_VOICEVOX_URL
    speaker: int = DEFAULT_SPEAKER_ID
    jmdict_path: Path | None = None

    @property
    def ollama_url(self) -> str:
        return f"http://{self.ollama_host}:{self.ollama_port}"

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        jmdict = os.environ.get("YOMI_JMDICT_PATH")
        return cls(
            ollama_host=_env_str("YOMI_OLLAMA_HOST", DEFAULT_OLLAMA_HOST),
            ollama_port=_env_int("YOMI_OLLAMA_PORT", DEFAULT_OLLAMA_PORT),
            ollama_model=_env_str("YOMI_OLLAMA_MODEL", DEFAULT_OLLAMA_MODEL),
            ollama_timeout=_env_float("YOMI_OLLAMA_TIMEOUT", DEFAULT_OLLAMA_TIMEOUT),
            voicevox_url=_env_str("YOMI_VOICEVOX_URL", DEFAULT_VOICEVOX_URL),
            speaker=_env_int("YOMI_VOICEVOX_SPEAKER", DEFAULT_SPEAKER_ID),
            jmdict_path=Path(jmdict).expanduser() if jmdict else None,
        )
