from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Mapping, Sequence

import requests

from .logging_utils import debug_log

__all__ = [
    "LanguageModelError",
    "LanguageModelUnavailableError",
    "LanguageModelTimeoutError",
    "TokenGloss",
    "TranslationAnalysis",
    "OllamaClient",
    "build_analysis_prompt",
    "extract_json_object",
    "parse_analysis_payload",
]


class LanguageModelError(RuntimeError):
    """Raised when the language model returns an unusable response."""


class LanguageModelUnavailableError(ConnectionError):
    """Raised when the language model service is unreachable."""


class LanguageModelTimeoutError(LanguageModelError):
    """Raised when a language model call exceeds its timeout."""


@dataclass(frozen=True)
class TokenGloss:
    surface: str
    translation: str | None = None
    contextual_meaning: str | None = None
    grammatical_role: str | None = None


@dataclass(frozen=True)
class TranslationAnalysis:
    full_translation: str | None
    tokens: tuple[TokenGloss, ...] = ()

    def gloss_for(self, surface: str) -> TokenGloss | None:
        # Repeated surfaces all resolve to the first gloss.
        for gloss in self.tokens:
            if gloss.surface == surface:
                return gloss
        return None


_PROMPT_TEMPLATE = """Analyze this Japanese sentence and provide translations and contextual explanations for each token, plus a full sentence translation.

Context:
{context}

Tokens to analyze: {tokens}

Please provide:
1. A complete, natural English translation of the entire sentence
2. Individual token analysis with translations and contextual explanations

Respond with ONLY a JSON object in this exact format:
{{
  "fullLineTranslation": "Complete natural English translation of the entire sentence",
  "tokens": [
    {{
      "surface": "友人",
      "translation": "friend",
      "contextualMeaning": "refers to the narrator as Holmes' friend",
      "grammaticalRole": "noun, subject"
    }}
  ]
}}"""


def build_analysis_prompt(
    sentence: str,
    surfaces: Sequence[str],
    previous_sentence: str | None = None,
    next_sentence: str | None = None,
) -> str:
    context_lines: list[str] = []
    if previous_sentence:
        context_lines.append(f'Previous sentence: "{previous_sentence}"')
    context_lines.append(f'Current sentence: "{sentence}"')
    if next_sentence:
        context_lines.append(f'Next sentence: "{next_sentence}"')
    return _PROMPT_TEMPLATE.format(
        context="\n".join(context_lines),
        tokens=" | ".join(surfaces),
    )


def _balanced_object_end(text: str, start: int) -> int | None:
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        ch = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return index
    return None


def extract_json_object(text: str) -> object | None:
    """
    Parse ``text`` as JSON, or failing that the first balanced ``{...}`` inside it.

    Models often wrap the requested JSON in prose or code fences; every
    opening brace is tried in order until one yields a parseable object.
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    start = text.find("{")
    while start != -1:
        end = _balanced_object_end(text, start)
        if end is None:
            return None
        try:
            return json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
    return None


def _optional_str(entry: Mapping[str, object], *keys: str) -> str | None:
    for key in keys:
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def _parse_glosses(items: object) -> tuple[TokenGloss, ...]:
    if not isinstance(items, list):
        return ()
    glosses: list[TokenGloss] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        surface = item.get("surface")
        if not isinstance(surface, str) or not surface:
            continue
        glosses.append(
            TokenGloss(
                surface=surface,
                translation=_optional_str(item, "translation"),
                contextual_meaning=_optional_str(item, "contextualMeaning", "contextual_meaning"),
                grammatical_role=_optional_str(item, "grammaticalRole", "grammatical_role"),
            )
        )
    return tuple(glosses)


def parse_analysis_payload(payload: object) -> TranslationAnalysis:
    """Accept the documented object shape or a bare list of token glosses."""
    if isinstance(payload, list):
        return TranslationAnalysis(full_translation=None, tokens=_parse_glosses(payload))
    if not isinstance(payload, Mapping):
        raise LanguageModelError("Language model response is not a JSON object")
    return TranslationAnalysis(
        full_translation=_optional_str(payload, "fullLineTranslation", "fullTranslation"),
        tokens=_parse_glosses(payload.get("tokens")),
    )


class OllamaClient:
    """Asks an Ollama model for a sentence translation and per-token glosses."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:11434",
        model: str = "gemma3:12b",
        timeout: float = 120.0,
        *,
        temperature: float = 0.3,
        max_tokens: int = 1000,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._session = requests.Session()

    def list_models(self) -> list[str]:
        try:
            resp = self._session.get(f"{self.base_url}/api/tags", timeout=self.timeout)
        except requests.RequestException as exc:
            raise LanguageModelUnavailableError(
                f"Failed to contact Ollama at {self.base_url}"
            ) from exc
        if resp.status_code != 200:
            raise LanguageModelError(
                f"/api/tags failed with status {resp.status_code}: {resp.text}"
            )
        try:
            payload = resp.json()
        except json.JSONDecodeError as exc:
            raise LanguageModelError("Ollama returned invalid JSON for /api/tags") from exc
        models = payload.get("models") if isinstance(payload, Mapping) else None
        if not isinstance(models, list):
            return []
        return [
            str(model["name"])
            for model in models
            if isinstance(model, Mapping) and model.get("name")
        ]

    def generate(self, prompt: str) -> str:
        body = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "top_p": 0.9,
                "top_k": 40,
                "num_predict": self.max_tokens,
            },
        }
        started = time.monotonic()
        try:
            resp = self._session.post(
                f"{self.base_url}/api/generate",
                json=body,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise LanguageModelTimeoutError(
                f"Ollama request timed out after {self.timeout:.0f}s"
            ) from exc
        except requests.RequestException as exc:
            raise LanguageModelUnavailableError(
                f"Failed to contact Ollama at {self.base_url}"
            ) from exc
        if resp.status_code != 200:
            raise LanguageModelError(
                f"/api/generate failed with status {resp.status_code}: {resp.text}"
            )
        try:
            payload = resp.json()
        except json.JSONDecodeError as exc:
            raise LanguageModelError("Ollama returned invalid JSON for /api/generate") from exc
        text = payload.get("response") if isinstance(payload, Mapping) else None
        if not isinstance(text, str):
            raise LanguageModelError("Ollama response is missing the generated text")
        debug_log("llm", f"{self.model} answered in {time.monotonic() - started:.2f}s")
        return text

    def analyze(
        self,
        sentence: str,
        surfaces: Sequence[str],
        previous_sentence: str | None = None,
        next_sentence: str | None = None,
    ) -> TranslationAnalysis:
        prompt = build_analysis_prompt(sentence, surfaces, previous_sentence, next_sentence)
        debug_log("llm", f"prompt length {len(prompt)} for {len(surfaces)} tokens")
        text = self.generate(prompt)
        payload = extract_json_object(text)
        if payload is None:
            raise LanguageModelError("No JSON object found in language model response")
        return parse_analysis_payload(payload)

    def close(self) -> None:
        self._session.close()
