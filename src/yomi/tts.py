from __future__ import annotations

import io
import json
import re
import wave
from dataclasses import dataclass, field
from typing import Mapping
from urllib.parse import urlparse

import requests

from .logging_utils import debug_log
from .timing import TimingUnit

__all__ = [
    "VoiceVoxError",
    "VoiceVoxUnavailableError",
    "SpeechResult",
    "VoiceVoxClient",
    "filter_text_for_tts",
    "extract_timing_units",
    "wav_duration",
]

_DEFAULT_SAMPLE_RATE = 24000
_WHITESPACE = re.compile(r"\s+")


class VoiceVoxError(RuntimeError):
    """Raised when the VoiceVox engine returns an unexpected response."""


class VoiceVoxUnavailableError(ConnectionError):
    """Raised when the VoiceVox engine is unreachable."""


@dataclass
class SpeechResult:
    text: str
    audio: bytes
    timings: list[TimingUnit] = field(default_factory=list)
    duration: float = 0.0
    sample_rate: int = _DEFAULT_SAMPLE_RATE
    audio_format: str = "wav"


def filter_text_for_tts(text: str) -> str:
    """Strip or normalize characters VoiceVox reads badly."""
    if not text:
        return text
    filtered = text.replace("・", "")
    filtered = filtered.replace("…", "...")
    filtered = filtered.replace("〜", "～")
    filtered = filtered.replace("―", "—")
    filtered = _WHITESPACE.sub(" ", filtered).strip()
    if filtered != text:
        debug_log("tts", f"filtered {text!r} -> {filtered!r}")
    return filtered


def _length(value: object) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)) and value > 0:
        return float(value)
    return 0.0


def extract_timing_units(audio_query: Mapping[str, object]) -> list[TimingUnit]:
    """
    Turn the moras of a VoiceVox audio query into timing units.

    Each mora spans its consonant plus vowel length. Pause moras advance the
    clock without producing a unit, the pre-phoneme silence offsets the whole
    timeline, and lengths are divided by ``speedScale`` to match the rendered
    audio. Units carry the mora text and no offsets; the aligner locates them
    in the sentence.
    """
    phrases = audio_query.get("accent_phrases")
    if not isinstance(phrases, list):
        debug_log("tts", "audio query has no accent_phrases")
        return []
    speed = audio_query.get("speedScale")
    speed_scale = float(speed) if isinstance(speed, (int, float)) and speed > 0 else 1.0
    clock = _length(audio_query.get("prePhonemeLength"))
    units: list[TimingUnit] = []
    for phrase in phrases:
        if not isinstance(phrase, Mapping):
            continue
        moras = phrase.get("moras")
        if isinstance(moras, list):
            for mora in moras:
                if not isinstance(mora, Mapping):
                    continue
                length = (
                    _length(mora.get("consonant_length")) + _length(mora.get("vowel_length"))
                ) / speed_scale
                text = mora.get("text")
                units.append(
                    TimingUnit(
                        start_time=clock,
                        end_time=clock + length,
                        text=text if isinstance(text, str) else None,
                    )
                )
                clock += length
        pause = phrase.get("pause_mora")
        if isinstance(pause, Mapping):
            clock += _length(pause.get("vowel_length")) / speed_scale
    return units


def wav_duration(wav_bytes: bytes) -> float | None:
    try:
        with wave.open(io.BytesIO(wav_bytes), "rb") as wav_file:
            frames = wav_file.getnframes()
            rate = wav_file.getframerate()
    except (wave.Error, EOFError):
        return None
    if rate <= 0:
        return None
    return frames / float(rate)


def _normalize_base_url(base_url: str) -> str:
    trimmed = base_url.strip()
    if not trimmed:
        raise ValueError("VoiceVox base URL cannot be empty.")
    if "://" not in trimmed:
        trimmed = f"http://{trimmed}"
    parsed = urlparse(trimmed)
    if not parsed.hostname:
        raise ValueError(f"Invalid VoiceVox base URL: {base_url}")
    if parsed.scheme not in {"http", "https"}:
        raise ValueError(f"Unsupported VoiceVox URL scheme: {parsed.scheme}")
    if parsed.port is None:
        parsed = parsed._replace(netloc=f"{parsed.hostname}:50021")
    return parsed.geturl().rstrip("/")


class VoiceVoxClient:
    """Speaks a sentence through a VoiceVox engine and reports per-mora timings."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:50021",
        speaker_id: int = 1,
        timeout: float = 30.0,
        *,
        speed_scale: float | None = None,
        volume_scale: float | None = None,
        pitch_scale: float | None = None,
        intonation_scale: float | None = None,
    ) -> None:
        self.base_url = _normalize_base_url(base_url)
        self.speaker_id = speaker_id
        self.timeout = timeout
        self.speed_scale = speed_scale
        self.volume_scale = volume_scale
        self.pitch_scale = pitch_scale
        self.intonation_scale = intonation_scale
        self._session = requests.Session()

    def is_ready(self) -> bool:
        try:
            resp = self._session.get(f"{self.base_url}/version", timeout=min(self.timeout, 2.0))
        except requests.RequestException:
            return False
        return resp.status_code == 200

    def build_audio_query(self, text: str) -> dict:
        try:
            resp = self._session.post(
                f"{self.base_url}/audio_query",
                params={"text": text, "speaker": self.speaker_id},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise VoiceVoxUnavailableError(
                f"VoiceVox engine at {self.base_url} did not answer /audio_query"
            ) from exc

        if resp.status_code != 200:
            raise VoiceVoxError(
                f"/audio_query failed with status {resp.status_code}: {resp.text}"
            )

        try:
            query_payload = resp.json()
        except json.JSONDecodeError as exc:
            raise VoiceVoxError("VoiceVox returned invalid JSON for /audio_query") from exc
        if not isinstance(query_payload, dict):
            raise VoiceVoxError("VoiceVox returned a non-object payload for /audio_query")

        overrides = {
            "speedScale": self.speed_scale,
            "volumeScale": self.volume_scale,
            "pitchScale": self.pitch_scale,
            "intonationScale": self.intonation_scale,
        }
        for key, value in overrides.items():
            if value is not None:
                query_payload[key] = float(value)
        return query_payload

    def synthesize_from_query(self, query_payload: dict) -> bytes:
        try:
            resp = self._session.post(
                f"{self.base_url}/synthesis",
                params={"speaker": self.speaker_id},
                json=query_payload,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise VoiceVoxUnavailableError(
                f"VoiceVox engine at {self.base_url} did not answer /synthesis"
            ) from exc

        if resp.status_code != 200:
            raise VoiceVoxError(
                f"/synthesis failed with status {resp.status_code}: {resp.text}"
            )

        return resp.content

    def synthesize_with_timings(self, text: str) -> SpeechResult:
        """
        Generate audio plus mora timing units for ``text``.

        The reported duration comes from the WAV header when it can be read,
        otherwise from the end of the last timing unit.
        """
        filtered = filter_text_for_tts(text)
        query_payload = self.build_audio_query(filtered)
        audio = self.synthesize_from_query(query_payload)
        timings = extract_timing_units(query_payload)
        duration = wav_duration(audio)
        if duration is None:
            duration = max((unit.end_time for unit in timings), default=0.0)
        sample_rate = query_payload.get("outputSamplingRate")
        debug_log("tts", f"{len(timings)} timing units over {duration:.3f}s for {filtered[:30]!r}")
        return SpeechResult(
            text=filtered,
            audio=audio,
            timings=timings,
            duration=duration,
            sample_rate=sample_rate if isinstance(sample_rate, int) else _DEFAULT_SAMPLE_RATE,
        )

    def close(self) -> None:
        self._session.close()
