"""
backends.py — Speech-to-text backends.

═══════════════════════════════════════════════════════════════════════════
BACKENDS
═══════════════════════════════════════════════════════════════════════════

    Name       Endpoint                                   Payload
    ────────   ────────────────────────────────────────   ─────────────────
    whisper    POST api.openai.com/v1/audio/transcriptions multipart file
    deepgram   POST api.deepgram.com/v1/listen            raw audio body
    google     POST speech.googleapis.com/v1/speech:recognize
                                                           base64 LINEAR16

Every backend exposes

    async transcribe(clip, language_hint) → BackendTranscript

and raises TranscriptionBackendError for anything other than a usable
answer (missing key, HTTP error, malformed body). A backend that hears no
speech returns empty text, which the chain treats like a failure.

Language codes are reduced to their primary subtag ("hi-IN" → "hi").
"""

from __future__ import annotations

import abc
import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Optional

import httpx

from backend.app.core.config import settings
from backend.app.emergency.transcription.audio import AudioClip

logger = logging.getLogger(__name__)


class TranscriptionBackendError(Exception):
    """A backend could not produce a transcript."""

    def __init__(self, backend: str, message: str):
        super().__init__(f"{backend}: {message}")
        self.backend = backend


@dataclass(frozen=True)
class BackendTranscript:
    text: str
    language: Optional[str] = None
    confidence: float = 0.0


def short_language(code: Optional[str]) -> Optional[str]:
    """
    Primary language subtag.

    >>> short_language("hi-IN")
    'hi'
    """
    if not code:
        return None
    return code.replace("_", "-").split("-")[0].lower() or None


# Whisper's verbose_json reports language names, not codes
_WHISPER_LANGUAGE_NAMES = {
    "english": "en",
    "hindi": "hi",
    "kannada": "kn",
    "tamil": "ta",
    "telugu": "te",
    "malayalam": "ml",
    "marathi": "mr",
    "bengali": "bn",
    "gujarati": "gu",
    "punjabi": "pa",
    "urdu": "ur",
}


class SpeechBackend(abc.ABC):
    """Common plumbing: shared HTTP client, API key, error wrapping."""

    name: str = "backend"
    # None = any container format accepted
    accepted_formats: Optional[FrozenSet[str]] = None

    def __init__(self, http: httpx.AsyncClient, api_key: Optional[str], timeout: float):
        self._http = http
        self._api_key = api_key
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def transcribe(self, clip: AudioClip, language_hint: Optional[str] = None) -> BackendTranscript:
        if not self.is_configured:
            raise TranscriptionBackendError(self.name, "API key not configured")
        try:
            return await self._transcribe(clip, short_language(language_hint))
        except httpx.HTTPStatusError as e:
            logger.debug("%s returned HTTP %s", self.name, e.response.status_code)
            raise TranscriptionBackendError(
                self.name, f"HTTP {e.response.status_code}: {e.response.text[:200]}",
            )
        except httpx.HTTPError as e:
            raise TranscriptionBackendError(self.name, f"transport error: {e}")
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise TranscriptionBackendError(self.name, f"unexpected response: {e!r}")

    @abc.abstractmethod
    async def _transcribe(self, clip: AudioClip, language: Optional[str]) -> BackendTranscript:
        ...


# ═══════════════════════════════════════════════════════════════════════════
# OpenAI Whisper
# ═══════════════════════════════════════════════════════════════════════════

class WhisperBackend(SpeechBackend):
    """OpenAI Whisper transcription API (multipart upload, ≤25MB)."""

    name = "whisper"

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: Optional[str],
        timeout: float,
        *,
        api_url: str,
        model: str = "whisper-1",
    ):
        super().__init__(http, api_key, timeout)
        self._api_url = api_url
        self._model = model

    async def _transcribe(self, clip: AudioClip, language: Optional[str]) -> BackendTranscript:
        files = {"file": (clip.filename, clip.data, clip.mime_type)}
        data: Dict[str, Any] = {"model": self._model, "response_format": "verbose_json"}
        # English hint is omitted so Whisper auto-detects mixed-language speech
        if language and language != "en":
            data["language"] = language

        resp = await self._http.post(
            self._api_url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            files=files,
            data=data,
            timeout=self.timeout,
        )
        resp.raise_for_status()
        body = resp.json()

        detected = body.get("language")
        detected = _WHISPER_LANGUAGE_NAMES.get(str(detected).lower(), detected) if detected else None
        return BackendTranscript(
            text=(body.get("text") or "").strip(),
            language=short_language(detected) or language,
            # Whisper reports no confidence; a returned transcript is trusted
            confidence=1.0,
        )


# ═══════════════════════════════════════════════════════════════════════════
# Deepgram
# ═══════════════════════════════════════════════════════════════════════════

class DeepgramBackend(SpeechBackend):
    """Deepgram pre-recorded audio API (nova-2, raw body upload)."""

    name = "deepgram"

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: Optional[str],
        timeout: float,
        *,
        api_url: str,
        model: str = "nova-2",
    ):
        super().__init__(http, api_key, timeout)
        self._api_url = api_url
        self._model = model

    async def _transcribe(self, clip: AudioClip, language: Optional[str]) -> BackendTranscript:
        params = {
            "model": self._model,
            "language": language or "en",
            "punctuate": "true",
            "smart_format": "true",
        }
        resp = await self._http.post(
            self._api_url,
            params=params,
            headers={
                "Authorization": f"Token {self._api_key}",
                "Content-Type": clip.mime_type,
            },
            content=clip.data,
            timeout=self.timeout,
        )
        resp.raise_for_status()

        channel = resp.json()["results"]["channels"][0]
        alternative = channel["alternatives"][0]
        return BackendTranscript(
            text=(alternative.get("transcript") or "").strip(),
            language=short_language(channel.get("detected_language")) or language,
            confidence=float(alternative.get("confidence") or 0.0),
        )


# ═══════════════════════════════════════════════════════════════════════════
# Google Cloud Speech-to-Text
# ═══════════════════════════════════════════════════════════════════════════

GOOGLE_ALTERNATIVE_LANGUAGES = ("hi-IN", "kn-IN", "ta-IN", "te-IN", "ml-IN")

# Boosted so short distress calls are not misheard
EMERGENCY_PHRASES = (
    "emergency", "help", "hospital", "ambulance", "pain", "accident",
    "injury", "call police", "fire", "poison", "drowning",
)


class GoogleSpeechBackend(SpeechBackend):
    """Google Speech REST recognize (LINEAR16 WAV only)."""

    name = "google"
    accepted_formats = frozenset({"wav"})

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: Optional[str],
        timeout: float,
        *,
        api_url: str,
        sample_rate: int = 16000,
    ):
        super().__init__(http, api_key, timeout)
        self._api_url = api_url
        self._sample_rate = sample_rate

    def _language_code(self, language: Optional[str]) -> str:
        if not language or language == "en":
            return "en-US"
        return f"{language}-IN"

    async def _transcribe(self, clip: AudioClip, language: Optional[str]) -> BackendTranscript:
        primary = self._language_code(language)
        payload = {
            "config": {
                "encoding": "LINEAR16",
                "sampleRateHertz": self._sample_rate,
                "languageCode": primary,
                "alternativeLanguageCodes": [
                    code for code in GOOGLE_ALTERNATIVE_LANGUAGES if code != primary
                ],
                "enableAutomaticPunctuation": True,
                "model": "default",
                "speechContexts": [{"phrases": list(EMERGENCY_PHRASES), "boost": 100}],
            },
            "audio": {"content": base64.b64encode(clip.data).decode("ascii")},
        }
        resp = await self._http.post(
            self._api_url,
            params={"key": self._api_key},
            json=payload,
            timeout=self.timeout,
        )
        resp.raise_for_status()

        results = resp.json().get("results") or []
        if not results:
            return BackendTranscript(text="", language=language)

        text = " ".join(
            r["alternatives"][0].get("transcript", "").strip()
            for r in results if r.get("alternatives")
        ).strip()
        first = results[0]
        return BackendTranscript(
            text=text,
            language=short_language(first.get("languageCode")) or language,
            confidence=float(first["alternatives"][0].get("confidence") or 0.0),
        )


# ═══════════════════════════════════════════════════════════════════════════
# Registry
# ═══════════════════════════════════════════════════════════════════════════

def build_backend(name: str, http: httpx.AsyncClient) -> SpeechBackend:
    """Instantiate a backend by its TRANSCRIPTION_BACKENDS name."""
    if name == "whisper":
        return WhisperBackend(
            http, settings.OPENAI_API_KEY, settings.WHISPER_TIMEOUT,
            api_url=settings.WHISPER_API_URL, model=settings.WHISPER_MODEL,
        )
    if name == "deepgram":
        return DeepgramBackend(
            http, settings.DEEPGRAM_API_KEY, settings.DEEPGRAM_TIMEOUT,
            api_url=settings.DEEPGRAM_API_URL, model=settings.DEEPGRAM_MODEL,
        )
    if name == "google":
        return GoogleSpeechBackend(
            http, settings.GOOGLE_SPEECH_API_KEY, settings.GOOGLE_SPEECH_TIMEOUT,
            api_url=settings.GOOGLE_SPEECH_API_URL, sample_rate=settings.AUDIO_SAMPLE_RATE,
        )
    raise ValueError(f"Unknown transcription backend: {name}")
