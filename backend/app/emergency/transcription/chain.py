"""
chain.py — Ordered speech-to-text fallback chain.

═══════════════════════════════════════════════════════════════════════════
CHAIN EXECUTION
═══════════════════════════════════════════════════════════════════════════

    clip ─► entry₁ ──ok──► TranscriptResult(backend=entry₁)
              │
            fail / timeout / empty
              ▼
            entry₂ ──ok──► TranscriptResult(backend=entry₂)
              │
             ...
              ▼
            placeholder (confidence 0, is_placeholder=True)

    • Entries run strictly one after another; the first non-empty text wins.
    • Each attempt is bounded by its own timeout_seconds.
    • A clip in a format the entry does not accept is converted to WAV first.
    • The order is data (TRANSCRIPTION_BACKENDS), not code.

The chain never raises: a distress call always gets some text, the canned
placeholder in the requested language when nothing else worked.

═══════════════════════════════════════════════════════════════════════════
CLIENT-SUPPLIED TRANSCRIPTS
═══════════════════════════════════════════════════════════════════════════

Clients with on-device recognition send the transcript inside the message
field as "🚨 EMERGENCY: <text>". While recognition is still running they
send "🚨 EMERGENCY: Voice recording received - transcribing...", which is
not a transcript. A usable client transcript skips the chain entirely.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Collection, List, Optional, Sequence

import httpx

from backend.app.core.config import settings
from backend.app.core.errors import TranscriptionUnavailable
from backend.app.emergency.models import TranscriptResult
from backend.app.emergency.transcription.audio import AudioClip, ensure_format
from backend.app.emergency.transcription.backends import (
    BackendTranscript,
    build_backend,
    short_language,
)

logger = logging.getLogger(__name__)

CLIENT_TRANSCRIPT_PREFIX = "🚨 EMERGENCY:"
CLIENT_PLACEHOLDER_TEXT = "Voice recording received - transcribing..."

DEFAULT_LANGUAGE = "en"
PLACEHOLDER_BACKEND = "placeholder"
CLIENT_BACKEND = "client"

PLACEHOLDER_MESSAGES = {
    "en": "Emergency! I need immediate help and assistance.",
    "hi": "आपातकाल! मुझे तुरंत मदद की जरूरत है।",
    "kn": "ತುರ್ತ ಸ್ಥಿತಿ! ನನಗೆ ತಕ್ಷಣ ಸಹಾಯ ಬೇಕು।",
    "ta": "அவசரம்! எனக்கு உடனடி உதவி தேவை.",
    "te": "అత్యవసరం! నాకు వెంటనే సహాయం కావాలి.",
}

Invoke = Callable[[AudioClip, Optional[str]], Awaitable[BackendTranscript]]


@dataclass(frozen=True)
class ChainEntry:
    """One backend slot in the chain."""
    name: str
    invoke: Invoke
    timeout_seconds: float
    accepted_formats: Optional[Collection[str]] = None


def extract_client_transcript(message: Optional[str]) -> Optional[str]:
    """
    Transcript embedded in the message field, or None.

    >>> extract_client_transcript("🚨 EMERGENCY: chest pain")
    'chest pain'
    >>> extract_client_transcript("help") is None
    True
    """
    if not message:
        return None
    text = message.strip()
    if not text.startswith(CLIENT_TRANSCRIPT_PREFIX):
        return None
    remainder = text[len(CLIENT_TRANSCRIPT_PREFIX):].strip()
    if not remainder or remainder == CLIENT_PLACEHOLDER_TEXT:
        return None
    return remainder


def placeholder_transcript(language: Optional[str]) -> TranscriptResult:
    """Canned emergency text for when no backend could transcribe."""
    lang = short_language(language) or DEFAULT_LANGUAGE
    if lang not in PLACEHOLDER_MESSAGES:
        lang = DEFAULT_LANGUAGE
    return TranscriptResult(
        original_text=PLACEHOLDER_MESSAGES[lang],
        english_text=PLACEHOLDER_MESSAGES[DEFAULT_LANGUAGE],
        detected_language=lang,
        confidence=0.0,
        backend=PLACEHOLDER_BACKEND,
        is_placeholder=True,
    )


def client_transcript(text: str, language: Optional[str]) -> TranscriptResult:
    """Wrap a client-supplied transcript (english_text filled in by translation)."""
    return TranscriptResult(
        original_text=text,
        english_text=text,
        detected_language=short_language(language) or DEFAULT_LANGUAGE,
        confidence=1.0,
        backend=CLIENT_BACKEND,
    )


class TranscriptionChain:
    """
    Runs ChainEntry objects in order until one yields text.

    The returned ``english_text`` equals ``original_text`` for real
    transcripts; translation is a separate step. Placeholders carry the
    English canned text already.
    """

    def __init__(self, entries: Sequence[ChainEntry], *, max_audio_bytes: Optional[int] = None):
        self.entries: List[ChainEntry] = list(entries)
        self.max_audio_bytes = max_audio_bytes or settings.MAX_AUDIO_BYTES

    @property
    def backend_names(self) -> List[str]:
        return [e.name for e in self.entries]

    async def transcribe(self, clip: AudioClip, language_hint: Optional[str] = None) -> TranscriptResult:
        hint = short_language(language_hint)

        if clip.size == 0:
            logger.warning("Empty voice clip — using placeholder transcript")
            return placeholder_transcript(hint)
        if clip.size > self.max_audio_bytes:
            logger.warning(
                "Voice clip too large (%d bytes > %d) — using placeholder transcript",
                clip.size, self.max_audio_bytes,
            )
            return placeholder_transcript(hint)

        for entry in self.entries:
            result = await self._attempt(entry, clip, hint)
            if result is not None:
                return result

        unavailable = TranscriptionUnavailable(
            f"All {len(self.entries)} transcription backends failed"
        )
        logger.warning(
            "%s — using placeholder transcript", unavailable.message,
            extra={"language": hint or DEFAULT_LANGUAGE},
        )
        return placeholder_transcript(hint)

    async def _attempt(
        self,
        entry: ChainEntry,
        clip: AudioClip,
        hint: Optional[str],
    ) -> Optional[TranscriptResult]:
        start = time.perf_counter()
        try:
            prepared = await ensure_format(clip, entry.accepted_formats)
            answer = await asyncio.wait_for(entry.invoke(prepared, hint), entry.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "[%s] Transcription timed out after %.0fs", entry.name, entry.timeout_seconds,
                extra={"backend": entry.name},
            )
            return None
        except Exception as e:
            logger.warning(
                "[%s] Transcription failed: %s", entry.name, e,
                extra={"backend": entry.name},
            )
            return None

        text = (answer.text or "").strip()
        duration_ms = (time.perf_counter() - start) * 1000
        if not text:
            logger.info(
                "[%s] No speech detected (%.0fms)", entry.name, duration_ms,
                extra={"backend": entry.name, "duration_ms": duration_ms},
            )
            return None

        language = short_language(answer.language) or hint or DEFAULT_LANGUAGE
        logger.info(
            "[%s] Transcribed %d chars, language=%s (%.0fms)",
            entry.name, len(text), language, duration_ms,
            extra={"backend": entry.name, "language": language, "duration_ms": duration_ms},
        )
        return TranscriptResult(
            original_text=text,
            english_text=text,
            detected_language=language,
            confidence=min(max(float(answer.confidence), 0.0), 1.0),
            backend=entry.name,
        )


def build_chain(http: httpx.AsyncClient, names: Optional[Sequence[str]] = None) -> TranscriptionChain:
    """
    Chain from the configured backend order.

    Backends without an API key are left out, so an unconfigured deployment
    goes straight to the placeholder.
    """
    entries: List[ChainEntry] = []
    for name in names if names is not None else settings.TRANSCRIPTION_BACKENDS:
        backend = build_backend(name, http)
        if not backend.is_configured:
            logger.info("Transcription backend %s not configured — skipped", name)
            continue
        entries.append(ChainEntry(
            name=backend.name,
            invoke=backend.transcribe,
            timeout_seconds=backend.timeout,
            accepted_formats=backend.accepted_formats,
        ))
    logger.info("Transcription chain: %s", [e.name for e in entries] or "placeholder only")
    return TranscriptionChain(entries)
