"""
audio.py — Voice clip container, format sniffing and WAV conversion.

Mobile clients record in whatever the platform offers (WebM/Opus on
Android Chrome, M4A on iOS, sometimes WAV). Some speech backends accept
anything, Google Speech REST only takes LINEAR16. Clips are converted to
16 kHz mono 16-bit PCM WAV (ffmpeg via pydub) only when a backend needs it.

Format detection order:
    1. Magic bytes     (RIFF/WAVE, EBML, OggS, ID3, fLaC, ftyp)
    2. File extension
    3. Declared content type
"""

from __future__ import annotations

import asyncio
import io
import logging
import os
import shutil
from dataclasses import dataclass
from typing import Collection, Optional

from pydub import AudioSegment

from backend.app.core.config import settings

logger = logging.getLogger(__name__)

WAV = "wav"
UNKNOWN = "unknown"

_EXTENSION_FORMATS = {
    ".wav": "wav",
    ".webm": "webm",
    ".ogg": "ogg",
    ".opus": "ogg",
    ".mp3": "mp3",
    ".m4a": "m4a",
    ".mp4": "m4a",
    ".aac": "m4a",
    ".flac": "flac",
}

_MIME_FORMATS = {
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/mp4": "m4a",
    "audio/m4a": "m4a",
    "audio/x-m4a": "m4a",
    "audio/aac": "m4a",
    "audio/flac": "flac",
}

# pydub/ffmpeg demuxer names
_FFMPEG_FORMATS = {"m4a": "mp4"}


@dataclass(frozen=True)
class AudioClip:
    """Raw voice recording as uploaded."""
    data: bytes
    filename: str = "voice.webm"
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def format(self) -> str:
        return detect_format(self)

    @property
    def mime_type(self) -> str:
        if self.content_type:
            return self.content_type
        fmt = self.format
        return "audio/mp4" if fmt == "m4a" else f"audio/{fmt}"


def detect_format(clip: AudioClip) -> str:
    """
    Best-effort container format of ``clip``.

    >>> detect_format(AudioClip(b"RIFF\\x00\\x00\\x00\\x00WAVEfmt ", "x.bin"))
    'wav'
    """
    head = clip.data[:12]
    if head[:4] == b"RIFF" and head[8:12] == b"WAVE":
        return "wav"
    if head[:4] == b"\x1a\x45\xdf\xa3":
        return "webm"
    if head[:4] == b"OggS":
        return "ogg"
    if head[:4] == b"fLaC":
        return "flac"
    if head[:3] == b"ID3" or head[:2] in (b"\xff\xfb", b"\xff\xf3", b"\xff\xf2"):
        return "mp3"
    if head[4:8] == b"ftyp":
        return "m4a"

    ext = os.path.splitext(clip.filename or "")[1].lower()
    if ext in _EXTENSION_FORMATS:
        return _EXTENSION_FORMATS[ext]

    mime = (clip.content_type or "").split(";")[0].strip().lower()
    return _MIME_FORMATS.get(mime, UNKNOWN)


def ffmpeg_available() -> bool:
    """True when an ffmpeg binary is on PATH (needed for conversion)."""
    return shutil.which("ffmpeg") is not None


def _convert_sync(clip: AudioClip, sample_rate: int) -> AudioClip:
    fmt = detect_format(clip)
    source_format = None if fmt == UNKNOWN else _FFMPEG_FORMATS.get(fmt, fmt)

    segment = AudioSegment.from_file(io.BytesIO(clip.data), format=source_format)
    segment = segment.set_frame_rate(sample_rate).set_channels(1).set_sample_width(2)

    out = io.BytesIO()
    segment.export(out, format="wav", codec="pcm_s16le")

    stem = os.path.splitext(clip.filename or "voice")[0]
    return AudioClip(data=out.getvalue(), filename=f"{stem}.wav", content_type="audio/wav")


async def convert_to_wav(
    clip: AudioClip,
    *,
    sample_rate: Optional[int] = None,
    timeout: Optional[float] = None,
) -> AudioClip:
    """
    Convert ``clip`` to 16-bit mono PCM WAV.

    Raises on decoder failure or timeout; see ``ensure_format`` for the
    non-raising variant used by the transcription chain.
    """
    rate = sample_rate or settings.AUDIO_SAMPLE_RATE
    limit = timeout or settings.AUDIO_CONVERSION_TIMEOUT
    converted = await asyncio.wait_for(asyncio.to_thread(_convert_sync, clip, rate), limit)
    logger.info(
        "Converted %s (%.1fKB) → wav (%.1fKB)",
        detect_format(clip), clip.size / 1024, converted.size / 1024,
    )
    return converted


async def ensure_format(clip: AudioClip, accepted_formats: Optional[Collection[str]]) -> AudioClip:
    """
    Return ``clip`` in a format the backend accepts.

    ``accepted_formats`` of None means the backend takes anything. When
    conversion fails the original clip is returned and the backend gets a
    chance with the raw bytes.
    """
    if not accepted_formats or detect_format(clip) in accepted_formats:
        return clip
    try:
        return await convert_to_wav(clip)
    except Exception as e:
        logger.warning("Audio conversion failed, sending original bytes: %s", e)
        return clip
