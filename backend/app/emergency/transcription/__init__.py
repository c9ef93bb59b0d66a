"""
transcription — Voice clip → English transcript.

    audio     — AudioClip, format sniffing, WAV conversion (pydub / ffmpeg)
    backends  — Whisper, Deepgram, Google Speech HTTP backends
    chain     — ordered fallback chain + client transcript extraction
"""

from backend.app.emergency.transcription.audio import AudioClip
from backend.app.emergency.transcription.chain import (
    CLIENT_PLACEHOLDER_TEXT,
    CLIENT_TRANSCRIPT_PREFIX,
    ChainEntry,
    TranscriptionChain,
    build_chain,
    extract_client_transcript,
)

__all__ = [
    "AudioClip",
    "CLIENT_PLACEHOLDER_TEXT",
    "CLIENT_TRANSCRIPT_PREFIX",
    "ChainEntry",
    "TranscriptionChain",
    "build_chain",
    "extract_client_transcript",
]
