"""
translation.py — Best-effort translation of transcripts to English.

    TranslationGate.translate(text, source_language)
        source is English / text empty  → text unchanged, no network call
        backend answers                  → translated text
        backend fails (any reason)       → text unchanged, failure logged

The gate never raises: an untranslated distress message is still better
than no message. Backend: MyMemory (free, keyless) —

    GET https://api.mymemory.translated.net/get?q=<text>&langpair=<src>|en
    → {"responseStatus": 200, "responseData": {"translatedText": "..."}}
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Protocol, Sequence

import httpx

from backend.app.core.config import settings
from backend.app.core.errors import TranslationUnavailable
from backend.app.emergency.transcription.backends import short_language

logger = logging.getLogger(__name__)

TARGET_LANGUAGE = "en"


class Translator(Protocol):
    name: str

    async def translate(self, text: str, source_language: str, target_language: str) -> str:
        ...


class MyMemoryTranslator:
    """MyMemory public translation API via a shared httpx.AsyncClient."""

    name = "mymemory"

    def __init__(self, http: httpx.AsyncClient, api_url: str, timeout: float):
        self._http = http
        self._api_url = api_url
        self._timeout = timeout

    async def translate(self, text: str, source_language: str, target_language: str) -> str:
        try:
            resp = await self._http.get(
                self._api_url,
                params={"q": text, "langpair": f"{source_language}|{target_language}"},
                timeout=self._timeout,
            )
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TranslationUnavailable(f"MyMemory request failed: {e}")

        if body.get("responseStatus") != 200 or not body.get("responseData"):
            raise TranslationUnavailable(
                f"MyMemory status {body.get('responseStatus')}: {body.get('responseDetails')}"
            )
        translated = body["responseData"].get("translatedText")
        if not translated:
            raise TranslationUnavailable("MyMemory returned no text")
        return translated


class TranslationGate:
    """Decides whether to translate and absorbs every backend failure."""

    def __init__(self, translator: Optional[Translator]):
        self.translator = translator

    @property
    def enabled(self) -> bool:
        return self.translator is not None

    async def translate(self, text: str, source_language: Optional[str]) -> str:
        source = short_language(source_language) or TARGET_LANGUAGE
        if not text or source == TARGET_LANGUAGE:
            return text
        if self.translator is None:
            logger.info("Translation disabled — keeping %s text", source)
            return text

        try:
            translated = await self.translator.translate(text, source, TARGET_LANGUAGE)
        except Exception as e:
            logger.warning(
                "Translation %s→en failed, keeping original: %s", source, e,
                extra={"language": source},
            )
            return text

        logger.info("Translated %d chars %s→en", len(text), source, extra={"language": source})
        return translated

    async def translate_batch(self, texts: Sequence[str], source_language: Optional[str]) -> List[str]:
        """Element-wise translate, concurrently; order and length preserved."""
        return list(await asyncio.gather(
            *(self.translate(text, source_language) for text in texts)
        ))


def build_translation_gate(http: httpx.AsyncClient) -> TranslationGate:
    if settings.TRANSLATION_PROVIDER == "mymemory":
        return TranslationGate(MyMemoryTranslator(
            http, settings.TRANSLATION_API_URL, settings.TRANSLATION_TIMEOUT,
        ))
    if settings.TRANSLATION_PROVIDER != "none":
        logger.warning("Unknown TRANSLATION_PROVIDER %r — translation disabled",
                       settings.TRANSLATION_PROVIDER)
    return TranslationGate(None)
