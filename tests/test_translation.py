"""
test_translation.py — Best-effort translation gate and the MyMemory client.

Run with:
    pytest tests/test_translation.py -v
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from backend.app.core.errors import TranslationUnavailable
from backend.app.emergency.translation import MyMemoryTranslator, TranslationGate

from conftest import CountingTranslator

API_URL = "https://api.mymemory.translated.net/get"


def _run(coro):
    return asyncio.run(coro)


def _mymemory(handler) -> MyMemoryTranslator:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MyMemoryTranslator(http, API_URL, timeout=5.0)


class TestTranslationGate:

    def test_english_source_skips_backend(self):
        translator = CountingTranslator()
        gate = TranslationGate(translator)
        assert _run(gate.translate("help", "en-US")) == "help"
        assert translator.calls == []

    def test_empty_text_skips_backend(self):
        translator = CountingTranslator()
        assert _run(TranslationGate(translator).translate("", "hi")) == ""
        assert translator.calls == []

    def test_non_english_translated(self):
        translator = CountingTranslator()
        result = _run(TranslationGate(translator).translate("मदद", "hi-IN"))
        assert result == "[en] मदद"
        assert translator.calls == [("मदद", "hi", "en")]

    def test_missing_language_treated_as_english(self):
        translator = CountingTranslator()
        assert _run(TranslationGate(translator).translate("help", None)) == "help"
        assert translator.calls == []

    def test_failure_returns_original(self):
        translator = CountingTranslator()
        translator.error = TranslationUnavailable("quota exceeded")
        assert _run(TranslationGate(translator).translate("ಸಹಾಯ", "kn")) == "ಸಹಾಯ"

    def test_disabled_returns_original(self):
        gate = TranslationGate(None)
        assert gate.enabled is False
        assert _run(gate.translate("மதத", "ta")) == "மதத"

    def test_batch_preserves_order_and_length(self):
        gate = TranslationGate(CountingTranslator())
        result = _run(gate.translate_batch(["a", "", "c"], "hi"))
        assert result == ["[en] a", "", "[en] c"]


class TestMyMemoryTranslator:

    def test_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["q"] = request.url.params["q"]
            seen["langpair"] = request.url.params["langpair"]
            return httpx.Response(200, json={
                "responseStatus": 200,
                "responseData": {"translatedText": "Help me"},
            })

        assert _run(_mymemory(handler).translate("मदद करो", "hi", "en")) == "Help me"
        assert seen == {"q": "मदद करो", "langpair": "hi|en"}

    def test_non_200_response_status(self):
        def handler(request):
            return httpx.Response(200, json={
                "responseStatus": 403,
                "responseDetails": "INVALID LANGUAGE PAIR",
                "responseData": {"translatedText": "INVALID LANGUAGE PAIR"},
            })

        with pytest.raises(TranslationUnavailable):
            _run(_mymemory(handler).translate("x", "zz", "en"))

    def test_http_error(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        with pytest.raises(TranslationUnavailable):
            _run(_mymemory(handler).translate("x", "hi", "en"))

    def test_malformed_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>")

        with pytest.raises(TranslationUnavailable):
            _run(_mymemory(handler).translate("x", "hi", "en"))

    def test_gate_absorbs_backend_failure(self):
        def handler(request):
            raise httpx.ConnectError("no route")

        gate = TranslationGate(_mymemory(handler))
        assert _run(gate.translate("मदद", "hi")) == "मदद"
