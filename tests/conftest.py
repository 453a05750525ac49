"""Shared fixtures: canned HTTP responses and scriptable providers."""

import asyncio
import json

import pytest
import structlog
from PIL import Image
from requests.structures import CaseInsensitiveDict

from screentranslate.backends.base import TranslationProvider
from screentranslate.http import HTTPResponse
from screentranslate.models import EngineIdentifier, TranslationResult


def make_response(status: int = 200, body=None, headers: dict | None = None, raw: bytes | None = None) -> HTTPResponse:
    if raw is not None:
        content = raw
    elif body is not None:
        content = json.dumps(body).encode("utf-8")
    else:
        content = b""
    return HTTPResponse(status, content, CaseInsensitiveDict(headers or {}))


class FakeTranslationProvider(TranslationProvider):
    """Provider that prefixes its input, fails with a fixed error, or both after a delay."""

    def __init__(
        self,
        engine: EngineIdentifier,
        prefix: str = "T:",
        error: Exception | None = None,
        available: bool = True,
        delay: float = 0.0,
    ):
        super().__init__(engine, timeout=5.0)
        self.prefix = prefix
        self.error = error
        self.available = available
        self.delay = delay
        self.calls: list[str] = []

    async def is_available(self) -> bool:
        return self.available

    async def _translate(self, text, source_language, target_language):
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return TranslationResult(text, f"{self.prefix}{text}", source_language, target_language)


@pytest.fixture
def response():
    """Factory building an HTTPResponse from a status, JSON body and headers."""
    return make_response


@pytest.fixture
def fake_provider():
    return FakeTranslationProvider


@pytest.fixture
def image():
    """A 200x100 white RGB screenshot."""
    return Image.new("RGB", (200, 100), "white")


@pytest.fixture(autouse=True)
def _isolate_structlog(monkeypatch):
    """Keep loggers from caching a per-test captured stream across tests.

    log.configure() binds output to the current sys.stderr, which capsys
    closes when the test ends; cached loggers would then write to a closed file.
    """
    real_configure = structlog.configure

    def configure(**kwargs):
        kwargs["cache_logger_on_first_use"] = False
        real_configure(**kwargs)

    monkeypatch.setattr(structlog, "configure", configure)
    yield
    structlog.reset_defaults()
