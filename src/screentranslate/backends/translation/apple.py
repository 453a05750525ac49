"""On-device system translation.

The platform translation framework lives outside this package; the host
application injects it as an async callable. Without one the engine
reports itself unavailable.
"""

import time
from collections.abc import Awaitable, Callable

from ... import log
from ...errors import ScreenTranslateError, TranslationProviderError
from ...models import EngineIdentifier, EngineType, TranslationResult
from ..base import TranslationProvider

logger = log.get_logger()

# (text, source_language or None, target_language) -> translated text
SystemTranslator = Callable[[str, str | None, str], Awaitable[str]]


class AppleTranslationProvider(TranslationProvider):
    def __init__(self, translator: SystemTranslator | None = None, timeout: float = 30.0):
        super().__init__(EngineIdentifier.standard(EngineType.APPLE), timeout)
        self._translator = translator

    async def is_available(self) -> bool:
        return self._translator is not None

    async def _translate(self, text: str, source_language: str | None, target_language: str) -> TranslationResult:
        if self._translator is None:
            raise TranslationProviderError.not_available(self.name)

        start = time.perf_counter()
        try:
            translated = await self._timed(self._translator(text, source_language, target_language))
        except ScreenTranslateError:
            raise
        except Exception as e:
            raise TranslationProviderError.translation_failed(f"System translation failed: {e}") from e

        if not translated:
            raise TranslationProviderError.translation_failed("System translation returned no text")
        logger.debug("system translation complete", latency_ms=int((time.perf_counter() - start) * 1000))
        return TranslationResult(text, translated, source_language, target_language)
