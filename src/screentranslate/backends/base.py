"""Abstract base classes for translation and vision/OCR providers."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable
from typing import TypeVar

from .. import log
from ..asyncutils import InFlightGuard, race_with_timeout
from ..errors import ScreenTranslateError, TranslationProviderError
from ..imaging import ImageInput
from ..models import (
    EngineIdentifier,
    ProviderConfiguration,
    ScreenAnalysisResult,
    TranslationResult,
    VLMProviderType,
)

logger = log.get_logger()

T = TypeVar("T")


class TranslationProvider(ABC):
    """Abstract base class for translation providers.

    Subclasses implement _translate and, when the backend has a true batch
    API, _translate_batch. The public methods add input validation and the
    in-flight guard.
    """

    def __init__(self, engine: EngineIdentifier, timeout: float = 30.0):
        self.engine = engine
        self.timeout = timeout
        self._guard = InFlightGuard(self.name)

    @property
    def name(self) -> str:
        return self.engine.engine_type.display_name

    @abstractmethod
    async def is_available(self) -> bool:
        """Probe whether the provider can serve a request right now."""

    @abstractmethod
    async def _translate(self, text: str, source_language: str | None, target_language: str) -> TranslationResult:
        pass

    async def _translate_batch(
        self, texts: list[str], source_language: str | None, target_language: str
    ) -> list[TranslationResult]:
        """Translate one text at a time, in order."""
        return [await self._translate(text, source_language, target_language) for text in texts]

    async def translate(self, text: str, source_language: str | None, target_language: str) -> TranslationResult:
        """Translate a single text.

        Raises:
            TranslationProviderError: On any provider failure.
            OperationInProgressError: If this instance is already busy.
        """
        if not text or not text.strip():
            raise TranslationProviderError.empty_input()
        with self._guard:
            return await self._translate(text, source_language, target_language)

    async def translate_batch(
        self, texts: list[str], source_language: str | None, target_language: str
    ) -> list[TranslationResult]:
        """Translate several texts; results keep the input order."""
        if not texts:
            return []
        if any(not t or not t.strip() for t in texts):
            raise TranslationProviderError.empty_input()
        with self._guard:
            results = await self._translate_batch(list(texts), source_language, target_language)
        if len(results) != len(texts):
            raise TranslationProviderError.translation_failed(
                f"{self.name} returned {len(results)} translations for {len(texts)} texts"
            )
        return results

    async def check_connection(self) -> bool:
        """Run a minimal live translation."""
        try:
            await self.translate("Hello", "en", "zh")
        except ScreenTranslateError as e:
            logger.warning("connection check failed", engine=str(self.engine), err=str(e))
            return False
        return True

    async def _timed(self, awaitable: Awaitable[T]) -> T:
        try:
            return await race_with_timeout(awaitable, self.timeout)
        except TimeoutError as e:
            raise TranslationProviderError.timeout(self.timeout) from e


class PromptTemplateMixin:
    """Provider accepting a custom prompt template (None restores the default)."""

    custom_prompt_template: str | None = None

    def set_custom_prompt_template(self, template: str | None) -> None:
        self.custom_prompt_template = template


class VLMProvider(ABC):
    """Abstract base class for vision-language and OCR providers."""

    provider_type: VLMProviderType

    def __init__(self, configuration: ProviderConfiguration):
        self.configuration = configuration
        self._guard = InFlightGuard(self.name)

    @property
    def name(self) -> str:
        return self.provider_type.value

    @abstractmethod
    async def is_available(self) -> bool:
        pass

    @abstractmethod
    async def _analyze(self, image: ImageInput) -> ScreenAnalysisResult:
        pass

    async def analyze(self, image: ImageInput) -> ScreenAnalysisResult:
        """Extract text segments with normalized bounding boxes.

        Raises:
            VLMProviderError: On any provider failure.
            OperationInProgressError: If this instance is already busy.
        """
        with self._guard:
            return await self._analyze(image)
