"""Tests for translation orchestration and screen analysis."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from screentranslate.backends.base import PromptTemplateMixin, VLMProvider
from screentranslate.backends.registry import ProviderRegistry
from screentranslate.config import Settings
from screentranslate.errors import (
    AllEnginesFailedError,
    ErrorKind,
    TranslationProviderError,
    VLMProviderError,
)
from screentranslate.models import (
    BoundingBox,
    EngineIdentifier,
    EngineSelectionMode,
    EngineType,
    ImageSize,
    ProviderConfiguration,
    SceneEngineBinding,
    ScreenAnalysisResult,
    TextSegment,
    TranslationScene,
    VLMProviderType,
)
from screentranslate.prompts import DEFAULT_INSERT_PROMPT, TranslationPromptConfig
from screentranslate.secrets import MemorySecretStore
from screentranslate.service import ScreenAnalyzer, TranslationService, default_fallback

from conftest import FakeTranslationProvider

APPLE = EngineIdentifier.standard(EngineType.APPLE)
MTRAN = EngineIdentifier.standard(EngineType.MTRAN_SERVER)
OPENAI = EngineIdentifier.standard(EngineType.OPENAI)
CLAUDE = EngineIdentifier.standard(EngineType.CLAUDE)
DEEPL = EngineIdentifier.standard(EngineType.DEEPL)


class FakeLLMProvider(PromptTemplateMixin, FakeTranslationProvider):
    pass


def _service(*providers, settings=None, prompt_config=None):
    registry = ProviderRegistry(settings or Settings(), MemorySecretStore())
    for provider in providers:
        registry.register(provider)
    return TranslationService(registry, prompt_config)


class TestPrimaryWithFallback:
    """Tests for the default selection mode."""

    def test_primary_success(self):
        primary = FakeTranslationProvider(OPENAI)
        service = _service(primary)

        bundle = asyncio.run(service.translate(["hello"], "zh", preferred_engine=OPENAI))

        assert bundle.primary_engine == OPENAI
        assert bundle.selection_mode is EngineSelectionMode.PRIMARY_WITH_FALLBACK
        assert [s.translated for s in bundle.segments] == ["T:hello"]

    def test_network_failure_falls_back(self):
        """A failed primary is replaced by the fallback's result."""
        primary = FakeTranslationProvider(OPENAI, error=TranslationProviderError.network_error("down"))
        fallback = FakeTranslationProvider(APPLE, prefix="A:")
        service = _service(primary, fallback)

        bundle = asyncio.run(service.translate(["hello"], "zh", preferred_engine=OPENAI))

        assert bundle.primary_engine == APPLE
        assert [s.translated for s in bundle.segments] == ["A:hello"]
        assert primary.calls == ["hello"]

    def test_explicit_fallback_engine(self):
        primary = FakeTranslationProvider(OPENAI, available=False)
        fallback = FakeTranslationProvider(DEEPL, prefix="D:")
        service = _service(primary, fallback)

        bundle = asyncio.run(service.translate(["hi"], "de", preferred_engine=OPENAI, fallback_engine=DEEPL))

        assert bundle.segments[0].translated == "D:hi"
        assert primary.calls == []

    def test_fallback_disabled_reraises_primary_error(self):
        error = TranslationProviderError.rate_limited(30)
        service = _service(FakeTranslationProvider(OPENAI, error=error), FakeTranslationProvider(APPLE))

        with pytest.raises(TranslationProviderError) as excinfo:
            asyncio.run(service.translate(["hi"], "zh", preferred_engine=OPENAI, fallback_enabled=False))

        assert excinfo.value is error

    def test_both_engines_fail(self):
        service = _service(
            FakeTranslationProvider(OPENAI, error=TranslationProviderError.network_error("down")),
            FakeTranslationProvider(APPLE, error=TranslationProviderError.timeout(30)),
        )

        with pytest.raises(AllEnginesFailedError) as excinfo:
            asyncio.run(service.translate(["hi"], "zh", preferred_engine=OPENAI))

        kinds = [e.kind for e in excinfo.value.errors]
        assert kinds == [ErrorKind.NETWORK_ERROR, ErrorKind.TIMEOUT]
        assert excinfo.value.kind is ErrorKind.ALL_ENGINES_FAILED

    def test_default_fallback(self):
        assert default_fallback(APPLE, None) == MTRAN
        assert default_fallback(OPENAI, None) == APPLE
        assert default_fallback(OPENAI, TranslationScene.SCREENSHOT) == MTRAN


class TestInputs:
    """Tests for input filtering and segment pairing."""

    def test_blank_texts_dropped(self):
        provider = FakeTranslationProvider(OPENAI)
        service = _service(provider)

        bundle = asyncio.run(service.translate(["", "   ", "hi", "\n"], "zh", preferred_engine=OPENAI))

        assert provider.calls == ["hi"]
        assert len(bundle.segments) == 1

    def test_all_blank_calls_no_engine(self):
        provider = FakeTranslationProvider(OPENAI)
        service = _service(provider)

        bundle = asyncio.run(service.translate(["", " "], "zh", preferred_engine=OPENAI))

        assert bundle.results == ()
        assert provider.calls == []

    def test_segments_keep_their_boxes(self):
        segment = TextSegment("Open", BoundingBox(0.1, 0.2, 0.3, 0.05), 0.9)
        service = _service(FakeTranslationProvider(OPENAI))

        bundle = asyncio.run(service.translate([segment, "plain"], "zh", preferred_engine=OPENAI))

        first, second = bundle.segments
        assert first.original is segment
        assert first.translated == "T:Open"
        assert second.original.bounding_box == BoundingBox.zero()


class TestParallel:
    """Tests for parallel mode."""

    def test_mixed_outcomes_recorded_per_engine(self):
        """One success, one rate limit and one auth failure, all in one bundle."""
        service = _service(
            FakeTranslationProvider(OPENAI, delay=0.02),
            FakeTranslationProvider(DEEPL, error=TranslationProviderError.rate_limited(30)),
            FakeTranslationProvider(CLAUDE, error=TranslationProviderError.authentication_failed()),
        )

        bundle = asyncio.run(
            service.translate(
                ["hi"],
                "zh",
                mode=EngineSelectionMode.PARALLEL,
                parallel_engines=[OPENAI, DEEPL, CLAUDE],
            )
        )

        assert len(bundle.results) == 3
        assert bundle.primary_engine == OPENAI
        assert bundle.successful_engines == [OPENAI]
        assert set(bundle.failed_engines) == {DEEPL, CLAUDE}
        assert bundle.result_for(DEEPL).error.retry_after == 30
        assert bundle.result_for(CLAUDE).error.kind is ErrorKind.AUTHENTICATION_FAILED
        assert bundle.segments[0].translated == "T:hi"
        # the slow engine finishes last
        assert bundle.results[-1].engine == OPENAI

    def test_all_failing_does_not_raise(self):
        service = _service(
            FakeTranslationProvider(OPENAI, available=False),
            FakeTranslationProvider(DEEPL, error=RuntimeError("boom")),
        )

        bundle = asyncio.run(
            service.translate(["hi"], "zh", mode=EngineSelectionMode.PARALLEL, parallel_engines=[OPENAI, DEEPL])
        )

        assert bundle.all_failed
        assert bundle.result_for(OPENAI).error.kind is ErrorKind.NOT_AVAILABLE
        assert bundle.result_for(DEEPL).error.kind is ErrorKind.TRANSLATION_FAILED

    def test_duplicate_engines_queried_once(self):
        provider = FakeTranslationProvider(OPENAI)
        service = _service(provider)

        bundle = asyncio.run(
            service.translate(["hi"], "zh", mode=EngineSelectionMode.PARALLEL, parallel_engines=[OPENAI, OPENAI])
        )

        assert len(bundle.results) == 1
        assert provider.calls == ["hi"]

    def test_cancellation_reaches_every_engine(self):
        """Cancelling the call leaves no engine task running."""
        slow = FakeTranslationProvider(OPENAI, delay=10)
        slower = FakeTranslationProvider(DEEPL, delay=20)
        service = _service(slow, slower)

        async def run():
            call = asyncio.create_task(
                service.translate(["hi"], "zh", mode=EngineSelectionMode.PARALLEL, parallel_engines=[OPENAI, DEEPL])
            )
            while len(slow.calls) + len(slower.calls) < 2:
                await asyncio.sleep(0.01)
            call.cancel()
            with pytest.raises(asyncio.CancelledError):
                await call
            for _ in range(5):
                await asyncio.sleep(0)
            return [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]

        assert asyncio.run(run()) == []


class TestQuickSwitchAndScenes:
    """Tests for quick switch and scene binding modes."""

    def test_quick_switch_has_no_fallback(self):
        fallback = FakeTranslationProvider(APPLE)
        service = _service(FakeTranslationProvider(DEEPL, error=TranslationProviderError.network_error("x")), fallback)

        with pytest.raises(TranslationProviderError):
            asyncio.run(service.translate(["hi"], "zh", mode=EngineSelectionMode.QUICK_SWITCH, preferred_engine=DEEPL))

        assert fallback.calls == []

    def test_scene_binding_selects_engines(self):
        binding = SceneEngineBinding(TranslationScene.TEXT_SELECTION, DEEPL, fallback_engine=OPENAI)
        primary = FakeTranslationProvider(DEEPL, error=TranslationProviderError.network_error("x"))
        fallback = FakeTranslationProvider(OPENAI, prefix="O:")
        service = _service(primary, fallback)

        bundle = asyncio.run(
            service.translate(
                ["hi"],
                "zh",
                scene=TranslationScene.TEXT_SELECTION,
                mode=EngineSelectionMode.SCENE_BINDING,
                scene_bindings={TranslationScene.TEXT_SELECTION: binding},
            )
        )

        assert bundle.selection_mode is EngineSelectionMode.SCENE_BINDING
        assert bundle.scene is TranslationScene.TEXT_SELECTION
        assert bundle.segments[0].translated == "O:hi"

    def test_scene_binding_custom_prompt(self):
        binding = SceneEngineBinding(TranslationScene.SCREENSHOT, OPENAI, custom_prompt="Gloss {text}")
        provider = FakeLLMProvider(OPENAI)
        service = _service(provider)

        asyncio.run(
            service.translate(
                ["hi"],
                "zh",
                mode=EngineSelectionMode.SCENE_BINDING,
                scene_bindings={TranslationScene.SCREENSHOT: binding},
            )
        )

        assert provider.custom_prompt_template == "Gloss {text}"


class TestPromptConfig:
    """Tests for installing prompt templates on LLM providers."""

    def test_default_template_installs_nothing(self):
        provider = FakeLLMProvider(OPENAI)
        provider.set_custom_prompt_template("stale")

        asyncio.run(_service(provider).translate(["hi"], "zh", preferred_engine=OPENAI))

        assert provider.custom_prompt_template is None

    def test_engine_override(self):
        provider = FakeLLMProvider(OPENAI)
        config = TranslationPromptConfig(engine_prompts={EngineType.OPENAI: "Custom {text}"})

        asyncio.run(_service(provider, prompt_config=config).translate(["hi"], "zh", preferred_engine=OPENAI))

        assert provider.custom_prompt_template == "Custom {text}"

    def test_scene_override_wins(self):
        provider = FakeLLMProvider(OPENAI)
        config = TranslationPromptConfig(
            engine_prompts={EngineType.OPENAI: "Engine {text}"},
            scene_prompts={TranslationScene.TEXT_SELECTION: "Scene {text}"},
        )
        service = _service(provider, prompt_config=config)

        asyncio.run(service.translate(["hi"], "zh", scene=TranslationScene.TEXT_SELECTION, preferred_engine=OPENAI))

        assert provider.custom_prompt_template == "Scene {text}"

    def test_insert_scene_uses_insert_prompt(self):
        provider = FakeLLMProvider(OPENAI)

        asyncio.run(
            _service(provider).translate(
                ["hi"], "zh", scene=TranslationScene.TRANSLATE_AND_INSERT, preferred_engine=OPENAI
            )
        )

        assert provider.custom_prompt_template == DEFAULT_INSERT_PROMPT

    def test_update_prompt_config(self):
        provider = FakeLLMProvider(OPENAI)
        service = _service(provider)
        service.update_prompt_config(TranslationPromptConfig(engine_prompts={EngineType.OPENAI: "New {text}"}))

        asyncio.run(service.translate(["hi"], "zh", preferred_engine=OPENAI))

        assert provider.custom_prompt_template == "New {text}"


class TestSettingsPolicy:
    """Tests for translating with the policy stored in settings."""

    def test_translate_texts_reads_settings(self):
        settings = Settings(
            preferred_engine=DEEPL,
            selection_mode=EngineSelectionMode.QUICK_SWITCH,
            target_language="fr",
        )
        service = _service(FakeTranslationProvider(DEEPL), settings=settings)

        bundle = asyncio.run(service.translate_texts(["hi"]))

        assert bundle.selection_mode is EngineSelectionMode.QUICK_SWITCH
        assert bundle.segments[0].target_language == "fr"

    def test_translate_analysis_keeps_positions(self):
        analysis = ScreenAnalysisResult(
            (
                TextSegment("File", BoundingBox(0.0, 0.0, 0.1, 0.05)),
                TextSegment("Edit", BoundingBox(0.1, 0.0, 0.1, 0.05)),
            ),
            ImageSize(200, 100),
        )
        settings = Settings(preferred_engine=OPENAI)
        service = _service(FakeTranslationProvider(OPENAI), settings=settings)

        bundle = asyncio.run(service.translate_analysis(analysis, "zh"))

        assert bundle.scene is TranslationScene.SCREENSHOT
        assert [s.original for s in bundle.segments] == list(analysis.segments)

    def test_connection(self):
        service = _service(
            FakeTranslationProvider(OPENAI),
            FakeTranslationProvider(DEEPL, error=TranslationProviderError.authentication_failed()),
        )

        async def run():
            return (
                await service.test_connection(OPENAI),
                await service.test_connection(DEEPL),
                await service.test_connection(EngineIdentifier.compatible(2)),
            )

        assert asyncio.run(run()) == (True, False, False)


class FakeVLMProvider(VLMProvider):
    provider_type = VLMProviderType.OLLAMA

    def __init__(self, result, available=True):
        super().__init__(ProviderConfiguration())
        self.result = result
        self.available = available

    async def is_available(self):
        return self.available

    async def _analyze(self, image):
        return self.result


class TestScreenAnalyzer:
    """Tests for ScreenAnalyzer."""

    def _result(self):
        return ScreenAnalysisResult(
            (
                TextSegment("clear", BoundingBox(0.1, 0.1, 0.2, 0.1), 0.95),
                TextSegment("blurry", BoundingBox(0.5, 0.5, 0.2, 0.1), 0.3),
            ),
            ImageSize(200, 100),
        )

    def test_confidence_floor(self, image):
        registry = ProviderRegistry(Settings(), MemorySecretStore())
        provider = FakeVLMProvider(self._result())

        with patch.object(registry, "get_vlm_provider", AsyncMock(return_value=provider)) as lookup:
            result = asyncio.run(ScreenAnalyzer(registry).analyze(image, VLMProviderType.OLLAMA, min_confidence=0.5))

        assert [s.text for s in result.segments] == ["clear"]
        lookup.assert_awaited_once_with(VLMProviderType.OLLAMA)

    def test_unavailable_provider(self, image):
        registry = ProviderRegistry(Settings(), MemorySecretStore())
        provider = FakeVLMProvider(self._result(), available=False)

        with patch.object(registry, "get_vlm_provider", AsyncMock(return_value=provider)):
            with pytest.raises(VLMProviderError) as excinfo:
                asyncio.run(ScreenAnalyzer(registry).analyze(image))

        assert excinfo.value.kind is ErrorKind.INVALID_CONFIGURATION
