"""Orchestration of translation engines and screen analysis.

TranslationService applies an EngineSelectionMode over the providers held
by a ProviderRegistry and returns a TranslationResultBundle.
"""

import asyncio
import time
from collections.abc import Sequence

from . import log
from .backends.base import PromptTemplateMixin, TranslationProvider
from .backends.registry import ProviderRegistry
from .config import Settings
from .errors import AllEnginesFailedError, ScreenTranslateError, TranslationProviderError, VLMProviderError
from .imaging import ImageInput
from .models import (
    BilingualSegment,
    CompatibleEngineConfig,
    EngineIdentifier,
    EngineResult,
    EngineSelectionMode,
    EngineType,
    ScreenAnalysisResult,
    SceneEngineBinding,
    TextSegment,
    TranslationResultBundle,
    TranslationScene,
    VLMProviderType,
)
from .prompts import DEFAULT_PROMPT, TranslationPromptConfig

logger = log.get_logger()

APPLE = EngineIdentifier.standard(EngineType.APPLE)
MTRAN = EngineIdentifier.standard(EngineType.MTRAN_SERVER)

TextInput = str | TextSegment


def default_fallback(primary: EngineIdentifier, scene: TranslationScene | None) -> EngineIdentifier:
    """Fallback used when none is configured explicitly."""
    if scene is not None:
        return SceneEngineBinding.default(scene).fallback_engine or MTRAN
    return MTRAN if primary == APPLE else APPLE


def _split_inputs(texts: Sequence[TextInput]) -> list[tuple[str, TextSegment | None]]:
    """Pair each non-blank input text with its segment (None for plain strings)."""
    items = []
    for item in texts:
        if isinstance(item, TextSegment):
            text, segment = item.text, item
        else:
            text, segment = item, None
        if text and text.strip():
            items.append((text, segment))
    return items


class TranslationService:
    """Runs translation calls under an engine selection policy.

    Args:
        registry: Source of provider instances.
        prompt_config: Custom prompt templates. Defaults to the settings'
            prompts.
    """

    def __init__(self, registry: ProviderRegistry, prompt_config: TranslationPromptConfig | None = None):
        self.registry = registry
        self._prompt_config = prompt_config if prompt_config is not None else registry.settings.prompts

    @property
    def prompt_config(self) -> TranslationPromptConfig:
        return self._prompt_config

    def update_prompt_config(self, config: TranslationPromptConfig) -> None:
        self._prompt_config = config

    async def translate(
        self,
        texts: Sequence[TextInput],
        target_language: str,
        source_language: str | None = None,
        scene: TranslationScene | None = None,
        mode: EngineSelectionMode = EngineSelectionMode.PRIMARY_WITH_FALLBACK,
        preferred_engine: EngineIdentifier = APPLE,
        fallback_enabled: bool = True,
        fallback_engine: EngineIdentifier | None = None,
        parallel_engines: Sequence[EngineIdentifier] = (),
        scene_bindings: dict[TranslationScene, SceneEngineBinding] | None = None,
        compatible_configs: list[CompatibleEngineConfig] | None = None,
    ) -> TranslationResultBundle:
        """Translate texts or segments under a selection mode.

        Blank texts are dropped before any engine is called. Segments keep
        their bounding boxes in the returned BilingualSegments; plain strings
        get a zero box.

        Args:
            texts: Strings or TextSegments, translated in order.
            target_language: Target language code.
            source_language: Source language code, or None to auto-detect.
            scene: Usage scene; selects prompt overrides and scene bindings.
            mode: Engine selection policy.
            preferred_engine: Primary engine for fallback and quick switch.
            fallback_enabled: Whether a failed primary may fall back.
            fallback_engine: Explicit fallback engine.
            parallel_engines: Engines queried in parallel mode.
            scene_bindings: Per-scene engine bindings for scene_binding mode.
            compatible_configs: Configs for custom:<index> engines.

        Returns:
            The result bundle. Parallel mode records failures per engine
            instead of raising.

        Raises:
            AllEnginesFailedError: Primary and fallback both failed.
            ScreenTranslateError: The only engine tried failed.
        """
        items = _split_inputs(texts)
        if not items:
            return TranslationResultBundle((), preferred_engine, mode, scene)

        logger.debug("translate", mode=mode.value, engine=str(preferred_engine), count=len(items))

        if mode is EngineSelectionMode.PARALLEL:
            engines = list(parallel_engines) or [preferred_engine]
            return await self._translate_parallel(
                items, target_language, source_language, engines, scene, compatible_configs
            )

        if mode is EngineSelectionMode.QUICK_SWITCH:
            result = await self._translate_with_engine(
                preferred_engine, items, target_language, source_language, scene, compatible_configs
            )
            return TranslationResultBundle.single(result, mode, scene)

        if mode is EngineSelectionMode.SCENE_BINDING:
            scene = scene or TranslationScene.SCREENSHOT
            binding = (scene_bindings or {}).get(scene) or SceneEngineBinding.default(scene)
            return await self._translate_with_fallback(
                items,
                target_language,
                source_language,
                binding.primary_engine,
                binding.fallback_enabled,
                binding.fallback_engine,
                scene,
                compatible_configs,
                mode=mode,
                prompt_override=binding.custom_prompt,
            )

        return await self._translate_with_fallback(
            items,
            target_language,
            source_language,
            preferred_engine,
            fallback_enabled,
            fallback_engine,
            scene,
            compatible_configs,
        )

    async def translate_texts(
        self,
        texts: Sequence[TextInput],
        target_language: str | None = None,
        source_language: str | None = None,
        scene: TranslationScene | None = None,
        settings: Settings | None = None,
    ) -> TranslationResultBundle:
        """Translate using the engine policy stored in settings.

        Args:
            settings: Snapshot to read the policy from. Defaults to the
                registry's current settings.
        """
        settings = settings or self.registry.settings
        return await self.translate(
            texts,
            target_language or settings.target_language,
            source_language or settings.source_language,
            scene=scene,
            mode=settings.selection_mode,
            preferred_engine=settings.preferred_engine,
            fallback_enabled=settings.fallback_enabled,
            fallback_engine=settings.fallback_engine,
            parallel_engines=settings.parallel_engines,
            scene_bindings=settings.scene_bindings,
            compatible_configs=settings.compatible_engines,
        )

    async def translate_analysis(
        self,
        analysis: ScreenAnalysisResult,
        target_language: str | None = None,
        source_language: str | None = None,
        settings: Settings | None = None,
    ) -> TranslationResultBundle:
        """Translate every segment of a screen analysis, keeping its bounding box."""
        return await self.translate_texts(
            list(analysis.segments),
            target_language,
            source_language,
            scene=TranslationScene.SCREENSHOT,
            settings=settings,
        )

    async def test_connection(
        self, identifier: EngineIdentifier, compatible_configs: list[CompatibleEngineConfig] | None = None
    ) -> bool:
        """Run a live one-word translation against an engine."""
        try:
            provider = await self.registry.get_provider(identifier, compatible_configs)
        except ScreenTranslateError as e:
            logger.warning("connection test failed", engine=str(identifier), err=str(e))
            return False
        return await provider.check_connection()

    async def _translate_with_fallback(
        self,
        items: list[tuple[str, TextSegment | None]],
        target_language: str,
        source_language: str | None,
        primary: EngineIdentifier,
        fallback_enabled: bool,
        fallback_engine: EngineIdentifier | None,
        scene: TranslationScene | None,
        compatible_configs: list[CompatibleEngineConfig] | None,
        mode: EngineSelectionMode = EngineSelectionMode.PRIMARY_WITH_FALLBACK,
        prompt_override: str | None = None,
    ) -> TranslationResultBundle:
        try:
            result = await self._translate_with_engine(
                primary, items, target_language, source_language, scene, compatible_configs, prompt_override
            )
            return TranslationResultBundle.single(result, mode, scene)
        except ScreenTranslateError as e:
            if not fallback_enabled:
                raise
            primary_error = e
            logger.warning("primary engine failed", engine=str(primary), kind=e.kind.value, err=str(e))

        fallback = fallback_engine or default_fallback(primary, scene)
        try:
            result = await self._translate_with_engine(
                fallback, items, target_language, source_language, scene, compatible_configs, prompt_override
            )
        except ScreenTranslateError as e:
            logger.warning("fallback engine failed", engine=str(fallback), kind=e.kind.value, err=str(e))
            raise AllEnginesFailedError([primary_error, e]) from e

        logger.info("fallback succeeded", primary=str(primary), fallback=str(fallback))
        return TranslationResultBundle.single(result, mode, scene)

    async def _translate_parallel(
        self,
        items: list[tuple[str, TextSegment | None]],
        target_language: str,
        source_language: str | None,
        engines: list[EngineIdentifier],
        scene: TranslationScene | None,
        compatible_configs: list[CompatibleEngineConfig] | None,
    ) -> TranslationResultBundle:
        """Query every engine at once; results are collected in completion order."""
        engines = list(dict.fromkeys(engines))
        tasks = [
            asyncio.ensure_future(
                self._engine_result(engine, items, target_language, source_language, scene, compatible_configs)
            )
            for engine in engines
        ]
        results = []
        try:
            for next_done in asyncio.as_completed(tasks):
                results.append(await next_done)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        bundle = TranslationResultBundle(tuple(results), engines[0], EngineSelectionMode.PARALLEL, scene)
        logger.debug(
            "parallel translation complete",
            succeeded=len(bundle.successful_engines),
            failed=len(bundle.failed_engines),
        )
        return bundle

    async def _engine_result(
        self,
        engine: EngineIdentifier,
        items: list[tuple[str, TextSegment | None]],
        target_language: str,
        source_language: str | None,
        scene: TranslationScene | None,
        compatible_configs: list[CompatibleEngineConfig] | None,
    ) -> EngineResult:
        start = time.perf_counter()
        try:
            return await self._translate_with_engine(
                engine, items, target_language, source_language, scene, compatible_configs
            )
        except ScreenTranslateError as e:
            logger.warning("engine failed", engine=str(engine), kind=e.kind.value, err=str(e))
            return EngineResult.failed(engine, e, time.perf_counter() - start)
        except Exception as e:
            logger.error("unexpected engine failure", engine=str(engine), err=repr(e))
            error = TranslationProviderError.translation_failed(f"Unexpected error: {e}")
            return EngineResult.failed(engine, error, time.perf_counter() - start)

    async def _translate_with_engine(
        self,
        identifier: EngineIdentifier,
        items: list[tuple[str, TextSegment | None]],
        target_language: str,
        source_language: str | None,
        scene: TranslationScene | None,
        compatible_configs: list[CompatibleEngineConfig] | None,
        prompt_override: str | None = None,
    ) -> EngineResult:
        start = time.perf_counter()
        provider = await self.registry.get_provider(identifier, compatible_configs)
        if not await provider.is_available():
            raise TranslationProviderError.not_available(provider.name)

        self._apply_prompt_config(provider, identifier, scene, prompt_override)

        texts = [text for text, _ in items]
        results = await provider.translate_batch(texts, source_language, target_language)
        segments = tuple(
            BilingualSegment.from_result(result, segment) for result, (_, segment) in zip(results, items)
        )
        return EngineResult(identifier, segments, time.perf_counter() - start)

    def _apply_prompt_config(
        self,
        provider: TranslationProvider,
        identifier: EngineIdentifier,
        scene: TranslationScene | None,
        prompt_override: str | None = None,
    ) -> None:
        """Install the applicable template, only when it differs from the default."""
        if not isinstance(provider, PromptTemplateMixin):
            return
        template = prompt_override or self._prompt_config.template_for(identifier, scene)
        provider.set_custom_prompt_template(template if template != DEFAULT_PROMPT else None)


class ScreenAnalyzer:
    """Extracts text segments from a screenshot with the configured vision provider."""

    def __init__(self, registry: ProviderRegistry):
        self.registry = registry

    async def analyze(
        self,
        image: ImageInput,
        provider_type: VLMProviderType | None = None,
        min_confidence: float = 0.0,
    ) -> ScreenAnalysisResult:
        provider = await self.registry.get_vlm_provider(provider_type)
        if not await provider.is_available():
            raise VLMProviderError.invalid_configuration(
                f"Vision provider {provider.name} is not available, check its configuration"
            )
        start = time.perf_counter()
        result = await provider.analyze(image)
        logger.info(
            "screen analyzed",
            provider=provider.name,
            segments=len(result.segments),
            elapsed=time.perf_counter() - start,
        )
        if min_confidence > 0:
            result = result.filter(min_confidence)
        return result
