"""Registry that creates, caches and looks up provider instances.

Providers are built lazily from the current settings snapshot and the
secret store. On every lookup a hash of the engine's {type, api key, base
URL, model} is recomputed; when it differs from the last hash seen for that
engine the whole provider cache is dropped, so edited credentials never
linger in a cached client. OpenAI-compatible endpoints are cached per index
and are unaffected by that invalidation.
"""

import asyncio
import hashlib
from collections.abc import Callable

from .. import log
from ..config import Settings
from ..errors import RegistryError, ScreenTranslateError
from ..models import (
    CompatibleEngineConfig,
    EngineIdentifier,
    EngineType,
    ProviderConfiguration,
    VLMProviderType,
)
from ..secrets import EnvSecretStore, SecretStore
from .base import TranslationProvider, VLMProvider
from .ocr import ClaudeVLMProvider, OllamaVLMProvider, OpenAIVLMProvider, PaddleOCRProvider
from .translation import (
    AppleTranslationProvider,
    BaiduTranslationProvider,
    CompatibleTranslationProvider,
    DeepLTranslationProvider,
    GoogleTranslationProvider,
    LLMTranslationProvider,
    MTranServerProvider,
    SystemTranslator,
)
from .translation.compatible import config_hash

logger = log.get_logger()

VLM_CLASSES: dict[VLMProviderType, type[VLMProvider]] = {
    VLMProviderType.OPENAI: OpenAIVLMProvider,
    VLMProviderType.CLAUDE: ClaudeVLMProvider,
    VLMProviderType.OLLAMA: OllamaVLMProvider,
    VLMProviderType.PADDLEOCR: PaddleOCRProvider,
}


def vlm_secret_id(provider_type: VLMProviderType) -> str:
    return f"vlm:{provider_type.value}"


def _digest(*parts: object) -> str:
    raw = "|".join("" if p is None else str(p) for p in parts)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class ProviderRegistry:
    """Creates and caches translation and vision providers.

    All cache and hash state is guarded by one asyncio.Lock, so concurrent
    get_provider calls from parallel orchestration never observe a
    half-updated cache.

    Args:
        settings: A settings snapshot, or a callable returning the current
            snapshot (read on every lookup).
        secrets: Store holding API keys, keyed by engine or instance id.
        system_translator: Platform translation callable for the apple engine.
    """

    def __init__(
        self,
        settings: Settings | Callable[[], Settings] | None = None,
        secrets: SecretStore | None = None,
        system_translator: SystemTranslator | None = None,
    ):
        self._settings = settings if settings is not None else Settings()
        self.secrets = secrets if secrets is not None else EnvSecretStore()
        self.system_translator = system_translator
        self._lock = asyncio.Lock()
        self._providers: dict[EngineType, TranslationProvider] = {}
        self._config_hashes: dict[EngineType, str] = {}
        self._compatible: dict[int, CompatibleTranslationProvider] = {}
        self._registered: dict[str, TranslationProvider] = {}
        self._vlm_providers: dict[VLMProviderType, VLMProvider] = {}
        self._vlm_hashes: dict[VLMProviderType, str] = {}

    @property
    def settings(self) -> Settings:
        if callable(self._settings):
            return self._settings()
        return self._settings

    # Registration

    def register(self, provider: TranslationProvider) -> None:
        """Pin a provider instance under its engine identifier.

        Pinned providers take precedence over built ones and survive cache
        invalidation.
        """
        self._registered[provider.engine.composite_id] = provider
        logger.info("registered provider", engine=str(provider.engine))

    def unregister(self, identifier: EngineIdentifier) -> None:
        self._registered.pop(identifier.composite_id, None)
        logger.info("unregistered provider", engine=str(identifier))

    def registered_engines(self) -> list[EngineIdentifier]:
        """Engines that currently have a pinned or cached provider."""
        engines = [EngineIdentifier.parse(key) for key in self._registered]
        engines += [EngineIdentifier.standard(t) for t in self._providers if t.value not in self._registered]
        engines += [
            EngineIdentifier.compatible(i)
            for i in self._compatible
            if EngineIdentifier.compatible(i).composite_id not in self._registered
        ]
        return engines

    def invalidate_cache(self) -> None:
        """Drop every cached provider and remembered configuration hash."""
        self._providers.clear()
        self._config_hashes.clear()
        self._compatible.clear()
        self._vlm_providers.clear()
        self._vlm_hashes.clear()
        logger.info("provider cache cleared")

    # Translation providers

    async def get_provider(
        self,
        identifier: EngineIdentifier,
        compatible_configs: list[CompatibleEngineConfig] | None = None,
        force_refresh: bool = False,
    ) -> TranslationProvider:
        """Return the provider for an engine, creating and caching it on first use.

        Args:
            identifier: Standard engine or custom:<index> instance.
            compatible_configs: Configs for custom instances. Defaults to the
                settings' compatible_engines.
            force_refresh: Rebuild the provider even if one is cached.

        Raises:
            RegistryError: not_registered when a custom index has no config.
        """
        if identifier.engine_type is EngineType.CUSTOM and identifier.compatible_index is None:
            identifier = EngineIdentifier.compatible(0)

        async with self._lock:
            settings = self.settings
            if identifier.is_compatible:
                return self._compatible_provider(identifier, settings, compatible_configs, force_refresh)

            engine_type = identifier.engine_type
            self._check_config_hash(engine_type, settings)

            pinned = self._registered.get(identifier.composite_id)
            if pinned is not None:
                return pinned

            cached = self._providers.get(engine_type)
            if cached is not None and not force_refresh:
                return cached

            provider = self._create(engine_type, settings)
            self._providers[engine_type] = provider
            logger.debug("created provider", engine=engine_type.value)
            return provider

    def _check_config_hash(self, engine_type: EngineType, settings: Settings) -> None:
        credentials = self.secrets.get_secret(engine_type.value)
        digest = _digest(
            engine_type.value,
            credentials.api_key if credentials else None,
            settings.base_url_for(engine_type),
            settings.model_name_for(engine_type),
        )
        previous = self._config_hashes.get(engine_type)
        if previous is not None and previous != digest:
            logger.info("configuration changed, clearing provider cache", engine=engine_type.value)
            self._providers.clear()
        self._config_hashes[engine_type] = digest

    def _compatible_provider(
        self,
        identifier: EngineIdentifier,
        settings: Settings,
        compatible_configs: list[CompatibleEngineConfig] | None,
        force_refresh: bool,
    ) -> TranslationProvider:
        pinned = self._registered.get(identifier.composite_id)
        if pinned is not None:
            return pinned

        configs = compatible_configs if compatible_configs is not None else settings.compatible_engines
        index = identifier.compatible_index
        if index is None or index < 0 or index >= len(configs):
            raise RegistryError.not_registered(identifier)
        config = configs[index]

        cached = self._compatible.get(index)
        if cached is not None and not force_refresh and cached.config_hash == config_hash(config):
            return cached

        provider = CompatibleTranslationProvider(config, index, self.secrets)
        self._compatible[index] = provider
        logger.debug("created compatible provider", engine=identifier.composite_id, url=config.base_url)
        return provider

    def _create(self, engine_type: EngineType, settings: Settings) -> TranslationProvider:
        options = settings.options_for(engine_type)
        timeout = settings.timeout_for(engine_type)

        if engine_type is EngineType.APPLE:
            return AppleTranslationProvider(self.system_translator, timeout=timeout)
        if engine_type is EngineType.MTRAN_SERVER:
            return MTranServerProvider(settings.base_url_for(engine_type), timeout=timeout)
        if engine_type.is_llm:
            return LLMTranslationProvider(
                engine_type,
                self.secrets,
                base_url=settings.base_url_for(engine_type),
                model_name=settings.model_name_for(engine_type),
                timeout=timeout,
                max_tokens=options.max_tokens,
                temperature=options.temperature,
            )
        if engine_type is EngineType.GOOGLE:
            return GoogleTranslationProvider(self.secrets, base_url=options.base_url, timeout=timeout)
        if engine_type is EngineType.DEEPL:
            return DeepLTranslationProvider(self.secrets, base_url=options.base_url, timeout=timeout)
        if engine_type is EngineType.BAIDU:
            return BaiduTranslationProvider(self.secrets, base_url=options.base_url, timeout=timeout)
        raise RegistryError.not_registered(engine_type.value)

    def candidate_engines(self) -> list[EngineIdentifier]:
        """Every engine the registry could serve with the current settings."""
        settings = self.settings
        engines = [EngineIdentifier.standard(t) for t in EngineType if t is not EngineType.CUSTOM]
        engines += [EngineIdentifier.compatible(i) for i in range(len(settings.compatible_engines))]
        for key in self._registered:
            identifier = EngineIdentifier.parse(key)
            if identifier not in engines:
                engines.append(identifier)
        return engines

    async def available_engines(self) -> list[EngineIdentifier]:
        """Probe every candidate engine concurrently; keep those reporting available."""
        candidates = []
        for identifier in self.candidate_engines():
            try:
                candidates.append((identifier, await self.get_provider(identifier)))
            except ScreenTranslateError as e:
                logger.debug("engine skipped", engine=str(identifier), err=str(e))

        results = await asyncio.gather(
            *(provider.is_available() for _, provider in candidates), return_exceptions=True
        )
        available = []
        for (identifier, _), result in zip(candidates, results):
            if isinstance(result, Exception):
                logger.debug("availability probe failed", engine=str(identifier), err=str(result))
            elif result:
                available.append(identifier)
        return available

    async def is_engine_configured(self, identifier: EngineIdentifier) -> bool:
        """Check credentials without a network call; other engines are probed."""
        if identifier.is_compatible:
            configs = self.settings.compatible_engines
            index = identifier.compatible_index
            if index is None or index >= len(configs):
                return identifier.composite_id in self._registered
            if configs[index].has_api_key:
                return self.secrets.has_secret(configs[index].secret_id(index))
        elif identifier.engine_type.requires_api_key:
            credentials = self.secrets.get_secret(identifier.engine_type.value)
            if credentials is None or not credentials.api_key:
                return False
            return not identifier.engine_type.requires_app_id or bool(credentials.app_id)

        try:
            provider = await self.get_provider(identifier)
        except RegistryError:
            return False
        return await provider.is_available()

    # Vision providers

    def vlm_configuration(self, provider_type: VLMProviderType, settings: Settings) -> ProviderConfiguration:
        credentials = self.secrets.get_secret(vlm_secret_id(provider_type))
        api_key = credentials.api_key if credentials else ""

        if provider_type is VLMProviderType.PADDLEOCR:
            paddle = settings.paddleocr
            return ProviderConfiguration(
                api_key=api_key,
                base_url=paddle.cloud_base_url,
                timeout=paddle.timeout,
                use_cloud=paddle.use_cloud,
                extra={"mode": paddle.mode, "language": paddle.language, "executable": paddle.executable},
            )

        vlm = settings.vlm
        if vlm.provider is provider_type:
            base_url, model_name = vlm.effective_base_url, vlm.effective_model_name
        else:
            base_url, model_name = provider_type.default_base_url, provider_type.default_model_name
        return ProviderConfiguration(api_key=api_key, base_url=base_url, model_name=model_name, timeout=vlm.timeout)

    async def get_vlm_provider(self, provider_type: VLMProviderType | None = None) -> VLMProvider:
        """Return the vision provider, defaulting to the one chosen in settings.

        Cached per provider type; rebuilt when its configuration changes.
        """
        async with self._lock:
            settings = self.settings
            provider_type = provider_type or settings.vlm.provider
            configuration = self.vlm_configuration(provider_type, settings)
            digest = _digest(
                provider_type.value,
                configuration.api_key,
                configuration.base_url,
                configuration.model_name,
                configuration.use_cloud,
                sorted(configuration.extra.items()),
            )

            cached = self._vlm_providers.get(provider_type)
            if cached is not None and self._vlm_hashes.get(provider_type) == digest:
                return cached

            provider = VLM_CLASSES[provider_type](configuration)
            self._vlm_providers[provider_type] = provider
            self._vlm_hashes[provider_type] = digest
            logger.debug("created vlm provider", provider=provider_type.value)
            return provider


# Global registry instance
_registry: ProviderRegistry | None = None


def get_registry() -> ProviderRegistry:
    """Get the global registry, built from the loaded settings and environment secrets."""
    global _registry
    if _registry is None:
        _registry = ProviderRegistry(Settings.load(), EnvSecretStore())
    return _registry
