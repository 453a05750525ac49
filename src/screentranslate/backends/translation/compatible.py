"""User-configured OpenAI-compatible endpoints (vLLM, LM Studio, OneAPI, ...)."""

import hashlib

from ...models import CompatibleEngineConfig, EngineIdentifier, EngineType
from ...secrets import SecretStore
from .llm import LLMTranslationProvider

DEFAULT_COMPATIBLE_CONFIG = CompatibleEngineConfig(
    display_name="Custom",
    base_url="http://localhost:8000/v1",
    model_name="default",
    has_api_key=False,
)


def config_hash(config: CompatibleEngineConfig) -> str:
    raw = "|".join([config.base_url, config.model_name, str(config.has_api_key), str(config.timeout)])
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class CompatibleTranslationProvider(LLMTranslationProvider):
    def __init__(self, config: CompatibleEngineConfig, index: int, secrets: SecretStore):
        self.config = config
        self.index = index
        self.config_hash = config_hash(config)
        super().__init__(
            EngineType.CUSTOM,
            secrets,
            base_url=config.base_url,
            model_name=config.model_name,
            timeout=config.timeout,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            engine=EngineIdentifier.compatible(index),
            secret_id=config.secret_id(index),
            requires_api_key=config.has_api_key,
        )

    @property
    def name(self) -> str:
        return self.config.display_name
