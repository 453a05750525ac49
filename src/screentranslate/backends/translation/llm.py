"""Translation through chat models.

OpenAI, Gemini, Ollama and OpenAI-compatible endpoints speak the Chat
Completions protocol; Claude uses the Anthropic Messages API.
"""

import re
import time

from ... import http, log
from ...errors import TranslationProviderError
from ...models import EngineIdentifier, EngineType, TranslationResult
from ...prompts import DEFAULT_PROMPT, render_prompt
from ...secrets import SecretStore
from ..base import PromptTemplateMixin, TranslationProvider

logger = log.get_logger()

BATCH_SEPARATOR = "\n---\n"
_BATCH_SPLIT = re.compile(r"\n\s*---\s*\n")

ANTHROPIC_VERSION = "2023-06-01"


class LLMTranslationProvider(PromptTemplateMixin, TranslationProvider):
    """Chat-model translation for OpenAI, Claude, Gemini and Ollama."""

    def __init__(
        self,
        engine_type: EngineType,
        secrets: SecretStore,
        base_url: str | None = None,
        model_name: str | None = None,
        timeout: float | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.3,
        engine: EngineIdentifier | None = None,
        secret_id: str | None = None,
        requires_api_key: bool | None = None,
    ):
        if not engine_type.is_llm:
            raise TranslationProviderError.invalid_configuration(f"Not an LLM engine: {engine_type.value}")
        self.engine_type = engine_type
        super().__init__(engine or EngineIdentifier.standard(engine_type), timeout or engine_type.default_timeout)
        self.secrets = secrets
        self.base_url = (base_url or engine_type.default_base_url or "").rstrip("/")
        self.model_name = model_name or engine_type.default_model_name or ""
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.secret_id = secret_id or self.engine.composite_id
        self.requires_api_key = engine_type.requires_api_key if requires_api_key is None else requires_api_key

    async def is_available(self) -> bool:
        if not self.requires_api_key:
            return True
        return self.secrets.has_secret(self.secret_id)

    def _api_key(self) -> str | None:
        credentials = self.secrets.get_secret(self.secret_id)
        if credentials and credentials.api_key:
            return credentials.api_key
        if self.requires_api_key:
            raise TranslationProviderError.invalid_configuration(f"API key not configured for {self.name}")
        return None

    def build_prompt(self, text: str, source_language: str | None, target_language: str) -> str:
        template = self.custom_prompt_template or DEFAULT_PROMPT
        return render_prompt(template, source_language, target_language, text)

    async def _translate(self, text: str, source_language: str | None, target_language: str) -> TranslationResult:
        start = time.perf_counter()
        translated = await self._complete(self.build_prompt(text, source_language, target_language))
        logger.debug(
            "llm translation complete",
            engine=str(self.engine),
            model=self.model_name,
            chars=len(text),
            latency_ms=int((time.perf_counter() - start) * 1000),
        )
        return TranslationResult(text, translated, source_language, target_language)

    async def _translate_batch(
        self, texts: list[str], source_language: str | None, target_language: str
    ) -> list[TranslationResult]:
        """Translate all texts in one request, split on the separator.

        When the model does not return one part per input, every source is
        paired with the whole reply rather than issuing further requests.
        """
        if len(texts) == 1:
            return [await self._translate(texts[0], source_language, target_language)]

        prompt = self.build_prompt(BATCH_SEPARATOR.join(texts), source_language, target_language)
        combined = await self._complete(prompt)
        parts = [part.strip() for part in _BATCH_SPLIT.split(combined.strip())]
        if len(parts) != len(texts) or not all(parts):
            logger.warning("batch split mismatch, keeping combined reply", expected=len(texts), got=len(parts))
            parts = [combined] * len(texts)
        return [
            TranslationResult(source, translated, source_language, target_language)
            for source, translated in zip(texts, parts)
        ]

    async def _complete(self, prompt: str) -> str:
        if not self.base_url:
            raise TranslationProviderError.invalid_configuration(f"No base URL configured for {self.name}")
        api_key = self._api_key()
        if self.engine_type is EngineType.CLAUDE:
            url, headers, body = self._messages_request(prompt, api_key)
        else:
            url, headers, body = self._chat_request(prompt, api_key)

        try:
            response = await http.request("POST", url, headers=headers, json_body=body, timeout=self.timeout)
        except http.TransportError as e:
            raise http.translation_error_for_transport(e, self.timeout) from e
        if not response.ok:
            logger.warning("llm request failed", engine=str(self.engine), status=response.status_code)
            raise http.translation_error_for_status(response)

        try:
            data = response.json()
        except ValueError as e:
            raise TranslationProviderError.translation_failed("Response was not valid JSON") from e
        content = self._extract_content(data)
        if not content:
            raise TranslationProviderError.translation_failed("Failed to parse response")
        return content.strip()

    def _chat_request(self, prompt: str, api_key: str | None) -> tuple[str, dict, dict]:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        body = {
            "model": self.model_name,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        return f"{self.base_url}/chat/completions", headers, body

    def _messages_request(self, prompt: str, api_key: str | None) -> tuple[str, dict, dict]:
        headers = {
            "Content-Type": "application/json",
            "x-api-key": api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
        }
        body = {
            "model": self.model_name,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        return f"{self.base_url}/messages", headers, body

    def _extract_content(self, data) -> str | None:
        if not isinstance(data, dict):
            return None
        if self.engine_type is EngineType.CLAUDE:
            blocks = data.get("content") or []
            texts = [b.get("text", "") for b in blocks if isinstance(b, dict) and b.get("type") == "text"]
            return "".join(texts) or None
        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return None
        message = choices[0].get("message") or {}
        content = message.get("content")
        return content if isinstance(content, str) else None
