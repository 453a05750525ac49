"""DeepL REST API."""

from ... import http, log
from ...errors import TranslationProviderError
from ...models import EngineIdentifier, EngineType, TranslationResult
from ...secrets import SecretStore
from ..base import TranslationProvider

logger = log.get_logger()

FREE_API_URL = "https://api-free.deepl.com/v2/translate"

# DeepL answers 456 when the character quota is used up.
QUOTA_EXCEEDED = 456


class DeepLTranslationProvider(TranslationProvider):
    def __init__(self, secrets: SecretStore, base_url: str | None = None, timeout: float = 30.0):
        super().__init__(EngineIdentifier.standard(EngineType.DEEPL), timeout)
        self.secrets = secrets
        self.base_url = base_url

    async def is_available(self) -> bool:
        return self.secrets.has_secret(EngineType.DEEPL.value)

    def _url_for(self, api_key: str) -> str:
        if self.base_url:
            return self.base_url
        # free-tier keys end in ":fx" and only work against the free host
        if api_key.endswith(":fx"):
            return FREE_API_URL
        return EngineType.DEEPL.default_base_url

    async def _translate(self, text: str, source_language: str | None, target_language: str) -> TranslationResult:
        return (await self._translate_batch([text], source_language, target_language))[0]

    async def _translate_batch(
        self, texts: list[str], source_language: str | None, target_language: str
    ) -> list[TranslationResult]:
        credentials = self.secrets.get_secret(EngineType.DEEPL.value)
        if credentials is None or not credentials.api_key:
            raise TranslationProviderError.invalid_configuration("API key not configured")

        body = {"text": texts, "target_lang": target_language.upper()}
        if source_language:
            body["source_lang"] = source_language.upper()
        headers = {"Content-Type": "application/json", "Authorization": f"DeepL-Auth-Key {credentials.api_key}"}

        try:
            response = await http.request(
                "POST", self._url_for(credentials.api_key), headers=headers, json_body=body, timeout=self.timeout
            )
        except http.TransportError as e:
            raise http.translation_error_for_transport(e, self.timeout) from e
        if response.status_code == QUOTA_EXCEEDED:
            raise TranslationProviderError.translation_failed("DeepL quota exceeded")
        if not response.ok:
            raise http.translation_error_for_status(response)

        try:
            translations = response.json()["translations"]
        except (ValueError, KeyError, TypeError) as e:
            raise TranslationProviderError.translation_failed("Failed to parse DeepL response") from e
        if len(translations) != len(texts):
            raise TranslationProviderError.translation_failed(
                f"DeepL returned {len(translations)} translations for {len(texts)} texts"
            )

        logger.debug("deepl translation complete", count=len(texts))
        return [
            TranslationResult(
                source,
                item.get("text", ""),
                source_language or item.get("detected_source_language"),
                target_language,
            )
            for source, item in zip(texts, translations)
        ]
