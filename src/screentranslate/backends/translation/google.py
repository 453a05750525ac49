"""Google Cloud Translation (v2 REST API)."""

from ... import http, log
from ...errors import TranslationProviderError
from ...models import EngineIdentifier, EngineType, TranslationResult
from ...secrets import SecretStore
from ..base import TranslationProvider

logger = log.get_logger()


class GoogleTranslationProvider(TranslationProvider):
    def __init__(self, secrets: SecretStore, base_url: str | None = None, timeout: float = 30.0):
        super().__init__(EngineIdentifier.standard(EngineType.GOOGLE), timeout)
        self.secrets = secrets
        self.base_url = base_url or EngineType.GOOGLE.default_base_url

    async def is_available(self) -> bool:
        return self.secrets.has_secret(EngineType.GOOGLE.value)

    async def _translate(self, text: str, source_language: str | None, target_language: str) -> TranslationResult:
        return (await self._translate_batch([text], source_language, target_language))[0]

    async def _translate_batch(
        self, texts: list[str], source_language: str | None, target_language: str
    ) -> list[TranslationResult]:
        """One request with a 'q' list; translations come back in request order."""
        credentials = self.secrets.get_secret(EngineType.GOOGLE.value)
        if credentials is None or not credentials.api_key:
            raise TranslationProviderError.invalid_configuration("API key not configured")

        body = {"q": texts if len(texts) > 1 else texts[0], "target": target_language, "format": "text"}
        if source_language:
            body["source"] = source_language
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {credentials.api_key}"}

        try:
            response = await http.request("POST", self.base_url, headers=headers, json_body=body, timeout=self.timeout)
        except http.TransportError as e:
            raise http.translation_error_for_transport(e, self.timeout) from e
        if not response.ok:
            raise http.translation_error_for_status(response)

        try:
            translations = response.json()["data"]["translations"]
        except (ValueError, KeyError, TypeError) as e:
            raise TranslationProviderError.translation_failed("Failed to parse Google response") from e
        if len(translations) != len(texts):
            raise TranslationProviderError.translation_failed(
                f"Google returned {len(translations)} translations for {len(texts)} texts"
            )

        results = []
        for source, item in zip(texts, translations):
            detected = item.get("detectedSourceLanguage")
            results.append(
                TranslationResult(source, item.get("translatedText", ""), source_language or detected, target_language)
            )
        logger.debug("google translation complete", count=len(results))
        return results
