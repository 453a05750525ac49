"""Self-hosted MTranServer client.

Wire contract: POST /translate with {"text", "from", "to"} returning
{"translated_text", "detected_language"}.
"""

import time

from ... import http, log
from ...errors import TranslationProviderError
from ...models import EngineIdentifier, EngineType, TranslationResult
from ..base import TranslationProvider

logger = log.get_logger()

HEALTH_ENDPOINTS = ("/health", "/", "/translate")
HEALTH_TIMEOUT = 2.0


class MTranServerProvider(TranslationProvider):
    def __init__(self, base_url: str = "http://127.0.0.1:8989", timeout: float = 10.0):
        super().__init__(EngineIdentifier.standard(EngineType.MTRAN_SERVER), timeout)
        self.base_url = base_url.rstrip("/").replace("://localhost", "://127.0.0.1")

    async def is_available(self) -> bool:
        """Any HTTP answer from a known endpoint counts as a running server."""
        for endpoint in HEALTH_ENDPOINTS:
            try:
                await http.request("GET", self.base_url + endpoint, timeout=HEALTH_TIMEOUT)
            except http.TransportError:
                continue
            return True
        logger.debug("mtran server not reachable", url=self.base_url)
        return False

    async def _translate(self, text: str, source_language: str | None, target_language: str) -> TranslationResult:
        body = {"text": text, "from": source_language or "auto", "to": target_language}
        start = time.perf_counter()
        try:
            response = await http.request(
                "POST", f"{self.base_url}/translate", json_body=body, timeout=self.timeout
            )
        except http.TransportError as e:
            raise http.translation_error_for_transport(e, self.timeout) from e

        if response.status_code == 503:
            raise TranslationProviderError.not_available(f"{self.name} is starting or overloaded")
        if not response.ok:
            raise http.translation_error_for_status(response)

        try:
            data = response.json()
        except ValueError as e:
            raise TranslationProviderError.translation_failed("MTranServer returned invalid JSON") from e
        translated = data.get("translated_text") if isinstance(data, dict) else None
        if not isinstance(translated, str):
            raise TranslationProviderError.translation_failed("MTranServer response missing translated_text")

        logger.debug("mtran translation complete", latency_ms=int((time.perf_counter() - start) * 1000))
        return TranslationResult(
            source_text=text,
            translated_text=translated,
            source_language=data.get("detected_language") or source_language,
            target_language=target_language,
        )
