"""Baidu Translate general text API."""

import hashlib
import random

from ... import http, log
from ...errors import TranslationProviderError
from ...models import EngineIdentifier, EngineType, TranslationResult
from ...secrets import SecretStore
from ..base import TranslationProvider

logger = log.get_logger()

LANGUAGE_CODES = {
    "auto": "auto",
    "en": "en",
    "zh": "zh",
    "zh-Hans": "zh",
    "zh-CN": "zh",
    "zh-Hant": "cht",
    "zh-TW": "cht",
    "ja": "jp",
    "ko": "kor",
    "fr": "fra",
    "de": "de",
    "es": "spa",
    "pt": "pt",
    "ru": "ru",
    "it": "it",
}

# error_code values documented by Baidu
AUTH_ERRORS = {"52003", "54001"}
RATE_LIMIT_ERRORS = {"54003"}
BALANCE_ERRORS = {"54004"}


def map_language(code: str | None) -> str:
    if not code:
        return "auto"
    return LANGUAGE_CODES.get(code, code)


def sign(app_id: str, query: str, salt: str, secret_key: str) -> str:
    return hashlib.md5((app_id + query + salt + secret_key).encode("utf-8")).hexdigest()


class BaiduTranslationProvider(TranslationProvider):
    def __init__(self, secrets: SecretStore, base_url: str | None = None, timeout: float = 30.0):
        super().__init__(EngineIdentifier.standard(EngineType.BAIDU), timeout)
        self.secrets = secrets
        self.base_url = base_url or EngineType.BAIDU.default_base_url

    async def is_available(self) -> bool:
        credentials = self.secrets.get_secret(EngineType.BAIDU.value)
        return credentials is not None and bool(credentials.api_key) and bool(credentials.app_id)

    async def _translate(self, text: str, source_language: str | None, target_language: str) -> TranslationResult:
        credentials = self.secrets.get_secret(EngineType.BAIDU.value)
        if credentials is None or not credentials.api_key or not credentials.app_id:
            raise TranslationProviderError.invalid_configuration("AppID or secret key not configured")

        salt = str(random.randint(100000, 999999))
        params = {
            "q": text,
            "from": map_language(source_language),
            "to": map_language(target_language),
            "appid": credentials.app_id,
            "salt": salt,
            "sign": sign(credentials.app_id, text, salt, credentials.api_key),
        }
        try:
            response = await http.request("GET", self.base_url, params=params, timeout=self.timeout)
        except http.TransportError as e:
            raise http.translation_error_for_transport(e, self.timeout) from e
        if not response.ok:
            raise http.translation_error_for_status(response)

        try:
            data = response.json()
        except ValueError as e:
            raise TranslationProviderError.translation_failed("Failed to parse Baidu response") from e
        _raise_for_error_code(data)

        try:
            translated = "\n".join(item["dst"] for item in data["trans_result"])
        except (KeyError, TypeError) as e:
            raise TranslationProviderError.translation_failed("Failed to parse Baidu response") from e
        logger.debug("baidu translation complete", chars=len(text))
        return TranslationResult(text, translated, data.get("from") or source_language, target_language)


def _raise_for_error_code(data) -> None:
    if not isinstance(data, dict) or "error_code" not in data:
        return
    code = str(data["error_code"])
    if code == "52000":
        return
    message = data.get("error_msg", "unknown error")
    if code in AUTH_ERRORS:
        raise TranslationProviderError.invalid_configuration(f"Invalid AppID or secret key ({message})")
    if code in RATE_LIMIT_ERRORS:
        raise TranslationProviderError.rate_limited()
    if code in BALANCE_ERRORS:
        raise TranslationProviderError.translation_failed("Baidu account balance insufficient")
    raise TranslationProviderError.translation_failed(f"Baidu error {code}: {message}")
