"""Anthropic Claude vision model over the Messages API."""

from ... import http, imaging, log, repair
from ...errors import VLMProviderError
from ...imaging import ImageInput
from ...models import ProviderConfiguration, ScreenAnalysisResult, VLMProviderType
from ...prompts import VLM_SYSTEM_PROMPT, VLM_USER_PROMPT
from ..base import VLMProvider

logger = log.get_logger()

ANTHROPIC_VERSION = "2023-06-01"
MAX_TOKENS = 8192


class ClaudeVLMProvider(VLMProvider):
    provider_type = VLMProviderType.CLAUDE

    def __init__(self, configuration: ProviderConfiguration):
        super().__init__(configuration)
        base_url = (configuration.base_url or self.provider_type.default_base_url).rstrip("/")
        # accept both "https://api.anthropic.com" and ".../v1"
        self.base_url = base_url[: -len("/v1")] if base_url.endswith("/v1") else base_url
        self.model_name = configuration.model_name or self.provider_type.default_model_name

    async def is_available(self) -> bool:
        return bool(self.configuration.api_key)

    async def _analyze(self, image: ImageInput) -> ScreenAnalysisResult:
        if not self.configuration.api_key:
            raise VLMProviderError.invalid_configuration("Claude API key not configured")
        size = imaging.image_size(image)

        body = {
            "model": self.model_name,
            "max_tokens": MAX_TOKENS,
            "system": VLM_SYSTEM_PROMPT,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": "image/jpeg",
                                "data": imaging.encode_base64_jpeg(image),
                            },
                        },
                        {"type": "text", "text": VLM_USER_PROMPT},
                    ],
                }
            ],
        }
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.configuration.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

        try:
            response = await http.request(
                "POST",
                f"{self.base_url}/v1/messages",
                headers=headers,
                json_body=body,
                timeout=self.configuration.timeout,
            )
        except http.TransportError as e:
            raise http.vlm_error_for_transport(e, self.configuration.timeout) from e
        if not response.ok:
            raise http.vlm_error_for_status(response, self.model_name)

        try:
            data = response.json()
        except ValueError as e:
            raise VLMProviderError.invalid_response("Response is not valid JSON") from e
        if not isinstance(data, dict):
            raise VLMProviderError.invalid_response("Unexpected response shape")
        if data.get("type") == "error":
            message = (data.get("error") or {}).get("message", "unknown error")
            raise VLMProviderError.invalid_response(message)

        text = "".join(
            block.get("text", "") for block in data.get("content") or [] if block.get("type") == "text"
        )
        if not text:
            raise VLMProviderError.invalid_response("No text content in response")
        truncated = data.get("stop_reason") == "max_tokens"
        if truncated:
            logger.warning("claude response hit max_tokens", model=self.model_name)

        segments = repair.parse_segments(text, size, truncated)
        return ScreenAnalysisResult(tuple(segments), size)
