"""OpenAI vision model over Chat Completions.

Large screenshots can exhaust the output budget mid-JSON. When the model
stops with finish_reason "length" the conversation is continued with the
partial answer appended, and segments are accumulated across attempts.
"""

import re

from ... import http, imaging, log, repair
from ...errors import VLMProviderError
from ...imaging import ImageInput
from ...models import ImageSize, ProviderConfiguration, ScreenAnalysisResult, VLMProviderType
from ...prompts import CONTINUATION_PROMPT, VLM_SYSTEM_PROMPT, VLM_USER_PROMPT
from ..base import VLMProvider

logger = log.get_logger()

MAX_TOKENS = 8192
CONTINUATION_MAX_TOKENS = 16384
MAX_ATTEMPTS = 3
TEMPERATURE = 0.1

_LENGTH_FINISH = re.compile(r'"finish_reason"\s*:\s*"length"')


class OpenAIVLMProvider(VLMProvider):
    provider_type = VLMProviderType.OPENAI

    def __init__(self, configuration: ProviderConfiguration):
        super().__init__(configuration)
        self.base_url = (configuration.base_url or self.provider_type.default_base_url).rstrip("/")
        self.model_name = configuration.model_name or self.provider_type.default_model_name

    async def is_available(self) -> bool:
        return bool(self.configuration.api_key)

    async def _analyze(self, image: ImageInput) -> ScreenAnalysisResult:
        if not self.configuration.api_key:
            raise VLMProviderError.invalid_configuration("OpenAI API key not configured")
        size = imaging.image_size(image)
        image_b64 = imaging.encode_base64_jpeg(image)

        messages = [
            {"role": "system", "content": VLM_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": VLM_USER_PROMPT},
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:image/jpeg;base64,{image_b64}", "detail": "high"},
                    },
                ],
            },
        ]
        return await self._run_conversation(messages, size)

    async def _run_conversation(self, messages: list[dict], size: ImageSize) -> ScreenAnalysisResult:
        segments = []
        for attempt in range(MAX_ATTEMPTS):
            max_tokens = CONTINUATION_MAX_TOKENS if attempt else MAX_TOKENS
            content, truncated = await self._complete(messages, max_tokens)
            logger.debug("vlm attempt", attempt=attempt + 1, chars=len(content), truncated=truncated)

            try:
                parsed = repair.parse_segments(content, size, truncated)
            except VLMProviderError:
                if segments:
                    logger.warning("continuation unparseable, keeping accumulated", segments=len(segments))
                    break
                if not truncated or attempt == MAX_ATTEMPTS - 1:
                    raise
                parsed = []
            segments = repair.merge_segments(segments, parsed)

            if not truncated:
                break
            messages = messages + [
                {"role": "assistant", "content": content},
                {"role": "user", "content": CONTINUATION_PROMPT},
            ]
        else:
            logger.warning("continuation limit reached", attempts=MAX_ATTEMPTS, segments=len(segments))

        return ScreenAnalysisResult(tuple(segments), size)

    async def _complete(self, messages: list[dict], max_tokens: int) -> tuple[str, bool]:
        """Send one request; return (content, truncated)."""
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.configuration.api_key}",
        }
        body = {
            "model": self.model_name,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": TEMPERATURE,
        }
        try:
            response = await http.request(
                "POST",
                f"{self.base_url}/chat/completions",
                headers=headers,
                json_body=body,
                timeout=self.configuration.timeout,
            )
        except http.TransportError as e:
            raise http.vlm_error_for_transport(e, self.configuration.timeout) from e
        if not response.ok:
            raise http.vlm_error_for_status(response, self.model_name)
        return _content_and_status(response)


def _content_and_status(response: http.HTTPResponse) -> tuple[str, bool]:
    try:
        data = response.json()
    except ValueError:
        # broken envelope; the content string itself may still be intact
        content = repair.extract_string_field(response.text, "content")
        if content is None:
            raise VLMProviderError.parsing_failed(f"Failed to decode response: {response.text[:300]}") from None
        return content, bool(_LENGTH_FINISH.search(response.text))

    if not isinstance(data, dict):
        raise VLMProviderError.invalid_response("Unexpected response shape")
    error = data.get("error")
    if isinstance(error, dict) and error.get("message"):
        raise VLMProviderError.invalid_response(error["message"])

    choices = data.get("choices") or []
    if not choices:
        raise VLMProviderError.invalid_response("No choices in response")
    choice = choices[0]
    content = (choice.get("message") or {}).get("content")
    if not isinstance(content, str):
        reason = choice.get("finish_reason") or "unknown"
        raise VLMProviderError.invalid_response(f"No content in response (finish_reason: {reason})")
    return content, choice.get("finish_reason") == "length"
