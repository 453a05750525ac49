"""Local vision models served by Ollama (llava, qwen2.5vl, ...)."""

from ... import http, imaging, log, repair
from ...errors import VLMProviderError
from ...imaging import ImageInput
from ...models import ProviderConfiguration, ScreenAnalysisResult, VLMProviderType
from ...prompts import VLM_SYSTEM_PROMPT, VLM_USER_PROMPT
from ..base import VLMProvider

logger = log.get_logger()

TEMPERATURE = 0.1
NUM_PREDICT = 4096
AVAILABILITY_TIMEOUT = 5.0


class OllamaVLMProvider(VLMProvider):
    provider_type = VLMProviderType.OLLAMA

    def __init__(self, configuration: ProviderConfiguration):
        super().__init__(configuration)
        self.base_url = (configuration.base_url or self.provider_type.default_base_url).rstrip("/")
        self.model_name = configuration.model_name or self.provider_type.default_model_name

    async def is_available(self) -> bool:
        try:
            response = await http.request("GET", f"{self.base_url}/api/tags", timeout=AVAILABILITY_TIMEOUT)
        except http.TransportError:
            return False
        return response.status_code == 200

    async def _analyze(self, image: ImageInput) -> ScreenAnalysisResult:
        size = imaging.image_size(image)
        body = {
            "model": self.model_name,
            "prompt": f"{VLM_SYSTEM_PROMPT}\n\n{VLM_USER_PROMPT}",
            "images": [imaging.encode_base64_jpeg(image)],
            "stream": False,
            "options": {"temperature": TEMPERATURE, "num_predict": NUM_PREDICT},
        }

        try:
            response = await http.request(
                "POST",
                f"{self.base_url}/api/generate",
                headers={"Content-Type": "application/json"},
                json_body=body,
                timeout=self.configuration.timeout,
            )
        except http.TransportError as e:
            if e.timed_out:
                raise http.vlm_error_for_transport(e, self.configuration.timeout) from e
            raise VLMProviderError.network_error(
                f"Cannot connect to Ollama server at {self.base_url}. Is Ollama running?"
            ) from e
        if not response.ok:
            raise http.vlm_error_for_status(
                response,
                self.model_name,
                not_found_hint=f"Run 'ollama pull {self.model_name}' to download it.",
            )

        try:
            data = response.json()
        except ValueError as e:
            raise VLMProviderError.invalid_response("Response is not valid JSON") from e
        if not isinstance(data, dict):
            raise VLMProviderError.invalid_response("Unexpected response shape")
        if data.get("error"):
            raise VLMProviderError.invalid_response(str(data["error"]))

        content = data.get("response")
        if not isinstance(content, str) or not content:
            raise VLMProviderError.invalid_response("Empty response from Ollama")
        truncated = data.get("done_reason") == "length"
        if truncated:
            logger.warning("ollama response hit num_predict", model=self.model_name)

        segments = repair.parse_segments(content, size, truncated)
        return ScreenAnalysisResult(tuple(segments), size)
