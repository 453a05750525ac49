"""Vision-language and OCR provider implementations."""

from .claude_vlm import ClaudeVLMProvider
from .ollama_vlm import OllamaVLMProvider
from .openai_vlm import OpenAIVLMProvider
from .paddleocr_backend import PaddleOCRProvider

__all__ = [
    "ClaudeVLMProvider",
    "OllamaVLMProvider",
    "OpenAIVLMProvider",
    "PaddleOCRProvider",
]
