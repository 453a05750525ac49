"""Translation provider implementations."""

from .apple import AppleTranslationProvider, SystemTranslator
from .baidu import BaiduTranslationProvider
from .compatible import CompatibleTranslationProvider
from .deepl import DeepLTranslationProvider
from .google import GoogleTranslationProvider
from .llm import LLMTranslationProvider
from .mtran import MTranServerProvider

__all__ = [
    "AppleTranslationProvider",
    "BaiduTranslationProvider",
    "CompatibleTranslationProvider",
    "DeepLTranslationProvider",
    "GoogleTranslationProvider",
    "LLMTranslationProvider",
    "MTranServerProvider",
    "SystemTranslator",
]
