"""Pluggable translation and vision/OCR providers."""

from .base import PromptTemplateMixin, TranslationProvider, VLMProvider
from .registry import ProviderRegistry, get_registry

__all__ = [
    "PromptTemplateMixin",
    "TranslationProvider",
    "VLMProvider",
    "ProviderRegistry",
    "get_registry",
]
