"""ScreenTranslate - multi-provider translation and screen OCR core.

A registry of interchangeable translation engines (system, self-hosted,
cloud and chat-model providers) and vision/OCR engines, coordinated by a
service that implements fallback, parallel comparison and scene-based
routing, with repair of truncated model output.
"""

__version__ = "0.1.0"

# Public API
from .backends.registry import ProviderRegistry, get_registry
from .config import Settings
from .errors import (
    AllEnginesFailedError,
    ErrorKind,
    OperationInProgressError,
    RegistryError,
    ScreenTranslateError,
    TranslationProviderError,
    VLMProviderError,
)
from .models import (
    BilingualSegment,
    BoundingBox,
    EngineIdentifier,
    EngineResult,
    EngineSelectionMode,
    EngineType,
    ScreenAnalysisResult,
    TextSegment,
    TranslationResultBundle,
    TranslationScene,
    VLMProviderType,
)
from .service import ScreenAnalyzer, TranslationService

__all__ = [
    "AllEnginesFailedError",
    "BilingualSegment",
    "BoundingBox",
    "EngineIdentifier",
    "EngineResult",
    "EngineSelectionMode",
    "EngineType",
    "ErrorKind",
    "OperationInProgressError",
    "ProviderRegistry",
    "RegistryError",
    "ScreenAnalysisResult",
    "ScreenAnalyzer",
    "ScreenTranslateError",
    "Settings",
    "TextSegment",
    "TranslationProviderError",
    "TranslationResultBundle",
    "TranslationScene",
    "TranslationService",
    "VLMProviderError",
    "VLMProviderType",
    "get_registry",
    "__version__",
]
