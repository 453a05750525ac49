"""Value types shared by providers, the registry and the orchestration service."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import NamedTuple
from uuid import uuid4

from .errors import ScreenTranslateError


class EngineType(Enum):
    """Built-in translation engines."""

    APPLE = "apple"
    MTRAN_SERVER = "mtran"
    OPENAI = "openai"
    CLAUDE = "claude"
    GEMINI = "gemini"
    OLLAMA = "ollama"
    GOOGLE = "google"
    DEEPL = "deepl"
    BAIDU = "baidu"
    CUSTOM = "custom"

    @property
    def display_name(self) -> str:
        names = {
            EngineType.APPLE: "Apple Translation",
            EngineType.MTRAN_SERVER: "MTranServer",
            EngineType.OPENAI: "OpenAI",
            EngineType.CLAUDE: "Claude",
            EngineType.GEMINI: "Gemini",
            EngineType.OLLAMA: "Ollama",
            EngineType.GOOGLE: "Google Translate",
            EngineType.DEEPL: "DeepL",
            EngineType.BAIDU: "Baidu Translate",
            EngineType.CUSTOM: "Custom (OpenAI-compatible)",
        }
        return names[self]

    @property
    def requires_api_key(self) -> bool:
        return self in {
            EngineType.OPENAI,
            EngineType.CLAUDE,
            EngineType.GEMINI,
            EngineType.GOOGLE,
            EngineType.DEEPL,
            EngineType.BAIDU,
        }

    @property
    def requires_app_id(self) -> bool:
        return self is EngineType.BAIDU

    @property
    def is_llm(self) -> bool:
        """Whether the engine translates through a chat model and honors prompt templates."""
        return self in {
            EngineType.OPENAI,
            EngineType.CLAUDE,
            EngineType.GEMINI,
            EngineType.OLLAMA,
            EngineType.CUSTOM,
        }

    @property
    def default_base_url(self) -> str | None:
        urls = {
            EngineType.MTRAN_SERVER: "http://localhost:8989",
            EngineType.OPENAI: "https://api.openai.com/v1",
            EngineType.CLAUDE: "https://api.anthropic.com/v1",
            EngineType.GEMINI: "https://generativelanguage.googleapis.com/v1beta/openai",
            EngineType.OLLAMA: "http://localhost:11434/v1",
            EngineType.GOOGLE: "https://translation.googleapis.com/language/translate/v2",
            EngineType.DEEPL: "https://api.deepl.com/v2/translate",
            EngineType.BAIDU: "https://fanyi-api.baidu.com/api/trans/vip/translate",
        }
        return urls.get(self)

    @property
    def default_model_name(self) -> str | None:
        models = {
            EngineType.OPENAI: "gpt-4o-mini",
            EngineType.CLAUDE: "claude-sonnet-4-20250514",
            EngineType.GEMINI: "gemini-2.0-flash",
            EngineType.OLLAMA: "llama3",
        }
        return models.get(self)

    @property
    def default_timeout(self) -> float:
        if self is EngineType.OLLAMA:
            return 60.0
        if self is EngineType.MTRAN_SERVER:
            return 10.0
        return 30.0

    @classmethod
    def parse(cls, value: str) -> "EngineType":
        """Parse an engine name, accepting the enum value or its member name."""
        value = value.strip()
        for member in cls:
            if value.lower() in (member.value.lower(), member.name.lower()):
                return member
        if value.lower() in ("mtranserver", "mtran_server"):
            return cls.MTRAN_SERVER
        raise ValueError(f"Unknown engine: {value}")


@dataclass(frozen=True)
class EngineIdentifier:
    """Key used to select and cache a translation provider.

    A standard identifier names a built-in engine. A compatible identifier
    addresses one of several user-configured OpenAI-compatible endpoints by
    index.
    """

    engine_type: EngineType
    compatible_index: int | None = None

    @classmethod
    def standard(cls, engine_type: EngineType) -> "EngineIdentifier":
        return cls(engine_type)

    @classmethod
    def compatible(cls, index: int) -> "EngineIdentifier":
        if index < 0:
            raise ValueError("compatible index must be >= 0")
        return cls(EngineType.CUSTOM, index)

    @classmethod
    def parse(cls, value: str) -> "EngineIdentifier":
        """Parse 'openai', 'mtran' or 'custom:1' style identifiers."""
        if ":" in value:
            prefix, _, index = value.partition(":")
            if EngineType.parse(prefix) is not EngineType.CUSTOM:
                raise ValueError(f"Only custom engines take an index: {value}")
            return cls.compatible(int(index))
        return cls.standard(EngineType.parse(value))

    @property
    def is_compatible(self) -> bool:
        return self.compatible_index is not None

    @property
    def composite_id(self) -> str:
        if self.compatible_index is not None:
            return f"{EngineType.CUSTOM.value}:{self.compatible_index}"
        return self.engine_type.value

    def __str__(self) -> str:
        return self.composite_id


class VLMProviderType(Enum):
    """Vision/OCR engines able to produce a ScreenAnalysisResult."""

    OPENAI = "openai"
    CLAUDE = "claude"
    OLLAMA = "ollama"
    PADDLEOCR = "paddleocr"

    @property
    def default_base_url(self) -> str:
        urls = {
            VLMProviderType.OPENAI: "https://api.openai.com/v1",
            VLMProviderType.CLAUDE: "https://api.anthropic.com",
            VLMProviderType.OLLAMA: "http://localhost:11434",
            VLMProviderType.PADDLEOCR: "",
        }
        return urls[self]

    @property
    def default_model_name(self) -> str:
        models = {
            VLMProviderType.OPENAI: "gpt-4o",
            VLMProviderType.CLAUDE: "claude-sonnet-4-20250514",
            VLMProviderType.OLLAMA: "llava",
            VLMProviderType.PADDLEOCR: "",
        }
        return models[self]

    @property
    def requires_api_key(self) -> bool:
        return self in (VLMProviderType.OPENAI, VLMProviderType.CLAUDE)


class TranslationScene(Enum):
    """Usage context used to pick a default engine binding."""

    SCREENSHOT = "screenshot"
    TEXT_SELECTION = "text_selection"
    TRANSLATE_AND_INSERT = "translate_and_insert"


class EngineSelectionMode(Enum):
    """Orchestration policy applied to a translation call."""

    PRIMARY_WITH_FALLBACK = "primary_with_fallback"
    PARALLEL = "parallel"
    QUICK_SWITCH = "quick_switch"
    SCENE_BINDING = "scene_binding"


class ImageSize(NamedTuple):
    width: float
    height: float


@dataclass(frozen=True)
class BoundingBox:
    """Rectangle in normalized [0, 1] image coordinates."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def zero(cls) -> "BoundingBox":
        return cls(0.0, 0.0, 0.0, 0.0)

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def mid_y(self) -> float:
        return self.y + self.height / 2

    @property
    def is_normalized(self) -> bool:
        eps = 1e-6
        return (
            0.0 <= self.x <= 1.0
            and 0.0 <= self.y <= 1.0
            and self.width >= 0.0
            and self.height >= 0.0
            and self.max_x <= 1.0 + eps
            and self.max_y <= 1.0 + eps
        )

    def clamped(self) -> "BoundingBox":
        """Clamp into the unit square, shrinking width/height as needed."""
        x = min(max(self.x, 0.0), 1.0)
        y = min(max(self.y, 0.0), 1.0)
        width = min(max(self.width, 0.0), 1.0 - x)
        height = min(max(self.height, 0.0), 1.0 - y)
        return BoundingBox(x, y, width, height)

    def normalized(self, image_size: ImageSize | None) -> "BoundingBox":
        """Return the box in normalized coordinates.

        Boxes with an origin or extent above 1 are treated as pixel coordinates
        and divided by the image size. The result is always clamped.
        """
        if self.is_normalized:
            return self
        box = self
        looks_like_pixels = max(self.x, self.y, self.width, self.height) > 1.0 + 1e-6
        if looks_like_pixels and image_size and image_size.width > 0 and image_size.height > 0:
            box = BoundingBox(
                self.x / image_size.width,
                self.y / image_size.height,
                self.width / image_size.width,
                self.height / image_size.height,
            )
        return box.clamped()

    def to_pixels(self, image_size: ImageSize) -> tuple[float, float, float, float]:
        return (
            self.x * image_size.width,
            self.y * image_size.height,
            self.width * image_size.width,
            self.height * image_size.height,
        )

    def union(self, other: "BoundingBox") -> "BoundingBox":
        min_x = min(self.x, other.x)
        min_y = min(self.y, other.y)
        return BoundingBox(
            min_x,
            min_y,
            max(self.max_x, other.max_x) - min_x,
            max(self.max_y, other.max_y) - min_y,
        )


@dataclass(frozen=True)
class TextSegment:
    """Text extracted by an OCR/VLM engine with its normalized position."""

    text: str
    bounding_box: BoundingBox
    confidence: float = 1.0
    id: str = field(default_factory=lambda: uuid4().hex, compare=False)


@dataclass(frozen=True)
class ScreenAnalysisResult:
    """Output of one OCR/VLM call over a captured image."""

    segments: tuple[TextSegment, ...]
    image_size: ImageSize

    @classmethod
    def empty(cls, image_size: ImageSize) -> "ScreenAnalysisResult":
        return cls((), image_size)

    @property
    def is_empty(self) -> bool:
        return not self.segments

    @property
    def full_text(self) -> str:
        return "\n".join(segment.text for segment in self.segments)

    def filter(self, min_confidence: float) -> "ScreenAnalysisResult":
        kept = tuple(s for s in self.segments if s.confidence >= min_confidence)
        return replace(self, segments=kept)

    def segments_in(self, region: BoundingBox) -> tuple[TextSegment, ...]:
        """Segments whose box intersects the given normalized region."""
        return tuple(
            s
            for s in self.segments
            if s.bounding_box.x < region.max_x
            and s.bounding_box.max_x > region.x
            and s.bounding_box.y < region.max_y
            and s.bounding_box.max_y > region.y
        )


@dataclass(frozen=True)
class TranslationResult:
    source_text: str
    translated_text: str
    source_language: str | None
    target_language: str


@dataclass(frozen=True)
class BilingualSegment:
    """An extracted text segment paired with its translation."""

    original: TextSegment
    translated: str
    source_language: str | None
    target_language: str

    @classmethod
    def from_result(cls, result: TranslationResult, segment: TextSegment | None = None) -> "BilingualSegment":
        """Pair a translation with a segment, or with a zero box when the text had no position."""
        if segment is None:
            segment = TextSegment(result.source_text, BoundingBox.zero(), 1.0)
        return cls(segment, result.translated_text, result.source_language, result.target_language)

    @property
    def source_text(self) -> str:
        return self.original.text


@dataclass(frozen=True)
class EngineResult:
    """Outcome of one engine within an orchestrated call."""

    engine: EngineIdentifier
    segments: tuple[BilingualSegment, ...] = ()
    latency: float = 0.0
    error: ScreenTranslateError | None = None

    @classmethod
    def failed(cls, engine: EngineIdentifier, error: ScreenTranslateError, latency: float = 0.0) -> "EngineResult":
        return cls(engine=engine, error=error, latency=latency)

    @property
    def is_success(self) -> bool:
        return self.error is None and bool(self.segments)


@dataclass(frozen=True)
class TranslationResultBundle:
    """All engine results produced by one orchestrated translation call."""

    results: tuple[EngineResult, ...]
    primary_engine: EngineIdentifier
    selection_mode: EngineSelectionMode
    scene: TranslationScene | None = None

    @classmethod
    def single(
        cls,
        result: EngineResult,
        selection_mode: EngineSelectionMode,
        scene: TranslationScene | None = None,
    ) -> "TranslationResultBundle":
        return cls((result,), result.engine, selection_mode, scene)

    @property
    def primary_result(self) -> tuple[BilingualSegment, ...]:
        """Segments of the primary engine, or of the first successful engine."""
        for result in self.results:
            if result.engine == self.primary_engine and result.is_success:
                return result.segments
        for result in self.results:
            if result.is_success:
                return result.segments
        return ()

    @property
    def segments(self) -> tuple[BilingualSegment, ...]:
        return self.primary_result

    @property
    def has_errors(self) -> bool:
        return any(r.error is not None for r in self.results)

    @property
    def all_failed(self) -> bool:
        return bool(self.results) and not any(r.is_success for r in self.results)

    @property
    def successful_engines(self) -> list[EngineIdentifier]:
        return [r.engine for r in self.results if r.is_success]

    @property
    def failed_engines(self) -> list[EngineIdentifier]:
        return [r.engine for r in self.results if not r.is_success]

    @property
    def average_latency(self) -> float:
        latencies = [r.latency for r in self.results if r.is_success]
        if not latencies:
            return 0.0
        return sum(latencies) / len(latencies)

    def result_for(self, engine: EngineIdentifier) -> EngineResult | None:
        for result in self.results:
            if result.engine == engine:
                return result
        return None


@dataclass(frozen=True)
class SceneEngineBinding:
    """Engines bound to a usage scene."""

    scene: TranslationScene
    primary_engine: EngineIdentifier
    fallback_engine: EngineIdentifier | None = None
    fallback_enabled: bool = True
    custom_prompt: str | None = None

    @classmethod
    def default(cls, scene: TranslationScene) -> "SceneEngineBinding":
        return cls(
            scene=scene,
            primary_engine=EngineIdentifier.standard(EngineType.APPLE),
            fallback_engine=EngineIdentifier.standard(EngineType.MTRAN_SERVER),
            fallback_enabled=True,
        )

    @classmethod
    def all_defaults(cls) -> dict[TranslationScene, "SceneEngineBinding"]:
        return {scene: cls.default(scene) for scene in TranslationScene}


@dataclass(frozen=True)
class ProviderConfiguration:
    """Connection data for one provider instance.

    Built by the registry from the settings snapshot and secret store at
    lookup time.
    """

    api_key: str = field(default="", repr=False)
    base_url: str = ""
    model_name: str = ""
    timeout: float = 30.0
    app_id: str | None = field(default=None, repr=False)
    use_cloud: bool = False
    extra: dict = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class CompatibleEngineConfig:
    """A user-configured OpenAI-compatible endpoint."""

    display_name: str
    base_url: str
    model_name: str
    has_api_key: bool = False
    timeout: float = 30.0
    max_tokens: int = 2048
    temperature: float = 0.3

    def secret_id(self, index: int) -> str:
        return f"{EngineType.CUSTOM.value}:{index}"
