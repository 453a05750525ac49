"""Settings snapshot for screentranslate.

Settings are read from YAML and treated as read-only by the registry and
the orchestration service. Secrets never live here; see secrets.py.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from . import log
from .models import (
    CompatibleEngineConfig,
    EngineIdentifier,
    EngineSelectionMode,
    EngineType,
    SceneEngineBinding,
    TranslationScene,
    VLMProviderType,
)
from .prompts import TranslationPromptConfig

logger = log.get_logger()

USER_CONFIG_DIR = Path.home() / ".config" / "screentranslate"
USER_CONFIG_PATH = USER_CONFIG_DIR / "config.yml"

DEFAULT_CONFIG = """\
# Engine used for translation: apple, mtran, openai, claude, gemini, ollama,
# google, deepl, baidu, custom or custom:<index>
preferred_engine: apple

# primary_with_fallback, parallel, quick_switch or scene_binding
selection_mode: primary_with_fallback
fallback_enabled: true
# fallback_engine: mtran

# Engines queried in parallel mode
parallel_engines: [apple, mtran]

target_language: zh

# Per-engine overrides (base_url, model_name, timeout, max_tokens, temperature)
engines:
  openai:
    model_name: gpt-4o-mini

# OpenAI-compatible endpoints, addressed as custom:0, custom:1, ...
compatible_engines: []

mtran:
  host: localhost
  port: 8989

vlm:
  provider: openai
  timeout: 60

paddleocr:
  # fast (ocr) or precise (doc_parser)
  mode: fast
  use_cloud: false
  language: ch
"""


@dataclass
class EngineOptions:
    base_url: str | None = None
    model_name: str | None = None
    timeout: float | None = None
    max_tokens: int = 2048
    temperature: float = 0.3
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "EngineOptions":
        return cls(
            base_url=data.get("base_url") or None,
            model_name=data.get("model_name") or None,
            timeout=float(data["timeout"]) if data.get("timeout") is not None else None,
            max_tokens=int(data.get("max_tokens", 2048)),
            temperature=float(data.get("temperature", 0.3)),
            enabled=bool(data.get("enabled", True)),
        )


@dataclass
class MTranSettings:
    host: str = "localhost"
    port: int = 8989
    timeout: float = 10.0

    @property
    def base_url(self) -> str:
        # the server listens on IPv4 only; "localhost" may resolve to ::1
        host = "127.0.0.1" if self.host == "localhost" else self.host
        return f"http://{host}:{self.port}"


@dataclass
class VLMSettings:
    provider: VLMProviderType = VLMProviderType.OPENAI
    base_url: str = ""
    model_name: str = ""
    timeout: float = 60.0

    @property
    def effective_base_url(self) -> str:
        return self.base_url or self.provider.default_base_url

    @property
    def effective_model_name(self) -> str:
        return self.model_name or self.provider.default_model_name


@dataclass
class PaddleOCRSettings:
    mode: str = "fast"
    use_cloud: bool = False
    cloud_base_url: str = ""
    language: str = "ch"
    executable: str | None = None
    timeout: float = 120.0


@dataclass
class Settings:
    """Read-only snapshot of user settings."""

    preferred_engine: EngineIdentifier = field(default_factory=lambda: EngineIdentifier.standard(EngineType.APPLE))
    selection_mode: EngineSelectionMode = EngineSelectionMode.PRIMARY_WITH_FALLBACK
    fallback_enabled: bool = True
    fallback_engine: EngineIdentifier | None = None
    parallel_engines: list[EngineIdentifier] = field(default_factory=list)
    source_language: str | None = None
    target_language: str = "zh"
    engines: dict[EngineType, EngineOptions] = field(default_factory=dict)
    compatible_engines: list[CompatibleEngineConfig] = field(default_factory=list)
    scene_bindings: dict[TranslationScene, SceneEngineBinding] = field(default_factory=dict)
    prompts: TranslationPromptConfig = field(default_factory=TranslationPromptConfig)
    mtran: MTranSettings = field(default_factory=MTranSettings)
    vlm: VLMSettings = field(default_factory=VLMSettings)
    paddleocr: PaddleOCRSettings = field(default_factory=PaddleOCRSettings)

    def options_for(self, engine_type: EngineType) -> EngineOptions:
        return self.engines.get(engine_type) or EngineOptions()

    def base_url_for(self, engine_type: EngineType) -> str:
        if engine_type is EngineType.MTRAN_SERVER:
            return self.mtran.base_url
        return self.options_for(engine_type).base_url or engine_type.default_base_url or ""

    def model_name_for(self, engine_type: EngineType) -> str:
        return self.options_for(engine_type).model_name or engine_type.default_model_name or ""

    def timeout_for(self, engine_type: EngineType) -> float:
        if engine_type is EngineType.MTRAN_SERVER:
            return self.mtran.timeout
        return self.options_for(engine_type).timeout or engine_type.default_timeout

    def binding_for(self, scene: TranslationScene) -> SceneEngineBinding:
        return self.scene_bindings.get(scene) or SceneEngineBinding.default(scene)

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        """Build settings from a parsed YAML mapping.

        Raises:
            ValueError: If an engine, mode or scene name is unknown.
        """
        fallback = data.get("fallback_engine")
        mtran = data.get("mtran") or {}
        vlm = data.get("vlm") or {}
        paddle = data.get("paddleocr") or {}

        return cls(
            preferred_engine=EngineIdentifier.parse(str(data.get("preferred_engine", "apple"))),
            selection_mode=EngineSelectionMode(data.get("selection_mode", "primary_with_fallback")),
            fallback_enabled=bool(data.get("fallback_enabled", True)),
            fallback_engine=EngineIdentifier.parse(str(fallback)) if fallback else None,
            parallel_engines=[EngineIdentifier.parse(str(e)) for e in data.get("parallel_engines") or []],
            source_language=data.get("source_language") or None,
            target_language=str(data.get("target_language", "zh")),
            engines={
                EngineType.parse(name): EngineOptions.from_dict(opts or {})
                for name, opts in (data.get("engines") or {}).items()
            },
            compatible_engines=[_parse_compatible(entry) for entry in data.get("compatible_engines") or []],
            scene_bindings=_parse_bindings(data.get("scene_bindings") or {}),
            prompts=_parse_prompts(data.get("prompts") or {}),
            mtran=MTranSettings(
                host=str(mtran.get("host", "localhost")),
                port=int(mtran.get("port", 8989)),
                timeout=float(mtran.get("timeout", 10.0)),
            ),
            vlm=VLMSettings(
                provider=VLMProviderType(vlm.get("provider", "openai")),
                base_url=vlm.get("base_url") or "",
                model_name=vlm.get("model_name") or "",
                timeout=float(vlm.get("timeout", 60.0)),
            ),
            paddleocr=PaddleOCRSettings(
                mode=str(paddle.get("mode", "fast")),
                use_cloud=bool(paddle.get("use_cloud", False)),
                cloud_base_url=paddle.get("cloud_base_url") or "",
                language=str(paddle.get("language", "ch")),
                executable=paddle.get("executable") or None,
                timeout=float(paddle.get("timeout", 120.0)),
            ),
        )

    @classmethod
    def load(cls, config_path: str | None = None) -> "Settings":
        """Load settings from a YAML file.

        Args:
            config_path: Path to the config file. If None, looks for
                config.yml in the working directory, then in
                ~/.config/screentranslate/.

        Returns:
            Settings with loaded values, or defaults when no file exists
            (a commented default file is then written to the user location).
        """
        if config_path is None:
            for path in (Path("config.yml"), USER_CONFIG_PATH):
                if path.exists():
                    config_path = str(path)
                    break

        if config_path and os.path.exists(config_path):
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            logger.debug("settings loaded", path=config_path)
            return cls.from_dict(data)

        _create_default_config()
        return cls.from_dict(yaml.safe_load(DEFAULT_CONFIG))


def _create_default_config() -> None:
    if USER_CONFIG_PATH.exists():
        return
    try:
        USER_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        with open(USER_CONFIG_PATH, "w", encoding="utf-8") as f:
            f.write(DEFAULT_CONFIG)
    except OSError as e:
        logger.warning("could not write default config", path=str(USER_CONFIG_PATH), err=str(e))
        return
    logger.info("created default config", path=str(USER_CONFIG_PATH))


def _parse_compatible(entry: dict) -> CompatibleEngineConfig:
    return CompatibleEngineConfig(
        display_name=str(entry.get("display_name", "Custom")),
        base_url=str(entry["base_url"]),
        model_name=str(entry.get("model_name", "")),
        has_api_key=bool(entry.get("has_api_key", False)),
        timeout=float(entry.get("timeout", 30.0)),
        max_tokens=int(entry.get("max_tokens", 2048)),
        temperature=float(entry.get("temperature", 0.3)),
    )


def _parse_bindings(data: dict) -> dict[TranslationScene, SceneEngineBinding]:
    bindings = {}
    for scene_name, entry in data.items():
        scene = TranslationScene(scene_name)
        fallback = entry.get("fallback")
        bindings[scene] = SceneEngineBinding(
            scene=scene,
            primary_engine=EngineIdentifier.parse(str(entry["primary"])),
            fallback_engine=EngineIdentifier.parse(str(fallback)) if fallback else None,
            fallback_enabled=bool(entry.get("fallback_enabled", True)),
            custom_prompt=entry.get("prompt") or None,
        )
    return bindings


def _parse_prompts(data: dict) -> TranslationPromptConfig:
    return TranslationPromptConfig(
        engine_prompts={EngineType.parse(k): str(v) for k, v in (data.get("engines") or {}).items()},
        compatible_prompts={int(k): str(v) for k, v in (data.get("compatible") or {}).items()},
        scene_prompts={TranslationScene(k): str(v) for k, v in (data.get("scenes") or {}).items()},
    )
