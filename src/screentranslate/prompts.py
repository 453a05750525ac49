"""Prompts sent to vision models and translation LLMs."""

from dataclasses import dataclass, field

from .models import EngineIdentifier, TranslationScene

VLM_SYSTEM_PROMPT = """\
You extract text from screenshots. Identify every piece of visible text in the \
image and report where it is.

Rules:
1. Include all visible text: UI labels, buttons, menus and body content.
2. Bounding boxes use normalized coordinates between 0.0 and 1.0 relative to the image.
3. Keep logical units together; a button label is one segment, not one per character.
4. Give each segment a confidence score reflecting how legible it is.
5. Reply with JSON only. No markdown fences, no commentary."""

VLM_USER_PROMPT = """\
Extract all visible text from this screenshot together with its position.

Reply with a JSON object shaped exactly like this:
{
  "segments": [
    {
      "text": "extracted text",
      "boundingBox": {"x": 0.0, "y": 0.0, "width": 0.0, "height": 0.0},
      "confidence": 0.95
    }
  ]
}

x and y are the top-left corner, width and height the size, all normalized to 0.0-1.0.
confidence is between 0.0 and 1.0."""

CONTINUATION_PROMPT = (
    "Continue from where you left off. Return ONLY the complete JSON array of remaining "
    "segments. Do not repeat segments already returned."
)

DEFAULT_PROMPT = """\
Translate the following text from {source_language} to {target_language}.
Provide only the translation without any explanations or additional text.

Text to translate:
{text}"""

DEFAULT_INSERT_PROMPT = """\
Translate the following text from {source_language} to {target_language}.
The translation will be inserted at the cursor position.
Provide only the translation without any explanations, formatting, or additional text.
Keep the translation concise and natural for the target language.

Text to translate:
{text}"""

TEMPLATE_VARIABLES = {
    "{source_language}": "Source language name",
    "{target_language}": "Target language name",
    "{text}": "Text to translate",
}

AUTO_DETECT = "auto-detect"


def render_prompt(template: str, source_language: str | None, target_language: str, text: str) -> str:
    """Substitute the template variables.

    str.replace is used instead of str.format so that literal braces in a
    user's template survive.
    """
    return (
        template.replace("{source_language}", source_language or AUTO_DETECT)
        .replace("{target_language}", target_language)
        .replace("{text}", text)
    )


@dataclass
class TranslationPromptConfig:
    """User overrides for translation prompts.

    Resolution order: scene override, then engine (or compatible endpoint)
    override, then the built-in default for the scene.
    """

    engine_prompts: dict = field(default_factory=dict)  # EngineType -> str
    compatible_prompts: dict = field(default_factory=dict)  # int -> str
    scene_prompts: dict = field(default_factory=dict)  # TranslationScene -> str

    @staticmethod
    def default_for(scene: TranslationScene | None) -> str:
        if scene is TranslationScene.TRANSLATE_AND_INSERT:
            return DEFAULT_INSERT_PROMPT
        return DEFAULT_PROMPT

    def template_for(self, engine: EngineIdentifier, scene: TranslationScene | None) -> str:
        """Return the unrendered template that applies to an engine in a scene."""
        if scene is not None and self.scene_prompts.get(scene):
            return self.scene_prompts[scene]
        if engine.is_compatible:
            if self.compatible_prompts.get(engine.compatible_index):
                return self.compatible_prompts[engine.compatible_index]
        elif self.engine_prompts.get(engine.engine_type):
            return self.engine_prompts[engine.engine_type]
        return self.default_for(scene)

    def resolved_prompt(
        self,
        engine: EngineIdentifier,
        scene: TranslationScene | None,
        source_language: str | None,
        target_language: str,
        text: str,
    ) -> str:
        return render_prompt(self.template_for(engine, scene), source_language, target_language, text)

    def preview(self, engine: EngineIdentifier, scene: TranslationScene | None) -> str:
        """Render the applicable template with sample values."""
        return self.resolved_prompt(engine, scene, "English", "Chinese", "Hello, world!")

    @property
    def has_custom_prompts(self) -> bool:
        return bool(self.engine_prompts or self.compatible_prompts or self.scene_prompts)

    def reset(self) -> None:
        self.engine_prompts.clear()
        self.compatible_prompts.clear()
        self.scene_prompts.clear()
