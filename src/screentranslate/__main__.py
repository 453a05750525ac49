"""Main entry point for screentranslate.

This module is executed when running:
- python -m screentranslate
- screentranslate (via pyproject.toml entry point)
"""

import argparse
import asyncio
import sys

from PIL import Image, UnidentifiedImageError

from . import log, repair
from .backends.registry import ProviderRegistry
from .config import Settings
from .errors import AllEnginesFailedError, ScreenTranslateError
from .models import EngineIdentifier, EngineSelectionMode, TranslationResultBundle, VLMProviderType
from .secrets import EnvSecretStore
from .service import ScreenAnalyzer, TranslationService


def _parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Multi-engine translation and screen OCR")
    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to config file (default: config.yml)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    translate = subparsers.add_parser("translate", help="Translate text (arguments or stdin lines)")
    translate.add_argument("texts", nargs="*", help="Texts to translate")
    translate.add_argument("--to", "-t", dest="target", default=None, help="Target language (overrides config)")
    translate.add_argument("--from", "-f", dest="source", default=None, help="Source language")
    translate.add_argument("--engine", "-e", default=None, help="Engine, e.g. openai or custom:0")
    translate.add_argument(
        "--mode", "-m",
        choices=[m.value for m in EngineSelectionMode],
        default=None,
        help="Engine selection mode (overrides config)",
    )

    analyze = subparsers.add_parser("analyze", help="Extract text segments from an image")
    analyze.add_argument("image", help="Path to the image")
    analyze.add_argument(
        "--provider", "-p",
        choices=[p.value for p in VLMProviderType],
        default=None,
        help="Vision provider (overrides config)",
    )
    analyze.add_argument("--min-confidence", type=float, default=0.0, help="Drop segments below this confidence")
    analyze.add_argument("--translate", action="store_true", help="Also translate the extracted segments")
    analyze.add_argument("--to", "-t", dest="target", default=None, help="Target language (overrides config)")

    subparsers.add_parser("engines", help="List translation engines and their status")

    return parser.parse_args(argv)


def _print_bundle(bundle: TranslationResultBundle) -> None:
    if len(bundle.results) == 1:
        for segment in bundle.segments:
            print(segment.translated)
        return
    for result in bundle.results:
        print(f"[{result.engine}] {result.latency * 1000:.0f}ms")
        if result.error is not None:
            print(f"  error ({result.error.kind.value}): {result.error}")
            continue
        for segment in result.segments:
            print(f"  {segment.translated}")


async def _translate(args: argparse.Namespace, settings: Settings, service: TranslationService) -> int:
    texts = args.texts or [line.rstrip("\n") for line in sys.stdin]
    mode = EngineSelectionMode(args.mode) if args.mode else settings.selection_mode
    engine = EngineIdentifier.parse(args.engine) if args.engine else settings.preferred_engine
    bundle = await service.translate(
        texts,
        args.target or settings.target_language,
        args.source or settings.source_language,
        mode=mode,
        preferred_engine=engine,
        fallback_enabled=settings.fallback_enabled,
        fallback_engine=settings.fallback_engine,
        parallel_engines=settings.parallel_engines,
        scene_bindings=settings.scene_bindings,
        compatible_configs=settings.compatible_engines,
    )
    _print_bundle(bundle)
    return 1 if bundle.all_failed else 0


async def _analyze(args: argparse.Namespace, registry: ProviderRegistry) -> int:
    try:
        image = Image.open(args.image)
        image.load()
    except (OSError, UnidentifiedImageError) as e:
        print(f"Error: Could not read image '{args.image}': {e}", file=sys.stderr)
        return 1

    with image:
        provider_type = VLMProviderType(args.provider) if args.provider else None
        analysis = await ScreenAnalyzer(registry).analyze(image, provider_type, args.min_confidence)

    if not args.translate:
        print(repair.segments_to_json(analysis))
        return 0

    bundle = await TranslationService(registry).translate_analysis(analysis, args.target)
    _print_bundle(bundle)
    return 1 if bundle.all_failed else 0


async def _engines(registry: ProviderRegistry) -> int:
    available = set(await registry.available_engines())
    for identifier in registry.candidate_engines():
        configured = await registry.is_engine_configured(identifier)
        status = "available" if identifier in available else ("configured" if configured else "-")
        print(f"  {str(identifier):<12} {status}")
    return 0


async def _run(args: argparse.Namespace) -> int:
    settings = Settings.load(args.config)
    registry = ProviderRegistry(settings, EnvSecretStore())

    if args.command == "translate":
        return await _translate(args, settings, TranslationService(registry))
    if args.command == "analyze":
        return await _analyze(args, registry)
    return await _engines(registry)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = _parse_arguments(argv)
    log.configure(debug=args.debug)

    try:
        return asyncio.run(_run(args))
    except AllEnginesFailedError as e:
        for error in e.errors:
            print(f"Error ({error.kind.value}): {error}", file=sys.stderr)
        return 1
    except ScreenTranslateError as e:
        print(f"Error ({e.kind.value}): {e}", file=sys.stderr)
        if e.recovery_suggestion:
            print(e.recovery_suggestion, file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
