"""PaddleOCR, either the local command-line tool or the hosted API.

Local mode runs the ``paddleocr`` CLI on a temporary PNG. PaddleOCR 3.x
prints its results as Python reprs ({'res': {...}}), which are converted
with pyliteral; older releases print one "text [[x,y],...] confidence"
line per detection, which is still accepted.

Fast mode returns word/line detections that are grouped into lines here.
Precise mode runs the document parser, whose blocks are used as-is.
"""

import asyncio
import functools
import os
import re
import shutil
from dataclasses import dataclass
from pathlib import Path

from ... import http, imaging, log, pyliteral
from ...asyncutils import race_with_timeout
from ...errors import VLMProviderError
from ...imaging import ImageInput
from ...models import BoundingBox, ImageSize, ProviderConfiguration, ScreenAnalysisResult, TextSegment, VLMProviderType
from ..base import VLMProvider

logger = log.get_logger()

MODE_FAST = "fast"
MODE_PRECISE = "precise"

LINE_OVERLAP_RATIO = 0.3

EXECUTABLE_CANDIDATES = (
    "~/.local/bin/paddleocr",
    "/usr/local/bin/paddleocr",
    "/opt/homebrew/bin/paddleocr",
)

INSTALL_HINT = "PaddleOCR is not installed. Install it using: pip install paddleocr paddlepaddle"

_RESULT_START = re.compile(r"\{\s*'res'\s*:")
_LEGACY_LINE = re.compile(r"^(.+?)\s+(\[\[.+?\]\])\s+(\d+(?:\.\d+)?)")
_POINT = re.compile(r"\[\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*\]")

_CJK_RANGES = (
    (0x4E00, 0x9FFF),
    (0x3400, 0x4DBF),
    (0x3040, 0x309F),
    (0x30A0, 0x30FF),
    (0xAC00, 0xD7AF),
)


@dataclass(frozen=True)
class Detection:
    """One OCR detection in pixel coordinates, top-left origin."""

    text: str
    x: float
    y: float
    width: float
    height: float
    confidence: float

    def to_segment(self, image_size: ImageSize) -> TextSegment:
        box = BoundingBox(self.x, self.y, self.width, self.height)
        return TextSegment(self.text, box.normalized(image_size), self.confidence)


def find_executable(configured: str | None = None) -> str | None:
    """Locate the paddleocr CLI.

    Args:
        configured: Explicit path from settings, tried first.

    Returns:
        The executable path, or None if not found.
    """
    if configured:
        path = Path(configured).expanduser()
        return str(path) if path.is_file() and os.access(path, os.X_OK) else None
    found = shutil.which("paddleocr")
    if found:
        return found
    for candidate in EXECUTABLE_CANDIDATES:
        path = Path(candidate).expanduser()
        if path.is_file() and os.access(path, os.X_OK):
            return str(path)
    return None


def is_cjk(char: str) -> bool:
    code = ord(char)
    return any(low <= code <= high for low, high in _CJK_RANGES)


def join_separator(first: str, second: str) -> str:
    """No space between two CJK characters, a single space otherwise."""
    if not first or not second:
        return " "
    return "" if is_cjk(first[-1]) and is_cjk(second[0]) else " "


def _reading_order(a: Detection, b: Detection) -> int:
    tolerance = min(a.height, b.height) * 0.5
    if abs(a.y - b.y) > tolerance:
        return -1 if a.y < b.y else 1
    if a.x == b.x:
        return 0
    return -1 if a.x < b.x else 1


def _merge(line: Detection, other: Detection) -> Detection:
    text = line.text + join_separator(line.text, other.text) + other.text
    x = min(line.x, other.x)
    y = min(line.y, other.y)
    max_x = max(line.x + line.width, other.x + other.width)
    max_y = max(line.y + line.height, other.y + other.height)
    total = len(line.text) + len(other.text)
    if total == 0:
        confidence = (line.confidence + other.confidence) / 2
    else:
        confidence = (len(line.text) * line.confidence + len(other.text) * other.confidence) / total
    return Detection(text, x, y, max_x - x, max_y - y, confidence)


def group_into_lines(detections: list[Detection]) -> list[Detection]:
    """Merge detections whose vertical extents overlap into lines.

    Two detections share a line when their vertical overlap exceeds 30% of
    the smaller height. Merged confidence is weighted by text length.
    """
    if not detections:
        return []
    ordered = sorted(detections, key=functools.cmp_to_key(_reading_order))

    lines = []
    current = ordered[0]
    for detection in ordered[1:]:
        overlap = max(
            0.0,
            min(current.y + current.height, detection.y + detection.height) - max(current.y, detection.y),
        )
        if overlap > min(current.height, detection.height) * LINE_OVERLAP_RATIO:
            current = _merge(current, detection)
        else:
            lines.append(current)
            current = detection
    lines.append(current)
    return lines


def _box_from_points(points) -> tuple[float, float, float, float] | None:
    try:
        xs = [float(p[0]) for p in points]
        ys = [float(p[1]) for p in points]
    except (TypeError, ValueError, IndexError):
        return None
    if not xs:
        return None
    return min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys)


def _box_from_corners(corners) -> tuple[float, float, float, float] | None:
    try:
        x1, y1, x2, y2 = (float(v) for v in corners[:4])
    except (TypeError, ValueError):
        return None
    return x1, y1, x2 - x1, y2 - y1


def detections_from_result(res: dict) -> list[Detection]:
    """Read detections out of one PaddleOCR result dict.

    Handles the OCR pipeline (rec_texts/rec_scores/rec_polys or rec_boxes)
    and the document parser (parsing_res_list blocks).
    """
    detections = []
    texts = res.get("rec_texts")
    if isinstance(texts, list):
        scores = res.get("rec_scores") or []
        polys = res.get("rec_polys") or []
        boxes = res.get("rec_boxes") or []
        for i, text in enumerate(texts):
            if not isinstance(text, str) or not text.strip():
                continue
            box = None
            if i < len(polys):
                box = _box_from_points(polys[i])
            if box is None and i < len(boxes):
                box = _box_from_corners(boxes[i])
            if box is None:
                continue
            score = scores[i] if i < len(scores) and isinstance(scores[i], (int, float)) else 1.0
            detections.append(Detection(text.strip(), *box, confidence=min(max(float(score), 0.0), 1.0)))
        return detections

    for block in res.get("parsing_res_list") or []:
        if not isinstance(block, dict):
            continue
        content = block.get("block_content")
        if not isinstance(content, str) or not content.strip():
            continue
        box = _box_from_corners(block.get("block_bbox") or [])
        if box is None:
            continue
        detections.append(Detection(content.strip(), *box, confidence=1.0))
    return detections


def parse_cli_output(output: str) -> list[Detection]:
    """Parse stdout of the paddleocr CLI (3.x repr blocks or legacy lines)."""
    detections = []
    for match in _RESULT_START.finditer(output):
        try:
            data = pyliteral.parse_python_literal(output[match.start():])
        except ValueError:
            logger.warning("unparseable paddleocr result block", offset=match.start())
            continue
        res = data.get("res") if isinstance(data, dict) else None
        if isinstance(res, dict):
            detections.extend(detections_from_result(res))
    if detections:
        return detections
    return parse_legacy_output(output)


def parse_legacy_output(output: str) -> list[Detection]:
    """Parse 'text [[x1,y1],...] confidence' lines; confidence is a percentage."""
    detections = []
    for line in output.splitlines():
        match = _LEGACY_LINE.match(line.strip())
        if not match:
            continue
        points = [(float(x), float(y)) for x, y in _POINT.findall(match.group(2))]
        if len(points) < 4:
            continue
        box = _box_from_points(points)
        confidence = float(match.group(3)) / 100.0
        detections.append(Detection(match.group(1).strip(), *box, confidence=min(max(confidence, 0.0), 1.0)))
    return detections


class PaddleOCRProvider(VLMProvider):
    """PaddleOCR engine.

    Configuration:
        base_url / api_key: Hosted API endpoint and token (cloud mode).
        use_cloud: Call the hosted API instead of the local CLI.
        extra["mode"]: "fast" (line grouping) or "precise" (document parser).
        extra["language"]: Recognition language passed to the CLI.
        extra["executable"]: Explicit path to the paddleocr CLI.
    """

    provider_type = VLMProviderType.PADDLEOCR

    def __init__(self, configuration: ProviderConfiguration):
        super().__init__(configuration)
        self.mode = configuration.extra.get("mode", MODE_FAST)
        self.language = configuration.extra.get("language", "ch")
        self.executable = configuration.extra.get("executable")

    async def is_available(self) -> bool:
        if self.configuration.use_cloud:
            return bool(self.configuration.base_url) and bool(self.configuration.api_key)
        return await asyncio.to_thread(find_executable, self.executable) is not None

    async def _analyze(self, image: ImageInput) -> ScreenAnalysisResult:
        size = imaging.image_size(image)
        if self.configuration.use_cloud:
            detections = await self._recognize_cloud(image)
        else:
            detections = await self._recognize_local(image)

        if self.mode == MODE_FAST:
            detections = group_into_lines(detections)
        logger.debug("paddleocr complete", mode=self.mode, segments=len(detections))
        return ScreenAnalysisResult(tuple(d.to_segment(size) for d in detections), size)

    def _arguments(self, image_path: Path) -> list[str]:
        if self.mode == MODE_PRECISE:
            return ["doc_parser", "-i", str(image_path)]
        return ["ocr", "-i", str(image_path), "--lang", self.language]

    async def _recognize_local(self, image: ImageInput) -> list[Detection]:
        executable = await asyncio.to_thread(find_executable, self.executable)
        if executable is None:
            raise VLMProviderError.invalid_configuration(INSTALL_HINT)

        image_path = await asyncio.to_thread(imaging.write_temp_png, image)
        try:
            output = await self._run(executable, self._arguments(image_path))
        finally:
            image_path.unlink(missing_ok=True)
        return parse_cli_output(output)

    async def _run(self, executable: str, arguments: list[str]) -> str:
        logger.debug("running paddleocr", args=arguments)
        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *arguments,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise VLMProviderError.invalid_configuration(f"Failed to start PaddleOCR: {e}") from e

        try:
            stdout, stderr = await race_with_timeout(process.communicate(), self.configuration.timeout)
        except TimeoutError as e:
            raise VLMProviderError.timed_out(self.configuration.timeout) from e
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()[-500:]
            raise VLMProviderError.invalid_response(f"PaddleOCR exited with {process.returncode}: {detail}")
        return stdout.decode("utf-8", errors="replace")

    async def _recognize_cloud(self, image: ImageInput) -> list[Detection]:
        if not self.configuration.base_url:
            raise VLMProviderError.invalid_configuration("PaddleOCR cloud URL not configured")
        if not self.configuration.api_key:
            raise VLMProviderError.invalid_configuration("PaddleOCR cloud token not configured")

        body = {"file": imaging.encode_base64_png(image), "fileType": 1}
        headers = {"Content-Type": "application/json", "Authorization": f"token {self.configuration.api_key}"}
        try:
            response = await http.request(
                "POST",
                f"{self.configuration.base_url.rstrip('/')}/ocr",
                headers=headers,
                json_body=body,
                timeout=self.configuration.timeout,
            )
        except http.TransportError as e:
            raise http.vlm_error_for_transport(e, self.configuration.timeout) from e
        if not response.ok:
            raise http.vlm_error_for_status(response, "paddleocr")

        try:
            results = response.json()["result"]["ocrResults"]
        except (ValueError, KeyError, TypeError) as e:
            raise VLMProviderError.invalid_response("Unexpected PaddleOCR cloud response") from e

        detections = []
        for item in results or []:
            pruned = item.get("prunedResult") if isinstance(item, dict) else None
            if isinstance(pruned, dict):
                detections.extend(detections_from_result(pruned))
        return detections
