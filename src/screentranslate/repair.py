"""Recovery of structured segment data from free-form model output.

Vision models are asked for bare JSON but routinely wrap it in markdown,
add commentary, or stop mid-generation when they hit a token limit. The
functions here turn such text into TextSegments, repairing truncated output
on a best-effort basis: a cut inside a string can yield a shortened last
segment, and fewer segments than the image holds is an accepted outcome.
"""

import json
import re

from . import log
from .errors import VLMProviderError
from .models import BoundingBox, ImageSize, ScreenAnalysisResult, TextSegment

logger = log.get_logger()

_OPENING_FENCE = re.compile(r"```[A-Za-z]*[ \t]*\n?")
_CLOSING_FENCE = re.compile(r"\n?[ \t]*```$")

# Upper bound on '}' cut points tried by the salvage pass.
MAX_SALVAGE_ATTEMPTS = 200


def strip_code_fences(text: str) -> str:
    """Remove a leading markdown fence and a closing fence at the very end.

    Backticks inside the body are left alone, so segment text quoting code
    survives. An opening fence without a closing one (truncated output)
    keeps everything after the fence.
    """
    text = text.strip()
    match = _OPENING_FENCE.match(text)
    if match:
        text = text[match.end():]
    return _CLOSING_FENCE.sub("", text).strip()


def _loads(text: str | None):
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def extract_json_candidate(text: str) -> str | None:
    """Substring from the first '{' (or '[') to the last matching closer."""
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)
    closer = "}" if text[start] == "{" else "]"
    end = text.rfind(closer)
    if end <= start:
        return None
    return text[start:end + 1]


def close_truncated_json(text: str) -> str:
    """Close an unterminated string, then unmatched '[' and '{' in order.

    Brackets inside strings are ignored. A dangling ',' is dropped and a
    dangling ':' gets a null value so the result can parse.
    """
    stack = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]" and stack:
            stack.pop()

    repaired = text
    if in_string:
        if escaped:
            repaired = repaired[:-1]
        repaired += '"'
    repaired = repaired.rstrip()
    if repaired.endswith(","):
        repaired = repaired[:-1]
    elif repaired.endswith(":"):
        repaired += " null"

    closers = {"{": "}", "[": "]"}
    return repaired + "".join(closers[ch] for ch in reversed(stack))


def _segment_items(data) -> list | None:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        segments = data.get("segments")
        if isinstance(segments, list):
            return segments
    return None


def salvage_partial(text: str):
    """Cut at successive '}' from the end and keep the first prefix that parses with segments."""
    positions = [i for i, ch in enumerate(text) if ch == "}"]
    for pos in reversed(positions[-MAX_SALVAGE_ATTEMPTS:]):
        data = _loads(close_truncated_json(text[:pos + 1]))
        items = _segment_items(data)
        if items and decode_segments(data):
            return data
    return None


def _number(value) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _parse_box(raw) -> BoundingBox | None:
    if isinstance(raw, dict):
        values = [_number(raw.get(k)) for k in ("x", "y", "width", "height")]
    elif isinstance(raw, (list, tuple)) and len(raw) == 4:
        values = [_number(v) for v in raw]
    else:
        return None
    if any(v is None for v in values):
        return None
    return BoundingBox(*values)


def decode_segments(data, image_size: ImageSize | None = None) -> list[TextSegment]:
    """Turn parsed JSON into TextSegments, skipping malformed entries.

    Boxes are normalized against image_size when they look like pixels and
    always clamped into the unit square.
    """
    segments = []
    for item in _segment_items(data) or []:
        if not isinstance(item, dict):
            continue
        text = item.get("text")
        if not isinstance(text, str) or not text.strip():
            continue
        box = _parse_box(item.get("boundingBox", item.get("bounding_box", item.get("bbox"))))
        if box is None:
            continue
        confidence = _number(item.get("confidence"))
        confidence = 1.0 if confidence is None else min(max(confidence, 0.0), 1.0)
        segments.append(TextSegment(text, box.normalized(image_size), confidence))
    return segments


def parse_segments(content: str, image_size: ImageSize | None = None, truncated: bool = False) -> list[TextSegment]:
    """Parse model output into segments.

    Args:
        content: Raw text returned by the model.
        image_size: Pixel size of the analyzed image.
        truncated: The model reported stopping on its length limit.

    Raises:
        VLMProviderError: parsing_failed when nothing usable can be recovered.
    """
    cleaned = strip_code_fences(content)
    data = _loads(cleaned)
    if _segment_items(data) is None:
        data = _loads(extract_json_candidate(cleaned))

    if _segment_items(data) is not None:
        segments = decode_segments(data, image_size)
        if segments or not truncated:
            return segments

    if not truncated:
        raise VLMProviderError.parsing_failed("Response did not contain a segments list")

    starts = [i for i in (cleaned.find("{"), cleaned.find("[")) if i != -1]
    body = cleaned[min(starts):] if starts else cleaned
    data = _loads(close_truncated_json(body))
    segments = decode_segments(data, image_size)
    if not segments:
        data = salvage_partial(body)
        segments = decode_segments(data, image_size)
    if not segments:
        raise VLMProviderError.parsing_failed("Truncated response contained no complete segment")

    logger.warning("repaired truncated response", segments=len(segments))
    return segments


def merge_segments(existing: list[TextSegment], incoming: list[TextSegment]) -> list[TextSegment]:
    """Append continuation segments, dropping ones already returned."""
    seen = {_segment_key(s) for s in existing}
    merged = list(existing)
    for segment in incoming:
        key = _segment_key(segment)
        if key in seen:
            continue
        seen.add(key)
        merged.append(segment)
    return merged


def _segment_key(segment: TextSegment) -> tuple:
    box = segment.bounding_box
    return (segment.text, round(box.x, 3), round(box.y, 3), round(box.width, 3), round(box.height, 3))


def extract_string_field(raw: str, key: str) -> str | None:
    """Pull a JSON string value out of a broken JSON document.

    Used when a response envelope fails to parse but the model text inside
    it is intact up to the cut.
    """
    match = re.search(r'"%s"\s*:\s*"((?:[^"\\]|\\.)*)' % re.escape(key), raw, re.DOTALL)
    if not match:
        return None
    body = match.group(1)
    try:
        return json.loads(f'"{body}"', strict=False)
    except ValueError:
        pass
    # a cut inside a \uXXXX escape
    body = re.sub(r"\\u[0-9a-fA-F]{0,3}$", "", body)
    try:
        return json.loads(f'"{body}"', strict=False)
    except ValueError:
        return None


def segments_to_json(result: ScreenAnalysisResult) -> str:
    """Serialize an analysis result in the same shape vision models return."""
    payload = {
        "segments": [
            {
                "text": s.text,
                "boundingBox": {
                    "x": s.bounding_box.x,
                    "y": s.bounding_box.y,
                    "width": s.bounding_box.width,
                    "height": s.bounding_box.height,
                },
                "confidence": s.confidence,
            }
            for s in result.segments
        ]
    }
    return json.dumps(payload, ensure_ascii=False)
