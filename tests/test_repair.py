"""Tests for recovering segments from model output."""

import json

import pytest

from screentranslate import repair
from screentranslate.errors import ErrorKind, VLMProviderError
from screentranslate.models import BoundingBox, ImageSize, ScreenAnalysisResult, TextSegment

SIZE = ImageSize(200, 100)

SEGMENT_A = '{"text":"A","boundingBox":{"x":0.1,"y":0.1,"width":0.2,"height":0.1},"confidence":0.9}'
SEGMENT_B = '{"text":"B","boundingBox":{"x":0.5,"y":0.6,"width":0.3,"height":0.1},"confidence":0.8}'


class TestParseSegments:
    """Tests for parse_segments on well-formed and noisy output."""

    def test_plain_json(self):
        segments = repair.parse_segments('{"segments":[%s,%s]}' % (SEGMENT_A, SEGMENT_B), SIZE)

        assert [s.text for s in segments] == ["A", "B"]
        assert segments[0].confidence == pytest.approx(0.9)

    def test_markdown_fences_stripped(self):
        content = "```json\n{\"segments\":[%s]}\n```" % SEGMENT_A

        assert [s.text for s in repair.parse_segments(content, SIZE)] == ["A"]

    def test_backticks_inside_fenced_text(self):
        """Fences quoted inside a segment do not end the fenced block."""
        segment = '{"text":"use ```code```","boundingBox":{"x":0.1,"y":0.1,"width":0.2,"height":0.1}}'
        content = "```json\n{\"segments\":[%s]}\n```" % segment

        assert [s.text for s in repair.parse_segments(content, SIZE)] == ["use ```code```"]

    def test_fenced_json_after_commentary(self):
        content = "Sure:\n```json\n{\"segments\":[%s]}\n```" % SEGMENT_B

        assert [s.text for s in repair.parse_segments(content, SIZE)] == ["B"]

    def test_commentary_around_json(self):
        """Text before the first brace and after the last one is ignored."""
        content = 'Here are the segments: {"segments":[%s]} Let me know if you need more.' % SEGMENT_A

        assert [s.text for s in repair.parse_segments(content, SIZE)] == ["A"]

    def test_bare_list_accepted(self):
        assert [s.text for s in repair.parse_segments("[%s]" % SEGMENT_B, SIZE)] == ["B"]

    def test_pixel_boxes_normalized(self):
        content = '{"segments":[{"text":"P","boundingBox":{"x":20,"y":10,"width":100,"height":50}}]}'

        box = repair.parse_segments(content, SIZE)[0].bounding_box

        assert (box.x, box.y, box.width, box.height) == pytest.approx((0.1, 0.1, 0.5, 0.5))

    def test_malformed_items_skipped(self):
        """Items without text or a usable box are dropped, the rest kept."""
        content = json.dumps(
            {
                "segments": [
                    {"text": "", "boundingBox": {"x": 0, "y": 0, "width": 0.1, "height": 0.1}},
                    {"text": "no box"},
                    {"text": "ok", "bbox": [0.1, 0.2, 0.3, 0.1], "confidence": 7},
                ]
            }
        )

        segments = repair.parse_segments(content, SIZE)

        assert [s.text for s in segments] == ["ok"]
        assert segments[0].confidence == 1.0

    def test_garbage_without_truncation_raises(self):
        with pytest.raises(VLMProviderError) as excinfo:
            repair.parse_segments("I could not find any text in this image.", SIZE)

        assert excinfo.value.kind is ErrorKind.PARSING_FAILED

    def test_empty_segments_list_is_valid(self):
        assert repair.parse_segments('{"segments": []}', SIZE) == []

    def test_boxes_always_inside_unit_square(self):
        content = json.dumps(
            {
                "segments": [
                    {"text": "edge", "boundingBox": {"x": 0.9, "y": 0.95, "width": 0.4, "height": 0.2}},
                    {"text": "px", "boundingBox": {"x": 180, "y": 90, "width": 60, "height": 30}},
                ]
            }
        )

        for segment in repair.parse_segments(content, SIZE):
            box = segment.bounding_box
            assert 0.0 <= box.x <= 1.0
            assert 0.0 <= box.y <= 1.0
            assert box.max_x <= 1.0 + 1e-6
            assert box.max_y <= 1.0 + 1e-6


class TestTruncationRepair:
    """Tests for output cut off at the model's length limit."""

    def test_cut_inside_string_keeps_complete_segments(self):
        """Missing ']}' and an open string still yield the complete segment."""
        content = '{"segments":[%s,{"text":"B","bound' % SEGMENT_A

        segments = repair.parse_segments(content, SIZE, truncated=True)

        assert [s.text for s in segments] == ["A"]

    def test_cut_after_complete_segment(self):
        content = '{"segments":[%s,%s,' % (SEGMENT_A, SEGMENT_B)

        segments = repair.parse_segments(content, SIZE, truncated=True)

        assert [s.text for s in segments] == ["A", "B"]

    def test_truncated_fenced_output(self):
        content = "```json\n{\"segments\":[%s,{\"text\":\"Bro" % SEGMENT_A

        assert [s.text for s in repair.parse_segments(content, SIZE, truncated=True)] == ["A"]

    def test_truncated_before_first_segment_raises(self):
        with pytest.raises(VLMProviderError) as excinfo:
            repair.parse_segments('{"segments":[{"text":"A","boundingBox":{"x":0.1', SIZE, truncated=True)

        assert excinfo.value.kind is ErrorKind.PARSING_FAILED

    def test_close_truncated_json(self):
        assert json.loads(repair.close_truncated_json('{"a":[1,2,{"b":"c')) == {"a": [1, 2, {"b": "c"}]}
        assert json.loads(repair.close_truncated_json('{"a":')) == {"a": None}
        assert json.loads(repair.close_truncated_json('[1,2,')) == [1, 2]

    def test_brackets_inside_strings_ignored(self):
        repaired = repair.close_truncated_json('{"text":"[not {a bracket"')

        assert json.loads(repaired) == {"text": "[not {a bracket"}


class TestRoundTrip:
    """Serialized results parse back to the same result."""

    def test_own_output_parses_identically(self):
        result = ScreenAnalysisResult(
            (
                TextSegment("Hello", BoundingBox(0.1, 0.2, 0.3, 0.05), 0.95),
                TextSegment("世界", BoundingBox(0.5, 0.5, 0.25, 0.125), 0.5),
            ),
            SIZE,
        )

        parsed = repair.parse_segments(repair.segments_to_json(result), SIZE)

        assert ScreenAnalysisResult(tuple(parsed), SIZE) == result


class TestHelpers:
    """Tests for merging and string extraction."""

    def test_merge_segments_drops_duplicates(self):
        a = TextSegment("A", BoundingBox(0.1, 0.1, 0.2, 0.1))
        a_again = TextSegment("A", BoundingBox(0.1, 0.1, 0.2, 0.1))
        b = TextSegment("B", BoundingBox(0.5, 0.5, 0.2, 0.1))

        merged = repair.merge_segments([a], [a_again, b])

        assert [s.text for s in merged] == ["A", "B"]

    def test_extract_string_field_from_cut_envelope(self):
        raw = '{"choices":[{"message":{"role":"assistant","content":"{\\"segments\\": []}"'

        assert repair.extract_string_field(raw, "content") == '{"segments": []}'

    def test_extract_string_field_from_cut_content(self):
        raw = '{"choices":[{"message":{"content":"{\\"segments\\": [{\\"te'

        assert repair.extract_string_field(raw, "content") == '{"segments": [{"te'

    def test_extract_string_field_missing(self):
        assert repair.extract_string_field('{"other": 1}', "content") is None
