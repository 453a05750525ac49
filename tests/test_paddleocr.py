"""Tests for the PaddleOCR provider and its output parsing."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from screentranslate.backends.ocr import PaddleOCRProvider
from screentranslate.backends.ocr.paddleocr_backend import (
    INSTALL_HINT,
    Detection,
    find_executable,
    group_into_lines,
    join_separator,
    parse_cli_output,
)
from screentranslate.errors import ErrorKind, VLMProviderError
from screentranslate.models import ProviderConfiguration

from conftest import make_response

V3_OUTPUT = """\
[2025/06/01 10:00:00] paddleocr INFO: Creating model: ('PP-OCRv5_server_det', None)
{'res': {'input_path': '/tmp/screen.png', 'page_index': None, 'model_settings': {'use_doc_preprocessor': True, \
'use_textline_orientation': False}, 'dt_polys': [array([[10, 10],
       [60, 10],
       [60, 30],
       [10, 30]], dtype=int16)], 'text_det_params': {'limit_side_len': 64, 'thresh': 0.3}, \
'rec_texts': ['Hello', 'World'], 'rec_scores': [0.98, 0.9], 'rec_polys': [array([[10, 10],
       [60, 10],
       [60, 30],
       [10, 30]], dtype=int16), array([[ 70,  12],
       [120,  12],
       [120,  30],
       [ 70,  30]], dtype=int16)], 'rec_boxes': array([[ 10,  10,  60,  30],
       [ 70,  12, 120,  30]], dtype=int16)}}
"""

LEGACY_OUTPUT = """\
ppocr INFO: **********/tmp/screen.png**********
Hello [[10.0, 10.0], [60.0, 10.0], [60.0, 30.0], [10.0, 30.0]] 98.5
ppocr INFO: done
"""


def _process(returncode=0, stdout=b"", stderr=b""):
    process = MagicMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    process.wait = AsyncMock(return_value=returncode)
    return process


class TestParseCliOutput:
    """Tests for reading the CLI's stdout."""

    def test_v3_repr_output(self):
        detections = parse_cli_output(V3_OUTPUT)

        assert [d.text for d in detections] == ["Hello", "World"]
        assert (detections[0].x, detections[0].y, detections[0].width, detections[0].height) == (10, 10, 50, 20)
        assert detections[0].confidence == pytest.approx(0.98)
        assert (detections[1].x, detections[1].width) == (70, 50)

    def test_document_parser_blocks(self):
        output = (
            "{'res': {'input_path': 'x.png', 'parsing_res_list': [{'block_label': 'text', "
            "'block_content': 'Paragraph one', 'block_bbox': [10, 20, 110, 40]}, "
            "{'block_label': 'image', 'block_content': '', 'block_bbox': [0, 0, 5, 5]}]}}"
        )

        detections = parse_cli_output(output)

        assert [d.text for d in detections] == ["Paragraph one"]
        assert (detections[0].x, detections[0].y, detections[0].width, detections[0].height) == (10, 20, 100, 20)

    def test_legacy_lines(self):
        detections = parse_cli_output(LEGACY_OUTPUT)

        assert len(detections) == 1
        assert detections[0].text == "Hello"
        assert detections[0].confidence == pytest.approx(0.985)

    def test_no_results(self):
        assert parse_cli_output("ppocr INFO: nothing found\n") == []


class TestLineGrouping:
    """Tests for merging word detections into lines."""

    def test_latin_words_joined_with_space(self):
        detections = [
            Detection("World", 70, 12, 50, 18, 0.8),
            Detection("Hello", 10, 10, 50, 20, 1.0),
        ]

        lines = group_into_lines(detections)

        assert len(lines) == 1
        assert lines[0].text == "Hello World"
        assert (lines[0].x, lines[0].y, lines[0].width, lines[0].height) == (10, 10, 110, 20)
        assert lines[0].confidence == pytest.approx(0.9)

    def test_cjk_joined_without_space(self):
        detections = [Detection("你好", 10, 10, 40, 20, 0.9), Detection("世界", 55, 12, 40, 20, 0.9)]

        assert [line.text for line in group_into_lines(detections)] == ["你好世界"]

    def test_separate_rows_stay_separate(self):
        detections = [
            Detection("Title", 10, 10, 80, 20, 0.9),
            Detection("Body", 10, 60, 80, 20, 0.9),
        ]

        assert [line.text for line in group_into_lines(detections)] == ["Title", "Body"]

    def test_join_separator(self):
        assert join_separator("日本", "語") == ""
        assert join_separator("日本", "ok") == " "
        assert join_separator("a", "b") == " "


class TestFindExecutable:
    """Tests for locating the CLI."""

    def test_configured_executable(self, tmp_path):
        executable = tmp_path / "paddleocr"
        executable.write_text("#!/bin/sh\n")
        executable.chmod(0o755)

        assert find_executable(str(executable)) == str(executable)

    def test_configured_path_not_executable(self, tmp_path):
        script = tmp_path / "paddleocr"
        script.write_text("")
        script.chmod(0o644)

        assert find_executable(str(script)) is None


class TestLocalProvider:
    """Tests for running the CLI as a subprocess."""

    def _provider(self, **extra):
        return PaddleOCRProvider(ProviderConfiguration(timeout=5.0, extra=extra))

    def test_fast_mode_groups_lines(self, image):
        process = _process(stdout=V3_OUTPUT.encode("utf-8"))
        spawn = AsyncMock(return_value=process)

        with patch("screentranslate.backends.ocr.paddleocr_backend.find_executable", return_value="/bin/paddleocr"):
            with patch("asyncio.create_subprocess_exec", spawn):
                result = asyncio.run(self._provider(language="en").analyze(image))

        assert [s.text for s in result.segments] == ["Hello World"]
        assert all(s.bounding_box.is_normalized for s in result.segments)
        args = spawn.call_args.args
        assert args[:3] == ("/bin/paddleocr", "ocr", "-i")
        assert args[-2:] == ("--lang", "en")
        assert not Path(args[3]).exists()

    def test_precise_mode_uses_document_parser(self, image):
        spawn = AsyncMock(return_value=_process(stdout=V3_OUTPUT.encode("utf-8")))

        with patch("screentranslate.backends.ocr.paddleocr_backend.find_executable", return_value="/bin/paddleocr"):
            with patch("asyncio.create_subprocess_exec", spawn):
                result = asyncio.run(self._provider(mode="precise").analyze(image))

        assert spawn.call_args.args[1] == "doc_parser"
        assert [s.text for s in result.segments] == ["Hello", "World"]

    def test_missing_executable(self, image):
        with patch("screentranslate.backends.ocr.paddleocr_backend.find_executable", return_value=None):
            provider = self._provider()
            assert not asyncio.run(provider.is_available())
            with pytest.raises(VLMProviderError) as excinfo:
                asyncio.run(provider.analyze(image))

        assert excinfo.value.kind is ErrorKind.INVALID_CONFIGURATION
        assert excinfo.value.message == INSTALL_HINT

    def test_non_zero_exit(self, image):
        spawn = AsyncMock(return_value=_process(returncode=1, stderr=b"Traceback...\nRuntimeError: boom"))

        with patch("screentranslate.backends.ocr.paddleocr_backend.find_executable", return_value="/bin/paddleocr"):
            with patch("asyncio.create_subprocess_exec", spawn):
                with pytest.raises(VLMProviderError) as excinfo:
                    asyncio.run(self._provider().analyze(image))

        assert excinfo.value.kind is ErrorKind.INVALID_RESPONSE
        assert "boom" in excinfo.value.message

    def test_timeout_kills_process(self, image):
        """A hung CLI is killed and reaped."""
        process = _process(returncode=None)

        async def hang():
            await asyncio.sleep(10)

        process.communicate = hang
        provider = PaddleOCRProvider(ProviderConfiguration(timeout=0.05))

        with patch("screentranslate.backends.ocr.paddleocr_backend.find_executable", return_value="/bin/paddleocr"):
            with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
                with pytest.raises(VLMProviderError) as excinfo:
                    asyncio.run(provider.analyze(image))

        assert excinfo.value.kind is ErrorKind.NETWORK_ERROR
        process.kill.assert_called_once()
        process.wait.assert_awaited_once()

    def test_cancellation_kills_process(self, image):
        """Cancelling the analysis kills and reaps the CLI."""
        process = _process(returncode=None)

        async def hang():
            await asyncio.sleep(10)

        process.communicate = hang
        spawn = AsyncMock(return_value=process)
        provider = self._provider()

        async def run():
            task = asyncio.create_task(provider.analyze(image))
            while not spawn.await_count:
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        with patch("screentranslate.backends.ocr.paddleocr_backend.find_executable", return_value="/bin/paddleocr"):
            with patch("asyncio.create_subprocess_exec", spawn):
                asyncio.run(run())

        process.kill.assert_called_once()
        process.wait.assert_awaited_once()


class TestCloudProvider:
    """Tests for the hosted PaddleOCR API."""

    def test_cloud_request(self, image):
        body = {
            "result": {
                "ocrResults": [
                    {"prunedResult": {"rec_texts": ["Cloud"], "rec_scores": [0.9], "rec_boxes": [[20, 10, 120, 40]]}}
                ]
            }
        }
        mock = AsyncMock(return_value=make_response(200, body))
        provider = PaddleOCRProvider(
            ProviderConfiguration(api_key="tok", base_url="https://paddle.example/", use_cloud=True)
        )

        with patch("screentranslate.http.request", mock):
            assert asyncio.run(provider.is_available())
            result = asyncio.run(provider.analyze(image))

        assert mock.call_args.args[1] == "https://paddle.example/ocr"
        assert mock.call_args.kwargs["headers"]["Authorization"] == "token tok"
        assert mock.call_args.kwargs["json_body"]["fileType"] == 1
        segment = result.segments[0]
        assert segment.text == "Cloud"
        box = segment.bounding_box
        assert (box.x, box.y, box.width, box.height) == pytest.approx((0.1, 0.1, 0.5, 0.3))

    def test_cloud_without_token(self, image):
        provider = PaddleOCRProvider(ProviderConfiguration(base_url="https://paddle.example", use_cloud=True))

        assert not asyncio.run(provider.is_available())
        with pytest.raises(VLMProviderError) as excinfo:
            asyncio.run(provider.analyze(image))
        assert excinfo.value.kind is ErrorKind.INVALID_CONFIGURATION

    def test_unexpected_cloud_body(self, image):
        mock = AsyncMock(return_value=make_response(200, {"errorCode": 0}))
        provider = PaddleOCRProvider(
            ProviderConfiguration(api_key="tok", base_url="https://paddle.example", use_cloud=True)
        )

        with patch("screentranslate.http.request", mock):
            with pytest.raises(VLMProviderError) as excinfo:
                asyncio.run(provider.analyze(image))

        assert excinfo.value.kind is ErrorKind.INVALID_RESPONSE
