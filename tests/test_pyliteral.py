"""Tests for Python-literal to JSON conversion."""

import json

import pytest

from screentranslate.pyliteral import parse_python_literal, python_literal_to_json


class TestPythonLiteralToJson:
    """Tests for the repr-to-JSON rewrite."""

    def test_keywords_and_quotes(self):
        text = "{'a': None, 'b': True, 'c': False, 'd': \"it's\"}"

        assert json.loads(python_literal_to_json(text)) == {"a": None, "b": True, "c": False, "d": "it's"}

    def test_tuples_become_lists(self):
        assert json.loads(python_literal_to_json("{'p': (1, 2), 'q': ()}")) == {"p": [1, 2], "q": []}

    def test_numpy_array_unwrapped(self):
        text = "{'scores': array([0.5, 0.25], dtype=float32), 'boxes': array([[1, 2, 3, 4]], dtype=int16)}"

        assert json.loads(python_literal_to_json(text)) == {"scores": [0.5, 0.25], "boxes": [[1, 2, 3, 4]]}

    def test_nested_arrays_in_list(self):
        text = "{'rec_polys': [array([[ 3, 10],\n       [50, 10]], dtype=int16)]}"

        assert json.loads(python_literal_to_json(text)) == {"rec_polys": [[[3, 10], [50, 10]]]}

    def test_ellipsis_dropped(self):
        assert json.loads(python_literal_to_json("array([1, 2, ..., 9])")) == [1, 2, 9]

    def test_nan_and_inf_become_null(self):
        assert json.loads(python_literal_to_json("[nan, inf, -inf, 1.]")) == [None, None, None, 1.0]

    def test_numeric_keys_quoted(self):
        assert json.loads(python_literal_to_json("{0: 'x', 1: 'y'}")) == {"0": "x", "1": "y"}

    def test_object_repr_becomes_string(self):
        text = "{'img': <PIL.Image.Image image mode=RGB size=10x10>, 'n': 1}"

        data = json.loads(python_literal_to_json(text))

        assert data["n"] == 1
        assert data["img"].startswith("PIL.Image.Image")

    def test_scalar_wrappers_unwrapped(self):
        assert json.loads(python_literal_to_json("{'s': np.float32(0.75)}")) == {"s": 0.75}

    def test_trailing_commas_removed(self):
        assert json.loads(python_literal_to_json("{'a': [1, 2,], 'b': (3,),}")) == {"a": [1, 2], "b": [3]}


class TestTruncatedLiterals:
    """Output cut off mid-structure is closed."""

    def test_cut_inside_string(self):
        text = "{'rec_texts': ['Hello', 'Wor"

        assert json.loads(python_literal_to_json(text)) == {"rec_texts": ["Hello", "Wor"]}

    def test_cut_after_key(self):
        assert json.loads(python_literal_to_json("{'a': 1, 'b")) == {"a": 1, "b": None}

    def test_cut_after_colon(self):
        assert json.loads(python_literal_to_json("{'a': 1, 'b':")) == {"a": 1, "b": None}

    def test_cut_inside_numeric_array(self):
        text = "{'scores': array([0.9, 0.8"

        assert json.loads(python_literal_to_json(text)) == {"scores": [0.9, 0.8]}


class TestParsePythonLiteral:
    """Tests for parse_python_literal."""

    def test_trailing_output_ignored(self):
        text = "{'res': {'rec_texts': ['a']}}\n[INFO] done in 1.2s"

        assert parse_python_literal(text) == {"res": {"rec_texts": ["a"]}}

    def test_unparseable_raises_value_error(self):
        with pytest.raises(ValueError):
            parse_python_literal("")
