"""Conversion of Python repr output to JSON text.

Command-line OCR tools print their results with print(dict), which yields
Python literals rather than JSON: single-quoted strings, None/True/False,
tuples, numpy array(...) wrappers with dtype=/shape= arguments, '...'
elision inside large arrays, and output cut off mid-structure. This module
rewrites such text into JSON with a single left-to-right scan.
"""

import ast
import json
import re

_IDENTIFIER = re.compile(r"[A-Za-z_][\w.]*")
_NUMBER = re.compile(r"-?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_KWARG = re.compile(r",\s*(?:dtype|shape)=(?:\([^)]*\)|'[^']*'|\"[^\"]*\"|[\w.<>]+)")
_ELLIPSIS = re.compile(r"\.\.\.\s*,?")

_KEYWORDS = {
    "None": "null",
    "True": "true",
    "False": "false",
    "nan": "null",
    "inf": "null",
    "NaN": "null",
    "Infinity": "null",
}

_STRING_PREFIXES = {"b", "u", "r", "br", "rb"}


def _read_string(text: str, start: int) -> tuple[str, int]:
    """Read a quoted Python string at start; return (JSON string, end index).

    An unterminated string runs to the end of the text and is closed.
    """
    quote = text[start]
    i = start + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            break
        i += 1
    body = text[start + 1:min(i, n)]
    if body.endswith("\\") and (len(body) - len(body.rstrip("\\"))) % 2:
        body = body[:-1]
    try:
        value = ast.literal_eval(quote + body + quote)
    except (SyntaxError, ValueError):
        value = body.replace("\\" + quote, quote)
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    return json.dumps(value, ensure_ascii=False), min(i + 1, n)


def _normalize_number(token: str) -> str:
    sign = ""
    if token.startswith("-"):
        sign, token = "-", token[1:]
    mantissa, exp_marker, exponent = token.partition("e") if "e" in token else token.partition("E")
    if mantissa.startswith("."):
        mantissa = "0" + mantissa
    if mantissa.endswith("."):
        mantissa += "0"
    if len(mantissa) > 1 and mantissa.startswith("0") and mantissa[1].isdigit():
        mantissa = mantissa.lstrip("0") or "0"
        if mantissa.startswith("."):
            mantissa = "0" + mantissa
    return sign + mantissa + (exp_marker + exponent if exp_marker else "")


def _drop_trailing_separator(out: list[str]) -> None:
    while out and (not out[-1].strip() or out[-1] in (",", "-")):
        out.pop()


def _ends_with_bare_key(out: list[str]) -> bool:
    tokens = [t for t in out if t.strip()]
    return len(tokens) >= 2 and tokens[-1].startswith("\"") and tokens[-2] in ("{", ",")


def python_literal_to_json(text: str) -> str:
    """Rewrite Python-literal text as JSON text.

    Strings are re-quoted, None/True/False become null/true/false, nan and
    inf become null, tuples become lists, call wrappers such as array(...)
    or np.float32(...) are unwrapped, dtype=/shape= arguments and '...'
    elisions are dropped, and structures left open by truncation are closed.
    """
    out: list[str] = []
    # closer to emit for each open bracket; "" for an unwrapped call
    stack: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]

        if ch in "'\"":
            token, i = _read_string(text, i)
            out.append(token)
            continue

        if ch == ",":
            match = _KWARG.match(text, i)
            if match:
                i = match.end()
                continue
            out.append(ch)
            i += 1
            continue

        if text.startswith("...", i):
            i = _ELLIPSIS.match(text, i).end()
            continue

        if ch == "-" and text.startswith("inf", i + 1):
            out.append("null")
            i += 4
            continue

        if ch.isdigit() or (ch in "-." and i + 1 < n and (text[i + 1].isdigit() or text[i + 1] == ".")):
            match = _NUMBER.match(text, i)
            if match:
                token = _normalize_number(match.group())
                i = match.end()
                rest = text[i:].lstrip()
                if stack and stack[-1] == "}" and rest.startswith(":"):
                    token = json.dumps(token)
                out.append(token)
                continue

        if ch.isalpha() or ch == "_":
            match = _IDENTIFIER.match(text, i)
            word = match.group()
            i = match.end()
            if i < n and text[i] == "(":
                stack.append("")
                i += 1
            elif word in _STRING_PREFIXES and i < n and text[i] in "'\"":
                pass
            else:
                out.append(_KEYWORDS.get(word) or json.dumps(word))
            continue

        if ch == "<":
            end = text.find(">", i)
            newline = text.find("\n", i)
            if end != -1 and (newline == -1 or end < newline):
                out.append(json.dumps(text[i + 1:end]))
                i = end + 1
                continue

        if ch in "([{":
            closer = "}" if ch == "{" else "]"
            stack.append(closer)
            out.append("{" if ch == "{" else "[")
            i += 1
            continue

        if ch in ")]}":
            if stack:
                closer = stack.pop()
                if closer:
                    _drop_trailing_separator(out)
                    out.append(closer)
            i += 1
            continue

        out.append(ch)
        i += 1

    if stack:
        _drop_trailing_separator(out)
        if out and out[-1] == ":":
            out.append("null")
        elif stack[-1] == "}" and _ends_with_bare_key(out):
            out.append(": null")
        out.extend(closer for closer in reversed(stack) if closer)
    return "".join(out)


def parse_python_literal(text: str):
    """Parse the first Python-literal value in text, ignoring trailing output.

    Raises:
        ValueError: If no value can be decoded.
    """
    converted = python_literal_to_json(text.strip())
    value, _ = json.JSONDecoder().raw_decode(converted)
    return value
