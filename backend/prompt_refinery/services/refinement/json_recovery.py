"""
Recovery of a JSON object from free-form model output.

Models wrap JSON in prose or code fences and often emit raw newlines
inside string values. Recovery is deterministic:

1. If a line opens a fenced code block holding an object, scan
   only that fence's inner text, wherever the fence sits in the prose.
   The end of the object is found by the brace scan rather than by the
   closing fence, so fences quoted inside string values cannot cut the
   object short.
2. Start at the first ``{``.
3. Walk forward tracking string state (unescaped ``"`` toggles it; a
   backslash consumes the next character) and brace depth (outside
   strings only). The object ends where depth returns to zero.
4. Inside string values only, replace literal newline, carriage return,
   tab, backspace and form feed with their escape sequences.
5. Parse strictly.
"""
import json
import re
from typing import Any, Dict

# Markdown fences open at the start of a line
FENCE_OPENER = re.compile(r"^[ \t]*```(?:json|JSON)?", re.MULTILINE)

CONTROL_ESCAPES = {
    '\n': '\\n',
    '\r': '\\r',
    '\t': '\\t',
    '\b': '\\b',
    '\f': '\\f',
}


class JSONRecoveryError(ValueError):
    """Raised when no JSON object can be recovered from the text."""


def strip_code_fence(text: str) -> str:
    """
    Return the inner text of the first fenced block that opens with ``{``.

    Text without such a block is returned stripped, so the brace scan
    runs over all of it.
    """
    for match in FENCE_OPENER.finditer(text):
        inner = text[match.end():].lstrip()
        if inner.startswith('{'):
            return inner
    return text.strip()


def find_json_object(text: str) -> str:
    """
    Slice the first balanced ``{...}`` object out of ``text``.

    Braces inside string values are ignored.

    Raises:
        JSONRecoveryError: if there is no ``{`` or the braces never balance
    """
    start = text.find('{')
    if start == -1:
        raise JSONRecoveryError('No JSON object found in response')

    depth = 0
    in_string = False
    escape_next = False

    for index in range(start, len(text)):
        char = text[index]

        if escape_next:
            escape_next = False
            continue
        if char == '\\':
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue

        if char == '{':
            depth += 1
        elif char == '}':
            depth -= 1
            if depth == 0:
                return text[start:index + 1]

    raise JSONRecoveryError('No matching closing brace found')


def escape_control_characters(json_text: str) -> str:
    """Escape raw control characters that appear inside JSON string values."""
    result = []
    in_string = False
    escape_next = False

    for char in json_text:
        if escape_next:
            result.append(char)
            escape_next = False
        elif char == '\\':
            result.append(char)
            escape_next = True
        elif char == '"':
            result.append(char)
            in_string = not in_string
        elif in_string and char in CONTROL_ESCAPES:
            result.append(CONTROL_ESCAPES[char])
        else:
            result.append(char)

    return ''.join(result)


def extract_json_object(raw: str) -> Dict[str, Any]:
    """
    Recover and parse the first JSON object in a model response.

    Args:
        raw: Raw model output

    Returns:
        The parsed object

    Raises:
        JSONRecoveryError: if no object is found or it does not parse
    """
    candidate = find_json_object(strip_code_fence(raw))
    repaired = escape_control_characters(candidate)
    try:
        parsed = json.loads(repaired)
    except json.JSONDecodeError as e:
        raise JSONRecoveryError(f"Invalid JSON: {e.msg} at position {e.pos}") from e

    # find_json_object always slices from '{', so this holds for valid JSON
    if not isinstance(parsed, dict):
        raise JSONRecoveryError('Recovered JSON is not an object')
    return parsed
