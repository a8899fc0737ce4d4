"""
Structured output scoring functions

Implements the tool call and JSON structure scorers.
"""

from __future__ import annotations

import json
import re

from evaltrace.domain.constants import JSON_WILDCARD
from evaltrace.domain.value_objects import EvalVerdict

# Tried in order; the first match wins
_TOOL_CALL_PATTERNS = [
    re.compile(r"TOOL:\s*(\w+)\s*\(([^)]*)\)", re.IGNORECASE),
    re.compile(r"tool[_\s]?call:\s*(\w+)\s*\(([^)]*)\)", re.IGNORECASE),
    re.compile(r'"tool"\s*:\s*"(\w+)".*"args"\s*:\s*\[([^\]]*)\]', re.IGNORECASE | re.DOTALL),
]
_NO_TOOL_RE = re.compile(r"TOOL:\s*none|no tool", re.IGNORECASE)


def parse_tool_call(text: str) -> tuple[str | None, list[str]]:
    """
    Extract a tool call from model output

    Supported syntaxes: TOOL: name(args), tool_call: name(args), and
    {"tool": "name", "args": [...]}. An explicit "TOOL: none" or "no tool"
    yields the sentinel tool "none".

    Returns:
        (tool name in lowercase or None, list of arguments)
    """
    for pattern in _TOOL_CALL_PATTERNS:
        match = pattern.search(text)
        if match:
            args = [a.strip().replace('"', "").replace("'", "") for a in match.group(2).split(",")]
            return match.group(1).lower(), [a for a in args if a]
    if _NO_TOOL_RE.search(text):
        return "none", []
    return None, []


def score_tool_call(expected_tool: str, expected_args, actual: str) -> EvalVerdict:
    """
    Tool selection evaluation

    Score = 0.5 for the right tool + 0.5 when every expected argument is a
    substring of some parsed argument. Passing requires both.
    """
    tool, args = parse_tool_call(actual)
    expected_args = [str(a) for a in (expected_args or [])]

    tool_match = tool is not None and tool == str(expected_tool).lower()
    args_match = all(
        any(expected.lower() in arg.lower() for arg in args)
        for expected in expected_args
    )
    passed = tool_match and args_match
    score = (0.5 if tool_match else 0.0) + (0.5 if args_match else 0.0)

    if passed:
        reason = f"Correct tool: {tool}({', '.join(args)})"
    elif tool is None:
        reason = "Could not parse tool call from response"
    elif not tool_match:
        reason = f"Wrong tool: expected {expected_tool}, got {tool}"
    else:
        reason = f"Wrong args: expected {', '.join(expected_args)}, got {', '.join(args)}"

    return EvalVerdict(
        passed=passed,
        score=score,
        reason=reason,
        eval_type="tool_call",
        details={"tool": tool, "args": args},
    )


def extract_json(text: str):
    """
    Decode the first JSON object or array literal embedded in text

    Raises:
        ValueError: If no JSON literal is found or none decodes
    """
    decoder = json.JSONDecoder()
    first_error = None
    for match in re.finditer(r"[\[{]", text):
        try:
            value, _ = decoder.raw_decode(text, match.start())
            return value
        except json.JSONDecodeError as e:
            if first_error is None:
                first_error = e
    if first_error is not None:
        raise ValueError(f"JSON parse error: {first_error}")
    raise ValueError("No JSON found in response")


def _matches(expected, actual) -> bool:
    return expected == JSON_WILDCARD or expected == actual


def compare_json(expected, actual) -> tuple[int, int, list[str]]:
    """
    Compare a decoded value against an expectation

    Returns:
        (matched count, required count, list of mismatched keys/indexes)
    """
    mismatched = []
    if isinstance(expected, dict):
        for key, value in expected.items():
            present = isinstance(actual, dict) and key in actual
            if not present or not _matches(value, actual[key]):
                mismatched.append(str(key))
        return len(expected) - len(mismatched), len(expected), mismatched
    if isinstance(expected, list):
        for i, value in enumerate(expected):
            present = isinstance(actual, list) and i < len(actual)
            if not present or not _matches(value, actual[i]):
                mismatched.append(f"[{i}]")
        return len(expected) - len(mismatched), len(expected), mismatched
    if _matches(expected, actual):
        return 1, 1, []
    return 0, 1, ["value"]


def score_json_match(expected_json, actual: str) -> EvalVerdict:
    """
    JSON structure evaluation

    Every expected key (or index) must be present with an equal value; a value
    of "*" only requires presence. Score = matched / required.
    """
    try:
        expected = json.loads(expected_json) if isinstance(expected_json, str) else expected_json
    except json.JSONDecodeError as e:
        return EvalVerdict.failure("json_match", f"Invalid expected JSON: {e}")

    try:
        decoded = extract_json(actual)
    except ValueError as e:
        return EvalVerdict.failure("json_match", str(e))

    matched, required, mismatched = compare_json(expected, decoded)
    passed = not mismatched
    score = matched / required if required else 1.0
    if passed:
        reason = "JSON structure matches"
    else:
        reason = f"Missing/wrong keys: {', '.join(mismatched)}"
    return EvalVerdict(
        passed=passed,
        score=score,
        reason=reason,
        eval_type="json_match",
        details={"actual": decoded},
    )
