"""
Text-based scoring functions

Implements the reasoning sanitizer and the exact match, contains, and regex scorers.
"""

from __future__ import annotations

import re

from evaltrace.domain.value_objects import EvalVerdict

_PAIRED_REASONING_RE = re.compile(r"<(think|thinking)>.*?</\1>", re.IGNORECASE | re.DOTALL)
_UNCLOSED_REASONING_RE = re.compile(r"<(?:think|thinking)>.*\Z", re.IGNORECASE | re.DOTALL)

_REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
}


def strip_reasoning(text: str | None) -> str:
    """
    Remove reasoning blocks from model output

    - Remove paired <think>...</think> and <thinking>...</thinking> blocks
    - Remove an unclosed <think> or <thinking> running to the end (truncated output)
    - Strip leading and trailing whitespace

    Args:
        text: Raw model output

    Returns:
        Cleaned text ("" for None)
    """
    if not text:
        return ""
    cleaned = _PAIRED_REASONING_RE.sub("", text)
    cleaned = _UNCLOSED_REASONING_RE.sub("", cleaned)
    return cleaned.strip()


def _preview(text: str, limit: int = 100) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def score_exact_match(expected, actual: str) -> EvalVerdict:
    """
    Exact match evaluation (case-insensitive, whitespace-trimmed)

    Returns:
        EvalVerdict with score 1.0 (match) or 0.0 (mismatch)
    """
    expected_text = "" if expected is None else str(expected)
    passed = actual.strip().lower() == expected_text.strip().lower()
    if passed:
        reason = "Exact match"
    else:
        reason = f'Expected "{expected_text}", got "{_preview(actual)}"'
    return EvalVerdict(passed=passed, score=1.0 if passed else 0.0, reason=reason, eval_type="exact_match")


def score_contains(expected, actual: str) -> EvalVerdict:
    """
    Check that every expected substring appears in the output (case-insensitive)

    Args:
        expected: A substring or a list of substrings
        actual: Actual output

    Returns:
        EvalVerdict whose score is the fraction of substrings found
    """
    if expected is None:
        expected_list = []
    elif isinstance(expected, (list, tuple)):
        expected_list = [str(e) for e in expected]
    else:
        expected_list = [str(expected)]

    actual_lower = actual.lower()
    found = [e for e in expected_list if e.lower() in actual_lower]
    missing = [e for e in expected_list if e not in found]

    passed = not missing
    score = len(found) / len(expected_list) if expected_list else 0.0
    if passed:
        reason = f"Contains all expected: {', '.join(found)}"
    else:
        reason = f"Missing: {', '.join(missing)}"
    return EvalVerdict(
        passed=passed,
        score=score,
        reason=reason,
        eval_type="contains",
        details={"found": found, "missing": missing},
    )


def regex_flags(flags: str | None) -> int:
    """Map a flag string such as "im" to re flags (unknown letters are ignored)"""
    value = 0
    for letter in flags if flags is not None else "i":
        value |= _REGEX_FLAGS.get(letter.lower(), 0)
    return value


def score_regex(pattern, actual: str, flags: str | None = None) -> EvalVerdict:
    """
    Regex search evaluation

    Args:
        pattern: Regular expression
        actual: Actual output
        flags: Flag letters (default "i")

    Returns:
        EvalVerdict (an invalid pattern is a failing verdict)
    """
    pattern_text = "" if pattern is None else str(pattern)
    try:
        compiled = re.compile(pattern_text, regex_flags(flags))
    except re.error as e:
        return EvalVerdict.failure("regex", f"Invalid regex: {e}")

    passed = compiled.search(actual) is not None
    if passed:
        reason = f"Matches pattern: {pattern_text}"
    else:
        reason = f"Does not match pattern: {pattern_text}"
    return EvalVerdict(passed=passed, score=1.0 if passed else 0.0, reason=reason, eval_type="regex")
