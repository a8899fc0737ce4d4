"""
Dataset Loader

Loads eval definitions from JSON, JSONL, and CSV files and normalizes
their test cases into a single TestCase shape.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".json", ".jsonl", ".csv")


class EvalDefinitionError(Exception):
    """Raised when an eval definition cannot be loaded"""
    pass


@dataclass(frozen=True)
class TestCase:
    """Test case (immutable once loaded)"""
    __test__ = False  # not a pytest test class

    name: str
    prompt: str
    system_prompt: str | None = None
    eval_type: str | None = None
    expected: object = None
    expected_contains: list | str | None = None
    expected_regex: str | None = None
    regex_flags: str | None = None
    expected_tool: str | None = None
    expected_args: list | None = None
    expected_json: dict | list | str | None = None
    expected_semantic: str | None = None
    similarity_threshold: float | None = None
    safety_check: bool = False
    criteria: list | str | None = None
    custom_evaluator: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ModelConfig:
    """Execution target"""
    model: str
    provider: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None

    @property
    def label(self) -> str:
        return f"{self.provider or 'default'}/{self.model}"


@dataclass
class EvalDefinition:
    """Eval definition: test cases x models"""
    name: str
    description: str
    test_cases: list[TestCase]
    models: list[ModelConfig]
    source: str | None = None

    def to_dict(self) -> dict:
        """Serializable form stored with each trace"""
        return {
            "name": self.name,
            "description": self.description,
            "source": self.source,
            "test_cases": [tc.name for tc in self.test_cases],
            "models": [
                {
                    "provider": m.provider,
                    "model": m.model,
                    "temperature": m.temperature,
                    "max_tokens": m.max_tokens,
                }
                for m in self.models
            ],
        }


def _first(data: dict, *keys: str):
    """Return the first non-empty value among aliased keys"""
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


def _split_pipe(value):
    """CSV cells carry lists as 'a|b|c'"""
    if isinstance(value, str):
        return [v.strip() for v in value.split("|") if v.strip()]
    return value


def _to_int(value) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _to_float(value) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def _to_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def normalize_test_case(data: dict, index: int = 0) -> TestCase:
    """
    Create a TestCase from a raw dictionary, resolving field aliases

    Args:
        data: Raw test case dictionary
        index: Position in the dataset (used for the fallback name)

    Returns:
        TestCase
    """
    return TestCase(
        name=str(_first(data, "name", "title", "id") or f"Test {index + 1}"),
        prompt=str(_first(data, "prompt", "input", "question", "text") or ""),
        system_prompt=_first(data, "system_prompt", "system", "context"),
        eval_type=_first(data, "eval_type", "type"),
        expected=_first(data, "expected", "answer", "output"),
        expected_contains=_first(data, "expected_contains", "contains"),
        expected_regex=_first(data, "expected_regex", "regex", "pattern"),
        regex_flags=data.get("regex_flags"),
        expected_tool=_first(data, "expected_tool", "tool"),
        expected_args=_first(data, "expected_args", "args"),
        expected_json=_first(data, "expected_json", "json"),
        expected_semantic=_first(data, "expected_semantic", "reference", "gold"),
        similarity_threshold=_to_float(data.get("similarity_threshold")),
        safety_check=_to_bool(data.get("safety_check", False)),
        criteria=_first(data, "criteria", "rubric"),
        custom_evaluator=_first(data, "custom_evaluator", "evaluator"),
        temperature=_to_float(data.get("temperature")),
        max_tokens=_to_int(_first(data, "max_tokens", "maxTokens")),
        metadata=data.get("metadata") or {},
    )


def _parse_models(raw_models: list) -> list[ModelConfig]:
    models = []
    for m in raw_models or []:
        if isinstance(m, str):
            # "provider/model" shorthand is ambiguous with OpenRouter ids, so a bare string is a model name
            models.append(ModelConfig(model=m))
            continue
        models.append(ModelConfig(
            model=m["model"],
            provider=m.get("provider"),
            temperature=_to_float(m.get("temperature")),
            max_tokens=_to_int(m.get("max_tokens")),
        ))
    return models


def _load_json(content: str, source: str) -> EvalDefinition:
    data = json.loads(content)

    if isinstance(data, list):
        return EvalDefinition(
            name="Dataset",
            description="Loaded from JSON array",
            test_cases=[normalize_test_case(tc, i) for i, tc in enumerate(data)],
            models=[],
            source=source,
        )

    raw_cases = data.get("test_cases") or data.get("tests") or data.get("examples") or []
    return EvalDefinition(
        name=data.get("name", "Dataset"),
        description=data.get("description", ""),
        test_cases=[normalize_test_case(tc, i) for i, tc in enumerate(raw_cases)],
        models=_parse_models(data.get("models", [])),
        source=source,
    )


def _load_jsonl(content: str, source: str) -> EvalDefinition:
    test_cases = []
    for line_no, line in enumerate(content.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            raw = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning("Skipping unparseable JSONL line %d in %s: %s", line_no, source, e)
            continue
        test_cases.append(normalize_test_case(raw, len(test_cases)))

    return EvalDefinition(
        name="Dataset",
        description="Loaded from JSONL",
        test_cases=test_cases,
        models=[],
        source=source,
    )


def _load_csv(path: Path) -> EvalDefinition:
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    except pd.errors.EmptyDataError:
        raise EvalDefinitionError(f"CSV must have a header row and at least one data row: {path}")

    df.columns = [str(c).strip().lower() for c in df.columns]
    if "prompt" not in df.columns:
        raise EvalDefinitionError(f"CSV must have columns: prompt ({path})")
    if df.empty:
        raise EvalDefinitionError(f"CSV must have a header row and at least one data row: {path}")

    test_cases = []
    for idx, row in enumerate(df.to_dict("records")):
        row = {k: v.strip() if isinstance(v, str) else v for k, v in row.items()}
        row["expected_contains"] = _split_pipe(row.get("expected_contains")) or None
        row["criteria"] = _split_pipe(row.get("criteria")) or None
        row["expected_args"] = _split_pipe(row.get("expected_args")) or None
        test_cases.append(normalize_test_case(row, idx))

    return EvalDefinition(
        name="Dataset",
        description="Loaded from CSV",
        test_cases=test_cases,
        models=[],
        source=str(path),
    )


def load_eval_definition(file_path: str | Path) -> EvalDefinition:
    """
    Load an eval definition from a JSON, JSONL, or CSV file

    Args:
        file_path: Path to the definition or dataset file

    Returns:
        EvalDefinition

    Raises:
        EvalDefinitionError: If the file is missing, unsupported, or malformed
    """
    path = Path(file_path)
    ext = path.suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise EvalDefinitionError(
            f"Unsupported file format: {ext or '(none)'} (supported: {', '.join(SUPPORTED_EXTENSIONS)})"
        )
    if not path.exists():
        raise EvalDefinitionError(f"Eval definition not found: {path}")

    try:
        if ext == ".csv":
            return _load_csv(path)
        content = path.read_text(encoding="utf-8")
        if ext == ".jsonl":
            return _load_jsonl(content, str(path))
        return _load_json(content, str(path))
    except OSError as e:
        raise EvalDefinitionError(f"Cannot read eval definition {path}: {e}") from e
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise EvalDefinitionError(f"Invalid eval definition {path}: {e}") from e


@dataclass(frozen=True)
class Variant:
    """One arm of an A/B test"""
    name: str
    template: str | None = None
    system_prompt: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None


@dataclass
class ABTestDefinition:
    """Two prompt variants run over the same test cases and models"""
    name: str
    description: str
    variant_a: Variant
    variant_b: Variant
    test_cases: list[TestCase]
    models: list[ModelConfig]
    source: str | None = None


@dataclass
class Conversation:
    """Multi-turn test case: each turn is scored like a single test case"""
    name: str
    turns: list[TestCase]
    system_prompt: str | None = None
    description: str = ""
    overall_criteria: list | str | None = None


@dataclass
class ConversationSuite:
    name: str
    description: str
    conversations: list[Conversation]
    models: list[ModelConfig]
    source: str | None = None


def _read_json_object(file_path: str | Path) -> tuple[dict, str]:
    path = Path(file_path)
    if path.suffix.lower() != ".json":
        raise EvalDefinitionError(f"Unsupported file format: {path.suffix or '(none)'} (supported: .json)")
    if not path.exists():
        raise EvalDefinitionError(f"Eval definition not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise EvalDefinitionError(f"Cannot read eval definition {path}: {e}") from e
    except ValueError as e:
        raise EvalDefinitionError(f"Invalid eval definition {path}: {e}") from e
    if not isinstance(data, dict):
        raise EvalDefinitionError(f"Invalid eval definition {path}: expected a JSON object")
    return data, str(path)


def _parse_variant(raw, default_name: str) -> Variant:
    if not isinstance(raw, dict):
        raise EvalDefinitionError(f"{default_name} must be an object")
    return Variant(
        name=str(raw.get("name") or default_name),
        template=_first(raw, "prompt", "template"),
        system_prompt=_first(raw, "system_prompt", "system"),
        temperature=_to_float(raw.get("temperature")),
        max_tokens=_to_int(_first(raw, "max_tokens", "maxTokens")),
    )


def load_ab_test(file_path: str | Path) -> ABTestDefinition:
    """
    Load an A/B test definition (JSON with variantA/variantB)

    Raises:
        EvalDefinitionError: If the file is missing, malformed, or lacks a variant
    """
    data, source = _read_json_object(file_path)
    raw_a = _first(data, "variantA", "variant_a")
    raw_b = _first(data, "variantB", "variant_b")
    if raw_a is None or raw_b is None:
        raise EvalDefinitionError(f"A/B test needs variantA and variantB: {source}")

    try:
        raw_cases = _first(data, "testCases", "test_cases", "tests") or []
        return ABTestDefinition(
            name=data.get("name", "A/B Test"),
            description=data.get("description", ""),
            variant_a=_parse_variant(raw_a, "Variant A"),
            variant_b=_parse_variant(raw_b, "Variant B"),
            test_cases=[normalize_test_case(tc, i) for i, tc in enumerate(raw_cases)],
            models=_parse_models(data.get("models", [])),
            source=source,
        )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise EvalDefinitionError(f"Invalid A/B test definition {source}: {e}") from e


def _parse_conversation(raw: dict, index: int) -> Conversation:
    name = str(_first(raw, "name", "title", "id") or f"Conversation {index + 1}")
    turns = []
    for i, turn in enumerate(_first(raw, "turns", "conversation") or []):
        turn = dict(turn)
        turn.setdefault("prompt", turn.get("user"))
        turn["name"] = f"{name} #{i + 1}"
        turns.append(normalize_test_case(turn, i))
    return Conversation(
        name=name,
        turns=turns,
        system_prompt=_first(raw, "system_prompt", "system"),
        description=raw.get("description", ""),
        overall_criteria=raw.get("overall_criteria"),
    )


def load_conversation_suite(file_path: str | Path) -> ConversationSuite:
    """
    Load multi-turn conversations

    The file holds a list under test_cases or conversations, or is itself a
    single conversation with turns.

    Raises:
        EvalDefinitionError: If the file is missing or malformed
    """
    data, source = _read_json_object(file_path)
    raw_conversations = _first(data, "test_cases", "conversations") or [data]
    try:
        conversations = [_parse_conversation(c, i) for i, c in enumerate(raw_conversations)]
        suite = ConversationSuite(
            name=data.get("name", "Conversations"),
            description=data.get("description", ""),
            conversations=conversations,
            models=_parse_models(data.get("models", [])),
            source=source,
        )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise EvalDefinitionError(f"Invalid conversation definition {source}: {e}") from e
    if not any(c.turns for c in suite.conversations):
        raise EvalDefinitionError(f"No conversation turns found: {source}")
    return suite
