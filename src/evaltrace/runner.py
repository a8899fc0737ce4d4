"""
evaltrace CLI Runner

Minimal CLI for running evaluations with the execution pipeline.

Usage:
    python -m evaltrace.runner evals/quick-test.json
    python -m evaltrace.runner dataset.csv --provider openai --parallel

History and regression comparison:
    python -m evaltrace.runner --history
    python -m evaltrace.runner evals/quick-test.json --compare 1706500000000-abc123

A/B and multi-turn modes:
    python -m evaltrace.runner evals/prompt-variants.json --ab-test
    python -m evaltrace.runner evals/support-conversation.json --multi-turn
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path

import pandas as pd
from dotenv import load_dotenv

from evaltrace.dataset_loader import (
    ABTestDefinition,
    ConversationSuite,
    EvalDefinition,
    EvalDefinitionError,
    ModelConfig,
    TestCase,
    load_ab_test,
    load_conversation_suite,
    load_eval_definition,
)
from evaltrace.domain.entities import ExecutionRecord, RunSummary
from evaltrace.harness_config import HarnessConfig, load_config
from evaltrace.infrastructure.providers.base import NoProviderAvailableError, ProviderError
from evaltrace.infrastructure.providers.registry import ProviderRegistry
from evaltrace.infrastructure.rate_limiter import RateLimiterRegistry
from evaltrace.infrastructure.response_cache import ResponseCache
from evaltrace.infrastructure.trace_store import TraceCorruptError, TraceNotFoundError, TraceRecorder
from evaltrace.scoring.evaluator import EvaluationOptions, detect_eval_type
from evaltrace.scoring.llm_judge import LLMJudgeScorer
from evaltrace.scoring.similarity import create_embedder
from evaltrace.use_cases.ab_test import run_ab_test
from evaltrace.use_cases.execution import PipelineContext
from evaltrace.use_cases.health_check import (
    health_check_providers,
    require_available_provider,
    run_judge_health_check,
)
from evaltrace.use_cases.multi_turn import ConversationResult, run_conversation_suite
from evaltrace.use_cases.regression import compare_loaded
from evaltrace.use_cases.scheduler import run_eval

logger = logging.getLogger(__name__)

AnyDefinition = EvalDefinition | ABTestDefinition | ConversationSuite


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="evaltrace: Run LLM evals with tracing and regression detection",
    )
    parser.add_argument(
        "eval_file",
        nargs="?",
        default=None,
        help="Path to the eval definition (.json, .jsonl or .csv)",
    )
    parser.add_argument("--provider", "-p", default=None, help="Override the provider of every model")
    parser.add_argument("--parallel", "-P", action="store_true", help="Run test cases in parallel windows")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Parallel window size (default: HARNESS_PARALLEL_LIMIT from .env)",
    )
    parser.add_argument("--no-cache", action="store_true", help="Disable response caching")
    parser.add_argument("--clear-cache", action="store_true", help="Clear the response cache and exit")
    parser.add_argument("--skip-judge", action="store_true", help="Skip scoring (responses are only recorded)")
    parser.add_argument("--history", "-H", action="store_true", help="Show eval run history and exit")
    parser.add_argument("--compare", "-c", default=None, help="Compare this run against a previous trace ID")
    parser.add_argument("--list-providers", "-l", action="store_true", help="List providers and exit")
    parser.add_argument(
        "--ab-test",
        "-A",
        action="store_true",
        help="Run as an A/B test (definition has variantA/variantB)",
    )
    parser.add_argument("--multi-turn", "-M", action="store_true", help="Run as multi-turn conversation tests")
    parser.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Multi-turn: keep playing a conversation after a failed turn",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory for raw results CSV files (default: HARNESS_RESULTS_DIR from .env)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    return parser.parse_args(argv)


def _apply_args(config: HarnessConfig, args: argparse.Namespace) -> HarnessConfig:
    """Overlay CLI flags onto the environment configuration"""
    if args.parallel:
        config.scheduler = replace(config.scheduler, parallel=True)
    if args.concurrency is not None:
        config.scheduler = replace(config.scheduler, concurrency=args.concurrency)
    if args.no_cache:
        config.cache = replace(config.cache, enabled=False)
    if args.output_dir:
        config.storage = replace(config.storage, results_dir=args.output_dir)
    return config


def record_row(record: ExecutionRecord) -> dict:
    """Flatten a record into one CSV row"""
    usage = record.usage
    return {
        "timestamp": record.timestamp,
        "test_case": record.test_case,
        "provider": record.provider,
        "model": record.model,
        "success": record.success,
        "passed": record.passed,
        "score": record.score,
        "eval_type": record.eval_type,
        "eval_reason": record.eval_reason,
        "latency_ms": record.latency_ms,
        "cost": record.cost,
        "prompt_tokens": usage.prompt_tokens if usage else None,
        "completion_tokens": usage.completion_tokens if usage else None,
        "total_tokens": usage.total_tokens if usage else None,
        "retries": record.retries,
        "from_cache": record.from_cache,
        "prompt": record.prompt,
        "response": record.text,
        "error": record.error,
    }


def _save_rows(rows: list[dict], csv_path: Path) -> Path | None:
    """Save rows to CSV (None when the file could not be written)."""
    df = pd.DataFrame(rows)
    try:
        csv_path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(csv_path, index=False)
    except OSError as e:
        logger.warning("Failed to save results to %s: %s", csv_path, e)
        return None
    return csv_path


def _save_raw_results(records: list[ExecutionRecord], raw_path: Path) -> Path | None:
    """Save raw results to CSV."""
    return _save_rows([record_row(r) for r in records], raw_path)


def _status_icon(record: ExecutionRecord) -> str:
    if not record.success:
        return "ERROR"
    if record.passed is None:
        return "SKIP"
    return "PASS" if record.passed else "FAIL"


def _print_record(record: ExecutionRecord, verbose: bool) -> None:
    score = f" {record.score * 100:.0f}%" if record.score is not None else ""
    cost = f" | ${record.cost:.4f}" if record.cost else ""
    retries = f" ({record.retries} retries)" if record.retries else ""
    cached = " (cached)" if record.from_cache else ""
    print(
        f"  {_status_icon(record)}{score} | {record.test_case} | {record.model_label} "
        f"| {record.latency_ms}ms{cost}{retries}{cached}"
    )
    if record.error:
        print(f"    Error: {record.error[:100]}")
    elif verbose and record.eval_reason:
        print(f"    {record.eval_reason}")


def _print_history(recorder: TraceRecorder) -> None:
    print("\n=== Eval Run History ===\n")
    traces = recorder.list_traces()
    if not traces:
        print("  No traces found. Run an eval first.\n")
        return
    print(f"  {'Trace ID':<24} {'Eval':<30} {'Passed':>7} {'Failed':>7} {'Total':>6}")
    print(f"  {'-'*24} {'-'*30} {'-'*7} {'-'*7} {'-'*6}")
    for t in traces[:20]:
        if "error" in t:
            print(f"  {t['id']:<24} ({t['error']})")
            continue
        print(
            f"  {t['id']:<24} {str(t.get('eval_name') or 'N/A'):<30} "
            f"{t['passed']:>7} {t['failed']:>7} {t['total']:>6}"
        )
    print()


def _scored_cases(definition: AnyDefinition) -> list[TestCase]:
    if isinstance(definition, ConversationSuite):
        cases = [turn for c in definition.conversations for turn in c.turns]
        cases += [
            TestCase(name=c.name, prompt="", eval_type="llm_judge")
            for c in definition.conversations
            if c.overall_criteria
        ]
        return cases
    return definition.test_cases


def _uses(definition: AnyDefinition, eval_type: str) -> bool:
    return any(
        (tc.eval_type or detect_eval_type(tc)) == eval_type
        for tc in _scored_cases(definition)
    )


def _load_definition(args: argparse.Namespace) -> AnyDefinition:
    if args.ab_test:
        return load_ab_test(args.eval_file)
    if args.multi_turn:
        return load_conversation_suite(args.eval_file)
    return load_eval_definition(args.eval_file)


def _verdict_label(record: ExecutionRecord) -> str:
    score = f" {record.score * 100:.0f}%" if record.score is not None else ""
    return f"{_status_icon(record)}{score}"


def _run_ab_test(definition: ABTestDefinition, context: PipelineContext, config: HarnessConfig) -> None:
    a, b = definition.variant_a, definition.variant_b
    print(f"=== Running A/B Test: {definition.name} ===\n")
    print(f'  Comparing: "{a.name}" vs "{b.name}"\n')

    def on_pair(record_a: ExecutionRecord, record_b: ExecutionRecord) -> None:
        print(
            f"  {record_a.test_case} | {record_a.model_label}: "
            f"A {_verdict_label(record_a)} | B {_verdict_label(record_b)}"
        )

    result = run_ab_test(definition, context, on_pair=on_pair)
    summary = result.summary

    print("\n=== A/B Test Summary ===\n")
    print(f"  {'Metric':<14} {a.name[:20]:>20} {b.name[:20]:>20}")
    print(f"  {'-'*14} {'-'*20} {'-'*20}")
    sa, sb = summary.variant_a, summary.variant_b
    print(f"  {'Pass rate':<14} {sa.pass_rate * 100:>19.1f}% {sb.pass_rate * 100:>19.1f}%")
    print(f"  {'Avg score':<14} {sa.avg_score * 100:>19.1f}% {sb.avg_score * 100:>19.1f}%")
    print(f"  {'Avg latency':<14} {sa.avg_latency_ms:>18.0f}ms {sb.avg_latency_ms:>18.0f}ms")
    print(f"  {'Cost':<14} {'$' + format(sa.total_cost, '.4f'):>20} {'$' + format(sb.total_cost, '.4f'):>20}")
    print(f"\n  Recommendation: {summary.recommendation}\n")

    rows = [dict(record_row(r), variant=a.name) for r in result.results_a]
    rows += [dict(record_row(r), variant=b.name) for r in result.results_b]
    run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
    csv_path = _save_rows(rows, Path(config.storage.results_dir) / f"ab_results_{run_id}.csv")
    print("=== Output ===\n")
    print(f"  A/B results: {csv_path or 'not saved'}\n")


def _run_conversations(
    suite: ConversationSuite,
    context: PipelineContext,
    config: HarnessConfig,
    continue_on_error: bool,
) -> bool:
    """Play every conversation; True when none failed"""
    print(f"=== Running Multi-Turn Conversations: {suite.name} ===\n")

    def on_conversation(result: ConversationResult) -> None:
        print(f"  {result.name} | {result.model}")
        for number, record in enumerate(result.turns, start=1):
            detail = record.error or record.eval_reason or ""
            print(f"    Turn {number}: {_status_icon(record)} {detail[:100]}")
        overall = "SKIP" if result.passed is None else ("PASS" if result.passed else "FAIL")
        print(f"    Overall: {overall} {result.score * 100:.0f}% | {result.reason}\n")

    results = run_conversation_suite(
        suite,
        context,
        continue_on_error=continue_on_error,
        on_conversation=on_conversation,
    )

    failed = sum(1 for r in results if r.passed is False)
    print("=== Conversation Summary ===\n")
    print(f"  Conversations: {len(results)}")
    print(f"  Passed:        {sum(1 for r in results if r.passed is True)}")
    print(f"  Failed:        {failed}")
    print()

    rows = [
        dict(record_row(record), conversation=r.name, turn=number)
        for r in results
        for number, record in enumerate(r.turns, start=1)
    ]
    run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
    csv_path = _save_rows(rows, Path(config.storage.results_dir) / f"conversation_results_{run_id}.csv")
    print("=== Output ===\n")
    print(f"  Turn results: {csv_path or 'not saved'}\n")
    return failed == 0


def _build_judge(
    config: HarnessConfig,
    registry: ProviderRegistry,
    limiters: RateLimiterRegistry,
) -> LLMJudgeScorer | None:
    """Create the LLM judge after a health check (None when unusable)"""
    jc = config.llm_judge
    print(f"=== Judge Health Check ===\n")
    print(f"  Judge: {jc.provider}/{jc.model}... ", end="", flush=True)
    try:
        provider = registry.get(jc.provider)
    except ProviderError as e:
        print("FAILED")
        print(f"  {e}")
        print("  WARNING: llm_judge test cases will fail.\n")
        return None

    ok, err = run_judge_health_check(provider, jc.model)
    if not ok:
        print("FAILED")
        print(f"  {err}")
        print("  WARNING: llm_judge test cases will fail.\n")
        return None

    print("OK\n")
    return LLMJudgeScorer(
        provider,
        jc.model,
        temperature=jc.temperature,
        max_tokens=jc.max_tokens,
        pass_threshold=jc.pass_threshold,
        rate_limiter=limiters.for_provider(jc.provider),
    )


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = _apply_args(load_config(), args)
    cache = ResponseCache(config.cache.cache_dir, config.cache.ttl_seconds)

    # Maintenance modes
    if args.clear_cache:
        count = cache.clear()
        print(f"\n=== Cleared {count} cached responses ===\n")
        return

    registry = ProviderRegistry(config)
    recorder = TraceRecorder(config.storage.traces_dir)

    if args.list_providers:
        health_check_providers(registry)
        print("Configure providers in the .env file\n")
        return

    if args.history:
        _print_history(recorder)
        return

    if not args.eval_file:
        print("ERROR: an eval file is required (.json, .jsonl or .csv)")
        sys.exit(2)

    # Step 1: Load eval definition
    print(f"\n=== Loading eval: {args.eval_file} ===\n")
    try:
        definition = _load_definition(args)
    except EvalDefinitionError as e:
        print(f"ERROR: {e}")
        if args.ab_test or args.multi_turn:
            print("Supported formats: .json")
        else:
            print("Supported formats: .json, .jsonl, .csv")
        sys.exit(1)

    # Step 2: Provider health check
    try:
        require_available_provider(registry)
        if not definition.models:
            default = registry.default()
            definition.models = [ModelConfig(model=default.default_model, provider=default.name)]
            print(f"  Using default model: {default.name}/{default.default_model}")
    except NoProviderAvailableError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    limiters = RateLimiterRegistry(config.rate_limit)
    evaluation = EvaluationOptions(similarity_threshold=config.similarity.threshold)
    if not args.skip_judge:
        if config.llm_judge.enabled and _uses(definition, "llm_judge"):
            evaluation.judge = _build_judge(config, registry, limiters)
        if _uses(definition, "semantic_similarity"):
            evaluation.embedder = create_embedder(config)

    context = PipelineContext(
        config=config,
        registry=registry,
        limiters=limiters,
        cache=cache if config.cache.enabled else None,
        evaluation=evaluation,
        provider_override=args.provider,
        skip_evaluation=args.skip_judge,
    )

    print(f"  Eval: {definition.name}")
    if definition.description:
        print(f"  Description: {definition.description}")
    if isinstance(definition, ConversationSuite):
        print(f"  Conversations: {len(definition.conversations)}")
    else:
        print(f"  Test cases: {len(definition.test_cases)}")
    print(f"  Models: {[m.label for m in definition.models]}")
    print(f"  Scoring: {'Disabled' if args.skip_judge else 'Enabled'}")
    if config.scheduler.parallel and not (args.ab_test or args.multi_turn):
        print(f"  Parallel: Yes ({config.scheduler.concurrency} concurrent)")
    else:
        print("  Parallel: No")
    print(f"  Caching: {'Enabled' if config.cache.enabled else 'Disabled'}")
    print(f"  Auto-retry: {config.retry.max_retries} attempts")
    print()

    if isinstance(definition, ABTestDefinition):
        _run_ab_test(definition, context, config)
        return
    if isinstance(definition, ConversationSuite):
        if not _run_conversations(definition, context, config, args.continue_on_error):
            sys.exit(1)
        return

    # Step 3: Run evaluations
    total = len(definition.test_cases) * len(definition.models)
    print(f"=== Running Evaluations ({total} total) ===\n")

    def on_progress(index, count, test_case, model_config):
        logger.info("[%d/%d] %s | %s", index, count, test_case.name, model_config.label)

    run = run_eval(
        definition,
        context,
        recorder,
        parallel=config.scheduler.parallel,
        on_progress=on_progress,
        on_record=lambda r: _print_record(r, args.verbose),
    )
    summary = run.trace.summary or RunSummary.from_records(run.records)

    # Step 4: Summary
    print("\n=== Results Summary ===\n")
    print(f"  Total:  {summary.total}")
    print(f"  Passed: {summary.passed}")
    print(f"  Failed: {summary.failed}")
    print(f"  Errors: {summary.errors}")
    total_cost = sum(r.cost or 0 for r in run.records if r.success)
    print(f"  Cost:   ${total_cost:.4f}")
    print()

    # Step 5: Regression comparison
    if args.compare:
        print(f"=== Comparing with {args.compare} ===\n")
        try:
            report = compare_loaded(recorder.load(args.compare), run.trace)
        except (TraceNotFoundError, TraceCorruptError) as e:
            print(f"  WARNING: {e}\n")
        else:
            if not report.has_changes:
                print("  No regressions or improvements\n")
            for change in report.regressions:
                print(f"  REGRESSION: {change.test_case} | {change.model} | {change.was} -> {change.now}")
                if change.reason:
                    print(f"    {change.reason}")
            for change in report.improvements:
                print(f"  IMPROVEMENT: {change.test_case} | {change.model} | {change.was} -> {change.now}")
            print()

    # Step 6: Save CSV
    raw_path = _save_raw_results(
        run.records,
        Path(config.storage.results_dir) / f"raw_results_{run.trace.id}.csv",
    )

    print("=== Output ===\n")
    print(f"  Trace:       {run.trace_path or 'not saved'}")
    print(f"  Raw results: {raw_path or 'not saved'}")
    print()

    if summary.failed or summary.errors:
        sys.exit(1)


if __name__ == "__main__":
    main()
