"""
Batch Scheduling

Runs every (test case, model) pair of an eval definition, sequentially or in
bounded windows on a thread pool, and records the outcomes into a trace.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from evaltrace.dataset_loader import EvalDefinition, ModelConfig, TestCase
from evaltrace.domain.entities import ExecutionRecord, RunSummary, Trace
from evaltrace.infrastructure.trace_store import TraceRecorder
from evaltrace.use_cases.execution import PipelineContext, execute_with_retry

logger = logging.getLogger(__name__)

WorkItem = tuple[TestCase, ModelConfig]
Execute = Callable[[TestCase, ModelConfig], ExecutionRecord]
OnRecord = Callable[[ExecutionRecord], None]
OnProgress = Callable[[int, int, TestCase, ModelConfig], None]


@dataclass
class EvalRun:
    """Outcome of run_eval"""
    records: list[ExecutionRecord]
    trace: Trace
    trace_path: Path | None


def build_work_list(definition: EvalDefinition) -> list[WorkItem]:
    """Cross product in input order: for each test case, for each model"""
    return [(tc, mc) for tc in definition.test_cases for mc in definition.models]


def _crash_record(test_case: TestCase, model_config: ModelConfig, error: Exception) -> ExecutionRecord:
    return ExecutionRecord(
        test_case=test_case.name,
        provider=model_config.provider or "default",
        model=model_config.model,
        success=False,
        passed=False,
        score=0.0,
        eval_type="error",
        eval_reason=f"Error: {error}",
        error=str(error),
        prompt=test_case.prompt,
        system_prompt=test_case.system_prompt,
    )


def _guarded(execute: Execute, test_case: TestCase, model_config: ModelConfig) -> ExecutionRecord:
    # A single execution never aborts the batch
    try:
        return execute(test_case, model_config)
    except Exception as e:
        logger.warning("Execution of '%s' on %s crashed: %s", test_case.name, model_config.label, e)
        return _crash_record(test_case, model_config, e)


def run_sequential(
    work: list[WorkItem],
    execute: Execute,
    on_record: OnRecord,
    on_progress: OnProgress | None = None,
) -> None:
    """Execute work items one at a time in order"""
    total = len(work)
    for index, (test_case, model_config) in enumerate(work, start=1):
        if on_progress is not None:
            on_progress(index, total, test_case, model_config)
        on_record(_guarded(execute, test_case, model_config))


def run_parallel(
    work: list[WorkItem],
    execute: Execute,
    on_record: OnRecord,
    concurrency: int,
) -> None:
    """
    Execute work items in windows of `concurrency`

    Each window completes before the next starts; records are handed to
    on_record in completion order within a window.
    """
    concurrency = max(1, concurrency)
    with ThreadPoolExecutor(max_workers=concurrency) as executor:
        for start in range(0, len(work), concurrency):
            window = work[start:start + concurrency]
            futures = [
                executor.submit(_guarded, execute, test_case, model_config)
                for test_case, model_config in window
            ]
            for future in as_completed(futures):
                on_record(future.result())


def run_eval(
    definition: EvalDefinition,
    context: PipelineContext,
    recorder: TraceRecorder,
    *,
    parallel: bool = False,
    on_progress: OnProgress | None = None,
    on_record: OnRecord | None = None,
) -> EvalRun:
    """
    Run a full eval definition and seal its trace

    Args:
        definition: Eval definition (test cases x models)
        context: Shared pipeline collaborators
        recorder: Trace recorder
        parallel: Use windowed parallel execution
        on_progress: Called before each sequential execution
        on_record: Called after each record is appended

    Returns:
        EvalRun with the records, the sealed trace and the trace file path
    """
    trace = recorder.create(definition)
    records: list[ExecutionRecord] = []

    def record(rec: ExecutionRecord) -> None:
        records.append(rec)
        recorder.append(trace, rec)
        if on_record is not None:
            on_record(rec)

    def execute(test_case: TestCase, model_config: ModelConfig) -> ExecutionRecord:
        return execute_with_retry(test_case, model_config, context)

    work = build_work_list(definition)
    if parallel:
        run_parallel(work, execute, record, context.config.scheduler.concurrency)
    else:
        run_sequential(work, execute, record, on_progress)

    trace_path = recorder.seal(trace, RunSummary.from_records(records))
    return EvalRun(records=records, trace=trace, trace_path=trace_path)
