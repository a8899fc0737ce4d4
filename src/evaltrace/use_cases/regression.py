"""
Regression Comparison

Compares two persisted traces and classifies each shared (test case, model)
pair as a regression, an improvement, or unchanged.
"""

from __future__ import annotations

from evaltrace.domain.entities import ExecutionRecord, RegressionReport, Trace, TraceChange
from evaltrace.infrastructure.trace_store import TraceRecorder


def diff_records(old_records: list[ExecutionRecord], new_records: list[ExecutionRecord]) -> tuple[list[TraceChange], list[TraceChange]]:
    """
    Classify paired records

    Only definite flips count: PASS -> FAIL is a regression and FAIL -> PASS
    an improvement. Inconclusive (None) verdicts and unpaired records are ignored.

    Returns:
        (regressions, improvements)
    """
    # Later duplicates overwrite earlier ones
    old_by_key = {r.key: r for r in old_records}

    regressions = []
    improvements = []
    for new in new_records:
        old = old_by_key.get(new.key)
        if old is None:
            continue
        if old.passed is True and new.passed is False:
            regressions.append(TraceChange(
                test_case=new.test_case,
                model=new.model_label,
                was="PASS",
                now="FAIL",
                reason=new.eval_reason,
            ))
        elif old.passed is False and new.passed is True:
            improvements.append(TraceChange(
                test_case=new.test_case,
                model=new.model_label,
                was="FAIL",
                now="PASS",
            ))
    return regressions, improvements


def compare_loaded(old: Trace, new: Trace) -> RegressionReport:
    regressions, improvements = diff_records(old.results, new.results)
    return RegressionReport(
        old_trace_id=old.id,
        new_trace_id=new.id,
        regressions=regressions,
        improvements=improvements,
    )


def compare_traces(recorder: TraceRecorder, old_trace_id: str, new_trace_id: str) -> RegressionReport:
    """
    Load two traces and compare them

    Raises:
        TraceNotFoundError: If either trace does not exist
    """
    return compare_loaded(recorder.load(old_trace_id), recorder.load(new_trace_id))
