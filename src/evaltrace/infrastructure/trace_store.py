"""
Trace Recorder

Keeps an append-only record of every execution in a run and persists it as
<traces_dir>/<trace_id>.json once the run completes.
"""

from __future__ import annotations

import json
import logging
import os
import random
import string
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path

from evaltrace.domain.entities import ExecutionRecord, RunSummary, Trace

logger = logging.getLogger(__name__)

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


class TraceNotFoundError(Exception):
    """No persisted trace exists for the requested id"""
    pass


class TraceSealedError(Exception):
    """Attempted to modify a trace that has already been saved"""
    pass


class TraceCorruptError(Exception):
    """A persisted trace exists but cannot be parsed"""
    pass


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_trace_id() -> str:
    """Epoch milliseconds plus a random suffix (sortable by creation time)"""
    suffix = "".join(random.choices(_SUFFIX_ALPHABET, k=6))
    return f"{int(time.time() * 1000)}-{suffix}"


class TraceRecorder:
    """Creates, appends to, seals and loads run traces"""

    def __init__(self, traces_dir: str | Path = "traces") -> None:
        self.traces_dir = Path(traces_dir)

    def create(self, definition) -> Trace:
        """
        Start a trace for an eval definition

        Args:
            definition: EvalDefinition (anything with name and to_dict())
        """
        return Trace(
            id=new_trace_id(),
            eval_name=definition.name,
            started_at=_now_iso(),
            config=definition.to_dict(),
        )

    def append(self, trace: Trace, record: ExecutionRecord) -> None:
        """Append a record, stamping it with the current UTC time"""
        if trace.sealed:
            raise TraceSealedError(f"Trace {trace.id} is sealed")
        record.timestamp = _now_iso()
        trace.results.append(record)

    def seal(self, trace: Trace, summary: RunSummary) -> Path | None:
        """
        Complete and save the trace

        Returns:
            Path of the written file, or None when the write failed
        """
        if trace.sealed:
            raise TraceSealedError(f"Trace {trace.id} is already sealed")
        trace.completed_at = _now_iso()
        trace.summary = summary
        trace.sealed = True

        try:
            # Evaluator details may hold values JSON cannot represent
            content = json.dumps(trace.to_dict(), ensure_ascii=False, indent=2, default=str)
        except (TypeError, ValueError) as e:
            logger.warning("Failed to serialize trace %s: %s", trace.id, e)
            return None

        filepath = self.traces_dir / f"{trace.id}.json"
        try:
            self.traces_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.traces_dir, prefix=f".{trace.id}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                os.replace(tmp_name, filepath)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.warning("Failed to save trace %s: %s", trace.id, e)
            return None
        return filepath

    def load(self, trace_id: str) -> Trace:
        """
        Load a trace by id

        Raises:
            TraceNotFoundError: If no trace file exists
            TraceCorruptError: If the file cannot be read or parsed
        """
        filepath = self.traces_dir / f"{trace_id}.json"
        if not filepath.exists():
            raise TraceNotFoundError(f"Trace not found: {trace_id}")
        try:
            with open(filepath, encoding="utf-8") as f:
                return Trace.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise TraceCorruptError(f"Trace {trace_id} is unreadable: {e}") from e

    def list_traces(self) -> list[dict]:
        """Summaries of all traces, most recent first"""
        if not self.traces_dir.exists():
            return []

        summaries = []
        for path in sorted(self.traces_dir.glob("*.json"), reverse=True):
            try:
                with open(path, encoding="utf-8") as f:
                    data = json.load(f)
                summary = data.get("summary") or {}
                summaries.append({
                    "id": data["id"],
                    "eval_name": data.get("eval_name"),
                    "started_at": data.get("started_at"),
                    "completed_at": data.get("completed_at"),
                    "passed": summary.get("passed", 0),
                    "failed": summary.get("failed", 0),
                    "total": len(data.get("results", [])),
                })
            except (OSError, json.JSONDecodeError, KeyError, TypeError, AttributeError):
                summaries.append({"id": path.stem, "error": "Failed to parse"})
        return summaries

    def recent_traces(self, eval_name: str, limit: int = 10) -> list[dict]:
        """Most recent trace summaries for one eval"""
        return [t for t in self.list_traces() if t.get("eval_name") == eval_name][:limit]
