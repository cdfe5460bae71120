"""Batch progress reporting.

``Executor.many`` tells its reporter when a batch starts, when each
invocation starts and finishes, and when the batch is over. Invocations
are identified by their 1-based position in the batch, so out-of-order
completions of a parallel batch stay attributable.

Reporters write to stderr by default; stdout belongs to the commands.
"""

import json
import sys
from datetime import datetime, timezone
from typing import Any, TextIO


class ProgressReporter:
    """Reporter interface. The base implementation ignores every event."""

    def on_batch_start(self, total: int, parallel: bool) -> None:
        pass

    def on_invocation_start(self, index: int, label: str, command: str) -> None:
        pass

    def on_invocation_done(
        self,
        index: int,
        label: str,
        command: str,
        duration: float,
        code: int | None = None,
        error: str | None = None,
    ) -> None:
        """Called once per started invocation.

        Args:
            index: 1-based position in the batch
            label: Invocation prefix without padding ("" if none)
            command: Composed command text
            duration: Seconds since the invocation started
            code: Exit status, None if the process never started
            error: Why it failed beyond the exit status, if known
        """

    def on_batch_done(self, total: int, succeeded: int, failed: int, duration: float) -> None:
        """Called when a batch finishes or is aborted; ``total`` counts
        invocations that never ran as well."""


def _succeeded(code: int | None, error: str | None) -> bool:
    return code == 0 and error is None


class TextProgressReporter(ProgressReporter):
    """One line per finished invocation, plus a batch summary.

    Example output::

        3 command(s), parallel
          2/3 ✓ lib $ make test (0.41s)
          1/3 ✗ app $ make test (0.52s) exit 2
          3/3 ✓ web $ make test (0.90s)
        2 succeeded, 1 failed, 0 not run (0.90s)
    """

    def __init__(self, output: TextIO | None = None) -> None:
        self.output = output or sys.stderr
        self.total = 0

    def _emit(self, line: str) -> None:
        print(line, file=self.output, flush=True)

    def on_batch_start(self, total: int, parallel: bool) -> None:
        self.total = total
        self._emit(f"{total} command(s), {'parallel' if parallel else 'sequential'}")

    def on_invocation_done(
        self,
        index: int,
        label: str,
        command: str,
        duration: float,
        code: int | None = None,
        error: str | None = None,
    ) -> None:
        ok = _succeeded(code, error)
        who = f" {label}" if label else ""
        line = f"  {index}/{self.total} {'✓' if ok else '✗'}{who} $ {command} ({duration:.2f}s)"
        if not ok:
            reasons = ([f"exit {code}"] if code is not None else []) + ([error] if error else [])
            line += " " + ", ".join(reasons)
        self._emit(line)

    def on_batch_done(self, total: int, succeeded: int, failed: int, duration: float) -> None:
        not_run = total - succeeded - failed
        self._emit(f"{succeeded} succeeded, {failed} failed, {not_run} not run ({duration:.2f}s)")


class JsonProgressReporter(ProgressReporter):
    """Newline-delimited JSON, one object per event.

    Every object has ``event`` and ``time`` (UTC ISO 8601); durations are
    whole milliseconds.
    """

    def __init__(self, output: TextIO | None = None) -> None:
        self.output = output or sys.stderr

    def _emit(self, event: str, **fields: Any) -> None:
        record = {"event": event, "time": datetime.now(timezone.utc).isoformat()}
        record.update((key, value) for key, value in fields.items() if value is not None)
        print(json.dumps(record), file=self.output, flush=True)

    def on_batch_start(self, total: int, parallel: bool) -> None:
        self._emit("batch_start", total=total, parallel=parallel)

    def on_invocation_start(self, index: int, label: str, command: str) -> None:
        self._emit("invocation_start", index=index, label=label, command=command)

    def on_invocation_done(
        self,
        index: int,
        label: str,
        command: str,
        duration: float,
        code: int | None = None,
        error: str | None = None,
    ) -> None:
        self._emit(
            "invocation_done",
            index=index,
            label=label,
            command=command,
            ok=_succeeded(code, error),
            code=code,
            error=error,
            duration_ms=int(duration * 1000),
        )

    def on_batch_done(self, total: int, succeeded: int, failed: int, duration: float) -> None:
        self._emit(
            "batch_done",
            total=total,
            succeeded=succeeded,
            failed=failed,
            not_run=total - succeeded - failed,
            duration_ms=int(duration * 1000),
        )


def create_progress_reporter(
    enabled: bool,
    json_format: bool = False,
    output: TextIO | None = None,
) -> ProgressReporter:
    """Reporter for the CLI's --progress / --format flags."""
    if not enabled:
        return ProgressReporter()
    if json_format:
        return JsonProgressReporter(output)
    return TextProgressReporter(output)
