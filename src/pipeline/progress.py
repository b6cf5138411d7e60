from __future__ import annotations

import sys
import traceback
from typing import Callable, List, Optional, TextIO, Tuple


ProgressReporter = Callable[[str, int], None]


class SafeReporter:
    """Fire-and-forget wrapper around a caller's progress sink.

    - Never raises into the pipeline (a broken sink is reported once to stderr)
    - Keeps the last (message, count) for status queries
    """

    def __init__(self, sink: Optional[ProgressReporter] = None) -> None:
        self._sink = sink
        self._warned = False
        self.last: Optional[Tuple[str, int]] = None

    def __call__(self, message: str, count: int) -> None:
        self.report(message, count)

    def report(self, message: str, count: int) -> None:
        self.last = (message, int(count))
        if self._sink is None:
            return
        try:
            self._sink(message, int(count))
        except Exception:
            if not self._warned:
                self._warned = True
                print("⚠️  progress sink raised; further sink errors are ignored", file=sys.stderr)
                traceback.print_exc(file=sys.stderr)


class RecordingReporter:
    """Keeps every report in memory (used by tests and the CLI summary)."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, int]] = []

    def __call__(self, message: str, count: int) -> None:
        self.events.append((message, count))

    @property
    def counts(self) -> List[int]:
        return [c for _, c in self.events]


def console_reporter(stream: Optional[TextIO] = None) -> ProgressReporter:
    out = stream or sys.stdout

    def _report(message: str, count: int) -> None:
        print(f"[{count:>5}] {message}", file=out, flush=True)

    return _report
