"""Structured import log.

Every importer run records an append-only list of ``LogEvent`` objects.
The events are rendered to the line-oriented transcript only at the
boundary (``render()`` / ``flush()``)::

    > start add tables
      > add table: widget ... done
      > create index: widget_name_idx ... done
      > add table: broken ...  | Error(1) [table exists] in /app/db.py:42 !!!
    # end add tables

Each event is also emitted to the ``db_importer.log`` logger as it is
recorded, so a configured logging handler sees progress live.

Usage:
    log = ImportLog()
    with log.section("add tables"):
        step = log.begin("add table: widget")
        log.done(step)
    log.flush(show=True)
"""

import json
import logging
import sys
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_LOG_FILE = "cache/logs/Importer.log"


class EventKind(str, Enum):
    SECTION_START = "section_start"
    SECTION_END = "section_end"
    STEP = "step"
    DETAIL = "detail"
    ERROR = "error"


class Outcome(str, Enum):
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


class LogEvent(BaseModel):
    """One entry of the import log.

    Steps start ``PENDING`` and are settled exactly once by
    ``ImportLog.done()`` or ``ImportLog.fail()``.
    """

    kind: EventKind
    message: str
    depth: int = 0
    outcome: Outcome | None = None
    code: int | None = None
    error_class: str | None = None
    error_message: str | None = None
    statement: str | None = None
    location: str | None = None

    def render(self) -> str:
        indent = "  " * self.depth
        if self.kind == EventKind.SECTION_START:
            return f"> start {self.message}"
        if self.kind == EventKind.SECTION_END:
            return f"# end {self.message}"
        if self.kind == EventKind.DETAIL:
            return f"{indent}> {self.message} "
        if self.kind == EventKind.ERROR:
            return f"{indent} > Error: {self.message} !!!"

        line = f"{indent}> {self.message} ... "
        if self.outcome == Outcome.DONE:
            return line + "done"
        if self.outcome == Outcome.FAILED:
            return (
                f"{line} | Error({self.code}) [{self.error_message}] "
                f"in {self.location} !!!"
            )
        return line


def error_location(error: BaseException) -> str:
    """``file:line`` where *error* (or the error it wraps) was raised."""
    origin = error.__cause__ or error
    if origin.__traceback__ is None:
        origin = error
    if origin.__traceback__ is None:
        return "<unknown>:0"
    frame = traceback.extract_tb(origin.__traceback__)[-1]
    return f"{frame.filename}:{frame.lineno}"


class ImportLog:
    """Append-only event log of one importer run."""

    def __init__(self, log_file: str | Path = DEFAULT_LOG_FILE) -> None:
        self.log_file = Path(log_file)
        self.events: list[LogEvent] = []

    def _append(self, event: LogEvent) -> LogEvent:
        self.events.append(event)
        return event

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def start_section(self, title: str) -> None:
        self._append(LogEvent(kind=EventKind.SECTION_START, message=title))
        logger.info(f"start {title}")

    def end_section(self, title: str) -> None:
        self._append(LogEvent(kind=EventKind.SECTION_END, message=title))
        logger.info(f"end {title}")

    @contextmanager
    def section(self, title: str) -> Iterator["ImportLog"]:
        """Bracket a group of steps with start/end markers.

        The end marker is only written when the block completes; an aborted
        run leaves the section open, as the transcript shows.
        """
        self.start_section(title)
        yield self
        self.end_section(title)

    def begin(self, message: str, depth: int = 1) -> LogEvent:
        """Record the start of a step and return it for settling."""
        return self._append(
            LogEvent(kind=EventKind.STEP, message=message, depth=depth, outcome=Outcome.PENDING)
        )

    def done(self, step: LogEvent) -> None:
        step.outcome = Outcome.DONE
        logger.info(f"{step.message} ... done")

    def fail(self, step: LogEvent, error: BaseException, code: int) -> None:
        """Settle *step* as failed with the error's code and origin."""
        origin = error.__cause__ or error
        step.outcome = Outcome.FAILED
        step.code = int(code)
        step.error_class = type(origin).__name__
        step.error_message = str(origin)
        step.statement = getattr(error, "statement", None)
        step.location = error_location(error)
        logger.error(f"{step.message} failed: Error({code}) {step.error_message}")

    def detail(self, message: str, depth: int = 2) -> None:
        """Record an informational sub-line (e.g. an applied override)."""
        self._append(LogEvent(kind=EventKind.DETAIL, message=message, depth=depth))
        logger.debug(message)

    def error(self, message: str, depth: int = 1, code: int | None = None) -> None:
        """Record a standalone error line not tied to a step."""
        self._append(LogEvent(kind=EventKind.ERROR, message=message, depth=depth, code=code))
        logger.error(message)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def failures(self) -> list[LogEvent]:
        """Failed steps and standalone error lines, in order."""
        return [
            e
            for e in self.events
            if e.outcome == Outcome.FAILED or e.kind == EventKind.ERROR
        ]

    @property
    def has_errors(self) -> bool:
        return bool(self.failures)

    def error_codes(self) -> list[int]:
        return [e.code for e in self.failures if e.code is not None]

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def render(self) -> str:
        """The human-readable transcript."""
        return "".join(event.render() + "\n" for event in self.events)

    def to_json(self) -> str:
        """The events as a JSON array."""
        return json.dumps([e.model_dump(mode="json") for e in self.events], indent=2)

    def flush(self, show: bool = True) -> Path | None:
        """Print the transcript or append it to the log file.

        Args:
            show: True writes to stdout; False appends to ``log_file``,
                creating its parent directory if needed.

        Returns:
            The log file path when written, otherwise None.
        """
        text = self.render()
        if show:
            sys.stdout.write(text)
            sys.stdout.flush()
            return None

        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_file, "a", encoding="utf-8") as f:
            f.write(text)
        logger.info(f"Import log written to {self.log_file}")
        return self.log_file
