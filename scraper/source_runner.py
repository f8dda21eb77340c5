"""Run one source extraction under a wall-clock timeout."""
import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from processor.models import RawExtraction, SourceOutcome, SourceProfile

logger = logging.getLogger(__name__)


@dataclass
class SourceTask:
    """One curated source: its extraction function and vocabulary."""
    name: str
    town: str
    extract: Callable[[Any], List[RawExtraction]]
    profile: SourceProfile
    enabled: bool = True


@dataclass
class SourceRun:
    """Raw items returned by a source together with its outcome."""
    raw_items: List[RawExtraction] = field(default_factory=list)
    outcome: Optional[SourceOutcome] = None


class SourceTimeoutError(Exception):
    """Raised when a source extraction does not finish in time."""


class SourceRunner:
    """Executes source tasks, converting every failure into an outcome."""

    def __init__(self, timeout: float = 60.0):
        """
        Initialize the runner.

        Args:
            timeout: Seconds allowed per source (default: 60)
        """
        self.timeout = timeout

    def run(self, task: SourceTask, page: Any) -> SourceRun:
        """
        Run a source extraction against the page collaborator.

        Raised errors, timeouts and non-list results all yield a failed
        outcome with no items; they never propagate.

        Args:
            task: Source to extract
            page: Page collaborator handed to the extraction function

        Returns:
            SourceRun with raw items and the outcome
        """
        start_time = time.monotonic()
        logger.info(f"Scraping {task.name} ({task.town})")

        try:
            result = self._call_with_timeout(task.extract, page)
            if not isinstance(result, list):
                raise TypeError(f"Invalid data type: {type(result).__name__}")
        except Exception as e:
            duration = round(time.monotonic() - start_time, 2)
            logger.error(f"{task.name} error after {duration}s: {e}")
            return SourceRun(
                raw_items=[],
                outcome=SourceOutcome(
                    source=task.name,
                    town=task.town,
                    success=False,
                    duration_seconds=duration,
                    error=str(e)
                )
            )

        duration = round(time.monotonic() - start_time, 2)
        logger.info(f"{task.name}: {len(result)} raw events ({duration}s)")
        return SourceRun(
            raw_items=result,
            outcome=SourceOutcome(
                source=task.name,
                town=task.town,
                success=True,
                count=len(result),
                original_count=len(result),
                duration_seconds=duration
            )
        )

    def _call_with_timeout(self, func: Callable[[Any], Any], arg: Any) -> Any:
        """
        Race func(arg) on a worker thread against the timeout.

        The worker is a daemon thread and is abandoned on timeout, not
        cancelled; its eventual result is discarded.
        """
        outbox: queue.Queue = queue.Queue(maxsize=1)

        def worker():
            try:
                outbox.put(('ok', func(arg)))
            except BaseException as e:
                outbox.put(('error', e))

        thread = threading.Thread(target=worker, name='source-extract', daemon=True)
        thread.start()

        try:
            status, value = outbox.get(timeout=self.timeout)
        except queue.Empty:
            raise SourceTimeoutError(f"Source timeout after {self.timeout}s")

        if status == 'error':
            raise value
        return value
