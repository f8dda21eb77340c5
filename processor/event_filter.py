"""Run-scoped deduplication, time filtering and ordering of events."""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Set

from processor.date_resolver import is_upcoming
from processor.models import Event

logger = logging.getLogger(__name__)


class SeenFingerprints:
    """Fingerprints accepted so far in the current run."""

    def __init__(self):
        self._seen: Set[str] = set()

    def add(self, fingerprint: str) -> None:
        self._seen.add(fingerprint)

    def __contains__(self, fingerprint: str) -> bool:
        return fingerprint in self._seen

    def __len__(self) -> int:
        return len(self._seen)


@dataclass
class FilterResult:
    """Events kept by the filter plus what was dropped."""
    events: List[Event] = field(default_factory=list)
    duplicates: int = 0
    past: int = 0


class EventFilter:
    """Stable filter dropping repeated fingerprints and past events."""

    def apply(
        self,
        events: Iterable[Event],
        seen: SeenFingerprints,
        now: datetime,
        future_only: bool = True
    ) -> FilterResult:
        """
        Filter events against the run's seen-set and the current date.

        Events dated before today are dropped (when future_only is set)
        without being recorded as seen. Accepted events are added to seen.

        Args:
            events: Candidate events in accumulation order
            seen: Run-level fingerprint accumulator, updated in place
            now: Reference time of the run
            future_only: Drop events resolved before today-at-midnight

        Returns:
            FilterResult with the kept events in input order
        """
        result = FilterResult()

        for event in events:
            if future_only and not is_upcoming(event.start_resolved, now):
                result.past += 1
                continue
            if event.fingerprint in seen:
                result.duplicates += 1
                continue
            seen.add(event.fingerprint)
            result.events.append(event)

        if result.past or result.duplicates:
            logger.info(
                f"Filtered out {result.past} past and {result.duplicates} duplicate events"
            )
        return result


def sort_events(events: Iterable[Event]) -> List[Event]:
    """Sort events chronologically; ties keep their accumulation order."""
    return sorted(events, key=lambda event: event.start_resolved)
