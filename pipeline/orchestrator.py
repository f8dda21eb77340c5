"""Pipeline orchestrator sequencing sources, filtering and sync."""
import logging
import time
from contextlib import AbstractContextManager
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from processor.event_filter import EventFilter, SeenFingerprints, sort_events
from processor.event_processor import EventNormalizer
from processor.models import Event, RunConfig, RunSummary, SourceOutcome, SyncResult
from scraper.source_runner import SourceRunner, SourceTask
from scraper.towns import enabled_sources
from storage.airtable_client import AirtableClient
from storage.run_store import RunStore

logger = logging.getLogger(__name__)


class FatalRunError(Exception):
    """Raised when the run cannot continue at all."""


class PipelineOrchestrator:
    """Runs every enabled source in turn and replicates the result."""

    def __init__(
        self,
        config: RunConfig,
        page_factory: Callable[[], AbstractContextManager],
        sync_client: Optional[AirtableClient],
        run_store: RunStore,
        tasks: Optional[List[SourceTask]] = None,
        runner: Optional[SourceRunner] = None,
        event_filter: Optional[EventFilter] = None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Run configuration
            page_factory: Returns a context manager yielding the page collaborator
            sync_client: Airtable client, or None to disable sync
            run_store: Store for the dataset and run records
            tasks: Source tasks (default: resolved from config.towns)
            runner: Source runner (default: SourceRunner(config.source_timeout))
            event_filter: Dedup/time filter (default: EventFilter())
            clock: Returns the local reference time of the run
            sleep: Sleep function used between sources
        """
        self.config = config
        self.page_factory = page_factory
        self.sync_client = sync_client
        self.run_store = run_store
        self.clock = clock
        self.sleep = sleep
        self.now = clock()
        self.tasks = tasks if tasks is not None else enabled_sources(
            config.towns, self.now, config.sources
        )
        self.runner = runner or SourceRunner(timeout=config.source_timeout)
        self.event_filter = event_filter or EventFilter()
        self.normalizer = EventNormalizer(profiles=[task.profile for task in self.tasks])

        self.seen = SeenFingerprints()
        self.accumulated: List[Event] = []
        self.outcomes: Dict[str, SourceOutcome] = {}

    def run(self) -> RunSummary:
        """
        Execute one full run.

        Returns:
            RunSummary that was persisted as the latest run record

        Raises:
            FatalRunError: If the page collaborator cannot be acquired or the
                run fails outside any single source
        """
        logger.info(
            f"Starting run: {len(self.tasks)} sources, max events {self.config.max_events}, "
            f"future only {self.config.future_only}"
        )
        sync_ready = self._verify_sync()

        try:
            with self.page_factory() as page:
                self._scrape_sources(page)
        except Exception as e:
            self._handle_fatal_error(e)
            raise FatalRunError(str(e)) from e

        total_found = len(self.accumulated)
        events = sort_events(self.accumulated[:self.config.max_events])
        if total_found > len(events):
            logger.warning(f"Dropped {total_found - len(events)} events over the cap")

        self._log_results(events)
        self.run_store.push_events(events)

        sync_result = self._sync(events, sync_ready)

        summary = RunSummary(
            scraped_at=datetime.now(timezone.utc).isoformat(),
            total_found=total_found,
            total_after_filtering=len(events),
            towns=sorted({task.town for task in self.tasks}),
            sources=self.outcomes,
            sync=sync_result
        )
        self.run_store.save_summary(summary)
        logger.info(f"Completed: {len(events)} events processed")
        return summary

    def _scrape_sources(self, page) -> None:
        fetched_at = datetime.now(timezone.utc)

        for index, task in enumerate(self.tasks):
            logger.info(f"Source {index + 1}/{len(self.tasks)}: {task.name}")
            source_run = self.runner.run(task, page)

            events = self.normalizer.normalize_all(source_run.raw_items, self.now, fetched_at)
            filtered = self.event_filter.apply(
                events, self.seen, self.now, future_only=self.config.future_only
            )
            self.accumulated.extend(filtered.events)

            outcome = source_run.outcome
            outcome.count = len(filtered.events)
            self.outcomes[task.name] = outcome

            if index < len(self.tasks) - 1:
                self.sleep(self.config.source_delay)

    def _verify_sync(self) -> bool:
        if self.sync_client is None:
            return False
        return self.sync_client.verify_setup()

    def _sync(self, events: List[Event], sync_ready: bool) -> SyncResult:
        if not events:
            logger.warning("No events found, leaving the remote table untouched")
            return SyncResult(status='skipped', message='No events to sync')

        if not sync_ready:
            return SyncResult(
                status='skipped',
                skipped=len(events),
                message='Airtable not configured or verification failed'
            )

        try:
            return self.sync_client.sync(events)
        except Exception as e:
            logger.error(f"Airtable sync failed: {e}", exc_info=True)
            return SyncResult(status='failed', skipped=len(events), message=str(e))

    def _handle_fatal_error(self, error: Exception) -> None:
        logger.error(f"Critical error: {error}", exc_info=True)
        try:
            if self.accumulated:
                self.run_store.push_events(self.accumulated)
                logger.info(f"Saved {len(self.accumulated)} partial results")
            self.run_store.save_error(str(error), len(self.accumulated))
        except Exception as e:
            logger.error(f"Failed to persist error record: {e}")

    def _log_results(self, events: List[Event]) -> None:
        for name, outcome in self.outcomes.items():
            if outcome.success:
                logger.info(f"{name}: {outcome.count} events ({outcome.duration_seconds}s)")
            else:
                logger.info(f"{name}: failed - {outcome.error}")

        for position, event in enumerate(events[:5], start=1):
            logger.info(f"{position}. {event.title[:50]} ({event.source})")
