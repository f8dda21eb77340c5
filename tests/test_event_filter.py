"""Unit tests for the run-scoped event filter and ordering."""
from datetime import datetime, timezone

import pytest

from processor.event_filter import EventFilter, SeenFingerprints, sort_events
from processor.fingerprint import generate_fingerprint
from processor.models import UNRESOLVED_DATE, Event

NOW = datetime(2025, 6, 15, 9, 30)


def make_event(title, start_resolved, source='Library', description=''):
    """Create an Event with a fingerprint derived from its fields."""
    start_raw = start_resolved.strftime('%B %d')
    return Event(
        title=title,
        description=description,
        start_raw=start_raw,
        start_resolved=start_resolved,
        location='Somewhere',
        url='',
        category_hint='general',
        source=source,
        fetched_at=datetime(2025, 6, 15, tzinfo=timezone.utc),
        fingerprint=generate_fingerprint(title, start_raw, description, source)
    )


@pytest.fixture
def event_filter():
    return EventFilter()


class TestEventFilter:
    """Test cases for EventFilter class."""

    def test_drops_duplicates_within_batch(self, event_filter):
        """Test that repeated fingerprints keep only the first occurrence."""
        seen = SeenFingerprints()
        first = make_event('Storytime', datetime(2025, 7, 1))
        again = make_event('Storytime', datetime(2025, 7, 1))
        other = make_event('Book Club', datetime(2025, 7, 2))

        result = event_filter.apply([first, again, other], seen, NOW)

        assert result.events == [first, other]
        assert result.duplicates == 1
        assert len(seen) == 2

    def test_drops_duplicates_across_sources_calls(self, event_filter):
        """Test that the seen-set carries over between calls in a run."""
        seen = SeenFingerprints()
        event = make_event('Storytime', datetime(2025, 7, 1))

        event_filter.apply([event], seen, NOW)
        result = event_filter.apply([event], seen, NOW)

        assert result.events == []
        assert result.duplicates == 1

    def test_drops_past_events(self, event_filter):
        """Test that events before today are removed."""
        seen = SeenFingerprints()
        past = make_event('Yesterday', datetime(2025, 6, 14, 20, 0))
        today = make_event('Earlier Today', datetime(2025, 6, 15, 8, 0))

        result = event_filter.apply([past, today], seen, NOW)

        assert result.events == [today]
        assert result.past == 1

    def test_past_events_not_recorded_as_seen(self, event_filter):
        """Test that a dropped past event does not enter the seen-set."""
        seen = SeenFingerprints()
        past = make_event('Yesterday', datetime(2025, 6, 14))

        event_filter.apply([past], seen, NOW)

        assert past.fingerprint not in seen

    def test_keeps_unresolved_dates(self, event_filter):
        """Test that sentinel-dated events survive the time filter."""
        seen = SeenFingerprints()
        unknown = make_event('Someday', UNRESOLVED_DATE)

        result = event_filter.apply([unknown], seen, NOW)

        assert result.events == [unknown]

    def test_future_only_disabled_keeps_past(self, event_filter):
        """Test that past events pass when future_only is off."""
        seen = SeenFingerprints()
        past = make_event('Yesterday', datetime(2025, 6, 14))

        result = event_filter.apply([past], seen, NOW, future_only=False)

        assert result.events == [past]
        assert result.past == 0

    def test_preserves_input_order(self, event_filter):
        """Test that the filter is stable and does not sort."""
        seen = SeenFingerprints()
        later = make_event('Later', datetime(2025, 9, 1))
        sooner = make_event('Sooner', datetime(2025, 7, 1))

        result = event_filter.apply([later, sooner], seen, NOW)

        assert result.events == [later, sooner]

    def test_fingerprints_pairwise_distinct(self, event_filter):
        """Test that no two accepted events share a fingerprint."""
        seen = SeenFingerprints()
        events = [
            make_event(f'Event {i % 4}', datetime(2025, 7, 1 + i % 4))
            for i in range(20)
        ]

        result = event_filter.apply(events, seen, NOW)

        fingerprints = [event.fingerprint for event in result.events]
        assert len(fingerprints) == len(set(fingerprints)) == 4


class TestSortEvents:
    """Test cases for chronological ordering."""

    def test_sorts_ascending_with_sentinel_last(self):
        """Test chronological order with unresolved events at the end."""
        unknown = make_event('Someday', UNRESOLVED_DATE)
        august = make_event('August', datetime(2025, 8, 1))
        july = make_event('July', datetime(2025, 7, 1))

        ordered = sort_events([unknown, august, july])

        assert ordered == [july, august, unknown]

    def test_ties_keep_accumulation_order(self):
        """Test that the sort is stable for equal instants."""
        first = make_event('First', datetime(2025, 7, 1, 10, 0))
        second = make_event('Second', datetime(2025, 7, 1, 10, 0), source='Chamber')
        third = make_event('Third', datetime(2025, 7, 1, 10, 0), source='Fire')

        ordered = sort_events([first, second, third])

        assert ordered == [first, second, third]

    def test_sorting_twice_is_identical(self):
        """Test that sorting is idempotent."""
        events = [
            make_event(f'Event {i}', datetime(2025, 7, 1 + (i * 7) % 28))
            for i in range(12)
        ]

        once = sort_events(events)

        assert sort_events(once) == once
        assert all(a.start_resolved <= b.start_resolved for a, b in zip(once, once[1:]))
