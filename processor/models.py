"""Data models for event processing."""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple


MAX_EVENTS_LIMIT = 1000
DEFAULT_MAX_EVENTS = 300
DEFAULT_TOWNS = ('West Islip',)

# Placeholder for dates that could not be parsed; sorts after every real date
UNRESOLVED_DATE = datetime(2099, 12, 31)


@dataclass
class RawExtraction:
    """Unstructured text pulled from a source page."""
    title_text: str = ''
    description_text: str = ''
    date_text: str = ''
    location_text: str = ''
    url_text: str = ''
    source_name: str = ''


@dataclass(frozen=True)
class SourceProfile:
    """Normalization vocabulary for one source."""
    name: str
    location_fallback: str
    default_category: str
    category_rules: Tuple[Tuple[Tuple[str, ...], str], ...] = ()


@dataclass(frozen=True)
class Event:
    """Canonical, fingerprinted event."""
    title: str
    description: str
    start_raw: str
    start_resolved: datetime
    location: str
    url: str
    category_hint: str
    source: str
    fetched_at: datetime
    fingerprint: str

    @property
    def is_date_resolved(self) -> bool:
        return self.start_resolved != UNRESOLVED_DATE

    def to_record(self) -> Dict[str, str]:
        """Map the event onto the RawEvents column names."""
        return {
            'source_name': self.source,
            'title_raw': self.title,
            'description_raw': self.description,
            'start_raw': self.start_raw,
            'location_raw': self.location,
            'url_raw': self.url,
            'category_hint': self.category_hint,
            'fetched_at': self.fetched_at.isoformat().replace('+00:00', 'Z'),
            'hash': self.fingerprint,
        }


@dataclass
class SourceOutcome:
    """Result of running one source extraction."""
    source: str
    town: str
    success: bool
    count: int = 0
    original_count: int = 0
    duration_seconds: float = 0.0
    error: Optional[str] = None


@dataclass
class SyncResult:
    """Result of sync operation."""
    status: str
    sent: int = 0
    skipped: int = 0
    cleared: int = 0
    errors: int = 0
    message: Optional[str] = None


@dataclass
class RunSummary:
    """Summary of one pipeline run, persisted as the latest run record."""
    scraped_at: str
    total_found: int
    total_after_filtering: int
    towns: List[str]
    sources: Dict[str, SourceOutcome]
    sync: SyncResult
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RunConfig:
    """Run input merged with environment defaults."""
    debug: bool = False
    max_events: int = DEFAULT_MAX_EVENTS
    towns: List[str] = field(default_factory=lambda: list(DEFAULT_TOWNS))
    sources: List[str] = field(default_factory=list)
    future_only: bool = True
    source_timeout: float = 60.0
    source_delay: float = 3.0

    @classmethod
    def from_input(cls, payload: Optional[Dict[str, Any]], **overrides) -> 'RunConfig':
        """
        Build a RunConfig from the run input payload.

        Args:
            payload: Input dict using the camelCase keys of the run input
            **overrides: Values taken from the environment (timeouts, delays)

        Returns:
            RunConfig with maxEvents capped at MAX_EVENTS_LIMIT
        """
        payload = payload or {}
        max_events = payload.get('maxEvents') or DEFAULT_MAX_EVENTS
        config = cls(
            debug=bool(payload.get('debug', False)),
            max_events=max(1, min(int(max_events), MAX_EVENTS_LIMIT)),
            towns=list(payload.get('towns') or DEFAULT_TOWNS),
            sources=list(payload.get('sources') or []),
            future_only=payload.get('futureOnly') is not False,
        )
        for name, value in overrides.items():
            if value is not None:
                setattr(config, name, value)
        return config
