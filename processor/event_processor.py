"""Event normalizer turning raw extractions into canonical events."""
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from processor.date_resolver import DateResolver
from processor.fingerprint import generate_fingerprint
from processor.models import Event, RawExtraction, SourceProfile

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = '...'


class EventNormalizer:
    """Normalizer for validating and canonicalizing raw event text."""

    MAX_TITLE_LENGTH = 150
    MAX_DESCRIPTION_LENGTH = 2000
    MAX_LOCATION_LENGTH = 500
    MAX_URL_LENGTH = 1000
    MAX_CATEGORY_LENGTH = 255
    GENERIC_CATEGORY = 'general'

    def __init__(
        self,
        profiles: Optional[Iterable[SourceProfile]] = None,
        resolver: Optional[DateResolver] = None
    ):
        """
        Initialize the normalizer.

        Args:
            profiles: Per-source vocabularies, looked up by source name
            resolver: Date resolver (default: DateResolver())
        """
        self.profiles: Dict[str, SourceProfile] = {
            profile.name: profile for profile in (profiles or [])
        }
        self.resolver = resolver or DateResolver()

    def normalize_all(
        self,
        raw_items: List[RawExtraction],
        now: datetime,
        fetched_at: Optional[datetime] = None
    ) -> List[Event]:
        """
        Normalize a batch of raw extractions.

        Args:
            raw_items: Raw extractions from one source
            now: Reference time used for date resolution
            fetched_at: Run timestamp stamped on every event (default: now in UTC)

        Returns:
            List of Event objects; rejected items are left out
        """
        fetched_at = fetched_at or datetime.now(timezone.utc)
        events = []

        for raw in raw_items:
            try:
                event = self.normalize(raw, now, fetched_at)
                if event:
                    events.append(event)
            except Exception as e:
                logger.warning(
                    f"Failed to normalize event '{getattr(raw, 'title_text', '')}': {e}"
                )
                continue

        logger.info(
            f"Normalized {len(events)} events out of {len(raw_items)} raw extractions"
        )
        return events

    def normalize(
        self,
        raw: RawExtraction,
        now: datetime,
        fetched_at: datetime
    ) -> Optional[Event]:
        """
        Normalize a single raw extraction.

        Args:
            raw: RawExtraction to normalize
            now: Reference time used for date resolution
            fetched_at: Run timestamp

        Returns:
            Event, or None when the extraction has no usable title
        """
        title = self._clean_title(raw.title_text)
        if not title:
            logger.warning(
                f"Rejected extraction from '{raw.source_name}' with empty title"
            )
            return None

        source = (raw.source_name or '').strip()
        profile = self._profile_for(source)

        title = title[:self.MAX_TITLE_LENGTH].strip()
        description = self.truncate(
            (raw.description_text or '').strip(), self.MAX_DESCRIPTION_LENGTH
        )
        start_raw = (raw.date_text or '').strip()
        location = (raw.location_text or '').strip() or profile.location_fallback
        url = (raw.url_text or '').strip()
        category = self.categorize(title, description, profile)

        return Event(
            title=title,
            description=description,
            start_raw=start_raw,
            start_resolved=self.resolver.resolve(start_raw, now),
            location=location[:self.MAX_LOCATION_LENGTH],
            url=url[:self.MAX_URL_LENGTH],
            category_hint=category[:self.MAX_CATEGORY_LENGTH],
            source=source,
            fetched_at=fetched_at,
            fingerprint=generate_fingerprint(title, start_raw, description, source)
        )

    def categorize(self, title: str, description: str, profile: SourceProfile) -> str:
        """
        Pick a category by ordered keyword containment.

        Args:
            title: Normalized title
            description: Normalized description
            profile: Vocabulary of the event's source

        Returns:
            Category of the first matching rule, else the profile default
        """
        text = f"{title} {description}".lower()
        for keywords, category in profile.category_rules:
            if any(keyword in text for keyword in keywords):
                return category
        return profile.default_category

    @staticmethod
    def truncate(text: str, limit: int) -> str:
        """Cut text to limit characters, marking the cut with '...'."""
        if len(text) <= limit:
            return text
        return text[:limit - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER

    def _profile_for(self, source: str) -> SourceProfile:
        profile = self.profiles.get(source)
        if profile is None:
            profile = SourceProfile(
                name=source,
                location_fallback=source,
                default_category=self.GENERIC_CATEGORY
            )
        return profile

    @staticmethod
    def _clean_title(title: Optional[str]) -> str:
        return re.sub(r'\s+', ' ', title or '').strip()
