"""Airtable client replicating the event set into the RawEvents table."""
import logging
import os
import time
from typing import Callable, Dict, List, Optional, Tuple

import requests

from processor.models import Event, SyncResult

logger = logging.getLogger(__name__)


class AirtableClient:
    """Full-replace synchronization of events into Airtable."""

    API_URL = 'https://api.airtable.com/v0'
    TABLE_NAME = 'RawEvents'
    BATCH_SIZE = 10  # Airtable per-request record limit
    BATCH_DELAY = 0.2  # seconds between batches
    MAX_ATTEMPTS = 3
    DEFAULT_RETRY_AFTER = 30  # seconds
    MAX_BACKOFF = 10  # seconds
    REQUIRED_FIELDS = [
        'source_name', 'title_raw', 'description_raw', 'start_raw',
        'location_raw', 'url_raw', 'category_hint', 'fetched_at', 'hash'
    ]
    FIELD_LIMITS = {
        'source_name': 255,
        'title_raw': 1000,
        'description_raw': 2000,
        'start_raw': 255,
        'location_raw': 500,
        'url_raw': 1000,
        'category_hint': 255,
        'hash': 255,
    }

    def __init__(
        self,
        token: Optional[str],
        base_id: Optional[str],
        timeout: int = 30,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the Airtable client.

        Args:
            token: Personal access token; sync is skipped when missing
            base_id: Airtable base identifier; sync is skipped when missing
            timeout: HTTP request timeout in seconds (default: 30)
            session: requests session (default: a new one)
            sleep: Sleep function used for rate limiting and backoff
        """
        self.token = token
        self.base_id = base_id
        self.timeout = timeout
        self.session = session or requests.Session()
        self.sleep = sleep

    @classmethod
    def from_env(cls, **kwargs) -> 'AirtableClient':
        return cls(
            token=os.environ.get('AIRTABLE_TOKEN'),
            base_id=os.environ.get('AIRTABLE_BASE_ID'),
            **kwargs
        )

    @property
    def has_credentials(self) -> bool:
        return bool(self.token and self.base_id)

    @property
    def table_url(self) -> str:
        return f"{self.API_URL}/{self.base_id}/{self.TABLE_NAME}"

    def verify_setup(self) -> bool:
        """
        Verify the base is reachable and RawEvents has the expected columns.

        Returns:
            True when sync can proceed, False otherwise
        """
        if not self.has_credentials:
            logger.warning("Airtable credentials missing, sync disabled")
            return False

        try:
            logger.info("Verifying Airtable setup")
            response = self._request(
                'GET', f"{self.API_URL}/meta/bases/{self.base_id}/tables"
            )
            if not response.ok:
                raise RuntimeError(
                    f"Base access failed: {response.status_code} {response.reason}"
                )

            tables = response.json().get('tables', [])
            table = next((t for t in tables if t.get('name') == self.TABLE_NAME), None)
            if table is None:
                raise RuntimeError(f"{self.TABLE_NAME} table not found in base")

            field_names = [f.get('name') for f in table.get('fields', [])]
            missing = [name for name in self.REQUIRED_FIELDS if name not in field_names]
            if missing:
                raise RuntimeError(
                    f"Missing fields in {self.TABLE_NAME} table: {', '.join(missing)}"
                )

            probe = self._request('GET', self.table_url, params={'maxRecords': 1})
            if not probe.ok:
                raise RuntimeError(f"Read permission test failed: {probe.status_code}")

        except (requests.RequestException, RuntimeError, ValueError) as e:
            logger.error(f"Airtable setup verification failed: {e}")
            return False

        logger.info(
            f"Airtable connection verified: {len(tables)} tables, "
            f"{self.TABLE_NAME} has {len(field_names)} fields"
        )
        return True

    def sync(self, events: List[Event]) -> SyncResult:
        """
        Replace the RawEvents table contents with events.

        Existing records are deleted first, then events are inserted in
        their given order. Failed batches are counted, not raised.

        Args:
            events: Events in chronological order

        Returns:
            SyncResult with sent, skipped, cleared and failed batch counts
        """
        if not self.has_credentials:
            message = 'Airtable credentials not provided. Required: AIRTABLE_TOKEN, AIRTABLE_BASE_ID'
            logger.warning(message)
            return SyncResult(status='skipped', skipped=len(events), message=message)

        start_time = time.monotonic()
        logger.info(f"Starting Airtable sync for {len(events)} events")

        cleared, clear_errors = self.clear_all()

        valid_events = [event for event in events if event.title and event.title.strip()]
        if len(valid_events) != len(events):
            logger.warning(
                f"Filtered out {len(events) - len(valid_events)} events with empty titles"
            )

        sent, insert_errors = self.insert_events(valid_events)

        duration = round(time.monotonic() - start_time, 2)
        logger.info(
            f"Airtable sync complete: {sent} sent, {insert_errors} batch errors, "
            f"{cleared} cleared ({duration}s)"
        )
        return SyncResult(
            status='completed',
            sent=sent,
            skipped=len(events) - len(valid_events),
            cleared=cleared,
            errors=clear_errors + insert_errors
        )

    def list_records(self) -> List[Dict]:
        """
        Fetch every record of the table, following pagination offsets.

        Raises:
            requests.HTTPError: If a page cannot be fetched
        """
        records = []
        offset = None

        while True:
            params = {'offset': offset} if offset else None
            response = self._request('GET', self.table_url, params=params)
            response.raise_for_status()

            payload = response.json()
            records.extend(payload.get('records', []))
            offset = payload.get('offset')
            if not offset:
                break

        logger.info(f"Fetched {len(records)} existing records")
        return records

    def clear_all(self) -> Tuple[int, int]:
        """
        Delete every existing record in batches of 10.

        Returns:
            Tuple of (records deleted, failed batches)
        """
        try:
            records = self.list_records()
        except requests.HTTPError as e:
            if e.response is not None and e.response.status_code == 404:
                logger.info("Table is empty or doesn't exist yet")
                return 0, 0
            logger.warning(f"Error listing records, continuing without clearing: {e}")
            return 0, 1
        except requests.RequestException as e:
            logger.warning(f"Error listing records, continuing without clearing: {e}")
            return 0, 1

        if not records:
            logger.info("No existing records to clear")
            return 0, 0

        record_ids = [record['id'] for record in records]
        deleted = 0
        errors = 0
        total_batches = (len(record_ids) + self.BATCH_SIZE - 1) // self.BATCH_SIZE

        for i in range(0, len(record_ids), self.BATCH_SIZE):
            batch = record_ids[i:i + self.BATCH_SIZE]
            batch_number = i // self.BATCH_SIZE + 1

            try:
                response = self._request('DELETE', self.table_url, params={'records[]': batch})
                if response.ok:
                    count = len(response.json().get('records', []))
                    deleted += count
                    logger.info(f"Cleared batch {batch_number}/{total_batches} ({count} records)")
                else:
                    errors += 1
                    logger.error(
                        f"Failed to clear batch {batch_number}: "
                        f"{response.status_code} - {response.text}"
                    )
            except requests.RequestException as e:
                errors += 1
                logger.error(f"Error clearing batch {batch_number}: {e}")

            if i + self.BATCH_SIZE < len(record_ids):
                self.sleep(self.BATCH_DELAY)

        logger.info(f"Cleared {deleted}/{len(record_ids)} records")
        return deleted, errors

    def insert_events(self, events: List[Event]) -> Tuple[int, int]:
        """
        Insert events in batches of 10, preserving their order.

        Returns:
            Tuple of (records created, failed batches)
        """
        sent = 0
        errors = 0
        total_batches = (len(events) + self.BATCH_SIZE - 1) // self.BATCH_SIZE

        for i in range(0, len(events), self.BATCH_SIZE):
            batch = events[i:i + self.BATCH_SIZE]
            batch_number = i // self.BATCH_SIZE + 1
            records = [{'fields': self.event_to_fields(event)} for event in batch]

            try:
                response = self._request('POST', self.table_url, json={'records': records})
                if response.ok:
                    count = len(response.json().get('records', []))
                    sent += count
                    logger.info(f"Sent batch {batch_number}/{total_batches} ({count} records)")
                else:
                    errors += 1
                    logger.error(
                        f"Airtable API error for batch {batch_number}: "
                        f"{response.status_code} - {response.text}"
                    )
            except requests.RequestException as e:
                errors += 1
                logger.error(f"Error sending batch {batch_number}: {e}")

            if i + self.BATCH_SIZE < len(events):
                self.sleep(self.BATCH_DELAY)

        return sent, errors

    def event_to_fields(self, event: Event) -> Dict[str, str]:
        """Convert an Event to a RawEvents record, bounding field lengths."""
        fields = event.to_record()
        for name, limit in self.FIELD_LIMITS.items():
            fields[name] = str(fields.get(name) or '')[:limit]
        if not fields['source_name']:
            fields['source_name'] = 'Unknown Source'
        return fields

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """
        Send a request with rate-limit and transient-error retries.

        429 waits for Retry-After; 5xx and network errors back off
        exponentially. Other responses are returned as-is.

        Raises:
            requests.RequestException: If the last attempt fails at network level
        """
        headers = {
            'Authorization': f"Bearer {self.token}",
            'Content-Type': 'application/json'
        }

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            last_attempt = attempt == self.MAX_ATTEMPTS
            try:
                response = self.session.request(
                    method, url, headers=headers, timeout=self.timeout, **kwargs
                )
            except requests.RequestException as e:
                if last_attempt:
                    raise
                delay = self._backoff(attempt)
                logger.warning(
                    f"Network error, retrying in {delay}s ({attempt}/{self.MAX_ATTEMPTS}): {e}"
                )
                self.sleep(delay)
                continue

            if response.status_code == 429 and not last_attempt:
                retry_after = self._retry_after(response)
                logger.warning(
                    f"Rate limited, waiting {retry_after}s before retry "
                    f"{attempt}/{self.MAX_ATTEMPTS}"
                )
                self.sleep(retry_after)
                continue

            if response.status_code >= 500 and not last_attempt:
                delay = self._backoff(attempt)
                logger.warning(
                    f"Server error {response.status_code}, retrying in {delay}s "
                    f"({attempt}/{self.MAX_ATTEMPTS})"
                )
                self.sleep(delay)
                continue

            return response

    def _backoff(self, attempt: int) -> float:
        return min(2 ** attempt, self.MAX_BACKOFF)

    def _retry_after(self, response: requests.Response) -> float:
        try:
            return float(response.headers.get('Retry-After', self.DEFAULT_RETRY_AFTER))
        except ValueError:
            return self.DEFAULT_RETRY_AFTER
