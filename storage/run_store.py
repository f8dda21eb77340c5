"""DynamoDB store for run artifacts: latest run records and the event dataset."""
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from processor.models import Event, RunSummary

logger = logging.getLogger(__name__)

LATEST_SCRAPE = 'LATEST_SCRAPE'
LATEST_ERROR = 'LATEST_ERROR'


class RunStore:
    """Key-value records surviving across runs, plus the event dataset."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit
    TTL_DAYS = 90

    def __init__(self, table_name: str, dataset_table_name: str):
        """
        Initialize DynamoDB table references.

        Args:
            table_name: Table keyed by record_key holding run records
            dataset_table_name: Table keyed by hash holding scraped events
        """
        self.table_name = table_name
        self.dataset_table_name = dataset_table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        self.dataset_table = self.dynamodb.Table(dataset_table_name)
        logger.info(f"Initialized RunStore for tables: {table_name}, {dataset_table_name}")

    def set_value(self, key: str, payload: Dict[str, Any]) -> None:
        """
        Overwrite the record stored under key.

        Raises:
            ClientError: If the write fails
        """
        self.table.put_item(Item={
            'record_key': key,
            'payload': json.dumps(payload, default=str),
            'updated_at': datetime.now(timezone.utc).isoformat()
        })
        logger.info(f"Stored {key} record")

    def get_value(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the payload stored under key, or None."""
        try:
            response = self.table.get_item(Key={'record_key': key})
        except ClientError as e:
            logger.error(f"Error reading {key} record: {e}")
            raise
        item = response.get('Item')
        if not item:
            return None
        return json.loads(item['payload'])

    def save_summary(self, summary: RunSummary) -> None:
        self.set_value(LATEST_SCRAPE, summary.to_dict())

    def save_error(self, message: str, events_collected: int) -> None:
        self.set_value(LATEST_ERROR, {
            'error_at': datetime.now(timezone.utc).isoformat(),
            'error_message': message,
            'events_collected': events_collected
        })

    def push_events(self, events: List[Event]) -> int:
        """
        Write events to the dataset table in batches of 25 items.

        Args:
            events: Events to store

        Returns:
            Count of successfully written events
        """
        if not events:
            return 0

        logger.info(f"Writing {len(events)} events to dataset")
        success_count = 0

        for i in range(0, len(events), self.BATCH_SIZE):
            batch = events[i:i + self.BATCH_SIZE]

            try:
                with self.dataset_table.batch_writer(overwrite_by_pkeys=['hash']) as writer:
                    for event in batch:
                        writer.put_item(Item=self._event_to_item(event))
                success_count += len(batch)

            except ClientError as e:
                logger.error(
                    f"Error writing batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                # Continue processing remaining batches
                continue

        logger.info(f"Saved {success_count} events to dataset")
        return success_count

    def get_events(self) -> List[Dict[str, Any]]:
        """Scan the dataset table."""
        response = self.dataset_table.scan()
        items = response.get('Items', [])

        while 'LastEvaluatedKey' in response:
            response = self.dataset_table.scan(
                ExclusiveStartKey=response['LastEvaluatedKey']
            )
            items.extend(response.get('Items', []))

        return items

    def _event_to_item(self, event: Event) -> Dict[str, Any]:
        item = event.to_record()
        item['start_resolved'] = event.start_resolved.isoformat()
        item['ttl'] = self._calculate_ttl(event)
        return {key: value for key, value in item.items() if value != ''}

    def _calculate_ttl(self, event: Event) -> int:
        """TTL 90 days after the event date, or after fetch when the date is unknown."""
        if event.is_date_resolved:
            base = event.start_resolved
        else:
            base = event.fetched_at
        return int((base + timedelta(days=self.TTL_DAYS)).timestamp())
