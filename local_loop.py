"""Entry point for the Local Loop event scraper and Airtable sync."""
import json
import logging
import os
import sys
import time
from typing import Any, Dict, List, Optional

from pipeline.orchestrator import FatalRunError, PipelineOrchestrator
from processor.models import RunConfig
from scraper.page import open_page
from storage.airtable_client import AirtableClient
from storage.run_store import RunStore


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _env_float(name: str) -> Optional[float]:
    value = os.environ.get(name)
    return float(value) if value else None


def run_pipeline(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Run the pipeline once for an input payload.

    Args:
        payload: Run input ({debug, maxEvents, towns, sources, futureOnly})

    Returns:
        Response dict with statusCode and summary statistics
    """
    config = RunConfig.from_input(
        payload,
        source_timeout=_env_float('SOURCE_TIMEOUT_SECONDS'),
        source_delay=_env_float('SOURCE_DELAY_SECONDS')
    )
    log_level = 'DEBUG' if config.debug else os.environ.get('LOG_LEVEL', 'INFO')
    run_table = os.environ.get('RUN_TABLE_NAME', 'local-loop-runs')
    dataset_table = os.environ.get('DATASET_TABLE_NAME', 'local-loop-events')
    http_timeout = int(os.environ.get('HTTP_TIMEOUT_SECONDS', '30'))

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    logger.info(
        "Local Loop run started",
        extra={
            'max_events': config.max_events,
            'towns': config.towns,
            'future_only': config.future_only
        }
    )

    try:
        sync_client = AirtableClient.from_env(timeout=http_timeout)
        run_store = RunStore(table_name=run_table, dataset_table_name=dataset_table)
        orchestrator = PipelineOrchestrator(
            config=config,
            page_factory=lambda: open_page(timeout=http_timeout),
            sync_client=sync_client,
            run_store=run_store
        )
        summary = orchestrator.run()

    except FatalRunError as e:
        duration = time.time() - start_time
        logger.error(
            f"Run aborted: {e}",
            extra={'duration_seconds': round(duration, 2)}
        )
        return {
            'statusCode': 500,
            'body': json.dumps({
                'message': 'Run aborted',
                'error': str(e),
                'duration_seconds': round(duration, 2)
            })
        }

    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Run failed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return {
            'statusCode': 500,
            'body': json.dumps({
                'message': 'Run failed',
                'error': str(e),
                'error_type': type(e).__name__,
                'duration_seconds': round(duration, 2)
            })
        }

    duration = time.time() - start_time
    logger.info(
        "Local Loop run completed",
        extra={
            'duration_seconds': round(duration, 2),
            'events': summary.total_after_filtering,
            'sync_status': summary.sync.status
        }
    )

    return {
        'statusCode': 200,
        'body': json.dumps({
            'message': 'Run completed',
            'statistics': {
                'total_found': summary.total_found,
                'total_after_filtering': summary.total_after_filtering,
                'sources': {
                    name: {
                        'success': outcome.success,
                        'count': outcome.count,
                        'error': outcome.error
                    }
                    for name, outcome in summary.sources.items()
                },
                'sync': {
                    'status': summary.sync.status,
                    'sent': summary.sync.sent,
                    'skipped': summary.sync.skipped,
                    'cleared': summary.sync.cleared,
                    'errors': summary.sync.errors
                },
                'duration_seconds': round(duration, 2)
            }
        })
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    AWS Lambda handler; the invocation payload is the run input.

    Args:
        event: Run input payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and summary statistics
    """
    return run_pipeline(event)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run from the command line with an optional JSON input file.

    Returns:
        Process exit code: 0 on completion, 1 on an unrecoverable error
    """
    argv = sys.argv[1:] if argv is None else argv
    payload = {}
    if argv:
        with open(argv[0], encoding='utf-8') as handle:
            payload = json.load(handle)

    response = run_pipeline(payload)
    return 0 if response['statusCode'] == 200 else 1


if __name__ == '__main__':
    sys.exit(main())
