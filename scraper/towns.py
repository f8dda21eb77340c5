"""Registry of towns and their curated sources."""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from scraper import west_islip
from scraper.source_runner import SourceTask

logger = logging.getLogger(__name__)


def west_islip_sources(now: datetime) -> List[SourceTask]:
    profiles = west_islip.PROFILES
    town = west_islip.TOWN
    return [
        SourceTask('Library', town, west_islip.scrape_library,
                   profiles[west_islip.LIBRARY]),
        SourceTask('Chamber', town, west_islip.scrape_chamber,
                   profiles[west_islip.CHAMBER]),
        SourceTask('Country Fair', town, west_islip.scrape_country_fair,
                   profiles[west_islip.COUNTRY_FAIR]),
        SourceTask('Historical Society', town, west_islip.make_historical_scraper(now.year),
                   profiles[west_islip.HISTORICAL]),
        SourceTask('Fire Department', town, west_islip.scrape_fire_department,
                   profiles[west_islip.FIRE_DEPT]),
        SourceTask('WIBCC', town, west_islip.scrape_wibcc,
                   profiles[west_islip.WIBCC], enabled=False),
    ]


TOWNS = {
    west_islip.TOWN: west_islip_sources,
}


def enabled_sources(
    towns: Iterable[str],
    now: datetime,
    source_names: Optional[Iterable[str]] = None,
    registry: Optional[Dict] = None
) -> List[SourceTask]:
    """
    Resolve the source tasks to run.

    Args:
        towns: Town names requested by the run input
        now: Reference time of the run
        source_names: Explicit source allow-list; overrides each task's
            own enabled flag when given
        registry: Town name to task builder mapping (default: TOWNS)

    Returns:
        Source tasks in registry order
    """
    registry = registry or TOWNS
    wanted = set(source_names or [])
    tasks = []

    for town in towns:
        builder = registry.get(town)
        if builder is None:
            logger.warning(f"Unknown town '{town}', skipping")
            continue
        for task in builder(now):
            if wanted:
                if task.name in wanted or task.profile.name in wanted:
                    tasks.append(task)
            elif task.enabled:
                tasks.append(task)
            else:
                logger.info(f"Skipping {task.name} (disabled)")

    return tasks
