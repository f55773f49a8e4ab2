"""Example handlers for ``examples/schedules.yml``.

Run them with::

    PYTHONPATH=examples cronherd run examples/schedules.yml
"""

import asyncio
import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


def heartbeat():
    now = datetime.now(timezone.utc).isoformat()
    logger.info("heartbeat at %s", now)
    return now


async def refresh_cache():
    await asyncio.sleep(0.1)
    return {"refreshed": True}


class NightlyReport:
    """Task class; the loader instantiates it and schedules ``run``."""

    def __init__(self) -> None:
        self.generated = 0

    def run(self) -> str:
        self.generated += 1
        print(f"Generating report #{self.generated}")
        return f"report-{self.generated}"


def flaky():
    raise RuntimeError("upstream unavailable")
