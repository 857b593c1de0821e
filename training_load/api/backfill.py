"""Sequential, rate-limited stream backfill.

Fetches streams one activity at a time with a fixed delay between requests
and hands every result to a callback. A ``threading.Event`` cancels the run
between requests; streams already delivered are kept.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from requests.exceptions import RequestException

from ..config import config
from ..analysis.types import Streams
from .client import StravaClient

logger = logging.getLogger(__name__)

StreamCallback = Callable[[str, Streams], None]


@dataclass
class BackfillReport:
    """Outcome of one backfill run."""
    fetched: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)  # provider has no streams
    failed: List[str] = field(default_factory=list)  # HTTP errors
    cancelled: bool = False

    @property
    def attempted(self) -> int:
        return len(self.fetched) + len(self.missing) + len(self.failed)


class StreamBackfill:
    """Fetch missing streams for a list of activities."""

    def __init__(
        self,
        client: StravaClient,
        delay: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.client = client
        self.delay = config.STREAM_FETCH_DELAY if delay is None else delay
        self.cancel_event = cancel_event or threading.Event()

    def cancel(self) -> None:
        self.cancel_event.set()

    def run(self, activity_ids: Iterable[str], on_streams: StreamCallback) -> BackfillReport:
        """Fetch streams for each id in order.

        Args:
            activity_ids: Activities to fetch, in priority order
            on_streams: Called with (activity_id, streams) for every success

        Returns:
            BackfillReport
        """
        report = BackfillReport()
        ids = list(activity_ids)
        logger.info(f"Backfilling streams for {len(ids)} activities")

        for index, activity_id in enumerate(ids):
            if self.cancel_event.is_set():
                report.cancelled = True
                break

            try:
                streams = self.client.get_activity_streams(activity_id)
            except RequestException as e:
                logger.warning(f"Failed to fetch streams for activity {activity_id}: {e}")
                report.failed.append(activity_id)
            else:
                if streams is None:
                    report.missing.append(activity_id)
                else:
                    on_streams(activity_id, streams)
                    report.fetched.append(activity_id)

            # Event.wait doubles as a cancellable sleep
            if index < len(ids) - 1 and self.delay > 0 and self.cancel_event.wait(self.delay):
                report.cancelled = True
                break

        logger.info(
            f"Stream backfill finished: {len(report.fetched)} fetched, "
            f"{len(report.missing)} without streams, {len(report.failed)} failed"
            + (" (cancelled)" if report.cancelled else "")
        )
        return report
