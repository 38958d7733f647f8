"""Completion history for the trailing day window."""

import logging
from datetime import date, datetime, timedelta

from .client import BeaverClient

logger = logging.getLogger(__name__)


def window_dates(today: date, days: int) -> list[date]:
    """
    Get the trailing window of days ending today, oldest first.

    Args:
        today: Last day of the window
        days: Window length

    Returns:
        List of dates where index c is today - (days - 1 - c)

    Example:
        today = 2024-01-10, days = 3
        = [2024-01-08, 2024-01-09, 2024-01-10]
    """
    return [today - timedelta(days=days - 1 - col) for col in range(days)]


class CompletionHistory:
    """Fetches which days of a window a habit was done."""

    def __init__(self, client: BeaverClient):
        """Initialize with Beaver client."""
        self.client = client

    @property
    def date_fmt(self) -> str:
        return self.client.date_fmt

    def format_date(self, day: date) -> str:
        return day.strftime(self.date_fmt)

    async def completed_days(self, habit_id: str, window: list[date]) -> set[date]:
        """
        Query completions of one habit over a window.

        Args:
            habit_id: Remote habit ID
            window: Dates from window_dates(), oldest first

        Returns:
            Set of days inside the window that are marked done
        """
        records = await self.client.get_habit_records(
            habit_id,
            date_start=self.format_date(window[0]),
            date_end=self.format_date(window[-1]),
        )
        done = self._parse_records(records)
        return done.intersection(window)

    def _parse_records(self, records: list) -> set[date]:
        """
        Parse completion date strings.

        Unparseable entries are logged and skipped.
        """
        days = set()
        for record in records:
            try:
                days.add(datetime.strptime(str(record), self.date_fmt).date())
            except ValueError:
                logger.warning(f"Ignoring completion with unexpected date: {record!r}")
                continue
        return days
