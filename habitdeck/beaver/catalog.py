"""Habit name resolution against the Beaver Habits catalog."""

import logging

from ..sync.errors import HabitNotFoundError
from .client import BeaverClient
from .models import Habit

logger = logging.getLogger(__name__)


class HabitCatalog:
    """Maps configured habit names to remote habit IDs."""

    def __init__(self, client: BeaverClient):
        """Initialize with Beaver client."""
        self.client = client

    async def resolve(self, names: list[str]) -> dict[str, str]:
        """
        Resolve habit names to IDs.

        The catalog is fetched fresh on every call so renames on the server
        are picked up on the next sync. Names match exactly.

        Args:
            names: Configured habit names, in row order

        Returns:
            Dictionary mapping name to habit ID, in the order of names

        Raises:
            HabitNotFoundError: for the first name the catalog does not contain
        """
        habits = self._parse_habits(await self.client.get_habit_list())
        logger.debug(f"Catalog lists {len(habits)} habits")

        by_name: dict[str, str] = {}
        for habit in habits:
            if habit.name in by_name:
                logger.warning(
                    f"Catalog has more than one habit named '{habit.name}', using {by_name[habit.name]}"
                )
                continue
            by_name[habit.name] = habit.id

        resolved = {}
        for name in names:
            if name not in by_name:
                raise HabitNotFoundError(name)
            resolved[name] = by_name[name]
        return resolved

    def _parse_habits(self, items: list[dict]) -> list[Habit]:
        """Keep well-formed catalog entries."""
        habits = []
        for item in items:
            if not isinstance(item, dict) or "id" not in item or "name" not in item:
                logger.warning(f"Skipping malformed catalog entry: {item!r}")
                continue
            habits.append(Habit(id=str(item["id"]), name=str(item["name"])))
        return habits
