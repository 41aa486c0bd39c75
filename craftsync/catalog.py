"""
Craftify Sync - Remote Catalog Client

Fetches the public catalog (recipes and console commands) page by page and
returns a complete snapshot. A failure on any page aborts the whole fetch.
"""

import logging
import time

from .models import (
    COMMAND_RECORD_TYPE,
    RECIPE_RECORD_TYPE,
    ConsoleCommand,
    Recipe,
)
from .remote import RemoteStore

logger = logging.getLogger(__name__)


class CatalogClient:
    """Builds catalog snapshots from the public store."""

    def __init__(self, remote: RemoteStore):
        self.remote = remote

    async def fetch_all(self, is_manual: bool = False) -> list[Recipe]:
        """
        Fetch every recipe, following cursors until exhausted.

        Args:
            is_manual: Whether the user asked for this refresh (logging only;
                the short-circuit decisions are made by the engine)

        Returns:
            Recipes sorted by name

        Raises:
            SyncError: If any page fails; no partial catalog is returned
        """
        start_time = time.time()
        records = await self.remote.query_all(RECIPE_RECORD_TYPE)

        recipes = []
        skipped = 0
        for record in records:
            recipe = Recipe.from_record(record)
            if recipe is None:
                skipped += 1
                logger.warning(f"Skipping malformed recipe record {record.get('record_name')}")
                continue
            recipes.append(recipe)

        recipes.sort(key=lambda r: r.name)
        logger.info(
            f"Fetched {len(recipes)} recipes ({'manual' if is_manual else 'automatic'}, "
            f"{skipped} skipped) in {time.time() - start_time:.2f}s"
        )
        return recipes

    async def fetch_commands(self) -> list[ConsoleCommand]:
        """Fetch every console command, sorted by name."""
        records = await self.remote.query_all(COMMAND_RECORD_TYPE)

        commands = []
        for record in records:
            command = ConsoleCommand.from_record(record)
            if command is None:
                logger.warning(f"Skipping malformed command record {record.get('record_name')}")
                continue
            commands.append(command)

        commands.sort(key=lambda c: c.name)
        logger.info(f"Fetched {len(commands)} console commands")
        return commands
