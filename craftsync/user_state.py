"""
Craftify Sync - User-State Sync Client

Favorites and recent searches live in the user's private store under one key
each. Conflict policy is last write wins per key; edits from two devices are
not merged beyond the most recent write observed.
"""

import asyncio
import logging
from typing import Iterable

from .models import RECENT_SEARCH_LIMIT
from .remote import RemoteStore

logger = logging.getLogger(__name__)

FAVORITES_KEY = "favoriteRecipes"
RECENT_SEARCHES_KEY = "recentSearches"


def add_recent_search(names: Iterable[str], name: str, limit: int = RECENT_SEARCH_LIMIT) -> list[str]:
    """Insert name at the front (moving it if present) and trim to limit."""
    updated = [name] + [n for n in names if n != name]
    return updated[:limit]


class UserStateClient:
    """Pull/push for favorites and recent searches."""

    def __init__(self, remote: RemoteStore, recent_search_limit: int = RECENT_SEARCH_LIMIT):
        self.remote = remote
        self.recent_search_limit = recent_search_limit
        # Read-modify-write pushes run one at a time
        self._write_lock = asyncio.Lock()

    # === Favorites ===

    async def pull_favorites(self) -> set[int]:
        """Read the favorite recipe IDs."""
        value = await self.remote.get_value(FAVORITES_KEY)
        if not isinstance(value, list):
            return set()
        return {int(v) for v in value if isinstance(v, int)}

    async def push_favorite(self, recipe_id: int, added: bool) -> set[int]:
        """Apply one toggle on top of the latest remote value and write it back."""
        async with self._write_lock:
            favorites = await self.pull_favorites()
            if added:
                favorites.add(recipe_id)
            else:
                favorites.discard(recipe_id)
            await self._set_favorites(favorites)
        return favorites

    async def push_favorites(self, recipe_ids: Iterable[int]) -> None:
        """Overwrite the favorite set."""
        async with self._write_lock:
            await self._set_favorites(recipe_ids)

    async def _set_favorites(self, recipe_ids: Iterable[int]) -> None:
        await self.remote.set_value(FAVORITES_KEY, sorted(recipe_ids))

    async def clear_favorites(self) -> None:
        await self.push_favorites([])
        logger.info("Cleared favorite recipes")

    # === Recent Searches ===

    async def pull_recent_searches(self) -> list[str]:
        """Read the recent searches, most recent first."""
        value = await self.remote.get_value(RECENT_SEARCHES_KEY)
        if not isinstance(value, list):
            return []
        names = []
        for name in value:
            if isinstance(name, str) and name not in names:
                names.append(name)
        return names[:self.recent_search_limit]

    async def push_recent_search(self, name: str) -> list[str]:
        """Insert-or-move-to-front on top of the latest remote list."""
        async with self._write_lock:
            names = add_recent_search(
                await self.pull_recent_searches(), name, self.recent_search_limit
            )
            await self._set_recent_searches(names)
        logger.debug(f"Updated recent search names: {names}")
        return names

    async def push_recent_searches(self, names: list[str]) -> None:
        """Overwrite the recent search list."""
        async with self._write_lock:
            await self._set_recent_searches(names)

    async def _set_recent_searches(self, names: list[str]) -> None:
        await self.remote.set_value(RECENT_SEARCHES_KEY, list(names)[:self.recent_search_limit])

    async def clear_recent_searches(self) -> None:
        await self.push_recent_searches([])
        logger.info("Cleared recent search names")
