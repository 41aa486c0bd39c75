"""
Craftify Sync - Sync Engine Facade

The single object the presentation layer depends on. It owns the published
SyncState and orchestrates the cache, the connectivity monitor and the remote
clients.

All state transitions happen on the event loop the engine runs on. Disk I/O
is pushed to worker threads and network I/O is async; results are applied
back on the loop by publishing a new immutable SyncState snapshot.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime
from typing import Callable, Coroutine, Iterable, Optional, Union

import httpx

from .cache import LocalCache
from .catalog import CatalogClient
from .config import SyncConfig
from .connectivity import ConnectivityMonitor
from .errors import (
    AuthenticationError,
    CacheError,
    ConnectivityError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RemoteError,
    SyncError,
    ValidationError,
)
from .models import (
    ClearAllResult,
    ConsoleCommand,
    Recipe,
    Report,
    ReportKind,
    StepResult,
    SyncResult,
    SyncState,
    utcnow,
)
from .notifications import PermissionProvider, PushRegistrar, SubscriptionManager, subscription_id_for
from .remote import RemoteStore
from .reports import ReportClient, SubmissionCooldown, validate_report_fields
from .user_state import UserStateClient, add_recent_search

logger = logging.getLogger(__name__)

Listener = Callable[[SyncState], None]

LAST_UPDATED_KEY = "last_updated"

OFFLINE_MESSAGE = "No internet connection. Please connect to sync data."
NETWORK_MESSAGE = "Network issue, please check your connection and try again."
PERMISSION_MESSAGE = "Permission denied, please sign in again."
DATA_MESSAGE = "Data error, please try refreshing."
CACHE_MESSAGE = "Could not access the local cache. Try clearing the cache."
UNKNOWN_MESSAGE = "An unexpected error occurred."


def error_message_for(error: Exception) -> str:
    """User-facing message for an error, by taxonomy."""
    if isinstance(error, ConnectivityError):
        return OFFLINE_MESSAGE
    if isinstance(error, (RateLimitError, ValidationError)):
        return str(error)
    if isinstance(error, NetworkError):
        return NETWORK_MESSAGE
    if isinstance(error, AuthenticationError):
        return PERMISSION_MESSAGE
    if isinstance(error, NotFoundError):
        return DATA_MESSAGE
    if isinstance(error, RemoteError):
        if error.status_code in (429, 502, 503, 504):
            return NETWORK_MESSAGE
        return UNKNOWN_MESSAGE
    if isinstance(error, CacheError):
        return CACHE_MESSAGE
    return UNKNOWN_MESSAGE


def _combine(results: Iterable[SyncResult], start_time: float) -> SyncResult:
    results = list(results)
    return SyncResult(
        success=all(r.success for r in results),
        items_processed=sum(r.items_processed for r in results),
        items_failed=sum(r.items_failed for r in results),
        errors=[e for r in results for e in r.errors],
        duration_seconds=time.time() - start_time,
    )


class SyncEngine:
    """Facade over the catalog, user-state, report and subscription clients."""

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        cache: Optional[LocalCache] = None,
        remote: Optional[RemoteStore] = None,
        monitor: Optional[ConnectivityMonitor] = None,
        permissions: Optional[PermissionProvider] = None,
        registrar: Optional[PushRegistrar] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or SyncConfig()
        self.monitor = monitor or (remote.monitor if remote else ConnectivityMonitor())
        self.cache = cache or LocalCache(self.config.cache_db_path)
        self.remote = remote or RemoteStore(self.config, self.monitor, transport=transport)

        self.catalog = CatalogClient(self.remote)
        self.user_state = UserStateClient(self.remote, self.config.recent_search_limit)
        self.reports = ReportClient(self.remote)
        self.subscriptions = SubscriptionManager(self.remote, permissions, registrar)
        self.cooldown = SubmissionCooldown(self.config.submission_cooldown, clock)

        self._clock = clock
        self._state = SyncState(is_connected=self.monitor.is_connected)
        self._listeners: list[Listener] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        self._tasks: set[asyncio.Task] = set()
        self._user_state_tasks: set[asyncio.Task] = set()
        self._user_state_dirty = False

        # Catalog loads are tagged so a stale result never overwrites a newer one
        self._generation = 0
        self._applied_generation = 0
        self._active_loads = 0
        self._manual_depth = 0
        self._snapshot_lock = asyncio.Lock()

        self._last_recipe_fetch: Optional[float] = None
        self._last_report_fetch: Optional[float] = None

        self._remove_monitor_listener = self.monitor.add_listener(self._on_connectivity_change)

    # =========================================================================
    # Published State
    # =========================================================================

    @property
    def state(self) -> SyncState:
        """Current immutable state snapshot."""
        return self._state

    @property
    def recipes(self) -> list[Recipe]:
        return list(self._state.recipes)

    @property
    def commands(self) -> list[ConsoleCommand]:
        return list(self._state.commands)

    @property
    def favorites(self) -> set[int]:
        return set(self._state.favorites)

    @property
    def recent_searches(self) -> list[str]:
        return list(self._state.recent_searches)

    @property
    def submitted_reports(self) -> list[Report]:
        return list(self._state.reports)

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def is_connected(self) -> bool:
        return self._state.is_connected

    @property
    def error_message(self) -> Optional[str]:
        return self._state.error_message

    @property
    def last_updated(self) -> Optional[datetime]:
        return self._state.last_updated

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a state listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, **changes) -> None:
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("State listener raised")

    def _set_error(self, message: str) -> None:
        logger.debug(f"error_message: {message}")
        self._publish(error_message=message)

    # =========================================================================
    # Derived Views
    # =========================================================================

    @property
    def favorite_recipes(self) -> list[Recipe]:
        """Favorite recipes in catalog order."""
        favorites = self._state.favorites
        return [r for r in self._state.recipes if r.id in favorites]

    @property
    def categories(self) -> list[str]:
        return sorted({r.category for r in self._state.recipes})

    def search(self, text: str = "", category: Optional[str] = None) -> list[Recipe]:
        """Recipes whose name contains text (case-insensitive), optionally in one category."""
        needle = text.lower()
        return [
            r for r in self._state.recipes
            if (category is None or r.category == category)
            and (not needle or needle in r.name.lower())
        ]

    @property
    def sync_status(self) -> str:
        """One-line status for display."""
        state = self._state
        if not state.is_connected:
            return "No internet connection"
        if state.last_updated is not None:
            return f"Last synced: {state.last_updated.astimezone():%Y-%m-%d %H:%M}"
        if state.is_loading:
            return "Syncing recipes..."
        if state.error_message:
            return f"Sync failed: {state.error_message}"
        return "Not synced"

    # =========================================================================
    # Task Bookkeeping
    # =========================================================================

    def _spawn(self, coro: Coroutine, user_state: bool = False) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        if user_state:
            self._user_state_tasks.add(task)
            task.add_done_callback(self._user_state_tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for all background work (refreshes and pushes) to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Finish pending pushes and release resources."""
        await self.wait_idle()
        self._remove_monitor_listener()
        await self.monitor.stop_probing()
        await self.remote.close()
        logger.info("Sync engine closed")

    # =========================================================================
    # Connectivity
    # =========================================================================

    def _on_connectivity_change(self, connected: bool) -> None:
        loop = self._loop
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if loop is not None and running is not loop:
            loop.call_soon_threadsafe(self._apply_connectivity, connected)
        else:
            self._apply_connectivity(connected)

    def _apply_connectivity(self, connected: bool) -> None:
        if connected:
            self._publish(is_connected=True)
            if self._user_state_dirty and self._loop is not None:
                self._spawn(self._flush_user_state(), user_state=True)
        else:
            self._publish(is_connected=False, error_message=OFFLINE_MESSAGE)

    # =========================================================================
    # Startup
    # =========================================================================

    def _load_local(self) -> tuple[list[Recipe], list[ConsoleCommand], list[Report], Optional[datetime]]:
        recipes = self.cache.load() or []
        commands = self.cache.load_commands() or []
        reports = self.cache.load_reports()
        last_updated = self.cache.get_metadata(LAST_UPDATED_KEY)
        return recipes, commands, reports, (
            datetime.fromisoformat(last_updated) if last_updated else None
        )

    async def start(self, refresh: bool = True, probe: bool = False) -> None:
        """
        Cold start: publish the cached snapshot, then refresh in the background.

        Args:
            refresh: Kick off the background catalog and user-state refresh
            probe: Drive the connectivity monitor from periodic health checks
        """
        self._loop = asyncio.get_running_loop()

        try:
            recipes, commands, reports, last_updated = await asyncio.to_thread(self._load_local)
        except CacheError as e:
            logger.error(f"Failed to load local cache: {e}")
            self._set_error(CACHE_MESSAGE)
        else:
            self._publish(
                recipes=tuple(sorted(recipes, key=lambda r: r.name)),
                commands=tuple(commands),
                reports=tuple(reports),
                last_updated=last_updated,
            )
            if recipes:
                logger.info(f"Loaded {len(recipes)} recipes from local cache")
            else:
                logger.info("No local cache found; fetching from the remote store")

        if probe:
            await self.remote.start_probing(self.config.probe_interval)

        if refresh:
            self._spawn(self._startup_refresh())

    async def _startup_refresh(self) -> None:
        if not self.monitor.is_connected:
            logger.info("Offline at startup; showing cached data")
            return
        await self.refresh_user_state()
        await self.load_catalog(manual=False)
        await self.load_commands()
        await self.restore_notification_state()

    # =========================================================================
    # Catalog
    # =========================================================================

    @asynccontextmanager
    async def _manual_sync(self):
        self._manual_depth += 1
        self._publish(is_manual_syncing=True)
        try:
            yield
        finally:
            self._manual_depth -= 1
            if self._manual_depth == 0:
                self._publish(is_manual_syncing=False)

    async def load_catalog(self, manual: bool = False) -> SyncResult:
        """
        Refresh the recipe snapshot from the remote store.

        A manual load always fetches. An automatic load is skipped when a
        successful fetch happened within recipe_fetch_interval. Offline, the
        cached snapshot stays in place and only error_message is set.
        """
        if manual:
            async with self._manual_sync():
                return await self._load_catalog(manual=True)
        return await self._load_catalog(manual=False)

    async def _load_catalog(self, manual: bool) -> SyncResult:
        start_time = time.time()

        if not self.monitor.is_connected:
            self._set_error(OFFLINE_MESSAGE)
            return SyncResult(success=False, skipped=True, errors=[OFFLINE_MESSAGE])

        if (
            not manual
            and self._last_recipe_fetch is not None
            and self._clock() - self._last_recipe_fetch < self.config.recipe_fetch_interval
        ):
            logger.debug(
                f"Skipping recipe fetch; last fetch was less than "
                f"{self.config.recipe_fetch_interval} seconds ago"
            )
            return SyncResult(success=True, skipped=True)

        self._generation += 1
        generation = self._generation
        self._active_loads += 1
        self._publish(is_loading=True, error_message=None)

        try:
            recipes = await self.catalog.fetch_all(is_manual=manual)
        except SyncError as e:
            self._active_loads -= 1
            if manual:
                logger.error(f"Manual catalog sync failed: {e}")
            else:
                logger.warning(f"Background catalog refresh failed, keeping cached snapshot: {e}")
            self._publish(
                is_loading=self._active_loads > 0,
                error_message=error_message_for(e),
            )
            return SyncResult(
                success=False,
                items_failed=1,
                errors=[str(e)],
                duration_seconds=time.time() - start_time,
            )

        self._active_loads -= 1

        if generation < self._applied_generation:
            logger.info(
                f"Discarding stale catalog result (generation {generation} < "
                f"{self._applied_generation})"
            )
            self._publish(is_loading=self._active_loads > 0)
            return SyncResult(
                success=True,
                skipped=True,
                duration_seconds=time.time() - start_time,
            )

        now = utcnow()
        self._applied_generation = generation
        self._last_recipe_fetch = self._clock()
        self._publish(
            recipes=tuple(recipes),
            last_updated=now,
            is_loading=self._active_loads > 0,
        )

        errors = []
        try:
            await self._save_snapshot(generation, recipes, now)
        except CacheError as e:
            logger.error(f"Failed to save recipes to local cache: {e}")
            self._set_error(CACHE_MESSAGE)
            errors.append(str(e))

        return SyncResult(
            success=True,
            items_processed=len(recipes),
            errors=errors,
            duration_seconds=time.time() - start_time,
        )

    async def _save_snapshot(self, generation: int, recipes: list[Recipe], fetched_at: datetime) -> None:
        async with self._snapshot_lock:
            if generation != self._applied_generation:
                return

            def write() -> None:
                self.cache.save(recipes)
                self.cache.set_metadata(LAST_UPDATED_KEY, fetched_at.isoformat())

            await asyncio.to_thread(write)

    async def load_commands(self) -> SyncResult:
        """Refresh the console command reference data."""
        start_time = time.time()
        if not self.monitor.is_connected:
            return SyncResult(success=False, skipped=True, errors=[OFFLINE_MESSAGE])

        try:
            commands = await self.catalog.fetch_commands()
        except SyncError as e:
            logger.warning(f"Command refresh failed: {e}")
            self._set_error(error_message_for(e))
            return SyncResult(success=False, items_failed=1, errors=[str(e)])

        self._publish(commands=tuple(commands))
        errors = []
        try:
            await asyncio.to_thread(self.cache.save_commands, commands)
        except CacheError as e:
            logger.error(f"Failed to save commands to local cache: {e}")
            self._set_error(CACHE_MESSAGE)
            errors.append(str(e))

        return SyncResult(
            success=True,
            items_processed=len(commands),
            errors=errors,
            duration_seconds=time.time() - start_time,
        )

    async def sync_all(self) -> SyncResult:
        """
        Manual sync: full catalog and command refresh plus a favorites and
        recent-search pull, reported as one result.
        """
        start_time = time.time()
        logger.info("Starting manual sync...")

        async with self._manual_sync():
            results = [
                await self._load_catalog(manual=True),
                await self.load_commands(),
                await self.refresh_user_state(),
            ]

        result = _combine(results, start_time)
        logger.info(
            f"Manual sync completed in {result.duration_seconds:.2f}s: "
            f"{result.items_processed} processed, {result.items_failed} failed"
        )
        return result

    # =========================================================================
    # User State
    # =========================================================================

    async def refresh_user_state(self) -> SyncResult:
        """Pull favorites and recent searches from the private store."""
        if not self.monitor.is_connected:
            return SyncResult(success=False, skipped=True, errors=[OFFLINE_MESSAGE])

        # Local writes land before the pull so it cannot resurrect older values
        if self._user_state_tasks:
            await asyncio.gather(*list(self._user_state_tasks), return_exceptions=True)

        try:
            favorites = await self.user_state.pull_favorites()
            searches = await self.user_state.pull_recent_searches()
        except SyncError as e:
            logger.warning(f"User state pull failed: {e}")
            self._set_error(error_message_for(e))
            return SyncResult(success=False, items_failed=1, errors=[str(e)])

        if self._state.recipes:
            names = {r.name for r in self._state.recipes}
            searches = [s for s in searches if s in names]

        self._publish(favorites=frozenset(favorites), recent_searches=tuple(searches))
        return SyncResult(success=True, items_processed=len(favorites) + len(searches))

    def is_favorite(self, recipe: Union[Recipe, int]) -> bool:
        recipe_id = recipe.id if isinstance(recipe, Recipe) else int(recipe)
        return recipe_id in self._state.favorites

    def toggle_favorite(self, recipe: Union[Recipe, int]) -> bool:
        """
        Toggle membership immediately and push it in the background.

        Must be called on the engine's event loop. A failed push sets
        error_message and is not rolled back.

        Returns:
            True if the recipe is now a favorite
        """
        recipe_id = recipe.id if isinstance(recipe, Recipe) else int(recipe)
        favorites = set(self._state.favorites)
        added = recipe_id not in favorites
        if added:
            favorites.add(recipe_id)
        else:
            favorites.discard(recipe_id)

        self._publish(favorites=frozenset(favorites))
        self._spawn(self._push_favorite(recipe_id, added), user_state=True)
        return added

    async def _push_favorite(self, recipe_id: int, added: bool) -> None:
        try:
            await self.user_state.push_favorite(recipe_id, added)
        except ConnectivityError:
            self._user_state_dirty = True
        except SyncError as e:
            logger.warning(f"Failed to push favorite {recipe_id}: {e}")
            self._set_error(f"Failed to sync favorites: {error_message_for(e)}")

    def save_recent_search(self, recipe: Union[Recipe, str]) -> list[str]:
        """Move a name to the front of the recent searches and push it in the background."""
        name = recipe.name if isinstance(recipe, Recipe) else recipe
        names = add_recent_search(
            self._state.recent_searches, name, self.config.recent_search_limit
        )
        self._publish(recent_searches=tuple(names))
        self._spawn(self._push_recent_search(name), user_state=True)
        return names

    async def _push_recent_search(self, name: str) -> None:
        try:
            await self.user_state.push_recent_search(name)
        except ConnectivityError:
            self._user_state_dirty = True
        except SyncError as e:
            logger.warning(f"Failed to push recent search {name!r}: {e}")
            self._set_error(f"Failed to sync recent searches: {error_message_for(e)}")

    def clear_recent_searches(self) -> None:
        """Empty the recent searches locally and in the background remotely."""
        self._publish(recent_searches=())
        self._spawn(self._push_recent_searches_cleared(), user_state=True)

    async def _push_recent_searches_cleared(self) -> None:
        try:
            await self.user_state.clear_recent_searches()
        except ConnectivityError:
            self._user_state_dirty = True
        except SyncError as e:
            logger.warning(f"Failed to clear remote recent searches: {e}")
            self._set_error(f"Failed to sync recent searches: {error_message_for(e)}")

    async def _flush_user_state(self) -> None:
        """Push the full local favorites and searches after an offline period."""
        try:
            await self.user_state.push_favorites(self._state.favorites)
            await self.user_state.push_recent_searches(list(self._state.recent_searches))
        except ConnectivityError:
            return
        except SyncError as e:
            logger.warning(f"Failed to flush offline user state: {e}")
            self._set_error(f"Failed to sync favorites: {error_message_for(e)}")
            return
        self._user_state_dirty = False
        logger.info("Flushed user state written while offline")

    # =========================================================================
    # Reports
    # =========================================================================

    async def submit_report(
        self,
        kind: Union[ReportKind, str],
        recipe_name: str,
        category: str,
        description: str,
        recipe_id: Optional[int] = None,
    ) -> Report:
        """
        Submit a report.

        Validation and the cooldown are checked before any network call.

        Raises:
            ValidationError: Unknown kind or a required field is blank
            RateLimitError: Inside the cooldown window; carries remaining seconds
            ConnectivityError: Offline
            SyncError: The remote call failed
        """
        try:
            try:
                kind = ReportKind.parse(kind)
            except ValueError as e:
                raise ValidationError(str(e), fields=["kind"]) from None
            validate_report_fields(recipe_name, category, description)
            self.cooldown.check()
            if not self.monitor.is_connected:
                raise ConnectivityError("No internet connection. Please connect to submit a report.")
            report = await self.reports.submit(kind, recipe_name, category, description, recipe_id)
        except (ValidationError, RateLimitError, ConnectivityError) as e:
            self._set_error(str(e))
            raise
        except SyncError as e:
            logger.error(f"Report submission failed: {e}")
            self._set_error(f"Failed to submit report: {error_message_for(e)}")
            raise

        self.cooldown.record()
        self._last_report_fetch = None
        self._publish(
            reports=(report,) + self._state.reports,
            last_report_status_fetch_time=None,
            status_message="Report submitted successfully",
        )

        try:
            await asyncio.to_thread(self.cache.save_report, report)
        except CacheError as e:
            logger.error(f"Failed to mirror report {report.local_id}: {e}")

        return report

    async def list_my_reports(self, force: bool = False) -> list[Report]:
        """
        The current user's reports with their latest status.

        Offline, or within report_status_fetch_interval of the previous fetch
        (unless forced), the last known list is returned without a network call.
        """
        if not self.monitor.is_connected:
            return list(self._state.reports)

        if (
            not force
            and self._last_report_fetch is not None
            and self._clock() - self._last_report_fetch < self.config.report_status_fetch_interval
        ):
            logger.debug("Skipping report fetch; fetched recently")
            return list(self._state.reports)

        try:
            user_id = await self.remote.fetch_user_id()
            reports = await self.reports.list_mine(user_id)
        except ConnectivityError:
            return list(self._state.reports)
        except SyncError as e:
            logger.error(f"Failed to fetch reports: {e}")
            self._set_error(f"Failed to fetch reports: {error_message_for(e)}")
            raise

        self._last_report_fetch = self._clock()
        self._publish(reports=tuple(reports), last_report_status_fetch_time=utcnow())

        try:
            await asyncio.to_thread(self.cache.replace_reports, reports)
        except CacheError as e:
            logger.error(f"Failed to refresh report mirror: {e}")

        return reports

    async def delete_report(self, report: Report) -> bool:
        """Delete a report remotely and from the local mirror."""
        if not self.monitor.is_connected:
            self._set_error("No internet connection. Please connect to delete the report.")
            return False

        try:
            await self.reports.delete(report)
        except SyncError as e:
            logger.error(f"Failed to delete report {report.record_id}: {e}")
            self._set_error(f"Failed to delete report: {error_message_for(e)}")
            return False

        self._publish(
            reports=tuple(r for r in self._state.reports if r.local_id != report.local_id),
            status_message="Report deleted successfully",
        )

        try:
            await asyncio.to_thread(self.cache.remove_report, report.local_id)
        except CacheError as e:
            logger.error(f"Failed to remove mirrored report {report.local_id}: {e}")
            self._set_error(CACHE_MESSAGE)
            return False
        return True

    # =========================================================================
    # Clearing
    # =========================================================================

    async def clear_cache(self) -> bool:
        """
        Remove the cached catalog. Favorites, recent searches and reports are
        untouched. On failure the cached data stays intact.
        """
        if not await asyncio.to_thread(self.cache.clear_catalog_cache):
            self._publish(status_message="Failed to clear cache.")
            return False

        self._last_recipe_fetch = None
        self._publish(
            recipes=(),
            commands=(),
            last_updated=None,
            status_message="Cache cleared successfully.",
        )
        return True

    async def clear_all_data(self) -> ClearAllResult:
        """
        Best-effort clear of everything: catalog cache, report mirror,
        favorites, recent searches and the user's remote reports.

        Each step runs regardless of the others and is reported on its own.
        """
        result = ClearAllResult()

        # Local steps
        if await asyncio.to_thread(self.cache.clear_catalog_cache):
            self._last_recipe_fetch = None
            self._publish(recipes=(), commands=(), last_updated=None)
            result.steps.append(StepResult("catalog_cache", True))
        else:
            result.steps.append(StepResult("catalog_cache", False, "Failed to clear catalog cache"))

        if await asyncio.to_thread(self.cache.clear_report_mirror):
            result.steps.append(StepResult("report_mirror", True))
        else:
            result.steps.append(StepResult("report_mirror", False, "Failed to clear report mirror"))

        # Remote steps; local state is cleared even when the remote write fails
        self._publish(favorites=frozenset(), recent_searches=())
        result.steps.append(await self._clear_step("favorites", self.user_state.clear_favorites))
        result.steps.append(
            await self._clear_step("recent_searches", self.user_state.clear_recent_searches)
        )

        reports_step = await self._clear_step("reports", self._delete_all_reports)
        result.steps.append(reports_step)
        if reports_step.success:
            self._last_report_fetch = None
            self._publish(reports=(), last_report_status_fetch_time=None)

        if result.success:
            self._publish(status_message="All data cleared successfully.")
        else:
            failed = ", ".join(step.name for step in result.failed_steps)
            logger.warning(f"Clear all data finished with failures: {failed}")
            self._publish(
                status_message="Failed to clear all data.",
                error_message=f"Could not clear: {failed}",
            )
        return result

    async def _clear_step(self, name: str, action: Callable[[], Coroutine]) -> StepResult:
        try:
            await action()
        except ConnectivityError as e:
            if name in ("favorites", "recent_searches"):
                self._user_state_dirty = True
            return StepResult(name, False, str(e))
        except SyncError as e:
            logger.error(f"Clear step {name} failed: {e}")
            return StepResult(name, False, str(e))
        return StepResult(name, True)

    async def _delete_all_reports(self) -> None:
        user_id = await self.remote.fetch_user_id()
        reports = await self.reports.list_mine(user_id)
        known = {r.local_id for r in reports}
        reports.extend(r for r in self._state.reports if r.local_id not in known)
        await self.reports.delete_all(reports)
        logger.info(f"Deleted {len(reports)} reports")

    # =========================================================================
    # Notifications
    # =========================================================================

    async def set_notifications_enabled(self, enabled: bool) -> bool:
        """
        Enable or disable report-status notifications.

        Returns:
            The resulting state. On any failure the previous state is kept,
            so the toggle never shows something the backend does not reflect.
        """
        previous = self._state.notifications_enabled
        action = "enable" if enabled else "disable"

        if not self.monitor.is_connected:
            self._set_error(f"No internet connection. Please connect to {action} notifications.")
            return previous

        if enabled:
            if not self.subscriptions.request_permission():
                self._publish(
                    notifications_enabled=False,
                    error_message="Notification permissions not granted. Please enable notifications in Settings.",
                )
                return False
            if not self.subscriptions.is_push_registered:
                self.subscriptions.register_for_push()
                self._publish(is_push_registered=True)

        try:
            user_id = await self.remote.fetch_user_id()
            if enabled:
                await self.subscriptions.create_subscription(user_id)
            else:
                await self.subscriptions.delete_subscription(user_id)
        except SyncError as e:
            logger.error(f"Failed to {action} notifications: {e}")
            self._publish(
                notifications_enabled=previous,
                error_message=f"Failed to {action} notifications: {error_message_for(e)}",
            )
            return previous

        self._publish(
            notifications_enabled=enabled,
            error_message=None,
            status_message=f"Notifications {action}d successfully",
        )
        return enabled

    async def restore_notification_state(self) -> bool:
        """
        Derive the toggle from the server after a restart.

        Notifications count as enabled when this user's subscription exists
        remotely; the permission check then runs against that state.
        """
        try:
            user_id = await self.remote.fetch_user_id()
            subscription = await self.remote.fetch_subscription(subscription_id_for(user_id))
        except SyncError as e:
            logger.warning(f"Could not restore notification state: {e}")
            return self._state.notifications_enabled

        authorized = self.subscriptions.is_authorized()
        if authorized:
            self.subscriptions.is_push_registered = True
        self._publish(
            notifications_enabled=subscription is not None,
            is_push_registered=authorized,
        )
        logger.info(f"Notifications {'enabled' if subscription is not None else 'disabled'} on the server")
        return await self.verify_notification_permission()

    async def verify_notification_permission(self) -> bool:
        """Disable notifications if the permission was revoked; returns the resulting state."""
        if self._state.notifications_enabled and not self.subscriptions.is_authorized():
            logger.info("Notification permission revoked; disabling notifications")
            return await self.set_notifications_enabled(False)
        return self._state.notifications_enabled


# =============================================================================
# Convenience Functions
# =============================================================================

@asynccontextmanager
async def sync_session(config: Optional[SyncConfig] = None, **kwargs):
    """
    Context manager for a started engine.

    Usage:
        async with sync_session(config) as engine:
            await engine.sync_all()
    """
    engine = SyncEngine(config, **kwargs)
    try:
        await engine.start(refresh=False)
        yield engine
    finally:
        await engine.close()
