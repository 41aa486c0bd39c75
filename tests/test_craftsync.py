"""
Sync Engine Unit Tests

Tests for models, the local cache, the submission cooldown, recent-search
ordering, configuration and the connectivity monitor.
"""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock, patch

import httpx
import pytest

from conftest import FakeClock


def test_craftsync_imports():
    """Test that all engine modules can be imported without errors."""
    from craftsync import SyncEngine, LocalCache, RemoteStore, SyncConfig
    from craftsync.cli import build_parser

    assert SyncEngine is not None
    assert LocalCache is not None
    assert RemoteStore is not None
    assert SyncConfig is not None
    assert build_parser is not None


# =============================================================================
# Models
# =============================================================================

class TestRecipeRecords:
    """Tests for converting remote records to recipes."""

    def test_from_record_pads_grid(self):
        from craftsync.models import GRID_SLOTS, Recipe

        recipe = Recipe.from_record({
            "record_name": "42",
            "fields": {
                "name": "Torch",
                "image": "torch",
                "ingredients": ["Coal", "", "", "Stick"],
                "output": 4,
                "category": "Lighting",
            },
        })

        assert recipe.id == 42
        assert len(recipe.ingredients) == GRID_SLOTS
        assert recipe.ingredients[:4] == ("Coal", "", "", "Stick")
        assert recipe.ingredients[4:] == ("",) * 5
        assert recipe.alternates == ()

    def test_from_record_alternates(self):
        from craftsync.models import Recipe

        recipe = Recipe.from_record({
            "record_name": "7",
            "fields": {
                "name": "Torch",
                "image": "torch",
                "ingredients": ["Coal", "Stick"],
                "output": 4,
                "category": "Lighting",
                "alternateIngredients": ["Charcoal", "Stick"],
                "alternateIngredients2": ["Coal", "Bamboo"],
                "alternateOutput2": 2,
            },
        })

        options = recipe.crafting_options()
        assert len(options) == 3
        assert options[1].ingredients[0] == "Charcoal"
        # Output falls back to the primary output when no alternate output is given
        assert options[1].output == 4
        assert options[2].output == 2

    @pytest.mark.parametrize("record", [
        {"record_name": "abc", "fields": {"name": "X", "image": "x", "ingredients": [], "output": 1, "category": "C"}},
        {"record_name": "1", "fields": {"image": "x", "ingredients": [], "output": 1, "category": "C"}},
        {"record_name": "1", "fields": {"name": "X", "image": "x", "ingredients": "Stick", "output": 1, "category": "C"}},
        {"fields": {"name": "X", "image": "x", "ingredients": [], "output": 1, "category": "C"}},
    ])
    def test_malformed_record_is_rejected(self, record):
        from craftsync.models import Recipe

        assert Recipe.from_record(record) is None

    def test_dict_round_trip_keeps_alternates(self):
        from craftsync.models import CraftingOption, Recipe, pad_slots

        recipe = Recipe(
            id=3,
            name="Chest",
            image="chest",
            ingredients=pad_slots(["Planks"] * 8),
            output=1,
            category="Storage",
            alternates=(CraftingOption(pad_slots(["Logs"]), 4),),
            remarks="Any wood type",
        )
        assert Recipe.from_dict(json.loads(json.dumps(recipe.to_dict()))) == recipe


class TestConsoleCommand:
    """Tests for console command records."""

    def test_from_record(self):
        from craftsync.models import ConsoleCommand

        command = ConsoleCommand.from_record({
            "record_name": "give",
            "fields": {
                "name": "/give",
                "description": "Gives an item to a player",
                "worksInBedrock": 1,
                "worksInJava": True,
                "opLevelJava": 2,
            },
        })
        assert command.works_in_bedrock is True
        assert command.op_level_java == 2
        assert command.op_level_bedrock is None

    def test_missing_description_is_rejected(self):
        from craftsync.models import ConsoleCommand

        assert ConsoleCommand.from_record({"fields": {"name": "/give"}}) is None


class TestReports:
    """Tests for the report model."""

    def test_kind_parse(self):
        from craftsync.models import ReportKind

        assert ReportKind.parse("missing_recipe") is ReportKind.MISSING_RECIPE
        assert ReportKind.parse("recipe-error") is ReportKind.RECIPE_ERROR
        assert ReportKind.parse("Report Recipe Error") is ReportKind.RECIPE_ERROR
        with pytest.raises(ValueError):
            ReportKind.parse("complaint")

    def test_fields_and_record_round_trip(self):
        from craftsync.models import Report, ReportKind, ReportStatus

        report = Report(
            kind=ReportKind.RECIPE_ERROR,
            recipe_name="Torch",
            category="Lighting",
            description="Yields 4, not 2",
            recipe_id=7,
        )
        fields = report.to_fields()
        assert fields["reportType"] == "Report Recipe Error"
        assert fields["status"] == "Pending"
        assert fields["recipeID"] == 7

        parsed = Report.from_record({"record_name": "r1", "fields": fields})
        assert parsed.record_id == "r1"
        assert parsed.local_id == report.local_id
        assert parsed.status is ReportStatus.PENDING

    def test_unknown_status_is_rejected(self):
        from craftsync.models import Report, ReportKind

        fields = Report(ReportKind.MISSING_RECIPE, "Torch", "Lighting", "missing").to_fields()
        fields["status"] = "Escalated"
        assert Report.from_record({"record_name": "r1", "fields": fields}) is None


class TestClearAllResult:
    """Tests for aggregated clear results."""

    def test_failed_steps(self):
        from craftsync.models import ClearAllResult, StepResult

        result = ClearAllResult([StepResult("catalog_cache", True), StepResult("favorites", False, "offline")])
        assert not result
        assert [s.name for s in result.failed_steps] == ["favorites"]
        assert ClearAllResult([StepResult("catalog_cache", True)]).success


# =============================================================================
# Recent Searches
# =============================================================================

class TestRecentSearches:
    """Tests for insert-or-move-to-front ordering."""

    def test_new_name_goes_first(self):
        from craftsync.user_state import add_recent_search

        assert add_recent_search(["A", "B"], "C") == ["C", "A", "B"]

    def test_existing_name_moves_to_front(self):
        from craftsync.user_state import add_recent_search

        assert add_recent_search(["A", "B", "C"], "C") == ["C", "A", "B"]

    def test_cap_is_enforced(self):
        from craftsync.user_state import add_recent_search

        names: list[str] = []
        for i in range(15):
            names = add_recent_search(names, f"Recipe {i}")

        assert len(names) == 10
        assert names[0] == "Recipe 14"
        assert "Recipe 4" not in names


# =============================================================================
# Submission Cooldown
# =============================================================================

class TestSubmissionCooldown:
    """Tests for the client-side report cooldown."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def cooldown(self, clock):
        from craftsync.reports import SubmissionCooldown
        return SubmissionCooldown(30.0, clock)

    def test_first_submission_allowed(self, cooldown):
        assert cooldown.remaining() == 0
        cooldown.check()

    def test_blocked_inside_window(self, cooldown, clock):
        from craftsync.errors import RateLimitError

        cooldown.record()
        clock.advance(10.2)

        with pytest.raises(RateLimitError) as exc_info:
            cooldown.check()
        assert exc_info.value.remaining == 20
        assert "20 seconds" in str(exc_info.value)

    def test_remaining_is_at_least_one(self, cooldown, clock):
        cooldown.record()
        clock.advance(29.999)
        assert cooldown.remaining() == 1

    def test_allowed_after_window(self, cooldown, clock):
        cooldown.record()
        clock.advance(30.0)
        assert cooldown.remaining() == 0
        cooldown.check()


def test_validate_report_fields():
    from craftsync.errors import ValidationError
    from craftsync.reports import validate_report_fields

    validate_report_fields("Torch", "Lighting", "wrong output")
    with pytest.raises(ValidationError) as exc_info:
        validate_report_fields("Torch", "  ", "")
    assert exc_info.value.fields == ["category", "description"]


# =============================================================================
# Local Cache
# =============================================================================

class TestLocalCache:
    """Tests for the SQLite cache."""

    @pytest.fixture
    def cache(self, tmp_path):
        from craftsync.cache import LocalCache
        return LocalCache(tmp_path / "test_cache.db")

    @pytest.fixture
    def recipes(self):
        from craftsync.models import Recipe, pad_slots
        return [
            Recipe(i, f"Recipe {i}", f"img{i}", pad_slots(["Stick"]), 1, "Tools")
            for i in range(1, 4)
        ]

    def test_cache_initialization(self, cache):
        assert cache.db_path.exists()
        assert cache.load() is None
        assert cache.load_reports() == []

    def test_save_and_load(self, cache, recipes):
        cache.save(recipes)
        assert cache.load() == recipes

    def test_failed_save_keeps_previous_snapshot(self, cache, recipes):
        from craftsync.errors import CacheError

        cache.save(recipes)
        with patch("craftsync.cache.checksum", side_effect=sqlite3.OperationalError("disk I/O error")):
            with pytest.raises(CacheError):
                cache.save(recipes[:1])

        assert cache.load() == recipes

    def test_checksum_mismatch_is_detected(self, cache, recipes):
        from craftsync.errors import CacheError

        cache.save(recipes)
        with sqlite3.connect(cache.db_path) as conn:
            conn.execute("UPDATE cached_data SET checksum = 'bogus' WHERE key = 'recipes'")

        with pytest.raises(CacheError):
            cache.load()

    def test_report_mirror(self, cache):
        from craftsync.models import Report, ReportKind

        older = Report(
            ReportKind.MISSING_RECIPE, "Lantern", "Lighting", "missing",
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        newer = Report(ReportKind.RECIPE_ERROR, "Torch", "Lighting", "wrong")
        cache.save_report(older)
        cache.save_report(newer)

        assert [r.local_id for r in cache.load_reports()] == [newer.local_id, older.local_id]

        cache.remove_report(older.local_id)
        cache.remove_report("not-there")
        assert [r.local_id for r in cache.load_reports()] == [newer.local_id]

    def test_clear_catalog_keeps_reports(self, cache, recipes):
        from craftsync.models import Report, ReportKind

        cache.save(recipes)
        cache.set_metadata("last_updated", "2024-01-01T00:00:00+00:00")
        cache.save_report(Report(ReportKind.MISSING_RECIPE, "Lantern", "Lighting", "missing"))

        assert cache.clear_catalog_cache() is True
        assert cache.load() is None
        assert cache.get_metadata("last_updated") is None
        assert len(cache.load_reports()) == 1

    def test_clear_all(self, cache, recipes):
        from craftsync.models import ConsoleCommand, Report, ReportKind

        cache.save(recipes)
        cache.save_commands([ConsoleCommand("/give", "Give an item", True, True)])
        cache.set_metadata("last_updated", "2024-01-01T00:00:00+00:00")
        cache.save_report(Report(ReportKind.MISSING_RECIPE, "Lantern", "Lighting", "missing"))

        assert cache.clear_all() is True
        assert cache.load() is None
        assert cache.load_commands() is None
        assert cache.get_metadata("last_updated") is None
        assert cache.load_reports() == []

    def test_clear_failure_returns_false(self, cache, recipes):
        cache.save(recipes)
        with patch.object(cache, "_get_connection", side_effect=sqlite3.OperationalError("locked")):
            assert cache.clear_catalog_cache() is False
        assert cache.load() == recipes


# =============================================================================
# Configuration
# =============================================================================

class TestSyncConfig:
    """Tests for engine configuration."""

    def test_defaults(self, tmp_path):
        from craftsync.config import SyncConfig

        config = SyncConfig(cache_dir=tmp_path)
        assert config.recipe_fetch_interval == 30.0
        assert config.report_status_fetch_interval == 30.0
        assert config.submission_cooldown == 30.0
        assert config.recent_search_limit == 10
        assert config.cache_db_path == tmp_path / "sync_cache.db"

    def test_from_file(self, tmp_path):
        from craftsync.config import SyncConfig

        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "page_size": 50,
            "cache_dir": str(tmp_path / "cache"),
            "unknown_key": True,
        }))

        config = SyncConfig.from_file(path)
        assert config.page_size == 50
        assert config.cache_dir == tmp_path / "cache"

    def test_missing_file_gives_defaults(self, tmp_path):
        from craftsync.config import SyncConfig

        config = SyncConfig.from_file(tmp_path / "missing.json")
        assert config.page_size == 200

    def test_env_overrides_file(self, tmp_path):
        from craftsync.config import SyncConfig

        path = tmp_path / "config.json"
        path.write_text(json.dumps({"page_size": 50, "cache_dir": str(tmp_path)}))

        config = SyncConfig.load(path, environ={
            "CRAFTSYNC_PAGE_SIZE": "25",
            "CRAFTSYNC_API_BASE_URL": "https://store.example.com",
            "CRAFTSYNC_RECIPE_FETCH_INTERVAL": "5",
        })
        assert config.page_size == 25
        assert config.api_base_url == "https://store.example.com"
        assert config.recipe_fetch_interval == 5.0
        assert config.cache_dir == Path(tmp_path)


# =============================================================================
# Connectivity Monitor
# =============================================================================

class TestConnectivityMonitor:
    """Tests for reachability transitions."""

    def test_listeners_fire_on_transitions_only(self):
        from craftsync.connectivity import ConnectivityMonitor

        monitor = ConnectivityMonitor()
        listener = Mock()
        remove = monitor.add_listener(listener)

        monitor.set_connected(True)
        monitor.set_connected(False)
        monitor.set_connected(False)
        monitor.set_connected(True)
        assert [c.args for c in listener.call_args_list] == [(False,), (True,)]

        remove()
        monitor.set_connected(False)
        assert listener.call_count == 2

    async def test_probe(self):
        from craftsync.connectivity import ConnectivityMonitor

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        monitor = ConnectivityMonitor()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://x") as client:
            assert await monitor.probe(client, "/health") is False
        assert monitor.is_connected is False

        healthy = httpx.MockTransport(lambda request: httpx.Response(200, json={"status": "healthy"}))
        async with httpx.AsyncClient(transport=healthy, base_url="http://x") as client:
            assert await monitor.probe(client, "/health") is True
        assert monitor.is_connected is True


# =============================================================================
# Error Messages
# =============================================================================

@pytest.mark.parametrize("error, message", [
    ("connectivity", "No internet connection. Please connect to sync data."),
    ("network", "Network issue, please check your connection and try again."),
    ("auth", "Permission denied, please sign in again."),
    ("not_found", "Data error, please try refreshing."),
    ("server", "Network issue, please check your connection and try again."),
    ("other", "An unexpected error occurred."),
])
def test_error_message_for(error, message):
    from craftsync.engine import error_message_for
    from craftsync.errors import (
        AuthenticationError,
        ConnectivityError,
        NetworkError,
        NotFoundError,
        RemoteError,
    )

    errors = {
        "connectivity": ConnectivityError("offline"),
        "network": NetworkError("timed out"),
        "auth": AuthenticationError("bad token", status_code=401),
        "not_found": NotFoundError("missing"),
        "server": RemoteError("unavailable", status_code=503),
        "other": RuntimeError("boom"),
    }
    assert error_message_for(errors[error]) == message
