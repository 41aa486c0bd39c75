"""
Craftify Sync - Local Cache Store

SQLite-backed on-device storage for the catalog snapshot, the report mirror
and sync metadata. Every write runs in one transaction, so a failed write
leaves the previous snapshot readable.
"""

import json
import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .errors import CacheError
from .models import ConsoleCommand, Recipe, Report, checksum

logger = logging.getLogger(__name__)

RECIPES_KEY = "recipes"
COMMANDS_KEY = "commands"


class LocalCache:
    """SQLite-based local cache for offline operation."""

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS cached_data (
        key TEXT PRIMARY KEY,
        data_type TEXT NOT NULL,
        data TEXT NOT NULL,
        checksum TEXT NOT NULL,
        cached_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS report_mirror (
        local_id TEXT PRIMARY KEY,
        record_id TEXT,
        data TEXT NOT NULL,
        created_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS sync_metadata (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_report_mirror_created ON report_mirror(created_at);
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        try:
            with self._get_connection() as conn:
                conn.executescript(self.SCHEMA)
                conn.commit()
        except sqlite3.Error as e:
            raise CacheError(f"Failed to initialize cache at {self.db_path}: {e}") from e

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper cleanup and retry for SQLITE_BUSY."""
        conn = None
        for attempt in range(5):
            try:
                conn = sqlite3.connect(str(self.db_path), timeout=30.0)
                conn.row_factory = sqlite3.Row
                break
            except sqlite3.OperationalError as e:
                if "database is locked" in str(e) and attempt < 4:
                    time.sleep(0.1 * (2 ** attempt))
                else:
                    raise
        try:
            yield conn
        finally:
            if conn:
                conn.close()

    @contextmanager
    def _transaction(self, action: str):
        """Run a block in one transaction; roll back and raise CacheError on failure."""
        try:
            with self._get_connection() as conn:
                try:
                    yield conn
                    conn.commit()
                except BaseException:
                    conn.rollback()
                    raise
        except sqlite3.Error as e:
            logger.error(f"Cache {action} failed: {e}")
            raise CacheError(f"Cache {action} failed: {e}") from e

    # === Blob Operations ===

    def _put_blob(self, key: str, data_type: str, data: list) -> None:
        with self._transaction(f"write of {key}") as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO cached_data
                (key, data_type, data, checksum, cached_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    key,
                    data_type,
                    json.dumps(data),
                    checksum(data),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )

    def _get_blob(self, key: str) -> Optional[list]:
        with self._transaction(f"read of {key}") as conn:
            row = conn.execute(
                "SELECT data, checksum FROM cached_data WHERE key = ?",
                (key,),
            ).fetchone()

        if not row:
            return None

        try:
            data = json.loads(row["data"])
        except json.JSONDecodeError as e:
            raise CacheError(f"Cached {key} is not valid JSON: {e}") from e

        if checksum(data) != row["checksum"]:
            raise CacheError(f"Cached {key} failed checksum verification")
        return data

    # === Catalog ===

    def load(self) -> Optional[list[Recipe]]:
        """Load the cached recipe snapshot, or None if nothing is cached."""
        data = self._get_blob(RECIPES_KEY)
        if data is None:
            return None
        try:
            return [Recipe.from_dict(d) for d in data]
        except (KeyError, TypeError, ValueError) as e:
            raise CacheError(f"Cached recipes are malformed: {e}") from e

    def save(self, recipes: list[Recipe]) -> None:
        """Replace the cached recipe snapshot."""
        self._put_blob(RECIPES_KEY, "recipes", [r.to_dict() for r in recipes])
        logger.debug(f"Saved {len(recipes)} recipes to local cache")

    def load_commands(self) -> Optional[list[ConsoleCommand]]:
        """Load cached console commands, or None if nothing is cached."""
        data = self._get_blob(COMMANDS_KEY)
        if data is None:
            return None
        try:
            return [ConsoleCommand.from_dict(d) for d in data]
        except (KeyError, TypeError, ValueError) as e:
            raise CacheError(f"Cached commands are malformed: {e}") from e

    def save_commands(self, commands: list[ConsoleCommand]) -> None:
        """Replace the cached console commands."""
        self._put_blob(COMMANDS_KEY, "commands", [c.to_dict() for c in commands])

    # === Report Mirror ===

    def load_reports(self) -> list[Report]:
        """Load mirrored reports, newest first."""
        with self._transaction("read of report mirror") as conn:
            rows = conn.execute(
                "SELECT data FROM report_mirror ORDER BY created_at DESC"
            ).fetchall()

        reports = []
        for row in rows:
            try:
                reports.append(Report.from_dict(json.loads(row["data"])))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed mirrored report: {e}")
        return reports

    def save_report(self, report: Report) -> None:
        """Insert or update one mirrored report."""
        with self._transaction("write of report mirror") as conn:
            self._upsert_report(conn, report)

    def replace_reports(self, reports: list[Report]) -> None:
        """Replace the whole mirror with the given reports."""
        with self._transaction("replace of report mirror") as conn:
            conn.execute("DELETE FROM report_mirror")
            for report in reports:
                self._upsert_report(conn, report)

    def remove_report(self, local_id: str) -> None:
        """Remove one mirrored report; absent reports are ignored."""
        with self._transaction("delete from report mirror") as conn:
            conn.execute("DELETE FROM report_mirror WHERE local_id = ?", (local_id,))

    @staticmethod
    def _upsert_report(conn: sqlite3.Connection, report: Report) -> None:
        conn.execute(
            """
            INSERT OR REPLACE INTO report_mirror (local_id, record_id, data, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                report.local_id,
                report.record_id,
                json.dumps(report.to_dict()),
                report.created_at.isoformat(),
            ),
        )

    # === Metadata Operations ===

    def set_metadata(self, key: str, value: str) -> None:
        """Set a metadata value."""
        with self._transaction(f"write of metadata {key}") as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO sync_metadata (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                (key, value, datetime.now(timezone.utc).isoformat()),
            )

    def get_metadata(self, key: str) -> Optional[str]:
        """Get a metadata value."""
        with self._transaction(f"read of metadata {key}") as conn:
            row = conn.execute(
                "SELECT value FROM sync_metadata WHERE key = ?",
                (key,),
            ).fetchone()
            return row["value"] if row else None

    # === Clearing ===

    def _clear(self, description: str, *statements: str) -> bool:
        try:
            with self._transaction(f"clear of {description}") as conn:
                for statement in statements:
                    conn.execute(statement)
        except CacheError:
            return False
        logger.info(f"Cleared {description}")
        return True

    def clear_catalog_cache(self) -> bool:
        """Remove the cached catalog (recipes and commands)."""
        return self._clear(
            "catalog cache",
            "DELETE FROM cached_data",
            "DELETE FROM sync_metadata WHERE key = 'last_updated'",
        )

    def clear_report_mirror(self) -> bool:
        """Remove all mirrored reports."""
        return self._clear("report mirror", "DELETE FROM report_mirror")

    def clear_all(self) -> bool:
        """Remove catalog cache, report mirror and metadata in one transaction."""
        return self._clear(
            "all cached data",
            "DELETE FROM cached_data",
            "DELETE FROM report_mirror",
            "DELETE FROM sync_metadata",
        )
