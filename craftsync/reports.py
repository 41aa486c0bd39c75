"""
Craftify Sync - Report Submission & Tracking Client

Creates, lists and deletes the user's report records in the public store.
Report content is immutable once created; only the back office changes the
status.
"""

import logging
import math
import time
from dataclasses import replace
from typing import Callable, Optional

from .errors import NotFoundError, RateLimitError, ValidationError
from .models import REPORT_RECORD_TYPE, Report, ReportKind
from .remote import RemoteStore

logger = logging.getLogger(__name__)


# =============================================================================
# Submission Cooldown
# =============================================================================

class SubmissionCooldown:
    """Client-side minimum interval between successive report submissions."""

    def __init__(self, window_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds
        self._clock = clock
        self.last_submission_time: Optional[float] = None

    def remaining(self) -> int:
        """Whole seconds left in the cooldown (rounded up); 0 when a submit is allowed."""
        if self.last_submission_time is None:
            return 0
        elapsed = self._clock() - self.last_submission_time
        if elapsed >= self.window_seconds:
            return 0
        return max(1, math.ceil(self.window_seconds - elapsed))

    def check(self) -> None:
        """Raise RateLimitError while inside the window."""
        remaining = self.remaining()
        if remaining > 0:
            raise RateLimitError(
                f"Please wait {remaining} seconds before submitting another report.",
                remaining=remaining,
            )

    def record(self) -> None:
        """Mark a successful submission."""
        self.last_submission_time = self._clock()

    def reset(self) -> None:
        self.last_submission_time = None


def validate_report_fields(recipe_name: str, category: str, description: str) -> None:
    """Reject blank required fields before any I/O."""
    missing = [
        name
        for name, value in (
            ("recipe_name", recipe_name),
            ("category", category),
            ("description", description),
        )
        if not value or not value.strip()
    ]
    if missing:
        raise ValidationError(
            f"Please fill in all required fields: {', '.join(missing)}",
            fields=missing,
        )


# =============================================================================
# Report Client
# =============================================================================

class ReportClient:
    """Remote operations on the current user's reports."""

    def __init__(self, remote: RemoteStore):
        self.remote = remote

    async def submit(
        self,
        kind: ReportKind,
        recipe_name: str,
        category: str,
        description: str,
        recipe_id: Optional[int] = None,
    ) -> Report:
        """
        Create a report record.

        Returns:
            The report as stored, with its remote record id and status Pending

        Raises:
            ValidationError: If a required field is blank
            SyncError: If the remote call fails
        """
        validate_report_fields(recipe_name, category, description)

        report = Report(
            kind=kind,
            recipe_name=recipe_name.strip(),
            category=category.strip(),
            description=description.strip(),
            recipe_id=recipe_id,
        )
        record = await self.remote.create_record(REPORT_RECORD_TYPE, report.to_fields())

        logger.info(f"Submitted report {report.local_id} for {report.recipe_name}")
        return replace(report, record_id=record["record_name"])

    async def list_mine(self, user_id: str) -> list[Report]:
        """List the reports created by user_id, newest first."""
        records = await self.remote.query_all(
            REPORT_RECORD_TYPE,
            filters={"created_by": user_id},
        )

        reports = []
        for record in records:
            report = Report.from_record(record)
            if report is None:
                logger.warning(f"Report record {record.get('record_name')} is incomplete or corrupted")
                continue
            reports.append(report)

        reports.sort(key=lambda r: r.created_at, reverse=True)
        return reports

    async def delete(self, report: Report) -> None:
        """Delete the remote record; a record that no longer exists counts as deleted."""
        if report.record_id is None:
            return
        try:
            await self.remote.delete_record(REPORT_RECORD_TYPE, report.record_id)
        except NotFoundError:
            logger.debug(f"Report {report.record_id} already gone")

    async def delete_all(self, reports: list[Report]) -> None:
        """Delete every given report; stops at the first non-idempotent failure."""
        for report in reports:
            await self.delete(report)
