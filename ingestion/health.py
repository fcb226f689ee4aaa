"""
Processing health evaluation.

evaluate_health is a pure function over a snapshot of tracking counts so the
UP / DEGRADED / DOWN rules can be tested without a database.
"""

from datetime import datetime
from typing import List, Optional

from schemas.processing import HealthReport

UP = "UP"
DEGRADED = "DEGRADED"
DOWN = "DOWN"


def evaluate_health(
    *,
    now: datetime,
    recent_processed: int,
    recent_failed: int,
    currently_processing: int,
    last_completed_at: Optional[datetime],
    last_completed_file: Optional[str] = None,
    failure_rate_threshold: float,
    staleness_hours: float,
    max_concurrent_files: int,
) -> HealthReport:
    """
    Classify processing health.

    Issues:
    - failure rate over the threshold
    - no completed file within the staleness window, or no history at all
    - concurrent files at or above capacity

    No issues is UP. A single issue while the failure rate is at most twice
    the threshold is DEGRADED. Anything else is DOWN.
    """
    failure_rate = recent_failed / recent_processed if recent_processed > 0 else 0.0
    issues: List[str] = []

    if failure_rate > failure_rate_threshold:
        issues.append(
            f"Failure rate ({failure_rate * 100:.2f}%) exceeds threshold "
            f"({failure_rate_threshold * 100:.2f}%)"
        )

    hours_since_last: Optional[float] = None
    if last_completed_at is None:
        is_stale = True
        issues.append("No processing history available")
    else:
        hours_since_last = (now - last_completed_at).total_seconds() / 3600.0
        is_stale = hours_since_last > staleness_hours
        if is_stale:
            issues.append(
                f"Processing system is stale - last activity {int(hours_since_last)} hours ago"
            )

    if currently_processing >= max_concurrent_files:
        issues.append(
            f"Processing capacity exceeded: {currently_processing}/{max_concurrent_files} concurrent files"
        )

    if not issues:
        status = UP
    elif len(issues) == 1 and failure_rate <= failure_rate_threshold * 2:
        status = DEGRADED
    else:
        status = DOWN

    return HealthReport(
        status=status,
        timestamp=now,
        failure_rate=round(failure_rate, 4),
        failure_rate_threshold=failure_rate_threshold,
        recent_processed_files=recent_processed,
        recent_failed_files=recent_failed,
        currently_processing=currently_processing,
        max_concurrent_files=max_concurrent_files,
        last_processed_file=last_completed_file,
        last_processing_completed_at=last_completed_at,
        hours_since_last_processing=round(hours_since_last, 2) if hours_since_last is not None else None,
        is_stale=is_stale,
        issues=issues,
    )
