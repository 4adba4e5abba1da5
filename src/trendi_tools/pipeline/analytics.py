"""End-of-run analytics, console dashboard and results file."""

from __future__ import annotations

import json
from collections import Counter
from pathlib import Path
from typing import Any

from trendi_tools.core.types import PipelineStage
from trendi_tools.log import get_logger
from trendi_tools.pipeline.progress import ProgressState
from trendi_tools.storage.models import utcnow

logger = get_logger(__name__)

ERROR_PREFIX_LENGTH = 50
TOP_ERRORS = 5


def generate_analytics(state: ProgressState, max_retries: int) -> dict[str, Any]:
    completed = state.completed_count
    failed = state.failed_count
    total = state.total_urls
    success_rate = round(completed / total * 100, 1) if total else 0.0

    stages = {stage.value: 0 for stage in PipelineStage}
    single = multiple = exhausted = 0
    errors: Counter[str] = Counter()
    for progress in state.urls.values():
        stages[progress.status.value] += 1
        if progress.attempts == 1:
            single += 1
        elif progress.attempts > 1:
            multiple += 1
        if progress.attempts >= max_retries:
            exhausted += 1
        if progress.error:
            errors[progress.error[:ERROR_PREFIX_LENGTH]] += 1

    return {
        "overview": {
            "total_urls": total,
            "processed": state.processed_count,
            "completed": completed,
            "failed": failed,
            "pending": max(total - state.processed_count, 0),
            "success_rate": success_rate,
        },
        "stages": stages,
        "retry_stats": {
            "single_attempt": single,
            "multiple_attempts": multiple,
            "max_retries": exhausted,
        },
        "top_errors": [
            {"error": error, "count": count} for error, count in errors.most_common(TOP_ERRORS)
        ],
    }


def render_dashboard(analytics: dict[str, Any]) -> str:
    overview = analytics["overview"]
    retry = analytics["retry_stats"]
    rule = "=" * 75
    lines = [
        rule,
        "Processing Dashboard",
        rule,
        "",
        "Overview:",
        f"   Total URLs: {overview['total_urls']}",
        f"   Completed: {overview['completed']}",
        f"   Failed: {overview['failed']}",
        f"   Pending: {overview['pending']}",
        f"   Success Rate: {overview['success_rate']}%",
        "",
        "Stage Breakdown:",
    ]
    for stage, count in analytics["stages"].items():
        if count > 0:
            lines.append(f"   {stage.replace('-', ' ').upper()}: {count}")
    lines += [
        "",
        "Retry Statistics:",
        f"   Single Attempt: {retry['single_attempt']}",
        f"   Required Multiple Attempts: {retry['multiple_attempts']}",
        f"   Reached Max Retries: {retry['max_retries']}",
    ]
    if analytics["top_errors"]:
        lines += ["", "Top Error Patterns:"]
        lines += [f"   {e['count']}x {e['error']}..." for e in analytics["top_errors"]]
    lines += ["", rule]
    return "\n".join(lines)


def write_results(path: str | Path, state: ProgressState, analytics: dict[str, Any]) -> Path:
    """Write analytics plus the full per-URL ledger as JSON."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "timestamp": utcnow().isoformat(),
        "analytics": analytics,
        "progress": state.model_dump(mode="json"),
    }
    target.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    logger.info("results_written", path=str(target))
    return target
