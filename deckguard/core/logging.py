"""
deckguard/core/logging.py — loguru structured JSON logging setup
Every guard decision, counter commit, prune sweep, report and moderation
action is logged as one JSON record. Identities appear only as hash prefixes.
"""
from __future__ import annotations

import json
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Optional

from loguru import logger

_HASH_PREFIX = 12


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure loguru for structured JSON output to stdout.
    """
    # Remove default loguru handler
    logger.remove()

    logger.add(
        sys.stdout,
        level=log_level.upper(),
        format="{message}",
        serialize=True,
        backtrace=True,
        diagnose=False,
        colorize=False,
    )


def short_hash(value: Optional[str]) -> Optional[str]:
    """Truncate a digest for log output."""
    if not value:
        return value
    return value[:_HASH_PREFIX]


def _build_log_record(
    component: str,
    operation: str,
    extra: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Build a base structured log record."""
    record: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "component": component,
        "operation": operation,
    }
    if extra:
        record.update(extra)
    return record


# ──────────────────────────────────────────────────────────────────────────────
# Event helpers
# ──────────────────────────────────────────────────────────────────────────────

def log_guard_decision(
    action: str,
    accepted: bool,
    reason: Optional[str] = None,
    fingerprint: Optional[str] = None,
    persisted: bool = False,
) -> None:
    """One record per guarded write, accepted or not."""
    record = _build_log_record("submission_guard", action, {
        "accepted": accepted,
        "reason": reason,
        "fingerprint": short_hash(fingerprint),
        "persisted": persisted,
    })
    if accepted:
        logger.info(json.dumps(record))
    else:
        logger.warning(json.dumps(record))


def log_rate_limit_commit(
    scope: str,
    key: str,
    count: int,
    success: bool,
    error: Optional[str] = None,
) -> None:
    record = _build_log_record("rate_limit_store", "commit", {
        "scope": scope,
        "key": short_hash(key),
        "count": count,
        "success": success,
        "error": error,
    })
    if success:
        logger.debug(json.dumps(record))
    else:
        logger.warning(json.dumps(record))


def log_prune(scope: str, deleted: int, cutoff: datetime) -> None:
    record = _build_log_record("rate_limit_store", "prune", {
        "scope": scope,
        "deleted": deleted,
        "cutoff": cutoff.isoformat(),
    })
    logger.debug(json.dumps(record))


def log_report(
    feature_id: str,
    reported_count: int,
    hidden: bool,
) -> None:
    record = _build_log_record("submission_guard", "report_applied", {
        "feature_id": feature_id,
        "reported_count": reported_count,
        "hidden": hidden,
    })
    logger.info(json.dumps(record))


def log_moderation_action(
    feature_id: str,
    decision: str,
    applied: bool,
) -> None:
    record = _build_log_record("moderation", decision, {
        "feature_id": feature_id,
        "applied": applied,
    })
    logger.info(json.dumps(record))


def log_error(
    component: str,
    operation: str,
    error: Exception,
    context: Optional[dict[str, Any]] = None,
) -> None:
    """Every error is logged with full context."""
    tb = traceback.format_exc()
    record = _build_log_record(component, operation, {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "stack_trace": tb[:2000] if tb else "",
        "context": context or {},
    })
    logger.error(json.dumps(record))
