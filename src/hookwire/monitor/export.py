"""CSV and JSON rendering of attempt history."""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Mapping
from datetime import datetime

from hookwire.models import DeliveryAttempt

EXPORT_COLUMNS = [
    "attempt_id",
    "event_id",
    "endpoint_id",
    "event_type",
    "status_code",
    "success",
    "latency_ms",
    "manual",
    "error",
    "timestamp",
]


def _format_dt(dt: datetime | None) -> str:
    if dt is None:
        return ""
    return dt.isoformat()


def attempt_rows(
    attempts: list[DeliveryAttempt], event_types: Mapping[str, str]
) -> list[dict[str, object]]:
    """Flatten attempts into export rows, oldest first.

    Args:
        attempts: Attempts to export.
        event_types: Event type by event ID. Test deliveries have none.
    """
    rows = []
    for attempt in sorted(attempts, key=lambda a: a.timestamp):
        rows.append(
            {
                "attempt_id": attempt.id,
                "event_id": attempt.event_id,
                "endpoint_id": attempt.endpoint_id,
                "event_type": event_types.get(attempt.event_id or ""),
                "status_code": attempt.status_code,
                "success": attempt.success,
                "latency_ms": attempt.latency_ms,
                "manual": attempt.manual,
                "error": attempt.error,
                "timestamp": _format_dt(attempt.timestamp),
            }
        )
    return rows


def rows_to_csv(rows: list[dict[str, object]]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=EXPORT_COLUMNS)
    writer.writeheader()
    for row in rows:
        writer.writerow({k: "" if v is None else v for k, v in row.items()})
    return buf.getvalue()


def rows_to_json(
    rows: list[dict[str, object]],
    start: datetime,
    end: datetime,
    endpoint_id: str | None,
) -> str:
    return json.dumps(
        {
            "start": _format_dt(start),
            "end": _format_dt(end),
            "endpoint_id": endpoint_id,
            "count": len(rows),
            "attempts": rows,
        },
        ensure_ascii=False,
        indent=2,
    )


__all__ = ["EXPORT_COLUMNS", "attempt_rows", "rows_to_csv", "rows_to_json"]
