from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from blogacl.api.deps import require_access
from blogacl.domain.datetimes import BlogDateTime, DateTimeSettings
from blogacl.domain.models import EventLogRead, LogSeverity
from blogacl.infra.eventlog import list_event_log

router = APIRouter()


def get_datetime_settings() -> DateTimeSettings:
    return DateTimeSettings.from_env()


@router.get(
    "",
    response_model=list[EventLogRead],
    dependencies=[Depends(require_access("manage_logs"))],
)
def read_event_log(
    settings: Annotated[DateTimeSettings, Depends(get_datetime_settings)],
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    category: str | None = None,
    severity: LogSeverity | None = None,
) -> list[EventLogRead]:
    entries = list_event_log(limit=limit, category=category, severity=severity)
    return [
        EventLogRead(
            id=entry.id or 0,
            ts=entry.ts,
            ts_display=BlogDateTime.create(entry.ts, settings).format(),
            message=entry.message,
            severity=entry.severity,
            category=entry.category,
            source=entry.source,
        )
        for entry in entries
    ]
