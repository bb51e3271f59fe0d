from __future__ import annotations

import logging

from sqlalchemy import event, inspect
from sqlmodel import Session, col, select
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from blogacl.domain.models import EventLogEntry, LogSeverity
from blogacl.infra.db import engine

logger = logging.getLogger("blogacl.eventlog")

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
UNAUDITED_PATHS = {"/healthz", "/readyz"}

_LOGGING_LEVELS: dict[LogSeverity, int] = {
    LogSeverity.DEBUG: logging.DEBUG,
    LogSeverity.INFO: logging.INFO,
    LogSeverity.NOTICE: logging.INFO,
    LogSeverity.WARNING: logging.WARNING,
    LogSeverity.ERROR: logging.ERROR,
    LogSeverity.CRITICAL: logging.CRITICAL,
}


def write_event_log(
    message: str,
    severity: LogSeverity | str = LogSeverity.INFO,
    category: str = "default",
    source: str = "blogacl",
    *,
    session: Session | None = None,
) -> EventLogEntry:
    level = LogSeverity(severity)
    entry = EventLogEntry(message=message, severity=level.value, category=category, source=source)

    def _mirror() -> None:
        logger.log(_LOGGING_LEVELS[level], "%s [%s/%s]", message, category, source)

    # Joining the caller's session keeps the entry in the caller's transaction.
    if session is not None:
        session.add(entry)

        def _after_commit(_session: Session) -> None:
            # Entries discarded by a rollback are transient again.
            if inspect(entry).persistent:
                _mirror()

        event.listen(session, "after_commit", _after_commit, once=True)
        return entry
    with Session(engine, expire_on_commit=False) as own_session:
        own_session.add(entry)
        own_session.commit()
        own_session.refresh(entry)
    _mirror()
    return entry


def list_event_log(
    *,
    limit: int = 50,
    category: str | None = None,
    severity: LogSeverity | None = None,
) -> list[EventLogEntry]:
    statement = select(EventLogEntry)
    if category is not None:
        statement = statement.where(EventLogEntry.category == category)
    if severity is not None:
        statement = statement.where(EventLogEntry.severity == severity.value)
    statement = statement.order_by(col(EventLogEntry.ts).desc(), col(EventLogEntry.id).desc()).limit(limit)
    with Session(engine, expire_on_commit=False) as session:
        return list(session.exec(statement).all())


def _status_severity(status_code: int) -> LogSeverity:
    if status_code >= 500:
        return LogSeverity.ERROR
    if status_code >= 400:
        return LogSeverity.WARNING
    return LogSeverity.INFO


def should_audit_request(method: str, path: str) -> bool:
    return method in WRITE_METHODS and path not in UNAUDITED_PATHS


class AuditMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        if not should_audit_request(request.method, request.url.path):
            return response

        claims = getattr(request.state, "claims", {})
        actor = claims.get("sub", "anonymous")
        message = f"{request.method} {request.url.path} -> {response.status_code} by {actor}"
        try:
            write_event_log(
                message,
                _status_severity(response.status_code),
                "audit",
                "api",
            )
        except Exception:
            # Audit must not block request flow.
            logger.exception("failed to record audit entry for %s", request.url.path)
        return response
