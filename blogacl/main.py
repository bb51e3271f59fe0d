from __future__ import annotations

from fastapi import FastAPI, HTTPException

from blogacl.api.routers import acl, eventlog
from blogacl.infra.db import check_db_ready
from blogacl.infra.eventlog import AuditMiddleware

app = FastAPI(
    title="blogacl",
    description="Access control administration for the blog platform.",
    version="0.1.0",
)

app.add_middleware(AuditMiddleware)

app.include_router(acl.router, prefix="/api/acl", tags=["acl"])
app.include_router(eventlog.router, prefix="/api/eventlog", tags=["eventlog"])


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/readyz")
def readyz() -> dict[str, object]:
    db_ok = check_db_ready()
    checks = {"db": "ok" if db_ok else "fail"}
    if not db_ok:
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "checks": checks},
        )
    return {"status": "ready", "checks": checks}
