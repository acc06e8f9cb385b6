"""Health and readiness routes."""

import sqlite3

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from blink import __version__
from blink.db.connection import get_conn

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": __version__}


@router.get("/readyz")
def readyz() -> JSONResponse:
    """Ready once the database answers and migrations have been applied."""
    try:
        with get_conn() as conn:
            row = conn.execute("SELECT COUNT(*) AS cnt FROM schema_migrations").fetchone()
    except sqlite3.Error as exc:
        return JSONResponse(status_code=503, content={"status": "unavailable", "error": str(exc)})
    return JSONResponse(
        status_code=200,
        content={"status": "ready", "migrations": int(row["cnt"]) if row else 0},
    )
