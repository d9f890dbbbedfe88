# common/deps.py
from contextlib import contextmanager

from fastapi import HTTPException, Request

from core.db import get_family_connection, return_family_connection


# ---------------------------
# Database connections
# ---------------------------
@contextmanager
def family_conn(cfg=None):
    """
    Context manager for the family inventory DB.
    Automatically commits on successful exit, rolls back on exception.
    Usage:
        with family_conn() as conn:
            with conn.cursor() as cur: ...
    """
    conn = get_family_connection(cfg)
    try:
        yield conn
        conn.commit()  # Auto-commit on success (including read operations)
    except Exception:
        conn.rollback()  # Auto-rollback on error
        raise
    finally:
        return_family_connection(conn)


# ---------------------------
# Hub / path params
# ---------------------------
def get_hub(request: Request):
    """The FamilySyncHub built by create_app()."""
    return request.app.state.hub


def normalize_family_code(raw: str) -> str:
    return (raw or "").strip().upper()


def valid_family_id(family_id: str, request: Request) -> str:
    """Path dependency: family codes are short uppercase alphanumeric tokens."""
    code = normalize_family_code(family_id)
    if not get_hub(request).is_valid_code(code):
        raise HTTPException(status_code=400, detail="Invalid family code")
    return code
