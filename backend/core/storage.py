"""
In-memory session storage.

Each session id maps to one Workspace (dataset + two chart configs) and to the
metadata of its latest upload. Nothing is persisted across process restarts.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional

from server.pipeline import Workspace


# ---------------------------------------------------------------------------
# Session store
# ---------------------------------------------------------------------------

WORKSPACES: Dict[str, Workspace] = {}
SESS_META: Dict[str, dict] = {}


def get_workspace(session_id: str) -> Workspace:
    if session_id not in WORKSPACES:
        WORKSPACES[session_id] = Workspace()
    return WORKSPACES[session_id]


def find_workspace(session_id: str) -> Optional[Workspace]:
    return WORKSPACES.get(session_id)


def get_upload_meta(session_id: str) -> Optional[dict]:
    return SESS_META.get(session_id)


def record_upload(session_id: str, identifier: str, rows: int, columns: int) -> dict:
    meta = {
        "identifier": identifier,
        "rows": rows,
        "columns": columns,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    SESS_META[session_id] = meta
    return meta


def forget_upload(session_id: str) -> None:
    SESS_META.pop(session_id, None)
