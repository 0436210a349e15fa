from __future__ import annotations

import json
from datetime import UTC, datetime
from uuid import uuid4

from ai_chat_backend.persistence.store import ChatStore


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds")


class EventEmitter:
    """Appends audit events to the events table.

    Callers that already hold a transaction pass ``commit=False`` so the event
    lands in the same commit as the change it describes.
    """

    def __init__(self, store: ChatStore):
        self._store = store

    def emit(self, session_id: str, event_type: str, payload: dict, *, commit: bool = True) -> None:
        self._store.execute(
            """
            INSERT INTO events (id, session_id, type, payload_json, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                str(uuid4()),
                session_id,
                event_type,
                json.dumps(payload, ensure_ascii=True),
                utc_now(),
            ),
        )
        if commit:
            self._store.commit()

    def list_events(self, session_id: str) -> list[dict]:
        rows = self._store.execute(
            "SELECT type, payload_json, created_at FROM events WHERE session_id = ? ORDER BY created_at ASC, rowid ASC",
            (session_id,),
        ).fetchall()
        return [
            {"type": row["type"], "payload": json.loads(row["payload_json"]), "created_at": row["created_at"]}
            for row in rows
        ]
