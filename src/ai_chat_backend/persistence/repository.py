from __future__ import annotations

import sqlite3
from uuid import uuid4

from ai_chat_backend.persistence.events import EventEmitter, utc_now
from ai_chat_backend.persistence.models import Attachment, ChatSession, MediaKind, Message
from ai_chat_backend.persistence.store import ChatStore

_SESSION_COLUMNS = (
    "id, owner_id, title, capability, model_hint, favorite, protected, "
    "message_count, created_at, last_activity_at"
)
_MESSAGE_COLUMNS = "id, session_id, seq, role, content, deleted, created_at"
_ATTACHMENT_COLUMNS = (
    "id, message_id, storage_key, original_name, mime_type, byte_size, "
    "media_kind, width, height, created_at"
)


class ChatRepository:
    """CRUD access to sessions, messages and attachments.

    No transaction spans more than one method call. The only compound writes
    are message insert/delete, which keep ``sessions.message_count`` in step
    inside the same commit.
    """

    def __init__(self, store: ChatStore, events: EventEmitter):
        self._store = store
        self._events = events

    # -- sessions -----------------------------------------------------------

    def create_session(
        self,
        owner_id: str,
        *,
        title: str,
        capability: str,
        model_hint: str | None = None,
    ) -> ChatSession:
        session_id = str(uuid4())
        now = utc_now()
        with self._store.transaction():
            self._store.execute(
                f"""
                INSERT INTO sessions ({_SESSION_COLUMNS})
                VALUES (?, ?, ?, ?, ?, 0, 0, 0, ?, ?)
                """,
                (session_id, owner_id, title, capability, model_hint, now, now),
            )
            self._events.emit(
                session_id,
                "session.created",
                {"session_id": session_id, "owner_id": owner_id, "capability": capability},
                commit=False,
            )
        session = self.get_session(session_id)
        assert session is not None
        return session

    def get_session(self, session_id: str) -> ChatSession | None:
        row = self._store.execute(
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE id = ? LIMIT 1",
            (session_id,),
        ).fetchone()
        return _row_to_session(row) if row is not None else None

    def list_sessions(self, owner_id: str, *, limit: int = 20, offset: int = 0) -> list[ChatSession]:
        rows = self._store.execute(
            f"""
            SELECT {_SESSION_COLUMNS}
            FROM sessions
            WHERE owner_id = ?
            ORDER BY last_activity_at DESC, created_at DESC
            LIMIT ? OFFSET ?
            """,
            (owner_id, max(1, limit), max(0, offset)),
        ).fetchall()
        return [_row_to_session(row) for row in rows]

    def save_session(self, session: ChatSession) -> None:
        """Persist the mutable session fields. ``message_count`` is owned by message writes."""
        self._store.execute(
            """
            UPDATE sessions
            SET title = ?, capability = ?, model_hint = ?, favorite = ?, protected = ?, last_activity_at = ?
            WHERE id = ?
            """,
            (
                session.title,
                session.capability,
                session.model_hint,
                1 if session.favorite else 0,
                1 if session.protected else 0,
                session.last_activity_at,
                session.id,
            ),
        )
        self._store.commit()

    def delete_session(self, session_id: str) -> list[Attachment]:
        """Delete the session with its messages and bound attachment rows.

        Returns the removed attachments so the caller can drop their blobs.
        Bound attachments never return to the unbound pool.
        """
        with self._store.transaction():
            rows = self._store.execute(
                f"""
                SELECT {_ATTACHMENT_COLUMNS}
                FROM attachments
                WHERE message_id IN (SELECT id FROM messages WHERE session_id = ?)
                ORDER BY created_at ASC, rowid ASC
                """,
                (session_id,),
            ).fetchall()
            # Databases created before the attachments cascade still carry ON DELETE SET NULL.
            self._store.execute(
                "DELETE FROM attachments WHERE message_id IN (SELECT id FROM messages WHERE session_id = ?)",
                (session_id,),
            )
            self._store.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        return [_row_to_attachment(row) for row in rows]

    # -- messages -----------------------------------------------------------

    def save_message(self, session_id: str, role: str, content: str) -> Message:
        message_id = str(uuid4())
        now = utc_now()
        with self._store.transaction():
            row = self._store.execute(
                "SELECT COALESCE(MAX(seq), 0) AS max_seq FROM messages WHERE session_id = ?",
                (session_id,),
            ).fetchone()
            next_seq = int(row["max_seq"]) + 1
            self._store.execute(
                f"""
                INSERT INTO messages ({_MESSAGE_COLUMNS})
                VALUES (?, ?, ?, ?, ?, 0, ?)
                """,
                (message_id, session_id, next_seq, role, content, now),
            )
            self._store.execute(
                """
                UPDATE sessions
                SET message_count = message_count + 1, last_activity_at = ?
                WHERE id = ?
                """,
                (now, session_id),
            )
            self._events.emit(
                session_id,
                "message.appended",
                {"session_id": session_id, "message_id": message_id, "seq": next_seq, "role": role},
                commit=False,
            )
        return Message(
            id=message_id,
            session_id=session_id,
            seq=next_seq,
            role=role,
            content=content,
            created_at=now,
        )

    def get_message(self, message_id: str) -> Message | None:
        row = self._store.execute(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE id = ? LIMIT 1",
            (message_id,),
        ).fetchone()
        if row is None:
            return None
        return _row_to_message(row, tuple(self.list_attachments(message_id)))

    def list_messages(self, session_id: str, *, include_deleted: bool = False) -> list[Message]:
        condition = "" if include_deleted else "AND deleted = 0"
        rows = self._store.execute(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages
            WHERE session_id = ? {condition}
            ORDER BY seq ASC
            """,
            (session_id,),
        ).fetchall()
        return [_row_to_message(row, tuple(self.list_attachments(row["id"]))) for row in rows]

    def soft_delete_message(self, message_id: str) -> bool:
        with self._store.transaction():
            row = self._store.execute(
                "SELECT session_id FROM messages WHERE id = ? AND deleted = 0",
                (message_id,),
            ).fetchone()
            if row is None:
                return False
            session_id = str(row["session_id"])
            self._store.execute("UPDATE messages SET deleted = 1 WHERE id = ?", (message_id,))
            self._store.execute(
                "UPDATE sessions SET message_count = message_count - 1 WHERE id = ?",
                (session_id,),
            )
            self._events.emit(
                session_id,
                "message.deleted",
                {"session_id": session_id, "message_id": message_id},
                commit=False,
            )
        return True

    def count_live_messages(self, session_id: str) -> int:
        row = self._store.execute(
            "SELECT COUNT(*) AS c FROM messages WHERE session_id = ? AND deleted = 0",
            (session_id,),
        ).fetchone()
        return int(row["c"])

    # -- attachments --------------------------------------------------------

    def create_attachment(
        self,
        *,
        storage_key: str,
        original_name: str | None,
        mime_type: str,
        byte_size: int,
        media_kind: MediaKind,
        width: int | None = None,
        height: int | None = None,
    ) -> Attachment:
        attachment_id = str(uuid4())
        now = utc_now()
        self._store.execute(
            f"""
            INSERT INTO attachments ({_ATTACHMENT_COLUMNS})
            VALUES (?, NULL, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (attachment_id, storage_key, original_name, mime_type, byte_size, media_kind.value, width, height, now),
        )
        self._store.commit()
        return Attachment(
            id=attachment_id,
            message_id=None,
            storage_key=storage_key,
            original_name=original_name,
            mime_type=mime_type,
            byte_size=byte_size,
            media_kind=media_kind,
            width=width,
            height=height,
            created_at=now,
        )

    def get_attachment(self, attachment_id: str) -> Attachment | None:
        row = self._store.execute(
            f"SELECT {_ATTACHMENT_COLUMNS} FROM attachments WHERE id = ? LIMIT 1",
            (attachment_id,),
        ).fetchone()
        return _row_to_attachment(row) if row is not None else None

    def find_attachment_by_storage_key(self, storage_key: str) -> Attachment | None:
        row = self._store.execute(
            f"SELECT {_ATTACHMENT_COLUMNS} FROM attachments WHERE storage_key = ? LIMIT 1",
            (storage_key,),
        ).fetchone()
        return _row_to_attachment(row) if row is not None else None

    def list_attachments(self, message_id: str) -> list[Attachment]:
        rows = self._store.execute(
            f"""
            SELECT {_ATTACHMENT_COLUMNS}
            FROM attachments
            WHERE message_id = ?
            ORDER BY created_at ASC, rowid ASC
            """,
            (message_id,),
        ).fetchall()
        return [_row_to_attachment(row) for row in rows]

    def find_unbound_attachments_by_original_name(self, original_name: str) -> list[Attachment]:
        rows = self._store.execute(
            f"""
            SELECT {_ATTACHMENT_COLUMNS}
            FROM attachments
            WHERE message_id IS NULL AND original_name = ?
            ORDER BY created_at ASC, rowid ASC
            """,
            (original_name,),
        ).fetchall()
        return [_row_to_attachment(row) for row in rows]

    def count_unbound_attachments(self) -> int:
        row = self._store.execute("SELECT COUNT(*) AS c FROM attachments WHERE message_id IS NULL").fetchone()
        return int(row["c"])

    def bind_attachment(self, attachment_id: str, message_id: str) -> bool:
        """Set the owning message only if the attachment is still unbound.

        Returns False when another writer bound it first.
        """
        with self._store.transaction():
            cursor = self._store.execute(
                "UPDATE attachments SET message_id = ? WHERE id = ? AND message_id IS NULL",
                (message_id, attachment_id),
            )
            if cursor.rowcount != 1:
                return False
            row = self._store.execute(
                "SELECT session_id FROM messages WHERE id = ?",
                (message_id,),
            ).fetchone()
            if row is not None:
                self._events.emit(
                    str(row["session_id"]),
                    "attachment.bound",
                    {"attachment_id": attachment_id, "message_id": message_id},
                    commit=False,
                )
        return True

    def list_orphaned_attachments(self, created_before: str) -> list[Attachment]:
        rows = self._store.execute(
            f"""
            SELECT {_ATTACHMENT_COLUMNS}
            FROM attachments
            WHERE message_id IS NULL AND created_at < ?
            ORDER BY created_at ASC
            """,
            (created_before,),
        ).fetchall()
        return [_row_to_attachment(row) for row in rows]

    def delete_attachment(self, attachment_id: str) -> None:
        self._store.execute("DELETE FROM attachments WHERE id = ?", (attachment_id,))
        self._store.commit()


def _row_to_session(row: sqlite3.Row) -> ChatSession:
    return ChatSession(
        id=row["id"],
        owner_id=row["owner_id"],
        title=row["title"],
        capability=row["capability"],
        model_hint=row["model_hint"],
        favorite=bool(row["favorite"]),
        protected=bool(row["protected"]),
        message_count=int(row["message_count"]),
        created_at=row["created_at"],
        last_activity_at=row["last_activity_at"],
    )


def _row_to_message(row: sqlite3.Row, attachments: tuple[Attachment, ...]) -> Message:
    return Message(
        id=row["id"],
        session_id=row["session_id"],
        seq=int(row["seq"]),
        role=row["role"],
        content=row["content"],
        created_at=row["created_at"],
        deleted=bool(row["deleted"]),
        attachments=attachments,
    )


def _row_to_attachment(row: sqlite3.Row) -> Attachment:
    return Attachment(
        id=row["id"],
        message_id=row["message_id"],
        storage_key=row["storage_key"],
        original_name=row["original_name"],
        mime_type=row["mime_type"],
        byte_size=int(row["byte_size"]),
        media_kind=MediaKind(row["media_kind"]),
        width=row["width"],
        height=row["height"],
        created_at=row["created_at"],
    )
