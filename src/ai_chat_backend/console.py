from __future__ import annotations

import mimetypes
import shlex
from pathlib import Path

from loguru import logger

from ai_chat_backend.attachments.uploads import register_upload
from ai_chat_backend.bootstrap import ChatRuntime
from ai_chat_backend.commands.router import CommandRouter
from ai_chat_backend.errors import InvalidInputError, NotFoundError
from ai_chat_backend.persistence.models import ChatSession, ClientAttachmentRef

_HELP_TEXT = (
    "Commands:\n"
    "  /attach <path>          upload a file and attach it to the next message\n"
    "  /capability [tag]       show or set the session capability\n"
    "  /model [name|clear]     show or set the session model hint\n"
    "  /session                show the current session\n"
    "  /session new [title]    start a new session\n"
    "  /session resume <id>    switch to an existing session\n"
    "  /sessions [limit]       list your sessions by last activity\n"
    "  /favorite, /protect     toggle the session flags\n"
    "  /title <text>           rename the session"
)


class ChatConsole:
    """Line-oriented front end over SessionManager for local use."""

    def __init__(self, runtime: ChatRuntime, session_id: str, *, line_prefix: str = "assistant> "):
        self._runtime = runtime
        self._sessions = runtime.sessions
        self._owner_id = runtime.app.owner_id
        self._session_id = session_id
        self._line_prefix = line_prefix
        self._pending_refs: list[ClientAttachmentRef] = []
        self._router = CommandRouter(
            on_help=self._handle_help,
            on_attach=self._handle_attach,
            on_capability=self._handle_capability,
            on_model=self._handle_model,
            on_session=self._handle_session,
            on_sessions=self._handle_sessions,
            on_favorite=self._handle_favorite,
            on_protect=self._handle_protect,
            on_title=self._handle_title,
            on_unknown=self._handle_unknown,
        )

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def pending_refs(self) -> list[ClientAttachmentRef]:
        return list(self._pending_refs)

    async def run_turn(self, user_input: str) -> None:
        if await self._router.try_handle(user_input):
            return

        refs, self._pending_refs = self._pending_refs, []
        try:
            _, reply = await self._sessions.send(self._session_id, self._owner_id, user_input, refs)
        except (InvalidInputError, NotFoundError) as ex:
            self._pending_refs = refs
            self._print(f"Error: {ex}")
            return
        self._print(reply.content)

    # -- handlers ---------------------------------------------------------------

    async def _handle_help(self) -> None:
        self._print(_HELP_TEXT)

    async def _handle_attach(self, command: str) -> None:
        parts = self._split(command)
        if parts is None or len(parts) != 2:
            self._print("Usage: /attach <path>")
            return
        path = Path(parts[1]).expanduser()
        if not path.is_file():
            self._print(f"File not found: {path}")
            return

        mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        try:
            attachment = register_upload(
                self._runtime.repository,
                self._runtime.blobs,
                path.read_bytes(),
                path.name,
                mime_type,
            )
        except InvalidInputError as ex:
            self._print(f"Upload rejected: {ex}")
            return

        self._pending_refs.append(ClientAttachmentRef(file_id=attachment.storage_key, original_name=path.name))
        self._print(f"Attached {path.name} ({attachment.media_kind.value}, {attachment.byte_size} bytes)")

    async def _handle_capability(self, command: str) -> None:
        parts = command.split(maxsplit=1)
        if len(parts) == 1:
            self._print(f"Capability: {self._current().capability}")
            return
        session = self._sessions.update_capability(self._session_id, self._owner_id, parts[1])
        self._print(f"Capability set to {session.capability}")

    async def _handle_model(self, command: str) -> None:
        parts = command.split(maxsplit=1)
        if len(parts) == 1:
            self._print(f"Model: {self._current().model_hint or '(default)'}")
            return
        value = None if parts[1].strip().lower() == "clear" else parts[1]
        session = self._sessions.update_model(self._session_id, self._owner_id, value)
        self._print(f"Model set to {session.model_hint or '(default)'}")

    async def _handle_session(self, command: str) -> None:
        parts = command.split(maxsplit=2)
        if len(parts) == 1:
            self._print(self._describe(self._current()))
            return

        action = parts[1].lower()
        if action == "new":
            title = parts[2] if len(parts) > 2 else None
            session = self._sessions.create_session(self._owner_id, title=title)
            self._switch(session)
            return
        if action == "resume" and len(parts) == 3:
            try:
                session = self._sessions.get_session(parts[2].strip(), self._owner_id)
            except NotFoundError as ex:
                self._print(str(ex))
                return
            self._switch(session)
            return
        self._print("Usage: /session [new [title] | resume <id>]")

    async def _handle_sessions(self, command: str) -> None:
        parts = command.split()
        limit = 20
        if len(parts) > 1:
            try:
                limit = int(parts[1])
            except ValueError:
                self._print("Usage: /sessions [limit]")
                return
        sessions = self._sessions.list_sessions(self._owner_id, limit=limit)
        if not sessions:
            self._print("No sessions.")
            return
        lines = [
            f"{'*' if s.id == self._session_id else ' '} {s.id}  {s.title}  "
            f"[{s.capability}] messages={s.message_count} last={s.last_activity_at}"
            for s in sessions
        ]
        self._print("\n".join(lines))

    async def _handle_favorite(self, command: str) -> None:
        session = self._sessions.toggle_favorite(self._session_id, self._owner_id)
        self._print(f"Favorite: {'on' if session.favorite else 'off'}")

    async def _handle_protect(self, command: str) -> None:
        session = self._sessions.toggle_protected(self._session_id, self._owner_id)
        self._print(f"Protected: {'on' if session.protected else 'off'}")

    async def _handle_title(self, command: str) -> None:
        parts = command.split(maxsplit=1)
        if len(parts) == 1:
            self._print("Usage: /title <text>")
            return
        session = self._sessions.rename_session(self._session_id, self._owner_id, parts[1])
        self._print(f"Title set to {session.title}")

    def _handle_unknown(self, command: str) -> None:
        self._print(f"Unknown command: {command.split()[0]} (try /help)")

    # -- helpers ----------------------------------------------------------------

    def _current(self) -> ChatSession:
        return self._sessions.get_session(self._session_id, self._owner_id)

    def _switch(self, session: ChatSession) -> None:
        self._session_id = session.id
        self._pending_refs = []
        logger.info(f"Active session: {session.id}")
        self._print(f"Switched to session {session.id} ({session.title})")

    @staticmethod
    def _describe(session: ChatSession) -> str:
        return (
            f"Session {session.id}\n"
            f"  title: {session.title}\n"
            f"  capability: {session.capability}\n"
            f"  model: {session.model_hint or '(default)'}\n"
            f"  favorite: {session.favorite}, protected: {session.protected}\n"
            f"  messages: {session.message_count}, last activity: {session.last_activity_at}"
        )

    def _split(self, command: str) -> list[str] | None:
        try:
            return shlex.split(command)
        except ValueError:
            return None

    def _print(self, text: str) -> None:
        print(f"{self._line_prefix}{text}")
