from __future__ import annotations

from collections.abc import Awaitable, Callable

Handler = Callable[[str], Awaitable[None]]


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_attach: Handler,
        on_capability: Handler,
        on_model: Handler,
        on_session: Handler,
        on_sessions: Handler,
        on_favorite: Handler,
        on_protect: Handler,
        on_title: Handler,
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._on_unknown = on_unknown
        self._handlers: dict[str, Handler] = {
            "/attach": on_attach,
            "/capability": on_capability,
            "/model": on_model,
            "/session": on_session,
            "/sessions": on_sessions,
            "/favorite": on_favorite,
            "/protect": on_protect,
            "/title": on_title,
        }

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        command = trimmed.split(maxsplit=1)[0].lower()
        if command == "/help":
            await self._on_help()
            return True

        handler = self._handlers.get(command)
        if handler is None:
            self._on_unknown(trimmed)
            return True
        await handler(trimmed)
        return True
