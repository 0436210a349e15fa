import asyncio

from dotenv import load_dotenv
from loguru import logger

from ai_chat_backend.app_config import load_json_config, parse_app_config, resolve_runtime_env
from ai_chat_backend.bootstrap import build_runtime
from ai_chat_backend.console import ChatConsole
from ai_chat_backend.errors import NotFoundError


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()
    runtime = build_runtime(app, env)

    try:
        session_id: str | None = None
        if app.session_id:
            try:
                session_id = runtime.sessions.get_session(app.session_id, app.owner_id).id
            except NotFoundError:
                logger.warning(f"Configured session not found, starting a new one: {app.session_id}")
        if session_id is None:
            session_id = runtime.sessions.create_session(app.owner_id).id

        console = ChatConsole(runtime, session_id)

        print("ai-chat-backend (type 'exit' to quit, '/help' for commands)")
        print(f"Provider: {app.provider_name} ({app.provider_base_url})")
        print(f"Session: {session_id}")
        if runtime.log_descriptions:
            print(f"Logging: {', '.join(runtime.log_descriptions)}")
        print()

        while True:
            try:
                user_input = input("you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()
            if trimmed in ("exit", "quit"):
                break
            if not trimmed:
                continue

            try:
                await console.run_turn(trimmed)
                print()
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        await runtime.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
