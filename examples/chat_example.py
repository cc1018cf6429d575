# nexus_stream_toolkit/examples/chat_example.py
"""Terminal chat with one of the default agents.

Type a message and press enter; press Ctrl+C while a reply is streaming to stop
it (the partial reply is kept). An empty line quits.
"""

import asyncio
import logging
import sys

from nexus_stream_toolkit import (
    DEFAULT_AGENTS,
    AppSettings,
    ChatSession,
    InMemoryMessageStore,
    StreamOrchestrator,
)

logging.basicConfig(level=logging.WARNING)
module_logger = logging.getLogger(__name__)


class TerminalStore(InMemoryMessageStore):
    """Echoes the newly revealed part of each typewriter frame to stdout."""

    def __init__(self) -> None:
        super().__init__()
        self.shown = 0

    def set_transient(self, agent_id: str, content: str) -> None:
        super().set_transient(agent_id, content)
        sys.stdout.write(content[self.shown:])
        sys.stdout.flush()
        self.shown = len(content)


async def main() -> None:
    settings = AppSettings.from_env()
    orchestrator = StreamOrchestrator.from_settings(settings)
    agent = DEFAULT_AGENTS[0]
    store = TerminalStore()
    chat = ChatSession(orchestrator, store, settings)

    print(f"Chatting with {agent.name} ({agent.model}). Empty line to quit.")
    try:
        while True:
            text = await asyncio.to_thread(input, "\nyou> ")
            if not text.strip():
                break
            store.shown = 0
            print(f"{agent.name}> ", end="", flush=True)
            task = asyncio.create_task(chat.send_message(agent, text))
            try:
                turn = await asyncio.shield(task)
            except asyncio.CancelledError:
                # Ctrl+C: stop the reply but keep the session alive.
                chat.stop()
                turn = await task
            if turn is None:
                print("(stopped)")
            elif turn.is_error:
                print(turn.content)
            else:
                print(turn.content[store.shown:])
    finally:
        await orchestrator.aclose()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        module_logger.info("Interrupted")
