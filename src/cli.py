"""Simple CLI REPL for the debate coordinator.

Usage:
    python -m src.cli [--name CONTEXT]

Besides questions, the REPL understands:
    /incidents [query]   list stored incidents, newest first
    /delete <id>         delete an incident
    quit                 exit
"""

import argparse
import asyncio
import logging
import sys
import threading
import uuid

from src.agent.llm import is_llm_configured
from src.config import get_settings
from src.debate.coordinator import DebateCoordinator, build_coordinator

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s",
)


def _start_reader(loop: asyncio.AbstractEventLoop, queue: "asyncio.Queue[str | None]") -> None:
    """Read stdin on a daemon thread so background persistence keeps running between prompts."""

    def _read() -> None:
        while True:
            try:
                line = sys.stdin.readline()
            except (KeyboardInterrupt, ValueError):
                line = ""
            loop.call_soon_threadsafe(queue.put_nowait, line if line else None)
            if not line:
                return

    threading.Thread(target=_read, name="cli-stdin", daemon=True).start()


async def _print_incidents(coordinator: DebateCoordinator, query: str | None) -> None:
    incidents = await coordinator.incidents(query)
    if not incidents:
        print("No incidents found.\n")
        return
    for inc in incidents:
        print(f"- {inc['id']} [{inc['status']}] {inc['timestamp'][:19]}")
        print(f"  Q: {inc['question']}")
        print(f"  Decision: {inc['decision']}")
        if inc["summary"]:
            print(f"  Summary: {inc['summary']}")
    print()


async def _repl(name: str) -> None:
    try:
        coordinator = build_coordinator(name)
    except Exception as e:
        print(f"Failed to start coordinator: {e}")
        print("Check MEMORY_DB_PATH in your .env file.")
        sys.exit(1)

    if not is_llm_configured(get_settings()):
        print("No API key configured for LLM_PROVIDER; only /incidents and /delete will work.")

    session_id = uuid.uuid4().hex[:8]
    print(f"Context: {name}  Session: {session_id}\n")

    queue: asyncio.Queue[str | None] = asyncio.Queue()
    _start_reader(asyncio.get_running_loop(), queue)

    try:
        while True:
            print("You: ", end="", flush=True)
            line = await queue.get()
            if line is None:
                print("\nGoodbye!")
                break

            question = line.strip()
            if not question:
                continue
            if question.lower() in ("quit", "exit", "q"):
                print("Goodbye!")
                break
            if question.startswith("/incidents"):
                await _print_incidents(coordinator, question.removeprefix("/incidents").strip() or None)
                continue
            if question.startswith("/delete"):
                incident_id = question.removeprefix("/delete").strip()
                if not incident_id:
                    print("Usage: /delete <id>\n")
                    continue
                result = await coordinator.delete_incident(incident_id)
                print(f"Deleted {result['deleted_id']}\n")
                continue

            print("\nCoordinator: ", end="", flush=True)
            try:
                async for chunk in coordinator.respond(question, session_id=session_id):
                    print(chunk, end="", flush=True)
                print("\n")
            except Exception as e:
                print(f"\nError: {e}\n")
    finally:
        await coordinator.drain()
        coordinator.store.close()


def main() -> None:
    """Run the interactive CLI loop."""
    parser = argparse.ArgumentParser(description="Incident debate coordinator REPL")
    parser.add_argument("--name", default=None, help="Coordination context name")
    args = parser.parse_args()

    print("Debate Coordinator (type 'quit' or Ctrl+C to exit)")
    print("=" * 50)

    try:
        asyncio.run(_repl(args.name or get_settings().default_context))
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == "__main__":
    main()
