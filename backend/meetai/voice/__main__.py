"""
Run a voice session against a stored agent.

    python -m meetai.voice --agent-id <id>
    python -m meetai.voice --instructions "You are a helpful tutor."

Ctrl+C ends the session.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
from typing import Optional

from meetai.core.db import SessionLocal
from meetai.core.settings import get_settings
from meetai.logging_utils import configure_logging, get_logger
from meetai.models import Agent
from meetai.voice.factory import build_controller

log = get_logger("meetai.voice")

DEFAULT_INSTRUCTIONS = "You are a helpful meeting assistant. Keep answers short and conversational."


def _agent_instructions(agent_id: str) -> Optional[str]:
    with SessionLocal() as db:
        agent = db.get(Agent, agent_id)
        return agent.instructions if agent else None


async def run(instructions: str) -> None:
    controller = build_controller(instructions)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop.set))

    await controller.start_listening()
    state = controller.state
    if not state.listening:
        log.error("voice session could not start", extra={"error": state.error})
        await controller.close()
        return

    log.info("voice session started")
    try:
        await stop.wait()
    finally:
        await controller.close()
        log.info("voice session ended", extra={"turns": len(controller.history)})


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="meetai.voice", description="Talk to an agent.")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--agent-id", help="load instructions from this agent")
    group.add_argument("--instructions", help="system prompt for the session")
    args = parser.parse_args(argv)

    configure_logging("voice", get_settings().LOG_LEVEL)

    instructions = args.instructions or DEFAULT_INSTRUCTIONS
    if args.agent_id:
        found = _agent_instructions(args.agent_id)
        if found is None:
            parser.error(f"agent {args.agent_id} not found")
        instructions = found

    asyncio.run(run(instructions))


if __name__ == "__main__":
    main()
