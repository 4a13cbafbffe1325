"""
Run one live call in the terminal.

Prints transcript entries as they are committed and the speaking state as
it changes. Ctrl-C ends the call.

    python tools/talk.py
"""

import asyncio
import sys

from dotenv import load_dotenv

from config import AppConfig
from context.conversation import TranscriptEntry
from orchestrator.enums.state import SessionState
from session.gateway import SessionGateway


def _print_entry(entry: TranscriptEntry) -> None:
    print(f"[{entry.timestamp:%H:%M:%S}] {entry.speaker:>5}: {entry.text}", flush=True)


def _print_speaking(speaking: bool) -> None:
    print("  (agent speaking)" if speaking else "  (agent idle)", flush=True)


async def main() -> int:
    load_dotenv()
    gateway = SessionGateway(config=AppConfig.load_from_env())
    gateway.history.subscribe(_print_entry)
    gateway.speaking.subscribe(_print_speaking)

    await gateway.start()
    try:
        while gateway.state in (SessionState.CONNECTING, SessionState.LISTENING):
            await asyncio.sleep(0.25)
    finally:
        await gateway.stop()

    return 1 if gateway.error_message else 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(0)
