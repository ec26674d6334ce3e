"""
Talk to a running voice server from the terminal.

Usage:
    python -m voice_client --url http://127.0.0.1:8000/api/chat
    python -m voice_client --audio question.wav --out reply.mp3

Without --audio, reads lines from stdin and keeps the conversation going
until EOF. Each reply's audio is written to --out (overwritten per turn).
"""
import argparse
import asyncio
import sys
from pathlib import Path

from logging_setup import setup_logging
from .conversation import Conversation, ConversationError


async def _run(args: argparse.Namespace) -> int:
    conversation = Conversation(args.url)
    out = Path(args.out)

    async def turn(data) -> bool:
        try:
            reply = await conversation.submit(data)
        except ConversationError as e:
            print(f"! {e}", file=sys.stderr)
            return False
        out.write_bytes(reply.audio)
        print(f"you: {reply.transcript}")
        print(f"assistant ({reply.latency_ms} ms): {reply.text}")
        return True

    if args.audio:
        return 0 if await turn(Path(args.audio).read_bytes()) else 1

    for line in sys.stdin:
        line = line.strip()
        if line:
            await turn(line)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(prog="voice_client")
    parser.add_argument("--url", default="http://127.0.0.1:8000/api/chat")
    parser.add_argument("--audio", help="WAV file to send instead of reading text from stdin")
    parser.add_argument("--out", default="reply.mp3", help="where to write the reply audio")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    setup_logging(level=args.log_level, use_json=True)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
