"""Terminal chat client for a running relay.

Creates a new conversation unless one is given, then sends each line you
type and prints the reply as it streams in. Ctrl-D or an empty line quits.
With --export the stored history of --conversation is written as JSON
instead (use "-" for stdout).

Usage:
    pip install -e .
    python backend/scripts/chat_cli.py --url http://localhost:8000
    python backend/scripts/chat_cli.py --conversation 3 --api-key sk-...
    python backend/scripts/chat_cli.py --conversation 3 --export chat-3.json
"""

import argparse
import asyncio
from pathlib import Path

import httpx

from chatrelay.client import StreamConsumer, TerminalRenderer


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chat with the relay from a terminal.")
    parser.add_argument("--url", default="http://localhost:8000", help="Relay base URL")
    parser.add_argument("--conversation", type=int, help="Continue an existing conversation")
    parser.add_argument("--title", default="Terminal chat", help="Title for a new conversation")
    parser.add_argument("--api-key", default="", help="Upstream key sent as a bearer token")
    parser.add_argument("--redraw", action="store_true", help="Redraw the full history after each reply")
    parser.add_argument("--export", metavar="FILE", help="Write the conversation history as JSON and exit")
    args = parser.parse_args()
    if args.export and args.conversation is None:
        parser.error("--export needs --conversation")
    return args


async def export(consumer: StreamConsumer, conversation_id: int, path: str) -> None:
    data = await consumer.export_history(conversation_id)
    if path == "-":
        print(data)
        return
    Path(path).write_text(data + "\n", encoding="utf-8")
    print(f"Exported conversation {conversation_id} to {path}")


async def main(args: argparse.Namespace) -> None:
    headers = {"Authorization": f"Bearer {args.api_key}"} if args.api_key else {}
    async with httpx.AsyncClient(base_url=args.url, headers=headers, timeout=None) as http:
        consumer = StreamConsumer(http, TerminalRenderer(redraw=args.redraw))

        if args.export:
            await export(consumer, args.conversation, args.export)
            return

        if args.conversation is None:
            conversation_id = await consumer.create_conversation(args.title)
            print(f"Started conversation {conversation_id}")
        else:
            conversation_id = args.conversation
            await consumer.reconcile(conversation_id)

        while True:
            try:
                line = await asyncio.to_thread(input, "")
            except EOFError:
                break
            if not line.strip():
                break
            await consumer.send(conversation_id, line)


if __name__ == "__main__":
    try:
        asyncio.run(main(parse_args()))
    except KeyboardInterrupt:
        pass
