"""Line-oriented terminal chat on top of :class:`Multiplexer`."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from typing import Optional, Sequence, TextIO

from .config import load_config_from_env
from .errors import ChatMuxError
from .hub import APPEND, RESET
from .models import BROADCAST, ConversationDescriptor, DirectMessage, Message, Room
from .multiplexer import Multiplexer

QUIT_COMMAND = "/quit"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chatmux", description="Terminal chat over a single live connection")
    parser.add_argument("--username", required=True, help="Identity to connect as (required)")
    parser.add_argument("--base-url", help="Chat backend base URL (defaults to CHAT_API_BASE)")
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--dm", metavar="PEER", help="Open a direct conversation with PEER")
    target.add_argument("--room", metavar="ROOM_ID", help="Open the group room ROOM_ID")
    parser.add_argument("--room-name", default="", help="Display name for --room")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def descriptor_from_args(args: argparse.Namespace) -> ConversationDescriptor:
    if args.dm:
        return DirectMessage(args.dm)
    if args.room:
        return Room(args.room, args.room_name)
    return BROADCAST


def format_message(message: Message) -> str:
    if message.attachment is not None:
        attachment = message.attachment
        body = f"[{attachment.kind.lower()}] {attachment.name} <{attachment.url}>"
    else:
        body = message.content
    stamp = f"{message.timestamp} " if message.timestamp else ""
    return f"{stamp}{message.sender}: {body}"


async def run_chat(
    args: argparse.Namespace,
    *,
    stdin: TextIO = sys.stdin,
    stdout: TextIO = sys.stdout,
) -> int:
    config = load_config_from_env()
    if args.base_url:
        config = dataclasses.replace(config, base_url=args.base_url)
    mux = Multiplexer(args.username, config)

    def on_change(topic: str, kind: str) -> None:
        if topic != mux.active_key:
            return
        messages = mux.messages
        if kind == RESET:
            for message in messages:
                stdout.write(format_message(message) + "\n")
        elif kind == APPEND and messages:
            stdout.write(format_message(messages[-1]) + "\n")
        stdout.flush()

    mux.subscribe(on_change)
    loop = asyncio.get_running_loop()
    async with mux:
        if not mux.connection or not mux.connection.is_open:
            stdout.write("could not connect; see log for details\n")
            return 1
        mux.select_conversation(descriptor_from_args(args))
        while True:
            line = await loop.run_in_executor(None, stdin.readline)
            if not line or line.strip() == QUIT_COMMAND:
                return 0
            try:
                await mux.send(line)
            except ChatMuxError as exc:
                stdout.write(f"send failed: {exc}\n")
                stdout.flush()
                return 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(run_chat(args))
