"""Entrypoint: python -m chat_sync --viewer <id> --peer <id>

A line-oriented console chat over the reference adapters. Plain lines are
sent; ``/older``, ``/retry <id>``, ``/discard <id>`` and ``/quit`` are commands.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import TextIO

from chat_sync.application.dto.events import ChatEvent, ChatHooks
from chat_sync.bootstrap import connect, create_chat_session
from chat_sync.config import settings
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.domain.entities.participant import ParticipantSummary
from chat_sync.domain.value_objects.enums import ChatEventType
from chat_sync.infrastructure.db.gateway import SqlAlchemyBackend
from chat_sync.services.chat_session import ChatSession


def _format(message: Message, viewer_id: str) -> str:
    who = "me" if message.sender_id == viewer_id else message.sender_id
    mark = "" if message.status == "delivered" else f" [{message.status}]"
    return f"{message.sent_at:%H:%M} {who}: {message.content}{mark}  ({message.id})"


def _make_hooks(viewer_id: str, output: TextIO) -> ChatHooks:
    def on_event(event: ChatEvent) -> None:
        if event.type == ChatEventType.RECEIVED and event.message is not None:
            print(_format(event.message, viewer_id), file=output)

    return ChatHooks(
        on_message_event=on_event,
        on_conversation_created=lambda c: print(f"* conversation {c.id} created", file=output),
        notify=lambda text: print(f"! {text}", file=output),
    )


async def _handle(line: str, session: ChatSession, viewer_id: str, output: TextIO) -> bool:
    command, _, arg = line.partition(" ")
    if command == "/quit":
        return False
    if command == "/older":
        if await session.load_older():
            for message in session.messages:
                print(_format(message, viewer_id), file=output)
        else:
            print("* no older messages", file=output)
    elif command == "/retry":
        result = await session.retry(arg.strip())
        print(f"* {result.status}", file=output)
    elif command == "/discard":
        print("* discarded" if session.discard(arg.strip()) else "* nothing to discard", file=output)
    else:
        session.set_draft(line)
        result = await session.send()
        if result.message is not None:
            print(_format(result.message, viewer_id), file=output)
    return True


async def run(viewer_id: str, peer_id: str, peer_name: str | None, output: TextIO) -> None:
    async with connect() as infra:
        session = create_chat_session(viewer_id, infra, hooks=_make_hooks(viewer_id, output))
        lookup = SqlAlchemyBackend(infra.session_factory, viewer_id)
        conversation = await lookup.find_conversation(viewer_id, peer_id)
        if conversation is None:
            peer = ParticipantSummary(id=peer_id, full_name=peer_name)
            conversation = Conversation.pending(viewer_id, peer)

        await session.open(conversation)
        for message in session.messages:
            print(_format(message, viewer_id), file=output)
        if session.draft:
            print(f"* draft: {session.draft}", file=output)
        print(f"* unread: {await session.unread.refresh()}", file=output)

        try:
            while True:
                line = await asyncio.to_thread(sys.stdin.readline)
                if not line:
                    break
                line = line.rstrip("\n")
                if line and not await _handle(line, session, viewer_id, output):
                    break
        finally:
            await session.close()


def main(argv: list[str] | None = None, output: TextIO | None = None) -> int:
    parser = argparse.ArgumentParser(prog="chat_sync", description="Console chat")
    parser.add_argument("--viewer", required=True, help="id of the signed-in user")
    parser.add_argument("--peer", required=True, help="id of the other participant")
    parser.add_argument("--peer-name", default=None, help="display name for a new conversation")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(run(args.viewer, args.peer, args.peer_name, output or sys.stdout))
    return 0


if __name__ == "__main__":
    sys.exit(main())
