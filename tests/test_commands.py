from __future__ import annotations

import asyncio
from typing import Optional, Sequence

from waveline.adapters.console_transport import ConsoleTransport, StaticIdentityMapping
from waveline.commands import register_builtin_commands
from waveline.core.config import DispatchConfig
from waveline.core.dispatcher import build_pipeline
from waveline.core.models import DispatchOutcome, InboundMessage, MessageKey

LID = "123456789012345678@lid"
PN = "15551234567@s.whatsapp.net"


def _message(text: str, remote_jid: str = PN) -> InboundMessage:
    return InboundMessage(
        key=MessageKey(remote_jid=remote_jid, from_me=False, id="m1"),
        content={"conversation": text},
    )


def _pipeline(transport: ConsoleTransport):
    pipeline = build_pipeline(
        transport,
        DispatchConfig(prefix=".", owner=None),
        mapping=StaticIdentityMapping({LID: PN}),
    )
    register_builtin_commands(pipeline.registry)
    return pipeline


def _messages(transport: ConsoleTransport) -> list[str]:
    return [action.payload for action in transport.actions if action.kind == "message"]


def test_ping_replies_pong() -> None:
    transport = ConsoleTransport()
    asyncio.run(_pipeline(transport).process_message(_message(".ping")))
    assert _messages(transport) == ["🏓 Pong!"]


def test_help_lists_builtin_commands() -> None:
    transport = ConsoleTransport()
    asyncio.run(_pipeline(transport).process_message(_message(".help")))
    [text] = _messages(transport)
    assert ".ping" in text
    assert ".whoami" in text


def test_help_for_unknown_topic_fails_with_reply() -> None:
    transport = ConsoleTransport()
    context = asyncio.run(_pipeline(transport).process_message(_message(".help nope")))
    assert context.outcome is DispatchOutcome.FAILED
    assert _messages(transport) == ["❌ Command failed: No such command: nope"]


def test_whoami_resolves_opaque_sender() -> None:
    transport = ConsoleTransport()
    asyncio.run(_pipeline(transport).process_message(_message(".whoami", remote_jid=LID)))
    [text] = _messages(transport)
    assert "Phone: 15551234567" in text
    assert f"LID: {LID}" in text
    assert "Name: +15551234567" in text
