from __future__ import annotations

import asyncio
from typing import Optional, Sequence

from waveline.core.config import DispatchConfig
from waveline.core.dispatcher import PERMISSION_DENIED_TEXT, build_pipeline
from waveline.core.errors import CommandError
from waveline.core.models import DispatchOutcome, InboundMessage, MessageKey, MessageKind
from waveline.core.registry import POST_PROCESS, PRE_PROCESS

USER = "123@s.whatsapp.net"
OWNER = "15550000001@s.whatsapp.net"


class FakeTransport:
    def __init__(self, user_jid: Optional[str] = None, fail: bool = False) -> None:
        self.user_jid = user_jid
        self.fail = fail
        self.events: list[tuple] = []

    def _maybe_fail(self) -> None:
        if self.fail:
            raise ConnectionError("socket closed")

    async def send_message(self, jid: str, text: str) -> None:
        self.events.append(("message", jid, text))

    async def send_reaction(self, jid: str, key: MessageKey, emoji: str) -> None:
        self._maybe_fail()
        self.events.append(("reaction", jid, emoji))

    async def read_messages(self, keys: Sequence[MessageKey]) -> None:
        self._maybe_fail()
        self.events.append(("read", keys[0].id))

    async def presence_subscribe(self, jid: str) -> None:
        self._maybe_fail()
        self.events.append(("subscribe", jid))

    async def send_presence_update(self, state: str, jid: str) -> None:
        self._maybe_fail()
        self.events.append(("presence", state))

    def of(self, kind: str) -> list[tuple]:
        return [event for event in self.events if event[0] == kind]


class FakeBridge:
    def __init__(self) -> None:
        self.synced: list[str] = []
        self.logged: list[str] = []

    async def sync_message(self, message: InboundMessage, text: str) -> None:
        self.synced.append(text)

    async def log_event(self, title: str, body: str) -> None:
        self.logged.append(title)


class RecordingCommand:
    def __init__(self, permissions="public", error: Optional[Exception] = None) -> None:
        self.permissions = permissions
        self.error = error
        self.calls: list[tuple] = []

    async def execute(self, message, args, context) -> None:
        self.calls.append((args, context))
        if self.error is not None:
            raise self.error


def _config(**overrides) -> DispatchConfig:
    values = dict(prefix="!", owner="15550000001")
    values.update(overrides)
    return DispatchConfig(**values)


def _message(
    text: str = "!ping",
    remote_jid: str = USER,
    from_me: bool = False,
    participant: Optional[str] = None,
    participant_alt: Optional[str] = None,
    content: Optional[dict] = None,
    push_name: Optional[str] = None,
) -> InboundMessage:
    return InboundMessage(
        key=MessageKey(
            remote_jid=remote_jid,
            from_me=from_me,
            id="msg-1",
            participant=participant,
            participant_alt=participant_alt,
        ),
        content=content if content is not None else {"conversation": text},
        push_name=push_name,
    )


def test_public_command_end_to_end() -> None:
    transport = FakeTransport()
    pipeline = build_pipeline(transport, _config())
    ping = RecordingCommand()
    pipeline.registry.register("ping", ping)

    context = asyncio.run(pipeline.process_message(_message("!ping")))

    assert context.outcome is DispatchOutcome.EXECUTED
    assert len(ping.calls) == 1
    args, handler_context = ping.calls[0]
    assert args == []
    assert handler_context.participant == USER
    assert handler_context.sender == USER
    assert handler_context.is_group is False
    assert [event[2] for event in transport.of("reaction")] == ["⏳", ""]
    assert transport.of("message") == []
    assert transport.of("read") == [("read", "msg-1")]
    assert transport.of("presence") == [("presence", "composing"), ("presence", "paused")]


def test_arguments_are_passed_through_unmodified() -> None:
    pipeline = build_pipeline(FakeTransport(), _config())
    echo = RecordingCommand()
    pipeline.registry.register("echo", echo)

    context = asyncio.run(pipeline.process_message(_message('!ECHO  "a b"  C')))

    assert context.command == "echo"
    assert echo.calls[0][0] == ['"a', 'b"', "C"]


def test_private_mode_non_owner_gets_silence() -> None:
    transport = FakeTransport()
    pipeline = build_pipeline(transport, _config(mode="private", send_permission_error=True))
    ping = RecordingCommand()
    pipeline.registry.register("ping", ping)

    context = asyncio.run(pipeline.process_message(_message("!ping")))

    assert context.outcome is DispatchOutcome.DENIED
    assert ping.calls == []
    assert transport.of("reaction") == []
    assert transport.of("message") == []
    assert transport.of("presence")[-1] == ("presence", "paused")


def test_denial_is_announced_when_configured() -> None:
    transport = FakeTransport()
    pipeline = build_pipeline(transport, _config(send_permission_error=True))
    pipeline.registry.register("shutdown", RecordingCommand("owner"))

    asyncio.run(pipeline.process_message(_message("!shutdown")))

    assert transport.of("message") == [("message", USER, PERMISSION_DENIED_TEXT)]


def test_denial_is_silent_by_default() -> None:
    transport = FakeTransport()
    pipeline = build_pipeline(transport, _config())
    pipeline.registry.register("shutdown", RecordingCommand("owner"))

    context = asyncio.run(pipeline.process_message(_message("!shutdown")))

    assert context.outcome is DispatchOutcome.DENIED
    assert transport.of("message") == []
    assert transport.of("presence")[-1] == ("presence", "paused")


def test_handler_failure_reacts_and_replies() -> None:
    transport = FakeTransport()
    bridge = FakeBridge()
    pipeline = build_pipeline(transport, _config(), bridge=bridge)
    pipeline.registry.register("boom", RecordingCommand(error=RuntimeError("kaput")))

    context = asyncio.run(pipeline.process_message(_message("!boom")))

    assert context.outcome is DispatchOutcome.FAILED
    assert [event[2] for event in transport.of("reaction")] == ["⏳", "❌"]
    assert transport.of("message") == [("message", USER, "❌ Command failed: kaput")]
    assert bridge.logged == ["❌ Command Error"]
    assert bridge.synced == ["!boom"]


def test_communicated_failure_is_not_replied_twice() -> None:
    transport = FakeTransport()
    pipeline = build_pipeline(transport, _config())
    error = CommandError("already told them", communicated=True)
    pipeline.registry.register("boom", RecordingCommand(error=error))

    asyncio.run(pipeline.process_message(_message("!boom")))

    assert transport.of("message") == []


def test_side_effect_failures_do_not_stop_execution() -> None:
    transport = FakeTransport(fail=True)
    pipeline = build_pipeline(transport, _config())
    ping = RecordingCommand()
    pipeline.registry.register("ping", ping)

    context = asyncio.run(pipeline.process_message(_message("!ping")))

    assert context.outcome is DispatchOutcome.EXECUTED
    assert len(ping.calls) == 1


def test_unknown_command_with_suggestion() -> None:
    transport = FakeTransport()
    pipeline = build_pipeline(transport, _config(respond_to_unknown_commands=True))
    for name in ("ping", "pong", "help"):
        pipeline.registry.register(name, RecordingCommand())

    context = asyncio.run(pipeline.process_message(_message("!pign")))

    assert context.outcome is DispatchOutcome.UNKNOWN
    [(_, _, text)] = transport.of("message")
    assert "Unknown command: *pign*" in text
    assert "Did you mean *!ping* ?" in text


def test_unknown_command_without_close_match() -> None:
    transport = FakeTransport()
    pipeline = build_pipeline(transport, _config(respond_to_unknown_commands=True))
    pipeline.registry.register("ping", RecordingCommand())

    asyncio.run(pipeline.process_message(_message("!zzzzzzzzzz")))

    [(_, _, text)] = transport.of("message")
    assert "Did you mean" not in text


def test_unknown_command_is_silent_when_disabled_or_private() -> None:
    transport = FakeTransport()
    pipeline = build_pipeline(transport, _config())
    asyncio.run(pipeline.process_message(_message("!nope")))
    assert transport.of("message") == []

    transport = FakeTransport()
    pipeline = build_pipeline(transport, _config(mode="private", respond_to_unknown_commands=True))
    asyncio.run(pipeline.process_message(_message("!nope")))
    assert transport.of("message") == []
    assert transport.of("presence")[-1] == ("presence", "paused")


def test_status_broadcast_skips_commands_but_runs_hooks_and_mirror() -> None:
    transport = FakeTransport()
    bridge = FakeBridge()
    pipeline = build_pipeline(transport, _config(), bridge=bridge)
    ping = RecordingCommand()
    pipeline.registry.register("ping", ping)
    seen: list[str] = []
    pipeline.registry.register_hook(PRE_PROCESS, lambda message, text, bot: seen.append(text))

    context = asyncio.run(pipeline.process_message(_message("!ping", remote_jid="status@broadcast")))

    assert context.kind is MessageKind.STATUS
    assert ping.calls == []
    assert seen == ["!ping"]
    assert bridge.synced == ["!ping"]
    assert transport.events == []


def test_media_with_prefix_caption_is_plain() -> None:
    pipeline = build_pipeline(FakeTransport(), _config())
    ping = RecordingCommand()
    pipeline.registry.register("ping", ping)
    message = _message(content={"imageMessage": {"caption": "!ping", "mimetype": "image/jpeg"}})

    context = asyncio.run(pipeline.process_message(message))

    assert context.kind is MessageKind.PLAIN
    assert context.outcome is DispatchOutcome.PLAIN
    assert ping.calls == []


def test_hooks_run_in_order_and_failures_are_isolated() -> None:
    pipeline = build_pipeline(FakeTransport(), _config())
    order: list[str] = []

    def broken(message, text, bot):
        order.append("broken")
        raise ValueError("hook bug")

    async def pre(message, text, bot):
        order.append("pre")

    def post(message, text, bot):
        order.append("post")

    class OrderedCommand:
        async def execute(self, message, args, context) -> None:
            order.append("command")

    pipeline.registry.register("ping", OrderedCommand())
    pipeline.registry.register_hook(PRE_PROCESS, broken)
    pipeline.registry.register_hook(PRE_PROCESS, pre)
    pipeline.registry.register_hook(POST_PROCESS, post)

    asyncio.run(pipeline.process_message(_message("!ping")))

    assert order == ["broken", "pre", "command", "post"]


def test_hooks_and_mirror_run_after_handler_failure() -> None:
    bridge = FakeBridge()
    pipeline = build_pipeline(FakeTransport(), _config(), bridge=bridge)
    pipeline.registry.register("boom", RecordingCommand(error=RuntimeError("x")))
    post: list[str] = []
    pipeline.registry.register_hook(POST_PROCESS, lambda message, text, bot: post.append(text))

    asyncio.run(pipeline.process_message(_message("!boom")))

    assert post == ["!boom"]
    assert bridge.synced == ["!boom"]


def test_actor_resolution_chain() -> None:
    pipeline = build_pipeline(FakeTransport(user_jid="15559999999@s.whatsapp.net"), _config())

    group = "1203630@g.us"
    actor, chat, is_group = pipeline.resolve_user_jid(_message(remote_jid=group, participant="111@lid"))
    assert (actor, chat, is_group) == ("111@lid", group, True)

    actor, _, _ = pipeline.resolve_user_jid(_message(remote_jid=group, participant_alt="222@s.whatsapp.net"))
    assert actor == "222@s.whatsapp.net"

    actor, _, _ = pipeline.resolve_user_jid(_message(remote_jid=group))
    assert actor == group

    actor, _, is_group = pipeline.resolve_user_jid(_message(remote_jid=USER))
    assert (actor, is_group) == (USER, False)

    actor, _, _ = pipeline.resolve_user_jid(_message(from_me=True))
    assert actor == OWNER

    no_owner = build_pipeline(FakeTransport(user_jid="15559999999@s.whatsapp.net"), _config(owner=None))
    actor, _, _ = no_owner.resolve_user_jid(_message(from_me=True))
    assert actor == "15559999999@s.whatsapp.net"


def test_group_command_uses_participant() -> None:
    pipeline = build_pipeline(FakeTransport(), _config())
    ping = RecordingCommand()
    pipeline.registry.register("ping", ping)

    asyncio.run(pipeline.process_message(_message("!ping", remote_jid="1203630@g.us", participant=USER)))

    _, handler_context = ping.calls[0]
    assert handler_context.participant == USER
    assert handler_context.sender == "1203630@g.us"
    assert handler_context.is_group is True


def test_handle_messages_ignores_non_notify_batches() -> None:
    pipeline = build_pipeline(FakeTransport(), _config())
    ping = RecordingCommand()
    pipeline.registry.register("ping", ping)

    assert asyncio.run(pipeline.handle_messages([_message("!ping")], batch_type="append")) == []
    results = asyncio.run(pipeline.handle_messages([_message("!ping"), _message("hello")]))

    assert [context.outcome for context in results] == [DispatchOutcome.EXECUTED, DispatchOutcome.PLAIN]
    assert len(ping.calls) == 1


def test_push_name_upgrades_cached_phone_fallback() -> None:
    pipeline = build_pipeline(FakeTransport(), _config())
    pipeline.registry.register("ping", RecordingCommand())

    first = asyncio.run(pipeline.process_message(_message("!ping", remote_jid="555@s.whatsapp.net")))
    second = asyncio.run(
        pipeline.process_message(_message("!ping", remote_jid="555@s.whatsapp.net", push_name="Zed"))
    )
    third = asyncio.run(pipeline.process_message(_message("!ping", remote_jid="555@s.whatsapp.net")))

    assert first.display_name == "555"
    assert second.display_name == "Zed"
    assert third.display_name == "Zed"


class CountingMapping:
    def __init__(self) -> None:
        self.calls: list[str] = []

    async def get_pn_for_lid(self, lid: str) -> Optional[str]:
        self.calls.append(lid)
        return None

    async def get_lid_for_pn(self, pn: str) -> Optional[str]:
        return None


def test_unresolvable_actor_is_looked_up_once_per_command() -> None:
    mapping = CountingMapping()
    transport = FakeTransport()
    pipeline = build_pipeline(
        transport, _config(mode="private", respond_to_unknown_commands=True), mapping=mapping
    )
    pipeline.registry.register("ping", RecordingCommand())

    unknown = asyncio.run(pipeline.process_message(_message("!nope", remote_jid="999@lid")))
    denied = asyncio.run(pipeline.process_message(_message("!ping", remote_jid="999@lid")))

    assert unknown.outcome is DispatchOutcome.UNKNOWN
    assert denied.outcome is DispatchOutcome.DENIED
    assert unknown.actor_number == "999"
    assert mapping.calls == ["999@lid", "999@lid"]
    assert transport.of("message") == []
