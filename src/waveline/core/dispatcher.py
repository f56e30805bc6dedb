"""Core message dispatch pipeline.

This module is transport-agnostic. It only relies on ports for network
actions, identity mapping and mirroring, enabling different frontends
without changes here.

Every message walks the same path:
1) Classify (status broadcast / command / plain text)
2) Run ``pre_process`` hooks
3) Command path only: resolve actor, name and permission, then execute or
   reject, with presence and reaction feedback
4) Run ``post_process`` hooks
5) Mirror the message to the bridge

Steps 4 and 5 run even when the command step fails.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Iterable, Optional

from waveline.core.config import DispatchConfig
from waveline.core.contacts import ContactDirectory
from waveline.core.effects import best_effort
from waveline.core.errors import is_communicated
from waveline.core.identity import IdentityResolver
from waveline.core.jids import bare_number, is_group_jid, is_status_broadcast, normalize_jid
from waveline.core.models import (
    CommandContext,
    DispatchContext,
    DispatchOutcome,
    InboundMessage,
    MessageKind,
)
from waveline.core.permissions import PermissionEvaluator
from waveline.core.ports import BridgePort, TransportPort
from waveline.core.registry import POST_PROCESS, PRE_PROCESS, Command, CommandRegistry
from waveline.core.suggest import suggest_command

LOGGER = logging.getLogger(__name__)

REACTION_RUNNING = "⏳"
REACTION_FAILED = "❌"
REACTION_CLEAR = ""

PRESENCE_COMPOSING = "composing"
PRESENCE_PAUSED = "paused"

PERMISSION_DENIED_TEXT = "❌ You don't have permission to use this command."

NOTIFY_BATCH = "notify"


class DispatchPipeline:
    """Orchestrates classification, hooks, permission checks and commands."""

    def __init__(
        self,
        transport: TransportPort,
        registry: CommandRegistry,
        resolver: IdentityResolver,
        config: DispatchConfig,
        bridge: Optional[BridgePort] = None,
    ) -> None:
        self._transport = transport
        self._registry = registry
        self._resolver = resolver
        self._config = config
        self._bridge = bridge
        self._evaluator = PermissionEvaluator(
            registry,
            resolver,
            config,
            transport=transport,
        )

    @property
    def transport(self) -> TransportPort:
        return self._transport

    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    @property
    def resolver(self) -> IdentityResolver:
        return self._resolver

    @property
    def contacts(self) -> ContactDirectory:
        return self._resolver.contacts

    @property
    def config(self) -> DispatchConfig:
        return self._config

    @property
    def permissions(self) -> PermissionEvaluator:
        return self._evaluator

    async def send_message(self, jid: str, text: str) -> None:
        await self._transport.send_message(jid, text)

    async def handle_messages(
        self, messages: Iterable[InboundMessage], batch_type: str = NOTIFY_BATCH
    ) -> list[DispatchContext]:
        """Process one batch from the event source, one message at a time."""

        if batch_type != NOTIFY_BATCH:
            return []
        results: list[DispatchContext] = []
        for message in messages:
            try:
                results.append(await self.process_message(message))
            except Exception:
                LOGGER.exception("Error processing message %s", message.key.id)
        return results

    async def process_message(self, message: InboundMessage) -> DispatchContext:
        """Run the full pipeline for a single message."""

        chat_jid = message.key.remote_jid
        text = message.text

        if is_status_broadcast(chat_jid):
            context = DispatchContext(chat_jid=chat_jid, kind=MessageKind.STATUS, text=text)
            await self.execute_hooks(PRE_PROCESS, message, text)
            context.outcome = DispatchOutcome.STATUS
            await self._mirror(message, text)
            return context

        prefix = self._config.prefix
        is_command = bool(text) and text.startswith(prefix) and not message.has_media
        context = DispatchContext(
            chat_jid=chat_jid,
            kind=MessageKind.COMMAND if is_command else MessageKind.PLAIN,
            text=text,
            is_group=is_group_jid(chat_jid),
        )

        await self.execute_hooks(PRE_PROCESS, message, text)

        if is_command:
            try:
                await self.handle_command(message, context)
            except Exception:
                # Command failures are handled inside; this covers the rest.
                LOGGER.exception("Command dispatch failed for %s", chat_jid)
                context.outcome = DispatchOutcome.ERROR
        else:
            self._log_plain(message, text)
            context.outcome = DispatchOutcome.PLAIN

        await self.execute_hooks(POST_PROCESS, message, text)
        await self._mirror(message, text)
        return context

    async def execute_hooks(self, stage: str, message: InboundMessage, text: str) -> None:
        """Run every hook of a stage in order; failures are logged and skipped."""

        for hook in self._registry.hooks(stage):
            try:
                result = hook(message, text, self)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                LOGGER.exception("Error executing hook %s", stage)

    def resolve_user_jid(self, message: InboundMessage) -> tuple[str, str, bool]:
        """Return ``(actor_jid, chat_jid, is_group)`` for a message.

        The fallback chain always ends at an identifier present on the
        message, so the actor is never empty for a well-formed envelope.
        """

        key = message.key
        chat_jid = key.remote_jid
        is_group = is_group_jid(chat_jid)

        if key.from_me:
            owner = self._config.owner
            self_jid = getattr(self._transport, "user_jid", None)
            actor = normalize_jid(owner) if owner else (self_jid or chat_jid)
        elif is_group:
            actor = key.participant or key.participant_alt or chat_jid
        else:
            actor = key.remote_jid or key.remote_jid_alt
        return actor, chat_jid, is_group

    async def handle_command(self, message: InboundMessage, context: DispatchContext) -> None:
        prefix = self._config.prefix
        parts = context.text[len(prefix):].strip().split()
        name = parts[0].lower() if parts else ""
        context.command = name
        context.args = parts[1:]

        actor, chat_jid, is_group = self.resolve_user_jid(message)
        context.actor_jid = actor
        context.is_group = is_group
        resolved = await self._resolver.resolve_counterpart(actor)
        context.actor_number = bare_number(resolved)
        context.display_name = self.contacts.get_contact_name(resolved, message)

        await best_effort("read receipt", self._transport.read_messages, [message.key])
        await best_effort("presence subscribe", self._transport.presence_subscribe, chat_jid)
        await best_effort(
            "presence update", self._transport.send_presence_update, PRESENCE_COMPOSING, chat_jid
        )

        allowed = self._evaluator.evaluate_number(name, context.actor_number)
        command = self._registry.get(name)

        if command is not None and not allowed:
            context.outcome = DispatchOutcome.DENIED
            await self._deny(context.actor_number, chat_jid)
            return

        if command is not None:
            await self._execute(message, context, command, chat_jid)
            return

        context.outcome = DispatchOutcome.UNKNOWN
        await self._unknown(name, context.actor_number, chat_jid)

    async def _deny(self, number: str, chat_jid: str) -> None:
        await self._pause(chat_jid)
        if self._is_silenced(number):
            return
        if self._config.send_permission_error:
            await self._reply(chat_jid, PERMISSION_DENIED_TEXT)

    async def _execute(
        self, message: InboundMessage, context: DispatchContext, command: Command, chat_jid: str
    ) -> None:
        await best_effort("reaction", self._transport.send_reaction, chat_jid, message.key, REACTION_RUNNING)

        handler_context = CommandContext(
            bot=self,
            sender=chat_jid,
            participant=context.actor_jid,
            is_group=context.is_group,
        )
        try:
            result = command.handler.execute(message, context.args, handler_context)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            context.outcome = DispatchOutcome.FAILED
            await self._pause(chat_jid)
            await best_effort("reaction", self._transport.send_reaction, chat_jid, message.key, REACTION_FAILED)
            LOGGER.error(
                "Command failed: %s by %s (%s) | %s",
                command.name,
                context.display_name,
                context.actor_jid,
                exc,
            )
            if not is_communicated(exc):
                await self._reply(chat_jid, f"❌ Command failed: {exc}")
            await self._log_event(
                "❌ Command Error",
                f"Command: {command.name}\nError: {exc}\nUser: {context.display_name}",
            )
            return

        context.outcome = DispatchOutcome.EXECUTED
        await self._pause(chat_jid)
        await best_effort("reaction", self._transport.send_reaction, chat_jid, message.key, REACTION_CLEAR)
        LOGGER.info("Command executed: %s by %s (%s)", command.name, context.display_name, context.actor_jid)
        await self._log_event(
            "📝 Command Executed",
            f"Command: {command.name}\nUser: {context.display_name}\n"
            f"JID: {context.actor_jid}\nChat: {chat_jid}",
        )

    async def _unknown(self, name: str, number: str, chat_jid: str) -> None:
        await self._pause(chat_jid)
        if not self._config.respond_to_unknown_commands:
            return
        if self._is_silenced(number):
            return

        prefix = self._config.prefix
        text = f"🚩 Unknown command: *{name}*"
        best = suggest_command(name, self._registry.names())
        if best is not None:
            text += f"\n Did you mean *{prefix}{best}* ?"
        await self._reply(chat_jid, text)

    def _is_silenced(self, number: str) -> bool:
        """Private mode answers nobody but the owner."""

        return self._config.is_private and not self._evaluator.is_owner(number)

    async def _pause(self, chat_jid: str) -> None:
        await best_effort("presence update", self._transport.send_presence_update, PRESENCE_PAUSED, chat_jid)

    async def _reply(self, chat_jid: str, text: str) -> None:
        await best_effort("reply", self._transport.send_message, chat_jid, text)

    async def _mirror(self, message: InboundMessage, text: str) -> None:
        if self._bridge is not None:
            await best_effort("bridge sync", self._bridge.sync_message, message, text)

    async def _log_event(self, title: str, body: str) -> None:
        if self._bridge is not None:
            await best_effort("bridge log", self._bridge.log_event, title, body)

    @staticmethod
    def _log_plain(message: InboundMessage, text: str) -> None:
        media = message.media_type
        sender = message.key.participant or message.key.remote_jid
        if media:
            LOGGER.debug("Media message received: %s from %s", media, sender)
        elif text:
            LOGGER.debug("Text message received: %s", text[:50])


def build_pipeline(
    transport: TransportPort,
    config: DispatchConfig,
    mapping: Any = None,
    contacts: Optional[ContactDirectory] = None,
    registry: Optional[CommandRegistry] = None,
    bridge: Optional[BridgePort] = None,
) -> DispatchPipeline:
    """Wire a pipeline from its collaborators with fresh caches."""

    resolver = IdentityResolver(mapping, contacts if contacts is not None else ContactDirectory())
    return DispatchPipeline(
        transport=transport,
        registry=registry if registry is not None else CommandRegistry(),
        resolver=resolver,
        config=config,
        bridge=bridge,
    )
