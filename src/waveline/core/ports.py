"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the transport, identity mapping,
contact directory and bridge collaborators so that the core can be reused
with different backends.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence

from waveline.core.models import CommandContext, InboundMessage, MessageKey


class TransportPort(Protocol):
    """Network capabilities required by the dispatch pipeline."""

    @property
    def user_jid(self) -> Optional[str]:
        """The bot's own identity, once connected."""
        ...

    async def send_message(self, jid: str, text: str) -> None:
        ...

    async def send_reaction(self, jid: str, key: MessageKey, emoji: str) -> None:
        ...

    async def read_messages(self, keys: Sequence[MessageKey]) -> None:
        ...

    async def presence_subscribe(self, jid: str) -> None:
        ...

    async def send_presence_update(self, state: str, jid: str) -> None:
        ...


class IdentityMappingPort(Protocol):
    """Resolution between the opaque and phone namespaces."""

    async def get_pn_for_lid(self, lid: str) -> Optional[str]:
        ...

    async def get_lid_for_pn(self, pn: str) -> Optional[str]:
        ...


class ContactStorePort(Protocol):
    """Directory data keyed by normalized jid."""

    def get_contact(self, jid: str) -> Optional[dict[str, Any]]:
        ...

    def upsert_contact(self, jid: str, fields: dict[str, Any]) -> None:
        ...


class BridgePort(Protocol):
    """Side-channel mirror notified for every processed message."""

    async def sync_message(self, message: InboundMessage, text: str) -> None:
        ...

    async def log_event(self, title: str, body: str) -> None:
        ...


class CommandHandler(Protocol):
    """A command implementation. ``permissions`` defaults to public."""

    async def execute(
        self, message: InboundMessage, args: list[str], context: CommandContext
    ) -> None:
        ...
