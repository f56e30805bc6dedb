"""Offline transport adapter.

Logs every outgoing action and keeps a record of it, so recorded envelopes
can be replayed through the pipeline without a network connection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from waveline.core.jids import normalize_jid
from waveline.core.models import MessageKey

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SentAction:
    kind: str
    jid: str
    payload: str


class ConsoleTransport:
    """Transport that records actions instead of sending them."""

    def __init__(self, user_jid: Optional[str] = None) -> None:
        self._user_jid = user_jid
        self.actions: list[SentAction] = []

    @property
    def user_jid(self) -> Optional[str]:
        return self._user_jid

    def _record(self, kind: str, jid: str, payload: str = "") -> None:
        self.actions.append(SentAction(kind=kind, jid=jid, payload=payload))
        LOGGER.info("[%s] %s %s", kind, jid, payload)

    async def send_message(self, jid: str, text: str) -> None:
        self._record("message", jid, text)

    async def send_reaction(self, jid: str, key: MessageKey, emoji: str) -> None:
        self._record("reaction", jid, f"{key.id} {emoji}".strip())

    async def read_messages(self, keys: Sequence[MessageKey]) -> None:
        for key in keys:
            self._record("read", key.remote_jid, key.id)

    async def presence_subscribe(self, jid: str) -> None:
        self._record("subscribe", jid)

    async def send_presence_update(self, state: str, jid: str) -> None:
        self._record("presence", jid, state)


class StaticIdentityMapping:
    """Identity mapping backed by a fixed opaque-id -> phone-id table."""

    def __init__(self, lid_to_pn: dict[str, str]) -> None:
        self._lid_to_pn = {
            normalize_jid(lid): normalize_jid(pn) for lid, pn in lid_to_pn.items()
        }
        self._pn_to_lid = {pn: lid for lid, pn in self._lid_to_pn.items()}

    async def get_pn_for_lid(self, lid: str) -> Optional[str]:
        return self._lid_to_pn.get(normalize_jid(lid))

    async def get_lid_for_pn(self, pn: str) -> Optional[str]:
        return self._pn_to_lid.get(normalize_jid(pn))
