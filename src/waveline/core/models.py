"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any transport-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

MEDIA_KINDS = {
    "imageMessage": "image",
    "videoMessage": "video",
    "audioMessage": "audio",
    "documentMessage": "document",
    "stickerMessage": "sticker",
    "locationMessage": "location",
    "contactMessage": "contact",
}


@dataclass(frozen=True)
class MessageKey:
    """Addressing part of an inbound message."""

    remote_jid: str
    from_me: bool
    id: str
    participant: Optional[str] = None
    participant_alt: Optional[str] = None
    remote_jid_alt: Optional[str] = None


@dataclass(frozen=True)
class InboundMessage:
    """Minimal message envelope used by the dispatch pipeline."""

    key: MessageKey
    content: dict[str, Any] = field(default_factory=dict)
    push_name: Optional[str] = None
    notify: Optional[str] = None
    timestamp: Optional[int] = None

    @property
    def text(self) -> str:
        """Return the text body or media caption, or an empty string."""

        content = self.content
        if content.get("conversation"):
            return content["conversation"]
        for kind, attr in (
            ("extendedTextMessage", "text"),
            ("imageMessage", "caption"),
            ("videoMessage", "caption"),
            ("documentMessage", "caption"),
            ("audioMessage", "caption"),
        ):
            part = content.get(kind)
            if isinstance(part, dict) and part.get(attr):
                return part[attr]
        return ""

    @property
    def media_type(self) -> Optional[str]:
        for kind, name in MEDIA_KINDS.items():
            if self.content.get(kind):
                return name
        return None

    @property
    def has_media(self) -> bool:
        return self.media_type is not None


class NameSource(Enum):
    """Where a display name came from, highest priority first."""

    DIRECTORY = "directory"
    PUSH_NAME = "push_name"
    NOTIFY = "notify"
    PHONE_FALLBACK = "phone_fallback"

    @property
    def rank(self) -> int:
        return _NAME_SOURCE_RANK[self]


_NAME_SOURCE_RANK = {
    NameSource.DIRECTORY: 0,
    NameSource.PUSH_NAME: 1,
    NameSource.NOTIFY: 2,
    NameSource.PHONE_FALLBACK: 3,
}


@dataclass(frozen=True)
class ContactRecord:
    """Cached display name for one normalized identifier."""

    normalized_id: str
    display_name: str
    source: NameSource


@dataclass(frozen=True)
class ContactInfo:
    jid: str
    name: str
    push_name: Optional[str]
    notify: Optional[str]
    is_group: bool
    is_opaque: bool
    phone_number: Optional[str]


@dataclass(frozen=True)
class IdentityPair:
    """Both namespace forms of one participant, where known."""

    lid: Optional[str]
    pn: Optional[str]
    phone: str


class MessageKind(Enum):
    STATUS = "status"
    COMMAND = "command"
    PLAIN = "plain"


class DispatchOutcome(Enum):
    STATUS = "status"
    PLAIN = "plain"
    EXECUTED = "executed"
    FAILED = "failed"
    DENIED = "denied"
    UNKNOWN = "unknown"
    ERROR = "error"


@dataclass
class DispatchContext:
    """Per-message processing state. Never persisted."""

    chat_jid: str
    kind: MessageKind
    text: str
    is_group: bool = False
    actor_jid: Optional[str] = None
    actor_number: Optional[str] = None
    display_name: Optional[str] = None
    command: Optional[str] = None
    args: list[str] = field(default_factory=list)
    outcome: Optional[DispatchOutcome] = None


@dataclass(frozen=True)
class CommandContext:
    """Context handed to command handlers alongside the message and args."""

    bot: Any
    sender: str
    participant: str
    is_group: bool
