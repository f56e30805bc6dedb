"""Transport envelope to core message mapping adapter.

This keeps the transport's camelCase JSON shape out of the core pipeline.
"""

from __future__ import annotations

from typing import Any, Optional

from waveline.core.models import InboundMessage, MessageKey


def _optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def _timestamp(value: Any) -> Optional[int]:
    # Timestamps arrive as ints, numeric strings or {"low": ..} longs.
    if isinstance(value, dict):
        value = value.get("low")
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def build_key(raw_key: dict[str, Any]) -> MessageKey:
    remote_jid = raw_key.get("remoteJid")
    if not isinstance(remote_jid, str) or not remote_jid:
        raise ValueError("Message key is missing remoteJid")
    return MessageKey(
        remote_jid=remote_jid,
        from_me=bool(raw_key.get("fromMe", False)),
        id=str(raw_key.get("id") or ""),
        participant=_optional_str(raw_key.get("participant")),
        participant_alt=_optional_str(raw_key.get("participantAlt")),
        remote_jid_alt=_optional_str(raw_key.get("remoteJidAlt")),
    )


def build_message(envelope: dict[str, Any]) -> InboundMessage:
    """Build a core InboundMessage from a transport envelope."""

    raw_key = envelope.get("key")
    if not isinstance(raw_key, dict):
        raise ValueError("Envelope is missing its key")
    content = envelope.get("message")
    return InboundMessage(
        key=build_key(raw_key),
        content=content if isinstance(content, dict) else {},
        push_name=_optional_str(envelope.get("pushName")),
        notify=_optional_str(envelope.get("notify")),
        timestamp=_timestamp(envelope.get("messageTimestamp")),
    )
