"""Contact display-name lookup with a per-process cache."""

from __future__ import annotations

import logging
from typing import Any, Optional

from waveline.core.jids import (
    extract_phone,
    is_group_jid,
    is_opaque_identifier,
    normalize_jid,
)
from waveline.core.models import ContactInfo, ContactRecord, InboundMessage, NameSource
from waveline.core.ports import ContactStorePort

LOGGER = logging.getLogger(__name__)

UNKNOWN_NAME = "Unknown"


class ContactDirectory:
    """Derive and cache human-readable names for identifiers.

    Lookups are cache-through: the first usable name for a normalized id is
    remembered and served in O(1) afterwards. Records are only replaced by
    names from an equal or better source, and are dropped only by
    ``clear_cache``.
    """

    def __init__(self, store: Optional[ContactStorePort] = None) -> None:
        self._store = store
        self._records: dict[str, ContactRecord] = {}

    def cached(self, jid: str) -> Optional[ContactRecord]:
        return self._records.get(normalize_jid(jid))

    def stored_contact(self, jid: str) -> Optional[dict[str, Any]]:
        """Return the directory entry for a jid, if the store has one."""

        if self._store is None:
            return None
        return self._store.get_contact(normalize_jid(jid))

    def remember(self, jid: str, name: str, source: NameSource) -> ContactRecord:
        """Cache a name unless a better-sourced one is already cached."""

        key = normalize_jid(jid)
        current = self._records.get(key)
        if current is not None and current.source.rank < source.rank:
            return current
        record = ContactRecord(normalized_id=key, display_name=name, source=source)
        self._records[key] = record
        return record

    def get_contact_name(self, jid: Optional[str], message: Optional[InboundMessage] = None) -> str:
        """Return the best display name for a jid.

        Priority: cached name, stored directory name, the message push name,
        the notify name, the phone number, then the raw identifier. A cached
        name is upgraded when the message carries a better-ranked one.
        """

        if not jid:
            return UNKNOWN_NAME
        try:
            key = normalize_jid(jid)
            record = self._records.get(key)
            if record is not None:
                return self._upgrade(record, message).display_name

            contact = self.stored_contact(key) or {}
            if contact.get("name"):
                return self.remember(key, contact["name"], NameSource.DIRECTORY).display_name

            if message is not None and message.push_name:
                return self.remember(key, message.push_name, NameSource.PUSH_NAME).display_name

            notify = contact.get("notify") or (message.notify if message is not None else None)
            if notify:
                return self.remember(key, notify, NameSource.NOTIFY).display_name

            phone = extract_phone(jid)
            return self.remember(key, phone or jid, NameSource.PHONE_FALLBACK).display_name
        except Exception:
            LOGGER.exception("Error resolving contact name for %s", jid)
            return jid

    def _upgrade(self, record: ContactRecord, message: Optional[InboundMessage]) -> ContactRecord:
        """Replace a cached record with a better name carried by ``message``."""

        if message is None:
            return record
        if message.push_name and record.source.rank > NameSource.PUSH_NAME.rank:
            return self.remember(record.normalized_id, message.push_name, NameSource.PUSH_NAME)
        if message.notify and record.source.rank > NameSource.NOTIFY.rank:
            return self.remember(record.normalized_id, message.notify, NameSource.NOTIFY)
        return record

    def get_contact_info(self, jid: str, message: Optional[InboundMessage] = None) -> ContactInfo:
        key = normalize_jid(jid)
        contact = self.stored_contact(key) or {}
        return ContactInfo(
            jid=key,
            name=self.get_contact_name(jid, message),
            push_name=(message.push_name if message is not None else None) or contact.get("name"),
            notify=(message.notify if message is not None else None) or contact.get("notify"),
            is_group=is_group_jid(key),
            is_opaque=is_opaque_identifier(jid),
            phone_number=extract_phone(jid),
        )

    def update_contact(
        self,
        jid: str,
        *,
        name: Optional[str] = None,
        notify: Optional[str] = None,
        push_name: Optional[str] = None,
    ) -> None:
        """Record fresh contact data, upgrading the cached name if it is better."""

        key = normalize_jid(jid)
        if name:
            self.remember(key, name, NameSource.DIRECTORY)
        elif push_name:
            self.remember(key, push_name, NameSource.PUSH_NAME)
        elif notify:
            self.remember(key, notify, NameSource.NOTIFY)

        if self._store is not None:
            fields = {"name": name, "notify": notify or push_name}
            self._store.upsert_contact(key, {k: v for k, v in fields.items() if v})

    def clear_cache(self) -> None:
        self._records.clear()

    def cache_stats(self) -> dict[str, int]:
        return {"cached_contacts": len(self._records)}
