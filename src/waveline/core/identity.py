"""Identity resolution between the opaque and phone namespaces.

The mapping source is asynchronous and frequently has no answer yet, so
every lookup degrades to the identifier it was given. Only positive results
are cached, and a cached counterpart is never replaced by a miss.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from waveline.core.contacts import ContactDirectory
from waveline.core.jids import (
    bare_number,
    extract_phone,
    is_group_jid,
    is_opaque_namespace,
    normalize_jid,
)
from waveline.core.models import ContactRecord, IdentityPair, NameSource
from waveline.core.ports import IdentityMappingPort

LOGGER = logging.getLogger(__name__)


def _directory_name(contact: Optional[dict[str, Any]]) -> Optional[str]:
    """Pick a usable name from a directory entry.

    Very short names and names that are just a formatted number are ignored
    so the phone fallback can take over.
    """

    if not contact:
        return None
    name = contact.get("name") or contact.get("notify") or contact.get("verified_name")
    if name and len(name) > 2 and not name.startswith("+"):
        return name
    return None


class IdentityResolver:
    """Cached, bidirectional identifier mapping with display-name lookup."""

    def __init__(
        self,
        mapping: Optional[IdentityMappingPort],
        contacts: Optional[ContactDirectory] = None,
    ) -> None:
        self._mapping = mapping
        self._contacts = contacts or ContactDirectory()
        self._counterparts: dict[str, str] = {}
        self._fallback_names: dict[str, tuple[str, str]] = {}

    @property
    def contacts(self) -> ContactDirectory:
        return self._contacts

    def cached_counterpart(self, jid: str) -> Optional[str]:
        return self._counterparts.get(jid)

    def record_mapping(self, jid: str, counterpart: Optional[str]) -> None:
        """Store a resolved counterpart. Misses never overwrite a hit."""

        if not counterpart:
            return
        self._counterparts[jid] = counterpart

    def _named_record(self, jid: str) -> Optional[ContactRecord]:
        record = self._contacts.cached(jid)
        if record is None or record.source is NameSource.PHONE_FALLBACK:
            return None
        return record

    async def resolve_counterpart(self, jid: str) -> str:
        """Return the phone-namespace form of an opaque id, else ``jid``."""

        if not is_opaque_namespace(jid):
            return jid
        cached = self._counterparts.get(jid)
        if cached:
            return cached
        if self._mapping is None:
            return jid
        try:
            LOGGER.debug("Resolving opaque id %s", jid)
            pn = await self._mapping.get_pn_for_lid(jid)
        except Exception as exc:
            LOGGER.debug("Could not resolve %s: %s", jid, exc)
            return jid
        if not pn:
            return jid
        self.record_mapping(jid, pn)
        self.record_mapping(pn, jid)
        LOGGER.info("Resolved %s -> %s", jid, pn)
        return pn

    async def resolve_pair(self, jid: str) -> IdentityPair:
        """Resolve both namespace forms of ``jid`` where possible.

        Unlike ``resolve_counterpart`` this also asks for the opaque id of a
        phone-namespace jid. Groups are passed through untouched.
        """

        phone = extract_phone(jid) or bare_number(jid)
        opaque = is_opaque_namespace(jid)
        if is_group_jid(jid) or self._mapping is None:
            return IdentityPair(lid=jid if opaque else None, pn=None if opaque else jid, phone=phone)

        if opaque:
            pn = await self.resolve_counterpart(jid)
            if pn == jid:
                return IdentityPair(lid=jid, pn=None, phone=phone)
            return IdentityPair(lid=jid, pn=pn, phone=extract_phone(pn) or bare_number(pn))

        lid = self._counterparts.get(jid)
        if not lid:
            try:
                lid = await self._mapping.get_lid_for_pn(jid)
            except Exception as exc:
                LOGGER.debug("Could not resolve %s: %s", jid, exc)
                lid = None
            if lid:
                self.record_mapping(jid, lid)
                self.record_mapping(lid, jid)
                LOGGER.info("Resolved %s -> %s", jid, lid)
        return IdentityPair(lid=lid or None, pn=jid, phone=phone)

    async def get_display_name(self, jid: str) -> str:
        """Return a display name, falling back to ``+<number>``.

        Real names are cached in the contact directory and fallbacks here,
        both under the original identifier, so a repeated call performs no
        further lookups. A name learned later still replaces a fallback.
        """

        try:
            cached = self._named_record(jid)
            if cached is not None:
                return cached.display_name
            key = normalize_jid(jid)
            fallback = self._fallback_names.get(key)
            if fallback is not None:
                built_from, name = fallback
                # An opaque id may have gained its phone counterpart since.
                if not is_opaque_namespace(jid) or self._counterparts.get(jid, built_from) == built_from:
                    return name

            pn = await self.resolve_counterpart(jid)

            cached = self._named_record(pn)
            if cached is not None:
                self._contacts.remember(jid, cached.display_name, cached.source)
                return cached.display_name

            name = _directory_name(self._contacts.stored_contact(pn)) or _directory_name(
                self._contacts.stored_contact(jid)
            )
            if name:
                self._contacts.remember(pn, name, NameSource.DIRECTORY)
                self._contacts.remember(jid, name, NameSource.DIRECTORY)
                return name

            name = f"+{bare_number(pn)}"
            self._fallback_names[key] = (pn, name)
            return name
        except Exception:
            LOGGER.exception("Error getting display name for %s", jid)
            return f"+{bare_number(jid or '')}"
