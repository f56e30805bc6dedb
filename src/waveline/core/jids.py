"""Helpers for working with chat identifiers (jids).

A participant can be addressed by an opaque id (``...@lid``) or by a
phone-based id (``...@s.whatsapp.net``). Groups live in their own namespace
and are never resolved, only passed through.
"""

from __future__ import annotations

import re
from typing import Optional

PHONE_SUFFIX = "@s.whatsapp.net"
OPAQUE_SUFFIX = "@lid"
GROUP_SUFFIX = "@g.us"
STATUS_BROADCAST = "status@broadcast"

_DEVICE_RE = re.compile(r":\d+(?=@|$)")
_INVALID_CHARS_RE = re.compile(r"[^0-9a-z@._-]")
_HEX_RE = re.compile(r"[a-f0-9]{32,}", re.IGNORECASE)


def normalize_jid(jid: Optional[str]) -> str:
    """Return the canonical cache key for an identifier.

    Lowercases, drops a device suffix, strips characters that never appear
    in identifiers and appends the phone namespace when none is present.
    """

    if not jid:
        return ""
    clean = _DEVICE_RE.sub("", jid.strip().lower())
    clean = _INVALID_CHARS_RE.sub("", clean)
    if not clean:
        return ""
    if "@" not in clean:
        return f"{clean}{PHONE_SUFFIX}"
    return clean


def bare_number(jid: str) -> str:
    """Return the user part of a jid (``123:4@s.whatsapp.net`` -> ``123``)."""

    user = jid.split("@", 1)[0]
    return user.split(":", 1)[0]


def is_group_jid(jid: Optional[str]) -> bool:
    return bool(jid) and jid.endswith(GROUP_SUFFIX)


def is_opaque_namespace(jid: Optional[str]) -> bool:
    return bool(jid) and jid.endswith(OPAQUE_SUFFIX)


def is_phone_namespace(jid: Optional[str]) -> bool:
    return bool(jid) and jid.endswith(PHONE_SUFFIX)


def is_status_broadcast(jid: Optional[str]) -> bool:
    return jid == STATUS_BROADCAST


def is_opaque_identifier(jid: Optional[str]) -> bool:
    """Best-guess classification of an identifier as opaque.

    Phone numbers carry at most 15 digits, so a longer numeric part or a long
    hex run suggests an opaque id. This is a heuristic only: it is used for
    diagnostics and never gates resolution, so a wrong guess is cosmetic.
    """

    if not jid:
        return False
    match = re.match(r"([^@]+)@", jid)
    if not match:
        return False
    user = match.group(1)
    digits = user.split(":", 1)[0]
    if digits.isdigit() and len(digits) > 15:
        return True
    return bool(_HEX_RE.search(user))


def extract_phone(jid: Optional[str]) -> Optional[str]:
    """Extract the phone-like digits from a jid, if any."""

    if not jid or GROUP_SUFFIX in jid:
        return None
    match = re.search(r"(\d+)(?::\d+)?@", jid)
    if match:
        return match.group(1)
    match = re.search(r"(\d{1,15})", jid)
    if match:
        return match.group(1)
    return None
