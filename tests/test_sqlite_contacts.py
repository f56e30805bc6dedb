from __future__ import annotations

import asyncio

from waveline.adapters.sqlite_contacts import SQLiteContactStore
from waveline.core.contacts import ContactDirectory
from waveline.core.identity import IdentityResolver


def _store(tmp_path) -> SQLiteContactStore:
    store = SQLiteContactStore(str(tmp_path / "contacts.db"))
    store.init_db()
    return store


def test_upsert_merges_fields(tmp_path) -> None:
    store = _store(tmp_path)
    store.upsert_contact("15551234567", {"notify": "Al"})
    store.upsert_contact("15551234567@s.whatsapp.net", {"name": "Alice"})

    assert store.get_contact("15551234567@S.WHATSAPP.NET") == {"name": "Alice", "notify": "Al"}
    assert store.get_contact("000@s.whatsapp.net") is None
    assert list(store.list_contacts()) == ["15551234567@s.whatsapp.net"]


def test_directory_reads_and_writes_through_store(tmp_path) -> None:
    store = _store(tmp_path)
    store.upsert_contact("15551234567@s.whatsapp.net", {"verified_name": "Acme Corp"})
    directory = ContactDirectory(store)

    resolver = IdentityResolver(None, directory)
    assert asyncio.run(resolver.get_display_name("15551234567@s.whatsapp.net")) == "Acme Corp"

    directory.update_contact("222@s.whatsapp.net", name="Bob")
    assert store.get_contact("222@s.whatsapp.net") == {"name": "Bob"}
