from __future__ import annotations

import json
import logging

import pytest

from waveline import settings


def _write(tmp_path, payload: dict) -> str:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


def test_load_settings_normalizes_identifiers(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("BOT_OWNER", raising=False)
    path = _write(
        tmp_path,
        {
            "bot": {"prefix": "!", "owner": "+15550000001@s.whatsapp.net", "admins": ["15550000002"]},
            "features": {"mode": "Private", "respond_to_unknown_commands": True},
            "security": {"blocked_users": ["15550000003@s.whatsapp.net"]},
            "contacts": {"db_path": "data/contacts.db"},
            "identity": {"lid_mappings": {"1@lid": "2@s.whatsapp.net"}},
        },
    )

    loaded = settings.load_settings(path)

    config = loaded.dispatch
    assert config.prefix == "!"
    assert config.owner == "15550000001"
    assert config.admins == frozenset({"15550000002"})
    assert config.blocked_users == frozenset({"15550000003"})
    assert config.is_private
    assert config.respond_to_unknown_commands
    assert not config.send_permission_error
    assert loaded.contacts_db_path == str(tmp_path / "data" / "contacts.db")
    assert loaded.lid_mappings == {"1@lid": "2@s.whatsapp.net"}


def test_environment_owner_overrides_file(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("BOT_OWNER", "15559999999")
    path = _write(tmp_path, {"bot": {"owner": "15550000001"}})
    assert settings.load_settings(path).dispatch.owner == "15559999999"


def test_defaults(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("BOT_OWNER", raising=False)
    config = settings.load_settings(_write(tmp_path, {})).dispatch
    assert config.prefix == "."
    assert config.owner is None
    assert config.mode == "public"


def test_unknown_mode_is_not_private(tmp_path, caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="waveline.settings"):
        config = settings.load_settings(_write(tmp_path, {"features": {"mode": "secret"}})).dispatch
    assert config.mode == "secret"
    assert config.is_private is False
    assert "Unknown features.mode" in caplog.text


def test_missing_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        settings.load_settings(str(tmp_path / "absent.json"))
