"""Configuration loading for waveline.

All user-editable settings (owner, admins, features, logging) live in a
single JSON file for quick edits without touching Python. Per-host values
such as the owner number can be overridden from the environment (.env).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from dotenv import load_dotenv

from waveline.core.config import MODE_PUBLIC, MODES, DispatchConfig
from waveline.core.jids import bare_number

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))

# Default location of config.json; WAVELINE_CONFIG points elsewhere.
CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")

LOGGER = logging.getLogger(__name__)

DEFAULT_PREFIX = "."
DEFAULT_CONTACTS_DB = "contacts.db"


@dataclass(frozen=True)
class Settings:
    """Parsed configuration for the application layer."""

    dispatch: DispatchConfig
    contacts_db_path: str
    lid_mappings: dict[str, str] = field(default_factory=dict)
    logging: dict[str, Any] = field(default_factory=dict)


def resolve_config_path(path: Optional[str] = None) -> str:
    load_dotenv()
    return path or os.getenv("WAVELINE_CONFIG") or CONFIG_PATH


def load_json_config(path: str) -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _numbers(values: Optional[Iterable[Any]]) -> frozenset[str]:
    """Normalize identifier lists to bare numbers for comparisons."""

    numbers: set[str] = set()
    for value in values or []:
        text = str(value).strip().lstrip("+")
        if text:
            numbers.add(bare_number(text))
    return frozenset(numbers)


def build_dispatch_config(raw: dict) -> DispatchConfig:
    bot = raw.get("bot", {})
    features = raw.get("features", {})
    security = raw.get("security", {})

    mode = str(features.get("mode", MODE_PUBLIC)).lower()
    if mode not in MODES:
        LOGGER.warning("Unknown features.mode %r, running as %s", mode, MODE_PUBLIC)

    prefix = bot.get("prefix", DEFAULT_PREFIX)
    if not isinstance(prefix, str) or not prefix:
        raise ValueError("bot.prefix must be a non-empty string")

    # The owner is instance-specific, so the environment wins over the file.
    owner = os.getenv("BOT_OWNER") or bot.get("owner")
    owner_number = bare_number(str(owner).strip().lstrip("+")) if owner else None

    return DispatchConfig(
        prefix=prefix,
        owner=owner_number or None,
        admins=_numbers(bot.get("admins")),
        blocked_users=_numbers(security.get("blocked_users")),
        mode=mode,
        respond_to_unknown_commands=bool(features.get("respond_to_unknown_commands", False)),
        send_permission_error=bool(features.get("send_permission_error", False)),
    )


def load_settings(path: Optional[str] = None) -> Settings:
    """Read the config file and build the settings used by the app."""

    config_path = resolve_config_path(path)
    raw = load_json_config(config_path)

    contacts = raw.get("contacts", {})
    db_path = contacts.get("db_path", DEFAULT_CONTACTS_DB)
    if not os.path.isabs(db_path):
        db_path = os.path.join(os.path.dirname(os.path.abspath(config_path)), db_path)

    identity = raw.get("identity", {})
    return Settings(
        dispatch=build_dispatch_config(raw),
        contacts_db_path=db_path,
        lid_mappings=dict(identity.get("lid_mappings", {})),
        logging=raw.get("logging", {}),
    )
