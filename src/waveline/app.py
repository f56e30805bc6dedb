"""Application entry point for waveline."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import re
import sys
from logging.handlers import RotatingFileHandler
from typing import Iterator, Optional, TextIO

from art import tprint
from dotenv import load_dotenv

from waveline import settings
from waveline.adapters.console_transport import ConsoleTransport, StaticIdentityMapping
from waveline.adapters.envelope import build_message
from waveline.adapters.sqlite_contacts import SQLiteContactStore
from waveline.commands import register_builtin_commands
from waveline.core.contacts import ContactDirectory
from waveline.core.dispatcher import DispatchPipeline, build_pipeline
from waveline.core.models import InboundMessage

NAME = "WAVELINE"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)

PHONE_RUN = re.compile(r"(?<!\d)\d{7,}(?!\d)")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


def _mask_number(match: re.Match) -> str:
    digits = match.group(0)
    return "*" * (len(digits) - 4) + digits[-4:]


class _RedactingFormatter(logging.Formatter):
    """Hide configured secrets and, optionally, phone numbers in log lines.

    Identifiers embed phone numbers, so ``mask_numbers`` keeps only the last
    four digits of any long digit run.
    """

    def __init__(
        self,
        secrets: list[str],
        fmt: str = LOG_FORMAT,
        datefmt: Optional[str] = LOG_DATEFMT,
        mask_numbers: bool = False,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)
        self._mask_numbers = mask_numbers

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        if self._mask_numbers:
            message = PHONE_RUN.sub(_mask_number, message)
        return message


def _env_secrets(redact_cfg: dict) -> list[str]:
    return [os.environ[name] for name in redact_cfg.get("patterns", []) if os.getenv(name)]


def _build_formatter(config: dict) -> _RedactingFormatter:
    redact_cfg = config.get("redact") or {}
    if not redact_cfg.get("enabled", False):
        return _RedactingFormatter([])
    return _RedactingFormatter(
        _env_secrets(redact_cfg),
        mask_numbers=bool(redact_cfg.get("phone_numbers", False)),
    )


def _file_handler(file_cfg: dict, base_dir: str) -> RotatingFileHandler:
    path = file_cfg.get("path", "logs/waveline.log")
    if not os.path.isabs(path):
        path = os.path.join(base_dir, path)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    return RotatingFileHandler(
        path,
        maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
        backupCount=int(file_cfg.get("backup_count", 5)),
        encoding="utf-8",
    )


def _configure_logging(config: dict, base_dir: str) -> None:
    """Attach console and rotating-file handlers from the ``logging`` block."""

    if not config.get("enabled", False):
        return

    load_dotenv()
    level = getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)
    formatter = _build_formatter(config)

    handlers: list[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())
    file_cfg = config.get("file") or {}
    if file_cfg.get("enabled", False):
        handlers.append(_file_handler(file_cfg, base_dir))
    if not handlers:
        return

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=handlers)


def _open_store(app_settings: settings.Settings) -> SQLiteContactStore:
    store = SQLiteContactStore(app_settings.contacts_db_path)
    store.init_db()
    return store


def build_app(app_settings: settings.Settings, transport: ConsoleTransport) -> DispatchPipeline:
    """Wire the pipeline with the SQLite directory and built-in commands."""

    contacts = ContactDirectory(_open_store(app_settings))
    mapping = StaticIdentityMapping(app_settings.lid_mappings)
    pipeline = build_pipeline(transport, app_settings.dispatch, mapping=mapping, contacts=contacts)
    register_builtin_commands(pipeline.registry)
    return pipeline


def read_envelopes(stream: TextIO) -> Iterator[InboundMessage]:
    """Yield messages from newline-delimited JSON, skipping bad lines."""

    for line_number, line in enumerate(stream, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            yield build_message(json.loads(line))
        except (json.JSONDecodeError, ValueError) as exc:
            LOGGER.warning("Skipping line %s: %s", line_number, exc)


def _replay(app_settings: settings.Settings, source: str, self_jid: Optional[str]) -> None:
    transport = ConsoleTransport(user_jid=self_jid)
    pipeline = build_app(app_settings, transport)

    if source == "-":
        messages = list(read_envelopes(sys.stdin))
    else:
        with open(source, "r", encoding="utf-8") as handle:
            messages = list(read_envelopes(handle))

    results = asyncio.run(pipeline.handle_messages(messages))
    for context in results:
        outcome = context.outcome.value if context.outcome else "-"
        print(f"{context.chat_jid} | {context.kind.value} | {outcome} | {context.command or ''}")
    LOGGER.info("Replayed %s messages, %s actions", len(results), len(transport.actions))


def _check(app_settings: settings.Settings) -> None:
    config = app_settings.dispatch
    print(f"Prefix:   {config.prefix}")
    print(f"Owner:    {config.owner or '(bot account)'}")
    print(f"Mode:     {config.mode}")
    print(f"Admins:   {len(config.admins)}")
    print(f"Blocked:  {len(config.blocked_users)}")
    print(f"Mappings: {len(app_settings.lid_mappings)}")
    print(f"Contacts: {app_settings.contacts_db_path}")


def _import_contacts(app_settings: settings.Settings, path: str) -> None:
    with open(path, "r", encoding="utf-8") as handle:
        entries = json.load(handle)
    if not isinstance(entries, list):
        raise ValueError("Contacts file must hold a JSON list")

    store = _open_store(app_settings)
    imported = 0
    for entry in entries:
        jid = entry.get("jid") or entry.get("id")
        if not jid:
            continue
        store.upsert_contact(
            jid,
            {
                "name": entry.get("name"),
                "notify": entry.get("notify"),
                "verified_name": entry.get("verified_name") or entry.get("verifiedName"),
            },
        )
        imported += 1
    print(f"Imported {imported} contacts into {app_settings.contacts_db_path}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="waveline")
    parser.add_argument("--config", help="Path to config.json (default: $WAVELINE_CONFIG)")
    subparsers = parser.add_subparsers(dest="command")

    replay = subparsers.add_parser("replay", help="Feed recorded envelopes through the pipeline")
    replay.add_argument("source", help="Newline-delimited JSON file, or - for stdin")
    replay.add_argument("--self-jid", help="Identity of the bot account")
    subparsers.add_parser("check", help="Validate the config and print a summary")
    contacts = subparsers.add_parser("contacts", help="Manage the contact directory")
    contacts_sub = contacts.add_subparsers(dest="contacts_command")
    contacts_import = contacts_sub.add_parser("import", help="Import a JSON list of contacts")
    contacts_import.add_argument("path")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return

    try:
        app_settings = settings.load_settings(args.config)
    except (FileNotFoundError, ValueError) as exc:
        parser.exit(2, f"waveline: {exc}\n")

    config_dir = os.path.dirname(os.path.abspath(settings.resolve_config_path(args.config)))
    _configure_logging(app_settings.logging, config_dir)

    if args.command == "check":
        _check(app_settings)
        return
    if args.command == "contacts":
        if args.contacts_command != "import":
            contacts.print_help()
            return
        _import_contacts(app_settings, args.path)
        return

    _print_banner()
    _replay(app_settings, args.source, args.self_jid)


if __name__ == "__main__":
    main()
