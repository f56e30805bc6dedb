"""Runtime-mutable command and hook tables.

Mutations build a new table and swap it in, so a dispatch that is iterating
a table never observes a half-applied change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

from waveline.core.permissions import Permission, parse_permission
from waveline.core.ports import CommandHandler

LOGGER = logging.getLogger(__name__)

PRE_PROCESS = "pre_process"
POST_PROCESS = "post_process"

Hook = Callable[..., Any]


@dataclass(frozen=True)
class Command:
    name: str
    handler: CommandHandler
    permission: Permission


class CommandRegistry:
    """Named commands (case-insensitive) and stage-keyed hook lists."""

    def __init__(self) -> None:
        self._commands: dict[str, Command] = {}
        self._hooks: dict[str, tuple[Hook, ...]] = {}

    def register(self, name: str, handler: CommandHandler, permission: Any = None) -> Command:
        """Register a command; the last registration for a name wins.

        The policy defaults to the handler's ``permissions`` attribute.
        """

        key = name.lower()
        if permission is None:
            permission = getattr(handler, "permissions", None)
        command = Command(name=key, handler=handler, permission=parse_permission(permission))
        commands = dict(self._commands)
        commands[key] = command
        self._commands = commands
        LOGGER.debug("Registered command handler: %s", key)
        return command

    def unregister(self, name: str) -> None:
        key = name.lower()
        if key not in self._commands:
            return
        commands = dict(self._commands)
        del commands[key]
        self._commands = commands
        LOGGER.debug("Unregistered command handler: %s", key)

    def get(self, name: str) -> Optional[Command]:
        return self._commands.get(name.lower())

    def names(self) -> list[str]:
        return list(self._commands)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._commands

    def __iter__(self) -> Iterator[Command]:
        return iter(list(self._commands.values()))

    def __len__(self) -> int:
        return len(self._commands)

    def register_hook(self, stage: str, hook: Hook) -> None:
        """Append a hook to a stage; hooks run in registration order."""

        hooks = dict(self._hooks)
        hooks[stage] = hooks.get(stage, ()) + (hook,)
        self._hooks = hooks
        LOGGER.debug("Registered message hook: %s", stage)

    def unregister_hook(self, stage: str) -> None:
        """Remove every hook registered for a stage."""

        if stage not in self._hooks:
            return
        hooks = dict(self._hooks)
        del hooks[stage]
        self._hooks = hooks
        LOGGER.debug("Unregistered message hook: %s", stage)

    def hooks(self, stage: str) -> tuple[Hook, ...]:
        return self._hooks.get(stage, ())

    def stages(self) -> list[str]:
        return list(self._hooks)
