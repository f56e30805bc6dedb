"""Command permission policies and their evaluation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from waveline.core.config import DispatchConfig
from waveline.core.identity import IdentityResolver
from waveline.core.jids import bare_number, is_phone_namespace
from waveline.core.ports import TransportPort

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Owner:
    pass


@dataclass(frozen=True)
class Admin:
    pass


@dataclass(frozen=True)
class Public:
    pass


@dataclass(frozen=True)
class AllowList:
    """Explicit set of bare phone numbers allowed to run a command."""

    numbers: frozenset[str]


@dataclass(frozen=True)
class Unrecognized:
    """A malformed policy. Always denies."""

    raw: Any


Permission = Union[Owner, Admin, Public, AllowList, Unrecognized]


def parse_permission(value: Any) -> Permission:
    """Build a policy from a handler's ``permissions`` attribute.

    ``None`` means public. Strings name a tier, sequences are allow-lists of
    phone ids (with or without namespace suffix). Anything else is kept as
    ``Unrecognized`` so evaluation fails closed.
    """

    if isinstance(value, (Owner, Admin, Public, AllowList, Unrecognized)):
        return value
    if value is None:
        return Public()
    if isinstance(value, str):
        tier = value.strip().lower()
        if tier == "owner":
            return Owner()
        if tier == "admin":
            return Admin()
        if tier == "public":
            return Public()
        return Unrecognized(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        if not all(isinstance(item, str) for item in value):
            return Unrecognized(value)
        return AllowList(frozenset(bare_number(item) for item in value))
    return Unrecognized(value)


class PermissionEvaluator:
    """Decide whether an actor may run a command.

    Checks run in order and stop at the first decisive one: private mode,
    blocked users, unknown command, then the command's own policy.
    """

    def __init__(
        self,
        registry,
        resolver: IdentityResolver,
        config: DispatchConfig,
        transport: Optional[TransportPort] = None,
    ) -> None:
        self._registry = registry
        self._resolver = resolver
        self._config = config
        self._transport = transport

    @property
    def owner_number(self) -> Optional[str]:
        owner = self._config.owner or getattr(self._transport, "user_jid", None)
        return bare_number(owner) if owner else None

    async def actor_number(self, actor: str) -> str:
        """Return the bare phone number of an actor, best-effort.

        An opaque id that cannot be resolved yields its own bare number,
        which will simply not match any configured owner or admin.
        """

        if is_phone_namespace(actor):
            return bare_number(actor)
        resolved = await self._resolver.resolve_counterpart(actor)
        if resolved != actor:
            LOGGER.debug("Normalized %s to %s for permission check", actor, resolved)
        else:
            LOGGER.debug("Using unresolved id %s for permission check", actor)
        return bare_number(resolved)

    def is_owner(self, number: str) -> bool:
        owner = self.owner_number
        return owner is not None and number == owner

    def is_admin(self, number: str) -> bool:
        return self.is_owner(number) or number in self._config.admins

    async def evaluate(self, command_name: str, actor: str) -> bool:
        number = await self.actor_number(actor)
        return self.evaluate_number(command_name, number)

    def evaluate_number(self, command_name: str, number: str) -> bool:
        if self._config.is_private and not self.is_admin(number):
            return False
        if number in self._config.blocked_users:
            return False

        command = self._registry.get(command_name)
        if command is None:
            return False

        permission = command.permission
        if isinstance(permission, Owner):
            return self.is_owner(number)
        if isinstance(permission, Admin):
            return self.is_admin(number)
        if isinstance(permission, Public):
            return True
        if isinstance(permission, AllowList):
            return number in permission.numbers
        LOGGER.warning("Denying %s: unrecognized permission %r", command_name, permission)
        return False
