"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

MODE_PRIVATE = "private"
MODE_PUBLIC = "public"
MODES = {MODE_PRIVATE, MODE_PUBLIC}


@dataclass(frozen=True)
class DispatchConfig:
    """Settings consumed by the permission evaluator and dispatch pipeline.

    Identifier lists hold bare numbers (no namespace suffix).
    """

    prefix: str
    owner: Optional[str]
    admins: frozenset[str] = frozenset()
    blocked_users: frozenset[str] = frozenset()
    mode: str = MODE_PUBLIC
    respond_to_unknown_commands: bool = False
    send_permission_error: bool = False

    @property
    def is_private(self) -> bool:
        return self.mode == MODE_PRIVATE
