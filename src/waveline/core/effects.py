"""Best-effort side effects (read receipts, presence, reactions)."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

LOGGER = logging.getLogger(__name__)


async def best_effort(label: str, func: Callable[..., Any], *args: Any) -> bool:
    """Run a side effect, log its failure and report whether it succeeded.

    A failing side effect never aborts the caller; it only leaves a warning.
    """

    try:
        result = func(*args)
        if inspect.isawaitable(result):
            await result
    except Exception as exc:
        LOGGER.warning("Best-effort %s failed: %s", label, exc)
        return False
    return True
