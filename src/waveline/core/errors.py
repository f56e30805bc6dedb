"""Errors raised by command handlers."""

from __future__ import annotations

_COMMUNICATED_ATTR = "already_communicated"


class CommandError(Exception):
    """A handler failure.

    Set ``communicated`` when the handler already told the user what went
    wrong, so the pipeline does not send its own error reply.
    """

    def __init__(self, message: str, communicated: bool = False) -> None:
        super().__init__(message)
        setattr(self, _COMMUNICATED_ATTR, communicated)


def mark_communicated(exc: BaseException) -> BaseException:
    """Tag any exception as already reported to the user and return it."""

    setattr(exc, _COMMUNICATED_ATTR, True)
    return exc


def is_communicated(exc: BaseException) -> bool:
    return bool(getattr(exc, _COMMUNICATED_ATTR, False))
