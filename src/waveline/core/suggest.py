"""Closest-command suggestions for mistyped command names."""

from __future__ import annotations

from typing import Iterable, Optional

SUGGESTION_MAX_DISTANCE = 3


def levenshtein_distance(a: str, b: str) -> int:
    """Return the edit distance between two strings."""

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def find_closest_command(typed: str, commands: Iterable[str]) -> tuple[Optional[str], float]:
    """Return ``(best, distance)``; ties keep the first command seen."""

    best: Optional[str] = None
    best_score: float = float("inf")
    for name in commands:
        distance = levenshtein_distance(typed, name)
        if distance < best_score:
            best, best_score = name, distance
    return best, best_score


def suggest_command(typed: str, commands: Iterable[str]) -> Optional[str]:
    best, score = find_closest_command(typed, commands)
    if best is None or score > SUGGESTION_MAX_DISTANCE:
        return None
    return best
