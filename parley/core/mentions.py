"""Mention token parsing."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable

from parley.config import get_settings

EVERYONE = "everyone"


@lru_cache(maxsize=8)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def parse_mentions(content: str, pattern: str | None = None) -> list[str]:
    """Return mentioned user ids in order of first appearance, without duplicates.

    ``everyone`` is returned as-is and stands for every member who can see
    the destination.
    """

    regex = _compile(pattern or get_settings().mention_pattern)
    return merge_mentions(match.group(1) for match in regex.finditer(content or ""))


def merge_mentions(*groups: Iterable[str]) -> list[str]:
    """Concatenate mention lists, keeping the first occurrence of each id."""

    seen: set[str] = set()
    ordered: list[str] = []
    for group in groups:
        for user_id in group:
            if user_id and user_id not in seen:
                seen.add(user_id)
                ordered.append(user_id)
    return ordered
