"""
Shared full-scan helper: enumerate items, filter, sort, truncate.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from ..errors import ValidationError
from ..repository import ItemRepository
from ..storage import ITEM_KEY_PATTERN

logger = logging.getLogger(__name__)

T = TypeVar("T")


def scan_items(
    repository: ItemRepository,
    *,
    select: Callable[[str, dict[str, str]], T | None],
    sort_key: Callable[[T], Any],
    limit: int,
    descending: bool = True,
    pattern: str = ITEM_KEY_PATTERN,
) -> list[T]:
    """
    Scan every stored item and return the best ``limit`` selections.

    ``select`` receives the key and raw hash of each item and returns a hit,
    or None to skip it. Items that vanish between the key scan and the fetch
    are skipped. Sorting is stable, so ties keep scan order.
    """
    if limit < 1:
        raise ValidationError("limit must be a positive integer.")

    hits: list[T] = []
    keys = repository.list_all_keys(pattern)
    for key in keys:
        record = repository.fetch_record(key)
        if not record:
            continue
        hit = select(key, record)
        if hit is not None:
            hits.append(hit)

    logger.debug("Scanned %d keys, %d candidates", len(keys), len(hits))
    ordered = sorted(hits, key=sort_key, reverse=descending)
    return ordered[:limit]
