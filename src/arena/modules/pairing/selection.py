from __future__ import annotations

import random
from collections.abc import Callable
from typing import Any, TypeVar

T = TypeVar("T")


def _partition(
    items: list[T],
    left: int,
    right: int,
    pivot_index: int,
    key: Callable[[T], Any],
) -> int:
    pivot_key = key(items[pivot_index])
    items[pivot_index], items[right] = items[right], items[pivot_index]
    store_index = left
    for index in range(left, right):
        if key(items[index]) < pivot_key:
            items[store_index], items[index] = items[index], items[store_index]
            store_index += 1
    items[right], items[store_index] = items[store_index], items[right]
    return store_index


def quickselect(
    items: list[T],
    k: int,
    *,
    key: Callable[[T], Any],
    rng: random.Random,
) -> T:
    """Return the element of rank ``k`` (0-based) under ``key``.

    ``items`` is reordered in place so that every element before index ``k``
    ranks lower than the returned one. Average cost is linear in
    ``len(items)``; ``rng`` only picks pivots, so with a total order on keys
    the returned element does not depend on it.
    """
    if not 0 <= k < len(items):
        raise IndexError(f"rank {k} out of range for {len(items)} items")

    left, right = 0, len(items) - 1
    while left < right:
        pivot_index = _partition(items, left, right, rng.randint(left, right), key)
        if k == pivot_index:
            return items[k]
        if k < pivot_index:
            right = pivot_index - 1
        else:
            left = pivot_index + 1
    return items[left]
