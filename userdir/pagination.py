"""Deterministic slicing of an ordered collection into pages."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Generic, List, Sequence, Tuple, TypeVar

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

T = TypeVar("T")


@dataclass(frozen=True)
class PageResult(Generic[T]):
    """One page of a collection together with the totals it was cut from."""

    items: List[T]
    page: int
    limit: int
    total_items: int
    total_pages: int


def _coerce_positive(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        number = value
    elif isinstance(value, float):
        if not math.isfinite(value):
            return default
        number = int(value)
    elif isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match is None:
            return default
        number = int(match.group(1))
    else:
        return default
    return number if number >= 1 else default


def normalise_page_params(page: object = None, limit: object = None) -> Tuple[int, int]:
    """Turn raw paging input into a positive ``(page, limit)`` pair.

    Bad input never raises: anything that is not a positive integer (or a
    string starting with one) falls back to the defaults.
    """

    return _coerce_positive(page, DEFAULT_PAGE), _coerce_positive(limit, DEFAULT_LIMIT)


def paginate(records: Sequence[T], page: object = None, limit: object = None) -> PageResult[T]:
    page_num, limit_num = normalise_page_params(page, limit)

    total_items = len(records)
    total_pages = math.ceil(total_items / limit_num)
    start = (page_num - 1) * limit_num
    end = start + limit_num

    return PageResult(
        items=list(records[start:end]),
        page=page_num,
        limit=limit_num,
        total_items=total_items,
        total_pages=total_pages,
    )


__all__ = ["DEFAULT_PAGE", "DEFAULT_LIMIT", "PageResult", "normalise_page_params", "paginate"]
