# Overview: Normalizes the stored assignment item list into item ids.

from __future__ import annotations

import json
from typing import Any

"""
Assignment item lists have been stored in three shapes over time:

1. [{"item_id": 101, ...}, {"item_id": 102, ...}]
2. [101, 102]  (or ["101", "102"])
3. {"itemIds": [101, 102]}

Each may arrive as a JSON string or already decoded. Anything else yields
an empty list; this function never raises.
"""

ITEM_ID_KEYS = ("item_id", "itemId", "Items_id", "id")
WRAPPER_KEYS = ("itemIds", "item_ids", "items")


def _coerce_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str):
        s = value.strip()
        if s.isdigit() and int(s) > 0:
            return int(s)
    return None


def _id_from_object(obj: dict) -> int | None:
    for key in ITEM_ID_KEYS:
        if key in obj:
            return _coerce_id(obj[key])
    return None


def extract_item_ids(raw: Any) -> list[int]:
    """
    Canonical, de-duplicated (first occurrence wins) list of positive integer
    item ids from any historically stored item-list shape.
    """
    data = raw
    if isinstance(data, (bytes, bytearray)):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError:
            return []
    if isinstance(data, str):
        if not data.strip():
            return []
        try:
            data = json.loads(data)
        except ValueError:
            return []

    if isinstance(data, dict):
        for key in WRAPPER_KEYS:
            if isinstance(data.get(key), list):
                data = data[key]
                break
        else:
            return []

    if not isinstance(data, list):
        return []

    ids: list[int] = []
    for element in data:
        if isinstance(element, dict):
            item_id = _id_from_object(element)
        else:
            item_id = _coerce_id(element)
        if item_id is not None and item_id not in ids:
            ids.append(item_id)
    return ids
