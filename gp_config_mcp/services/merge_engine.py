"""Fill-only merge of stored configuration documents.

``merge_fill`` never replaces a present, non-empty scalar. Arrays of objects
are reconciled element by element through the first identity key that
qualifies, so an incoming catalogue can add products or add fields to known
products without disturbing anything already stored.
"""
import copy
from typing import Any

IDENTITY_KEYS = ("id", "product_id", "category_id", "vendor_id", "service_id")


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _qualifies(items: list, key: str) -> bool:
    has_string = False
    for item in items:
        if not isinstance(item, dict):
            continue
        value = item.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            return False
        has_string = True
    return has_string


def detect_identity_key(items: list) -> str | None:
    for key in IDENTITY_KEYS:
        if _qualifies(items, key):
            return key
    return None


def _identity(item: Any, key: str) -> str | None:
    if isinstance(item, dict) and isinstance(item.get(key), str):
        return item[key]
    return None


def _merge_arrays(current: list, incoming: list) -> tuple[list, bool]:
    if not current and incoming:
        return copy.deepcopy(incoming), True

    key = detect_identity_key(current) or detect_identity_key(incoming)
    if key is None:
        return current, False

    merged = copy.deepcopy(current)
    index: dict[str, int] = {}
    for position, item in enumerate(merged):
        item_id = _identity(item, key)
        if item_id is not None:
            index[item_id] = position

    changed = False
    for item in incoming:
        item_id = _identity(item, key)
        if item_id is None:
            continue
        position = index.get(item_id)
        if position is None:
            index[item_id] = len(merged)
            merged.append(copy.deepcopy(item))
            changed = True
            continue
        value, item_changed = merge_fill(merged[position], item)
        if item_changed:
            merged[position] = value
            changed = True
    return merged, changed


def _merge_objects(current: dict, incoming: dict) -> tuple[dict, bool]:
    merged = copy.deepcopy(current)
    changed = False
    for key, incoming_value in incoming.items():
        if key not in merged:
            merged[key] = copy.deepcopy(incoming_value)
            changed = True
            continue
        value, child_changed = merge_fill(merged[key], incoming_value)
        if child_changed:
            merged[key] = value
            changed = True
    return merged, changed


def merge_fill(current: Any, incoming: Any) -> tuple[Any, bool]:
    """Return ``(merged, changed)`` for a fill of ``incoming`` into ``current``."""
    if _is_empty(current):
        return copy.deepcopy(incoming), incoming != current

    if isinstance(current, list) and isinstance(incoming, list):
        return _merge_arrays(current, incoming)

    if isinstance(current, dict) and isinstance(incoming, dict):
        return _merge_objects(current, incoming)

    return current, False
