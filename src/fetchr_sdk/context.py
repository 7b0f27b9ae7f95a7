"""Context pickers: which context keys travel with a GET or a POST."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence, Union

from .exceptions import FetchrValidationError

HTTP_METHODS = ("GET", "POST")


@dataclass(frozen=True)
class AllowList:
    keys: tuple[str, ...]


@dataclass(frozen=True)
class ContextKey:
    """A single key name; replaces rather than extends an older picker on merge."""

    key: str


@dataclass(frozen=True)
class Predicate:
    test: Callable[[Any, str], bool]


ContextPicker = Union[AllowList, ContextKey, Predicate]


def coerce_picker(value: Any) -> ContextPicker | None:
    """Turn a key name, a sequence of key names or a callable into a picker."""
    if value is None or isinstance(value, (AllowList, ContextKey, Predicate)):
        return value
    if isinstance(value, str):
        return ContextKey(value)
    if callable(value):
        return Predicate(value)
    if isinstance(value, Sequence):
        return AllowList(tuple(str(key) for key in value))
    raise FetchrValidationError(f"Unsupported context picker: {value!r}")


def coerce_pickers(pickers: Mapping[str, Any] | None) -> dict[str, ContextPicker]:
    if not pickers:
        return {}
    coerced: dict[str, ContextPicker] = {}
    for method, value in pickers.items():
        method = str(method).upper()
        if method not in HTTP_METHODS:
            raise FetchrValidationError(f"context_picker method must be GET or POST, got {method!r}")
        picker = coerce_picker(value)
        if picker is not None:
            coerced[method] = picker
    return coerced


def merge_picker(old: ContextPicker | None, new: ContextPicker | None) -> ContextPicker | None:
    if isinstance(old, AllowList) and isinstance(new, AllowList):
        return AllowList(old.keys + new.keys)
    return new if new is not None else old


def merge_pickers(
    current: Mapping[str, ContextPicker],
    patch: Mapping[str, ContextPicker],
) -> dict[str, ContextPicker]:
    merged: dict[str, ContextPicker] = {}
    for method in HTTP_METHODS:
        picker = merge_picker(current.get(method), patch.get(method))
        if picker is not None:
            merged[method] = picker
    return merged


def pick_context(context: Mapping[str, Any], picker: ContextPicker | None) -> dict[str, Any]:
    """Select the context entries a picker allows; no picker means everything."""
    if picker is None:
        return dict(context)
    if isinstance(picker, ContextKey):
        return {picker.key: context[picker.key]} if picker.key in context else {}
    if isinstance(picker, AllowList):
        # first occurrence of a duplicated key controls its position
        picked: dict[str, Any] = {}
        for key in picker.keys:
            if key in context and key not in picked:
                picked[key] = context[key]
        return picked
    return {key: value for key, value in context.items() if picker.test(value, key)}
