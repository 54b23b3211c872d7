"""Input normalizers applied to draft values as the user enters them."""

from __future__ import annotations

import re
from typing import Any, Callable

from shepherd.wizard.models import FieldDefinition
from shepherd.wizard.payloads import format_phone_number

# Registry of normalizer functions: name -> callable(value) -> value
NORMALIZERS: dict[str, Callable[[Any], Any]] = {}


def register(name: str):
    """Decorator to register a normalizer function."""
    def decorator(fn):
        NORMALIZERS[name] = fn
        return fn
    return decorator


def parse_rule(rule: str) -> tuple[str, dict[str, str]]:
    """Split ``"name:k=v,k2=v2"`` into the name and its parameters."""
    name, _, raw = rule.partition(":")
    params: dict[str, str] = {}
    if raw:
        for pair in raw.split(","):
            k, _, v = pair.partition("=")
            params[k.strip()] = v.strip()
    return name.strip(), params


@register("phone")
def normalize_phone(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    return format_phone_number(value)


def normalize(field: FieldDefinition, value: Any, subpath: str | None = None) -> Any:
    """Apply ``field``'s normalizers to a new value.

    ``subpath`` is set when only part of a compound field changes (for
    ``current_family.phone`` it is ``"phone"``); a normalizer declared with
    ``key=phone`` then applies to the value itself.

    Raises:
        KeyError: If the field names an unknown normalizer.
    """
    for rule in field.normalizers:
        name, params = parse_rule(rule)
        fn = NORMALIZERS.get(name)
        if fn is None:
            raise KeyError(f"Unknown normalizer {name!r} on field {field.id!r}")
        key = params.get("key")

        if subpath is not None:
            if key == subpath:
                value = fn(value)
        elif key is None:
            value = fn(value)
        elif isinstance(value, dict) and key in value:
            value = {**value, key: fn(value[key])}
    return value


def split_path(path: str) -> tuple[str, str | None]:
    """``"current_family.phone"`` -> ``("current_family", "phone")``."""
    head = re.split(r"[.\[]", path, maxsplit=1)[0]
    rest = path[len(head):]
    if not rest:
        return head, None
    return head, rest.lstrip(".")
