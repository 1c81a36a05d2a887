"""
Dependency resolver.

Applies one field change and brings the rest of the value mapping back
into a consistent state:

1. Groups listed in the changed field's ``resets`` are cleared, every
   sibling alike, together with fields whose options depend on it.
2. Any field that is hidden but still holds a non-default value is reset,
   and the pass repeats until nothing changes, so grandchildren of a
   hidden branch are cleared too.
3. The visible-key set is recomputed from the final mapping.

The resolver is a pure function: it copies its input and never raises on
values. Unknown or derived keys are programmer errors (ConfigurationError).
"""

import logging
from typing import Any, NamedTuple

from reservations.core.registry import get_field, resolve_schema
from reservations.core.schema import FieldSpec, FormSchema
from reservations.core.utils import coerce_value
from reservations.core.visibility import visible_keys

logger = logging.getLogger(__name__)

_UNSET = object()


class Resolution(NamedTuple):
    """Result of a resolve call."""

    values: dict[str, Any]
    visible_keys: list[str]
    reset_keys: list[str]


def resolve(
    form: FormSchema | str,
    current_values: dict[str, Any],
    changed_key: str,
    new_value: Any = _UNSET,
) -> Resolution:
    """Apply a change to `changed_key` and cascade its consequences.

    Args:
        form: Form kind or schema.
        current_values: The current value mapping (not mutated).
        changed_key: The field the user just edited.
        new_value: The new value. When omitted, `current_values` is taken
            to already hold it and the dependents of `changed_key` are
            reset unconditionally.

    Returns:
        A Resolution with the next values, the visible keys, and the keys
        that were reset to their defaults.
    """
    schema = resolve_schema(form)
    field = get_field(schema, changed_key)
    values = normalize_values(schema, current_values)

    previous = values[changed_key]
    if new_value is not _UNSET:
        values[changed_key] = coerce_value(field, new_value)
        changed = values[changed_key] != previous
    else:
        changed = True

    reset: list[str] = []
    if changed:
        _reset_dependents(schema, values, field, reset)

    _cascade_hidden(schema, values, reset)

    if reset:
        logger.debug(
            "Change to '%s' on form '%s' reset: %s",
            changed_key, schema.form_kind, ", ".join(reset),
        )

    return Resolution(values, visible_keys(schema, values), reset)


def normalize_values(schema: FormSchema, values: dict[str, Any]) -> dict[str, Any]:
    """Copy `values`, filling missing fields with defaults and dropping unknown keys."""
    normalized = schema.initial_values()
    for key, value in values.items():
        if key in normalized:
            normalized[key] = value
        else:
            logger.debug("Ignoring unknown key '%s' for form '%s'", key, schema.form_kind)
    return normalized


def allowed_options(form: FormSchema | str, key: str, values: dict[str, Any]) -> list[str]:
    """Options the presentation layer should offer for `key` right now."""
    schema = resolve_schema(form)
    return get_field(schema, key).allowed_options(values)


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------


def _reset_dependents(
    schema: FormSchema,
    values: dict[str, Any],
    field: FieldSpec,
    reset: list[str],
) -> None:
    """Reset every field whose meaning depends on `field`'s value."""
    for target in schema.fields_in_groups(field.resets):
        if target.key != field.key:
            _reset_field(schema, values, target, reset)

    for child in schema.children_of(field.key):
        if child.options_by_parent is not None:
            _reset_field(schema, values, child, reset)


def _reset_field(
    schema: FormSchema,
    values: dict[str, Any],
    field: FieldSpec,
    reset: list[str],
) -> None:
    """Reset one field and, if it moved, everything that depends on it."""
    if field.key in reset:
        return

    default = field.initial_value()
    if values.get(field.key) == default:
        return

    values[field.key] = default
    reset.append(field.key)
    _reset_dependents(schema, values, field, reset)


def _cascade_hidden(schema: FormSchema, values: dict[str, Any], reset: list[str]) -> None:
    """Reset hidden fields holding data until the mapping is stable."""
    while True:
        visible = set(visible_keys(schema, values))
        stale = [
            f for f in schema.fields
            if f.key not in visible and values.get(f.key) != f.initial_value()
        ]
        if not stale:
            return

        for field in stale:
            values[field.key] = field.initial_value()
            if field.key not in reset:
                reset.append(field.key)
            _reset_dependents(schema, values, field, reset)
