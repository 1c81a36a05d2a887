"""
Deterministic visibility evaluator for form fields.

A field is visible when its parent is visible and its gating predicate
holds for the parent's current value. Fields without a parent are
always visible; a field with a parent but no predicate is visible
whenever its parent is (the parent then only drives its options).
"""

from typing import Any

from reservations.core.schema import ConditionOperator, FieldSpec, FormSchema, Predicate
from reservations.core.utils import is_empty


def evaluate_predicate(predicate: Predicate, value: Any) -> bool:
    """Evaluate a single predicate against a value.

    Args:
        predicate: The predicate to evaluate.
        value: The value under test (usually the parent field's value).

    Returns:
        True if the predicate passes, False otherwise.
    """
    match predicate.operator:
        case ConditionOperator.EXISTS:
            return not is_empty(value)

        case ConditionOperator.EQUALS:
            if is_empty(value):
                return False
            return str(value) == str(predicate.value)

        case ConditionOperator.NOT_EQUALS:
            if is_empty(value):
                return False
            return str(value) != str(predicate.value)

        case ConditionOperator.IN:
            if is_empty(value):
                return False
            return str(value) in {str(v) for v in predicate.values or []}

        case ConditionOperator.IS_TRUE:
            return value is True

    return False


def is_field_visible(field: FieldSpec, values: dict[str, Any]) -> bool:
    """Check the field's own gating predicate (ignores the parent's visibility)."""
    if field.parent is None or field.visible_when is None:
        return True
    return evaluate_predicate(field.visible_when, values.get(field.parent))


def visible_keys(schema: FormSchema, values: dict[str, Any]) -> list[str]:
    """Return the keys of all visible fields, in declaration order."""
    fields = {f.key: f for f in schema.fields}
    memo: dict[str, bool] = {}

    def visible(key: str) -> bool:
        if key not in memo:
            field = fields[key]
            parent_visible = field.parent is None or visible(field.parent)
            memo[key] = parent_visible and is_field_visible(field, values)
        return memo[key]

    return [f.key for f in schema.fields if visible(f.key)]
