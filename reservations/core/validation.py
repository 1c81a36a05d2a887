"""
Validation engine.

Rules are grouped into branches; a branch is active while its condition
holds for the current values. For every visible field the rules of all
active branches are concatenated in branch order and evaluated one by
one; the first failure is the field's error. Hidden fields are never
validated, so the error map is always keyed by visible fields only.

Messages are returned with an i18n key (``code``) and parameters so the
presentation layer can translate them; ``message`` is the English text.
"""

import logging
import re
from datetime import date
from typing import Any

import phonenumbers
from email_validator import EmailNotValidError, validate_email
from phonenumbers import NumberParseException
from pydantic import BaseModel, Field

from reservations.core.registry import resolve_schema
from reservations.core.schema import (
    DateRange,
    FieldSpec,
    FileRef,
    FormSchema,
    Rule,
    RuleType,
    ValidationBranch,
)
from reservations.core.utils import is_empty, parse_time
from reservations.core.visibility import evaluate_predicate, visible_keys

logger = logging.getLogger(__name__)

_FILE_TYPE_LABELS = {
    "application/pdf": "PDF",
    "image/jpeg": "JPG",
    "image/png": "PNG",
}


class FieldError(BaseModel):
    """A single field-scoped validation error."""

    code: str
    message: str
    params: dict[str, Any] = Field(default_factory=dict)


def validate(form: FormSchema | str, values: dict[str, Any]) -> dict[str, FieldError]:
    """Validate the current values of a form.

    Args:
        form: Form kind or schema.
        values: Current field values. Never mutated.

    Returns:
        Field key -> FieldError for each failing visible field. An empty
        dict means the form is valid.
    """
    schema = resolve_schema(form)
    rules_by_field = active_rules(schema, values)

    errors: dict[str, FieldError] = {}
    for key in visible_keys(schema, values):
        rules = rules_by_field.get(key)
        if not rules:
            continue
        field = schema.get_field(key)
        error = _first_failure(field, rules, values.get(key), values)
        if error is not None:
            errors[key] = error

    if errors:
        logger.debug(
            "Form '%s' has %d invalid field(s): %s",
            schema.form_kind, len(errors), ", ".join(errors),
        )
    return errors


def active_branches(schema: FormSchema, values: dict[str, Any]) -> list[ValidationBranch]:
    """Branches whose condition holds for the current values."""
    return [
        branch for branch in schema.branches
        if branch.when is None
        or evaluate_predicate(branch.when, values.get(branch.when.field))
    ]


def active_rules(schema: FormSchema, values: dict[str, Any]) -> dict[str, list[Rule]]:
    """Merge the rules of all active branches, per field, in branch order."""
    merged: dict[str, list[Rule]] = {}
    for branch in active_branches(schema, values):
        for key, rules in branch.rules.items():
            merged.setdefault(key, []).extend(rules)
    return merged


def required_keys(form: FormSchema | str, values: dict[str, Any]) -> list[str]:
    """Visible fields that currently carry a `required` rule."""
    schema = resolve_schema(form)
    rules_by_field = active_rules(schema, values)
    return [
        key for key in visible_keys(schema, values)
        if any(r.type == RuleType.REQUIRED for r in rules_by_field.get(key, []))
    ]


# ---------------------------------------------------------------------
# Rule evaluation
# ---------------------------------------------------------------------


def _first_failure(
    field: FieldSpec,
    rules: list[Rule],
    value: Any,
    values: dict[str, Any],
) -> FieldError | None:
    for rule in rules:
        if rule.type == RuleType.REQUIRED:
            if is_empty(value):
                return FieldError(code="errors.required", message="This field is required")
            continue

        # Optional fields are only checked once they hold something
        if is_empty(value):
            continue

        error = _check_rule(field, rule, value, values)
        if error is not None:
            return error
    return None


def _check_rule(
    field: FieldSpec,
    rule: Rule,
    value: Any,
    values: dict[str, Any],
) -> FieldError | None:
    match rule.type:
        case RuleType.MAX_LENGTH:
            if len(str(value)) > rule.max:
                return FieldError(
                    code="errors.max",
                    message=f"Must be at most {rule.max} characters",
                    params={"len": rule.max},
                )

        case RuleType.MIN_LENGTH:
            if len(str(value)) < rule.min:
                return FieldError(
                    code="errors.min",
                    message=f"Must be at least {rule.min} characters",
                    params={"len": rule.min},
                )

        case RuleType.INTEGER_PATTERN:
            pattern = rf"[0-9]{{{rule.min},{rule.max}}}"
            if isinstance(value, bool) or not re.fullmatch(pattern, str(value)):
                if rule.min == rule.max:
                    message = f"Must be exactly {rule.max} digits"
                else:
                    message = f"Must contain digits only ({rule.min} to {rule.max})"
                return FieldError(
                    code="errors.digitsOnly",
                    message=message,
                    params={"min": rule.min, "max": rule.max},
                )

        case RuleType.INTEGER_RANGE:
            number = _as_int(value)
            if number is None:
                return FieldError(code="errors.digitsOnly", message="Must be a whole number")
            if not rule.min <= number <= rule.max:
                return FieldError(
                    code="errors.range",
                    message=f"Must be between {rule.min} and {rule.max}",
                    params={"min": rule.min, "max": rule.max},
                )

        case RuleType.ENUM:
            allowed = rule.allowed or field.allowed_options(values)
            if str(value) not in allowed:
                return FieldError(
                    code="errors.invalidOption",
                    message=f"'{value}' is not a valid option",
                    params={"options": allowed},
                )

        case RuleType.FILE_TYPE:
            if not isinstance(value, FileRef) or value.content is None:
                return _invalid_file()
            if value.content_type not in rule.allowed:
                types = ", ".join(_file_type_label(t) for t in rule.allowed)
                return FieldError(
                    code="errors.invalidFileType",
                    message=f"Invalid file type. Allowed types: {types}",
                    params={"types": types},
                )

        case RuleType.FILE_SIZE:
            if not isinstance(value, FileRef) or value.content is None:
                return _invalid_file()
            if value.size > rule.max:
                max_mb = rule.max / 1_000_000
                return FieldError(
                    code="errors.fileTooLarge",
                    message=f"File is too large. Maximum size is {max_mb:g} MB",
                    params={"maxBytes": rule.max, "maxMb": max_mb},
                )

        case RuleType.EMAIL:
            try:
                validate_email(str(value), check_deliverability=False)
            except EmailNotValidError:
                return FieldError(code="errors.email", message="Enter a valid email address")

        case RuleType.PHONE:
            if not _is_valid_phone(str(value), rule.region):
                return FieldError(
                    code="errors.phone",
                    message="Enter a valid phone number",
                    params={"region": rule.region},
                )

        case RuleType.DATE:
            return _check_date(value)

        case RuleType.TIME:
            if parse_time(value) is None:
                return FieldError(code="errors.time", message="Enter a valid time (HH:MM)")

    return None


def _check_date(value: Any) -> FieldError | None:
    if isinstance(value, DateRange):
        if not value.is_complete():
            return FieldError(code="errors.date", message="Select a start and an end date")
        if value.end < value.start:
            return FieldError(
                code="errors.dateOrder",
                message="The end date must not be before the start date",
            )
        return None
    if not isinstance(value, date):
        return FieldError(code="errors.date", message="Enter a valid date")
    return None


def _is_valid_phone(value: str, region: str) -> bool:
    try:
        number = phonenumbers.parse(value, region)
    except NumberParseException:
        return False
    return phonenumbers.is_valid_number(number)


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and re.fullmatch(r"-?[0-9]+", value.strip()):
        return int(value.strip())
    return None


def _file_type_label(content_type: str) -> str:
    return _FILE_TYPE_LABELS.get(content_type, content_type.split("/")[-1].upper())


def _invalid_file() -> FieldError:
    return FieldError(code="errors.invalidFile", message="Choose a file to upload")
