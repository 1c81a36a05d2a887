"""
Submission payload models.

A payload is a flat snapshot of the visible fields, captured before the
transport call so that later edits cannot leak into an in-flight request.
Text values are rendered as strings under their external names; file
fields travel separately as attachments.
"""

from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from reservations.core.schema import DateRange, FileRef, FormSchema
from reservations.core.utils import is_empty
from reservations.core.visibility import visible_keys


class SubmissionPayload(BaseModel):
    """The multipart body handed to the transport."""

    form_kind: str
    operation: str
    fields: dict[str, str] = Field(default_factory=dict)
    files: dict[str, FileRef] = Field(default_factory=dict)


def build_payload(
    schema: FormSchema,
    values: dict[str, Any],
    derived: dict[str, int] | None = None,
) -> SubmissionPayload:
    """Build the payload from the visible values of a form.

    Hidden fields are excluded, as are fields that were left empty.
    Date ranges are split into ``<name>From`` / ``<name>To``.

    Args:
        schema: The form schema.
        values: Current field values.
        derived: Derived field values to include, if any.

    Returns:
        A SubmissionPayload detached from `values`.
    """
    fields: dict[str, str] = {}
    files: dict[str, FileRef] = {}

    for key in visible_keys(schema, values):
        value = values.get(key)
        if is_empty(value):
            continue

        name = schema.get_field(key).payload_key or key
        if isinstance(value, FileRef):
            files[name] = value.model_copy()
        elif isinstance(value, DateRange):
            if value.start is not None:
                fields[f"{name}From"] = value.start.isoformat()
            if value.end is not None:
                fields[f"{name}To"] = value.end.isoformat()
        else:
            fields[name] = format_value(value)

    for spec in schema.derived:
        if derived and spec.key in derived:
            fields[spec.key] = str(derived[spec.key])

    return SubmissionPayload(
        form_kind=schema.form_kind,
        operation=schema.operation,
        fields=fields,
        files=files,
    )


def format_value(value: Any) -> str:
    """Render a single field value the way the backend expects it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, date):
        return value.isoformat()
    return str(value)
