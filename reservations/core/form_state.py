"""
Form session: the per-screen aggregate of values, visibility, derived
fields, and errors.

Every edit runs through the resolver (which may reset other fields) and
then the derivation engine. Errors are only produced by ``validate`` but
are pruned after each edit so the error map never names a hidden field.
"""

import asyncio
import logging
from enum import Enum
from typing import Any

from pydantic_core import to_jsonable_python

from reservations.core.derivation import derive
from reservations.core.registry import get_field, get_schema
from reservations.core.resolver import normalize_values, resolve
from reservations.core.schema import FieldKind, FormSchema
from reservations.core.validation import FieldError, validate
from reservations.core.visibility import visible_keys

logger = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    """Lifecycle of a submission attempt."""

    IDLE = "IDLE"
    VALIDATING = "VALIDATING"
    INVALID = "INVALID"
    SUBMITTING = "SUBMITTING"
    SUBMITTED = "SUBMITTED"
    FAILED = "FAILED"


class FormSession:
    """State of one mounted form.

    Args:
        schema: A validated FormSchema instance.
        values: Optional initial values; missing fields get their defaults.
    """

    def __init__(self, schema: FormSchema, values: dict[str, Any] | None = None):
        self.schema = schema
        self.values: dict[str, Any] = normalize_values(schema, values or {})
        self.visible_keys: list[str] = visible_keys(schema, self.values)
        self.derived: dict[str, int] = derive(schema, self.values)
        self.errors: dict[str, FieldError] = {}
        self.is_submitting = False
        self.state = SubmissionState.IDLE
        self.transitions: list[SubmissionState] = []
        self.pending_submission: asyncio.Future | None = None
        self.last_error: str | None = None

    @classmethod
    def for_form(cls, form_kind: str) -> "FormSession":
        """Mount a fresh session for a registered form kind."""
        return cls(get_schema(form_kind))

    @property
    def form_kind(self) -> str:
        return self.schema.form_kind

    def transition(self, state: SubmissionState) -> None:
        """Move the submission state machine and record the step.

        `transitions` keeps every state of the latest attempt, so short-lived
        states such as FAILED stay visible after the return to IDLE.
        """
        if state == SubmissionState.VALIDATING:
            self.transitions = []
        self.transitions.append(state)
        self.state = state
        logger.debug("Form '%s' submission state: %s", self.form_kind, state.value)

    # -----------------------------------------------------------------
    # Edits
    # -----------------------------------------------------------------

    def set_value(self, key: str, value: Any) -> list[str]:
        """Apply one user edit and cascade its consequences.

        Args:
            key: The field being edited.
            value: The raw new value.

        Returns:
            Keys of the fields that were reset to their defaults.

        Raises:
            ConfigurationError: If `key` is unknown or derived.
        """
        resolution = resolve(self.schema, self.values, key, value)
        self.values = resolution.values
        self.visible_keys = resolution.visible_keys
        self.derived = derive(self.schema, self.values)

        visible = set(self.visible_keys)
        self.errors = {k: e for k, e in self.errors.items() if k in visible}
        self.errors.pop(key, None)
        return resolution.reset_keys

    def set_values(self, values: dict[str, Any]) -> list[str]:
        """Apply several edits in order. Returns every key that was reset."""
        reset: list[str] = []
        for key, value in values.items():
            for reset_key in self.set_value(key, value):
                if reset_key not in reset:
                    reset.append(reset_key)
        return reset

    def get_value(self, key: str) -> Any:
        """Current value of a field or of a derived field."""
        if self.schema.get_derived(key) is not None:
            return self.derived.get(key, 0)
        get_field(self.schema, key)
        return self.values.get(key)

    def visible_values(self) -> dict[str, Any]:
        """Return only values of currently visible fields."""
        visible = set(self.visible_keys)
        return {k: v for k, v in self.values.items() if k in visible}

    def allowed_options(self, key: str) -> list[str]:
        return get_field(self.schema, key).allowed_options(self.values)

    # -----------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------

    def validate(self) -> dict[str, FieldError]:
        """Validate the current values and remember the resulting errors."""
        self.errors = validate(self.schema, self.values)
        return self.errors

    def is_valid(self) -> bool:
        return not validate(self.schema, self.values)

    # -----------------------------------------------------------------
    # Presentation
    # -----------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        """A JSON-safe view of the session for the presentation layer."""
        options = {
            key: self.allowed_options(key)
            for key in self.visible_keys
            if self.schema.get_field(key).kind == FieldKind.ENUM
        }
        return {
            "form_kind": self.form_kind,
            "values": to_jsonable_python(self.values, by_alias=True),
            "visible_keys": list(self.visible_keys),
            "derived": dict(self.derived),
            "errors": {k: e.model_dump() for k, e in self.errors.items()},
            "options": options,
            "is_submitting": self.is_submitting,
            "state": self.state.value,
            "transitions": [s.value for s in self.transitions],
            "last_error": self.last_error,
        }
