"""
Exception taxonomy for the form engine.

- ConfigurationError: programmer error in a form definition or a call
  that names a form kind / field the registry does not know.
- ValidationFailure: user input errors, carries the per-field error map.
- TransportError: the remote end failed or could not be reached.
"""

from typing import Any


class ConfigurationError(ValueError):
    """Raised for unknown form kinds, missing fields, or invalid definitions."""


class ValidationFailure(Exception):
    """Raised by the submission coordinator when the form does not validate.

    Args:
        errors: Field key -> FieldError for every failing visible field.
    """

    def __init__(self, errors: dict[str, Any]):
        self.errors = dict(errors)
        fields = ", ".join(self.errors.keys())
        super().__init__(f"Form is invalid: {fields}")


class TransportError(Exception):
    """Raised when the submission could not be delivered.

    The remote body is kept as an opaque message; nothing inspects it.
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)
