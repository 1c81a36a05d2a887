"""
Field registry: loads form definitions and hands out FormSchema objects.

Each form kind is described by one YAML document in ``reservations/forms``.
Definitions are parsed once, validated through the FormSchema model, and
cached; ``get_schema`` is pure after the first call.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from reservations.core.errors import ConfigurationError
from reservations.core.schema import FieldSpec, FormSchema

logger = logging.getLogger(__name__)

FORMS_DIR = Path(__file__).parent.parent / "forms"


def load_schema_file(path: Path | str) -> FormSchema:
    """Parse and validate a single YAML form definition.

    Raises:
        ConfigurationError: If the file is unreadable, not a YAML mapping,
            or fails schema validation.
    """
    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read form definition '{path}': {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in form definition '{path}': {e}") from e

    return parse_schema(raw, source=str(path))


def parse_schema(raw: Any, source: str = "<memory>") -> FormSchema:
    """Validate an already-parsed definition mapping."""
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Form definition '{source}' is not a mapping")
    try:
        return FormSchema(**raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid form definition '{source}': {e}") from e


@lru_cache(maxsize=None)
def _load_registry(forms_dir: str) -> dict[str, FormSchema]:
    registry: dict[str, FormSchema] = {}
    for path in sorted(Path(forms_dir).glob("*.yaml")):
        schema = load_schema_file(path)
        if schema.form_kind in registry:
            raise ConfigurationError(f"Duplicate form kind '{schema.form_kind}' in '{path}'")
        registry[schema.form_kind] = schema
        logger.debug("Loaded form '%s' (%d fields)", schema.form_kind, len(schema.fields))
    return registry


def list_form_kinds() -> list[str]:
    """Return every registered form kind, sorted."""
    return sorted(_load_registry(str(FORMS_DIR)).keys())


def get_schema(form_kind: str) -> FormSchema:
    """Return the schema for a form kind.

    Raises:
        ConfigurationError: If the form kind is not registered.
    """
    registry = _load_registry(str(FORMS_DIR))
    schema = registry.get(form_kind)
    if schema is None:
        raise ConfigurationError(f"Unknown form kind '{form_kind}'")
    return schema


def resolve_schema(form: FormSchema | str) -> FormSchema:
    """Accept either a form kind or an already-loaded schema."""
    if isinstance(form, FormSchema):
        return form
    return get_schema(form)


def get_field(schema: FormSchema, key: str) -> FieldSpec:
    """Look up a settable field, failing loudly if it does not exist.

    Raises:
        ConfigurationError: For unknown keys and for derived (read-only) keys.
    """
    field = schema.get_field(key)
    if field is not None:
        return field
    if schema.get_derived(key) is not None:
        raise ConfigurationError(
            f"Field '{key}' of form '{schema.form_kind}' is derived and cannot be set"
        )
    raise ConfigurationError(f"Form '{schema.form_kind}' has no field '{key}'")
