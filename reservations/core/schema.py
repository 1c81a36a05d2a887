"""
Form schema definition and validation models.

These Pydantic models describe one form kind: its fields, the gating
predicate tying each conditional field to its parent, the derived
(read-only) fields, the validation branches, and where the user is sent
after a successful submission. A FormSchema is the single source of
truth consumed by the resolver, the derivation engine, and the
validation engine.
"""

from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# --- Enums ---


class FieldKind(str, Enum):
    """Supported field value kinds."""

    TEXT = "text"
    NUMBER_TEXT = "number_text"
    ENUM = "enum"
    BOOLEAN = "boolean"
    DATE = "date"
    TIME = "time"
    DATE_RANGE = "date_range"
    FILE = "file"


class ConditionOperator(str, Enum):
    """Operators a gating predicate or a branch condition may use."""

    EXISTS = "EXISTS"
    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    IN = "IN"
    IS_TRUE = "IS_TRUE"


class RuleType(str, Enum):
    """Validation rule kinds, evaluated in declared order per field."""

    REQUIRED = "required"
    MAX_LENGTH = "max_length"
    MIN_LENGTH = "min_length"
    INTEGER_PATTERN = "integer_pattern"
    INTEGER_RANGE = "integer_range"
    ENUM = "enum"
    FILE_TYPE = "file_type"
    FILE_SIZE = "file_size"
    EMAIL = "email"
    PHONE = "phone"
    DATE = "date"
    TIME = "time"


class DerivedFunction(str, Enum):
    """Pure functions available to derived fields."""

    DAYS_BETWEEN = "days_between"
    HOURS_BETWEEN = "hours_between"


DEFAULT_FILE_TYPES = ["application/pdf", "image/jpeg", "image/png"]


# --- Value models ---


class DateRange(BaseModel):
    """A pair of dates picked on a range calendar. Either end may be missing."""

    model_config = ConfigDict(populate_by_name=True)

    start: date | None = Field(default=None, alias="from")
    end: date | None = Field(default=None, alias="to")

    def is_complete(self) -> bool:
        return self.start is not None and self.end is not None


class FileRef(BaseModel):
    """A file chosen by the user. `content` is only carried to the transport."""

    name: str = Field(..., min_length=1)
    size: int = Field(..., ge=0)
    content_type: str = Field(..., min_length=1)
    content: bytes | None = Field(default=None, exclude=True, repr=False)


# --- Predicates ---


class Predicate(BaseModel):
    """A boolean test over a single value.

    Used as the gating predicate of a conditional field (tested against
    the parent's value) and, through Condition, as a branch selector.
    """

    operator: ConditionOperator
    value: Any = Field(
        default=None,
        description="Comparison value (for EQUALS, NOT_EQUALS)",
    )
    values: list[Any] | None = Field(
        default=None,
        description="Accepted values (for IN)",
    )

    @model_validator(mode="after")
    def validate_operands(self) -> "Predicate":
        if self.operator in {ConditionOperator.EQUALS, ConditionOperator.NOT_EQUALS}:
            if self.value is None:
                raise ValueError(f"Operator '{self.operator.value}' requires 'value'")
        if self.operator == ConditionOperator.IN and not self.values:
            raise ValueError("Operator 'IN' requires non-empty 'values'")
        return self


class Condition(Predicate):
    """A predicate bound to the field it reads."""

    field: str = Field(..., min_length=1)


# --- Rules and branches ---


class Rule(BaseModel):
    """A single validation rule.

    YAML definitions may use a bare rule name (``required``) as shorthand
    for a rule without parameters.
    """

    type: RuleType
    min: int | None = None
    max: int | None = None
    allowed: list[str] | None = None
    region: str = "JO"

    @model_validator(mode="after")
    def validate_parameters(self) -> "Rule":
        needs_max = {
            RuleType.MAX_LENGTH,
            RuleType.INTEGER_PATTERN,
            RuleType.INTEGER_RANGE,
            RuleType.FILE_SIZE,
        }
        if self.type in needs_max and self.max is None:
            raise ValueError(f"Rule '{self.type.value}' requires 'max'")
        if self.type in {RuleType.MIN_LENGTH, RuleType.INTEGER_RANGE} and self.min is None:
            raise ValueError(f"Rule '{self.type.value}' requires 'min'")
        if self.type == RuleType.INTEGER_PATTERN and self.min is None:
            self.min = 1
        if self.type == RuleType.FILE_TYPE and not self.allowed:
            self.allowed = list(DEFAULT_FILE_TYPES)
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"Rule '{self.type.value}' has min greater than max")
        return self


class ValidationBranch(BaseModel):
    """Rules that apply only while the branch condition holds.

    A branch without `when` is the base branch and is always active.
    """

    name: str = Field(..., min_length=1)
    when: Condition | None = None
    rules: dict[str, list[Rule]] = Field(default_factory=dict)

    @field_validator("rules", mode="before")
    @classmethod
    def expand_rule_shorthand(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        expanded = {}
        for key, rules in value.items():
            expanded[key] = [
                {"type": rule} if isinstance(rule, str) else rule
                for rule in (rules or [])
            ]
        return expanded


# --- Fields ---


class FieldSpec(BaseModel):
    """Static description of one form field."""

    key: str = Field(..., min_length=1)
    kind: FieldKind
    label: str | None = None
    default: Any = None
    group: str = "general"
    parent: str | None = Field(
        default=None,
        description="Field whose value gates visibility and/or options of this one",
    )
    visible_when: Predicate | None = Field(
        default=None,
        description="Predicate over the parent's value (always visible if absent)",
    )
    options: list[str] | None = None
    options_by_parent: dict[str, list[str]] | None = None
    resets: list[str] = Field(
        default_factory=list,
        description="Groups cleared whenever this field's value changes",
    )
    payload_key: str | None = None

    @model_validator(mode="after")
    def validate_field_shape(self) -> "FieldSpec":
        if self.visible_when is not None and self.parent is None:
            raise ValueError(f"Field '{self.key}' has visible_when but no parent")
        if self.options_by_parent is not None and self.parent is None:
            raise ValueError(f"Field '{self.key}' has options_by_parent but no parent")

        has_options = self.options is not None or self.options_by_parent is not None
        if self.kind == FieldKind.ENUM:
            if not has_options:
                raise ValueError(f"Enum field '{self.key}' must define options")
            if self.options is not None and self.options_by_parent is not None:
                raise ValueError(
                    f"Field '{self.key}' cannot define both options and options_by_parent"
                )
            if self.default is not None and self.options is not None:
                if self.default not in self.options:
                    raise ValueError(
                        f"Default '{self.default}' of field '{self.key}' is not an option"
                    )
        elif has_options:
            raise ValueError(
                f"Field '{self.key}' of kind '{self.kind.value}' should not have options"
            )
        return self

    def initial_value(self) -> Any:
        """The value this field holds on mount and after a reset."""
        if self.default is not None:
            return self.default
        if self.kind in {FieldKind.TEXT, FieldKind.NUMBER_TEXT}:
            return ""
        if self.kind == FieldKind.BOOLEAN:
            return False
        return None

    def allowed_options(self, values: dict[str, Any]) -> list[str]:
        """Options selectable right now, given the parent's current value."""
        if self.options_by_parent is not None:
            parent_value = values.get(self.parent)
            if parent_value is None:
                return []
            return list(self.options_by_parent.get(str(parent_value), []))
        return list(self.options or [])


class DerivedSpec(BaseModel):
    """A read-only numeric field computed from other fields."""

    key: str = Field(..., min_length=1)
    function: DerivedFunction
    sources: list[str] = Field(..., min_length=1, max_length=2)
    inclusive: bool = Field(
        default=False,
        description="Day counts only: count both endpoints (same day -> 1)",
    )
    label: str | None = None

    @model_validator(mode="after")
    def validate_sources(self) -> "DerivedSpec":
        if self.function == DerivedFunction.HOURS_BETWEEN and len(self.sources) != 2:
            raise ValueError(f"Derived field '{self.key}' needs start and end time sources")
        return self


class Navigation(BaseModel):
    """Where the presentation layer goes after a successful submission."""

    route: str = Field(..., min_length=1)
    state: dict[str, str] = Field(default_factory=dict)


# --- Top-level form schema ---


class FormSchema(BaseModel):
    """Top-level form definition.

    Validates key uniqueness, parent references (no self-reference, no
    cycles), reset groups, derived sources, and branch references.
    """

    form_kind: str = Field(..., min_length=1)
    title: str = ""
    operation: str = Field(..., min_length=1)
    fields: list[FieldSpec] = Field(..., min_length=1)
    derived: list[DerivedSpec] = Field(default_factory=list)
    branches: list[ValidationBranch] = Field(default_factory=list)
    on_success: Navigation | None = None

    @model_validator(mode="after")
    def validate_cross_references(self) -> "FormSchema":
        field_keys: set[str] = set()
        for f in self.fields:
            if f.key in field_keys:
                raise ValueError(f"Duplicate field key: '{f.key}'")
            field_keys.add(f.key)

        for d in self.derived:
            if d.key in field_keys:
                raise ValueError(f"Duplicate field key: '{d.key}'")
            field_keys.add(d.key)

        fields_by_key = {f.key: f for f in self.fields}
        groups = {f.group for f in self.fields}

        for f in self.fields:
            if f.parent is not None:
                if f.parent == f.key:
                    raise ValueError(f"Field '{f.key}' is its own parent")
                if f.parent not in fields_by_key:
                    raise ValueError(
                        f"Field '{f.key}' references non-existent parent '{f.parent}'"
                    )
            for group in f.resets:
                if group not in groups:
                    raise ValueError(f"Field '{f.key}' resets unknown group '{group}'")

        # Parent chains must terminate
        for f in self.fields:
            seen = {f.key}
            current = f.parent
            while current is not None:
                if current in seen:
                    raise ValueError(f"Field '{f.key}' has a cyclic parent chain")
                seen.add(current)
                current = fields_by_key[current].parent

        for d in self.derived:
            for source in d.sources:
                spec = fields_by_key.get(source)
                if spec is None:
                    raise ValueError(
                        f"Derived field '{d.key}' references non-existent field '{source}'"
                    )
                if d.function == DerivedFunction.HOURS_BETWEEN and spec.kind != FieldKind.TIME:
                    raise ValueError(f"Derived field '{d.key}' needs time sources")
            if d.function == DerivedFunction.DAYS_BETWEEN:
                kinds = [fields_by_key[s].kind for s in d.sources]
                if kinds not in ([FieldKind.DATE_RANGE], [FieldKind.DATE, FieldKind.DATE]):
                    raise ValueError(
                        f"Derived field '{d.key}' needs one date range or two date sources"
                    )

        for branch in self.branches:
            if branch.when is not None and branch.when.field not in fields_by_key:
                raise ValueError(
                    f"Branch '{branch.name}' references non-existent field '{branch.when.field}'"
                )
            for key, rules in branch.rules.items():
                spec = fields_by_key.get(key)
                if spec is None:
                    raise ValueError(
                        f"Branch '{branch.name}' has rules for unknown field '{key}'"
                    )
                for rule in rules:
                    if rule.type == RuleType.ENUM and spec.kind != FieldKind.ENUM and not rule.allowed:
                        raise ValueError(f"Enum rule on non-enum field '{key}' needs 'allowed'")
                    if rule.type in {RuleType.FILE_TYPE, RuleType.FILE_SIZE} and spec.kind != FieldKind.FILE:
                        raise ValueError(f"File rule on non-file field '{key}'")

        return self

    # -----------------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------------

    def get_field(self, key: str) -> FieldSpec | None:
        """Look up a field by its key."""
        for field in self.fields:
            if field.key == key:
                return field
        return None

    def get_derived(self, key: str) -> DerivedSpec | None:
        for derived in self.derived:
            if derived.key == key:
                return derived
        return None

    def children_of(self, key: str) -> list[FieldSpec]:
        """Direct dependents of a field, in declaration order."""
        return [f for f in self.fields if f.parent == key]

    def fields_in_groups(self, groups: list[str]) -> list[FieldSpec]:
        return [f for f in self.fields if f.group in groups]

    def initial_values(self) -> dict[str, Any]:
        return {f.key: f.initial_value() for f in self.fields}
