"""
Tests for the dependency resolver.

Tests cover:
- Applying a change coerces raw input and leaves the input mapping alone
- Group resets when a branch selector changes (uniform sibling reset)
- Option-dependent children are cleared when their parent changes
- Cascading reset of hidden grandchildren
- Idempotence of repeated calls
- Every branch selector in the shipped forms resets its descendants
- Unknown and derived keys are configuration errors
"""

from datetime import date

import pytest

from reservations.core.errors import ConfigurationError
from reservations.core.registry import get_schema, list_form_kinds
from reservations.core.resolver import allowed_options, normalize_values, resolve
from reservations.core.schema import DateRange, FieldKind
from reservations.core.visibility import visible_keys


def _apply(form_kind, values, **changes):
    """Apply changes one at a time, the way a user would."""
    for key, value in changes.items():
        values = resolve(form_kind, values, key, value).values
    return values


# =============================================================
# Test: Applying a change
# =============================================================


class TestApplyChange:

    def test_new_value_is_coerced(self, sport_schema):
        result = resolve(
            sport_schema,
            {},
            "dateRange",
            {"from": "2026-01-20", "to": "2026-01-21"},
        )
        assert result.values["dateRange"] == DateRange(start=date(2026, 1, 20), end=date(2026, 1, 21))

    def test_missing_keys_are_filled_with_defaults(self, sport_schema):
        result = resolve(sport_schema, {}, "beneficiaries", "10")
        assert result.values["complexType"] == "sportComplex"
        assert result.values["facilityType"] is None
        assert result.values["beneficiaries"] == "10"

    def test_input_mapping_is_not_mutated(self, sport_schema):
        current = normalize_values(sport_schema, {"facilityType": "court", "facilitys": "tennis"})
        snapshot = dict(current)
        resolve(sport_schema, current, "facilityType", "hall")
        assert current == snapshot

    def test_unknown_keys_are_dropped(self, sport_schema):
        result = resolve(sport_schema, {"bogus": 1}, "beneficiaries", "3")
        assert "bogus" not in result.values

    def test_unknown_key_raises(self, sport_schema):
        with pytest.raises(ConfigurationError):
            resolve(sport_schema, {}, "ghost", "x")

    def test_derived_key_raises(self, sport_schema):
        with pytest.raises(ConfigurationError, match="derived"):
            resolve(sport_schema, {}, "durationHours", 3)

    def test_unknown_form_kind_raises(self):
        with pytest.raises(ConfigurationError):
            resolve("bowling", {}, "x", 1)

    def test_bare_numbers_do_not_become_a_date_range(self, sport_schema):
        result = resolve(sport_schema, {}, "dateRange", {"from": "1", "to": "9"})
        assert result.values["dateRange"] is None

    def test_bare_number_is_not_a_date(self, youth_schema):
        values = resolve(youth_schema, {}, "discountCheck", True).values
        result = resolve(youth_schema, values, "discountDate", "15")
        assert result.values["discountDate"] == "15"

    def test_unconvertible_input_is_stored_not_raised(self, sport_schema):
        result = resolve(sport_schema, {}, "dateRange", 12345)
        assert result.values["dateRange"] == 12345


# =============================================================
# Test: Resets
# =============================================================


class TestResets:

    def test_complex_type_switch_clears_venue_and_facility(self):
        values = _apply(
            "sport_complex",
            {},
            complexType="youthCenter",
            nameOfComplex="ajloun",
            facilityType="court",
            facilitys="football",
        )
        result = resolve("sport_complex", values, "complexType", "sportComplex")
        assert result.values["nameOfComplex"] is None
        assert result.values["facilityType"] is None
        assert result.values["facilitys"] is None
        assert set(result.reset_keys) == {"nameOfComplex", "facilityType", "facilitys"}

    def test_facility_type_switch_clears_sub_option(self):
        values = _apply("sport_complex", {}, facilityType="court", facilitys="tennis")
        result = resolve("sport_complex", values, "facilityType", "hall")
        assert result.values["facilitys"] is None
        assert result.reset_keys == ["facilitys"]
        assert allowed_options("sport_complex", "facilitys", result.values) == ["smallHall", "largeHall"]

    def test_same_value_resets_nothing(self):
        values = _apply("sport_complex", {}, facilityType="court", facilitys="tennis")
        result = resolve("sport_complex", values, "facilityType", "court")
        assert result.values["facilitys"] == "tennis"
        assert result.reset_keys == []

    def test_unrelated_fields_survive(self):
        values = _apply(
            "sport_complex",
            {},
            beneficiaries="20",
            facilityType="court",
            facilitys="tennis",
        )
        result = resolve("sport_complex", values, "facilityType", "hall")
        assert result.values["beneficiaries"] == "20"

    def test_service_type_resets_whole_sections(self):
        values = _apply(
            "youth_house",
            {},
            serviceType="both",
            activity="hall",
            facility="room",
            isShared=True,
            capacity="double",
            membershipCheck=True,
            membershipType="arabic",
            memberNumber="M-1",
        )
        result = resolve("youth_house", values, "serviceType", "accommodation")
        for key in ["activity", "facility", "capacity", "membershipType", "memberNumber"]:
            assert result.values[key] is None or result.values[key] == ""
        assert result.values["isShared"] is False
        assert result.values["membershipCheck"] is False

    def test_cascade_clears_hidden_grandchildren(self):
        values = _apply(
            "youth_house",
            {},
            serviceType="accommodation",
            discountCheck=True,
            discountNumber="D-77",
            discountDate="2026-03-01",
        )
        result = resolve("youth_house", values, "discountCheck", False)
        assert result.values["discountNumber"] == ""
        assert result.values["discountDate"] is None
        assert "discountNumber" not in result.visible_keys

    def test_switching_facility_resets_sharing(self):
        values = _apply("youth_house", {}, facility="room", isShared=True)
        result = resolve("youth_house", values, "facility", "tent")
        assert result.values["isShared"] is False
        assert "isShared" in result.visible_keys

    def test_stale_hidden_value_is_reset_on_any_change(self, signup_schema):
        stale = signup_schema.initial_values() | {
            "nationality": "nonJordanian",
            "delegateNationalId": "9981234567",
        }
        result = resolve(signup_schema, stale, "orgName", "Acme")
        assert result.values["delegateNationalId"] == ""
        assert "delegateNationalId" in result.reset_keys

    def test_login_user_type_clears_credentials(self):
        values = _apply("login", {}, ID="123456789", password="secret1")
        result = resolve("login", values, "userType", "government")
        assert result.values["ID"] == ""
        assert result.values["password"] == ""


# =============================================================
# Test: Idempotence
# =============================================================


class TestIdempotence:

    @pytest.mark.parametrize(
        "form_kind,key,value",
        [
            ("sport_complex", "facilityType", "hall"),
            ("sport_complex", "complexType", "youthCenter"),
            ("youth_house", "serviceType", "both"),
            ("signup", "delegateRole", "written"),
            ("login", "userType", "individual"),
        ],
    )
    def test_resolve_twice_gives_same_result(self, form_kind, key, value):
        start = _apply(
            "sport_complex", {}, facilityType="court", facilitys="tennis"
        ) if form_kind == "sport_complex" else {}
        first = resolve(form_kind, start, key, value)
        second = resolve(form_kind, first.values, key, value)
        assert second.values == first.values
        assert second.visible_keys == first.visible_keys

    def test_resolve_without_new_value_is_idempotent(self):
        values = _apply("sport_complex", {}, facilityType="court", facilitys="tennis")
        first = resolve("sport_complex", values, "facilityType")
        second = resolve("sport_complex", first.values, "facilityType")
        assert first.values == second.values
        assert first.visible_keys == second.visible_keys


# =============================================================
# Test: Cascading reset for every branch selector
# =============================================================


def _descendants(schema, key):
    found = []
    stack = [key]
    while stack:
        for child in schema.children_of(stack.pop()):
            found.append(child.key)
            stack.append(child.key)
    return found


def _sample_value(field, values):
    if field.kind == FieldKind.ENUM:
        options = field.allowed_options(values)
        return options[0] if options else None
    if field.kind == FieldKind.BOOLEAN:
        return True
    if field.kind == FieldKind.DATE:
        return date(2026, 2, 1)
    if field.kind == FieldKind.TIME:
        return "10:00"
    if field.kind == FieldKind.DATE_RANGE:
        return DateRange(start=date(2026, 2, 1), end=date(2026, 2, 3))
    if field.kind == FieldKind.FILE:
        return {"name": "a.pdf", "size": 10, "content_type": "application/pdf"}
    return "1"


def _selector_cases():
    cases = []
    for form_kind in list_form_kinds():
        schema = get_schema(form_kind)
        for field in schema.fields:
            if field.kind in {FieldKind.ENUM, FieldKind.BOOLEAN} and schema.children_of(field.key):
                cases.append((form_kind, field.key))
    return cases


class TestCascadingResetProperty:

    @pytest.mark.parametrize("form_kind,selector", _selector_cases())
    def test_switching_selector_resets_all_hidden_descendants(self, form_kind, selector):
        schema = get_schema(form_kind)
        field = schema.get_field(selector)
        candidates = field.options if field.kind == FieldKind.ENUM and field.options else [True, False]

        for old in candidates:
            for new in candidates:
                if old == new:
                    continue
                values = resolve(schema, {}, selector, old).values
                # Fill every visible descendant
                for key in _descendants(schema, selector):
                    if key in visible_keys(schema, values):
                        child = schema.get_field(key)
                        values = resolve(schema, values, key, _sample_value(child, values)).values

                result = resolve(schema, values, selector, new)
                visible = set(result.visible_keys)
                for key in _descendants(schema, selector):
                    child = schema.get_field(key)
                    if key not in visible or child.options_by_parent is not None:
                        assert result.values[key] == child.initial_value(), (
                            f"{form_kind}: {selector} {old}->{new} left {key}={result.values[key]!r}"
                        )

    @pytest.mark.parametrize("form_kind", ["sport_complex", "youth_house", "signup", "login"])
    def test_hidden_fields_always_hold_defaults(self, form_kind):
        schema = get_schema(form_kind)
        values = {}
        for field in schema.fields:
            values = resolve(schema, values, field.key, _sample_value(field, values)).values
        visible = set(visible_keys(schema, values))
        for field in schema.fields:
            if field.key not in visible:
                assert values[field.key] == field.initial_value()
