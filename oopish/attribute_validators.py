"""
Attribute Validators - built-in checks behind ``validates``

Every built-in check compiles its options into a small JSON Schema fragment
once, then evaluates attribute values against it with jsonschema. Schema
keyword failures are mapped back to message keys (``blank``, ``too_short``,
``not_a_number``...) which ``Errors.add`` turns into text.

Example:
    validates("title", presence=True, length={"maximum": 100})

compiles to two validators:

    PresenceValidator  -> {"not": BLANK_SCHEMA}
    LengthValidator    -> {"maxLength": 100, "maxItems": 100}

Custom record-level checks subclass RecordValidator and are registered with
``validates_with``; custom attribute checks subclass EachValidator.
"""

import math
import re
from decimal import Decimal
from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Tuple

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError


BLANK_SCHEMA = {
    "anyOf": [
        {"type": "null"},
        {"const": False},
        {"type": "string", "pattern": r"^\s*$"},
        {"type": "array", "maxItems": 0},
        {"type": "object", "maxProperties": 0},
    ]
}

_blank_checker = Draft7Validator(BLANK_SCHEMA)


def _to_instance(value: Any) -> Any:
    """Normalize Python containers to the JSON shapes jsonschema understands."""
    if isinstance(value, (tuple, set, frozenset)):
        return list(value)
    if isinstance(value, Mapping) and not isinstance(value, dict):
        return dict(value)
    return value


def is_blank(value: Any) -> bool:
    """None, False, whitespace-only strings and empty containers are blank."""
    return _blank_checker.is_valid(_to_instance(value))


class RecordValidator:
    """
    Base class for validators registered with ``validates_with``.

    Subclasses implement validate(record) and report problems through
    record.errors. Options passed to ``validates_with`` (other than the
    callback options if_/unless/on) are available as self.options.
    """

    def __init__(self, **options):
        self.options = options

    def validate(self, record) -> None:
        raise NotImplementedError(f"{type(self).__name__} must implement validate()")

    def __repr__(self):
        return f"{type(self).__name__}({self.options!r})"


class EachValidator(RecordValidator):
    """Base class for validators checking one attribute at a time."""

    def __init__(self, attributes: Iterable[str], **options):
        self.attributes = tuple(attributes)
        if not self.attributes:
            raise ValueError(f"{type(self).__name__} needs at least one attribute")
        super().__init__(**options)

    def validate(self, record) -> None:
        for attribute in self.attributes:
            value = record.read_attribute_for_validation(attribute)
            if value is None and self.options.get("allow_none"):
                continue
            if self.options.get("allow_blank") and is_blank(value):
                continue
            self.validate_each(record, attribute, value)

    def validate_each(self, record, attribute: str, value: Any) -> None:
        raise NotImplementedError(f"{type(self).__name__} must implement validate_each()")

    def add_error(self, record, attribute: str, key: str, **details) -> None:
        """Report key on attribute, unless the caller supplied its own message."""
        message = self.options.get("message", key)
        record.errors.add(attribute, message, error_type=key, **details)

    def __repr__(self):
        return f"{type(self).__name__}({self.attributes!r}, {self.options!r})"


class SchemaValidator(EachValidator):
    """
    EachValidator whose check is a JSON Schema fragment.

    Subclasses build the fragment in build_schema() and translate failed
    schema keywords into message keys in error_for().
    """

    def __init__(self, attributes, **options):
        super().__init__(attributes, **options)
        self.schema = self.build_schema()
        try:
            Draft7Validator.check_schema(self.schema)
        except SchemaError as e:
            raise ValueError(f"Invalid options for {type(self).__name__}: {e.message}")
        self._checker = Draft7Validator(self.schema)

    def build_schema(self) -> Dict[str, Any]:
        raise NotImplementedError

    def prepare(self, value: Any) -> Any:
        return _to_instance(value)

    def error_for(self, error, instance) -> Tuple[str, Dict[str, Any]]:
        return "invalid", {}

    def validate_each(self, record, attribute, value):
        instance = self.prepare(value)
        errors = list(self._checker.iter_errors(instance))
        for error in self.select_errors(errors):
            key, details = self.error_for(error, instance)
            self.add_error(record, attribute, key, **details)

    def select_errors(self, errors: List) -> List:
        return errors


class PresenceValidator(SchemaValidator):
    def build_schema(self):
        return {"not": BLANK_SCHEMA}

    def error_for(self, error, instance):
        return "blank", {}


class AbsenceValidator(SchemaValidator):
    def build_schema(self):
        return BLANK_SCHEMA

    def select_errors(self, errors):
        return errors[:1]

    def error_for(self, error, instance):
        return "present", {}


class LengthValidator(SchemaValidator):
    """Bounds on string length or collection size. None counts as empty."""

    def build_schema(self):
        bounds = self.options.get("in")
        if bounds is not None:
            if isinstance(bounds, range):
                self.options.setdefault("minimum", bounds.start)
                self.options.setdefault("maximum", bounds.stop - 1)
            else:
                low, high = bounds
                self.options.setdefault("minimum", low)
                self.options.setdefault("maximum", high)

        exact = self.options.get("is")
        minimum = self.options.get("minimum")
        maximum = self.options.get("maximum")
        if exact is not None:
            minimum = maximum = exact
        if minimum is None and maximum is None:
            raise ValueError("length needs one of: minimum, maximum, is, in")

        schema = {}
        if minimum is not None:
            schema["minLength"] = schema["minItems"] = minimum
        if maximum is not None:
            schema["maxLength"] = schema["maxItems"] = maximum
        return schema

    def prepare(self, value):
        return "" if value is None else _to_instance(value)

    def error_for(self, error, instance):
        if self.options.get("is") is not None:
            return "wrong_length", {"count": self.options["is"]}
        if error.validator in ("minLength", "minItems"):
            return "too_short", {"count": error.validator_value}
        return "too_long", {"count": error.validator_value}


class NumericalityValidator(SchemaValidator):
    """Numbers, or strings that parse as numbers."""

    INTEGER_RE = re.compile(r"^\s*[+-]?\d+\s*$")

    BOUNDS = (
        ("greater_than", "exclusiveMinimum"),
        ("greater_than_or_equal_to", "minimum"),
        ("less_than", "exclusiveMaximum"),
        ("less_than_or_equal_to", "maximum"),
        ("equal_to", "const"),
    )

    def build_schema(self):
        schema = {"type": "integer" if self.options.get("only_integer") else "number"}
        for option, keyword in self.BOUNDS:
            if option in self.options:
                schema[keyword] = self.options[option]
        return schema

    def prepare(self, value):
        if isinstance(value, bool):
            return value
        if isinstance(value, Decimal):
            return float(value)
        if isinstance(value, str):
            if self.INTEGER_RE.match(value):
                return int(value)
            try:
                parsed = float(value)
            except ValueError:
                return value
            return parsed if math.isfinite(parsed) else value
        return value

    def select_errors(self, errors):
        type_errors = [e for e in errors if e.validator == "type"]
        return type_errors[:1] or errors

    def error_for(self, error, instance):
        if error.validator == "type":
            is_number = isinstance(instance, (int, float)) and not isinstance(instance, bool)
            if self.options.get("only_integer") and is_number:
                return "not_an_integer", {}
            return "not_a_number", {}
        for option, keyword in self.BOUNDS:
            if keyword == error.validator:
                return option, {"count": error.validator_value}
        return "invalid", {}


class InclusionValidator(SchemaValidator):
    def build_schema(self):
        if "in" not in self.options:
            raise ValueError("inclusion needs an 'in' option")
        return {"enum": list(self.options["in"])}

    def prepare(self, value):
        return value

    def error_for(self, error, instance):
        return "inclusion", {"value": instance}


class ExclusionValidator(SchemaValidator):
    def build_schema(self):
        if "in" not in self.options:
            raise ValueError("exclusion needs an 'in' option")
        return {"not": {"enum": list(self.options["in"])}}

    def prepare(self, value):
        return value

    def error_for(self, error, instance):
        return "exclusion", {"value": instance}


class FormatValidator(SchemaValidator):
    """Regular expression match (``with``) or non-match (``without``), re.search semantics."""

    def build_schema(self):
        pattern = self.options.get("with")
        negated = self.options.get("without")
        if (pattern is None) == (negated is None):
            raise ValueError("format needs exactly one of: with, without")
        if pattern is not None:
            return {"type": "string", "pattern": getattr(pattern, "pattern", pattern)}
        return {"type": "string", "not": {"pattern": getattr(negated, "pattern", negated)}}

    def select_errors(self, errors):
        return errors[:1]

    def error_for(self, error, instance):
        return "invalid", {"value": instance}


class AssociatedValidator(EachValidator):
    """Associated objects (or each member of a collection) must be valid."""

    def validate_each(self, record, attribute, value):
        if value is None:
            return
        members = value if isinstance(value, (list, tuple, set, frozenset)) else [value]
        context = self.options.get("context")
        invalid = [m for m in members if hasattr(m, "valid") and not m.valid(context)]
        if invalid:
            self.add_error(record, attribute, "invalid")


BUILTIN_VALIDATORS = {
    "presence": PresenceValidator,
    "absence": AbsenceValidator,
    "length": LengthValidator,
    "numericality": NumericalityValidator,
    "inclusion": InclusionValidator,
    "exclusion": ExclusionValidator,
    "format": FormatValidator,
}


def normalize_validator_options(kind: str, value: Any) -> Dict[str, Any]:
    """
    Turn the shorthand forms accepted by ``validates`` into an option dict.

    presence=True          -> {}
    inclusion=["a", "b"]   -> {"in": ["a", "b"]}
    length=range(1, 11)    -> {"in": range(1, 11)}
    format=r"^\\d+$"       -> {"with": r"^\\d+$"}
    """
    if value is True:
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    if kind in ("inclusion", "exclusion", "length") and isinstance(value, (list, tuple, set, frozenset, range)):
        return {"in": value}
    if kind == "format" and (isinstance(value, str) or hasattr(value, "pattern")):
        return {"with": value}
    raise ValueError(f"Unsupported value for {kind}: {value!r}")
