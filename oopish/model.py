"""
Host model layer.

A minimal stand-in for an ORM's model base: an attribute bag with per-class
validation callbacks, an error collection, a record-instantiation hook and a
class lookup primitive.

Example:
    class User(Model):
        fields = ("name", "age")

    User.validates("name", presence=True, length={"maximum": 20})
    User.validates("age", numericality={"only_integer": True}, allow_none=True)

    user = User(name="")
    user.valid()                     # False
    user.errors.full_messages()      # ["Name can't be blank"]
"""

import sys
import logging
import importlib
from collections import deque
from typing import Any, Dict, List, Optional

from .attribute_validators import (
    BUILTIN_VALIDATORS,
    AssociatedValidator,
    normalize_validator_options,
)
from .config_loader import get_config
from .errors import ClassNotFoundError
from .validatable import Validatable

logger = logging.getLogger(__name__)

CALLBACK_OPTIONS = ("if_", "unless", "on")
SHARED_OPTIONS = ("allow_none", "allow_blank")


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def merge_options(outer: Dict[str, Any], inner: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge grouped options into a call's own options.

    Conditions (if_/unless) from both sides are combined, nested dicts are
    merged, and any other key set by the call wins.
    """
    merged = dict(outer)
    for key, value in inner.items():
        if key in ("if_", "unless") and key in merged:
            merged[key] = _as_list(merged[key]) + _as_list(value)
        elif isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_options(merged[key], value)
        else:
            merged[key] = value
    return merged


class OptionMerger:
    """
    Applies a fixed set of options to every call made through it.

    Example:
        with User.with_options(allow_none=True) as group:
            group.validates("age", numericality=True)
            group.validates("nickname", length={"maximum": 10})
    """

    def __init__(self, target, options: Dict[str, Any]):
        self._target = target
        self._options = dict(options)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def __getattr__(self, name):
        method = getattr(self._target, name)

        def merged(*args, **kwargs):
            return method(*args, **merge_options(self._options, kwargs))

        return merged


class ErrorDetail:
    __slots__ = ("attribute", "error_type", "message", "details")

    def __init__(self, attribute, error_type, message, details):
        self.attribute = attribute
        self.error_type = error_type
        self.message = message
        self.details = details

    def full_message(self) -> str:
        if self.attribute == "base":
            return self.message
        return f"{self.attribute.replace('_', ' ').capitalize()} {self.message}"

    def __repr__(self):
        return f"ErrorDetail({self.attribute!r}, {self.error_type!r}, {self.message!r})"


class Errors:
    """Error collection of a record under validation."""

    def __init__(self, base=None):
        self.base = base
        self._errors: List[ErrorDetail] = []

    def add(self, attribute: str, message: str = "invalid", error_type: Optional[str] = None, **details) -> ErrorDetail:
        """
        Record an error on attribute.

        message is either a key from the configured ``messages`` (formatted
        with details) or literal text.

        Raises:
            ValueError: If the message template needs a detail that was not given
        """
        template = get_config().get_message(message)
        if template is not None:
            try:
                text = template.format(**details)
            except KeyError as e:
                raise ValueError(f"Message {message!r} needs detail {e.args[0]!r}: {template!r}")
            error_type = error_type or message
        else:
            text = message
            error_type = error_type or "invalid"
        error = ErrorDetail(attribute, error_type, text, details)
        self._errors.append(error)
        return error

    def __getitem__(self, attribute: str) -> List[str]:
        return [e.message for e in self._errors if e.attribute == attribute]

    def __iter__(self):
        return iter(self._errors)

    def __len__(self):
        return len(self._errors)

    def __contains__(self, attribute):
        return any(e.attribute == attribute for e in self._errors)

    @property
    def empty(self) -> bool:
        return not self._errors

    def clear(self) -> None:
        self._errors.clear()

    def details(self, attribute: str) -> List[Dict[str, Any]]:
        return [dict(e.details, error=e.error_type) for e in self._errors if e.attribute == attribute]

    def full_messages(self) -> List[str]:
        return [e.full_message() for e in self._errors]

    def full_messages_for(self, attribute: str) -> List[str]:
        return [e.full_message() for e in self._errors if e.attribute == attribute]

    def to_dict(self) -> Dict[str, List[str]]:
        result: Dict[str, List[str]] = {}
        for e in self._errors:
            result.setdefault(e.attribute, []).append(e.message)
        return result

    def __repr__(self):
        return f"Errors({self.to_dict()!r})"


class ValidationCallback:
    """One registered check plus the conditions guarding it."""

    def __init__(self, check, if_=None, unless=None, on=None):
        if not (isinstance(check, str) or callable(check)):
            raise TypeError(f"validate expects a method name or a callable, got {check!r}")
        self.check = check
        self.if_ = _as_list(if_)
        self.unless = _as_list(unless)
        self.on = _as_list(on)

    @staticmethod
    def _evaluate(record, condition) -> bool:
        if isinstance(condition, str):
            value = getattr(record, condition)
            return bool(value() if callable(value) else value)
        return bool(condition(record))

    def applies_to(self, record, context=None) -> bool:
        if self.on and context not in self.on:
            return False
        if not all(self._evaluate(record, c) for c in self.if_):
            return False
        return not any(self._evaluate(record, c) for c in self.unless)

    def run(self, record, context=None) -> None:
        if not self.applies_to(record, context):
            return
        if isinstance(self.check, str):
            getattr(record, self.check)()
        else:
            self.check(record)

    def __repr__(self):
        return f"ValidationCallback({self.check!r}, if_={self.if_!r}, unless={self.unless!r})"


class Validations:
    """
    Mixin giving a class validation callbacks and instances an ``errors`` list.

    Callbacks are stored per class and collected along the MRO at validation
    time, so a subclass runs its parents' checks first, then its own.
    """

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        cls._validation_callbacks = []

    @classmethod
    def _add_callback(cls, check, **options) -> ValidationCallback:
        callback = ValidationCallback(check, **options)
        cls.__dict__["_validation_callbacks"].append(callback)
        return callback

    @classmethod
    def validation_callbacks(cls) -> List[ValidationCallback]:
        callbacks = []
        for klass in reversed(cls.__mro__):
            callbacks.extend(klass.__dict__.get("_validation_callbacks", ()))
        return callbacks

    @staticmethod
    def _split_callback_options(options: Dict[str, Any]) -> Dict[str, Any]:
        return {key: options.pop(key) for key in CALLBACK_OPTIONS if key in options}

    @classmethod
    def validates(cls, *attributes: str, **options) -> None:
        """
        Register built-in validators for attributes.

        Example:
            validates("title", presence=True, length={"minimum": 1, "maximum": 10})
            validates("kind", inclusion=["book", "magazine"], if_="published")
        """
        if not attributes:
            raise ValueError("validates needs at least one attribute")
        callback_options = cls._split_callback_options(options)
        shared = {key: options.pop(key) for key in SHARED_OPTIONS if key in options}
        if not options:
            raise ValueError("validates needs at least one validation")

        for kind, value in options.items():
            if value is False or value is None:
                continue
            validator_class = BUILTIN_VALIDATORS.get(kind)
            if validator_class is None:
                raise ValueError(f"Unknown validator: {kind}")
            kind_options = dict(shared, **normalize_validator_options(kind, value))
            own_callback_options = cls._split_callback_options(kind_options)
            validator = validator_class(attributes, **kind_options)
            cls._add_callback(validator.validate, **merge_options(callback_options, own_callback_options))

    @classmethod
    def validate(cls, *checks, if_=None, unless=None, on=None) -> None:
        """Register checks: method names on the record, or callables taking the record."""
        if not checks:
            raise ValueError("validate needs at least one check")
        for check in checks:
            cls._add_callback(check, if_=if_, unless=unless, on=on)

    @classmethod
    def validates_with(cls, *validator_classes, **options) -> None:
        """Register RecordValidator subclasses; remaining options go to their constructors."""
        if not validator_classes:
            raise ValueError("validates_with needs at least one validator class")
        callback_options = cls._split_callback_options(options)
        for validator_class in validator_classes:
            validator = validator_class(**options)
            cls._add_callback(validator.validate, **callback_options)

    @classmethod
    def validates_associated(cls, *attributes: str, **options) -> None:
        callback_options = cls._split_callback_options(options)
        validator = AssociatedValidator(attributes, **options)
        cls._add_callback(validator.validate, **callback_options)

    @classmethod
    def with_options(cls, **options) -> OptionMerger:
        return OptionMerger(cls, options)

    @property
    def errors(self) -> Errors:
        errors = self.__dict__.get("_errors")
        if errors is None:
            errors = Errors(self)
            self.__dict__["_errors"] = errors
        return errors

    def valid(self, context=None) -> bool:
        """Run every validation callback and report whether no error was added."""
        self.errors.clear()
        for callback in type(self).validation_callbacks():
            callback.run(self, context)
        return self.errors.empty

    def invalid(self, context=None) -> bool:
        return not self.valid(context)

    def read_attribute_for_validation(self, name: str) -> Any:
        return getattr(self, name, None)


class Model(Validatable, Validations):
    """
    Attribute bag with validations.

    Subclasses may list ``fields``; each starts as None and can be set by
    keyword. Other keywords become attributes as well.
    """

    fields = ()

    def __init__(self, **attributes):
        for name in self.fields:
            setattr(self, name, None)
        for name, value in attributes.items():
            setattr(self, name, value)

    @classmethod
    def instantiate(cls, record) -> "Model":
        """Build an instance from a stored record, letting the class pick a subclass."""
        klass = cls._discriminate_class_for_record(record)
        return klass(**{str(key): value for key, value in record.items()})

    @classmethod
    def _discriminate_class_for_record(cls, record):
        return cls

    def attributes(self) -> Dict[str, Any]:
        return {k: v for k, v in vars(self).items() if not k.startswith("_")}

    def __repr__(self):
        return f"{type(self).__name__}({self.attributes()!r})"


def _subclasses_of(owner) -> List[type]:
    found = [owner]
    queue = deque(owner.__subclasses__())
    while queue:
        klass = queue.popleft()
        if klass not in found:
            found.append(klass)
            queue.extend(klass.__subclasses__())
    return found


def lookup_class(name, owner=None) -> type:
    """
    Resolve a class name to a class.

    Resolution order:
    1. A class is returned as-is
    2. Subclasses of owner (and owner itself) by __name__ or __qualname__
    3. owner's defining module
    4. A dotted path ("package.module.ClassName")
    5. Modules listed in class_lookup.search_modules

    Raises:
        ClassNotFoundError: If nothing matches
    """
    if isinstance(name, type):
        return name

    searched = []
    if owner is not None:
        for klass in _subclasses_of(owner):
            if name in (klass.__name__, klass.__qualname__, f"{klass.__module__}.{klass.__qualname__}"):
                return klass
        searched.append(f"subclasses of {owner.__qualname__}")

        module = sys.modules.get(owner.__module__)
        candidate = getattr(module, name, None)
        if isinstance(candidate, type):
            return candidate
        searched.append(f"{owner.__module__}.{name}")

    if "." in name:
        module_name, _, class_name = name.rpartition(".")
        try:
            module = importlib.import_module(module_name)
        except ImportError:
            module = None
        candidate = getattr(module, class_name, None)
        if isinstance(candidate, type):
            return candidate
        searched.append(name)

    for module_name in get_config().get_search_modules():
        module = importlib.import_module(module_name)
        candidate = getattr(module, name, None)
        if isinstance(candidate, type):
            return candidate
        searched.append(f"{module_name}.{name}")

    raise ClassNotFoundError(name, searched)
