"""
Declaration - an ordered, replayable list of validation rules.

A Declaration records what a validator wants done to a model class without
touching any model class. ``apply`` replays the recorded rules against one:

- ``validates``, ``validates_with`` and ``validates_associated`` are passed
  through to the model class unchanged
- ``validate`` names a method of the validator; the check and every string
  ``if_``/``unless`` condition are turned into ProxyCheck objects on the
  model class before the call is forwarded

Example:
    declaration = (
        Declaration()
        .validates("author", presence=True)
        .validate("title_must_include_author_name", if_="biography")
    )

    with declaration.with_options(on="create") as group:
        group.validates("isbn", length={"is": 13})
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .errors import RegistryFrozen
from .model import CALLBACK_OPTIONS, OptionMerger


@dataclass(frozen=True)
class ValidatesRule:
    attributes: Tuple[str, ...]
    options: Dict[str, Any] = field(default_factory=dict)

    def apply(self, model_class, validator_class) -> None:
        model_class.validates(*self.attributes, **self.options)


@dataclass(frozen=True)
class ValidatesWithRule:
    validator_classes: Tuple[type, ...]
    options: Dict[str, Any] = field(default_factory=dict)

    def apply(self, model_class, validator_class) -> None:
        model_class.validates_with(*self.validator_classes, **self.options)


@dataclass(frozen=True)
class ValidatesAssociatedRule:
    attributes: Tuple[str, ...]
    options: Dict[str, Any] = field(default_factory=dict)

    def apply(self, model_class, validator_class) -> None:
        model_class.validates_associated(*self.attributes, **self.options)


@dataclass(frozen=True)
class ValidateRule:
    """A check implemented by the validator, called with the model instance."""

    check_name: str
    options: Dict[str, Any] = field(default_factory=dict)

    def apply(self, model_class, validator_class) -> None:
        options = dict(self.options)
        check = model_class.validator_proxy(validator_class, "validate", self.check_name)

        for key in ("if_", "unless"):
            if key in options:
                options[key] = self._proxy_conditions(model_class, validator_class, key.rstrip("_"), options[key])

        model_class.validate(check, **options)

    @staticmethod
    def _proxy_conditions(model_class, validator_class, kind, conditions):
        # Callables are forwarded untouched; only names are proxied.
        if isinstance(conditions, (list, tuple)):
            return [ValidateRule._proxy_conditions(model_class, validator_class, kind, c) for c in conditions]
        if isinstance(conditions, str):
            return model_class.validator_proxy(validator_class, kind, conditions)
        return conditions


class Declaration:
    """Builder capturing validation rules in the order they are declared."""

    def __init__(self):
        self._rules: List[Any] = []
        self._frozen = False

    def _append(self, rule) -> "Declaration":
        if self._frozen:
            raise RegistryFrozen("Declaration is frozen; declare a new one instead")
        self._rules.append(rule)
        return self

    def validates(self, *attributes: str, **options) -> "Declaration":
        if not attributes:
            raise ValueError("validates needs at least one attribute")
        return self._append(ValidatesRule(tuple(attributes), options))

    def validates_with(self, *validator_classes, **options) -> "Declaration":
        if not validator_classes:
            raise ValueError("validates_with needs at least one validator class")
        return self._append(ValidatesWithRule(tuple(validator_classes), options))

    def validates_associated(self, *attributes: str, **options) -> "Declaration":
        if not attributes:
            raise ValueError("validates_associated needs at least one attribute")
        return self._append(ValidatesAssociatedRule(tuple(attributes), options))

    def validate(self, *check_names: str, **options) -> "Declaration":
        """Declare checks implemented as methods of the validator class."""
        if not check_names:
            raise ValueError("validate needs at least one method name")
        unknown = set(options) - set(CALLBACK_OPTIONS)
        if unknown:
            raise ValueError(f"Unsupported validate options: {', '.join(sorted(unknown))}")
        for check_name in check_names:
            if not isinstance(check_name, str):
                raise TypeError(f"validate expects the name of a validator method, got {check_name!r}")
            self._append(ValidateRule(check_name, dict(options)))
        return self

    def with_options(self, **options) -> OptionMerger:
        return OptionMerger(self, options)

    @property
    def rules(self) -> Tuple[Any, ...]:
        return tuple(self._rules)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> "Declaration":
        self._frozen = True
        return self

    def apply(self, model_class, validator_class) -> None:
        """Replay every rule, in order, against model_class on behalf of validator_class."""
        for rule in self._rules:
            rule.apply(model_class, validator_class)

    def __iter__(self):
        return iter(self._rules)

    def __len__(self):
        return len(self._rules)

    def __repr__(self):
        return f"Declaration({self._rules!r})"
