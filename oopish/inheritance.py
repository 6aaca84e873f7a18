"""
Inheritance - pick the class of a stored record from its column values.

A base class registers ordered (class, condition) rules. When the host builds
an instance from a record, the first rule whose every condition column
holds an equal value of the same type decides the class; with no match
the base class itself is used.

Example:
    class Vehicle(Inheritance, Model):
        fields = ("kind", "wheels")

    class Car(Vehicle): pass
    class Bike(Vehicle): pass

    Vehicle.instantiate_as("Car", kind="car")
    Vehicle.instantiate_as("Bike", kind="bike", wheels=2)

    Vehicle.instantiate({"kind": "car", "wheels": 4})    # Car
    Vehicle.instantiate({"kind": "truck", "wheels": 6})  # Vehicle
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from .config_loader import get_config
from .errors import RegistryFrozen
from .model import lookup_class

logger = logging.getLogger(__name__)


def same_value(actual: Any, expected: Any) -> bool:
    """Equality without coercion: True is not 1 and 1 is not 1.0."""
    return type(actual) is type(expected) and actual == expected


@dataclass(frozen=True)
class InstantiationRule:
    class_name: Union[str, type]
    condition: Dict[str, Any] = field(default_factory=dict)

    def matches(self, record: Mapping[str, Any]) -> bool:
        return all(same_value(record.get(column), expected) for column, expected in self.condition.items())

    def shadows(self, other: "InstantiationRule") -> bool:
        """True when every record matching other also matches self."""
        return all(
            column in other.condition and same_value(other.condition[column], expected)
            for column, expected in self.condition.items()
        )

    @property
    def target_name(self) -> str:
        return self.class_name if isinstance(self.class_name, str) else self.class_name.__qualname__


class InstantiationRules:
    """Ordered discrimination rules owned by one class."""

    def __init__(self, owner: type):
        self.owner = owner
        self._rules: List[InstantiationRule] = []
        self._frozen = False

    def add(self, class_name: Union[str, type], condition: Optional[Mapping[str, Any]] = None) -> InstantiationRule:
        if self._frozen:
            raise RegistryFrozen(f"Instantiation rules of {self.owner.__qualname__} are frozen")

        rule = InstantiationRule(class_name, {str(k): v for k, v in (condition or {}).items()})

        if get_config().get_warn_on_unreachable_rules():
            for earlier in self._rules:
                if earlier.shadows(rule):
                    logger.warning(
                        f"Rule {rule.target_name} {rule.condition!r} on {self.owner.__qualname__} "
                        f"is unreachable: {earlier.target_name} {earlier.condition!r} matches first"
                    )
                    break

        self._rules.append(rule)
        logger.debug(f"{self.owner.__qualname__}: instantiate as {rule.target_name} when {rule.condition!r}")
        return rule

    def resolve(self, record: Mapping[str, Any]) -> type:
        """
        Return the class to instantiate for record.

        Raises:
            ClassNotFoundError: If the first matching rule names an unknown class
        """
        for rule in self._rules:
            if rule.matches(record):
                return lookup_class(rule.class_name, self.owner)
        return self.owner

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __iter__(self):
        return iter(self._rules)

    def __len__(self):
        return len(self._rules)


class Inheritance:
    """
    Mixin adding record-based class selection to a model base class.

    Put it before the model base in the bases list so its discrimination
    hook takes precedence. Every class that includes it, subclasses
    included, starts with its own empty rule list.
    """

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        cls._instantiation_rules = InstantiationRules(cls)

    @classmethod
    def instantiate_as(cls, class_name: Union[str, type], condition: Optional[Mapping[str, Any]] = None,
                       **condition_kwargs) -> InstantiationRule:
        """
        Register a rule: records matching condition become class_name instances.

        Args:
            class_name: Class, class name, or dotted path of the class
            condition: Column -> expected value; may also be given as keywords
        """
        merged = dict(condition or {})
        merged.update(condition_kwargs)
        return cls._instantiation_rules.add(class_name, merged)

    @classmethod
    def instantiation_rules(cls) -> InstantiationRules:
        return cls._instantiation_rules

    @classmethod
    def _discriminate_class_for_record(cls, record: Mapping[str, Any]) -> type:
        # Called by Model.instantiate.
        return cls._instantiation_rules.resolve(record)
