"""
oopish: reusable validators and record-based class selection for model classes

This library provides:
- Validator classes that declare validation rules once and attach them to
  any number of model classes
- Record-based subclass selection ("single table inheritance" discrimination)
- A small host model layer with built-in attribute validators

Example:
    from oopish import Declaration, Model, Validator

    class UserValidator(Validator):
        declaration = Declaration().validates("name", presence=True)

    @UserValidator.monitor
    class User(Model):
        fields = ("name",)

    User(name="").valid()   # False
"""

from .attribute_validators import EachValidator, RecordValidator
from .config_loader import ConfigLoader, get_config, reset_config
from .declaration import Declaration
from .errors import (
    AlreadyDeclared,
    AlreadyMonitored,
    ClassNotFoundError,
    ConfigurationError,
    DeclarationNotFound,
    OopishError,
    RegistryFrozen,
    ValidatorError,
)
from .inheritance import Inheritance
from .model import Errors, Model, Validations, lookup_class
from .validatable import Validatable
from .validator import MonitoringRegistry, Validator

__version__ = "0.1.0"
__all__ = [
    "AlreadyDeclared",
    "AlreadyMonitored",
    "ClassNotFoundError",
    "ConfigLoader",
    "ConfigurationError",
    "Declaration",
    "DeclarationNotFound",
    "EachValidator",
    "Errors",
    "Inheritance",
    "Model",
    "MonitoringRegistry",
    "OopishError",
    "RecordValidator",
    "RegistryFrozen",
    "Validatable",
    "Validations",
    "Validator",
    "ValidatorError",
    "get_config",
    "lookup_class",
    "reset_config",
]
