"""
Validator - reusable validation rules attachable to model classes.

Example:

    class BookValidator(Validator):
        declaration = (
            Declaration()
            .validates("author", presence=True)
            .validate("title_must_include_author_name", if_="biography")
        )

        def title_must_include_author_name(self, book):
            if book.author.name not in book.title:
                book.errors.add("author", "cannot write a biography for other people")

        def biography(self, book):
            return book.category == "biography"

    @BookValidator.monitor
    class Book(Model):
        fields = ("title", "author", "category")

    BookValidator.is_monitoring(Book)
    # => True

    book = Book(title="Qiitan biography", author=User(name="Yaotti"), category="biography")
    book.valid()
    # => False
    book.errors.full_messages_for("author")
    # => ["Author cannot write a biography for other people"]
"""

import re
import logging
import weakref
from typing import Callable, Dict, List, Union

from .config_loader import get_config
from .declaration import Declaration
from .errors import (
    AlreadyDeclared,
    AlreadyMonitored,
    DeclarationNotFound,
    RegistryFrozen,
    ValidatorError,
)
from .model import Validations
from .validatable import Validatable

logger = logging.getLogger(__name__)


class MonitoringRegistry:
    """Which model classes each validator class monitors."""

    def __init__(self):
        self._monitored: Dict[type, List[type]] = {}
        self._frozen = False

    def add(self, validator_class, model_class) -> None:
        if self._frozen:
            raise RegistryFrozen(
                f"Monitoring registry is frozen; cannot attach {validator_class.__qualname__} "
                f"to {model_class.__qualname__}"
            )
        if self.contains(validator_class, model_class):
            raise AlreadyMonitored(f"{model_class.__qualname__} is already monitored by {validator_class.__qualname__}")
        self._monitored.setdefault(validator_class, []).append(model_class)

    def contains(self, validator_class, model_class) -> bool:
        return model_class in self._monitored.get(validator_class, ())

    def model_classes_for(self, validator_class) -> List[type]:
        return list(self._monitored.get(validator_class, ()))

    def freeze(self) -> None:
        """Reject further attachments, typically once application start-up is done."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def reset(self) -> None:
        """Forget every attachment and unfreeze (for testing)."""
        self._monitored.clear()
        self._frozen = False


default_registry = MonitoringRegistry()

# injection name -> validator class holding it
_injection_names = weakref.WeakValueDictionary()


def reset_injection_names():
    """Forget which validator holds which injection name (for testing)."""
    _injection_names.clear()


class Validator:
    """
    Base class for validators.

    A subclass declares its rules once, either with a class attribute
    ``declaration`` or with ``declare``, then attaches them to model classes
    with ``monitor``. Methods named by ``validate`` and by string ``if_`` /
    ``unless`` conditions are called on a validator instance with the model
    instance as their only argument.
    """

    Error = ValidatorError
    AlreadyMonitored = AlreadyMonitored
    DeclarationNotFound = DeclarationNotFound
    AlreadyDeclared = AlreadyDeclared

    registry: MonitoringRegistry = default_registry

    # Overrides the module/qualname part of injection_name.
    validator_name = None

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        declaration = cls.__dict__.get("declaration")
        if declaration is not None:
            cls.declare(declaration)

    @classmethod
    def declare(cls, declaration: Union[Declaration, Callable[[Declaration], None]]) -> Declaration:
        """
        Store how to validate a model class.

        Args:
            declaration: A Declaration, or a callable that fills in a fresh
                one (so ``@SomeValidator.declare`` works on a function).

        Returns:
            The stored, frozen Declaration

        Raises:
            AlreadyDeclared: If rules were declared before and
                declarations.allow_redeclare is false
        """
        if not isinstance(declaration, Declaration):
            if not callable(declaration):
                raise TypeError(f"declare expects a Declaration or a callable, got {declaration!r}")
            builder = Declaration()
            declaration(builder)
            declaration = builder

        if cls.__dict__.get("_declaration") is not None:
            if not get_config().get_allow_redeclare():
                raise AlreadyDeclared(f"{cls.__qualname__} has already declared its rules")
            logger.warning(f"{cls.__qualname__} redeclared its rules; the previous declaration is replaced")

        cls._declaration = declaration.freeze()
        return declaration

    @classmethod
    def declaration_for(cls):
        return cls.__dict__.get("_declaration")

    @classmethod
    def monitor(cls, model_class):
        """
        Start validating model_class's instances.

        Returns model_class, so the method also works as a class decorator.

        Raises:
            AlreadyMonitored: If model_class is already monitored by cls
            TypeError: If model_class does not include Validations and Validatable
            RegistryFrozen: If the registry of cls no longer accepts attachments
            DeclarationNotFound: If cls has not declared its rules
        """
        if cls.is_monitoring(model_class):
            raise AlreadyMonitored(f"{model_class.__qualname__} is already monitored by {cls.__qualname__}")
        if not (isinstance(model_class, type) and issubclass(model_class, Validations)
                and issubclass(model_class, Validatable)):
            raise TypeError(f"{model_class!r} must include Validations and Validatable to be monitored")
        if cls.registry.frozen:
            raise RegistryFrozen(
                f"Monitoring registry is frozen; cannot attach {cls.__qualname__} to {model_class.__qualname__}"
            )

        model_class.attach_validator(cls)

        declaration = cls.declaration_for()
        if declaration is None:
            raise DeclarationNotFound(f"{cls.__qualname__} has no declaration")
        declaration.apply(model_class, cls)

        cls.registry.add(cls, model_class)
        logger.info(
            "Validator attached",
            extra={
                'validator': cls.__qualname__,
                'model': model_class.__qualname__,
                'rules': len(declaration),
            }
        )
        return model_class

    @classmethod
    def is_monitoring(cls, target) -> bool:
        """Whether target (a model class or one of its instances) is monitored by cls."""
        model_class = target if isinstance(target, type) else type(target)
        return cls.registry.contains(cls, model_class)

    @classmethod
    def injection_name(cls) -> str:
        """
        Stable name of this validator on model classes; also prefixes its proxies.

        Two classes sharing a module and qualname (or a validator_name) get
        distinct names: the later one gains a numeric suffix.
        """
        name = cls.__dict__.get("_injection_name")
        if name is None:
            base = cls.__dict__.get("validator_name") or f"{cls.__module__}.{cls.__qualname__}"
            stem = get_config().get_injection_prefix() + re.sub(r"\W+", "_", base).strip("_").lower()
            name, suffix = stem, 1
            while _injection_names.get(name, cls) is not cls:
                suffix += 1
                name = f"{stem}_{suffix}"
            _injection_names[name] = cls
            cls._injection_name = name
        return name

    @classmethod
    def monitored_model_classes(cls) -> List[type]:
        return cls.registry.model_classes_for(cls)

    def __repr__(self):
        return f"<{type(self).__qualname__}>"
