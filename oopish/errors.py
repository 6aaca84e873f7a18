"""Exception hierarchy for oopish."""


class OopishError(Exception):
    """Base class for every error raised by this library."""


class ValidatorError(OopishError):
    """Generic Validator related error."""


class AlreadyMonitored(ValidatorError):
    """Raised when a model class is attached to the same validator twice."""


class DeclarationNotFound(ValidatorError):
    """Raised when a validator without a declaration tries to monitor a model."""


class AlreadyDeclared(ValidatorError):
    """Raised when a validator class declares its rules a second time."""


class RegistryFrozen(OopishError):
    """Raised when a frozen registry receives a new entry."""


class ClassNotFoundError(OopishError, LookupError):
    """Raised when a class name cannot be resolved to a class."""

    def __init__(self, name, searched=None):
        self.name = name
        self.searched = list(searched or [])
        message = f"Class not found: {name}"
        if self.searched:
            message += f". Searched: {', '.join(self.searched)}"
        super().__init__(message)


class ConfigurationError(OopishError, ValueError):
    """Raised when configuration cannot be loaded or does not match its schema."""
