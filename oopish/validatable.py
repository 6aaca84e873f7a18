"""
Validatable - the model side of an attached validator.

A model class that includes Validatable can hold validator classes keyed by
their injection name. Each model instance lazily builds one instance of every
attached validator class and keeps it for its lifetime. Checks declared on a
validator reach the model through ProxyCheck objects, which are plain
callables registered with the model's ``validate``.
"""

import logging

from .errors import ValidatorError

logger = logging.getLogger(__name__)


class ProxyCheck:
    """
    Forwards a validation callback to a validator instance.

    Calling the proxy with a model instance looks up that instance's cached
    validator and calls ``validator.<method_name>(record)``.
    """

    def __init__(self, name: str, injection_name: str, method_name: str):
        self.name = name
        self.injection_name = injection_name
        self.method_name = method_name

    def __call__(self, record):
        validator = record.validator_for(self.injection_name)
        return getattr(validator, self.method_name)(record)

    def __repr__(self):
        return f"ProxyCheck({self.name!r})"


class Validatable:
    """Capability mixin: per-instance validator instances and named proxies."""

    @classmethod
    def attach_validator(cls, validator_class) -> None:
        """Make validator_class reachable from instances under its injection name."""
        attached = cls.__dict__.get("_attached_validators")
        if attached is None:
            attached = {}
            cls._attached_validators = attached

        name = validator_class.injection_name()
        holder = attached.get(name)
        if holder is not None and holder is not validator_class:
            raise ValidatorError(
                f"{cls.__qualname__} already holds {holder.__qualname__} as {name}; "
                f"cannot attach {validator_class.__qualname__} under the same name"
            )
        if holder is None:
            attached[name] = validator_class
            logger.debug(f"Attached accessor {name} to {cls.__qualname__}")

    @classmethod
    def attached_validator_class(cls, injection_name: str):
        for klass in cls.__mro__:
            attached = klass.__dict__.get("_attached_validators")
            if attached and injection_name in attached:
                return attached[injection_name]
        raise LookupError(f"No validator attached as {injection_name} on {cls.__qualname__}")

    @classmethod
    def validator_proxy(cls, validator_class, kind: str, method_name: str) -> ProxyCheck:
        """
        Return the proxy named ``<injection_name>_<kind>_<method_name>``.

        Proxies are created once per name and model class; later calls with
        the same arguments return the existing proxy.
        """
        proxies = cls.__dict__.get("_validator_proxies")
        if proxies is None:
            proxies = {}
            cls._validator_proxies = proxies

        injection_name = validator_class.injection_name()
        name = f"{injection_name}_{kind}_{method_name}"
        if name not in proxies:
            proxies[name] = ProxyCheck(name, injection_name, method_name)
            logger.debug(f"Defined proxy {name} on {cls.__qualname__}")
        return proxies[name]

    @classmethod
    def validator_proxies(cls) -> dict:
        return dict(cls.__dict__.get("_validator_proxies", {}))

    def validator_for(self, injection_name: str):
        """Return this instance's validator for injection_name, building it on first use."""
        instances = self.__dict__.setdefault("_validator_instances", {})
        validator = instances.get(injection_name)
        if validator is None:
            validator = type(self).attached_validator_class(injection_name)()
            instances[injection_name] = validator
        return validator
