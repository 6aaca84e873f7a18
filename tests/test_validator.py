"""
Tests for Validator

Covers declare/monitor/is_monitoring/injection_name and the way declared
checks reach validator instances.
"""
import logging
import pytest

from oopish import (
    AlreadyDeclared,
    AlreadyMonitored,
    Declaration,
    DeclarationNotFound,
    Model,
    MonitoringRegistry,
    RegistryFrozen,
    Validator,
    ValidatorError,
)


def error_types(record, attribute):
    return [detail["error"] for detail in record.errors.details(attribute)]


@pytest.fixture
def model_class():
    """A fresh model class with a single attribute."""
    class ModelClass(Model):
        fields = ("attr",)
    return ModelClass


@pytest.fixture
def undeclared_validator():
    class SampleValidator(Validator):
        validator_name = "Sample::Validator"
    return SampleValidator


@pytest.fixture
def attribute_validator():
    """Validator declaring built-in attribute validations."""
    class SampleValidator(Validator):
        validator_name = "Sample::Validator"
        declaration = Declaration().validates(
            "attr",
            exclusion={"in": ["a", "b", "c"]},
            inclusion={"in": ["x", "y", "z"]},
            length={"minimum": 1, "maximum": 10},
            numericality={"only_integer": True},
            presence=True,
        )
    return SampleValidator


@pytest.fixture
def conditional_validator():
    """Validator declaring a check guarded by if_ and unless conditions."""
    class SampleValidator(Validator):
        validator_name = "Sample::Validator"
        declaration = Declaration().validate("validate_method", if_="if_cond", unless="unless_cond")

        calls = []
        if_result = True
        unless_result = False

        def if_cond(self, record):
            self.calls.append(("if_cond", record))
            return self.if_result

        def unless_cond(self, record):
            self.calls.append(("unless_cond", record))
            return self.unless_result

        def validate_method(self, record):
            self.calls.append(("validate_method", record))

    SampleValidator.calls = []
    return SampleValidator


class TestMonitor:
    """Test Validator.monitor()."""

    def test_without_declaration_raises(self, undeclared_validator, model_class):
        """Monitoring with no declaration fails with DeclarationNotFound."""
        with pytest.raises(DeclarationNotFound):
            undeclared_validator.monitor(model_class)
        assert not undeclared_validator.is_monitoring(model_class)

    def test_errors_are_reachable_from_validator(self):
        """Error classes are exposed on Validator itself."""
        assert Validator.AlreadyMonitored is AlreadyMonitored
        assert Validator.DeclarationNotFound is DeclarationNotFound
        assert issubclass(Validator.AlreadyMonitored, Validator.Error)

    def test_applies_declared_validations(self, attribute_validator, model_class):
        """Declared validations behave as if declared on the model class."""
        assert model_class(attr=None).valid()

        attribute_validator.monitor(model_class)

        blank = model_class(attr=None)
        assert not blank.valid()
        assert "blank" in error_types(blank, "attr")
        assert "too_short" in error_types(blank, "attr")
        assert "not_a_number" in error_types(blank, "attr")

        reserved = model_class(attr="a")
        reserved.valid()
        assert "exclusion" in error_types(reserved, "attr")

        too_long = model_class(attr="12345678901")
        too_long.valid()
        assert "too_long" in error_types(too_long, "attr")

        fraction = model_class(attr="1.5")
        fraction.valid()
        assert "not_an_integer" in error_types(fraction, "attr")

        outside = model_class(attr="5")
        outside.valid()
        assert error_types(outside, "attr") == ["inclusion"]

    def test_returns_model_class(self, attribute_validator, model_class):
        """monitor returns the model class so it can decorate it."""
        assert attribute_validator.monitor(model_class) is model_class

    def test_as_decorator(self, attribute_validator):
        """monitor works as a class decorator."""
        @attribute_validator.monitor
        class Decorated(Model):
            fields = ("attr",)

        assert attribute_validator.is_monitoring(Decorated)
        assert not Decorated(attr=None).valid()

    def test_twice_raises(self, attribute_validator, model_class):
        """A second monitor on the same model class fails with AlreadyMonitored."""
        attribute_validator.monitor(model_class)
        with pytest.raises(AlreadyMonitored):
            attribute_validator.monitor(model_class)
        assert attribute_validator.is_monitoring(model_class)

    def test_twice_does_not_duplicate_rules(self, attribute_validator, model_class):
        """The failed second monitor adds no callbacks."""
        attribute_validator.monitor(model_class)
        count = len(model_class.validation_callbacks())
        with pytest.raises(AlreadyMonitored):
            attribute_validator.monitor(model_class)
        assert len(model_class.validation_callbacks()) == count

    def test_non_model_raises_type_error(self, attribute_validator):
        """Only classes with validations can be monitored."""
        class Plain:
            pass

        with pytest.raises(TypeError):
            attribute_validator.monitor(Plain)

    def test_several_model_classes(self, attribute_validator):
        """One validator can monitor several model classes independently."""
        class First(Model):
            fields = ("attr",)

        class Second(Model):
            fields = ("attr",)

        attribute_validator.monitor(First)
        attribute_validator.monitor(Second)

        assert attribute_validator.monitored_model_classes() == [First, Second]
        assert not First(attr=None).valid()
        assert not Second(attr=None).valid()

    def test_logs_attachment(self, attribute_validator, model_class, caplog):
        """Attaching a validator is logged at INFO."""
        with caplog.at_level(logging.INFO, logger="oopish.validator"):
            attribute_validator.monitor(model_class)
        assert any(r.message == "Validator attached" for r in caplog.records)


class TestConditionalValidate:
    """Test validate() declarations with if_/unless conditions."""

    def test_calls_validator_methods_with_instance(self, conditional_validator, model_class):
        """Conditions and the check receive the model instance, once each."""
        conditional_validator.monitor(model_class)
        instance = model_class()

        instance.valid()

        assert conditional_validator.calls == [
            ("if_cond", instance),
            ("unless_cond", instance),
            ("validate_method", instance),
        ]

    def test_if_false_skips_check(self, conditional_validator, model_class):
        """A false if_ condition skips the check."""
        conditional_validator.if_result = False
        conditional_validator.monitor(model_class)

        model_class().valid()

        names = [name for name, _ in conditional_validator.calls]
        assert "validate_method" not in names

    def test_unless_true_skips_check(self, conditional_validator, model_class):
        """A true unless condition skips the check."""
        conditional_validator.unless_result = True
        conditional_validator.monitor(model_class)

        model_class().valid()

        names = [name for name, _ in conditional_validator.calls]
        assert "validate_method" not in names

    def test_proxy_names(self, conditional_validator, model_class):
        """Proxies are named after the injection name, kind and method."""
        conditional_validator.monitor(model_class)
        prefix = conditional_validator.injection_name()

        assert set(model_class.validator_proxies()) == {
            f"{prefix}_validate_validate_method",
            f"{prefix}_if_if_cond",
            f"{prefix}_unless_unless_cond",
        }

    def test_check_adds_errors(self, model_class):
        """A validator check reports through the model's errors."""
        class TitleValidator(Validator):
            declaration = Declaration().validate("must_be_qiitan")

            def must_be_qiitan(self, record):
                if record.attr != "qiitan":
                    record.errors.add("attr", "must be qiitan")

        TitleValidator.monitor(model_class)

        record = model_class(attr="yaotti")
        assert not record.valid()
        assert record.errors.full_messages_for("attr") == ["Attr must be qiitan"]
        assert model_class(attr="qiitan").valid()

    def test_callable_condition_is_forwarded(self, model_class):
        """Callable conditions are used as-is."""
        class CallableValidator(Validator):
            declaration = Declaration().validate("always_fail", if_=lambda record: record.attr == "on")

            def always_fail(self, record):
                record.errors.add("attr", "failed")

        CallableValidator.monitor(model_class)

        assert model_class(attr="off").valid()
        assert not model_class(attr="on").valid()

    def test_validator_instance_cached_per_model_instance(self, model_class):
        """One validator instance per model instance, reused across validations."""
        class CountingValidator(Validator):
            declaration = Declaration().validate("noop")
            built = 0

            def __init__(self):
                type(self).built += 1

            def noop(self, record):
                pass

        CountingValidator.monitor(model_class)

        first = model_class()
        first.valid()
        first.valid()
        assert CountingValidator.built == 1
        assert first.validator_for(CountingValidator.injection_name()) is first.validator_for(
            CountingValidator.injection_name()
        )

        model_class().valid()
        assert CountingValidator.built == 2

    def test_two_validators_on_one_model(self, model_class):
        """Validators attached to the same model keep separate instances and proxies."""
        class FirstValidator(Validator):
            declaration = Declaration().validate("check")

            def check(self, record):
                record.errors.add("attr", "first")

        class SecondValidator(Validator):
            declaration = Declaration().validate("check")

            def check(self, record):
                record.errors.add("attr", "second")

        FirstValidator.monitor(model_class)
        SecondValidator.monitor(model_class)

        record = model_class()
        record.valid()

        assert record.errors["attr"] == ["first", "second"]
        assert len(model_class.validator_proxies()) == 2
        assert record.validator_for(FirstValidator.injection_name()) is not record.validator_for(
            SecondValidator.injection_name()
        )


class TestDeclare:
    """Test Validator.declare()."""

    def test_class_attribute(self, attribute_validator):
        """A class-body declaration is stored and frozen."""
        declaration = attribute_validator.declaration_for()
        assert isinstance(declaration, Declaration)
        assert declaration.frozen

    def test_decorator(self, model_class):
        """declare accepts a function that fills in a fresh Declaration."""
        class DecoratedValidator(Validator):
            pass

        @DecoratedValidator.declare
        def rules(d):
            d.validates("attr", presence=True)

        assert isinstance(rules, Declaration)
        assert len(rules) == 1

        DecoratedValidator.monitor(model_class)
        assert not model_class(attr="").valid()

    def test_twice_raises(self, attribute_validator):
        """Declaring a second time fails by default."""
        with pytest.raises(AlreadyDeclared):
            attribute_validator.declare(Declaration().validates("attr", presence=True))

    def test_redeclare_allowed_by_config(self, config_override, model_class, caplog):
        """With allow_redeclare the new declaration replaces the old one."""
        config_override("declarations:\n  allow_redeclare: true\n")

        class RedeclaredValidator(Validator):
            declaration = Declaration().validates("attr", presence=True)

        with caplog.at_level(logging.WARNING, logger="oopish.validator"):
            RedeclaredValidator.declare(Declaration().validates("attr", length={"maximum": 2}))

        assert "redeclared" in caplog.text
        RedeclaredValidator.monitor(model_class)
        assert model_class(attr=None).valid()
        assert not model_class(attr="abc").valid()

    def test_declaration_not_inherited(self, attribute_validator, model_class):
        """A subclass of a declared validator has no declaration of its own."""
        class ChildValidator(attribute_validator):
            pass

        with pytest.raises(DeclarationNotFound):
            ChildValidator.monitor(model_class)

    def test_frozen_declaration_rejects_rules(self, attribute_validator):
        """A stored declaration cannot be extended."""
        with pytest.raises(RegistryFrozen):
            attribute_validator.declaration_for().validates("attr", presence=True)

    def test_rejects_non_declaration(self):
        with pytest.raises(TypeError):
            class BadValidator(Validator):
                pass
            BadValidator.declare("validates attr")

    def test_with_options_group(self, model_class):
        """Grouped options are merged into every rule in the group."""
        declaration = Declaration()
        with declaration.with_options(allow_none=True) as group:
            group.validates("attr", numericality=True)

        class GroupedValidator(Validator):
            pass

        GroupedValidator.declare(declaration)
        GroupedValidator.monitor(model_class)

        assert model_class(attr=None).valid()
        assert not model_class(attr="abc").valid()

    def test_with_options_validate_combines_conditions(self, model_class):
        """if_ from the group and from the call must both hold."""
        class GuardedValidator(Validator):
            def active(self, record):
                return record.attr is not None

            def loud(self, record):
                return record.attr == "LOUD"

            def reject(self, record):
                record.errors.add("attr", "rejected")

        declaration = Declaration()
        with declaration.with_options(if_="active") as group:
            group.validate("reject", if_="loud")
        GuardedValidator.declare(declaration)
        GuardedValidator.monitor(model_class)

        assert model_class(attr=None).valid()
        assert model_class(attr="quiet").valid()
        assert not model_class(attr="LOUD").valid()
        prefix = GuardedValidator.injection_name()
        assert f"{prefix}_if_active" in model_class.validator_proxies()
        assert f"{prefix}_if_loud" in model_class.validator_proxies()

    def test_validate_rejects_unknown_options(self):
        with pytest.raises(ValueError):
            Declaration().validate("check", allow_none=True)


class TestIsMonitoring:
    """Test Validator.is_monitoring()."""

    @pytest.fixture
    def empty_validator(self):
        class SampleValidator(Validator):
            declaration = Declaration()
        return SampleValidator

    @pytest.mark.parametrize("as_instance", [False, True])
    def test_not_monitoring(self, empty_validator, model_class, as_instance):
        param = model_class() if as_instance else model_class
        assert not empty_validator.is_monitoring(param)

    @pytest.mark.parametrize("as_instance", [False, True])
    def test_monitoring(self, empty_validator, model_class, as_instance):
        empty_validator.monitor(model_class)
        param = model_class() if as_instance else model_class
        assert empty_validator.is_monitoring(param)

    def test_subclass_is_not_monitored(self, empty_validator, model_class):
        """Monitoring is tracked per class, not per hierarchy."""
        empty_validator.monitor(model_class)

        class Child(model_class):
            pass

        assert not empty_validator.is_monitoring(Child)

    def test_subclass_still_runs_parent_rules(self, attribute_validator, model_class):
        attribute_validator.monitor(model_class)

        class Child(model_class):
            pass

        assert not Child(attr=None).valid()


class TestInjectionName:
    """Test Validator.injection_name()."""

    def test_is_string(self, undeclared_validator):
        assert isinstance(undeclared_validator.injection_name(), str)

    def test_from_validator_name(self, undeclared_validator):
        assert undeclared_validator.injection_name() == "__validator_sample_validator"

    def test_default_is_identifier(self):
        class SomeValidator(Validator):
            pass

        name = SomeValidator.injection_name()
        assert name.startswith("__validator_")
        assert name.endswith("somevalidator")
        assert name.isidentifier()

    def test_distinct_per_validator(self):
        class FirstValidator(Validator):
            pass

        class SecondValidator(Validator):
            pass

        assert FirstValidator.injection_name() != SecondValidator.injection_name()

    def test_shared_validator_name_gets_suffix(self, undeclared_validator):
        class OtherValidator(Validator):
            validator_name = "Sample::Validator"

        assert undeclared_validator.injection_name() == "__validator_sample_validator"
        assert OtherValidator.injection_name() == "__validator_sample_validator_2"
        assert undeclared_validator.injection_name() == "__validator_sample_validator"

    def test_validators_from_one_factory_stay_apart(self, model_class):
        """Classes built by the same function share a module and qualname."""
        def make_validator(message):
            class FactoryValidator(Validator):
                declaration = Declaration().validate("check")

                def check(self, record):
                    record.errors.add("attr", message)

            return FactoryValidator

        first = make_validator("first")
        second = make_validator("second")
        first.monitor(model_class)
        second.monitor(model_class)

        assert first.injection_name() != second.injection_name()
        record = model_class(attr="x")
        assert not record.valid()
        assert record.errors["attr"] == ["first", "second"]

    def test_attach_rejects_taken_name(self, model_class):
        class Holder:
            @classmethod
            def injection_name(cls):
                return "__validator_taken"

        class Intruder(Holder):
            pass

        model_class.attach_validator(Holder)
        model_class.attach_validator(Holder)
        with pytest.raises(ValidatorError, match="__validator_taken"):
            model_class.attach_validator(Intruder)
        assert model_class.attached_validator_class("__validator_taken") is Holder

    def test_prefix_from_config(self, config_override):
        config_override("injection_prefix: _check_\n")

        class PrefixedValidator(Validator):
            validator_name = "Prefixed"

        assert PrefixedValidator.injection_name() == "_check_prefixed"


class TestMonitoringRegistry:
    """Test MonitoringRegistry lifecycle."""

    def test_own_registry(self, model_class):
        """A validator may keep attachments in its own registry."""
        registry = MonitoringRegistry()

        class IsolatedValidator(Validator):
            declaration = Declaration()

        IsolatedValidator.registry = registry
        IsolatedValidator.monitor(model_class)

        assert registry.contains(IsolatedValidator, model_class)
        assert registry.model_classes_for(IsolatedValidator) == [model_class]

    def test_frozen_registry_rejects_monitor(self, model_class):
        """A rejected attachment leaves the model class untouched."""
        registry = MonitoringRegistry()

        class IsolatedValidator(Validator):
            declaration = Declaration().validates("attr", presence=True)

        IsolatedValidator.registry = registry
        registry.freeze()

        with pytest.raises(RegistryFrozen):
            IsolatedValidator.monitor(model_class)
        assert not IsolatedValidator.is_monitoring(model_class)
        assert model_class.validation_callbacks() == []
        assert model_class.validator_proxies() == {}
        with pytest.raises(LookupError):
            model_class.attached_validator_class(IsolatedValidator.injection_name())
        assert model_class(attr=None).valid()

    def test_reset(self, model_class):
        registry = MonitoringRegistry()

        class IsolatedValidator(Validator):
            declaration = Declaration()

        IsolatedValidator.registry = registry
        IsolatedValidator.monitor(model_class)
        registry.freeze()
        registry.reset()

        assert not registry.frozen
        assert not IsolatedValidator.is_monitoring(model_class)
