"""Shared fixtures: every test starts from bundled configuration and empty registries."""
import pytest

from oopish import reset_config
from oopish.validator import default_registry, reset_injection_names


@pytest.fixture(autouse=True)
def clean_state(monkeypatch):
    """Drop config overrides and attachments left behind by other tests."""
    monkeypatch.delenv("OOPISH_CONFIG", raising=False)
    reset_config()
    default_registry.reset()
    reset_injection_names()
    yield
    reset_config()
    default_registry.reset()
    reset_injection_names()


@pytest.fixture
def config_override(tmp_path, monkeypatch):
    """Write a YAML override, point OOPISH_CONFIG at it and reload config."""
    def _override(text):
        path = tmp_path / "override.yaml"
        path.write_text(text)
        monkeypatch.setenv("OOPISH_CONFIG", str(path))
        reset_config()
        return path
    return _override
