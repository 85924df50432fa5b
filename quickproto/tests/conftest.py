"""Unit tests configuration file."""

import pytest

from quickproto.proto import registry


def pytest_configure(config):
    """Disable verbose output when running tests."""
    terminal = config.pluginmanager.getplugin("terminal")
    if terminal:
        terminal.TerminalReporter.showfspath = False


@pytest.fixture(autouse=True)
def fresh_registry(monkeypatch):
    """Give every test its own process-wide registry."""
    reg = registry.Registry()
    monkeypatch.setattr(registry, "_default", reg)
    return reg
