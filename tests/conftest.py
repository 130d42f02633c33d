"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest
import yaml

from preexec.integrations.audit import reset_audit_logger
from preexec.setup.config_writer import DEFAULT_RULES, PreexecConfig


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep every test away from the real config and audit locations."""
    monkeypatch.setenv("PREEXEC_CONFIG", str(tmp_path / "preexec-home" / "config.yaml"))
    monkeypatch.setenv("PREEXEC_AUDIT_LOG", str(tmp_path / "preexec-home" / "audit.jsonl"))
    monkeypatch.delenv("HISTFILE", raising=False)
    reset_audit_logger()
    yield
    reset_audit_logger()


@pytest.fixture
def default_config():
    """PreexecConfig with every rule enabled."""
    return PreexecConfig()


@pytest.fixture
def config_with():
    """Factory fixture: PreexecConfig with some rules switched off."""

    def _create(**rules):
        merged = dict(DEFAULT_RULES)
        merged.update(rules)
        return PreexecConfig(rules=merged)

    return _create


@pytest.fixture
def config_file(tmp_path):
    """Factory fixture: write a YAML mapping (or raw text) and return its path."""

    def _create(content, name="config.yaml") -> Path:
        path = tmp_path / name
        if isinstance(content, str):
            path.write_text(content, encoding="utf-8")
        else:
            path.write_text(yaml.safe_dump(content), encoding="utf-8")
        return path

    return _create


class DisabledRules:
    """Minimal RuleConfig: every name in `off` is disabled."""

    def __init__(self, *off):
        self.off = set(off)

    def enabled(self, rule_name: str) -> bool:
        return rule_name not in self.off


@pytest.fixture
def disabled_rules():
    """Factory fixture for DisabledRules instances."""
    return DisabledRules
