"""Core inspection engine.

This module contains the essential components for command inspection:
- charsets: Invisible/BiDi/homoglyph tables and the escape-span scanner
- rules: Severity, Finding and the nine built-in detectors
- engine: Rule orchestration and Result aggregation
- rewrite: Sanitizing transform and visible-length helper
- urls: URL extraction and host inspection
"""

from preexec.core.engine import Result, run, run_rule
from preexec.core.rewrite import safe_rewrite, strip_ansi, visible_runes
from preexec.core.rules import ALL_RULES, Finding, RuleConfig, SecurityRule, Severity, describe, get_rule
from preexec.core.urls import extract_urls, has_idn, host_for_display

__all__ = [
    # Rules
    "ALL_RULES",
    "Finding",
    "RuleConfig",
    "SecurityRule",
    "Severity",
    "describe",
    "get_rule",
    # Engine
    "Result",
    "run",
    "run_rule",
    # Rewrite
    "safe_rewrite",
    "strip_ansi",
    "visible_runes",
    # URLs
    "extract_urls",
    "has_idn",
    "host_for_display",
]
