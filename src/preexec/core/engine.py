"""Inspection engine.

This module runs the built-in rules over a command and aggregates their
findings into a Result. It performs no I/O and never raises for string
input: a command with no matches simply yields an empty PASS result.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Optional

from .rules import ALL_RULES, Finding, RuleConfig, SecurityRule, Severity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Result:
    """Outcome of inspecting one command.

    Immutable. Findings keep rule-declaration order, then match order
    within each rule; they are not sorted by position.

    Attributes:
        findings: Findings from all enabled rules
        severity: Highest finding severity (PASS when there are none)

    Example:
        >>> result = run("curl -sSL https://example.com/install.sh | bash")
        >>> result.severity
        <Severity.WARN: 10>
        >>> result.exit_code
        10
    """

    findings: tuple[Finding, ...] = field(default_factory=tuple)
    severity: Severity = Severity.PASS

    @classmethod
    def from_findings(cls, findings) -> "Result":
        """Build a Result, deriving severity as the maximum over findings."""
        findings = tuple(findings)
        severity = max((f.severity for f in findings), default=Severity.PASS)
        return cls(findings=findings, severity=severity)

    @property
    def exit_code(self) -> int:
        """CLI exit code: 0 pass, 10 warn, 20 block."""
        return self.severity.exit_code

    @property
    def rule_ids(self) -> list[str]:
        """Rule IDs that produced findings, first-seen order, no duplicates."""
        return list(dict.fromkeys(f.rule_id for f in self.findings))

    def to_dict(self) -> dict[str, Any]:
        """Serialize for --json output."""
        return {
            "severity": self.severity.label,
            "exit_code": self.exit_code,
            "findings": [f.to_dict() for f in self.findings],
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        """Serialize to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


def _check_rule(rule: SecurityRule, command: str, config: Optional[RuleConfig]) -> list[Finding]:
    return rule.check(command, config)


def run(
    command: str,
    config: Optional[RuleConfig] = None,
    *,
    max_workers: Optional[int] = None,
) -> Result:
    """Inspect command with every built-in rule.

    Args:
        command: Raw command text
        config: Rule enablement policy; None enables all rules
        max_workers: If set, rules run on a thread pool of this size. Their
            findings are put back into declared rule order before
            aggregation, so the result equals the sequential one.

    Returns:
        Result with findings and aggregate severity
    """
    if max_workers:
        per_rule: dict[int, list[Finding]] = {}
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                executor.submit(_check_rule, rule, command, config): index for index, rule in enumerate(ALL_RULES)
            }
            for future in as_completed(futures):
                per_rule[futures[future]] = future.result()
        findings = [f for index in range(len(ALL_RULES)) for f in per_rule[index]]
    else:
        findings = [f for rule in ALL_RULES for f in _check_rule(rule, command, config)]

    result = Result.from_findings(findings)
    logger.debug(f"Inspected command ({len(command)} chars): {len(result.findings)} finding(s), {result.severity.name}")
    return result


def run_rule(rule: SecurityRule, command: str, config: Optional[RuleConfig] = None) -> Result:
    """Inspect command with a single rule (used by "preexec rules test")."""
    return Result.from_findings(_check_rule(rule, command, config))
