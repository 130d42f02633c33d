"""
preexec - inspect shell commands before they run.

Package structure:
- preexec.core: Inspection engine (rules, engine, rewrite, urls)
- preexec.integrations: Drivers' collaborators (audit, shell hooks, text sources)
- preexec.setup: Configuration loading and writing

Public API:
- run(): Inspect a command, returns a Result
- Result: Findings plus aggregate severity
- Finding: A single rule hit
- Severity: PASS / WARN / BLOCK (exit codes 0 / 10 / 20)
- safe_rewrite(): Strip escapes and invisible characters
"""

from preexec.core.engine import Result, run
from preexec.core.rewrite import safe_rewrite
from preexec.core.rules import Finding, Severity

__version__ = "0.1.0"

__all__ = [
    "run",
    "Result",
    "Finding",
    "Severity",
    "safe_rewrite",
]
