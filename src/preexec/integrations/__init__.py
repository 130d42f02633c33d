"""Collaborators that feed text to the engine or act on its results.

- audit: JSONL audit trail of check decisions
- shell_hook: Hook scripts for zsh, bash, fish and PowerShell
- sources: Files, markdown code blocks, shell history, clipboard, git staging
"""

from preexec.integrations.audit import AuditEvent, AuditLogger, get_audit_logger
from preexec.integrations.shell_hook import SUPPORTED_SHELLS, hook_script
from preexec.integrations.sources import (
    extract_code_blocks,
    iter_command_lines,
    iter_files,
    read_clipboard,
    read_history,
    staged_files,
)

__all__ = [
    # Audit
    "AuditEvent",
    "AuditLogger",
    "get_audit_logger",
    # Shell hooks
    "SUPPORTED_SHELLS",
    "hook_script",
    # Sources
    "extract_code_blocks",
    "iter_command_lines",
    "iter_files",
    "read_clipboard",
    "read_history",
    "staged_files",
]
