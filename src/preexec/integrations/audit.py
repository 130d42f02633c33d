"""Audit trail for check decisions.

With ``audit: true`` in the config, every ``preexec check`` appends one JSON
line to the audit log. The log lives in the platform data directory
(``audit-YYYY-MM-DD.jsonl``, one file per day) unless ``PREEXEC_AUDIT_LOG``
points elsewhere: a ``.jsonl`` path is used as is, the null device turns
logging off, and any other path is a directory for the daily files.

Commands are redacted and truncated before they are written. A failed write
is logged and reported as ``False``; it never fails the check.
"""

import json
import logging
import os
import re
import sys
import threading
from contextlib import suppress
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from platformdirs import user_data_dir

logger = logging.getLogger(__name__)

AUDIT_ENV_VAR = "PREEXEC_AUDIT_LOG"
APP_NAME = "preexec"
MAX_COMMAND_LENGTH = 500
REDACTED = "***REDACTED***"

# (pattern, replacement) pairs applied in order
SECRET_PATTERNS = (
    (re.compile(r"(password|passwd|pwd|token|secret|api[-_]?key)=\S+", re.IGNORECASE), rf"\1={REDACTED}"),
    (re.compile(r"(Authorization:\s*Bearer\s+)\S+", re.IGNORECASE), rf"\1{REDACTED}"),
    (re.compile(r"(--(password|passwd|token|secret|api[-_]?key)\s+)\S+", re.IGNORECASE), rf"\1{REDACTED}"),
    (re.compile(r"(https?://[^\s:/@]+:)[^\s@/]+@", re.IGNORECASE), rf"\1{REDACTED}@"),
)


def get_null_device() -> str:
    return "NUL" if sys.platform == "win32" else "/dev/null"


def scrub_secrets(command: str) -> str:
    """Replace passwords, tokens and URL credentials in ``command``."""
    for pattern, replacement in SECRET_PATTERNS:
        command = pattern.sub(replacement, command)
    return command


def resolve_log_path(env_value: Optional[str] = None) -> Path:
    """Where audit lines go, given the value of PREEXEC_AUDIT_LOG (or None)."""
    daily_name = f"audit-{datetime.now():%Y-%m-%d}.jsonl"
    if not env_value:
        return Path(user_data_dir(APP_NAME)) / daily_name

    path = Path(env_value).expanduser()
    if env_value in (get_null_device(), "NUL") or path.suffix == ".jsonl":
        return path
    return path / daily_name


@dataclass
class AuditEvent:
    timestamp: str
    event_type: str
    command: str
    severity: str
    rule_ids: list[str]
    decision: str
    source: str
    cwd: Optional[str] = None
    execution_time_ms: Optional[float] = None

    @classmethod
    def for_check(
        cls,
        command: str,
        severity: str,
        rule_ids: list[str],
        decision: str,
        source: str,
        execution_time_ms: Optional[float] = None,
    ) -> "AuditEvent":
        """Build an event stamped now, with the command scrubbed and truncated."""
        return cls(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event_type=severity.lower(),
            command=scrub_secrets(command)[:MAX_COMMAND_LENGTH],
            severity=severity,
            rule_ids=list(rule_ids),
            decision=decision,
            source=source,
            cwd=os.getcwd(),
            execution_time_ms=execution_time_ms,
        )

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)


class AuditLogger:
    """Appends AuditEvents to a JSONL file; safe to share between threads."""

    def __init__(self, log_file: Optional[Path] = None):
        self.log_file = log_file if log_file is not None else resolve_log_path(os.environ.get(AUDIT_ENV_VAR))
        self._lock = threading.Lock()
        # /dev may not be writable; an unwritable parent shows up on first write
        with suppress(OSError):
            self.log_file.parent.mkdir(parents=True, exist_ok=True)

    def log_event(self, event: AuditEvent) -> bool:
        line = event.to_json() + "\n"
        try:
            with self._lock, self.log_file.open("a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            logger.warning(f"Failed to write audit log {self.log_file}: {e}")
            return False
        return True

    def log_check(
        self,
        command: str,
        severity: str,
        rule_ids: list[str],
        decision: str,
        source: str = "argv",
        execution_time_ms: Optional[float] = None,
    ) -> bool:
        """Record one check.

        Args:
            command: Inspected command
            severity: PASS, WARN or BLOCK
            rule_ids: Rules that reported findings
            decision: "allow", "confirm" or "block"
            source: "argv" or "clipboard"
            execution_time_ms: Time spent inspecting

        Returns:
            True if the line reached the log file
        """
        return self.log_event(
            AuditEvent.for_check(command, severity, rule_ids, decision, source, execution_time_ms)
        )


_audit_logger: Optional[AuditLogger] = None
_audit_logger_lock = threading.Lock()


def get_audit_logger() -> AuditLogger:
    """Process-wide AuditLogger, created on first use."""
    global _audit_logger  # noqa: PLW0603

    if _audit_logger is None:
        with _audit_logger_lock:
            if _audit_logger is None:
                _audit_logger = AuditLogger()
    return _audit_logger


def reset_audit_logger() -> None:
    """Forget the shared logger so the next call re-reads PREEXEC_AUDIT_LOG."""
    global _audit_logger  # noqa: PLW0603
    with _audit_logger_lock:
        _audit_logger = None
