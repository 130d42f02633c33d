"""Exceptions raised by preexec collaborators.

Rules and the engine report problems as findings and never raise. Loading a
config file or picking a shell can fail, and those failures surface here.
"""

from typing import Optional


class ConfigurationError(Exception):
    """The config file could not be parsed or has the wrong shape.

    ``file_path`` and ``line_number`` are filled in when known and appended
    to the message, e.g. ``Invalid YAML syntax (config.yaml, line 2)``.
    """

    def __init__(self, message: str, file_path: Optional[str] = None, line_number: Optional[int] = None):
        self.message = message
        self.file_path = file_path
        self.line_number = line_number
        super().__init__(str(self))

    def __str__(self) -> str:
        where = []
        if self.file_path:
            where.append(self.file_path)
        if self.line_number:
            where.append(f"line {self.line_number}")
        if not where:
            return self.message
        return f"{self.message} ({', '.join(where)})"


class UnsupportedShellError(ValueError):
    """No hook template or history reader exists for ``shell``."""

    def __init__(self, shell: str, supported: tuple[str, ...] = ()):
        self.shell = shell
        self.supported = supported
        message = f"unsupported shell: {shell}"
        if supported:
            message += f" (use {', '.join(supported)})"
        super().__init__(message)
