"""Text sources for the engine.

Commands reach the engine from files, markdown code blocks, shell history,
the clipboard and git's staging area. Everything here is plain I/O; the
engine never sees where a line came from.
"""

import logging
import os
import shutil
import subprocess
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Optional, Union

from preexec.exceptions import UnsupportedShellError

logger = logging.getLogger(__name__)

HISTORY_SHELLS = ("zsh", "bash")

HISTORY_FILES = {
    "zsh": ".zsh_history",
    "bash": ".bash_history",
}

DEFAULT_HISTORY_LINES = 1000

# Clipboard readers, tried in order
CLIPBOARD_COMMANDS = (
    ["pbpaste"],
    ["wl-paste", "--no-newline"],
    ["xclip", "-selection", "clipboard", "-o"],
    ["xsel", "--clipboard", "--output"],
)

SUBPROCESS_TIMEOUT = 5.0

# Directories never worth scanning
EXCLUDE_DIRS = {".git", ".hg", ".svn", ".venv", "node_modules", "__pycache__"}


def extract_code_blocks(text: str) -> str:
    """Return only the lines inside fenced (```) markdown code blocks."""
    out = []
    in_block = False
    for line in text.split("\n"):
        if line.startswith("```"):
            in_block = not in_block
            continue
        if in_block:
            out.append(line)
    return "\n".join(out)


def iter_command_lines(text: str) -> Iterator[tuple[int, str]]:
    """Yield (1-based line number, stripped line), skipping blanks and # comments."""
    for number, line in enumerate(text.split("\n"), start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        yield number, line


def read_text(path: Union[str, Path]) -> str:
    """Read a file as UTF-8, replacing undecodable bytes.

    Raises:
        OSError: If the file cannot be read
    """
    return Path(path).read_text(encoding="utf-8", errors="replace")


def iter_files(paths: Iterable[Union[str, Path]]) -> Iterator[Path]:
    """Yield files named in paths, walking directories in sorted order.

    Raises:
        FileNotFoundError: If a path does not exist
    """
    for raw in paths:
        path = Path(raw)
        if not path.exists():
            raise FileNotFoundError(f"No such file or directory: {path}")
        if path.is_file():
            yield path
            continue
        for child in sorted(path.rglob("*")):
            if not child.is_file():
                continue
            if any(part in EXCLUDE_DIRS for part in child.relative_to(path).parts):
                continue
            yield child


def history_path(shell: str) -> Path:
    """Return the history file for shell ($HISTFILE wins when set).

    Raises:
        UnsupportedShellError: If shell is not zsh or bash
    """
    if shell not in HISTORY_FILES:
        raise UnsupportedShellError(shell, HISTORY_SHELLS)
    histfile = os.environ.get("HISTFILE")
    if histfile and Path(histfile).name == HISTORY_FILES[shell]:
        return Path(histfile).expanduser()
    return Path.home() / HISTORY_FILES[shell]


def _strip_zsh_metadata(line: str) -> str:
    # Extended history: ": <start>:<elapsed>;<command>"
    if line.startswith(":"):
        _, sep, command = line.partition(";")
        if sep:
            return command
    return line


def read_history(
    shell: str = "zsh",
    last: int = DEFAULT_HISTORY_LINES,
    path: Optional[Union[str, Path]] = None,
) -> list[tuple[int, str]]:
    """Read the last N history entries.

    Args:
        shell: "zsh" or "bash"
        last: Number of trailing history lines to return
        path: History file (default: history_path(shell))

    Returns:
        List of (1-based line number, command) with blank lines removed

    Raises:
        UnsupportedShellError: If shell is not zsh or bash
        OSError: If the history file cannot be read
    """
    if shell not in HISTORY_FILES:
        raise UnsupportedShellError(shell, HISTORY_SHELLS)
    if path is None:
        path = history_path(shell)

    lines = read_text(path).split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    start = max(len(lines) - last, 0)

    entries = []
    for number in range(start, len(lines)):
        line = lines[number]
        if shell == "zsh":
            line = _strip_zsh_metadata(line)
        line = line.strip()
        if line:
            entries.append((number + 1, line))
    logger.debug(f"Read {len(entries)} history entries from {path}")
    return entries


def read_clipboard() -> Optional[str]:
    """Return clipboard text using the first available clipboard tool.

    Returns:
        Clipboard contents (stripped), or None if no tool is available or
        every tool failed
    """
    for argv in CLIPBOARD_COMMANDS:
        tool = shutil.which(argv[0])
        if tool is None:
            continue
        try:
            result = subprocess.run(
                [tool, *argv[1:]],
                capture_output=True,
                text=True,
                timeout=SUBPROCESS_TIMEOUT,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.warning(f"{argv[0]} timed out after {SUBPROCESS_TIMEOUT}s")
            continue
        except OSError as e:
            logger.warning(f"Failed to run {argv[0]}: {e}")
            continue
        if result.returncode == 0:
            return result.stdout.strip()
        logger.debug(f"{argv[0]} returned non-zero exit: {result.returncode}")
    return None


def staged_files() -> list[str]:
    """Return paths added, copied or modified in the git index.

    Raises:
        RuntimeError: If git is missing or this is not a repository
    """
    try:
        result = subprocess.run(
            ["git", "diff", "--cached", "--name-only", "--diff-filter=ACM"],
            capture_output=True,
            text=True,
            timeout=SUBPROCESS_TIMEOUT,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise RuntimeError(f"git unavailable: {e}") from e

    if result.returncode != 0:
        raise RuntimeError(f"not a git repo or no staged files: {result.stderr.strip()}")

    return [line.strip() for line in result.stdout.splitlines() if line.strip()]
