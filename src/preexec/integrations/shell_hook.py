"""Shell hook scripts.

Each script runs `preexec check -- <command>` before the shell executes a
command and acts on the exit code: 20 blocks, 10 asks the user to review.
The scripts are printed by `preexec hook <shell>` for the user to source.
"""

import logging
import shlex

from preexec.core.rules import Severity
from preexec.exceptions import UnsupportedShellError

logger = logging.getLogger(__name__)

SUPPORTED_SHELLS = ("zsh", "bash", "fish", "powershell")

# Accepted spellings -> canonical shell name
_SHELL_ALIASES = {
    "zsh": "zsh",
    "bash": "bash",
    "fish": "fish",
    "powershell": "powershell",
    "pwsh": "powershell",
}

BLOCK_MESSAGE = "PreExec BLOCK: command not executed."
WARN_MESSAGE = "PreExec WARN: review above. Run again to execute."

_ZSH_TEMPLATE = """\
# PreExec hook for zsh
__preexec_cmd() {
  local cmd="$1"
  local code
  %(preexec)s check -- "$cmd"
  code=$?
  if [ "$code" -eq %(block)d ]; then
    echo "%(block_message)s"
    return 1
  fi
  if [ "$code" -eq %(warn)d ]; then
    echo "%(warn_message)s"
    return 1
  fi
  return 0
}
preexec_functions+=(__preexec_cmd)
"""

_BASH_TEMPLATE = """\
# PreExec hook for bash (DEBUG trap)
__preexec_trap() {
  if [ -n "$BASH_COMMAND" ] && [ "$BASH_COMMAND" != "printf" ]; then
    local cmd="$BASH_COMMAND"
    local code
    %(preexec)s check -- "$cmd"
    code=$?
    if [ "$code" -eq %(block)d ]; then
      echo "%(block_message)s"
      return 1
    fi
    if [ "$code" -eq %(warn)d ]; then
      echo "%(warn_message)s"
      return 1
    fi
  fi
}
shopt -s extdebug
trap '__preexec_trap' DEBUG
"""

_FISH_TEMPLATE = """\
# PreExec hook for fish
function __preexec_cmd --on-event fish_preexec
  set -l cmd (string join " " $argv)
  %(preexec)s check -- $cmd
  set -l code $status
  if [ $code -eq %(block)d ]
    echo "%(block_message)s"
    return 1
  end
  if [ $code -eq %(warn)d ]
    echo "%(warn_message)s"
    return 1
  end
  return 0
end
"""

_POWERSHELL_TEMPLATE = """\
# PreExec hook for PowerShell - add to $PROFILE
function preexec_check {
  param([string]$cmd)
  $result = & %(preexec)s check -- $cmd 2>&1
  $exitCode = $LASTEXITCODE
  if ($exitCode -eq %(block)d) {
    Write-Host "%(block_message)s"
    return $false
  }
  if ($exitCode -eq %(warn)d) {
    Write-Host $result
    Write-Host "%(warn_message)s"
    return $false
  }
  return $true
}
Set-PSReadLineKeyHandler -Key Enter -ScriptBlock {
  $line = $null
  $cursor = $null
  [Microsoft.PowerShell.PSConsoleReadLine]::GetBufferState([ref]$line, [ref]$cursor)
  if ([string]::IsNullOrWhiteSpace($line) -or (preexec_check $line)) {
    [Microsoft.PowerShell.PSConsoleReadLine]::AcceptLine()
  }
}
"""

_TEMPLATES = {
    "zsh": _ZSH_TEMPLATE,
    "bash": _BASH_TEMPLATE,
    "fish": _FISH_TEMPLATE,
    "powershell": _POWERSHELL_TEMPLATE,
}


def _quote_path(shell: str, preexec_path: str) -> str:
    if shell == "powershell":
        if any(char in preexec_path for char in " '&$`"):
            return "'" + preexec_path.replace("'", "''") + "'"
        return preexec_path
    return shlex.quote(preexec_path)


def hook_script(shell: str, preexec_path: str = "preexec") -> str:
    """Return the hook script for shell.

    Args:
        shell: zsh, bash, fish, powershell (or pwsh); case-insensitive
        preexec_path: Path of the preexec executable to call

    Returns:
        Script text ready to be sourced

    Raises:
        UnsupportedShellError: If there is no template for shell
    """
    canonical = _SHELL_ALIASES.get(shell.strip().lower())
    if canonical is None:
        raise UnsupportedShellError(shell, SUPPORTED_SHELLS)

    return _TEMPLATES[canonical] % {
        "preexec": _quote_path(canonical, preexec_path or "preexec"),
        "block": Severity.BLOCK.exit_code,
        "warn": Severity.WARN.exit_code,
        "block_message": BLOCK_MESSAGE,
        "warn_message": WARN_MESSAGE,
    }
