"""Configuration loading and writing.

The config file is YAML. It decides which rules run (the RuleConfig the
engine queries) and carries driver preferences. Writes are atomic with
timestamped backups.

Example config.yaml:
    mode: warn
    confirm_on_warn: true
    ascii_only_domains: true
    audit: false
    allow:
      domains: [github.com, raw.githubusercontent.com]
    deny:
      domains: [bit.ly, tinyurl.com]
    rules:
      pipe_to_shell: true
      subshell_command: false
"""

import logging
import os
import sys
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from platformdirs import user_config_dir

from preexec.core.rules import ALL_RULES
from preexec.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# File permissions (Unix only - ignored on Windows)
CONFIG_DIR_PERMS = 0o755  # rwxr-xr-x
CONFIG_FILE_PERMS = 0o644  # rw-r--r--

CONFIG_ENV_VAR = "PREEXEC_CONFIG"

MODES = ("pass", "warn", "block")

DEFAULT_MODE = "warn"

# Every built-in rule is on unless the config turns it off
DEFAULT_RULES: dict[str, bool] = {rule.config_key: True for rule in ALL_RULES}

DEFAULT_ALLOW_DOMAINS = ["github.com", "raw.githubusercontent.com"]
DEFAULT_DENY_DOMAINS = ["bit.ly", "tinyurl.com"]


def default_config_path() -> Path:
    """Return the config path: $PREEXEC_CONFIG, else the platform config dir.

    Unix: ~/.config/preexec/config.yaml
    macOS: ~/Library/Application Support/preexec/config.yaml
    Windows: %LOCALAPPDATA%\\preexec\\config.yaml
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return Path(user_config_dir("preexec")) / "config.yaml"


def safe_mkdir(path: Path, mode: int = CONFIG_DIR_PERMS) -> None:
    """Create directory with platform-appropriate permissions."""
    path.mkdir(parents=True, exist_ok=True)
    if sys.platform != "win32":
        # Permission setting failed - not critical for config files
        with suppress(OSError, NotImplementedError):
            path.chmod(mode)


def safe_chmod(path: Path, mode: int) -> None:
    """Set file permissions (Unix only)."""
    if sys.platform != "win32":
        with suppress(OSError, NotImplementedError):
            path.chmod(mode)


@dataclass(frozen=True)
class PreexecConfig:
    """Effective preexec configuration.

    Implements the RuleConfig capability: enabled() is what the engine
    queries before running each rule.

    Attributes:
        mode: Default driver stance ("pass", "warn" or "block")
        confirm_on_warn: Hooks ask before running WARN commands
        ascii_only_domains: Prefer ASCII hosts when showing URLs
        audit: Write check decisions to the audit log
        allow_domains: Domains the user trusts
        deny_domains: Domains the user never trusts
        rules: Rule config key -> enabled
    """

    mode: str = DEFAULT_MODE
    confirm_on_warn: bool = True
    ascii_only_domains: bool = True
    audit: bool = False
    allow_domains: list[str] = field(default_factory=lambda: list(DEFAULT_ALLOW_DOMAINS))
    deny_domains: list[str] = field(default_factory=lambda: list(DEFAULT_DENY_DOMAINS))
    rules: dict[str, bool] = field(default_factory=lambda: dict(DEFAULT_RULES))

    def enabled(self, rule_name: str) -> bool:
        """Return whether a rule runs; names absent from the config are enabled."""
        return self.rules.get(rule_name, True) is not False

    def to_dict(self) -> dict[str, Any]:
        """Return the YAML structure for this config."""
        return {
            "mode": self.mode,
            "confirm_on_warn": self.confirm_on_warn,
            "ascii_only_domains": self.ascii_only_domains,
            "audit": self.audit,
            "allow": {"domains": list(self.allow_domains)},
            "deny": {"domains": list(self.deny_domains)},
            "rules": dict(self.rules),
        }


@dataclass(frozen=True)
class WriteResult:
    """Result of config file write operation.

    Attributes:
        success: Whether write completed successfully
        config_path: Path where config was written
        backup_path: Path to backup file (None if no backup created)
        error: Error message if write failed (None on success)
        validation_errors: List of validation errors (empty on success)
    """

    success: bool
    config_path: Path
    backup_path: Optional[Path]
    error: Optional[str]
    validation_errors: list[str] = field(default_factory=list)


def validate_config_yaml(config_dict: dict[str, Any]) -> list[str]:  # noqa: PLR0912 - Validation logic
    """Validate config structure.

    Args:
        config_dict: Parsed YAML mapping

    Returns:
        List of validation errors (empty if valid)
    """
    errors: list[str] = []

    if "mode" in config_dict and config_dict["mode"] not in MODES:
        errors.append(f"mode must be one of: {', '.join(MODES)}")

    for flag in ("confirm_on_warn", "ascii_only_domains", "audit"):
        if flag in config_dict and not isinstance(config_dict[flag], bool):
            errors.append(f"{flag} must be boolean")

    for section in ("allow", "deny"):
        if section not in config_dict or config_dict[section] is None:
            continue
        value = config_dict[section]
        if not isinstance(value, dict):
            errors.append(f"{section} must be a mapping")
            continue
        domains = value.get("domains", [])
        if domains is not None and (
            not isinstance(domains, list) or not all(isinstance(d, str) for d in domains)
        ):
            errors.append(f"{section}.domains must be a list of strings")

    rules = config_dict.get("rules")
    if rules is not None:
        if not isinstance(rules, dict):
            errors.append("rules must be a mapping of rule name to boolean")
        else:
            for name, value in rules.items():
                if not isinstance(value, bool):
                    errors.append(f"rules.{name} must be boolean")

    return errors


def config_from_dict(data: dict[str, Any]) -> PreexecConfig:
    """Build a PreexecConfig from a validated mapping, filling in defaults."""
    rules = dict(DEFAULT_RULES)
    for name, value in (data.get("rules") or {}).items():
        if name not in DEFAULT_RULES:
            logger.warning(f"Unknown rule in config: {name}")
        rules[name] = value

    allow = data.get("allow") or {}
    deny = data.get("deny") or {}
    return PreexecConfig(
        mode=data.get("mode") or DEFAULT_MODE,
        confirm_on_warn=data.get("confirm_on_warn", True),
        ascii_only_domains=data.get("ascii_only_domains", True),
        audit=data.get("audit", False),
        allow_domains=list(allow.get("domains") or []),
        deny_domains=list(deny.get("domains") or []),
        rules=rules,
    )


def load_config(config_path: Optional[Union[str, Path]] = None) -> PreexecConfig:
    """Load configuration from YAML.

    Args:
        config_path: Config file path (default: default_config_path())

    Returns:
        PreexecConfig; defaults when the file does not exist

    Raises:
        ConfigurationError: If the file is unreadable, not valid YAML,
                            or structurally invalid
    """
    path = Path(config_path) if config_path else default_config_path()

    if not path.exists():
        logger.debug(f"No config at {path}, using defaults")
        return PreexecConfig()

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.MarkedYAMLError as e:
        line = e.problem_mark.line + 1 if e.problem_mark else None
        raise ConfigurationError(f"Invalid YAML syntax: {e.problem}", file_path=str(path), line_number=line)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML syntax: {e}", file_path=str(path))
    except OSError as e:
        raise ConfigurationError(f"Failed to read config file: {e}", file_path=str(path))

    if data is None:
        return PreexecConfig()

    if not isinstance(data, dict):
        raise ConfigurationError("YAML root must be a dictionary", file_path=str(path))

    errors = validate_config_yaml(data)
    if errors:
        raise ConfigurationError("; ".join(errors), file_path=str(path))

    logger.info(f"Loaded config from {path}")
    return config_from_dict(data)


def create_backup(config_path: Path) -> Optional[Path]:
    """Create timestamped backup of existing config file.

    Returns:
        Path to backup file, or None if there was nothing to back up or
        the copy failed

    Example:
        >>> create_backup(Path("config.yaml"))  # config.yaml.backup.20250107_120530
    """
    if not config_path.exists():
        return None

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    backup_path = config_path.with_suffix(f"{config_path.suffix}.backup.{timestamp}")

    try:
        backup_path.write_text(config_path.read_text(encoding="utf-8"), encoding="utf-8")
        return backup_path
    except OSError as e:
        logger.warning(f"Failed to create backup: {e}")
        return None


def write_yaml_atomic(path: Path, data: dict[str, Any]) -> None:
    """Write YAML file atomically using temp file + rename.

    Raises:
        OSError: If write or rename fails
        yaml.YAMLError: If serialization fails
    """
    temp_path = path.with_suffix(path.suffix + ".tmp")

    try:
        with temp_path.open("w", encoding="utf-8") as f:
            yaml.dump(
                data,
                f,
                default_flow_style=False,
                sort_keys=False,
                allow_unicode=True,
            )

        safe_chmod(temp_path, CONFIG_FILE_PERMS)
        temp_path.replace(path)
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


def write_config(
    config: Optional[PreexecConfig] = None,
    config_path: Optional[Path] = None,
    create_backup_flag: bool = True,
) -> WriteResult:
    """Write a configuration file.

    Args:
        config: Configuration to write (default: PreexecConfig())
        config_path: Destination (default: default_config_path())
        create_backup_flag: Whether to back up an existing file first

    Returns:
        WriteResult with success status and paths (never raises)
    """
    if config is None:
        config = PreexecConfig()
    if config_path is None:
        config_path = default_config_path()

    backup_path: Optional[Path] = None

    try:
        config_dict = config.to_dict()

        validation_errors = validate_config_yaml(config_dict)
        if validation_errors:
            return WriteResult(
                success=False,
                config_path=config_path,
                backup_path=None,
                error="Config validation failed",
                validation_errors=validation_errors,
            )

        if create_backup_flag and config_path.exists():
            backup_path = create_backup(config_path)
            if backup_path:
                logger.info(f"Created backup: {backup_path}")

        safe_mkdir(config_path.parent, CONFIG_DIR_PERMS)
        write_yaml_atomic(config_path, config_dict)
        logger.info(f"Config written to {config_path}")

        return WriteResult(
            success=True,
            config_path=config_path,
            backup_path=backup_path,
            error=None,
        )

    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to write config: {e}")
        return WriteResult(
            success=False,
            config_path=config_path,
            backup_path=backup_path,
            error=str(e),
        )
