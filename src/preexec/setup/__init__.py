"""Configuration utilities.

This module contains configuration management:
- config_writer: YAML config loading, validation and atomic writes
"""

from preexec.setup.config_writer import (
    PreexecConfig,
    WriteResult,
    default_config_path,
    load_config,
    write_config,
)

__all__ = [
    "PreexecConfig",
    "WriteResult",
    "default_config_path",
    "load_config",
    "write_config",
]
