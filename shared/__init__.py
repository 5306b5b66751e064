"""Shared utilities for the n8n bootstrap tools."""

from .errors import BootstrapError
from .shell import CommandFailed, CommandResult, CommandRunner, SubprocessRunner

__all__ = [
    "BootstrapError",
    "CommandFailed",
    "CommandResult",
    "CommandRunner",
    "SubprocessRunner",
]
