"""Enumerations for CLI exit codes."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Well-known exit codes enforced across the CLI.

    Every failure class (validation, missing dependency, missing or existing
    instance, privilege, runtime error) maps to ``FAILURE``; the category is
    recorded in the operation log instead.
    """

    OK = 0
    FAILURE = 1
