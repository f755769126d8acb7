"""Startup checks run before any command touches the system."""
from __future__ import annotations

import os
import shutil
from pathlib import Path

from .providers.docker import DockerError, DockerProvider


class PreflightError(RuntimeError):
    """Raised when the environment cannot run wpdockctl."""


def require_privileges() -> None:
    """Fail unless running with an effective uid of 0."""
    geteuid = getattr(os, "geteuid", None)
    if geteuid is not None and geteuid() != 0:
        raise PreflightError("wpdockctl must be run as root (try sudo).")


def check_dependencies(docker: DockerProvider) -> None:
    """Fail unless the docker binary and its compose plugin are available."""
    binary = docker.docker_bin
    path = Path(binary)
    if path.is_absolute():
        present = path.exists() and os.access(path, os.X_OK)
    else:
        present = shutil.which(binary) is not None
    if not present:
        raise PreflightError(
            f"'{binary}' was not found. Install Docker Engine: https://docs.docker.com/engine/install/"
        )
    try:
        docker.compose_version()
    except DockerError as exc:
        raise PreflightError(
            "The docker compose plugin is not available. Install docker-compose-plugin "
            f"and retry ({exc})."
        ) from exc


__all__ = ["PreflightError", "check_dependencies", "require_privileges"]
