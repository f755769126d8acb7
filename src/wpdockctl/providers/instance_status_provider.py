"""Derive a site's lifecycle state from the container runtime."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .docker import DockerError, DockerProvider


@dataclass(frozen=True)
class InstanceStatus:
    """Represents the runtime status of a WordPress site."""

    state: str
    detail: str = ""


@dataclass(slots=True)
class InstanceStatusProvider:
    """Return status information for sites.

    State is never persisted; it is read from ``docker compose ps`` on demand:

    * ``running``: every container of the project is running.
    * ``partial``: some, but not all, containers are running.
    * ``stopped``: containers exist but none are running.
    * ``absent``: no containers exist for the project.
    * ``invalid``: the directory has no compose file.
    * ``unknown``: the runtime could not be queried.
    """

    docker: DockerProvider

    def status(self, compose_file: Path, project: str) -> InstanceStatus:
        """Return the status of *project* defined by *compose_file*."""
        if not compose_file.is_file():
            return InstanceStatus(state="invalid", detail=f"{compose_file.name} missing")
        try:
            containers = self.docker.compose_ps(compose_file, project)
        except DockerError as exc:
            return InstanceStatus(state="unknown", detail=str(exc))

        if not containers:
            return InstanceStatus(state="absent", detail="no containers")

        states = {
            str(item.get("Service") or item.get("Name") or "?"): str(item.get("State", "")).lower()
            for item in containers
        }
        running = [service for service, state in states.items() if state == "running"]
        detail = ", ".join(f"{service}={state or 'unknown'}" for service, state in sorted(states.items()))
        if len(running) == len(states):
            return InstanceStatus(state="running", detail=detail)
        if running:
            return InstanceStatus(state="partial", detail=detail)
        return InstanceStatus(state="stopped", detail=detail)


__all__ = ["InstanceStatus", "InstanceStatusProvider"]
