"""Docker provider for managing site networks, compose projects and containers."""
from __future__ import annotations

import json
import logging
import subprocess
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

LOGGER = logging.getLogger(__name__)


class DockerError(RuntimeError):
    """Raised when docker operations fail."""


@dataclass(slots=True)
class DockerProvider:
    """Thin wrapper over the ``docker`` CLI used by every lifecycle command."""

    docker_bin: str = "docker"
    network: str = "wordpress-net"

    # Preflight -------------------------------------------------------
    def compose_version(self) -> subprocess.CompletedProcess[str]:
        """Return ``docker compose version`` output; fails if compose is missing."""
        return self._docker(["compose", "version"], error_prefix="docker compose version")

    # Networks --------------------------------------------------------
    def network_exists(self, name: str | None = None) -> bool:
        """Return ``True`` when the named network exists."""
        target = name or self.network
        result = self._docker(
            ["network", "inspect", target],
            check=False,
            error_prefix="docker network inspect",
        )
        return result.returncode == 0

    def ensure_network(self, name: str | None = None) -> bool:
        """Create the shared network if missing; return ``True`` when created."""
        target = name or self.network
        if self.network_exists(target):
            return False
        self._docker(["network", "create", target], error_prefix="docker network create")
        return True

    # Compose projects ------------------------------------------------
    def compose_up(self, compose_file: Path, project: str) -> subprocess.CompletedProcess[str]:
        """Create and start every service of the project in the background."""
        return self._compose(compose_file, project, ["up", "-d"])

    def compose_stop(self, compose_file: Path, project: str) -> subprocess.CompletedProcess[str]:
        """Stop the project's containers without removing them."""
        return self._compose(compose_file, project, ["stop"])

    def compose_restart(
        self,
        compose_file: Path,
        project: str,
    ) -> subprocess.CompletedProcess[str]:
        """Restart every service of the project."""
        return self._compose(compose_file, project, ["restart"])

    def compose_down(
        self,
        compose_file: Path,
        project: str,
        *,
        remove_volumes: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        """Remove the project's containers, and its named volumes when asked."""
        args = ["down"]
        if remove_volumes:
            args.append("--volumes")
        return self._compose(compose_file, project, args)

    def recreate_service(
        self,
        compose_file: Path,
        project: str,
        service: str,
    ) -> subprocess.CompletedProcess[str]:
        """Recreate a single service so it picks up a regenerated definition."""
        return self._compose(
            compose_file,
            project,
            ["up", "-d", "--no-deps", "--force-recreate", service],
        )

    def compose_ps(self, compose_file: Path, project: str) -> list[dict[str, object]]:
        """Return container state records for the project (all, not only running)."""
        result = self._compose(
            compose_file,
            project,
            ["ps", "--all", "--format", "json"],
            check=False,
        )
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise DockerError(f"docker compose ps failed (exit {result.returncode}): {stderr}")
        return _parse_ps_output(result.stdout or "")

    # Containers ------------------------------------------------------
    def restart_container(self, container: str) -> subprocess.CompletedProcess[str]:
        """Restart a single container by name."""
        return self._docker(["restart", container], error_prefix="docker restart")

    def database_ready(self, container: str, command: Sequence[str]) -> bool:
        """Return ``True`` when *command* succeeds inside the database *container*."""
        result = self._docker(
            ["exec", container, *command],
            check=False,
            error_prefix=f"docker exec {command[0]}",
        )
        return result.returncode == 0

    def wait_for_database(
        self,
        container: str,
        *,
        timeout: float,
        interval: float,
        command: Sequence[str],
    ) -> bool:
        """Poll :meth:`database_ready` until it succeeds or *timeout* elapses."""
        deadline = time.monotonic() + timeout
        while True:
            if self.database_ready(container, command):
                return True
            if time.monotonic() >= deadline:
                return False
            LOGGER.debug("Database in %s not ready yet; retrying in %.1fs", container, interval)
            time.sleep(interval)

    # ------------------------------------------------------------------
    def _compose(
        self,
        compose_file: Path,
        project: str,
        args: Sequence[str],
        *,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        command = ["compose", "--file", str(compose_file), "--project-name", project, *args]
        return self._docker(
            command,
            check=check,
            error_prefix=f"docker compose {' '.join(args)}",
        )

    def _docker(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
        error_prefix: str,
    ) -> subprocess.CompletedProcess[str]:
        return self._run_command([self.docker_bin, *args], check=check, error_prefix=error_prefix)

    def _run_command(
        self,
        args: Sequence[str],
        *,
        check: bool,
        error_prefix: str,
    ) -> subprocess.CompletedProcess[str]:
        LOGGER.debug("Running %s", " ".join(args))
        try:
            result = subprocess.run(  # noqa: S603, S607
                list(args),
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise DockerError(f"{args[0]} not found: {exc}") from exc
        if check and result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise DockerError(f"{error_prefix} failed (exit {result.returncode}): {message}")
        return result


def _parse_ps_output(output: str) -> list[dict[str, object]]:
    """Parse ``docker compose ps --format json`` output.

    Compose v2 releases emit either one JSON array or one JSON object per line.
    """
    text = output.strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise DockerError(f"Unexpected docker compose ps output: {exc}") from exc
        return [item for item in payload if isinstance(item, dict)]
    records: list[dict[str, object]] = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            item = json.loads(line)
        except json.JSONDecodeError as exc:
            raise DockerError(f"Unexpected docker compose ps output: {exc}") from exc
        if isinstance(item, dict):
            records.append(item)
    return records


__all__ = ["DockerError", "DockerProvider"]
