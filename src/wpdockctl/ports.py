"""Host port allocation helpers for wpdockctl.

Ports are allocated monotonically: the next port is one above the highest port
known from the ledger (``ports.yml``), from sites deleted with their volumes
kept (``retained.yml``) or from the compose files already rendered under the
sites root. Callers hold the global lock while reserving so two concurrent
``create`` runs never compute the same port.
"""
from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .state import StateRegistry

COMPOSE_FILENAME = "docker-compose.yml"

# Matches published port entries such as ``- "8081:80"`` or ``- 127.0.0.1:8081:80/tcp``.
_HOST_PORT_RE = re.compile(
    r"""^\s*-\s*["']?(?:[\d.]+:)?(\d{1,5}):\d{1,5}(?:/(?:tcp|udp))?["']?\s*$""",
    re.MULTILINE,
)


class PortsRegistryError(RuntimeError):
    """Raised when port allocation or release fails."""


def compose_file_ports(compose_file: Path) -> list[int]:
    """Return the host ports published by a single compose file."""
    try:
        text = compose_file.read_text(encoding="utf-8")
    except OSError:
        return []
    return [int(match) for match in _HOST_PORT_RE.findall(text)]


def scan_compose_ports(sites_root: Path) -> list[int]:
    """Return every host port published by compose files under *sites_root*."""
    if not sites_root.is_dir():
        return []
    ports: list[int] = []
    for compose_file in sorted(sites_root.glob(f"*/{COMPOSE_FILENAME}")):
        ports.extend(compose_file_ports(compose_file))
    return ports


@dataclass(slots=True)
class PortsRegistry:
    """Manage the host port ledger stored under ``ports.yml``."""

    registry: StateRegistry
    base_port: int

    def __post_init__(self) -> None:
        """Validate initialiser parameters."""
        if self.base_port < 1:
            raise PortsRegistryError("Base port must be a positive integer.")
        self.registry.ensure_root()

    # ------------------------------------------------------------------
    def list_entries(self) -> list[dict[str, Any]]:
        """Return the current port reservations sorted by port."""
        raw = self.registry.read_ports()
        ports = raw.get("ports", [])
        entries: list[dict[str, Any]] = []
        if isinstance(ports, Iterable):
            for item in ports:
                if not isinstance(item, dict):
                    continue
                name = str(item.get("name", "")).strip()
                port_value = item.get("port")
                if not name:
                    continue
                if not isinstance(port_value, (int, str)):
                    continue
                try:
                    port = int(port_value)
                except ValueError:
                    continue
                entries.append({"name": name, "port": port})
        entries.sort(key=lambda entry: entry["port"])
        return entries

    def get_port(self, name: str) -> int | None:
        """Return the reserved port for *name*, if present."""
        normalized = _normalize_name(name)
        for entry in self.list_entries():
            if entry["name"] == normalized:
                return entry["port"]
        return None

    def retained_ports(self) -> list[int]:
        """Return ports recorded for deleted sites whose volumes were kept."""
        ports: list[int] = []
        for entry in self.registry.list_retained():
            value = entry.get("port")
            if isinstance(value, int) and not isinstance(value, bool):
                ports.append(value)
        return ports

    def next_port(self, scanned: Iterable[int] = ()) -> int:
        """Return ``max(known ports) + 1`` or the base port when none exist."""
        known = {entry["port"] for entry in self.list_entries()}
        known.update(self.retained_ports())
        known.update(int(port) for port in scanned)
        if not known:
            return self.base_port
        return max(max(known) + 1, self.base_port)

    def reserve(self, name: str, *, scanned: Iterable[int] = ()) -> int:
        """Reserve the next port for *name* and return the assigned value."""
        normalized = _normalize_name(name)
        entries = self.list_entries()
        if any(entry["name"] == normalized for entry in entries):
            raise PortsRegistryError(f"Port already reserved for site '{normalized}'.")

        port = self.next_port(scanned)
        if port > 65535:
            raise PortsRegistryError("No host ports left above the configured base.")

        entries.append({"name": normalized, "port": port})
        self.registry.write_ports(entries)
        return port

    def release(self, name: str) -> None:
        """Release the port reserved for *name*."""
        normalized = _normalize_name(name)
        entries = self.list_entries()
        filtered = [entry for entry in entries if entry["name"] != normalized]
        if len(filtered) == len(entries):
            raise PortsRegistryError(f"No port reservation found for site '{normalized}'.")
        self.registry.write_ports(filtered)


def _normalize_name(name: str) -> str:
    """Return a normalised site name."""
    normalized = name.strip()
    if not normalized:
        raise PortsRegistryError("Site name must be a non-empty string.")
    return normalized


__all__ = [
    "COMPOSE_FILENAME",
    "PortsRegistry",
    "PortsRegistryError",
    "compose_file_ports",
    "scan_compose_ports",
]
