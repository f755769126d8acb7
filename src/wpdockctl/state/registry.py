"""Helpers for interacting with the wpdockctl state registry.

The registry directory (``/var/lib/wpdockctl/registry`` by default) stores YAML
artifacts such as ``ports.yml`` (the host port ledger) and ``retained.yml``
(sites deleted with their volumes kept). Writes are atomic so a crash mid-write
never leaves a truncated ledger behind.
"""
from __future__ import annotations

import os
import tempfile
from collections.abc import Iterable, Mapping
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from typing import Any

try:  # PyYAML is a runtime dependency declared in pyproject.toml
    import yaml
except Exception as exc:  # pragma: no cover - import failure handled in tests
    raise RuntimeError(
        "PyYAML is required to manage wpdockctl state. Install with `pip install wpdockctl`."
    ) from exc


class StateRegistryError(RuntimeError):
    """Raised when state registry operations fail."""


@dataclass(frozen=True)
class StateRegistry:
    """High-level interface to the YAML registry."""

    root: Path

    def __post_init__(self) -> None:
        """Normalise the root path after initialisation."""
        object.__setattr__(self, "root", self.root.expanduser())

    def ensure_root(self) -> None:
        """Create the registry directory if it does not yet exist."""
        self.root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------
    def path_for(self, name: str) -> Path:
        """Return the filesystem path for a named registry file."""
        return self.root / name

    def read(self, name: str, *, default: object | None = None) -> object | None:
        """Read a registry file, returning *default* when missing."""
        path = self.path_for(name)
        if not path.exists():
            return deepcopy(default)
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
            raise StateRegistryError(f"Failed to parse registry file {path}: {exc}") from exc
        return data if data is not None else deepcopy(default)

    def write(self, name: str, payload: Mapping[str, object]) -> None:
        """Atomically write *payload* to the given registry file."""
        self.ensure_root()
        path = self.path_for(name)

        tmp_fd, tmp_name = tempfile.mkstemp(dir=str(self.root), prefix=f".{path.name}.")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                yaml.safe_dump(payload, handle, sort_keys=False)
            os.replace(tmp_path, path)
            os.chmod(path, 0o640)
        finally:
            tmp_path.unlink(missing_ok=True)

    # Convenience wrappers -------------------------------------------------
    def read_ports(self) -> Mapping[str, object]:
        """Return the contents of ``ports.yml`` (empty mapping if missing)."""
        value = self.read("ports.yml", default={"ports": []})
        return value if isinstance(value, Mapping) else {"ports": []}

    def write_ports(self, ports: Iterable[object]) -> None:
        """Persist port ledger entries to ``ports.yml``."""
        self.write("ports.yml", {"ports": list(ports)})

    def read_retained(self) -> Mapping[str, object]:
        """Return the contents of ``retained.yml`` (empty mapping if missing)."""
        value = self.read("retained.yml", default={"retained": []})
        return value if isinstance(value, Mapping) else {"retained": []}

    def write_retained(self, entries: Iterable[object]) -> None:
        """Persist retained-volume records to ``retained.yml``."""
        self.write("retained.yml", {"retained": list(entries)})

    # Retained instance helpers ----------------------------------------
    def list_retained(self) -> list[dict[str, Any]]:
        """Return retained-volume records in insertion order."""
        raw = self.read_retained().get("retained", [])
        entries: list[dict[str, Any]] = []
        if isinstance(raw, list):
            for item in raw:
                if isinstance(item, Mapping) and item.get("name"):
                    entries.append(dict(item))
        return entries

    def append_retained(self, entry: Mapping[str, object]) -> None:
        """Record a site whose volumes were kept when it was deleted."""
        name_raw = entry.get("name")
        name = str(name_raw).strip() if name_raw is not None else ""
        if not name:
            raise StateRegistryError("Retained entry missing 'name'.")
        entries = self.list_retained()
        payload = dict(entry)
        payload["name"] = name
        entries.append(payload)
        self.write_retained(entries)


__all__ = ["StateRegistry", "StateRegistryError"]
