"""On-disk layout of site directories under the sites root."""
from __future__ import annotations

import hashlib
import re
import shutil
from dataclasses import dataclass
from pathlib import Path

from .ports import COMPOSE_FILENAME

CONFIG_FILENAME = "config.env"
DB_INIT_FILENAME = "init.sql"

_SITE_NAME_RE = re.compile(r"[a-z0-9-]+")


@dataclass(slots=True)
class SitePaths:
    """Filesystem paths associated with a site."""

    root: Path
    config_file: Path
    compose_file: Path
    db_init_file: Path


def validate_site_name(name: str) -> str:
    """Validate and normalise a site name."""
    normalised = name.strip()
    if not normalised:
        raise ValueError("Site name must be a non-empty string.")
    if not _SITE_NAME_RE.fullmatch(normalised):
        raise ValueError("Site name must match [a-z0-9-]+.")
    if normalised.startswith("-"):
        raise ValueError("Site name cannot start with a hyphen.")
    return normalised


def file_digest(path: Path) -> str:
    """Return the SHA-256 hex digest of *path*'s bytes."""
    hasher = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(8192), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


@dataclass(frozen=True)
class SiteStore:
    """Enumerate and manage site directories under *root*."""

    root: Path

    def paths(self, name: str) -> SitePaths:
        """Return the paths for site *name* (whether or not it exists)."""
        site_root = self.root / name
        return SitePaths(
            root=site_root,
            config_file=site_root / CONFIG_FILENAME,
            compose_file=site_root / COMPOSE_FILENAME,
            db_init_file=site_root / DB_INIT_FILENAME,
        )

    def exists(self, name: str) -> bool:
        """Return ``True`` when the directory for *name* exists."""
        return self.paths(name).root.is_dir()

    def list_names(self) -> list[str]:
        """Return site directory names sorted alphabetically.

        Entries are not validated; any directory under the root is listed.
        """
        if not self.root.is_dir():
            return []
        return sorted(entry.name for entry in self.root.iterdir() if entry.is_dir())

    def create(self, name: str) -> SitePaths:
        """Create the directory for *name*; fail if it already exists."""
        paths = self.paths(name)
        self.root.mkdir(parents=True, exist_ok=True)
        paths.root.mkdir(mode=0o750)
        return paths

    def remove(self, name: str) -> None:
        """Remove the directory for *name* and everything in it."""
        shutil.rmtree(self.paths(name).root)


__all__ = [
    "CONFIG_FILENAME",
    "DB_INIT_FILENAME",
    "SitePaths",
    "SiteStore",
    "file_digest",
    "validate_site_name",
]
