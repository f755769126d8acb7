"""Per-site configuration: PHP limits and the WordPress debug flag.

Effective settings for a site are computed by a layered merge::

    built-in defaults  ->  global defaults file  ->  site config.env

Later layers win key by key. Both files are shell-style ``KEY=value`` files and
either may be missing. Nothing here reads from or writes to ``os.environ``;
the result is an immutable :class:`SiteConfig` handed to the renderer.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import dotenv_values

UPLOAD_MAX_FILESIZE = "UPLOAD_MAX_FILESIZE"
POST_MAX_SIZE = "POST_MAX_SIZE"
MEMORY_LIMIT = "MEMORY_LIMIT"
WP_DEBUG = "WP_DEBUG"

DEFAULT_SITE_CONFIG: dict[str, str] = {
    UPLOAD_MAX_FILESIZE: "256M",
    POST_MAX_SIZE: "256M",
    MEMORY_LIMIT: "256M",
    WP_DEBUG: "false",
}

_TRUTHY = {"1", "true", "yes", "on"}


class SiteConfigError(RuntimeError):
    """Raised when a site configuration file cannot be read or written."""


@dataclass(frozen=True)
class SiteConfig:
    """Effective configuration for a single site."""

    upload_max_filesize: str = DEFAULT_SITE_CONFIG[UPLOAD_MAX_FILESIZE]
    post_max_size: str = DEFAULT_SITE_CONFIG[POST_MAX_SIZE]
    memory_limit: str = DEFAULT_SITE_CONFIG[MEMORY_LIMIT]
    wp_debug: str = DEFAULT_SITE_CONFIG[WP_DEBUG]
    extra: Mapping[str, str] = field(default_factory=dict)

    @property
    def debug_enabled(self) -> bool:
        """Return ``True`` when the debug flag reads as a truthy value."""
        return self.wp_debug.strip().lower() in _TRUTHY

    @classmethod
    def from_mapping(cls, values: Mapping[str, str]) -> SiteConfig:
        """Build a config from a merged ``KEY -> value`` mapping."""
        known = {UPLOAD_MAX_FILESIZE, POST_MAX_SIZE, MEMORY_LIMIT, WP_DEBUG}
        merged = {**DEFAULT_SITE_CONFIG, **values}
        return cls(
            upload_max_filesize=merged[UPLOAD_MAX_FILESIZE],
            post_max_size=merged[POST_MAX_SIZE],
            memory_limit=merged[MEMORY_LIMIT],
            wp_debug=merged[WP_DEBUG],
            extra={key: value for key, value in values.items() if key not in known},
        )

    def to_env(self) -> dict[str, str]:
        """Return the ``KEY -> value`` form, as written to ``config.env``."""
        return {
            UPLOAD_MAX_FILESIZE: self.upload_max_filesize,
            POST_MAX_SIZE: self.post_max_size,
            MEMORY_LIMIT: self.memory_limit,
            WP_DEBUG: self.wp_debug,
        }


def read_env_file(path: Path) -> dict[str, str]:
    """Parse a shell-style ``KEY=value`` file; a missing file yields ``{}``."""
    if not path.is_file():
        return {}
    try:
        raw = dotenv_values(path, interpolate=False)
    except (OSError, UnicodeDecodeError) as exc:
        raise SiteConfigError(f"Failed to read {path}: {exc}") from exc
    # Bare keys without ``=`` parse as ``None``; they carry no value.
    return {key: value for key, value in raw.items() if value is not None}


def load_site_config(site_file: Path, global_file: Path | None = None) -> SiteConfig:
    """Merge global defaults and the per-site file into a :class:`SiteConfig`."""
    merged: dict[str, str] = {}
    if global_file is not None:
        merged.update(read_env_file(global_file))
    merged.update(read_env_file(site_file))
    return SiteConfig.from_mapping(merged)


def write_default_site_config(path: Path) -> None:
    """Write the built-in defaults to *path* as a fresh ``config.env``."""
    lines = [
        "# wpdockctl site configuration. Apply changes with `wpdockctl edit-config`.",
        *(f"{key}={value}" for key, value in DEFAULT_SITE_CONFIG.items()),
    ]
    try:
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    except OSError as exc:
        raise SiteConfigError(f"Failed to write {path}: {exc}") from exc


__all__ = [
    "DEFAULT_SITE_CONFIG",
    "SiteConfig",
    "SiteConfigError",
    "load_site_config",
    "read_env_file",
    "write_default_site_config",
]
