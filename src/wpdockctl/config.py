"""Configuration loader for wpdockctl.

This module centralises the logic for reading tool settings from multiple
sources, applied in order:

1. Built-in defaults.
2. ``/etc/wpdockctl/config.yml`` (or an override path).
3. Environment variables prefixed with ``WPDOCKCTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export WPDOCKCTL_PORTS__BASE=9000
    export WPDOCKCTL_DOCKER__NETWORK=sites-net

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses``.

Per-site PHP limits are *not* handled here; see :mod:`wpdockctl.site_config`.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load wpdockctl configuration. Install with "
        "`pip install wpdockctl` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "WPDOCKCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

# Exits 0 once the server answers, even when the ping itself is refused access.
DEFAULT_READY_COMMAND: tuple[str, ...] = ("mariadb-admin", "ping", "-h", "localhost", "--silent")


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class PortsConfig:
    """Host port allocation defaults."""

    base: int = 8081


@dataclass(frozen=True)
class DockerConfig:
    """Container runtime integration values."""

    bin: str = "docker"
    network: str = "wordpress-net"
    web_image: str = "wordpress:latest"
    db_image: str = "mariadb:11"


@dataclass(frozen=True)
class DatabaseConfig:
    """Fixed database credentials and readiness polling bounds."""

    name: str = "wordpress"
    user: str = "wordpress"
    password: str = "wordpress"
    root_password: str = "rootpassword"
    ready_timeout: float = 60.0
    ready_interval: float = 2.0
    ready_command: tuple[str, ...] = DEFAULT_READY_COMMAND


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for wpdockctl."""

    config_file: Path
    sites_root: Path
    global_env_file: Path
    state_dir: Path
    registry_dir: Path
    logs_dir: Path
    runtime_dir: Path
    templates_dir: Path
    lock_timeout: float
    require_root: bool
    editors: tuple[str, ...]
    ports: PortsConfig
    docker: DockerConfig
    database: DatabaseConfig

    @property
    def retained_dir(self) -> Path:
        """Directory holding archived definitions of volume-retaining deletes."""
        return self.state_dir / "retained"


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/wpdockctl/config.yml",
    "sites_root": "/opt/wpdockctl/sites",
    "global_env_file": "/etc/wpdockctl/defaults.env",
    "state_dir": "/var/lib/wpdockctl",
    "registry_dir": None,  # derived from state_dir when absent
    "logs_dir": "/var/log/wpdockctl",
    "runtime_dir": "/run/wpdockctl",
    "templates_dir": "/etc/wpdockctl/templates",
    "lock_timeout": 30.0,
    "require_root": True,
    "editors": ["nano", "vim"],
    "ports": {
        "base": 8081,
    },
    "docker": {
        "bin": "docker",
        "network": "wordpress-net",
        "web_image": "wordpress:latest",
        "db_image": "mariadb:11",
    },
    "database": {
        "name": "wordpress",
        "user": "wordpress",
        "password": "wordpress",
        "root_password": "rootpassword",
        "ready_timeout": 60.0,
        "ready_interval": 2.0,
        "ready_command": list(DEFAULT_READY_COMMAND),
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
_NESTED_KEYS: dict[str, set[str]] = {
    "ports": {"base"},
    "docker": {"bin", "network", "web_image", "db_image"},
    "database": {
        "name",
        "user",
        "password",
        "root_password",
        "ready_timeout",
        "ready_interval",
        "ready_command",
    },
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    lock_timeout = raw.get("lock_timeout")
    if lock_timeout is not None:
        _expect_positive_float(lock_timeout, "lock_timeout", default=30.0)

    for section, allowed in _NESTED_KEYS.items():
        value = raw.get(section)
        if value is None:
            continue
        mapping = _as_dict(value, section)
        unknown = set(mapping.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")

    editors = raw.get("editors")
    if editors is not None:
        for index, entry in enumerate(_as_sequence(editors, "editors")):
            if not isinstance(entry, str) or not entry.strip():
                raise ConfigError(f"editors[{index}] must be a non-empty string.")

    database = raw.get("database")
    if isinstance(database, Mapping) and database.get("ready_command") is not None:
        command = _as_sequence(database["ready_command"], "database.ready_command")
        if not command:
            raise ConfigError("database.ready_command must not be empty.")
        for index, entry in enumerate(command):
            if not isinstance(entry, str) or not entry.strip():
                raise ConfigError(f"database.ready_command[{index}] must be a non-empty string.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    config_file = _to_path(raw.get("config_file"))
    sites_root = _to_path(raw.get("sites_root"))
    global_env_file = _to_path(raw.get("global_env_file"))
    state_dir = _to_path(raw.get("state_dir"))
    logs_dir = _to_path(raw.get("logs_dir"))
    runtime_dir = _to_path(raw.get("runtime_dir"))
    templates_dir = _to_path(raw.get("templates_dir"))
    lock_timeout = _expect_positive_float(raw.get("lock_timeout"), "lock_timeout", default=30.0)
    require_root = _expect_bool(raw.get("require_root"), "require_root", default=True)

    registry_dir_value = raw.get("registry_dir")
    registry_dir = _to_path(registry_dir_value) if registry_dir_value else state_dir / "registry"

    editors_raw = raw.get("editors")
    editors: tuple[str, ...] = ()
    if editors_raw is not None:
        editors = tuple(str(item).strip() for item in _as_sequence(editors_raw, "editors"))

    ports_mapping = _as_dict(raw.get("ports"), "ports")
    ports = PortsConfig(
        base=_expect_int(ports_mapping.get("base"), "ports.base", default=8081),
    )
    if ports.base < 1 or ports.base > 65535:
        raise ConfigError(f"ports.base must be between 1 and 65535. Got {ports.base}.")

    docker_mapping = _as_dict(raw.get("docker"), "docker")
    docker = DockerConfig(
        bin=str(docker_mapping.get("bin", "docker")),
        network=str(docker_mapping.get("network", "wordpress-net")),
        web_image=str(docker_mapping.get("web_image", "wordpress:latest")),
        db_image=str(docker_mapping.get("db_image", "mariadb:11")),
    )

    database_mapping = _as_dict(raw.get("database"), "database")
    database = DatabaseConfig(
        name=str(database_mapping.get("name", "wordpress")),
        user=str(database_mapping.get("user", "wordpress")),
        password=str(database_mapping.get("password", "wordpress")),
        root_password=str(database_mapping.get("root_password", "rootpassword")),
        ready_timeout=_expect_positive_float(
            database_mapping.get("ready_timeout"),
            "database.ready_timeout",
            default=60.0,
        ),
        ready_interval=_expect_positive_float(
            database_mapping.get("ready_interval"),
            "database.ready_interval",
            default=2.0,
        ),
        ready_command=tuple(
            str(item) for item in _as_sequence(
                database_mapping.get("ready_command", DEFAULT_READY_COMMAND),
                "database.ready_command",
            )
        ),
    )

    return AppConfig(
        config_file=config_file,
        sites_root=sites_root,
        global_env_file=global_env_file,
        state_dir=state_dir,
        registry_dir=registry_dir,
        logs_dir=logs_dir,
        runtime_dir=runtime_dir,
        templates_dir=templates_dir,
        lock_timeout=lock_timeout,
        require_root=require_root,
        editors=editors,
        ports=ports,
        docker=docker,
        database=database,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if isinstance(value, (str, bytes)):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    if not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_bool(value: object | None, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    raise ConfigError(f"Expected {label} to be a boolean. Got {value!r}.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ConfigError",
    "DEFAULT_READY_COMMAND",
    "DatabaseConfig",
    "DockerConfig",
    "PortsConfig",
    "load_config",
]
