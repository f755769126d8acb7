"""Jinja2 template rendering for generated site artifacts.

Built-in templates ship inside this package. Operators may shadow any of them
by placing a file with the same relative path under ``templates_dir``
(``/etc/wpdockctl/templates`` by default).
"""
from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from jinja2 import (
    BaseLoader,
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
)


def compose_escape(value: object) -> str:
    """Escape ``$`` so compose does not treat it as variable interpolation."""
    return str(value).replace("$", "$$")


def compose_str(value: object) -> str:
    """Return *value* as a double-quoted YAML scalar safe for compose files."""
    return json.dumps(compose_escape(value))


def sql_str(value: object) -> str:
    """Escape *value* for use inside a single-quoted MariaDB string literal."""
    return str(value).replace("\\", "\\\\").replace("'", "''")


def sql_ident(value: object) -> str:
    """Escape *value* for use inside a backtick-quoted SQL identifier."""
    return str(value).replace("`", "``")


def php_str(value: object) -> str:
    """Escape *value* for use inside a single-quoted PHP string."""
    return str(value).replace("\\", "\\\\").replace("'", "\\'")


@dataclass(frozen=True)
class TemplateEngine:
    """Render built-in or operator-supplied templates."""

    environment: Environment

    @classmethod
    def with_overrides(cls, override_dir: Path | None) -> TemplateEngine:
        """Return an engine whose lookups prefer *override_dir* when it exists."""
        loaders: list[BaseLoader] = []
        if override_dir is not None and Path(override_dir).expanduser().is_dir():
            loaders.append(FileSystemLoader(str(Path(override_dir).expanduser())))
        loaders.append(PackageLoader("wpdockctl", "templates"))
        environment = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,
        )
        environment.filters.update(
            compose_escape=compose_escape,
            compose_str=compose_str,
            sql_str=sql_str,
            sql_ident=sql_ident,
            php_str=php_str,
        )
        return cls(environment=environment)

    def render_to_string(self, template_name: str, context: Mapping[str, object]) -> str:
        """Render *template_name* with *context* and return the text."""
        template = self.environment.get_template(template_name)
        return template.render(**dict(context))

    def render_to_path(
        self,
        template_name: str,
        destination: Path,
        context: Mapping[str, object],
        *,
        mode: int = 0o644,
    ) -> bool:
        """Render into *destination* atomically; return ``True`` when content changed."""
        rendered = self.render_to_string(template_name, context)
        if destination.exists():
            current = destination.read_text(encoding="utf-8")
            if current == rendered:
                os.chmod(destination, mode)
                return False

        destination.parent.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_name = tempfile.mkstemp(
            dir=str(destination.parent),
            prefix=f".{destination.name}.",
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                handle.write(rendered)
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, destination)
        finally:
            tmp_path.unlink(missing_ok=True)
        return True


__all__ = [
    "TemplateEngine",
    "compose_escape",
    "compose_str",
    "php_str",
    "sql_ident",
    "sql_str",
]
