"""Render the generated per-site artifacts.

``docker-compose.yml`` and ``init.sql`` are derived from the effective
:class:`~wpdockctl.site_config.SiteConfig` plus tool configuration. They are
never the source of truth and can be regenerated at any time.
"""
from __future__ import annotations

from dataclasses import dataclass

from .config import AppConfig
from .site_config import SiteConfig
from .sites import DB_INIT_FILENAME, SitePaths
from .templates import TemplateEngine

COMPOSE_TEMPLATE = "compose/docker-compose.yml.j2"
DB_INIT_TEMPLATE = "database/init.sql.j2"

WEB_SERVICE = "wordpress"
DB_SERVICE = "db"


@dataclass(slots=True)
class RenderResult:
    """Which artifacts changed on disk during a render."""

    compose_changed: bool
    db_init_changed: bool

    @property
    def changed(self) -> bool:
        """Return ``True`` when any artifact changed."""
        return self.compose_changed or self.db_init_changed


def project_name(site: str) -> str:
    """Return the compose project name for *site*."""
    return f"wp-{site}"


def web_container(site: str) -> str:
    """Return the web container name for *site*."""
    return f"{site}-wordpress"


def db_container(site: str) -> str:
    """Return the database container name for *site*."""
    return f"{site}-db"


def build_context(
    config: AppConfig,
    site: str,
    port: int,
    site_config: SiteConfig,
) -> dict[str, object]:
    """Return the template context shared by both artifacts."""
    return {
        "site_name": site,
        "project_name": project_name(site),
        "host_port": port,
        "network": config.docker.network,
        "web_image": config.docker.web_image,
        "db_image": config.docker.db_image,
        "web_service": WEB_SERVICE,
        "db_service": DB_SERVICE,
        "web_container": web_container(site),
        "db_container": db_container(site),
        "db_name": config.database.name,
        "db_user": config.database.user,
        "db_password": config.database.password,
        "db_root_password": config.database.root_password,
        "db_init_filename": DB_INIT_FILENAME,
        "upload_max_filesize": site_config.upload_max_filesize,
        "post_max_size": site_config.post_max_size,
        "memory_limit": site_config.memory_limit,
        "debug": site_config.debug_enabled,
    }


def render_site_artifacts(
    templates: TemplateEngine,
    config: AppConfig,
    paths: SitePaths,
    site: str,
    port: int,
    site_config: SiteConfig,
) -> RenderResult:
    """Write ``docker-compose.yml`` and ``init.sql`` for *site*."""
    context = build_context(config, site, port, site_config)
    compose_changed = templates.render_to_path(
        COMPOSE_TEMPLATE,
        paths.compose_file,
        context,
        mode=0o640,
    )
    db_init_changed = templates.render_to_path(
        DB_INIT_TEMPLATE,
        paths.db_init_file,
        context,
        mode=0o644,
    )
    return RenderResult(compose_changed=compose_changed, db_init_changed=db_init_changed)


__all__ = [
    "DB_SERVICE",
    "RenderResult",
    "WEB_SERVICE",
    "build_context",
    "db_container",
    "project_name",
    "render_site_artifacts",
    "web_container",
]
