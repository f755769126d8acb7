"""Typer-powered command line interface for ``wpdockctl``.

Each command runs inside a structured operation scope so that every
invocation leaves one record in ``operations.jsonl``. Mutating commands hold
the global lock followed by the site lock while they touch the sites tree, the
port ledger or the container runtime.
"""
from __future__ import annotations

import logging
import shutil
import textwrap
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import NoReturn

import typer
from jinja2 import TemplateError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .artifacts import (
    WEB_SERVICE,
    db_container,
    project_name,
    render_site_artifacts,
    web_container,
)
from .config import AppConfig, ConfigError, load_config
from .exit_codes import ExitCode
from .locking import LockManager, LockTimeoutError
from .logging import OperationScope, StructuredLogger
from .ports import (
    PortsRegistry,
    PortsRegistryError,
    compose_file_ports,
    scan_compose_ports,
)
from .preflight import PreflightError, check_dependencies, require_privileges
from .providers import (
    DockerError,
    DockerProvider,
    EditorError,
    EditorProvider,
    InstanceStatusProvider,
)
from .site_config import SiteConfigError, load_site_config, write_default_site_config
from .sites import SitePaths, SiteStore, file_digest, validate_site_name
from .state import StateRegistry, StateRegistryError
from .templates import TemplateEngine

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to wpdockctl's YAML config file.",
)

JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit output as JSON instead of a table.",
)

# Commands that run without the privilege and dependency checks.
_UNCHECKED_COMMANDS = {"help"}

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Provision and manage isolated WordPress sites on Docker.

        Each site gets a WordPress container and a database container on a
        shared network, its own PHP limits, and an automatically assigned
        host port.
        """
    ).strip(),
)


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    registry: StateRegistry
    ports: PortsRegistry
    sites: SiteStore
    locks: LockManager
    logger: StructuredLogger
    templates: TemplateEngine
    docker: DockerProvider
    status_provider: InstanceStatusProvider
    editor: EditorProvider


def _load_app_config(config_file: Path | None, lock_timeout: float | None) -> AppConfig:
    overrides: dict[str, object] = {}
    if lock_timeout is not None:
        overrides["lock_timeout"] = lock_timeout
    try:
        return load_config(config_file=config_file, overrides=overrides)
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=ExitCode.FAILURE) from exc


def _build_runtime(config: AppConfig) -> RuntimeContext:
    registry = StateRegistry(config.registry_dir)
    registry.ensure_root()
    docker = DockerProvider(docker_bin=config.docker.bin, network=config.docker.network)
    return RuntimeContext(
        config=config,
        registry=registry,
        ports=PortsRegistry(registry=registry, base_port=config.ports.base),
        sites=SiteStore(config.sites_root),
        locks=LockManager(config.runtime_dir, config.lock_timeout),
        logger=StructuredLogger(config.logs_dir),
        templates=TemplateEngine.with_overrides(config.templates_dir),
        docker=docker,
        status_provider=InstanceStatusProvider(docker=docker),
        editor=EditorProvider(candidates=config.editors),
    )


def _ensure_runtime(
    ctx: typer.Context,
    config_file: Path | None,
    lock_timeout_override: float | None = None,
) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    config = _load_app_config(config_file, lock_timeout_override)
    if config.require_root:
        try:
            require_privileges()
        except PreflightError as exc:
            console.print(f"[red]{escape(str(exc))}[/red]")
            raise typer.Exit(code=ExitCode.FAILURE) from exc

    try:
        runtime = _build_runtime(config)
    except OSError as exc:
        console.print(f"[red]Failed to prepare state directories:[/red] {escape(str(exc))}")
        raise typer.Exit(code=ExitCode.FAILURE) from exc

    with runtime.logger.operation(
        "preflight",
        args={"docker_bin": config.docker.bin},
        target={"kind": "meta", "scope": "dependencies"},
    ) as op:
        try:
            check_dependencies(runtime.docker)
        except PreflightError as exc:
            _command_error(op, str(exc))
        op.success("Dependencies available.", changed=0)

    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the wpdockctl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    lock_timeout: float | None = typer.Option(
        None,
        "--lock-timeout",
        help="Override lock acquisition timeout in seconds.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Print debug diagnostics (docker commands, readiness polling).",
    ),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        )

    if version:
        console.print(f"wpdockctl {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)

    if ctx.invoked_subcommand in _UNCHECKED_COMMANDS:
        return

    _ensure_runtime(ctx, config_file, lock_timeout)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.FAILURE,
    errors: list[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{escape(message)}[/red]")
    op.error(message, errors=list(errors or [message]), rc=int(rc))
    raise typer.Exit(code=rc)


def _require_site_name(op: OperationScope, name: str) -> str:
    try:
        return validate_site_name(name)
    except ValueError as exc:
        _command_error(op, str(exc))


def _require_existing_site(runtime: RuntimeContext, op: OperationScope, name: str) -> SitePaths:
    if not runtime.sites.exists(name):
        _command_error(op, f"Site '{name}' does not exist.")
    return runtime.sites.paths(name)


@contextmanager
def _site_lock(runtime: RuntimeContext, op: OperationScope, name: str) -> Iterator[None]:
    """Hold the global and per-site locks, converting timeouts to CLI errors."""
    try:
        with runtime.locks.mutate_instances([name]) as bundle:
            op.set_lock_wait_ms(bundle.wait_ms)
            yield
    except LockTimeoutError as exc:
        _command_error(op, str(exc))


def _site_port(
    runtime: RuntimeContext,
    op: OperationScope,
    name: str,
    paths: SitePaths,
) -> int | None:
    """Return the host port of *name* from the ledger, else from its compose file."""
    try:
        port = runtime.ports.get_port(name)
    except StateRegistryError as exc:
        op.add_step("ports.lookup", status="warning", detail=str(exc))
        port = None
    if port is not None:
        return port
    published = compose_file_ports(paths.compose_file)
    return published[0] if published else None


def _cleanup_site_create(
    runtime: RuntimeContext,
    name: str,
    op: OperationScope,
    *,
    release_port: bool,
    teardown: bool = False,
) -> None:
    """Best-effort removal of a partially provisioned site."""
    paths = runtime.sites.paths(name)
    if teardown and paths.compose_file.is_file():
        try:
            runtime.docker.compose_down(paths.compose_file, project_name(name), remove_volumes=True)
        except DockerError as exc:
            op.add_step("cleanup.containers", status="warning", detail=str(exc))
        else:
            op.add_step("cleanup.containers", status="success")
    if paths.root.exists():
        try:
            shutil.rmtree(paths.root)
        except OSError as exc:
            op.add_step("cleanup.filesystem", status="warning", detail=str(exc))
        else:
            op.add_step("cleanup.filesystem", status="success", detail=str(paths.root))
    if release_port:
        try:
            runtime.ports.release(name)
        except (PortsRegistryError, StateRegistryError, OSError) as exc:
            op.add_step("cleanup.ports", status="warning", detail=str(exc))
        else:
            op.add_step("cleanup.ports", status="success")


def _provision_site(runtime: RuntimeContext, name: str, op: OperationScope) -> int:
    """Create the site directory, its config and generated artifacts; return the port."""
    config = runtime.config
    reserved = False
    try:
        paths = runtime.sites.create(name)
        op.add_step("filesystem.create", status="success", detail=str(paths.root))

        write_default_site_config(paths.config_file)
        op.add_step("config.write", status="success", detail=str(paths.config_file))

        site_config = load_site_config(paths.config_file, config.global_env_file)

        port = runtime.ports.reserve(name, scanned=scan_compose_ports(config.sites_root))
        reserved = True
        op.add_step("ports.reserve", status="success", detail=f"port={port}")

        render_site_artifacts(runtime.templates, config, paths, name, port, site_config)
        op.add_step(
            "templates.render",
            status="success",
            detail=f"{paths.compose_file.name}, {paths.db_init_file.name}",
        )
    except FileExistsError:
        _command_error(op, f"Site '{name}' already exists.")
    except (
        SiteConfigError,
        PortsRegistryError,
        StateRegistryError,
        TemplateError,
        OSError,
    ) as exc:
        _cleanup_site_create(runtime, name, op, release_port=reserved)
        _command_error(op, f"Failed to provision site '{name}': {exc}")
    return port


def _start_new_site(runtime: RuntimeContext, name: str, op: OperationScope) -> None:
    """Bring up a freshly provisioned site and settle the web/database start order."""
    paths = runtime.sites.paths(name)
    project = project_name(name)
    database = runtime.config.database
    try:
        created = runtime.docker.ensure_network()
        op.add_step(
            "docker.network",
            status="success",
            detail=f"{runtime.docker.network} {'created' if created else 'present'}",
        )
        runtime.docker.compose_up(paths.compose_file, project)
        op.add_step("docker.compose.up", status="success", detail=project)

        ready = runtime.docker.wait_for_database(
            db_container(name),
            timeout=database.ready_timeout,
            interval=database.ready_interval,
            command=database.ready_command,
        )
        if ready:
            op.add_step("docker.db.ready", status="success")
        else:
            op.add_step(
                "docker.db.ready",
                status="warning",
                detail=f"not ready after {database.ready_timeout:g}s",
            )
            console.print(
                f"[yellow]Database for '{name}' did not report ready within "
                f"{database.ready_timeout:g}s; restarting WordPress anyway.[/yellow]"
            )

        runtime.docker.restart_container(web_container(name))
        op.add_step("docker.restart", status="success", detail=web_container(name))
    except DockerError as exc:
        _cleanup_site_create(runtime, name, op, release_port=True, teardown=True)
        _command_error(op, f"Failed to start site '{name}': {exc}")


def _archive_retained_site(
    runtime: RuntimeContext,
    name: str,
    paths: SitePaths,
    port: int | None,
) -> Path:
    """Copy the site's definitions aside and record its kept volumes."""
    now = datetime.now(UTC)
    destination = runtime.config.retained_dir / name / now.strftime("%Y%m%dT%H%M%SZ")
    destination.mkdir(parents=True, exist_ok=True)
    for source in (paths.compose_file, paths.config_file, paths.db_init_file):
        if source.is_file():
            shutil.copy2(source, destination / source.name)
    project = project_name(name)
    runtime.registry.append_retained(
        {
            "name": name,
            "project": project,
            "port": port,
            "volumes": [f"{project}_db_data", f"{project}_wp_data"],
            "archive": str(destination),
            "deleted_at": now.isoformat(),
        }
    )
    return destination


@app.command("help")
def help_command(ctx: typer.Context) -> None:
    """Show this help message and exit."""
    parent = ctx.parent or ctx
    typer.echo(parent.get_help())
    raise typer.Exit(code=ExitCode.OK)


@app.command("create")
def create(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the site to create."),
) -> None:
    """Provision a new site and start its containers."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "create",
        args={"name": name},
        target={"kind": "site", "name": name},
    ) as op:
        name = _require_site_name(op, name)
        if runtime.sites.exists(name):
            _command_error(op, f"Site '{name}' already exists.")

        with _site_lock(runtime, op, name):
            if runtime.sites.exists(name):
                _command_error(op, f"Site '{name}' already exists.")
            port = _provision_site(runtime, name, op)
            _start_new_site(runtime, name, op)

        url = f"http://localhost:{port}"
        console.print(f"[green]Site '{name}' created.[/green] Visit {url}")
        op.success("Site created.", changed=4, context={"port": port, "url": url})


@app.command("start")
def start(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the site to start."),
) -> None:
    """Start the containers of a site."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "start",
        args={"name": name},
        target={"kind": "site", "name": name},
    ) as op:
        name = _require_site_name(op, name)
        paths = runtime.sites.paths(name)
        with _site_lock(runtime, op, name):
            try:
                runtime.docker.ensure_network()
                op.add_step("docker.network", status="success")
                runtime.docker.compose_up(paths.compose_file, project_name(name))
                op.add_step("docker.compose.up", status="success")
            except DockerError as exc:
                _command_error(op, f"Failed to start site '{name}': {exc}")
        console.print(f"[green]Site '{name}' started.[/green]")
        op.success("Site started.", changed=1)


@app.command("stop")
def stop(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the site to stop."),
) -> None:
    """Stop the containers of a site without removing them."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "stop",
        args={"name": name},
        target={"kind": "site", "name": name},
    ) as op:
        name = _require_site_name(op, name)
        paths = runtime.sites.paths(name)
        with _site_lock(runtime, op, name):
            try:
                runtime.docker.compose_stop(paths.compose_file, project_name(name))
                op.add_step("docker.compose.stop", status="success")
            except DockerError as exc:
                _command_error(op, f"Failed to stop site '{name}': {exc}")
        console.print(f"[yellow]Site '{name}' stopped.[/yellow]")
        op.success("Site stopped.", changed=1)


@app.command("restart")
def restart(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the site to restart."),
) -> None:
    """Restart every container of a site."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "restart",
        args={"name": name},
        target={"kind": "site", "name": name},
    ) as op:
        name = _require_site_name(op, name)
        paths = _require_existing_site(runtime, op, name)
        with _site_lock(runtime, op, name):
            try:
                runtime.docker.compose_restart(paths.compose_file, project_name(name))
                op.add_step("docker.compose.restart", status="success")
            except DockerError as exc:
                _command_error(op, f"Failed to restart site '{name}': {exc}")
        console.print(f"[green]Site '{name}' restarted.[/green]")
        op.success("Site restarted.", changed=1)


@app.command("delete")
def delete(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the site to delete."),
    purge_volumes: bool | None = typer.Option(
        None,
        "--purge-volumes/--keep-volumes",
        help="Remove (or keep) the database and uploads volumes without prompting.",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Never prompt; volumes are kept unless --purge-volumes is given.",
    ),
) -> None:
    """Tear down a site and remove its directory."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "delete",
        args={"name": name, "purge_volumes": purge_volumes, "yes": yes},
        target={"kind": "site", "name": name},
    ) as op:
        name = _require_site_name(op, name)
        paths = _require_existing_site(runtime, op, name)
        project = project_name(name)

        with _site_lock(runtime, op, name):
            paths = _require_existing_site(runtime, op, name)
            port = _site_port(runtime, op, name, paths)
            has_compose = paths.compose_file.is_file()
            remove_volumes = False
            archive: Path | None = None

            if has_compose:
                try:
                    runtime.docker.compose_stop(paths.compose_file, project)
                    op.add_step("docker.compose.stop", status="success")
                except DockerError as exc:
                    op.add_step("docker.compose.stop", status="warning", detail=str(exc))

                if purge_volumes is None:
                    remove_volumes = False if yes else typer.confirm(
                        "Also remove persistent volumes (database and uploads)?",
                        default=False,
                    )
                else:
                    remove_volumes = purge_volumes

                try:
                    runtime.docker.compose_down(
                        paths.compose_file,
                        project,
                        remove_volumes=remove_volumes,
                    )
                    op.add_step(
                        "docker.compose.down",
                        status="success",
                        detail="volumes removed" if remove_volumes else "volumes kept",
                    )
                except DockerError as exc:
                    _command_error(op, f"Failed to remove containers for '{name}': {exc}")

                if not remove_volumes:
                    try:
                        archive = _archive_retained_site(runtime, name, paths, port)
                    except (OSError, StateRegistryError) as exc:
                        _command_error(op, f"Failed to archive definitions for '{name}': {exc}")
                    op.add_step("retained.archive", status="success", detail=str(archive))
            else:
                op.add_step(
                    "docker.compose.down",
                    status="skipped",
                    detail=f"{paths.compose_file.name} missing",
                )

            try:
                runtime.sites.remove(name)
            except OSError as exc:
                _command_error(op, f"Failed to remove {paths.root}: {exc}")
            op.add_step("filesystem.remove", status="success", detail=str(paths.root))

            try:
                runtime.ports.release(name)
                op.add_step("ports.release", status="success")
            except PortsRegistryError:
                op.add_step("ports.release", status="warning", detail="not-found")
            except StateRegistryError as exc:
                op.add_step("ports.release", status="warning", detail=str(exc))

        if archive is not None:
            console.print(
                f"[yellow]Site '{name}' removed; volumes kept. "
                f"Definitions archived to {archive}.[/yellow]"
            )
        elif not has_compose:
            console.print(
                f"[yellow]Site '{name}' removed; it had no {paths.compose_file.name}, "
                "so no containers were touched.[/yellow]"
            )
        else:
            console.print(f"[yellow]Site '{name}' and its volumes removed.[/yellow]")
        op.success(
            "Site deleted.",
            changed=3,
            context={"volumes_removed": remove_volumes, "archive": archive},
        )


@app.command("list")
def list_sites(
    ctx: typer.Context,
    json_output: bool = JSON_OPTION,
) -> None:
    """List sites under the sites root with their port and runtime state."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "list",
        args={"json": json_output},
        target={"kind": "site", "scope": "all"},
    ) as op:
        entries: list[dict[str, object]] = []
        for name in runtime.sites.list_names():
            paths = runtime.sites.paths(name)
            status = runtime.status_provider.status(paths.compose_file, project_name(name))
            entries.append(
                {
                    "name": name,
                    "port": _site_port(runtime, op, name, paths),
                    "status": status.state,
                    "detail": status.detail,
                }
            )

        if json_output:
            console.print_json(data={"sites": entries})
            op.success("Reported site list as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Name", style="bold")
        table.add_column("Port")
        table.add_column("Status")
        table.add_column("Detail")
        if not entries:
            table.add_row("(none)", "", "", "")
        for entry in entries:
            port = entry["port"]
            table.add_row(
                str(entry["name"]),
                "" if port is None else str(port),
                str(entry["status"]),
                escape(str(entry["detail"])),
            )
        console.print(table)
        op.success("Reported site list.", changed=0)


@app.command("status")
def status(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the site to inspect."),
) -> None:
    """Show the runtime state of a site's containers."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "status",
        args={"name": name},
        target={"kind": "site", "name": name},
    ) as op:
        name = _require_site_name(op, name)
        paths = _require_existing_site(runtime, op, name)
        info = runtime.status_provider.status(paths.compose_file, project_name(name))
        port = _site_port(runtime, op, name, paths)
        console.print(f"{name}: {info.state}" + (f" (port {port})" if port else ""))
        if info.detail:
            console.print(f"  {escape(info.detail)}")
        op.success("Reported site status.", changed=0, context={"state": info.state})


@app.command("config")
def show_config(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the site whose config to print."),
) -> None:
    """Print a site's config.env as stored on disk."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "config",
        args={"name": name},
        target={"kind": "site", "name": name},
    ) as op:
        name = _require_site_name(op, name)
        config_file = runtime.sites.paths(name).config_file
        if not config_file.is_file():
            _command_error(op, f"No config file found for site '{name}' ({config_file}).")
        try:
            content = config_file.read_text(encoding="utf-8")
        except OSError as exc:
            _command_error(op, f"Failed to read {config_file}: {exc}")
        typer.echo(content, nl=False)
        op.success("Printed site config.", changed=0)


@app.command("edit-config")
def edit_config(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the site whose config to edit."),
    editor: str | None = typer.Argument(
        None,
        help="Editor to use (defaults to the first of the configured editors found).",
    ),
) -> None:
    """Edit a site's config.env and apply any change to the running site."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "edit-config",
        args={"name": name, "editor": editor},
        target={"kind": "site", "name": name},
    ) as op:
        name = _require_site_name(op, name)
        paths = runtime.sites.paths(name)
        if not paths.config_file.is_file():
            _command_error(op, f"No config file found for site '{name}' ({paths.config_file}).")

        try:
            editor_bin = runtime.editor.resolve(editor)
        except EditorError as exc:
            _command_error(op, str(exc))

        before = file_digest(paths.config_file)
        try:
            rc = runtime.editor.edit(editor_bin, paths.config_file)
        except EditorError as exc:
            _command_error(op, str(exc))
        op.add_step("editor", status="success" if rc == 0 else "warning", detail=f"exit={rc}")
        after = file_digest(paths.config_file)

        if before == after:
            console.print("No changes detected; site left untouched.")
            op.success("Config unchanged.", changed=0)
            return

        with _site_lock(runtime, op, name):
            port = _site_port(runtime, op, name, paths)
            if port is None:
                _command_error(op, f"Cannot determine the host port of site '{name}'.")
            try:
                site_config = load_site_config(paths.config_file, runtime.config.global_env_file)
                rendered = render_site_artifacts(
                    runtime.templates,
                    runtime.config,
                    paths,
                    name,
                    port,
                    site_config,
                )
            except (SiteConfigError, TemplateError, OSError) as exc:
                _command_error(op, f"Failed to regenerate artifacts for '{name}': {exc}")
            op.add_step(
                "templates.render",
                status="success",
                detail="compose changed" if rendered.compose_changed else "compose unchanged",
            )

            try:
                runtime.docker.recreate_service(paths.compose_file, project_name(name), WEB_SERVICE)
            except DockerError as exc:
                _command_error(op, f"Failed to apply new config to '{name}': {exc}")
            op.add_step("docker.compose.recreate", status="success", detail=WEB_SERVICE)

        console.print(f"[green]Config updated; '{name}' WordPress container recreated.[/green]")
        op.success("Config applied.", changed=2 if rendered.changed else 1)


@app.command("retained")
def retained(
    ctx: typer.Context,
    json_output: bool = JSON_OPTION,
) -> None:
    """List deleted sites whose volumes were kept."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "retained",
        args={"json": json_output},
        target={"kind": "retained", "scope": "registry"},
    ) as op:
        try:
            entries = runtime.registry.list_retained()
        except StateRegistryError as exc:
            _command_error(op, str(exc))

        if json_output:
            console.print_json(data={"retained": entries})
            op.success("Reported retained volumes as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Name", style="bold")
        table.add_column("Deleted")
        table.add_column("Volumes")
        table.add_column("Archive")
        if not entries:
            table.add_row("(none)", "", "", "")
        for entry in entries:
            volumes = entry.get("volumes")
            table.add_row(
                str(entry.get("name", "")),
                str(entry.get("deleted_at", "")),
                ", ".join(str(item) for item in volumes) if isinstance(volumes, list) else "",
                escape(str(entry.get("archive", ""))),
            )
        console.print(table)
        op.success("Reported retained volumes.", changed=0)


def main() -> None:
    """Console script entry point."""
    app()
