"""Tests for the wpdockctl command line interface."""
from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner, Result

from wpdockctl import __version__, cli, preflight
from wpdockctl.cli import app
from wpdockctl.locking import LockManager
from wpdockctl.sites import file_digest

runner = CliRunner()


@pytest.fixture(autouse=True)
def _wide_console(monkeypatch: pytest.MonkeyPatch) -> None:
    """Stop Rich from wrapping long temporary paths across lines."""
    monkeypatch.setattr(cli.console, "width", 240)


def _write_stub(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    path.chmod(0o755)
    return path


def _write_docker_stub(path: Path, log: Path, failures: Sequence[str] = ()) -> Path:
    """Write a fake docker binary that logs its arguments.

    Like real compose, ``compose --file <path>`` fails when *path* does not
    exist. Each entry of *failures* is a shell ``case`` pattern matched against
    the full argument string; matching invocations exit 1.
    """
    lines = [
        "#!/bin/sh",
        f'echo "$*" >> "{log}"',
        'if [ "$1" = compose ] && [ "$2" = --file ] && [ ! -f "$3" ]; then',
        '  echo "open $3: no such file or directory" >&2; exit 1',
        "fi",
        'case "$*" in',
    ]
    for pattern in failures:
        lines.append(f'  {pattern}) echo "simulated failure" >&2; exit 1 ;;')
    lines.extend(["esac", "exit 0", ""])
    return _write_stub(path, "\n".join(lines))


def _prepare_environment(
    tmp_path: Path,
    *,
    config_overrides: dict[str, object] | None = None,
    docker_failures: Sequence[str] = (),
) -> tuple[dict[str, str], Path]:
    """Write a config file pointing every path under *tmp_path*.

    Returns the CLI environment and the docker call log path.
    """
    bin_dir = tmp_path / "bin"
    calls_log = tmp_path / "docker-calls.log"
    docker_bin = _write_docker_stub(bin_dir / "docker", calls_log, docker_failures)
    _write_stub(bin_dir / "noop-editor", "#!/bin/sh\nexit 0\n")
    _write_stub(
        bin_dir / "bump-editor",
        '#!/bin/sh\necho "MEMORY_LIMIT=512M" >> "$1"\nexit 0\n',
    )

    config: dict[str, object] = {
        "sites_root": str(tmp_path / "sites"),
        "global_env_file": str(tmp_path / "defaults.env"),
        "state_dir": str(tmp_path / "state"),
        "logs_dir": str(tmp_path / "logs"),
        "runtime_dir": str(tmp_path / "run"),
        "templates_dir": str(tmp_path / "templates"),
        "lock_timeout": 2,
        "require_root": False,
        "editors": [str(bin_dir / "noop-editor")],
        "docker": {"bin": str(docker_bin)},
        "database": {"ready_timeout": 0.2, "ready_interval": 0.05},
    }
    if config_overrides:
        config.update(config_overrides)
    config_file = tmp_path / "config.yml"
    config_file.write_text(yaml.safe_dump(config), encoding="utf-8")
    return {"WPDOCKCTL_CONFIG_FILE": str(config_file)}, calls_log


def _calls(log: Path) -> list[str]:
    if not log.exists():
        return []
    return log.read_text(encoding="utf-8").splitlines()


def _invoke(env: dict[str, str], *args: str, input: str | None = None) -> Result:
    return runner.invoke(app, list(args), env=env, input=input)


def _snapshot(root: Path) -> dict[str, str]:
    return {
        str(path.relative_to(root)): file_digest(path)
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


def test_version_flag() -> None:
    """``--version`` prints the package version and exits cleanly."""
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_no_arguments_prints_help() -> None:
    """Running without a subcommand shows usage and succeeds."""
    result = runner.invoke(app, [])

    assert result.exit_code == 0
    assert "create" in result.stdout


def test_help_command_skips_preflight(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """``help`` works even where the privilege check would fail."""
    env, _ = _prepare_environment(tmp_path, config_overrides={"require_root": True})
    monkeypatch.setattr(preflight.os, "geteuid", lambda: 1000)

    result = _invoke(env, "help")

    assert result.exit_code == 0
    assert "edit-config" in result.stdout


def test_non_root_is_rejected_before_anything_else(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Without root the command stops before touching docker or the filesystem."""
    env, calls_log = _prepare_environment(tmp_path, config_overrides={"require_root": True})
    monkeypatch.setattr(preflight.os, "geteuid", lambda: 1000)

    result = _invoke(env, "list")

    assert result.exit_code == 1
    assert "must be run as root" in result.stdout
    assert _calls(calls_log) == []
    assert not (tmp_path / "state").exists()


def test_missing_docker_fails_preflight(tmp_path: Path) -> None:
    """A missing docker binary aborts with installation guidance."""
    env, _ = _prepare_environment(
        tmp_path,
        config_overrides={"docker": {"bin": str(tmp_path / "nowhere" / "docker")}},
    )

    result = _invoke(env, "list")

    assert result.exit_code == 1
    assert "Install Docker Engine" in result.stdout


def test_missing_compose_plugin_fails_preflight(tmp_path: Path) -> None:
    """A docker binary without compose fails the dependency check."""
    env, _ = _prepare_environment(tmp_path, docker_failures=['"compose version"'])

    result = _invoke(env, "list")

    assert result.exit_code == 1
    assert "compose plugin" in result.stdout


def test_create_provisions_and_starts_site(tmp_path: Path) -> None:
    """``create`` writes artifacts, reserves a port and starts containers."""
    env, calls_log = _prepare_environment(tmp_path)

    result = _invoke(env, "create", "blog")

    assert result.exit_code == 0, result.stdout
    assert "http://localhost:8081" in result.stdout

    site = tmp_path / "sites" / "blog"
    assert (site / "config.env").read_text().count("=256M") == 3
    assert '"8081:80"' in (site / "docker-compose.yml").read_text()
    assert (site / "init.sql").exists()

    ports = yaml.safe_load((tmp_path / "state" / "registry" / "ports.yml").read_text())
    assert ports == {"ports": [{"name": "blog", "port": 8081}]}

    calls = _calls(calls_log)
    compose_prefix = f"compose --file {site / 'docker-compose.yml'} --project-name wp-blog"
    assert "network inspect wordpress-net" in calls
    up_index = calls.index(f"{compose_prefix} up -d")
    ping_index = next(
        i for i, call in enumerate(calls) if call.startswith("exec blog-db mariadb-admin ping")
    )
    restart_index = calls.index("restart blog-wordpress")
    assert up_index < ping_index < restart_index


def test_create_creates_missing_network(tmp_path: Path) -> None:
    """The shared network is created when it does not exist yet."""
    env, calls_log = _prepare_environment(tmp_path, docker_failures=['"network inspect"*'])

    result = _invoke(env, "create", "blog")

    assert result.exit_code == 0, result.stdout
    assert "network create wordpress-net" in _calls(calls_log)


def test_create_assigns_increasing_ports(tmp_path: Path) -> None:
    """Each new site gets one port above the highest in use."""
    env, _ = _prepare_environment(tmp_path)

    first = _invoke(env, "create", "blog")
    second = _invoke(env, "create", "shop")

    assert first.exit_code == 0
    assert second.exit_code == 0
    assert "http://localhost:8082" in second.stdout

    listing = _invoke(env, "list", "--json")
    assert listing.exit_code == 0
    payload = json.loads(listing.stdout)
    assert [(entry["name"], entry["port"]) for entry in payload["sites"]] == [
        ("blog", 8081),
        ("shop", 8082),
    ]
    assert {entry["status"] for entry in payload["sites"]} == {"absent"}


def test_create_respects_ports_found_in_compose_files(tmp_path: Path) -> None:
    """Ports published by hand-made sites are never reused."""
    env, _ = _prepare_environment(tmp_path)
    legacy = tmp_path / "sites" / "legacy"
    legacy.mkdir(parents=True)
    (legacy / "docker-compose.yml").write_text('services:\n  web:\n    ports:\n      - "8090:80"\n')

    result = _invoke(env, "create", "blog")

    assert result.exit_code == 0
    assert "http://localhost:8091" in result.stdout


def test_create_existing_site_fails_without_changes(tmp_path: Path) -> None:
    """Re-creating a site is rejected and leaves everything untouched."""
    env, calls_log = _prepare_environment(tmp_path)
    assert _invoke(env, "create", "blog").exit_code == 0
    before_files = _snapshot(tmp_path / "sites")
    before_ports = (tmp_path / "state" / "registry" / "ports.yml").read_text()
    before_calls = _calls(calls_log)

    result = _invoke(env, "create", "blog")

    assert result.exit_code == 1
    assert "already exists" in result.stdout
    assert _snapshot(tmp_path / "sites") == before_files
    assert (tmp_path / "state" / "registry" / "ports.yml").read_text() == before_ports
    # Only the preflight compose version check ran.
    assert _calls(calls_log)[len(before_calls):] == ["compose version"]


@pytest.mark.parametrize("name", ["Blog", "../etc", "-x", "my_site"])
def test_create_rejects_invalid_names(tmp_path: Path, name: str) -> None:
    """Names outside ``[a-z0-9-]+`` are refused."""
    env, _ = _prepare_environment(tmp_path)

    result = _invoke(env, "create", "--", name)

    assert result.exit_code == 1
    assert not (tmp_path / "sites").exists() or list((tmp_path / "sites").iterdir()) == []


def test_create_with_database_never_ready_still_restarts(tmp_path: Path) -> None:
    """A slow database produces a warning but the site is still brought up."""
    env, calls_log = _prepare_environment(tmp_path, docker_failures=['"exec "*'])

    result = _invoke(env, "create", "blog")

    assert result.exit_code == 0, result.stdout
    assert "did not report ready" in result.stdout
    assert "restart blog-wordpress" in _calls(calls_log)


def test_create_compose_failure_cleans_up(tmp_path: Path) -> None:
    """Container start failures are fatal and leave no half-built site behind."""
    env, calls_log = _prepare_environment(tmp_path, docker_failures=['*" up -d"'])

    result = _invoke(env, "create", "blog")

    assert result.exit_code == 1
    assert "Failed to start site 'blog'" in result.stdout
    calls = _calls(calls_log)
    assert not any(call.startswith("restart") for call in calls)
    assert calls[-1].endswith("--project-name wp-blog down --volumes")
    assert not (tmp_path / "sites" / "blog").exists()
    ports = yaml.safe_load((tmp_path / "state" / "registry" / "ports.yml").read_text())
    assert ports == {"ports": []}

    retry = _invoke(env, "create", "blog")
    assert retry.exit_code == 1
    assert "already exists" not in retry.stdout


def test_create_times_out_when_lock_held(tmp_path: Path) -> None:
    """A held global lock makes create fail after the configured timeout."""
    env, _ = _prepare_environment(tmp_path)
    locks = LockManager(tmp_path / "run", default_timeout=1.0)

    with locks.global_lock():
        result = _invoke(env, "--lock-timeout", "0.1", "create", "blog")

    assert result.exit_code == 1
    assert "Timed out" in result.stdout
    assert not (tmp_path / "sites" / "blog").exists()


def test_create_writes_operation_record(tmp_path: Path) -> None:
    """Each command appends a structured record to operations.jsonl."""
    env, _ = _prepare_environment(tmp_path)

    assert _invoke(env, "create", "blog").exit_code == 0

    records = [
        json.loads(line)
        for line in (tmp_path / "logs" / "operations.jsonl").read_text().splitlines()
    ]
    create = [record for record in records if record["command"] == "create"]
    assert len(create) == 1
    assert create[0]["result"]["status"] == "success"
    assert create[0]["result"]["context"]["port"] == 8081
    step_names = [step["name"] for step in create[0]["steps"]]
    assert step_names[:4] == ["filesystem.create", "config.write", "ports.reserve", "templates.render"]


def test_start_stop_restart_issue_compose_commands(tmp_path: Path) -> None:
    """Lifecycle commands delegate to docker compose for the site's project."""
    env, calls_log = _prepare_environment(tmp_path)
    assert _invoke(env, "create", "blog").exit_code == 0

    for command in ("stop", "start", "restart"):
        result = _invoke(env, command, "blog")
        assert result.exit_code == 0, result.stdout

    compose_prefix = (
        f"compose --file {tmp_path / 'sites' / 'blog' / 'docker-compose.yml'} "
        "--project-name wp-blog"
    )
    calls = _calls(calls_log)
    assert f"{compose_prefix} stop" in calls
    assert calls.count(f"{compose_prefix} up -d") == 2
    assert f"{compose_prefix} restart" in calls


def test_stop_propagates_docker_failure(tmp_path: Path) -> None:
    """Runtime errors surface as exit code 1."""
    env, _ = _prepare_environment(tmp_path, docker_failures=['*" stop"'])

    result = _invoke(env, "stop", "ghost")

    assert result.exit_code == 1
    assert "Failed to stop site 'ghost'" in result.stdout


def test_delete_missing_site_fails(tmp_path: Path) -> None:
    """Deleting an unknown site exits 1 without touching docker."""
    env, calls_log = _prepare_environment(tmp_path)

    result = _invoke(env, "delete", "ghost", "--yes")

    assert result.exit_code == 1
    assert "does not exist" in result.stdout
    assert _calls(calls_log) == ["compose version"]


def test_delete_keep_volumes_archives_definitions(tmp_path: Path) -> None:
    """Keeping volumes records them and archives the site's definitions."""
    env, calls_log = _prepare_environment(tmp_path)
    assert _invoke(env, "create", "blog").exit_code == 0

    result = _invoke(env, "delete", "blog", "--keep-volumes")

    assert result.exit_code == 0, result.stdout
    assert not (tmp_path / "sites" / "blog").exists()
    calls = _calls(calls_log)
    assert any(call.endswith("--project-name wp-blog down") for call in calls)
    assert not any(call.endswith("down --volumes") for call in calls)

    retained = _invoke(env, "retained", "--json")
    payload = json.loads(retained.stdout)
    (entry,) = payload["retained"]
    assert entry["name"] == "blog"
    assert entry["volumes"] == ["wp-blog_db_data", "wp-blog_wp_data"]
    archive = Path(entry["archive"])
    assert (archive / "docker-compose.yml").exists()
    assert (archive / "config.env").exists()

    ports = yaml.safe_load((tmp_path / "state" / "registry" / "ports.yml").read_text())
    assert ports == {"ports": []}


def test_delete_purge_volumes_removes_everything(tmp_path: Path) -> None:
    """Purging volumes tears down with ``--volumes`` and records nothing."""
    env, calls_log = _prepare_environment(tmp_path)
    assert _invoke(env, "create", "blog").exit_code == 0

    result = _invoke(env, "delete", "blog", "--purge-volumes")

    assert result.exit_code == 0, result.stdout
    assert not (tmp_path / "sites" / "blog").exists()
    assert any(call.endswith("down --volumes") for call in _calls(calls_log))
    assert not (tmp_path / "state" / "registry" / "retained.yml").exists()


@pytest.mark.parametrize(("answer", "purged"), [("y\n", True), ("n\n", False)])
def test_delete_prompts_for_volumes(tmp_path: Path, answer: str, purged: bool) -> None:
    """Without flags the volume question is asked; the directory goes either way."""
    env, calls_log = _prepare_environment(tmp_path)
    assert _invoke(env, "create", "blog").exit_code == 0

    result = _invoke(env, "delete", "blog", input=answer)

    assert result.exit_code == 0, result.stdout
    assert "persistent volumes" in result.stdout
    assert not (tmp_path / "sites" / "blog").exists()
    assert any(call.endswith("down --volumes") for call in _calls(calls_log)) is purged


def test_delete_yes_keeps_volumes_without_prompt(tmp_path: Path) -> None:
    """``--yes`` alone never prompts and keeps volumes."""
    env, calls_log = _prepare_environment(tmp_path)
    assert _invoke(env, "create", "blog").exit_code == 0

    result = _invoke(env, "delete", "blog", "--yes")

    assert result.exit_code == 0, result.stdout
    assert "persistent volumes" not in result.stdout
    assert not any(call.endswith("down --volumes") for call in _calls(calls_log))


def test_delete_tolerates_stop_failure(tmp_path: Path) -> None:
    """A failing stop is recorded as a warning and deletion continues."""
    env, _ = _prepare_environment(tmp_path)
    assert _invoke(env, "create", "blog").exit_code == 0
    failing_env, _ = _prepare_environment(tmp_path, docker_failures=['*" stop"'])

    result = _invoke(failing_env, "delete", "blog", "--purge-volumes")

    assert result.exit_code == 0, result.stdout
    assert not (tmp_path / "sites" / "blog").exists()


def test_delete_site_without_compose_file_removes_directory(tmp_path: Path) -> None:
    """A directory with no compose file is removed without calling compose."""
    env, calls_log = _prepare_environment(tmp_path)
    junk = tmp_path / "sites" / "junk"
    junk.mkdir(parents=True)
    (junk / "notes.txt").write_text("left behind\n")

    result = _invoke(env, "delete", "junk")

    assert result.exit_code == 0, result.stdout
    assert not junk.exists()
    assert "persistent volumes" not in result.stdout
    assert not any(call.startswith("compose --file") for call in _calls(calls_log))
    assert not (tmp_path / "state" / "registry" / "retained.yml").exists()

    records = [
        json.loads(line)
        for line in (tmp_path / "logs" / "operations.jsonl").read_text().splitlines()
    ]
    (delete,) = [record for record in records if record["command"] == "delete"]
    assert {
        "name": "docker.compose.down",
        "status": "skipped",
        "detail": "docker-compose.yml missing",
    } in delete["steps"]


def test_delete_survives_corrupt_port_ledger(tmp_path: Path) -> None:
    """An unreadable ports.yml downgrades the port release to a warning."""
    env, _ = _prepare_environment(tmp_path)
    assert _invoke(env, "create", "blog").exit_code == 0
    (tmp_path / "state" / "registry" / "ports.yml").write_text("ports: [unclosed\n")

    result = _invoke(env, "delete", "blog", "--purge-volumes")

    assert result.exit_code == 0, result.stdout
    assert not (tmp_path / "sites" / "blog").exists()
    records = [
        json.loads(line)
        for line in (tmp_path / "logs" / "operations.jsonl").read_text().splitlines()
    ]
    (delete,) = [record for record in records if record["command"] == "delete"]
    statuses = {step["name"]: step["status"] for step in delete["steps"]}
    assert statuses["ports.release"] == "warning"
    assert statuses["filesystem.remove"] == "success"


def test_ports_of_retained_sites_are_not_reassigned(tmp_path: Path) -> None:
    """A port recorded for kept volumes is skipped by later creates."""
    env, _ = _prepare_environment(tmp_path)
    assert _invoke(env, "create", "blog").exit_code == 0
    assert _invoke(env, "create", "shop").exit_code == 0
    assert _invoke(env, "delete", "shop", "--keep-volumes").exit_code == 0

    result = _invoke(env, "create", "news")

    assert result.exit_code == 0, result.stdout
    assert "http://localhost:8083" in result.stdout


def test_list_reports_sites_in_name_order(tmp_path: Path) -> None:
    """``list`` shows every site directory sorted by name."""
    env, _ = _prepare_environment(tmp_path)
    assert _invoke(env, "create", "shop").exit_code == 0
    assert _invoke(env, "create", "blog").exit_code == 0

    result = _invoke(env, "list")

    assert result.exit_code == 0
    assert result.stdout.index("blog") < result.stdout.index("shop")
    assert "8082" in result.stdout


def test_list_with_no_sites(tmp_path: Path) -> None:
    """An empty sites root lists nothing."""
    env, _ = _prepare_environment(tmp_path)

    result = _invoke(env, "list", "--json")

    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"sites": []}


def test_status_reports_state(tmp_path: Path) -> None:
    """``status`` prints the derived state and port."""
    env, _ = _prepare_environment(tmp_path)
    assert _invoke(env, "create", "blog").exit_code == 0

    result = _invoke(env, "status", "blog")

    assert result.exit_code == 0
    assert "blog: absent (port 8081)" in result.stdout


def test_config_prints_site_file(tmp_path: Path) -> None:
    """``config`` prints config.env verbatim."""
    env, _ = _prepare_environment(tmp_path)
    assert _invoke(env, "create", "blog").exit_code == 0

    result = _invoke(env, "config", "blog")

    assert result.exit_code == 0
    assert "UPLOAD_MAX_FILESIZE=256M" in result.stdout
    assert "WP_DEBUG=false" in result.stdout


def test_config_missing_site_fails(tmp_path: Path) -> None:
    """Printing the config of an unknown site exits 1."""
    env, _ = _prepare_environment(tmp_path)

    result = _invoke(env, "config", "ghost")

    assert result.exit_code == 1
    assert "No config file" in result.stdout


def test_edit_config_without_changes_does_not_recreate(tmp_path: Path) -> None:
    """An editor session that changes nothing leaves the containers alone."""
    env, calls_log = _prepare_environment(tmp_path)
    assert _invoke(env, "create", "blog").exit_code == 0
    compose_before = (tmp_path / "sites" / "blog" / "docker-compose.yml").read_text()

    result = _invoke(env, "edit-config", "blog")

    assert result.exit_code == 0, result.stdout
    assert "No changes" in result.stdout
    assert not any("--force-recreate" in call for call in _calls(calls_log))
    assert (tmp_path / "sites" / "blog" / "docker-compose.yml").read_text() == compose_before


def test_edit_config_change_recreates_web_service_once(tmp_path: Path) -> None:
    """A changed config regenerates artifacts and recreates WordPress exactly once."""
    env, calls_log = _prepare_environment(tmp_path)
    assert _invoke(env, "create", "blog").exit_code == 0

    result = _invoke(env, "edit-config", "blog", str(tmp_path / "bin" / "bump-editor"))

    assert result.exit_code == 0, result.stdout
    recreates = [call for call in _calls(calls_log) if "--force-recreate" in call]
    assert len(recreates) == 1
    assert recreates[0].endswith("up -d --no-deps --force-recreate wordpress")
    compose = (tmp_path / "sites" / "blog" / "docker-compose.yml").read_text()
    assert "memory_limit = 512M" in compose
    assert "upload_max_filesize = 256M" in compose
    assert '"8081:80"' in compose


def test_edit_config_unknown_editor_fails(tmp_path: Path) -> None:
    """Naming an editor that is not installed exits 1."""
    env, _ = _prepare_environment(tmp_path)
    assert _invoke(env, "create", "blog").exit_code == 0

    result = _invoke(env, "edit-config", "blog", "definitely-not-an-editor")

    assert result.exit_code == 1
    assert "not found" in result.stdout


def test_edit_config_missing_site_fails(tmp_path: Path) -> None:
    """Editing an unknown site's config exits 1."""
    env, _ = _prepare_environment(tmp_path)

    result = _invoke(env, "edit-config", "ghost")

    assert result.exit_code == 1


def test_global_defaults_file_applies_to_new_sites(tmp_path: Path) -> None:
    """Values from the global defaults file reach the rendered compose file."""
    env, _ = _prepare_environment(tmp_path)
    (tmp_path / "defaults.env").write_text("POST_MAX_SIZE=64M\n", encoding="utf-8")
    assert _invoke(env, "create", "blog").exit_code == 0

    # config.env carries 256M, and per-site values win over global defaults.
    compose = (tmp_path / "sites" / "blog" / "docker-compose.yml").read_text()
    assert "post_max_size = 256M" in compose

    (tmp_path / "sites" / "blog" / "config.env").write_text("WP_DEBUG=true\n")
    result = _invoke(env, "edit-config", "blog", str(tmp_path / "bin" / "bump-editor"))
    assert result.exit_code == 0, result.stdout
    compose = (tmp_path / "sites" / "blog" / "docker-compose.yml").read_text()
    assert "post_max_size = 64M" in compose
    assert "memory_limit = 512M" in compose
    assert 'WORDPRESS_DEBUG: "1"' in compose


def test_retained_empty(tmp_path: Path) -> None:
    """With no retained volumes the table shows a placeholder."""
    env, _ = _prepare_environment(tmp_path)

    result = _invoke(env, "retained")

    assert result.exit_code == 0
    assert "(none)" in result.stdout
