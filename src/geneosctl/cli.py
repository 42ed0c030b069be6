"""Typer-powered command line for ``geneosctl``.

Every instance command is a thin caller of the fan-out executor: it expands
the command line tokens into instance names, supplies an action and reports
the per-instance outcomes. Each invocation is recorded by the structured
operation log.
"""
from __future__ import annotations

import grp
import logging
import pwd
import textwrap
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .components import ComponentRegistry, Instance, build_registry
from .components.registry import Component
from .config import AppConfig, ConfigError, load_config
from .errors import ActionStatus, GeneosError, InvalidArgumentError, ProcessStoppedError
from .exit_codes import ExitCode
from .hosts import HostResolver
from .hosts.base import Host
from .instances import FanOutReport, Fleet, Lifecycle, expand, for_all, next_port_for
from .logging import OperationScope, StructuredLogger
from .providers import ArchiveInstaller, component_version, update_all
from .state import StateRegistryError
from .templates import TemplateEngine

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to geneosctl's YAML config file.",
)
NAMES_ARGUMENT = typer.Argument(
    None,
    help="Optional component type followed by NAME, @HOST or NAME@HOST tokens.",
    show_default=False,
)
JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit rows as JSON instead of a table.",
)
HOST_OPTION = typer.Option(
    "all",
    "--host",
    "-H",
    help="Host to act on ('all' for every known host).",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Manage Geneos instances across the local machine and remote hosts.

        Instance commands accept an optional component type (gateway, licd,
        netprobe, san, webserver) followed by instance names. A name without
        @HOST matches that name on every host, @HOST alone selects every
        instance on HOST and no names at all selects every instance.
        """
    ).strip(),
)
host_app = typer.Typer(help="Manage remote host definitions.")
app.add_typer(host_app, name="host")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    registry: ComponentRegistry
    hosts: HostResolver
    fleet: Fleet
    lifecycle: Lifecycle
    installer: ArchiveInstaller
    logger: StructuredLogger
    templates: TemplateEngine


def _reserved_names(config: AppConfig, registry: ComponentRegistry) -> tuple[str, ...]:
    names = list(config.reserved_names)
    for item in registry.setting("reservednames").replace(":", ",").split(","):
        if item.strip() and item.strip() not in names:
            names.append(item.strip())
    return tuple(names)


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=int(ExitCode.VALIDATION)) from exc

    registry = build_registry(config.settings)
    hosts = HostResolver.from_config(config)
    templates = TemplateEngine.with_overrides(config.templates_dir)
    fleet = Fleet(
        registry=registry,
        hosts=hosts,
        templates=templates,
        reserved_names=_reserved_names(config, registry),
    )
    runtime = RuntimeContext(
        config=config,
        registry=registry,
        hosts=hosts,
        fleet=fleet,
        lifecycle=Lifecycle.from_config(registry, config.stop),
        installer=ArchiveInstaller(
            registry=registry, local=hosts.local, link_name=config.active_link
        ),
        logger=StructuredLogger(config.logs_dir),
        templates=templates,
    )
    ctx.obj = runtime
    ctx.call_on_close(hosts.close)
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


def _configure_logging(verbose: bool, debug: bool) -> None:
    if debug:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    elif verbose:
        logging.basicConfig(level=logging.INFO, format="%(message)s")


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the geneosctl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress messages."),
    debug: bool = typer.Option(False, "--debug", help="Log debugging detail."),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    _configure_logging(verbose, debug)
    if version:
        runtime = _ensure_runtime(ctx, config_file)
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"geneosctl {__version__}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=0)

    _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=0)


# ----------------------------------------------------------------------
# Shared helpers
# ----------------------------------------------------------------------


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = 2,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=rc)
    raise typer.Exit(code=rc)


def _geneos_error(op: OperationScope, exc: GeneosError | StateRegistryError) -> NoReturn:
    rc = exc.exit_code if isinstance(exc, GeneosError) else ExitCode.ENVIRONMENT
    _command_error(op, str(exc), rc=int(rc))


def _resolve_component(
    op: OperationScope,
    registry: ComponentRegistry,
    token: str | None,
) -> Component | None:
    if token is None:
        return None
    if not registry.is_alias(token):
        _command_error(op, f"unknown component type {token!r}", rc=int(ExitCode.VALIDATION))
    return registry.lookup(token)


def _resolve_host(op: OperationScope, runtime: RuntimeContext, name: str) -> Host:
    host = runtime.hosts.get(name)
    if not host.loaded:
        _command_error(op, f"host {name!r} not found", rc=int(ExitCode.NOT_FOUND))
    return host


def _report_results(
    report: FanOutReport,
    describe: Callable[[Any], str] | None = None,
) -> None:
    for result in report.results:
        if result.status is ActionStatus.OK:
            detail = describe(result.value) if describe is not None else "done"
            console.print(f"[green]{result.instance}[/green] {detail}")
        elif result.status is ActionStatus.STOPPED:
            console.print(f"{result.instance} not running")
        elif result.status is ActionStatus.UNSUPPORTED:
            console.print(f"[yellow]{result.instance}[/yellow] {result.cause}")
        else:
            console.print(f"[red]{result.describe()}[/red]")


def _finish(op: OperationScope, report: FanOutReport, summary: str) -> None:
    context = {
        "results": [
            {"instance": result.instance, "status": result.status.value} for result in report.results
        ],
        "unmatched": report.unmatched,
    }
    changed = sum(1 for result in report.results if result.status is ActionStatus.OK)
    if report.failures:
        op.warning(
            summary,
            errors=[result.describe() for result in report.failures],
            changed=changed,
            context=context,
        )
    else:
        op.success(summary, changed=changed, context=context)


def _fan_out(
    ctx: typer.Context,
    command: str,
    names: Sequence[str] | None,
    action: Callable[[Instance, Sequence[str]], Any],
    *,
    describe: Callable[[Any], str] | None = None,
    quiet: bool = False,
    args: dict[str, object] | None = None,
) -> FanOutReport:
    """Expand *names* and apply *action* to every matching instance."""
    runtime = _get_runtime(ctx)
    tokens = list(names or [])
    with runtime.logger.operation(
        command,
        args={"names": tokens, **(args or {})},
        target={"kind": "instance"},
    ) as op:
        try:
            expansion = expand(runtime.fleet, tokens)
            op.add_step("expand", detail=",".join(expansion.names))
            report = for_all(
                runtime.fleet, expansion.component, action, expansion.names, expansion.params
            )
        except GeneosError as exc:
            _geneos_error(op, exc)
        if not quiet:
            _report_results(report, describe)
        _finish(op, report, f"{command} applied to {len(report.results)} instance(s).")
        return report


# ----------------------------------------------------------------------
# Lifecycle commands
# ----------------------------------------------------------------------


@app.command()
def start(ctx: typer.Context, names: list[str] | None = NAMES_ARGUMENT) -> None:
    """Start instances that are not already running."""
    lifecycle = _get_runtime(ctx).lifecycle
    _fan_out(
        ctx,
        "start",
        names,
        lambda instance, _params: lifecycle.start(instance),
        describe=lambda pid: f"running with PID {pid}",
    )


@app.command()
def stop(
    ctx: typer.Context,
    names: list[str] | None = NAMES_ARGUMENT,
    kill: bool = typer.Option(False, "--kill", "-K", help="Send SIGKILL immediately."),
) -> None:
    """Stop running instances, escalating to SIGKILL when they linger."""
    lifecycle = _get_runtime(ctx).lifecycle
    _fan_out(
        ctx,
        "stop",
        names,
        lambda instance, _params: lifecycle.stop(instance, force=kill),
        describe=lambda _value: "stopped",
        args={"kill": kill},
    )


@app.command()
def restart(ctx: typer.Context, names: list[str] | None = NAMES_ARGUMENT) -> None:
    """Stop and start instances."""
    lifecycle = _get_runtime(ctx).lifecycle
    _fan_out(
        ctx,
        "restart",
        names,
        lambda instance, _params: lifecycle.restart(instance),
        describe=lambda pid: f"restarted with PID {pid}",
    )


@app.command()
def reload(ctx: typer.Context, names: list[str] | None = NAMES_ARGUMENT) -> None:
    """Ask running instances to reread their configuration."""
    lifecycle = _get_runtime(ctx).lifecycle
    _fan_out(
        ctx,
        "reload",
        names,
        lambda instance, _params: lifecycle.reload(instance),
        describe=lambda _value: "reload signal sent",
    )


@app.command()
def disable(ctx: typer.Context, names: list[str] | None = NAMES_ARGUMENT) -> None:
    """Stop instances and prevent them from being started."""
    lifecycle = _get_runtime(ctx).lifecycle
    _fan_out(
        ctx,
        "disable",
        names,
        lambda instance, _params: lifecycle.disable(instance),
        describe=lambda changed: "disabled" if changed else "already disabled",
    )


@app.command()
def enable(ctx: typer.Context, names: list[str] | None = NAMES_ARGUMENT) -> None:
    """Remove the disable marker from instances."""
    lifecycle = _get_runtime(ctx).lifecycle
    _fan_out(
        ctx,
        "enable",
        names,
        lambda instance, _params: lifecycle.enable(instance),
        describe=lambda changed: "enabled" if changed else "not disabled",
    )


@app.command()
def clean(
    ctx: typer.Context,
    names: list[str] | None = NAMES_ARGUMENT,
    purge: bool = typer.Option(
        False,
        "--purge",
        "-F",
        help="Also remove the purge list, stopping and restarting running instances.",
    ),
) -> None:
    """Remove old log and state files from instance directories."""
    lifecycle = _get_runtime(ctx).lifecycle
    _fan_out(
        ctx,
        "clean",
        names,
        lambda instance, _params: lifecycle.clean(instance, purge=purge),
        describe=lambda removed: f"removed {len(removed)} path(s)",
        args={"purge": purge},
    )


@app.command()
def rebuild(
    ctx: typer.Context,
    names: list[str] | None = NAMES_ARGUMENT,
    reload_after: bool = typer.Option(
        False,
        "--reload",
        "-r",
        help="Send the reload signal after rebuilding.",
    ),
) -> None:
    """Regenerate derived configuration files."""
    lifecycle = _get_runtime(ctx).lifecycle

    def action(instance: Instance, _params: Sequence[str]) -> None:
        instance.rebuild(initial=False)
        if reload_after:
            try:
                lifecycle.reload(instance)
            except ProcessStoppedError:
                pass

    _fan_out(
        ctx,
        "rebuild",
        names,
        action,
        describe=lambda _value: "rebuilt",
        args={"reload": reload_after},
    )


# ----------------------------------------------------------------------
# Listings
# ----------------------------------------------------------------------


def _version_label(instance: Instance) -> str:
    base, underlying = component_version(instance)
    return f"{base}:{underlying}"


def _owner_names(host: Host, uid: int, gid: int) -> tuple[str, str]:
    if not host.is_local:
        return str(uid), str(gid)
    try:
        user = pwd.getpwuid(uid).pw_name
    except KeyError:
        user = str(uid)
    try:
        group = grp.getgrgid(gid).gr_name
    except KeyError:
        group = str(gid)
    return user, group


def _print_rows(rows: list[dict[str, Any]], columns: Sequence[tuple[str, str]]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    for index, (title, _key) in enumerate(columns):
        table.add_column(title, style="bold" if index == 1 else None)
    if not rows:
        table.add_row("(none)", *([""] * (len(columns) - 1)))
    for row in rows:
        table.add_row(*(str(row.get(key, "")) for _title, key in columns))
    console.print(table)


LS_COLUMNS = (
    ("Type", "type"),
    ("Name", "label"),
    ("Location", "host"),
    ("Port", "port"),
    ("Version", "version"),
    ("Home", "home"),
)
PS_COLUMNS = (
    ("Type", "type"),
    ("Name", "name"),
    ("Location", "host"),
    ("PID", "pid"),
    ("User", "user"),
    ("Group", "group"),
    ("Starttime", "started"),
    ("Version", "version"),
    ("Home", "home"),
)


@app.command("ls")
def list_instances(
    ctx: typer.Context,
    names: list[str] | None = NAMES_ARGUMENT,
    json_output: bool = JSON_OPTION,
) -> None:
    """List instances, marking disabled ones with '*'."""

    def action(instance: Instance, _params: Sequence[str]) -> dict[str, Any]:
        common = instance.common
        disabled = common.is_disabled()
        return {
            "type": common.component.name,
            "name": common.name,
            "label": f"{common.name}*" if disabled else common.name,
            "disabled": disabled,
            "host": common.host.name,
            "port": common.get_int("port"),
            "version": _version_label(instance),
            "home": common.home,
        }

    report = _fan_out(ctx, "ls", names, action, quiet=True, args={"json": json_output})
    rows = report.values()
    if json_output:
        console.print_json(data={"instances": rows})
        return
    _print_rows(rows, LS_COLUMNS)


@app.command("ps")
def list_processes(
    ctx: typer.Context,
    names: list[str] | None = NAMES_ARGUMENT,
    json_output: bool = JSON_OPTION,
) -> None:
    """List running instances with their process details."""
    lifecycle = _get_runtime(ctx).lifecycle

    def action(instance: Instance, _params: Sequence[str]) -> dict[str, Any]:
        common = instance.common
        info = lifecycle.info(instance)
        user, group = _owner_names(common.host, info.uid, info.gid)
        return {
            "type": common.component.name,
            "name": common.name,
            "host": common.host.name,
            "pid": info.pid,
            "user": user,
            "group": group,
            "started": info.started.isoformat(timespec="seconds"),
            "version": _version_label(instance),
            "home": common.home,
        }

    report = _fan_out(ctx, "ps", names, action, quiet=True, args={"json": json_output})
    rows = report.values()
    if json_output:
        console.print_json(data={"processes": rows})
        return
    _print_rows(rows, PS_COLUMNS)


# ----------------------------------------------------------------------
# Packages
# ----------------------------------------------------------------------


@app.command()
def update(
    ctx: typer.Context,
    component_name: str | None = typer.Argument(
        None,
        metavar="[TYPE]",
        help="Component type to update (default: every type).",
    ),
    version: str = typer.Option("latest", "--version", help="Version or version prefix."),
    link_name: str | None = typer.Option(
        None,
        "--link",
        "-b",
        help="Name of the activation link (default from configuration).",
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Replace an existing link."),
    host_name: str = HOST_OPTION,
) -> None:
    """Point the active link of installed packages at a version."""
    runtime = _get_runtime(ctx)
    link = link_name or runtime.config.active_link
    with runtime.logger.operation(
        "update",
        args={"type": component_name, "version": version, "link": link, "force": force},
        target={"kind": "package", "host": host_name},
    ) as op:
        component = _resolve_component(op, runtime.registry, component_name)
        try:
            results = update_all(
                runtime.hosts,
                runtime.registry,
                _resolve_host(op, runtime, host_name),
                component,
                version=version,
                link_name=link,
                overwrite=force,
            )
        except GeneosError as exc:
            _geneos_error(op, exc)
        for result in results:
            state = "updated to" if result.changed else "already at or kept"
            console.print(
                f"{result.component} on {result.host}: {result.link} {state} {result.version}"
            )
        changed = sum(1 for result in results if result.changed)
        op.success(
            "Package links updated.",
            changed=changed,
            context={"results": [asdict(result) for result in results]},
        )


@app.command()
def install(
    ctx: typer.Context,
    source: str = typer.Argument(
        ...,
        metavar="ARCHIVE|TYPE",
        help="Path to a release archive, or a component type to install the newest download.",
    ),
    override: str | None = typer.Option(
        None,
        "--override",
        "-T",
        help="Override the component type and version as TYPE:VERSION.",
    ),
    version: str = typer.Option("", "--version", help="Version filter when installing by type."),
    force: bool = typer.Option(False, "--force", "-f", help="Replace an existing active link."),
    host_name: str = typer.Option("localhost", "--host", "-H", help="Host to install onto."),
) -> None:
    """Unpack a release archive into packages/TYPE/VERSION and activate it."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "install",
        args={"source": source, "override": override, "force": force},
        target={"kind": "package", "host": host_name},
    ) as op:
        installer = runtime.installer
        try:
            component: Component | None = None
            if runtime.registry.is_alias(source):
                component = runtime.registry.lookup(source)
                if component is None:
                    raise InvalidArgumentError(f"{source!r} is not an installable component")
                archive = installer.latest_archive(component, version)
            else:
                archive = Path(source).expanduser()
            host = _resolve_host(op, runtime, host_name)
            targets = runtime.hosts.all_hosts() if host is runtime.hosts.all else [host]
            results = [
                installer.install(
                    target, archive, component=component, override=override, overwrite=force
                )
                for target in targets
            ]
        except GeneosError as exc:
            _geneos_error(op, exc)
        for target, result in zip(targets, results, strict=True):
            state = "installed" if result.installed else "already installed"
            console.print(f"{result.component} {result.version} {state} on {target.name}")
            op.add_step("install", detail=f"{target.name}:{result.path}")
        op.success(
            "Archive installed.",
            changed=sum(1 for result in results if result.installed),
        )


@app.command()
def init(
    ctx: typer.Context,
    host_name: str = typer.Option("localhost", "--host", "-H", help="Host to initialise."),
) -> None:
    """Create the directory layout under a host's Geneos root."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("init", target={"kind": "host", "host": host_name}) as op:
        host = _resolve_host(op, runtime, host_name)
        targets = runtime.hosts.all_hosts() if host is runtime.hosts.all else [host]
        created: list[str] = []
        try:
            for target in targets:
                created.extend(runtime.registry.make_component_dirs(target))
        except (OSError, GeneosError) as exc:
            _command_error(op, f"cannot create directories: {exc}", rc=int(ExitCode.ENVIRONMENT))
        for path in created:
            console.print(path)
        op.success("Directory layout created.", changed=len(created))


@app.command("nextport")
def next_port_command(
    ctx: typer.Context,
    component_name: str = typer.Argument(..., metavar="TYPE", help="Component type."),
    host_name: str = typer.Option("localhost", "--host", "-H", help="Host to inspect."),
) -> None:
    """Print the first free port in a component's port range."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "nextport",
        args={"type": component_name},
        target={"kind": "host", "host": host_name},
    ) as op:
        component = _resolve_component(op, runtime.registry, component_name)
        if component is None:
            _command_error(op, "a concrete component type is required", rc=int(ExitCode.VALIDATION))
        try:
            port = next_port_for(runtime.fleet, _resolve_host(op, runtime, host_name), component)
        except GeneosError as exc:
            _geneos_error(op, exc)
        if port == 0:
            _command_error(
                op,
                f"no free port left in {component} range on {host_name}",
                rc=int(ExitCode.NOT_FOUND),
            )
        console.print(str(port))
        op.success("Reported next free port.", context={"port": port})


# ----------------------------------------------------------------------
# Hosts
# ----------------------------------------------------------------------


@host_app.command("add")
def host_add(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Logical name of the host."),
    url: str | None = typer.Argument(
        None,
        help="ssh://[USER@]HOST[:PORT][/GENEOS_ROOT] (default: ssh://NAME).",
    ),
    init_dirs: bool = typer.Option(False, "--init", "-I", help="Create the directory layout."),
    probe: bool = typer.Option(
        True,
        "--probe/--no-probe",
        help="Connect to read the remote OS release information.",
    ),
) -> None:
    """Add a remote host definition."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "host add",
        args={"url": url, "init": init_dirs, "probe": probe},
        target={"kind": "host", "host": name},
    ) as op:
        try:
            host = runtime.hosts.add(name, url or name, probe=probe)
            op.add_step("host.save", detail=runtime.hosts.settings_path(name))
            if init_dirs:
                runtime.registry.make_component_dirs(host)
                op.add_step("host.init", detail=host.root)
        except (GeneosError, StateRegistryError) as exc:
            _geneos_error(op, exc)
        console.print(f"[green]host {name} added[/green] ({host.hostname}:{host.root})")
        op.success("Host added.", changed=1)


@host_app.command("ls")
def host_list(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """List known hosts."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "host ls", args={"json": json_output}, target={"kind": "host"}
    ) as op:
        rows = [
            {
                "name": host.name,
                "hostname": host.hostname,
                "port": host.settings.get("port", ""),
                "username": host.settings.get("username", ""),
                "root": host.root,
            }
            for host in runtime.hosts.all_hosts()
        ]
        if json_output:
            console.print_json(data={"hosts": rows})
        else:
            _print_rows(
                rows,
                (
                    ("Name", "name"),
                    ("Hostname", "hostname"),
                    ("Port", "port"),
                    ("Username", "username"),
                    ("Geneos", "root"),
                ),
            )
        op.success("Reported hosts.", changed=0)


@host_app.command("delete")
def host_delete(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Logical name of the host."),
) -> None:
    """Delete a remote host definition."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("host delete", target={"kind": "host", "host": name}) as op:
        try:
            runtime.hosts.delete(name)
            runtime.fleet.evict_host(name)
        except GeneosError as exc:
            _geneos_error(op, exc)
        console.print(f"host {name} deleted")
        op.success("Host deleted.", changed=1)


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["RuntimeContext", "app", "main"]
