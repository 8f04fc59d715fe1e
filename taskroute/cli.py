"""taskroute CLI: Typer + Rich terminal interface.

Commands: route, record, history, decisions, rules, config.
All output is Rich-powered with color-coded panels and tables.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from taskroute import __version__
from taskroute.app import build_router, connect_store
from taskroute.persistence.database import DEFAULT_DB_PATH, close_db, init_db
from taskroute.persistence.store import RouteStore
from taskroute.providers.load import StaticLoadProvider
from taskroute.providers.registry import (
    DEFAULT_CONFIG_PATH,
    apply_env_overrides,
    load_router_settings,
    load_worker_config,
)
from taskroute.routing.rules import load_rules
from taskroute.schemas.routing import RoutingDecision, SystemLoad, WorkerMode
from taskroute.schemas.task import (
    Level,
    Priority,
    ResourceRequirements,
    TaskProfile,
    TaskType,
)

console = Console()
err_console = Console(stderr=True)

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="taskroute",
    help="Route agent tasks to local or codespace execution.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

rules_app = typer.Typer(
    name="rules",
    help="Inspect routing rules.",
    no_args_is_help=True,
)
app.add_typer(rules_app, name="rules")

config_app = typer.Typer(
    name="config",
    help="Show router configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"taskroute {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log routing internals to stderr.",
    ),
) -> None:
    """Routing decisions for agent tasks."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=err_console, show_path=False)],
        )


# ── Helpers ──────────────────────────────────────────────────────

def _parse_enum(enum_cls, value: str, label: str):
    """Parse a CLI string into ``enum_cls``, exit on error."""
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        console.print(f"[red]Invalid {label}:[/red] '{value}' (expected: {allowed})")
        raise typer.Exit(1) from None


def _mode_style(mode: str) -> str:
    """Return a Rich style string for a worker mode."""
    return {
        "local": "bold green",
        "codespace": "bold blue",
        "hybrid": "bold yellow",
    }.get(mode, "white")


def _run_store(db_path: str, op):
    """Open the route store, run ``op(store)``, and close it."""

    async def _run():
        db = await init_db(db_path)
        try:
            return await op(RouteStore(db))
        finally:
            await close_db(db)

    return asyncio.run(_run())


def _display_decision(task: TaskProfile, decision: RoutingDecision) -> None:
    style = _mode_style(decision.mode.value)
    console.print(Panel(
        f"[bold]{task.title}[/bold] [dim]({task.task_id})[/dim]\n"
        f"Mode: [{style}]{decision.mode.value}[/{style}]\n"
        f"Reason: {decision.reason} [dim](rule {decision.rule_id})[/dim]\n"
        f"Confidence: {decision.confidence:.2f}\n"
        f"Estimated cost: ${decision.estimated_cost:.4f} "
        f"over {decision.estimated_duration:g} min",
        title="Routing Decision",
        border_style="blue",
    ))

    factors = Table(title="Factors")
    factors.add_column("Factor", style="bold")
    factors.add_column("Weight", justify="right")
    factors.add_column("Value", justify="right")
    factors.add_column("Leans")
    factors.add_column("Detail", style="dim")
    for f in decision.factors:
        factors.add_row(
            f.name,
            f"{f.weight:.2f}",
            f"{f.value:.2f}",
            Text(f.contribution.value, style=_mode_style(f.contribution.value)),
            f.description,
        )
    console.print(factors)

    alternatives = Table(title="Alternatives")
    alternatives.add_column("Mode", style="bold")
    alternatives.add_column("Confidence", justify="right")
    alternatives.add_column("Tradeoffs")
    for alt in decision.alternatives:
        alternatives.add_row(
            alt.mode.value, f"{alt.confidence:.2f}", "; ".join(alt.tradeoffs),
        )
    console.print(alternatives)

    breakdown = decision.cost.factors
    console.print(
        f"[dim]Cost factors: compute ${breakdown.compute:.4f}, "
        f"time ${breakdown.time:.4f}, failure ${breakdown.failure:.4f}[/dim]"
    )


# ── taskroute route ──────────────────────────────────────────────

@app.command()
def route(
    title: str = typer.Argument(..., help="Task title"),
    task_id: str = typer.Option(None, "--id", help="Task id (random if omitted)"),
    task_type: str = typer.Option("feature", "--type", "-t", help="Task type"),
    complexity: str = typer.Option("medium", "--complexity", "-c", help="low, medium, high"),
    duration: float = typer.Option(30.0, "--duration", "-d", help="Estimated minutes"),
    priority: str = typer.Option("medium", "--priority", "-p", help="Task priority"),
    cpu: str = typer.Option("medium", "--cpu", help="CPU demand"),
    memory: str = typer.Option("medium", "--memory", help="Memory demand"),
    disk: str = typer.Option("low", "--disk", help="Disk demand"),
    network: str = typer.Option("low", "--network", help="Network demand"),
    gpu: bool = typer.Option(False, "--gpu", help="Task needs a GPU"),
    isolation: bool = typer.Option(False, "--isolation", help="Task needs isolation"),
    labels: list[str] = typer.Option(None, "--label", "-l", help="Task label (repeatable)"),
    system_cpu: float = typer.Option(0.0, "--system-cpu", help="Host CPU usage %"),
    system_memory: float = typer.Option(0.0, "--system-memory", help="Host memory usage %"),
    active_tasks: int = typer.Option(0, "--active-tasks", help="Tasks running locally"),
    config_file: Path = typer.Option(None, "--config", help="Router config TOML"),
    rules_file: Path = typer.Option(None, "--rules", help="Extra rules TOML"),
    db_path: str = typer.Option(None, "--db", help="Persist to this route database"),
    as_json: bool = typer.Option(False, "--json", help="Print the decision as JSON"),
) -> None:
    """Route a task and show the decision."""
    try:
        task = TaskProfile(
            task_id=task_id or uuid.uuid4().hex[:12],
            title=title,
            type=_parse_enum(TaskType, task_type, "task type"),
            complexity=_parse_enum(Level, complexity, "complexity"),
            estimated_duration=duration,
            priority=_parse_enum(Priority, priority, "priority"),
            resource_requirements=ResourceRequirements(
                cpu=_parse_enum(Level, cpu, "cpu level"),
                memory=_parse_enum(Level, memory, "memory level"),
                disk=_parse_enum(Level, disk, "disk level"),
                network=_parse_enum(Level, network, "network level"),
                gpu=gpu,
                isolation=isolation,
            ),
            labels=frozenset(labels or []),
        )
        load = SystemLoad(
            cpu_usage=system_cpu,
            memory_usage=system_memory,
            active_tasks=active_tasks,
        )
    except ValidationError as e:
        console.print(f"[red]Invalid task:[/red] {e}")
        raise typer.Exit(1) from None

    try:
        router = build_router(
            config_path=config_file,
            rules_path=rules_file,
            load_provider=StaticLoadProvider(load),
        )
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(1) from None

    async def _route():
        db = await init_db(db_path) if db_path else None
        try:
            if db is not None:
                await connect_store(router, RouteStore(db))
            decision = await router.route(task)
            await router.emitter.drain()
            return decision
        finally:
            if db is not None:
                await close_db(db)

    decision = asyncio.run(_route())

    if as_json:
        typer.echo(decision.model_dump_json(indent=2))
        return
    _display_decision(task, decision)


# ── taskroute record ─────────────────────────────────────────────

@app.command()
def record(
    task_type: str = typer.Argument(..., help="Task type the outcome belongs to"),
    mode: str = typer.Argument(..., help="Mode the task ran in: local or codespace"),
    success: bool = typer.Option(True, "--success/--failure", help="Task outcome"),
    duration: float = typer.Option(..., "--duration", "-d", help="Actual minutes"),
    reason: str = typer.Option(None, "--reason", help="Failure reason"),
    db_path: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Route database"),
) -> None:
    """Feed a completed task's outcome into the learned history."""
    parsed_type = _parse_enum(TaskType, task_type, "task type")
    parsed_mode = _parse_enum(WorkerMode, mode, "mode")
    router = build_router()

    async def _record(store: RouteStore):
        await connect_store(router, store)
        updated = router.update_historical_performance(
            parsed_type, parsed_mode, success, duration, reason,
        )
        await router.emitter.drain()
        return updated

    updated = _run_store(db_path, _record)
    console.print(
        f"[green]Recorded[/green] {parsed_type.value}/{parsed_mode.value}: "
        f"local {updated.local_success_rate:.0%}, "
        f"codespace {updated.codespace_success_rate:.0%}"
    )


# ── taskroute history ────────────────────────────────────────────

@app.command()
def history(
    db_path: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Route database"),
) -> None:
    """Show learned success rates and durations per task type."""

    async def _load(store: RouteStore):
        return await store.load_performance()

    records = _run_store(db_path, _load)
    if not records:
        console.print("[dim]No history recorded yet.[/dim]")
        return

    table = Table(title="Historical Performance")
    table.add_column("Task Type", style="bold cyan")
    table.add_column("Local OK", justify="right")
    table.add_column("Codespace OK", justify="right")
    table.add_column("Local Avg", justify="right")
    table.add_column("Codespace Avg", justify="right")
    table.add_column("Failures", justify="right", style="dim")

    for r in records:
        table.add_row(
            r.task_type.value,
            f"{r.local_success_rate:.0%}",
            f"{r.codespace_success_rate:.0%}",
            f"{r.local_avg_duration:.1f}m",
            f"{r.codespace_avg_duration:.1f}m",
            str(len(r.local_failure_reasons) + len(r.codespace_failure_reasons)),
        )
    console.print(table)


# ── taskroute decisions ──────────────────────────────────────────

@app.command()
def decisions(
    limit: int = typer.Option(20, "--limit", "-n", help="Max decisions to show"),
    mode: str = typer.Option(None, "--mode", "-m", help="Filter by mode"),
    db_path: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Route database"),
) -> None:
    """Show recent routing decisions from the audit trail."""
    mode_filter = _parse_enum(WorkerMode, mode, "mode") if mode else None

    async def _list(store: RouteStore):
        return await store.list_decisions(limit=limit, mode=mode_filter)

    rows = _run_store(db_path, _list)
    if not rows:
        console.print("[dim]No decisions found.[/dim]")
        return

    table = Table(title=f"Decisions ({len(rows)} shown)")
    table.add_column("Task", style="cyan", no_wrap=True)
    table.add_column("Type", style="dim")
    table.add_column("Mode")
    table.add_column("Rule", style="dim")
    table.add_column("Conf", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Outcome")

    for r in rows:
        if r.success is None:
            outcome = Text("in flight", style="dim")
        elif r.success:
            outcome = Text("OK", style="green")
        else:
            outcome = Text("FAIL", style="red")
        table.add_row(
            r.task_id,
            r.task_type.value,
            Text(r.mode.value, style=_mode_style(r.mode.value)),
            r.rule_id,
            f"{r.confidence:.2f}",
            f"${r.estimated_cost:.4f}",
            outcome,
        )
    console.print(table)


# ── taskroute rules ──────────────────────────────────────────────

@rules_app.command("list")
def rules_list(
    rules_file: Path = typer.Option(None, "--rules", help="Extra rules TOML"),
) -> None:
    """Show routing rules in evaluation order."""
    try:
        router = build_router(rules_path=rules_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading rules:[/red] {e}")
        raise typer.Exit(1) from None

    table = Table(title="Routing Rules", show_lines=True)
    table.add_column("Priority", justify="right", style="bold")
    table.add_column("Id", style="cyan")
    table.add_column("Action")
    table.add_column("Reason")

    rules = router.get_rules()
    for rule in rules:
        table.add_row(
            str(rule.priority),
            rule.id,
            Text(rule.action.value, style=_mode_style(rule.action.value)),
            rule.reason,
        )
    console.print(table)
    console.print(f"\n[dim]{len(rules)} rules registered[/dim]")


@rules_app.command("check")
def rules_check(
    rules_file: Path = typer.Argument(..., help="Rules TOML to validate"),
) -> None:
    """Validate a rules file without routing anything."""
    try:
        rules = load_rules(rules_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Invalid rules file:[/red] {e}")
        raise typer.Exit(1) from None
    for rule in rules:
        console.print(f"[green]ok[/green] {rule.id} (priority {rule.priority})")


# ── taskroute config ─────────────────────────────────────────────

@config_app.command("show")
def config_show(
    config_file: Path = typer.Option(None, "--config", help="Router config TOML"),
) -> None:
    """Show router settings and the effective worker configuration."""
    try:
        settings = load_router_settings(config_file)
        workers = apply_env_overrides(load_worker_config(config_file))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None

    table = Table(title="Router Configuration", show_header=False, show_lines=True)
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    table.add_row("Cache Lifetime", f"{settings.cache_lifetime:g}s")
    table.add_row("Smoothing Factor", f"{settings.smoothing_factor:g}")
    table.add_row("Time Value", f"${settings.time_value_per_minute:.2f}/min")
    table.add_row("Failure Reasons Kept", str(settings.failure_reason_limit))
    table.add_row("Local Max Concurrent", str(workers.local.max_concurrent_tasks))
    table.add_row("Codespace Machine", workers.codespace.machine)
    table.add_row("Codespace Rate", f"${workers.codespace.hourly_rate:.2f}/h")

    console.print(table)


@config_app.command("path")
def config_path() -> None:
    """Show configuration file locations."""
    files = [
        ("Defaults", DEFAULT_CONFIG_PATH),
        ("Route Database", Path(DEFAULT_DB_PATH).expanduser()),
    ]

    table = Table(title="Configuration Paths", show_header=False)
    table.add_column("Config", style="bold")
    table.add_column("Path")
    table.add_column("Status")

    for name, path in files:
        status = "[green]found[/green]" if path.exists() else "[red]missing[/red]"
        table.add_row(name, str(path), status)

    console.print(table)
