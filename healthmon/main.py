"""Entry point for the health monitor."""

from __future__ import annotations

import argparse
import asyncio
import functools
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from healthmon.config import settings
from healthmon.errors import StoreError
from healthmon.health.probe import ProbeStatus, run_probe
from healthmon.health.scheduler import HealthScheduler
from healthmon.health.store import ResultStore
from healthmon.registry import DEFAULT_TIMEOUT_MS, Service, load_seed_services

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)

_STATUS_STYLE = {
    ProbeStatus.OK.value: "green",
    ProbeStatus.ERROR.value: "red",
    ProbeStatus.TIMEOUT.value: "yellow",
}


def _open_store() -> ResultStore:
    try:
        return ResultStore(settings.db_path, settings.db_max_connections)
    except StoreError as e:
        console.print(f"[bold red]Database connection failed:[/bold red] {e}")
        sys.exit(1)


def run_server() -> None:
    """Start the FastAPI server."""
    console.print(Panel("Starting Health Monitor API Server", style="bold green"))
    uvicorn.run(
        "healthmon.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


def run_check() -> None:
    """Run a single check cycle and print what was stored."""
    store = _open_store()
    scheduler = HealthScheduler(
        store,
        prober=functools.partial(
            run_probe,
            user_agent=settings.probe_user_agent,
            body_limit=settings.probe_body_limit,
        ),
        max_workers=settings.probe_workers,
        seed_services=load_seed_services(settings.services_file),
    )

    async def _cycle():
        try:
            return await scheduler.run_cycle()
        finally:
            await scheduler.close()

    with console.status("[bold green]Probing services..."):
        results = asyncio.run(_cycle())

    table = Table(title="Check cycle")
    table.add_column("Service")
    table.add_column("Status")
    table.add_column("Time (ms)", justify="right")
    table.add_column("Error")
    for r in results:
        style = _STATUS_STYLE.get(r.status.value, "white")
        table.add_row(
            r.service_name,
            f"[{style}]{r.status.value}[/{style}]",
            str(r.response_time if r.response_time is not None else "-"),
            r.error_message or "",
        )
    console.print(table)


def show_status() -> None:
    """Print the latest stored status of every active service."""
    store = _open_store()
    table = Table(title="Recent health status")
    table.add_column("Service")
    table.add_column("Status")
    table.add_column("Time (ms)", justify="right")
    table.add_column("Last check")
    for row in store.recent_status():
        status = row["current_status"] or "unknown"
        style = _STATUS_STYLE.get(status, "dim")
        table.add_row(
            row["service_name"],
            f"[{style}]{status}[/{style}]",
            str(row["response_time"] if row["response_time"] is not None else "-"),
            row["last_check"] or "never",
        )
    console.print(table)


def seed_registry() -> None:
    """Insert the seed services; rows that already exist are left as they are."""
    store = _open_store()
    services = load_seed_services(settings.services_file)
    inserted = store.seed_defaults(services)
    console.print(f"[bold]{inserted}[/bold] of {len(services)} services inserted "
                  f"({store.count_all()} in registry)")


def list_registry() -> None:
    """Print every registered service, active or not."""
    store = _open_store()
    table = Table(title="Service registry")
    table.add_column("Service")
    table.add_column("URL")
    table.add_column("Active")
    table.add_column("Timeout (ms)", justify="right")
    for svc in store.list_services():
        table.add_row(
            svc.name,
            svc.url,
            "[green]yes[/green]" if svc.is_active else "[dim]no[/dim]",
            str(svc.timeout),
        )
    console.print(table)


def add_to_registry(name: str, url: str, expected: str, timeout: int, active: bool) -> None:
    """Register a new service; an existing name is an error."""
    store = _open_store()
    service = Service(
        name=name, url=url, expected_response=expected, is_active=active, timeout=timeout,
    )
    try:
        store.add_service(service)
    except StoreError as e:
        console.print(f"[bold red]Cannot add {name}:[/bold red] {e}")
        sys.exit(1)
    console.print(f"Added [bold]{name}[/bold] ({url})")


def toggle_service(name: str, active: bool) -> None:
    store = _open_store()
    if not store.set_active(name, active):
        console.print(f"[bold red]Unknown service:[/bold red] {name}")
        sys.exit(1)
    console.print(f"[bold]{name}[/bold] {'enabled' if active else 'disabled'}")


def prune_history(days: int) -> None:
    """Delete probe records older than *days*."""
    store = _open_store()
    removed = store.cleanup_old(days)
    console.print(f"Removed [bold]{removed}[/bold] records older than {days} days")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="HTTP service health monitor")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Start the API server")
    sub.add_parser("check", help="Run one check cycle now")
    sub.add_parser("status", help="Show the latest status per service")
    sub.add_parser("seed", help="Seed the service registry")
    prune = sub.add_parser("prune", help="Delete old probe records")
    prune.add_argument("--days", type=int, default=30)
    sub.add_parser("list", help="List registered services")
    add = sub.add_parser("add", help="Register a service")
    add.add_argument("name")
    add.add_argument("url")
    add.add_argument("expected_response", help="Exact body a healthy service returns")
    add.add_argument("--timeout", type=int, default=DEFAULT_TIMEOUT_MS, help="Timeout in ms")
    add.add_argument("--inactive", action="store_true", help="Register without probing it")
    for verb in ("enable", "disable"):
        toggle = sub.add_parser(verb, help=f"{verb.capitalize()} probing of a service")
        toggle.add_argument("name")

    args = parser.parse_args(argv)

    if args.command == "serve":
        run_server()
    elif args.command == "check":
        run_check()
    elif args.command == "status":
        show_status()
    elif args.command == "seed":
        seed_registry()
    elif args.command == "prune":
        prune_history(args.days)
    elif args.command == "list":
        list_registry()
    elif args.command == "add":
        add_to_registry(
            args.name, args.url, args.expected_response, args.timeout, not args.inactive,
        )
    elif args.command in ("enable", "disable"):
        toggle_service(args.name, args.command == "enable")
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
