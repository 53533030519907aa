"""
Operator command line for the flight board service.

    flightboard board SFO
    flightboard sync SFO --direction arrivals
    flightboard refresh SFO
    flightboard clear-cache SFO
    flightboard clear-cache --all
    flightboard init-db
"""

import asyncio
from typing import List, Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .app import FlightBoardApp
from .database.config import initialize_database
from .exceptions import FlightBoardError
from .models.enums import Direction
from .models.flight import FlightBoard, FlightRecord
from .utils.config import get_config
from .utils.logging import configure_logging

app = typer.Typer(help="Freshness-tiered flight board backed by Valkey and AirLabs")
console = Console()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", "-l", help="Override LOG_LEVEL"),
):
    configure_logging(log_level or get_config().log_level)


def flights_table(title: str, flights: List[FlightRecord], direction: Direction) -> Table:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Flight", style="cyan bold")
    table.add_column("Airline", style="white")
    table.add_column("To" if direction is Direction.DEPARTURES else "From", style="white")
    table.add_column("Scheduled", style="white")
    table.add_column("Actual", style="white")
    table.add_column("Gate", style="yellow")
    table.add_column("Status", style="green")
    table.add_column("Delay", style="red", justify="right")

    for f in flights:
        if direction is Direction.DEPARTURES:
            row = [f.arr_iata, f.dep_time, f.dep_actual, f.dep_gate]
        else:
            row = [f.dep_iata, f.arr_time, f.arr_actual, f.arr_gate]
        table.add_row(
            f.flight_iata,
            f.airline_iata or "",
            *[value or "" for value in row],
            f.status or "",
            f"{f.delayed}m" if f.delayed else "",
        )
    return table


def print_board(airport: str, board: FlightBoard) -> None:
    console.print()
    console.print(flights_table(f"Departures {airport}", board.departures, Direction.DEPARTURES))
    console.print()
    console.print(flights_table(f"Arrivals {airport}", board.arrivals, Direction.ARRIVALS))


def run(coro):
    try:
        return asyncio.run(coro)
    except FlightBoardError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(code=1)


@app.command()
def board(
    airport: str = typer.Argument(..., help="IATA airport code"),
    live: bool = typer.Option(False, "--live", help="Query upstream directly, bypassing cache and store"),
):
    """Show departures and arrivals for an airport."""
    async def _board():
        async with FlightBoardApp() as fb:
            if live:
                result = await fb.gateway.live_snapshot(airport)
            else:
                result = await fb.gateway.get_flights(airport)
            print_board(airport.upper(), result)
            console.print(f"\n[dim]{fb.gateway.get_stats()['gateway']}[/dim]")

    run(_board())


@app.command()
def sync(
    airport: str = typer.Argument(..., help="IATA airport code"),
    direction: Direction = typer.Option(Direction.DEPARTURES, "--direction", "-d", help="Direction to reconcile"),
):
    """Reconcile one direction of an airport with upstream."""
    async def _sync():
        async with FlightBoardApp() as fb:
            result = await fb.gateway.sync_direction(direction, airport)

        table = Table(title=f"Sync {result.direction.value} {result.airport}", box=box.ROUNDED, show_header=False)
        table.add_column("Metric", style="cyan bold")
        table.add_column("Value", style="white")
        for name, value in result.to_dict().items():
            table.add_row(name, str(value))
        console.print(table)

    run(_sync())


@app.command()
def refresh(airport: str = typer.Argument(..., help="IATA airport code")):
    """Evict the cached board and rebuild it from upstream."""
    async def _refresh():
        async with FlightBoardApp() as fb:
            result = await fb.gateway.force_refresh(airport)
        print_board(airport.upper(), result)
        console.print("[green]✓[/green] Cache refreshed")

    run(_refresh())


@app.command("clear-cache")
def clear_cache(
    airport: Optional[str] = typer.Argument(None, help="IATA airport code"),
    all_airports: bool = typer.Option(False, "--all", help="Clear every cached board"),
):
    """Evict cached boards."""
    if not airport and not all_airports:
        console.print("[red]Give an airport code or --all[/red]")
        raise typer.Exit(code=2)

    async def _clear():
        async with FlightBoardApp() as fb:
            if all_airports:
                deleted = await fb.gateway.clear_all_caches()
                console.print(f"[green]✓[/green] Cleared {deleted} cached boards")
            else:
                await fb.gateway.clear_cache(airport)
                console.print(f"[green]✓[/green] Cleared cache for {airport.upper()}")

    run(_clear())


@app.command("init-db")
def init_db():
    """Create the schedule table."""
    config = get_config()
    db = initialize_database(database_url=config.database_url, create_tables=True)
    console.print(f"[green]✓[/green] Tables ready on {db.get_connection_info()['database_url']}")
    db.close()


if __name__ == "__main__":
    app()
