"""
Flask CLI commands for one-off maintenance tasks.

Usage:
    flask weather "Paris, France"     # Fetch (or serve cached) weather for a location
    flask weather Paris --mock-ok     # Fall back to mock data if the provider fails
    flask refresh-weather             # Re-fetch every stale cached location now
    flask achievements                # Show unlock progress
"""

from __future__ import annotations

import click
from flask import Flask
from flask.cli import with_appcontext

from .extensions import get_services
from .utils.errors import VerdantError


@click.command("weather")
@click.argument("location")
@click.option("--mock-ok", is_flag=True, default=False,
              help="Return mock weather instead of failing when the provider is unavailable.")
@with_appcontext
def weather_command(location: str, mock_ok: bool) -> None:
    """Show current weather and the 3-day forecast for LOCATION."""
    try:
        report = get_services().weather.get_weather(location, allow_mock=mock_ok)
    except VerdantError as e:
        click.echo(f"Error ({e.error_type}): {e}")
        raise SystemExit(1)

    cur = report.current
    suffix = " (mock data)" if report.is_mock else ""
    click.echo(f"{location}{suffix}")
    click.echo(f"  Now: {cur.temperature}°C, {cur.condition}, humidity {cur.humidity}%, wind {cur.wind_speed} km/h")
    for day in report.forecast:
        click.echo(f"  {day.day:<10} {day.temperature:>3}°C  {day.condition}")


@click.command("refresh-weather")
@with_appcontext
def refresh_weather_command() -> None:
    """Re-fetch every cached location whose entry is older than the cache window."""
    refreshed = get_services().weather.refresh_stale()
    click.echo(f"Refreshed {refreshed} stale location(s).")


@click.command("achievements")
@with_appcontext
def achievements_command() -> None:
    """List achievements and whether each is unlocked."""
    store = get_services().achievements
    counts = store.counts()
    click.echo(f"Unlocked {counts['unlocked']}/{counts['total']}")
    for a in store.list():
        mark = "x" if a.unlocked else " "
        click.echo(f"  [{mark}] {a.name:<22} {a.rarity:<10} {a.description}")


def register_commands(app: Flask) -> None:
    app.cli.add_command(weather_command)
    app.cli.add_command(refresh_weather_command)
    app.cli.add_command(achievements_command)
