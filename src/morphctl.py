#!/usr/bin/env python3
"""
CLI tool for the Morpheus provider
Plans and applies declared Morpheus resources, tracking them in a state file
"""

import asyncio
import json
import logging
import sys

import click
import yaml
from pydantic import ValidationError
from tabulate import tabulate

from client import APIError, MorpheusClient
from config import ProviderConfig, get_config
from controller import ChangeAction, Controller, StateFile, load_declarations
from resources.base import ReconcileError, ReconcilerContext
from resources.registry import register_builtin_resources

logger = logging.getLogger(__name__)

ACTION_SYMBOLS = {
    ChangeAction.CREATE: "+",
    ChangeAction.UPDATE: "~",
    ChangeAction.DELETE: "-",
    ChangeAction.NOOP: " ",
}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_controller() -> Controller:
    """Build a controller from environment configuration."""
    try:
        cfg = get_config()
    except ValueError as e:
        raise click.ClickException(str(e))
    registry = register_builtin_resources()
    context = ReconcilerContext(
        client=MorpheusClient.from_config(cfg.morpheus),
        delete_not_found=cfg.provider.delete_not_found_policy,
    )
    return Controller(
        registry=registry,
        context=context,
        max_concurrent_reconciles=cfg.provider.max_concurrent_reconciles,
    )


def state_file() -> StateFile:
    # Only provider settings are needed; no appliance credentials
    return StateFile(ProviderConfig.from_env().state_file)


def _load(filename):
    try:
        return load_declarations(filename)
    except (ValidationError, yaml.YAMLError, json.JSONDecodeError) as e:
        raise click.ClickException(f"Invalid declarations file {filename}: {e}")


def _run(coro):
    """Run a controller coroutine, turning expected failures into CLI errors."""
    try:
        return asyncio.run(coro)
    except (APIError, ReconcileError, ValueError) as e:
        raise click.ClickException(str(e))


def _print_changes(changes):
    rows = []
    for change in changes:
        rows.append(
            [
                ACTION_SYMBOLS[change.action],
                change.name,
                change.type_name,
                change.action.value,
                ", ".join(change.changed_attributes)
                if change.action == ChangeAction.UPDATE
                else "",
            ]
        )
    click.echo(
        tabulate(rows, headers=["", "Name", "Type", "Action", "Changes"], tablefmt="grid")
    )
    counts = {a: sum(1 for c in changes if c.action == a) for a in ChangeAction}
    click.echo(
        f"Plan: {counts[ChangeAction.CREATE]} to create, "
        f"{counts[ChangeAction.UPDATE]} to update, "
        f"{counts[ChangeAction.DELETE]} to delete."
    )


def _print_results(results):
    failed = [r for r in results if not r.success]
    for result in results:
        if result.action == ChangeAction.NOOP:
            continue
        if result.success:
            click.echo(f"{result.name}: {result.action.value} complete")
        else:
            click.echo(
                f"{result.name}: {result.action.value} failed: {result.error_message}",
                err=True,
            )
    if failed:
        sys.exit(1)


@click.group()
@click.option("--log-level", default=None, help="Logging level (default: LOG_LEVEL)")
def cli(log_level):
    """Morpheus provider CLI - plan and apply declared Morpheus resources"""
    configure_logging(log_level or ProviderConfig.from_env().log_level)


@cli.command()
def resources():
    """List supported resource types"""
    registry = register_builtin_resources()
    rows = []
    for type_name in registry.list_types():
        info = registry.get_info(type_name)
        rows.append(
            [
                type_name,
                info["api_path"],
                ", ".join(info["required"]),
                ", ".join(info["optional"]),
            ]
        )
    click.echo(
        tabulate(rows, headers=["Type", "Endpoint", "Required", "Optional"], tablefmt="grid")
    )


@cli.command()
@click.argument("filename", type=click.Path(exists=True))
def plan(filename):
    """Show the changes needed to converge on a declarations file"""
    declarations = _load(filename)
    controller = build_controller()
    tracked = state_file().load()

    changes, _ = _run(controller.plan(declarations.resources, tracked))
    _print_changes(changes)
    for change in changes:
        if change.action == ChangeAction.UPDATE and change.details:
            click.echo(f"\n{change.name}:\n{change.details}")


@cli.command()
@click.argument("filename", type=click.Path(exists=True))
@click.option("--yes", "-y", is_flag=True, help="Apply without confirmation")
def apply(filename, yes):
    """Create, update and delete resources to match a declarations file"""
    declarations = _load(filename)
    controller = build_controller()
    store = state_file()
    tracked = store.load()

    changes, current = _run(controller.plan(declarations.resources, tracked))
    _print_changes(changes)

    if all(c.action == ChangeAction.NOOP for c in changes):
        store.save(current)
        click.echo("No changes. Resources are up to date.")
        return

    if not yes:
        click.confirm("Apply these changes?", abort=True)

    new_tracked, results = _run(controller.execute(changes, current))
    store.save(new_tracked)
    _print_results(results)


@cli.command()
@click.confirmation_option(prompt="Are you sure you want to destroy all tracked resources?")
def destroy():
    """Delete every tracked resource"""
    controller = build_controller()
    store = state_file()

    new_tracked, results = _run(controller.destroy(store.load()))
    store.save(new_tracked)
    _print_results(results)


@cli.command(name="import")
@click.argument("type_name")
@click.argument("name")
@click.argument("identifier")
def import_(type_name, name, identifier):
    """Start tracking an existing remote resource under NAME"""
    controller = build_controller()
    store = state_file()
    tracked = store.load()

    if name in tracked:
        raise click.ClickException(f"{name} is already tracked")

    tracked[name] = _run(controller.import_resource(type_name, name, identifier))
    store.save(tracked)
    click.echo(f"Imported {type_name} {tracked[name].state.id} as {name}")


@cli.command()
@click.option(
    "--output", "-o", type=click.Choice(["table", "json", "yaml"]), default="table"
)
def show(output):
    """Show tracked resources"""
    tracked = state_file().load()
    data = {name: tracked[name].to_dict() for name in sorted(tracked)}

    if output == "json":
        click.echo(json.dumps(data, indent=2))
    elif output == "yaml":
        click.echo(yaml.dump(data, default_flow_style=False))
    else:
        rows = [[name, entry["type"], entry["id"]] for name, entry in data.items()]
        click.echo(tabulate(rows, headers=["Name", "Type", "ID"], tablefmt="grid"))


if __name__ == "__main__":
    cli()
