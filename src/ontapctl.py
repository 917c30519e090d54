#!/usr/bin/env python3
"""
CLI tool for the ONTAP reconciler
Provides a kubectl-like interface for managing storage objects
"""

import asyncio
import json
import logging
import signal
import sys

import click
import yaml
from tabulate import tabulate

from config import Config
from controllers.registry import ControllerRegistry, register_builtin_controllers
from errors import OntapError
from reconciler import ManifestDocument, Reconciler
from state import StateStore

logger = logging.getLogger("ontapctl")


def load_documents(filename):
    """Read manifest documents from a YAML (multi-document) or JSON file"""
    with open(filename, "r") as f:
        if filename.endswith(".json"):
            data = json.load(f)
            raw = data if isinstance(data, list) else [data]
        else:
            raw = [d for d in yaml.safe_load_all(f) if d is not None]
    return [ManifestDocument.from_dict(d) for d in raw]


def run_reconciler(obj, operation):
    """Build a reconciler and run one async operation against it"""
    config = obj["config"]

    async def runner():
        cancel_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, cancel_event.set)
            except NotImplementedError:
                pass

        registry = ControllerRegistry()
        register_builtin_controllers(registry)
        reconciler = Reconciler(
            config,
            StateStore(config.reconciler.state_file),
            registry=registry,
            cancel_event=cancel_event,
        )
        try:
            return await operation(reconciler)
        finally:
            await reconciler.close()

    return asyncio.run(runner())


def print_outcomes(outcomes):
    """Print outcomes as a table and exit non-zero if any failed"""
    headers = ["Kind", "Name", "Action", "Result", "ID", "Message"]
    rows = []
    for outcome in outcomes:
        rows.append(
            [
                outcome.kind,
                outcome.name,
                outcome.action,
                "✓" if outcome.success else "✗",
                outcome.identity or "",
                outcome.message,
            ]
        )
    if rows:
        click.echo(tabulate(rows, headers=headers, tablefmt="grid"))
    else:
        click.echo("Nothing to do")

    if any(not o.success for o in outcomes):
        sys.exit(1)


@click.group()
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True),
    help="YAML config file with connection profiles (default: environment)",
)
@click.option("--state-file", help="Override the state file location")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Override the configured log level",
)
@click.pass_context
def cli(ctx, config_file, state_file, log_level):
    """ontapctl - declarative reconciler for ONTAP storage objects"""
    try:
        config = Config.from_file(config_file) if config_file else Config.from_env()
    except (ValueError, OSError) as e:
        raise click.ClickException(f"Could not load configuration: {e}")

    if state_file:
        config.reconciler.state_file = state_file

    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.obj = {"config": config}


@cli.command()
@click.argument("filename", type=click.Path(exists=True))
@click.pass_obj
def apply(obj, filename):
    """Create or update the objects described in a YAML/JSON file"""
    try:
        documents = load_documents(filename)
    except (OntapError, yaml.YAMLError, json.JSONDecodeError) as e:
        raise click.ClickException(str(e))

    outcomes = run_reconciler(obj, lambda r: r.apply(documents))
    print_outcomes(outcomes)


@cli.command()
@click.argument("names", nargs=-1)
@click.confirmation_option(prompt="Are you sure you want to delete these objects?")
@click.pass_obj
def destroy(obj, names):
    """Delete tracked objects (all of them when no NAME is given)"""
    outcomes = run_reconciler(obj, lambda r: r.destroy(list(names) or None))
    print_outcomes(outcomes)


@cli.command()
@click.pass_obj
def refresh(obj):
    """Re-read every tracked object from the cluster"""
    outcomes = run_reconciler(obj, lambda r: r.refresh())
    print_outcomes(outcomes)


@cli.command(name="import")
@click.argument("filename", type=click.Path(exists=True))
@click.argument("identity")
@click.pass_obj
def import_(obj, filename, identity):
    """Adopt an existing object by its identity"""
    try:
        documents = load_documents(filename)
    except (OntapError, yaml.YAMLError, json.JSONDecodeError) as e:
        raise click.ClickException(str(e))
    if len(documents) != 1:
        raise click.ClickException("import expects exactly one document")

    outcome = run_reconciler(obj, lambda r: r.import_resource(documents[0], identity))
    print_outcomes([outcome])


@cli.command()
@click.pass_obj
def get(obj):
    """List tracked objects"""
    store = StateStore(obj["config"].reconciler.state_file)
    headers = ["Kind", "Name", "ID", "Status", "Message"]
    rows = [[t.kind, t.name, t.id or "", t.status, t.message] for t in store.list()]
    click.echo(tabulate(rows, headers=headers, tablefmt="grid"))


@cli.command()
@click.argument("name")
@click.option("--output", "-o", type=click.Choice(["json", "yaml"]), default="json")
@click.pass_obj
def describe(obj, name, output):
    """Describe a tracked object (NAME or KIND/NAME)"""
    store = StateStore(obj["config"].reconciler.state_file)
    matches = [t for t in store.list() if name in (t.name, t.key)]
    if not matches:
        raise click.ClickException(f"{name} is not tracked")
    if len(matches) > 1:
        raise click.ClickException(
            f"{name} is ambiguous: {', '.join(t.key for t in matches)}"
        )

    tracked = matches[0]
    result = {
        "kind": tracked.kind,
        "name": tracked.name,
        "id": tracked.id,
        "cx_profile_name": tracked.cx_profile_name,
        "status": tracked.status,
        "message": tracked.message,
        "observed": tracked.observed,
    }
    if output == "yaml":
        click.echo(yaml.dump(result, default_flow_style=False))
    else:
        click.echo(json.dumps(result, indent=2))


if __name__ == "__main__":
    cli()
