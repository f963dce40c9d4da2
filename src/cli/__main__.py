#!/usr/bin/env python3
"""Command line entry point for multi-stack operations."""

import asyncio
import json
import logging
import sys
from typing import Any, Callable, Coroutine, List, Sequence

import click

from config import StackSpec, get_config, load_stack_specs
from deployment import Orchestrator

logger = logging.getLogger(__name__)


def confirm_each(message: str, labels: List[str]) -> List[str]:
    """Ask for a confirmation of each candidate."""
    click.echo(message)
    return [label for label in labels if click.confirm(f"  {label}", default=False)]


def _load_stacks(stacks_file: str, names: Sequence[str]) -> List[StackSpec]:
    stacks = load_stack_specs(stacks_file)
    if names:
        stacks = [s for s in stacks if s.stack_name in names]
        if not stacks:
            raise click.BadParameter(f"No stack named {', '.join(names)}", param_hint="NAMES")
    return stacks


def _run(ctx: click.Context, operation: Callable[[Orchestrator], Coroutine[Any, Any, Any]]) -> Any:
    orchestrator = Orchestrator(get_config(ctx.obj["config_file"]), select=ctx.obj["select"])
    try:
        return asyncio.run(operation(orchestrator))
    except KeyboardInterrupt:
        orchestrator.abort()
        click.echo("Interrupted", err=True)
        sys.exit(1)
    except click.ClickException:
        raise
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _exit_on_failure(results) -> None:
    for stack_id, result in results.items():
        click.echo(f"{stack_id}: {result.status.value} {result.message}".rstrip())
    if not all(r.success for r in results.values()):
        sys.exit(1)


stacks_argument = click.argument("stacks_file", type=click.Path(exists=True, dir_okay=False))
names_argument = click.argument("names", nargs=-1)


@click.group()
@click.option("--config", "config_file", type=click.Path(dir_okay=False), help="Settings file")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmations")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logs")
@click.pass_context
def cli(ctx: click.Context, config_file, yes, verbose) -> None:
    """Deploy, delete and clean up CloudFormation stacks."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Without confirmations, only stacks flagged with forceDelete are deleted
    ctx.obj = {"config_file": config_file, "select": None if yes else confirm_each}


@cli.command()
@stacks_argument
@names_argument
@click.pass_context
def deploy(ctx, stacks_file, names) -> None:
    """Deploy stacks in dependency order."""
    stacks = _load_stacks(stacks_file, names)
    _exit_on_failure(_run(ctx, lambda o: o.deploy(stacks)))


@cli.command()
@stacks_argument
@names_argument
@click.pass_context
def delete(ctx, stacks_file, names) -> None:
    """Delete stacks and what they left behind."""
    stacks = _load_stacks(stacks_file, names)
    _exit_on_failure(_run(ctx, lambda o: o.delete(stacks)))


@cli.command()
@stacks_argument
@names_argument
@click.pass_context
def cleanup(ctx, stacks_file, names) -> None:
    """Prune unused packaged files and retained resources."""
    stacks = _load_stacks(stacks_file, names)
    result = _run(ctx, lambda o: o.cleanup(stacks))
    click.echo(f"Pruned files: {len(result.pruned_files)}")
    click.echo(f"Deleted resources: {len(result.deleted_resources)}")


@cli.command()
@stacks_argument
@names_argument
@click.pass_context
def package(ctx, stacks_file, names) -> None:
    """Package stack templates and print their locations."""
    stacks = _load_stacks(stacks_file, names)
    for location in _run(ctx, lambda o: o.package(stacks)):
        click.echo(location)


@cli.command()
@stacks_argument
@names_argument
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def sync(ctx, stacks_file, names, output_json) -> None:
    """Write stack outputs to their sync paths."""
    stacks = _load_stacks(stacks_file, names)
    outputs = _run(ctx, lambda o: o.sync(stacks))
    if output_json:
        click.echo(json.dumps(outputs, indent=2))
        return
    for stack_id, values in outputs.items():
        click.echo(stack_id)
        for key, value in values.items():
            click.echo(f"  {key}: {value}")


@cli.command()
@stacks_argument
@names_argument
@click.pass_context
def status(ctx, stacks_file, names) -> None:
    """Show stack statuses."""
    stacks = _load_stacks(stacks_file, names)

    async def get_statuses(orchestrator: Orchestrator) -> List[str]:
        return list(await asyncio.gather(*(orchestrator.get_status(s) for s in stacks)))

    for stack, value in zip(stacks, _run(ctx, get_statuses)):
        click.echo(f"{stack.stack_name} ({stack.region}): {value}")


if __name__ == "__main__":
    cli()
