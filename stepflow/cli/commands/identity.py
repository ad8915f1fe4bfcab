# stepflow/cli/commands/identity.py
"""Inspect step identities and registered functions."""

import json

import click
import yaml

from stepflow.cli.commands._loader import load_target
from stepflow.client import Stepflow
from stepflow.function import StepFunction
from stepflow.hashing import hash_id, indexed_id


@click.command('hash')
@click.argument('step_id')
@click.option('--index', '-i', type=click.IntRange(min=0), default=0,
              help='Occurrence index; 0 is the first (bare) use of the id')
def hash_step(step_id: str, index: int):
    """Print the hashed identity of STEP_ID."""
    raw_id = indexed_id(step_id, index) if index else step_id
    click.echo(hash_id(raw_id))


@click.command()
@click.argument('target')
@click.option('--format', 'fmt', type=click.Choice(['json', 'yaml']), default='yaml', help='Output format')
def functions(target: str, fmt: str):
    """List the functions registered on TARGET (MODULE:ATTR)."""
    obj = load_target(target)
    if isinstance(obj, StepFunction):
        configs = [obj.to_config()]
    elif isinstance(obj, Stepflow):
        configs = [fn.to_config() for fn in obj.functions.values()]
    else:
        raise click.BadParameter("TARGET must be a Stepflow client or a step function", param_hint='TARGET')

    if fmt == 'json':
        click.echo(json.dumps(configs, indent=2))
    else:
        click.echo(yaml.safe_dump(configs, sort_keys=False).rstrip())
