# stepflow/cli/commands/run.py
"""Run a single execution pass locally."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click

from stepflow.cli.commands._loader import load_payload, load_target, resolve_function
from stepflow.handler import CommHandler, QUERY_FUNCTION_ID, QUERY_STEP_ID
from stepflow.types import IncomingRequest


@click.command()
@click.argument('target')
@click.option('--payload', '-p', 'payload_file', type=click.Path(exists=True, dir_okay=False, path_type=Path),
              default=None, help='Invocation payload (JSON or YAML)')
@click.option('--fn', 'fn_id', default=None, help='Function id when TARGET is a client')
@click.option('--step-id', default=None, help='Hashed id of the step to run')
@click.option('--failure', is_flag=True, help='Run the function\'s failure handler')
@click.option('--disable-immediate-execution', is_flag=True,
              help='Report new steps instead of running a single new step in this pass')
def run(target: str, payload_file: Optional[Path], fn_id: Optional[str], step_id: Optional[str],
        failure: bool, disable_immediate_execution: bool):
    """Run one pass of TARGET (MODULE:ATTR) and print the response."""
    client, fn = resolve_function(load_target(target), fn_id)
    payload = load_payload(payload_file) if payload_file else {}

    if disable_immediate_execution:
        payload.setdefault('ctx', {})['disable_immediate_execution'] = True

    query = {QUERY_FUNCTION_ID: fn.failure_id() if failure else fn.full_id()}
    if step_id:
        query[QUERY_STEP_ID] = step_id

    handler = CommHandler(client, [fn])
    response = asyncio.run(handler.handle(IncomingRequest(method='POST', body=payload, query=query)))

    click.echo(f"status: {response.status}")
    for name, value in sorted(response.headers.items()):
        click.echo(f"{name}: {value}")
    click.echo(json.dumps(json.loads(response.body), indent=2))

    if response.status >= 400:
        sys.exit(1)
