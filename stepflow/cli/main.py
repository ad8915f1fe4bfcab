# stepflow/cli/main.py
"""Main CLI entry point for stepflow."""

import click

from stepflow import __version__
from stepflow.config import get_settings
from stepflow.log import configure_logging


@click.group()
@click.version_option(version=__version__)
@click.option('--log-level', default=None, help='Log level (defaults to STEPFLOW_LOG_LEVEL)')
@click.option('--log-format', type=click.Choice(['console', 'json']), default=None,
              help='Log rendering (defaults to STEPFLOW_LOG_FORMAT)')
def cli(log_level, log_format):
    """stepflow CLI - run step functions locally and inspect step identities."""
    settings = get_settings()
    configure_logging(log_level or settings.log_level, log_format or settings.log_format)


def register_commands():
    """Register all CLI commands."""
    from stepflow.cli.commands.run import run
    cli.add_command(run)

    from stepflow.cli.commands.identity import functions, hash_step
    cli.add_command(hash_step)
    cli.add_command(functions)


register_commands()


if __name__ == '__main__':
    cli()
