"""
Command Line Interface for quaystack.
"""
import logging
import sys

import click

from ..MODELS.errors import StackError
from ..MODELS.stack_config import DEFAULT_UNIT_DIR, OrchestratorSettings
from ..MANAGERS.service_orchestrator import StackOrchestrator
from ..PARSERS.config_loader import ConfigLoader

LOG_FORMAT = "%(levelname)s: %(message)s"


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )


def fatal(error: StackError) -> None:
    click.echo(f"FATAL [{error.step}]: {error}", err=True)
    sys.exit(1)


@click.group()
@click.option('--env-file', '-e', default='quay.env', show_default=True,
              envvar='QUAYSTACK_ENV_FILE', help='Stack configuration file')
@click.option('--runtime', default='podman', show_default=True,
              envvar='QUAYSTACK_RUNTIME', help='Container runtime binary')
@click.option('--unit-dir', default=DEFAULT_UNIT_DIR, show_default=True,
              envvar='QUAYSTACK_UNIT_DIR', help='Quadlet unit directory')
@click.option('--attempts', default=30, show_default=True, type=click.IntRange(min=1),
              envvar='QUAYSTACK_READINESS_ATTEMPTS', help='Readiness probes per service')
@click.option('--interval', default=2.0, show_default=True, type=click.FloatRange(min=0),
              envvar='QUAYSTACK_READINESS_INTERVAL', help='Seconds between readiness probes')
@click.option('--settle', default=10.0, show_default=True, type=click.FloatRange(min=0),
              envvar='QUAYSTACK_APP_SETTLE', help='Seconds to wait after starting the registry')
@click.option('--verbose', '-v', is_flag=True, help='Show every command that is run')
@click.pass_context
def cli(ctx, env_file, runtime, unit_dir, attempts, interval, settle, verbose):
    """
    quaystack - install, start and tear down a rootless Quay registry.

    Runs PostgreSQL, Redis and Quay as podman containers and persists them
    as systemd Quadlet units.
    """
    ctx.ensure_object(dict)
    setup_logging(verbose)
    ctx.obj['env_file'] = env_file
    ctx.obj['settings'] = OrchestratorSettings(
        runtime_binary=runtime,
        unit_dir=unit_dir,
        readiness_attempts=attempts,
        readiness_interval=interval,
        app_settle_delay=settle,
    )


def build_orchestrator(ctx) -> StackOrchestrator:
    """Loads the configuration; any error here is fatal."""
    factory = ctx.obj.get('factory', StackOrchestrator)
    try:
        config = ConfigLoader().load(ctx.obj['env_file'])
    except StackError as e:
        fatal(e)
    return factory(config, ctx.obj['settings'])


@cli.command()
@click.pass_context
def install(ctx):
    """Provision the stack, configure Quay and enable it under systemd."""
    orchestrator = build_orchestrator(ctx)
    try:
        orchestrator.install()
    except StackError as e:
        fatal(e)


@cli.command()
@click.pass_context
def start(ctx):
    """Start an installed stack, waiting for each dependency to be ready."""
    orchestrator = build_orchestrator(ctx)
    try:
        orchestrator.start()
    except StackError as e:
        fatal(e)


@cli.command()
@click.pass_context
def teardown(ctx):
    """Stop everything, remove units and network, and delete all data."""
    orchestrator = build_orchestrator(ctx)
    try:
        report = orchestrator.teardown()
    except StackError as e:
        fatal(e)

    for outcome in report.outcomes:
        click.echo(str(outcome))
    if not report.data_deleted:
        click.echo("Teardown incomplete: data was not deleted.", err=True)
        sys.exit(1)


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()
