"""Command line interface for ic-bn-logs."""

import asyncio
import logging
import signal
import sys
from contextlib import aclosing
from typing import List, Optional

import click
from pydantic import ValidationError

from ic_bn_logs.config import ClientConfig, load_config
from ic_bn_logs.errors import RegistryError
from ic_bn_logs.formatters import BaseFormatter, HumanFormatter, JSONFormatter
from ic_bn_logs.logging_config import configure_cli_logging
from ic_bn_logs.models import CloseReason, Endpoint, Notice, SubscriptionRequest
from ic_bn_logs.registry import registry_from_config
from ic_bn_logs.supervisor import SubscriptionSupervisor
from ic_bn_logs.utils import is_valid_canister_id

logger = logging.getLogger(__name__)

FAILED_TO_START = {CloseReason.CONNECT_ERROR, CloseReason.SUBSCRIBE_ERROR}


class LogTail:
    """Runs a subscription supervisor and writes its output through a formatter."""

    def __init__(self, endpoints: List[Endpoint], canister_id: str,
                 formatter: BaseFormatter, config: ClientConfig,
                 notices_to_output: bool = False):
        """Initialize the tail runner."""
        self.formatter = formatter
        self.notices_to_output = notices_to_output
        self.supervisor = SubscriptionSupervisor(
            endpoints,
            SubscriptionRequest(resource_id=canister_id),
            config=config,
            on_notice=self._handle_notice,
        )

    def stop(self, reason: str = "interrupted") -> None:
        self.supervisor.stop(reason)

    def _install_signal_handlers(self) -> None:
        def signal_handler():
            logger.info("Received interrupt signal, shutting down...")
            self.stop("interrupted")

        if sys.platform != "win32":
            loop = asyncio.get_running_loop()
            loop.add_signal_handler(signal.SIGTERM, signal_handler)
            loop.add_signal_handler(signal.SIGINT, signal_handler)
        else:
            # Windows doesn't support signal handlers in event loops
            signal.signal(signal.SIGINT, lambda s, f: signal_handler())
            signal.signal(signal.SIGTERM, lambda s, f: signal_handler())

    def _remove_signal_handlers(self) -> None:
        if sys.platform != "win32":
            loop = asyncio.get_running_loop()
            loop.remove_signal_handler(signal.SIGTERM)
            loop.remove_signal_handler(signal.SIGINT)

    def _handle_notice(self, notice: Notice) -> None:
        if self.notices_to_output:
            self.formatter.output(self.formatter.format_notice(notice))
        else:
            click.echo(self.formatter.format_notice(notice), nl=False, err=True)

    async def run(self, duration: Optional[float] = None) -> bool:
        """
        Stream until every endpoint closes, an interrupt arrives, or ``duration`` elapses.

        Returns:
            False if no endpoint could be subscribed to
        """
        self._install_signal_handlers()
        timer = None
        if duration is not None:
            timer = asyncio.get_running_loop().call_later(duration, self.stop, "duration elapsed")

        logger.info("WebSocket clients started. Press Ctrl+C to exit.")
        try:
            async with aclosing(self.supervisor.start()) as events:
                async for event in events:
                    self.formatter.output(self.formatter.format_event(event))
        finally:
            if timer is not None:
                timer.cancel()
            self._remove_signal_handlers()

        summaries = self.supervisor.summary()
        summary_text = self.formatter.format_summary(summaries)
        if self.notices_to_output:
            self.formatter.output(summary_text)
        else:
            click.echo(summary_text, nl=False, err=True)

        return not summaries or any(s.close_reason not in FAILED_TO_START for s in summaries)


def _validate_canister_id(ctx, param, value):
    if value is not None and not is_valid_canister_id(value):
        raise click.BadParameter(f"'{value}' is not a valid canister id")
    return value


def _fetch_endpoints(config: ClientConfig, domains) -> List[Endpoint]:
    registry = registry_from_config(config, domains)
    try:
        endpoints = list(registry.fetch())
    except RegistryError as e:
        logger.error("Failed to fetch boundary nodes: %s", e)
        sys.exit(1)

    logger.info("Fetched %d API boundary nodes.", len(endpoints))
    logger.info("%s", [endpoint.id for endpoint in endpoints])
    return endpoints


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--env-file', type=click.Path(dir_okay=False), help='Load settings from this .env file')
@click.pass_context
def cli(ctx, verbose, env_file):
    """ic-bn-logs: stream canister logs from all API boundary nodes at once."""
    ctx.ensure_object(dict)

    try:
        config = load_config(env_file)
    except ValidationError as e:
        raise click.UsageError(f"Invalid configuration: {e}")

    configure_cli_logging(verbose=verbose, level=config.log_level)

    ctx.obj['config'] = config
    ctx.obj['verbose'] = verbose


@cli.command()
@click.option('--canister-id', '-c', required=True, callback=_validate_canister_id,
              help='The canister ID to monitor logs for')
@click.option('--endpoint', '-e', 'endpoints', multiple=True,
              help='Boundary node domain (repeatable, overrides the registry)')
@click.option('--registry-url', help='URL of a JSON list of boundary nodes')
@click.option('--json', 'output_json', is_flag=True, help='Output JSON lines')
@click.option('--no-prefix', is_flag=True, help='Do not prefix lines with the boundary node')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Output file path')
@click.option('--grace', type=float, help='Seconds to wait for connections to close on shutdown')
@click.option('--duration', type=float, help='Stop after this many seconds')
@click.pass_context
def tail(ctx, canister_id, endpoints, registry_url, output_json, no_prefix, output, grace, duration):
    """Stream logs of a canister from every API boundary node."""
    config: ClientConfig = ctx.obj['config']
    updates = {}
    if registry_url:
        updates['registry_url'] = registry_url
    if grace is not None:
        updates['shutdown_grace'] = grace
    if updates:
        try:
            config = ClientConfig(**{**config.model_dump(), **updates})
        except ValidationError as e:
            raise click.UsageError(f"Invalid option: {e}")

    endpoint_list = _fetch_endpoints(config, endpoints)
    if not endpoint_list:
        logger.error("No API boundary nodes found. Exiting.")
        sys.exit(1)

    output_file = open(output, 'w', encoding='utf-8') if output else None
    if output_json:
        formatter = JSONFormatter(output_file)
    else:
        formatter = HumanFormatter(output_file, show_endpoint=not no_prefix)

    runner = LogTail(endpoint_list, canister_id, formatter, config, notices_to_output=output_json)
    try:
        ok = asyncio.run(runner.run(duration))
    finally:
        logger.info("Shutting down WebSocket clients.")
        formatter.close()

    if not ok:
        sys.exit(1)


@cli.command()
@click.option('--endpoint', '-e', 'endpoints', multiple=True, help='Boundary node domain (repeatable)')
@click.option('--registry-url', help='URL of a JSON list of boundary nodes')
@click.pass_context
def endpoints(ctx, endpoints, registry_url):
    """List the boundary nodes a tail would connect to."""
    config: ClientConfig = ctx.obj['config']
    if registry_url:
        config = ClientConfig(**{**config.model_dump(), 'registry_url': registry_url})

    for endpoint in _fetch_endpoints(config, endpoints):
        click.echo(f"{endpoint.id}\t{endpoint.address}")


@cli.command()
def version():
    """Show version information."""
    from ic_bn_logs import __version__
    click.echo(f"ic-bn-logs version {__version__}")


def main():
    """Main entry point."""
    cli()


if __name__ == '__main__':
    main()
