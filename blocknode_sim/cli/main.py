"""Command-line interface for the block node simulator."""

import sys
import json
import asyncio
from typing import Any, Dict, Optional
import click
import structlog
from dotenv import load_dotenv
from pydantic import ValidationError

from blocknode_sim.core.block_stream import MockBlockStream
from blocknode_sim.core.errors import SimulatorError
from blocknode_sim.core.fallback_router import FallbackRouter
from blocknode_sim.core.query_index import QueryIndex
from blocknode_sim.models.blockchain import Block
from blocknode_sim.models.config import (
    FallbackConfig,
    FallbackStrategy,
    LoggingConfig,
    NetworkName,
    SimulatorConfig,
)
from blocknode_sim.utils.logging import setup_logging

logger = structlog.get_logger(__name__)

# Query kind -> router method
QUERY_METHODS = {
    "block": "get_block",
    "transaction": "get_transaction",
    "account": "get_account_balance",
    "proof": "get_state_proof",
    "latest": "get_latest_block",
    "payer": "get_transactions_by_account",
}


def _to_json(value: Any) -> str:
    if isinstance(value, list):
        return json.dumps([item.to_dict() for item in value], indent=2)
    return json.dumps(value.to_dict(), indent=2)


def _block_summary(block: Block) -> Dict[str, Any]:
    return {
        "number": block.number,
        "hash": block.hash,
        "previous_hash": block.header.previous_hash,
        "timestamp": block.header.timestamp,
        "items": len(block.items),
        "transactions": len(block.transactions),
        "successful": block.successful_transactions,
        "failed": block.failed_transactions,
        "gas_used": block.gas_used,
    }


@click.group()
@click.option('--log-level', '-l', default=None,
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              help='Logging level (default: BLOCKNODE_LOG_LEVEL or INFO)')
@click.option('--log-format', default=None, type=click.Choice(['json', 'text']),
              help='Log format (default: BLOCKNODE_LOG_FORMAT or json)')
@click.pass_context
def cli(ctx, log_level: Optional[str], log_format: Optional[str]):
    """Block Node Simulator CLI."""
    ctx.ensure_object(dict)
    load_dotenv()

    try:
        overrides = {}
        if log_level:
            overrides['log_level'] = log_level
        if log_format:
            overrides['log_format'] = log_format
        log_config = LoggingConfig(**overrides)
    except ValidationError as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)

    # stdout carries command output
    setup_logging(log_config, stream=sys.stderr)


@cli.command()
@click.option('--blocks', '-n', type=int, default=5, show_default=True,
              help='Number of blocks to produce before stopping')
@click.option('--interval-ms', type=int, default=None,
              help='Block interval in milliseconds')
@click.option('--transactions', '-t', type=int, default=None,
              help='Transactions per block')
@click.option('--failure-rate', type=float, default=None,
              help='Probability of an injected failure per tick (0-1)')
@click.option('--start-block', type=int, default=None,
              help='Number of the first block')
@click.option('--max-errors', type=int, default=100, show_default=True,
              help='Abort after this many failed ticks')
def stream(blocks: int, interval_ms: Optional[int], transactions: Optional[int],
           failure_rate: Optional[float], start_block: Optional[int], max_errors: int):
    """Run the mock block stream and print one JSON line per block."""
    if blocks < 1:
        raise click.BadParameter("must be at least 1", param_hint="--blocks")

    overrides = {
        'block_interval_ms': interval_ms,
        'transactions_per_block': transactions,
        'failure_rate': failure_rate,
        'start_block_number': start_block,
    }
    try:
        config = SimulatorConfig(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        click.echo(f"Invalid simulator configuration: {e}", err=True)
        sys.exit(1)

    try:
        completed = asyncio.run(_run_stream(config, blocks, max_errors))
    except KeyboardInterrupt:
        click.echo("\nStream interrupted by user", err=True)
        return

    if not completed:
        click.echo(f"Stream aborted after {max_errors} failed ticks", err=True)
        sys.exit(1)


async def _run_stream(config: SimulatorConfig, block_limit: int, max_errors: int) -> bool:
    """Run until ``block_limit`` blocks or ``max_errors`` failures. True on completion."""
    block_stream = MockBlockStream(config)
    done = asyncio.Event()
    counts = {'blocks': 0, 'errors': 0}

    def on_block(block: Block):
        counts['blocks'] += 1
        click.echo(json.dumps(_block_summary(block)))
        if counts['blocks'] >= block_limit:
            done.set()

    def on_error(error: SimulatorError):
        counts['errors'] += 1
        click.echo(json.dumps({'error': error.to_dict()}), err=True)
        if counts['errors'] >= max_errors:
            done.set()

    block_stream.on('block', on_block)
    block_stream.on('error', on_error)

    await block_stream.start()
    try:
        await done.wait()
    finally:
        await block_stream.stop()

    return counts['blocks'] >= block_limit


@cli.command()
@click.argument('kind', type=click.Choice(list(QUERY_METHODS)))
@click.argument('identifier', required=False)
@click.option('--simulate-blocks', type=int, default=3, show_default=True,
              help='Blocks to generate for the local primary source (0 = no primary)')
@click.option('--network', type=click.Choice([n.value for n in NetworkName]), default=None,
              help='Mirror node network (default: BLOCKNODE_FALLBACK_NETWORK or testnet)')
@click.option('--mirror-url', default=None, help='Explicit mirror node base URL')
@click.option('--strategy', type=click.Choice([s.value for s in FallbackStrategy]), default=None,
              help='Fallback strategy (default: auto)')
@click.option('--timeout-ms', type=int, default=None, help='Mirror node request timeout')
@click.pass_context
def query(ctx, kind: str, identifier: Optional[str], simulate_blocks: int,
          network: Optional[str], mirror_url: Optional[str], strategy: Optional[str],
          timeout_ms: Optional[int]):
    """
    Run one query against the simulator with mirror node fallback.

    KIND is one of block, transaction, account, proof, latest, payer.
    IDENTIFIER is the block number, transaction id or account id; it is not
    used by ``latest``.
    """
    args = ()
    if kind == 'block':
        if identifier is None:
            raise click.UsageError("block query requires a block number")
        try:
            args = (int(identifier),)
        except ValueError:
            raise click.BadParameter(f"{identifier!r} is not an integer", param_hint='IDENTIFIER')
    elif kind != 'latest':
        if identifier is None:
            raise click.UsageError(f"{kind} query requires an identifier")
        args = (identifier,)

    overrides = {
        'network': network,
        'mirror_node_url': mirror_url,
        'strategy': strategy,
        'timeout_ms': timeout_ms,
    }
    try:
        fallback_config = FallbackConfig(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        click.echo(f"Invalid fallback configuration: {e}", err=True)
        sys.exit(1)

    result = asyncio.run(_run_query(
        QUERY_METHODS[kind], args, simulate_blocks, fallback_config, ctx.obj.get('transport'),
    ))

    if result.ok:
        click.echo(_to_json(result.value))
    else:
        click.echo(json.dumps({'error': result.error.to_dict()}, indent=2), err=True)
        sys.exit(1)


async def _run_query(method: str, args: tuple, simulate_blocks: int,
                     fallback_config: FallbackConfig, transport=None):
    primary = None
    if simulate_blocks > 0:
        block_stream = MockBlockStream(SimulatorConfig())
        await block_stream.start()
        try:
            for _ in range(simulate_blocks - 1):
                block_stream.tick()
        finally:
            await block_stream.stop()
        primary = QueryIndex(block_stream)

    router = FallbackRouter.from_config(fallback_config, primary=primary, transport=transport)
    router.on('fallbackActivated',
              lambda reason: logger.info("Answering from mirror node", reason=reason))
    return await getattr(router, method)(*args)


@cli.command()
def version():
    """Show version information."""
    from blocknode_sim import __version__, __description__

    click.echo(f"Block Node Simulator v{__version__}")
    click.echo(__description__)


if __name__ == '__main__':
    cli()
