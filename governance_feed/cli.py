import asyncio
import logging
from typing import List, Optional

import typer

from .config import NETWORKS, get_network
from .pipeline import (
    backfill_failed_segments,
    build_context,
    build_services,
    catch_up_range,
    contexts_for,
    process_latest_blocks,
    process_range,
    process_specific_blocks,
)

app = typer.Typer(help="ZKsync governance event collector & RSS feed publisher")

logger = logging.getLogger("governance_feed")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _run(make_coro) -> None:
    try:
        asyncio.run(make_coro())
    except Exception as e:
        logger.error("Run failed: %s", e)
        raise typer.Exit(code=1)


@app.command()
def latest():
    """Process every network from its saved watermark up to the chain head."""
    _run(lambda: process_latest_blocks(build_services(), contexts_for(NETWORKS.values())))


@app.command("range")
def range_(
    network: str = typer.Argument(..., help=f"One of: {', '.join(NETWORKS)}"),
    from_block: int = typer.Argument(..., help="Start block (inclusive)"),
    to_block: int = typer.Argument(..., help="End block (inclusive)"),
):
    """Process an explicit block range and advance the watermark."""
    if from_block > to_block:
        raise typer.BadParameter("FROM_BLOCK must not exceed TO_BLOCK")
    _run(lambda: process_range(build_services(), build_context(get_network(network)), from_block, to_block))


@app.command()
def catchup(
    network: str = typer.Argument(..., help=f"One of: {', '.join(NETWORKS)}"),
    from_block: Optional[int] = typer.Argument(None, help="Start block (defaults to the network's first governance block)"),
    to_block: Optional[int] = typer.Argument(None, help="End block (defaults to the chain head)"),
):
    """Reprocess a range and reset the network's counters and gaps."""
    _run(lambda: catch_up_range(build_services(), build_context(get_network(network)), from_block, to_block))


@app.command()
def blocks(
    network: str = typer.Argument(..., help=f"One of: {', '.join(NETWORKS)}"),
    block_numbers: List[int] = typer.Argument(..., help="Block numbers to process"),
):
    """Collect specific blocks without touching the watermark."""
    _run(lambda: process_specific_blocks(build_services(), build_context(get_network(network)), block_numbers))


@app.command()
def backfill(network: str = typer.Argument(..., help=f"One of: {', '.join(NETWORKS)}")):
    """Retry the failed segments stored for a network."""
    _run(lambda: backfill_failed_segments(build_services(), build_context(get_network(network))))


if __name__ == "__main__":
    app()
