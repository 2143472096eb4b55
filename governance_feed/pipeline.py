"""
pipeline.py — One processing cycle per entry point.

Every entry point loads the state blob at the start and persists it in a
`finally`, so a crash mid-run still records how far each network got. The
feed is only touched under the RSS lock; history appends take their own lock.

Gaps (segments the collector gave up on) do not hold back the watermark.
They are stored in failedSegments and reported loudly; `backfill` replays
them. A feed that could not be published does hold the watermark back: the
error is recorded in the state and re-raised, so the range is collected
again next run.

History records only runs that move state; one-off block lookups are not
logged.
"""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Iterable, List

from .blob_store import LocalBlobStore
from .block_cache import BlockTimestampCache
from .collector import CollectionResult, RangeCollector
from .config import (
    BLOB_ROOT,
    BUCKET_NAME,
    DATA_DIR,
    DEFAULT_LOOKBACK_BLOCKS,
    LOCK_TIMEOUT_SEC,
    STATE_FILE_KEY,
    NetworkConfig,
    get_rpc_url,
)
from .decoder import EventDecoder
from .feed import FeedManager
from .history import ProcessingHistoryLog
from .locks import FileLock, LockBackend, scoped_lock
from .log_source import LogSource
from .models import FailedSegment, ParsedEvent, ProcessingRecord
from .state import ProcessingStateStore, utc_now_iso

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: object
    bucket: str
    state: ProcessingStateStore
    history: ProcessingHistoryLog
    feed: FeedManager
    rss_lock: LockBackend
    lock_timeout: float = LOCK_TIMEOUT_SEC
    collector_options: dict = field(default_factory=dict)   # RangeCollector keyword overrides


@dataclass
class NetworkContext:
    network: NetworkConfig
    source: object                              # LogSource or anything with the same async methods
    block_cache: BlockTimestampCache | None = None


def build_services(data_dir: str = DATA_DIR, blob_root: str = BLOB_ROOT, bucket: str = BUCKET_NAME) -> Services:
    store = LocalBlobStore(blob_root)
    return Services(
        store=store,
        bucket=bucket,
        state=ProcessingStateStore(store, bucket, STATE_FILE_KEY, os.path.join(data_dir, "processing-state.json")),
        history=ProcessingHistoryLog(
            store, bucket,
            lock=FileLock(os.path.join(data_dir, "locks", "history.lock")),
            scratch_path=os.path.join(data_dir, "processing-history.json"),
        ),
        feed=FeedManager(store, bucket, scratch_dir=data_dir),
        rss_lock=FileLock(os.path.join(data_dir, "locks", "rss.lock")),
    )


def build_context(network: NetworkConfig) -> NetworkContext:
    return NetworkContext(
        network=network,
        source=LogSource(get_rpc_url(network)),
        block_cache=BlockTimestampCache(network.cache_file),
    )


def _collector(ctx: NetworkContext, services: Services) -> RangeCollector:
    return RangeCollector(ctx.source, EventDecoder(ctx.network), ctx.block_cache, **services.collector_options)


def _record(network: NetworkConfig, start: int, end: int, result: CollectionResult) -> ProcessingRecord:
    now = utc_now_iso()
    return ProcessingRecord(
        network=network.name,
        start_block=start,
        end_block=end,
        timestamp=now,
        errors=[
            {"block": s.from_block, "toBlock": s.to_block, "timestamp": now, "error": s.error}
            for s in result.failed_segments
        ],
        events_found=len(result.events),
    )


async def _append_history(services: Services, record: ProcessingRecord) -> None:
    try:
        await services.history.append(record)
    except Exception as e:
        logger.error("Failed to update processing history for %s: %s", record.network, e)


class FeedPublishError(RuntimeError):
    pass


async def publish_events(services: Services, events: Iterable[ParsedEvent]) -> int:
    """Add events to the feed and republish it, holding the RSS lock. Returns the number added."""
    async with scoped_lock(services.rss_lock, timeout=services.lock_timeout):
        await services.feed.initialize()
        added = sum(1 for e in events if services.feed.add_event(e))
        ok = await services.feed.update()
    if not ok:
        raise FeedPublishError(f"Feed upload failed ({added} new events not published)")
    logger.info("Feed updated with %d new events", added)
    return added


def _flush(contexts: Iterable[NetworkContext]) -> None:
    for ctx in contexts:
        if ctx.block_cache is not None:
            ctx.block_cache.flush()


async def _process_range(ctx: NetworkContext, start: int, end: int, services: Services,
                         skip_state_update: bool = False,
                         update_feed: bool = True) -> tuple[ProcessingRecord, CollectionResult]:
    network = ctx.network
    result = await _collector(ctx, services).collect(start, end)
    record = _record(network, start, end, result)
    failed = result.failed_segments

    publish_error = None
    if update_feed:
        try:
            await publish_events(services, result.events)
        except Exception as e:
            logger.error("%s: feed not published for [%d - %d]: %s", network.name, start, end, e)
            publish_error = e

    if not skip_state_update:
        prior = services.state.read().get(network.name)
        changes = dict(
            has_error=bool(failed) or publish_error is not None,
            last_error=str(publish_error) if publish_error is not None else (failed[-1].error if failed else None),
            consecutive_failures=((prior.consecutive_failures if prior else 0) + 1) if failed or publish_error else 0,
            retry_count=(prior.retry_count if prior else 0) + result.retries,
            api_call_count=(prior.api_call_count if prior else 0) + result.api_calls,
            failed_segments=failed or None,
        )
        if publish_error is None:
            if failed:
                logger.warning("%s: watermark advances to %d with %d gap(s) recorded for backfill",
                               network.name, end, len(failed))
            changes["last_processed_block"] = end
        else:
            # hold the watermark so the next run collects this range again
            changes["last_processed_block"] = prior.last_processed_block if prior else start - 1
        services.state.write(network.name, **changes)
        await _append_history(services, record)

    if publish_error is not None:
        raise publish_error
    return record, result


async def process_block_range_for_network(ctx: NetworkContext, start: int, end: int, services: Services,
                                          skip_state_update: bool = False,
                                          update_feed: bool = True) -> ProcessingRecord:
    record, _ = await _process_range(ctx, start, end, services, skip_state_update, update_feed)
    return record


async def process_range(services: Services, ctx: NetworkContext, start: int, end: int) -> ProcessingRecord:
    """Standalone wrapper: load state, process [start, end], persist state."""
    await services.state.load()
    try:
        return await process_block_range_for_network(ctx, start, end, services)
    finally:
        await services.state.persist()
        _flush([ctx])


async def process_latest_blocks(services: Services, contexts: List[NetworkContext]) -> List[ProcessingRecord]:
    await services.state.load()
    try:
        states = services.state.read()

        async def run(ctx: NetworkContext) -> ProcessingRecord | None:
            name = ctx.network.name
            current = await ctx.source.get_block_number()
            prior = states.get(name)
            if prior is not None:
                start = prior.last_processed_block + 1
            else:
                start = max(0, current - DEFAULT_LOOKBACK_BLOCKS)
                logger.info("%s: no saved state, starting %d blocks back at %d", name, DEFAULT_LOOKBACK_BLOCKS, start)
            if start > current:
                logger.info("%s: up to date at block %d", name, current)
                return None
            logger.info("%s: processing blocks %d to %d", name, start, current)
            return await process_block_range_for_network(ctx, start, current, services)

        outcomes = await asyncio.gather(*(run(ctx) for ctx in contexts), return_exceptions=True)
        errors = [o for o in outcomes if isinstance(o, BaseException)]
        if errors:
            for ctx, o in zip(contexts, outcomes):
                if isinstance(o, BaseException):
                    logger.error("%s: processing failed: %s", ctx.network.name, o)
            raise errors[0]
        return [o for o in outcomes if o is not None]
    finally:
        await services.state.persist()
        _flush(contexts)


async def catch_up_range(services: Services, ctx: NetworkContext,
                         from_block: int | None = None, to_block: int | None = None) -> ProcessingRecord:
    """Process an explicit range and make it the network's new baseline."""
    network = ctx.network
    start = network.default_from if from_block is None else from_block
    end = await ctx.source.get_block_number() if to_block is None else to_block
    if start > end:
        raise ValueError(f"from block {start} is after to block {end}")

    await services.state.load()
    try:
        logger.info("%s: catching up blocks %d to %d", network.name, start, end)
        record, result = await _process_range(ctx, start, end, services, skip_state_update=True)
        failed = result.failed_segments

        services.state.write(network.name, failed_segments=[])
        services.state.write(
            network.name,
            last_processed_block=end,
            has_error=bool(failed),
            last_error=failed[-1].error if failed else None,
            consecutive_failures=0,
            retry_count=0,
            failed_segments=failed or None,
        )
        await _append_history(services, record)
        return record
    finally:
        await services.state.persist()
        _flush([ctx])


async def process_specific_blocks(services: Services, ctx: NetworkContext, blocks: Iterable[int]) -> List[ParsedEvent]:
    """Collect each block on its own; the feed is updated once at the end."""
    events: List[ParsedEvent] = []
    try:
        for block in sorted(set(blocks)):
            _, result = await _process_range(ctx, block, block, services, skip_state_update=True, update_feed=False)
            events.extend(result.events)
        logger.info("%s: found %d events in the requested blocks", ctx.network.name, len(events))
        await publish_events(services, events)
        return events
    finally:
        _flush([ctx])


async def backfill_failed_segments(services: Services, ctx: NetworkContext) -> List[FailedSegment]:
    """Re-collect every stored gap; the stored list becomes whatever still fails."""
    name = ctx.network.name
    await services.state.load()
    try:
        state = services.state.read().get(name)
        if state is None or not state.failed_segments:
            logger.info("%s: no failed segments to backfill", name)
            return []

        collector = _collector(ctx, services)
        events: List[ParsedEvent] = []
        still_failed: List[FailedSegment] = []
        for seg in state.failed_segments:
            logger.info("%s: backfilling [%d - %d]", name, seg.from_block, seg.to_block)
            result = await collector.collect(seg.from_block, seg.to_block)
            events.extend(result.events)
            still_failed.extend(result.failed_segments)
            await _append_history(services, _record(ctx.network, seg.from_block, seg.to_block, result))

        if events:
            await publish_events(services, events)

        services.state.write(name, failed_segments=[])
        services.state.write(
            name,
            has_error=bool(still_failed),
            last_error=still_failed[-1].error if still_failed else None,
            failed_segments=still_failed or None,
        )
        logger.info("%s: backfill recovered %d events, %d segment(s) still failing",
                    name, len(events), len(still_failed))
        return still_failed
    finally:
        await services.state.persist()
        _flush([ctx])


def contexts_for(networks: Iterable[NetworkConfig]) -> List[NetworkContext]:
    return [build_context(n) for n in networks]
