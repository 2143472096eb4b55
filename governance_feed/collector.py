"""
collector.py — Adaptive block-range collection.

Strategy (explicit LIFO work list of Segments, no recursion):
  • Seed with one segment covering the whole request.
  • Try one log fetch for the segment's exact range.
  • On failure, bisect while the span is above `min_segment_span` (most
    provider failures are payload/range-size related); at minimal span retry
    with exponential backoff up to `max_attempts`.
  • Exhausted segments are recorded as FailedSegments and the run moves on.
  • A pacing delay separates consecutive fetches.
  • Output is sorted by (block, tx hash, log index) so it does not depend on
    how the range happened to be split.

Only configuration/decoding errors propagate; fetch errors never do.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List

from .block_cache import BlockTimestampCache
from .config import MAX_SEGMENT_ATTEMPTS, MIN_SEGMENT_SPAN, PACING_DELAY_SEC, RETRY_BACKOFF_SEC
from .decoder import EventDecoder
from .models import FailedSegment, ParsedEvent, Segment
from .rpc import to_int

logger = logging.getLogger(__name__)


@dataclass
class CollectionResult:
    events: List[ParsedEvent] = field(default_factory=list)
    failed_segments: List[FailedSegment] = field(default_factory=list)
    api_calls: int = 0
    retries: int = 0
    splits: int = 0
    fetched_segments: List[tuple[int, int]] = field(default_factory=list)


class RangeCollector:
    def __init__(
        self,
        log_source,
        decoder: EventDecoder,
        block_cache: BlockTimestampCache | None = None,
        min_segment_span: int = MIN_SEGMENT_SPAN,
        max_attempts: int = MAX_SEGMENT_ATTEMPTS,
        backoff_base: float = RETRY_BACKOFF_SEC,
        pacing_delay: float = PACING_DELAY_SEC,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.log_source = log_source
        self.decoder = decoder
        self.block_cache = block_cache
        self.min_segment_span = min_segment_span
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.pacing_delay = pacing_delay
        self._sleep = sleep
        self._clock = clock

    async def collect(self, from_block: int, to_block: int) -> CollectionResult:
        network = self.decoder.network.name
        result = CollectionResult()
        calls_before = getattr(self.log_source, "call_count", 0)
        work: List[Segment] = [Segment(from_block, to_block)]
        first_fetch = True

        logger.info("%s: collecting blocks [%d - %d]", network, from_block, to_block)

        while work:
            seg = work.pop()
            if seg.from_block > seg.to_block:
                continue

            if not first_fetch and self.pacing_delay:
                await self._sleep(self.pacing_delay)
            first_fetch = False

            try:
                logs = await self.log_source.get_logs(self.decoder.log_filter(seg.from_block, seg.to_block))
            except Exception as e:
                self._on_failure(seg, e, work, result)
                if seg.attempt and seg.attempt < self.max_attempts:
                    await self._sleep(self.backoff_base * 2 ** (seg.attempt - 1))
                continue

            result.fetched_segments.append((seg.from_block, seg.to_block))
            events = await self._decode_logs(logs)
            result.events.extend(events)
            logger.debug("%s: [%d - %d] -> %d logs, %d events (%d segments pending)",
                         network, seg.from_block, seg.to_block, len(logs), len(events), len(work))

        result.events.sort(key=lambda e: e.sort_key)
        result.api_calls = getattr(self.log_source, "call_count", 0) - calls_before

        if result.failed_segments:
            logger.warning("%s: %d segment(s) abandoned in [%d - %d]: %s", network,
                           len(result.failed_segments), from_block, to_block,
                           [(s.from_block, s.to_block) for s in result.failed_segments])
        logger.info("%s: collected %d events from [%d - %d] (%d splits, %d retries)",
                    network, len(result.events), from_block, to_block, result.splits, result.retries)
        return result

    def _on_failure(self, seg: Segment, error: Exception, work: List[Segment], result: CollectionResult) -> None:
        """Split, re-queue for retry, or abandon a segment whose fetch failed."""
        network = self.decoder.network.name
        if seg.span > self.min_segment_span:
            left, right = seg.split()
            logger.info("%s: [%d - %d] failed (%s), splitting", network, seg.from_block, seg.to_block, error)
            work.append(right)
            work.append(left)   # LIFO: left half first
            result.splits += 1
            return

        seg.attempt += 1
        if seg.attempt < self.max_attempts:
            logger.info("%s: [%d - %d] failed (%s), retry %d/%d", network,
                        seg.from_block, seg.to_block, error, seg.attempt, self.max_attempts - 1)
            work.append(seg)
            result.retries += 1
            return

        logger.error("%s: giving up on [%d - %d] after %d attempts: %s", network,
                     seg.from_block, seg.to_block, seg.attempt, error)
        result.failed_segments.append(FailedSegment(seg.from_block, seg.to_block, str(error)))

    async def _decode_logs(self, logs: list[dict]) -> list[ParsedEvent]:
        events = []
        timestamps: dict[int, int] = {}
        for raw in logs:
            block = to_int(raw["blockNumber"])
            if block not in timestamps:
                timestamps[block] = await self._block_timestamp(block)
            event = self.decoder.decode(raw, timestamps[block])
            if event is not None:
                events.append(event)
        return events

    async def _block_timestamp(self, block: int) -> int:
        now = int(self._clock())
        ts = self.block_cache.get(block) if self.block_cache is not None else None
        if ts is None:
            try:
                ts = await self.log_source.get_block_timestamp(block)
            except Exception as e:
                logger.warning("Failed to get block %d timestamp (%s), using current time", block, e)
                return now
            if self.block_cache is not None:
                self.block_cache.set(block, ts)
        if ts > now:
            logger.warning("Block %d has a future timestamp %d, using current time instead", block, ts)
            return now
        return ts
