"""
feed.py — Deduplicating, ordered, size-bounded RSS ledger.

A FeedManager is constructed by the caller and passed around explicitly.
Lifecycle: initialize() once (loads the published feed and the GUIDs of every
archive shard), then add_event() any number of times, then update() to
archive overflow and republish.

Identity: get_event_guid() is a keccak256 over the normalized
(network, chainId, title, block, link) tuple, so the same on-chain event
always maps to the same GUID no matter which run produced it.
"""
from __future__ import annotations

import bisect
import calendar
import json
import logging
import math
import os
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Iterable, List

import feedparser
from web3 import Web3

from .blob_store import BlobNotFoundError
from .config import ARCHIVE_ITEM_THRESHOLD, DATA_DIR, FEED_CHANNEL, RSS_ARCHIVE_PREFIX, RSS_FILE_KEY
from .models import FeedItem, ParsedEvent

logger = logging.getLogger(__name__)

DC_NS = "http://purl.org/dc/elements/1.1/"
ET.register_namespace("dc", DC_NS)


def _squash(s: str) -> str:
    return "".join(s.lower().split())


def get_event_guid(network: str, chain_id: int, title: str, block: int, link: str) -> str:
    normalized = "-".join([_squash(network), str(chain_id), _squash(title), str(block), link.lower()])
    return Web3.to_hex(Web3.keccak(text=normalized))


def parse_event_date(value) -> datetime | None:
    """Unix seconds (or ms when > 1e12) as number/numeric string, else an RFC 2822 / ISO date."""
    numeric = None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        text = value.strip()
        try:
            numeric = float(text)
        except ValueError:
            return _parse_date_text(text)
    else:
        return None

    if math.isnan(numeric) or math.isinf(numeric):
        return None
    seconds = numeric / 1000 if numeric > 1e12 else numeric
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_date_text(text: str) -> datetime | None:
    parsed = None
    try:
        parsed = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _sort_key(item: FeedItem) -> tuple[float, int]:
    # newest first; same instant -> higher block first
    return (-item.date.timestamp(), -item.block)


def event_to_item(event: ParsedEvent, date: datetime) -> FeedItem:
    description = json.dumps({
        "eventDetails": {
            "network": event.network,
            "chainId": event.chain_id,
            "block": event.block_number,
            "timestamp": date.isoformat(),
        },
        "governanceInfo": {
            "governanceBody": event.governance_body,
            "eventType": event.event_name,
            "contractAddress": event.address,
            "proposalLink": event.proposal_link,
        },
        "eventData": event.args,
    })
    return FeedItem(
        title=event.title,
        description=description,
        url=event.link,
        guid=get_event_guid(event.network, event.chain_id, event.title, event.block_number, event.link),
        categories=(event.category,),
        author=event.governance_body,
        date=date,
        block=event.block_number,
    )


# ----------------------
# RSS 2.0 (de)serialization
# ----------------------

def render_rss(items: Iterable[FeedItem], channel: dict = FEED_CHANNEL, build_date: datetime | None = None) -> str:
    rss = ET.Element("rss", version="2.0")
    ch = ET.SubElement(rss, "channel")
    for tag in ("title", "description", "link", "language"):
        ET.SubElement(ch, tag).text = channel.get(tag, "")
    build_date = build_date or datetime.now(timezone.utc)
    ET.SubElement(ch, "lastBuildDate").text = format_datetime(build_date, usegmt=True)

    for item in items:
        el = ET.SubElement(ch, "item")
        ET.SubElement(el, "title").text = item.title
        ET.SubElement(el, "description").text = item.description
        ET.SubElement(el, "link").text = item.url
        ET.SubElement(el, "guid", isPermaLink="false").text = item.guid
        for category in item.categories:
            ET.SubElement(el, "category").text = category
        ET.SubElement(el, f"{{{DC_NS}}}creator").text = item.author
        ET.SubElement(el, "pubDate").text = format_datetime(item.date.astimezone(timezone.utc), usegmt=True)

    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(rss, encoding="unicode")


def _block_from_description(description: str) -> int:
    try:
        return int(json.loads(description)["eventDetails"]["block"])
    except (ValueError, KeyError, TypeError):
        return 0


def parse_rss(content: str) -> List[FeedItem]:
    parsed = feedparser.parse(content, sanitize_html=False, resolve_relative_uris=False)
    items = []
    for entry in parsed.entries:
        guid = entry.get("id") or entry.get("guid") or entry.get("link")
        if not guid:
            logger.warning("Skipping feed entry with no identifier: %s", entry.get("title", "unknown"))
            continue
        published = entry.get("published_parsed") or entry.get("updated_parsed")
        date = (datetime.fromtimestamp(calendar.timegm(published), tz=timezone.utc)
                if published else datetime.fromtimestamp(0, tz=timezone.utc))
        description = entry.get("summary") or entry.get("description") or ""
        items.append(FeedItem(
            title=entry.get("title", ""),
            description=description,
            url=entry.get("link", ""),
            guid=guid,
            categories=tuple(t.get("term") for t in entry.get("tags", []) if t.get("term")),
            author=entry.get("author", ""),
            date=date,
            block=_block_from_description(description),
        ))
    return items


class FeedManager:
    def __init__(self, store, bucket: str, feed_key: str = RSS_FILE_KEY,
                 archive_prefix: str = RSS_ARCHIVE_PREFIX, threshold: int = ARCHIVE_ITEM_THRESHOLD,
                 scratch_dir: str = DATA_DIR, channel: dict = FEED_CHANNEL):
        self.store = store
        self.bucket = bucket
        self.feed_key = feed_key
        self.archive_prefix = archive_prefix.rstrip("/")
        self.threshold = threshold
        self.scratch_path = os.path.join(scratch_dir, "feed.xml")
        self.channel = channel
        self.initialized = False
        self._seen_guids: set[str] = set()
        self._items: List[FeedItem] = []

    def __len__(self) -> int:
        return len(self._items)

    def _require_initialized(self) -> None:
        if not self.initialized:
            raise RuntimeError("FeedManager.initialize() must be awaited before use")

    async def _fetch(self, key: str) -> str:
        tmp = self.scratch_path + ".download"
        try:
            await self.store.download(self.bucket, key, tmp)
            with open(tmp, "r") as f:
                return f.read()
        finally:
            if os.path.exists(tmp):
                os.unlink(tmp)

    async def initialize(self) -> None:
        if self.initialized:
            return
        try:
            content = await self._fetch(self.feed_key)
            for item in parse_rss(content):
                self._insert(item)
        except BlobNotFoundError:
            logger.info("No published feed at %s/%s yet", self.bucket, self.feed_key)

        archived = 0
        for key in await self.store.list_keys(self.bucket, self.archive_prefix + "/"):
            for item in parse_rss(await self._fetch(key)):
                if item.guid not in self._seen_guids:
                    self._seen_guids.add(item.guid)
                    archived += 1

        self.initialized = True
        logger.info("Loaded %d feed items (%d more GUIDs from archives)", len(self._items), archived)

    def _insert(self, item: FeedItem) -> bool:
        if item.guid in self._seen_guids:
            return False
        self._seen_guids.add(item.guid)
        bisect.insort(self._items, item, key=_sort_key)
        return True

    def add_event(self, event: ParsedEvent) -> bool:
        self._require_initialized()
        date = parse_event_date(event.timestamp)
        if date is None:
            logger.error("Invalid timestamp format: %r, skipping event: %s", event.timestamp, event.title)
            return False

        item = event_to_item(event, date)
        if not self._insert(item):
            logger.info("Skipping duplicate event: %s (block %d)", event.title, event.block_number)
            return False
        logger.info("Adding new event: %s with date %s", event.title, date.isoformat())
        return True

    def generate(self) -> List[FeedItem]:
        return list(self._items)

    def archive_key(self, items: List[FeedItem]) -> str:
        digest = Web3.keccak(text="\n".join(i.guid for i in items)).hex()
        digest = digest[2:] if digest.startswith("0x") else digest
        return f"{self.archive_prefix}/archive-{digest[:16]}.xml"

    async def archive(self, items: List[FeedItem]) -> str | None:
        """Write `items` to a content-addressed archive blob. Best-effort."""
        key = self.archive_key(items)
        try:
            if await self.store.exists(self.bucket, key):
                logger.info("Archive %s already exists, skipping upload", key)
                return key
            await self.store.upload(self.bucket, self.scratch_path, key, render_rss(items, self.channel))
        except Exception as e:
            logger.error("Failed to upload archive %s: %s", key, e)
            return None
        logger.info("Archived %d items to %s", len(items), key)
        return key

    async def update(self) -> bool:
        self._require_initialized()
        items = self.generate()
        if len(items) > self.threshold:
            keep, overflow = items[: self.threshold], items[self.threshold:]
            logger.info("Archiving items: keeping %d of %d in main feed", len(keep), len(items))
            if await self.archive(overflow) is None:
                # overflow stays in the main feed until an archive holds it
                logger.error("Archive failed, publishing all %d items untrimmed", len(items))
            else:
                self._items = keep
                items = keep
        logger.info("Uploading feed with %d items", len(items))
        return await self.upload(items)

    async def upload(self, items: List[FeedItem] | None = None) -> bool:
        items = self.generate() if items is None else items
        try:
            content = render_rss(items, self.channel)
            os.makedirs(os.path.dirname(self.scratch_path) or ".", exist_ok=True)
            with open(self.scratch_path, "w") as f:
                f.write(content)
            await self.store.upload(self.bucket, self.scratch_path, self.feed_key, content)
            return True
        except Exception as e:
            logger.error("Failed to upload RSS feed: %s", e)
            return False
        finally:
            if os.path.exists(self.scratch_path):
                os.unlink(self.scratch_path)
