"""Tests for the RSS feed ledger."""

import asyncio
import json
import os
from datetime import datetime, timezone

import pytest

from conftest import GOVERNOR
from governance_feed.blob_store import LocalBlobStore
from governance_feed.feed import FeedManager, get_event_guid, parse_event_date, parse_rss, render_rss
from governance_feed.models import ParsedEvent


def make_event(block: int, timestamp="1700000000", name="ProposalQueued", tx=None) -> ParsedEvent:
    tx = tx or "0x" + f"{block:064x}"
    return ParsedEvent(
        address=GOVERNOR,
        event_name=name,
        args={"proposalId": str(block), "etaSeconds": "1700086400"},
        block_number=block,
        transaction_hash=tx,
        log_index=0,
        category="Protocol",
        governance_body="ZkProtocolGovernor",
        title=f"{name} - ZkProtocolGovernor",
        link=f"https://explorer.zksync.io/tx/{tx}",
        proposal_link=f"https://vote.zknation.io/dao/proposal/{block}?govId=eip155:324:{GOVERNOR}",
        timestamp=timestamp,
        network="ZKsync Network",
        chain_id=324,
    )


@pytest.fixture
def store(tmp_dir):
    return LocalBlobStore(os.path.join(tmp_dir, "blobs"))


@pytest.fixture
def make_feed(store, tmp_dir):
    def factory(threshold=1000):
        return FeedManager(store, "bucket", threshold=threshold, scratch_dir=os.path.join(tmp_dir, "data"))
    return factory


def published(store):
    with open(os.path.join(store.root, "bucket", "rss", "feed.xml")) as f:
        return parse_rss(f.read())


class TestGuid:
    def test_guid_is_stable_and_normalized(self):
        a = get_event_guid("ZKsync Network", 324, "ProposalQueued - ZkProtocolGovernor", 10, "https://X/tx/0xAB")
        b = get_event_guid("zksync  network", 324, "proposalqueued-zkprotocolgovernor", 10, "https://x/tx/0xab")
        assert a == b
        assert a.startswith("0x") and len(a) == 66

    def test_guid_depends_on_block_and_chain(self):
        base = get_event_guid("n", 324, "t", 10, "l")
        assert get_event_guid("n", 324, "t", 11, "l") != base
        assert get_event_guid("n", 1, "t", 10, "l") != base


class TestParseEventDate:
    def test_seconds_and_milliseconds(self):
        expected = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
        assert parse_event_date("1700000000") == expected
        assert parse_event_date("1700000000000") == expected
        assert parse_event_date(1700000000) == expected

    def test_date_strings(self):
        assert parse_event_date("2024-01-02T03:04:05Z") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert parse_event_date("Tue, 02 Jan 2024 03:04:05 GMT") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_garbage(self):
        assert parse_event_date("not a date") is None
        assert parse_event_date("nan") is None
        assert parse_event_date(None) is None


class TestAddEvent:
    def test_requires_initialize(self, make_feed):
        with pytest.raises(RuntimeError):
            make_feed().add_event(make_event(1))

    def test_duplicates_are_rejected(self, make_feed):
        feed = make_feed()
        asyncio.run(feed.initialize())
        assert feed.add_event(make_event(10)) is True
        assert feed.add_event(make_event(10)) is False
        assert len(feed) == 1

    def test_invalid_timestamp_is_rejected(self, make_feed):
        feed = make_feed()
        asyncio.run(feed.initialize())
        assert feed.add_event(make_event(10, timestamp="yesterday-ish")) is False
        assert len(feed) == 0

    def test_sorted_newest_first_with_block_tiebreak(self, make_feed):
        feed = make_feed()
        asyncio.run(feed.initialize())
        feed.add_event(make_event(100, timestamp="1700000000"))
        feed.add_event(make_event(101, timestamp="1700000050"))
        feed.add_event(make_event(102, timestamp="1700000000"))

        items = feed.generate()
        assert [i.block for i in items] == [101, 102, 100]

    def test_description_payload(self, make_feed):
        feed = make_feed()
        asyncio.run(feed.initialize())
        feed.add_event(make_event(100))
        payload = json.loads(feed.generate()[0].description)
        assert payload["eventDetails"]["block"] == 100
        assert payload["eventDetails"]["chainId"] == 324
        assert payload["governanceInfo"]["eventType"] == "ProposalQueued"
        assert payload["governanceInfo"]["contractAddress"] == GOVERNOR
        assert payload["eventData"]["proposalId"] == "100"


class TestPublishing:
    def test_upload_and_reload(self, make_feed, store):
        feed = make_feed()
        asyncio.run(feed.initialize())
        feed.add_event(make_event(100, timestamp="1700000000"))
        feed.add_event(make_event(101, timestamp="1700000050"))
        assert asyncio.run(feed.update()) is True
        assert not os.path.exists(feed.scratch_path)

        items = published(store)
        assert [i.block for i in items] == [101, 100]
        assert items[0].categories == ("Protocol",)
        assert items[0].author == "ZkProtocolGovernor"
        assert items[0].date == datetime.fromtimestamp(1700000050, tz=timezone.utc)

        again = make_feed()
        asyncio.run(again.initialize())
        assert len(again) == 2
        assert again.add_event(make_event(100, timestamp="1700000000")) is False

    def test_overflow_is_archived_once(self, make_feed, store):
        feed = make_feed(threshold=1000)
        asyncio.run(feed.initialize())
        for block in range(1500):
            feed.add_event(make_event(block, timestamp=str(1_700_000_000 + block)))
        assert asyncio.run(feed.update()) is True

        assert len(published(store)) == 1000
        assert published(store)[-1].block == 500
        archives = asyncio.run(store.list_keys("bucket", "rss/archive/"))
        assert len(archives) == 1
        with open(os.path.join(store.root, "bucket", archives[0])) as f:
            archived = parse_rss(f.read())
        assert {i.block for i in archived} == set(range(500))

        # the same overflow maps to the same archive blob
        assert asyncio.run(feed.archive(archived)) == archives[0]
        assert len(asyncio.run(store.list_keys("bucket", "rss/archive/"))) == 1

    def test_archived_guids_stay_known(self, make_feed, store):
        feed = make_feed(threshold=2)
        asyncio.run(feed.initialize())
        for block in range(3):
            feed.add_event(make_event(block, timestamp=str(1_700_000_000 + block)))
        asyncio.run(feed.update())

        fresh = make_feed(threshold=2)
        asyncio.run(fresh.initialize())
        assert len(fresh) == 2
        assert fresh.add_event(make_event(0, timestamp="1700000000")) is False

    def test_failed_archive_keeps_overflow_published(self, make_feed, store):
        feed = make_feed(threshold=3)
        asyncio.run(feed.initialize())
        for block in range(5):
            feed.add_event(make_event(block, timestamp=str(1_700_000_000 + block)))

        upload = store.upload

        async def no_archives(bucket, local_path, remote_key, content=None):
            if remote_key.startswith("rss/archive/"):
                raise OSError("bucket unavailable")
            await upload(bucket, local_path, remote_key, content)

        store.upload = no_archives
        assert asyncio.run(feed.update()) is True
        assert [i.block for i in published(store)] == [4, 3, 2, 1, 0]
        assert asyncio.run(store.list_keys("bucket", "rss/archive/")) == []
        assert len(feed) == 5

        # next cycle archives the overflow and trims
        store.upload = upload
        assert asyncio.run(feed.update()) is True
        assert [i.block for i in published(store)] == [4, 3, 2]
        assert len(asyncio.run(store.list_keys("bucket", "rss/archive/"))) == 1

    def test_upload_failure_returns_false(self, make_feed, store):
        feed = make_feed()
        asyncio.run(feed.initialize())
        feed.add_event(make_event(1))

        async def broken(*args, **kwargs):
            raise OSError("bucket unavailable")

        store.upload = broken
        assert asyncio.run(feed.update()) is False
        assert not os.path.exists(feed.scratch_path)


def test_render_rss_shape():
    xml = render_rss([], build_date=datetime(2026, 1, 1, tzinfo=timezone.utc))
    assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    assert "<title>ZKsync Governance Feed</title>" in xml
    assert "<lastBuildDate>Thu, 01 Jan 2026 00:00:00 GMT</lastBuildDate>" in xml
