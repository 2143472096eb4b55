"""Tests for durable processing state."""

import asyncio
import json
import os

import pytest

from governance_feed.blob_store import LocalBlobStore
from governance_feed.models import FailedSegment, ProcessingState
from governance_feed.state import ProcessingStateStore, merge_failed_segments

KEY = "state/processing-state.json"


@pytest.fixture
def store(tmp_dir):
    return LocalBlobStore(os.path.join(tmp_dir, "blobs"))


@pytest.fixture
def state(store, tmp_dir):
    return ProcessingStateStore(store, "bucket", KEY, os.path.join(tmp_dir, "data", "state.json"))


def test_missing_blob_means_fresh_start(state):
    asyncio.run(state.load())
    assert state.read() == {}


def test_write_then_persist_round_trips_through_the_store(state, store, tmp_dir):
    state.write("ZKsync Network", last_processed_block=500, api_call_count=3)
    assert asyncio.run(state.persist()) is True
    assert not os.path.exists(state.local_path)

    with open(os.path.join(tmp_dir, "blobs", "bucket", KEY)) as f:
        raw = json.load(f)
    assert raw["ZKsync Network"]["lastProcessedBlock"] == 500
    assert raw["ZKsync Network"]["apiCallCount"] == 3
    assert "lastError" not in raw["ZKsync Network"]

    other = ProcessingStateStore(store, "bucket", KEY, os.path.join(tmp_dir, "other", "state.json"))
    asyncio.run(other.load())
    assert other.read()["ZKsync Network"].last_processed_block == 500


def test_networks_are_independent(state):
    state.write("Ethereum Mainnet", last_processed_block=10)
    state.write("ZKsync Network", last_processed_block=20)
    states = state.read()
    assert states["Ethereum Mainnet"].last_processed_block == 10
    assert states["ZKsync Network"].last_processed_block == 20


def test_watermark_never_moves_backwards(state):
    state.write("ZKsync Network", last_processed_block=1000)
    updated = state.write("ZKsync Network", last_processed_block=900, has_error=True)
    assert updated.last_processed_block == 1000
    assert updated.has_error is True


def test_failed_segments_merge_keep_and_clear(state):
    name = "ZKsync Network"
    state.write(name, last_processed_block=100, failed_segments=[FailedSegment(10, 15, "old")])
    state.write(name, last_processed_block=200, failed_segments=[FailedSegment(150, 155, "new"),
                                                                 FailedSegment(10, 15, "newer")])
    segments = state.read()[name].failed_segments
    assert [s.key for s in segments] == [(10, 15), (150, 155)]
    assert segments[0].error == "newer"

    state.write(name, last_processed_block=300)
    assert len(state.read()[name].failed_segments) == 2

    state.write(name, failed_segments=[])
    assert state.read()[name].failed_segments == []


def test_write_stamps_last_updated(state):
    updated = state.write("ZKsync Network", last_processed_block=1)
    assert updated.last_updated.endswith("Z")


def test_unknown_field_is_rejected(state):
    with pytest.raises(TypeError):
        state.write("ZKsync Network", watermark=5)


def test_corrupt_local_file_reads_as_empty(state):
    os.makedirs(os.path.dirname(state.local_path), exist_ok=True)
    with open(state.local_path, "w") as f:
        f.write("[[[")
    assert state.read() == {}


def test_persist_without_local_file_reports_failure(state):
    assert asyncio.run(state.persist()) is False


def test_state_json_uses_camel_case():
    s = ProcessingState(last_processed_block=7, failed_segments=[FailedSegment(1, 2, "x")])
    d = s.to_json()
    assert d["failedSegments"] == [{"from": 1, "to": 2, "error": "x"}]
    assert ProcessingState.from_json(d) == s


def test_merge_failed_segments_is_sorted():
    merged = merge_failed_segments([FailedSegment(50, 60, "a")], [FailedSegment(1, 5, "b")])
    assert [s.key for s in merged] == [(1, 5), (50, 60)]
