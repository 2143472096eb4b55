"""Shared test fixtures for governance feed tests."""

import os
import tempfile

import pytest
from eth_abi import encode
from web3 import Web3

from governance_feed.blob_store import LocalBlobStore
from governance_feed.config import ZKSYNC
from governance_feed.pipeline import build_services
from governance_feed.rpc import RpcError

GOVERNOR = "0x76705327e682F2d96943280D99464Ab61219e34f"      # ZkProtocolGovernor
TIMELOCK = "0x3701fB675bCd4A85eb11A2467628BBe193F6e6A8"      # ZkProtocolGovernor Timelock
UNKNOWN = "0x000000000000000000000000000000000000dEaD"

BASE_TIMESTAMP = 1_700_000_000


def topic(signature: str) -> str:
    return Web3.to_hex(Web3.keccak(text=signature))


def proposal_queued_log(block: int, proposal_id: int = 1, eta: int = BASE_TIMESTAMP + 86400,
                        address: str = GOVERNOR, tx_index: int = 0, log_index: int = 0) -> dict:
    return {
        "address": address.lower(),
        "topics": [topic("ProposalQueued(uint256,uint256)")],
        "data": Web3.to_hex(encode(["uint256", "uint256"], [proposal_id, eta])),
        "blockNumber": hex(block),
        "transactionHash": "0x" + f"{block:040x}{tx_index:024x}",
        "logIndex": hex(log_index),
    }


def call_scheduled_log(block: int, op_id: bytes = b"\x11" * 32, index: int = 0,
                       target: str = GOVERNOR, value: int = 0, data: bytes = b"\xde\xad",
                       delay: int = 259200) -> dict:
    return {
        "address": TIMELOCK,
        "topics": [
            topic("CallScheduled(bytes32,uint256,address,uint256,bytes,bytes32,uint256)"),
            Web3.to_hex(op_id),
            Web3.to_hex(encode(["uint256"], [index])),
        ],
        "data": Web3.to_hex(encode(
            ["address", "uint256", "bytes", "bytes32", "uint256"],
            [target, value, data, b"\x00" * 32, delay],
        )),
        "blockNumber": hex(block),
        "transactionHash": "0x" + f"{block:064x}",
        "logIndex": "0x0",
    }


class FakeLogSource:
    """In-memory stand-in for LogSource; `fail(from, to)` decides which fetches raise."""

    def __init__(self, logs=None, head=2000, fail=None, timestamp=None):
        self.logs = list(logs or [])
        self.head = head
        self.fail = fail or (lambda f, t: False)
        self.timestamp = timestamp or (lambda block: BASE_TIMESTAMP + block)
        self.call_count = 0
        self.requests = []
        self.timestamp_requests = []

    async def get_logs(self, log_filter):
        self.call_count += 1
        f, t = log_filter["fromBlock"], log_filter["toBlock"]
        self.requests.append((f, t))
        if self.fail(f, t):
            raise RpcError(-32005, f"query returned more than 10000 results for [{f}, {t}]")
        addresses = {a.lower() for a in log_filter["address"]}
        return [
            log for log in self.logs
            if f <= int(log["blockNumber"], 16) <= t and log["address"].lower() in addresses
        ]

    async def get_block_number(self):
        self.call_count += 1
        return self.head

    async def get_block_timestamp(self, block):
        self.call_count += 1
        self.timestamp_requests.append(block)
        return self.timestamp(block)


class RejectingBlobStore(LocalBlobStore):
    """LocalBlobStore whose uploads under `reject_prefix` fail like an unavailable bucket."""

    def __init__(self, root, reject_prefix=None):
        super().__init__(root)
        self.reject_prefix = reject_prefix

    async def upload(self, bucket, local_path, remote_key, content=None):
        if self.reject_prefix and remote_key.startswith(self.reject_prefix):
            raise OSError(f"upload of {remote_key} rejected")
        await super().upload(bucket, local_path, remote_key, content)


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def tmp_dir():
    """Provide a temporary working directory."""
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def fake_source_factory():
    return FakeLogSource


@pytest.fixture
def services(tmp_dir, sleeper):
    """Pipeline services wired to a directory-backed blob store under tmp_dir."""
    svc = build_services(
        data_dir=os.path.join(tmp_dir, "data"),
        blob_root=os.path.join(tmp_dir, "blobs"),
        bucket="test-bucket",
    )
    svc.store = RejectingBlobStore(os.path.join(tmp_dir, "blobs"))
    svc.state.store = svc.history.store = svc.feed.store = svc.store
    svc.collector_options = {"sleep": sleeper, "pacing_delay": 0.0}
    svc.lock_timeout = 0.5
    svc.history.lock_timeout = 0.5
    return svc


@pytest.fixture
def zksync():
    return ZKSYNC
