import os
from dataclasses import dataclass, field
from dotenv import load_dotenv

from .abi import EVENTS_MAPPING

load_dotenv()


def get_env_for_chain(base_key: str, chain_id: int):
    """
    Prefer CHAIN_ID-suffixed env (e.g. ETHEREUM_RPC_URL_1) over generic (ETHEREUM_RPC_URL).
    Return None if neither is set.
    """
    return os.getenv(f"{base_key}_{chain_id}") or os.getenv(base_key)


@dataclass(frozen=True)
class NetworkConfig:
    key: str                       # CLI name: "ethereum" | "zksync"
    name: str                      # display name, also the state-file key
    chain_id: int
    rpc_env: str
    explorer_url: str
    default_from: int
    events_mapping: dict = field(default_factory=dict)   # address -> [event names]

    @property
    def cache_file(self) -> str:
        return os.path.join(DATA_DIR, f"{self.key}-block-timestamps.json")


# Local scratch directory for state/history/feed copies and block caches
DATA_DIR = os.getenv("FEED_DATA_DIR", "data")

# Blob store (directory-backed bucket)
BLOB_ROOT = os.getenv("FEED_BLOB_ROOT", "blobs")
BUCKET_NAME = os.getenv("FEED_BUCKET_NAME", "zksync-rss")
STATE_FILE_KEY = os.getenv("FEED_STATE_KEY", "state/processing-state.json")
HISTORY_FILE_KEY = os.getenv("FEED_HISTORY_KEY", "state/processing-history.json")
HISTORY_ARCHIVE_PREFIX = "state/archive"
RSS_FILE_KEY = os.getenv("FEED_RSS_KEY", "rss/feed.xml")
RSS_ARCHIVE_PREFIX = "rss/archive"

# Range collection
MIN_SEGMENT_SPAN = int(os.getenv("MIN_SEGMENT_SPAN", "10"))
MAX_SEGMENT_ATTEMPTS = int(os.getenv("MAX_SEGMENT_ATTEMPTS", "3"))
RETRY_BACKOFF_SEC = float(os.getenv("RETRY_BACKOFF_SEC", "1.0"))
PACING_DELAY_SEC = float(os.getenv("PACING_DELAY_SEC", "0.2"))
DEFAULT_LOOKBACK_BLOCKS = 100

# Feed / history bookkeeping
ARCHIVE_ITEM_THRESHOLD = int(os.getenv("ARCHIVE_ITEM_THRESHOLD", "1000"))
HISTORY_ARCHIVE_THRESHOLD = 1000
HISTORY_KEEP_RECORDS = 100
MIN_SECONDS_BETWEEN_ARCHIVES = 10 * 60
LOCK_TIMEOUT_SEC = float(os.getenv("LOCK_TIMEOUT_SEC", "5"))

FEED_CHANNEL = {
    "title": "ZKsync Governance Feed",
    "description": "Monitor onchain ZKsync governance events",
    "link": "https://feed.zkNation.io",
    "language": "en",
}

ETHEREUM = NetworkConfig(
    key="ethereum",
    name="Ethereum Mainnet",
    chain_id=1,
    rpc_env="ETHEREUM_RPC_URL",
    explorer_url="https://etherscan.io",
    default_from=23048076,
    events_mapping=EVENTS_MAPPING["Ethereum Mainnet"],
)

ZKSYNC = NetworkConfig(
    key="zksync",
    name="ZKsync Network",
    chain_id=324,
    rpc_env="ZKSYNC_RPC_URL",
    explorer_url="https://explorer.zksync.io",
    default_from=63620650,
    events_mapping=EVENTS_MAPPING["ZKsync Network"],
)

NETWORKS = {n.key: n for n in (ETHEREUM, ZKSYNC)}


def get_network(key: str) -> NetworkConfig:
    network = NETWORKS.get(key.lower())
    if network is None:
        raise ValueError(f"Unsupported network '{key}'. Use one of: {', '.join(NETWORKS)}.")
    return network


def get_rpc_url(network: NetworkConfig) -> str:
    url = get_env_for_chain(network.rpc_env, network.chain_id)
    if not url:
        raise RuntimeError(
            f"Missing RPC URL for {network.name}. Set {network.rpc_env} "
            f"or the chain-specific variant {network.rpc_env}_{network.chain_id}."
        )
    return url
