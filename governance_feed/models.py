"""Data models shared by the collector, state store, history log and feed."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

ArgValue = Union[str, int, bool, List["ArgValue"], Dict[str, "ArgValue"]]


@dataclass(frozen=True)
class ParsedEvent:
    address: str
    event_name: str
    args: Dict[str, ArgValue]
    block_number: int
    transaction_hash: str
    log_index: int
    category: str
    governance_body: str
    title: str
    link: str
    proposal_link: str
    timestamp: str            # unix seconds, as a string
    network: str
    chain_id: int

    @property
    def sort_key(self) -> tuple[int, str, int]:
        return (self.block_number, self.transaction_hash, self.log_index)


@dataclass
class Segment:
    from_block: int
    to_block: int
    attempt: int = 0

    @property
    def span(self) -> int:
        return self.to_block - self.from_block

    def split(self) -> tuple["Segment", "Segment"]:
        mid = (self.from_block + self.to_block) // 2
        return Segment(self.from_block, mid), Segment(mid + 1, self.to_block)


@dataclass(frozen=True)
class FailedSegment:
    from_block: int
    to_block: int
    error: str

    @property
    def key(self) -> tuple[int, int]:
        return (self.from_block, self.to_block)

    def to_json(self) -> dict:
        return {"from": self.from_block, "to": self.to_block, "error": self.error}

    @classmethod
    def from_json(cls, d: dict) -> "FailedSegment":
        return cls(from_block=int(d["from"]), to_block=int(d["to"]), error=str(d.get("error", "")))


@dataclass
class ProcessingState:
    last_processed_block: int
    has_error: bool = False
    last_error: Optional[str] = None
    last_updated: str = ""
    retry_count: int = 0
    consecutive_failures: int = 0
    api_call_count: int = 0
    failed_segments: List[FailedSegment] = field(default_factory=list)

    def to_json(self) -> dict:
        d: Dict[str, Any] = {
            "lastProcessedBlock": self.last_processed_block,
            "hasError": self.has_error,
            "lastUpdated": self.last_updated,
            "retryCount": self.retry_count,
            "consecutiveFailures": self.consecutive_failures,
            "apiCallCount": self.api_call_count,
            "failedSegments": [s.to_json() for s in self.failed_segments],
        }
        if self.last_error is not None:
            d["lastError"] = self.last_error
        return d

    @classmethod
    def from_json(cls, d: dict) -> "ProcessingState":
        return cls(
            last_processed_block=int(d.get("lastProcessedBlock", 0)),
            has_error=bool(d.get("hasError", False)),
            last_error=d.get("lastError"),
            last_updated=d.get("lastUpdated", ""),
            retry_count=int(d.get("retryCount") or 0),
            consecutive_failures=int(d.get("consecutiveFailures") or 0),
            api_call_count=int(d.get("apiCallCount") or 0),
            failed_segments=[FailedSegment.from_json(s) for s in d.get("failedSegments") or []],
        )


@dataclass
class ProcessingRecord:
    network: str
    start_block: int
    end_block: int
    timestamp: str
    errors: List[dict] = field(default_factory=list)   # {block, timestamp, error}
    events_found: int = 0

    def to_json(self) -> dict:
        return {
            "network": self.network,
            "startBlock": self.start_block,
            "endBlock": self.end_block,
            "timestamp": self.timestamp,
            "errors": list(self.errors),
            "eventsFound": self.events_found,
        }

    @classmethod
    def from_json(cls, d: dict) -> "ProcessingRecord":
        return cls(
            network=d["network"],
            start_block=int(d["startBlock"]),
            end_block=int(d["endBlock"]),
            timestamp=d["timestamp"],
            errors=list(d.get("errors") or []),
            events_found=int(d.get("eventsFound") or 0),
        )


@dataclass
class ProcessingHistory:
    records: List[ProcessingRecord] = field(default_factory=list)
    last_archive_timestamp: Optional[str] = None
    archived_records: List[dict] = field(default_factory=list)   # {path, count, timestamp}

    def to_json(self) -> dict:
        return {
            "records": [r.to_json() for r in self.records],
            "lastArchiveTimestamp": self.last_archive_timestamp,
            "archivedRecords": list(self.archived_records),
        }

    @classmethod
    def from_json(cls, d: dict) -> "ProcessingHistory":
        return cls(
            records=[ProcessingRecord.from_json(r) for r in d.get("records") or []],
            last_archive_timestamp=d.get("lastArchiveTimestamp"),
            archived_records=list(d.get("archivedRecords") or []),
        )


@dataclass(frozen=True)
class FeedItem:
    title: str
    description: str          # JSON: eventDetails / governanceInfo / eventData
    url: str
    guid: str
    categories: tuple[str, ...]
    author: str
    date: datetime            # tz-aware UTC
    block: int = 0
