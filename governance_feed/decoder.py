"""
decoder.py — Raw eth_getLogs entries -> ParsedEvent.

Deterministic and I/O free: the block timestamp is resolved by the caller and
passed in. Topic/data decoding uses eth_abi against the fragments in abi.py.
"""
from __future__ import annotations

import logging
from typing import Dict, Tuple

from eth_abi import decode as abi_decode
from web3 import Web3

from .abi import canonical_type, event_signature, find_event_abi
from .classifier import get_category, get_gov_body
from .config import NetworkConfig
from .models import ArgValue, ParsedEvent
from .rpc import to_int

logger = logging.getLogger(__name__)

PROPOSAL_URL = "https://vote.zknation.io/dao/proposal/{pid}?govId=eip155:{chain_id}:{address}"


class EventSignatureError(ValueError):
    """A configured event name has no ABI fragment (configuration error, never retried)."""


class EventDecodeError(ValueError):
    """A matched log could not be decoded against its ABI fragment."""


def _hex_to_bytes(h: str) -> bytes:
    if h.startswith("0x"):
        h = h[2:]
    return bytes.fromhex(h)


def _is_dynamic(abi_type: str) -> bool:
    return abi_type in ("string", "bytes") or abi_type.endswith("]") or abi_type.startswith("tuple")


def _int_bits(abi_type: str) -> int:
    digits = abi_type.lstrip("uint")
    return int(digits) if digits else 256


def normalize_value(value, inp: dict) -> ArgValue:
    """
    Decoded python value -> JSON-safe ArgValue.
    Integers wider than 48 bits become decimal strings, bytes become 0x-hex,
    addresses are checksummed, tuples become name-keyed mappings.
    """
    typ = inp["type"]
    if typ.endswith("]"):
        base = dict(inp, type=typ[: typ.rindex("[")])
        return [normalize_value(v, base) for v in value]
    if typ == "tuple":
        return {
            comp.get("name") or str(i): normalize_value(v, comp)
            for i, (comp, v) in enumerate(zip(inp.get("components", []), value))
        }
    if typ.startswith("uint") or typ.startswith("int"):
        return int(value) if _int_bits(typ) <= 48 else str(int(value))
    if typ == "address":
        return Web3.to_checksum_address(value)
    if typ.startswith("bytes"):
        return "0x" + bytes(value).hex()
    if typ == "bool":
        return bool(value)
    return str(value)


def normalize_args(args: dict, inputs: list[dict]) -> Dict[str, ArgValue]:
    by_name = {i["name"]: i for i in inputs}
    return {name: normalize_value(value, by_name[name]) for name, value in args.items()}


class EventDecoder:
    def __init__(self, network: NetworkConfig, abi: list[dict] | None = None):
        self.network = network
        self._events: Dict[Tuple[str, str], dict] = {}
        self.addresses: list[str] = []
        topic0s: set[str] = set()
        for address, names in network.events_mapping.items():
            self.addresses.append(address)
            for name in names:
                event_abi = find_event_abi(name, abi)
                if event_abi is None:
                    raise EventSignatureError(f"No ABI fragment for event {name} on {address}")
                topic0 = Web3.to_hex(Web3.keccak(text=event_signature(event_abi))).lower()
                self._events[(address.lower(), topic0)] = event_abi
                topic0s.add(topic0)
        self.topic0s = sorted(topic0s)

    def log_filter(self, from_block: int, to_block: int) -> dict:
        return {
            "address": list(self.addresses),
            "topics": [list(self.topic0s)],
            "fromBlock": from_block,
            "toBlock": to_block,
        }

    def _decode_args(self, event_abi: dict, topics: list[str], data_hex: str) -> dict:
        inputs = event_abi["inputs"]
        indexed = [i for i in inputs if i.get("indexed")]
        plain = [i for i in inputs if not i.get("indexed")]
        if len(topics) - 1 != len(indexed):
            raise EventDecodeError(
                f"{event_abi['name']}: expected {len(indexed)} indexed topics, got {len(topics) - 1}"
            )

        values: dict = {}
        for inp, topic in zip(indexed, topics[1:]):
            if _is_dynamic(inp["type"]):
                values[inp["name"]] = topic.lower()     # only the hash is on-chain
            else:
                raw = abi_decode([canonical_type(inp)], _hex_to_bytes(topic))[0]
                values[inp["name"]] = normalize_value(raw, inp)

        decoded = abi_decode([canonical_type(i) for i in plain], _hex_to_bytes(data_hex or "0x"))
        for inp, raw in zip(plain, decoded):
            values[inp["name"]] = normalize_value(raw, inp)

        # keep ABI argument order
        return {i["name"]: values[i["name"]] for i in inputs}

    def decode(self, raw_log: dict, timestamp: int) -> ParsedEvent | None:
        topics = raw_log.get("topics") or []
        if not topics:
            return None
        address = raw_log["address"]
        event_abi = self._events.get((address.lower(), topics[0].lower()))
        if event_abi is None:
            logger.debug("Skipping unconfigured log %s on %s", topics[0], address)
            return None

        try:
            args = self._decode_args(event_abi, topics, raw_log.get("data", "0x"))
        except EventDecodeError:
            raise
        except Exception as e:
            raise EventDecodeError(
                f"Failed to decode {event_abi['name']} on {address} "
                f"(tx {raw_log.get('transactionHash')}): {e}"
            ) from e

        address = Web3.to_checksum_address(address)
        tx_hash = raw_log["transactionHash"]
        gov_body = get_gov_body(address)
        proposal_id = args.get("proposalId")
        proposal_link = (
            PROPOSAL_URL.format(pid=proposal_id, chain_id=self.network.chain_id, address=address)
            if proposal_id is not None else ""
        )

        return ParsedEvent(
            address=address,
            event_name=event_abi["name"],
            args=args,
            block_number=to_int(raw_log["blockNumber"]),
            transaction_hash=tx_hash,
            log_index=to_int(raw_log.get("logIndex", 0)),
            category=get_category(address),
            governance_body=gov_body,
            title=f"{event_abi['name']} - {gov_body}",
            link=f"{self.network.explorer_url}/tx/{tx_hash}",
            proposal_link=proposal_link,
            timestamp=str(int(timestamp)),
            network=self.network.name,
            chain_id=self.network.chain_id,
        )
