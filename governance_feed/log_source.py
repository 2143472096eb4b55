"""
log_source.py — Raw log retrieval for a multi-address / multi-topic filter.

Primary path is the paginated `alchemy_getLogs` extension (continuation via
`pageKey`); if the endpoint rejects it we issue exactly one plain
`eth_getLogs` for the same filter.
"""
from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Callable

import requests

from .rpc import rpc_call, to_hex, to_int

logger = logging.getLogger(__name__)

BULK_METHOD = "alchemy_getLogs"
STANDARD_METHOD = "eth_getLogs"


def _rpc_params(log_filter: dict, page_key: str | None = None) -> dict:
    params = {
        "address": log_filter["address"],
        "topics": log_filter.get("topics", []),
        "fromBlock": to_hex(log_filter["fromBlock"]),
        "toBlock": to_hex(log_filter["toBlock"]),
    }
    if page_key:
        params["pageKey"] = page_key
    return params


class LogSource:
    def __init__(self, rpc_url: str | None = None, timeout: int = 60,
                 call: Callable[[str, list], object] | None = None):
        if call is None:
            if not rpc_url:
                raise ValueError("LogSource needs either rpc_url or a call function")
            self._session = requests.Session()
            call = partial(self._post, rpc_url, timeout)
        self._call = call
        self.call_count = 0

    def _post(self, rpc_url: str, timeout: int, method: str, params: list):
        return rpc_call(rpc_url, method, params, timeout=timeout, session=self._session)

    def _request(self, method: str, params: list):
        self.call_count += 1
        return self._call(method, params)

    # ----------------------
    # Logs
    # ----------------------

    def _get_logs_paginated(self, log_filter: dict) -> list[dict]:
        logs: list[dict] = []
        page_key = None
        while True:
            resp = self._request(BULK_METHOD, [_rpc_params(log_filter, page_key)])
            if isinstance(resp, list):
                logs.extend(resp)
                return logs
            logs.extend((resp or {}).get("logs") or [])
            page_key = (resp or {}).get("pageKey")
            if not page_key:
                return logs
            logger.debug("Following pageKey for [%s - %s] (%d logs so far)",
                         log_filter["fromBlock"], log_filter["toBlock"], len(logs))

    def _get_logs_sync(self, log_filter: dict) -> list[dict]:
        try:
            return self._get_logs_paginated(log_filter)
        except Exception as e:
            logger.info("%s failed for [%s - %s] (%s), falling back to %s",
                        BULK_METHOD, log_filter["fromBlock"], log_filter["toBlock"], e, STANDARD_METHOD)
        return self._request(STANDARD_METHOD, [_rpc_params(log_filter)]) or []

    async def get_logs(self, log_filter: dict) -> list[dict]:
        return await asyncio.to_thread(self._get_logs_sync, log_filter)

    # ----------------------
    # Blocks
    # ----------------------

    async def get_block_number(self) -> int:
        result = await asyncio.to_thread(self._request, "eth_blockNumber", [])
        return to_int(result)

    async def get_block_timestamp(self, block_number: int) -> int:
        block = await asyncio.to_thread(self._request, "eth_getBlockByNumber", [to_hex(block_number), False])
        if not block or block.get("timestamp") is None:
            raise LookupError(f"Block {block_number} not found or has no timestamp")
        return to_int(block["timestamp"])
