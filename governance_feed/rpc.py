"""
Thin JSON-RPC transport over requests.

Errors are surfaced as RpcError (JSON-RPC level, e.g. -32005 "query returned
more than 10000 results") or HttpError (transport level, e.g. 429 / 413) so the
range collector can treat them uniformly as fetch failures.
"""
from __future__ import annotations

import logging

import requests

logger = logging.getLogger(__name__)


class RpcError(RuntimeError):
    def __init__(self, code: int, message: str, data: dict | None = None):
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data or {}


class HttpError(RuntimeError):
    """Raised when an HTTP error occurs (e.g., 401 Unauthorized, 429 Rate Limit)"""
    def __init__(self, status_code: int, message: str, url: str):
        super().__init__(f"HTTP {status_code} error for {url}: {message}")
        self.status_code = status_code
        self.message = message
        self.url = url


def rpc_call(rpc_url: str, method: str, params: list, timeout: int = 60,
             session: requests.Session | None = None):
    """POST one JSON-RPC request and return its `result`."""
    poster = session or requests
    try:
        resp = poster.post(
            rpc_url,
            json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
            timeout=timeout,
        )
        resp.raise_for_status()
    except requests.exceptions.HTTPError as e:
        raise HttpError(e.response.status_code, str(e), rpc_url) from e

    j = resp.json()
    if "error" in j and j["error"]:
        err = j["error"]
        raise RpcError(int(err.get("code", -1)), str(err.get("message", "")), err.get("data"))
    return j.get("result")


def to_hex(i: int) -> str:
    return hex(i)


def to_int(h) -> int:
    if isinstance(h, int):
        return h
    return int(h, 16)
