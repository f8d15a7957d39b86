"""Ethereum JSON-RPC log source - eth_getLogs per log bucket over httpx."""

from __future__ import annotations

import itertools
from typing import Any, Self

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from predpos.codec.fixedpoint import WORD_HEX_DIGITS, strip_hex_prefix
from predpos.config.settings import Settings
from predpos.errors import ConfigError, LogFetchError
from predpos.models.logs import BUCKETS, MARKET_TOPIC_INDEX, BlockTag, EventLog, LogOptions

log = structlog.get_logger(__name__)

DEFAULT_RPC_URL = "http://127.0.0.1:8545"


class LogFilter(BaseModel):
    """Where one bucket's logs live: emitting contract, event topic, indexed argument positions."""

    signature: str = Field(..., pattern="^0x[0-9a-fA-F]{64}$")
    address: str | None = None
    account_topic: int = 1
    market_topic: int = 2


def pad_topic(value: str) -> str:
    """Left-pad an address or ID to a 32-byte topic."""
    return "0x" + strip_hex_prefix(value).lower().rjust(WORD_HEX_DIGITS, "0")


def _block_param(tag: BlockTag | None) -> str | None:
    if tag is None or isinstance(tag, str):
        return tag
    return hex(tag)


def build_filter(log_filter: LogFilter, account: str, options: LogOptions) -> dict[str, Any]:
    """eth_getLogs filter object for one bucket."""
    topics: list[str | None] = [None] * (max(log_filter.account_topic, log_filter.market_topic) + 1)
    topics[0] = log_filter.signature
    topics[log_filter.account_topic] = pad_topic(account)
    if options.market:
        topics[log_filter.market_topic] = pad_topic(options.market)
    params: dict[str, Any] = {"topics": topics}
    if log_filter.address:
        params["address"] = log_filter.address
    from_block = _block_param(options.from_block)
    to_block = _block_param(options.to_block)
    if from_block is not None:
        params["fromBlock"] = from_block
    if to_block is not None:
        params["toBlock"] = to_block
    return params


def parse_filters(raw: dict[str, Any]) -> dict[str, LogFilter]:
    """Validate [logs.<bucket>] config tables. Every bucket needs a filter."""
    filters = {}
    for bucket in BUCKETS:
        table = dict(raw.get(bucket) or {})
        table.setdefault("market_topic", MARKET_TOPIC_INDEX[bucket])
        try:
            filters[bucket] = LogFilter.model_validate(table)
        except ValidationError as e:
            raise ConfigError(f"invalid [logs.{bucket}] config: {e}") from e
    return filters


def parse_response(bucket: str, payload: Any) -> list[EventLog]:
    if not isinstance(payload, dict):
        raise LogFetchError(f"unexpected eth_getLogs response for {bucket}", bucket)
    if payload.get("error"):
        error = payload["error"]
        message = error.get("message") if isinstance(error, dict) else error
        raise LogFetchError(f"eth_getLogs failed for {bucket}: {message}", bucket)
    result = payload.get("result")
    if not isinstance(result, list):
        raise LogFetchError(f"eth_getLogs returned no result for {bucket}", bucket)
    return [EventLog.model_validate(entry) for entry in result if entry is not None]


class _RpcLogRequests:
    """Shared request building for the blocking and async RPC sources."""

    def __init__(
        self,
        url: str,
        filters: dict[str, LogFilter],
        timeout: float = 30.0,
        transport: Any = None,
    ) -> None:
        self.url = url
        self.filters = filters
        self.timeout = timeout
        self.transport = transport
        self._ids = itertools.count(1)

    @classmethod
    def from_settings(cls, settings: Settings, transport: Any = None) -> Self:
        return cls(
            settings.rpc_url or DEFAULT_RPC_URL,
            parse_filters(settings.log_filters),
            timeout=settings.rpc_timeout_sec,
            transport=transport,
        )

    def _http_error(self, bucket: str, exc: httpx.HTTPError) -> LogFetchError:
        return LogFetchError(f"eth_getLogs request for {bucket} to {self.url} failed: {exc}", bucket)

    def request_body(self, bucket: str, account: str, options: LogOptions) -> dict[str, Any]:
        log_filter = self.filters.get(bucket)
        if log_filter is None:
            raise ConfigError(f"no log filter configured for {bucket}")
        return {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": "eth_getLogs",
            "params": [build_filter(log_filter, account, options)],
        }


class RpcLogSource(_RpcLogRequests):
    """Blocking LogSource backed by eth_getLogs."""

    def fetch_logs(self, bucket: str, account: str, options: LogOptions) -> list[EventLog]:
        body = self.request_body(bucket, account, options)
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.post(self.url, json=body)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise self._http_error(bucket, e) from e
        logs = parse_response(bucket, resp.json())
        log.debug("logs_fetched", bucket=bucket, account=account, count=len(logs))
        return logs


class AsyncRpcLogSource(_RpcLogRequests):
    """Async LogSource backed by eth_getLogs."""

    async def fetch_logs(self, bucket: str, account: str, options: LogOptions) -> list[EventLog]:
        body = self.request_body(bucket, account, options)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(self.url, json=body)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise self._http_error(bucket, e) from e
        logs = parse_response(bucket, resp.json())
        log.debug("logs_fetched", bucket=bucket, account=account, count=len(logs))
        return logs
