"""Snapshot and JSON-RPC log source tests."""

import asyncio
import json

import httpx
import pytest

from factories import ACCOUNT, complete_sets_log, short_sell_log
from predpos.config.settings import Settings
from predpos.errors import ConfigError, LogFetchError
from predpos.models.logs import LogOptions
from predpos.models.positions import encode_position
from predpos.positions.backends import BlockingBackend
from predpos.positions.pipeline import PositionPipeline
from predpos.sources.rpc import AsyncRpcLogSource, RpcLogSource, build_filter, pad_topic, parse_filters
from predpos.sources.snapshot import SnapshotSource

SIG = "0x" + "ab" * 32
MARKET = "0x" + "0" * 62 + "f1"


def snapshot_dict():
    return {
        "logs": {
            ACCOUNT.upper().replace("0X", "0x"): {
                "shortAskBuyCompleteSets": [
                    complete_sets_log("M1", 2, block=10).model_dump(by_alias=True),
                    complete_sets_log("M2", 3, block=20).model_dump(by_alias=True),
                    None,
                ],
                "shortSellBuyCompleteSets": [short_sell_log("M1", 1, outcome=1, block=30).model_dump(by_alias=True)],
            }
        },
        "positions": {ACCOUNT: {"M1": {"0": "10", "1": "10"}, "M2": {"0": "3"}}},
    }


def test_snapshot_source_filters_market_and_blocks():
    source = SnapshotSource.from_dict(snapshot_dict())
    all_logs = source.fetch_logs("shortAskBuyCompleteSets", ACCOUNT, LogOptions())
    assert [e.topics[2] for e in all_logs] == ["M1", "M2"]
    only_m1 = source.fetch_logs("shortAskBuyCompleteSets", ACCOUNT, LogOptions(market="M1"))
    assert [e.topics[2] for e in only_m1] == ["M1"]
    short_m1 = source.fetch_logs("shortSellBuyCompleteSets", ACCOUNT, LogOptions(market="M1"))
    assert len(short_m1) == 1
    late = source.fetch_logs("shortAskBuyCompleteSets", ACCOUNT, LogOptions(from_block=15, to_block="latest"))
    assert [e.topics[2] for e in late] == ["M2"]
    assert source.fetch_logs("sellCompleteSets", ACCOUNT, LogOptions()) == []
    assert source.fetch_position("M3", ACCOUNT) is None


def test_snapshot_file_pipeline(tmp_path):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(snapshot_dict()))
    source = SnapshotSource.from_file(path)
    adjusted = PositionPipeline(BlockingBackend(source, source)).get_adjusted_positions(ACCOUNT)
    assert {m: encode_position(p) for m, p in adjusted.items()} == {
        "M1": {"0": "7", "1": "7"},
        "M2": {"0": "0"},
    }


def _filters():
    return parse_filters(
        {
            "shortAskBuyCompleteSets": {"signature": SIG},
            "shortSellBuyCompleteSets": {"signature": SIG, "account_topic": 3},
            "sellCompleteSets": {"signature": SIG, "address": "0xc0ffee"},
        }
    )


def test_build_filter_places_indexed_topics():
    filters = _filters()
    params = build_filter(
        filters["shortSellBuyCompleteSets"], ACCOUNT, LogOptions(market=MARKET, from_block=16)
    )
    assert params["topics"] == [SIG, pad_topic(MARKET), None, pad_topic(ACCOUNT)]
    assert params["fromBlock"] == "0x10"
    assert "toBlock" not in params
    sell = build_filter(filters["sellCompleteSets"], ACCOUNT, LogOptions(to_block="latest"))
    assert sell["topics"] == [SIG, pad_topic(ACCOUNT), None]
    assert sell["address"] == "0xc0ffee"
    assert sell["toBlock"] == "latest"


def test_parse_filters_requires_signature():
    with pytest.raises(ConfigError):
        parse_filters({"shortAskBuyCompleteSets": {"signature": ""}})


def test_rpc_log_source_posts_eth_get_logs():
    requests = []
    entry = complete_sets_log(MARKET, 4).model_dump(by_alias=True, exclude_none=True)

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append(body)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": [entry]})

    source = RpcLogSource("http://node", _filters(), transport=httpx.MockTransport(handler))
    logs = source.fetch_logs("shortAskBuyCompleteSets", ACCOUNT, LogOptions())
    assert logs[0].topics[2] == MARKET
    assert requests[0]["method"] == "eth_getLogs"
    assert requests[0]["params"][0]["topics"][1] == pad_topic(ACCOUNT)


def test_rpc_error_becomes_log_fetch_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "too many logs"}})

    source = RpcLogSource("http://node", _filters(), transport=httpx.MockTransport(handler))
    with pytest.raises(LogFetchError, match="too many logs"):
        source.fetch_logs("sellCompleteSets", ACCOUNT, LogOptions())


def test_http_error_surfaces_through_backend_as_log_fetch_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(502))
    source = RpcLogSource("http://node", _filters(), transport=transport)
    backend = BlockingBackend(source, SnapshotSource.from_dict({}))
    with pytest.raises(LogFetchError) as exc_info:
        PositionPipeline(backend).get_adjusted_positions(ACCOUNT)
    assert exc_info.value.bucket == "shortAskBuyCompleteSets"


def test_http_status_error_is_log_fetch_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(502))
    source = RpcLogSource("http://node", _filters(), transport=transport)
    with pytest.raises(LogFetchError, match="502") as exc_info:
        source.fetch_logs("shortAskBuyCompleteSets", ACCOUNT, LogOptions())
    assert exc_info.value.bucket == "shortAskBuyCompleteSets"
    assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)


def test_async_connect_error_is_log_fetch_error():
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    source = AsyncRpcLogSource("http://node", _filters(), transport=httpx.MockTransport(handler))
    with pytest.raises(LogFetchError, match="connection refused") as exc_info:
        asyncio.run(source.fetch_logs("sellCompleteSets", ACCOUNT, LogOptions()))
    assert exc_info.value.bucket == "sellCompleteSets"


def test_async_rpc_log_source():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": []})

    source = AsyncRpcLogSource("http://node", _filters(), transport=httpx.MockTransport(handler))
    assert asyncio.run(source.fetch_logs("sellCompleteSets", ACCOUNT, LogOptions())) == []


def test_rpc_source_from_settings():
    settings = Settings(
        rpc={"url": "http://node:8545", "timeout_sec": 5},
        logs={bucket: {"signature": SIG} for bucket in ("shortAskBuyCompleteSets", "shortSellBuyCompleteSets", "sellCompleteSets")},
    )
    source = RpcLogSource.from_settings(settings)
    assert source.url == "http://node:8545"
    assert source.timeout == 5.0
    assert source.filters["shortSellBuyCompleteSets"].market_topic == 1
    assert isinstance(AsyncRpcLogSource.from_settings(settings), AsyncRpcLogSource)
