"""DuckDB store tests - snapshot import and the store-backed source."""

import asyncio
import tempfile
from pathlib import Path

import duckdb
import pytest

from factories import ACCOUNT, SELL, complete_sets_log, short_sell_log
from predpos.models.logs import LogOptions
from predpos.models.positions import encode_position
from predpos.positions.backends import AsyncBackend, BlockingBackend
from predpos.positions.pipeline import PositionPipeline
from predpos.sources.snapshot import Snapshot
from predpos.storage.db import MEMORY_DB, get_connection, init_schema
from predpos.storage.store import DuckDBSource, import_snapshot, store_stats


@pytest.fixture
def temp_db():
    tmp = tempfile.mkdtemp()
    path = Path(tmp) / "test.duckdb"
    conn = get_connection(path)
    init_schema(conn)
    yield conn
    conn.close()
    path.unlink(missing_ok=True)
    Path(tmp).rmdir()


@pytest.fixture
def snapshot():
    return Snapshot.model_validate(
        {
            "logs": {
                ACCOUNT: {
                    "shortAskBuyCompleteSets": [
                        complete_sets_log("M1", 10, block=5),
                        complete_sets_log("M2", 1, block=50),
                    ],
                    "shortSellBuyCompleteSets": [short_sell_log("M1", 15, outcome=0, block=6)],
                    "sellCompleteSets": [complete_sets_log("M1", 5, SELL, block=7)],
                }
            },
            "positions": {ACCOUNT: {"M1": {"0": "100", "1": "100"}, "M2": {"0": "2", "1": "2"}}},
        }
    )


def test_import_and_stats(temp_db, snapshot):
    counts = import_snapshot(temp_db, snapshot)
    assert counts == {"logs": 4, "positions": 4}
    stats = store_stats(temp_db)
    assert stats["total_logs"] == 4
    assert stats["accounts"] == 1
    assert stats["position_rows"] == 4
    # Re-import replaces the account's logs instead of duplicating them
    import_snapshot(temp_db, snapshot)
    assert store_stats(temp_db)["total_logs"] == 4


def test_duckdb_source_filters(temp_db, snapshot):
    import_snapshot(temp_db, snapshot)
    source = DuckDBSource(temp_db)
    logs = source.fetch_logs("shortAskBuyCompleteSets", ACCOUNT.upper().replace("0X", "0x"), LogOptions())
    assert [e.topics[2] for e in logs] == ["M1", "M2"]
    assert logs[0] == snapshot.logs[ACCOUNT]["shortAskBuyCompleteSets"][0]
    assert len(source.fetch_logs("shortAskBuyCompleteSets", ACCOUNT, LogOptions(market="M2"))) == 1
    assert len(source.fetch_logs("shortAskBuyCompleteSets", ACCOUNT, LogOptions(to_block=10))) == 1
    assert len(source.fetch_logs("shortSellBuyCompleteSets", ACCOUNT, LogOptions(market="M1"))) == 1
    assert source.fetch_position("M1", ACCOUNT) == {"0": "100", "1": "100"}
    assert source.fetch_position("M9", ACCOUNT) is None


def test_pipeline_over_store(temp_db, snapshot):
    import_snapshot(temp_db, snapshot)
    source = DuckDBSource(temp_db)
    adjusted = PositionPipeline(BlockingBackend(source, source)).get_adjusted_positions(ACCOUNT)
    # M1: 10 + 15 - 5
    assert {m: encode_position(p) for m, p in adjusted.items()} == {
        "M1": {"0": "80", "1": "80"},
        "M2": {"0": "1", "1": "1"},
    }
    async_pipeline = PositionPipeline(AsyncBackend.from_blocking(source, source))
    assert asyncio.run(async_pipeline.get_adjusted_positions(ACCOUNT)) == adjusted


def test_reimport_drops_positions_missing_from_new_snapshot(temp_db):
    first = Snapshot.model_validate(
        {"positions": {ACCOUNT: {"M1": {"0": "10", "1": "10", "2": "10"}, "M2": {"0": "1"}}}}
    )
    import_snapshot(temp_db, first)
    second = Snapshot.model_validate({"positions": {ACCOUNT: {"M1": {"0": "10", "1": "10"}}}})
    assert import_snapshot(temp_db, second) == {"logs": 0, "positions": 2}
    source = DuckDBSource(temp_db)
    assert source.fetch_position("M1", ACCOUNT) == {"0": "10", "1": "10"}
    assert source.fetch_position("M2", ACCOUNT) is None
    assert store_stats(temp_db)["position_rows"] == 2


def test_failed_import_leaves_store_unchanged(temp_db, snapshot):
    import_snapshot(temp_db, snapshot)
    # Block number past BIGINT range makes the log insert fail after the deletes ran
    broken = Snapshot.model_validate(
        {
            "logs": {ACCOUNT: {"sellCompleteSets": [complete_sets_log("M1", 1, block=2**70)]}},
            "positions": {ACCOUNT: {"M1": {"0": "1"}}},
        }
    )
    with pytest.raises(duckdb.Error):
        import_snapshot(temp_db, broken)
    stats = store_stats(temp_db)
    assert stats["total_logs"] == 4
    assert stats["position_rows"] == 4
    assert DuckDBSource(temp_db).fetch_position("M1", ACCOUNT) == {"0": "100", "1": "100"}


def test_in_memory_store(snapshot):
    conn = get_connection(MEMORY_DB)
    init_schema(conn)
    init_schema(conn)
    try:
        assert import_snapshot(conn, snapshot) == {"logs": 4, "positions": 4}
        assert DuckDBSource(conn).fetch_position("M2", ACCOUNT) == {"0": "2", "1": "2"}
    finally:
        conn.close()
