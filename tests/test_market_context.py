from __future__ import annotations

import httpx
import pytest
from conftest import make_context, make_position, make_snapshot

from ai_futures.market.context import MarketContextAssembler
from ai_futures.market.oi_top import OITopClient, OITopError, parse_oi_top_payload
from ai_futures.market.sources import (
    SOURCE_OI_TOP,
    SOURCE_POOL,
    SnapshotNotFoundError,
    StaticCandidateScreener,
)
from ai_futures.types import CandidateCoin, MarketSnapshot, OITopData


class FakeDataSource:
    def __init__(self, snapshots: dict[str, MarketSnapshot]) -> None:
        self.snapshots = snapshots
        self.requested: list[str] = []

    def get_market_snapshot(self, symbol: str) -> MarketSnapshot:
        self.requested.append(symbol)
        if symbol not in self.snapshots:
            raise SnapshotNotFoundError(symbol)
        return self.snapshots[symbol]


class FakeOISource:
    def __init__(self, ranking: dict[str, OITopData] | None = None, error: Exception | None = None) -> None:
        self.ranking = ranking or {}
        self.error = error

    def fetch_oi_top(self) -> dict[str, OITopData]:
        if self.error is not None:
            raise self.error
        return self.ranking


def _rank(rank: int) -> OITopData:
    return OITopData(rank=rank, oi_delta_percent=5.0, oi_delta_value=1e6, price_delta_percent=1.0)


def test_held_position_kept_below_liquidity_threshold() -> None:
    # 10_000 contracts * 100 = 1M USD of open interest, far below 15M.
    source = FakeDataSource({"THINUSDT": make_snapshot("THINUSDT", 100.0, open_interest=10_000.0)})
    ctx = make_context(positions=[make_position("THINUSDT")])

    MarketContextAssembler(source).assemble(ctx)

    assert "THINUSDT" in ctx.market_data


def test_illiquid_candidate_is_dropped_and_unknown_oi_kept() -> None:
    source = FakeDataSource(
        {
            "THINUSDT": make_snapshot("THINUSDT", 100.0, open_interest=10_000.0),
            "DEEPUSDT": make_snapshot("DEEPUSDT", 100.0, open_interest=1_000_000.0),
            "NOOIUSDT": make_snapshot("NOOIUSDT", 100.0, open_interest=None),
        }
    )
    ctx = make_context(
        candidate_coins=[CandidateCoin(symbol, [SOURCE_POOL]) for symbol in ("THINUSDT", "DEEPUSDT", "NOOIUSDT")]
    )

    MarketContextAssembler(source).assemble(ctx)

    assert set(ctx.market_data) == {"DEEPUSDT", "NOOIUSDT"}


def test_threshold_is_configurable() -> None:
    source = FakeDataSource({"THINUSDT": make_snapshot("THINUSDT", 100.0, open_interest=10_000.0)})
    ctx = make_context(candidate_coins=[CandidateCoin("THINUSDT", [SOURCE_POOL])])

    MarketContextAssembler(source, min_open_interest_usd=500_000).assemble(ctx)

    assert "THINUSDT" in ctx.market_data


def test_failed_fetch_skips_symbol_only() -> None:
    source = FakeDataSource({"BTCUSDT": make_snapshot("BTCUSDT", 95_000.0)})
    ctx = make_context(
        positions=[make_position("GONEUSDT")],
        candidate_coins=[CandidateCoin("BTCUSDT", [SOURCE_POOL])],
    )

    MarketContextAssembler(source, max_workers=2).assemble(ctx)

    assert set(ctx.market_data) == {"BTCUSDT"}
    assert sorted(source.requested) == ["BTCUSDT", "GONEUSDT"]


def test_position_and_candidate_overlap_fetched_once() -> None:
    source = FakeDataSource({"SOLUSDT": make_snapshot("SOLUSDT", 185.0)})
    ctx = make_context(
        positions=[make_position("SOLUSDT")],
        candidate_coins=[CandidateCoin("SOLUSDT", [SOURCE_POOL])],
    )

    MarketContextAssembler(source).assemble(ctx)

    assert source.requested == ["SOLUSDT"]


def test_oi_top_failure_is_best_effort() -> None:
    source = FakeDataSource({"BTCUSDT": make_snapshot("BTCUSDT", 95_000.0)})
    ctx = make_context(candidate_coins=[CandidateCoin("BTCUSDT", [SOURCE_POOL])])

    MarketContextAssembler(source, FakeOISource(error=OITopError("down"))).assemble(ctx)

    assert ctx.oi_top_data == {}
    assert "BTCUSDT" in ctx.market_data


def test_oi_top_data_is_attached() -> None:
    ctx = make_context()
    MarketContextAssembler(FakeDataSource({}), FakeOISource({"DOGEUSDT": _rank(1)})).assemble(ctx)
    assert ctx.oi_top_data["DOGEUSDT"].rank == 1


def test_screener_merges_pool_and_oi_top() -> None:
    oi = FakeOISource({"PEPEUSDT": _rank(2), "DOGEUSDT": _rank(1)})
    coins = StaticCandidateScreener(["btcusdt", "DOGEUSDT"], oi).screen()

    assert [coin.symbol for coin in coins] == ["BTCUSDT", "DOGEUSDT", "PEPEUSDT"]
    assert coins[1].sources == [SOURCE_POOL, SOURCE_OI_TOP]
    assert coins[1].is_dual_signal
    assert coins[2].sources == [SOURCE_OI_TOP]


def test_screener_survives_oi_failure_and_caps_size() -> None:
    screener = StaticCandidateScreener(
        ["AUSDT", "BUSDT", "CUSDT"], FakeOISource(error=RuntimeError("boom")), max_candidates=2
    )
    assert [coin.symbol for coin in screener.screen()] == ["AUSDT", "BUSDT"]


def test_parse_oi_top_payload_shapes() -> None:
    wrapped = {
        "data": {
            "positions": [
                {"symbol": "dogeusdt", "rank": 3, "oi_delta_percent": "12.5", "price_delta_percent": 1.5},
                {"symbol": ""},
            ]
        }
    }
    ranking = parse_oi_top_payload(wrapped)
    assert list(ranking) == ["DOGEUSDT"]
    assert ranking["DOGEUSDT"].rank == 3
    assert ranking["DOGEUSDT"].oi_delta_percent == pytest.approx(12.5)

    bare = parse_oi_top_payload([{"symbol": "XRPUSDT"}, {"symbol": "ADAUSDT"}])
    assert bare["ADAUSDT"].rank == 2

    with pytest.raises(OITopError):
        parse_oi_top_payload({"data": "nope"})


def test_oi_top_client_caches_responses() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json=[{"symbol": "DOGEUSDT", "rank": 1}])

    client = OITopClient("https://oi.example/top", transport=httpx.MockTransport(handler))
    assert "DOGEUSDT" in client.fetch_oi_top()
    assert "DOGEUSDT" in client.fetch_oi_top()
    assert calls == 1


def test_oi_top_client_wraps_http_errors() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(503))
    with pytest.raises(OITopError):
        OITopClient("https://oi.example/top", transport=transport).fetch_oi_top()
