from __future__ import annotations

from conftest import make_context, make_position, make_snapshot

from ai_futures.market.sources import SOURCE_OI_TOP, SOURCE_POOL
from ai_futures.prompt.builder import PromptBuilder, source_tag
from ai_futures.types import CandidateCoin, OITopData, PerformanceSummary, TradeOutcome


def test_losing_account_gets_defensive_posture() -> None:
    ctx = make_context(
        positions=[make_position("SOLUSDT", entry=180.0, mark=185.0)],
        market_data={"SOLUSDT": make_snapshot("SOLUSDT", 185.0)},
        performance=PerformanceSummary(sharpe_ratio=-0.8),
    )
    system, user = PromptBuilder().build(ctx)

    assert "Hold at most **3 positions**" in system
    assert "< -0.5: losing money, strategy must change" in system
    assert "1. SOLUSDT LONG | entry 180.0000 -> mark 185.0000" in user
    assert "**Sharpe ratio**: -0.80 (losing money, strategy must change)" in user
    assert "at most 1 position" in user
    assert "confidence >= 95" in user
    assert "No completed trades yet" in user


def test_empty_account_says_no_positions() -> None:
    _, user = PromptBuilder().build(make_context())
    assert "none (no open positions)" in user
    assert "## Candidate coins (0)" in user
    assert "No performance history yet" in user


def test_missing_btc_data_is_stated() -> None:
    _, user = PromptBuilder().build(make_context())
    assert "BTC market data unavailable this cycle." in user

    with_btc = make_context(market_data={"BTCUSDT": make_snapshot("BTCUSDT", 95_000.0)})
    _, user = PromptBuilder().build(with_btc)
    assert "BTC market data unavailable" not in user


def test_candidates_show_provenance_and_oi_top() -> None:
    ctx = make_context(
        candidate_coins=[
            CandidateCoin("DOGEUSDT", [SOURCE_POOL, SOURCE_OI_TOP]),
            CandidateCoin("XRPUSDT", [SOURCE_POOL]),
            CandidateCoin("PEPEUSDT", [SOURCE_OI_TOP]),
        ],
        market_data={
            "DOGEUSDT": make_snapshot("DOGEUSDT", 0.4),
            "XRPUSDT": make_snapshot("XRPUSDT", 2.5),
        },
        oi_top_data={
            "DOGEUSDT": OITopData(rank=1, oi_delta_percent=12.5, oi_delta_value=3e6, price_delta_percent=2.1),
        },
    )
    _, user = PromptBuilder().build(ctx)

    assert "### #1 DOGEUSDT (dual-signal: pool + OI-top growth)" in user
    assert "OI-top rank #1: open interest 1h +12.50%" in user
    assert "### #2 XRPUSDT (pool)" in user
    # No market data this cycle, so not offered to the model.
    assert "PEPEUSDT" not in user


def test_source_tag_labels() -> None:
    assert source_tag(CandidateCoin("A", [SOURCE_OI_TOP])) == "(OI-top growth)"
    assert source_tag(CandidateCoin("A", [SOURCE_POOL, SOURCE_POOL])) == "(pool)"
    assert source_tag(CandidateCoin("A", [])) == ""


def test_trade_history_is_summarized() -> None:
    perf = PerformanceSummary(
        sharpe_ratio=1.2,
        total_trades=4,
        winning_trades=3,
        losing_trades=1,
        win_rate=75.0,
        avg_win=4.0,
        avg_loss=-2.0,
        profit_factor=6.0,
        recent_trades=[TradeOutcome("ETHUSDT", "short", 3_500.0, 3_400.0, 50.0, 14.3)],
    )
    _, user = PromptBuilder().build(make_context(performance=perf))
    assert "- Trades: 4 (wins 3 | losses 1)" in user
    assert "- Profit factor: 6.00:1" in user
    assert "1. ETHUSDT SHORT: 3500.0000 -> 3400.0000 = +14.30% ✓" in user
    assert "overconfident" in user


def test_prompts_are_deterministic() -> None:
    ctx = make_context(
        positions=[make_position()],
        market_data={"SOLUSDT": make_snapshot("SOLUSDT", 185.0), "BTCUSDT": make_snapshot("BTCUSDT", 95_000.0)},
        performance=PerformanceSummary(sharpe_ratio=0.3),
    )
    builder = PromptBuilder()
    assert builder.build(ctx) == builder.build(ctx)
