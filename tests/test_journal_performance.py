from __future__ import annotations

from pathlib import Path

import pytest

from ai_futures.journal.performance import compute_sharpe_ratio, load_performance, summarize_trades
from ai_futures.journal.store import JournalStore
from ai_futures.types import TradeOutcome


def _close(symbol: str, pnl: float, pnl_pct: float, side: str = "long") -> dict[str, object]:
    return {
        "action": f"close_{side}",
        "symbol": symbol,
        "side": side,
        "entry_price": 100.0,
        "price": 100.0 + pnl,
        "realized_pnl": pnl,
        "pnl_pct": pnl_pct,
        "opened_at": "2025-01-01T00:00:00+00:00",
        "timestamp": "2025-01-01T01:30:00+00:00",
        "status": "filled",
    }


def test_sharpe_ratio_basics() -> None:
    assert compute_sharpe_ratio([]) == 0.0
    assert compute_sharpe_ratio([100.0, 101.0]) == 0.0
    assert compute_sharpe_ratio([100.0, 100.0, 100.0]) == 0.0
    assert compute_sharpe_ratio([100.0, 102.0, 101.0, 103.0]) > 0
    assert compute_sharpe_ratio([100.0, 98.0, 99.0, 96.0]) < 0


def test_journal_rejects_unknown_events(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="unsupported_event_type"):
        JournalStore(tmp_path).append("heartbeat", {})


def test_load_recent_filters_and_orders(tmp_path: Path) -> None:
    journal = JournalStore(tmp_path)
    for cycle in range(5):
        journal.append("cycle_start", {"cycle": cycle})
        journal.append("cycle_end", {"cycle": cycle})

    rows = journal.load_recent(3, event_type="cycle_start")
    assert [row["payload"]["cycle"] for row in rows] == [2, 3, 4]
    assert journal.load_recent(0) == []


def test_truncated_line_is_skipped(tmp_path: Path) -> None:
    journal = JournalStore(tmp_path)
    journal.append("cycle_start", {"cycle": 1})
    (day_file,) = tmp_path.glob("decisions-*.jsonl")
    with day_file.open("a", encoding="utf-8") as f:
        f.write('{"timestamp": "2025-')

    rows = journal.load_recent(10)
    assert [row["event_type"] for row in rows] == ["cycle_start"]


def test_performance_needs_two_snapshots(tmp_path: Path) -> None:
    journal = JournalStore(tmp_path)
    assert load_performance(journal) is None
    journal.append("account_snapshot", {"total_equity": 1_000.0})
    assert load_performance(journal) is None


def test_performance_from_journal(tmp_path: Path) -> None:
    journal = JournalStore(tmp_path)
    for equity in (1_000.0, 1_020.0, 1_010.0, 1_050.0):
        journal.append("account_snapshot", {"total_equity": equity})
    journal.append("order", _close("SOLUSDT", 20.0, 10.0))
    journal.append("order", _close("ETHUSDT", -10.0, -5.0, side="short"))
    journal.append("order", {"action": "open_long", "symbol": "BTCUSDT", "status": "filled"})
    journal.append("order", {**_close("BTCUSDT", 5.0, 1.0), "status": "dry_run"})

    perf = load_performance(journal)

    assert perf is not None
    assert perf.sharpe_ratio == pytest.approx(compute_sharpe_ratio([1_000.0, 1_020.0, 1_010.0, 1_050.0]))
    assert perf.total_trades == 2
    assert perf.win_rate == pytest.approx(50.0)
    assert perf.profit_factor == pytest.approx(2.0)
    assert perf.recent_trades[0].symbol == "ETHUSDT"
    assert perf.recent_trades[0].duration == "1h30m"
    assert perf.best_symbol == "SOLUSDT"
    assert perf.worst_symbol == "ETHUSDT"


def test_summarize_trades_single_symbol() -> None:
    trades = [
        TradeOutcome("SOLUSDT", "long", 100.0, 110.0, 10.0, 20.0),
        TradeOutcome("SOLUSDT", "long", 110.0, 105.0, -5.0, -10.0),
    ]
    summary = summarize_trades(trades)
    assert summary.avg_win == pytest.approx(20.0)
    assert summary.avg_loss == pytest.approx(-10.0)
    assert summary.symbol_stats["SOLUSDT"].total_pnl == pytest.approx(5.0)
    assert summary.best_symbol == "SOLUSDT"
    assert summary.worst_symbol == ""
