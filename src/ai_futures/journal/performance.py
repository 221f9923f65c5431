"""Performance summary read back from the decision journal."""

from __future__ import annotations

from datetime import datetime
from statistics import fmean, pstdev
from typing import Any, Sequence

from ai_futures.journal.store import JournalStore
from ai_futures.types import PerformanceSummary, SymbolPerformance, TradeOutcome

_SNAPSHOT_LIMIT = 100
_ORDER_LIMIT = 500


def compute_sharpe_ratio(equities: Sequence[float]) -> float:
    """Cycle-level Sharpe ratio of an equity series (not annualized).

    Mean over population standard deviation of per-cycle returns. Returns 0.0
    with fewer than two returns or zero volatility.
    """
    returns = [
        current / previous - 1.0
        for previous, current in zip(equities, equities[1:])
        if previous > 0
    ]
    if len(returns) < 2:
        return 0.0
    volatility = pstdev(returns)
    if volatility == 0:
        return 0.0
    return fmean(returns) / volatility


def load_performance(
    journal: JournalStore,
    *,
    snapshot_limit: int = _SNAPSHOT_LIMIT,
    order_limit: int = _ORDER_LIMIT,
) -> PerformanceSummary | None:
    """Build a :class:`PerformanceSummary` from recent journal events.

    Returns None until at least two account snapshots exist.
    """
    snapshots = journal.load_recent(snapshot_limit, event_type="account_snapshot")
    equities = [
        float(row["payload"]["total_equity"])
        for row in snapshots
        if "total_equity" in row.get("payload", {})
    ]
    if len(equities) < 2:
        return None

    orders = journal.load_recent(order_limit, event_type="order")
    trades = [
        trade
        for trade in (_trade_from_order(row.get("payload", {})) for row in orders)
        if trade is not None
    ]
    summary = summarize_trades(trades)
    summary.sharpe_ratio = compute_sharpe_ratio(equities)
    return summary


def summarize_trades(trades: Sequence[TradeOutcome]) -> PerformanceSummary:
    """Closed-trade statistics. ``trades`` is oldest first."""
    summary = PerformanceSummary(total_trades=len(trades))
    if not trades:
        return summary

    wins = [trade for trade in trades if trade.pnl > 0]
    losses = [trade for trade in trades if trade.pnl < 0]
    summary.winning_trades = len(wins)
    summary.losing_trades = len(losses)
    summary.win_rate = len(wins) / len(trades) * 100.0
    summary.avg_win = fmean(trade.pnl_pct for trade in wins) if wins else 0.0
    summary.avg_loss = fmean(trade.pnl_pct for trade in losses) if losses else 0.0
    gross_loss = abs(sum(trade.pnl for trade in losses))
    if gross_loss > 0:
        summary.profit_factor = sum(trade.pnl for trade in wins) / gross_loss
    summary.recent_trades = list(reversed(trades))[:10]

    by_symbol: dict[str, list[TradeOutcome]] = {}
    for trade in trades:
        by_symbol.setdefault(trade.symbol, []).append(trade)
    for symbol, symbol_trades in by_symbol.items():
        symbol_wins = sum(1 for trade in symbol_trades if trade.pnl > 0)
        summary.symbol_stats[symbol] = SymbolPerformance(
            symbol=symbol,
            total_trades=len(symbol_trades),
            winning_trades=symbol_wins,
            losing_trades=sum(1 for trade in symbol_trades if trade.pnl < 0),
            win_rate=symbol_wins / len(symbol_trades) * 100.0,
            total_pnl=sum(trade.pnl for trade in symbol_trades),
            avg_pnl=fmean(trade.pnl_pct for trade in symbol_trades),
        )

    ranked = sorted(summary.symbol_stats.values(), key=lambda stats: stats.avg_pnl)
    summary.best_symbol = ranked[-1].symbol
    if len(ranked) > 1:
        summary.worst_symbol = ranked[0].symbol
    return summary


def _trade_from_order(payload: dict[str, Any]) -> TradeOutcome | None:
    if payload.get("status") != "filled" or "realized_pnl" not in payload:
        return None
    side = payload.get("side")
    if side not in ("long", "short"):
        return None
    return TradeOutcome(
        symbol=str(payload.get("symbol", "")),
        side=side,
        open_price=float(payload.get("entry_price", 0.0)),
        close_price=float(payload.get("price", 0.0)),
        pnl=float(payload["realized_pnl"]),
        pnl_pct=float(payload.get("pnl_pct", 0.0)),
        duration=_duration(payload.get("opened_at"), payload.get("timestamp")),
    )


def _duration(opened_at: Any, closed_at: Any) -> str:
    if not isinstance(opened_at, str) or not isinstance(closed_at, str):
        return ""
    try:
        seconds = (datetime.fromisoformat(closed_at) - datetime.fromisoformat(opened_at)).total_seconds()
    except ValueError:
        return ""
    minutes = max(0, int(seconds // 60))
    if minutes < 60:
        return f"{minutes}m"
    return f"{minutes // 60}h{minutes % 60:02d}m"
