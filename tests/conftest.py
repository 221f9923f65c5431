from __future__ import annotations

from ai_futures.types import AccountInfo, MarketSnapshot, OpenInterest, PositionInfo, TradingContext


def make_snapshot(
    symbol: str,
    price: float,
    *,
    open_interest: float | None = 1_000_000.0,
    **overrides: object,
) -> MarketSnapshot:
    fields: dict[str, object] = {
        "symbol": symbol,
        "current_price": price,
        "price_change_1h": 0.5,
        "price_change_4h": 1.2,
        "current_ema20": price * 0.99,
        "current_macd": 0.8,
        "current_rsi7": 55.0,
        "funding_rate": 0.0001,
        "open_interest": (
            OpenInterest(latest=open_interest, average=open_interest * 0.9)
            if open_interest is not None
            else None
        ),
    }
    fields.update(overrides)
    return MarketSnapshot(**fields)  # type: ignore[arg-type]


def make_position(
    symbol: str = "SOLUSDT",
    *,
    side: str = "long",
    entry: float = 180.0,
    mark: float = 185.0,
    quantity: float = 5.0,
    leverage: int = 10,
) -> PositionInfo:
    margin = quantity * entry / leverage
    pnl = (mark - entry) * quantity * (1 if side == "long" else -1)
    return PositionInfo(
        symbol=symbol,
        side=side,  # type: ignore[arg-type]
        entry_price=entry,
        mark_price=mark,
        quantity=quantity,
        leverage=leverage,
        unrealized_pnl=pnl,
        unrealized_pnl_pct=pnl / margin * 100,
        liquidation_price=entry * (1 - 1 / leverage),
        margin_used=margin,
    )


def make_context(**overrides: object) -> TradingContext:
    fields: dict[str, object] = {
        "current_time": "2025-01-01 00:00:00 UTC",
        "call_count": 7,
        "runtime_minutes": 21,
        "account": AccountInfo(total_equity=1_000.0, available_balance=900.0, position_count=0),
    }
    fields.update(overrides)
    return TradingContext(**fields)  # type: ignore[arg-type]
