"""Shared domain types for the decision cycle pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

PositionSide = Literal["long", "short"]


@dataclass(slots=True, frozen=True)
class OpenInterest:
    """Open interest in contracts: latest value vs recent average."""

    latest: float
    average: float


@dataclass(slots=True, frozen=True)
class MarketSnapshot:
    """Per-symbol technical state, fetched once per cycle."""

    symbol: str
    current_price: float
    price_change_1h: float
    price_change_4h: float
    current_ema20: float
    current_macd: float
    current_rsi7: float
    funding_rate: float = 0.0
    open_interest: OpenInterest | None = None
    ema20_4h: float | None = None
    ema50_4h: float | None = None
    atr3_4h: float | None = None
    atr14_4h: float | None = None
    current_volume_4h: float | None = None
    average_volume_4h: float | None = None

    @property
    def open_interest_value_usd(self) -> float | None:
        """Latest open interest valued at the current price."""
        if self.open_interest is None or self.current_price <= 0:
            return None
        return self.open_interest.latest * self.current_price


@dataclass(slots=True)
class CandidateCoin:
    """A symbol nominated by one or more screeners."""

    symbol: str
    sources: list[str] = field(default_factory=list)

    @property
    def is_dual_signal(self) -> bool:
        return len(set(self.sources)) > 1


@dataclass(slots=True, frozen=True)
class OITopData:
    """Open-interest momentum record for one symbol."""

    rank: int
    oi_delta_percent: float
    oi_delta_value: float
    price_delta_percent: float
    net_long: float = 0.0
    net_short: float = 0.0


@dataclass(slots=True)
class PositionInfo:
    """An open exchange position as reported by the execution collaborator."""

    symbol: str
    side: PositionSide
    entry_price: float
    mark_price: float
    quantity: float
    leverage: int
    unrealized_pnl: float
    unrealized_pnl_pct: float
    liquidation_price: float
    margin_used: float


@dataclass(slots=True)
class AccountInfo:
    """Account state snapshot for one cycle."""

    total_equity: float
    available_balance: float
    total_pnl: float = 0.0
    total_pnl_pct: float = 0.0
    margin_used: float = 0.0
    margin_used_pct: float = 0.0
    position_count: int = 0


@dataclass(slots=True)
class TradeOutcome:
    """One closed trade."""

    symbol: str
    side: PositionSide
    open_price: float
    close_price: float
    pnl: float
    pnl_pct: float
    duration: str = ""


@dataclass(slots=True)
class SymbolPerformance:
    """Per-symbol closed-trade statistics."""

    symbol: str
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    total_pnl: float
    avg_pnl: float


@dataclass(slots=True)
class PerformanceSummary:
    """Historical performance computed by the analytics collaborator."""

    sharpe_ratio: float = 0.0
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    profit_factor: float = 0.0
    recent_trades: list[TradeOutcome] = field(default_factory=list)
    symbol_stats: dict[str, SymbolPerformance] = field(default_factory=dict)
    best_symbol: str = ""
    worst_symbol: str = ""


@dataclass(slots=True)
class TradingContext:
    """Everything one cycle knows; built fresh every cycle."""

    current_time: str
    call_count: int
    runtime_minutes: int
    account: AccountInfo
    positions: list[PositionInfo] = field(default_factory=list)
    candidate_coins: list[CandidateCoin] = field(default_factory=list)
    market_data: dict[str, MarketSnapshot] = field(default_factory=dict)
    oi_top_data: dict[str, OITopData] = field(default_factory=dict)
    performance: PerformanceSummary | None = None

    @property
    def position_symbols(self) -> set[str]:
        return {position.symbol for position in self.positions}


@dataclass(slots=True)
class CycleResult:
    """Outcome of one pipeline cycle run."""

    status: str
    decisions: list[dict[str, object]] = field(default_factory=list)
    orders: list[dict[str, object]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0
    reasoning_trace: str = ""
    error: str | None = None
