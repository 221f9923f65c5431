"""Paper futures account with persistent local state."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from ai_futures.types import AccountInfo, PositionInfo, PositionSide


@dataclass(slots=True)
class _PaperPosition:
    symbol: str
    side: PositionSide
    quantity: float
    entry_price: float
    leverage: int
    margin: float
    opened_at: str
    mark_price: float
    stop_loss: float | None = None
    take_profit: float | None = None


@dataclass(slots=True)
class _PaperState:
    balance: float
    initial_equity: float
    positions: dict[str, _PaperPosition] = field(default_factory=dict)
    leverage: dict[str, int] = field(default_factory=dict)


class PaperTrader:
    """Simulated multi-position futures account.

    One position per symbol and side. Margin is ``qty * entry / leverage``;
    P&L percentages are relative to margin. The liquidation price is an
    estimate that ignores maintenance margin.
    """

    def __init__(
        self,
        journal_dir: Path,
        *,
        slippage_bps: float = 2.0,
        initial_equity: float = 10_000.0,
        price_source: Callable[[str], float] | None = None,
    ) -> None:
        self._slippage_bps = slippage_bps
        self._price_source = price_source
        self._state_file = journal_dir / "paper_state.json"
        self._state = self._load_state(initial_equity)

    def get_market_price(self, symbol: str) -> float:
        if self._price_source is None:
            raise RuntimeError("no_price_source")
        return float(self._price_source(symbol))

    def get_account(self) -> AccountInfo:
        positions = list(self._state.positions.values())
        unrealized = sum(_unrealized_pnl(position) for position in positions)
        margin_used = sum(position.margin for position in positions)
        equity = self._state.balance + unrealized
        total_pnl = equity - self._state.initial_equity
        return AccountInfo(
            total_equity=equity,
            available_balance=self._state.balance - margin_used,
            total_pnl=total_pnl,
            total_pnl_pct=total_pnl / self._state.initial_equity * 100 if self._state.initial_equity else 0.0,
            margin_used=margin_used,
            margin_used_pct=margin_used / equity * 100 if equity > 0 else 0.0,
            position_count=len(positions),
        )

    def get_positions(self) -> list[PositionInfo]:
        return [_position_info(position) for position in self._state.positions.values()]

    def set_leverage(self, symbol: str, leverage: int) -> None:
        if leverage < 1:
            raise ValueError(f"invalid_leverage: {leverage}")
        self._state.leverage[symbol] = leverage
        self._persist()

    def open_long(self, symbol: str, quantity: float, leverage: int) -> dict[str, Any]:
        return self._open(symbol, "long", quantity, leverage)

    def open_short(self, symbol: str, quantity: float, leverage: int) -> dict[str, Any]:
        return self._open(symbol, "short", quantity, leverage)

    def close_long(self, symbol: str, quantity: float = 0.0) -> dict[str, Any]:
        return self._close(symbol, "long", reason="ai_decision", quantity=quantity)

    def close_short(self, symbol: str, quantity: float = 0.0) -> dict[str, Any]:
        return self._close(symbol, "short", reason="ai_decision", quantity=quantity)

    def set_stop_loss(self, symbol: str, side: PositionSide, quantity: float, price: float) -> None:
        self._require_position(symbol, side).stop_loss = float(price)
        self._persist()

    def set_take_profit(self, symbol: str, side: PositionSide, quantity: float, price: float) -> None:
        self._require_position(symbol, side).take_profit = float(price)
        self._persist()

    def mark_to_market(self, prices: dict[str, float]) -> None:
        """Update mark prices for held symbols present in ``prices``."""
        for position in self._state.positions.values():
            price = prices.get(position.symbol)
            if price is not None and price > 0:
                position.mark_price = float(price)
        self._persist()

    def check_protective_orders(self, prices: dict[str, float], *, dry_run: bool = False) -> list[dict[str, Any]]:
        """Close positions whose stop-loss, take-profit or liquidation level was crossed.

        In dry-run mode the would-be closes are reported and state is untouched.
        """
        orders: list[dict[str, Any]] = []
        for position in list(self._state.positions.values()):
            price = prices.get(position.symbol)
            if price is None:
                continue
            reason = _triggered_reason(position, price)
            if reason is None:
                continue
            if dry_run:
                orders.append(
                    {
                        "action": f"close_{position.side}",
                        "symbol": position.symbol,
                        "side": position.side,
                        "qty": position.quantity,
                        "price": float(price),
                        "reason": reason,
                        "status": "dry_run",
                        "timestamp": datetime.now(timezone.utc).isoformat(),
                    }
                )
                continue
            orders.append(self._close(position.symbol, position.side, reason=reason, exit_price=price))
        return orders

    def _open(self, symbol: str, side: PositionSide, quantity: float, leverage: int) -> dict[str, Any]:
        if quantity <= 0:
            raise ValueError("qty_must_be_positive")
        if leverage < 1:
            raise ValueError(f"invalid_leverage: {leverage}")
        key = _key(symbol, side)
        if key in self._state.positions:
            raise RuntimeError(f"position_already_open: {key}")

        slip = self._slippage_bps / 10_000.0
        market_price = self.get_market_price(symbol)
        fill_price = market_price * (1.0 + slip if side == "long" else 1.0 - slip)
        margin = quantity * fill_price / leverage
        available = self.get_account().available_balance
        if margin > available:
            raise ValueError(f"insufficient_margin: need {margin:.2f}, available {available:.2f}")

        now = datetime.now(timezone.utc).isoformat()
        self._state.positions[key] = _PaperPosition(
            symbol=symbol,
            side=side,
            quantity=float(quantity),
            entry_price=float(fill_price),
            leverage=int(leverage),
            margin=float(margin),
            opened_at=now,
            mark_price=float(market_price),
        )
        self._state.leverage[symbol] = int(leverage)
        self._persist()
        return {
            "action": f"open_{side}",
            "symbol": symbol,
            "side": side,
            "qty": float(quantity),
            "price": float(fill_price),
            "leverage": int(leverage),
            "margin": float(margin),
            "status": "filled",
            "timestamp": now,
        }

    def _close(
        self,
        symbol: str,
        side: PositionSide,
        *,
        reason: str,
        quantity: float = 0.0,
        exit_price: float | None = None,
    ) -> dict[str, Any]:
        position = self._require_position(symbol, side)
        close_qty = position.quantity if quantity <= 0 else min(quantity, position.quantity)

        slip = self._slippage_bps / 10_000.0
        raw_exit = self.get_market_price(symbol) if exit_price is None else exit_price
        fill_price = raw_exit * (1.0 - slip if side == "long" else 1.0 + slip)
        direction = 1.0 if side == "long" else -1.0
        pnl = (fill_price - position.entry_price) * close_qty * direction
        released_margin = position.margin * close_qty / position.quantity

        self._state.balance += pnl
        if close_qty >= position.quantity:
            del self._state.positions[_key(symbol, side)]
        else:
            position.quantity -= close_qty
            position.margin -= released_margin
        self._persist()
        return {
            "action": f"close_{side}",
            "symbol": symbol,
            "side": side,
            "qty": float(close_qty),
            "entry_price": position.entry_price,
            "price": float(fill_price),
            "reason": reason,
            "realized_pnl": float(pnl),
            "pnl_pct": float(pnl / released_margin * 100) if released_margin > 0 else 0.0,
            "opened_at": position.opened_at,
            "status": "filled",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def _require_position(self, symbol: str, side: PositionSide) -> _PaperPosition:
        position = self._state.positions.get(_key(symbol, side))
        if position is None:
            raise RuntimeError(f"no_open_position: {_key(symbol, side)}")
        return position

    def _load_state(self, initial_equity: float) -> _PaperState:
        if not self._state_file.exists():
            return _PaperState(balance=initial_equity, initial_equity=initial_equity)

        raw = json.loads(self._state_file.read_text(encoding="utf-8"))
        positions = {
            key: _PaperPosition(**payload)
            for key, payload in raw.get("positions", {}).items()
            if isinstance(payload, dict)
        }
        return _PaperState(
            balance=float(raw.get("balance", initial_equity)),
            initial_equity=float(raw.get("initial_equity", initial_equity)),
            positions=positions,
            leverage={str(k): int(v) for k, v in raw.get("leverage", {}).items()},
        )

    def _persist(self) -> None:
        self._state_file.parent.mkdir(parents=True, exist_ok=True)
        payload: dict[str, Any] = {
            "balance": self._state.balance,
            "initial_equity": self._state.initial_equity,
            "positions": {key: asdict(position) for key, position in self._state.positions.items()},
            "leverage": self._state.leverage,
        }
        serialized = json.dumps(payload, ensure_ascii=True, indent=2)
        self._state_file.write_text(serialized, encoding="utf-8")


def _key(symbol: str, side: PositionSide) -> str:
    return f"{symbol}:{side}"


def _unrealized_pnl(position: _PaperPosition) -> float:
    direction = 1.0 if position.side == "long" else -1.0
    return (position.mark_price - position.entry_price) * position.quantity * direction


def _liquidation_price(position: _PaperPosition) -> float:
    if position.side == "long":
        return position.entry_price * (1.0 - 1.0 / position.leverage)
    return position.entry_price * (1.0 + 1.0 / position.leverage)


def _position_info(position: _PaperPosition) -> PositionInfo:
    pnl = _unrealized_pnl(position)
    return PositionInfo(
        symbol=position.symbol,
        side=position.side,
        entry_price=position.entry_price,
        mark_price=position.mark_price,
        quantity=position.quantity,
        leverage=position.leverage,
        unrealized_pnl=pnl,
        unrealized_pnl_pct=pnl / position.margin * 100 if position.margin > 0 else 0.0,
        liquidation_price=_liquidation_price(position),
        margin_used=position.margin,
    )


def _triggered_reason(position: _PaperPosition, price: float) -> str | None:
    liquidation = _liquidation_price(position)
    if position.side == "long":
        if price <= liquidation:
            return "liquidation"
        if position.stop_loss is not None and price <= position.stop_loss:
            return "stop_loss"
        if position.take_profit is not None and price >= position.take_profit:
            return "take_profit"
        return None
    if price >= liquidation:
        return "liquidation"
    if position.stop_loss is not None and price >= position.stop_loss:
        return "stop_loss"
    if position.take_profit is not None and price <= position.take_profit:
        return "take_profit"
    return None
