"""Execution capability and decision-batch execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Protocol

from ai_futures.ai.schemas import CLOSE_ACTIONS, OPEN_ACTIONS, TradingDecision
from ai_futures.types import AccountInfo, MarketSnapshot, PositionInfo, PositionSide
from ai_futures.utils.logging import get_logger, log_order_execution

ExecutionStatus = Literal["filled", "dry_run", "skipped", "failed"]


class Trader(Protocol):
    """Exchange capability the pipeline executes against.

    ``close_long``/``close_short`` with ``quantity=0`` close the whole position.
    """

    def get_account(self) -> AccountInfo: ...

    def get_positions(self) -> list[PositionInfo]: ...

    def get_market_price(self, symbol: str) -> float: ...

    def open_long(self, symbol: str, quantity: float, leverage: int) -> dict[str, Any]: ...

    def open_short(self, symbol: str, quantity: float, leverage: int) -> dict[str, Any]: ...

    def close_long(self, symbol: str, quantity: float = 0.0) -> dict[str, Any]: ...

    def close_short(self, symbol: str, quantity: float = 0.0) -> dict[str, Any]: ...

    def set_leverage(self, symbol: str, leverage: int) -> None: ...

    def set_stop_loss(self, symbol: str, side: PositionSide, quantity: float, price: float) -> None: ...

    def set_take_profit(self, symbol: str, side: PositionSide, quantity: float, price: float) -> None: ...


@dataclass(slots=True)
class ExecutionOutcome:
    """Result of executing one decision."""

    symbol: str
    action: str
    status: ExecutionStatus
    order: dict[str, Any] | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)


def execute_decisions(
    trader: Trader,
    decisions: list[TradingDecision],
    market_data: dict[str, MarketSnapshot],
    dry_run: bool,
) -> list[ExecutionOutcome]:
    """Execute a validated batch: all closes first, then opens.

    Closing first frees margin for the opens. A failing order is logged and
    reported in its outcome; it is never retried and does not stop the rest
    of the batch.
    """
    logger = get_logger("ai_futures.exec.trader")
    ordered = sorted(decisions, key=_execution_rank)
    outcomes: list[ExecutionOutcome] = []

    for decision in ordered:
        if decision.action not in OPEN_ACTIONS and decision.action not in CLOSE_ACTIONS:
            outcomes.append(ExecutionOutcome(decision.symbol, decision.action, "skipped"))
            continue
        try:
            if decision.is_close:
                outcome = _execute_close(trader, decision, dry_run)
            else:
                outcome = _execute_open(trader, decision, market_data, dry_run)
        except Exception as exc:  # noqa: BLE001 - one rejected order must not abort the batch.
            logger.warning(
                "order_failed",
                symbol=decision.symbol,
                action=decision.action,
                error=str(exc),
            )
            outcome = ExecutionOutcome(decision.symbol, decision.action, "failed", error=str(exc))
        outcomes.append(outcome)

        if outcome.order is not None:
            log_order_execution(
                logger,
                symbol=decision.symbol,
                action=decision.action,
                status=outcome.status,
                quantity=float(outcome.order.get("qty", 0.0)),
                price=outcome.order.get("price"),
            )
    return outcomes


def _execution_rank(decision: TradingDecision) -> int:
    if decision.is_close:
        return 0
    if decision.is_open:
        return 1
    return 2


def _execute_close(trader: Trader, decision: TradingDecision, dry_run: bool) -> ExecutionOutcome:
    if dry_run:
        order = {
            "action": decision.action,
            "symbol": decision.symbol,
            "status": "dry_run",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        return ExecutionOutcome(decision.symbol, decision.action, "dry_run", order=order)

    if decision.action == "close_long":
        order = trader.close_long(decision.symbol)
    else:
        order = trader.close_short(decision.symbol)
    return ExecutionOutcome(decision.symbol, decision.action, "filled", order=order)


def _execute_open(
    trader: Trader,
    decision: TradingDecision,
    market_data: dict[str, MarketSnapshot],
    dry_run: bool,
) -> ExecutionOutcome:
    leverage, size = decision.leverage, decision.position_size_usd
    stop_loss, take_profit = decision.stop_loss, decision.take_profit
    if leverage is None or size is None or stop_loss is None or take_profit is None:
        raise ValueError(f"open decision missing leverage, size or protective levels: {decision.symbol}")

    snapshot = market_data.get(decision.symbol)
    price = snapshot.current_price if snapshot is not None else trader.get_market_price(decision.symbol)
    if price <= 0:
        raise ValueError(f"invalid_market_price: {price}")
    quantity = size / price
    side: PositionSide = "long" if decision.action == "open_long" else "short"

    if dry_run:
        order = {
            "action": decision.action,
            "symbol": decision.symbol,
            "side": side,
            "qty": quantity,
            "price": price,
            "leverage": leverage,
            "stop_loss": stop_loss,
            "take_profit": take_profit,
            "status": "dry_run",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        return ExecutionOutcome(decision.symbol, decision.action, "dry_run", order=order)

    trader.set_leverage(decision.symbol, leverage)
    if side == "long":
        order = trader.open_long(decision.symbol, quantity, leverage)
    else:
        order = trader.open_short(decision.symbol, quantity, leverage)
    outcome = ExecutionOutcome(decision.symbol, decision.action, "filled", order=order)

    filled_qty = float(order.get("qty", quantity))
    for label, setter, level in (
        ("stop_loss", trader.set_stop_loss, stop_loss),
        ("take_profit", trader.set_take_profit, take_profit),
    ):
        try:
            setter(decision.symbol, side, filled_qty, level)
        except Exception as exc:  # noqa: BLE001 - position is open; report the missing protection.
            outcome.warnings.append(f"{label}_not_set: {exc}")
    return outcome
