"""Hard risk rules applied to an AI decision batch before execution."""

from __future__ import annotations

import math
from dataclasses import dataclass

from ai_futures.ai.schemas import OPEN_ACTIONS, VALID_ACTIONS, TradingDecision

MAJOR_SYMBOLS: frozenset[str] = frozenset({"BTCUSDT", "ETHUSDT"})
SIZE_TOLERANCE = 1.01


@dataclass(slots=True, frozen=True)
class AssetClassLimits:
    max_leverage: int
    max_size_multiple: float


_MAJOR_LIMITS = AssetClassLimits(max_leverage=50, max_size_multiple=10.0)
_ALTCOIN_LIMITS = AssetClassLimits(max_leverage=20, max_size_multiple=1.5)


class DecisionValidationError(ValueError):
    """First rule violation in a batch. ``index`` is 1-based."""

    def __init__(self, index: int, reason: str, decision: TradingDecision | None = None) -> None:
        self.index = index
        self.reason = reason
        self.decision = decision
        where = f"decision #{index}"
        if decision is not None:
            where += f" ({decision.symbol} {decision.action})"
        super().__init__(f"{where} rejected: {reason}")


def asset_class_limits(symbol: str) -> AssetClassLimits:
    """BTC/ETH get the major caps, everything else the altcoin caps."""
    return _MAJOR_LIMITS if symbol.upper() in MAJOR_SYMBOLS else _ALTCOIN_LIMITS


def position_size_limit(symbol: str, equity: float) -> float:
    """Largest accepted ``position_size_usd`` for ``symbol``, tolerance included."""
    return asset_class_limits(symbol).max_size_multiple * equity * SIZE_TOLERANCE


class DecisionValidator:
    """All-or-nothing batch validation.

    The first invalid decision rejects the whole batch. Only the ordering of
    stop-loss against take-profit is checked, never their distance from a
    live price.
    """

    def validate(self, decisions: list[TradingDecision], equity: float) -> None:
        for index, decision in enumerate(decisions, start=1):
            reason = self.check(decision, equity)
            if reason is not None:
                raise DecisionValidationError(index, reason, decision)

    def check(self, decision: TradingDecision, equity: float) -> str | None:
        """Return the first violated rule for one decision, or None."""
        if decision.action not in VALID_ACTIONS:
            return f"invalid action: {decision.action!r}"
        if decision.action not in OPEN_ACTIONS:
            return None
        return _check_open(decision, equity)


def _check_open(decision: TradingDecision, equity: float) -> str | None:
    symbol = decision.symbol
    limits = asset_class_limits(symbol)

    # NaN compares false against every bound below.
    for name in ("position_size_usd", "stop_loss", "take_profit"):
        value = getattr(decision, name)
        if value is not None and not math.isfinite(value):
            return f"{name} must be a finite number for {symbol}: got {value}"

    if decision.leverage is None:
        return f"leverage is required to open {symbol}"
    if not 1 <= decision.leverage <= limits.max_leverage:
        return (
            f"leverage must be between 1 and {limits.max_leverage} for {symbol}: "
            f"got {decision.leverage}"
        )

    size = decision.position_size_usd
    if size is None:
        return f"position_size_usd is required to open {symbol}"
    if size <= 0:
        return f"position_size_usd must be positive for {symbol}: got {size:g}"
    limit = position_size_limit(symbol, equity)
    if size > limit:
        return (
            f"position_size_usd {size:.2f} exceeds {limits.max_size_multiple:g}x equity "
            f"limit {limit:.2f} for {symbol}"
        )

    stop_loss, take_profit = decision.stop_loss, decision.take_profit
    if stop_loss is None or take_profit is None:
        return f"stop_loss and take_profit are required to open {symbol}"
    if stop_loss <= 0 or take_profit <= 0:
        return f"stop_loss and take_profit must be positive for {symbol}"
    if decision.action == "open_long" and stop_loss >= take_profit:
        return f"long stop_loss must be below take_profit for {symbol}: {stop_loss:g} >= {take_profit:g}"
    if decision.action == "open_short" and stop_loss <= take_profit:
        return f"short stop_loss must be above take_profit for {symbol}: {stop_loss:g} <= {take_profit:g}"

    if decision.confidence is None:
        return f"confidence is required to open {symbol}"
    if not 0 <= decision.confidence <= 100:
        return f"confidence must be between 0 and 100 for {symbol}: got {decision.confidence}"
    return None
