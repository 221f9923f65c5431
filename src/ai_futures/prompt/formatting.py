"""Qualitative labels and text blocks for market snapshots."""

from __future__ import annotations

from ai_futures.types import MarketSnapshot


def price_trend(change_1h: float, change_4h: float) -> str:
    if change_1h > 2 and change_4h > 5:
        return "strong uptrend"
    if change_1h > 0 and change_4h > 0:
        return "mild uptrend"
    if change_1h < -2 and change_4h < -5:
        return "strong downtrend"
    if change_1h < 0 and change_4h < 0:
        return "mild downtrend"
    return "ranging"


def price_position(price: float, ema: float) -> str:
    return "above" if price > ema else "below"


def macd_bias(macd: float) -> str:
    return "bullish" if macd > 0 else "bearish"


def rsi_state(rsi: float) -> str:
    if rsi >= 70:
        return "overbought"
    if rsi <= 30:
        return "oversold"
    return "neutral"


def funding_signal(rate: float) -> str:
    """Read the funding rate as crowd positioning."""
    if rate > 0.001:
        return "longs crowded, consider shorts"
    if rate > 0.0005:
        return "longs dominant"
    if rate < -0.001:
        return "shorts crowded, consider longs"
    if rate < -0.0005:
        return "shorts dominant"
    return "neutral"


def ema_cross(ema20: float, ema50: float) -> str:
    return "golden cross, bullish" if ema20 > ema50 else "death cross, bearish"


def atr_regime(atr3: float, atr14: float) -> str:
    if atr3 > atr14 * 1.2:
        return "volatility rising"
    if atr3 < atr14 * 0.8:
        return "volatility falling"
    return "stable"


def volume_regime(current: float, average: float) -> str:
    if average <= 0:
        return "unknown"
    ratio = current / average
    if ratio > 1.5:
        return "high volume"
    if ratio < 0.5:
        return "low volume"
    return "normal volume"


def format_market_brief(data: MarketSnapshot, indent: str = "  ") -> str:
    """Multi-line market summary used for positions and candidates."""
    lines = [
        (
            f"{indent}- Price: {data.current_price:.4f} | 1h: {data.price_change_1h:+.2f}% | "
            f"4h: {data.price_change_4h:+.2f}% ({price_trend(data.price_change_1h, data.price_change_4h)})"
        ),
        (
            f"{indent}- EMA20: {data.current_ema20:.4f} (price {price_position(data.current_price, data.current_ema20)}) | "
            f"MACD: {data.current_macd:.4f} ({macd_bias(data.current_macd)}) | "
            f"RSI(7): {data.current_rsi7:.2f} ({rsi_state(data.current_rsi7)})"
        ),
    ]

    funding = f"Funding: {data.funding_rate:.6f} ({funding_signal(data.funding_rate)})"
    oi = data.open_interest
    if oi is not None and oi.average > 0:
        oi_change = (oi.latest - oi.average) / oi.average * 100
        lines.append(f"{indent}- Open interest vs average: {oi_change:+.2f}% | {funding}")
    else:
        lines.append(f"{indent}- {funding}")

    swing: list[str] = []
    if data.ema20_4h is not None and data.ema50_4h is not None:
        swing.append(f"EMA20/50: {ema_cross(data.ema20_4h, data.ema50_4h)}")
    if data.atr3_4h is not None and data.atr14_4h is not None:
        swing.append(f"ATR3 {data.atr3_4h:.4f} vs ATR14 {data.atr14_4h:.4f} ({atr_regime(data.atr3_4h, data.atr14_4h)})")
    if data.current_volume_4h is not None and data.average_volume_4h is not None:
        swing.append(f"volume {volume_regime(data.current_volume_4h, data.average_volume_4h)}")
    if swing:
        lines.append(f"{indent}- 4h: " + " | ".join(swing))

    return "\n".join(lines)
