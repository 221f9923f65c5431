"""Indicator computation for market snapshots."""

from __future__ import annotations

import numpy as np
import pandas as pd  # type: ignore[import-untyped]


def ema(series: pd.Series, period: int) -> pd.Series:
    return series.astype(float).ewm(span=period, adjust=False).mean()


def macd(series: pd.Series, fast: int = 12, slow: int = 26) -> pd.Series:
    """MACD line (fast EMA minus slow EMA)."""
    return ema(series, fast) - ema(series, slow)


def rsi(series: pd.Series, period: int = 7) -> pd.Series:
    """Wilder RSI.

    Gains and losses are smoothed with ``alpha = 1 / period``. A window with
    no losses reads 100; a flat window reads 50.
    """
    delta = series.astype(float).diff()
    gains = delta.clip(lower=0.0)
    losses = -delta.clip(upper=0.0)
    avg_gain = gains.ewm(alpha=1.0 / period, adjust=False, min_periods=period).mean()
    avg_loss = losses.ewm(alpha=1.0 / period, adjust=False, min_periods=period).mean()

    with np.errstate(divide="ignore", invalid="ignore"):
        rs = avg_gain / avg_loss
        values = 100.0 - 100.0 / (1.0 + rs)
    values = values.where(avg_loss != 0, 100.0)
    values = values.where((avg_gain != 0) | (avg_loss != 0), 50.0)
    return values.where(avg_gain.notna())


def atr(df: pd.DataFrame, period: int = 14) -> pd.Series:
    high = df["high"].astype(float)
    low = df["low"].astype(float)
    close = df["close"].astype(float)
    prev_close = close.shift(1)
    tr_components = pd.concat(
        [
            (high - low).abs(),
            (high - prev_close).abs(),
            (low - prev_close).abs(),
        ],
        axis=1,
    )
    tr = tr_components.max(axis=1)
    return tr.rolling(window=period, min_periods=period).mean()


def percent_change(series: pd.Series, bars_back: int) -> float:
    """Percent change of the last value against ``bars_back`` bars earlier.

    Returns 0.0 when the series is too short or the reference is zero.
    """
    if len(series) <= bars_back:
        return 0.0
    reference = float(series.iloc[-1 - bars_back])
    if reference == 0:
        return 0.0
    return (float(series.iloc[-1]) - reference) / reference * 100.0


def last_value(series: pd.Series) -> float | None:
    """Last non-NaN value, or None."""
    clean = series.dropna()
    if clean.empty:
        return None
    return float(clean.iloc[-1])
