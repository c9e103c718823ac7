"""Deterministic synthetic bar generators for demos and tests."""

from __future__ import annotations

from datetime import datetime

import numpy as np

from quant_forecast_system.core.data_types import Bar, BarInterval
from quant_forecast_system.data.calendar import TradingCalendar

DEFAULT_START = datetime(2024, 1, 2, 9, 15)


def _timestamps(n: int, start: datetime, interval: BarInterval) -> list[datetime]:
    return TradingCalendar().next_times(start, interval.duration, n)


def generate_synthetic_bars(
    n: int,
    symbol: str = "SYN",
    start: datetime = DEFAULT_START,
    interval: BarInterval = BarInterval.MINUTE_15,
    start_price: float = 100.0,
    volatility: float = 0.01,
    seed: int = 42,
) -> list[Bar]:
    """Geometric random-walk bars on the trading-session grid."""
    rng = np.random.default_rng(seed)
    returns = rng.normal(0.0, volatility, n)
    close = start_price * np.exp(np.cumsum(returns))
    open_ = np.concatenate([[start_price], close[:-1]])
    spread = np.abs(rng.normal(0.0, volatility / 2, n)) * close
    high = np.maximum(open_, close) + spread
    low = np.minimum(open_, close) - spread
    volume = rng.integers(1_000, 10_000, n).astype(np.float64)

    bars = []
    for i, ts in enumerate(_timestamps(n, start, interval)):
        bars.append(
            Bar(
                symbol=symbol,
                timestamp=ts,
                open=float(open_[i]),
                high=float(high[i]),
                low=float(low[i]),
                close=float(close[i]),
                volume=float(volume[i]),
                amount=float(volume[i] * (high[i] + low[i]) / 2),
                prev_close=float(open_[i]),
                interval=interval,
            )
        )
    return bars


def generate_trending_bars(
    n: int,
    symbol: str = "TREND",
    start: datetime = DEFAULT_START,
    interval: BarInterval = BarInterval.MINUTE_15,
    start_price: float = 100.0,
    step: float = 1.0,
) -> list[Bar]:
    """Bars whose close rises by ``step`` every interval."""
    bars = []
    for i, ts in enumerate(_timestamps(n, start, interval)):
        close = start_price + i * step
        open_ = close - step / 2
        volume = 1_000.0 + 10.0 * i
        bars.append(
            Bar(
                symbol=symbol,
                timestamp=ts,
                open=open_,
                high=close + step / 4,
                low=open_ - step / 4,
                close=close,
                volume=volume,
                amount=volume * (open_ + close) / 2,
                prev_close=close - step if i > 0 else None,
                interval=interval,
            )
        )
    return bars
