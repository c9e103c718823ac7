"""
Bar sources.

A source is an explicit handle owned by the caller: open it (or use it as a
context manager), fetch bars per symbol and time range, close it. Bars come
back sorted by timestamp with duplicate timestamps removed.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Sequence

import polars as pl

from quant_forecast_system.core.data_types import Bar, BarInterval
from quant_forecast_system.core.exceptions import InvalidInputError, PersistenceError

logger = logging.getLogger(__name__)


REQUIRED_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]


class BarSource(ABC):
    """Abstract handle supplying ordered bars for an instrument."""

    def __init__(self) -> None:
        self._is_open = False

    @property
    def is_open(self) -> bool:
        return self._is_open

    def open(self) -> "BarSource":
        self._is_open = True
        return self

    def close(self) -> None:
        self._is_open = False

    def __enter__(self) -> "BarSource":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def fetch_bars(
        self,
        symbol: str,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
    ) -> list[Bar]:
        """Get bars for a symbol within an inclusive time range.

        Raises:
            InvalidInputError: If the source has not been opened.
        """
        if not self._is_open:
            raise InvalidInputError(f"{self.__class__.__name__} is not open", field_name="source")
        bars = self._fetch(symbol.upper().strip(), start_time, end_time)
        logger.debug(f"Fetched {len(bars)} bars for {symbol}")
        return bars

    @abstractmethod
    def _fetch(
        self,
        symbol: str,
        start_time: datetime | None,
        end_time: datetime | None,
    ) -> list[Bar]:
        """Return bars sorted by timestamp."""
        pass


class InMemoryBarSource(BarSource):
    """Serves bars held in memory, keyed by symbol."""

    def __init__(self, bars: Sequence[Bar] = ()):
        super().__init__()
        self._bars: dict[str, dict[datetime, Bar]] = {}
        self.add_bars(bars)

    def add_bars(self, bars: Sequence[Bar]) -> None:
        """Insert bars; a bar with an existing (symbol, timestamp) replaces it."""
        for bar in bars:
            self._bars.setdefault(bar.symbol, {})[bar.timestamp] = bar

    def symbols(self) -> list[str]:
        return sorted(self._bars)

    def _fetch(
        self,
        symbol: str,
        start_time: datetime | None,
        end_time: datetime | None,
    ) -> list[Bar]:
        series = self._bars.get(symbol, {})
        return [
            series[ts]
            for ts in sorted(series)
            if (start_time is None or ts >= start_time) and (end_time is None or ts <= end_time)
        ]


class CsvBarSource(BarSource):
    """
    Reads ``<data_dir>/<SYMBOL>.csv`` with polars.

    Required columns: timestamp, open, high, low, close, volume. Optional:
    amount (defaults to close * volume), prev_close, is_suspended.
    """

    def __init__(self, data_dir: Path | str, interval: BarInterval = BarInterval.MINUTE_15):
        super().__init__()
        self.data_dir = Path(data_dir)
        self.interval = interval

    def open(self) -> "CsvBarSource":
        if not self.data_dir.is_dir():
            raise PersistenceError(f"Data directory not found: {self.data_dir}", path=str(self.data_dir))
        super().open()
        return self

    def path_for(self, symbol: str) -> Path:
        return self.data_dir / f"{symbol}.csv"

    def _fetch(
        self,
        symbol: str,
        start_time: datetime | None,
        end_time: datetime | None,
    ) -> list[Bar]:
        path = self.path_for(symbol)
        if not path.exists():
            raise PersistenceError(f"No data file for {symbol}: {path}", path=str(path))

        df = pl.read_csv(path, try_parse_dates=True)
        missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
        if missing:
            raise InvalidInputError(f"{path.name} is missing columns: {missing}", field_name="columns")

        if df["timestamp"].dtype == pl.String:
            df = df.with_columns(pl.col("timestamp").str.to_datetime())
        if "amount" not in df.columns:
            df = df.with_columns((pl.col("close") * pl.col("volume")).alias("amount"))
        if "prev_close" not in df.columns:
            df = df.with_columns(pl.lit(None, dtype=pl.Float64).alias("prev_close"))
        if "is_suspended" not in df.columns:
            df = df.with_columns(pl.lit(False).alias("is_suspended"))

        if start_time is not None:
            df = df.filter(pl.col("timestamp") >= start_time)
        if end_time is not None:
            df = df.filter(pl.col("timestamp") <= end_time)

        n_rows = df.height
        df = df.sort("timestamp", maintain_order=True).unique(subset="timestamp", keep="last", maintain_order=True)
        if df.height < n_rows:
            logger.warning(f"Dropped {n_rows - df.height} duplicate timestamps from {path.name}")

        return [
            Bar(
                symbol=symbol,
                timestamp=row["timestamp"],
                open=row["open"],
                high=row["high"],
                low=row["low"],
                close=row["close"],
                volume=row["volume"],
                amount=row["amount"],
                prev_close=row["prev_close"],
                is_suspended=bool(row["is_suspended"]),
                interval=self.interval,
            )
            for row in df.iter_rows(named=True)
        ]


def write_bars_csv(path: Path | str, bars: Sequence[Bar]) -> Path:
    """Write bars in the layout ``CsvBarSource`` reads."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    pl.DataFrame(
        {
            "timestamp": [bar.timestamp for bar in bars],
            "open": [bar.open for bar in bars],
            "high": [bar.high for bar in bars],
            "low": [bar.low for bar in bars],
            "close": [bar.close for bar in bars],
            "volume": [bar.volume for bar in bars],
            "amount": [bar.amount for bar in bars],
            "prev_close": [bar.prev_close for bar in bars],
            "is_suspended": [bar.is_suspended for bar in bars],
        }
    ).write_csv(path)
    return path
