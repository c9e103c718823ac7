"""Bar sources, trading calendar and window dataset construction."""

from .calendar import TradingCalendar
from .sources import BarSource, CsvBarSource, InMemoryBarSource, write_bars_csv
from .synthetic import generate_synthetic_bars, generate_trending_bars
from .windowing import BatchIterator, WindowDatasetBuilder, WindowedDataset

__all__ = [
    "TradingCalendar",
    "BarSource",
    "CsvBarSource",
    "InMemoryBarSource",
    "write_bars_csv",
    "generate_synthetic_bars",
    "generate_trending_bars",
    "BatchIterator",
    "WindowDatasetBuilder",
    "WindowedDataset",
]
