"""
OHLCV Bar model and pandas conversion helpers.

Bars are immutable; the engine borrows them for one simulation step.
Historical data arrives pre-fetched, either as a list of Bar or as a
pandas DataFrame in the usual Open/High/Low/Close/Volume layout.

Usage:
    from tradelab.data import Bar, bars_from_dataframe

    bars = bars_from_dataframe(df)  # DatetimeIndex + OHLCV columns
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List

import pandas as pd

from tradelab.exceptions import InvalidBarError

BAR_FIELDS = ('open', 'high', 'low', 'close', 'volume')


@dataclass(frozen=True)
class Bar:
    """One OHLCV price bar."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def __post_init__(self):
        if self.low > self.high:
            raise InvalidBarError(
                f"Bar at {self.timestamp}: low {self.low} > high {self.high}"
            )
        for name in ('open', 'close'):
            value = getattr(self, name)
            if value < self.low or value > self.high:
                raise InvalidBarError(
                    f"Bar at {self.timestamp}: {name} {value} outside "
                    f"[{self.low}, {self.high}]"
                )
        if self.volume < 0:
            raise InvalidBarError(f"Bar at {self.timestamp}: negative volume")

    def field(self, name: str) -> float:
        """Return a price/volume field by name ('open', 'close', ...)."""
        if name not in BAR_FIELDS:
            raise KeyError(f"Unknown bar field: {name}")
        return getattr(self, name)

    @classmethod
    def flat(cls, timestamp: datetime, price: float, volume: float = 0.0) -> 'Bar':
        """Bar where open == high == low == close (handy for tests and replays of close-only series)."""
        return cls(timestamp, price, price, price, price, volume)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat() if hasattr(self.timestamp, 'isoformat') else self.timestamp,
            'open': self.open,
            'high': self.high,
            'low': self.low,
            'close': self.close,
            'volume': self.volume,
        }


def bars_from_dataframe(df: pd.DataFrame) -> List[Bar]:
    """
    Convert an OHLCV DataFrame into a list of Bar.

    Column names are matched case-insensitively ('Close' or 'close').
    Timestamps come from a 'timestamp'/'date' column when present,
    otherwise from the index. Volume is optional.

    Args:
        df: DataFrame with open/high/low/close (and optionally volume)

    Returns:
        Bars in the DataFrame's row order
    """
    if df is None or df.empty:
        return []

    columns = {str(c).lower(): c for c in df.columns}
    missing = [f for f in ('open', 'high', 'low', 'close') if f not in columns]
    if missing:
        raise ValueError(f"DataFrame missing OHLC columns: {missing}")

    if 'timestamp' in columns:
        timestamps = pd.to_datetime(df[columns['timestamp']])
    elif 'date' in columns:
        timestamps = pd.to_datetime(df[columns['date']])
    else:
        timestamps = pd.to_datetime(df.index)

    volume = df[columns['volume']] if 'volume' in columns else pd.Series(0.0, index=df.index)

    bars = []
    for ts, o, h, l, c, v in zip(
        timestamps,
        df[columns['open']],
        df[columns['high']],
        df[columns['low']],
        df[columns['close']],
        volume,
    ):
        bars.append(Bar(
            timestamp=ts.to_pydatetime() if hasattr(ts, 'to_pydatetime') else ts,
            open=float(o),
            high=float(h),
            low=float(l),
            close=float(c),
            volume=float(v),
        ))
    return bars


def bars_to_dataframe(bars: Iterable[Bar]) -> pd.DataFrame:
    """Inverse of bars_from_dataframe: DatetimeIndex + Open/High/Low/Close/Volume."""
    bars = list(bars)
    rows = [
        {
            'Open': b.open,
            'High': b.high,
            'Low': b.low,
            'Close': b.close,
            'Volume': b.volume,
        }
        for b in bars
    ]
    index = pd.DatetimeIndex([b.timestamp for b in bars]) if rows else pd.DatetimeIndex([])
    return pd.DataFrame(rows, index=index, columns=['Open', 'High', 'Low', 'Close', 'Volume'])
