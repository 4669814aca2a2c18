"""
Backtest Configuration

A single BacktestConfig dataclass captures the run-level parameters that
are not part of the strategy description itself: capital, commission,
replay window and engine policies.

Strategy-level risk settings (stop loss, take profit, max positions)
come from the compiled strategy; max_positions / max_position_size set
here override them for one run.
"""

from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

import pandas as pd

from tradelab.exceptions import ConfigError

MAX_COMMISSION_RATE = 0.1

ProgressCallback = Callable[[int, int], None]


@dataclass
class BacktestConfig:
    """
    Master configuration for one backtest run.

    All money values are plain floats here; the Portfolio converts them
    to Decimal on construction.
    """

    # ── Capital ─────────────────────────────────────────────────────
    initial_capital: float = 10000.0
    commission_rate: float = 0.001

    # ── Position Limits (override strategy risk settings) ───────────
    max_positions: Optional[int] = None
    max_position_size: Optional[float] = None

    # ── Replay Window ───────────────────────────────────────────────
    # ISO date strings or datetimes; None = unbounded
    start_date: Optional[Any] = None
    end_date: Optional[Any] = None

    # ── Engine Policy ───────────────────────────────────────────────
    # False = first matching buy condition wins per bar
    allow_multiple_entries: bool = False
    # Raise DataOrderError on non-increasing timestamps (else sort)
    strict_ordering: bool = True
    # Close remaining positions at the last bar's close
    close_positions_at_end: bool = True

    # ── Analytics ───────────────────────────────────────────────────
    risk_free_rate: float = 0.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'BacktestConfig':
        """
        Build a config from a plain dict (e.g. a JSON file).

        Accepts 'commission' as an alias for 'commission_rate' and
        'capital' for 'initial_capital'. Unknown keys raise ConfigError.
        """
        data = dict(data or {})
        aliases = {'commission': 'commission_rate', 'capital': 'initial_capital'}
        for alias, name in aliases.items():
            if alias in data and name not in data:
                data[name] = data.pop(alias)
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown backtest config keys: {unknown}")
        return cls(**data)

    def validate(self) -> List[str]:
        """Validate configuration and return list of issues."""
        issues = []
        if not _positive(self.initial_capital):
            issues.append('initial_capital must be positive')
        if not isinstance(self.commission_rate, (int, float)) or not 0 <= self.commission_rate <= MAX_COMMISSION_RATE:
            issues.append(f'commission_rate must be between 0 and {MAX_COMMISSION_RATE}')
        if self.max_positions is not None and (not isinstance(self.max_positions, int) or self.max_positions < 1):
            issues.append('max_positions must be a positive integer')
        if self.max_position_size is not None and not (
            _positive(self.max_position_size) and self.max_position_size <= 1
        ):
            issues.append('max_position_size must be in (0, 1]')
        try:
            start, end = self.window()
        except (TypeError, ValueError):
            issues.append('start_date / end_date must be dates')
        else:
            if start is not None and end is not None and start > end:
                issues.append('start_date must be before end_date')
        return issues

    def window(self):
        """Replay window as (start, end) pandas Timestamps (None = open)."""
        start = pd.Timestamp(self.start_date) if self.start_date is not None else None
        end = pd.Timestamp(self.end_date) if self.end_date is not None else None
        if isinstance(self.end_date, str) and len(self.end_date.strip()) == 10:
            # date-only end bound covers the whole day
            end = end + pd.Timedelta(days=1) - pd.Timedelta(microseconds=1)
        return start, end

    def in_window(self, timestamp: datetime) -> bool:
        start, end = self.window()
        ts = pd.Timestamp(timestamp)
        if ts.tzinfo is not None:
            # naive bounds are read in the bars' timezone
            start = start.tz_localize(ts.tzinfo) if start is not None and start.tzinfo is None else start
            end = end.tz_localize(ts.tzinfo) if end is not None and end.tzinfo is None else end
        if start is not None and ts < start:
            return False
        if end is not None and ts > end:
            return False
        return True

    def portfolio_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for Portfolio(...) (risk and strategy_name excluded)."""
        return {
            'initial_cash': self.initial_capital,
            'commission_rate': self.commission_rate,
            'max_position_size': self.max_position_size,
        }

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        for key in ('start_date', 'end_date'):
            if hasattr(result[key], 'isoformat'):
                result[key] = result[key].isoformat()
        return result


def _positive(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0
