"""
Performance Analytics - pure functions over trades and equity curves

Every function is side-effect free and total: degenerate inputs (empty
curve, no trades, zero variance) return 0 or a bounded sentinel instead
of raising or producing inf/NaN, so results always format cleanly.

Conventions:
- Returns are fractions (0.10 = 10%)
- Max drawdown is a positive fraction of the running peak
- RATIO_SENTINEL stands in for +infinity (-RATIO_SENTINEL for -infinity)

Usage:
    from tradelab.backtesting.analytics.performance import calculate_performance_metrics

    metrics = calculate_performance_metrics(trades, equity_curve, initial_value=10000)
    print(metrics.sharpe_ratio, metrics.max_drawdown)
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

# Bounded stand-in for an infinite ratio
RATIO_SENTINEL = 1e6

TRADING_DAYS_PER_YEAR = 252
DAYS_PER_YEAR = 365.25
MAX_KELLY_FRACTION = 0.25


@dataclass
class PerformanceMetrics:
    """Summary statistics for one backtest."""

    # ── Return ──────────────────────────────────────────────────────
    total_return: float = 0.0
    annualized_return: float = 0.0
    volatility: float = 0.0

    # ── Risk-adjusted ───────────────────────────────────────────────
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0

    # ── Trades ──────────────────────────────────────────────────────
    total_trades: int = 0
    profitable_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    profit_factor: float = 1.0
    average_trade_return: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    best_trade: float = 0.0
    worst_trade: float = 0.0
    kelly_fraction: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ── Equity-curve metrics ────────────────────────────────────────────

def calculate_total_return(initial_value: float, final_value: float) -> float:
    """(final - initial) / initial; 0 when initial is not positive."""
    initial_value = float(initial_value)
    if initial_value <= 0:
        return 0.0
    return (float(final_value) - initial_value) / initial_value


def calculate_returns(values: Sequence[float]) -> List[float]:
    """Per-period simple returns; periods with a non-positive base are skipped."""
    values = [float(v) for v in values]
    returns = []
    for prev, curr in zip(values, values[1:]):
        if prev > 0:
            returns.append((curr - prev) / prev)
    return returns


def calculate_sharpe_ratio(returns: Sequence[float], risk_free_rate: float = 0.0) -> float:
    """
    Mean excess return over its (population) standard deviation.

    Args:
        returns: Per-period returns
        risk_free_rate: Per-period risk-free rate subtracted from each return

    Returns:
        Sharpe ratio; 0 for fewer than two returns; +/-RATIO_SENTINEL when
        the deviation is zero and the mean is not
    """
    if len(returns) < 2:
        return 0.0
    excess = np.asarray(returns, dtype=float) - risk_free_rate
    mean = float(excess.mean())
    std = float(excess.std(ddof=0))
    if std == 0 or math.isclose(std, 0.0, abs_tol=1e-15):
        if mean > 0:
            return RATIO_SENTINEL
        if mean < 0:
            return -RATIO_SENTINEL
        return 0.0
    return mean / std


def calculate_max_drawdown(values: Sequence[float]) -> float:
    """
    Largest peak-to-trough decline as a fraction of the peak.

    Example: [10000, 11000, 9000, 10500] -> (11000 - 9000) / 11000
    """
    if len(values) < 2:
        return 0.0
    equity = pd.Series([float(v) for v in values])
    running_max = equity.cummax()
    with np.errstate(divide='ignore', invalid='ignore'):
        drawdown = (running_max - equity) / running_max.abs()
    drawdown = drawdown.replace([np.inf, -np.inf], np.nan).fillna(0.0)
    return float(max(drawdown.max(), 0.0))


def calculate_annualized_return(
    total_return: float,
    start: Any,
    end: Any,
) -> float:
    """
    Compound total_return over elapsed calendar time (365.25-day years).

    Returns total_return unchanged when no time has elapsed, and -1.0
    when the account was wiped out.
    """
    if start is None or end is None:
        return total_return
    days = (pd.Timestamp(end) - pd.Timestamp(start)).total_seconds() / 86400
    years = days / DAYS_PER_YEAR
    if years <= 0:
        return total_return
    if total_return <= -1:
        return -1.0
    return (1 + total_return) ** (1 / years) - 1


def calculate_daily_returns(timestamps: Sequence[Any], values: Sequence[float]) -> List[float]:
    """Close-to-close returns between calendar days (last value of each day)."""
    if len(values) < 2:
        return []
    series = pd.Series([float(v) for v in values], index=pd.DatetimeIndex(pd.to_datetime(list(timestamps))))
    daily = series.groupby(series.index.normalize()).last()
    returns = daily.pct_change().dropna()
    returns = returns.replace([np.inf, -np.inf], np.nan).dropna()
    return [float(r) for r in returns]


def calculate_volatility(daily_returns: Sequence[float]) -> float:
    """Sample standard deviation of daily returns, annualized by sqrt(252)."""
    if len(daily_returns) < 2:
        return 0.0
    return float(np.std(np.asarray(daily_returns, dtype=float), ddof=1) * math.sqrt(TRADING_DAYS_PER_YEAR))


# ── Trade metrics ───────────────────────────────────────────────────

def calculate_win_rate(pnls: Sequence[float]) -> float:
    """Fraction of trades with P&L > 0; 0 with no trades."""
    if not pnls:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls)


def calculate_profit_factor(pnls: Sequence[float]) -> float:
    """
    Gross profit / gross loss.

    With no losing trades: RATIO_SENTINEL if there was any profit, else 1.
    """
    gross_profit = sum(float(p) for p in pnls if p > 0)
    gross_loss = abs(sum(float(p) for p in pnls if p < 0))
    if gross_loss == 0:
        return RATIO_SENTINEL if gross_profit > 0 else 1.0
    return gross_profit / gross_loss


def calculate_average_win(pnls: Sequence[float]) -> float:
    wins = [float(p) for p in pnls if p > 0]
    return sum(wins) / len(wins) if wins else 0.0


def calculate_average_loss(pnls: Sequence[float]) -> float:
    """Average losing trade as a positive number."""
    losses = [float(p) for p in pnls if p < 0]
    return abs(sum(losses) / len(losses)) if losses else 0.0


def calculate_kelly_criterion(win_rate: float, average_win: float, average_loss: float) -> float:
    """
    Kelly fraction W - (1 - W) / R with R = average_win / average_loss.

    Clamped to [0, 0.25]; 0 when there are no losses or no wins to size from.
    """
    if average_loss <= 0 or average_win <= 0:
        return 0.0
    payoff = average_win / average_loss
    kelly = win_rate - (1 - win_rate) / payoff
    return min(max(kelly, 0.0), MAX_KELLY_FRACTION)


# ── Assembly ────────────────────────────────────────────────────────

def calculate_performance_metrics(
    trades: Sequence[Any],
    equity_curve: Sequence[Any],
    initial_value: float,
    risk_free_rate: float = 0.0,
    final_value: Optional[float] = None,
) -> PerformanceMetrics:
    """
    Compute the full metric set for a run.

    Args:
        trades: Closed trades (anything with realized_pnl)
        equity_curve: Points with timestamp and total_value, one per bar
        initial_value: Starting capital
        risk_free_rate: Per-period rate for the Sharpe ratio
        final_value: Ending value for the return metrics when it differs
            from the last curve point (e.g. after end-of-run closing fees)

    Returns:
        PerformanceMetrics (all zeros / neutral for an empty curve)
    """
    metrics = PerformanceMetrics()
    pnls = [float(t.realized_pnl) for t in trades if t.realized_pnl is not None]

    metrics.total_trades = len(pnls)
    metrics.profitable_trades = sum(1 for p in pnls if p > 0)
    metrics.losing_trades = sum(1 for p in pnls if p < 0)
    metrics.win_rate = calculate_win_rate(pnls)
    metrics.profit_factor = calculate_profit_factor(pnls)
    metrics.average_win = calculate_average_win(pnls)
    metrics.average_loss = calculate_average_loss(pnls)
    metrics.average_trade_return = sum(pnls) / len(pnls) if pnls else 0.0
    metrics.best_trade = max(pnls) if pnls else 0.0
    metrics.worst_trade = min(pnls) if pnls else 0.0
    metrics.kelly_fraction = calculate_kelly_criterion(
        metrics.win_rate, metrics.average_win, metrics.average_loss,
    )

    if not equity_curve:
        return metrics

    values = [float(p.total_value) for p in equity_curve]
    timestamps = [p.timestamp for p in equity_curve]

    ending = values[-1] if final_value is None else float(final_value)
    metrics.total_return = calculate_total_return(initial_value, ending)
    metrics.annualized_return = calculate_annualized_return(
        metrics.total_return, timestamps[0], timestamps[-1],
    )
    metrics.sharpe_ratio = calculate_sharpe_ratio(calculate_returns(values), risk_free_rate)
    metrics.max_drawdown = calculate_max_drawdown(values)
    metrics.volatility = calculate_volatility(calculate_daily_returns(timestamps, values))

    logger.debug("Metrics: return=%.4f sharpe=%.3f max_dd=%.4f trades=%d",
                 metrics.total_return, metrics.sharpe_ratio, metrics.max_drawdown, metrics.total_trades)
    return metrics
