"""
Backtest analytics: performance metrics and result formatting.
"""

from tradelab.backtesting.analytics.performance import (
    PerformanceMetrics,
    calculate_performance_metrics,
)
from tradelab.backtesting.analytics.results_formatter import BacktestResult, BacktestStatus

__all__ = [
    'PerformanceMetrics',
    'calculate_performance_metrics',
    'BacktestResult',
    'BacktestStatus',
]
