"""
Backtesting pipeline: configuration, portfolio simulation, bar replay
engine and analytics.

Usage:
    from tradelab.backtesting import BacktestConfig, BacktestEngine

    engine = BacktestEngine(BacktestConfig(initial_capital=10000))
    result = engine.run(strategy_dict, bars)
"""

from tradelab.backtesting.analytics import BacktestResult, BacktestStatus, PerformanceMetrics
from tradelab.backtesting.config import BacktestConfig
from tradelab.backtesting.engine import BacktestEngine, run_many
from tradelab.backtesting.simulation import Portfolio

__all__ = [
    'BacktestConfig',
    'BacktestEngine',
    'BacktestResult',
    'BacktestStatus',
    'PerformanceMetrics',
    'Portfolio',
    'run_many',
]
