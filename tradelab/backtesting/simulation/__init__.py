"""
Portfolio simulation: cash, positions, trades and equity snapshots.
"""

from tradelab.backtesting.simulation.models import (
    EquityCurvePoint,
    ExitReason,
    PortfolioSnapshot,
    Position,
    Side,
    Trade,
    TradeStatus,
)
from tradelab.backtesting.simulation.portfolio import Portfolio

__all__ = [
    'EquityCurvePoint',
    'ExitReason',
    'PortfolioSnapshot',
    'Position',
    'Side',
    'Trade',
    'TradeStatus',
    'Portfolio',
]
