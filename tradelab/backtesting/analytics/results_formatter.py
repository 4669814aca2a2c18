"""
Results Formatter - BacktestResult container, DataFrames and text summary

Produces human-readable backtest results including:
- Return, Sharpe ratio, drawdown, volatility
- Win rate, profit factor, average winner/loser
- Exit reason distribution
- Trades and equity-curve DataFrames for further analysis
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import pandas as pd

from tradelab.backtesting.analytics.performance import PerformanceMetrics
from tradelab.backtesting.simulation.models import PortfolioSnapshot, Trade

logger = logging.getLogger(__name__)


class BacktestStatus(str, Enum):
    INITIALIZED = "INITIALIZED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


@dataclass
class BacktestResult:
    """
    Complete output of one backtest run.

    trades holds closed trades only; equity_curve has one point per
    replayed bar. A CANCELLED result covers the bars replayed before
    cancellation; a FAILED result carries the error message.
    """
    status: BacktestStatus
    summary: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[PortfolioSnapshot] = field(default_factory=list)
    final_portfolio: Optional[PortfolioSnapshot] = None
    config: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return self.status == BacktestStatus.COMPLETED

    def trades_df(self) -> pd.DataFrame:
        """One row per closed trade."""
        columns = [
            'trade_id', 'symbol', 'side', 'quantity', 'entry_time', 'entry_price',
            'exit_time', 'exit_price', 'commission', 'realized_pnl', 'return_pct',
            'entry_reason', 'exit_reason', 'strategy_name', 'status',
        ]
        if not self.trades:
            return pd.DataFrame(columns=columns)
        df = pd.DataFrame([t.to_dict() for t in self.trades], columns=columns)
        df['entry_time'] = pd.to_datetime(df['entry_time'])
        df['exit_time'] = pd.to_datetime(df['exit_time'])
        return df

    def equity_df(self) -> pd.DataFrame:
        """Equity curve indexed by timestamp."""
        columns = ['cash', 'total_value', 'positions_value', 'unrealized_pnl',
                   'realized_pnl', 'drawdown', 'open_positions']
        if not self.equity_curve:
            return pd.DataFrame(columns=columns)
        rows = [p.to_dict() for p in self.equity_curve]
        df = pd.DataFrame(rows)
        df.index = pd.DatetimeIndex(pd.to_datetime(df.pop('timestamp')), name='timestamp')
        return df[columns]

    def exit_reasons(self) -> Dict[str, int]:
        return dict(Counter(t.exit_reason or 'UNKNOWN' for t in self.trades))

    def summary_text(self) -> str:
        """Human-readable summary string."""
        s = self.summary
        initial = self.config.get('initial_capital', 0.0)
        final = float(self.final_portfolio.total_value) if self.final_portfolio else initial
        lines = [
            "=" * 60,
            f"BACKTEST RESULTS: {self.metadata.get('strategy_name', '')}".rstrip(': '),
            "=" * 60,
            f"Status:        {self.status.value}",
            f"Bars:          {self.metadata.get('bars_processed', len(self.equity_curve))}",
            f"Period:        {self.metadata.get('start_date')} -> {self.metadata.get('end_date')}",
            f"Initial:       ${initial:,.2f}",
            f"Final:         ${final:,.2f}",
            f"Total Return:  {s.total_return:.2%}",
            f"Annualized:    {s.annualized_return:.2%}",
            f"Volatility:    {s.volatility:.2%}",
            f"Sharpe Ratio:  {s.sharpe_ratio:.2f}",
            f"Max Drawdown:  {s.max_drawdown:.2%}",
            "",
            f"Total Trades:  {s.total_trades}",
            f"Win Rate:      {s.win_rate:.1%}",
            f"Profit Factor: {s.profit_factor:.2f}",
            f"Avg Trade:     ${s.average_trade_return:,.2f}",
            f"Avg Winner:    ${s.average_win:,.2f}",
            f"Avg Loser:     ${s.average_loss:,.2f}",
            f"Best / Worst:  ${s.best_trade:,.2f} / ${s.worst_trade:,.2f}",
        ]
        reasons = self.exit_reasons()
        if reasons:
            lines.append("")
            lines.append("Exit Reason Distribution:")
            for reason, count in sorted(reasons.items(), key=lambda x: -x[1]):
                pct = count / len(self.trades) * 100
                lines.append(f"  {reason[:30]:30s} {count:4d} ({pct:5.1f}%)")
        if self.error:
            lines.append("")
            lines.append(f"Error: {self.error}")
        lines.append("=" * 60)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'summary': self.summary.to_dict(),
            'trades': [t.to_dict() for t in self.trades],
            'equity_curve': [p.to_dict() for p in self.equity_curve],
            'final_portfolio': self.final_portfolio.to_dict() if self.final_portfolio else None,
            'config': dict(self.config),
            'metadata': dict(self.metadata),
            'error': self.error,
        }
