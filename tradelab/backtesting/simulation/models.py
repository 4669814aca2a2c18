"""
Portfolio data containers - positions, trades and equity snapshots

Plain dataclasses with no behavior beyond bookkeeping; the Portfolio owns
every instance and is the only code that mutates them. Money and
quantities are decimal.Decimal so repeated commission and P&L arithmetic
does not drift.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from tradelab.exceptions import PortfolioError

ZERO = Decimal('0')


class Side(str, Enum):
    LONG = "LONG"


class TradeStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class ExitReason(str, Enum):
    """Exit reasons recorded by the engine itself (signal exits use the condition description)."""
    STOP_LOSS = "Stop Loss"
    TAKE_PROFIT = "Take Profit"
    END_OF_BACKTEST = "End of backtest"


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat() if hasattr(value, 'isoformat') else str(value)


@dataclass
class Position:
    """Aggregate holding in one symbol (long only)."""

    symbol: str
    quantity: Decimal
    average_price: Decimal           # volume-weighted entry price
    entry_time: datetime
    updated_time: datetime
    side: Side = Side.LONG

    @property
    def cost_basis(self) -> Decimal:
        return self.quantity * self.average_price

    def market_value(self, price: Decimal) -> Decimal:
        return self.quantity * price

    def unrealized_pnl(self, price: Decimal) -> Decimal:
        return (price - self.average_price) * self.quantity

    def price_change(self, price: Decimal) -> Decimal:
        """Fractional move from the average entry price."""
        return (price - self.average_price) / self.average_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'quantity': float(self.quantity),
            'average_price': float(self.average_price),
            'entry_time': _iso(self.entry_time),
            'updated_time': _iso(self.updated_time),
            'side': self.side.value,
        }


@dataclass
class Trade:
    """
    One round trip: opened by a buy, closed exactly once by a sell.

    realized_pnl = (exit value - entry value) - (entry + exit commission)
    """

    # ── Entry ───────────────────────────────────────────────────────
    trade_id: str
    symbol: str
    quantity: Decimal
    entry_price: Decimal
    entry_time: datetime
    entry_commission: Decimal = ZERO
    entry_reason: str = ''
    strategy_name: str = ''
    side: Side = Side.LONG

    # ── Exit ────────────────────────────────────────────────────────
    exit_price: Optional[Decimal] = None
    exit_time: Optional[datetime] = None
    exit_commission: Decimal = ZERO
    exit_reason: Optional[str] = None
    realized_pnl: Optional[Decimal] = None
    status: TradeStatus = TradeStatus.OPEN

    @property
    def is_open(self) -> bool:
        return self.status == TradeStatus.OPEN

    @property
    def commission(self) -> Decimal:
        return self.entry_commission + self.exit_commission

    @property
    def entry_value(self) -> Decimal:
        return self.quantity * self.entry_price

    @property
    def return_pct(self) -> Optional[float]:
        """Realized P&L as a percentage of entry value."""
        if self.realized_pnl is None or self.entry_value == 0:
            return None
        return float(self.realized_pnl / self.entry_value * 100)

    def close(
        self,
        exit_price: Decimal,
        exit_time: datetime,
        exit_commission: Decimal,
        reason: str,
    ) -> None:
        """
        Close the trade and calculate P&L.

        Raises:
            PortfolioError: Trade is already closed
        """
        if not self.is_open:
            raise PortfolioError(f"Trade {self.trade_id} is already closed")
        self.exit_price = exit_price
        self.exit_time = exit_time
        self.exit_commission = exit_commission
        self.exit_reason = reason
        self.realized_pnl = (self.quantity * exit_price - self.entry_value) - self.commission
        self.status = TradeStatus.CLOSED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'trade_id': self.trade_id,
            'symbol': self.symbol,
            'side': self.side.value,
            'quantity': float(self.quantity),
            'entry_price': float(self.entry_price),
            'entry_time': _iso(self.entry_time),
            'exit_price': float(self.exit_price) if self.exit_price is not None else None,
            'exit_time': _iso(self.exit_time),
            'commission': float(self.commission),
            'realized_pnl': float(self.realized_pnl) if self.realized_pnl is not None else None,
            'return_pct': self.return_pct,
            'entry_reason': self.entry_reason,
            'exit_reason': self.exit_reason,
            'strategy_name': self.strategy_name,
            'status': self.status.value,
        }


@dataclass(frozen=True)
class PortfolioSnapshot:
    """
    Portfolio state at one instant; the engine records one per replayed bar.

    drawdown is the fractional decline of total_value from its running peak.
    """

    timestamp: datetime
    cash: Decimal
    total_value: Decimal
    positions_value: Decimal
    unrealized_pnl: Decimal
    realized_pnl: Decimal
    drawdown: float = 0.0
    open_positions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': _iso(self.timestamp),
            'cash': float(self.cash),
            'total_value': float(self.total_value),
            'positions_value': float(self.positions_value),
            'unrealized_pnl': float(self.unrealized_pnl),
            'realized_pnl': float(self.realized_pnl),
            'drawdown': self.drawdown,
            'open_positions': self.open_positions,
        }


EquityCurvePoint = PortfolioSnapshot
