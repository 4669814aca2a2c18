"""
Portfolio - cash, positions and trade ledger for one simulated account

Owns every Position and Trade it creates. All arithmetic is Decimal;
float inputs are converted via str() so 0.1 stays 0.1.

Gating mirrors a broker account:
- Order value + commission must fit in cash
- Optional max position size as a fraction of total value
- Optional max number of open lots (risk.max_positions)

Constraint failures raise PortfolioError subclasses; the backtest engine
catches them per signal and skips that trade.

Usage:
    portfolio = Portfolio(initial_cash=10000, commission_rate=0.001)
    if portfolio.can_buy('BTCUSD', 50000, 0.02):
        portfolio.open_position('BTCUSD', 50000, 0.02, timestamp)
    portfolio.close_position('BTCUSD', 55000, later, reason='Take profit')
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Union

from tradelab.backtesting.simulation.models import (
    ZERO,
    ExitReason,
    PortfolioSnapshot,
    Position,
    Trade,
)
from tradelab.exceptions import (
    InsufficientFundsError,
    NoPositionError,
    PortfolioError,
    PositionLimitError,
)
from tradelab.strategy.config import RiskSettings

logger = logging.getLogger(__name__)

Number = Union[int, float, Decimal, str]


def to_decimal(value: Number) -> Decimal:
    """Convert without binary-float noise (Decimal(0.1) != Decimal('0.1'))."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class Portfolio:
    """
    Simulated long-only account.

    Args:
        initial_cash: Starting cash (> 0)
        commission_rate: Fraction of order value charged per fill (0.001 = 0.1%)
        max_position_size: Max position value as a fraction of total value
            (overrides risk.max_position_size when given)
        risk: Stop loss / take profit / max positions
        strategy_name: Recorded on every trade
    """

    def __init__(
        self,
        initial_cash: Number,
        commission_rate: Number = 0,
        max_position_size: Optional[Number] = None,
        risk: Optional[RiskSettings] = None,
        strategy_name: str = '',
    ):
        self.initial_cash = to_decimal(initial_cash)
        if self.initial_cash <= 0:
            raise ValueError(f"initial_cash must be positive, got {initial_cash}")
        self.commission_rate = to_decimal(commission_rate)
        if self.commission_rate < 0:
            raise ValueError(f"commission_rate must be >= 0, got {commission_rate}")

        self.risk = risk or RiskSettings()
        if max_position_size is None:
            max_position_size = self.risk.max_position_size
        self.max_position_size = to_decimal(max_position_size) if max_position_size is not None else None
        self.stop_loss = to_decimal(self.risk.stop_loss) if self.risk.stop_loss else None
        self.take_profit = to_decimal(self.risk.take_profit) if self.risk.take_profit else None
        self.max_positions = self.risk.max_positions
        self.strategy_name = strategy_name

        self._cash = self.initial_cash
        self._realized_pnl = ZERO
        self._positions: Dict[str, Position] = {}
        self._trades: List[Trade] = []
        self._trade_counter = 0
        self._peak_value = self.initial_cash

    # ── State ───────────────────────────────────────────────────────

    @property
    def cash(self) -> Decimal:
        return self._cash

    @property
    def realized_pnl(self) -> Decimal:
        return self._realized_pnl

    def has_position(self, symbol: str) -> bool:
        return symbol in self._positions

    def get_position(self, symbol: str) -> Optional[Position]:
        return self._positions.get(symbol)

    def get_positions(self) -> Dict[str, Position]:
        return dict(self._positions)

    def get_trade_history(self) -> List[Trade]:
        """All trades, open and closed, in the order they were opened."""
        return list(self._trades)

    def get_open_trades(self, symbol: Optional[str] = None) -> List[Trade]:
        return [
            t for t in self._trades
            if t.is_open and (symbol is None or t.symbol == symbol)
        ]

    def get_closed_trades(self) -> List[Trade]:
        return [t for t in self._trades if not t.is_open]

    def open_trade_count(self) -> int:
        return sum(1 for t in self._trades if t.is_open)

    def commission_for(self, value: Number) -> Decimal:
        return to_decimal(value) * self.commission_rate

    # ── Valuation ───────────────────────────────────────────────────

    def get_positions_value(self, prices: Optional[Mapping[str, Number]] = None) -> Decimal:
        """Σ quantity × price over positions that have a supplied price."""
        prices = prices or {}
        total = ZERO
        for symbol, position in self._positions.items():
            if symbol in prices and prices[symbol] is not None:
                total += position.market_value(to_decimal(prices[symbol]))
        return total

    def get_total_value(self, prices: Optional[Mapping[str, Number]] = None) -> Decimal:
        """
        Cash plus the market value of priced positions.

        Positions with no entry in `prices` are excluded, so callers
        should pass a price for every held symbol.
        """
        return self._cash + self.get_positions_value(prices)

    def get_unrealized_pnl(self, prices: Optional[Mapping[str, Number]] = None) -> Decimal:
        prices = prices or {}
        total = ZERO
        for symbol, position in self._positions.items():
            if symbol in prices and prices[symbol] is not None:
                total += position.unrealized_pnl(to_decimal(prices[symbol]))
        return total

    def get_snapshot(self, prices: Mapping[str, Number], timestamp: datetime) -> PortfolioSnapshot:
        """Value the portfolio and update the running peak used for drawdown."""
        positions_value = self.get_positions_value(prices)
        total_value = self._cash + positions_value
        if total_value > self._peak_value:
            self._peak_value = total_value
        drawdown = 0.0
        if self._peak_value > 0:
            drawdown = float((self._peak_value - total_value) / self._peak_value)
        return PortfolioSnapshot(
            timestamp=timestamp,
            cash=self._cash,
            total_value=total_value,
            positions_value=positions_value,
            unrealized_pnl=self.get_unrealized_pnl(prices),
            realized_pnl=self._realized_pnl,
            drawdown=drawdown,
            open_positions=len(self._positions),
        )

    # ── Buying ──────────────────────────────────────────────────────

    def _check_buy(
        self,
        symbol: str,
        price: Decimal,
        quantity: Decimal,
        prices: Optional[Mapping[str, Number]],
    ) -> Optional[PortfolioError]:
        """Return the error a buy would raise, or None if it is allowed."""
        if price <= 0 or quantity <= 0:
            return PortfolioError(f"Invalid order for {symbol}: price={price} quantity={quantity}")

        value = price * quantity
        cost = value + self.commission_for(value)
        if cost > self._cash:
            return InsufficientFundsError(
                f"Insufficient funds for {symbol}: need {cost:.2f}, have {self._cash:.2f}"
            )

        if self.max_positions is not None and self.open_trade_count() >= self.max_positions:
            return PositionLimitError(
                f"Max open positions reached: {self.open_trade_count()}/{self.max_positions}"
            )

        if self.max_position_size is not None:
            marks = self._marks(prices, symbol, price)
            total_value = self._cash + sum(
                (p.market_value(marks[s]) for s, p in self._positions.items()), ZERO
            )
            held = self._positions[symbol].quantity if symbol in self._positions else ZERO
            position_value = (held + quantity) * price
            limit = total_value * self.max_position_size
            if position_value > limit:
                return PositionLimitError(
                    f"Position in {symbol} would be {position_value:.2f}, "
                    f"limit {limit:.2f} ({self.max_position_size:.0%} of {total_value:.2f})"
                )
        return None

    def _marks(
        self,
        prices: Optional[Mapping[str, Number]],
        symbol: str,
        price: Decimal,
    ) -> Dict[str, Decimal]:
        """Price per held symbol for limit checks; falls back to average entry."""
        marks = {}
        for held, position in self._positions.items():
            if prices and prices.get(held) is not None:
                marks[held] = to_decimal(prices[held])
            else:
                marks[held] = position.average_price
        marks[symbol] = price
        return marks

    def can_buy(
        self,
        symbol: str,
        price: Number,
        quantity: Number,
        prices: Optional[Mapping[str, Number]] = None,
    ) -> bool:
        """
        Check if a buy is permitted.

        Validates:
        1. price * quantity + commission <= cash
        2. Under max open positions
        3. Resulting position within max position size

        Args:
            symbol: Symbol to buy
            price: Fill price
            quantity: Units to buy
            prices: Current prices of held symbols (for the size limit)

        Returns:
            True if the buy is permitted
        """
        error = self._check_buy(symbol, to_decimal(price), to_decimal(quantity), prices)
        if error is not None:
            logger.debug("Buy rejected: %s", error)
            return False
        return True

    def open_position(
        self,
        symbol: str,
        price: Number,
        quantity: Number,
        timestamp: datetime,
        reason: str = '',
        prices: Optional[Mapping[str, Number]] = None,
    ) -> Trade:
        """
        Buy `quantity` of `symbol` and record a new OPEN trade.

        Repeat buys update the position's volume-weighted average price.

        Raises:
            InsufficientFundsError: Cost including commission exceeds cash
            PositionLimitError: Max positions or max position size exceeded
        """
        price = to_decimal(price)
        quantity = to_decimal(quantity)
        error = self._check_buy(symbol, price, quantity, prices)
        if error is not None:
            raise error

        value = price * quantity
        commission = self.commission_for(value)
        self._cash -= value + commission

        position = self._positions.get(symbol)
        if position is None:
            self._positions[symbol] = Position(
                symbol=symbol,
                quantity=quantity,
                average_price=price,
                entry_time=timestamp,
                updated_time=timestamp,
            )
        else:
            new_quantity = position.quantity + quantity
            position.average_price = (position.cost_basis + value) / new_quantity
            position.quantity = new_quantity
            position.updated_time = timestamp

        self._trade_counter += 1
        trade = Trade(
            trade_id=f"TRD-{self._trade_counter:05d}",
            symbol=symbol,
            quantity=quantity,
            entry_price=price,
            entry_time=timestamp,
            entry_commission=commission,
            entry_reason=reason,
            strategy_name=self.strategy_name,
        )
        self._trades.append(trade)
        logger.info("BUY %s %s @ %s (commission %.4f, cash %.2f) %s",
                    quantity, symbol, price, commission, self._cash, trade.trade_id)
        return trade

    # ── Selling ─────────────────────────────────────────────────────

    def close_position(
        self,
        symbol: str,
        price: Number,
        timestamp: datetime,
        reason: str = '',
    ) -> List[Trade]:
        """
        Sell the whole position in `symbol`, closing every open lot.

        The exit commission is shared across lots by quantity.

        Returns:
            The trades closed, oldest first

        Raises:
            NoPositionError: No open position in `symbol`
        """
        position = self._positions.get(symbol)
        if position is None:
            raise NoPositionError(f"No open position in {symbol}")
        price = to_decimal(price)

        lots = self.get_open_trades(symbol)
        exit_value = position.quantity * price
        exit_commission = self.commission_for(exit_value)

        remaining = exit_commission
        for i, trade in enumerate(lots):
            if i == len(lots) - 1:
                share = remaining
            else:
                share = exit_commission * trade.quantity / position.quantity
                remaining -= share
            trade.close(price, timestamp, share, reason)
            self._realized_pnl += trade.realized_pnl

        self._cash += exit_value - exit_commission
        del self._positions[symbol]

        pnl = sum((t.realized_pnl for t in lots), ZERO)
        logger.info("SELL %s %s @ %s (%s) pnl=%.2f cash=%.2f",
                    position.quantity, symbol, price, reason or 'signal', pnl, self._cash)
        return lots

    def apply_risk_management(
        self,
        current_prices: Mapping[str, Number],
        timestamp: datetime,
    ) -> List[Trade]:
        """
        Force-close positions whose move from average entry crosses the
        stop loss (change <= -stop_loss) or take profit (change >= take_profit).

        Positions without a price in `current_prices` are left alone.

        Returns:
            Trades closed by risk exits
        """
        if self.stop_loss is None and self.take_profit is None:
            return []

        closed = []
        for symbol, position in list(self._positions.items()):
            raw = current_prices.get(symbol)
            if raw is None:
                continue
            price = to_decimal(raw)
            change = position.price_change(price)

            reason = None
            if self.stop_loss is not None and change <= -self.stop_loss:
                reason = ExitReason.STOP_LOSS
            elif self.take_profit is not None and change >= self.take_profit:
                reason = ExitReason.TAKE_PROFIT
            if reason is None:
                continue

            logger.info("Risk exit %s for %s: entry %.4f -> %.4f (%.2f%%)",
                        reason.value, symbol, position.average_price, price, change * 100)
            closed.extend(self.close_position(symbol, price, timestamp, reason.value))
        return closed
