"""
Exception hierarchy for tradelab.

Every failure mode the engine can surface has its own class so callers
(CLI, live runners) can render an actionable message by kind:

    TradelabError
    ├── ConfigError                  - bad BacktestConfig / settings values
    ├── IndicatorConfigError         - unknown kind or bad indicator parameters
    ├── ConditionSyntaxError         - unparsable condition string
    ├── StrategyValidationError      - strategy failed validation (carries result)
    ├── PortfolioError               - local failure of one portfolio operation
    │   ├── InsufficientFundsError
    │   ├── PositionLimitError
    │   └── NoPositionError
    └── BacktestInputError           - fatal input problems, abort the run
        ├── EmptyDatasetError
        ├── DataOrderError
        └── InvalidBarError

Runtime evaluation gaps (indicator not ready, offset beyond history) are
NOT exceptions; they evaluate to None/False.
"""

from typing import Optional


class TradelabError(Exception):
    """Base class for all tradelab errors."""


class ConfigError(TradelabError, ValueError):
    """Invalid engine or settings configuration."""


class IndicatorConfigError(TradelabError, ValueError):
    """Unknown indicator type or invalid indicator parameters."""


class ConditionSyntaxError(TradelabError, ValueError):
    """
    A condition string could not be parsed.

    Attributes:
        condition: The offending condition text
        position: Character offset of the error (None if not applicable)
    """

    def __init__(self, message: str, condition: str = "", position: Optional[int] = None):
        self.condition = condition
        self.position = position
        self.reason = message
        if position is not None and condition:
            message = f"{message} at position {position} in '{condition}'"
        super().__init__(message)


class StrategyValidationError(TradelabError, ValueError):
    """Raised by load_strategy when validation fails."""

    def __init__(self, result):
        self.result = result
        messages = ", ".join(issue.message for issue in result.errors)
        super().__init__(f"Strategy validation failed: {messages}")


class PortfolioError(TradelabError):
    """A single portfolio operation could not be carried out."""


class InsufficientFundsError(PortfolioError):
    """Order cost (including commission) exceeds available cash."""


class PositionLimitError(PortfolioError):
    """Order would breach the max position size or max open positions."""


class NoPositionError(PortfolioError):
    """Close requested for a symbol with no open position."""


class BacktestInputError(TradelabError, ValueError):
    """Fatal input error; the backtest run is aborted."""


class EmptyDatasetError(BacktestInputError):
    """No bars to replay."""


class DataOrderError(BacktestInputError):
    """Bar timestamps are not strictly increasing."""


class InvalidBarError(BacktestInputError):
    """Bar violates low <= open/close <= high (or has negative volume)."""
