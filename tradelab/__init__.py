"""
tradelab - strategy evaluation and backtesting engine

Packages:
- indicators: stateful technical indicators updated one bar at a time
- conditions: condition expression language (lexer, parser, evaluator)
- strategy: strategy descriptions, validation, compilation, live signals
- backtesting: portfolio simulation, bar replay engine, analytics
"""

__version__ = '0.1.0'
