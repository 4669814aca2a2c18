"""
Config package for tradelab.

Provides centralized configuration loading from root .env file.
"""

from config.settings import (
    load_config,
    is_config_loaded,
    get_log_level,
    get_default_commission_rate,
    get_default_initial_capital,
    get_risk_free_rate,
)

__all__ = [
    'load_config',
    'is_config_loaded',
    'get_log_level',
    'get_default_commission_rate',
    'get_default_initial_capital',
    'get_risk_free_rate',
]
