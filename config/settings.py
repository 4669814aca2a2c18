"""
Centralized Configuration Loading for tradelab.

- Single source of truth for environment-driven defaults
- Loads the project-root .env when present (optional; plain environment
  variables work the same way)
- Typed getters fall back to built-in defaults on missing or bad values

Usage:
    from config.settings import load_config, get_default_commission_rate

    # At app startup (call once)
    load_config()

    commission = get_default_commission_rate()
"""

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Flag to track if config has been loaded
_CONFIG_LOADED = False

DEFAULT_LOG_LEVEL = 'INFO'
DEFAULT_COMMISSION_RATE = 0.001
DEFAULT_INITIAL_CAPITAL = 10000.0
DEFAULT_RISK_FREE_RATE = 0.0


def load_config(force_reload: bool = False, env_path: Optional[Path] = None) -> None:
    """
    Load environment variables from the project root .env file.

    Variables already set in the environment win over the file.

    Args:
        force_reload: If True, reload even if already loaded
        env_path: Alternative .env location (tests)
    """
    global _CONFIG_LOADED

    if _CONFIG_LOADED and not force_reload:
        return

    # Import here to keep module import cheap
    from dotenv import load_dotenv

    if env_path is None:
        project_root = Path(__file__).parent.parent
        env_path = project_root / '.env'

    if env_path.exists():
        load_dotenv(env_path, override=False)
        logger.debug("Loaded settings from %s", env_path)

    _CONFIG_LOADED = True


def is_config_loaded() -> bool:
    """Check if configuration has been loaded."""
    return _CONFIG_LOADED


def _get_float(name: str, default: float) -> float:
    load_config()
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r (not a number), using %s", name, raw, default)
        return default


def get_log_level() -> str:
    """Log level name from TRADELAB_LOG_LEVEL (default INFO)."""
    load_config()
    level = (os.getenv('TRADELAB_LOG_LEVEL') or DEFAULT_LOG_LEVEL).strip().upper()
    if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
        return DEFAULT_LOG_LEVEL
    return level


def get_default_commission_rate() -> float:
    """Commission rate from TRADELAB_COMMISSION_RATE (default 0.001)."""
    return _get_float('TRADELAB_COMMISSION_RATE', DEFAULT_COMMISSION_RATE)


def get_default_initial_capital() -> float:
    """Starting capital from TRADELAB_INITIAL_CAPITAL (default 10000)."""
    return _get_float('TRADELAB_INITIAL_CAPITAL', DEFAULT_INITIAL_CAPITAL)


def get_risk_free_rate() -> float:
    """Per-period risk-free rate from TRADELAB_RISK_FREE_RATE (default 0)."""
    return _get_float('TRADELAB_RISK_FREE_RATE', DEFAULT_RISK_FREE_RATE)
