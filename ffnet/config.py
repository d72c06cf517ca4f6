"""
config.py
~~~~~~~~~

Environment-driven settings and logging setup.

Variables:
- LOG_LEVEL: root log level for :func:`configure_logging` (default INFO)
- FFNET_LEARNING_RATE: learning rate used when none is given (default 0.1)
- FFNET_SEED: integer seed for :func:`make_rng` when none is given
"""

import os
import logging
from typing import Optional

import numpy as np

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> int:
    """
    Set up logging for applications embedding ffnet.

    Args:
        level: Level name; falls back to the LOG_LEVEL variable, then INFO

    Returns:
        int: The numeric level that was applied
    """
    log_level_str = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    log_level = getattr(logging, log_level_str, None)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    logging.basicConfig(level=log_level, format=LOG_FORMAT)
    logging.getLogger('ffnet').setLevel(log_level)
    return log_level


def default_learning_rate() -> float:
    """Learning rate from FFNET_LEARNING_RATE, or 0.1."""
    raw = os.getenv('FFNET_LEARNING_RATE')
    if raw is None:
        return 0.1
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid FFNET_LEARNING_RATE={raw!r}")
        return 0.1


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """
    Build a random source for layer initialization and perturbation.

    Args:
        seed: Explicit seed; when omitted FFNET_SEED is used if set

    Returns:
        numpy.random.Generator
    """
    if seed is None:
        raw = os.getenv('FFNET_SEED')
        if raw is not None:
            try:
                seed = int(raw)
            except ValueError:
                logger.warning(f"Ignoring invalid FFNET_SEED={raw!r}")
    return np.random.default_rng(seed)
