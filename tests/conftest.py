import logging

import pytest


@pytest.fixture(autouse=True)
def reset_ffnet_logger():
    """Keep log level changes made by one test out of the next."""
    logger = logging.getLogger('ffnet')
    level = logger.level
    yield
    logger.setLevel(level)
