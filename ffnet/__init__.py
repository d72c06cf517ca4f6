"""
ffnet package
~~~~~~~~~~~~~

Minimal fully-connected feedforward neural network.
Contains the matrix primitives, layer and network implementation,
and zip-archive persistence of trained models.
"""

from .errors import NetworkError, InvalidDataSize, DimensionMismatch, FormatError
from .layer import Layer, new_layer
from .network import Network
from .model_persistence import (
    NetworkOptions,
    save_network,
    load_network,
    get_network_metadata
)
from .config import configure_logging, make_rng

__version__ = "1.0.0"

__all__ = [
    'NetworkError',
    'InvalidDataSize',
    'DimensionMismatch',
    'FormatError',
    'Layer',
    'new_layer',
    'Network',
    'NetworkOptions',
    'save_network',
    'load_network',
    'get_network_metadata',
    'configure_logging',
    'make_rng',
]
