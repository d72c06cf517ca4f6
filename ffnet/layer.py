"""
layer.py
~~~~~~~~

A single fully-connected layer: a weight matrix and a bias column.
"""

from typing import Optional

import numpy as np

from .matrix import Matrix, random_array


class Layer:
    """
    Weights and biases for one step of the forward chain.

    ``weights`` has shape ``(size, input_size)`` and ``biases`` has shape
    ``(size, 1)``.
    """

    def __init__(self, weights: Matrix, biases: Matrix):
        if weights.ndim != 2 or biases.ndim != 2 or biases.shape[1] != 1:
            raise ValueError(
                f"Invalid layer shapes: weights {weights.shape}, "
                f"biases {biases.shape}"
            )
        if weights.shape[0] != biases.shape[0]:
            raise ValueError(
                f"Weights have {weights.shape[0]} rows but biases have "
                f"{biases.shape[0]}"
            )
        self.weights = weights
        self.biases = biases

    @property
    def size(self) -> int:
        return self.weights.shape[0]

    @property
    def input_size(self) -> int:
        return self.weights.shape[1]

    def copy(self) -> 'Layer':
        return Layer(self.weights.copy(), self.biases.copy())

    def __repr__(self) -> str:
        return f"Layer(size={self.size}, input_size={self.input_size})"


def new_layer(
    size: int,
    input_size: int,
    randomize: bool,
    rng: Optional[np.random.Generator] = None
) -> Layer:
    """
    Create a layer of ``size`` neurons reading ``input_size`` values.

    Args:
        size: Number of neurons in the layer
        input_size: Width of the previous layer (or of the network input)
        randomize: Fill with uniform values in (-1, 1) instead of zeros
        rng: Random source used when ``randomize`` is set

    Returns:
        Layer: The new layer

    Raises:
        ValueError: If either size is not a positive integer
    """
    for name, value in (('size', size), ('input_size', input_size)):
        if (not isinstance(value, (int, np.integer)) or isinstance(value, bool)
                or value < 1):
            raise ValueError(f"{name} must be a positive integer, got {value!r}")

    if randomize:
        if rng is None:
            rng = np.random.default_rng()
        weights = random_array(size * input_size, -1, 1, rng)
        biases = random_array(size, -1, 1, rng)
        return Layer(weights.reshape(size, input_size), biases.reshape(size, 1))

    return Layer(
        np.zeros((size, input_size), dtype=np.float64),
        np.zeros((size, 1), dtype=np.float64)
    )
