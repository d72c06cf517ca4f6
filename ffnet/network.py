"""
network.py
~~~~~~~~~~

A fully-connected feedforward network with sigmoid activations, trained
one example at a time by backpropagation of a squared-error cost.

Example:
    >>> net = Network(2, 1, [3], learning_rate=0.5, rng=np.random.default_rng(7))
    >>> summary = net.train([[0, 0], [0, 1], [1, 0], [1, 1]], [[0], [1], [1], [0]], 100)
    >>> net.forward([1, 0])
"""

import time
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from . import matrix as mx
from .config import default_learning_rate
from .errors import InvalidDataSize
from .layer import Layer, new_layer

logger = logging.getLogger(__name__)

EpochCallback = Callable[[Dict[str, Any]], None]


class Network:
    """
    Ordered chain of layers plus the learning rate used to train them.

    Layer ``0`` reads ``input_size`` values; each following layer reads the
    previous layer's output. With no hidden sizes the network is a single
    ``output_size x input_size`` layer.
    """

    def __init__(
        self,
        input_size: int,
        output_size: int,
        hidden_sizes: Optional[Sequence[int]] = None,
        learning_rate: Optional[float] = None,
        randomize: bool = True,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Build a network with freshly initialized layers.

        Args:
            input_size: Width of the input vector
            output_size: Width of the output vector
            hidden_sizes: Neuron count of each hidden layer, in order
            learning_rate: Step size for backpropagation; FFNET_LEARNING_RATE
                or 0.1 when omitted
            randomize: Uniform (-1, 1) initialization instead of zeros
            rng: Random source for the initialization

        Raises:
            ValueError: If any size is not a positive integer
        """
        hidden = list(hidden_sizes) if hidden_sizes is not None else []
        if randomize and rng is None:
            rng = np.random.default_rng()

        sizes = hidden + [output_size]
        inputs = [input_size] + hidden
        self.layers: List[Layer] = [
            new_layer(size, width, randomize, rng)
            for size, width in zip(sizes, inputs)
        ]

        self.input_size = input_size
        self.output_size = output_size
        self.hidden_sizes = hidden
        self.learning_rate = (
            default_learning_rate() if learning_rate is None
            else float(learning_rate)
        )

        logger.debug(
            f"Created network {self.sizes} "
            f"(randomize={randomize}, learning_rate={self.learning_rate})"
        )

    @property
    def sizes(self) -> List[int]:
        """All layer widths, input first."""
        return [self.input_size] + self.hidden_sizes + [self.output_size]

    def __repr__(self) -> str:
        return f"Network(sizes={self.sizes}, learning_rate={self.learning_rate})"

    def _as_column(self, data: Sequence[float], width: int, what: str) -> np.ndarray:
        values = np.asarray(data, dtype=np.float64)
        if values.size != width:
            raise InvalidDataSize(
                f"{what} has {values.size} values, network expects {width}"
            )
        return mx.column(values)

    def forward(self, data: Sequence[float]) -> np.ndarray:
        """
        Evaluate the network on one input vector.

        Args:
            data: ``input_size`` floats

        Returns:
            numpy.ndarray: ``output_size`` activations, each in (0, 1)

        Raises:
            InvalidDataSize: If ``data`` has the wrong length
        """
        activation = self._as_column(data, self.input_size, "Input")

        for layer in self.layers:
            activation = mx.activate(
                mx.add(mx.matmul(layer.weights, activation), layer.biases)
            )

        return activation.ravel()

    def backpropagate(
        self,
        input_data: Sequence[float],
        expected_data: Sequence[float]
    ) -> None:
        """
        Nudge every layer towards producing ``expected_data`` for ``input_data``.

        Layers are updated in place from last to first. The error is
        ``expected - actual``; biases move by ``2 * learning_rate`` times the
        gradient term and weights by ``learning_rate`` times its outer
        product with the layer input.

        Raises:
            InvalidDataSize: If either vector has the wrong length
        """
        inputs = self._as_column(input_data, self.input_size, "Input")
        expected = self._as_column(expected_data, self.output_size, "Expected output")

        zs: List[np.ndarray] = []
        activations: List[np.ndarray] = []
        activation = inputs
        for layer in self.layers:
            z = mx.add(mx.matmul(layer.weights, activation), layer.biases)
            activation = mx.activate(z)
            zs.append(z)
            activations.append(activation)

        last = len(self.layers) - 1
        errors = mx.sub(expected, activations[last])

        for i in range(last, -1, -1):
            layer = self.layers[i]
            if i != last:
                # weights of layer i + 1 were already updated above
                errors = mx.matmul(mx.transpose(self.layers[i + 1].weights), errors)

            gradient = mx.hadamard(errors, mx.activate_prime(zs[i]))
            previous = inputs if i == 0 else activations[i - 1]

            layer.biases = mx.add(
                layer.biases, mx.scale(2 * self.learning_rate, gradient)
            )
            layer.weights = mx.add(
                layer.weights,
                mx.scale(
                    self.learning_rate,
                    mx.matmul(gradient, mx.transpose(previous))
                )
            )

    def train(
        self,
        inputs: Sequence[Sequence[float]],
        expected: Sequence[Sequence[float]],
        epochs: int,
        callback: Optional[EpochCallback] = None
    ) -> Dict[str, Any]:
        """
        Run ``epochs`` passes of per-example backpropagation.

        Examples are visited in the given order with no shuffling. After
        each update the squared error of the updated network on that
        example is accumulated; its mean over the epoch is reported.

        Args:
            inputs: Training inputs, each ``input_size`` wide
            expected: Expected outputs, each ``output_size`` wide
            epochs: Number of passes over the data
            callback: Called after every epoch with a dict holding
                ``epoch``, ``total_epochs``, ``elapsed_time`` and
                ``average_cost``

        Returns:
            dict: ``epochs``, ``elapsed_time``, ``average_epoch_time`` (seconds)
            and ``costs``, the per-epoch average costs

        Raises:
            InvalidDataSize: If the sequences differ in length or any example
                has the wrong width; raised before any layer is touched
        """
        if len(inputs) != len(expected):
            raise InvalidDataSize(
                f"Got {len(inputs)} inputs but {len(expected)} expected outputs"
            )
        if epochs < 0:
            raise ValueError(f"epochs must be non-negative, got {epochs}")

        for index, (x, y) in enumerate(zip(inputs, expected)):
            if np.size(x) != self.input_size or np.size(y) != self.output_size:
                raise InvalidDataSize(
                    f"Example {index} has shape ({np.size(x)} -> {np.size(y)}), "
                    f"network expects ({self.input_size} -> {self.output_size})"
                )

        logger.info(f"Began training for {epochs} epochs...")

        costs: List[float] = []
        start = time.perf_counter()

        for epoch in range(epochs):
            counter = time.perf_counter()
            avg_cost = 0.0

            for x, y in zip(inputs, expected):
                self.backpropagate(x, y)
                avg_cost += mx.total_cost(y, self.forward(x))

            if len(inputs):
                avg_cost /= len(inputs)
            costs.append(avg_cost)

            elapsed = time.perf_counter() - counter
            logger.info(
                f"  + Completed epoch {epoch + 1} of {epochs} in "
                f"{elapsed * 1000:.0f}ms with an average cost of {avg_cost:.5f}"
            )

            if callback is not None:
                callback({
                    'epoch': epoch + 1,
                    'total_epochs': epochs,
                    'elapsed_time': elapsed,
                    'average_cost': avg_cost
                })

        total = time.perf_counter() - start
        per_epoch = total / epochs if epochs else 0.0

        logger.info(
            f"Trained for {epochs} epochs in {total * 1000:.0f}ms with an "
            f"average of {per_epoch * 1000:.0f}ms per epoch."
        )

        return {
            'epochs': epochs,
            'elapsed_time': total,
            'average_epoch_time': per_epoch,
            'costs': costs
        }

    def perturb(
        self,
        strength: float,
        rng: Optional[np.random.Generator] = None
    ) -> None:
        """Add uniform noise in (-strength, strength) to every parameter."""
        if rng is None:
            rng = np.random.default_rng()

        for layer in self.layers:
            wr, wc = layer.weights.shape
            br, bc = layer.biases.shape
            layer.weights = mx.add(
                layer.weights,
                mx.random_array(wr * wc, -strength, strength, rng).reshape(wr, wc)
            )
            layer.biases = mx.add(
                layer.biases,
                mx.random_array(br * bc, -strength, strength, rng).reshape(br, bc)
            )

    def copy(self) -> 'Network':
        """Deep copy sharing no storage with this network."""
        clone = Network.__new__(Network)
        clone.input_size = self.input_size
        clone.output_size = self.output_size
        clone.hidden_sizes = list(self.hidden_sizes)
        clone.learning_rate = self.learning_rate
        clone.layers = [layer.copy() for layer in self.layers]
        return clone
