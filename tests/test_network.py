"""
test_network.py
~~~~~~~~~~~~~~~

Unit tests for layer construction, forward evaluation, backpropagation,
training, perturbation and copying.
"""

import pytest
import os
import sys

import numpy as np

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from ffnet import Network, InvalidDataSize, new_layer
from ffnet.matrix import total_cost

XOR_INPUTS = [[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]]
XOR_OUTPUTS = [[0.0], [1.0], [1.0], [0.0]]


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def simple_network(rng):
    """Create a small randomized 3-4-2 network."""
    return Network(3, 2, [4], learning_rate=0.5, rng=rng)


@pytest.fixture
def zero_network():
    """Create the zero-initialized 2-2-1 network."""
    return Network(2, 1, [2], learning_rate=0.1, randomize=False)


def snapshot(network):
    return [(layer.weights.copy(), layer.biases.copy()) for layer in network.layers]


def assert_same_parameters(network, saved):
    for layer, (weights, biases) in zip(network.layers, saved):
        np.testing.assert_array_equal(layer.weights, weights)
        np.testing.assert_array_equal(layer.biases, biases)


@pytest.mark.unit
class TestConstruction:
    """Test layer and network construction."""

    def test_new_layer_zero(self):
        layer = new_layer(3, 5, randomize=False)
        assert layer.weights.shape == (3, 5)
        assert layer.biases.shape == (3, 1)
        assert not layer.weights.any()
        assert not layer.biases.any()

    def test_new_layer_random_range(self, rng):
        layer = new_layer(20, 30, randomize=True, rng=rng)
        assert np.all(np.abs(layer.weights) < 1.0)
        assert np.all(np.abs(layer.biases) < 1.0)
        assert layer.weights.std() > 0.1

    def test_new_layer_rejects_bad_sizes(self):
        with pytest.raises(ValueError):
            new_layer(0, 3, randomize=False)
        with pytest.raises(ValueError):
            new_layer(3, -1, randomize=False)

    def test_new_layer_rejects_bool_sizes(self):
        with pytest.raises(ValueError):
            new_layer(True, 3, randomize=False)
        with pytest.raises(ValueError):
            new_layer(3, False, randomize=False)

    def test_layer_shapes_follow_topology(self, rng):
        net = Network(4, 3, [5, 6], learning_rate=0.1, rng=rng)
        shapes = [layer.weights.shape for layer in net.layers]
        assert shapes == [(5, 4), (6, 5), (3, 6)]
        assert [layer.biases.shape for layer in net.layers] == [(5, 1), (6, 1), (3, 1)]
        assert net.sizes == [4, 5, 6, 3]

    def test_no_hidden_layers(self):
        net = Network(3, 2, [], learning_rate=0.1, randomize=False)
        assert len(net.layers) == 1
        assert net.layers[0].weights.shape == (2, 3)

    def test_seeded_construction_is_reproducible(self):
        a = Network(3, 2, [4], rng=np.random.default_rng(9))
        b = Network(3, 2, [4], rng=np.random.default_rng(9))
        assert_same_parameters(b, snapshot(a))

    def test_default_learning_rate_from_env(self, monkeypatch):
        monkeypatch.setenv('FFNET_LEARNING_RATE', '0.25')
        net = Network(2, 1, [2], randomize=False)
        assert net.learning_rate == 0.25


@pytest.mark.unit
class TestForward:
    """Test forward evaluation."""

    def test_output_size_and_range(self, simple_network):
        out = simple_network.forward([0.3, -2.0, 5.0])
        assert out.shape == (2,)
        assert np.all((out > 0.0) & (out < 1.0))

    def test_forward_is_deterministic(self, simple_network):
        first = simple_network.forward([1.0, 2.0, 3.0])
        second = simple_network.forward([1.0, 2.0, 3.0])
        np.testing.assert_array_equal(first, second)

    def test_zero_network_outputs_half(self, zero_network):
        np.testing.assert_array_equal(zero_network.forward([1.0, 0.0]), [0.5])

    def test_matches_manual_computation(self, simple_network):
        x = np.array([[0.1], [0.2], [0.3]])
        a = x
        for layer in simple_network.layers:
            a = 1.0 / (1.0 + np.exp(-(layer.weights @ a + layer.biases)))
        np.testing.assert_allclose(simple_network.forward(x.ravel()), a.ravel())

    def test_wrong_input_size(self, simple_network):
        """Test that a wrong-length input raises and changes nothing."""
        before = snapshot(simple_network)
        with pytest.raises(InvalidDataSize):
            simple_network.forward([1.0, 2.0])
        assert_same_parameters(simple_network, before)


@pytest.mark.unit
class TestBackpropagate:
    """Test the single-example update rule."""

    def test_zero_network_single_step(self, zero_network):
        """Trace one update of the zero network by hand."""
        zero_network.backpropagate([1.0, 0.0], [1.0])
        hidden, output = zero_network.layers

        # delta = 1 - 0.5, gradient = 0.5 * 0.25
        np.testing.assert_allclose(output.biases, [[0.025]])
        np.testing.assert_allclose(output.weights, [[0.00625, 0.00625]])

        # back-projected through the updated output weights
        grad = 0.00625 * 0.5 * 0.25
        np.testing.assert_allclose(hidden.biases, [[0.2 * grad], [0.2 * grad]])
        np.testing.assert_allclose(hidden.weights, [[0.1 * grad, 0.0], [0.1 * grad, 0.0]])

    def test_bias_step_is_twice_weight_step(self):
        """Test the factor 2 between bias and weight updates."""
        net = Network(1, 1, [], learning_rate=0.3, randomize=False)
        net.backpropagate([1.0], [1.0])
        layer = net.layers[0]
        assert layer.biases[0, 0] == pytest.approx(2 * layer.weights[0, 0])

    def test_moves_towards_target(self, simple_network):
        x, y = [0.5, -0.5, 1.0], [1.0, 0.0]
        before = total_cost(y, simple_network.forward(x))
        simple_network.backpropagate(x, y)
        assert total_cost(y, simple_network.forward(x)) < before

    def test_repeated_updates_reduce_cost(self, rng):
        net = Network(3, 2, [4], learning_rate=0.1, rng=rng)
        x, y = [0.2, 0.4, 0.6], [0.9, 0.1]
        costs = []
        for _ in range(200):
            net.backpropagate(x, y)
            costs.append(total_cost(y, net.forward(x)))
        assert costs[-1] < costs[0]
        assert all(b <= a + 1e-12 for a, b in zip(costs, costs[1:]))

    def test_wrong_expected_size(self, simple_network):
        before = snapshot(simple_network)
        with pytest.raises(InvalidDataSize):
            simple_network.backpropagate([1.0, 2.0, 3.0], [1.0])
        assert_same_parameters(simple_network, before)


@pytest.mark.unit
class TestTrain:
    """Test the epoch loop and its progress reporting."""

    def test_zero_network_scenario(self, zero_network):
        initial_cost = total_cost([1.0], zero_network.forward([1.0, 0.0]))
        assert initial_cost == 0.25

        summary = zero_network.train([[1.0, 0.0]], [[1.0]], 1)

        for layer in zero_network.layers:
            assert layer.weights.any()
            assert layer.biases.any()
        assert summary['costs'][0] < initial_cost
        assert total_cost([1.0], zero_network.forward([1.0, 0.0])) < initial_cost

    def test_mismatched_lengths(self, simple_network):
        before = snapshot(simple_network)
        with pytest.raises(InvalidDataSize):
            simple_network.train([[0.0, 0.0, 0.0]] * 3, [[0.0, 1.0]] * 2, 5)
        assert_same_parameters(simple_network, before)

    def test_bad_example_width_rejected_before_update(self, simple_network):
        """Test that a malformed late example does not leave partial updates."""
        before = snapshot(simple_network)
        inputs = [[0.0, 0.0, 0.0], [1.0, 1.0]]
        expected = [[0.0, 1.0], [1.0, 0.0]]
        with pytest.raises(InvalidDataSize):
            simple_network.train(inputs, expected, 1)
        assert_same_parameters(simple_network, before)

    def test_callback_receives_every_epoch(self, simple_network):
        events = []
        summary = simple_network.train(
            [[0.1, 0.2, 0.3]], [[1.0, 0.0]], 3, callback=events.append
        )
        assert [e['epoch'] for e in events] == [1, 2, 3]
        assert all(e['total_epochs'] == 3 for e in events)
        assert [e['average_cost'] for e in events] == summary['costs']
        assert summary['epochs'] == 3
        assert summary['elapsed_time'] >= 0.0
        assert summary['average_epoch_time'] == pytest.approx(summary['elapsed_time'] / 3)

    def test_zero_epochs(self, simple_network):
        before = snapshot(simple_network)
        summary = simple_network.train([[0.1, 0.2, 0.3]], [[1.0, 0.0]], 0)
        assert summary['costs'] == []
        assert summary['average_epoch_time'] == 0.0
        assert_same_parameters(simple_network, before)

    def test_training_is_deterministic(self):
        a = Network(2, 1, [3], learning_rate=0.5, rng=np.random.default_rng(5))
        b = a.copy()
        a.train(XOR_INPUTS, XOR_OUTPUTS, 20)
        b.train(XOR_INPUTS, XOR_OUTPUTS, 20)
        assert_same_parameters(b, snapshot(a))

    def test_logs_progress(self, simple_network, caplog):
        import logging
        with caplog.at_level(logging.INFO, logger='ffnet.network'):
            simple_network.train([[0.1, 0.2, 0.3]], [[1.0, 0.0]], 2)
        assert "Began training for 2 epochs" in caplog.text
        assert "Completed epoch 2 of 2" in caplog.text
        assert "Trained for 2 epochs" in caplog.text


@pytest.mark.integration
class TestXor:
    """Test that the network can learn XOR."""

    def test_xor_converges(self):
        """Test that XOR is learned by at least one of three random restarts."""
        results = []
        for seed in range(3):
            net = Network(2, 1, [6], learning_rate=1.0, rng=np.random.default_rng(seed))
            summary = net.train(XOR_INPUTS, XOR_OUTPUTS, 4000)
            predictions = [round(float(net.forward(x)[0])) for x in XOR_INPUTS]
            results.append((summary['costs'][-1], predictions))

        best_cost, best_predictions = min(results)
        assert best_cost < 0.05
        assert best_predictions == [0, 1, 1, 0]


@pytest.mark.unit
class TestPerturbAndCopy:
    """Test random perturbation and deep copies."""

    def test_perturb_bounded(self, simple_network, rng):
        before = snapshot(simple_network)
        simple_network.perturb(0.01, rng=rng)
        for layer, (weights, biases) in zip(simple_network.layers, before):
            diff_w = layer.weights - weights
            diff_b = layer.biases - biases
            assert np.all(np.abs(diff_w) < 0.01)
            assert np.all(np.abs(diff_b) < 0.01)
            assert diff_w.any()
            assert diff_b.any()

    def test_perturb_keeps_shapes(self, simple_network):
        shapes = [(l.weights.shape, l.biases.shape) for l in simple_network.layers]
        simple_network.perturb(0.5)
        assert [(l.weights.shape, l.biases.shape) for l in simple_network.layers] == shapes

    def test_copy_matches_source(self, simple_network):
        clone = simple_network.copy()
        x = [0.4, 0.1, -0.7]
        np.testing.assert_array_equal(clone.forward(x), simple_network.forward(x))
        assert clone.sizes == simple_network.sizes
        assert clone.learning_rate == simple_network.learning_rate

    def test_copy_does_not_alias(self, simple_network):
        before = snapshot(simple_network)
        clone = simple_network.copy()

        clone.backpropagate([1.0, 1.0, 1.0], [0.0, 1.0])
        clone.perturb(0.5)
        clone.layers[0].weights[0, 0] = 42.0
        clone.hidden_sizes.append(7)

        assert_same_parameters(simple_network, before)
        assert simple_network.hidden_sizes == [4]
        for a, b in zip(simple_network.layers, clone.layers):
            assert not np.shares_memory(a.weights, b.weights)
            assert not np.shares_memory(a.biases, b.biases)
