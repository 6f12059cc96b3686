"""Tests for transfer and input functions."""

import math
import sys
import os

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from neuroid_foundation import (
    Connection,
    InputFunction,
    InputFunctionKind,
    Neuron,
    TransferFunction,
    TransferFunctionKind,
    as_transfer_function,
)


def _tf(kind, **params):
    return TransferFunction(kind, **params)


class TestTransferOutputs:
    def test_linear(self):
        assert _tf(TransferFunctionKind.LINEAR, slope=2.0).output(1.5) == pytest.approx(3.0)

    def test_step(self):
        tf = _tf(TransferFunctionKind.STEP)
        assert tf.output(0.01) == 1.0
        assert tf.output(0.0) == 0.0
        assert tf.output(-1.0) == 0.0

    def test_step_custom_levels(self):
        tf = _tf(TransferFunctionKind.STEP, y_high=1.0, y_low=-1.0)
        assert tf.output(-0.5) == -1.0

    def test_sigmoid(self):
        tf = _tf(TransferFunctionKind.SIGMOID)
        assert tf.output(0.0) == pytest.approx(0.5)
        assert tf.output(2.0) == pytest.approx(1.0 / (1.0 + math.exp(-2.0)))

    def test_sigmoid_clamps(self):
        tf = _tf(TransferFunctionKind.SIGMOID)
        assert tf.output(101.0) == 1.0
        assert tf.output(-101.0) == 0.0
        assert tf.output(1e6) == 1.0

    def test_tanh(self):
        assert _tf(TransferFunctionKind.TANH).output(0.5) == pytest.approx(math.tanh(0.5))

    def test_sgn(self):
        tf = _tf(TransferFunctionKind.SGN)
        assert tf.output(0.3) == 1.0
        assert tf.output(0.0) == -1.0

    def test_ramp(self):
        tf = _tf(TransferFunctionKind.RAMP)
        assert tf.output(2.0) == 1.0
        assert tf.output(-1.0) == 0.0
        assert tf.output(0.4) == pytest.approx(0.4)

    def test_gaussian_peak(self):
        assert _tf(TransferFunctionKind.GAUSSIAN).output(0.0) == pytest.approx(1.0)

    def test_log_domain(self):
        tf = _tf(TransferFunctionKind.LOG)
        assert tf.output(math.e) == pytest.approx(1.0)
        assert tf.output(0.0) == -math.inf
        assert math.isnan(tf.output(-1.0))

    def test_softplus_large_input(self):
        tf = _tf(TransferFunctionKind.SOFTPLUS)
        assert tf.output(0.0) == pytest.approx(math.log(2.0))
        assert tf.output(1000.0) == pytest.approx(1000.0)

    def test_relu(self):
        tf = _tf(TransferFunctionKind.RELU)
        assert tf.output(-2.0) == 0.0
        assert tf.output(2.0) == 2.0

    def test_nan_propagates(self):
        assert math.isnan(_tf(TransferFunctionKind.LINEAR).output(math.nan))


class TestTransferDerivatives:
    def test_sigmoid_derivative(self):
        assert _tf(TransferFunctionKind.SIGMOID).derivative(0.0) == pytest.approx(0.25)

    def test_tanh_derivative(self):
        assert _tf(TransferFunctionKind.TANH).derivative(0.0) == pytest.approx(1.0)

    def test_linear_derivative_is_slope(self):
        assert _tf(TransferFunctionKind.LINEAR, slope=3.0).derivative(7.0) == 3.0

    def test_step_derivative_is_one(self):
        assert _tf(TransferFunctionKind.STEP).derivative(-4.0) == 1.0

    @pytest.mark.parametrize("kind", [
        TransferFunctionKind.SIGMOID,
        TransferFunctionKind.TANH,
        TransferFunctionKind.GAUSSIAN,
        TransferFunctionKind.SIN,
        TransferFunctionKind.SOFTPLUS,
    ])
    def test_matches_numerical_gradient(self, kind):
        tf = _tf(kind)
        x, h = 0.3, 1e-6
        numeric = (tf.output(x + h) - tf.output(x - h)) / (2 * h)
        assert tf.derivative(x) == pytest.approx(numeric, rel=1e-4)


class TestCoercion:
    def test_from_kind_and_name(self):
        assert as_transfer_function(TransferFunctionKind.TANH).kind is TransferFunctionKind.TANH
        assert as_transfer_function("sigmoid").kind is TransferFunctionKind.SIGMOID

    def test_instance_passthrough(self):
        tf = _tf(TransferFunctionKind.LINEAR, slope=0.5)
        assert as_transfer_function(tf) is tf

    def test_invalid(self):
        with pytest.raises(ValueError):
            as_transfer_function(42)


def _connections(pairs):
    target = Neuron()
    conns = []
    for output, weight in pairs:
        source = Neuron()
        source.output = output
        conns.append(Connection(source, target, weight))
    return conns


class TestInputFunctions:
    def test_weighted_sum(self):
        conns = _connections([(1.0, 0.5), (2.0, 0.25)])
        assert InputFunction().output(conns) == pytest.approx(1.0)

    def test_sum_ignores_weights(self):
        conns = _connections([(1.0, 0.5), (2.0, 0.25)])
        assert InputFunction(InputFunctionKind.SUM).output(conns) == pytest.approx(3.0)

    def test_max_min(self):
        conns = _connections([(1.0, 0.5), (2.0, 0.5), (-1.0, 0.5)])
        assert InputFunction(InputFunctionKind.MAX).output(conns) == pytest.approx(1.0)
        assert InputFunction(InputFunctionKind.MIN).output(conns) == pytest.approx(-0.5)

    def test_mean(self):
        conns = _connections([(1.0, 1.0), (3.0, 1.0)])
        assert InputFunction(InputFunctionKind.MEAN).output(conns) == pytest.approx(2.0)

    def test_product(self):
        conns = _connections([(2.0, 1.0), (3.0, 0.5)])
        assert InputFunction(InputFunctionKind.PRODUCT).output(conns) == pytest.approx(3.0)

    def test_difference_is_euclidean_distance(self):
        conns = _connections([(1.0, 0.0), (0.0, 1.0)])
        assert InputFunction(InputFunctionKind.DIFFERENCE).output(conns) == pytest.approx(math.sqrt(2.0))

    def test_empty(self):
        assert InputFunction().output([]) == 0.0
        assert InputFunction(InputFunctionKind.MAX).output([]) == 0.0
