"""Tests for the topology builders and convolutional feature-map layers."""

import sys
import os

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from neuroid_data import DataSet
from neuroid_foundation import (
    BiasNeuron,
    CompetitiveLayer,
    CompetitiveNeuron,
    InputFunctionKind,
    InputNeuron,
    NetworkType,
    ThresholdNeuron,
    TransferFunctionKind,
)
from neuroid_learning import (
    BackPropagation,
    BinaryDeltaRule,
    CompetitiveLearning,
    ConvolutionalBackpropagation,
    KohonenLearning,
    MomentumBackpropagation,
    OutstarLearning,
    UnsupervisedHebbianLearning,
)
from neuroid_networks import (
    CompetitiveNetwork,
    ConvolutionalLayer,
    ConvolutionalNetworkBuilder,
    ElmanNetwork,
    InputMapsLayer,
    Kernel,
    Kohonen,
    MapDimensions,
    MultiLayerPerceptron,
    Outstar,
    Perceptron,
    PoolingLayer,
    UnsupervisedHebbianNetwork,
)


class TestMultiLayerPerceptron:
    def test_structure_with_bias(self):
        net = MultiLayerPerceptron(2, 3, 1)
        sizes = [len(layer) for layer in net.layers]
        assert sizes == [3, 4, 1]
        assert isinstance(net.get_layer_at(0).get_neuron_at(2), BiasNeuron)
        assert isinstance(net.get_layer_at(1).get_neuron_at(3), BiasNeuron)
        assert net.inputs_count == 2
        assert net.outputs_count == 1
        assert net.network_type is NetworkType.MULTI_LAYER_PERCEPTRON
        # (2 + bias) * 3 hidden + (3 + bias) * 1 output
        assert net.connections_count == 13

    def test_defaults(self):
        net = MultiLayerPerceptron([2, 2, 1])
        assert isinstance(net.learning_rule, MomentumBackpropagation)
        assert all(isinstance(n, InputNeuron) for n in net.input_neurons)
        assert net.output_neurons[0].transfer_function.kind is TransferFunctionKind.SIGMOID
        w = net.get_weights()
        assert np.all(w >= -0.7) and np.all(w < 0.7)

    def test_without_bias(self):
        net = MultiLayerPerceptron(2, 2, 1, use_bias=False)
        assert [len(layer) for layer in net.layers] == [2, 2, 1]
        assert net.connections_count == 6

    def test_connect_inputs_to_outputs(self):
        net = MultiLayerPerceptron(2, 2, 1, use_bias=False, connect_inputs_to_outputs=True)
        assert len(net.output_neurons[0].input_connections) == 4

    def test_tanh(self):
        net = MultiLayerPerceptron(2, 2, 1, transfer_function=TransferFunctionKind.TANH)
        assert net.output_neurons[0].transfer_function.kind is TransferFunctionKind.TANH

    def test_too_few_layers(self):
        with pytest.raises(ValueError):
            MultiLayerPerceptron(3)

    def test_forward_pass_in_range(self):
        net = MultiLayerPerceptron(3, 5, 2)
        net.set_input([0.1, 0.5, 0.9])
        net.calculate()
        out = net.get_output()
        assert out.shape == (2,)
        assert np.all((out > 0.0) & (out < 1.0))


class TestSimpleTopologies:
    def test_perceptron(self):
        net = Perceptron(3, 2)
        assert net.network_type is NetworkType.PERCEPTRON
        assert all(isinstance(n, ThresholdNeuron) for n in net.output_neurons)
        assert all(n.transfer_function.kind is TransferFunctionKind.STEP for n in net.output_neurons)
        assert all(n.thresh >= 0.0 for n in net.output_neurons)
        assert isinstance(net.learning_rule, BinaryDeltaRule)
        assert net.connections_count == 6

    def test_outstar(self):
        net = Outstar(4)
        assert net.inputs_count == 1
        assert net.outputs_count == 4
        assert net.input_neurons[0].transfer_function.kind is TransferFunctionKind.STEP
        assert net.output_neurons[0].transfer_function.kind is TransferFunctionKind.RAMP
        assert isinstance(net.learning_rule, OutstarLearning)

    def test_unsupervised_hebbian(self):
        net = UnsupervisedHebbianNetwork(3, 2)
        assert net.network_type is NetworkType.UNSUPERVISED_HEBBIAN_NET
        assert isinstance(net.learning_rule, UnsupervisedHebbianLearning)
        assert net.connections_count == 6

    def test_kohonen(self):
        net = Kohonen(2, 9)
        map_layer = net.get_layer_at(1)
        assert all(n.input_function.kind is InputFunctionKind.DIFFERENCE for n in map_layer)
        assert isinstance(net.learning_rule, KohonenLearning)
        net.set_weights(np.zeros(18))
        net.set_input([3.0, 4.0])
        net.calculate()
        np.testing.assert_allclose(net.get_output(), [5.0] * 9)

    def test_competitive(self):
        net = CompetitiveNetwork(3, 4)
        layer = net.get_layer_at(1)
        assert isinstance(layer, CompetitiveLayer)
        assert isinstance(net.learning_rule, CompetitiveLearning)
        for neuron in layer:
            assert isinstance(neuron, CompetitiveNeuron)
            lateral = neuron.connections_from_this_layer
            assert len(lateral) == 4
            assert sorted(c.weight.value for c in lateral) == pytest.approx([-0.25, -0.25, -0.25, 1.0])
            assert len(neuron.connections_from_other_layers) == 3

    def test_competitive_output_is_one_hot(self):
        net = CompetitiveNetwork(3, 4)
        net.set_input([0.2, 0.9, 0.4])
        net.calculate()
        out = net.get_output()
        assert sorted(out.tolist()) == [0.0, 0.0, 0.0, 1.0]


class TestElman:
    def test_structure(self):
        net = ElmanNetwork(2, 3, 3, 1)
        assert net.network_type is NetworkType.ELMAN
        assert [len(layer) for layer in net.layers] == [3, 4, 3, 1]
        assert isinstance(net.learning_rule, BackPropagation)
        context = net.context_layer
        hidden = net.get_layer_at(1)
        for i, neuron in enumerate(context):
            conns = neuron.input_connections
            assert len(conns) == 1
            assert conns[0].from_neuron is hidden.get_neuron_at(i)
            assert conns[0].weight.value == 1.0

    def test_context_carries_state(self):
        net = ElmanNetwork(1, 2, 2, 1)
        hidden = net.get_layer_at(1)
        net.set_input([1.0])
        net.calculate()
        first_net = hidden.get_neuron_at(0).net_input
        hidden_out = [n.output for n in hidden.neurons[:2]]
        context_out = [n.output for n in net.context_layer]
        np.testing.assert_allclose(context_out, hidden_out)

        # Same input, but the hidden layer now also sees the copied context.
        net.set_input([1.0])
        net.calculate()
        assert hidden.get_neuron_at(0).net_input != pytest.approx(first_net, abs=1e-12)

    def test_trains(self):
        net = ElmanNetwork(1, 3, 3, 1)
        ds = DataSet(1, 1)
        ds.add_row([0.0], [1.0])
        ds.add_row([1.0], [0.0])
        net.learning_rule.max_iterations = 50
        net.learn(ds)
        assert net.learning_rule.current_iteration <= 50


class TestFeatureMaps:
    def test_input_maps(self):
        layer = InputMapsLayer(MapDimensions(4, 3), 2)
        assert len(layer) == 24
        assert layer.number_of_maps == 2
        assert layer.get_map_neuron(1, 0, 0) is layer.get_neuron_at(12)
        assert layer.get_map_neuron(0, 3, 2) is layer.get_neuron_at(11)

    def test_out_of_range(self):
        layer = InputMapsLayer(MapDimensions(2, 2), 1)
        with pytest.raises(IndexError):
            layer.get_map_neuron(0, 2, 0)
        with pytest.raises(IndexError):
            layer.get_feature_map(1)

    def test_convolution_dimensions(self):
        inputs = InputMapsLayer(MapDimensions(6, 5), 1)
        conv = ConvolutionalLayer.following(inputs, Kernel(3, 2), 4)
        assert conv.map_dimensions == MapDimensions(4, 4)
        assert conv.number_of_maps == 4

    def test_kernel_too_large(self):
        inputs = InputMapsLayer(MapDimensions(2, 2), 1)
        with pytest.raises(ValueError):
            ConvolutionalLayer.following(inputs, Kernel(3, 3), 1)

    def test_pooling_dimensions(self):
        inputs = InputMapsLayer(MapDimensions(6, 4), 3)
        pool = PoolingLayer.following(inputs, Kernel(2, 2))
        assert pool.map_dimensions == MapDimensions(3, 2)
        assert pool.number_of_maps == 3
        assert not pool.trainable

    def test_invalid_kernel(self):
        with pytest.raises(ValueError):
            Kernel(0, 2)


def _small_cnn():
    return (ConvolutionalNetworkBuilder(MapDimensions(6, 6))
            .with_convolution_layer(Kernel(3, 3), 2)
            .with_pooling_layer(Kernel(2, 2))
            .with_fully_connected_layer(2)
            .create_network())


class TestConvolutionalNetwork:
    def test_structure(self):
        net = _small_cnn()
        assert net.network_type is NetworkType.CONVOLUTIONAL
        assert [len(layer) for layer in net.layers] == [36, 32, 8, 2]
        assert net.inputs_count == 36
        assert net.outputs_count == 2
        assert isinstance(net.learning_rule, ConvolutionalBackpropagation)

    def test_kernel_weights_shared(self):
        net = _small_cnn()
        conv = net.get_layer_at(1)
        a = conv.get_map_neuron(0, 0, 0).input_connections
        b = conv.get_map_neuron(0, 3, 3).input_connections
        assert len(a) == 9
        assert all(x.weight is y.weight for x, y in zip(a, b))
        other_map = conv.get_map_neuron(1, 0, 0).input_connections
        assert a[0].weight is not other_map[0].weight

    def test_pooling_takes_max(self):
        net = _small_cnn()
        pool = net.get_layer_at(2)
        neuron = pool.get_map_neuron(0, 0, 0)
        assert len(neuron.input_connections) == 4
        assert all(c.weight.value == 1.0 for c in neuron.input_connections)
        assert neuron.input_function.kind is InputFunctionKind.MAX

    def test_training_leaves_pooling_fixed(self):
        net = _small_cnn()
        rng = np.random.default_rng(0)
        ds = DataSet(36, 2)
        for label in range(4):
            target = [1.0, 0.0] if label % 2 else [0.0, 1.0]
            ds.add_row(rng.random(36), target)

        conv_before = [c.weight.value for n in net.get_layer_at(1) for c in n.input_connections]
        net.learning_rule.max_iterations = 3
        net.learn(ds)

        pool = net.get_layer_at(2)
        assert all(c.weight.value == 1.0 for n in pool for c in n.input_connections)
        conv_after = [c.weight.value for n in net.get_layer_at(1) for c in n.input_connections]
        assert conv_after != conv_before

    def test_fully_connected_before_maps_rejected(self):
        builder = ConvolutionalNetworkBuilder(MapDimensions(4, 4)).with_fully_connected_layer(3)
        with pytest.raises(ValueError):
            builder.with_pooling_layer(Kernel(2, 2))
