"""Tests for NeuralNetwork: I/O mapping, calculation, weights, events, plugins."""

import sys
import os

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from neuroid_foundation import (
    InputLayer,
    LabelsPlugin,
    Layer,
    NetworkEventType,
    NeuralNetwork,
    NeuronProperties,
    TransferFunctionKind,
    VectorSizeMismatchError,
    Weight,
    full_connect,
)
from neuroid_random import RangeRandomizer


def _linear_net(inputs=2, outputs=1, weight=0.5):
    net = NeuralNetwork(label="linear")
    in_layer = InputLayer(inputs)
    out_layer = Layer(outputs, NeuronProperties(transfer_function=TransferFunctionKind.LINEAR))
    net.add_layer(in_layer)
    net.add_layer(out_layer)
    full_connect(in_layer, out_layer, weight)
    net.set_input_neurons(in_layer.neurons)
    net.set_output_neurons(out_layer.neurons)
    return net


class TestInputOutput:
    def test_forward_pass(self):
        net = _linear_net()
        net.set_input([1.0, 3.0])
        net.calculate()
        assert net.get_output()[0] == pytest.approx(2.0)

    def test_size_mismatch_raises(self):
        net = _linear_net()
        with pytest.raises(VectorSizeMismatchError):
            net.set_input([1.0])
        with pytest.raises(ValueError):
            net.set_input([1.0, 2.0, 3.0])

    def test_mismatch_leaves_inputs_untouched(self):
        net = _linear_net()
        net.set_input([0.25, 0.75])
        with pytest.raises(VectorSizeMismatchError):
            net.set_input([9.0])
        assert [n.net_input for n in net.input_neurons] == [0.25, 0.75]

    def test_output_buffer_reused(self):
        net = _linear_net()
        net.set_input([1.0, 1.0])
        net.calculate()
        first = net.get_output()
        net.set_input([2.0, 2.0])
        net.calculate()
        second = net.get_output()
        assert first is second
        assert second[0] == pytest.approx(2.0)

    def test_counts(self):
        net = _linear_net(3, 2)
        assert net.inputs_count == 3
        assert net.outputs_count == 2
        assert net.layers_count == 2
        assert net.connections_count == 6

    def test_reset(self):
        net = _linear_net()
        net.set_input([1.0, 1.0])
        net.calculate()
        net.reset()
        assert all(n.output == 0.0 for layer in net.layers for n in layer)

    def test_output_labels(self):
        net = _linear_net(2, 2)
        net.set_output_labels(["yes", "no"])
        assert [n.label for n in net.output_neurons] == ["yes", "no"]


class TestWeights:
    def test_get_weights_order(self):
        net = _linear_net(3, 1)
        for i, c in enumerate(net.iter_input_connections()):
            c.weight.value = float(i)
        np.testing.assert_allclose(net.get_weights(), [0.0, 1.0, 2.0])

    def test_set_weights_roundtrip(self):
        net = _linear_net(2, 2)
        net.set_weights([0.1, 0.2, 0.3, 0.4])
        np.testing.assert_allclose(net.get_weights(), [0.1, 0.2, 0.3, 0.4])

    def test_set_weights_wrong_length(self):
        net = _linear_net(2, 2)
        with pytest.raises(VectorSizeMismatchError):
            net.set_weights([0.1])

    def test_randomize_default_range(self):
        net = _linear_net(4, 4)
        net.randomize_weights()
        w = net.get_weights()
        assert np.all(w >= -0.5) and np.all(w < 0.5)

    def test_randomize_min_max(self):
        net = _linear_net(4, 4)
        net.randomize_weights(1.0, 2.0)
        w = net.get_weights()
        assert np.all(w >= 1.0) and np.all(w < 2.0)

    def test_randomize_seeded_generator(self):
        a, b = _linear_net(3, 3), _linear_net(3, 3)
        a.randomize_weights(np.random.default_rng(7))
        b.randomize_weights(np.random.default_rng(7))
        np.testing.assert_array_equal(a.get_weights(), b.get_weights())

    def test_randomize_policy_object(self):
        net = _linear_net(3, 3)
        net.randomize_weights(RangeRandomizer(-0.1, 0.1, np.random.default_rng(1)))
        assert np.all(np.abs(net.get_weights()) <= 0.1)

    def test_randomize_bad_policy(self):
        with pytest.raises(ValueError):
            _linear_net().randomize_weights("uniform")

    def test_shared_weight_updates_everywhere(self):
        net = _linear_net(2, 2, weight=Weight(0.5))
        first = net.get_layer_at(1).get_neuron_at(0).input_connections[0]
        first.weight.value = 0.9
        np.testing.assert_allclose(net.get_weights(), [0.9] * 4)


class TestEvents:
    def test_structural_events(self):
        net = NeuralNetwork()
        seen = []
        net.register_event_handler(None, lambda e: seen.append(e.event_type))
        layer = Layer()
        net.add_layer(layer)
        layer.add_neuron(InputLayer(1).get_neuron_at(0))
        layer.remove_neuron_at(0)
        net.remove_layer(layer)
        assert seen == [
            NetworkEventType.LAYER_ADDED,
            NetworkEventType.NEURON_ADDED,
            NetworkEventType.NEURON_REMOVED,
            NetworkEventType.LAYER_REMOVED,
        ]

    def test_filtered_handler(self):
        net = _linear_net()
        calculated = []
        net.register_event_handler(NetworkEventType.CALCULATED, calculated.append)
        net.set_input([0.0, 0.0])
        net.calculate()
        net.add_layer(Layer())
        assert len(calculated) == 1
        assert calculated[0].source is net

    def test_unregister(self):
        net = NeuralNetwork()
        seen = []
        handler = seen.append
        net.register_event_handler(None, handler)
        net.unregister_event_handler(None, handler)
        net.add_layer(Layer())
        assert seen == []

    def test_none_handler_rejected(self):
        with pytest.raises(ValueError):
            NeuralNetwork().register_event_handler(None, None)

    def test_listeners_are_per_network(self):
        a, b = NeuralNetwork(), NeuralNetwork()
        seen = []
        a.register_event_handler(None, seen.append)
        b.add_layer(Layer())
        assert seen == []


class TestPlugins:
    def test_one_plugin_per_class(self):
        net = NeuralNetwork()
        first, second = LabelsPlugin({"a": "x"}), LabelsPlugin({"b": "y"})
        net.add_plugin(first)
        net.add_plugin(second)
        assert net.get_plugin(LabelsPlugin) is second
        assert second.parent_network is net
        assert len(net.plugins) == 1

    def test_remove_plugin(self):
        net = NeuralNetwork()
        plugin = LabelsPlugin()
        net.add_plugin(plugin)
        net.remove_plugin(LabelsPlugin)
        assert net.get_plugin(LabelsPlugin) is None
        assert plugin.parent_network is None

    def test_labels(self):
        plugin = LabelsPlugin()
        plugin.set_label("0", "cat")
        assert plugin.get_label("0") == "cat"
        assert plugin.get_label("1") is None


class TestLearningPreconditions:
    def test_learn_without_rule(self):
        with pytest.raises(ValueError):
            _linear_net().learn([])

    def test_learn_without_training_set(self):
        with pytest.raises(ValueError):
            _linear_net().learn(None)

    def test_set_none_rule(self):
        with pytest.raises(ValueError):
            _linear_net().set_learning_rule(None)

    def test_control_without_rule_is_noop(self):
        net = _linear_net()
        net.stop_learning()
        net.pause_learning()
        net.resume_learning()
