"""
Neuroid Networks - Ready-made topologies and the feature-map layers used by
convolutional networks.

Each builder is a ``NeuralNetwork`` subclass whose constructor creates the
layers, wires them, tags ``network_type``, selects the input and output
neurons and attaches the usual learning rule for that architecture.

Usage::

    from neuroid_networks import MultiLayerPerceptron

    mlp = MultiLayerPerceptron(2, 3, 1)
    mlp.learn(xor_set)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from neuroid_foundation import (
    BiasNeuron,
    CompetitiveLayer,
    CompetitiveNeuron,
    InputFunctionKind,
    InputLayer,
    InputNeuron,
    Layer,
    NetworkType,
    NeuralNetwork,
    Neuron,
    NeuronProperties,
    ThresholdNeuron,
    TransferFunctionKind,
    Weight,
    create_connection,
    create_layer,
    create_neuron,
    forward_connect,
    full_connect,
    full_connect_within,
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
from neuroid_random import RangeRandomizer

logger = logging.getLogger("neuroid.networks")


def set_default_io(network: NeuralNetwork) -> None:
    """Inputs: non-bias neurons of the first layer.  Outputs: the last layer."""
    layers = network.layers
    if not layers:
        raise ValueError("Network has no layers")
    network.set_input_neurons([n for n in layers[0] if not isinstance(n, BiasNeuron)])
    network.set_output_neurons(layers[-1].neurons)


def _layer_sizes(sizes: Sequence[Any]) -> List[int]:
    if len(sizes) == 1 and isinstance(sizes[0], (list, tuple)):
        sizes = sizes[0]
    sizes = [int(s) for s in sizes]
    if any(s < 1 for s in sizes):
        raise ValueError(f"Layer sizes must be positive: {sizes}")
    return sizes


# ---------------------------------------------------------------------------
# Feed-forward topologies
# ---------------------------------------------------------------------------

class MultiLayerPerceptron(NeuralNetwork):
    """Fully connected feed-forward network trained with momentum backpropagation.

    Args:
        *neurons_in_layers: Layer sizes, input first (or one list of sizes).
        transfer_function: Activation of hidden and output neurons.
        use_bias: Add a bias neuron to the input and every hidden layer.
        connect_inputs_to_outputs: Also connect the input layer directly to
            the output layer.
        label: Network name.
    """

    def __init__(
        self,
        *neurons_in_layers: Any,
        transfer_function: Any = TransferFunctionKind.SIGMOID,
        use_bias: bool = True,
        connect_inputs_to_outputs: bool = False,
        label: str = "",
    ):
        super().__init__(label)
        sizes = _layer_sizes(neurons_in_layers)
        if len(sizes) < 2:
            raise ValueError("A multi layer perceptron needs at least an input and an output layer")
        self.network_type = NetworkType.MULTI_LAYER_PERCEPTRON

        input_layer = InputLayer(sizes[0])
        input_layer.label = "Input"
        if use_bias:
            input_layer.add_neuron(BiasNeuron())
        self.add_layer(input_layer)

        properties = NeuronProperties(transfer_function=transfer_function, use_bias=use_bias)
        previous = input_layer
        for position, count in enumerate(sizes[1:], start=1):
            layer = create_layer(count, properties)
            is_output = position == len(sizes) - 1
            layer.label = "Output" if is_output else f"Hidden {position}"
            if use_bias and not is_output:
                layer.add_neuron(BiasNeuron())
            self.add_layer(layer)
            full_connect(previous, layer)
            previous = layer

        if connect_inputs_to_outputs:
            full_connect(input_layer, previous, connect_bias=False)

        set_default_io(self)
        self.set_learning_rule(MomentumBackpropagation())
        self.randomize_weights(RangeRandomizer(-0.7, 0.7))
        logger.debug("Created MLP %s with %d connections", sizes, self.connections_count)


class Perceptron(NeuralNetwork):
    """Single-layer perceptron of threshold neurons trained with the binary delta rule."""

    def __init__(
        self,
        inputs_count: int,
        outputs_count: int,
        transfer_function: Any = TransferFunctionKind.STEP,
        label: str = "",
    ):
        super().__init__(label)
        self.network_type = NetworkType.PERCEPTRON

        input_layer = create_layer(inputs_count, NeuronProperties(transfer_function=TransferFunctionKind.LINEAR))
        self.add_layer(input_layer)

        output_properties = NeuronProperties(
            neuron_type=ThresholdNeuron,
            transfer_function=transfer_function,
            params={"thresh": abs(float(np.random.random()))},
        )
        output_layer = create_layer(outputs_count, output_properties)
        self.add_layer(output_layer)

        full_connect(input_layer, output_layer)
        set_default_io(self)
        self.set_learning_rule(BinaryDeltaRule())


class Outstar(NeuralNetwork):
    """One step input neuron fanning out to ramp outputs, trained with the outstar rule."""

    def __init__(self, outputs_count: int, label: str = ""):
        super().__init__(label)
        self.network_type = NetworkType.OUTSTAR

        input_layer = create_layer(1, NeuronProperties(transfer_function=TransferFunctionKind.STEP))
        output_layer = create_layer(outputs_count, NeuronProperties(transfer_function=TransferFunctionKind.RAMP))
        self.add_layer(input_layer)
        self.add_layer(output_layer)

        full_connect(input_layer, output_layer)
        set_default_io(self)
        self.set_learning_rule(OutstarLearning())


class UnsupervisedHebbianNetwork(NeuralNetwork):
    """Two fully connected layers trained with the plain Hebbian rule."""

    def __init__(
        self,
        inputs_count: int,
        outputs_count: int,
        transfer_function: Any = TransferFunctionKind.LINEAR,
        label: str = "",
    ):
        super().__init__(label)
        self.network_type = NetworkType.UNSUPERVISED_HEBBIAN_NET

        properties = NeuronProperties(transfer_function=transfer_function)
        input_layer = create_layer(inputs_count, properties)
        output_layer = create_layer(outputs_count, properties)
        self.add_layer(input_layer)
        self.add_layer(output_layer)

        full_connect(input_layer, output_layer)
        set_default_io(self)
        self.set_learning_rule(UnsupervisedHebbianLearning())


class ElmanNetwork(NeuralNetwork):
    """Simple recurrent network with a context layer copying the hidden layer.

    The hidden layer feeds the context layer one-to-one with weight 1, and
    the context layer feeds back into the hidden layer on the next
    calculate.  Because the context layer comes after the hidden layer in
    calculation order, the hidden layer always sees the previous context.
    """

    def __init__(
        self,
        inputs_count: int,
        hidden_count: int,
        context_count: int,
        outputs_count: int,
        label: str = "",
    ):
        super().__init__(label)
        self.network_type = NetworkType.ELMAN
        properties = NeuronProperties(transfer_function=TransferFunctionKind.SIGMOID)

        input_layer = InputLayer(inputs_count)
        input_layer.label = "Input"
        input_layer.add_neuron(BiasNeuron())
        self.add_layer(input_layer)

        hidden_layer = create_layer(hidden_count, properties)
        hidden_layer.label = "Hidden"
        hidden_layer.add_neuron(BiasNeuron())
        self.add_layer(hidden_layer)
        full_connect(input_layer, hidden_layer)

        context_layer = create_layer(context_count, NeuronProperties(transfer_function=TransferFunctionKind.LINEAR))
        context_layer.label = "Context"
        self.add_layer(context_layer)
        forward_connect(hidden_layer, context_layer, 1.0)
        full_connect(context_layer, hidden_layer)

        output_layer = create_layer(outputs_count, properties)
        output_layer.label = "Output"
        self.add_layer(output_layer)
        full_connect(hidden_layer, output_layer)

        set_default_io(self)
        self.set_learning_rule(BackPropagation())

    @property
    def context_layer(self) -> Layer:
        return self.get_layer_at(2)


# ---------------------------------------------------------------------------
# Self-organizing and competitive topologies
# ---------------------------------------------------------------------------

class Kohonen(NeuralNetwork):
    """Self-organizing map: map neurons output their distance to the input."""

    def __init__(self, inputs_count: int, outputs_count: int, label: str = ""):
        super().__init__(label)
        self.network_type = NetworkType.KOHONEN

        input_layer = create_layer(inputs_count, NeuronProperties())
        map_layer = create_layer(
            outputs_count,
            NeuronProperties(
                input_function=InputFunctionKind.DIFFERENCE,
                transfer_function=TransferFunctionKind.LINEAR,
            ),
        )
        map_layer.label = "Map"
        self.add_layer(input_layer)
        self.add_layer(map_layer)

        full_connect(input_layer, map_layer)
        set_default_io(self)
        self.set_learning_rule(KohonenLearning())


class CompetitiveNetwork(NeuralNetwork):
    """Input layer feeding a winner-take-all layer with lateral inhibition.

    Every competitive neuron inhibits the others with weight ``-1/n``.
    """

    def __init__(self, inputs_count: int, outputs_count: int, competition_iterations: int = 100, label: str = ""):
        super().__init__(label)
        self.network_type = NetworkType.COMPETITIVE

        input_layer = create_layer(inputs_count, NeuronProperties())
        competitive_layer = CompetitiveLayer(
            outputs_count,
            NeuronProperties(
                neuron_type=CompetitiveNeuron,
                input_function=InputFunctionKind.WEIGHTED_SUM,
                transfer_function=TransferFunctionKind.RAMP,
            ),
            max_iterations=competition_iterations,
        )
        competitive_layer.label = "Competitive"
        self.add_layer(input_layer)
        self.add_layer(competitive_layer)

        full_connect_within(competitive_layer, -1.0 / outputs_count)
        full_connect(input_layer, competitive_layer)
        set_default_io(self)
        self.set_learning_rule(CompetitiveLearning())


# ---------------------------------------------------------------------------
# Feature-map layers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Kernel:
    """Receptive field size of a convolution or pooling step."""
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width < 1 or self.height < 1:
            raise ValueError(f"Kernel dimensions must be positive: {self.width}x{self.height}")


@dataclass(frozen=True)
class MapDimensions:
    """Width and height of every feature map in a layer."""
    width: int
    height: int

    @property
    def size(self) -> int:
        return self.width * self.height


class FeatureMapsLayer(Layer):
    """Layer made of equally sized 2D feature maps stored map after map.

    Neuron ``(map, x, y)`` lives at index ``map * width * height + y * width + x``.

    Args:
        map_dimensions: Size of each map.
        kernel: Receptive field this layer was built with, if any.
    """

    def __init__(self, map_dimensions: MapDimensions, kernel: Optional[Kernel] = None):
        super().__init__()
        self.map_dimensions = map_dimensions
        self.kernel = kernel
        self.number_of_maps = 0

    def create_feature_maps(self, count: int, neuron_properties: NeuronProperties) -> None:
        for _ in range(count):
            for _ in range(self.map_dimensions.size):
                self.add_neuron(create_neuron(neuron_properties))
            self.number_of_maps += 1

    def get_feature_map(self, map_index: int) -> List[Neuron]:
        if not 0 <= map_index < self.number_of_maps:
            raise IndexError(f"Feature map {map_index} out of range")
        size = self.map_dimensions.size
        return self._neurons[map_index * size:(map_index + 1) * size]

    def get_map_neuron(self, map_index: int, x: int, y: int) -> Neuron:
        dims = self.map_dimensions
        if not (0 <= x < dims.width and 0 <= y < dims.height):
            raise IndexError(f"Position ({x}, {y}) outside {dims.width}x{dims.height} map")
        return self.get_feature_map(map_index)[y * dims.width + x]

    def connect_maps(self, from_layer: "FeatureMapsLayer", from_map: int, to_map: int) -> None:
        raise NotImplementedError

    def get_state(self) -> Dict[str, Any]:
        state: Dict[str, Any] = {
            "map_width": self.map_dimensions.width,
            "map_height": self.map_dimensions.height,
            "number_of_maps": self.number_of_maps,
        }
        if self.kernel is not None:
            state["kernel_width"] = self.kernel.width
            state["kernel_height"] = self.kernel.height
        return state

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "FeatureMapsLayer":
        kernel = None
        if "kernel_width" in state:
            kernel = Kernel(state["kernel_width"], state["kernel_height"])
        layer = cls.__new__(cls)
        FeatureMapsLayer.__init__(layer, MapDimensions(state["map_width"], state["map_height"]), kernel)
        layer.number_of_maps = state.get("number_of_maps", 0)
        return layer


class InputMapsLayer(FeatureMapsLayer):
    """Feature maps of input neurons receiving the image channels."""

    def __init__(self, map_dimensions: MapDimensions, number_of_maps: int = 1):
        super().__init__(map_dimensions)
        self.create_feature_maps(
            number_of_maps,
            NeuronProperties(neuron_type=InputNeuron, transfer_function=TransferFunctionKind.LINEAR),
        )


class ConvolutionalLayer(FeatureMapsLayer):
    """Feature maps whose neurons share one kernel of weights per map pair."""

    neuron_properties = NeuronProperties(transfer_function=TransferFunctionKind.TANH)

    @classmethod
    def following(
        cls,
        from_layer: FeatureMapsLayer,
        kernel: Kernel,
        number_of_maps: int,
        neuron_properties: Optional[NeuronProperties] = None,
    ) -> "ConvolutionalLayer":
        """Create a layer sized for a valid convolution of ``from_layer``."""
        source = from_layer.map_dimensions
        dims = MapDimensions(source.width - kernel.width + 1, source.height - kernel.height + 1)
        if dims.width < 1 or dims.height < 1:
            raise ValueError(f"Kernel {kernel.width}x{kernel.height} larger than {source.width}x{source.height} maps")
        layer = cls(dims, kernel)
        layer.create_feature_maps(number_of_maps, neuron_properties or cls.neuron_properties)
        return layer

    def connect_maps(self, from_layer: FeatureMapsLayer, from_map: int, to_map: int) -> None:
        kernel = self.kernel
        shared = [[Weight() for _ in range(kernel.width)] for _ in range(kernel.height)]
        for y in range(self.map_dimensions.height):
            for x in range(self.map_dimensions.width):
                to_neuron = self.get_map_neuron(to_map, x, y)
                for ky in range(kernel.height):
                    for kx in range(kernel.width):
                        from_neuron = from_layer.get_map_neuron(from_map, x + kx, y + ky)
                        create_connection(from_neuron, to_neuron, shared[ky][kx])


class PoolingLayer(FeatureMapsLayer):
    """Max pooling over non-overlapping kernel windows with a fixed weight of 1."""

    trainable = False
    neuron_properties = NeuronProperties(
        input_function=InputFunctionKind.MAX,
        transfer_function=TransferFunctionKind.TANH,
    )

    @classmethod
    def following(
        cls,
        from_layer: FeatureMapsLayer,
        kernel: Kernel,
        neuron_properties: Optional[NeuronProperties] = None,
    ) -> "PoolingLayer":
        source = from_layer.map_dimensions
        dims = MapDimensions(source.width // kernel.width, source.height // kernel.height)
        if dims.width < 1 or dims.height < 1:
            raise ValueError(f"Kernel {kernel.width}x{kernel.height} larger than {source.width}x{source.height} maps")
        layer = cls(dims, kernel)
        layer.create_feature_maps(from_layer.number_of_maps, neuron_properties or cls.neuron_properties)
        return layer

    def connect_maps(self, from_layer: FeatureMapsLayer, from_map: int, to_map: int) -> None:
        kernel = self.kernel
        shared = Weight(1.0)
        for y in range(self.map_dimensions.height):
            for x in range(self.map_dimensions.width):
                to_neuron = self.get_map_neuron(to_map, x, y)
                for ky in range(kernel.height):
                    for kx in range(kernel.width):
                        from_neuron = from_layer.get_map_neuron(
                            from_map, x * kernel.width + kx, y * kernel.height + ky
                        )
                        create_connection(from_neuron, to_neuron, shared)


def full_connect_map_layers(from_layer: FeatureMapsLayer, to_layer: FeatureMapsLayer) -> None:
    """Connect every map of ``from_layer`` to every map of ``to_layer``."""
    for from_map in range(from_layer.number_of_maps):
        for to_map in range(to_layer.number_of_maps):
            to_layer.connect_maps(from_layer, from_map, to_map)


def connect_map_layers_one_to_one(from_layer: FeatureMapsLayer, to_layer: FeatureMapsLayer) -> None:
    """Connect map ``i`` of ``from_layer`` to map ``i`` of ``to_layer``."""
    for index in range(min(from_layer.number_of_maps, to_layer.number_of_maps)):
        to_layer.connect_maps(from_layer, index, index)


# ---------------------------------------------------------------------------
# Convolutional network
# ---------------------------------------------------------------------------

class ConvolutionalNetwork(NeuralNetwork):
    """Network assembled by ``ConvolutionalNetworkBuilder``."""

    def __init__(self, label: str = ""):
        super().__init__(label)
        self.network_type = NetworkType.CONVOLUTIONAL


class ConvolutionalNetworkBuilder:
    """Fluent builder for convolutional networks.

    Usage::

        net = (ConvolutionalNetworkBuilder(MapDimensions(6, 6))
               .with_convolution_layer(Kernel(3, 3), 2)
               .with_pooling_layer(Kernel(2, 2))
               .with_fully_connected_layer(3)
               .create_network())

    Args:
        map_dimensions: Size of each input map.
        number_of_maps: Input channels.
    """

    def __init__(self, map_dimensions: MapDimensions, number_of_maps: int = 1, label: str = ""):
        self.network = ConvolutionalNetwork(label)
        input_layer = InputMapsLayer(map_dimensions, number_of_maps)
        input_layer.label = "Input"
        self.network.add_layer(input_layer)

    def _last_layer(self) -> Layer:
        return self.network.get_layer_at(self.network.layers_count - 1)

    def _last_feature_maps(self) -> FeatureMapsLayer:
        last = self._last_layer()
        if not isinstance(last, FeatureMapsLayer):
            raise ValueError("Feature-map layers must come before fully connected layers")
        return last

    def with_convolution_layer(
        self,
        kernel: Kernel,
        number_of_maps: int,
        neuron_properties: Optional[NeuronProperties] = None,
    ) -> "ConvolutionalNetworkBuilder":
        previous = self._last_feature_maps()
        layer = ConvolutionalLayer.following(previous, kernel, number_of_maps, neuron_properties)
        layer.label = "Convolution"
        self.network.add_layer(layer)
        full_connect_map_layers(previous, layer)
        return self

    def with_pooling_layer(self, kernel: Kernel) -> "ConvolutionalNetworkBuilder":
        previous = self._last_feature_maps()
        layer = PoolingLayer.following(previous, kernel)
        layer.label = "Pooling"
        self.network.add_layer(layer)
        connect_map_layers_one_to_one(previous, layer)
        return self

    def with_fully_connected_layer(
        self,
        neurons_count: int,
        transfer_function: Any = TransferFunctionKind.SIGMOID,
    ) -> "ConvolutionalNetworkBuilder":
        previous = self._last_layer()
        layer = create_layer(neurons_count, NeuronProperties(transfer_function=transfer_function))
        layer.label = "Fully connected"
        self.network.add_layer(layer)
        full_connect(previous, layer)
        return self

    def create_network(self) -> ConvolutionalNetwork:
        network = self.network
        network.set_input_neurons(network.get_layer_at(0).neurons)
        network.set_output_neurons(self._last_layer().neurons)
        network.set_learning_rule(ConvolutionalBackpropagation())
        return network
