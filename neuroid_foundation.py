"""
Neuroid Foundation - Core network graph and calculation engine.

Models an artificial neural network as an ordered list of layers, each an
ordered list of neurons, joined by directed weighted connections.  A network
calculates by sweeping its layers in order; learning rules (see
``neuroid_learning``) mutate connection weights in place.

Design principles:
    - Direct ownership: a network owns its layers, a layer owns its neurons,
      a connection holds plain references to its two endpoint neurons.
    - One connection object per edge: the same instance sits in the source
      neuron's output connections and the target neuron's input connections,
      so a weight change is visible from both ends.
    - Closed function sets: transfer and input functions are tagged variants
      (``TransferFunctionKind`` / ``InputFunctionKind``), stored by tag.
    - Per-network event registry: listeners live and die with the network.

Usage::

    from neuroid_foundation import (
        InputLayer, Layer, NeuralNetwork, NeuronProperties, TransferFunctionKind, full_connect,
    )

    net = NeuralNetwork()
    inputs = InputLayer(2)
    outputs = Layer(1, NeuronProperties(transfer_function=TransferFunctionKind.SIGMOID))
    net.add_layer(inputs)
    net.add_layer(outputs)
    full_connect(inputs, outputs)
    net.set_input_neurons(inputs.neurons)
    net.set_output_neurons(outputs.neurons)
    net.set_input([1.0, 0.0])
    net.calculate()
    print(net.get_output())
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
    Type,
    Union,
)

import numpy as np

from neuroid_random import RangeRandomizer, WeightsRandomizer

logger = logging.getLogger("neuroid.network")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class NeuroidError(Exception):
    """Base class for all library specific failures."""


class VectorSizeMismatchError(NeuroidError, ValueError):
    """A vector does not match the dimension it is applied to."""


class PersistenceError(NeuroidError):
    """Saving or loading a network snapshot failed.

    The underlying I/O or decode error is chained as ``__cause__``.
    """


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class NetworkType(Enum):
    """Architecture tag set by the topology builders."""
    MULTI_LAYER_PERCEPTRON = auto()
    PERCEPTRON = auto()
    KOHONEN = auto()
    COMPETITIVE = auto()
    CONVOLUTIONAL = auto()
    ELMAN = auto()
    OUTSTAR = auto()
    UNSUPERVISED_HEBBIAN_NET = auto()


class NetworkEventType(Enum):
    """Structural and lifecycle events delivered to network listeners."""
    NEURON_ADDED = auto()
    NEURON_REMOVED = auto()
    LAYER_ADDED = auto()
    LAYER_REMOVED = auto()
    CALCULATED = auto()
    LEARNING_STARTED = auto()
    EPOCH_ENDED = auto()
    LEARNING_STOPPED = auto()


class CompetitionPhase(Enum):
    """Which input connections a competitive neuron reads."""
    EXTERNAL_INPUT = auto()
    LATERAL = auto()


# ---------------------------------------------------------------------------
# Transfer functions
# ---------------------------------------------------------------------------

class TransferFunctionKind(Enum):
    LINEAR = auto()
    STEP = auto()
    SIGMOID = auto()
    TANH = auto()
    SGN = auto()
    RAMP = auto()
    GAUSSIAN = auto()
    SIN = auto()
    LOG = auto()
    SOFTPLUS = auto()
    RELU = auto()


def _sigmoid(x: float) -> float:
    if x > 100.0:
        return 1.0
    if x < -100.0:
        return 0.0
    return 1.0 / (1.0 + math.exp(-x))


def _ramp(tf: "TransferFunction", net: float) -> float:
    if net >= tf.x_high:
        return tf.y_high
    if net <= tf.x_low:
        return tf.y_low
    return tf.slope * net


def _log(net: float) -> float:
    # Follows IEEE semantics instead of raising on the domain edge.
    if net > 0.0:
        return math.log(net)
    return -math.inf if net == 0.0 else math.nan


def _softplus(net: float) -> float:
    if net > 30.0:
        return net
    return math.log1p(math.exp(net))


_TRANSFER_OUTPUT: Dict[TransferFunctionKind, Callable[["TransferFunction", float], float]] = {
    TransferFunctionKind.LINEAR: lambda tf, net: tf.slope * net,
    TransferFunctionKind.STEP: lambda tf, net: tf.y_high if net > 0.0 else tf.y_low,
    TransferFunctionKind.SIGMOID: lambda tf, net: _sigmoid(tf.slope * net),
    TransferFunctionKind.TANH: lambda tf, net: math.tanh(tf.slope * net),
    TransferFunctionKind.SGN: lambda tf, net: 1.0 if net > 0.0 else -1.0,
    TransferFunctionKind.RAMP: _ramp,
    TransferFunctionKind.GAUSSIAN: lambda tf, net: math.exp(-(net * net) / (2.0 * tf.sigma * tf.sigma)),
    TransferFunctionKind.SIN: lambda tf, net: math.sin(net),
    TransferFunctionKind.LOG: lambda tf, net: _log(net),
    TransferFunctionKind.SOFTPLUS: lambda tf, net: _softplus(net),
    TransferFunctionKind.RELU: lambda tf, net: net if net > 0.0 else 0.0,
}


def _sigmoid_derivative(tf: "TransferFunction", net: float) -> float:
    out = _sigmoid(tf.slope * net)
    return tf.slope * out * (1.0 - out)


def _tanh_derivative(tf: "TransferFunction", net: float) -> float:
    out = math.tanh(tf.slope * net)
    return tf.slope * (1.0 - out * out)


def _gaussian_derivative(tf: "TransferFunction", net: float) -> float:
    out = _TRANSFER_OUTPUT[TransferFunctionKind.GAUSSIAN](tf, net)
    return -net / (tf.sigma * tf.sigma) * out


# Step and sgn are not differentiable; reporting 1 turns the delta rule into
# the plain perceptron rule for them.
_TRANSFER_DERIVATIVE: Dict[TransferFunctionKind, Callable[["TransferFunction", float], float]] = {
    TransferFunctionKind.LINEAR: lambda tf, net: tf.slope,
    TransferFunctionKind.STEP: lambda tf, net: 1.0,
    TransferFunctionKind.SIGMOID: _sigmoid_derivative,
    TransferFunctionKind.TANH: _tanh_derivative,
    TransferFunctionKind.SGN: lambda tf, net: 1.0,
    TransferFunctionKind.RAMP: lambda tf, net: tf.slope if tf.x_low < net < tf.x_high else 0.0,
    TransferFunctionKind.GAUSSIAN: _gaussian_derivative,
    TransferFunctionKind.SIN: lambda tf, net: math.cos(net),
    TransferFunctionKind.LOG: lambda tf, net: 1.0 / net if net != 0.0 else math.inf,
    TransferFunctionKind.SOFTPLUS: lambda tf, net: _sigmoid(net),
    TransferFunctionKind.RELU: lambda tf, net: 1.0 if net > 0.0 else 0.0,
}


@dataclass(frozen=True)
class TransferFunction:
    """Scalar activation applied to a neuron's net input.

    Attributes:
        kind: Which activation to apply.
        slope: Steepness for linear, sigmoid, tanh and ramp.
        y_high: Upper output level for step and ramp.
        y_low: Lower output level for step and ramp.
        x_high: Net input at which ramp saturates high.
        x_low: Net input at which ramp saturates low.
        sigma: Width of the gaussian.
    """

    kind: TransferFunctionKind = TransferFunctionKind.LINEAR
    slope: float = 1.0
    y_high: float = 1.0
    y_low: float = 0.0
    x_high: float = 1.0
    x_low: float = 0.0
    sigma: float = 0.5

    def output(self, net: float) -> float:
        return _TRANSFER_OUTPUT[self.kind](self, net)

    def derivative(self, net: float) -> float:
        return _TRANSFER_DERIVATIVE[self.kind](self, net)


def as_transfer_function(value: Union[TransferFunction, TransferFunctionKind, str]) -> TransferFunction:
    """Coerce a kind, kind name or function into a ``TransferFunction``."""
    if isinstance(value, TransferFunction):
        return value
    if isinstance(value, TransferFunctionKind):
        return TransferFunction(value)
    if isinstance(value, str):
        return TransferFunction(TransferFunctionKind[value.upper()])
    raise ValueError(f"Not a transfer function: {value!r}")


# ---------------------------------------------------------------------------
# Input functions
# ---------------------------------------------------------------------------

class InputFunctionKind(Enum):
    WEIGHTED_SUM = auto()
    SUM = auto()
    MAX = auto()
    MIN = auto()
    MEAN = auto()
    PRODUCT = auto()
    DIFFERENCE = auto()


def _mean(connections) -> float:
    if not connections:
        return 0.0
    return sum(c.weighted_input for c in connections) / len(connections)


def _difference(connections) -> float:
    total = 0.0
    for c in connections:
        d = c.input - c.weight.value
        total += d * d
    return math.sqrt(total)


_INPUT_REDUCERS: Dict[InputFunctionKind, Callable[[Any], float]] = {
    InputFunctionKind.WEIGHTED_SUM: lambda conns: sum(c.weighted_input for c in conns),
    InputFunctionKind.SUM: lambda conns: sum(c.input for c in conns),
    InputFunctionKind.MAX: lambda conns: max((c.weighted_input for c in conns), default=0.0),
    InputFunctionKind.MIN: lambda conns: min((c.weighted_input for c in conns), default=0.0),
    InputFunctionKind.MEAN: _mean,
    InputFunctionKind.PRODUCT: lambda conns: math.prod(c.weighted_input for c in conns),
    InputFunctionKind.DIFFERENCE: _difference,
}


@dataclass(frozen=True)
class InputFunction:
    """Reduces a neuron's incoming connections to a single net input."""

    kind: InputFunctionKind = InputFunctionKind.WEIGHTED_SUM

    def output(self, connections: Sequence["Connection"]) -> float:
        return float(_INPUT_REDUCERS[self.kind](connections))


def as_input_function(value: Union[InputFunction, InputFunctionKind, str]) -> InputFunction:
    """Coerce a kind, kind name or function into an ``InputFunction``."""
    if isinstance(value, InputFunction):
        return value
    if isinstance(value, InputFunctionKind):
        return InputFunction(value)
    if isinstance(value, str):
        return InputFunction(InputFunctionKind[value.upper()])
    raise ValueError(f"Not an input function: {value!r}")


# ---------------------------------------------------------------------------
# Weight and Connection
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class Weight:
    """Mutable scalar shared by every connection that references it.

    Attributes:
        value: Current weight.
        weight_change: Last change applied by a learning rule (momentum
            bookkeeping, not persisted).
    """

    value: float = field(default_factory=lambda: float(np.random.random() - 0.5))
    weight_change: float = 0.0

    def inc(self, amount: float) -> None:
        self.value += amount

    def dec(self, amount: float) -> None:
        self.value -= amount

    def randomize(
        self,
        min_value: float = -0.5,
        max_value: float = 0.5,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        """Draw a new value uniformly from [min_value, max_value)."""
        rng = rng or np.random.default_rng()
        self.value = float(min_value + rng.random() * (max_value - min_value))


# Marks "no weight given" so an explicit ``None`` can be rejected.
_FRESH = object()


class Connection:
    """Directed, weighted edge between two neurons.

    Args:
        from_neuron: Source neuron.
        to_neuron: Destination neuron.
        weight: A ``Weight`` to share, a scalar, or omitted for a random
            weight in [-0.5, 0.5).
    """

    def __init__(self, from_neuron: "Neuron", to_neuron: "Neuron", weight: Any = _FRESH):
        if from_neuron is None:
            raise ValueError("From neuron in connection can't be None")
        if to_neuron is None:
            raise ValueError("To neuron in connection can't be None")
        if weight is None:
            raise ValueError("Connection weight can't be None")

        if weight is _FRESH:
            weight = Weight()
        elif not isinstance(weight, Weight):
            weight = Weight(float(weight))

        self._from_neuron = from_neuron
        self._to_neuron = to_neuron
        self._weight = weight

    @property
    def from_neuron(self) -> "Neuron":
        return self._from_neuron

    @from_neuron.setter
    def from_neuron(self, neuron: "Neuron") -> None:
        if neuron is None:
            raise ValueError("From neuron in connection can't be None")
        self._from_neuron = neuron

    @property
    def to_neuron(self) -> "Neuron":
        return self._to_neuron

    @to_neuron.setter
    def to_neuron(self, neuron: "Neuron") -> None:
        if neuron is None:
            raise ValueError("To neuron in connection can't be None")
        self._to_neuron = neuron

    @property
    def weight(self) -> Weight:
        return self._weight

    @weight.setter
    def weight(self, weight: Weight) -> None:
        if weight is None:
            raise ValueError("Connection weight can't be None")
        self._weight = weight

    @property
    def input(self) -> float:
        """Output of the source neuron."""
        return self._from_neuron.output

    @property
    def weighted_input(self) -> float:
        return self._from_neuron.output * self._weight.value

    def __repr__(self) -> str:
        return f"Connection(weight={self._weight.value:.4f})"


# ---------------------------------------------------------------------------
# Neurons
# ---------------------------------------------------------------------------

class Neuron:
    """Basic processing unit: ``output = transfer(input_function(inputs))``.

    Input and output connections are kept as insertion-ordered maps keyed by
    the neuron at the other end, so at most one connection exists per pair.

    Args:
        input_function: Reduction over input connections (weighted sum).
        transfer_function: Activation (step).
    """

    def __init__(
        self,
        input_function: Any = None,
        transfer_function: Any = None,
    ):
        self._input_function = as_input_function(
            input_function if input_function is not None else InputFunctionKind.WEIGHTED_SUM
        )
        self._transfer_function = as_transfer_function(
            transfer_function if transfer_function is not None else TransferFunctionKind.STEP
        )
        self._input_connections: Dict[Neuron, Connection] = {}
        self._output_connections: Dict[Neuron, Connection] = {}
        self.net_input: float = 0.0
        self.output: float = 0.0
        self.error: float = 0.0
        self.parent_layer: Optional[Layer] = None
        self.label: Optional[str] = None

    # --- functions ---------------------------------------------------------

    @property
    def input_function(self) -> InputFunction:
        return self._input_function

    @input_function.setter
    def input_function(self, value: Any) -> None:
        if value is None:
            raise ValueError("Input function can't be None")
        self._input_function = as_input_function(value)

    @property
    def transfer_function(self) -> TransferFunction:
        return self._transfer_function

    @transfer_function.setter
    def transfer_function(self, value: Any) -> None:
        if value is None:
            raise ValueError("Transfer function can't be None")
        self._transfer_function = as_transfer_function(value)

    # --- calculation -------------------------------------------------------

    def calculate(self) -> None:
        """Recompute net input (only when connected) and output.

        Neurons without input connections keep their injected net input.
        """
        if self._input_connections:
            self.net_input = self._input_function.output(self._input_connections.values())
        self.output = self._transfer_function.output(self.net_input)

    def reset(self) -> None:
        self.net_input = 0.0
        self.output = 0.0

    def set_input(self, value: float) -> None:
        self.net_input = float(value)

    # --- connections -------------------------------------------------------

    @property
    def input_connections(self) -> List[Connection]:
        return list(self._input_connections.values())

    @property
    def output_connections(self) -> List[Connection]:
        return list(self._output_connections.values())

    def has_input_connections(self) -> bool:
        return bool(self._input_connections)

    def has_input_connection_from(self, neuron: "Neuron") -> bool:
        return neuron in self._input_connections

    def has_output_connection_to(self, neuron: "Neuron") -> bool:
        return neuron in self._output_connections

    def get_connection_from(self, neuron: "Neuron") -> Optional[Connection]:
        return self._input_connections.get(neuron)

    def add_input_connection(self, source: Any, weight: Any = _FRESH) -> Optional[Connection]:
        """Connect ``source`` into this neuron.

        Args:
            source: A ``Connection`` whose ``to_neuron`` is this neuron, or the
                source ``Neuron`` (a new connection is created).
            weight: Weight for a new connection (``Weight`` or scalar).

        Returns:
            The registered connection.  If a connection from the same source
            already exists it is returned unchanged and nothing is added.
        """
        if source is None:
            raise ValueError("Attempt to add None connection to neuron")
        if isinstance(source, Connection):
            connection = source
        else:
            connection = Connection(source, self, weight)

        if connection.to_neuron is not self:
            raise ValueError("Cannot add input connection - bad to_neuron specified")

        existing = self._input_connections.get(connection.from_neuron)
        if existing is not None:
            return existing

        self._input_connections[connection.from_neuron] = connection
        connection.from_neuron._add_output_connection(connection)
        return connection

    def _add_output_connection(self, connection: Connection) -> None:
        if connection is None:
            raise ValueError("Attempt to add None connection to neuron")
        if connection.from_neuron is not self:
            raise ValueError("Cannot add output connection - bad from_neuron specified")
        if connection.to_neuron in self._output_connections:
            return
        self._output_connections[connection.to_neuron] = connection

    def remove_input_connection_from(self, from_neuron: "Neuron") -> None:
        """Remove the connection from ``from_neuron`` at both endpoints."""
        if from_neuron not in self._input_connections:
            raise KeyError(f"No input connection from {from_neuron!r}")
        del self._input_connections[from_neuron]
        from_neuron._output_connections.pop(self, None)

    def remove_output_connection_to(self, to_neuron: "Neuron") -> None:
        """Remove the connection to ``to_neuron`` at both endpoints."""
        if to_neuron not in self._output_connections:
            raise KeyError(f"No output connection to {to_neuron!r}")
        del self._output_connections[to_neuron]
        to_neuron._input_connections.pop(self, None)

    def remove_all_input_connections(self) -> None:
        for from_neuron in list(self._input_connections):
            self.remove_input_connection_from(from_neuron)

    def remove_all_output_connections(self) -> None:
        for to_neuron in list(self._output_connections):
            self.remove_output_connection_to(to_neuron)

    def remove_all_connections(self) -> None:
        self.remove_all_input_connections()
        self.remove_all_output_connections()

    # --- weights -----------------------------------------------------------

    def get_weights(self) -> List[Weight]:
        return [c.weight for c in self._input_connections.values()]

    def initialize_weights(self, value: float) -> None:
        for connection in self._input_connections.values():
            connection.weight.value = float(value)

    # --- persistence hooks -------------------------------------------------

    def get_state(self) -> Dict[str, Any]:
        """Constructor keyword arguments beyond the two functions."""
        return {}

    def __repr__(self) -> str:
        name = type(self).__name__
        if self.label:
            return f"{name}({self.label!r})"
        return f"{name}(out={self.output:.4f})"


class InputNeuron(Neuron):
    """Passes its injected net input straight to its output."""

    def __init__(self, input_function: Any = None, transfer_function: Any = None):
        super().__init__(
            input_function,
            transfer_function if transfer_function is not None else TransferFunctionKind.LINEAR,
        )

    def calculate(self) -> None:
        self.output = self.net_input


class BiasNeuron(Neuron):
    """Constant output of 1; silently ignores input connections."""

    def __init__(self, input_function: Any = None, transfer_function: Any = None):
        super().__init__(
            input_function,
            transfer_function if transfer_function is not None else TransferFunctionKind.LINEAR,
        )
        self.output = 1.0

    def calculate(self) -> None:
        self.output = 1.0

    def reset(self) -> None:
        self.net_input = 0.0
        self.output = 1.0

    def add_input_connection(self, source: Any, weight: Any = _FRESH) -> Optional[Connection]:
        return None


class ThresholdNeuron(Neuron):
    """Neuron whose transfer function sees ``net_input - thresh``."""

    def __init__(
        self,
        input_function: Any = None,
        transfer_function: Any = None,
        thresh: float = 0.0,
    ):
        super().__init__(input_function, transfer_function)
        self.thresh = float(thresh)

    def calculate(self) -> None:
        if self._input_connections:
            self.net_input = self._input_function.output(self._input_connections.values())
        self.output = self._transfer_function.output(self.net_input - self.thresh)

    def get_state(self) -> Dict[str, Any]:
        return {"thresh": self.thresh}


class CompetitiveNeuron(Neuron):
    """Neuron taking part in winner-take-all competition inside its layer.

    The input connections split into two groups: connections from other
    layers (read in ``CompetitionPhase.EXTERNAL_INPUT``) and lateral
    connections from the neuron's own layer, including the self connection
    created here with weight 1 (read in ``CompetitionPhase.LATERAL``).
    """

    def __init__(self, input_function: Any = None, transfer_function: Any = None):
        super().__init__(input_function, transfer_function)
        self.add_input_connection(self, 1.0)

    def _is_lateral(self, connection: Connection) -> bool:
        source = connection.from_neuron
        if source is self:
            return True
        return source.parent_layer is not None and source.parent_layer is self.parent_layer

    def connections_for(self, phase: CompetitionPhase) -> List[Connection]:
        lateral = phase is CompetitionPhase.LATERAL
        return [c for c in self._input_connections.values() if self._is_lateral(c) == lateral]

    @property
    def connections_from_other_layers(self) -> List[Connection]:
        return self.connections_for(CompetitionPhase.EXTERNAL_INPUT)

    @property
    def connections_from_this_layer(self) -> List[Connection]:
        return self.connections_for(CompetitionPhase.LATERAL)

    def sum_inputs(self, phase: CompetitionPhase = CompetitionPhase.EXTERNAL_INPUT) -> None:
        connections = self.connections_for(phase)
        if connections:
            self.net_input = self._input_function.output(connections)

    def fire(self) -> None:
        self.output = self._transfer_function.output(self.net_input)

    def calculate(self, phase: CompetitionPhase = CompetitionPhase.EXTERNAL_INPUT) -> None:
        self.sum_inputs(phase)
        self.fire()


# ---------------------------------------------------------------------------
# Neuron factory
# ---------------------------------------------------------------------------

@dataclass
class NeuronProperties:
    """Recipe for creating neurons in bulk.

    Attributes:
        neuron_type: Neuron class to instantiate.
        input_function: Kind, name or ``InputFunction``.
        transfer_function: Kind, name or ``TransferFunction`` (carries its
            parameters, e.g. slope).
        use_bias: Builders add a bias neuron to layers built from these
            properties.
        params: Extra constructor keyword arguments (e.g. ``thresh``).
    """

    neuron_type: Type[Neuron] = Neuron
    input_function: Any = InputFunctionKind.WEIGHTED_SUM
    transfer_function: Any = TransferFunctionKind.LINEAR
    use_bias: bool = False
    params: Dict[str, Any] = field(default_factory=dict)


def create_neuron(properties: NeuronProperties) -> Neuron:
    return properties.neuron_type(
        input_function=as_input_function(properties.input_function),
        transfer_function=as_transfer_function(properties.transfer_function),
        **properties.params,
    )


# ---------------------------------------------------------------------------
# Layers
# ---------------------------------------------------------------------------

class Layer:
    """Ordered group of neurons calculated together.

    Insertion order is the calculation order and the indexing used for
    network input and output vectors.

    Args:
        neurons_count: Number of neurons to create from ``neuron_properties``.
        neuron_properties: Recipe for those neurons; without it the layer
            starts empty.
    """

    # Learning rules that honour this flag leave the layer's weights alone.
    trainable: bool = True

    def __init__(self, neurons_count: int = 0, neuron_properties: Optional[NeuronProperties] = None):
        self._neurons: List[Neuron] = []
        self.parent_network: Optional[NeuralNetwork] = None
        self.label: Optional[str] = None
        if neuron_properties is not None:
            for _ in range(neurons_count):
                self.add_neuron(create_neuron(neuron_properties))

    # --- access ------------------------------------------------------------

    @property
    def neurons(self) -> List[Neuron]:
        return list(self._neurons)

    @property
    def neurons_count(self) -> int:
        return len(self._neurons)

    def __len__(self) -> int:
        return len(self._neurons)

    def __iter__(self) -> Iterator[Neuron]:
        return iter(list(self._neurons))

    def __contains__(self, neuron: object) -> bool:
        return any(n is neuron for n in self._neurons)

    def get_neuron_at(self, index: int) -> Neuron:
        return self._neurons[index]

    def index_of(self, neuron: Neuron) -> int:
        for i, n in enumerate(self._neurons):
            if n is neuron:
                return i
        raise KeyError(f"Neuron {neuron!r} not found in layer")

    def is_empty(self) -> bool:
        return not self._neurons

    # --- structure ---------------------------------------------------------

    def add_neuron(self, neuron: Neuron, index: Optional[int] = None) -> None:
        """Append (or insert at ``index``) a neuron and adopt it."""
        if neuron is None:
            raise ValueError("Neuron can't be None")
        neuron.parent_layer = self
        if index is None:
            self._neurons.append(neuron)
        else:
            self._neurons.insert(index, neuron)
        self._notify(NetworkEventType.NEURON_ADDED, neuron)

    def set_neuron(self, index: int, neuron: Neuron) -> None:
        """Replace the neuron at ``index``; the old one is disconnected."""
        if neuron is None:
            raise ValueError("Neuron can't be None")
        old = self._neurons[index]
        old.parent_layer = None
        old.remove_all_connections()
        neuron.parent_layer = self
        self._neurons[index] = neuron
        self._notify(NetworkEventType.NEURON_ADDED, neuron)

    def remove_neuron_at(self, index: int) -> Neuron:
        """Remove the neuron at ``index`` after severing all its connections."""
        try:
            neuron = self._neurons[index]
        except IndexError as exc:
            raise KeyError(f"No neuron at index {index} in layer") from exc
        neuron.parent_layer = None
        neuron.remove_all_connections()
        del self._neurons[index]
        self._notify(NetworkEventType.NEURON_REMOVED, neuron)
        return neuron

    def remove_neuron(self, neuron: Neuron) -> None:
        self.remove_neuron_at(self.index_of(neuron))

    def remove_all_neurons(self) -> None:
        for neuron in self._neurons:
            neuron.parent_layer = None
            neuron.remove_all_connections()
        self._neurons.clear()
        self._notify(NetworkEventType.NEURON_REMOVED, None)

    def _notify(self, event_type: NetworkEventType, neuron: Optional[Neuron]) -> None:
        if self.parent_network is not None:
            self.parent_network.fire_network_event(
                NetworkEvent(event_type, source=self, subject=neuron)
            )

    # --- bulk operations ---------------------------------------------------

    def calculate(self) -> None:
        for neuron in self._neurons:
            neuron.calculate()

    def reset(self) -> None:
        for neuron in self._neurons:
            neuron.reset()

    def initialize_weights(self, value: float) -> None:
        for neuron in self._neurons:
            neuron.initialize_weights(value)

    # --- persistence hooks -------------------------------------------------

    def get_state(self) -> Dict[str, Any]:
        return {}

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "Layer":
        """Create an empty layer of this class from ``get_state()`` output."""
        return cls()

    def __repr__(self) -> str:
        name = self.label or type(self).__name__
        return f"{name}({len(self._neurons)} neurons)"


def create_layer(neurons_count: int, neuron_properties: NeuronProperties) -> Layer:
    return Layer(neurons_count, neuron_properties)


class InputLayer(Layer):
    """Layer of ``InputNeuron`` with linear transfer."""

    def __init__(self, neurons_count: int = 0):
        super().__init__(
            neurons_count,
            NeuronProperties(neuron_type=InputNeuron, transfer_function=TransferFunctionKind.LINEAR),
        )


class CompetitiveLayer(Layer):
    """Layer of competitive neurons resolving a single winner per calculate.

    Calculation runs one external-input phase and then synchronous lateral
    phases (every neuron sums from the previous outputs before any neuron
    fires) until exactly one neuron has positive output.  If that does not
    happen within ``max_iterations`` lateral phases, the neuron with the
    largest external net input wins.  The layer output is one-hot.

    Args:
        neurons_count: Number of neurons.
        neuron_properties: Recipe; ``neuron_type`` should be
            ``CompetitiveNeuron``.
        max_iterations: Lateral phases allowed per calculate.
    """

    def __init__(
        self,
        neurons_count: int = 0,
        neuron_properties: Optional[NeuronProperties] = None,
        max_iterations: int = 100,
    ):
        super().__init__(neurons_count, neuron_properties)
        self.max_iterations = max_iterations
        self.winner: Optional[CompetitiveNeuron] = None

    def _competitors(self) -> List[CompetitiveNeuron]:
        return [n for n in self._neurons if isinstance(n, CompetitiveNeuron)]

    def _find_winner(self, competitors: List[CompetitiveNeuron]) -> Optional[CompetitiveNeuron]:
        active = [n for n in competitors if n.output > 0.0]
        return active[0] if len(active) == 1 else None

    def calculate(self) -> None:
        competitors = self._competitors()
        self.winner = None
        if not competitors:
            return

        for neuron in competitors:
            neuron.calculate(CompetitionPhase.EXTERNAL_INPUT)
        external = [n.net_input for n in competitors]

        winner = self._find_winner(competitors)
        iterations = 0
        while winner is None and iterations < self.max_iterations:
            for neuron in competitors:
                neuron.sum_inputs(CompetitionPhase.LATERAL)
            for neuron in competitors:
                neuron.fire()
            iterations += 1
            winner = self._find_winner(competitors)

        if winner is None:
            winner = competitors[int(np.argmax(external))]

        for neuron in competitors:
            neuron.output = 1.0 if neuron is winner else 0.0
        self.winner = winner

    def reset(self) -> None:
        super().reset()
        self.winner = None

    def get_state(self) -> Dict[str, Any]:
        return {"max_iterations": self.max_iterations}

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "CompetitiveLayer":
        return cls(max_iterations=state.get("max_iterations", 100))


# ---------------------------------------------------------------------------
# Connection factory
# ---------------------------------------------------------------------------

def create_connection(from_neuron: Neuron, to_neuron: Neuron, weight: Any = _FRESH) -> Optional[Connection]:
    """Connect ``from_neuron`` into ``to_neuron`` (no-op if already connected)."""
    if to_neuron is None:
        raise ValueError("To neuron can't be None")
    return to_neuron.add_input_connection(from_neuron, weight)


def full_connect(
    from_layer: Layer,
    to_layer: Layer,
    weight: Any = None,
    connect_bias: bool = True,
) -> None:
    """Connect every neuron of ``from_layer`` to every neuron of ``to_layer``.

    Bias neurons in ``to_layer`` never receive connections.

    Args:
        weight: Scalar or shared ``Weight`` for every connection; random
            weights when omitted.
        connect_bias: Whether bias neurons in ``from_layer`` are sources.
    """
    for to_neuron in to_layer:
        if isinstance(to_neuron, BiasNeuron):
            continue
        for from_neuron in from_layer:
            if not connect_bias and isinstance(from_neuron, BiasNeuron):
                continue
            if weight is None:
                create_connection(from_neuron, to_neuron)
            else:
                create_connection(from_neuron, to_neuron, weight)


def full_connect_within(layer: Layer, weight: float) -> None:
    """Connect every neuron of ``layer`` to every other neuron of it."""
    neurons = layer.neurons
    for i, to_neuron in enumerate(neurons):
        for j, from_neuron in enumerate(neurons):
            if i != j:
                create_connection(from_neuron, to_neuron, weight)


def forward_connect(from_layer: Layer, to_layer: Layer, weight: float = 1.0) -> None:
    """Connect neuron ``i`` of ``from_layer`` to neuron ``i`` of ``to_layer``."""
    for from_neuron, to_neuron in zip(from_layer, to_layer):
        create_connection(from_neuron, to_neuron, weight)


# ---------------------------------------------------------------------------
# Events and plugins
# ---------------------------------------------------------------------------

@dataclass
class NetworkEvent:
    """Notification delivered to network listeners.

    Attributes:
        event_type: What happened.
        source: Object that raised the event (network, layer, learning rule).
        subject: Neuron or layer the event is about, if any.
        data: Extra payload (e.g. iteration and total error for epochs).
    """

    event_type: NetworkEventType
    source: Any = None
    subject: Any = None
    data: Dict[str, Any] = field(default_factory=dict)


class PluginBase:
    """Feature module attached to a network, at most one per class."""

    def __init__(self) -> None:
        self.parent_network: Optional[NeuralNetwork] = None

    def get_state(self) -> Dict[str, Any]:
        return {}

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "PluginBase":
        return cls(**state)


class LabelsPlugin(PluginBase):
    """String labels for arbitrary keys (class names, output meanings)."""

    def __init__(self, labels: Optional[Dict[str, str]] = None) -> None:
        super().__init__()
        self.labels: Dict[str, str] = dict(labels or {})

    def set_label(self, key: str, label: str) -> None:
        self.labels[key] = label

    def get_label(self, key: str) -> Optional[str]:
        return self.labels.get(key)

    def get_state(self) -> Dict[str, Any]:
        return {"labels": dict(self.labels)}


# ---------------------------------------------------------------------------
# Neural network
# ---------------------------------------------------------------------------

class NeuralNetwork:
    """Ordered layers plus the input/output mapping, learning rule, plugins
    and event listeners of one network.

    Args:
        label: Human readable name.
    """

    def __init__(self, label: str = ""):
        self.label = label
        self.network_type: Optional[NetworkType] = None
        self._layers: List[Layer] = []
        self._input_neurons: List[Neuron] = []
        self._output_neurons: List[Neuron] = []
        self._output = np.zeros(0, dtype=np.float64)
        self._learning_rule: Any = None
        self.learning_thread: Optional[threading.Thread] = None
        self._plugins: Dict[type, PluginBase] = {}

        # --- Event handlers: (event type or None for all, callback) ---
        self._event_handlers: List[Tuple[Optional[NetworkEventType], Callable[[NetworkEvent], None]]] = []
        self._event_lock = threading.RLock()

    # -----------------------------------------------------------------------
    # Layers
    # -----------------------------------------------------------------------

    @property
    def layers(self) -> List[Layer]:
        return list(self._layers)

    @property
    def layers_count(self) -> int:
        return len(self._layers)

    def get_layer_at(self, index: int) -> Layer:
        return self._layers[index]

    def index_of(self, layer: Layer) -> int:
        for i, candidate in enumerate(self._layers):
            if candidate is layer:
                return i
        raise KeyError(f"Layer {layer!r} not found in network")

    def add_layer(self, layer: Layer, index: Optional[int] = None) -> None:
        if layer is None:
            raise ValueError("Layer can't be None")
        if index is None:
            self._layers.append(layer)
        else:
            self._layers.insert(index, layer)
        layer.parent_network = self
        self.fire_network_event(NetworkEvent(NetworkEventType.LAYER_ADDED, source=self, subject=layer))

    def remove_layer(self, layer: Layer) -> None:
        """Remove ``layer``; its neurons lose all their connections."""
        self.remove_layer_at(self.index_of(layer))

    def remove_layer_at(self, index: int) -> Layer:
        try:
            layer = self._layers[index]
        except IndexError as exc:
            raise KeyError(f"No layer at index {index} in network") from exc
        for neuron in layer:
            neuron.remove_all_connections()
        del self._layers[index]
        layer.parent_network = None
        self.fire_network_event(NetworkEvent(NetworkEventType.LAYER_REMOVED, source=self, subject=layer))
        return layer

    def is_empty(self) -> bool:
        return not self._layers

    # -----------------------------------------------------------------------
    # Input / output mapping
    # -----------------------------------------------------------------------

    @property
    def input_neurons(self) -> List[Neuron]:
        return list(self._input_neurons)

    @property
    def output_neurons(self) -> List[Neuron]:
        return list(self._output_neurons)

    @property
    def inputs_count(self) -> int:
        return len(self._input_neurons)

    @property
    def outputs_count(self) -> int:
        return len(self._output_neurons)

    def set_input_neurons(self, neurons: Iterable[Neuron]) -> None:
        self._input_neurons = list(neurons)

    def set_output_neurons(self, neurons: Iterable[Neuron]) -> None:
        self._output_neurons = list(neurons)
        self._output = np.zeros(len(self._output_neurons), dtype=np.float64)

    def set_output_labels(self, labels: Sequence[str]) -> None:
        for neuron, label in zip(self._output_neurons, labels):
            neuron.label = label

    # -----------------------------------------------------------------------
    # Calculation
    # -----------------------------------------------------------------------

    def set_input(self, input_vector: Sequence[float]) -> None:
        """Inject ``input_vector`` into the input neurons' net inputs.

        Raises:
            VectorSizeMismatchError: Length differs from the number of input
                neurons; no neuron is touched.
        """
        vector = np.asarray(input_vector, dtype=np.float64).ravel()
        if vector.shape[0] != len(self._input_neurons):
            raise VectorSizeMismatchError(
                f"Input vector size {vector.shape[0]} does not match network "
                f"input dimension {len(self._input_neurons)}"
            )
        for neuron, value in zip(self._input_neurons, vector):
            neuron.set_input(value)

    def calculate(self) -> None:
        """One forward sweep over the layers in order."""
        for layer in self._layers:
            layer.calculate()
        self.fire_network_event(NetworkEvent(NetworkEventType.CALCULATED, source=self))

    def get_output(self) -> np.ndarray:
        """Copy output neuron outputs into the output buffer and return it.

        The same array instance is returned on every call.
        """
        for i, neuron in enumerate(self._output_neurons):
            self._output[i] = neuron.output
        return self._output

    def reset(self) -> None:
        for layer in self._layers:
            layer.reset()

    # -----------------------------------------------------------------------
    # Learning
    # -----------------------------------------------------------------------

    @property
    def learning_rule(self) -> Any:
        return self._learning_rule

    @learning_rule.setter
    def learning_rule(self, rule: Any) -> None:
        self.set_learning_rule(rule)

    def set_learning_rule(self, rule: Any) -> None:
        if rule is None:
            raise ValueError("Learning rule can't be None")
        rule.set_neural_network(self)
        self._learning_rule = rule

    def _prepare_learning(self, training_set: Any, learning_rule: Any) -> Any:
        if training_set is None:
            raise ValueError("Training set can't be None")
        if learning_rule is not None:
            self.set_learning_rule(learning_rule)
        if self._learning_rule is None:
            raise ValueError("Network has no learning rule")
        return self._learning_rule

    def learn(self, training_set: Any, learning_rule: Any = None) -> None:
        """Train on ``training_set`` in the calling thread."""
        rule = self._prepare_learning(training_set, learning_rule)
        rule.learn(training_set)

    def learn_in_new_thread(self, training_set: Any, learning_rule: Any = None) -> threading.Thread:
        """Train on a background thread and return it immediately.

        Only one learning thread per network is supported; the caller must not
        calculate, restructure or start another run until it finishes.
        """
        rule = self._prepare_learning(training_set, learning_rule)
        rule.check_training_set(training_set)
        # Running before start() so an immediate stop_learning() reaches this run
        rule.begin()
        thread = threading.Thread(
            target=rule.learn,
            args=(training_set,),
            name="NeuroidLearningThread",
            daemon=True,
        )
        self.learning_thread = thread
        thread.start()
        return thread

    def stop_learning(self) -> None:
        if self._learning_rule is not None:
            self._learning_rule.stop_learning()

    def pause_learning(self) -> None:
        if self._learning_rule is not None:
            self._learning_rule.pause()

    def resume_learning(self) -> None:
        if self._learning_rule is not None:
            self._learning_rule.resume()

    # -----------------------------------------------------------------------
    # Weights
    # -----------------------------------------------------------------------

    def iter_input_connections(self) -> Iterator[Connection]:
        """Every input connection: layer order, neuron order, connection order."""
        for layer in self._layers:
            for neuron in layer:
                yield from neuron.input_connections

    @property
    def connections_count(self) -> int:
        return sum(1 for _ in self.iter_input_connections())

    def get_weights(self) -> np.ndarray:
        return np.array([c.weight.value for c in self.iter_input_connections()], dtype=np.float64)

    def set_weights(self, weights: Sequence[float]) -> None:
        """Assign ``weights`` in the same order ``get_weights`` reads them."""
        connections = list(self.iter_input_connections())
        values = np.asarray(weights, dtype=np.float64).ravel()
        if values.shape[0] != len(connections):
            raise VectorSizeMismatchError(
                f"Weight vector size {values.shape[0]} does not match "
                f"{len(connections)} connections"
            )
        for connection, value in zip(connections, values):
            connection.weight.value = float(value)

    def randomize_weights(self, policy: Any = None, max_weight: Optional[float] = None) -> None:
        """Replace every input connection weight.

        Args:
            policy: ``None`` for uniform [-0.5, 0.5); a minimum weight (with
                ``max_weight``); a ``numpy.random.Generator``; or any object
                with ``randomize(network)``.
            max_weight: Upper bound when ``policy`` is a minimum weight.
        """
        if policy is None:
            randomizer = WeightsRandomizer()
        elif max_weight is not None:
            randomizer = RangeRandomizer(float(policy), float(max_weight))
        elif isinstance(policy, np.random.Generator):
            randomizer = WeightsRandomizer(policy)
        elif hasattr(policy, "randomize"):
            randomizer = policy
        else:
            raise ValueError(f"Unsupported randomization policy: {policy!r}")
        randomizer.randomize(self)

    def create_connection(self, from_neuron: Neuron, to_neuron: Neuron, weight_val: float) -> Optional[Connection]:
        return create_connection(from_neuron, to_neuron, weight_val)

    # -----------------------------------------------------------------------
    # Plugins
    # -----------------------------------------------------------------------

    def add_plugin(self, plugin: PluginBase) -> None:
        """Attach ``plugin``, replacing any plugin of the same class."""
        if plugin is None:
            raise ValueError("Plugin can't be None")
        plugin.parent_network = self
        self._plugins[type(plugin)] = plugin

    def get_plugin(self, plugin_class: type) -> Optional[PluginBase]:
        return self._plugins.get(plugin_class)

    def remove_plugin(self, plugin_class: type) -> None:
        plugin = self._plugins.pop(plugin_class, None)
        if plugin is not None:
            plugin.parent_network = None

    @property
    def plugins(self) -> List[PluginBase]:
        return list(self._plugins.values())

    # -----------------------------------------------------------------------
    # Event system
    # -----------------------------------------------------------------------

    def register_event_handler(
        self,
        event_type: Optional[NetworkEventType],
        callback: Callable[[NetworkEvent], None],
    ) -> None:
        """Subscribe ``callback`` to ``event_type`` (``None`` for every event)."""
        if callback is None:
            raise ValueError("Event handler can't be None")
        with self._event_lock:
            self._event_handlers.append((event_type, callback))

    def unregister_event_handler(
        self,
        event_type: Optional[NetworkEventType],
        callback: Callable[[NetworkEvent], None],
    ) -> None:
        with self._event_lock:
            self._event_handlers = [
                (t, cb) for t, cb in self._event_handlers
                if not (t is event_type and cb == callback)
            ]

    def fire_network_event(self, event: NetworkEvent) -> None:
        """Deliver ``event`` synchronously, in registration order."""
        with self._event_lock:
            handlers = [
                cb for t, cb in self._event_handlers
                if t is None or t is event.event_type
            ]
        for cb in handlers:
            cb(event)

    # -----------------------------------------------------------------------
    # Persistence
    # -----------------------------------------------------------------------

    def save(self, path: str) -> None:
        """Write a snapshot (``.json`` for JSON, msgpack otherwise)."""
        # Deferred: the persistence module imports the builders and rules.
        from neuroid_persistence import save_network
        save_network(self, path)

    @classmethod
    def create_from_file(cls, source: Any) -> "NeuralNetwork":
        """Load a snapshot from a path or a binary stream."""
        from neuroid_persistence import load_network
        return load_network(source)

    load = create_from_file

    def __repr__(self) -> str:
        name = self.label or type(self).__name__
        return f"{name}(layers={len(self._layers)}, inputs={self.inputs_count}, outputs={self.outputs_count})"
