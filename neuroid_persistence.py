"""
Neuroid Persistence - Network snapshots in msgpack or JSON.

A snapshot stores the complete network structure and every learnable value:
layer and neuron classes, input/transfer functions with their parameters,
thresholds, connections, weights, the input/output neuron selection, the
learning rule with its settings, and plugin state.  Transient values (net
inputs, outputs, errors, momentum bookkeeping) are not stored.

Neurons are referenced by ``(layer index, neuron index)`` and weights by an
index into a shared weight table, so weights shared between connections
(convolution kernels, pooling) are shared again after loading.

Format selection:
    - Paths ending in ``.json`` are written and read as JSON; every other
      path uses msgpack.
    - Streams are sniffed: a leading ``{`` means JSON, anything else msgpack.

Usage::

    from neuroid_persistence import save_network, load_network

    save_network(net, "xor.msgpack")
    restored = load_network("xor.msgpack")
"""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Tuple, Type, TypeVar, Union

import msgpack

import neuroid_networks  # noqa: F401  builder and feature-map classes must be loaded to resolve by name
from neuroid_foundation import (
    Connection,
    InputFunction,
    InputFunctionKind,
    Layer,
    NetworkType,
    NeuralNetwork,
    Neuron,
    PersistenceError,
    PluginBase,
    TransferFunction,
    TransferFunctionKind,
    Weight,
)
from neuroid_learning import LearningRule

logger = logging.getLogger("neuroid.persistence")

FORMAT_TAG = "neuroid-network"
FORMAT_VERSION = "1.0"

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Type registry
# ---------------------------------------------------------------------------

def _class_index(base: Type[T]) -> Dict[str, Type[T]]:
    """Map class name to class for ``base`` and all its loaded subclasses."""
    index: Dict[str, Type[T]] = {}
    pending = [base]
    while pending:
        cls = pending.pop()
        index.setdefault(cls.__name__, cls)
        pending.extend(cls.__subclasses__())
    return index


def _resolve(base: Type[T], name: str) -> Type[T]:
    cls = _class_index(base).get(name)
    if cls is None:
        raise PersistenceError(f"Unknown {base.__name__} type in snapshot: {name!r}")
    return cls


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _serialize_transfer_function(tf: TransferFunction) -> Dict[str, Any]:
    return {
        "kind": tf.kind.name,
        "slope": tf.slope,
        "y_high": tf.y_high,
        "y_low": tf.y_low,
        "x_high": tf.x_high,
        "x_low": tf.x_low,
        "sigma": tf.sigma,
    }


def _deserialize_transfer_function(data: Dict[str, Any]) -> TransferFunction:
    params = dict(data)
    kind = TransferFunctionKind[params.pop("kind")]
    return TransferFunction(kind, **params)


def serialize_network(network: NeuralNetwork) -> Dict[str, Any]:
    """Build the snapshot dict for ``network``.

    Raises:
        PersistenceError: A connection leaves the network (its source neuron
            is not in any of the network's layers).
    """
    positions: Dict[Neuron, Tuple[int, int]] = {}
    for li, layer in enumerate(network.layers):
        for ni, neuron in enumerate(layer):
            positions[neuron] = (li, ni)

    weight_index: Dict[int, int] = {}
    weight_values: List[float] = []

    def weight_ref(weight: Weight) -> int:
        key = id(weight)
        if key not in weight_index:
            weight_index[key] = len(weight_values)
            weight_values.append(weight.value)
        return weight_index[key]

    def position_of(neuron: Neuron) -> List[int]:
        if neuron not in positions:
            raise PersistenceError(f"Neuron {neuron!r} is connected but not part of the network")
        return list(positions[neuron])

    layers_data = []
    for layer in network.layers:
        neurons_data = []
        for neuron in layer:
            neurons_data.append({
                "type": type(neuron).__name__,
                "label": neuron.label,
                "input_function": neuron.input_function.kind.name,
                "transfer_function": _serialize_transfer_function(neuron.transfer_function),
                "state": neuron.get_state(),
                "inputs": [
                    position_of(c.from_neuron) + [weight_ref(c.weight)]
                    for c in neuron.input_connections
                ],
            })
        layers_data.append({
            "type": type(layer).__name__,
            "label": layer.label,
            "state": layer.get_state(),
            "neurons": neurons_data,
        })

    rule = network.learning_rule
    return {
        "format": FORMAT_TAG,
        "version": FORMAT_VERSION,
        "network_class": type(network).__name__,
        "network_type": network.network_type.name if network.network_type else None,
        "label": network.label,
        "layers": layers_data,
        "weights": weight_values,
        "input_neurons": [position_of(n) for n in network.input_neurons],
        "output_neurons": [position_of(n) for n in network.output_neurons],
        "learning_rule": (
            {"type": type(rule).__name__, "config": rule.get_config()}
            if rule is not None else None
        ),
        "plugins": [
            {"type": type(p).__name__, "state": p.get_state()}
            for p in network.plugins
        ],
    }


def _check_format(data: Any) -> None:
    if not isinstance(data, dict) or data.get("format") != FORMAT_TAG:
        raise PersistenceError("Not a neuroid network snapshot")
    version = str(data.get("version", ""))
    if version.split(".")[0] != FORMAT_VERSION.split(".")[0]:
        raise PersistenceError(
            f"Unsupported snapshot version {version!r} (expected {FORMAT_VERSION})"
        )


def deserialize_network(data: Dict[str, Any]) -> NeuralNetwork:
    """Rebuild a network from a snapshot dict.

    Builder classes are restored without running their constructors, so
    the loaded structure is exactly the saved one.
    """
    _check_format(data)

    try:
        network_cls = _resolve(NeuralNetwork, data["network_class"])
        network = network_cls.__new__(network_cls)
        NeuralNetwork.__init__(network, data.get("label") or "")
        if data.get("network_type"):
            network.network_type = NetworkType[data["network_type"]]

        weights = [Weight(float(v)) for v in data["weights"]]

        for layer_data in data["layers"]:
            layer_cls = _resolve(Layer, layer_data["type"])
            layer = layer_cls.from_state(layer_data.get("state") or {})
            layer.label = layer_data.get("label")
            for neuron_data in layer_data["neurons"]:
                neuron_cls = _resolve(Neuron, neuron_data["type"])
                neuron = neuron_cls(
                    input_function=InputFunction(InputFunctionKind[neuron_data["input_function"]]),
                    transfer_function=_deserialize_transfer_function(neuron_data["transfer_function"]),
                    **(neuron_data.get("state") or {}),
                )
                neuron.label = neuron_data.get("label")
                layer.add_neuron(neuron)
            network.add_layer(layer)

        layers = network.layers
        for li, layer_data in enumerate(data["layers"]):
            for ni, neuron_data in enumerate(layer_data["neurons"]):
                neuron = layers[li].get_neuron_at(ni)
                for src_layer, src_neuron, weight_id in neuron_data["inputs"]:
                    source = layers[src_layer].get_neuron_at(src_neuron)
                    existing = neuron.get_connection_from(source)
                    if existing is not None:
                        existing.weight = weights[weight_id]
                    else:
                        neuron.add_input_connection(Connection(source, neuron, weights[weight_id]))

        network.set_input_neurons(layers[li].get_neuron_at(ni) for li, ni in data["input_neurons"])
        network.set_output_neurons(layers[li].get_neuron_at(ni) for li, ni in data["output_neurons"])

        rule_data = data.get("learning_rule")
        if rule_data:
            rule_cls = _resolve(LearningRule, rule_data["type"])
            rule = rule_cls()
            rule.apply_config(rule_data.get("config") or {})
            network.set_learning_rule(rule)

        for plugin_data in data.get("plugins") or []:
            plugin_cls = _resolve(PluginBase, plugin_data["type"])
            network.add_plugin(plugin_cls.from_state(plugin_data.get("state") or {}))
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise PersistenceError(f"Malformed network snapshot: {exc}") from exc

    return network


# ---------------------------------------------------------------------------
# Files and streams
# ---------------------------------------------------------------------------

def _is_json_path(path: Union[str, Path]) -> bool:
    return str(path).lower().endswith(".json")


def save_network(network: NeuralNetwork, path: Union[str, Path]) -> None:
    """Write ``network`` to ``path`` (JSON for ``.json``, msgpack otherwise)."""
    data = serialize_network(network)
    try:
        if _is_json_path(path):
            with open(path, "w") as f:
                json.dump(data, f, indent=2)
        else:
            with open(path, "wb") as f:
                msgpack.pack(data, f, use_bin_type=True)
    except OSError as exc:
        raise PersistenceError(f"Failed to save network to {path}") from exc
    logger.info("Saved %s to %s", network, path)


def dump_network(network: NeuralNetwork, stream: BinaryIO, as_json: bool = False) -> None:
    """Write a snapshot of ``network`` to a binary stream."""
    data = serialize_network(network)
    if as_json:
        stream.write(json.dumps(data).encode("utf-8"))
    else:
        msgpack.pack(data, stream, use_bin_type=True)


def _decode(raw: bytes) -> Any:
    if raw.lstrip()[:1] == b"{":
        return json.loads(raw.decode("utf-8"))
    return msgpack.unpackb(raw, raw=False)


def load_network(source: Union[str, Path, BinaryIO]) -> NeuralNetwork:
    """Load a network from a path or a readable binary stream.

    Raises:
        PersistenceError: The source cannot be read or decoded, is not a
            neuroid snapshot, or has an incompatible version.
    """
    try:
        if isinstance(source, (str, Path)):
            if _is_json_path(source):
                with open(source, "r") as f:
                    data = json.load(f)
            else:
                with open(source, "rb") as f:
                    data = msgpack.unpack(f, raw=False)
        else:
            data = _decode(source.read())
    except OSError as exc:
        raise PersistenceError(f"Failed to read network snapshot from {source}") from exc
    except (ValueError, TypeError, msgpack.exceptions.UnpackException) as exc:
        raise PersistenceError(f"Failed to decode network snapshot from {source}") from exc

    network = deserialize_network(data)
    logger.info("Loaded %s", network)
    return network


def loads_network(raw: bytes) -> NeuralNetwork:
    """Load a network from snapshot bytes (msgpack or JSON)."""
    return load_network(io.BytesIO(raw))

