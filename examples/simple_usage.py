"""Simple usage example for Neuroid.

Builds a multi-layer perceptron, trains it on XOR, saves it and loads it back.
"""

import sys
import os
import tempfile

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np

from neuroid_data import DataSet
from neuroid_foundation import NetworkEventType, NeuralNetwork
from neuroid_networks import MultiLayerPerceptron


def main():
    # XOR truth table
    training_set = DataSet(2, 1, label="xor")
    for a, b in ((0, 0), (0, 1), (1, 0), (1, 1)):
        training_set.add_row([a, b], [a ^ b])

    net = MultiLayerPerceptron(2, 4, 1, label="XOR")
    net.randomize_weights(np.random.default_rng(1))
    rule = net.learning_rule
    rule.learning_rate = 0.7
    rule.momentum = 0.7
    rule.max_error = 0.01
    rule.max_iterations = 10000

    def on_epoch(event):
        if event.data["iteration"] % 500 == 0:
            print(f"  epoch {event.data['iteration']:5d}  error {event.data['total_error']:.5f}")

    net.register_event_handler(NetworkEventType.EPOCH_ENDED, on_epoch)

    print("=== Training XOR ===")
    net.learn(training_set)
    print(f"Stopped after {rule.current_iteration} epochs, error {rule.total_network_error:.5f}")

    print("\n=== Outputs ===")
    for row in training_set:
        net.set_input(row.input)
        net.calculate()
        print(f"{row.input.tolist()} -> {net.get_output()[0]:.3f} (target {row.desired_output[0]:.0f})")

    print("\n=== Save / Load ===")
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "xor.msgpack")
        net.save(path)
        restored = NeuralNetwork.create_from_file(path)
        restored.set_input([1, 0])
        restored.calculate()
        print(f"Restored {restored!r}: [1, 0] -> {restored.get_output()[0]:.3f}")


if __name__ == "__main__":
    main()
