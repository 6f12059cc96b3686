#!/usr/bin/env python3
"""
Unsupervised Learning Demo

Demonstrates:
    1. Winner-take-all clustering with a competitive network
    2. A self-organizing (Kohonen) map trained in a background thread
    3. Logging training events to a rotating JSON-lines file
"""

import sys
import os
import tempfile

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np

from neuroid_config import load_neuroid_config
from neuroid_data import DataSet
from neuroid_learning import KohonenLearning
from neuroid_monitoring import TrainingLogger, training_summary
from neuroid_networks import CompetitiveNetwork, Kohonen


def separator(title: str):
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}\n")


def _clusters(rng, centers, per_cluster=20, spread=0.05):
    data = DataSet(len(centers[0]), label="clusters")
    for center in centers:
        for _ in range(per_cluster):
            data.add_row(np.asarray(center) + rng.normal(0.0, spread, len(center)))
    data.shuffle(rng)
    return data


# ===========================================================================
# Demo 1: Competitive clustering
# ===========================================================================

def demo_competitive(rng):
    separator("Demo 1: Competitive Clustering")

    centers = [(0.9, 0.1), (0.1, 0.9)]
    data = _clusters(rng, centers)

    net = CompetitiveNetwork(2, 2)
    net.learning_rule.max_iterations = 30
    net.learn(data)
    print(training_summary(net))

    layer = net.get_layer_at(1)
    for center in centers:
        net.set_input(center)
        net.calculate()
        print(f"  {center} -> winner {layer.index_of(layer.winner)}")
        net.reset()


# ===========================================================================
# Demo 2: Kohonen map in a background thread
# ===========================================================================

def demo_kohonen(rng, log_dir):
    separator("Demo 2: Kohonen Map (background thread)")

    data = _clusters(rng, [(0.0, 0.0), (1.0, 0.0), (0.0, 1.0), (1.0, 1.0)], per_cluster=10)

    net = Kohonen(2, 9)
    net.randomize_weights(rng)
    net.set_learning_rule(KohonenLearning(0.5, (40, 20), (2, 1)))

    log = TrainingLogger(load_neuroid_config({"monitoring": {"log_dir": log_dir}}))
    log.attach(net)
    thread = net.learn_in_new_thread(data)
    thread.join()
    log.close()

    print(training_summary(net))
    print(f"Event log: {log.log_path}")

    # Each map neuron's weights are its prototype point
    for index, neuron in enumerate(net.get_layer_at(1)):
        print(f"  cell {index}: {[round(w.value, 2) for w in neuron.get_weights()]}")


def main():
    rng = np.random.default_rng(42)
    demo_competitive(rng)
    with tempfile.TemporaryDirectory() as tmp:
        demo_kohonen(rng, tmp)


if __name__ == "__main__":
    main()
