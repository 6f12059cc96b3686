"""
Weight randomization policies.

Every policy exposes ``randomize(network)`` and walks the network's input
connections in layer, neuron, connection order.  Each policy owns a
``numpy.random.Generator`` so runs can be made reproducible by seeding it.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import numpy as np

logger = logging.getLogger("neuroid.random")


class WeightsRandomizer:
    """Uniform weights in [-0.5, 0.5).

    Args:
        rng: Generator to draw from; a fresh unseeded one when omitted.
    """

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng()

    def randomize(self, network: Any) -> None:
        count = 0
        for connection in network.iter_input_connections():
            self.randomize_weight(connection.weight)
            count += 1
        logger.debug("%s randomized %d weights", type(self).__name__, count)

    def randomize_weight(self, weight: Any) -> None:
        weight.value = self.next_value()

    def next_value(self) -> float:
        return float(self.rng.random() - 0.5)


class RangeRandomizer(WeightsRandomizer):
    """Uniform weights in [min_weight, max_weight)."""

    def __init__(self, min_weight: float, max_weight: float, rng: Optional[np.random.Generator] = None):
        if max_weight < min_weight:
            raise ValueError(f"max_weight {max_weight} is below min_weight {min_weight}")
        super().__init__(rng)
        self.min_weight = float(min_weight)
        self.max_weight = float(max_weight)

    def next_value(self) -> float:
        return float(self.min_weight + self.rng.random() * (self.max_weight - self.min_weight))


class GaussianRandomizer(WeightsRandomizer):
    """Normally distributed weights."""

    def __init__(self, mean: float = 0.0, standard_deviation: float = 1.0, rng: Optional[np.random.Generator] = None):
        if standard_deviation < 0:
            raise ValueError("standard_deviation must be non-negative")
        super().__init__(rng)
        self.mean = float(mean)
        self.standard_deviation = float(standard_deviation)

    def next_value(self) -> float:
        return float(self.rng.normal(self.mean, self.standard_deviation))


class DistortRandomizer(WeightsRandomizer):
    """Perturbs existing weights by up to +/- ``distortion_factor``."""

    def __init__(self, distortion_factor: float, rng: Optional[np.random.Generator] = None):
        super().__init__(rng)
        self.distortion_factor = float(distortion_factor)

    def randomize_weight(self, weight: Any) -> None:
        weight.value = float(
            weight.value + self.distortion_factor - self.rng.random() * self.distortion_factor * 2.0
        )
